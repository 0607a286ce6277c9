from pathlib import Path

import pytest

from config.settings import KnowledgebaseConfig, load_knowledgebase_paths


def test_defaults():
    config = KnowledgebaseConfig()
    assert config.similarity.warning == 0.5
    assert config.similarity.rejection == 0.6
    assert config.corpus_path("android") == Path(".") / "android"


def test_from_env(monkeypatch, tmp_path):
    paths = tmp_path / "knowledgebases.yaml"
    paths.write_text("android: /srv/kb/android-guides\ndevops: ./devops\n", encoding="utf-8")
    monkeypatch.setenv("KB_DB_PATH", str(tmp_path / "kb.db"))
    monkeypatch.setenv("KB_CONTENT_ROOT", "/srv/kb")
    monkeypatch.setenv("KB_KNOWLEDGEBASE_PATHS", str(paths))
    monkeypatch.setenv("KB_SIMILARITY_REJECTION", "0.75")
    monkeypatch.setenv("KB_LOG_JSON", "true")

    config = KnowledgebaseConfig.from_env()

    assert config.db_path == str(tmp_path / "kb.db")
    assert config.similarity.rejection == 0.75
    assert config.log_json is True
    assert config.corpus_path("android") == Path("/srv/kb/android-guides")
    assert config.corpus_path("kotlin") == Path("/srv/kb/kotlin")


def test_threshold_out_of_range(monkeypatch):
    monkeypatch.setenv("KB_SIMILARITY_WARNING", "1.5")
    with pytest.raises(ValueError):
        KnowledgebaseConfig.from_env()


def test_paths_file_must_be_mapping(tmp_path):
    bad = tmp_path / "paths.yaml"
    bad.write_text("- android\n- devops\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_knowledgebase_paths(str(bad))
