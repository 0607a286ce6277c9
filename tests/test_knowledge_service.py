import pytest

from config.settings import KnowledgebaseConfig
from indexer.errors import ConflictError, ParseError, SimilarityRejection
from indexer.models import Level, QueryFilters
from pipelines.frontmatter import DocumentMetadata, parse_document
from services.knowledge_service import KnowledgeService, document_filename


@pytest.fixture
def service(store, android_corpus):
    config = KnowledgebaseConfig(content_root=str(android_corpus.parent))
    service = KnowledgeService(store, config)
    service.reindex_knowledgebase("android")
    return service


def metadata(**overrides):
    data = {
        "canonical_id": "android-50",
        "slug": "coroutines",
        "title": "Kotlin Coroutines",
        "level": "intermediate",
        "number": 50,
        "tags": ["kotlin", "concurrency"],
        "prerequisites": ["android-01"],
    }
    data.update(overrides)
    return data


COROUTINES_BODY = "# Kotlin Coroutines\n\nSuspend functions let you write asynchronous code sequentially.\n"


class TestQueries:
    def test_reindex_by_name(self, service):
        assert service.store.count("android") == 4

    def test_search(self, service):
        assert [r.canonical_id for r in service.search("Room")] == ["android-04"]

    def test_query(self, service):
        ids = [r.canonical_id for r in service.query(QueryFilters(level="intermediate"))]
        assert ids == ["android-03"]

    def test_resolve_filename(self, service):
        record = service.resolve_filename("./03. Android Services - Complete Guide.md", "android")
        assert record.canonical_id == "android-03"

    def test_query_roadmap(self, service):
        roadmap = service.query_roadmap("android")
        edges = {(e.source, e.target) for e in roadmap.edges}
        assert [n.id for n in roadmap.nodes] == ["android-01", "android-02", "android-04", "android-03"]
        assert ("android-01", "android-02") in edges
        assert ("android-01", "android-03") in edges
        assert ("android-04", "android-03") not in edges

    def test_query_roadmap_by_topic(self, service):
        roadmap = service.query_roadmap("android", topic="databases")
        assert [n.id for n in roadmap.nodes] == ["android-04"]
        assert roadmap.edges == []

    def test_reindex_unknown_knowledgebase(self, service):
        with pytest.raises(FileNotFoundError):
            service.reindex_knowledgebase("cobol")


class TestCheckDuplicate:
    def test_key_clashes(self, service):
        candidate = service.candidate_from_metadata(
            metadata(canonical_id="android-01", slug="room-basics"), COROUTINES_BODY, "android"
        )
        check = service.check_duplicate(candidate)
        assert check.duplicate_id
        assert check.duplicate_slug

    def test_similar_documents_are_reported(self, service):
        candidate = service.candidate_from_metadata(
            metadata(title="Intro to Android Basics", tags=["android", "basics"]),
            "Android is a mobile operating system. Activities are screens.\n",
            "android",
        )
        result = service.check_duplicate(candidate).to_dict()
        assert not result["duplicate_canonical_id"]
        assert not result["duplicate_slug"]
        similar_ids = [f["canonical_id"] for f in result["similar_files"]]
        assert similar_ids[0] == "android-01"
        assert all(f["similarity"] >= 0.5 for f in result["similar_files"])

    def test_distinct_content(self, service):
        candidate = service.candidate_from_metadata(metadata(), COROUTINES_BODY, "android")
        assert service.check_duplicate(candidate).similar == []

    def test_other_knowledgebases_are_not_compared(self, service):
        candidate = service.candidate_from_metadata(
            metadata(title="Intro to Android"),
            "Android is a mobile operating system. Activities are screens.\n",
            "devops",
        )
        assert service.check_duplicate(candidate).similar == []

    def test_invalid_metadata(self, service):
        with pytest.raises(ParseError):
            service.candidate_from_metadata({"slug": "x"}, "body", "android")


class TestAdmit:
    def test_writes_and_indexes(self, service, android_corpus):
        record = service.admit(metadata(), COROUTINES_BODY, "android", "02_intermediate")

        path = android_corpus / "02_intermediate" / "50. Kotlin Coroutines.md"
        assert path.is_file()
        assert record.source_path == "android/02_intermediate/50. Kotlin Coroutines.md"

        stored = service.store.get_by_canonical_id("android-50")
        assert stored.level == Level.INTERMEDIATE
        assert [r.canonical_id for r in service.search("asynchronous")] == ["android-50"]

        reparsed = parse_document(path, knowledgebase="android", source_path=record.source_path)
        assert reparsed.canonical_id == "android-50"
        assert reparsed.prerequisites == ["android-01"]
        assert reparsed.tags == ["kotlin", "concurrency"]

    def test_written_file_survives_reindex(self, service):
        service.admit(metadata(), COROUTINES_BODY, "android", "02_intermediate")
        report = service.reindex_knowledgebase("android")
        assert report.indexed_count == 5
        assert service.store.get_by_canonical_id("android-50").title == "Kotlin Coroutines"

    def test_duplicate_canonical_id(self, service, android_corpus):
        with pytest.raises(ConflictError) as exc:
            service.admit(metadata(canonical_id="android-02"), COROUTINES_BODY, "android", "02_intermediate")
        assert exc.value.field == "canonical_id"
        assert not (android_corpus / "02_intermediate" / "50. Kotlin Coroutines.md").exists()

    def test_duplicate_slug(self, service):
        with pytest.raises(ConflictError) as exc:
            service.admit(metadata(slug="room-basics"), COROUTINES_BODY, "android", "02_intermediate")
        assert exc.value.field == "slug"

    def test_similar_content_is_rejected(self, service, android_corpus):
        with pytest.raises(SimilarityRejection) as exc:
            service.admit(
                metadata(title="Intro to Android", tags=["android", "basics"]),
                "Android is a mobile operating system. Activities are screens.\n",
                "android",
                "01_beginners",
            )
        assert exc.value.threshold == 0.6
        assert exc.value.matches[0][0].canonical_id == "android-01"
        assert service.store.count("android") == 4
        assert not (android_corpus / "01_beginners" / "50. Intro to Android.md").exists()

    def test_rejection_threshold_is_configurable(self, store, android_corpus):
        config = KnowledgebaseConfig(content_root=str(android_corpus.parent))
        config.similarity.rejection = 1.0
        service = KnowledgeService(store, config)
        service.reindex_knowledgebase("android")
        record = service.admit(
            metadata(title="Intro to Android Basics", tags=["android", "basics"]),
            "Android is a mobile operating system. Activities are screens.\n",
            "android",
            "01_beginners",
        )
        assert service.store.get_by_canonical_id(record.canonical_id) is not None


def test_document_filename():
    meta = DocumentMetadata(canonical_id="a", slug="a", title="Input/Output", level="beginner", number=7)
    assert document_filename(meta) == "07. Input-Output.md"
