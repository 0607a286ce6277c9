import json
import logging

import pytest

from observability.logging import ColoredFormatter, JSONFormatter, get_structured_logger, log_performance


def make_log_record(**extra):
    record = logging.LogRecord("pipelines.scanner", logging.ERROR, __file__, 10, "Error parsing %s", ("x.md",), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestFormatters:
    def test_json_formatter(self):
        line = JSONFormatter().format(make_log_record(ctx_knowledgebase="android"))
        data = json.loads(line)
        assert data["message"] == "Error parsing x.md"
        assert data["level"] == "ERROR"
        assert data["service"] == "knowledgebase"
        assert data["ctx_knowledgebase"] == "android"
        assert data["timestamp"].endswith("Z")

    def test_colored_formatter_appends_context(self):
        line = ColoredFormatter(use_colors=False).format(make_log_record(ctx_path="x.md"))
        assert line.endswith("| path=x.md")
        assert "\033[" not in line


class TestStructuredLogger:
    def test_bind_merges_context(self, caplog):
        log = get_structured_logger("tests.structured", component="corpus_scanner").bind(knowledgebase="android")
        with caplog.at_level(logging.INFO, logger="tests.structured"):
            log.info("Indexed", canonical_id="android-01")
        record = caplog.records[-1]
        assert record.ctx_component == "corpus_scanner"
        assert record.ctx_knowledgebase == "android"
        assert record.ctx_canonical_id == "android-01"


class TestLogPerformance:
    def test_failure_is_logged_and_reraised(self, caplog):
        @log_performance(logger_name="tests.perf")
        def explode():
            raise ValueError("boom")

        with caplog.at_level(logging.ERROR, logger="tests.perf"):
            with pytest.raises(ValueError):
                explode()
        assert caplog.records[-1].error_type == "ValueError"

    def test_wraps_preserves_name(self):
        @log_performance()
        def reindex():
            return 42

        assert reindex() == 42
        assert reindex.__name__ == "reindex"
