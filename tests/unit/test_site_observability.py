"""Unit tests for logging setup and tracing helpers."""

import io
import json
import logging
import sys

from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
import pytest

from site_search.observability import JsonFormatter, configure_logging, create_span, enable_tracing


def _record(msg: str, level: int = logging.INFO, name: str = "site_search.search.indexer") -> logging.LogRecord:
    return logging.LogRecord(name=name, level=level, pathname="test.py", lineno=1, msg=msg, args=(), exc_info=None)


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.mark.unit
class TestJsonFormatter:
    """Tests for structured JSON logging."""

    def test_basic_fields(self):
        data = json.loads(JsonFormatter().format(_record("indexed")))

        assert data["message"] == "indexed"
        assert data["level"] == "INFO"
        assert data["logger"] == "site_search.search.indexer"
        assert data["timestamp"].endswith("+00:00")

    def test_no_span_ids_outside_a_span(self):
        data = json.loads(JsonFormatter().format(_record("idle")))

        assert "trace_id" not in data
        assert "span_id" not in data

    def test_span_ids_are_attached_inside_a_span(self):
        enable_tracing()

        with create_span("index.build") as span:
            data = json.loads(JsonFormatter().format(_record("indexed")))
            context = span.get_span_context()

        assert data["trace_id"] == format(context.trace_id, "032x")
        assert data["span_id"] == format(context.span_id, "016x")

    def test_extra_fields_are_included_and_clipped(self):
        record = _record("skipping")
        record.doc_id = "/drafts/"
        record.reason = "x" * 600
        record.paths = {"b", "a"}

        data = json.loads(JsonFormatter().format(record))

        assert data["doc_id"] == "/drafts/"
        assert len(data["reason"]) == JsonFormatter.MAX_EXTRA_LEN + 3
        assert data["paths"] == ["a", "b"]

    def test_exception_is_formatted(self):
        try:
            raise ValueError("bad index")
        except ValueError:
            record = logging.LogRecord("x", logging.ERROR, "t.py", 1, "failed", (), sys.exc_info())

        data = json.loads(JsonFormatter().format(record))

        assert "ValueError: bad index" in data["exception"]

    def test_long_messages_are_truncated(self):
        data = json.loads(JsonFormatter().format(_record("x" * 5000)))

        assert len(data["message"]) == JsonFormatter.MAX_MESSAGE_LEN + 3


@pytest.mark.unit
class TestTracing:
    def test_enable_tracing_is_idempotent(self):
        provider = enable_tracing()

        assert isinstance(provider, TracerProvider)
        assert enable_tracing() is provider
        assert trace.get_tracer_provider() is provider

    def test_create_span_sets_attributes(self):
        enable_tracing()

        with create_span("index.build", attributes={"index.documents": 3}) as span:
            assert span.is_recording()
            assert span.attributes["index.documents"] == 3
            assert trace.get_current_span() is span

    def test_create_span_propagates_errors(self):
        with pytest.raises(RuntimeError), create_span("search.query"):
            raise RuntimeError("boom")


@pytest.mark.unit
class TestConfigureLogging:
    def test_quiets_noisy_libraries(self, restore_root_logger):
        configure_logging(level="debug", json_output=True)

        assert restore_root_logger.level == logging.DEBUG
        assert isinstance(restore_root_logger.handlers[-1].formatter, JsonFormatter)
        assert logging.getLogger("jieba").level == logging.WARNING

    def test_reconfiguring_replaces_only_its_own_handler(self, restore_root_logger):
        foreign = logging.NullHandler()
        restore_root_logger.addHandler(foreign)

        first = configure_logging()
        second = configure_logging(level="warning")

        assert foreign in restore_root_logger.handlers
        assert second in restore_root_logger.handlers
        assert first not in restore_root_logger.handlers

    def test_writes_to_given_stream(self, restore_root_logger):
        stream = io.StringIO()
        configure_logging(stream=stream, logger_levels={"site_search.test": "error"})

        logging.getLogger("site_search.test").warning("dropped")
        logging.getLogger("site_search.other").info("kept")

        output = stream.getvalue()
        assert "kept" in output
        assert "dropped" not in output

    def test_unknown_level_falls_back_to_info(self, restore_root_logger):
        configure_logging(level="chatty")

        assert restore_root_logger.level == logging.INFO
