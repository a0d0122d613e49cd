"""Log handler setup for the CLI, with an optional JSON line format."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timezone
import logging
from pathlib import Path
import sys
from typing import Any, TextIO

from opentelemetry import trace
import orjson


# Attributes every LogRecord carries; anything else on a record came from ``extra=``
_RESERVED_RECORD_KEYS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime", "taskName"}

# Third-party loggers that are chatty at INFO (jieba announces dictionary loading on every start)
_NOISY_LOGGERS = ("jieba", "httpx", "httpcore")

TEXT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


class JsonFormatter(logging.Formatter):
    """One JSON object per record, tagged with the active span when there is one."""

    MAX_MESSAGE_LEN = 2000
    MAX_EXTRA_LEN = 500

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": _clip(record.getMessage(), self.MAX_MESSAGE_LEN),
        }

        span_context = trace.get_current_span().get_span_context()
        if span_context.is_valid:
            entry["trace_id"] = trace.format_trace_id(span_context.trace_id)
            entry["span_id"] = trace.format_span_id(span_context.span_id)

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key in _RESERVED_RECORD_KEYS or key.startswith("_"):
                continue
            entry[key] = _clip(value, self.MAX_EXTRA_LEN) if isinstance(value, str) else value

        return orjson.dumps(entry, default=_json_default).decode("utf-8")


def _clip(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


def _json_default(value: Any) -> Any:
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=str)
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, (bytes, bytearray)):
        return value.decode("utf-8", errors="replace")
    return repr(value)


def configure_logging(
    level: str = "info",
    *,
    json_output: bool = False,
    stream: TextIO | None = None,
    logger_levels: Mapping[str, str] | None = None,
) -> logging.Handler:
    """Attach a single stderr handler to the root logger and return it.

    Calling it again replaces the handler it installed earlier; handlers added
    by anything else (pytest's capture, a host application) are left alone.
    """

    root = logging.getLogger()
    root.setLevel(_level(level))
    for existing in root.handlers[:]:
        if getattr(existing, "_site_search_handler", False):
            root.removeHandler(existing)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(JsonFormatter() if json_output else logging.Formatter(TEXT_FORMAT))
    handler._site_search_handler = True  # type: ignore[attr-defined]
    root.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    for name, logger_level in (logger_levels or {}).items():
        logging.getLogger(name).setLevel(_level(logger_level))
    return handler


def _level(name: str) -> int:
    resolved = getattr(logging, name.upper(), None)
    return resolved if isinstance(resolved, int) else logging.INFO
