"""Logging setup for the ``subjects`` tools.

Every line goes through secret redaction so the API token never reaches a terminal or a
log file. Structured context (the subject being combined, the fields of a fatal error)
is attached with :class:`LogContext` and rendered by both formatters: as a trailing
``key=value`` list in text mode and as a ``context`` object in JSON mode.
"""

from __future__ import annotations

import contextvars
import json
import logging
import time
from typing import Any

from subject_core.secrets import redact_string, redact_structure

LOG_FORMATS = ("text", "json")
TEXT_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
# Per-request chatter from the HTTP stack drowns out scrape progress.
QUIET_LOGGERS = ("urllib3",)

_CONFIGURED = False

_log_context: contextvars.ContextVar[dict[str, Any] | None] = contextvars.ContextVar(
    "subject_log_context", default=None
)


def get_log_context() -> dict[str, Any]:
    ctx = _log_context.get()
    return dict(ctx) if ctx else {}


def clear_log_context() -> None:
    _log_context.set(None)


class LogContext:
    """Add fields to every log line emitted inside the ``with`` block.

    Nested blocks see the union of fields; leaving a block restores the outer set.
    """

    def __init__(self, **fields: Any) -> None:
        self.fields = fields
        self._token: contextvars.Token | None = None

    def __enter__(self) -> LogContext:
        merged = get_log_context()
        merged.update(self.fields)
        self._token = _log_context.set(merged)
        return self

    def __exit__(self, *args: Any) -> None:
        if self._token is not None:
            _log_context.reset(self._token)
            self._token = None


def _context_suffix(context: dict[str, Any]) -> str:
    return " ".join(f"{key}={value}" for key, value in context.items())


def _render_message(record: logging.LogRecord) -> str:
    msg = redact_structure(record.msg)
    args = redact_structure(record.args)
    if not args:
        return str(msg)
    try:
        return str(msg) % args
    except (TypeError, ValueError):
        return str(msg)


class TextFormatter(logging.Formatter):
    def __init__(self) -> None:
        super().__init__(TEXT_FORMAT)
        self.converter = time.gmtime

    def format(self, record: logging.LogRecord) -> str:
        saved = record.msg, record.args
        record.msg, record.args = _render_message(record), None
        try:
            line = super().format(record)
        finally:
            record.msg, record.args = saved
        context = redact_structure(get_log_context())
        if context:
            line = f"{line} | {_context_suffix(context)}"
        return redact_string(line)


class JsonFormatter(logging.Formatter):
    def __init__(self) -> None:
        super().__init__()
        self.converter = time.gmtime

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%SZ"),
            "level": record.levelname,
            "logger": record.name,
            "message": redact_string(_render_message(record)),
        }
        context = get_log_context()
        if context:
            payload["context"] = redact_structure(context)
        if record.exc_info:
            payload["exc_info"] = redact_string(self.formatException(record.exc_info))
        return json.dumps(payload, ensure_ascii=False, default=str)


def _resolve_level(level: str | int | None) -> int:
    if isinstance(level, int):
        return level
    if level is None:
        return logging.INFO
    return logging._nameToLevel.get(str(level).upper(), logging.INFO)


def configure_logging(*, level: str | int | None = None, fmt: str = "text") -> None:
    """Install one stderr handler on the root logger; later calls are no-ops."""
    global _CONFIGURED
    if _CONFIGURED:
        return

    root = logging.getLogger()
    root.setLevel(_resolve_level(level))
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(JsonFormatter() if fmt.lower() == "json" else TextFormatter())
        root.addHandler(handler)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(logging.WARNING, root.level))

    _CONFIGURED = True


def add_logging_args(parser: Any) -> None:
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    parser.add_argument(
        "--log-format",
        default="text",
        choices=LOG_FORMATS,
        help="Logging format (default: text)",
    )
