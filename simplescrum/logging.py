"""
SimpleScrum Structured Logging

Session and scope identifiers (owner, project, sprint) travel in a context
variable and are stamped onto every record; the JSON formatter also emits the
``extra=`` fields services attach and masks password and token values.
"""

import json
import logging
import os
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Dict, Generator, Optional


STANDARD_FIELDS = ("session_id", "owner_id", "project_id", "sprint_id")

_RESERVED_LOG_RECORD_ATTRS = set(
    logging.LogRecord(
        name="",
        level=logging.INFO,
        pathname="",
        lineno=0,
        msg="",
        args=(),
        exc_info=None,
    ).__dict__.keys()
)
_RESERVED_LOG_RECORD_ATTRS.update({"asctime", "message"})

_REDACTED = "[REDACTED]"
_SECRET_KEY_MARKERS = ("token", "secret", "password", "passwd", "credential")

# CLI exit codes
EXIT_RUNTIME_ERROR = 1
EXIT_VALIDATION_ERROR = 2
EXIT_CONFIG_ERROR = 3


def _redact(key: str, value: Any) -> Any:
    if any(marker in (key or "").lower() for marker in _SECRET_KEY_MARKERS):
        return _REDACTED
    if isinstance(value, dict):
        return {k: _redact(str(k), v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_redact(key, v) for v in value]
    return value


_LOG_CONTEXT: ContextVar[Dict[str, Any]] = ContextVar("SIMPLESCRUM_LOG_CONTEXT", default={})


def get_log_context() -> Dict[str, Any]:
    return dict(_LOG_CONTEXT.get() or {})


@contextmanager
def log_context(**fields: Any) -> Generator[None, None, None]:
    """Add ``fields`` to every record logged inside the block."""
    token = _LOG_CONTEXT.set({**get_log_context(), **{k: v for k, v in fields.items() if v is not None}})
    try:
        yield
    finally:
        _LOG_CONTEXT.reset(token)


class ContextFilter(logging.Filter):
    """Copies the log context onto records and defaults missing scope fields to ``-``."""

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in get_log_context().items():
            if key not in _RESERVED_LOG_RECORD_ATTRS and not hasattr(record, key):
                setattr(record, key, value)
        for key in STANDARD_FIELDS:
            if not hasattr(record, key):
                setattr(record, key, "-")
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per record, including every ``extra=`` field."""

    def format(self, record: logging.LogRecord) -> str:
        data: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key not in _RESERVED_LOG_RECORD_ATTRS and key not in data:
                data[key] = value
        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)
        return json.dumps({k: _redact(k, v) for k, v in data.items()}, default=str)


def setup_logging(level: Optional[str] = None, json_output: bool = False) -> logging.Logger:
    """
    Configure the root logger.

    Args:
        level: Log level (default: SIMPLESCRUM_LOG_LEVEL or INFO)
        json_output: Emit JSON lines instead of text
    """
    resolved_level = level or os.environ.get("SIMPLESCRUM_LOG_LEVEL") or "INFO"

    handler = logging.StreamHandler()
    handler.addFilter(ContextFilter())
    if json_output:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s %(levelname)s %(name)s %(message)s "
                "session=%(session_id)s owner=%(owner_id)s "
                "project=%(project_id)s sprint=%(sprint_id)s"
            )
        )

    root = logging.getLogger()
    root.handlers = []
    root.setLevel(getattr(logging, str(resolved_level).upper(), logging.INFO))
    root.addHandler(handler)
    return logging.getLogger("simplescrum")


def get_logger(name: str = "simplescrum") -> logging.Logger:
    return logging.getLogger(name)


def init_cli_logging(level: Optional[str] = None, json_output: bool = False) -> logging.Logger:
    """CLI logging defaults to WARNING so command output stays readable."""
    return setup_logging(
        level or os.environ.get("SIMPLESCRUM_LOG_LEVEL") or "WARNING",
        json_output=json_output,
    )


def json_logging_from_env() -> bool:
    return os.environ.get("SIMPLESCRUM_LOG_JSON", "").lower() in ("1", "true", "yes")
