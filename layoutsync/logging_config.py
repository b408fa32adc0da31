from __future__ import annotations

"""
JSON-lines logging for sessions and the relay.

Every record is tagged with the writer that produced it when a
:func:`writer_context` is active, so interleaved output of several writers in
one process (tests, the relay) stays attributable.
"""

import json
import logging
import os
from contextlib import contextmanager
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Iterator, List

REPO_ROOT = Path(__file__).resolve().parents[1]
DEFAULT_LOG_FILE = "layoutsync.log"
LOG_DIR_ENV = ("LAYOUTSYNC_LOG_DIR", "LOG_DIR")
MAX_LOG_BYTES = 5 * 1024 * 1024
LOG_BACKUPS = 5

_writer_id: ContextVar[str | None] = ContextVar("layoutsync_writer_id", default=None)

# Attributes every LogRecord carries; anything else came in through ``extra=``.
_STANDARD_ATTRS = frozenset(logging.makeLogRecord({}).__dict__) | {
    "message",
    "asctime",
    "taskName",
    "writer_id",
}


def _jsonable(value: Any) -> Any:
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return repr(value)
    return value


class StructuredJsonFormatter(logging.Formatter):
    """One JSON object per line: level, logger, message, writer and extras."""

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        payload: Dict[str, Any] = {
            "timestamp": created.isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        writer_id = getattr(record, "writer_id", None)
        if writer_id:
            payload["writer_id"] = writer_id
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        if record.stack_info:
            payload["stack"] = record.stack_info

        extra = {
            key: _jsonable(value)
            for key, value in vars(record).items()
            if key not in _STANDARD_ATTRS
        }
        if extra:
            payload["extra"] = extra
        return json.dumps(payload, ensure_ascii=True)


class WriterContextFilter(logging.Filter):
    """Stamp ``writer_id`` from the active :func:`writer_context`."""

    def filter(self, record: logging.LogRecord) -> bool:
        current = get_writer_id()
        if current:
            record.writer_id = current
        elif not hasattr(record, "writer_id"):
            record.writer_id = None
        return True


def set_writer_id(value: str | None) -> Token:
    return _writer_id.set(value)


def get_writer_id() -> str | None:
    return _writer_id.get()


def reset_writer_id(token: Token) -> None:
    try:
        _writer_id.reset(token)
    except (RuntimeError, ValueError):
        # token created in another context
        pass


@contextmanager
def writer_context(writer_id: str | None) -> Iterator[None]:
    """Tag every record logged inside the block with ``writer_id``."""
    token = set_writer_id(writer_id)
    try:
        yield
    finally:
        reset_writer_id(token)


def _absolute(path: Path) -> Path:
    path = path.expanduser()
    return (path if path.is_absolute() else REPO_ROOT / path).resolve()


def default_log_dir() -> Path:
    for name in LOG_DIR_ENV:
        override = os.getenv(name)
        if override:
            return _absolute(Path(override))
    return _absolute(Path("logs"))


def _level(value: str) -> int:
    level = logging.getLevelName(str(value).upper())
    return level if isinstance(level, int) else logging.INFO


def _handlers(log_path: Path) -> List[logging.Handler]:
    formatter = StructuredJsonFormatter()
    handlers: List[logging.Handler] = [
        RotatingFileHandler(
            str(log_path),
            maxBytes=MAX_LOG_BYTES,
            backupCount=LOG_BACKUPS,
            encoding="utf-8",
        ),
        logging.StreamHandler(),
    ]
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(WriterContextFilter())
    return handlers


def init_logging(
    log_dir: str | os.PathLike[str] | None = None,
    *,
    level: str = "INFO",
    filename: str = DEFAULT_LOG_FILE,
) -> Path:
    """Replace the root handlers with JSON file and stream output; returns the log path."""
    base = _absolute(Path(log_dir)) if log_dir else default_log_dir()
    base.mkdir(parents=True, exist_ok=True)
    log_path = base / filename

    root = logging.getLogger()
    root.setLevel(_level(level))
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    for handler in _handlers(log_path):
        root.addHandler(handler)

    os.environ.setdefault("LAYOUTSYNC_LOG_FILE", str(log_path))
    return log_path


__all__ = [
    "StructuredJsonFormatter",
    "WriterContextFilter",
    "default_log_dir",
    "get_writer_id",
    "init_logging",
    "reset_writer_id",
    "set_writer_id",
    "writer_context",
]
