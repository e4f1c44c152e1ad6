"""Logging helpers."""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_FILE_NAME = "roover.log"
CONSOLE_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
_RESERVED_RECORD_KEYS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime", "taskName"}


class JsonLogFormatter(logging.Formatter):
    """One JSON object per line; `extra=` fields land under ``context``."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, object] = {
            "timestamp": _utc_timestamp(record.created),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        context = {
            key: _json_safe(value)
            for key, value in vars(record).items()
            if key not in _RESERVED_RECORD_KEYS and not key.startswith("_")
        }
        if context:
            payload["context"] = context
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=True)


def _utc_timestamp(created: float) -> str:
    stamp = datetime.fromtimestamp(created, timezone.utc).isoformat()
    return stamp.replace("+00:00", "Z")


def _json_safe(value: object) -> object:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, (list, tuple)):
        return [_json_safe(item) for item in value]
    if isinstance(value, dict):
        return {str(key): _json_safe(item) for key, item in value.items()}
    return repr(value)


def resolve_level(level: str | int) -> int:
    """Map a level name or number to a logging level, defaulting to INFO."""
    if isinstance(level, int):
        return level
    numeric = logging.getLevelName(level.strip().upper())
    return numeric if isinstance(numeric, int) else logging.INFO


def resolve_log_path(log_dir: Path, log_file: Path | None = None) -> Path:
    """Return the log file path, creating its parent directory."""
    path = log_file if log_file is not None else log_dir / LOG_FILE_NAME
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def setup_logging(
    log_dir: Path,
    level: str | int = "INFO",
    max_bytes: int = 1_000_000,
    backup_count: int = 3,
    log_file: Path | None = None,
) -> None:
    """Route root logging to a rotating JSON file and to stderr.

    Stdout is left to the CLI's playback status lines.
    """
    file_handler = RotatingFileHandler(
        resolve_log_path(log_dir, log_file),
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    file_handler.setFormatter(JsonLogFormatter())
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))

    root_logger = logging.getLogger()
    root_logger.setLevel(resolve_level(level))
    root_logger.handlers.clear()
    for handler in (file_handler, console_handler):
        root_logger.addHandler(handler)
