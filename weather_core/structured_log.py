from __future__ import annotations

import json
import logging
import os
import threading
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict

logger = logging.getLogger("weather_markov.events")

LOG_FILE_NAME = "events.jsonl"

# Log rotation settings (configurable via environment)
MAX_LOG_BYTES = int(os.getenv("WEATHER_MARKOV_LOG_MAX_BYTES", 10 * 1024 * 1024))  # 10MB default
LOG_BACKUP_COUNT = int(os.getenv("WEATHER_MARKOV_LOG_BACKUP_COUNT", 5))

_file_handler: RotatingFileHandler | None = None
_handler_path: Path | None = None
_handler_lock = threading.Lock()


def get_log_dir() -> Path:
    """Directory for the JSONL event log (env override, default ./logs)."""
    return Path(os.getenv("WEATHER_MARKOV_LOG_DIR", "logs"))


def get_log_file() -> Path:
    return get_log_dir() / LOG_FILE_NAME


def jlog_enabled() -> bool:
    return os.getenv("WEATHER_MARKOV_JLOG", "1").lower() not in ("0", "false", "no")


def _get_file_handler() -> RotatingFileHandler:
    """Get or create the rotating file handler for the current log dir (caller holds the lock)."""
    global _file_handler, _handler_path
    log_file = get_log_file()
    if _file_handler is None or _handler_path != log_file:
        _close_handler()
        log_file.parent.mkdir(parents=True, exist_ok=True)
        _file_handler = RotatingFileHandler(
            str(log_file),
            maxBytes=MAX_LOG_BYTES,
            backupCount=LOG_BACKUP_COUNT,
            encoding="utf-8",
        )
        _handler_path = log_file
    return _file_handler


def _close_handler() -> None:
    global _file_handler, _handler_path
    if _file_handler is not None:
        _file_handler.close()
    _file_handler = None
    _handler_path = None


def reset_log_handler() -> None:
    """Close the cached handler; the next jlog() reopens at the current dir."""
    with _handler_lock:
        _close_handler()


def jlog(event: str, level: str = "INFO", **fields: Any) -> None:
    """
    Write a structured JSON log entry with automatic rotation.

    Args:
        event: Event name/type
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        **fields: Additional fields to include in the log entry
    """
    rec: Dict[str, Any] = {
        "ts": datetime.now(timezone.utc).isoformat(),
        "level": level,
        "event": event,
        **fields,
    }

    # Also echo concise line to the standard logger
    logger.log(logging.getLevelName(level.upper()), f"{event} | {fields}")

    if not jlog_enabled():
        return

    line = json.dumps(rec, default=str)
    with _handler_lock:
        handler = _get_file_handler()
        # Use the handler's stream directly for atomic writes
        handler.stream.write(line + "\n")
        handler.stream.flush()

        record = logging.LogRecord(
            name="weather_markov", level=logging.INFO, pathname="", lineno=0,
            msg=line, args=(), exc_info=None,
        )
        if handler.shouldRollover(record):
            handler.doRollover()


def read_recent_logs(count: int = 100, level: str | None = None) -> list[Dict[str, Any]]:
    """
    Read the most recent log entries.

    Args:
        count: Maximum number of entries to return
        level: Optional filter by log level

    Returns:
        List of log entries (most recent last)
    """
    entries: list[Dict[str, Any]] = []
    log_file = get_log_file()

    if not log_file.exists():
        return entries

    with log_file.open("r", encoding="utf-8") as f:
        lines = f.readlines()

    for line in reversed(lines):
        if len(entries) >= count:
            break
        try:
            entry = json.loads(line.strip())
        except json.JSONDecodeError:
            continue
        if level is None or entry.get("level") == level:
            entries.append(entry)

    return list(reversed(entries))
