"""Process-wide logging for the lock daemon and tools."""

from __future__ import annotations

import json
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

__all__ = ["JsonFormatter", "setup_logging"]

LOG_FILE_NAME = "lockd.log"


def _json_payload(record: logging.LogRecord, formatter: logging.Formatter) -> str:
    base = {
        "time": formatter.formatTime(record),
        "level": record.levelname,
        "logger": record.name,
        "msg": record.getMessage(),
    }
    extra = getattr(record, "extra", None)
    if isinstance(extra, dict):
        base.update(extra)
    if record.exc_info:
        base["exc"] = formatter.formatException(record.exc_info)
    return json.dumps(base, ensure_ascii=False)


class JsonFormatter(logging.Formatter):
    """One JSON object per line, for the rotating log file."""

    def format(self, record: logging.LogRecord) -> str:
        return _json_payload(record, self)


def setup_logging(
    logs_dir: Optional[Path] = None,
    level: str = "INFO",
    *,
    max_bytes: int = 5_000_000,
    backup_count: int = 3,
) -> Optional[Path]:
    """Configure the ``physlock`` logger tree.

    Messages go to stderr in plain text and, when ``logs_dir`` is given, to a
    rotating JSON log file whose path is returned.
    """

    numeric_level = getattr(logging, (level or "INFO").upper(), logging.INFO)
    logger = logging.getLogger("physlock")
    logger.setLevel(numeric_level)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = False

    console = logging.StreamHandler()
    console.setLevel(numeric_level)
    console.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    logger.addHandler(console)

    if logs_dir is None:
        return None
    logs_dir = Path(logs_dir)
    logs_dir.mkdir(parents=True, exist_ok=True)
    logfile = logs_dir / LOG_FILE_NAME
    handler = RotatingFileHandler(logfile, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")
    handler.setLevel(numeric_level)
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)
    return logfile
