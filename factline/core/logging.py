"""Factline — Structured JSON Logging.

All loggers hang off the ``factline`` namespace and write one JSON object
per line to stdout. Context passed through ``extra=`` is lifted into the
line when its key is one of ``CONTEXT_FIELDS``.
"""

import json
import logging
import sys
from datetime import datetime, timezone

from factline.config import settings

ROOT_LOGGER = "factline"

CONTEXT_FIELDS = ("metric_id", "occurrence_id", "year", "duration_ms", "status_code")


class JSONFormatter(logging.Formatter):
    """One JSON line per record, stamped with the record's own UTC time."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(
            {key: getattr(record, key) for key in CONTEXT_FIELDS if hasattr(record, key)}
        )
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _configure_root() -> logging.Logger:
    root = logging.getLogger(ROOT_LOGGER)
    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JSONFormatter())
        root.addHandler(handler)
        root.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
    return root


def get_logger(name: str) -> logging.Logger:
    """Child of the ``factline`` logger; the shared handler is installed once."""
    _configure_root()
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
