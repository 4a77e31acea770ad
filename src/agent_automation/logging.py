"""JSON log output for the server, the CLI and background runs.

Every record becomes one JSON line. Context passed through ``extra=``
(``run_id``, ``workflow_id``, ``trigger`` ...) is nested under ``"extra"``.
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import IO, Any

# Attributes every LogRecord carries; anything else came from `extra=`.
_STANDARD_ATTRS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime"}

_QUIET_LOGGERS = ("httpx", "httpcore", "openai", "apscheduler", "uvicorn.access")


def _context(record: logging.LogRecord) -> dict[str, Any]:
    return {
        key: value
        for key, value in vars(record).items()
        if key not in _STANDARD_ATTRS and not key.startswith("_")
    }


class JsonFormatter(logging.Formatter):
    """Format records as JSON lines, optionally stamping `static_fields` on each."""

    def __init__(self, static_fields: Mapping[str, Any] | None = None) -> None:
        super().__init__()
        self.static_fields = dict(static_fields or {})

    def format(self, record: logging.LogRecord) -> str:  # noqa: A003
        entry: dict[str, Any] = dict(self.static_fields)
        entry.update(
            timestamp=datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            level=record.levelname,
            logger=record.name,
            message=record.getMessage(),
        )
        context = _context(record)
        if context:
            entry["extra"] = context
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            entry["stack"] = self.formatStack(record.stack_info)
        # Pydantic models, datetimes and paths end up in `extra`; fall back to str().
        return json.dumps(entry, ensure_ascii=False, default=str)


def configure_logging(
    level: str,
    *,
    stream: IO[str] | None = None,
    static_fields: Mapping[str, Any] | None = None,
) -> None:
    """Send all logging to one JSON handler at `level`.

    Existing root handlers are dropped so repeated calls (tests, ``dev``
    reloads) never duplicate output.
    """

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)

    handler = logging.StreamHandler(stream=stream or sys.stdout)
    handler.setFormatter(JsonFormatter(static_fields))
    root.addHandler(handler)
    root.setLevel(level.upper())

    quiet_level = max(root.level, logging.WARNING)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(quiet_level)
