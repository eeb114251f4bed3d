"""Structured JSON logger for cloudimg.

Every log record is emitted as a single-line JSON object so upload and
cache decisions can be audited by a log pipeline without extra parsing.

Typical structured output::

    {"ts": "2026-10-19T12:00:00.123456+00:00", "level": "INFO",
     "logger": "cloudimg.client", "message": "asset uploaded",
     "op": "ingest", "identifier": "3f1c...", "public_id": "hero-3f1c"}

Usage::

    from cloudimg.observability import get_logger, log_fields

    log = get_logger("cloudimg.client")
    log.info("upload skipped", extra=log_fields(op="ingest", identifier="abc"))
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any


class StructuredFormatter(logging.Formatter):
    """Format log records as single-line JSON objects.

    The formatter produces a JSON object with the following guaranteed keys:

    * ``ts`` -- ISO-8601 UTC timestamp
    * ``level`` -- Python log level name (``DEBUG``, ``INFO``, ...)
    * ``logger`` -- Logger name
    * ``message`` -- Formatted log message

    Extra structured fields passed via ``extra={"extra_fields": {...}}``
    (see :func:`log_fields`) are merged into the top-level object.
    ``exc_info`` and ``stack_info`` are serialised when present.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        extra_fields: dict[str, Any] | None = getattr(
            record, "extra_fields", None
        )
        if extra_fields is not None:
            log_entry.update(extra_fields)

        if record.exc_info and record.exc_info[1] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)

        if record.stack_info:
            log_entry["stack_info"] = self.formatStack(record.stack_info)

        return json.dumps(log_entry, default=str)


def log_fields(**fields: Any) -> dict[str, Any]:
    """Wrap *fields* for the ``extra=`` argument of a logging call."""
    return {"extra_fields": fields}


# One handler per logger name so that ``get_logger`` is idempotent even
# when called from multiple threads/modules.
_configured_loggers: set[str] = set()


def get_logger(
    name: str = "cloudimg",
    *,
    level: int | str = logging.DEBUG,
    stream: Any | None = None,
) -> logging.Logger:
    """Get or create a structured JSON logger.

    Parameters
    ----------
    name:
        Logger name.  Defaults to ``"cloudimg"``.
    level:
        Minimum log level, as an ``int`` or a case-insensitive string.
        Defaults to ``DEBUG`` so that the *handler* is not the bottleneck;
        callers set the desired level on the logger after retrieval.
    stream:
        Output stream for the handler.  Defaults to ``sys.stderr``.

    Returns
    -------
    logging.Logger
        A logger with a :class:`StructuredFormatter` handler attached.
        Repeated calls with the same *name* return the same logger and do
        **not** add duplicate handlers.
    """
    logger = logging.getLogger(name)

    if name not in _configured_loggers:
        resolved_level = (
            logging.getLevelName(level.upper())
            if isinstance(level, str)
            else level
        )
        logger.setLevel(resolved_level)

        handler = logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(StructuredFormatter())
        logger.addHandler(handler)

        # Parent loggers (e.g. root) may have handlers of their own.
        logger.propagate = False

        _configured_loggers.add(name)

    return logger
