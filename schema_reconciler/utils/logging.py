"""
Structured JSON logging for Schema Reconciler.

Every record is written to stderr as one JSON object, so migration runs can
be followed by grepping a migration_id or a table name. stdout stays free
for the CLI's Rich or JSON output.

Levels used by the engine:
    DEBUG: every executed statement and per-table rebuild step
    INFO: run-level phases, created / dropped / rebuilt tables
    WARNING: rebuilds that discard all existing rows
    ERROR: aborted runs and rolled-back rebuilds

Examples:
    >>> from schema_reconciler.utils.logging import setup_logging, log_with_context
    >>> setup_logging(verbose=True)
    >>> log_with_context(
    ...     logging.getLogger("schema_reconciler.storage.migrations"),
    ...     logging.INFO,
    ...     "Rebuilding altered table events",
    ...     context={"table": "events", "added": ["magnitude"]},
    ...     migration_id="migrate-2025-11-02T08-30-45Z",
    ... )
"""

import json
import logging
import sys
from typing import Any

from schema_reconciler.utils.time import utc_timestamp


class JSONFormatter(logging.Formatter):
    """
    Render a LogRecord as a single-line JSON object.

    Keys: timestamp (UTC, 'Z' suffix), level, component (logger name),
    message, and when present context, migration_id and exception.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": utc_timestamp(),
            "level": record.levelname,
            "component": record.name,
            "message": record.getMessage(),
        }

        context = getattr(record, "context", None)
        if isinstance(context, dict):
            log_entry["context"] = context

        if hasattr(record, "migration_id"):
            log_entry["migration_id"] = record.migration_id

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        # Default values from PRAGMA table_info may be bytes or other scalars
        return json.dumps(log_entry, default=str)


def setup_logging(verbose: bool = False, quiet_logs: bool = False) -> None:
    """
    Install the JSON handler on the root logger.

    Any handlers already on the root logger are replaced, so calling this
    more than once never duplicates output.

    Args:
        verbose: Log at DEBUG, including every executed statement. Takes
                 precedence over quiet_logs.
        quiet_logs: Log at WARNING. The CLI uses this unless --verbose is
                    given, so logs do not interleave with its own output.
                    INFO otherwise.
    """
    if verbose:
        level = logging.DEBUG
    elif quiet_logs:
        level = logging.WARNING
    else:
        level = logging.INFO

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter())

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)


def get_logger(component: str) -> logging.Logger:
    """Return the logger for a component, e.g. "storage.catalog"."""
    return logging.getLogger(component)


def log_with_context(
    logger: logging.Logger,
    level: int,
    message: str,
    context: dict[str, Any] | None = None,
    migration_id: str | None = None,
) -> None:
    """
    Log message with structured fields attached through `extra`.

    Args:
        logger: Target logger
        level: logging.DEBUG, logging.INFO, ...
        message: Human-readable message
        context: Structured data such as table, phase or statement
        migration_id: Identifier of the run the record belongs to
    """
    extra = {}
    if context is not None:
        extra["context"] = context
    if migration_id is not None:
        extra["migration_id"] = migration_id

    logger.log(level, message, extra=extra or None)
