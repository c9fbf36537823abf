"""
UTC time helpers for migration reports and log records.

Timestamps are always timezone-aware UTC and rendered with a 'Z' suffix.

Examples:
    >>> utc_timestamp()
    '2025-11-02T08:30:45Z'
    >>> migration_id_from_timestamp()
    'migrate-2025-11-02T08-30-45Z'
"""

from datetime import UTC, datetime


def utc_now() -> datetime:
    """Current time as an aware datetime in UTC."""
    return datetime.now(UTC)


def utc_timestamp() -> str:
    """
    Current time as YYYY-MM-DDTHH:MM:SSZ.

    Used for MigrationReport.started_at / finished_at and the timestamp
    field of JSON log records.
    """
    return utc_now().strftime("%Y-%m-%dT%H:%M:%SZ")


def migration_id_from_timestamp(dt: datetime | None = None) -> str:
    """
    Identifier of one migration run: migrate-YYYY-MM-DDTHH-MM-SSZ.

    Hyphens replace the colons of the time part so the id can be used
    unquoted in shell greps and file names, and ids sort chronologically.

    Args:
        dt: Aware datetime to format (default: utc_now())

    Raises:
        ValueError: If dt has no tzinfo

    Example:
        >>> migration_id_from_timestamp(datetime(2025, 11, 2, 8, 30, 45, tzinfo=UTC))
        'migrate-2025-11-02T08-30-45Z'
    """
    if dt is None:
        dt = utc_now()

    if dt.tzinfo is None:
        raise ValueError(
            f"Migration ids need a timezone-aware datetime, got naive {dt.isoformat()}"
        )

    return dt.strftime("migrate-%Y-%m-%dT%H-%M-%SZ")
