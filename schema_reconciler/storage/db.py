"""
SQLite connection setup and the startup migration entry point.

The hosting process calls open_database() exactly once, before it starts
serving requests. The call blocks until the live database matches the
desired schema script and then hands back the live connection, with
foreign key enforcement on, for the rest of the application to use.

Example usage:
    >>> from schema_reconciler.config.schema import MigrationSettings
    >>> from schema_reconciler.storage.db import open_database
    >>> conn = open_database(MigrationSettings(dsn="file:quakes.sqlite3"))
    # Any failure raises; the caller exits non-zero before listening

Note:
    The connection keeps sqlite3's default (legacy) transaction handling,
    which the migration engine relies on to open transactions explicitly.
"""

import logging
import sqlite3
from pathlib import Path

from ..config.loader import read_schema_script
from ..config.schema import MigrationSettings
from ..exceptions import DatabaseConnectionError
from .differ import match_by_definition, match_by_name
from .migrations import MigrationReport, migrate

logger = logging.getLogger(__name__)

MEMORY_DSN = ":memory:"


def connect(dsn: str) -> sqlite3.Connection:
    """
    Open a connection to the live database.

    DSNs starting with "file:" are opened as SQLite URIs, so query
    parameters such as "?mode=ro" or "?cache=shared" are honored. Anything
    else is a filesystem path whose parent directory is created if needed.

    Args:
        dsn: Connection string or path

    Returns:
        Open sqlite3.Connection

    Raises:
        DatabaseConnectionError: If the database cannot be opened

    Example:
        >>> conn = connect("file:quakes.sqlite3")
        >>> conn = connect("./data/quakes.sqlite3")  # creates ./data
    """
    try:
        if dsn.startswith("file:"):
            conn = sqlite3.connect(dsn, uri=True)
        else:
            if dsn != MEMORY_DSN:
                Path(dsn).parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(dsn)

        # sqlite3.connect() is lazy; touch the file so bad paths fail here
        conn.execute("SELECT 1 FROM sqlite_master LIMIT 1")
    except (sqlite3.Error, OSError) as e:
        raise DatabaseConnectionError(f"Failed to open database {dsn}: {e}") from e

    logger.debug(f"Opened database {dsn}")
    return conn


def get_foreign_keys_enabled(conn: sqlite3.Connection) -> bool:
    """Return True if foreign key enforcement is on for this connection."""
    return conn.execute("PRAGMA foreign_keys").fetchone()[0] == 1


def migrate_database(
    conn: sqlite3.Connection, settings: MigrationSettings
) -> MigrationReport:
    """
    Read the configured schema script and migrate the connection to it.

    Args:
        conn: Live connection
        settings: Settings selecting the script, column matcher and atomicity

    Returns:
        MigrationReport from migrate()

    Raises:
        ConfigurationError: If the schema script cannot be read
        SchemaReconcilerError: Any migration failure
    """
    script = read_schema_script(settings.schema_path)
    matcher = match_by_definition if settings.strict_columns else match_by_name

    return migrate(conn, script, matcher=matcher, atomic=settings.atomic)


def open_database(settings: MigrationSettings) -> sqlite3.Connection:
    """
    Connect to the live database and migrate it to the desired schema.

    This is the single blocking startup call. It either returns a migrated
    connection ready to be handed to the rest of the application, or raises
    after closing the connection.

    Args:
        settings: Migration settings

    Returns:
        Migrated live connection with foreign keys enabled

    Raises:
        DatabaseConnectionError: If the database cannot be opened
        ConfigurationError: If the schema script cannot be read
        SchemaReconcilerError: Any migration failure
    """
    conn = connect(settings.dsn)

    try:
        report = migrate_database(conn, settings)
    except Exception:
        conn.close()
        raise

    logger.info(
        f"Database ready: {settings.dsn} "
        f"({len(report.statements)} statements, {report.rebuild_count} rebuilds)"
    )
    return conn
