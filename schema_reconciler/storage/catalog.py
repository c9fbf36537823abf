"""
Schema snapshot reader for SQLite catalogs.

Introspects a connection through sqlite_master and PRAGMA table_info and
produces Schema / TableColumn values. Reading a table's columns is a
separate call from reading the schema because it costs one PRAGMA query
per table; the migration planner only asks for the tables it compares.

Engine-internal objects (sqlite_sequence, sqlite_stat*, sqlite_autoindex_*)
are skipped. The engine creates and drops them implicitly, and they cannot
be created or dropped with DDL, so they never take part in a diff.

Example:
    >>> schema = read_schema(conn)
    >>> columns = populate_columns(conn, schema, "events")
    >>> columns["id"].is_primary_key
    True
"""

import logging
import sqlite3

from ..exceptions import CatalogReadError
from .models import Index, Schema, Table, TableColumn

logger = logging.getLogger(__name__)

INTERNAL_PREFIX = "sqlite_"


def quote_identifier(name: str) -> str:
    """
    Quote an identifier for inclusion in generated SQL.

    Example:
        >>> quote_identifier('a"b')
        '"a""b"'
    """
    return '"' + name.replace('"', '""') + '"'


def read_schema(conn: sqlite3.Connection) -> Schema:
    """
    Read tables and indices from the engine catalog.

    Args:
        conn: Open SQLite connection (live or reference)

    Returns:
        Schema with tables keyed by name (columns not yet populated) and
        indices in catalog order

    Raises:
        CatalogReadError: If the catalog query fails
    """
    try:
        rows = conn.execute(
            "SELECT type, name, tbl_name, sql FROM sqlite_master "
            "WHERE type IN ('table', 'index') ORDER BY rowid"
        ).fetchall()
    except sqlite3.Error as e:
        raise CatalogReadError(f"Failed to read schema catalog: {e}") from e

    schema = Schema()

    for object_type, name, table_name, create_sql in rows:
        if name.startswith(INTERNAL_PREFIX):
            continue

        if object_type == "table":
            schema.tables[table_name] = Table(name=name, create_statement=create_sql)
        elif object_type == "index":
            # Constraint-backed indices have no SQL and come back with the table
            if create_sql is None:
                continue
            schema.indices.append(
                Index(name=name, table_name=table_name, create_statement=create_sql)
            )

    logger.debug(
        f"Read schema snapshot: {len(schema.tables)} tables, "
        f"{len(schema.indices)} indices"
    )
    return schema


def read_columns(conn: sqlite3.Connection, table_name: str) -> dict[str, TableColumn]:
    """
    Read the declared columns of one table.

    PRAGMA table_info returns one row per column:
    (cid, name, type, notnull, dflt_value, pk). pk is the 1-based position
    within the primary key, so every member of a composite key is flagged.

    Args:
        conn: Open SQLite connection
        table_name: Table to introspect

    Returns:
        Columns keyed by name, in declaration order

    Raises:
        CatalogReadError: If the query fails or the table does not exist
    """
    try:
        rows = conn.execute(f"PRAGMA table_info({quote_identifier(table_name)})").fetchall()
    except sqlite3.Error as e:
        raise CatalogReadError(
            f"Failed to read columns of table {table_name}: {e}"
        ) from e

    # PRAGMA table_info returns no rows (not an error) for unknown tables
    if not rows:
        raise CatalogReadError(f"Table not found in catalog: {table_name}")

    columns = {}
    for _cid, name, declared_type, not_null, default_value, pk in rows:
        columns[name] = TableColumn(
            name=name,
            declared_type=declared_type,
            not_null=not_null == 1,
            default_value=default_value,
            is_primary_key=pk > 0,
        )

    return columns


def populate_columns(
    conn: sqlite3.Connection, schema: Schema, table_name: str
) -> dict[str, TableColumn]:
    """
    Read a table's columns and attach them to the snapshot's Table.

    Args:
        conn: Connection the snapshot was read from
        schema: Snapshot holding the table
        table_name: Table to populate

    Returns:
        The populated column mapping

    Raises:
        CatalogReadError: If the table is not part of the snapshot or the
                          column query fails
    """
    table = schema.tables.get(table_name)
    if table is None:
        raise CatalogReadError(f"Table not present in snapshot: {table_name}")

    table.columns = read_columns(conn, table_name)
    return table.columns
