"""
Tests for storage/catalog.py - schema snapshot reader.

Tests cover:
- Table and index discovery through sqlite_master
- Exclusion of engine-internal objects and constraint-backed indices
- Column introspection through PRAGMA table_info
- Composite primary keys
- Identifier quoting
- Error paths (unknown tables, closed connections)
"""

import sqlite3

import pytest

from schema_reconciler.exceptions import CatalogReadError
from schema_reconciler.storage.catalog import (
    populate_columns,
    quote_identifier,
    read_columns,
    read_schema,
)

SCHEMA_SCRIPT = """
CREATE TABLE events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL DEFAULT 'quake',
    magnitude REAL
);
CREATE INDEX idx_events_name ON events(name);
CREATE TABLE points (
    station TEXT,
    time TEXT,
    lat REAL,
    PRIMARY KEY (station, time)
);
"""


@pytest.fixture
def conn(tmp_path):
    """Connection to a database holding the sample schema."""
    connection = sqlite3.connect(str(tmp_path / "catalog.sqlite3"))
    connection.executescript(SCHEMA_SCRIPT)
    connection.execute("INSERT INTO events (name) VALUES ('first')")
    connection.commit()
    yield connection
    connection.close()


# ============================================================================
# quote_identifier
# ============================================================================


def test_quote_identifier_wraps_in_double_quotes():
    """Test that identifiers are double-quoted."""
    assert quote_identifier("events") == '"events"'


def test_quote_identifier_escapes_embedded_quotes():
    """Test that embedded double quotes are doubled."""
    assert quote_identifier('weird "name"') == '"weird ""name"""'
    assert quote_identifier('a"b') == '"a""b"'


def test_quote_identifier_output_is_accepted_by_sqlite():
    """Test that a quoted name with embedded quotes creates and reads back the table."""
    name = 'a"b'
    conn = sqlite3.connect(":memory:")
    conn.execute(f"CREATE TABLE {quote_identifier(name)} (id INTEGER)")

    assert list(read_schema(conn).tables) == [name]
    assert list(read_columns(conn, name)) == ["id"]
    conn.close()


# ============================================================================
# read_schema
# ============================================================================


def test_read_schema_lists_user_tables(conn):
    """Test that user tables are keyed by name."""
    schema = read_schema(conn)

    assert schema.table_names() == {"events", "points"}


def test_read_schema_skips_internal_objects(conn):
    """Test that sqlite_sequence and autoindices are not part of the snapshot."""
    schema = read_schema(conn)

    assert "sqlite_sequence" not in schema.tables
    assert all(not index.name.startswith("sqlite_") for index in schema.indices)


def test_read_schema_keeps_create_statements_verbatim(conn):
    """Test that the stored CREATE statement is returned as written."""
    schema = read_schema(conn)

    statement = schema.tables["events"].create_statement
    assert statement.startswith("CREATE TABLE events (")
    assert "DEFAULT 'quake'" in statement


def test_read_schema_lists_indices(conn):
    """Test that explicit indices are returned with their table."""
    schema = read_schema(conn)

    assert len(schema.indices) == 1
    index = schema.indices[0]
    assert index.name == "idx_events_name"
    assert index.table_name == "events"
    assert index.create_statement == "CREATE INDEX idx_events_name ON events(name)"


def test_read_schema_does_not_read_columns(conn):
    """Test that columns are left empty until populated."""
    schema = read_schema(conn)

    assert schema.tables["events"].columns == {}


def test_read_schema_empty_database(tmp_path):
    """Test that an empty database yields an empty snapshot."""
    connection = sqlite3.connect(str(tmp_path / "empty.sqlite3"))
    try:
        schema = read_schema(connection)
    finally:
        connection.close()

    assert schema.tables == {}
    assert schema.indices == []


def test_read_schema_indices_for_table(conn):
    """Test that indices can be looked up per table."""
    schema = read_schema(conn)

    assert list(schema.indices_for_table("events")) == ["idx_events_name"]
    assert schema.indices_for_table("points") == {}


def test_read_schema_closed_connection_raises(tmp_path):
    """Test that a catalog query failure is wrapped in CatalogReadError."""
    connection = sqlite3.connect(str(tmp_path / "closed.sqlite3"))
    connection.close()

    with pytest.raises(CatalogReadError, match="Failed to read schema catalog"):
        read_schema(connection)


# ============================================================================
# read_columns / populate_columns
# ============================================================================


def test_read_columns_in_declaration_order(conn):
    """Test that columns come back in declaration order."""
    columns = read_columns(conn, "events")

    assert list(columns) == ["id", "name", "magnitude"]


def test_read_columns_attributes(conn):
    """Test that type, nullability, default and primary key are introspected."""
    columns = read_columns(conn, "events")

    assert columns["id"].declared_type == "INTEGER"
    assert columns["id"].is_primary_key
    assert columns["name"].not_null
    assert columns["name"].default_value == "'quake'"
    assert not columns["magnitude"].not_null
    assert columns["magnitude"].default_value is None
    assert not columns["magnitude"].is_primary_key


def test_read_columns_composite_primary_key(conn):
    """Test that every member of a composite primary key is flagged."""
    columns = read_columns(conn, "points")

    assert columns["station"].is_primary_key
    assert columns["time"].is_primary_key
    assert not columns["lat"].is_primary_key


def test_read_columns_unknown_table_raises(conn):
    """Test that an unknown table is reported instead of returning nothing."""
    with pytest.raises(CatalogReadError, match="missing"):
        read_columns(conn, "missing")


def test_populate_columns_attaches_to_table(conn):
    """Test that populate_columns fills the snapshot's Table."""
    schema = read_schema(conn)

    columns = populate_columns(conn, schema, "points")

    assert schema.tables["points"].columns is columns
    assert list(columns) == ["station", "time", "lat"]


def test_populate_columns_table_not_in_snapshot(conn):
    """Test that populating a table missing from the snapshot raises."""
    schema = read_schema(conn)

    with pytest.raises(CatalogReadError, match="not present in snapshot"):
        populate_columns(conn, schema, "legacy")
