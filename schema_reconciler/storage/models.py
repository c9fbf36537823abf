"""
In-memory structural snapshot of a SQLite database.

A Schema is a point-in-time view of either the live database or the
reference (desired) database. It is never cached across mutations: the
migration engine re-reads the catalog every time it needs a fresh view.

Key components:
- TableColumn: One row of PRAGMA table_info
- Table: A table's name, verbatim CREATE statement and (lazily) its columns
- Index: An index's name, owning table and verbatim CREATE statement
- Schema: Tables keyed by name plus indices in catalog order

Example:
    >>> from schema_reconciler.storage.catalog import read_schema
    >>> schema = read_schema(conn)
    >>> sorted(schema.table_names())
    ['events', 'points']
    >>> schema.indices_for_table("events")
    {'idx_events_time': Index(name='idx_events_time', ...)}
"""

from dataclasses import dataclass, field
from typing import Any


@dataclass
class TableColumn:
    """
    A single declared column of a table.

    Attributes:
        name: Column name
        declared_type: Raw declared type string (SQLite does not enforce it)
        not_null: True if the column carries a NOT NULL constraint
        default_value: Raw default expression text as stored by the engine, or None
        is_primary_key: True if the column is part of the primary key
    """

    name: str
    declared_type: str
    not_null: bool = False
    default_value: Any = None
    is_primary_key: bool = False


@dataclass
class Table:
    """
    A table as recorded in the engine catalog.

    The create statement is kept verbatim because the rebuild protocol
    substitutes the table name inside it rather than regenerating DDL.

    Attributes:
        name: Table name
        create_statement: CREATE TABLE text from sqlite_master.sql
        columns: Column definitions, empty until populated on demand
    """

    name: str
    create_statement: str
    columns: dict[str, TableColumn] = field(default_factory=dict)


@dataclass
class Index:
    """
    An explicitly created index.

    Attributes:
        name: Index name
        table_name: Name of the table the index belongs to
        create_statement: CREATE INDEX text from sqlite_master.sql
    """

    name: str
    table_name: str
    create_statement: str


@dataclass
class Schema:
    """
    One structural snapshot of a database.

    Attributes:
        tables: Tables keyed by name
        indices: Indices in catalog order
    """

    tables: dict[str, Table] = field(default_factory=dict)
    indices: list[Index] = field(default_factory=list)

    def table_names(self) -> set[str]:
        """Return the set of table names in this snapshot."""
        return set(self.tables)

    def indices_for_table(self, table_name: str) -> dict[str, Index]:
        """
        Return the indices owned by a table, keyed by index name.

        Args:
            table_name: Owning table name

        Returns:
            Name-keyed indices in catalog order (empty if the table has none
            or does not exist in this snapshot)
        """
        return {
            index.name: index
            for index in self.indices
            if index.table_name == table_name
        }
