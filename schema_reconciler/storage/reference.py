"""
Reference (desired) schema builder.

The desired schema is discovered by running the schema script against a
private in-memory SQLite database and reading the result back through the
same catalog reader used for the live database. No SQL parser is needed:
whatever the engine accepts is, by definition, the desired schema.

The in-memory database never touches durable storage and is discarded
when the ReferenceSchema is closed.

Example:
    >>> with build_reference(Path("schema.sql").read_text()) as reference:
    ...     reference.snapshot().table_names()
    {'events', 'points'}
"""

import logging
import sqlite3

from ..exceptions import ReferenceSchemaError
from .catalog import read_columns, read_schema
from .models import Schema, TableColumn

logger = logging.getLogger(__name__)


class ReferenceSchema:
    """
    Handle on a disposable in-memory database holding the desired schema.

    Attributes:
        connection: The private in-memory connection
    """

    def __init__(self, connection: sqlite3.Connection):
        self.connection = connection

    def snapshot(self) -> Schema:
        """Read a fresh snapshot of the desired schema."""
        return read_schema(self.connection)

    def columns(self, table_name: str) -> dict[str, TableColumn]:
        """Read the desired columns of one table."""
        return read_columns(self.connection, table_name)

    def close(self) -> None:
        self.connection.close()

    def __enter__(self) -> "ReferenceSchema":
        return self

    def __exit__(self, *args) -> None:
        self.close()


def build_reference(script: str) -> ReferenceSchema:
    """
    Materialize the desired schema in a throwaway in-memory database.

    Args:
        script: Schema-definition DDL (CREATE TABLE / CREATE INDEX statements)

    Returns:
        ReferenceSchema wrapping the populated in-memory database. The caller
        owns it and must close it (or use it as a context manager).

    Raises:
        ReferenceSchemaError: If the script is empty or any statement fails.
                              The live database has not been touched when
                              this is raised.
    """
    if not script or script.isspace():
        raise ReferenceSchemaError("Schema script is empty")

    connection = sqlite3.connect(":memory:")

    try:
        connection.executescript(script)
    except sqlite3.Error as e:
        connection.close()
        raise ReferenceSchemaError(f"Failed to apply schema script: {e}") from e

    reference = ReferenceSchema(connection)
    logger.debug(
        f"Built reference schema with {len(reference.snapshot().tables)} tables"
    )
    return reference
