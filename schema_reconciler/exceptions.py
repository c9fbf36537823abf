"""
Exception hierarchy for Schema Reconciler.

Errors raised by the reconciler, grouped by the stage that failed.

Every error raised by the migration engine is terminal for the run: the
engine never logs-and-continues. The CLI maps each branch of the hierarchy
to a distinct non-zero exit code.

Exception Hierarchy:
    SchemaReconcilerError (base)
    ├── ConfigurationError
    │   ├── ConfigFileNotFoundError
    │   └── ConfigValidationError
    ├── DatabaseError
    │   ├── DatabaseConnectionError
    │   └── CatalogReadError
    ├── ReferenceSchemaError
    └── MigrationError
        ├── DDLExecutionError
        ├── TableRebuildError
        └── ForeignKeyViolationError

Usage:
    from schema_reconciler.exceptions import MigrationError

    try:
        migrate(conn, script)
    except MigrationError as e:
        logger.error(f"Migration aborted: {e}")
        sys.exit(4)
"""

from typing import Any


class SchemaReconcilerError(Exception):
    """
    Root of every error the reconciler raises.

    Catch this to handle any configuration, database, reference-schema or
    migration failure in one place.
    """

    pass


# ============================================================================
# Configuration Errors
# ============================================================================


class ConfigurationError(SchemaReconcilerError):
    """
    Settings or the schema script could not be loaded.

    The CLI exits with code 1.
    """

    pass


class ConfigFileNotFoundError(ConfigurationError):
    """
    The settings file or schema script is missing.

    Example:
        raise ConfigFileNotFoundError("Schema file not found: ./schema.sql")
    """

    pass


class ConfigValidationError(ConfigurationError):
    """
    Settings failed pydantic validation.

    The message names the offending field.

    Example:
        raise ConfigValidationError("Field 'dsn' cannot be empty")
    """

    pass


# ============================================================================
# Database Errors
# ============================================================================


class DatabaseError(SchemaReconcilerError):
    """
    The live database could not be opened or inspected.

    The CLI exits with code 2.
    """

    pass


class DatabaseConnectionError(DatabaseError):
    """
    The live database could not be opened.

    Example:
        raise DatabaseConnectionError("unable to open database file: /ro/db.sqlite3")
    """

    pass


class CatalogReadError(DatabaseError):
    """
    The engine catalog (sqlite_master / PRAGMA table_info) could not be read.

    Without a trustworthy view of the live schema the process cannot
    continue, so this error is always fatal.
    """

    pass


# ============================================================================
# Reference Schema Errors
# ============================================================================


class ReferenceSchemaError(SchemaReconcilerError):
    """
    The desired-schema script failed to execute against the in-memory database.

    Raised before the live database is touched, so a malformed script is
    never partially applied. Should result in exit code 3.
    """

    pass


# ============================================================================
# Migration Errors
# ============================================================================


class MigrationError(SchemaReconcilerError):
    """
    Base class for failures while applying a migration to the live database.

    Attributes:
        phase: Name of the last migration phase reached before the failure
               (see storage.migrations.MigrationPhase), or None if unknown.
    """

    def __init__(self, message: str, phase: str | None = None):
        super().__init__(message)
        self.phase = phase


class DDLExecutionError(MigrationError):
    """
    A DDL or data-copy statement failed against the live database.

    The offending statement is kept for diagnosis.

    Example:
        raise DDLExecutionError("no such table: legacy", statement="DROP TABLE legacy")
    """

    def __init__(self, message: str, statement: str, phase: str | None = None):
        super().__init__(f"{message}: {statement}", phase=phase)
        self.statement = statement


class TableRebuildError(MigrationError):
    """
    One step of the rebuild protocol failed for a single altered table.

    The table's transaction has been rolled back when this is raised; tables
    committed earlier in the same run stay migrated unless atomic mode is on.
    """

    def __init__(self, message: str, table_name: str, phase: str | None = None):
        super().__init__(message, phase=phase)
        self.table_name = table_name


class ForeignKeyViolationError(MigrationError):
    """
    PRAGMA foreign_key_check reported violations after a table rebuild.

    Attributes:
        violations: Raw rows returned by the check
                    (table, rowid, referenced table, foreign key index).
    """

    def __init__(
        self,
        message: str,
        violations: list[tuple[Any, ...]],
        phase: str | None = None,
    ):
        super().__init__(message, phase=phase)
        self.violations = violations
