"""
Configuration schema models for Schema Reconciler.

This module defines the Pydantic model for validating the optional
reconciler.config.yaml file. Every field can also be set from the command
line; CLI flags win over values from the file.

Models:
    MigrationSettings: Database location, schema script and engine options
"""

from pydantic import BaseModel, field_validator


class MigrationSettings(BaseModel):
    """
    Settings for one migration run.

    Attributes:
        dsn: SQLite connection string. "file:" URIs are opened in URI mode
             (e.g. "file:quakes.sqlite3?cache=shared"); anything else is
             treated as a filesystem path.
        schema_path: Path to the desired-schema DDL script
        strict_columns: Also rebuild tables whose same-named columns changed
                        type, nullability, default or primary-key membership.
                        Off by default: columns are compared by name only.
        atomic: Run the whole migration in one transaction instead of one
                transaction per rebuilt table
        debug: Enable debug logging (logs every executed statement)

    Example:
        dsn: "file:quakes.sqlite3"
        schema_path: "./schema.sql"
        strict_columns: false
        atomic: false
    """

    dsn: str = "file:quakes.sqlite3"
    schema_path: str = "./schema.sql"
    strict_columns: bool = False
    atomic: bool = False
    debug: bool = False

    @field_validator("dsn")
    @classmethod
    def validate_dsn(cls, v: str) -> str:
        """Validate dsn is non-empty."""
        if not v or v.isspace():
            raise ValueError("dsn cannot be empty")
        return v.strip()

    @field_validator("schema_path")
    @classmethod
    def validate_schema_path(cls, v: str) -> str:
        """Validate schema_path is non-empty."""
        if not v or v.isspace():
            raise ValueError("schema_path cannot be empty")
        return v.strip()
