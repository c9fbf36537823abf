"""
Configuration for Schema Reconciler.

Key exports:
    - MigrationSettings: Pydantic settings model
    - load_settings: Load and validate a YAML settings file
    - resolve_settings: Merge a settings file with command-line overrides
    - read_schema_script: Read the desired-schema DDL file
"""

from .loader import load_settings, read_schema_script, resolve_settings
from .schema import MigrationSettings

__all__ = [
    "MigrationSettings",
    "load_settings",
    "read_schema_script",
    "resolve_settings",
]
