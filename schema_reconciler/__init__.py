"""
Schema Reconciler - keep a live SQLite database in step with a schema script.

SQLite only supports table-level CREATE / DROP / RENAME, so column-level
changes are applied by rebuilding the table through a shadow copy. The
desired schema is a plain DDL script; nobody writes migrations by hand.

Key exports:
    - migrate: Reconcile a live connection with a schema script
    - plan_migration: Dry run describing what migrate would do
    - open_database: Startup entry point (connect + migrate)
    - MigrationSettings: Settings model
"""

from .config.schema import MigrationSettings
from .storage.db import open_database
from .storage.migrations import MigrationPlan, MigrationReport, migrate, plan_migration

__version__ = "0.1.0"

__all__ = [
    "MigrationPlan",
    "MigrationReport",
    "MigrationSettings",
    "migrate",
    "open_database",
    "plan_migration",
]
