#!/usr/bin/env python3
"""
Migrate the quakes database at service startup.

This script demonstrates how to:
- Load reconciler settings from YAML
- Preview the migration with plan_migration()
- Block on open_database() before serving anything
- Exit non-zero when the schema cannot be applied

Usage:
    python examples/code-examples/startup_migration.py [reconciler.config.yaml]
"""

import sys

from schema_reconciler import open_database, plan_migration
from schema_reconciler.config import read_schema_script, resolve_settings
from schema_reconciler.exceptions import SchemaReconcilerError
from schema_reconciler.storage.db import connect
from schema_reconciler.utils.logging import setup_logging


def preview(settings):
    """Print what the startup migration is about to do."""
    conn = connect(settings.dsn)
    try:
        plan = plan_migration(conn, read_schema_script(settings.schema_path))
    finally:
        conn.close()

    if plan.is_empty:
        print("✓ Schema is up to date")
        return

    for name in plan.new_tables:
        print(f"  + create {name}")
    for name in plan.dropped_tables:
        print(f"  - drop {name} (rows are lost)")
    for alteration in plan.altered_tables:
        print(
            f"  ~ rebuild {alteration.table_name}, "
            f"keeping {', '.join(alteration.copy_columns) or 'no columns'}"
        )


def main():
    config_path = sys.argv[1] if len(sys.argv) > 1 else "examples/reconciler.config.yaml"
    setup_logging()

    try:
        settings = resolve_settings(config_path)
        preview(settings)
        conn = open_database(settings)
    except SchemaReconcilerError as e:
        print(f"✗ Startup migration failed: {e}", file=sys.stderr)
        sys.exit(1)

    count = conn.execute("SELECT COUNT(*) FROM entries").fetchone()[0]
    print(f"✓ Database ready with {count} entries")
    conn.close()


if __name__ == "__main__":
    main()
