"""
Entry point for running Schema Reconciler as a module.

Enables execution via:
    python -m schema_reconciler [command] [options]

This is equivalent to running the installed CLI:
    schema-reconciler [command] [options]

Examples:
    python -m schema_reconciler --help
    python -m schema_reconciler migrate --dsn file:quakes.sqlite3 --schema schema.sql
    python -m schema_reconciler plan --format json
"""

from schema_reconciler.cli import app

if __name__ == "__main__":
    app()
