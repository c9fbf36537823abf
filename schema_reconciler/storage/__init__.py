"""
SQLite schema introspection and migration.

Key modules:
    - models: Schema / Table / TableColumn / Index snapshots
    - catalog: Read snapshots from sqlite_master and PRAGMA table_info
    - differ: Name-keyed diff, intersection and column matchers
    - reference: Materialize the desired schema in memory
    - migrations: Plan and apply migrations (table rebuild protocol)
    - db: Connections and the startup entry point
"""
