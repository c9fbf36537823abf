"""
CLI entrypoint for Schema Reconciler.

Output is rendered in one of three ways:
- text: Rich spinners, plan and schema tables, colored status lines
- json: one JSON document per command on stdout, for scripts
- quiet: nothing but errors

Commands:
    migrate: Reconcile the live database with the schema script
    plan: Show what migrate would do, without changing anything
    inspect: Show the live tables, columns and indices
    validate: Check that the schema script executes cleanly

Exit codes:
    0: Success
    1: Configuration error (bad settings file, missing schema script)
    2: Database error (cannot open database or read its catalog)
    3: Reference schema error (schema script does not execute)
    4: Migration error (DDL, rebuild or foreign key check failed)

Examples:
    # Migrate the default database to ./schema.sql
    schema-reconciler migrate

    # Preview changes for a specific database
    schema-reconciler plan --dsn file:quakes.sqlite3 --schema schema.sql

    # Automation-friendly output
    schema-reconciler migrate --config reconciler.config.yaml --format json
"""

import logging
from importlib.metadata import PackageNotFoundError
from pathlib import Path

import typer
from rich.traceback import install as install_rich_traceback

from schema_reconciler.config.loader import read_schema_script, resolve_settings
from schema_reconciler.config.schema import MigrationSettings
from schema_reconciler.exceptions import (
    ConfigurationError,
    MigrationError,
    ReferenceSchemaError,
    SchemaReconcilerError,
)
from schema_reconciler.storage.catalog import populate_columns, read_schema
from schema_reconciler.storage.db import connect, migrate_database
from schema_reconciler.storage.differ import match_by_definition, match_by_name
from schema_reconciler.storage.migrations import plan_migration
from schema_reconciler.storage.reference import build_reference
from schema_reconciler.utils.console import (
    error,
    info,
    output_mode,
    print_plan_table,
    print_report_summary,
    print_schema_table,
    spinner,
    success,
    warning,
)
from schema_reconciler.utils.logging import setup_logging

# Rich tracebacks for unexpected crashes
install_rich_traceback(show_locals=False)

logger = logging.getLogger(__name__)

# Exit codes
EXIT_SUCCESS = 0
EXIT_CONFIG_ERROR = 1
EXIT_DB_ERROR = 2
EXIT_REFERENCE_ERROR = 3
EXIT_MIGRATION_ERROR = 4

app = typer.Typer(
    name="schema-reconciler",
    help="Reconcile a live SQLite database with a desired schema script",
    add_completion=False,
)

# Shared option declarations
CONFIG_OPTION = typer.Option(
    None,
    "--config",
    "-c",
    help="Path to YAML settings file (flags override its values)",
    dir_okay=False,
)
DSN_OPTION = typer.Option(
    None,
    "--dsn",
    help="Database connection string (default: file:quakes.sqlite3)",
)
SCHEMA_OPTION = typer.Option(
    None,
    "--schema",
    "-s",
    help="Path to the desired schema script (default: ./schema.sql)",
)
STRICT_OPTION = typer.Option(
    None,
    "--strict-columns/--no-strict-columns",
    help="Also rebuild tables whose same-named columns changed definition",
)
FORMAT_OPTION = typer.Option(
    "text",
    "--format",
    "-f",
    help="Output format: 'text' (human-friendly) or 'json' (machine-readable)",
)
QUIET_OPTION = typer.Option(False, "--quiet", "-q", help="Only print errors")
VERBOSE_OPTION = typer.Option(
    False, "--verbose", "-v", help="Enable debug logging (every executed statement)"
)


def _exit_code_for(exc: SchemaReconcilerError) -> int:
    """Map an application error to its exit code."""
    if isinstance(exc, ConfigurationError):
        return EXIT_CONFIG_ERROR
    if isinstance(exc, ReferenceSchemaError):
        return EXIT_REFERENCE_ERROR
    if isinstance(exc, MigrationError):
        return EXIT_MIGRATION_ERROR
    return EXIT_DB_ERROR


def _fail(message: str, exit_code: int) -> None:
    error(message)
    output_mode.flush_json()
    raise typer.Exit(exit_code)


def _prepare(
    format: str,
    quiet: bool,
    verbose: bool,
    config: Path | None,
    **overrides,
) -> MigrationSettings:
    """
    Apply output flags, configure logging and resolve settings.

    Exits with EXIT_CONFIG_ERROR if the output format or settings are invalid.
    """
    if format not in ("text", "json"):
        output_mode.format = "text"
        _fail(f"Invalid format: {format}. Must be 'text' or 'json'", EXIT_CONFIG_ERROR)

    output_mode.format = format
    output_mode.quiet = quiet

    try:
        settings = resolve_settings(config, **overrides)
    except ConfigurationError as e:
        setup_logging(verbose=verbose, quiet_logs=not verbose)
        _fail(str(e), EXIT_CONFIG_ERROR)

    # JSON logs go to stderr only on request so they never mix with Rich or JSON output
    debug = verbose or settings.debug
    setup_logging(verbose=debug, quiet_logs=not debug)
    return settings


@app.command("migrate")
def migrate_command(
    config: Path = CONFIG_OPTION,
    dsn: str = DSN_OPTION,
    schema: str = SCHEMA_OPTION,
    strict_columns: bool = STRICT_OPTION,
    atomic: bool = typer.Option(
        None,
        "--atomic/--per-table",
        help="Apply the whole migration in one transaction (default: one per rebuilt table)",
    ),
    format: str = FORMAT_OPTION,
    quiet: bool = QUIET_OPTION,
    verbose: bool = VERBOSE_OPTION,
):
    """
    Reconcile the live database with the desired schema script.

    This command will:
    1. Build the desired schema in an in-memory database
    2. Drop tables missing from the script, create new ones
    3. Rebuild tables whose columns changed, keeping shared columns' data
    4. Create or drop indices so the index set matches the script

    A failure aborts the run with a non-zero exit code. Each rebuilt table
    is committed on its own unless --atomic is given.

    Examples:
      schema-reconciler migrate --dsn file:quakes.sqlite3 --schema schema.sql
      schema-reconciler migrate --config reconciler.config.yaml --atomic
    """
    settings = _prepare(
        format,
        quiet,
        verbose,
        config,
        dsn=dsn,
        schema_path=schema,
        strict_columns=strict_columns,
        atomic=atomic,
    )

    try:
        conn = connect(settings.dsn)
    except SchemaReconcilerError as e:
        _fail(str(e), _exit_code_for(e))

    try:
        with spinner(f"Migrating {settings.dsn}..."):
            report = migrate_database(conn, settings)
    except SchemaReconcilerError as e:
        logger.debug("Migration failed", exc_info=True)
        _fail(f"Migration failed: {e}", _exit_code_for(e))
    finally:
        conn.close()

    print_report_summary(report)
    success(
        f"Migrated {settings.dsn} to {settings.schema_path} "
        f"({report.rebuild_count} tables rebuilt)"
    )
    output_mode.flush_json()
    raise typer.Exit(EXIT_SUCCESS)


@app.command("plan")
def plan_command(
    config: Path = CONFIG_OPTION,
    dsn: str = DSN_OPTION,
    schema: str = SCHEMA_OPTION,
    strict_columns: bool = STRICT_OPTION,
    format: str = FORMAT_OPTION,
    quiet: bool = QUIET_OPTION,
    verbose: bool = VERBOSE_OPTION,
):
    """
    Show what migrate would change, without touching the database.

    Examples:
      schema-reconciler plan --dsn file:quakes.sqlite3 --schema schema.sql
      schema-reconciler plan --format json
    """
    settings = _prepare(
        format,
        quiet,
        verbose,
        config,
        dsn=dsn,
        schema_path=schema,
        strict_columns=strict_columns,
    )
    matcher = match_by_definition if settings.strict_columns else match_by_name

    try:
        script = read_schema_script(settings.schema_path)
        conn = connect(settings.dsn)
    except SchemaReconcilerError as e:
        _fail(str(e), _exit_code_for(e))

    try:
        with spinner("Computing migration plan..."):
            plan = plan_migration(conn, script, matcher=matcher)
    except SchemaReconcilerError as e:
        _fail(f"Planning failed: {e}", _exit_code_for(e))
    finally:
        conn.close()

    print_plan_table(plan)
    for alteration in plan.altered_tables:
        if alteration.removed_columns:
            warning(
                f"Rebuilding {alteration.table_name} discards column(s): "
                f"{', '.join(alteration.removed_columns)}"
            )
    for table_name in plan.dropped_tables:
        warning(f"Table {table_name} and its rows will be dropped")

    output_mode.flush_json()
    raise typer.Exit(EXIT_SUCCESS)


@app.command("inspect")
def inspect_command(
    config: Path = CONFIG_OPTION,
    dsn: str = DSN_OPTION,
    format: str = FORMAT_OPTION,
    quiet: bool = QUIET_OPTION,
    verbose: bool = VERBOSE_OPTION,
):
    """
    Show the live tables, columns and indices.

    Examples:
      schema-reconciler inspect --dsn file:quakes.sqlite3
    """
    settings = _prepare(format, quiet, verbose, config, dsn=dsn)

    try:
        conn = connect(settings.dsn)
    except SchemaReconcilerError as e:
        _fail(str(e), _exit_code_for(e))

    try:
        schema = read_schema(conn)
        for table_name in schema.tables:
            populate_columns(conn, schema, table_name)
    except SchemaReconcilerError as e:
        _fail(str(e), _exit_code_for(e))
    finally:
        conn.close()

    if not schema.tables:
        info(f"No tables in {settings.dsn}")

    print_schema_table(schema)
    output_mode.flush_json()
    raise typer.Exit(EXIT_SUCCESS)


@app.command("validate")
def validate_command(
    config: Path = CONFIG_OPTION,
    schema: str = SCHEMA_OPTION,
    format: str = FORMAT_OPTION,
    quiet: bool = QUIET_OPTION,
    verbose: bool = VERBOSE_OPTION,
):
    """
    Check that the schema script executes cleanly in an in-memory database.

    Never opens the live database.

    Examples:
      schema-reconciler validate --schema schema.sql
    """
    settings = _prepare(format, quiet, verbose, config, schema_path=schema)

    try:
        script = read_schema_script(settings.schema_path)
        with build_reference(script) as reference:
            desired = reference.snapshot()
    except SchemaReconcilerError as e:
        _fail(f"Schema script is invalid: {e}", _exit_code_for(e))

    if output_mode.is_agent():
        output_mode.add_json("tables", sorted(desired.tables))
        output_mode.add_json("indices", [index.name for index in desired.indices])

    success(
        f"Schema script is valid: {len(desired.tables)} tables, "
        f"{len(desired.indices)} indices"
    )
    output_mode.flush_json()
    raise typer.Exit(EXIT_SUCCESS)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and exit",
    ),
):
    """
    Schema Reconciler - keep a SQLite database in step with a schema script.

    Use 'schema-reconciler COMMAND --help' for detailed command documentation.
    """
    if version:
        from rich.console import Console

        console = Console()
        console.print(
            f"[bold cyan]schema-reconciler[/bold cyan] version {_read_version()}"
        )
        raise typer.Exit(EXIT_SUCCESS)

    if ctx.invoked_subcommand is None:
        from rich.console import Console

        console = Console()
        console.print("[yellow]Use --help to see available commands[/yellow]")
        console.print()
        console.print("Commands:")
        console.print("  migrate   Reconcile the database with the schema script")
        console.print("  plan      Show what migrate would change")
        console.print("  inspect   Show the live schema")
        console.print("  validate  Check the schema script")


def _read_version() -> str:
    """Installed distribution version, falling back to __version__ in a source tree."""
    from importlib.metadata import version

    try:
        return version("schema-reconciler")
    except PackageNotFoundError:
        from schema_reconciler import __version__

        return __version__


if __name__ == "__main__":
    app()
