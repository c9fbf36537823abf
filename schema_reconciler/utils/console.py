"""
Terminal output for the schema-reconciler CLI.

Each command prints through the helpers below and never writes to stdout
directly, so the same code serves three audiences:

- text (default): Rich tables, colored status lines and a spinner while the
  database is being migrated
- json (--format json): nothing is printed until the command finishes, then
  one JSON document is written to stdout for scripts and CI jobs
- quiet (--quiet): text mode minus everything except errors

Examples:
    >>> from schema_reconciler.utils.console import output_mode, spinner, success
    >>> output_mode.format = "text"
    >>> with spinner("Migrating file:quakes.sqlite3..."):
    ...     report = migrate(conn, script)
    >>> success("Migrated file:quakes.sqlite3")
"""

from __future__ import annotations

import json
import sys
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from rich import box
from rich.console import Console
from rich.table import Table

if TYPE_CHECKING:
    from schema_reconciler.storage.migrations import MigrationPlan, MigrationReport
    from schema_reconciler.storage.models import Schema

FORMATS = ("text", "json")


class OutputMode:
    """
    Current output format and verbosity, set once per command from CLI flags.

    In json mode, messages and results are collected in a buffer keyed by
    name ("status", "plan", "report", ...) and written by flush_json().
    """

    def __init__(self, format_type: str = "text", quiet: bool = False):
        if format_type not in FORMATS:
            raise ValueError(f"Invalid format: {format_type}. Must be 'text' or 'json'")

        self.format = format_type
        self.quiet = quiet
        self._json_buffer: dict[str, Any] = {}

    def is_human(self) -> bool:
        return self.format == "text"

    def is_agent(self) -> bool:
        return self.format == "json"

    def add_json(self, key: str, value: Any) -> None:
        """Store a value for the JSON document; a later call with the same key wins."""
        self._json_buffer[key] = value

    def flush_json(self) -> None:
        """Write the buffered JSON document to stdout and empty the buffer (json mode only)."""
        if self.is_agent() and self._json_buffer:
            json.dump(self._json_buffer, sys.stdout, indent=2, default=str)
            sys.stdout.write("\n")
            sys.stdout.flush()
            self._json_buffer.clear()


output_mode = OutputMode()

console = Console()
console_err = Console(stderr=True)


@contextmanager
def spinner(message: str):
    """Show a Rich status spinner around a slow step; yields None outside text mode."""
    if output_mode.is_human() and not output_mode.quiet:
        with console.status(f"[bold blue]{message}", spinner="dots") as status:
            yield status
    else:
        yield None


def success(message: str) -> None:
    """Report the command's successful outcome (green check in text mode)."""
    if output_mode.is_agent():
        output_mode.add_json("status", "success")
        output_mode.add_json("message", message)
    elif not output_mode.quiet:
        console.print(f"[green]✓[/green] {message}")


def error(message: str) -> None:
    """Report a failure. Printed to stderr in text mode, even when quiet."""
    if output_mode.is_agent():
        output_mode.add_json("status", "error")
        output_mode.add_json("error", message)
    else:
        console_err.print(f"[red]✗[/red] {message}", style="red")


def warning(message: str) -> None:
    """Report possible data loss or other caveats."""
    if output_mode.is_agent():
        output_mode.add_json("warning", message)
    elif not output_mode.quiet:
        console.print(f"[yellow]⚠[/yellow] {message}", style="yellow")


def info(message: str) -> None:
    """Print a neutral note; text mode only."""
    if output_mode.is_human() and not output_mode.quiet:
        console.print(f"[blue]ℹ[/blue] {message}")


def print_plan_table(plan: MigrationPlan) -> None:
    """
    Print the changes a migration would make.

    Human mode: One row per table or index change
    Agent mode: Buffer the plan as JSON under "plan"
    Quiet mode: Silent
    """
    if output_mode.is_agent():
        output_mode.add_json("plan", plan.to_dict())
        return

    if output_mode.quiet:
        return

    if plan.is_empty:
        console.print("[green]Schema is up to date, nothing to do[/green]")
        return

    table = Table(title="Migration Plan", box=box.ROUNDED)
    table.add_column("Action", style="bold", no_wrap=True)
    table.add_column("Object", style="cyan")
    table.add_column("Details", style="dim")

    for name in plan.dropped_tables:
        table.add_row("[red]drop table[/red]", name, "all rows are lost")

    for name in plan.new_tables:
        table.add_row("[green]create table[/green]", name, "")

    for alteration in plan.altered_tables:
        details = []
        if alteration.added_columns:
            details.append("+" + ", +".join(alteration.added_columns))
        if alteration.removed_columns:
            details.append("-" + ", -".join(alteration.removed_columns))
        if alteration.changed_columns:
            details.append("~" + ", ~".join(alteration.changed_columns))
        table.add_row(
            "[yellow]rebuild table[/yellow]", alteration.table_name, " ".join(details)
        )

    for index in plan.indices_to_drop:
        table.add_row("[red]drop index[/red]", index.name, f"on {index.table_name}")

    for index in plan.indices_to_create:
        table.add_row("[green]create index[/green]", index.name, f"on {index.table_name}")

    console.print(table)


def print_schema_table(schema: Schema) -> None:
    """
    Print tables, columns and indices of a snapshot.

    Columns must already be populated on the snapshot's tables.

    Human mode: One row per column
    Agent mode: Buffer the schema as JSON under "tables"
    Quiet mode: Silent
    """
    if output_mode.is_agent():
        output_mode.add_json(
            "tables",
            {
                name: {
                    "columns": {
                        column.name: {
                            "type": column.declared_type,
                            "not_null": column.not_null,
                            "default": column.default_value,
                            "primary_key": column.is_primary_key,
                        }
                        for column in table_def.columns.values()
                    },
                    "indices": list(schema.indices_for_table(name)),
                }
                for name, table_def in schema.tables.items()
            },
        )
        return

    if output_mode.quiet:
        return

    table = Table(title="Live Schema", box=box.ROUNDED)
    table.add_column("Table", style="cyan", no_wrap=True)
    table.add_column("Column", style="magenta")
    table.add_column("Type")
    table.add_column("Not Null", justify="center")
    table.add_column("Default")
    table.add_column("PK", justify="center")

    for name, table_def in schema.tables.items():
        for position, column in enumerate(table_def.columns.values()):
            table.add_row(
                name if position == 0 else "",
                column.name,
                column.declared_type,
                "✓" if column.not_null else "",
                "" if column.default_value is None else str(column.default_value),
                "✓" if column.is_primary_key else "",
            )

    console.print(table)

    if schema.indices:
        index_table = Table(title="Indices", box=box.ROUNDED)
        index_table.add_column("Index", style="cyan", no_wrap=True)
        index_table.add_column("Table", style="magenta")
        for index in schema.indices:
            index_table.add_row(index.name, index.table_name)
        console.print(index_table)


def print_report_summary(report: MigrationReport) -> None:
    """
    Print what a completed migration did.

    Human mode: Summary table of counts
    Agent mode: Buffer the full report as JSON under "report"
    Quiet mode: Silent
    """
    if output_mode.is_agent():
        output_mode.add_json("report", report.to_dict())
        return

    if output_mode.quiet:
        return

    if not report.changed:
        console.print("[green]Schema was already up to date[/green]")
        return

    table = Table(title="Migration Summary", box=box.ROUNDED)
    table.add_column("Change", style="cyan")
    table.add_column("Count", justify="right", style="green")
    table.add_column("Objects", style="dim")

    rows = [
        ("Tables created", report.tables_created),
        ("Tables dropped", report.tables_dropped),
        ("Tables rebuilt", report.tables_rebuilt),
        ("Indices created", report.indices_created),
        ("Indices dropped", report.indices_dropped),
    ]
    for label, names in rows:
        table.add_row(label, str(len(names)), ", ".join(names))

    console.print(table)
