"""
Tests for utils.console module - dual-mode CLI output utilities.

This module tests all console output functions to ensure:
- OutputMode class correctly manages format/quiet state
- All output functions (success, error, warning, info) work in all modes
- The spinner context manager is silent outside human mode
- Display functions (print_plan_table, print_schema_table,
  print_report_summary) adapt to modes
- JSON buffering and flushing works correctly in agent mode
"""

import json
from unittest.mock import patch

import pytest

from schema_reconciler.storage.migrations import (
    IndexChange,
    MigrationPlan,
    MigrationReport,
    TableAlteration,
)
from schema_reconciler.storage.models import Index, Schema, Table, TableColumn
from schema_reconciler.utils.console import (
    OutputMode,
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

# ========================================================================
# Fixtures
# ========================================================================


@pytest.fixture
def reset_output_mode():
    """Reset global output_mode to default state after each test."""
    original_format = output_mode.format
    original_quiet = output_mode.quiet
    output_mode._json_buffer.clear()

    yield

    # Restore original state
    output_mode.format = original_format
    output_mode.quiet = original_quiet
    output_mode._json_buffer.clear()


@pytest.fixture
def sample_plan():
    """Plan touching every kind of change."""
    return MigrationPlan(
        new_tables=["points"],
        dropped_tables=["legacy"],
        altered_tables=[
            TableAlteration(
                table_name="events",
                added_columns=["time"],
                removed_columns=["magnitude"],
                copy_columns=["id"],
            )
        ],
        indices_to_create=[
            IndexChange(
                "idx_points_lat", "points", "CREATE INDEX idx_points_lat ON points(lat)"
            )
        ],
    )


@pytest.fixture
def sample_schema():
    """Snapshot with populated columns."""
    columns = {
        "id": TableColumn("id", "INTEGER", is_primary_key=True),
        "time": TableColumn("time", "TEXT", not_null=True, default_value="'now'"),
    }
    return Schema(
        tables={
            "events": Table(
                name="events",
                create_statement="CREATE TABLE events (id INTEGER PRIMARY KEY, time TEXT)",
                columns=columns,
            )
        },
        indices=[
            Index("idx_events_time", "events", "CREATE INDEX idx_events_time ON events(time)")
        ],
    )


# ========================================================================
# Test OutputMode Class
# ========================================================================


class TestOutputMode:
    """Test OutputMode initialization and JSON buffering."""

    def test_default_initialization(self):
        """OutputMode should default to text format and not quiet."""
        mode = OutputMode()
        assert mode.format == "text"
        assert mode.quiet is False
        assert mode._json_buffer == {}

    def test_invalid_format_raises_error(self):
        """OutputMode should raise ValueError for invalid format."""
        with pytest.raises(ValueError) as exc_info:
            OutputMode(format_type="invalid")
        assert "Must be 'text' or 'json'" in str(exc_info.value)

    def test_is_human_and_is_agent(self):
        """is_human() and is_agent() should follow the format."""
        assert OutputMode("text").is_human()
        assert not OutputMode("text").is_agent()
        assert OutputMode("json").is_agent()
        assert not OutputMode("json").is_human()

    def test_flush_json_outputs_and_clears_buffer(self, capsys):
        """flush_json() should print the buffer as JSON and empty it."""
        mode = OutputMode(format_type="json")
        mode.add_json("status", "success")
        mode.add_json("tables", ["events"])

        mode.flush_json()

        captured = capsys.readouterr()
        assert json.loads(captured.out) == {"status": "success", "tables": ["events"]}
        assert mode._json_buffer == {}

    def test_flush_json_no_op_in_human_mode(self, capsys):
        """flush_json() should print nothing in human mode."""
        mode = OutputMode(format_type="text")
        mode.add_json("status", "success")

        mode.flush_json()

        assert capsys.readouterr().out == ""


# ========================================================================
# Test Output Functions
# ========================================================================


class TestMessageFunctions:
    """Test success(), error(), warning() and info()."""

    @patch("schema_reconciler.utils.console.console")
    def test_success_human_mode_prints_green_checkmark(
        self, mock_console, reset_output_mode
    ):
        """success() should print green checkmark in human mode."""
        output_mode.format = "text"
        output_mode.quiet = False

        success("Migration complete")

        call_args = mock_console.print.call_args[0][0]
        assert "[green]" in call_args
        assert "✓" in call_args
        assert "Migration complete" in call_args

    @patch("schema_reconciler.utils.console.console")
    def test_success_quiet_mode_silent(self, mock_console, reset_output_mode):
        """success() should print nothing in quiet mode."""
        output_mode.format = "text"
        output_mode.quiet = True

        success("Should not appear")

        mock_console.print.assert_not_called()

    def test_success_agent_mode_buffers_to_json(self, reset_output_mode):
        """success() should buffer to JSON in agent mode."""
        output_mode.format = "json"

        success("Migrated")

        assert output_mode._json_buffer["status"] == "success"
        assert output_mode._json_buffer["message"] == "Migrated"

    @patch("schema_reconciler.utils.console.console_err")
    def test_error_prints_to_stderr_even_when_quiet(
        self, mock_console_err, reset_output_mode
    ):
        """error() should always reach stderr in human mode."""
        output_mode.format = "text"
        output_mode.quiet = True

        error("Failed to open database")

        call_args = mock_console_err.print.call_args[0][0]
        assert "✗" in call_args
        assert "Failed to open database" in call_args

    def test_error_agent_mode_buffers_to_json(self, reset_output_mode):
        """error() should buffer to JSON in agent mode."""
        output_mode.format = "json"

        error("Schema file not found")

        assert output_mode._json_buffer["status"] == "error"
        assert output_mode._json_buffer["error"] == "Schema file not found"

    def test_warning_agent_mode_buffers_to_json(self, reset_output_mode):
        """warning() should buffer to JSON in agent mode."""
        output_mode.format = "json"

        warning("Table legacy and its rows will be dropped")

        assert output_mode._json_buffer["warning"] == (
            "Table legacy and its rows will be dropped"
        )

    @patch("schema_reconciler.utils.console.console")
    def test_info_quiet_mode_silent(self, mock_console, reset_output_mode):
        """info() should be silent in quiet mode."""
        output_mode.format = "text"
        output_mode.quiet = True

        info("Should not appear")

        mock_console.print.assert_not_called()


class TestSpinnerContextManager:
    """Test spinner() context manager."""

    @patch("schema_reconciler.utils.console.console")
    def test_spinner_human_mode_shows_status(self, mock_console, reset_output_mode):
        """spinner() should show Rich status in human mode."""
        output_mode.format = "text"
        output_mode.quiet = False

        with spinner("Migrating..."):
            pass

        call_args = mock_console.status.call_args[0][0]
        assert "Migrating..." in call_args
        assert mock_console.status.call_args[1]["spinner"] == "dots"

    def test_spinner_agent_mode_silent(self, capsys, reset_output_mode):
        """spinner() should yield None in agent mode."""
        output_mode.format = "json"

        with spinner("Migrating...") as status:
            assert status is None

        assert capsys.readouterr().out == ""


# ========================================================================
# Test Display Functions
# ========================================================================


class TestPrintPlanTable:
    """Test print_plan_table() function."""

    def test_agent_mode_buffers_plan(self, sample_plan, reset_output_mode):
        """print_plan_table() should buffer the plan dict in agent mode."""
        output_mode.format = "json"

        print_plan_table(sample_plan)

        plan = output_mode._json_buffer["plan"]
        assert plan["dropped_tables"] == ["legacy"]
        assert plan["altered_tables"][0]["removed_columns"] == ["magnitude"]

    @patch("schema_reconciler.utils.console.console")
    def test_human_mode_prints_table(self, mock_console, sample_plan, reset_output_mode):
        """print_plan_table() should print one Rich table in human mode."""
        output_mode.format = "text"
        output_mode.quiet = False

        print_plan_table(sample_plan)

        mock_console.print.assert_called_once()

    @patch("schema_reconciler.utils.console.console")
    def test_empty_plan_prints_up_to_date(self, mock_console, reset_output_mode):
        """print_plan_table() should say so when there is nothing to do."""
        output_mode.format = "text"
        output_mode.quiet = False

        print_plan_table(MigrationPlan())

        assert "nothing to do" in mock_console.print.call_args[0][0]


class TestPrintSchemaTable:
    """Test print_schema_table() function."""

    def test_agent_mode_buffers_columns(self, sample_schema, reset_output_mode):
        """print_schema_table() should buffer tables, columns and indices."""
        output_mode.format = "json"

        print_schema_table(sample_schema)

        events = output_mode._json_buffer["tables"]["events"]
        assert events["columns"]["time"] == {
            "type": "TEXT",
            "not_null": True,
            "default": "'now'",
            "primary_key": False,
        }
        assert events["indices"] == ["idx_events_time"]

    @patch("schema_reconciler.utils.console.console")
    def test_human_mode_prints_columns_and_indices(
        self, mock_console, sample_schema, reset_output_mode
    ):
        """print_schema_table() should print a column table and an index table."""
        output_mode.format = "text"
        output_mode.quiet = False

        print_schema_table(sample_schema)

        assert mock_console.print.call_count == 2


class TestPrintReportSummary:
    """Test print_report_summary() function."""

    def test_agent_mode_buffers_report(self, reset_output_mode):
        """print_report_summary() should buffer the report dict in agent mode."""
        output_mode.format = "json"
        report = MigrationReport(
            migration_id="migrate-2025-11-02T08-30-45Z",
            started_at="2025-11-02T08:30:45Z",
            tables_rebuilt=["events"],
        )

        print_report_summary(report)

        buffered = output_mode._json_buffer["report"]
        assert buffered["tables_rebuilt"] == ["events"]
        assert buffered["phase"] == "idle"

    @patch("schema_reconciler.utils.console.console")
    def test_unchanged_report_prints_up_to_date(self, mock_console, reset_output_mode):
        """print_report_summary() should report an unchanged database."""
        output_mode.format = "text"
        output_mode.quiet = False
        report = MigrationReport(
            migration_id="migrate-2025-11-02T08-30-45Z",
            started_at="2025-11-02T08:30:45Z",
        )

        print_report_summary(report)

        assert "already up to date" in mock_console.print.call_args[0][0]

    @patch("schema_reconciler.utils.console.console")
    def test_changed_report_prints_table(self, mock_console, reset_output_mode):
        """print_report_summary() should print a summary table after changes."""
        output_mode.format = "text"
        output_mode.quiet = False
        report = MigrationReport(
            migration_id="migrate-2025-11-02T08-30-45Z",
            started_at="2025-11-02T08:30:45Z",
            tables_created=["points"],
            statements=["CREATE TABLE points (id INTEGER)"],
        )

        print_report_summary(report)

        mock_console.print.assert_called_once()
