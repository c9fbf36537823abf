"""
Schema reconciliation and online migration for SQLite databases.

SQLite has no general ALTER TABLE for dropping, retyping or re-constraining
columns, so column-level changes are applied with the table rebuild
procedure: create a shadow table from the desired CREATE statement, copy the
columns both versions share, drop the original, rename the shadow into
place and recreate the table's indices.

Migration Philosophy:
- The desired schema is a plain DDL script, materialized in memory and
  introspected (see storage.reference); nobody hand-writes migrations
- Tables and columns are compared by name only, unless a stricter
  ColumnMatcher is supplied
- Every altered table is rebuilt inside its own transaction; a failure
  rolls that table back and aborts the run
- Tables rebuilt earlier in the run stay migrated (no cross-table
  rollback) unless atomic=True, which wraps the whole run in one
  transaction with a savepoint per table
- Foreign key enforcement is off while the run mutates the database and
  is switched back on on every exit path, including aborts

State machine of one run:
    IDLE -> REFERENCE_BUILT -> TABLE_SET_RECONCILED
         -> per altered table: SHADOW_CREATED -> DATA_COPIED -> OLD_DROPPED
            -> RENAMED -> INDICES_RESTORED -> FK_CHECKED -> COMMITTED
         -> FOREIGN_KEYS_REENABLED -> DONE
    Any failure -> ABORTED (raised as a MigrationError subclass)

Example:
    >>> with sqlite3.connect("quakes.sqlite3") as conn:
    ...     report = migrate(conn, Path("schema.sql").read_text())
    >>> report.tables_rebuilt
    ['events']

See Also:
    storage.db.open_database() - startup entry point wrapping migrate()
"""

import logging
import re
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from enum import StrEnum

from ..exceptions import (
    DDLExecutionError,
    ForeignKeyViolationError,
    MigrationError,
    SchemaReconcilerError,
    TableRebuildError,
)
from ..utils.logging import log_with_context
from ..utils.time import migration_id_from_timestamp, utc_timestamp
from .catalog import populate_columns, quote_identifier, read_columns, read_schema
from .differ import ColumnMatcher, column_changes, diff, intersect, match_by_name
from .models import Index, Schema
from .reference import ReferenceSchema, build_reference

logger = logging.getLogger(__name__)

SHADOW_SUFFIX = "_new"

# CREATE [TEMP|TEMPORARY] TABLE [IF NOT EXISTS] [schema.]
CREATE_TABLE_PREFIX = re.compile(
    r"\s*CREATE\s+(?:TEMP(?:ORARY)?\s+)?TABLE\b\s*"
    r"(?:IF\s+NOT\s+EXISTS\b\s*)?"
    r"(?:(?:\"(?:[^\"]|\"\")*\"|`(?:[^`]|``)*`|\[[^\]]*\]|[\w$]+)\s*\.\s*)?",
    re.IGNORECASE,
)


class MigrationPhase(StrEnum):
    """Phases of one migration run."""

    IDLE = "idle"
    REFERENCE_BUILT = "reference_built"
    TABLE_SET_RECONCILED = "table_set_reconciled"
    SHADOW_CREATED = "shadow_created"
    DATA_COPIED = "data_copied"
    OLD_DROPPED = "old_dropped"
    RENAMED = "renamed"
    INDICES_RESTORED = "indices_restored"
    FK_CHECKED = "fk_checked"
    COMMITTED = "committed"
    FOREIGN_KEYS_REENABLED = "foreign_keys_reenabled"
    DONE = "done"
    ABORTED = "aborted"


@dataclass
class TableAlteration:
    """
    Column-level delta for a table present on both sides.

    Attributes:
        table_name: Table to rebuild
        added_columns: Columns only in the desired table
        removed_columns: Columns only in the live table (their data is lost)
        changed_columns: Same-named columns the matcher reported as different
        copy_columns: Columns whose data is carried over by the rebuild
    """

    table_name: str
    added_columns: list[str] = field(default_factory=list)
    removed_columns: list[str] = field(default_factory=list)
    changed_columns: list[str] = field(default_factory=list)
    copy_columns: list[str] = field(default_factory=list)


@dataclass
class IndexChange:
    """An index to create or drop on the live database."""

    name: str
    table_name: str
    create_statement: str


@dataclass
class MigrationPlan:
    """
    Read-only description of what migrate() would do.

    Attributes:
        new_tables: Tables to create from the desired schema
        dropped_tables: Live tables absent from the desired schema
        altered_tables: Tables to rebuild, in rebuild order
        indices_to_create: Indices created on new, rebuilt or surviving tables
        indices_to_drop: Live indices absent from the desired schema on
                         surviving tables, plus indices whose name moves to
                         another table (other indices of dropped or rebuilt
                         tables disappear with the old table)
    """

    new_tables: list[str] = field(default_factory=list)
    dropped_tables: list[str] = field(default_factory=list)
    altered_tables: list[TableAlteration] = field(default_factory=list)
    indices_to_create: list[IndexChange] = field(default_factory=list)
    indices_to_drop: list[IndexChange] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (
            self.new_tables
            or self.dropped_tables
            or self.altered_tables
            or self.indices_to_create
            or self.indices_to_drop
        )

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class MigrationReport:
    """
    Record of one completed migration run.

    Attributes:
        migration_id: Identifier used in log records of this run
        started_at: ISO 8601 UTC timestamp
        finished_at: ISO 8601 UTC timestamp, None until the run is done
        phase: Last phase reached
        tables_created: Tables created verbatim from the desired schema
        tables_dropped: Tables dropped from the live database
        tables_rebuilt: Tables rebuilt through a shadow table
        indices_created: Indices created (new, rebuilt and surviving tables)
        indices_dropped: Indices dropped from surviving tables
        statements: Every mutating statement executed, in order
    """

    migration_id: str
    started_at: str
    finished_at: str | None = None
    phase: MigrationPhase = MigrationPhase.IDLE
    tables_created: list[str] = field(default_factory=list)
    tables_dropped: list[str] = field(default_factory=list)
    tables_rebuilt: list[str] = field(default_factory=list)
    indices_created: list[str] = field(default_factory=list)
    indices_dropped: list[str] = field(default_factory=list)
    statements: list[str] = field(default_factory=list)

    @property
    def rebuild_count(self) -> int:
        return len(self.tables_rebuilt)

    @property
    def changed(self) -> bool:
        return bool(self.statements)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["phase"] = str(self.phase)
        return data


# ============================================================================
# Helpers
# ============================================================================


def shadow_table_name(table_name: str) -> str:
    """Name of the temporary table used while rebuilding table_name."""
    return table_name + SHADOW_SUFFIX


def rename_in_create_statement(
    create_statement: str, table_name: str, new_name: str
) -> str:
    """
    Substitute the table name inside a verbatim CREATE TABLE statement.

    The statement is treated as an opaque template with exactly one
    substitution point: the first occurrence of table_name as a whole
    identifier after the CREATE ... TABLE keywords (case-insensitive,
    surrounding quotes kept). No further DDL parsing is attempted.

    Args:
        create_statement: CREATE TABLE text from the desired schema
        table_name: Name currently in the statement
        new_name: Replacement name

    Returns:
        The statement with the first occurrence replaced

    Raises:
        TableRebuildError: If table_name does not occur in the statement

    Example:
        >>> rename_in_create_statement(
        ...     'CREATE TABLE events (id INTEGER PRIMARY KEY)', "events", "events_new"
        ... )
        'CREATE TABLE events_new (id INTEGER PRIMARY KEY)'
    """
    # Skip the keywords and schema qualifier so a table named "table" or
    # "temp" is not matched against them
    prefix = CREATE_TABLE_PREFIX.match(create_statement)
    start = prefix.end() if prefix else 0

    pattern = re.compile(
        r"(?<![\w$])([\"`\[]?)" + re.escape(table_name) + r"([\"`\]]?)(?![\w$])",
        re.IGNORECASE,
    )
    match = pattern.search(create_statement, start)
    if match is None:
        raise TableRebuildError(
            f"Table name {table_name} not found in its CREATE statement",
            table_name=table_name,
        )
    return (
        create_statement[: match.start()]
        + match.group(1)
        + new_name
        + match.group(2)
        + create_statement[match.end() :]
    )


def _execute(
    conn: sqlite3.Connection, statement: str, report: MigrationReport
) -> sqlite3.Cursor:
    """Execute one mutating statement, recording it on the report."""
    log_with_context(
        logger,
        logging.DEBUG,
        "Executing statement",
        context={"statement": statement, "phase": str(report.phase)},
        migration_id=report.migration_id,
    )
    try:
        cursor = conn.execute(statement)
    except sqlite3.Error as e:
        raise DDLExecutionError(
            str(e), statement=statement, phase=report.phase.value
        ) from e

    report.statements.append(statement)
    return cursor


def _advance(
    report: MigrationReport, phase: MigrationPhase, table_name: str | None = None
) -> None:
    report.phase = phase
    context = {"phase": str(phase)}
    if table_name is not None:
        context["table"] = table_name

    # Per-table rebuild steps are noisy; keep INFO for run-level phases
    level = logging.DEBUG if table_name is not None else logging.INFO
    log_with_context(
        logger,
        level,
        f"Migration phase: {phase}",
        context=context,
        migration_id=report.migration_id,
    )


@contextmanager
def foreign_keys_disabled(conn: sqlite3.Connection) -> Iterator[None]:
    """
    Turn foreign key enforcement off for the duration of the block.

    PRAGMA foreign_keys is a no-op inside a transaction, so any pending
    transaction is committed first. Enforcement is switched back on when the
    block exits, whether normally or through an exception; a transaction
    still open at that point is rolled back first.

    Example:
        >>> with foreign_keys_disabled(conn):
        ...     conn.execute("DROP TABLE parent")
    """
    if conn.in_transaction:
        conn.commit()

    conn.execute("PRAGMA foreign_keys = OFF")
    try:
        yield
    finally:
        if conn.in_transaction:
            conn.rollback()
        conn.execute("PRAGMA foreign_keys = ON")


def find_altered_tables(
    conn: sqlite3.Connection,
    reference: ReferenceSchema,
    matcher: ColumnMatcher = match_by_name,
) -> dict[str, TableAlteration]:
    """
    Find tables present on both sides whose columns differ.

    Both schemas are snapshotted fresh, so tables created or dropped earlier
    in the run are accounted for. Columns are only read for tables present
    on both sides.

    Args:
        conn: Live connection
        reference: Desired schema
        matcher: Predicate deciding whether same-named columns are equal

    Returns:
        Alterations keyed by table name, in desired-schema catalog order
    """
    live = read_schema(conn)
    desired = reference.snapshot()

    altered = {}
    for table_name in desired.tables:
        if table_name not in live.tables:
            continue

        desired_columns = populate_columns(reference.connection, desired, table_name)
        live_columns = populate_columns(conn, live, table_name)
        changes = column_changes(desired_columns, live_columns, matcher)

        if changes.has_changes:
            altered[table_name] = TableAlteration(
                table_name=table_name,
                added_columns=list(changes.added),
                removed_columns=list(changes.removed),
                changed_columns=changes.changed,
                copy_columns=intersect(desired_columns, live_columns),
            )

    return altered


def _index_changes(
    live: Schema, desired: Schema, skip: set[str]
) -> tuple[list[Index], list[Index]]:
    """
    Name-keyed index delta for tables present on both sides.

    Tables in skip (created or rebuilt in this run) get their indices from
    the desired schema wholesale and are left out.

    Returns:
        (to_create, to_drop)
    """
    to_create: list[Index] = []
    to_drop: list[Index] = []

    for table_name in desired.tables:
        if table_name in skip or table_name not in live.tables:
            continue

        create, drop = diff(
            desired.indices_for_table(table_name), live.indices_for_table(table_name)
        )
        to_create.extend(create.values())
        to_drop.extend(drop.values())

    return to_create, to_drop


def _moved_indices(live: Schema, desired: Schema) -> list[Index]:
    """
    Live indices whose name the desired schema gives to a different table.

    Only indices of tables that survive the run are returned; a dropped
    table takes its indices with it before anything is created.
    """
    desired_owners = {index.name: index.table_name for index in desired.indices}
    return [
        index
        for index in live.indices
        if index.name in desired_owners
        and desired_owners[index.name] != index.table_name
        and index.table_name in desired.tables
    ]


# ============================================================================
# Planning
# ============================================================================


def plan_migration(
    conn: sqlite3.Connection,
    script: str,
    matcher: ColumnMatcher = match_by_name,
) -> MigrationPlan:
    """
    Describe what migrate() would do without touching the live database.

    Args:
        conn: Live connection (only read from)
        script: Desired schema DDL
        matcher: Column equality predicate

    Returns:
        MigrationPlan

    Raises:
        ReferenceSchemaError: If the script does not execute
        CatalogReadError: If either catalog cannot be read
    """
    with build_reference(script) as reference:
        live = read_schema(conn)
        desired = reference.snapshot()

        new_tables, dropped_tables = diff(desired.tables, live.tables)
        altered = find_altered_tables(conn, reference, matcher)

        plan = MigrationPlan(
            new_tables=list(new_tables),
            dropped_tables=sorted(dropped_tables),
            altered_tables=list(altered.values()),
        )

        for table_name in [*new_tables, *altered]:
            for index in desired.indices_for_table(table_name).values():
                plan.indices_to_create.append(
                    IndexChange(index.name, index.table_name, index.create_statement)
                )

        moved = _moved_indices(live, desired)
        moved_names = {index.name for index in moved}

        to_create, to_drop = _index_changes(live, desired, set(altered))
        plan.indices_to_create.extend(
            IndexChange(index.name, index.table_name, index.create_statement)
            for index in to_create
        )
        plan.indices_to_drop.extend(
            IndexChange(index.name, index.table_name, index.create_statement)
            for index in [
                *moved,
                *(index for index in to_drop if index.name not in moved_names),
            ]
        )

    return plan


# ============================================================================
# Execution
# ============================================================================


def _reconcile_table_set(
    conn: sqlite3.Connection, reference: ReferenceSchema, report: MigrationReport
) -> None:
    """
    Drop removed tables, create new ones and their indices.

    Indices whose name moves to another table are dropped up front, so the
    name is free when the new or rebuilt owner creates it.
    """
    live = read_schema(conn)
    desired = reference.snapshot()

    new_tables, dropped_tables = diff(desired.tables, live.tables)

    for index in _moved_indices(live, desired):
        _execute(conn, f"DROP INDEX {quote_identifier(index.name)}", report)
        report.indices_dropped.append(index.name)
        logger.info(f"Dropped index {index.name}, moving off table {index.table_name}")

    for table_name in sorted(dropped_tables):
        _execute(conn, f"DROP TABLE {quote_identifier(table_name)}", report)
        report.tables_dropped.append(table_name)
        logger.info(f"Dropped table {table_name}")

    # Desired catalog order, so tables come back in script order
    for table_name, table in new_tables.items():
        _execute(conn, table.create_statement, report)
        report.tables_created.append(table_name)
        logger.info(f"Created table {table_name}")

    for table_name in new_tables:
        for index in desired.indices_for_table(table_name).values():
            _execute(conn, index.create_statement, report)
            report.indices_created.append(index.name)


def rebuild_table(
    conn: sqlite3.Connection,
    reference: ReferenceSchema,
    table_name: str,
    report: MigrationReport,
) -> list[str]:
    """
    Rebuild one table to match its desired definition.

    Runs the shadow-table procedure without any transaction control; the
    caller owns the transaction or savepoint around it.

    Steps:
        1. Create <table>_new from the desired CREATE statement
        2. Copy the columns both versions share (skipped if none)
        3. DROP TABLE IF EXISTS <table>
        4. ALTER TABLE <table>_new RENAME TO <table>
        5. Recreate the desired indices of the table
        6. PRAGMA foreign_key_check; any reported row is fatal

    Args:
        conn: Live connection, inside a transaction
        reference: Desired schema
        table_name: Table to rebuild
        report: Report receiving statements and phase changes

    Returns:
        Names of the columns whose data was copied

    Raises:
        DDLExecutionError: If any statement fails
        TableRebuildError: If the shadow table name is already taken
        ForeignKeyViolationError: If the rebuilt database violates a foreign key
    """
    desired = reference.snapshot()
    table = desired.tables[table_name]
    shadow_name = shadow_table_name(table_name)

    if shadow_name in read_schema(conn).tables:
        raise TableRebuildError(
            f"Cannot rebuild {table_name}: shadow table {shadow_name} already exists",
            table_name=table_name,
            phase=report.phase.value,
        )

    _execute(
        conn,
        rename_in_create_statement(table.create_statement, table_name, shadow_name),
        report,
    )
    _advance(report, MigrationPhase.SHADOW_CREATED, table_name)

    copy_columns = intersect(reference.columns(table_name), read_columns(conn, table_name))
    if copy_columns:
        columns_sql = ", ".join(quote_identifier(name) for name in copy_columns)
        _execute(
            conn,
            f"INSERT INTO {quote_identifier(shadow_name)} ({columns_sql}) "
            f"SELECT {columns_sql} FROM {quote_identifier(table_name)}",
            report,
        )
    else:
        logger.warning(
            f"No columns in common for {table_name}; existing rows are not copied"
        )
    _advance(report, MigrationPhase.DATA_COPIED, table_name)

    _execute(conn, f"DROP TABLE IF EXISTS {quote_identifier(table_name)}", report)
    _advance(report, MigrationPhase.OLD_DROPPED, table_name)

    _execute(
        conn,
        f"ALTER TABLE {quote_identifier(shadow_name)} "
        f"RENAME TO {quote_identifier(table_name)}",
        report,
    )
    _advance(report, MigrationPhase.RENAMED, table_name)

    for index in desired.indices_for_table(table_name).values():
        _execute(conn, index.create_statement, report)
        report.indices_created.append(index.name)
    _advance(report, MigrationPhase.INDICES_RESTORED, table_name)

    violations = [tuple(row) for row in conn.execute("PRAGMA foreign_key_check")]
    if violations:
        raise ForeignKeyViolationError(
            f"Foreign key check failed after rebuilding {table_name}: {violations}",
            violations=violations,
            phase=report.phase.value,
        )
    _advance(report, MigrationPhase.FK_CHECKED, table_name)

    return copy_columns


def _rebuild_in_transaction(
    conn: sqlite3.Connection,
    reference: ReferenceSchema,
    alteration: TableAlteration,
    report: MigrationReport,
    savepoint: str | None = None,
) -> None:
    """
    Run rebuild_table() as one atomic unit.

    Without a savepoint name the rebuild gets its own BEGIN/COMMIT. With a
    savepoint name it nests inside the caller's transaction instead.
    """
    table_name = alteration.table_name
    log_with_context(
        logger,
        logging.INFO,
        f"Rebuilding altered table {table_name}",
        context={
            "table": table_name,
            "added": alteration.added_columns,
            "removed": alteration.removed_columns,
            "changed": alteration.changed_columns,
        },
        migration_id=report.migration_id,
    )

    if savepoint is None:
        conn.execute("BEGIN")
    else:
        conn.execute(f"SAVEPOINT {savepoint}")

    try:
        copied = rebuild_table(conn, reference, table_name, report)

        if savepoint is None:
            conn.commit()
        else:
            conn.execute(f"RELEASE SAVEPOINT {savepoint}")

    except Exception as e:
        if savepoint is None:
            conn.rollback()
        else:
            conn.execute(f"ROLLBACK TO SAVEPOINT {savepoint}")
            conn.execute(f"RELEASE SAVEPOINT {savepoint}")

        logger.error(f"Rebuild of table {table_name} failed, rolled back: {e}")

        if isinstance(e, (ForeignKeyViolationError, TableRebuildError)):
            raise
        raise TableRebuildError(
            f"Failed to rebuild table {table_name} after {report.phase}: {e}",
            table_name=table_name,
            phase=report.phase.value,
        ) from e

    report.tables_rebuilt.append(table_name)
    _advance(report, MigrationPhase.COMMITTED, table_name)
    logger.info(f"Rebuilt table {table_name}, copied columns: {', '.join(copied)}")


def _reconcile_surviving_indices(
    conn: sqlite3.Connection,
    reference: ReferenceSchema,
    report: MigrationReport,
) -> None:
    """Create/drop indices of tables that were neither created nor rebuilt."""
    skip = set(report.tables_created) | set(report.tables_rebuilt)
    to_create, to_drop = _index_changes(read_schema(conn), reference.snapshot(), skip)

    for index in to_drop:
        _execute(conn, f"DROP INDEX {quote_identifier(index.name)}", report)
        report.indices_dropped.append(index.name)

    for index in to_create:
        _execute(conn, index.create_statement, report)
        report.indices_created.append(index.name)


def migrate(
    conn: sqlite3.Connection,
    script: str,
    matcher: ColumnMatcher = match_by_name,
    atomic: bool = False,
) -> MigrationReport:
    """
    Reconcile the live database with the desired schema script.

    Must run once, before the connection is handed to the rest of the
    application, with exclusive use of the database for its duration.

    Args:
        conn: Live connection. Must not use sqlite3's autocommit=False mode,
              since transactions are opened explicitly with BEGIN.
        script: Desired schema DDL
        matcher: Column equality predicate (default: name only)
        atomic: If True, run every mutation in one transaction with a
                savepoint per rebuilt table, so a failure leaves the database
                exactly as it was. If False, each rebuilt table commits on
                its own and earlier tables stay migrated after a failure.

    Returns:
        MigrationReport describing what was executed

    Raises:
        ReferenceSchemaError: If the script does not execute (live database untouched)
        CatalogReadError: If a catalog cannot be read
        DDLExecutionError: If a table/index create or drop fails
        TableRebuildError: If a rebuild step fails (that table rolled back)
        ForeignKeyViolationError: If a rebuild leaves foreign key violations
    """
    report = MigrationReport(
        migration_id=migration_id_from_timestamp(), started_at=utc_timestamp()
    )

    try:
        with build_reference(script) as reference:
            _advance(report, MigrationPhase.REFERENCE_BUILT)

            with foreign_keys_disabled(conn):
                if atomic:
                    conn.execute("BEGIN")

                _reconcile_table_set(conn, reference, report)
                _advance(report, MigrationPhase.TABLE_SET_RECONCILED)

                altered = find_altered_tables(conn, reference, matcher)
                for position, alteration in enumerate(altered.values()):
                    savepoint = f"rebuild_{position}" if atomic else None
                    _rebuild_in_transaction(
                        conn, reference, alteration, report, savepoint=savepoint
                    )

                _reconcile_surviving_indices(conn, reference, report)

                if atomic:
                    conn.commit()

            _advance(report, MigrationPhase.FOREIGN_KEYS_REENABLED)

    except SchemaReconcilerError as e:
        failed_phase = report.phase
        _advance(report, MigrationPhase.ABORTED)
        log_with_context(
            logger,
            logging.ERROR,
            f"Migration aborted after {failed_phase}: {e}",
            context={"phase": str(failed_phase), "executed": len(report.statements)},
            migration_id=report.migration_id,
        )
        raise

    except sqlite3.Error as e:
        failed_phase = report.phase
        _advance(report, MigrationPhase.ABORTED)
        raise MigrationError(
            f"Migration aborted after {failed_phase}: {e}", phase=failed_phase.value
        ) from e

    report.finished_at = utc_timestamp()
    _advance(report, MigrationPhase.DONE)
    log_with_context(
        logger,
        logging.INFO,
        "Migration complete",
        context={
            "created": report.tables_created,
            "dropped": report.tables_dropped,
            "rebuilt": report.tables_rebuilt,
            "statements": len(report.statements),
        },
        migration_id=report.migration_id,
    )
    return report
