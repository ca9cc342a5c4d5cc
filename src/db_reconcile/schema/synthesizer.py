"""Migration synthesis and application.

Turns a ``SchemaDiff`` into one dependency-ordered statement list and
applies it through a connector.

Execution order (``Phase``):

1. Drop foreign keys (removed, modified, or in the way of a change)
2. Drop indexes
3. Create tables (parents before children)
4. Add columns
5. Modify columns (SQLite: table rebuilds)
6. Add indexes
7. Add foreign keys
8. Drop columns
9. Drop tables (children before parents)

Each ``StatementBatch`` keeps the keys of the diff items it came from, so a
failed apply can be reported per logical change.  Statements are never
rolled back by this module; each runs in its own transaction on the target.

Usage:
    from db_reconcile.schema.synthesizer import build_migration_plan, apply_migration_plan

    plan = build_migration_plan(diff)
    result = await apply_migration_plan(target_connector, plan)
    if not result.success:
        print(result.migration.failed_statement, result.migration.error)
"""

import logging
from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel, ConfigDict, Field

from db_reconcile.errors import StatementExecutionError
from db_reconcile.schema.models import (
    DiffItem,
    DiffKind,
    Phase,
    SchemaDiff,
    SchemaSnapshot,
    TableDef,
)

if TYPE_CHECKING:
    from db_reconcile.adapters.base import DatabaseConnector

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------
# Plan and result models
# ------------------------------------------------------------------


class StatementBatch(BaseModel):
    """Statements of one phase for one table, tagged with their diff items."""

    model_config = ConfigDict(frozen=True)

    phase: Phase
    table: str
    item_keys: tuple[str, ...]
    statements: tuple[str, ...]


class MigrationPlan(BaseModel):
    """Ordered batches ready to run against the target."""

    model_config = ConfigDict(frozen=True)

    batches: tuple[StatementBatch, ...] = ()

    @property
    def statements(self) -> list[str]:
        """Every statement, in execution order."""
        return [stmt for batch in self.batches for stmt in batch.statements]

    @property
    def is_empty(self) -> bool:
        return not self.batches


class MigrationResult(BaseModel):
    """Outcome of applying a statement list.

    Example:
        >>> result = MigrationResult(applied_count=1, failed_statement="ALTER ...",
        ...                          error="duplicate column", remaining=["DROP ..."])
        >>> result.success
        False
    """

    applied_count: int = 0
    failed_statement: str | None = None
    error: str | None = None
    remaining: list[str] = Field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.failed_statement is None

    def raise_for_failure(self) -> None:
        """Raise ``StatementExecutionError`` if a statement failed."""
        if self.failed_statement is not None:
            raise StatementExecutionError(
                self.failed_statement,
                f"Migration stopped after {self.applied_count} statement(s): {self.error}",
            )


class BatchStatus(BaseModel):
    """Apply status of one ``StatementBatch``."""

    phase: Phase
    table: str
    item_keys: tuple[str, ...]
    status: Literal["applied", "failed", "pending"] = "pending"
    error: str | None = None


class PlanResult(BaseModel):
    """Per-batch outcome of ``apply_migration_plan``."""

    batches: list[BatchStatus] = Field(default_factory=list)
    migration: MigrationResult = Field(default_factory=MigrationResult)

    @property
    def success(self) -> bool:
        return self.migration.success

    @property
    def failed_items(self) -> list[str]:
        """Diff item keys whose batch failed."""
        return [key for b in self.batches if b.status == "failed" for key in b.item_keys]


# ------------------------------------------------------------------
# Ordering
# ------------------------------------------------------------------


def _topological_sort(dependencies: dict[str, set[str]], tables: list[str]) -> list[str]:
    """Topological sort of tables based on FK dependencies.

    Returns tables in forward order: parent tables first, child tables last.

    Args:
        dependencies: FK dependency graph (table -> set of referenced tables).
        tables: List of table names to sort; ties keep this order.

    Returns:
        Tables sorted so that parent tables come before child tables.
    """
    relevant = {t: dependencies.get(t, set()) & set(tables) for t in tables}

    sorted_tables: list[str] = []
    visited: set[str] = set()
    visiting: set[str] = set()  # For cycle detection

    def visit(table: str) -> None:
        if table in visited:
            return
        if table in visiting:
            # Cycle detected -- break it by just adding the table
            return
        visiting.add(table)
        for dep in sorted(relevant.get(table, set())):
            visit(dep)
        visiting.discard(table)
        visited.add(table)
        sorted_tables.append(table)

    for table in tables:
        visit(table)

    return sorted_tables


def _table_dependencies(items: list[DiffItem], kind: DiffKind) -> tuple[list[str], dict[str, set[str]]]:
    """Tables of *kind* items and what each references (self-references skipped)."""
    tables = []
    deps: dict[str, set[str]] = {}
    for item in items:
        if item.kind is not kind:
            continue
        definition = item.after if kind is DiffKind.TABLE_ADDED else item.before
        assert isinstance(definition, TableDef)
        tables.append(item.table)
        deps[item.table] = {
            fk.ref_table for fk in definition.foreign_keys if fk.ref_table != item.table
        }
    return tables, deps


# ------------------------------------------------------------------
# Synthesis
# ------------------------------------------------------------------


def build_migration_plan(diff: SchemaDiff) -> MigrationPlan:
    """Order a diff's steps into executable batches.

    Pure function; never fails on a valid diff.  Identical steps coming from
    several items (a shared SQLite rebuild, an index wrapped by two MySQL
    column changes) are emitted once and tagged with every item.

    Args:
        diff: Diff from ``diff_schemas``.

    Returns:
        ``MigrationPlan`` in phase order.  Within the create-table phase,
        referenced tables come first; within the drop-table phase, they
        come last.  Otherwise batches keep diff order.
    """
    items = list(diff.items)

    created, create_deps = _table_dependencies(items, DiffKind.TABLE_ADDED)
    create_rank = {t: i for i, t in enumerate(_topological_sort(create_deps, created))}
    dropped, drop_deps = _table_dependencies(items, DiffKind.TABLE_REMOVED)
    drop_rank = {t: i for i, t in enumerate(reversed(_topological_sort(drop_deps, dropped)))}

    batches: dict[tuple, dict] = {}
    for position, item in enumerate(items):
        for step in item.steps:
            if not step.statements:
                continue
            key = (step.phase, step.table, step.statements)
            if key in batches:
                if item.key not in batches[key]["item_keys"]:
                    batches[key]["item_keys"].append(item.key)
                continue
            batches[key] = {
                "phase": step.phase,
                "table": step.table,
                "item_keys": [item.key],
                "statements": step.statements,
                "position": position,
            }

    def order(entry: dict) -> tuple:
        phase = entry["phase"]
        if phase is Phase.CREATE_TABLE:
            rank = create_rank.get(entry["table"], len(create_rank))
        elif phase is Phase.DROP_TABLE:
            rank = drop_rank.get(entry["table"], len(drop_rank))
        else:
            rank = 0
        return phase, rank, entry["position"]

    ordered = sorted(batches.values(), key=order)
    return MigrationPlan(
        batches=tuple(
            StatementBatch(
                phase=entry["phase"],
                table=entry["table"],
                item_keys=tuple(entry["item_keys"]),
                statements=entry["statements"],
            )
            for entry in ordered
        )
    )


def generate_migration_sql(diff: SchemaDiff) -> list[str]:
    """Ordered list of SQL statements that migrate the target to the source.

    Example:
        >>> generate_migration_sql(diff)
        ['ALTER TABLE "public"."users" ADD COLUMN "name" varchar(100)']
    """
    return build_migration_plan(diff).statements


def project_snapshot(target: SchemaSnapshot, diff: SchemaDiff) -> SchemaSnapshot:
    """The target snapshot as it would look after applying *diff*.

    Used for dry runs: ``diff_schemas(source, project_snapshot(target, diff))``
    is empty when the diff is complete.
    """
    table_rule = target.table_name_rule
    column_rule = target.column_name_rule
    tables: dict[str, TableDef] = {table_rule.key(t.name): t for t in target.tables}

    def replace(seq, before, after) -> tuple:
        kept = [d for d in seq if before is None or column_rule.key(d.name) != column_rule.key(before.name)]
        if after is not None:
            kept.append(after)
        return tuple(kept)

    for item in diff.items:
        key = table_rule.key(item.table)
        if item.kind is DiffKind.TABLE_ADDED:
            tables[key] = item.after
            continue
        if item.kind is DiffKind.TABLE_REMOVED:
            tables.pop(key, None)
            continue

        table = tables[key]
        if item.kind in (DiffKind.COLUMN_ADDED, DiffKind.COLUMN_REMOVED, DiffKind.COLUMN_MODIFIED):
            update = {"columns": replace(table.columns, item.before, item.after)}
        elif item.kind in (DiffKind.INDEX_ADDED, DiffKind.INDEX_REMOVED, DiffKind.INDEX_MODIFIED):
            update = {"indexes": replace(table.indexes, item.before, item.after)}
        else:
            update = {"foreign_keys": replace(table.foreign_keys, item.before, item.after)}
        tables[key] = table.model_copy(update=update)

    return target.model_copy(update={"tables": tuple(tables.values())})


# ------------------------------------------------------------------
# Application
# ------------------------------------------------------------------


def _is_comment_only(statement: str) -> bool:
    """True for statements made only of ``--`` comment lines."""
    lines = [line.strip() for line in statement.strip().splitlines() if line.strip()]
    return all(line.startswith("--") for line in lines)


async def _execute_in_order(connector: "DatabaseConnector", statements: list[str]) -> MigrationResult:
    result = MigrationResult()

    for index, statement in enumerate(statements):
        if _is_comment_only(statement):
            continue
        try:
            await connector.execute(statement)
        except Exception as e:
            result.failed_statement = statement
            result.error = str(e)
            result.remaining = list(statements[index + 1:])
            return result
        result.applied_count += 1

    return result


def _log_outcome(connector: "DatabaseConnector", result: MigrationResult) -> None:
    if result.success:
        logger.info(
            f"Applied {result.applied_count} statement(s) on '{connector.name}'",
            extra={
                "event": "migration_applied",
                "connection": connector.name,
                "applied_count": result.applied_count,
            },
        )
        return
    logger.error(
        f"Migration on '{connector.name}' failed after {result.applied_count} statement(s): {result.error}",
        extra={
            "event": "migration_failed",
            "connection": connector.name,
            "applied_count": result.applied_count,
            "statement": result.failed_statement,
        },
    )


async def apply_migration(connector: "DatabaseConnector", statements: list[str]) -> MigrationResult:
    """Execute statements in order, stopping at the first failure.

    Comment-only statements are skipped and never sent to the database.
    Already-applied statements are not rolled back.

    Args:
        connector: Target connector.
        statements: Statements from ``generate_migration_sql``.

    Returns:
        ``MigrationResult`` with the count of applied statements, the
        failing statement and its error, and the statements never run.

    Example:
        result = await apply_migration(target, statements)
        if not result.success:
            print(f"Failed after {result.applied_count}: {result.error}")
    """
    result = await _execute_in_order(connector, statements)
    _log_outcome(connector, result)
    return result


async def apply_migration_plan(connector: "DatabaseConnector", plan: MigrationPlan) -> PlanResult:
    """Execute a plan batch by batch, stopping at the first failing statement.

    Returns:
        ``PlanResult`` marking each batch ``applied``, ``failed``, or
        ``pending`` (never started), plus the statement-level
        ``MigrationResult``.
    """
    statuses = [
        BatchStatus(phase=b.phase, table=b.table, item_keys=b.item_keys) for b in plan.batches
    ]
    totals = MigrationResult()

    for position, batch in enumerate(plan.batches):
        outcome = await _execute_in_order(connector, list(batch.statements))
        totals.applied_count += outcome.applied_count
        if outcome.success:
            statuses[position].status = "applied"
            continue

        statuses[position].status = "failed"
        statuses[position].error = outcome.error
        totals.failed_statement = outcome.failed_statement
        totals.error = outcome.error
        totals.remaining = outcome.remaining + [
            stmt for b in plan.batches[position + 1:] for stmt in b.statements
        ]
        break

    _log_outcome(connector, totals)
    return PlanResult(batches=statuses, migration=totals)
