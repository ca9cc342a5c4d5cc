"""Instance-group status checks.

Compares one source connection against N targets.  Each target runs as its
own task in an ``asyncio.TaskGroup`` gated by a semaphore, so at most
``max_workers`` targets are checked at once.  A failing target is reported
with ``status="error"`` and never stops its siblings.  Cancelling the caller
cancels every in-flight target task.
"""

import asyncio
import logging
from typing import TYPE_CHECKING

from db_reconcile.schema.cache import SchemaCache
from db_reconcile.schema.comparator import diff_schemas
from db_reconcile.schema.introspector import SchemaIntrospector
from db_reconcile.schema.models import SchemaSnapshot
from db_reconcile.sync.models import GroupSyncStatus, StatusT, TargetStatus
from db_reconcile.sync.reconciler import get_table_row_counts

if TYPE_CHECKING:
    from db_reconcile.adapters.base import DatabaseConnector

logger = logging.getLogger(__name__)


async def _snapshot(
    connector: "DatabaseConnector", schema: str, cache: SchemaCache | None
) -> SchemaSnapshot:
    if cache is not None:
        return await cache.snapshot(connector, schema)
    return await SchemaIntrospector(connector).introspect(schema)


def _overall(schema_status: StatusT, data_status: StatusT) -> StatusT:
    statuses = {schema_status, data_status}
    for candidate in ("error", "out_of_sync", "in_sync"):
        if candidate in statuses:
            return candidate  # type: ignore[return-value]
    return "unchecked"


async def _check_target(
    source: "DatabaseConnector",
    target: "DatabaseConnector",
    source_snapshot: SchemaSnapshot | None,
    schema: str,
    target_schema: str,
    check_data: bool,
    cache: SchemaCache | None,
) -> TargetStatus:
    schema_status: StatusT = "unchecked"
    data_status: StatusT = "unchecked"
    schema_diff_count = None
    data_summary = None
    errors = []

    if source_snapshot is not None:
        target_snapshot = await _snapshot(target, target_schema, cache)
        if cache is not None:
            diff = cache.diff(source_snapshot, target_snapshot)
        else:
            diff = diff_schemas(source_snapshot, target_snapshot)
        schema_diff_count = len(diff.items)
        schema_status = "in_sync" if diff.is_empty else "out_of_sync"
        if diff.warnings:
            schema_status = "error"
            errors.extend(diff.warnings)

    if check_data:
        row_diffs = await get_table_row_counts(source, target, schema, target_schema)
        failed = [d for d in row_diffs if d.error is not None]
        data_summary = {
            "tables_checked": len(row_diffs),
            "tables_out_of_sync": sum(1 for d in row_diffs if not d.in_sync),
            "missing_in_target": sum(d.missing_in_target for d in row_diffs),
            "missing_in_source": sum(d.missing_in_source for d in row_diffs),
        }
        if failed:
            data_status = "error"
            errors.extend(f"{d.table}: {d.error}" for d in failed)
        elif data_summary["tables_out_of_sync"]:
            data_status = "out_of_sync"
        else:
            data_status = "in_sync"

    return TargetStatus(
        connection=target.name,
        status=_overall(schema_status, data_status),
        schema_status=schema_status,
        data_status=data_status,
        schema_diff_count=schema_diff_count,
        data_diff_summary=data_summary,
        error="; ".join(errors) or None,
    )


async def get_group_sync_status(
    source: "DatabaseConnector | None",
    targets: list["DatabaseConnector"],
    schema: str,
    check_schema: bool = True,
    check_data: bool = True,
    max_workers: int = 4,
    target_schemas: dict[str, str] | None = None,
    cache: SchemaCache | None = None,
) -> GroupSyncStatus:
    """Check every target of an instance group against the source.

    Args:
        source: Reference connection, or ``None`` (every target is then
            reported ``unchecked``).
        targets: Target connections.  Each must be safe to use from its own
            task; ``SqlConnector`` checks out a session per call.
        schema: Source schema, and the target schema unless overridden.
        check_schema: Diff the target schema against the source.
        check_data: Compare row key sets table by table.
        max_workers: Maximum targets checked at once.
        target_schemas: Per-target schema by connection name.
        cache: Optional snapshot cache shared with other operations.

    Returns:
        ``GroupSyncStatus`` with one ``TargetStatus`` per target, in the
        order of *targets*.
    """
    if source is None:
        return GroupSyncStatus(
            source=None, targets=[TargetStatus(connection=t.name) for t in targets]
        )

    target_schemas = target_schemas or {}
    source_snapshot = None
    source_error = None
    if check_schema:
        try:
            source_snapshot = await _snapshot(source, schema, cache)
        except Exception as e:
            logger.warning(f"Cannot introspect source '{source.name}': {e}")
            source_error = f"source introspection failed: {e}"

    semaphore = asyncio.Semaphore(max(1, max_workers))
    results: list[TargetStatus | None] = [None] * len(targets)

    async def run(index: int, target: "DatabaseConnector") -> None:
        async with semaphore:
            if source_error is not None:
                results[index] = TargetStatus(
                    connection=target.name, status="error", error=source_error
                )
                return
            try:
                results[index] = await _check_target(
                    source,
                    target,
                    source_snapshot,
                    schema,
                    target_schemas.get(target.name, schema),
                    check_data,
                    cache,
                )
            except Exception as e:
                logger.warning(f"Status check of '{target.name}' failed: {e}")
                results[index] = TargetStatus(
                    connection=target.name, status="error", error=str(e)
                )

    async with asyncio.TaskGroup() as group:
        for index, target in enumerate(targets):
            group.create_task(run(index, target))

    status = GroupSyncStatus(source=source.name, targets=[r for r in results if r is not None])
    logger.info(
        f"Group status for '{source.name}': {status.status} ({len(targets)} target(s))",
        extra={
            "event": "group_status_computed",
            "source": source.name,
            "targets": len(targets),
            "status": status.status,
        },
    )
    return status
