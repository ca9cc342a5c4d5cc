"""Operations exposed to callers.

Thin async entry points over the schema and sync packages.  Each accepts
ready connectors (never raw credentials) and returns plain result models;
persisting them is the caller's job.

An optional ``SchemaCache`` can be shared across calls.  Operations that
change a target (``apply_migration``, ``sync_table_data``, ``sync_rows``)
invalidate that target's cached snapshots.

Usage:
    from db_reconcile import operations

    diff = await operations.compare_schemas(source, target, "public", "public")
    statements = operations.generate_migration_sql(diff)
    result = await operations.apply_migration(target, statements)
"""

import logging
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from db_reconcile.errors import ConfigurationError
from db_reconcile.schema import synthesizer
from db_reconcile.schema.cache import SchemaCache
from db_reconcile.schema.comparator import diff_schemas
from db_reconcile.schema.introspector import SchemaIntrospector
from db_reconcile.schema.models import SchemaDiff
from db_reconcile.schema.synthesizer import MigrationResult
from db_reconcile.sync import orchestrator, reconciler
from db_reconcile.sync.models import (
    GroupSyncStatus,
    RowDiff,
    RowsModeT,
    SyncOptions,
    SyncResult,
    TableDataDiff,
)

if TYPE_CHECKING:
    from db_reconcile.adapters.base import DatabaseConnector

logger = logging.getLogger(__name__)


async def compare_schemas(
    source: "DatabaseConnector",
    target: "DatabaseConnector",
    source_schema: str,
    target_schema: str,
    cache: SchemaCache | None = None,
) -> SchemaDiff:
    """Diff the target schema against the source schema.

    Returns:
        ``SchemaDiff`` describing what must change in the target.
    """
    if cache is not None:
        source_snapshot = await cache.snapshot(source, source_schema)
        target_snapshot = await cache.snapshot(target, target_schema)
        diff = cache.diff(source_snapshot, target_snapshot)
    else:
        source_snapshot = await SchemaIntrospector(source).introspect(source_schema)
        target_snapshot = await SchemaIntrospector(target).introspect(target_schema)
        diff = diff_schemas(source_snapshot, target_snapshot)

    logger.info(
        f"Schema diff {source.name}.{source_schema} -> {target.name}.{target_schema}: "
        f"{len(diff.items)} item(s)",
        extra={
            "event": "schema_diff_computed",
            "source": source.name,
            "target": target.name,
            "items": len(diff.items),
            "warnings": len(diff.warnings),
        },
    )
    return diff


def generate_migration_sql(diff: SchemaDiff) -> list[str]:
    """Ordered statements that migrate the diff's target to its source."""
    return synthesizer.generate_migration_sql(diff)


async def apply_migration(
    target: "DatabaseConnector",
    statements: list[str],
    cache: SchemaCache | None = None,
) -> MigrationResult:
    """Run statements on *target*, stopping at the first failure."""
    try:
        return await synthesizer.apply_migration(target, statements)
    finally:
        if cache is not None:
            cache.invalidate(target.name)


async def get_table_row_counts(
    source: "DatabaseConnector",
    target: "DatabaseConnector",
    schema: str,
    target_schema: str | None = None,
) -> list[RowDiff]:
    """One ``RowDiff`` per source table."""
    return await reconciler.get_table_row_counts(source, target, schema, target_schema)


def _coerce_options(options: SyncOptions | dict[str, Any]) -> SyncOptions:
    if isinstance(options, SyncOptions):
        return options
    try:
        return SyncOptions.model_validate(options)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid sync options: {e}") from e


async def sync_table_data(
    source: "DatabaseConnector",
    target: "DatabaseConnector",
    schema: str,
    table: str,
    options: SyncOptions | dict[str, Any],
    target_schema: str | None = None,
    cache: SchemaCache | None = None,
) -> SyncResult:
    """Reconcile one table's rows.

    Args:
        options: ``SyncOptions`` or a dict of its fields (e.g. parsed from a
            request body).

    Raises:
        ConfigurationError: If *options* is invalid or the key does not
            qualify.  Raised before any statement runs.
    """
    options = _coerce_options(options)
    try:
        return await reconciler.sync_table_data(
            source, target, schema, table, options, target_schema=target_schema
        )
    finally:
        if cache is not None and options.applies_changes:
            cache.invalidate(target.name)


async def get_table_data_diff(
    source: "DatabaseConnector",
    target: "DatabaseConnector",
    schema: str,
    table: str,
    key_columns: list[str],
    target_schema: str | None = None,
    compare_columns: list[str] | None = None,
    limit: int = 100,
) -> TableDataDiff:
    """Differing rows of one table, at most *limit* per bucket."""
    return await reconciler.get_table_data_diff(
        source,
        target,
        schema,
        table,
        key_columns,
        target_schema=target_schema,
        compare_columns=compare_columns,
        limit=limit,
    )


async def sync_rows(
    target: "DatabaseConnector",
    schema: str,
    table: str,
    rows: list[dict[str, Any]],
    key_columns: list[str],
    mode: RowsModeT = "upsert",
    cache: SchemaCache | None = None,
) -> SyncResult:
    """Insert (or upsert) the given rows into *target*'s *table*."""
    try:
        return await reconciler.sync_rows(target, schema, table, rows, key_columns, mode=mode)
    finally:
        if cache is not None and rows:
            cache.invalidate(target.name)


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
    """Per-target status of an instance group."""
    return await orchestrator.get_group_sync_status(
        source,
        targets,
        schema,
        check_schema=check_schema,
        check_data=check_data,
        max_workers=max_workers,
        target_schemas=target_schemas,
        cache=cache,
    )
