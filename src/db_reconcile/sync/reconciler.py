"""Row-level data reconciliation.

Converges a target table toward a source table, keyed by primary (or
unique) key columns:

1. Pre-flight from metadata only: key columns must exist on both sides, be
   NOT NULL, and form the primary key or a unique index on both sides.
2. Fetch key sets from both sides and partition them into only-in-source
   (insert candidates), only-in-target (delete candidates), and in-both
   (update candidates).
3. Fetch in-both rows in key chunks and compare the non-key columns.
4. Apply each bucket its flag allows, one transaction per batch.  A failed
   batch is recorded in ``SyncResult.errors`` and the next batch still runs.

Values are compared after normalization (UUIDs as strings, datetimes as
naive-UTC ISO strings, floats as decimals), so the same row read through
different drivers compares equal.  Writes always use the source driver's
native values.

``get_table_data_diff`` returns the differing rows themselves (capped) for
review, and ``sync_rows`` writes a chosen subset of them in insert or
upsert mode.

Usage:
    from db_reconcile.sync.reconciler import sync_table_data
    from db_reconcile.sync.models import SyncOptions

    options = SyncOptions(primary_keys=["id"], delete_extra=False)
    result = await sync_table_data(source, target, "public", "orders", options)
    print(result.inserted, result.updated, result.errors)
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID

from pydantic import ValidationError

from db_reconcile.dialects import NameRule, qualified_table, quote, quote_list
from db_reconcile.errors import ConfigurationError, IntrospectionError
from db_reconcile.schema.models import TableSchema
from db_reconcile.sync.models import RowDiff, RowPair, RowsModeT, SyncOptions, SyncResult, TableDataDiff

if TYPE_CHECKING:
    from db_reconcile.adapters.base import DatabaseConnector

logger = logging.getLogger(__name__)

KeyT = tuple[Any, ...]


# ---------------------------------------------------------------------------
# Value normalization
# ---------------------------------------------------------------------------


def _serialize_value(value: Any) -> Any:
    """Normalize a driver value for hashing and comparison.

    UUID -> str, datetime/date/time -> ISO string (aware datetimes in UTC,
    without offset), float -> Decimal, bytes-like -> bytes.  Everything
    else is returned as-is.
    """
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value.isoformat()
    if isinstance(value, (date, time)):
        return value.isoformat()
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, (bytearray, memoryview)):
        return bytes(value)
    return value


def _normalize_key(values: KeyT) -> KeyT:
    return tuple(_serialize_value(v) for v in values)


# ---------------------------------------------------------------------------
# Pre-flight
# ---------------------------------------------------------------------------


@dataclass
class _Side:
    """One end of a reconciliation: connector, table reference, column names."""

    connector: "DatabaseConnector"
    schema: str
    table: TableSchema
    keys: list[str]

    @property
    def ref(self) -> str:
        return qualified_table(self.schema, self.table.name, self.connector.engine)

    def q(self, name: str) -> str:
        return quote(name, self.connector.engine)


def _resolve(table: TableSchema, name: str, rule: NameRule) -> str | None:
    wanted = rule.key(name)
    for col in table.columns:
        if rule.key(col.name) == wanted:
            return col.name
    return None


def _check_key(table: TableSchema, keys: list[str], side: str, rule: NameRule) -> list[str]:
    """Resolve key names on one side and verify they form a NOT NULL unique key."""
    resolved = []
    for key in keys:
        name = _resolve(table, key, rule)
        if name is None:
            raise ConfigurationError(f"Key column '{key}' not found in {side} table '{table.name}'")
        column = next(c for c in table.columns if c.name == name)
        if column.is_nullable:
            raise ConfigurationError(
                f"Key column '{name}' is nullable in {side} table '{table.name}'"
            )
        resolved.append(name)

    wanted = {rule.key(k) for k in resolved}
    candidates = [table.primary_key] + [idx.columns for idx in table.indexes if idx.is_unique]
    if not any({rule.key(c) for c in cols} == wanted for cols in candidates if cols):
        raise ConfigurationError(
            f"Columns {resolved} are not the primary key or a unique index "
            f"of {side} table '{table.name}'"
        )
    return resolved


async def _load_table(connector: "DatabaseConnector", schema: str, table: str, side: str) -> TableSchema:
    try:
        return await connector.get_table_schema(schema, table)
    except IntrospectionError as e:
        raise ConfigurationError(f"Cannot read {side} table '{table}': {e}") from e


async def _prepare(
    source: "DatabaseConnector",
    target: "DatabaseConnector",
    schema: str,
    target_schema: str,
    table: str,
    options: SyncOptions,
) -> tuple[_Side, _Side, list[tuple[str, str]], list[tuple[str, str]]]:
    """Pre-flight checks; no row is read here.

    Returns:
        Source side, target side, the compared columns, and every non-key
        column present on both sides.  Columns are ``(source name, target
        name)`` pairs.
    """
    src_schema = await _load_table(source, schema, table, "source")
    tgt_schema = await _load_table(target, target_schema, table, "target")

    src_rules = await source.get_name_rules()
    tgt_rules = await target.get_name_rules()
    rule = NameRule.looser(src_rules[1], tgt_rules[1])

    src_keys = _check_key(src_schema, options.primary_keys, "source", rule)
    tgt_keys = _check_key(tgt_schema, options.primary_keys, "target", rule)

    key_set = {rule.key(k) for k in src_keys}
    shared = []
    for col in src_schema.columns:
        tgt_name = _resolve(tgt_schema, col.name, rule)
        if tgt_name is not None and rule.key(col.name) not in key_set:
            shared.append((col.name, tgt_name))

    if options.compare_columns is None:
        compared = list(shared)
    else:
        compared = []
        for name in options.compare_columns:
            src_name = _resolve(src_schema, name, rule)
            tgt_name = _resolve(tgt_schema, name, rule)
            if src_name is None or tgt_name is None:
                raise ConfigurationError(f"Compare column '{name}' not found on both sides")
            if rule.key(src_name) not in key_set:
                compared.append((src_name, tgt_name))

    return (
        _Side(source, schema, src_schema, src_keys),
        _Side(target, target_schema, tgt_schema, tgt_keys),
        compared,
        shared,
    )


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


async def _fetch_keys(side: _Side) -> dict[KeyT, KeyT]:
    """All keys of one side, as ``{normalized key: native key}``.

    Raises:
        ConfigurationError: If any key column holds NULL.
    """
    sql = f"SELECT {', '.join(side.q(k) for k in side.keys)} FROM {side.ref}"
    rows = await side.connector.query(sql)
    keys: dict[KeyT, KeyT] = {}
    for row in rows:
        native = tuple(row[k] for k in side.keys)
        if any(v is None for v in native):
            raise ConfigurationError(
                f"NULL value in key column(s) {side.keys} of "
                f"{side.connector.name}.{side.table.name}"
            )
        keys[_normalize_key(native)] = native
    return keys


def _key_filter(side: _Side, keys: list[KeyT]) -> tuple[str, dict[str, Any]]:
    """WHERE clause matching a chunk of keys, with its parameters."""
    params: dict[str, Any] = {}
    if len(side.keys) == 1:
        names = []
        for i, key in enumerate(keys):
            params[f"k{i}"] = key[0]
            names.append(f":k{i}")
        return f"{side.q(side.keys[0])} IN ({', '.join(names)})", params

    groups = []
    for i, key in enumerate(keys):
        parts = []
        for j, column in enumerate(side.keys):
            params[f"k{i}_{j}"] = key[j]
            parts.append(f"{side.q(column)} = :k{i}_{j}")
        groups.append("(" + " AND ".join(parts) + ")")
    return " OR ".join(groups), params


async def _fetch_rows(side: _Side, columns: list[str], keys: list[KeyT]) -> dict[KeyT, dict]:
    """Rows for a chunk of native keys, as ``{normalized key: row}``."""
    if not keys:
        return {}
    where, params = _key_filter(side, keys)
    select = quote_list(list(dict.fromkeys(side.keys + columns)), side.connector.engine)
    rows = await side.connector.query(f"SELECT {select} FROM {side.ref} WHERE {where}", params)
    return {_normalize_key(tuple(row[k] for k in side.keys)): row for row in rows}


def _chunks(items: list, size: int):
    for start in range(0, len(items), size):
        yield items[start:start + size]


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------


async def _write_batch(
    side: _Side,
    op: str,
    number: int,
    sql: str,
    params: list[dict[str, Any]],
    errors: list[str],
) -> int:
    """Run one batch in one transaction; return rows written (0 on failure)."""
    if not params:
        return 0
    try:
        await side.connector.execute_batch(sql, params)
    except Exception as e:
        message = f"{op} batch {number} ({len(params)} rows) failed: {e}"
        logger.warning(f"{side.connector.name}.{side.table.name}: {message}")
        errors.append(message)
        return 0
    return len(params)


async def _run_batches(
    side: _Side,
    op: str,
    sql: str,
    param_sets: list[dict[str, Any]],
    batch_size: int,
    errors: list[str],
) -> int:
    """Run *sql* over *param_sets* in batches; return rows written."""
    written = 0
    for number, chunk in enumerate(_chunks(param_sets, batch_size), start=1):
        written += await _write_batch(side, op, number, sql, chunk, errors)
    return written


def _insert_sql(target: _Side, columns: list[str]) -> str:
    placeholders = ", ".join(f":p{i}" for i in range(len(columns)))
    return (
        f"INSERT INTO {target.ref} ({quote_list(columns, target.connector.engine)}) "
        f"VALUES ({placeholders})"
    )


def _update_sql(target: _Side, columns: list[str]) -> str:
    assignments = ", ".join(f"{target.q(c)} = :p{i}" for i, c in enumerate(columns))
    where = " AND ".join(f"{target.q(k)} = :w{i}" for i, k in enumerate(target.keys))
    return f"UPDATE {target.ref} SET {assignments} WHERE {where}"


def _delete_sql(target: _Side) -> str:
    where = " AND ".join(f"{target.q(k)} = :w{i}" for i, k in enumerate(target.keys))
    return f"DELETE FROM {target.ref} WHERE {where}"


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def sync_table_data(
    source: "DatabaseConnector",
    target: "DatabaseConnector",
    schema: str,
    table: str,
    options: SyncOptions,
    target_schema: str | None = None,
) -> SyncResult:
    """Converge *target*'s rows of *table* toward *source*'s.

    Args:
        source: Connector holding the reference rows.
        target: Connector to modify.
        schema: Source schema (and target schema unless *target_schema*).
        table: Table name.
        options: What to apply and how rows are keyed.
        target_schema: Target schema when it differs (e.g. MySQL database
            name vs PostgreSQL schema).

    Returns:
        Frozen ``SyncResult``.  Batch failures are listed in ``errors``;
        batches that succeeded stay committed.

    Raises:
        ConfigurationError: If the key is not a NOT NULL unique key on both
            sides, or a NULL key value is found.  Raised before any
            mutating statement.
        DatabaseConnectionError: If either side cannot be reached while
            reading.

    Example:
        result = await sync_table_data(src, dst, "public", "orders",
                                       SyncOptions(primary_keys=["id"]))
        if result.partial:
            print("\\n".join(result.errors))
    """
    target_schema = target_schema if target_schema is not None else schema
    src, tgt, compared, shared = await _prepare(source, target, schema, target_schema, table, options)

    src_keys = await _fetch_keys(src)
    tgt_keys = await _fetch_keys(tgt)

    only_source = [k for k in src_keys if k not in tgt_keys]
    only_target = [k for k in tgt_keys if k not in src_keys]
    in_both = [k for k in src_keys if k in tgt_keys]

    row_diff = RowDiff(
        table=table,
        source_count=len(src_keys),
        target_count=len(tgt_keys),
        missing_in_target=len(only_source),
        missing_in_source=len(only_target),
    )

    src_columns = [s for s, _ in compared]
    tgt_columns = [t for _, t in compared]

    # Update candidates: compare chunk by chunk
    updates: list[dict[str, Any]] = []
    if compared:
        for chunk in _chunks(in_both, options.batch_size):
            src_rows = await _fetch_rows(src, src_columns, [src_keys[k] for k in chunk])
            tgt_rows = await _fetch_rows(tgt, tgt_columns, [tgt_keys[k] for k in chunk])
            for key in chunk:
                s_row, t_row = src_rows.get(key), tgt_rows.get(key)
                if s_row is None or t_row is None:
                    # Deleted between the key read and the row read
                    continue
                if any(
                    _serialize_value(s_row[s]) != _serialize_value(t_row[t]) for s, t in compared
                ):
                    params = {f"p{i}": s_row[s] for i, s in enumerate(src_columns)}
                    params.update({f"w{i}": v for i, v in enumerate(tgt_keys[key])})
                    updates.append(params)

    errors: list[str] = []
    skipped: list[str] = []
    inserted = updated = deleted = 0

    if only_source and options.insert_missing:
        # Inserted rows carry every shared column, not only the compared ones
        insert_src = src.keys + [s for s, _ in shared]
        sql = _insert_sql(tgt, tgt.keys + [t for _, t in shared])
        for number, chunk in enumerate(_chunks(only_source, options.batch_size), start=1):
            rows = await _fetch_rows(src, insert_src, [src_keys[k] for k in chunk])
            param_sets = [
                {f"p{i}": rows[k][c] for i, c in enumerate(insert_src)}
                for k in chunk
                if k in rows
            ]
            inserted += await _write_batch(tgt, "insert", number, sql, param_sets, errors)
    elif only_source:
        skipped.append(f"insert disabled: {len(only_source)} row(s) missing in target")

    if updates and options.update_different:
        updated = await _run_batches(
            tgt, "update", _update_sql(tgt, tgt_columns), updates, options.batch_size, errors
        )
    elif updates:
        skipped.append(f"update disabled: {len(updates)} row(s) differ")

    if only_target and options.delete_extra:
        param_sets = [{f"w{i}": v for i, v in enumerate(tgt_keys[k])} for k in only_target]
        deleted = await _run_batches(
            tgt, "delete", _delete_sql(tgt), param_sets, options.batch_size, errors
        )
    elif only_target:
        skipped.append(f"delete disabled: {len(only_target)} row(s) missing in source")

    result = SyncResult(
        table=table,
        inserted=inserted,
        updated=updated,
        deleted=deleted,
        errors=tuple(errors),
        would_insert=len(only_source),
        would_update=len(updates),
        would_delete=len(only_target),
        skipped=tuple(skipped),
        row_diff=row_diff,
    )
    logger.info(
        f"Synced {source.name}.{table} -> {target.name}: "
        f"{inserted} inserted, {updated} updated, {deleted} deleted, {len(errors)} error(s)",
        extra={
            "event": "sync_completed",
            "source": source.name,
            "target": target.name,
            "table": table,
            "inserted": inserted,
            "updated": updated,
            "deleted": deleted,
            "errors": len(errors),
        },
    )
    return result


async def _count(connector: "DatabaseConnector", schema: str, table: str) -> int:
    rows = await connector.query(
        f"SELECT COUNT(*) AS row_count FROM {qualified_table(schema, table, connector.engine)}"
    )
    return int(rows[0]["row_count"]) if rows else 0


async def get_row_diff(
    source: "DatabaseConnector",
    target: "DatabaseConnector",
    schema: str,
    table: str,
    key_columns: list[str] | None = None,
    target_schema: str | None = None,
) -> RowDiff:
    """Key-set comparison of one table.

    Uses *key_columns* (default: the source primary key).  Falls back to
    ``COUNT(*)`` with ``exact=False`` when there is no key, or when the
    table is missing in the target (target count 0).
    """
    target_schema = target_schema if target_schema is not None else schema
    src_table = await source.get_table_schema(schema, table)
    keys = key_columns or list(src_table.primary_key)

    try:
        tgt_table = await target.get_table_schema(target_schema, table)
    except IntrospectionError:
        source_count = await _count(source, schema, table)
        return RowDiff(
            table=table,
            source_count=source_count,
            target_count=0,
            missing_in_target=source_count,
            exact=False,
            error=None,
        )

    rule = NameRule.looser((await source.get_name_rules())[1], (await target.get_name_rules())[1])
    src_keys = [_resolve(src_table, k, rule) for k in keys]
    tgt_keys = [_resolve(tgt_table, k, rule) for k in keys]
    if not keys or None in src_keys or None in tgt_keys:
        source_count = await _count(source, schema, table)
        target_count = await _count(target, target_schema, table)
        return RowDiff(
            table=table,
            source_count=source_count,
            target_count=target_count,
            missing_in_target=max(0, source_count - target_count),
            missing_in_source=max(0, target_count - source_count),
            exact=False,
        )

    src_set = await _fetch_keys(_Side(source, schema, src_table, src_keys))
    tgt_set = await _fetch_keys(_Side(target, target_schema, tgt_table, tgt_keys))
    return RowDiff(
        table=table,
        source_count=len(src_set),
        target_count=len(tgt_set),
        missing_in_target=sum(1 for k in src_set if k not in tgt_set),
        missing_in_source=sum(1 for k in tgt_set if k not in src_set),
    )


async def get_table_row_counts(
    source: "DatabaseConnector",
    target: "DatabaseConnector",
    schema: str,
    target_schema: str | None = None,
) -> list[RowDiff]:
    """``RowDiff`` for every source table, in name order.

    Tables are processed one at a time.  A failure on one table is recorded
    on its ``RowDiff.error`` and the rest continue.
    """
    diffs = []
    for info in await source.get_tables(schema):
        if info.table_type != "table":
            continue
        try:
            diffs.append(await get_row_diff(source, target, schema, info.name, target_schema=target_schema))
        except Exception as e:
            logger.warning(f"Row count for '{info.name}' failed: {e}")
            diffs.append(RowDiff(table=info.name, exact=False, error=str(e)))
    return diffs


async def get_table_data_diff(
    source: "DatabaseConnector",
    target: "DatabaseConnector",
    schema: str,
    table: str,
    key_columns: list[str],
    target_schema: str | None = None,
    compare_columns: list[str] | None = None,
    limit: int = 100,
    batch_size: int = 500,
) -> TableDataDiff:
    """The rows behind a ``RowDiff``: missing on either side, or differing.

    Runs the same pre-flight and comparison as ``sync_table_data`` but
    never writes.  Each bucket keeps at most *limit* rows; the totals still
    count every row.

    Raises:
        ConfigurationError: If the key does not qualify on both sides or
            *limit* is negative.
    """
    if limit < 0:
        raise ConfigurationError(f"limit must not be negative, got {limit}")
    target_schema = target_schema if target_schema is not None else schema
    try:
        options = SyncOptions(primary_keys=key_columns, compare_columns=compare_columns, batch_size=batch_size)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid diff options: {e}") from e
    src, tgt, compared, _ = await _prepare(source, target, schema, target_schema, table, options)

    src_keys = await _fetch_keys(src)
    tgt_keys = await _fetch_keys(tgt)
    only_source = [k for k in src_keys if k not in tgt_keys]
    only_target = [k for k in tgt_keys if k not in src_keys]
    in_both = [k for k in src_keys if k in tgt_keys]

    src_all = [c.name for c in src.table.columns]
    tgt_all = [c.name for c in tgt.table.columns]

    missing_in_target = await _fetch_rows(src, src_all, [src_keys[k] for k in only_source[:limit]])
    missing_in_source = await _fetch_rows(tgt, tgt_all, [tgt_keys[k] for k in only_target[:limit]])

    different: list[RowPair] = []
    different_count = 0
    if compared:
        for chunk in _chunks(in_both, batch_size):
            src_rows = await _fetch_rows(src, src_all, [src_keys[k] for k in chunk])
            tgt_rows = await _fetch_rows(tgt, tgt_all, [tgt_keys[k] for k in chunk])
            for key in chunk:
                s_row, t_row = src_rows.get(key), tgt_rows.get(key)
                if s_row is None or t_row is None:
                    continue
                if any(_serialize_value(s_row[s]) != _serialize_value(t_row[t]) for s, t in compared):
                    different_count += 1
                    if len(different) < limit:
                        different.append(RowPair(source=s_row, target=t_row))

    return TableDataDiff(
        table=table,
        key_columns=tuple(src.keys),
        missing_in_target=tuple(missing_in_target[k] for k in only_source[:limit] if k in missing_in_target),
        missing_in_source=tuple(missing_in_source[k] for k in only_target[:limit] if k in missing_in_source),
        different=tuple(different),
        missing_in_target_count=len(only_source),
        missing_in_source_count=len(only_target),
        different_count=different_count,
        limit=limit,
    )


async def sync_rows(
    target: "DatabaseConnector",
    schema: str,
    table: str,
    rows: list[dict[str, Any]],
    key_columns: list[str],
    mode: RowsModeT = "upsert",
    batch_size: int = 500,
) -> SyncResult:
    """Write the given rows (e.g. picked from a ``TableDataDiff``) into *target*.

    Rows whose key is absent from the target are inserted.  Rows already
    present are updated in ``"upsert"`` mode and left alone in ``"insert"``
    mode.  Row fields that are not target columns are ignored, and absent
    fields are left to the column default (insert) or untouched (update).
    A later row with the same key replaces an earlier one.

    Raises:
        ConfigurationError: If *mode* is unknown, the key does not qualify
            on the target, or a row lacks a key value.  Raised before any
            mutating statement.
    """
    if mode not in ("insert", "upsert"):
        raise ConfigurationError(f"Unknown sync mode '{mode}' (expected 'insert' or 'upsert')")
    if batch_size < 1:
        raise ConfigurationError(f"batch_size must be at least 1, got {batch_size}")

    tgt_schema = await _load_table(target, schema, table, "target")
    rule = (await target.get_name_rules())[1]
    tgt = _Side(target, schema, tgt_schema, _check_key(tgt_schema, key_columns, "target", rule))
    key_set = {rule.key(k) for k in tgt.keys}

    # Map each row onto target column names, keyed by its normalized key
    by_key: dict[KeyT, dict[str, Any]] = {}
    for row in rows:
        mapped = {}
        for name, value in row.items():
            column = _resolve(tgt_schema, name, rule)
            if column is not None:
                mapped[column] = value
        native = tuple(mapped.get(k) for k in tgt.keys)
        if any(v is None for v in native):
            raise ConfigurationError(f"Row is missing a value for key column(s) {tgt.keys}: {row}")
        by_key[_normalize_key(native)] = mapped

    keys = list(by_key)
    existing: set[KeyT] = set()
    for chunk in _chunks(keys, batch_size):
        found = await _fetch_rows(tgt, [], [tuple(by_key[k][c] for c in tgt.keys) for k in chunk])
        existing.update(found)

    to_insert = [by_key[k] for k in keys if k not in existing]
    to_update = [by_key[k] for k in keys if k in existing]

    errors: list[str] = []
    skipped: list[str] = []
    inserted = updated = 0

    # Rows can carry different column sets, so each set gets its own statement
    for columns, group in _group_by_columns(to_insert).items():
        param_sets = [{f"p{i}": row[c] for i, c in enumerate(columns)} for row in group]
        sql = _insert_sql(tgt, list(columns))
        inserted += await _run_batches(tgt, "insert", sql, param_sets, batch_size, errors)

    if mode == "upsert":
        for columns, group in _group_by_columns(to_update).items():
            values = [c for c in columns if rule.key(c) not in key_set]
            if not values:
                continue
            param_sets = []
            for row in group:
                params = {f"p{i}": row[c] for i, c in enumerate(values)}
                params.update({f"w{i}": row[k] for i, k in enumerate(tgt.keys)})
                param_sets.append(params)
            sql = _update_sql(tgt, values)
            updated += await _run_batches(tgt, "update", sql, param_sets, batch_size, errors)
    elif to_update:
        skipped.append(f"insert mode: {len(to_update)} row(s) already in target")

    logger.info(
        f"Wrote rows to {target.name}.{table} ({mode}): "
        f"{inserted} inserted, {updated} updated, {len(errors)} error(s)",
        extra={
            "event": "rows_synced",
            "target": target.name,
            "table": table,
            "mode": mode,
            "inserted": inserted,
            "updated": updated,
            "errors": len(errors),
        },
    )
    return SyncResult(
        table=table,
        inserted=inserted,
        updated=updated,
        errors=tuple(errors),
        would_insert=len(to_insert),
        would_update=len(to_update),
        skipped=tuple(skipped),
    )


def _group_by_columns(rows: list[dict[str, Any]]) -> dict[tuple[str, ...], list[dict[str, Any]]]:
    groups: dict[tuple[str, ...], list[dict[str, Any]]] = {}
    for row in rows:
        groups.setdefault(tuple(row), []).append(row)
    return groups
