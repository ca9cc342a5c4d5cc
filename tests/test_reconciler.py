"""Tests for row-level data reconciliation.

Pre-flight checks run against ``FakeConnector`` so the tests can assert
that no query was issued.  Row movement runs against two real SQLite
files through ``SqlConnector``.
"""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from uuid import UUID

import pytest
from conftest import FakeConnector, orders_schema, run_script

from db_reconcile.adapters import SqlConnector
from db_reconcile.errors import ConfigurationError, PartialFailure
from db_reconcile.schema.models import ColumnSchema, IndexSchema, TableSchema
from db_reconcile.sync.models import RowDiff, SyncOptions, SyncResult
from db_reconcile.sync.reconciler import (
    _serialize_value,
    get_row_diff,
    get_table_data_diff,
    get_table_row_counts,
    sync_rows,
    sync_table_data,
)

ORDERS_DDL = "CREATE TABLE orders (id INTEGER PRIMARY KEY, customer TEXT, amount NUMERIC)"


async def _seed_orders(connector: SqlConnector, rows: list[tuple]) -> None:
    await run_script(connector, [ORDERS_DDL])
    if rows:
        await connector.execute_batch(
            "INSERT INTO orders (id, customer, amount) VALUES (:id, :customer, :amount)",
            [{"id": r[0], "customer": r[1], "amount": r[2]} for r in rows],
        )


async def _orders(connector: SqlConnector) -> dict[int, dict]:
    rows = await connector.query("SELECT id, customer, amount FROM orders ORDER BY id")
    return {row["id"]: row for row in rows}


class TestSyncOptions:
    """Option validation."""

    def test_defaults(self) -> None:
        options = SyncOptions(primary_keys=["id"])
        assert options.insert_missing
        assert options.update_different
        assert not options.delete_extra
        assert options.batch_size == 500
        assert options.applies_changes

    def test_empty_keys_rejected(self) -> None:
        with pytest.raises(ValueError):
            SyncOptions(primary_keys=[])

    def test_duplicate_keys_rejected(self) -> None:
        with pytest.raises(ValueError):
            SyncOptions(primary_keys=["id", "id"])

    def test_batch_size_bounds(self) -> None:
        with pytest.raises(ValueError):
            SyncOptions(primary_keys=["id"], batch_size=0)

    def test_no_flags_applies_nothing(self) -> None:
        options = SyncOptions(primary_keys=["id"], insert_missing=False, update_different=False)
        assert not options.applies_changes


class TestSerializeValue:
    """Driver values normalized for comparison."""

    def test_uuid(self) -> None:
        value = UUID("12345678-1234-5678-1234-567812345678")
        assert _serialize_value(value) == "12345678-1234-5678-1234-567812345678"

    def test_aware_datetime_to_naive_utc(self) -> None:
        aware = datetime(2024, 1, 1, 12, 0, tzinfo=timezone(timedelta(hours=2)))
        assert _serialize_value(aware) == "2024-01-01T10:00:00"
        assert _serialize_value(datetime(2024, 1, 1, 10, 0)) == "2024-01-01T10:00:00"

    def test_date(self) -> None:
        assert _serialize_value(date(2024, 5, 1)) == "2024-05-01"

    def test_float_matches_decimal(self) -> None:
        assert _serialize_value(10.5) == _serialize_value(Decimal("10.5"))

    def test_memoryview_to_bytes(self) -> None:
        assert _serialize_value(memoryview(b"ab")) == b"ab"

    def test_passthrough(self) -> None:
        assert _serialize_value("x") == "x"
        assert _serialize_value(None) is None


class TestPreflight:
    """Key validation happens before any row query."""

    @pytest.mark.asyncio
    async def test_nullable_key_fails_before_any_query(self) -> None:
        source = FakeConnector("source", tables=[orders_schema(id_nullable=True, with_pk=False)])
        target = FakeConnector("target", tables=[orders_schema()])

        with pytest.raises(ConfigurationError, match="nullable"):
            await sync_table_data(source, target, "public", "orders", SyncOptions(primary_keys=["id"]))

        source.query.assert_not_awaited()
        target.query.assert_not_awaited()
        target.execute_batch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_key_column(self, fake_pair) -> None:
        source, target = fake_pair

        with pytest.raises(ConfigurationError, match="not found"):
            await sync_table_data(source, target, "public", "orders", SyncOptions(primary_keys=["order_no"]))

        source.query.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_key_must_be_unique(self, fake_pair) -> None:
        source, target = fake_pair
        customer_not_null = orders_schema().model_copy(
            update={
                "columns": [
                    ColumnSchema(name="id", data_type="integer", is_nullable=False),
                    ColumnSchema(name="customer", data_type="text", is_nullable=False),
                ]
            }
        )
        source.tables["orders"] = customer_not_null
        target.tables["orders"] = customer_not_null

        with pytest.raises(ConfigurationError, match="not the primary key or a unique index"):
            await sync_table_data(source, target, "public", "orders", SyncOptions(primary_keys=["customer"]))

    @pytest.mark.asyncio
    async def test_unique_index_key_accepted(self, fake_pair) -> None:
        """A NOT NULL column covered by a unique index qualifies as a key."""
        source, target = fake_pair
        with_code = TableSchema(
            schema_name="public",
            name="orders",
            columns=[
                ColumnSchema(name="id", data_type="integer", is_nullable=False),
                ColumnSchema(name="code", data_type="text", is_nullable=False),
            ],
            indexes=[IndexSchema(name="uq_code", columns=["code"], is_unique=True)],
            primary_key=["id"],
        )
        source.tables["orders"] = with_code
        target.tables["orders"] = with_code

        result = await sync_table_data(source, target, "public", "orders", SyncOptions(primary_keys=["code"]))

        assert result.success
        assert result.would_insert == 0

    @pytest.mark.asyncio
    async def test_missing_target_table(self, fake_pair) -> None:
        source, target = fake_pair
        target.tables.clear()

        with pytest.raises(ConfigurationError, match="target"):
            await sync_table_data(source, target, "public", "orders", SyncOptions(primary_keys=["id"]))

    @pytest.mark.asyncio
    async def test_null_key_value_fails_before_writes(self, fake_pair) -> None:
        source, target = fake_pair
        source.query.return_value = [{"id": 1}, {"id": None}]

        with pytest.raises(ConfigurationError, match="NULL"):
            await sync_table_data(source, target, "public", "orders", SyncOptions(primary_keys=["id"]))

        target.execute_batch.assert_not_awaited()


class TestBatchFailures:
    """A failed batch is recorded and later batches still run."""

    @pytest.mark.asyncio
    async def test_failed_delete_batch_recorded(self, fake_pair) -> None:
        source, target = fake_pair
        source.query.return_value = []
        target.query.return_value = [{"id": i} for i in range(1, 6)]
        target.execute_batch.side_effect = [Exception("lock timeout"), 2, 1]

        options = SyncOptions(primary_keys=["id"], delete_extra=True, batch_size=2)
        result = await sync_table_data(source, target, "public", "orders", options)

        assert result.deleted == 3
        assert result.errors == ("delete batch 1 (2 rows) failed: lock timeout",)
        assert result.partial
        assert target.execute_batch.await_count == 3
        with pytest.raises(PartialFailure) as exc_info:
            result.raise_for_errors()
        assert exc_info.value.succeeded == 3

    @pytest.mark.asyncio
    async def test_failed_insert_batch_recorded(self, fake_pair) -> None:
        source, target = fake_pair
        source.query.side_effect = [
            [{"id": 1}, {"id": 2}, {"id": 3}],
            [{"id": 1, "customer": "a", "amount": 1}, {"id": 2, "customer": "b", "amount": 2}],
            [{"id": 3, "customer": "c", "amount": 3}],
        ]
        target.query.return_value = []
        target.execute_batch.side_effect = [Exception("duplicate key"), 1]

        options = SyncOptions(primary_keys=["id"], batch_size=2)
        result = await sync_table_data(source, target, "public", "orders", options)

        assert result.inserted == 1
        assert result.errors == ("insert batch 1 (2 rows) failed: duplicate key",)
        sql, params = target.execute_batch.await_args_list[1].args
        assert sql == 'INSERT INTO "public"."orders" ("id", "customer", "amount") VALUES (:p0, :p1, :p2)'
        assert params == [{"p0": 3, "p1": "c", "p2": 3}]


class TestSyncSQLite:
    """End-to-end reconciliation between two SQLite files."""

    @pytest.mark.asyncio
    async def test_orders_scenario(self, sqlite_urls) -> None:
        """100 source rows; target holds 95 of them, 5 with different values."""
        source_rows = [(i, f"customer-{i}", i * 10) for i in range(1, 101)]
        target_rows = [
            (i, f"customer-{i}" if i > 5 else f"stale-{i}", i * 10) for i in range(1, 96)
        ]

        async with SqlConnector(sqlite_urls[0], name="source") as source, SqlConnector(sqlite_urls[1], name="target") as target:
            await _seed_orders(source, source_rows)
            await _seed_orders(target, target_rows)

            options = SyncOptions(primary_keys=["id"], insert_missing=True, update_different=True, delete_extra=False)
            result = await sync_table_data(source, target, "main", "orders", options)

            assert (result.inserted, result.updated, result.deleted) == (5, 5, 0)
            assert result.errors == ()
            assert result.row_diff.missing_in_target == 5
            rows = await _orders(target)
            assert len(rows) == 100
            assert rows[3]["customer"] == "customer-3"
            assert rows[100]["customer"] == "customer-100"

            # A second run finds nothing to do
            again = await sync_table_data(source, target, "main", "orders", options)
            assert (again.would_insert, again.would_update, again.would_delete) == (0, 0, 0)

    @pytest.mark.asyncio
    async def test_all_flags_off_changes_nothing(self, sqlite_urls) -> None:
        async with SqlConnector(sqlite_urls[0], name="source") as source, SqlConnector(sqlite_urls[1], name="target") as target:
            await _seed_orders(source, [(1, "a", 1), (2, "b", 2), (3, "c", 3)])
            await _seed_orders(target, [(2, "B", 2), (3, "c", 3), (4, "d", 4)])
            before = await _orders(target)

            options = SyncOptions(
                primary_keys=["id"], insert_missing=False, update_different=False, delete_extra=False
            )
            result = await sync_table_data(source, target, "main", "orders", options)

            assert (result.inserted, result.updated, result.deleted) == (0, 0, 0)
            assert (result.would_insert, result.would_update, result.would_delete) == (1, 1, 1)
            assert len(result.skipped) == 3
            assert result.row_diff == RowDiff(
                table="orders", source_count=3, target_count=3, missing_in_target=1, missing_in_source=1
            )
            assert await _orders(target) == before

    @pytest.mark.asyncio
    async def test_delete_extra(self, sqlite_urls) -> None:
        async with SqlConnector(sqlite_urls[0], name="source") as source, SqlConnector(sqlite_urls[1], name="target") as target:
            await _seed_orders(source, [(1, "a", 1)])
            await _seed_orders(target, [(1, "a", 1), (2, "b", 2), (3, "c", 3)])

            options = SyncOptions(primary_keys=["id"], delete_extra=True, batch_size=1)
            result = await sync_table_data(source, target, "main", "orders", options)

            assert result.deleted == 2
            assert list(await _orders(target)) == [1]

    @pytest.mark.asyncio
    async def test_compare_columns_limits_updates(self, sqlite_urls) -> None:
        async with SqlConnector(sqlite_urls[0], name="source") as source, SqlConnector(sqlite_urls[1], name="target") as target:
            await _seed_orders(source, [(1, "a", 100)])
            await _seed_orders(target, [(1, "other", 100)])

            options = SyncOptions(primary_keys=["id"], compare_columns=["amount"])
            result = await sync_table_data(source, target, "main", "orders", options)

            assert result.would_update == 0
            assert (await _orders(target))[1]["customer"] == "other"

    @pytest.mark.asyncio
    async def test_inserts_carry_columns_outside_compare_columns(self, sqlite_urls) -> None:
        async with SqlConnector(sqlite_urls[0], name="source") as source, SqlConnector(sqlite_urls[1], name="target") as target:
            await _seed_orders(source, [(1, "a", 100), (2, "b", 200)])
            await _seed_orders(target, [(1, "other", 100)])

            options = SyncOptions(primary_keys=["id"], compare_columns=["amount"])
            result = await sync_table_data(source, target, "main", "orders", options)

            assert result.inserted == 1
            rows = await _orders(target)
            assert (rows[2]["customer"], rows[2]["amount"]) == ("b", 200)
            assert rows[1]["customer"] == "other"

    @pytest.mark.asyncio
    async def test_composite_key(self, sqlite_urls) -> None:
        ddl = "CREATE TABLE lines (order_id INTEGER NOT NULL, line INTEGER NOT NULL, qty INTEGER, PRIMARY KEY (order_id, line))"
        async with SqlConnector(sqlite_urls[0], name="source") as source, SqlConnector(sqlite_urls[1], name="target") as target:
            await run_script(source, [ddl, "INSERT INTO lines VALUES (1, 1, 5), (1, 2, 7), (2, 1, 1)"])
            await run_script(target, [ddl, "INSERT INTO lines VALUES (1, 1, 5), (1, 2, 3)"])

            options = SyncOptions(primary_keys=["order_id", "line"])
            result = await sync_table_data(source, target, "main", "lines", options)

            assert (result.inserted, result.updated) == (1, 1)
            rows = await target.query("SELECT order_id, line, qty FROM lines ORDER BY order_id, line")
            assert [(r["order_id"], r["line"], r["qty"]) for r in rows] == [(1, 1, 5), (1, 2, 7), (2, 1, 1)]


class TestRowCounts:
    """Row diffs and the COUNT(*) fallback."""

    @pytest.mark.asyncio
    async def test_table_row_counts(self, sqlite_urls) -> None:
        async with SqlConnector(sqlite_urls[0], name="source") as source, SqlConnector(sqlite_urls[1], name="target") as target:
            await _seed_orders(source, [(1, "a", 1), (2, "b", 2)])
            await _seed_orders(target, [(2, "b", 2), (3, "c", 3), (4, "d", 4)])
            await run_script(source, ["CREATE TABLE notes (body TEXT)", "INSERT INTO notes VALUES ('x'), ('y')"])
            await run_script(source, ["CREATE TABLE only_source (id INTEGER PRIMARY KEY)", "INSERT INTO only_source VALUES (1)"])
            await run_script(target, ["CREATE TABLE notes (body TEXT)", "INSERT INTO notes VALUES ('x')"])

            diffs = {d.table: d for d in await get_table_row_counts(source, target, "main")}

        assert diffs["orders"] == RowDiff(
            table="orders", source_count=2, target_count=3, missing_in_target=1, missing_in_source=2
        )
        assert not diffs["orders"].in_sync
        assert diffs["notes"].exact is False
        assert (diffs["notes"].source_count, diffs["notes"].target_count) == (2, 1)
        assert diffs["notes"].missing_in_target == 1
        assert diffs["only_source"].exact is False
        assert diffs["only_source"].target_count == 0
        assert diffs["only_source"].missing_in_target == 1

    @pytest.mark.asyncio
    async def test_per_table_failure_recorded(self, fake_pair) -> None:
        source, target = fake_pair
        source.query.side_effect = Exception("permission denied for table orders")

        diffs = await get_table_row_counts(source, target, "public")

        assert len(diffs) == 1
        assert "permission denied" in diffs[0].error
        assert not diffs[0].in_sync

    @pytest.mark.asyncio
    async def test_row_diff_in_sync(self, fake_pair) -> None:
        source, target = fake_pair
        source.query.return_value = [{"id": 1}, {"id": 2}]
        target.query.return_value = [{"id": 2}, {"id": 1}]

        diff = await get_row_diff(source, target, "public", "orders")

        assert diff.in_sync
        assert diff.exact


class TestSyncResult:
    def test_partial_requires_some_success(self) -> None:
        assert not SyncResult(table="t", errors=("insert batch 1 (1 rows) failed: x",)).partial
        assert SyncResult(table="t", inserted=1, errors=("x",)).partial
        assert SyncResult(table="t").success


class TestTableDataDiff:
    """Differing rows, capped per bucket."""

    @pytest.mark.asyncio
    async def test_buckets(self, sqlite_urls) -> None:
        async with SqlConnector(sqlite_urls[0], name="source") as source, SqlConnector(sqlite_urls[1], name="target") as target:
            await _seed_orders(source, [(1, "a", 1), (2, "b", 2), (3, "c", 3)])
            await _seed_orders(target, [(2, "B", 2), (3, "c", 3), (4, "d", 4)])

            diff = await get_table_data_diff(source, target, "main", "orders", ["id"])

            assert [r["id"] for r in diff.missing_in_target] == [1]
            assert diff.missing_in_target[0]["customer"] == "a"
            assert [r["id"] for r in diff.missing_in_source] == [4]
            assert [(p.source["customer"], p.target["customer"]) for p in diff.different] == [("b", "B")]
            assert not diff.truncated
            assert diff.key_columns == ("id",)
            assert await _orders(target) == {
                2: {"id": 2, "customer": "B", "amount": 2},
                3: {"id": 3, "customer": "c", "amount": 3},
                4: {"id": 4, "customer": "d", "amount": 4},
            }

    @pytest.mark.asyncio
    async def test_limit_truncates_but_counts_everything(self, sqlite_urls) -> None:
        async with SqlConnector(sqlite_urls[0], name="source") as source, SqlConnector(sqlite_urls[1], name="target") as target:
            await _seed_orders(source, [(i, f"c{i}", i) for i in range(1, 11)])
            await _seed_orders(target, [(i, f"x{i}", i) for i in range(1, 4)])

            diff = await get_table_data_diff(source, target, "main", "orders", ["id"], limit=2)

            assert len(diff.missing_in_target) == 2
            assert diff.missing_in_target_count == 7
            assert len(diff.different) == 2
            assert diff.different_count == 3
            assert diff.truncated

    @pytest.mark.asyncio
    async def test_compare_columns_respected(self, sqlite_urls) -> None:
        async with SqlConnector(sqlite_urls[0], name="source") as source, SqlConnector(sqlite_urls[1], name="target") as target:
            await _seed_orders(source, [(1, "a", 1)])
            await _seed_orders(target, [(1, "other", 1)])

            diff = await get_table_data_diff(
                source, target, "main", "orders", ["id"], compare_columns=["amount"]
            )

            assert diff.is_empty

    @pytest.mark.asyncio
    async def test_invalid_key_list(self, fake_pair) -> None:
        source, target = fake_pair

        with pytest.raises(ConfigurationError):
            await get_table_data_diff(source, target, "public", "orders", [])

        source.query.assert_not_awaited()


class TestSyncRows:
    """Writing chosen rows in insert or upsert mode."""

    @pytest.mark.asyncio
    async def test_upsert(self, sqlite_urls) -> None:
        async with SqlConnector(sqlite_urls[1], name="target") as target:
            await _seed_orders(target, [(1, "a", 1), (2, "b", 2)])

            result = await sync_rows(
                target,
                "main",
                "orders",
                [
                    {"id": 2, "customer": "B", "amount": 20, "not_a_column": "x"},
                    {"id": 3, "customer": "c", "amount": 3},
                ],
                ["id"],
            )

            assert (result.inserted, result.updated) == (1, 1)
            assert result.errors == ()
            rows = await _orders(target)
            assert (rows[2]["customer"], rows[2]["amount"]) == ("B", 20)
            assert rows[3]["customer"] == "c"
            assert rows[1]["customer"] == "a"

    @pytest.mark.asyncio
    async def test_insert_mode_leaves_existing_rows(self, sqlite_urls) -> None:
        async with SqlConnector(sqlite_urls[1], name="target") as target:
            await _seed_orders(target, [(1, "a", 1)])

            result = await sync_rows(
                target,
                "main",
                "orders",
                [{"id": 1, "customer": "changed", "amount": 9}, {"id": 2, "customer": "b"}],
                ["id"],
                mode="insert",
            )

            assert (result.inserted, result.updated) == (1, 0)
            assert result.would_update == 1
            assert result.skipped == ("insert mode: 1 row(s) already in target",)
            rows = await _orders(target)
            assert rows[1]["customer"] == "a"
            assert (rows[2]["customer"], rows[2]["amount"]) == ("b", None)

    @pytest.mark.asyncio
    async def test_rows_from_data_diff(self, sqlite_urls) -> None:
        async with SqlConnector(sqlite_urls[0], name="source") as source, SqlConnector(sqlite_urls[1], name="target") as target:
            await _seed_orders(source, [(1, "a", 1), (2, "b", 2)])
            await _seed_orders(target, [(2, "B", 2)])

            diff = await get_table_data_diff(source, target, "main", "orders", ["id"])
            rows = list(diff.missing_in_target) + [pair.source for pair in diff.different]
            await sync_rows(target, "main", "orders", rows, ["id"])

            assert (await get_table_data_diff(source, target, "main", "orders", ["id"])).is_empty

    @pytest.mark.asyncio
    async def test_failed_batch_recorded(self, fake_pair) -> None:
        _, target = fake_pair
        target.execute_batch.side_effect = Exception("disk full")

        result = await sync_rows(target, "public", "orders", [{"id": 1, "customer": "a"}], ["id"])

        assert result.inserted == 0
        assert result.errors == ("insert batch 1 (1 rows) failed: disk full",)

    @pytest.mark.asyncio
    async def test_unknown_mode(self, fake_pair) -> None:
        _, target = fake_pair

        with pytest.raises(ConfigurationError, match="Unknown sync mode"):
            await sync_rows(target, "public", "orders", [{"id": 1}], ["id"], mode="replace")

        target.query.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_row_without_key_rejected_before_writes(self, fake_pair) -> None:
        _, target = fake_pair

        with pytest.raises(ConfigurationError, match="missing a value for key"):
            await sync_rows(target, "public", "orders", [{"id": 1}, {"customer": "x"}], ["id"])

        target.execute_batch.assert_not_awaited()
