"""Tests for the PostgreSQL and MySQL catalog readers.

The readers only need a ``QueryFn``, so each test serves canned catalog
rows keyed by a fragment of the SQL text.
"""

import pytest
from conftest import FakeConnector

from db_reconcile.adapters import mysql, postgres
from db_reconcile.dialects import NameRule
from db_reconcile.errors import IntrospectionError
from db_reconcile.schema.introspector import SchemaIntrospector
from db_reconcile.schema.models import ColumnSchema, IndexSchema, TableSchema


class CannedCatalog:
    """Async ``QueryFn`` returning fixed rows for the first matching fragment."""

    def __init__(self, responses: list[tuple[str, list[dict]]]) -> None:
        self.responses = responses
        self.calls: list[tuple[str, dict | None]] = []

    async def __call__(self, sql: str, params: dict | None) -> list[dict]:
        self.calls.append((sql, params))
        for fragment, rows in self.responses:
            if fragment in sql:
                return rows
        return []


PG_COLUMNS = [
    {
        "column_name": "id",
        "data_type": "integer",
        "is_nullable": False,
        "column_default": "nextval('orders_id_seq'::regclass)",
        "ordinal_position": 1,
        "is_identity": False,
    },
    {
        "column_name": "email",
        "data_type": "character varying(255)",
        "is_nullable": False,
        "column_default": None,
        "ordinal_position": 2,
        "is_identity": False,
    },
    {
        "column_name": "user_id",
        "data_type": "integer",
        "is_nullable": True,
        "column_default": None,
        "ordinal_position": 3,
        "is_identity": False,
    },
]

PG_INDEXES = [
    {
        "index_name": "orders_email_key",
        "columns": ["email"],
        "is_unique": True,
        "is_primary": False,
        "index_type": "btree",
        "is_constraint": True,
    },
    {
        "index_name": "orders_pkey",
        "columns": ["id"],
        "is_unique": True,
        "is_primary": True,
        "index_type": "btree",
        "is_constraint": False,
    },
    {
        "index_name": "ix_orders_user",
        "columns": ["user_id"],
        "is_unique": False,
        "is_primary": False,
        "index_type": "btree",
        "is_constraint": False,
    },
]

PG_FOREIGN_KEYS = [
    {
        "name": "orders_user_id_fkey",
        "columns": ["user_id"],
        "references_schema": "public",
        "references_table": "users",
        "references_columns": ["id"],
        "on_delete": "c",
        "on_update": "a",
    }
]


class TestPostgresCatalog:
    """``pg_catalog`` rows mapped into ``TableSchema``."""

    @pytest.fixture
    def catalog(self) -> CannedCatalog:
        return CannedCatalog(
            [
                ("FROM pg_index", PG_INDEXES),
                ("FROM pg_constraint", PG_FOREIGN_KEYS),
                ("FROM pg_attribute", PG_COLUMNS),
            ]
        )

    @pytest.mark.asyncio
    async def test_table_schema(self, catalog: CannedCatalog) -> None:
        orders = await postgres.get_table_schema(catalog, "public", "orders")

        assert [c.name for c in orders.columns] == ["id", "email", "user_id"]
        assert orders.columns[0].is_autoincrement
        assert orders.columns[1].data_type == "character varying(255)"
        assert orders.primary_key == ["id"]
        assert catalog.calls[0][1] == {"schema": "public", "table": "orders"}

    @pytest.mark.asyncio
    async def test_unique_constraint_index_flagged(self, catalog: CannedCatalog) -> None:
        orders = await postgres.get_table_schema(catalog, "public", "orders")

        assert [(i.name, i.is_unique, i.is_constraint) for i in orders.indexes] == [
            ("orders_email_key", True, True),
            ("ix_orders_user", False, False),
        ]

    @pytest.mark.asyncio
    async def test_foreign_key_action_codes(self, catalog: CannedCatalog) -> None:
        orders = await postgres.get_table_schema(catalog, "public", "orders")

        fk = orders.foreign_keys[0]
        assert (fk.references_table, fk.references_columns, fk.on_delete, fk.on_update) == (
            "users",
            ["id"],
            "CASCADE",
            "NO ACTION",
        )

    @pytest.mark.asyncio
    async def test_missing_table(self) -> None:
        with pytest.raises(IntrospectionError, match="not found"):
            await postgres.get_table_schema(CannedCatalog([]), "public", "nope")

    @pytest.mark.asyncio
    async def test_tables_row_estimates(self) -> None:
        catalog = CannedCatalog(
            [
                (
                    "FROM pg_class",
                    [
                        {"table_name": "orders", "kind": "r", "row_estimate": 120},
                        {"table_name": "fresh", "kind": "r", "row_estimate": -1},
                        {"table_name": "totals", "kind": "m", "row_estimate": 3},
                    ],
                )
            ]
        )

        tables = await postgres.get_tables(catalog, "public")

        assert [(t.name, t.table_type, t.row_count) for t in tables] == [
            ("orders", "table", 120),
            ("fresh", "table", None),
            ("totals", "view", 3),
        ]

    @pytest.mark.asyncio
    async def test_names_are_exact(self) -> None:
        assert await postgres.get_name_rules(CannedCatalog([])) == (NameRule.EXACT, NameRule.EXACT)


MYSQL_COLUMNS = [
    {
        "column_name": "id",
        "column_type": b"int unsigned",
        "is_nullable": "NO",
        "column_default": None,
        "ordinal_position": 1,
        "extra": "auto_increment",
    },
    {
        "column_name": "active",
        "column_type": "tinyint(1)",
        "is_nullable": "YES",
        "column_default": b"1",
        "ordinal_position": 2,
        "extra": "",
    },
]

MYSQL_STATISTICS = [
    {"index_name": "PRIMARY", "column_name": "order_id", "non_unique": 0, "index_type": "BTREE"},
    {"index_name": "PRIMARY", "column_name": "line", "non_unique": 0, "index_type": "BTREE"},
    {"index_name": "ix_lookup", "column_name": "sku", "non_unique": 1, "index_type": "BTREE"},
    {"index_name": "ix_lookup", "column_name": "line", "non_unique": 1, "index_type": "BTREE"},
    {"index_name": "ix_expr", "column_name": None, "non_unique": 1, "index_type": "BTREE"},
    {"index_name": "uq_code", "column_name": "code", "non_unique": 0, "index_type": None},
]

MYSQL_FOREIGN_KEYS = [
    {
        "name": "fk_parent",
        "column_name": "order_id",
        "references_schema": "shop",
        "references_table": "parents",
        "references_column": "id",
        "on_delete": "CASCADE",
        "on_update": None,
    },
    {
        "name": "fk_parent",
        "column_name": "line",
        "references_schema": "shop",
        "references_table": "parents",
        "references_column": "line_no",
        "on_delete": "CASCADE",
        "on_update": None,
    },
]


class TestMySQLCatalog:
    """``information_schema`` rows mapped into ``TableSchema``."""

    @pytest.fixture
    def catalog(self) -> CannedCatalog:
        return CannedCatalog(
            [
                ("information_schema.COLUMNS", MYSQL_COLUMNS),
                ("information_schema.STATISTICS", MYSQL_STATISTICS),
                ("KEY_COLUMN_USAGE", MYSQL_FOREIGN_KEYS),
            ]
        )

    @pytest.mark.asyncio
    async def test_columns_decode_bytes(self, catalog: CannedCatalog) -> None:
        lines = await mysql.get_table_schema(catalog, "shop", "order_lines")

        id_col, active = lines.columns
        assert (id_col.data_type, id_col.is_nullable, id_col.is_autoincrement) == ("int unsigned", False, True)
        assert (active.data_type, active.default, active.is_nullable) == ("tinyint(1)", "1", True)

    @pytest.mark.asyncio
    async def test_indexes_grouped_by_name(self, catalog: CannedCatalog) -> None:
        lines = await mysql.get_table_schema(catalog, "shop", "order_lines")

        assert lines.primary_key == ["order_id", "line"]
        assert [(i.name, i.columns, i.is_unique, i.index_type) for i in lines.indexes] == [
            ("ix_lookup", ["sku", "line"], False, "btree"),
            ("uq_code", ["code"], True, "btree"),
        ]

    @pytest.mark.asyncio
    async def test_composite_foreign_key(self, catalog: CannedCatalog) -> None:
        lines = await mysql.get_table_schema(catalog, "shop", "order_lines")

        assert len(lines.foreign_keys) == 1
        fk = lines.foreign_keys[0]
        assert (fk.columns, fk.references_columns, fk.on_delete, fk.on_update) == (
            ["order_id", "line"],
            ["id", "line_no"],
            "CASCADE",
            "NO ACTION",
        )

    @pytest.mark.asyncio
    async def test_missing_table(self) -> None:
        with pytest.raises(IntrospectionError, match="database 'shop'"):
            await mysql.get_table_schema(CannedCatalog([]), "shop", "nope")

    @pytest.mark.asyncio
    async def test_tables(self) -> None:
        catalog = CannedCatalog(
            [
                (
                    "information_schema.TABLES",
                    [
                        {"table_name": "orders", "table_type": "BASE TABLE", "row_count": 42},
                        {"table_name": "v_orders", "table_type": "VIEW", "row_count": None},
                    ],
                )
            ]
        )

        tables = await mysql.get_tables(catalog, "shop")

        assert [(t.name, t.table_type, t.row_count) for t in tables] == [
            ("orders", "table", 42),
            ("v_orders", "view", None),
        ]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "setting,tables_rule",
        [(0, NameRule.EXACT), (1, NameRule.CASEFOLD), (2, NameRule.CASEFOLD)],
    )
    async def test_name_rules(self, setting: int, tables_rule: NameRule) -> None:
        catalog = CannedCatalog([("lower_case_table_names", [{"value": setting}])])

        assert await mysql.get_name_rules(catalog) == (tables_rule, NameRule.CASEFOLD)


class TestConstraintFlagInSnapshot:
    @pytest.mark.asyncio
    async def test_flag_reaches_index_def(self) -> None:
        schema = TableSchema(
            schema_name="public",
            name="users",
            columns=[ColumnSchema(name="id", data_type="integer", is_nullable=False)],
            indexes=[IndexSchema(name="users_id_key", columns=["id"], is_unique=True, is_constraint=True)],
        )

        snap = await SchemaIntrospector(FakeConnector("db", tables=[schema])).introspect("public")

        assert snap.table("users").indexes[0].constraint is True
