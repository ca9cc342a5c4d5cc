"""Shared fixtures and builders.

``FakeConnector`` serves catalog metadata from memory and records every
statement call as an ``AsyncMock``, so tests can assert exactly which
queries were (or were not) issued.  Row-level behaviour is tested against
real SQLite files instead (see ``sqlite_urls``).
"""

from unittest.mock import AsyncMock

import pytest

from db_reconcile.dialects import Engine, NameRule
from db_reconcile.errors import IntrospectionError
from db_reconcile.schema.models import (
    ColumnDef,
    ColumnSchema,
    ConnectionTestResult,
    ForeignKeyDef,
    IndexDef,
    IndexSchema,
    SchemaSnapshot,
    TableDef,
    TableInfo,
    TableSchema,
)
from db_reconcile.schema.types import normalize_type


# ------------------------------------------------------------------
# Snapshot builders
# ------------------------------------------------------------------


def col(
    name: str,
    type_name: str = "integer",
    nullable: bool = True,
    default: str | None = None,
    autoincrement: bool = False,
    engine: Engine = Engine.POSTGRES,
) -> ColumnDef:
    return ColumnDef(
        name=name,
        data_type=normalize_type(engine, type_name),
        nullable=nullable,
        default=default,
        autoincrement=autoincrement,
    )


def table(
    name: str,
    *columns: ColumnDef,
    primary_key: tuple[str, ...] = ("id",),
    indexes: tuple[IndexDef, ...] = (),
    foreign_keys: tuple[ForeignKeyDef, ...] = (),
) -> TableDef:
    return TableDef(
        name=name,
        columns=tuple(
            c.model_copy(update={"ordinal_position": i}) for i, c in enumerate(columns, start=1)
        ),
        primary_key=primary_key,
        indexes=indexes,
        foreign_keys=foreign_keys,
    )


def snapshot(
    *tables: TableDef,
    engine: Engine = Engine.POSTGRES,
    schema_name: str = "public",
    rule: NameRule = NameRule.EXACT,
) -> SchemaSnapshot:
    return SchemaSnapshot(
        engine=engine,
        schema_name=schema_name,
        tables=tables,
        table_name_rule=rule,
        column_name_rule=rule,
    )


def users_table(*extra: ColumnDef) -> TableDef:
    return table("users", col("id", nullable=False), *extra)


def orders_table() -> TableDef:
    return table(
        "orders",
        col("id", nullable=False),
        col("user_id", nullable=False),
        col("total", "numeric(10,2)"),
        indexes=(IndexDef(name="idx_orders_user", columns=("user_id",)),),
        foreign_keys=(
            ForeignKeyDef(
                name="fk_orders_user",
                columns=("user_id",),
                ref_table="users",
                ref_columns=("id",),
                on_delete="CASCADE",
            ),
        ),
    )


# ------------------------------------------------------------------
# Fake connector
# ------------------------------------------------------------------


class FakeConnector:
    """In-memory ``DatabaseConnector`` for catalog-level tests.

    ``query``, ``execute`` and ``execute_batch`` are ``AsyncMock`` objects;
    configure their ``return_value``/``side_effect`` per test.
    """

    def __init__(
        self,
        name: str = "fake",
        engine: Engine = Engine.POSTGRES,
        tables: list[TableSchema] | None = None,
        rules: tuple[NameRule, NameRule] = (NameRule.EXACT, NameRule.EXACT),
    ) -> None:
        self.name = name
        self.engine = engine
        self.tables = {t.name: t for t in tables or []}
        self.rules = rules
        self.query = AsyncMock(return_value=[])
        self.execute = AsyncMock(return_value=0)
        self.execute_batch = AsyncMock(side_effect=lambda sql, params: len(params))
        self.connected = False

    async def connect(self) -> None:
        self.connected = True

    async def disconnect(self) -> None:
        self.connected = False

    def is_connected(self) -> bool:
        return self.connected

    async def get_schemas(self) -> list[str]:
        return ["public"]

    async def get_tables(self, schema: str) -> list[TableInfo]:
        return [TableInfo(schema_name=schema, name=name) for name in sorted(self.tables)]

    async def get_table_schema(self, schema: str, table: str) -> TableSchema:
        if table not in self.tables:
            raise IntrospectionError(table, "table not found")
        return self.tables[table]

    async def get_server_version(self) -> str:
        return "fake 1.0"

    async def get_name_rules(self) -> tuple[NameRule, NameRule]:
        return self.rules

    async def test_connection(self) -> ConnectionTestResult:
        return ConnectionTestResult(success=True, message="ok", server_version="fake 1.0")


def orders_schema(id_nullable: bool = False, with_pk: bool = True) -> TableSchema:
    """Catalog description of ``orders(id, customer, amount)``."""
    return TableSchema(
        schema_name="public",
        name="orders",
        columns=[
            ColumnSchema(name="id", data_type="integer", is_nullable=id_nullable),
            ColumnSchema(name="customer", data_type="text"),
            ColumnSchema(name="amount", data_type="numeric(10,2)"),
        ],
        indexes=[IndexSchema(name="orders_pkey", columns=["id"], is_unique=True, is_primary=True)]
        if with_pk
        else [],
        primary_key=["id"] if with_pk else [],
    )


@pytest.fixture
def fake_pair() -> tuple[FakeConnector, FakeConnector]:
    """Source and target fakes that both hold ``orders``."""
    return (
        FakeConnector("source", tables=[orders_schema()]),
        FakeConnector("target", tables=[orders_schema()]),
    )


# ------------------------------------------------------------------
# SQLite files
# ------------------------------------------------------------------


@pytest.fixture
def sqlite_urls(tmp_path) -> tuple[str, str]:
    """URLs of two empty SQLite database files (source, target)."""
    return (
        f"sqlite:///{tmp_path / 'source.db'}",
        f"sqlite:///{tmp_path / 'target.db'}",
    )


async def run_script(connector, statements: list[str]) -> None:
    for statement in statements:
        await connector.execute(statement)
