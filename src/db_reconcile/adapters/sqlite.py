"""SQLite catalog reader.

Uses the table-valued pragma functions (``pragma_table_info``,
``pragma_index_list``, ...) so table names are bound as parameters.
SQLite has a single schema, reported as ``main``.

Indexes SQLite creates for ``UNIQUE`` constraints are named
``sqlite_autoindex_<table>_<n>``; names with the ``sqlite_`` prefix are
reserved, so they are renamed ``uq_<table>_<columns>`` to keep them
recreatable.  Foreign keys have no names in SQLite and are reported as
``fk_<table>_<id>``.
"""

from db_reconcile.adapters.base import QueryFn
from db_reconcile.dialects import NameRule
from db_reconcile.errors import IntrospectionError
from db_reconcile.schema.models import (
    ColumnSchema,
    ForeignKeySchema,
    IndexSchema,
    TableInfo,
    TableSchema,
)

_FK_ACTIONS = {"NO ACTION", "RESTRICT", "CASCADE", "SET NULL", "SET DEFAULT"}


async def get_schemas(run: QueryFn) -> list[str]:
    return ["main"]


async def get_tables(run: QueryFn, schema: str) -> list[TableInfo]:
    """List tables and views (internal ``sqlite_*`` tables excluded)."""
    rows = await run(
        """
        SELECT name, type
        FROM sqlite_master
        WHERE type IN ('table', 'view')
          AND name NOT LIKE 'sqlite_%'
        ORDER BY name
        """,
        None,
    )
    return [
        TableInfo(
            schema_name="main",
            name=row["name"],
            table_type="view" if row["type"] == "view" else "table",
        )
        for row in rows
    ]


async def get_table_schema(run: QueryFn, schema: str, table: str) -> TableSchema:
    """Read columns, indexes, foreign keys, and primary key of a table.

    Raises:
        IntrospectionError: If the table does not exist.
    """
    column_rows = await run(
        """
        SELECT cid, name, type, "notnull" AS not_null, dflt_value, pk
        FROM pragma_table_info(:table)
        ORDER BY cid
        """,
        {"table": table},
    )
    if not column_rows:
        raise IntrospectionError(table, "table not found")

    pk_rows = sorted((row for row in column_rows if row["pk"]), key=lambda r: r["pk"])
    primary_key = [row["name"] for row in pk_rows]

    # A lone INTEGER PRIMARY KEY column is the rowid alias
    rowid_alias = None
    if len(pk_rows) == 1 and (pk_rows[0]["type"] or "").strip().upper() == "INTEGER":
        rowid_alias = pk_rows[0]["name"]

    columns = [
        ColumnSchema(
            name=row["name"],
            data_type=row["type"] or "",
            # PRIMARY KEY columns are implicitly NOT NULL only for the rowid alias
            is_nullable=not row["not_null"] and row["name"] != rowid_alias,
            default=row["dflt_value"],
            ordinal_position=int(row["cid"]) + 1,
            is_autoincrement=row["name"] == rowid_alias,
        )
        for row in column_rows
    ]

    index_rows = await run(
        """
        SELECT name, "unique" AS is_unique, origin
        FROM pragma_index_list(:table)
        ORDER BY name
        """,
        {"table": table},
    )
    indexes = []
    for row in index_rows:
        if row["origin"] == "pk":
            continue
        info = await run(
            """
            SELECT name
            FROM pragma_index_info(:index)
            ORDER BY seqno
            """,
            {"index": row["name"]},
        )
        index_columns = [r["name"] for r in info if r["name"] is not None]
        if not index_columns:
            # Expression index
            continue
        name = row["name"]
        if name.startswith("sqlite_autoindex_"):
            name = f"uq_{table}_{'_'.join(index_columns)}"
        indexes.append(
            IndexSchema(
                name=name,
                columns=index_columns,
                is_unique=bool(row["is_unique"]),
                is_constraint=row["origin"] == "u",
            )
        )

    fk_rows = await run(
        """
        SELECT id, seq, "table" AS ref_table, "from" AS from_column, "to" AS to_column,
               on_update, on_delete
        FROM pragma_foreign_key_list(:table)
        ORDER BY id, seq
        """,
        {"table": table},
    )
    foreign_keys: dict[int, ForeignKeySchema] = {}
    for row in fk_rows:
        fk_id = int(row["id"])
        if fk_id not in foreign_keys:
            foreign_keys[fk_id] = ForeignKeySchema(
                name=f"fk_{table}_{fk_id}",
                columns=[],
                references_schema="main",
                references_table=row["ref_table"],
                references_columns=[],
                on_delete=_action(row["on_delete"]),
                on_update=_action(row["on_update"]),
            )
        foreign_keys[fk_id].columns.append(row["from_column"])
        foreign_keys[fk_id].references_columns.append(row["to_column"])

    for fk in foreign_keys.values():
        if any(col is None for col in fk.references_columns):
            # REFERENCES parent without a column list targets the parent's primary key
            fk.references_columns = await _primary_key(run, fk.references_table)

    return TableSchema(
        schema_name="main",
        name=table,
        columns=columns,
        indexes=indexes,
        foreign_keys=list(foreign_keys.values()),
        primary_key=primary_key,
    )


async def get_server_version(run: QueryFn) -> str:
    rows = await run("SELECT sqlite_version() AS version", None)
    return str(rows[0]["version"]) if rows else ""


async def get_name_rules(run: QueryFn) -> tuple[NameRule, NameRule]:
    """Identifier rules as ``(tables, columns)``; SQLite ignores case for both."""
    return NameRule.CASEFOLD, NameRule.CASEFOLD


async def _primary_key(run: QueryFn, table: str) -> list[str]:
    rows = await run(
        "SELECT name, pk FROM pragma_table_info(:table) WHERE pk > 0 ORDER BY pk",
        {"table": table},
    )
    return [row["name"] for row in rows]


def _action(value: str | None) -> str:
    action = (value or "NO ACTION").upper()
    return action if action in _FK_ACTIONS else "NO ACTION"
