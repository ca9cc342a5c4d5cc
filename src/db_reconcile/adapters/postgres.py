"""PostgreSQL catalog reader.

Reads tables, columns, indexes, and foreign keys from ``pg_catalog``.
Column types come from ``format_type()`` so lengths and precisions are
included (``character varying(255)``, ``numeric(10,2)``), which
``information_schema.columns.data_type`` drops.

Every function takes a ``QueryFn`` (usually ``SqlConnector.query``) rather
than a connection, so the catalog logic is independent of the driver.
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

# pg_constraint.confdeltype / confupdtype codes
_FK_ACTIONS = {
    "a": "NO ACTION",
    "r": "RESTRICT",
    "c": "CASCADE",
    "n": "SET NULL",
    "d": "SET DEFAULT",
}


async def get_schemas(run: QueryFn) -> list[str]:
    """List user schemas."""
    rows = await run(
        """
        SELECT schema_name
        FROM information_schema.schemata
        WHERE schema_name NOT IN ('pg_catalog', 'information_schema', 'pg_toast')
          AND schema_name NOT LIKE 'pg_temp_%'
          AND schema_name NOT LIKE 'pg_toast_temp_%'
        ORDER BY schema_name
        """,
        None,
    )
    return [row["schema_name"] for row in rows]


async def get_tables(run: QueryFn, schema: str) -> list[TableInfo]:
    """List tables and views in schema, with planner row estimates."""
    rows = await run(
        """
        SELECT
            c.relname AS table_name,
            c.relkind::text AS kind,
            c.reltuples::bigint AS row_estimate
        FROM pg_class c
        JOIN pg_namespace n ON n.oid = c.relnamespace
        WHERE n.nspname = :schema
          AND c.relkind IN ('r', 'p', 'v', 'm')
          AND NOT c.relispartition
        ORDER BY c.relname
        """,
        {"schema": schema},
    )
    tables = []
    for row in rows:
        estimate = row["row_estimate"]
        tables.append(
            TableInfo(
                schema_name=schema,
                name=row["table_name"],
                table_type="view" if row["kind"] in ("v", "m") else "table",
                # -1 means "never analyzed"
                row_count=estimate if estimate is not None and estimate >= 0 else None,
            )
        )
    return tables


async def get_table_schema(run: QueryFn, schema: str, table: str) -> TableSchema:
    """Read columns, indexes, foreign keys, and primary key of a table.

    Raises:
        IntrospectionError: If the table does not exist or has no columns.
    """
    params = {"schema": schema, "table": table}

    column_rows = await run(
        """
        SELECT
            a.attname AS column_name,
            format_type(a.atttypid, a.atttypmod) AS data_type,
            NOT a.attnotnull AS is_nullable,
            pg_get_expr(d.adbin, d.adrelid) AS column_default,
            a.attnum AS ordinal_position,
            a.attidentity::text <> '' AS is_identity
        FROM pg_attribute a
        JOIN pg_class c ON c.oid = a.attrelid
        JOIN pg_namespace n ON n.oid = c.relnamespace
        LEFT JOIN pg_attrdef d ON d.adrelid = a.attrelid AND d.adnum = a.attnum
        WHERE n.nspname = :schema
          AND c.relname = :table
          AND a.attnum > 0
          AND NOT a.attisdropped
        ORDER BY a.attnum
        """,
        params,
    )
    if not column_rows:
        raise IntrospectionError(table, f"table not found in schema '{schema}'")

    columns = []
    for row in column_rows:
        default = row["column_default"]
        columns.append(
            ColumnSchema(
                name=row["column_name"],
                data_type=row["data_type"],
                is_nullable=bool(row["is_nullable"]),
                default=default,
                ordinal_position=row["ordinal_position"],
                is_autoincrement=bool(row["is_identity"])
                or (default is not None and default.startswith("nextval(")),
            )
        )

    index_rows = await run(
        """
        SELECT
            i.relname AS index_name,
            array_agg(a.attname ORDER BY x.ordinality) AS columns,
            ix.indisunique AS is_unique,
            ix.indisprimary AS is_primary,
            am.amname AS index_type,
            con.oid IS NOT NULL AS is_constraint
        FROM pg_index ix
        JOIN pg_class t ON t.oid = ix.indrelid
        JOIN pg_class i ON i.oid = ix.indexrelid
        JOIN pg_namespace n ON n.oid = t.relnamespace
        JOIN pg_am am ON am.oid = i.relam
        LEFT JOIN pg_constraint con ON con.conindid = ix.indexrelid AND con.contype = 'u'
        JOIN LATERAL unnest(ix.indkey) WITH ORDINALITY AS x(attnum, ordinality) ON TRUE
        JOIN pg_attribute a ON a.attrelid = t.oid AND a.attnum = x.attnum
        WHERE n.nspname = :schema
          AND t.relname = :table
        GROUP BY i.relname, ix.indisunique, ix.indisprimary, am.amname, con.oid
        ORDER BY i.relname
        """,
        params,
    )

    primary_key: list[str] = []
    indexes = []
    for row in index_rows:
        if row["is_primary"]:
            primary_key = list(row["columns"])
            continue
        indexes.append(
            IndexSchema(
                name=row["index_name"],
                columns=list(row["columns"]),
                is_unique=bool(row["is_unique"]),
                index_type=row["index_type"],
                is_constraint=bool(row["is_constraint"]),
            )
        )

    fk_rows = await run(
        """
        SELECT
            con.conname AS name,
            ARRAY(
                SELECT a.attname
                FROM unnest(con.conkey) WITH ORDINALITY AS k(attnum, ord)
                JOIN pg_attribute a ON a.attrelid = con.conrelid AND a.attnum = k.attnum
                ORDER BY k.ord
            ) AS columns,
            rn.nspname AS references_schema,
            rc.relname AS references_table,
            ARRAY(
                SELECT a.attname
                FROM unnest(con.confkey) WITH ORDINALITY AS k(attnum, ord)
                JOIN pg_attribute a ON a.attrelid = con.confrelid AND a.attnum = k.attnum
                ORDER BY k.ord
            ) AS references_columns,
            con.confdeltype::text AS on_delete,
            con.confupdtype::text AS on_update
        FROM pg_constraint con
        JOIN pg_class c ON c.oid = con.conrelid
        JOIN pg_namespace n ON n.oid = c.relnamespace
        JOIN pg_class rc ON rc.oid = con.confrelid
        JOIN pg_namespace rn ON rn.oid = rc.relnamespace
        WHERE con.contype = 'f'
          AND n.nspname = :schema
          AND c.relname = :table
        ORDER BY con.conname
        """,
        params,
    )
    foreign_keys = [
        ForeignKeySchema(
            name=row["name"],
            columns=list(row["columns"]),
            references_schema=row["references_schema"],
            references_table=row["references_table"],
            references_columns=list(row["references_columns"]),
            on_delete=_FK_ACTIONS.get(row["on_delete"], "NO ACTION"),
            on_update=_FK_ACTIONS.get(row["on_update"], "NO ACTION"),
        )
        for row in fk_rows
    ]

    return TableSchema(
        schema_name=schema,
        name=table,
        columns=columns,
        indexes=indexes,
        foreign_keys=foreign_keys,
        primary_key=primary_key,
    )


async def get_server_version(run: QueryFn) -> str:
    rows = await run("SELECT current_setting('server_version') AS version", None)
    return str(rows[0]["version"]) if rows else ""


async def get_name_rules(run: QueryFn) -> tuple[NameRule, NameRule]:
    """Identifier rules as ``(tables, columns)``.

    Catalog names are stored already folded (or as quoted), so they are
    compared exactly.
    """
    return NameRule.EXACT, NameRule.EXACT
