"""MySQL and MariaDB catalog reader.

Both engines expose the same ``information_schema`` tables.  In MySQL the
database is the schema, so ``schema`` arguments are database names.
``COLUMN_TYPE`` is read instead of ``DATA_TYPE`` so lengths and the
``tinyint(1)`` boolean convention survive.
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


async def get_schemas(run: QueryFn) -> list[str]:
    """List user databases (system databases excluded)."""
    rows = await run(
        """
        SELECT SCHEMA_NAME AS schema_name
        FROM information_schema.SCHEMATA
        WHERE SCHEMA_NAME NOT IN ('information_schema', 'mysql', 'performance_schema', 'sys')
        ORDER BY SCHEMA_NAME
        """,
        None,
    )
    return [row["schema_name"] for row in rows]


async def get_tables(run: QueryFn, schema: str) -> list[TableInfo]:
    """List tables and views; ``row_count`` is the engine's estimate."""
    rows = await run(
        """
        SELECT
            TABLE_NAME AS table_name,
            TABLE_TYPE AS table_type,
            TABLE_ROWS AS row_count
        FROM information_schema.TABLES
        WHERE TABLE_SCHEMA = :schema
        ORDER BY TABLE_NAME
        """,
        {"schema": schema},
    )
    return [
        TableInfo(
            schema_name=schema,
            name=row["table_name"],
            table_type="view" if row["table_type"] == "VIEW" else "table",
            row_count=int(row["row_count"]) if row["row_count"] is not None else None,
        )
        for row in rows
    ]


async def get_table_schema(run: QueryFn, schema: str, table: str) -> TableSchema:
    """Read columns, indexes, foreign keys, and primary key of a table.

    Raises:
        IntrospectionError: If the table does not exist.
    """
    params = {"schema": schema, "table": table}

    column_rows = await run(
        """
        SELECT
            COLUMN_NAME AS column_name,
            COLUMN_TYPE AS column_type,
            IS_NULLABLE AS is_nullable,
            COLUMN_DEFAULT AS column_default,
            ORDINAL_POSITION AS ordinal_position,
            EXTRA AS extra
        FROM information_schema.COLUMNS
        WHERE TABLE_SCHEMA = :schema
          AND TABLE_NAME = :table
        ORDER BY ORDINAL_POSITION
        """,
        params,
    )
    if not column_rows:
        raise IntrospectionError(table, f"table not found in database '{schema}'")

    columns = [
        ColumnSchema(
            name=row["column_name"],
            data_type=_text(row["column_type"]),
            is_nullable=row["is_nullable"] == "YES",
            default=_text(row["column_default"]) if row["column_default"] is not None else None,
            ordinal_position=int(row["ordinal_position"]),
            is_autoincrement="auto_increment" in (_text(row["extra"]) or "").lower(),
        )
        for row in column_rows
    ]

    index_rows = await run(
        """
        SELECT
            INDEX_NAME AS index_name,
            COLUMN_NAME AS column_name,
            NON_UNIQUE AS non_unique,
            INDEX_TYPE AS index_type
        FROM information_schema.STATISTICS
        WHERE TABLE_SCHEMA = :schema
          AND TABLE_NAME = :table
        ORDER BY INDEX_NAME, SEQ_IN_INDEX
        """,
        params,
    )

    # One row per indexed column; group by index name
    primary_key: list[str] = []
    indexes: dict[str, IndexSchema] = {}
    for row in index_rows:
        name = row["index_name"]
        if row["column_name"] is None:
            # Functional key part
            continue
        if name == "PRIMARY":
            primary_key.append(row["column_name"])
            continue
        if name not in indexes:
            indexes[name] = IndexSchema(
                name=name,
                columns=[],
                is_unique=int(row["non_unique"]) == 0,
                index_type=(row["index_type"] or "BTREE").lower(),
            )
        indexes[name].columns.append(row["column_name"])

    fk_rows = await run(
        """
        SELECT
            k.CONSTRAINT_NAME AS name,
            k.COLUMN_NAME AS column_name,
            k.REFERENCED_TABLE_SCHEMA AS references_schema,
            k.REFERENCED_TABLE_NAME AS references_table,
            k.REFERENCED_COLUMN_NAME AS references_column,
            r.DELETE_RULE AS on_delete,
            r.UPDATE_RULE AS on_update
        FROM information_schema.KEY_COLUMN_USAGE k
        JOIN information_schema.REFERENTIAL_CONSTRAINTS r
            ON r.CONSTRAINT_SCHEMA = k.CONSTRAINT_SCHEMA
            AND r.CONSTRAINT_NAME = k.CONSTRAINT_NAME
            AND r.TABLE_NAME = k.TABLE_NAME
        WHERE k.TABLE_SCHEMA = :schema
          AND k.TABLE_NAME = :table
          AND k.REFERENCED_TABLE_NAME IS NOT NULL
        ORDER BY k.CONSTRAINT_NAME, k.ORDINAL_POSITION
        """,
        params,
    )

    foreign_keys: dict[str, ForeignKeySchema] = {}
    for row in fk_rows:
        name = row["name"]
        if name not in foreign_keys:
            foreign_keys[name] = ForeignKeySchema(
                name=name,
                columns=[],
                references_schema=row["references_schema"],
                references_table=row["references_table"],
                references_columns=[],
                on_delete=row["on_delete"] or "NO ACTION",
                on_update=row["on_update"] or "NO ACTION",
            )
        foreign_keys[name].columns.append(row["column_name"])
        foreign_keys[name].references_columns.append(row["references_column"])

    return TableSchema(
        schema_name=schema,
        name=table,
        columns=columns,
        indexes=list(indexes.values()),
        foreign_keys=list(foreign_keys.values()),
        primary_key=primary_key,
    )


async def get_server_version(run: QueryFn) -> str:
    rows = await run("SELECT VERSION() AS version", None)
    return str(rows[0]["version"]) if rows else ""


async def get_name_rules(run: QueryFn) -> tuple[NameRule, NameRule]:
    """Identifier rules as ``(tables, columns)``.

    Column names are always case-insensitive.  Table names follow the
    server's ``lower_case_table_names`` setting (0 means case-sensitive
    file names, typical on Linux).
    """
    rows = await run("SELECT @@lower_case_table_names AS value", None)
    setting = int(rows[0]["value"]) if rows else 0
    tables = NameRule.CASEFOLD if setting != 0 else NameRule.EXACT
    return tables, NameRule.CASEFOLD


def _text(value) -> str | None:
    # information_schema text columns can arrive as bytes on some servers
    if isinstance(value, bytes):
        return value.decode()
    return value
