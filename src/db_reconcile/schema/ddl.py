"""Dialect-specific DDL rendering.

Small functions that turn normalized definitions into statements for one
target engine.  Each returns a list of statements because some changes
need several (a PostgreSQL column change is one ``ALTER COLUMN`` per
attribute, a SQLite table rebuild is five or more).

Identifiers are always quoted; tables are schema-qualified except on SQLite.

Usage:
    from db_reconcile.schema.ddl import add_column

    add_column("public", "users", column, Engine.POSTGRES)
    # ['ALTER TABLE "public"."users" ADD COLUMN "name" varchar(100)']
"""

from db_reconcile.dialects import Engine, NameRule, qualified_table, quote, quote_list
from db_reconcile.schema.models import ColumnDef, ForeignKeyDef, IndexDef, TableDef
from db_reconcile.schema.types import render_type

_INTEGER_TYPES = {"SMALLINT", "INTEGER", "BIGINT"}

# MySQL only accepts expression defaults (in parentheses) for these
_MYSQL_EXPRESSION_DEFAULT_TYPES = {"TEXT", "BLOB", "JSON"}


# ============================================================================
# Columns
# ============================================================================


def column_definition(col: ColumnDef, engine: Engine, inline_primary_key: bool = False) -> str:
    """Render ``name type [constraints]`` for a column.

    Args:
        col: Column to render.
        engine: Target engine.
        inline_primary_key: SQLite only; render the rowid alias form
            ``INTEGER PRIMARY KEY`` (the table-level key clause is then
            omitted by the caller).
    """
    name = quote(col.name, engine)
    type_sql = render_type(col.data_type, engine)

    if engine is Engine.SQLITE and inline_primary_key:
        return f"{name} INTEGER PRIMARY KEY"

    parts = [name, type_sql]
    identity = col.autoincrement and not col.data_type.unmapped and col.data_type.name in _INTEGER_TYPES

    if identity and engine is Engine.POSTGRES:
        parts.append("GENERATED BY DEFAULT AS IDENTITY")
    if not col.nullable:
        parts.append("NOT NULL")
    if col.default is not None and not identity:
        parts.append(f"DEFAULT {_render_default(col, engine)}")
    if identity and engine.is_mysql_family:
        parts.append("AUTO_INCREMENT")

    return " ".join(parts)


def _render_default(col: ColumnDef, engine: Engine) -> str:
    default = col.default
    assert default is not None
    if (
        engine.is_mysql_family
        and col.data_type.name in _MYSQL_EXPRESSION_DEFAULT_TYPES
        and not default.startswith("(")
    ):
        return f"({default})"
    return default


def add_column(schema: str, table: str, col: ColumnDef, engine: Engine) -> list[str]:
    return [
        f"ALTER TABLE {qualified_table(schema, table, engine)} "
        f"ADD COLUMN {column_definition(col, engine)}"
    ]


def drop_column(schema: str, table: str, col: ColumnDef, engine: Engine) -> list[str]:
    return [
        f"ALTER TABLE {qualified_table(schema, table, engine)} "
        f"DROP COLUMN {quote(col.name, engine)}"
    ]


def alter_column(
    schema: str,
    table: str,
    before: ColumnDef,
    after: ColumnDef,
    engine: Engine,
) -> list[str]:
    """Change a column's type, nullability, and default.

    PostgreSQL gets one ``ALTER COLUMN`` per changed attribute.  MySQL and
    MariaDB restate the whole column with ``MODIFY COLUMN`` (attributes not
    restated would be reset).  SQLite has no column alteration; callers
    rebuild the table instead.

    Raises:
        ValueError: If called for SQLite.
    """
    target = qualified_table(schema, table, engine)

    if engine.is_mysql_family:
        return [f"ALTER TABLE {target} MODIFY COLUMN {column_definition(after, engine)}"]

    if engine is Engine.SQLITE:
        raise ValueError("SQLite cannot alter columns; rebuild the table")

    column = quote(after.name, engine)
    statements = []
    if not before.data_type.same_as(after.data_type):
        type_sql = render_type(after.data_type, engine)
        statements.append(
            f"ALTER TABLE {target} ALTER COLUMN {column} TYPE {type_sql} USING {column}::{type_sql}"
        )
    if before.nullable != after.nullable:
        action = "DROP NOT NULL" if after.nullable else "SET NOT NULL"
        statements.append(f"ALTER TABLE {target} ALTER COLUMN {column} {action}")
    if before.default != after.default:
        if after.default is None:
            statements.append(f"ALTER TABLE {target} ALTER COLUMN {column} DROP DEFAULT")
        else:
            statements.append(
                f"ALTER TABLE {target} ALTER COLUMN {column} SET DEFAULT {after.default}"
            )
    return statements


def sqlite_can_add_column(col: ColumnDef) -> bool:
    """Whether SQLite's ``ADD COLUMN`` accepts this column.

    SQLite rejects added columns that are NOT NULL without a default, that
    have a non-constant default, or that are part of a key.
    """
    if col.autoincrement:
        return False
    if not col.nullable and col.default is None:
        return False
    if col.default is not None and col.default.upper() == "CURRENT_TIMESTAMP":
        return False
    return not (col.default or "").startswith("(")


# ============================================================================
# Tables
# ============================================================================


def create_table(
    schema: str,
    table: TableDef,
    engine: Engine,
    inline_foreign_keys: bool = False,
    name: str | None = None,
) -> list[str]:
    """``CREATE TABLE`` followed by one ``CREATE INDEX`` per secondary index.

    Args:
        schema: Target schema.
        table: Desired table definition.
        engine: Target engine.
        inline_foreign_keys: Emit foreign keys as table constraints (SQLite
            cannot add them later).
        name: Create under a different name (used by SQLite rebuilds);
            indexes are still created on this name.
    """
    table_name = name or table.name
    sqlite_rowid = _sqlite_rowid_column(table) if engine is Engine.SQLITE else None

    lines = [
        column_definition(col, engine, inline_primary_key=col.name == sqlite_rowid)
        for col in table.columns
    ]
    if table.primary_key and sqlite_rowid is None:
        lines.append(f"PRIMARY KEY ({quote_list(table.primary_key, engine)})")
    if inline_foreign_keys:
        lines.extend(_foreign_key_clause(schema, fk, engine) for fk in table.foreign_keys)

    body = ",\n    ".join(lines)
    statements = [f"CREATE TABLE {qualified_table(schema, table_name, engine)} (\n    {body}\n)"]
    statements.extend(
        stmt for idx in table.indexes for stmt in create_index(schema, table_name, idx, engine)
    )
    return statements


def drop_table(schema: str, table: str, engine: Engine) -> list[str]:
    return [f"DROP TABLE {qualified_table(schema, table, engine)}"]


def rebuild_table(schema: str, current: TableDef, desired: TableDef, engine: Engine) -> list[str]:
    """SQLite table rebuild: the only way to alter columns or constraints.

    Creates the desired shape under a temporary name, copies the columns
    both shapes share, swaps the tables, and recreates the indexes.
    """
    temp_name = f"_new_{desired.name}"

    shared_new = []
    shared_old = []
    for col in desired.columns:
        old = current.column(col.name, NameRule.CASEFOLD)
        if old is not None:
            shared_new.append(col.name)
            shared_old.append(old.name)

    statements = [
        create_table(schema, desired, engine, inline_foreign_keys=True, name=temp_name)[0],
    ]
    if shared_new:
        statements.append(
            f"INSERT INTO {qualified_table(schema, temp_name, engine)} ({quote_list(shared_new, engine)}) "
            f"SELECT {quote_list(shared_old, engine)} FROM {qualified_table(schema, current.name, engine)}"
        )
    statements.append(f"DROP TABLE {qualified_table(schema, current.name, engine)}")
    statements.append(
        f"ALTER TABLE {qualified_table(schema, temp_name, engine)} "
        f"RENAME TO {quote(desired.name, engine)}"
    )
    statements.extend(
        stmt for idx in desired.indexes for stmt in create_index(schema, desired.name, idx, engine)
    )
    return statements


def _sqlite_rowid_column(table: TableDef) -> str | None:
    if len(table.primary_key) != 1:
        return None
    col = table.column(table.primary_key[0], NameRule.CASEFOLD)
    if col is not None and col.autoincrement and col.data_type.name == "INTEGER":
        return col.name
    return None


# ============================================================================
# Indexes
# ============================================================================


def create_index(schema: str, table: str, index: IndexDef, engine: Engine) -> list[str]:
    unique = "UNIQUE " if index.unique else ""
    return [
        f"CREATE {unique}INDEX {quote(index.name, engine)} "
        f"ON {qualified_table(schema, table, engine)} ({quote_list(index.columns, engine)})"
    ]


def drop_index(schema: str, table: str, index: IndexDef, engine: Engine) -> list[str]:
    if engine.is_mysql_family:
        return [f"DROP INDEX {quote(index.name, engine)} ON {qualified_table(schema, table, engine)}"]
    if engine is Engine.POSTGRES and index.constraint:
        # The index belongs to a UNIQUE constraint and cannot be dropped directly
        return [
            f"ALTER TABLE {qualified_table(schema, table, engine)} "
            f"DROP CONSTRAINT {quote(index.name, engine)}"
        ]
    # PostgreSQL indexes live in the table's schema; SQLite ignores schemas
    return [f"DROP INDEX {qualified_table(schema, index.name, engine)}"]


# ============================================================================
# Foreign keys
# ============================================================================


def _foreign_key_clause(schema: str, fk: ForeignKeyDef, engine: Engine) -> str:
    clause = (
        f"CONSTRAINT {quote(fk.name, engine)} FOREIGN KEY ({quote_list(fk.columns, engine)}) "
        f"REFERENCES {qualified_table(schema, fk.ref_table, engine)} "
        f"({quote_list(fk.ref_columns, engine)})"
    )
    if fk.on_delete != "NO ACTION":
        clause += f" ON DELETE {fk.on_delete}"
    if fk.on_update != "NO ACTION":
        clause += f" ON UPDATE {fk.on_update}"
    return clause


def add_foreign_key(schema: str, table: str, fk: ForeignKeyDef, engine: Engine) -> list[str]:
    return [
        f"ALTER TABLE {qualified_table(schema, table, engine)} "
        f"ADD {_foreign_key_clause(schema, fk, engine)}"
    ]


def drop_foreign_key(schema: str, table: str, fk: ForeignKeyDef, engine: Engine) -> list[str]:
    keyword = "FOREIGN KEY" if engine.is_mysql_family else "CONSTRAINT"
    return [
        f"ALTER TABLE {qualified_table(schema, table, engine)} "
        f"DROP {keyword} {quote(fk.name, engine)}"
    ]
