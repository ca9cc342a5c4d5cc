"""Logical type taxonomy and default-value normalization.

Engine type names are mapped into one shared taxonomy so a PostgreSQL
``character varying(255)`` and a MySQL ``varchar(255)`` compare equal:

====================  ===========================================
Logical type          Engine spellings recognized
====================  ===========================================
SMALLINT              smallint, int2
INTEGER               integer, int, int4
BIGINT                bigint, int8
DECIMAL(p,s)          decimal, numeric
REAL                  real, float4, float
DOUBLE                double precision, double, float8
BOOLEAN               boolean, bool, MySQL tinyint(1)
CHAR(n)               character, char, bpchar
VARCHAR(n)            character varying, varchar
TEXT                  text (SQLite untyped columns too)
BLOB                  bytea, blob
DATE                  date
TIME                  time, time without time zone
TIMESTAMP             timestamp, timestamp without time zone, datetime
TIMESTAMPTZ           timestamp with time zone, timestamptz
JSON                  json, jsonb
UUID                  uuid
====================  ===========================================

Anything else (arrays, enums, ``mediumint``, unsigned integers, ...) is
kept verbatim and flagged ``unmapped``.

Usage:
    from db_reconcile.schema.types import normalize_type, render_type

    t = normalize_type(Engine.POSTGRES, "character varying(64)")
    render_type(t, Engine.MYSQL)  # 'varchar(64)'
"""

import re

from db_reconcile.dialects import Engine
from db_reconcile.schema.models import LogicalType

_ALIASES: dict[str, str] = {
    "smallint": "SMALLINT",
    "int2": "SMALLINT",
    "integer": "INTEGER",
    "int": "INTEGER",
    "int4": "INTEGER",
    "bigint": "BIGINT",
    "int8": "BIGINT",
    "decimal": "DECIMAL",
    "numeric": "DECIMAL",
    "real": "REAL",
    "float4": "REAL",
    "float": "REAL",
    "double precision": "DOUBLE",
    "double": "DOUBLE",
    "float8": "DOUBLE",
    "boolean": "BOOLEAN",
    "bool": "BOOLEAN",
    "character": "CHAR",
    "char": "CHAR",
    "bpchar": "CHAR",
    "character varying": "VARCHAR",
    "varchar": "VARCHAR",
    "text": "TEXT",
    "bytea": "BLOB",
    "blob": "BLOB",
    "date": "DATE",
    "time": "TIME",
    "time without time zone": "TIME",
    "timestamp": "TIMESTAMP",
    "timestamp without time zone": "TIMESTAMP",
    "datetime": "TIMESTAMP",
    "timestamp with time zone": "TIMESTAMPTZ",
    "timestamptz": "TIMESTAMPTZ",
    "json": "JSON",
    "jsonb": "JSON",
    "uuid": "UUID",
}

# Only these keep their parenthesized arguments; for the rest the arguments
# are display widths or fractional-second precision.
_SIZED = {"CHAR", "VARCHAR", "DECIMAL"}

_ARGS_RE = re.compile(r"\(([^)]*)\)")

_RENDER: dict[Engine, dict[str, str]] = {
    Engine.POSTGRES: {
        "SMALLINT": "smallint",
        "INTEGER": "integer",
        "BIGINT": "bigint",
        "DECIMAL": "numeric",
        "REAL": "real",
        "DOUBLE": "double precision",
        "BOOLEAN": "boolean",
        "CHAR": "char",
        "VARCHAR": "varchar",
        "TEXT": "text",
        "BLOB": "bytea",
        "DATE": "date",
        "TIME": "time",
        "TIMESTAMP": "timestamp",
        "TIMESTAMPTZ": "timestamptz",
        "JSON": "jsonb",
        "UUID": "uuid",
    },
    Engine.MYSQL: {
        "SMALLINT": "smallint",
        "INTEGER": "int",
        "BIGINT": "bigint",
        "DECIMAL": "decimal",
        "REAL": "float",
        "DOUBLE": "double",
        "BOOLEAN": "tinyint(1)",
        "CHAR": "char",
        "VARCHAR": "varchar",
        "TEXT": "text",
        "BLOB": "blob",
        "DATE": "date",
        "TIME": "time",
        "TIMESTAMP": "datetime",
        "TIMESTAMPTZ": "timestamp",
        "JSON": "json",
        "UUID": "char(36)",
    },
}
_RENDER[Engine.MARIADB] = _RENDER[Engine.MYSQL]

_CURRENT_TIMESTAMP = {"current_timestamp", "current_timestamp()", "now()", "localtimestamp"}
_TRUE_LITERALS = {"true", "1", "'1'", "b'1'", "'t'", "'true'"}
_FALSE_LITERALS = {"false", "0", "'0'", "b'0'", "'f'", "'false'"}
_NUMBER_RE = re.compile(r"^-?\d+(\.\d+)?$")
_PG_CAST_RE = re.compile(r"::[\w\s\"\[\]().,]+$")


def normalize_type(engine: Engine, raw: str) -> LogicalType:
    """Map an engine-specific type name into the logical taxonomy.

    Args:
        engine: Engine the type name comes from.
        raw: Type text as reported by the catalog (e.g. ``"varchar(255)"``,
            ``"timestamp(3) with time zone"``, ``"tinyint(1)"``).

    Returns:
        ``LogicalType``; ``unmapped=True`` with the raw text preserved when
        no taxonomy entry matches.

    Examples:
        >>> normalize_type(Engine.POSTGRES, "int4").name
        'INTEGER'
        >>> normalize_type(Engine.MYSQL, "tinyint(1)").name
        'BOOLEAN'
        >>> normalize_type(Engine.POSTGRES, "integer[]").unmapped
        True
    """
    text = " ".join(raw.strip().lower().split())
    if not text:
        # SQLite columns declared without a type
        return LogicalType(name="TEXT", raw=raw)

    args: tuple[int, ...] = ()
    match = _ARGS_RE.search(text)
    base = text
    if match:
        base = " ".join((text[: match.start()] + " " + text[match.end():]).split())
        try:
            args = tuple(int(part) for part in match.group(1).split(","))
        except ValueError:
            return LogicalType(name=raw, raw=raw, unmapped=True)

    if engine.is_mysql_family and base == "tinyint" and args == (1,):
        return LogicalType(name="BOOLEAN", raw=raw)

    name = _ALIASES.get(base)
    if name is None:
        return LogicalType(name=raw, raw=raw, unmapped=True)
    if name not in _SIZED:
        args = ()
    return LogicalType(name=name, args=args, raw=raw)


def render_type(data_type: LogicalType, engine: Engine) -> str:
    """Render a logical type as a column type for *engine*.

    Unmapped types are emitted verbatim.  SQLite accepts any type name and
    maps it to an affinity, so logical names are used as-is there.
    """
    if data_type.unmapped:
        return data_type.raw

    if engine is Engine.SQLITE:
        return str(data_type)

    spelled = _RENDER[engine][data_type.name]
    if data_type.args:
        return f"{spelled}({','.join(str(a) for a in data_type.args)})"
    if data_type.name == "VARCHAR" and engine.is_mysql_family:
        # MySQL requires a length for varchar
        return "varchar(255)"
    return spelled


def normalize_default(
    engine: Engine,
    raw: str | None,
    data_type: LogicalType,
) -> tuple[str | None, bool]:
    """Normalize a column default.

    Args:
        engine: Engine the default comes from.
        raw: Default text as reported by the catalog.
        data_type: Normalized type of the column.

    Returns:
        Tuple of ``(default, autoincrement)``.  Sequence-backed defaults
        (PostgreSQL ``nextval(...)``) become ``(None, True)``.

    Examples:
        >>> normalize_default(Engine.POSTGRES, "'draft'::character varying",
        ...                   LogicalType(name="VARCHAR", args=(20,)))
        ("'draft'", False)
        >>> normalize_default(Engine.MYSQL, "draft", LogicalType(name="VARCHAR", args=(20,)))
        ("'draft'", False)
    """
    if raw is None:
        return None, False

    value = raw.strip()

    if engine is Engine.POSTGRES:
        if value.lower().startswith("nextval("):
            return None, True
        # 'x'::character varying, (0)::numeric, NULL::text
        while True:
            stripped = _PG_CAST_RE.sub("", value).strip()
            if stripped == value:
                break
            value = stripped

    while value.startswith("(") and value.endswith(")") and _balanced(value[1:-1]):
        value = value[1:-1].strip()

    lowered = value.lower()
    if lowered in ("", "null"):
        return None, False
    if lowered in _CURRENT_TIMESTAMP:
        return "CURRENT_TIMESTAMP", False

    if data_type.name == "BOOLEAN" and not data_type.unmapped:
        if lowered in _TRUE_LITERALS:
            return "TRUE", False
        if lowered in _FALSE_LITERALS:
            return "FALSE", False

    if engine is Engine.MYSQL and not (value.startswith("'") or value.endswith(")")):
        # MySQL 8 reports string literal defaults without quotes
        if not (_NUMBER_RE.match(value) and _is_numeric(data_type)):
            return "'" + value.replace("'", "''") + "'", False

    if _NUMBER_RE.match(value):
        return value, False
    if value.startswith("'") and value.endswith("'") and len(value) >= 2:
        unquoted = value[1:-1]
        if _NUMBER_RE.match(unquoted) and _is_numeric(data_type):
            return unquoted, False
        return value, False

    return value, False


def _balanced(text: str) -> bool:
    depth = 0
    for ch in text:
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth < 0:
                return False
    return depth == 0


def _is_numeric(data_type: LogicalType) -> bool:
    return not data_type.unmapped and data_type.name in {
        "SMALLINT", "INTEGER", "BIGINT", "DECIMAL", "REAL", "DOUBLE",
    }
