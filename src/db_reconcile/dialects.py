"""Engine tags and identifier rendering.

Each supported engine is a member of ``Engine``.  Engine differences in
identifier quoting, table qualification, and name comparison live in the
small functions below, keyed by engine, rather than in a class per engine.

Usage:
    from db_reconcile.dialects import Engine, quote, qualified_table

    quote("order", Engine.MYSQL)                  # '`order`'
    qualified_table("public", "users", Engine.POSTGRES)  # '"public"."users"'
    qualified_table("main", "users", Engine.SQLITE)      # '"users"'
"""

from enum import StrEnum


class Engine(StrEnum):
    """Supported database engines."""

    POSTGRES = "postgres"
    MYSQL = "mysql"
    MARIADB = "mariadb"
    SQLITE = "sqlite"

    @property
    def is_mysql_family(self) -> bool:
        """True for MySQL and MariaDB, which share syntax and catalogs."""
        return self in (Engine.MYSQL, Engine.MARIADB)


class NameRule(StrEnum):
    """How an engine compares identifiers.

    ``EXACT`` compares names byte for byte (PostgreSQL identifiers as stored
    in the catalog).  ``CASEFOLD`` compares case-insensitively (SQLite,
    MySQL column names, MySQL table names when ``lower_case_table_names``
    is non-zero).
    """

    EXACT = "exact"
    CASEFOLD = "casefold"

    def key(self, name: str) -> str:
        """Return the comparison key for *name* under this rule."""
        if self is NameRule.CASEFOLD:
            return name.casefold()
        return name

    @staticmethod
    def looser(a: "NameRule", b: "NameRule") -> "NameRule":
        """Rule to use when comparing a name from *a* against one from *b*.

        If either side treats names case-insensitively, two names differing
        only in case can never coexist there, so they must be matched.
        """
        if NameRule.CASEFOLD in (a, b):
            return NameRule.CASEFOLD
        return NameRule.EXACT


def quote(name: str, engine: Engine) -> str:
    """Quote an identifier for *engine*."""
    if engine.is_mysql_family:
        return "`" + name.replace("`", "``") + "`"
    return '"' + name.replace('"', '""') + '"'


def qualified_table(schema: str, table: str, engine: Engine) -> str:
    """Schema-qualified, quoted table reference.

    SQLite has no schemas in the PostgreSQL/MySQL sense, so its tables are
    never qualified.
    """
    if engine is Engine.SQLITE or not schema:
        return quote(table, engine)
    return f"{quote(schema, engine)}.{quote(table, engine)}"


def quote_list(names: list[str] | tuple[str, ...], engine: Engine) -> str:
    """Comma-separated quoted identifiers."""
    return ", ".join(quote(n, engine) for n in names)


def default_schema(engine: Engine, database: str | None = None) -> str:
    """Schema used when the caller does not name one.

    MySQL and MariaDB treat the database as the schema.
    """
    if engine is Engine.SQLITE:
        return "main"
    if engine.is_mysql_family:
        return database or ""
    return "public"
