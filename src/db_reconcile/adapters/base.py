"""Database connector protocol definition.

Defines the ``DatabaseConnector`` Protocol that every engine connector
implements.  All methods are ``async def`` -- the library is async-first.
Connectors never interpret SQL: dialect differences are the caller's job
(see ``db_reconcile.schema.ddl``).

Usage:
    from db_reconcile.adapters.base import DatabaseConnector

    async def do_work(connector: DatabaseConnector) -> None:
        rows = await connector.query("SELECT id, name FROM users WHERE id = :id", {"id": 1})
        await connector.execute("CREATE INDEX idx_name ON users (name)")
        await connector.disconnect()
"""

from collections.abc import Awaitable, Callable
from typing import Any, Protocol

from db_reconcile.dialects import Engine, NameRule
from db_reconcile.schema.models import ConnectionTestResult, TableInfo, TableSchema

# Row-returning query callable, the shape of ``DatabaseConnector.query``.
# Catalog readers take one of these instead of a connector.
QueryFn = Callable[[str, dict[str, Any] | None], Awaitable[list[dict]]]


class DatabaseConnector(Protocol):
    """Capability set shared by all engine connectors.

    Parameters in SQL text use the named ``:param`` style for every engine.

    Connection failures raise ``DatabaseConnectionError`` with
    ``transient`` telling retryable network/timeout problems apart from
    fatal authentication problems.  Every call honours the connector's
    statement timeout and may be cancelled by cancelling the awaiting task.
    """

    name: str
    engine: Engine

    async def connect(self) -> None:
        """Open the connection pool (idempotent)."""
        ...

    async def disconnect(self) -> None:
        """Close the pool and release all sessions."""
        ...

    def is_connected(self) -> bool:
        """True between ``connect()`` and ``disconnect()``."""
        ...

    async def query(self, sql: str, params: dict[str, Any] | None = None) -> list[dict]:
        """Run a row-returning statement.

        Returns:
            List of dicts, one per row, with the driver's native values.
        """
        ...

    async def execute(self, sql: str, params: dict[str, Any] | None = None) -> int:
        """Run a non-query statement in its own transaction.

        Returns:
            Number of rows affected (``-1`` when the driver cannot tell, e.g.
            for DDL).
        """
        ...

    async def execute_batch(self, sql: str, param_sets: list[dict[str, Any]]) -> int:
        """Run one statement for many parameter sets in a single transaction.

        Either every parameter set is applied or none is.

        Returns:
            Total rows affected.
        """
        ...

    async def get_schemas(self) -> list[str]:
        """List user schemas (databases for MySQL/MariaDB, ``main`` for SQLite)."""
        ...

    async def get_tables(self, schema: str) -> list[TableInfo]:
        """List tables and views in *schema*, ordered by name."""
        ...

    async def get_table_schema(self, schema: str, table: str) -> TableSchema:
        """Read columns, indexes, foreign keys, and primary key of one table."""
        ...

    async def get_server_version(self) -> str:
        """Server version string."""
        ...

    async def get_name_rules(self) -> tuple[NameRule, NameRule]:
        """How this server compares identifiers, as ``(tables, columns)``."""
        ...

    async def test_connection(self) -> ConnectionTestResult:
        """Check connectivity without raising."""
        ...
