"""Database connectors package.

Provides the ``DatabaseConnector`` Protocol and ``SqlConnector``, its
SQLAlchemy-backed implementation for PostgreSQL (asyncpg), MySQL and
MariaDB (aiomysql), and SQLite (aiosqlite).

Usage:
    from db_reconcile.adapters import DatabaseConnector, SqlConnector
"""

from db_reconcile.adapters.base import DatabaseConnector, QueryFn
from db_reconcile.adapters.connector import SqlConnector, detect_engine, normalize_url

__all__ = [
    "DatabaseConnector",
    "QueryFn",
    "SqlConnector",
    "detect_engine",
    "normalize_url",
]
