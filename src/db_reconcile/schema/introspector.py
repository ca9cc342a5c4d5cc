"""Schema introspection into normalized snapshots.

Reads a live schema through any ``DatabaseConnector`` and produces a
frozen ``SchemaSnapshot``:
- Tables (views skipped), columns, primary keys
- Secondary indexes (primary key indexes folded into ``primary_key``)
- Foreign keys with referential actions
- Engine type names mapped into the logical type taxonomy
- Defaults normalized, sequence/identity defaults turned into ``autoincrement``

A table that cannot be read (permission denied, dropped mid-scan) does not
abort the snapshot: it is kept with ``error`` set, and the diff engine
excludes it with a warning.
"""

import logging
from typing import TYPE_CHECKING

from db_reconcile.errors import DatabaseConnectionError, IntrospectionError
from db_reconcile.schema.models import (
    ColumnDef,
    ForeignKeyDef,
    IndexDef,
    SchemaSnapshot,
    TableDef,
    TableSchema,
)
from db_reconcile.schema.types import normalize_default, normalize_type

if TYPE_CHECKING:
    from db_reconcile.adapters.base import DatabaseConnector

logger = logging.getLogger(__name__)


class SchemaIntrospector:
    """Builds ``SchemaSnapshot`` objects from a connector.

    Usage:
        introspector = SchemaIntrospector(connector)
        snapshot = await introspector.introspect("public")
    """

    # Tables to exclude from introspection (migration bookkeeping, extensions)
    EXCLUDED_TABLES = {
        "schema_migrations",
        "alembic_version",
        "pg_stat_statements",
        "spatial_ref_sys",
    }

    def __init__(self, connector: "DatabaseConnector", excluded_tables: set[str] | None = None):
        """Initialize with a connector.

        Args:
            connector: Connector for the database to read.
            excluded_tables: Table names to skip (default: ``EXCLUDED_TABLES``).
        """
        self._connector = connector
        self._excluded = self.EXCLUDED_TABLES if excluded_tables is None else excluded_tables

    async def introspect(self, schema_name: str) -> SchemaSnapshot:
        """Introspect every table in a schema.

        Args:
            schema_name: Schema (PostgreSQL), database (MySQL/MariaDB), or
                ``main`` (SQLite).

        Returns:
            Frozen snapshot; unreadable tables carry ``error``.

        Raises:
            DatabaseConnectionError: If the table list itself cannot be read.
        """
        engine = self._connector.engine
        table_rule, column_rule = await self._connector.get_name_rules()
        server_version = await self._connector.get_server_version()

        tables = []
        for info in await self._connector.get_tables(schema_name):
            if info.table_type != "table" or info.name in self._excluded:
                continue
            try:
                raw = await self._connector.get_table_schema(schema_name, info.name)
                tables.append(self._normalize_table(raw))
            except DatabaseConnectionError:
                raise
            except Exception as e:
                error = e if isinstance(e, IntrospectionError) else IntrospectionError(info.name, str(e))
                logger.warning(
                    str(error),
                    extra={
                        "event": "introspection_table_failed",
                        "connection": self._connector.name,
                        "table": info.name,
                    },
                )
                tables.append(TableDef(name=info.name, error=str(error)))

        return SchemaSnapshot(
            engine=engine,
            schema_name=schema_name,
            tables=tuple(tables),
            table_name_rule=table_rule,
            column_name_rule=column_rule,
            server_version=server_version,
        )

    def _normalize_table(self, raw: TableSchema) -> TableDef:
        """Map one catalog description into a normalized ``TableDef``."""
        engine = self._connector.engine
        columns = []
        for position, col in enumerate(raw.columns, start=1):
            data_type = normalize_type(engine, col.data_type)
            default, sequence_backed = normalize_default(engine, col.default, data_type)
            columns.append(
                ColumnDef(
                    name=col.name,
                    data_type=data_type,
                    nullable=col.is_nullable,
                    default=default,
                    ordinal_position=position,
                    autoincrement=col.is_autoincrement or sequence_backed,
                )
            )

        indexes = tuple(
            IndexDef(
                name=idx.name,
                columns=tuple(idx.columns),
                unique=idx.is_unique,
                constraint=idx.is_constraint,
            )
            for idx in sorted(raw.indexes, key=lambda i: i.name)
            if not idx.is_primary and idx.columns
        )

        foreign_keys = tuple(
            ForeignKeyDef(
                name=fk.name,
                columns=tuple(fk.columns),
                ref_table=fk.references_table,
                ref_columns=tuple(fk.references_columns),
                on_delete=fk.on_delete.upper(),
                on_update=fk.on_update.upper(),
            )
            for fk in sorted(raw.foreign_keys, key=lambda f: f.name)
        )

        return TableDef(
            name=raw.name,
            columns=tuple(columns),
            primary_key=tuple(raw.primary_key),
            indexes=indexes,
            foreign_keys=foreign_keys,
        )
