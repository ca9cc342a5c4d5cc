"""db-reconcile: schema diff, migration synthesis, and row reconciliation.

Compares PostgreSQL, MySQL, MariaDB, and SQLite schemas, emits
dependency-ordered migration DDL, reconciles table rows by key, and checks
instance groups (one source, many targets).

Usage:
    from db_reconcile import SqlConnector, compare_schemas, generate_migration_sql
    from db_reconcile import SyncOptions, sync_table_data, get_group_sync_status
    from db_reconcile import load_db_config, get_connector
"""

__version__ = "0.1.0"

# Connectors
from db_reconcile.adapters import DatabaseConnector, SqlConnector

# Config
from db_reconcile.config.loader import load_db_config
from db_reconcile.config.models import DatabaseConfig, DatabaseProfile, GroupConfig

# Errors
from db_reconcile.errors import (
    ConfigurationError,
    DatabaseConnectionError,
    IntrospectionError,
    PartialFailure,
    ReconcileError,
    StatementExecutionError,
)

# Factory
from db_reconcile.factory import ProfileNotFoundError, get_connector, resolve_url

# Operations
from db_reconcile.operations import (
    apply_migration,
    compare_schemas,
    generate_migration_sql,
    get_group_sync_status,
    get_table_data_diff,
    get_table_row_counts,
    sync_rows,
    sync_table_data,
)

# Schema
from db_reconcile.schema import SchemaCache, SchemaDiff, SchemaSnapshot, diff_schemas

# Sync models
from db_reconcile.sync.models import (
    GroupSyncStatus,
    RowDiff,
    RowPair,
    SyncOptions,
    SyncResult,
    TableDataDiff,
    TargetStatus,
)

__all__ = [
    # Connectors
    "DatabaseConnector",
    "SqlConnector",
    # Config
    "load_db_config",
    "DatabaseConfig",
    "DatabaseProfile",
    "GroupConfig",
    # Errors
    "ReconcileError",
    "DatabaseConnectionError",
    "IntrospectionError",
    "ConfigurationError",
    "StatementExecutionError",
    "PartialFailure",
    # Factory
    "get_connector",
    "resolve_url",
    "ProfileNotFoundError",
    # Operations
    "compare_schemas",
    "generate_migration_sql",
    "apply_migration",
    "get_table_row_counts",
    "sync_table_data",
    "get_table_data_diff",
    "sync_rows",
    "get_group_sync_status",
    # Schema
    "SchemaCache",
    "SchemaDiff",
    "SchemaSnapshot",
    "diff_schemas",
    # Sync models
    "SyncOptions",
    "SyncResult",
    "RowDiff",
    "RowPair",
    "TableDataDiff",
    "TargetStatus",
    "GroupSyncStatus",
]
