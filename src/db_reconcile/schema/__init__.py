"""Schema introspection, comparison, and migration synthesis.

Provides live introspection into normalized snapshots
(``SchemaIntrospector``), snapshot comparison (``diff_schemas``),
dependency-ordered DDL (``build_migration_plan``,
``generate_migration_sql``), migration apply (``apply_migration``,
``apply_migration_plan``), and a snapshot/diff cache (``SchemaCache``).

Usage:
    from db_reconcile.schema import SchemaIntrospector, diff_schemas
    from db_reconcile.schema import generate_migration_sql, apply_migration
"""

from db_reconcile.schema.cache import SchemaCache
from db_reconcile.schema.comparator import diff_schemas
from db_reconcile.schema.introspector import SchemaIntrospector
from db_reconcile.schema.models import (
    ColumnDef,
    ColumnSchema,
    ConnectionTestResult,
    DiffItem,
    DiffKind,
    ForeignKeyDef,
    ForeignKeySchema,
    IndexDef,
    IndexSchema,
    LogicalType,
    MigrationStep,
    Phase,
    SchemaDiff,
    SchemaSnapshot,
    TableDef,
    TableInfo,
    TableSchema,
)
from db_reconcile.schema.synthesizer import (
    BatchStatus,
    MigrationPlan,
    MigrationResult,
    PlanResult,
    StatementBatch,
    apply_migration,
    apply_migration_plan,
    build_migration_plan,
    generate_migration_sql,
    project_snapshot,
)

__all__ = [
    "SchemaCache",
    "diff_schemas",
    "SchemaIntrospector",
    "ColumnDef",
    "ColumnSchema",
    "ConnectionTestResult",
    "DiffItem",
    "DiffKind",
    "ForeignKeyDef",
    "ForeignKeySchema",
    "IndexDef",
    "IndexSchema",
    "LogicalType",
    "MigrationStep",
    "Phase",
    "SchemaDiff",
    "SchemaSnapshot",
    "TableDef",
    "TableInfo",
    "TableSchema",
    "BatchStatus",
    "MigrationPlan",
    "MigrationResult",
    "PlanResult",
    "StatementBatch",
    "apply_migration",
    "apply_migration_plan",
    "build_migration_plan",
    "generate_migration_sql",
    "project_snapshot",
]
