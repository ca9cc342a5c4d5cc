"""Pydantic models for schema introspection, snapshots, and diffs.

This module contains schema-domain models:
- Catalog models (raw, engine-specific, as returned by a connector):
  TableInfo, ColumnSchema, IndexSchema, ForeignKeySchema, TableSchema,
  ConnectionTestResult
- Snapshot models (normalized, engine-agnostic, frozen):
  LogicalType, ColumnDef, IndexDef, ForeignKeyDef, TableDef, SchemaSnapshot
- Diff models (frozen): DiffKind, Phase, MigrationStep, DiffItem, SchemaDiff

Snapshot and diff models are immutable once built, so they can be shared
between concurrent tasks and memoized without locks.
"""

import hashlib
from datetime import datetime, timezone
from enum import IntEnum, StrEnum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from db_reconcile.dialects import Engine, NameRule


# ============================================================================
# Catalog Models
# ============================================================================


class TableInfo(BaseModel):
    """A table or view listed by ``DatabaseConnector.get_tables()``."""

    schema_name: str
    name: str
    table_type: Literal["table", "view"] = "table"
    row_count: int | None = None


class ColumnSchema(BaseModel):
    """Schema for a database column, as the engine reports it.

    Example:
        >>> col = ColumnSchema(name="id", data_type="integer")
        >>> col.is_nullable
        True
    """

    name: str
    data_type: str
    is_nullable: bool = True
    default: str | None = None
    ordinal_position: int = 0
    is_autoincrement: bool = False


class IndexSchema(BaseModel):
    """Schema for a database index."""

    name: str
    columns: list[str] = Field(default_factory=list)
    is_unique: bool = False
    is_primary: bool = False
    index_type: str = "btree"
    # Backs a UNIQUE constraint (PostgreSQL), so it is dropped through the table
    is_constraint: bool = False


class ForeignKeySchema(BaseModel):
    """Schema for a foreign key constraint."""

    name: str
    columns: list[str] = Field(default_factory=list)
    references_schema: str | None = None
    references_table: str
    references_columns: list[str] = Field(default_factory=list)
    on_delete: str = "NO ACTION"
    on_update: str = "NO ACTION"


class TableSchema(BaseModel):
    """Complete catalog description of one table."""

    schema_name: str
    name: str
    columns: list[ColumnSchema] = Field(default_factory=list)
    indexes: list[IndexSchema] = Field(default_factory=list)
    foreign_keys: list[ForeignKeySchema] = Field(default_factory=list)
    primary_key: list[str] = Field(default_factory=list)


class ConnectionTestResult(BaseModel):
    """Result of ``DatabaseConnector.test_connection()``.

    Example:
        >>> ConnectionTestResult(success=True, message="Connection successful").success
        True
    """

    success: bool
    message: str = ""
    latency_ms: int | None = None
    server_version: str | None = None


# ============================================================================
# Snapshot Models
# ============================================================================

_FROZEN = ConfigDict(frozen=True)


class LogicalType(BaseModel):
    """Engine-agnostic column type.

    ``name`` is one of the shared taxonomy names (``VARCHAR``, ``INTEGER``,
    ...) with ``args`` holding length/precision.  A type with no taxonomy
    equivalent keeps its raw text and is flagged ``unmapped``.

    Example:
        >>> str(LogicalType(name="VARCHAR", args=(255,), raw="character varying(255)"))
        'VARCHAR(255)'
    """

    model_config = _FROZEN

    name: str
    args: tuple[int, ...] = ()
    raw: str = ""
    unmapped: bool = False

    def __str__(self) -> str:
        if self.unmapped:
            return self.raw
        if self.args:
            return f"{self.name}({','.join(str(a) for a in self.args)})"
        return self.name

    def same_as(self, other: "LogicalType") -> bool:
        """Compare two types.

        Two mapped types are equal when name and args match.  Two unmapped
        types are equal only when their raw strings match (ignoring case and
        whitespace runs).  A mapped type never equals an unmapped one.
        """
        if self.unmapped != other.unmapped:
            return False
        if self.unmapped:
            return " ".join(self.raw.lower().split()) == " ".join(other.raw.lower().split())
        return self.name == other.name and self.args == other.args


class ColumnDef(BaseModel):
    """Normalized column definition."""

    model_config = _FROZEN

    name: str
    data_type: LogicalType
    nullable: bool = True
    default: str | None = None
    ordinal_position: int = 0
    autoincrement: bool = False


class IndexDef(BaseModel):
    """Normalized secondary index (primary keys live on ``TableDef``)."""

    model_config = _FROZEN

    name: str
    columns: tuple[str, ...]
    unique: bool = False
    constraint: bool = False


class ForeignKeyDef(BaseModel):
    """Normalized foreign key."""

    model_config = _FROZEN

    name: str
    columns: tuple[str, ...]
    ref_table: str
    ref_columns: tuple[str, ...]
    on_delete: str = "NO ACTION"
    on_update: str = "NO ACTION"


class TableDef(BaseModel):
    """Normalized table definition.

    ``error`` is set when the table could not be introspected; such tables
    carry no columns and are excluded from diffing.
    """

    model_config = _FROZEN

    name: str
    columns: tuple[ColumnDef, ...] = ()
    primary_key: tuple[str, ...] = ()
    indexes: tuple[IndexDef, ...] = ()
    foreign_keys: tuple[ForeignKeyDef, ...] = ()
    error: str | None = None

    def column(self, name: str, rule: NameRule = NameRule.EXACT) -> ColumnDef | None:
        """Look up a column by name under *rule*."""
        wanted = rule.key(name)
        for col in self.columns:
            if rule.key(col.name) == wanted:
                return col
        return None

    @property
    def column_names(self) -> list[str]:
        return [c.name for c in self.columns]


class SchemaSnapshot(BaseModel):
    """Normalized point-in-time description of one schema.

    ``table_name_rule`` and ``column_name_rule`` record how the source
    engine compares identifiers; the diff engine never assumes
    case-insensitivity on its own.
    """

    model_config = _FROZEN

    engine: Engine
    schema_name: str
    tables: tuple[TableDef, ...] = ()
    table_name_rule: NameRule = NameRule.EXACT
    column_name_rule: NameRule = NameRule.EXACT
    server_version: str | None = None
    captured_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def table(self, name: str) -> TableDef | None:
        """Look up a table by name under this snapshot's table rule."""
        wanted = self.table_name_rule.key(name)
        for table in self.tables:
            if self.table_name_rule.key(table.name) == wanted:
                return table
        return None

    @property
    def failed_tables(self) -> list[TableDef]:
        """Tables whose introspection failed."""
        return [t for t in self.tables if t.error is not None]

    @property
    def fingerprint(self) -> str:
        """Stable hash of the structural content (capture time excluded)."""
        payload = self.model_dump_json(exclude={"captured_at", "server_version"})
        return hashlib.sha256(payload.encode()).hexdigest()


# ============================================================================
# Diff Models
# ============================================================================


class DiffKind(StrEnum):
    """Kinds of atomic structural difference."""

    TABLE_ADDED = "table_added"
    TABLE_REMOVED = "table_removed"
    COLUMN_ADDED = "column_added"
    COLUMN_REMOVED = "column_removed"
    COLUMN_MODIFIED = "column_modified"
    INDEX_ADDED = "index_added"
    INDEX_REMOVED = "index_removed"
    INDEX_MODIFIED = "index_modified"
    FK_ADDED = "fk_added"
    FK_REMOVED = "fk_removed"
    FK_MODIFIED = "fk_modified"


class Phase(IntEnum):
    """Execution phase of a migration step, in dependency order."""

    DROP_FK = 1
    DROP_INDEX = 2
    CREATE_TABLE = 3
    ADD_COLUMN = 4
    MODIFY_COLUMN = 5
    ADD_INDEX = 6
    ADD_FK = 7
    DROP_COLUMN = 8
    DROP_TABLE = 9


class MigrationStep(BaseModel):
    """Statements belonging to one phase of one diff item.

    ``table`` is the table the statements touch; for dependent foreign keys
    of a column change it can differ from the diff item's table.
    """

    model_config = _FROZEN

    phase: Phase
    table: str
    statements: tuple[str, ...]


DefT = TableDef | ColumnDef | IndexDef | ForeignKeyDef


class DiffItem(BaseModel):
    """One atomic structural difference.

    ``before`` is the target's current definition and ``after`` the
    source's (desired) one; either is ``None`` for additions/removals.
    """

    model_config = _FROZEN

    kind: DiffKind
    table: str
    name: str | None = None
    before: DefT | None = None
    after: DefT | None = None
    steps: tuple[MigrationStep, ...] = ()

    @property
    def key(self) -> str:
        """Identifier such as ``column_added:users.name``."""
        if self.name is None:
            return f"{self.kind}:{self.table}"
        return f"{self.kind}:{self.table}.{self.name}"

    @property
    def migration_sql(self) -> list[str]:
        """All statements of this item, in phase order."""
        ordered = sorted(self.steps, key=lambda s: s.phase)
        return [stmt for step in ordered for stmt in step.statements]


class SchemaDiff(BaseModel):
    """Ordered diff between a source and a target snapshot.

    Items describe what must change in the target to match the source.
    """

    model_config = _FROZEN

    source_engine: Engine
    target_engine: Engine
    source_schema: str
    target_schema: str
    source_fingerprint: str = ""
    target_fingerprint: str = ""
    items: tuple[DiffItem, ...] = ()
    warnings: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.items

    @property
    def summary(self) -> dict[str, int]:
        """Count of items per kind (every kind present, zero if absent)."""
        counts = {kind.value: 0 for kind in DiffKind}
        for item in self.items:
            counts[item.kind.value] += 1
        return counts

    def format_report(self) -> str:
        """Format the diff as a human-readable report."""
        if self.is_empty and not self.warnings:
            return "Schemas are identical"

        if self.is_empty:
            lines = ["No differences in the compared tables:"]
        else:
            lines = [f"{len(self.items)} difference(s):"]
        for item in self.items:
            lines.append(f"  - {item.key}")
        for warning in self.warnings:
            lines.append(f"  ! {warning}")
        return "\n".join(lines)
