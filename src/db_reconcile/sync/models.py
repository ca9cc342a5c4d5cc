"""Pydantic models for data reconciliation and group status.

- ``SyncOptions``: what a reconciliation run may change, and how it keys rows
- ``RowDiff``: key-set comparison of one table (coarse pre-check)
- ``SyncResult``: outcome of one table's reconciliation (or of a ``sync_rows`` call)
- ``TableDataDiff``: the differing rows themselves, capped per bucket
- ``TargetStatus`` / ``GroupSyncStatus``: per-target aggregate of an
  instance group check
"""

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from db_reconcile.errors import PartialFailure

StatusT = Literal["in_sync", "out_of_sync", "error", "unchecked"]
RowsModeT = Literal["insert", "upsert"]


class SyncOptions(BaseModel):
    """Options for ``sync_table_data``.

    Attributes:
        insert_missing: Insert rows present only in the source.
        update_different: Update rows whose compared columns differ.
        delete_extra: Delete rows present only in the target.
        primary_keys: Ordered key columns; must form a unique, NOT NULL key
            on both sides.
        compare_columns: Columns compared and written on update (default:
            every non-key column present on both sides).
        batch_size: Rows per fetch chunk and per write transaction.

    Example:
        >>> SyncOptions(primary_keys=["id"]).batch_size
        500
    """

    insert_missing: bool = True
    update_different: bool = True
    delete_extra: bool = False
    primary_keys: list[str] = Field(min_length=1)
    compare_columns: list[str] | None = None
    batch_size: int = Field(default=500, ge=1, le=10000)

    @field_validator("primary_keys")
    @classmethod
    def _unique_keys(cls, value: list[str]) -> list[str]:
        if any(not name for name in value):
            raise ValueError("primary key column names must not be empty")
        if len(set(value)) != len(value):
            raise ValueError("primary key columns must be unique")
        return value

    @property
    def applies_changes(self) -> bool:
        """True if any flag allows a mutating statement."""
        return self.insert_missing or self.update_different or self.delete_extra


class RowDiff(BaseModel):
    """Key-set comparison of one table.

    ``exact`` is ``False`` when the table had no usable key (or is missing
    on one side) and the counts come from ``COUNT(*)``; the missing counts
    are then only the difference of the two totals.
    """

    model_config = ConfigDict(frozen=True)

    table: str
    source_count: int = 0
    target_count: int = 0
    missing_in_target: int = 0
    missing_in_source: int = 0
    exact: bool = True
    error: str | None = None

    @property
    def in_sync(self) -> bool:
        """Same keys on both sides (differing non-key values are not visible here)."""
        return (
            self.error is None
            and self.source_count == self.target_count
            and self.missing_in_target == 0
            and self.missing_in_source == 0
        )


class SyncResult(BaseModel):
    """Outcome of reconciling one table.

    Counts in ``inserted``/``updated``/``deleted`` are rows actually written.
    ``would_*`` counts are the candidate rows found, whether or not their
    flag allowed applying them.  ``skipped`` explains every bucket that was
    computed but not applied.

    Example:
        >>> SyncResult(table="orders", inserted=5, errors=("update batch 1 (5 rows) failed: ...",)).partial
        True
    """

    model_config = ConfigDict(frozen=True)

    table: str
    inserted: int = 0
    updated: int = 0
    deleted: int = 0
    errors: tuple[str, ...] = ()
    would_insert: int = 0
    would_update: int = 0
    would_delete: int = 0
    skipped: tuple[str, ...] = ()
    row_diff: RowDiff | None = None

    @property
    def success(self) -> bool:
        return not self.errors

    @property
    def partial(self) -> bool:
        """Some batches committed while others failed."""
        return bool(self.errors) and (self.inserted + self.updated + self.deleted) > 0

    def raise_for_errors(self) -> None:
        """Raise ``PartialFailure`` if any batch failed."""
        if self.errors:
            raise PartialFailure(
                f"Sync of '{self.table}' finished with {len(self.errors)} failed batch(es)",
                succeeded=self.inserted + self.updated + self.deleted,
                failed=list(self.errors),
            )


class RowPair(BaseModel):
    """The source and target versions of a row whose compared columns differ."""

    model_config = ConfigDict(frozen=True)

    source: dict[str, Any]
    target: dict[str, Any]


class TableDataDiff(BaseModel):
    """Row-level differences of one table.

    Each bucket holds at most ``limit`` rows; ``truncated`` is set when any
    bucket had more.  The ``missing_*`` and ``differing`` totals count every
    row found, including those left out of the buckets.
    """

    model_config = ConfigDict(frozen=True)

    table: str
    key_columns: tuple[str, ...]
    missing_in_target: tuple[dict[str, Any], ...] = ()
    missing_in_source: tuple[dict[str, Any], ...] = ()
    different: tuple[RowPair, ...] = ()
    missing_in_target_count: int = 0
    missing_in_source_count: int = 0
    different_count: int = 0
    limit: int = 100

    @property
    def truncated(self) -> bool:
        return (
            self.missing_in_target_count > len(self.missing_in_target)
            or self.missing_in_source_count > len(self.missing_in_source)
            or self.different_count > len(self.different)
        )

    @property
    def is_empty(self) -> bool:
        return not (self.missing_in_target_count or self.missing_in_source_count or self.different_count)


class TargetStatus(BaseModel):
    """Comparison status of one target in an instance group."""

    connection: str
    status: StatusT = "unchecked"
    schema_status: StatusT = "unchecked"
    data_status: StatusT = "unchecked"
    schema_diff_count: int | None = None
    data_diff_summary: dict[str, int] | None = None
    error: str | None = None
    checked_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class GroupSyncStatus(BaseModel):
    """Per-target statuses of an instance group."""

    source: str | None = None
    targets: list[TargetStatus] = Field(default_factory=list)

    @property
    def status(self) -> StatusT:
        """Worst status across targets (error > out_of_sync > in_sync > unchecked)."""
        statuses = {t.status for t in self.targets}
        for candidate in ("error", "out_of_sync", "in_sync"):
            if candidate in statuses:
                return candidate  # type: ignore[return-value]
        return "unchecked"

    def format_report(self) -> str:
        lines = [f"Group status: {self.status} (source: {self.source or 'none'})"]
        for target in self.targets:
            line = f"  - {target.connection}: {target.status}"
            if target.error:
                line += f" ({target.error})"
            lines.append(line)
        return "\n".join(lines)
