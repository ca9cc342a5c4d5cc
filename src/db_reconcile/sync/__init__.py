"""Row-level data reconciliation and instance-group status.

Usage:
    from db_reconcile.sync import SyncOptions, sync_table_data, get_group_sync_status
    from db_reconcile.sync import get_table_data_diff, sync_rows
"""

from db_reconcile.sync.models import (
    GroupSyncStatus,
    RowDiff,
    RowPair,
    SyncOptions,
    SyncResult,
    TableDataDiff,
    TargetStatus,
)
from db_reconcile.sync.orchestrator import get_group_sync_status
from db_reconcile.sync.reconciler import (
    get_row_diff,
    get_table_data_diff,
    get_table_row_counts,
    sync_rows,
    sync_table_data,
)

__all__ = [
    "GroupSyncStatus",
    "RowDiff",
    "RowPair",
    "SyncOptions",
    "SyncResult",
    "TableDataDiff",
    "TargetStatus",
    "get_group_sync_status",
    "get_row_diff",
    "get_table_data_diff",
    "get_table_row_counts",
    "sync_rows",
    "sync_table_data",
]
