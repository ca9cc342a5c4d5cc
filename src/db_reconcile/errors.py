"""Error taxonomy for schema comparison and data reconciliation.

Hard failures (bad configuration, unreachable or unauthorized connections)
are raised as exceptions so callers fail fast.  Expected per-row and
per-statement failures are recorded on result objects instead
(``SyncResult.errors``, ``MigrationResult.failed_statement``); the
exception types for them exist so those results can carry a typed cause.

Usage:
    from db_reconcile.errors import ConfigurationError, DatabaseConnectionError

    try:
        result = await sync_table_data(source, target, "public", "orders", options)
    except ConfigurationError as e:
        print(f"Fix the sync options first: {e}")
    except DatabaseConnectionError as e:
        if e.transient:
            ...  # retry later
"""


class ReconcileError(Exception):
    """Base class for all db-reconcile errors."""


class DatabaseConnectionError(ReconcileError):
    """A connection could not be opened or was lost.

    Args:
        message: Human-readable description.
        transient: ``True`` for network/timeout problems worth retrying,
            ``False`` for authentication or credential problems.
        connection: Name of the connection that failed, if known.
    """

    def __init__(
        self,
        message: str,
        transient: bool = True,
        connection: str | None = None,
    ) -> None:
        super().__init__(message)
        self.transient = transient
        self.connection = connection


class IntrospectionError(ReconcileError):
    """One table's metadata could not be read.

    Never aborts a whole snapshot: the introspector records the message on
    the affected ``TableDef`` and keeps going.
    """

    def __init__(self, table: str, message: str) -> None:
        super().__init__(f"Cannot introspect table '{table}': {message}")
        self.table = table


class ConfigurationError(ReconcileError):
    """Invalid sync options or keys.  Raised before any mutating statement."""


class StatementExecutionError(ReconcileError):
    """A single SQL statement failed during migration apply or reconciliation."""

    def __init__(self, statement: str, message: str) -> None:
        super().__init__(message)
        self.statement = statement


class PartialFailure(ReconcileError):
    """Some operations in a batch succeeded while others failed.

    Args:
        message: Summary of what happened.
        succeeded: Number of operations that completed.
        failed: Error messages for the operations that did not.
    """

    def __init__(self, message: str, succeeded: int, failed: list[str]) -> None:
        super().__init__(message)
        self.succeeded = succeeded
        self.failed = list(failed)
