"""Snapshot and diff cache.

``SchemaCache`` is an explicit object the caller creates and passes to the
operations that should use it; there is no module-level instance.

- Snapshots are keyed by ``(connection name, schema)`` and expire after
  ``ttl_seconds``.
- Diffs are memoized by ``(source fingerprint, target fingerprint)``.
  ``diff_schemas`` is deterministic, so a memoized diff never goes stale;
  a schema change produces a new fingerprint instead.  At most
  ``max_diffs`` are kept; the least recently used one is evicted first.
- ``invalidate(connection)`` drops a connection's snapshots.  Operations
  that apply migrations or sync data call it for the target.

Usage:
    cache = SchemaCache(ttl_seconds=60)
    diff = await compare_schemas(source, target, "public", "public", cache=cache)
    await apply_migration(target, statements, cache=cache)  # invalidates target
"""

import logging
import time
from collections import OrderedDict
from collections.abc import Callable
from typing import TYPE_CHECKING

from db_reconcile.schema.comparator import diff_schemas
from db_reconcile.schema.introspector import SchemaIntrospector
from db_reconcile.schema.models import SchemaDiff, SchemaSnapshot

if TYPE_CHECKING:
    from db_reconcile.adapters.base import DatabaseConnector

logger = logging.getLogger(__name__)


class SchemaCache:
    """TTL cache for snapshots plus a memo table for diffs.

    Args:
        ttl_seconds: How long a snapshot stays valid.
        clock: Monotonic clock, replaceable in tests.
        max_diffs: Memoized diffs kept before the least recently used is dropped.
    """

    def __init__(
        self,
        ttl_seconds: float = 300,
        clock: Callable[[], float] = time.monotonic,
        max_diffs: int = 128,
    ):
        self._ttl = ttl_seconds
        self._clock = clock
        self._max_diffs = max(1, max_diffs)
        self._snapshots: dict[tuple[str, str], tuple[float, SchemaSnapshot]] = {}
        self._diffs: OrderedDict[tuple[str, str], SchemaDiff] = OrderedDict()

    def __len__(self) -> int:
        return len(self._snapshots)

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def get(self, connection: str, schema: str) -> SchemaSnapshot | None:
        """Cached snapshot, or ``None`` if absent or expired."""
        entry = self._snapshots.get((connection, schema))
        if entry is None:
            return None
        stored_at, snapshot = entry
        if self._clock() - stored_at > self._ttl:
            del self._snapshots[(connection, schema)]
            return None
        return snapshot

    def put(self, connection: str, schema: str, snapshot: SchemaSnapshot) -> None:
        self._snapshots[(connection, schema)] = (self._clock(), snapshot)

    async def snapshot(self, connector: "DatabaseConnector", schema: str) -> SchemaSnapshot:
        """Cached snapshot for *connector*, introspecting on a miss."""
        cached = self.get(connector.name, schema)
        if cached is not None:
            logger.debug(f"Snapshot cache hit: {connector.name}/{schema}")
            return cached
        snapshot = await SchemaIntrospector(connector).introspect(schema)
        self.put(connector.name, schema, snapshot)
        return snapshot

    def invalidate(self, connection: str) -> int:
        """Drop every snapshot of *connection*.

        Returns:
            Number of snapshots dropped.
        """
        stale = [key for key in self._snapshots if key[0] == connection]
        for key in stale:
            del self._snapshots[key]
        if stale:
            logger.debug(f"Invalidated {len(stale)} snapshot(s) for '{connection}'")
        return len(stale)

    def clear(self) -> None:
        self._snapshots.clear()
        self._diffs.clear()

    # ------------------------------------------------------------------
    # Diffs
    # ------------------------------------------------------------------

    def diff(self, source: SchemaSnapshot, target: SchemaSnapshot) -> SchemaDiff:
        """Memoized ``diff_schemas(source, target)``."""
        key = (source.fingerprint, target.fingerprint)
        cached = self._diffs.get(key)
        if cached is not None:
            self._diffs.move_to_end(key)
            return cached
        cached = diff_schemas(source, target)
        self._diffs[key] = cached
        while len(self._diffs) > self._max_diffs:
            self._diffs.popitem(last=False)
        return cached

    @property
    def diff_count(self) -> int:
        return len(self._diffs)
