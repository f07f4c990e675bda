"""
In-Memory Store (Development Mode)

Local-only RemoteStore implementation backed by plain dicts.
No database dependency for development/testing. Supports simulated
latency and failure injection so the save/lock paths can be exercised.
"""
import asyncio
import copy
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from tabulation.exceptions import StoreReadError, StoreWriteError
from tabulation.store.base import ENTITIES, Filters, RemoteStore, Row, row_matches, sort_rows

logger = logging.getLogger(__name__)


class InMemoryStore(RemoteStore):
    """
    In-memory store for development and tests.

    Idempotent like the production store: upserts converge on the conflict
    key regardless of how often they are repeated.
    """

    def __init__(self, latency: float = 0.0):
        self._tables: Dict[str, List[Row]] = {entity: [] for entity in ENTITIES}
        self._next_id: Dict[str, int] = {entity: 1 for entity in ENTITIES}
        self._lock = asyncio.Lock()
        self.latency = latency
        self.fail_writes = False
        self.fail_reads = False
        self._fail_next_writes = 0
        self.write_log: List[Dict[str, Any]] = []

    # ------------------------------------------------------------------
    # Test helpers
    # ------------------------------------------------------------------

    def seed(self, entity: str, rows: Sequence[Row]) -> None:
        """Insert rows directly, bypassing failure injection."""
        self._check_entity(entity, writing=True)
        for row in rows:
            self._insert(entity, dict(row))

    def fail_next_writes(self, count: int = 1) -> None:
        """Make the next `count` write calls raise StoreWriteError."""
        self._fail_next_writes = count

    def rows(self, entity: str) -> List[Row]:
        """Snapshot of an entity table."""
        return copy.deepcopy(self._tables[entity])

    # ------------------------------------------------------------------
    # RemoteStore
    # ------------------------------------------------------------------

    async def fetch(
        self,
        entity: str,
        filters: Optional[Filters] = None,
        order: Optional[Sequence[str]] = None,
    ) -> List[Row]:
        self._check_entity(entity)
        await self._simulate_latency()
        if self.fail_reads:
            raise StoreReadError(f"Simulated read failure on {entity}", entity=entity)

        async with self._lock:
            matched = [copy.deepcopy(r) for r in self._tables[entity] if row_matches(r, filters)]
        return sort_rows(matched, order or ["id"])

    async def upsert(self, entity: str, rows: Sequence[Row], conflict_key: Sequence[str]) -> None:
        self._check_entity(entity, writing=True)
        await self._simulate_latency()
        self._maybe_fail_write("upsert", entity)

        async with self._lock:
            for row in rows:
                key = {field: row.get(field) for field in conflict_key}
                existing = next(
                    (r for r in self._tables[entity] if row_matches(r, key)),
                    None
                )
                if existing is not None:
                    existing.update(copy.deepcopy(row))
                    existing["updated_at"] = datetime.utcnow()
                else:
                    self._insert(entity, copy.deepcopy(row))
            self.write_log.append({"op": "upsert", "entity": entity, "rows": copy.deepcopy(list(rows))})

    async def update(self, entity: str, filters: Filters, patch: Row) -> int:
        self._check_entity(entity, writing=True)
        await self._simulate_latency()
        self._maybe_fail_write("update", entity)

        touched = 0
        async with self._lock:
            for row in self._tables[entity]:
                if row_matches(row, filters):
                    row.update(copy.deepcopy(patch))
                    row["updated_at"] = datetime.utcnow()
                    touched += 1
            self.write_log.append({"op": "update", "entity": entity, "filters": dict(filters), "patch": dict(patch)})
        return touched

    async def append(self, entity: str, row: Row) -> Row:
        self._check_entity(entity, writing=True)
        await self._simulate_latency()
        self._maybe_fail_write("append", entity)

        async with self._lock:
            stored = self._insert(entity, copy.deepcopy(row))
            self.write_log.append({"op": "append", "entity": entity, "rows": [copy.deepcopy(stored)]})
        return copy.deepcopy(stored)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _insert(self, entity: str, row: Row) -> Row:
        if row.get("id") is None:
            row["id"] = self._next_id[entity]
        self._next_id[entity] = max(self._next_id[entity], row["id"]) + 1
        row.setdefault("created_at", datetime.utcnow())
        self._tables[entity].append(row)
        return row

    async def _simulate_latency(self) -> None:
        if self.latency > 0:
            await asyncio.sleep(self.latency)

    def _maybe_fail_write(self, op: str, entity: str) -> None:
        if self._fail_next_writes > 0:
            self._fail_next_writes -= 1
            raise StoreWriteError(f"Simulated {op} failure on {entity}", entity=entity)
        if self.fail_writes:
            raise StoreWriteError(f"Simulated {op} failure on {entity}", entity=entity)
