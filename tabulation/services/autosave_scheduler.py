"""
tabulation/services/autosave_scheduler.py
Debounced, idempotent score auto-save

Every ledger cell has its own timer. Re-editing a cell before its timer
fires replaces both the timer and the payload, so only the last value is
written. Timers for different cells never wait on each other.

Writes are upserts on (judge_id, participant_id, criteria_id), so replaying
a payload is harmless. Failed writes are not retried; the affected keys stay
in `unsaved` until a later write of the same key succeeds.
"""
import asyncio
import logging
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Set

from tabulation.config import Settings, get_settings
from tabulation.exceptions import StoreError
from tabulation.models import CellKey, SCORE_CONFLICT_KEY
from tabulation.store import RemoteStore
from tabulation.store.base import Row

logger = logging.getLogger(__name__)


def row_key(row: Row) -> CellKey:
    """Cell key addressed by a score payload."""
    return CellKey(row["judge_id"], row["participant_id"], row["criteria_id"])


class AutoSaveScheduler:
    """
    Per-key debounce timers in front of RemoteStore.upsert.

    Must be used from within a running event loop.
    """

    def __init__(
        self,
        store: RemoteStore,
        delay: Optional[float] = None,
        settings: Optional[Settings] = None,
        on_state_change: Optional[Callable[[bool], None]] = None,
        entity: str = "scores",
        conflict_key: Sequence[str] = SCORE_CONFLICT_KEY,
    ):
        self.store = store
        self.delay = delay if delay is not None else (settings or get_settings()).autosave_delay
        self.on_state_change = on_state_change
        self.entity = entity
        self.conflict_key = tuple(conflict_key)

        self._timers: Dict[CellKey, asyncio.TimerHandle] = {}
        self._pending: Dict[CellKey, Row] = {}
        self._in_flight: Set[asyncio.Task] = set()
        self._last_saving = False
        self.unsaved: Set[CellKey] = set()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def saving(self) -> bool:
        """True while any write is outstanding."""
        return bool(self._in_flight)

    @property
    def pending(self) -> Set[CellKey]:
        """Keys with an armed timer."""
        return set(self._timers)

    def _notify(self) -> None:
        saving = self.saving
        if saving == self._last_saving:
            return
        self._last_saving = saving
        if self.on_state_change is not None:
            self.on_state_change(saving)

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def schedule(self, key: CellKey, payload: Row) -> None:
        """Arm (or re-arm) the timer for `key` with the latest payload."""
        handle = self._timers.pop(key, None)
        if handle is not None:
            handle.cancel()

        self._pending[key] = dict(payload)
        loop = asyncio.get_running_loop()
        self._timers[key] = loop.call_later(self.delay, self._fire, key)

    def _fire(self, key: CellKey) -> None:
        self._timers.pop(key, None)
        payload = self._pending.pop(key, None)
        if payload is None:
            return
        self._spawn([payload])

    def _cancel(self, keys: Iterable[CellKey]) -> None:
        for key in keys:
            handle = self._timers.pop(key, None)
            if handle is not None:
                handle.cancel()
            self._pending.pop(key, None)

    def _spawn(self, rows: List[Row]) -> asyncio.Task:
        task = asyncio.ensure_future(self._write(rows))
        self._in_flight.add(task)
        task.add_done_callback(self._on_done)
        self._notify()
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._in_flight.discard(task)
        self._notify()

    async def _write(self, rows: List[Row]) -> bool:
        keys = [row_key(row) for row in rows]
        try:
            await self.store.upsert(self.entity, rows, self.conflict_key)
        except StoreError as e:
            logger.error(f"Auto-save failed for {len(rows)} cell(s): {e.message}")
            self.unsaved.update(keys)
            return False

        self.unsaved.difference_update(keys)
        logger.debug(f"Saved {len(rows)} cell(s)")
        return True

    # ------------------------------------------------------------------
    # Immediate writes and lifecycle
    # ------------------------------------------------------------------

    async def write_now(self, rows: Sequence[Row]) -> bool:
        """
        Write rows immediately, superseding any pending timer for the same
        keys. Returns False if the store rejected the batch.
        """
        rows = [dict(row) for row in rows]
        if not rows:
            return True
        self._cancel(row_key(row) for row in rows)
        return await self._spawn(rows)

    def flush(self) -> None:
        """Fire every armed timer now."""
        for key in list(self._timers):
            handle = self._timers.pop(key)
            handle.cancel()
            payload = self._pending.pop(key, None)
            if payload is not None:
                self._spawn([payload])

    async def drain(self) -> None:
        """Wait for every in-flight write, including ones started meanwhile."""
        while self._in_flight:
            await asyncio.gather(*list(self._in_flight))

    async def close(self, flush: bool = False) -> None:
        """
        Stop the scheduler. Pending timers are dropped unless `flush` is set;
        in-flight writes are always awaited.
        """
        if flush:
            self.flush()
        else:
            self._cancel(list(self._timers))
        await self.drain()
