"""
tabulation/services/scoring_session.py
One judge working one category

The session owns a judge-scoped ScoreLedger, an AutoSaveScheduler and the
submission state machine. Every edit is applied to the ledger first and
then scheduled for saving; nothing is read back from the store until
`refresh()` is called.
"""
import asyncio
import logging
from typing import Any, Dict, List, Optional, Set

from tabulation.config import Settings, get_settings
from tabulation.exceptions import NotFoundError
from tabulation.models import CellKey, Category, EventSnapshot, JudgeContext, Participant
from tabulation.services.activity_logger import has_submitted_before
from tabulation.services.autosave_scheduler import AutoSaveScheduler, row_key
from tabulation.services.event_loader import load_event_snapshot
from tabulation.services.partition import filter_by_division
from tabulation.services.rank_calculator import rank_positions, rank_totals
from tabulation.services.score_ledger import ScoreLedger, parse_score_input
from tabulation.state_machines.judge_submission import JudgeSubmissionMachine
from tabulation.store import RemoteStore

logger = logging.getLogger(__name__)


class JudgeScoringSession:
    """
    Scoring session for an explicit JudgeContext.

    Usage:
        session = JudgeScoringSession(store, JudgeContext(judge_id=1, category_id=3))
        await session.load()
        session.set_score(participant_id=7, criterion_id=12, raw="45")
        await session.submit()
        await session.close()
    """

    def __init__(
        self,
        store: RemoteStore,
        context: JudgeContext,
        scheduler: Optional[AutoSaveScheduler] = None,
        settings: Optional[Settings] = None,
    ):
        self.store = store
        self.context = context
        self.settings = settings or get_settings()
        self.scheduler = scheduler or AutoSaveScheduler(store, settings=self.settings)

        self.snapshot: Optional[EventSnapshot] = None
        self.ledger: Optional[ScoreLedger] = None
        self.machine: Optional[JudgeSubmissionMachine] = None
        self._audits: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def load(self) -> "JudgeScoringSession":
        """
        Read the category's event and this judge's score rows.

        Raises:
            NotFoundError: If the category does not exist
            StoreReadError: If the store cannot be read
        """
        category_rows = await self.store.fetch("categories", {"id": self.context.category_id})
        if not category_rows:
            raise NotFoundError(f"Category {self.context.category_id} not found")

        snapshot = await load_event_snapshot(self.store, category_rows[0]["event_id"])
        judge_rows = [row for row in snapshot.scores if row.get("judge_id") == self.context.judge_id]
        ledger = ScoreLedger.from_rows(snapshot.categories, snapshot.participants, judge_rows, event=snapshot.event)
        ledger.seed(self.context.judge_id, self.context.category_id)

        submitted_once = self.machine.submitted_once if self.machine is not None else False
        if not submitted_once:
            submitted_once = await has_submitted_before(
                self.store, self.context.judge_id, self.context.category_id
            )

        self.snapshot = snapshot
        self.ledger = ledger
        self.machine = JudgeSubmissionMachine(
            self.store,
            ledger,
            self.context,
            self.scheduler,
            submitted_once=submitted_once,
            audit_changes=self.settings.score_change_audit,
        )
        logger.info(f"Scoring session loaded: {self.context.to_dict()} state={self.machine.state.value}")
        return self

    async def refresh(self) -> "JudgeScoringSession":
        """Save anything pending, then reload from the store."""
        self.scheduler.flush()
        await self.scheduler.drain()
        return await self.load()

    def _require_loaded(self) -> None:
        if self.ledger is None or self.machine is None:
            raise RuntimeError("Scoring session is not loaded; call load() first")

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def category(self) -> Category:
        self._require_loaded()
        return self.machine.category

    @property
    def participants(self) -> List[Participant]:
        """Participants in the session's division, in display order."""
        self._require_loaded()
        return filter_by_division(self.ledger.participants, self._division)

    @property
    def _division(self) -> Optional[str]:
        if self.snapshot is None or not self.snapshot.event.has_divisions:
            return None
        return self.context.division

    @property
    def saving(self) -> bool:
        return self.scheduler.saving

    @property
    def locked(self) -> bool:
        self._require_loaded()
        return self.machine.locked

    @property
    def unsaved(self) -> bool:
        return bool(self.scheduler.unsaved) or (self.machine is not None and self.machine.unsaved)

    @property
    def is_submitted_once(self) -> bool:
        return self.machine is not None and self.machine.submitted_once

    # ------------------------------------------------------------------
    # Scores
    # ------------------------------------------------------------------

    def get_score(self, participant_id: int, criterion_id: int) -> Optional[float]:
        self._require_loaded()
        return self.ledger.get(self.context.judge_id, participant_id, criterion_id)

    def set_score(self, participant_id: int, criterion_id: int, raw: Any) -> bool:
        """
        Apply raw input to one cell and schedule it for saving.

        Returns False when the input is malformed, the criterion is not part
        of this category, or the category is locked.
        """
        self._require_loaded()
        judge_id = self.context.judge_id
        criterion = self.category.criterion(criterion_id)
        participant = self.ledger.participant(participant_id)
        if criterion is None or participant is None:
            logger.warning(f"Ignoring edit outside session: participant={participant_id} criterion={criterion_id}")
            return False

        cell = parse_score_input(raw, criterion)
        if cell is None:
            logger.debug(f"Rejected malformed score input {raw!r}")
            return False

        old = self.ledger.get(judge_id, participant_id, criterion_id)
        if not self.ledger.set(judge_id, participant_id, criterion_id, cell):
            return False
        new = self.ledger.get(judge_id, participant_id, criterion_id)

        self.scheduler.schedule(
            CellKey(judge_id, participant_id, criterion_id),
            self.ledger.score_row(judge_id, participant_id, criterion_id),
        )
        if self.machine.tracks_changes and old != new:
            self._audit(self.machine.record_score_change(participant, criterion, old, new))
        return True

    def clear_score(self, participant_id: int, criterion_id: int) -> bool:
        return self.set_score(participant_id, criterion_id, None)

    def total(self, participant_id: int) -> float:
        self._require_loaded()
        return self.ledger.total(self.context.judge_id, participant_id, self.context.category_id)

    def totals(self) -> Dict[int, float]:
        self._require_loaded()
        return self.ledger.totals(self.context.judge_id, self.context.category_id, self.participants)

    def rankings(self) -> Dict[int, Optional[int]]:
        """This judge's dense ranks for the session's division."""
        self._require_loaded()
        if self.category.is_ranking:
            return rank_positions({
                p.id: self.ledger.rank(self.context.judge_id, p.id, self.context.category_id)
                for p in self.participants
            })
        return rank_totals(self.totals())

    # ------------------------------------------------------------------
    # Ranks
    # ------------------------------------------------------------------

    def order(self) -> List[int]:
        """Participant ids in the judge's current ranking order."""
        self._require_loaded()
        return list(self.ledger.sequence(self.context.judge_id, self.context.category_id, self._division).order)

    async def reorder(self, order: List[int], commit: bool = True) -> bool:
        """
        Replace the ranking order. A committed reorder (drop) is written
        immediately; otherwise it is debounced like a score edit.

        Raises:
            ValueError: If `order` is not a permutation of the division
        """
        self._require_loaded()
        judge_id, category_id = self.context.judge_id, self.context.category_id
        if not self.category.is_ranking:
            logger.debug(f"Ignoring reorder on scoring category {category_id}")
            return False

        old = self.ledger.positions(judge_id, category_id, self._division)
        new = self.ledger.reorder(judge_id, category_id, self._division, order)
        return await self._commit_ranks(old, new, commit)

    async def move_to_rank(self, participant_id: int, new_rank: int, commit: bool = True) -> bool:
        """Move one participant; out-of-range or unchanged ranks are ignored."""
        self._require_loaded()
        judge_id, category_id = self.context.judge_id, self.context.category_id
        if not self.category.is_ranking:
            return False

        old = self.ledger.positions(judge_id, category_id, self._division)
        new = self.ledger.move_to_rank(judge_id, category_id, self._division, participant_id, new_rank)
        return await self._commit_ranks(old, new, commit)

    async def _commit_ranks(
        self,
        old: Dict[int, Optional[int]],
        new: Optional[Dict[int, int]],
        commit: bool,
    ) -> bool:
        if new is None:
            return False

        rows = self.ledger.rank_rows(self.context.judge_id, self.context.category_id, self._division)
        if commit:
            await self.scheduler.write_now(rows)
        else:
            for row in rows:
                self.scheduler.schedule(row_key(row), row)

        if self.machine.tracks_changes:
            self._audit(self.machine.record_rank_changes(old, new))
        return True

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def submit(self) -> bool:
        self._require_loaded()
        return await self.machine.submit()

    async def unlock(self) -> bool:
        self._require_loaded()
        return await self.machine.unlock()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _audit(self, coro) -> None:
        task = asyncio.ensure_future(coro)
        self._audits.add(task)
        task.add_done_callback(self._audits.discard)

    async def wait_for_audits(self) -> None:
        while self._audits:
            await asyncio.gather(*list(self._audits))

    async def close(self) -> None:
        """Save pending edits and wait for every outstanding write."""
        await self.scheduler.close(flush=True)
        await self.wait_for_audits()
        logger.info(f"Scoring session closed: {self.context.to_dict()}")
