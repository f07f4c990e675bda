"""
tabulation/state_machines/judge_submission.py
Submission lifecycle for one (judge, category)

    draft --submit--> submitted --unlock--> draft

Submitting stamps every score row of the pair with one timestamp in a
single upsert batch; unlocking clears the stamp with a single update. Once a
pair has been submitted, later value changes are audited.
"""
import logging
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from tabulation.exceptions import InvalidTransitionError, NotFoundError, StoreError
from tabulation.models import Criterion, JudgeContext, Participant
from tabulation.services.activity_logger import (
    ActivityAction,
    describe_rank_change,
    describe_score_change,
    describe_submit,
    describe_unlock,
    log_judge_activity,
)
from tabulation.services.autosave_scheduler import AutoSaveScheduler
from tabulation.services.partition import divisions_for, filter_by_division
from tabulation.services.rank_calculator import rank_positions, rank_totals
from tabulation.services.score_ledger import ScoreLedger
from tabulation.store import RemoteStore
from tabulation.store.base import Row

logger = logging.getLogger(__name__)


class SubmissionState(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"


class JudgeSubmissionMachine:
    """
    State machine for a judge's submission of one category.

    The lock spans every division of the category; the context's division
    only appears in audit metadata.
    """

    # Valid state transitions: {current_state: [allowed_next_states]}
    ALLOWED_TRANSITIONS: Dict[SubmissionState, List[SubmissionState]] = {
        SubmissionState.DRAFT: [SubmissionState.SUBMITTED],
        SubmissionState.SUBMITTED: [SubmissionState.DRAFT],
    }

    def __init__(
        self,
        store: RemoteStore,
        ledger: ScoreLedger,
        context: JudgeContext,
        scheduler: AutoSaveScheduler,
        submitted_once: bool = False,
        audit_changes: bool = True,
    ):
        category = ledger.category(context.category_id)
        if category is None:
            raise NotFoundError(f"Category {context.category_id} not found")

        self.store = store
        self.ledger = ledger
        self.context = context
        self.scheduler = scheduler
        self.category = category
        self.audit_changes = audit_changes

        locked = ledger.is_locked(context.judge_id, context.category_id)
        self.state = SubmissionState.SUBMITTED if locked else SubmissionState.DRAFT
        # Never cleared once set
        self.submitted_once = submitted_once or locked
        self.unsaved = False

    @property
    def locked(self) -> bool:
        return self.state == SubmissionState.SUBMITTED

    @property
    def tracks_changes(self) -> bool:
        return self.audit_changes and self.submitted_once

    def _check_transition(self, to_state: SubmissionState) -> None:
        if to_state not in self.ALLOWED_TRANSITIONS.get(self.state, []):
            raise InvalidTransitionError(
                f"Cannot go from {self.state.value} to {to_state.value} "
                f"for judge {self.context.judge_id} category {self.context.category_id}"
            )

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def submit(self) -> bool:
        """
        Lock the pair.

        Returns:
            True on success; False if the batch write failed, in which case
            nothing changes in memory and the machine is marked unsaved.

        Raises:
            InvalidTransitionError: If already submitted
        """
        self._check_transition(SubmissionState.SUBMITTED)
        await self.scheduler.drain()

        judge_id, category_id = self.context.judge_id, self.context.category_id
        at = datetime.utcnow()
        rows = self._batch_rows(at)

        if not await self.scheduler.write_now(rows):
            self.unsaved = True
            logger.error(f"Submit failed for judge {judge_id} category {category_id}; left in draft")
            return False

        if self.category.is_ranking:
            for division in divisions_for(self.ledger.event):
                sequence = self.ledger.sequence(judge_id, category_id, division)
                if not sequence.complete and sequence.order:
                    self.ledger.reorder(judge_id, category_id, division, sequence.order)

        self.ledger.lock(judge_id, category_id, at)
        self.state = SubmissionState.SUBMITTED
        self.submitted_once = True
        self.unsaved = False
        logger.info(f"Judge {judge_id} submitted category {category_id} ({len(rows)} rows)")

        entries = self.summarize()
        await log_judge_activity(
            self.store,
            judge_id,
            category_id,
            ActivityAction.SUBMIT,
            describe_submit(self.category.name, entries),
            {
                "division": self.context.division,
                "tabular_type": self.category.tabular_type.value,
                "submitted_at": at.isoformat(),
                "participants": entries,
            },
        )
        return True

    async def unlock(self) -> bool:
        """
        Return the pair to draft.

        Raises:
            InvalidTransitionError: If not submitted
        """
        self._check_transition(SubmissionState.DRAFT)
        await self.scheduler.drain()

        judge_id, category_id = self.context.judge_id, self.context.category_id
        participant_ids = [p.id for p in self.ledger.participants]
        filters = {
            "judge_id": judge_id,
            "participant_id": participant_ids,
            "criteria_id": [c.id for c in self.category.criteria],
        }
        try:
            touched = await self.store.update("scores", filters, {"submitted_at": None})
        except StoreError as e:
            self.unsaved = True
            logger.error(f"Unlock failed for judge {judge_id} category {category_id}: {e.message}")
            return False

        self.ledger.unlock(judge_id, category_id)
        self.state = SubmissionState.DRAFT
        self.unsaved = False
        logger.info(f"Judge {judge_id} unlocked category {category_id} ({touched} rows)")

        await log_judge_activity(
            self.store,
            judge_id,
            category_id,
            ActivityAction.UNLOCK,
            describe_unlock(self.category.name, participant_ids),
            {
                "division": self.context.division,
                "participant_ids": participant_ids,
                "rows": touched,
            },
        )
        return True

    def _batch_rows(self, at: datetime) -> List[Row]:
        judge_id, category_id = self.context.judge_id, self.context.category_id
        if not self.category.is_ranking:
            return self.ledger.to_rows(judge_id, category_id, submitted_at=at)

        # Unranked sequences are submitted in the order the judge sees them
        first = self.category.first_criterion
        if first is None:
            return []
        rows = []
        for division in divisions_for(self.ledger.event):
            sequence = self.ledger.sequence(judge_id, category_id, division)
            for index, participant_id in enumerate(sequence.order):
                rows.append({
                    "judge_id": judge_id,
                    "participant_id": participant_id,
                    "criteria_id": first.id,
                    "score": 0,
                    "rank": index + 1,
                    "submitted_at": at,
                })
        return rows

    def summarize(self) -> List[Dict[str, Any]]:
        """Totals and ranks of every participant, per division."""
        judge_id, category_id = self.context.judge_id, self.context.category_id
        entries = []
        for division in divisions_for(self.ledger.event):
            members = filter_by_division(self.ledger.participants, division)
            if self.category.is_ranking:
                ranks = rank_positions(self.ledger.positions(judge_id, category_id, division))
                totals: Dict[int, Optional[float]] = {p.id: None for p in members}
            else:
                totals = self.ledger.totals(judge_id, category_id, members)
                ranks = rank_totals(totals)
            for participant in members:
                entries.append({
                    "participant_id": participant.id,
                    "name": participant.name,
                    "division": division,
                    "total": totals[participant.id],
                    "rank": ranks.get(participant.id),
                })
        return entries

    # ------------------------------------------------------------------
    # Change audit
    # ------------------------------------------------------------------

    async def record_score_change(
        self,
        participant: Participant,
        criterion: Criterion,
        old: Optional[float],
        new: Optional[float],
    ) -> Optional[Row]:
        if not self.tracks_changes or old == new:
            return None
        return await log_judge_activity(
            self.store,
            self.context.judge_id,
            self.context.category_id,
            ActivityAction.SCORE_CHANGE,
            describe_score_change(participant.name, criterion.name, old, new),
            {
                "participant_id": participant.id,
                "criterion_id": criterion.id,
                "old_score": old,
                "new_score": new,
            },
        )

    async def record_rank_changes(
        self,
        old_ranks: Dict[int, Optional[int]],
        new_ranks: Dict[int, Optional[int]],
    ) -> int:
        """Audit every participant whose rank moved. Returns rows appended."""
        if not self.tracks_changes:
            return 0
        appended = 0
        for participant_id, new in new_ranks.items():
            old = old_ranks.get(participant_id)
            if old == new:
                continue
            participant = self.ledger.participant(participant_id)
            name = participant.name if participant is not None else str(participant_id)
            row = await log_judge_activity(
                self.store,
                self.context.judge_id,
                self.context.category_id,
                ActivityAction.RANK_CHANGE,
                describe_rank_change(name, old, new),
                {
                    "participant_id": participant_id,
                    "old_rank": old,
                    "new_rank": new,
                    "division": self.context.division,
                },
            )
            if row is not None:
                appended += 1
        return appended
