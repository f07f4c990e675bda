"""
tabulation/services/results_service.py
Auditor view: category results, final results and per-judge breakdowns
"""
import logging
from typing import Any, Dict, List, Optional, Union

from tabulation.exceptions import NotFoundError
from tabulation.models import EventSnapshot
from tabulation.services.aggregation_service import (
    AggregationMode,
    Aggregator,
    CategoryResult,
    FinalResult,
    get_aggregator,
)
from tabulation.services.event_loader import load_event_snapshot
from tabulation.services.partition import divisions_for, filter_by_division
from tabulation.services.rank_calculator import rank_positions, rank_totals
from tabulation.services.score_ledger import ScoreLedger
from tabulation.store import RemoteStore

logger = logging.getLogger(__name__)


class ResultsService:
    """
    Read-only results over one event snapshot.

    Build with `ResultsService.load(store, event_id)` or directly from a
    snapshot. The ledger is rebuilt from the snapshot's score rows; nothing
    is cached between snapshots.
    """

    def __init__(self, snapshot: EventSnapshot):
        self.snapshot = snapshot
        self.ledger = ScoreLedger.from_rows(
            snapshot.categories,
            snapshot.participants,
            snapshot.scores,
            event=snapshot.event,
        )

    @classmethod
    async def load(cls, store: RemoteStore, event_id: int) -> "ResultsService":
        snapshot = await load_event_snapshot(store, event_id)
        return cls(snapshot)

    @property
    def divisions(self) -> List[Optional[str]]:
        return divisions_for(self.snapshot.event)

    def judge_ids(self, category_id: Optional[int] = None) -> List[int]:
        """Registered judges plus anyone who left scores."""
        found = {judge.id for judge in self.snapshot.judges}
        if category_id is not None:
            categories = [self.snapshot.category(category_id)]
        else:
            categories = self.snapshot.categories
        for category in categories:
            if category is not None:
                found.update(self.ledger.judges(category.id))
        return sorted(found)

    def _check_division(self, division: Optional[str]) -> Optional[str]:
        if division is None or not self.snapshot.event.has_divisions:
            return None
        if division not in self.divisions:
            raise NotFoundError(f"Division '{division}' not found")
        return division

    def category_results(
        self,
        category_id: int,
        mode: Union[str, AggregationMode] = AggregationMode.RANK,
        division: Optional[str] = None,
        aggregator: Optional[Aggregator] = None,
    ) -> CategoryResult:
        """
        Raises:
            NotFoundError: If the category is not part of the event
        """
        category = self.snapshot.category(category_id)
        if category is None:
            raise NotFoundError(f"Category {category_id} not found")
        aggregator = aggregator or get_aggregator(mode)
        return aggregator.category_result(
            self.ledger,
            category,
            self.judge_ids(category_id),
            self._check_division(division),
        )

    def final_results(
        self,
        mode: Union[str, AggregationMode] = AggregationMode.RANK,
        division: Optional[str] = None,
        aggregator: Optional[Aggregator] = None,
        apply_display_limit: bool = True,
    ) -> FinalResult:
        """
        Final standings. When the event sets a top display limit, only
        standings ranked within it are kept (per division on divided events).
        """
        aggregator = aggregator or get_aggregator(mode)
        result = aggregator.final_result(
            self.ledger,
            self.snapshot.categories,
            self.judge_ids(),
            self._check_division(division),
        )

        limit = self.snapshot.event.top_display_limit
        if apply_display_limit and limit and limit > 0:
            result.standings = [s for s in result.standings if s.rank is not None and s.rank <= limit]

        logger.debug(
            f"Final results for event {self.snapshot.event.id} "
            f"(mode={result.mode}, division={result.division}): {len(result.standings)} standings"
        )
        return result

    def judge_breakdown(
        self,
        judge_id: int,
        category_id: int,
        division: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """
        One judge's totals (or placements), ranks and lock state for a
        category. Divided events are ranked per division.
        """
        category = self.snapshot.category(category_id)
        if category is None:
            raise NotFoundError(f"Category {category_id} not found")
        division = self._check_division(division)
        divisions = [division] if division is not None else self.divisions

        locked = self.ledger.is_locked(judge_id, category_id)
        entries = []
        for name in divisions:
            members = filter_by_division(self.ledger.participants, name)
            if category.is_ranking:
                totals: Dict[int, Optional[float]] = {p.id: None for p in members}
                ranks = rank_positions({p.id: self.ledger.rank(judge_id, p.id, category_id) for p in members})
            else:
                totals = self.ledger.totals(judge_id, category_id, members)
                ranks = rank_totals(totals)

            entries.extend(
                {
                    "participant_id": p.id,
                    "name": p.name,
                    "number": p.number,
                    "division": p.division,
                    "total": totals[p.id],
                    "rank": ranks[p.id],
                    "locked": locked,
                }
                for p in members
            )
        return entries
