"""
tabulation/services/aggregation_service.py
Combine many judges into category results and many categories into final results

Two strategies share one pipeline:

- RankBasedAggregator: each judge's dense rank per category is averaged over
  the judges who ranked the participant; final standings average those
  category ranks and rank them lowest first.
- ScoreBasedAggregator: each judge's raw category total is averaged over the
  judges who gave the participant any points; ranking categories carry no
  score. Final standings rank the averages highest first.

Divisions never compete: a divided event is always ranked one division at
a time. Completed categories contribute nothing in either mode. Everything
here is pure and recomputed on every call.
"""
import abc
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from tabulation.models import Category, Participant
from tabulation.services.partition import divisions_for, filter_by_division
from tabulation.services.rank_calculator import dense_rank, rank_positions, rank_totals
from tabulation.services.score_ledger import ScoreLedger

# Averages are compared at this precision so float noise cannot split a tie
RANKING_PRECISION = 9


class AggregationMode(str, Enum):
    RANK = "rank"
    SCORE = "score"


def _mean(values: Iterable[Optional[float]]) -> Optional[float]:
    present = [v for v in values if v is not None]
    if not present:
        return None
    return sum(present) / len(present)


def _rank_averages(averages: Dict[int, Optional[float]], descending: bool) -> Dict[int, Optional[int]]:
    rounded = {
        key: (round(value, RANKING_PRECISION) if value is not None else None)
        for key, value in averages.items()
    }
    return dense_rank(rounded, descending=descending)


@dataclass
class ParticipantStanding:
    """One participant's line in a category result."""
    participant_id: int
    name: str
    number: Optional[int]
    division: Optional[str]
    judge_values: Dict[int, Optional[float]] = field(default_factory=dict)
    average: Optional[float] = None
    rank: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "participant_id": self.participant_id,
            "name": self.name,
            "number": self.number,
            "division": self.division,
            "judge_values": dict(self.judge_values),
            "average": self.average,
            "rank": self.rank,
        }


@dataclass
class CategoryResult:
    category_id: int
    name: str
    tabular_type: str
    is_completed: bool
    mode: str
    division: Optional[str]
    standings: List[ParticipantStanding] = field(default_factory=list)

    def average_for(self, participant_id: int) -> Optional[float]:
        for standing in self.standings:
            if standing.participant_id == participant_id:
                return standing.average
        return None


@dataclass
class FinalStanding:
    participant_id: int
    name: str
    number: Optional[int]
    division: Optional[str]
    category_values: Dict[int, Optional[float]] = field(default_factory=dict)
    average: Optional[float] = None
    rank: Optional[int] = None


@dataclass
class FinalResult:
    mode: str
    division: Optional[str]
    categories: List[CategoryResult] = field(default_factory=list)
    standings: List[FinalStanding] = field(default_factory=list)


def _ordered(items: List[Any], participants: Dict[int, Participant]) -> List[Any]:
    """Ranked first (best first), then unranked in display order."""
    return sorted(
        items,
        key=lambda item: (
            item.rank is None,
            item.rank or 0,
            participants[item.participant_id].sort_key(),
        ),
    )


def _is_divided(ledger: ScoreLedger) -> bool:
    return ledger.event is not None and ledger.event.has_divisions


def _combine_categories(parts: List[CategoryResult]) -> CategoryResult:
    """Concatenate per-division results of one category, division by division."""
    first = parts[0]
    return CategoryResult(
        category_id=first.category_id,
        name=first.name,
        tabular_type=first.tabular_type,
        is_completed=first.is_completed,
        mode=first.mode,
        division=None,
        standings=[standing for part in parts for standing in part.standings],
    )


class Aggregator(abc.ABC):
    """
    Aggregation strategy.

    Subclasses decide what a single judge contributes for a participant in a
    category and in which direction averages are ranked.
    """

    mode: AggregationMode
    descending: bool

    @abc.abstractmethod
    def judge_values(
        self,
        ledger: ScoreLedger,
        judge_id: int,
        category: Category,
        members: Sequence[Participant],
    ) -> Dict[int, Optional[float]]:
        """participant_id -> this judge's contribution, None for no contribution."""
        raise NotImplementedError

    def category_result(
        self,
        ledger: ScoreLedger,
        category: Category,
        judge_ids: Sequence[int],
        division: Optional[str] = None,
    ) -> CategoryResult:
        """
        Aggregate one category. On a divided event without a division, each
        division is ranked on its own and the standings are grouped by
        division.
        """
        if division is None and _is_divided(ledger):
            parts = [
                self._category_result(ledger, category, judge_ids, name)
                for name in divisions_for(ledger.event)
            ]
            return _combine_categories(parts)
        return self._category_result(ledger, category, judge_ids, division)

    def _category_result(
        self,
        ledger: ScoreLedger,
        category: Category,
        judge_ids: Sequence[int],
        division: Optional[str],
    ) -> CategoryResult:
        members = filter_by_division(ledger.participants, division)
        per_participant: Dict[int, Dict[int, Optional[float]]] = {p.id: {} for p in members}

        if not category.is_completed:
            for judge_id in judge_ids:
                values = self.judge_values(ledger, judge_id, category, members)
                for participant in members:
                    per_participant[participant.id][judge_id] = values.get(participant.id)

        averages = {pid: _mean(values.values()) for pid, values in per_participant.items()}
        ranks = _rank_averages(averages, self.descending)

        standings = [
            ParticipantStanding(
                participant_id=p.id,
                name=p.name,
                number=p.number,
                division=p.division,
                judge_values=per_participant[p.id],
                average=averages[p.id],
                rank=ranks[p.id],
            )
            for p in members
        ]
        return CategoryResult(
            category_id=category.id,
            name=category.name,
            tabular_type=category.tabular_type.value,
            is_completed=category.is_completed,
            mode=self.mode.value,
            division=division,
            standings=_ordered(standings, {p.id: p for p in members}),
        )

    def final_result(
        self,
        ledger: ScoreLedger,
        categories: Sequence[Category],
        judge_ids: Sequence[int],
        division: Optional[str] = None,
    ) -> FinalResult:
        if division is None and _is_divided(ledger):
            parts = [
                self._final_result(ledger, categories, judge_ids, name)
                for name in divisions_for(ledger.event)
            ]
            return FinalResult(
                mode=self.mode.value,
                division=None,
                categories=[
                    _combine_categories([part.categories[i] for part in parts])
                    for i in range(len(categories))
                ],
                standings=[standing for part in parts for standing in part.standings],
            )
        return self._final_result(ledger, categories, judge_ids, division)

    def _final_result(
        self,
        ledger: ScoreLedger,
        categories: Sequence[Category],
        judge_ids: Sequence[int],
        division: Optional[str],
    ) -> FinalResult:
        members = filter_by_division(ledger.participants, division)
        category_results = [
            self._category_result(ledger, category, judge_ids, division)
            for category in categories
        ]

        category_values = {
            p.id: {result.category_id: result.average_for(p.id) for result in category_results}
            for p in members
        }
        averages = {pid: _mean(values.values()) for pid, values in category_values.items()}
        ranks = _rank_averages(averages, self.descending)

        standings = [
            FinalStanding(
                participant_id=p.id,
                name=p.name,
                number=p.number,
                division=p.division,
                category_values=category_values[p.id],
                average=averages[p.id],
                rank=ranks[p.id],
            )
            for p in members
        ]
        return FinalResult(
            mode=self.mode.value,
            division=division,
            categories=category_results,
            standings=_ordered(standings, {p.id: p for p in members}),
        )


class RankBasedAggregator(Aggregator):
    """Average of per-judge dense ranks; lower is better."""

    mode = AggregationMode.RANK
    descending = False

    def judge_values(self, ledger, judge_id, category, members):
        if category.is_ranking:
            positions = {p.id: ledger.rank(judge_id, p.id, category.id) for p in members}
            ranks = rank_positions(positions)
        else:
            ranks = rank_totals(ledger.totals(judge_id, category.id, members))
        return {pid: (float(rank) if rank is not None else None) for pid, rank in ranks.items()}


class ScoreBasedAggregator(Aggregator):
    """Average of raw judge totals; higher is better."""

    mode = AggregationMode.SCORE
    descending = True

    def judge_values(self, ledger, judge_id, category, members):
        if category.is_ranking:
            return {p.id: None for p in members}
        return {
            p.id: (
                ledger.total(judge_id, p.id, category.id)
                if ledger.has_positive_score(judge_id, p.id, category.id)
                else None
            )
            for p in members
        }


_AGGREGATORS = {
    AggregationMode.RANK: RankBasedAggregator,
    AggregationMode.SCORE: ScoreBasedAggregator,
}


def get_aggregator(mode: Union[str, AggregationMode] = AggregationMode.RANK) -> Aggregator:
    """
    Select an aggregation strategy.

    Raises:
        ValueError: If the mode is unknown
    """
    try:
        key = AggregationMode(mode.lower() if isinstance(mode, str) else mode)
    except ValueError:
        raise ValueError(f"Unknown aggregation mode '{mode}'") from None
    return _AGGREGATORS[key]()
