"""
tabulation/services/score_ledger.py
Canonical in-memory scores and ranks

The ledger is the single source of truth for what a judge sees and for what
gets persisted. Scoring categories hold one cell per
(judge, participant, criterion); ranking categories hold one ordered
sequence of participants per (judge, category, division).

Cells are a tagged variant:
- EmptyCell: input cleared; displayed blank, persisted as zero
- ValueCell: a clamped score in [0, criterion.maximum]
- LockedCell: a score frozen by a submission
"""
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple, Union

from tabulation.models import CellKey, Category, Criterion, Event, Participant
from tabulation.services.partition import division_for, filter_by_division

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EmptyCell:
    """Cleared input. Distinct from zero on screen, zero in storage."""

    @property
    def persisted_value(self) -> float:
        return 0.0


@dataclass(frozen=True)
class ValueCell:
    value: float

    @property
    def persisted_value(self) -> float:
        return self.value


@dataclass(frozen=True)
class LockedCell:
    value: float
    locked_at: datetime

    @property
    def persisted_value(self) -> float:
        return self.value


Cell = Union[EmptyCell, ValueCell, LockedCell]

EMPTY = EmptyCell()


def cell_value(cell: Cell) -> Optional[float]:
    """Display value: None for a cleared cell."""
    if isinstance(cell, EmptyCell):
        return None
    return cell.value


def clamp_score(value: float, criterion: Criterion) -> float:
    return min(max(0.0, float(value)), criterion.maximum)


def parse_score_input(raw: Any, criterion: Criterion) -> Optional[Cell]:
    """
    Turn raw judge input into a cell.

    Returns:
        EmptyCell for blank input, a clamped ValueCell for numbers, or None
        when the input is malformed and must be ignored.
    """
    if raw is None:
        return EMPTY
    if isinstance(raw, bool):
        return None
    if isinstance(raw, str):
        text = raw.strip()
        if text == "":
            return EMPTY
        try:
            number = float(text)
        except ValueError:
            return None
    elif isinstance(raw, (int, float)):
        number = float(raw)
    else:
        return None

    if not math.isfinite(number):
        return None
    return ValueCell(clamp_score(number, criterion))


@dataclass
class RankingSequence:
    """
    A judge's placement order for one division of a ranking category.

    `recorded` stays False until the judge has ranked at least once (or a
    stored rank was loaded); until then nobody has a rank. Members loaded
    without a stored rank sit at the end in `unranked` until the next
    reorder places them.
    """
    order: List[int] = field(default_factory=list)
    recorded: bool = False
    unranked: Set[int] = field(default_factory=set)

    @property
    def complete(self) -> bool:
        """Every member holds a rank."""
        return self.recorded and not self.unranked

    def rank_of(self, participant_id: int) -> Optional[int]:
        if not self.recorded or participant_id not in self.order or participant_id in self.unranked:
            return None
        return self.order.index(participant_id) + 1

    def ranks(self) -> Dict[int, Optional[int]]:
        return {pid: self.rank_of(pid) for pid in self.order}


SequenceKey = Tuple[int, int, Optional[str]]


class ScoreLedger:
    """
    In-memory scores and ranks for any number of judges.

    A judge's session only ever mutates its own judge-scoped subset; the
    aggregation layer builds a ledger over every judge with from_rows().
    """

    def __init__(
        self,
        categories: Sequence[Category],
        participants: Sequence[Participant],
        event: Optional[Event] = None,
    ):
        self.event = event
        self._categories: Dict[int, Category] = {c.id: c for c in categories}
        self._participants: List[Participant] = sorted(participants, key=lambda p: p.sort_key())
        self._participant_ids = {p.id for p in self._participants}
        self._criterion_category: Dict[int, Category] = {
            criterion.id: category
            for category in categories
            for criterion in category.criteria
        }
        self._cells: Dict[CellKey, Cell] = {}
        self._sequences: Dict[SequenceKey, RankingSequence] = {}
        self._locked: Dict[Tuple[int, int], datetime] = {}

    # ------------------------------------------------------------------
    # Lookup helpers
    # ------------------------------------------------------------------

    @property
    def participants(self) -> List[Participant]:
        return list(self._participants)

    def category(self, category_id: int) -> Optional[Category]:
        return self._categories.get(category_id)

    def category_of(self, criterion_id: int) -> Optional[Category]:
        return self._criterion_category.get(criterion_id)

    def _division_key(self, division: Optional[str]) -> Optional[str]:
        if self.event is None or not self.event.has_divisions:
            return None
        if division is None:
            raise ValueError(f"Event {self.event.id} is divided; a division is required for ranking")
        return division

    def participant(self, participant_id: int) -> Optional[Participant]:
        for participant in self._participants:
            if participant.id == participant_id:
                return participant
        return None

    def judges(self, category_id: int) -> List[int]:
        """Judges holding any cell or ranking for a category."""
        category = self._categories.get(category_id)
        if category is None:
            return []
        criterion_ids = {c.id for c in category.criteria}
        found = {key.judge_id for key in self._cells if key.criterion_id in criterion_ids}
        found.update(judge for (judge, cat, _div) in self._sequences if cat == category_id)
        return sorted(found)

    # ------------------------------------------------------------------
    # Scores
    # ------------------------------------------------------------------

    def cell(self, judge_id: int, participant_id: int, criterion_id: int) -> Cell:
        return self._cells.get(CellKey(judge_id, participant_id, criterion_id), EMPTY)

    def get(self, judge_id: int, participant_id: int, criterion_id: int) -> Optional[float]:
        """Display value of a cell; None when empty or never entered."""
        key = CellKey(judge_id, participant_id, criterion_id)
        if key not in self._cells:
            return None
        return cell_value(self._cells[key])

    def set(self, judge_id: int, participant_id: int, criterion_id: int, value: Union[Cell, float, None]) -> bool:
        """
        Write a score.

        Returns False (and writes nothing) when the judge's category is
        locked, the criterion belongs to a ranking category, or the target
        is unknown.
        """
        category = self._criterion_category.get(criterion_id)
        if category is None or participant_id not in self._participant_ids:
            logger.warning(f"Ignoring score for unknown target participant={participant_id} criterion={criterion_id}")
            return False
        if category.is_ranking:
            logger.debug(f"Ignoring score on ranking category {category.id}")
            return False
        if self.is_locked(judge_id, category.id):
            logger.debug(f"Rejected edit: judge {judge_id} category {category.id} is locked")
            return False

        criterion = category.criterion(criterion_id)
        if value is None or isinstance(value, EmptyCell):
            new_cell: Cell = EMPTY
        elif isinstance(value, (ValueCell, LockedCell)):
            new_cell = ValueCell(clamp_score(value.value, criterion))
        else:
            new_cell = ValueCell(clamp_score(value, criterion))

        self._cells[CellKey(judge_id, participant_id, criterion_id)] = new_cell
        return True

    def seed(self, judge_id: int, category_id: int) -> None:
        """Give every missing (participant, criterion) cell an explicit zero."""
        category = self._categories.get(category_id)
        if category is None or category.is_ranking:
            return
        locked_at = self._locked.get((judge_id, category_id))
        for participant in self._participants:
            for criterion in category.criteria:
                key = CellKey(judge_id, participant.id, criterion.id)
                if key not in self._cells:
                    self._cells[key] = LockedCell(0.0, locked_at) if locked_at else ValueCell(0.0)

    def total(self, judge_id: int, participant_id: int, category_id: int) -> float:
        """Sum of the category's criteria; empty or missing cells count as zero."""
        category = self._categories.get(category_id)
        if category is None:
            return 0.0
        return sum(
            self.cell(judge_id, participant_id, criterion.id).persisted_value
            for criterion in category.criteria
        )

    def totals(self, judge_id: int, category_id: int, participants: Iterable[Participant]) -> Dict[int, float]:
        return {p.id: self.total(judge_id, p.id, category_id) for p in participants}

    def has_positive_score(self, judge_id: int, participant_id: int, category_id: int) -> bool:
        category = self._categories.get(category_id)
        if category is None:
            return False
        return any(
            self.cell(judge_id, participant_id, criterion.id).persisted_value > 0
            for criterion in category.criteria
        )

    # ------------------------------------------------------------------
    # Ranks
    # ------------------------------------------------------------------

    def sequence(self, judge_id: int, category_id: int, division: Optional[str] = None) -> RankingSequence:
        """The judge's order for a division, defaulting to display order."""
        key = (judge_id, category_id, self._division_key(division))
        if key not in self._sequences:
            members = filter_by_division(self._participants, key[2])
            self._sequences[key] = RankingSequence(order=[p.id for p in members])
        return self._sequences[key]

    def rank(self, judge_id: int, participant_id: int, category_id: int) -> Optional[int]:
        participant = self.participant(participant_id)
        if participant is None:
            return None
        division = division_for(self.event, participant)
        key = (judge_id, category_id, division)
        if key not in self._sequences:
            return None
        return self._sequences[key].rank_of(participant_id)

    def positions(self, judge_id: int, category_id: int, division: Optional[str] = None) -> Dict[int, Optional[int]]:
        return self.sequence(judge_id, category_id, division).ranks()

    def reorder(
        self,
        judge_id: int,
        category_id: int,
        division: Optional[str],
        order: Sequence[int],
    ) -> Optional[Dict[int, int]]:
        """
        Replace a division's order; every member's rank becomes its 1-based
        position. Returns the new ranks, or None when the pair is locked.

        Raises:
            ValueError: If `order` is not a permutation of the division
        """
        if self.is_locked(judge_id, category_id):
            logger.debug(f"Rejected reorder: judge {judge_id} category {category_id} is locked")
            return None

        sequence = self.sequence(judge_id, category_id, division)
        if sorted(order) != sorted(sequence.order) or len(set(order)) != len(order):
            raise ValueError(
                f"Order {list(order)} is not a permutation of division members {sequence.order}"
            )

        sequence.order = list(order)
        sequence.unranked.clear()
        sequence.recorded = True
        return {pid: index + 1 for index, pid in enumerate(sequence.order)}

    def move_to_rank(
        self,
        judge_id: int,
        category_id: int,
        division: Optional[str],
        participant_id: int,
        new_rank: int,
    ) -> Optional[Dict[int, int]]:
        """
        Move one participant to `new_rank`, shifting the others.

        Returns None when locked, when the rank is out of range, or when the
        participant already holds that rank.
        """
        sequence = self.sequence(judge_id, category_id, division)
        if new_rank < 1 or new_rank > len(sequence.order):
            return None
        if participant_id not in sequence.order:
            return None
        current_index = sequence.order.index(participant_id)
        if sequence.complete and current_index + 1 == new_rank:
            return None

        new_order = list(sequence.order)
        new_order.pop(current_index)
        new_order.insert(new_rank - 1, participant_id)
        return self.reorder(judge_id, category_id, division, new_order)

    # ------------------------------------------------------------------
    # Locking
    # ------------------------------------------------------------------

    def is_locked(self, judge_id: int, category_id: int) -> bool:
        return (judge_id, category_id) in self._locked

    def locked_at(self, judge_id: int, category_id: int) -> Optional[datetime]:
        return self._locked.get((judge_id, category_id))

    def lock(self, judge_id: int, category_id: int, at: datetime) -> None:
        """Freeze every cell of the pair under one timestamp."""
        self._locked[(judge_id, category_id)] = at
        category = self._categories.get(category_id)
        if category is None:
            return
        criterion_ids = {c.id for c in category.criteria}
        for key, cell in list(self._cells.items()):
            if key.judge_id == judge_id and key.criterion_id in criterion_ids:
                self._cells[key] = LockedCell(cell.persisted_value, at)

    def unlock(self, judge_id: int, category_id: int) -> None:
        self._locked.pop((judge_id, category_id), None)
        for key, cell in list(self._cells.items()):
            if key.judge_id == judge_id and isinstance(cell, LockedCell):
                category = self._criterion_category.get(key.criterion_id)
                if category is not None and category.id == category_id:
                    self._cells[key] = ValueCell(cell.value)

    # ------------------------------------------------------------------
    # Persistence shapes
    # ------------------------------------------------------------------

    def to_rows(
        self,
        judge_id: int,
        category_id: int,
        submitted_at: Optional[datetime] = None,
        participant_ids: Optional[Iterable[int]] = None,
    ) -> List[Dict[str, Any]]:
        """
        Upsert payloads for every cell of a (judge, category).

        Ranking categories produce one row per ranked participant on the
        first criterion, score 0.
        """
        category = self._categories.get(category_id)
        if category is None or not category.criteria:
            return []
        wanted = set(participant_ids) if participant_ids is not None else self._participant_ids

        rows = []
        if category.is_ranking:
            first = category.first_criterion
            for participant in self._participants:
                if participant.id not in wanted:
                    continue
                rank = self.rank(judge_id, participant.id, category_id)
                if rank is None:
                    continue
                rows.append({
                    "judge_id": judge_id,
                    "participant_id": participant.id,
                    "criteria_id": first.id,
                    "score": 0,
                    "rank": rank,
                    "submitted_at": submitted_at,
                })
            return rows

        for participant in self._participants:
            if participant.id not in wanted:
                continue
            for criterion in category.criteria:
                rows.append(self.score_row(judge_id, participant.id, criterion.id, submitted_at))
        return rows

    def score_row(
        self,
        judge_id: int,
        participant_id: int,
        criterion_id: int,
        submitted_at: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        return {
            "judge_id": judge_id,
            "participant_id": participant_id,
            "criteria_id": criterion_id,
            "score": self.cell(judge_id, participant_id, criterion_id).persisted_value,
            "submitted_at": submitted_at,
        }

    def rank_rows(
        self,
        judge_id: int,
        category_id: int,
        division: Optional[str],
        submitted_at: Optional[datetime] = None,
    ) -> List[Dict[str, Any]]:
        """Upsert payloads for one division's sequence."""
        category = self._categories.get(category_id)
        if category is None or category.first_criterion is None:
            return []
        sequence = self.sequence(judge_id, category_id, division)
        return [
            {
                "judge_id": judge_id,
                "participant_id": pid,
                "criteria_id": category.first_criterion.id,
                "score": 0,
                "rank": rank,
                "submitted_at": submitted_at,
            }
            for pid, rank in sequence.ranks().items()
            if rank is not None
        ]

    @classmethod
    def from_rows(
        cls,
        categories: Sequence[Category],
        participants: Sequence[Participant],
        rows: Iterable[Dict[str, Any]],
        event: Optional[Event] = None,
    ) -> "ScoreLedger":
        """
        Rebuild a ledger from stored score rows.

        A (judge, category) is locked if any of its rows carries a
        submission timestamp, so a half-applied lock batch reloads as locked.
        """
        ledger = cls(categories, participants, event)
        stored_ranks: Dict[SequenceKey, Dict[int, int]] = {}
        lock_times: Dict[Tuple[int, int], datetime] = {}

        for row in rows:
            category = ledger.category_of(row.get("criteria_id"))
            participant = ledger.participant(row.get("participant_id"))
            if category is None or participant is None:
                continue
            judge_id = row["judge_id"]

            submitted_at = row.get("submitted_at")
            if submitted_at is not None:
                pair = (judge_id, category.id)
                lock_times[pair] = max(lock_times.get(pair, submitted_at), submitted_at)

            if category.is_ranking:
                rank = row.get("rank")
                division = division_for(event, participant)
                unplaced = division is None and event is not None and event.has_divisions
                if rank is not None and not unplaced and row["criteria_id"] == category.first_criterion.id:
                    key = (judge_id, category.id, division)
                    stored_ranks.setdefault(key, {})[participant.id] = rank
                continue

            score = row.get("score")
            value = float(score) if score is not None else 0.0
            criterion = category.criterion(row["criteria_id"])
            ledger._cells[CellKey(judge_id, participant.id, criterion.id)] = ValueCell(clamp_score(value, criterion))

        for (judge_id, category_id, division), ranks in stored_ranks.items():
            sequence = ledger.sequence(judge_id, category_id, division)
            position = {pid: i for i, pid in enumerate(sequence.order)}
            sequence.order = sorted(
                sequence.order,
                key=lambda pid: (ranks.get(pid) is None, ranks.get(pid) or 0, position[pid])
            )
            sequence.unranked = {pid for pid in sequence.order if pid not in ranks}
            sequence.recorded = True

        for (judge_id, category_id), at in lock_times.items():
            ledger.lock(judge_id, category_id, at)

        return ledger
