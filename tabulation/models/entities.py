"""
tabulation/models/entities.py
Read-only engine views of the administration entities

Events, categories, criteria, participants and judges are owned by the
administration side. The engine only ever reads them, so they are modelled
as frozen dataclasses built from store rows.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class TabularType(str, Enum):
    """Entry mode of a category"""
    SCORING = "scoring"   # Points per criterion
    RANKING = "ranking"   # Direct ordinal placement


class ParticipantType(str, Enum):
    """Whether an event is contested by individuals or groups"""
    INDIVIDUAL = "individual"
    GROUP = "group"


class Division(str, Enum):
    """Brackets used to split individual events"""
    MALE = "male"
    FEMALE = "female"


DEFAULT_CRITERION_MAXIMUM = 100.0


@dataclass(frozen=True)
class Criterion:
    """One scored dimension of a category."""
    id: int
    category_id: int
    name: str = ""
    percentage: float = 0.0
    min_score: Optional[float] = None
    max_score: Optional[float] = None
    display_order: int = 0

    @property
    def maximum(self) -> float:
        """Upper bound used for clamping entered scores."""
        if self.percentage and self.percentage > 0:
            return float(self.percentage)
        if self.max_score is not None and self.max_score > 0:
            return float(self.max_score)
        return DEFAULT_CRITERION_MAXIMUM

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Criterion":
        return cls(
            id=row["id"],
            category_id=row["category_id"],
            name=row.get("name") or "",
            percentage=float(row.get("percentage") or 0),
            min_score=row.get("min_score"),
            max_score=row.get("max_score"),
            display_order=row.get("display_order") or 0,
        )


@dataclass(frozen=True)
class Category:
    """A judged segment of an event with its criteria in display order."""
    id: int
    event_id: int
    name: str = ""
    tabular_type: TabularType = TabularType.SCORING
    display_order: int = 0
    is_completed: bool = False
    criteria: Tuple[Criterion, ...] = ()

    @property
    def is_ranking(self) -> bool:
        return self.tabular_type == TabularType.RANKING

    @property
    def first_criterion(self) -> Optional[Criterion]:
        """Criterion whose score rows carry ranks for ranking categories."""
        return self.criteria[0] if self.criteria else None

    def criterion(self, criterion_id: int) -> Optional[Criterion]:
        for criterion in self.criteria:
            if criterion.id == criterion_id:
                return criterion
        return None

    @classmethod
    def from_row(cls, row: Dict[str, Any], criteria: Optional[List[Criterion]] = None) -> "Category":
        # Stored values are sometimes capitalised; match case-insensitively
        raw_type = (row.get("tabular_type") or TabularType.SCORING.value).lower()
        ordered = sorted(criteria or [], key=lambda c: (c.display_order, c.id))
        return cls(
            id=row["id"],
            event_id=row.get("event_id") or 0,
            name=row.get("name") or "",
            tabular_type=TabularType(raw_type),
            display_order=row.get("display_order") or 0,
            is_completed=bool(row.get("is_completed")),
            criteria=tuple(ordered),
        )


@dataclass(frozen=True)
class Participant:
    """A competitor. `gender` doubles as the division tag."""
    id: int
    event_id: int = 0
    name: str = ""
    number: Optional[int] = None
    gender: Optional[str] = None
    display_order: Optional[int] = None
    is_active: bool = True

    @property
    def division(self) -> Optional[str]:
        return self.gender

    def sort_key(self) -> Tuple[bool, int, bool, int, int]:
        """Display order first (unset last), then participant number."""
        order = self.display_order if self.display_order is not None else 0
        number = self.number if self.number is not None else 0
        return (self.display_order is None, order, self.number is None, number, self.id)

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Participant":
        return cls(
            id=row["id"],
            event_id=row.get("event_id") or 0,
            name=row.get("name") or "",
            number=row.get("number"),
            gender=row.get("gender"),
            display_order=row.get("display_order"),
            is_active=row.get("is_active", True) is not False,
        )


@dataclass(frozen=True)
class Judge:
    id: int
    name: str = ""

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Judge":
        return cls(id=row["id"], name=row.get("name") or "")


@dataclass(frozen=True)
class Event:
    id: int
    name: str = ""
    participant_type: ParticipantType = ParticipantType.GROUP
    # Final results show only standings ranked within this; None or 0 shows all
    top_display_limit: Optional[int] = None

    @property
    def has_divisions(self) -> bool:
        return self.participant_type == ParticipantType.INDIVIDUAL

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Event":
        raw_type = (row.get("participant_type") or ParticipantType.GROUP.value).lower()
        return cls(
            id=row["id"],
            name=row.get("name") or "",
            participant_type=ParticipantType(raw_type),
            top_display_limit=row.get("top_display_limit"),
        )


@dataclass
class EventSnapshot:
    """
    Everything the aggregation layer needs for one event, as loaded from the
    store at a single point in time.
    """
    event: Event
    categories: List[Category] = field(default_factory=list)
    participants: List[Participant] = field(default_factory=list)
    judges: List[Judge] = field(default_factory=list)
    scores: List[Dict[str, Any]] = field(default_factory=list)
    loaded_at: datetime = field(default_factory=datetime.utcnow)

    def category(self, category_id: int) -> Optional[Category]:
        for category in self.categories:
            if category.id == category_id:
                return category
        return None
