"""
tabulation/models/context.py
Explicit scoring context and ledger keys
"""
from dataclasses import dataclass
from typing import Any, Dict, NamedTuple, Optional


class CellKey(NamedTuple):
    """Natural composite key of a score row; also the upsert conflict key."""
    judge_id: int
    participant_id: int
    criterion_id: int


SCORE_CONFLICT_KEY = ("judge_id", "participant_id", "criteria_id")


@dataclass(frozen=True)
class JudgeContext:
    """
    Immutable context for one judge working one category.

    This is the ONLY way the scoring session learns who is judging what.
    `division` selects the bracket shown to the judge; it never restricts
    what gets locked.
    """
    judge_id: int
    category_id: int
    division: Optional[str] = None

    def with_division(self, division: Optional[str]) -> "JudgeContext":
        return JudgeContext(self.judge_id, self.category_id, division)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/serialization"""
        return {
            "judge_id": self.judge_id,
            "category_id": self.category_id,
            "division": self.division,
        }
