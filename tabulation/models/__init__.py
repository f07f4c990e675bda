"""
tabulation/models/__init__.py
Export engine-side domain models for easy imports
"""
from tabulation.models.context import CellKey, JudgeContext, SCORE_CONFLICT_KEY
from tabulation.models.entities import (
    Category,
    Criterion,
    Division,
    Event,
    EventSnapshot,
    Judge,
    Participant,
    ParticipantType,
    TabularType,
)

__all__ = [
    "CellKey",
    "JudgeContext",
    "SCORE_CONFLICT_KEY",
    "Category",
    "Criterion",
    "Division",
    "Event",
    "EventSnapshot",
    "Judge",
    "Participant",
    "ParticipantType",
    "TabularType",
]
