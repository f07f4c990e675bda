from .base import Base

from .event import EventRecord, CategoryRecord, CriterionRecord
from .participant import ParticipantRecord, JudgeRecord
from .score import ScoreRecord, JudgeActivityLog

# Store entity name -> mapped table
ENTITY_TABLES = {
    "events": EventRecord.__table__,
    "categories": CategoryRecord.__table__,
    "criteria": CriterionRecord.__table__,
    "participants": ParticipantRecord.__table__,
    "judges": JudgeRecord.__table__,
    "scores": ScoreRecord.__table__,
    "judge_activity_logs": JudgeActivityLog.__table__,
}

__all__ = [
    "Base",
    "EventRecord",
    "CategoryRecord",
    "CriterionRecord",
    "ParticipantRecord",
    "JudgeRecord",
    "ScoreRecord",
    "JudgeActivityLog",
    "ENTITY_TABLES",
]
