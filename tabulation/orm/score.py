"""
tabulation/orm/score.py
Judge score cells and the judge activity log

One row per (judge, participant, criterion). Ranking categories store the
judge's placement in `rank` on the category's first criterion with score 0.
`submitted_at` is the lock marker: set means submitted, NULL means draft.
"""
from datetime import datetime

from sqlalchemy import Column, Integer, String, Float, DateTime, Text, ForeignKey, JSON, UniqueConstraint, Index

from tabulation.orm.base import Base, TimestampMixin


class ScoreRecord(Base, TimestampMixin):
    __tablename__ = "scores"

    id = Column(Integer, primary_key=True, autoincrement=True)
    judge_id = Column(Integer, ForeignKey("judges.id", ondelete="CASCADE"), nullable=False, index=True)
    participant_id = Column(Integer, ForeignKey("participants.id", ondelete="CASCADE"), nullable=False, index=True)
    criteria_id = Column(Integer, ForeignKey("criteria.id", ondelete="CASCADE"), nullable=False, index=True)

    score = Column(Float, nullable=False, default=0)
    rank = Column(Integer, nullable=True)
    submitted_at = Column(DateTime, nullable=True)

    __table_args__ = (
        # Upsert conflict target
        UniqueConstraint("judge_id", "participant_id", "criteria_id", name="scores_judge_participant_criteria_key"),
    )


class JudgeActivityLog(Base):
    """
    Append-only audit of judge actions: submit, unlock, score_change,
    rank_change. Never updated, never deleted by the engine.
    """
    __tablename__ = "judge_activity_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    judge_id = Column(Integer, ForeignKey("judges.id", ondelete="CASCADE"), nullable=False)
    category_id = Column(Integer, ForeignKey("categories.id", ondelete="CASCADE"), nullable=False)
    action = Column(String(32), nullable=False)
    description = Column(Text, nullable=True)
    # "metadata" is reserved on declarative classes
    details = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_judge_activity_logs_judge_id", "judge_id"),
        Index("idx_judge_activity_logs_category_id", "category_id"),
        Index("idx_judge_activity_logs_action", "action"),
    )
