"""
tabulation/orm/participant.py
Participants and judges
"""
from sqlalchemy import Column, Integer, String, Boolean, ForeignKey

from tabulation.orm.base import Base, TimestampMixin


class ParticipantRecord(Base, TimestampMixin):
    __tablename__ = "participants"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    number = Column(Integer, nullable=True)
    name = Column(String(255), nullable=False)
    gender = Column(String(10), nullable=True)  # Division tag for individual events
    display_order = Column(Integer, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)


class JudgeRecord(Base, TimestampMixin):
    __tablename__ = "judges"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="SET NULL"), nullable=True, index=True)
    name = Column(String(255), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
