"""
tabulation/orm/event.py
Events, categories and their criteria

Administered outside the tabulation engine; the engine reads these tables
only. `categories.is_completed` hides a category from aggregation while
keeping its scores.
"""
from sqlalchemy import Column, Integer, String, Boolean, Float, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship

from tabulation.orm.base import Base, TimestampMixin


class EventRecord(Base, TimestampMixin):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    participant_type = Column(String(20), nullable=False, default="group")
    top_display_limit = Column(Integer, nullable=True)  # NULL or 0 shows every standing

    categories = relationship("CategoryRecord", back_populates="event")

    __table_args__ = (
        CheckConstraint("participant_type IN ('individual', 'group')", name="events_participant_type_check"),
    )


class CategoryRecord(Base, TimestampMixin):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    tabular_type = Column(String(20), nullable=False, default="scoring")
    display_order = Column(Integer, nullable=False, default=0)
    is_completed = Column(Boolean, nullable=False, default=False)

    event = relationship("EventRecord", back_populates="categories")
    criteria = relationship("CriterionRecord", back_populates="category")

    __table_args__ = (
        CheckConstraint("tabular_type IN ('scoring', 'ranking')", name="categories_tabular_type_check"),
    )


class CriterionRecord(Base, TimestampMixin):
    __tablename__ = "criteria"

    id = Column(Integer, primary_key=True, index=True)
    category_id = Column(Integer, ForeignKey("categories.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    percentage = Column(Float, nullable=False, default=0)  # Doubles as the criterion maximum
    min_score = Column(Float, nullable=True)
    max_score = Column(Float, nullable=True)
    display_order = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)

    category = relationship("CategoryRecord", back_populates="criteria")
