"""
Pydantic Schemas for Tabulation Results

Response models for the auditor's read-only results endpoints.
"""
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


# ============================================================================
# Category Results
# ============================================================================

class ParticipantStandingResponse(BaseModel):
    """One participant's line in a category result."""
    participant_id: int
    name: str
    number: Optional[int] = None
    division: Optional[str] = None
    judge_values: Dict[int, Optional[float]] = Field(
        default_factory=dict,
        description="Judge id -> that judge's rank (rank mode) or total (score mode)"
    )
    average: Optional[float] = None
    rank: Optional[int] = None

    class Config:
        from_attributes = True


class CategoryResultResponse(BaseModel):
    """Aggregated result of one category."""
    category_id: int
    name: str
    tabular_type: str
    is_completed: bool
    mode: str
    division: Optional[str] = None
    standings: List[ParticipantStandingResponse] = []

    class Config:
        from_attributes = True


# ============================================================================
# Final Results
# ============================================================================

class FinalStandingResponse(BaseModel):
    """One participant's overall standing."""
    participant_id: int
    name: str
    number: Optional[int] = None
    division: Optional[str] = None
    category_values: Dict[int, Optional[float]] = Field(
        default_factory=dict,
        description="Category id -> category average; null when the category contributes nothing"
    )
    average: Optional[float] = None
    rank: Optional[int] = None

    class Config:
        from_attributes = True


class FinalResultResponse(BaseModel):
    """Final cross-category results for an event."""
    event_id: int
    event_name: str
    mode: str
    division: Optional[str] = None
    divisions: List[Optional[str]] = []
    top_display_limit: Optional[int] = None
    generated_at: datetime
    categories: List[CategoryResultResponse] = []
    standings: List[FinalStandingResponse] = []


# ============================================================================
# Judge Breakdown
# ============================================================================

class JudgeEntryResponse(BaseModel):
    participant_id: int
    name: str
    number: Optional[int] = None
    division: Optional[str] = None
    total: Optional[float] = None
    rank: Optional[int] = None
    locked: bool = False


class JudgeBreakdownResponse(BaseModel):
    """One judge's own totals and ranks for a category."""
    event_id: int
    category_id: int
    judge_id: int
    division: Optional[str] = None
    entries: List[JudgeEntryResponse] = []
