"""
Results Router

Read-only auditor endpoints. Every request reloads the event from the
store and recomputes results; nothing is cached.
"""
import logging
from dataclasses import asdict
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query

from tabulation.config import get_settings
from tabulation.database import get_store
from tabulation.errors import BadRequestError, ErrorCode, NotFoundError
from tabulation.exceptions import NotFoundError as TabulationNotFoundError
from tabulation.schemas.results import (
    CategoryResultResponse,
    FinalResultResponse,
    FinalStandingResponse,
    JudgeBreakdownResponse,
    JudgeEntryResponse,
)
from tabulation.services.aggregation_service import AggregationMode, Aggregator, get_aggregator
from tabulation.services.results_service import ResultsService
from tabulation.store import RemoteStore

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/events", tags=["results"])


def _aggregator(mode: Optional[str]) -> Aggregator:
    """Resolve the requested mode, falling back to the configured default."""
    try:
        return get_aggregator(mode or get_settings().default_aggregation_mode)
    except ValueError:
        allowed = [m.value for m in AggregationMode]
        raise BadRequestError(
            f"Invalid mode. Must be one of: {', '.join(allowed)}",
            details={"field": "mode", "value": mode, "allowed": allowed}
        ) from None


async def _load(store: RemoteStore, event_id: int) -> ResultsService:
    try:
        return await ResultsService.load(store, event_id)
    except TabulationNotFoundError as e:
        raise NotFoundError(e.message, code=ErrorCode.EVENT_NOT_FOUND) from None


# =============================================================================
# Final Results
# =============================================================================

@router.get("/{event_id}/results", response_model=FinalResultResponse)
async def get_final_results(
    event_id: int,
    mode: Optional[str] = Query(None, description="rank or score"),
    division: Optional[str] = Query(None, description="Division for individual events"),
    store: RemoteStore = Depends(get_store)
):
    """
    Final cross-category standings.

    Completed categories are listed but contribute nothing. Divided events
    are ranked per division, and the event's top display limit applies.
    """
    aggregator = _aggregator(mode)
    service = await _load(store, event_id)
    result = service.final_results(division=division, aggregator=aggregator)

    return FinalResultResponse(
        event_id=service.snapshot.event.id,
        event_name=service.snapshot.event.name,
        mode=result.mode,
        division=result.division,
        divisions=service.divisions,
        top_display_limit=service.snapshot.event.top_display_limit,
        generated_at=datetime.utcnow(),
        categories=[CategoryResultResponse.model_validate(asdict(c)) for c in result.categories],
        standings=[FinalStandingResponse.model_validate(asdict(s)) for s in result.standings],
    )


# =============================================================================
# Category Results
# =============================================================================

@router.get("/{event_id}/categories/{category_id}/results", response_model=CategoryResultResponse)
async def get_category_results(
    event_id: int,
    category_id: int,
    mode: Optional[str] = Query(None, description="rank or score"),
    division: Optional[str] = Query(None, description="Division for individual events"),
    store: RemoteStore = Depends(get_store)
):
    aggregator = _aggregator(mode)
    service = await _load(store, event_id)
    try:
        result = service.category_results(category_id, division=division, aggregator=aggregator)
    except TabulationNotFoundError as e:
        raise NotFoundError(e.message, code=ErrorCode.CATEGORY_NOT_FOUND) from None
    return CategoryResultResponse.model_validate(asdict(result))


@router.get(
    "/{event_id}/categories/{category_id}/judges/{judge_id}",
    response_model=JudgeBreakdownResponse
)
async def get_judge_breakdown(
    event_id: int,
    category_id: int,
    judge_id: int,
    division: Optional[str] = Query(None),
    store: RemoteStore = Depends(get_store)
):
    """One judge's own totals and ranks, as the judge sees them."""
    service = await _load(store, event_id)
    try:
        entries = service.judge_breakdown(judge_id, category_id, division)
    except TabulationNotFoundError as e:
        raise NotFoundError(e.message, code=ErrorCode.CATEGORY_NOT_FOUND) from None

    return JudgeBreakdownResponse(
        event_id=event_id,
        category_id=category_id,
        judge_id=judge_id,
        division=division if service.snapshot.event.has_divisions else None,
        entries=[JudgeEntryResponse(**entry) for entry in entries],
    )
