"""
Tests for the auditor results service

Division grouping on divided events, the event's top display limit and the
judge set used for aggregation.
"""
import pytest

from tabulation.services.results_service import ResultsService
from tabulation.tests.factories import (
    CRITERION_A,
    CRITERION_B,
    EVENT_ID,
    JUDGE_A,
    JUDGE_B,
    P1,
    P2,
    P3,
    SCORING_CATEGORY,
    score_row,
)

# Judge A totals: P1 90, P2 80, P3 60
JUDGE_A_SCORES = [
    score_row(JUDGE_A, P1, CRITERION_A, 55), score_row(JUDGE_A, P1, CRITERION_B, 35),
    score_row(JUDGE_A, P2, CRITERION_A, 50), score_row(JUDGE_A, P2, CRITERION_B, 30),
    score_row(JUDGE_A, P3, CRITERION_A, 35), score_row(JUDGE_A, P3, CRITERION_B, 25),
]


async def _service(store, rows=JUDGE_A_SCORES):
    store.seed("scores", rows)
    return await ResultsService.load(store, EVENT_ID)


def _ranks(standings):
    return {s.participant_id: (s.division, s.rank) for s in standings}


# ============================================================================
# Divided events
# ============================================================================

@pytest.mark.asyncio
async def test_divided_category_results_never_mix_divisions(divided_store):
    service = await _service(divided_store)

    result = service.category_results(SCORING_CATEGORY, mode="rank")
    assert _ranks(result.standings) == {P1: ("female", 1), P2: ("male", 1), P3: ("female", 2)}

    male = service.category_results(SCORING_CATEGORY, mode="rank", division="male")
    assert _ranks(male.standings) == {P2: ("male", 1)}


@pytest.mark.asyncio
async def test_divided_final_results_rank_per_division(divided_store):
    service = await _service(divided_store)

    for mode in ("rank", "score"):
        result = service.final_results(mode=mode)
        assert result.division is None
        assert _ranks(result.standings) == {P1: ("female", 1), P2: ("male", 1), P3: ("female", 2)}


@pytest.mark.asyncio
async def test_divided_judge_breakdown_ranks_per_division(divided_store):
    service = await _service(divided_store)

    entries = service.judge_breakdown(JUDGE_A, SCORING_CATEGORY)
    assert [(e["participant_id"], e["division"], e["rank"]) for e in entries] == [
        (P2, "male", 1), (P1, "female", 1), (P3, "female", 2),
    ]
    assert {e["participant_id"]: e["total"] for e in entries} == {P1: 90.0, P2: 80.0, P3: 60.0}


@pytest.mark.asyncio
async def test_group_event_ranks_everyone_together(store):
    service = await _service(store)

    result = service.category_results(SCORING_CATEGORY, mode="score")
    assert {s.participant_id: s.rank for s in result.standings} == {P1: 1, P2: 2, P3: 3}


# ============================================================================
# Top display limit
# ============================================================================

@pytest.mark.asyncio
async def test_top_display_limit_keeps_only_leading_standings(store):
    await store.update("events", {"id": EVENT_ID}, {"top_display_limit": 2})
    service = await _service(store)

    result = service.final_results(mode="score")
    assert [s.participant_id for s in result.standings] == [P1, P2]

    everyone = service.final_results(mode="score", apply_display_limit=False)
    assert [s.participant_id for s in everyone.standings] == [P1, P2, P3]


@pytest.mark.asyncio
async def test_top_display_limit_drops_unranked(store):
    await store.update("events", {"id": EVENT_ID}, {"top_display_limit": 3})
    only_p1 = [row for row in JUDGE_A_SCORES if row["participant_id"] == P1]
    service = await _service(store, only_p1)

    result = service.final_results(mode="score")
    assert [s.participant_id for s in result.standings] == [P1]


@pytest.mark.asyncio
async def test_zero_display_limit_shows_everyone(store):
    await store.update("events", {"id": EVENT_ID}, {"top_display_limit": 0})
    service = await _service(store)

    assert len(service.final_results(mode="rank").standings) == 3


@pytest.mark.asyncio
async def test_top_display_limit_applies_per_division(divided_store):
    await divided_store.update("events", {"id": EVENT_ID}, {"top_display_limit": 1})
    service = await _service(divided_store)

    result = service.final_results(mode="rank")
    assert _ranks(result.standings) == {P1: ("female", 1), P2: ("male", 1)}


# ============================================================================
# Judge set
# ============================================================================

@pytest.mark.asyncio
async def test_judge_ids_for_a_category_id_of_zero(store):
    unregistered = 7
    service = await _service(store, JUDGE_A_SCORES + [score_row(unregistered, P1, CRITERION_A, 10)])

    assert service.judge_ids() == [JUDGE_A, JUDGE_B, unregistered]
    assert service.judge_ids(SCORING_CATEGORY) == [JUDGE_A, JUDGE_B, unregistered]
    # No category 0 exists, so only registered judges remain
    assert service.judge_ids(0) == [JUDGE_A, JUDGE_B]
