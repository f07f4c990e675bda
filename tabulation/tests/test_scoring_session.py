"""
End-to-end tests for judge scoring sessions

Two judges score and rank through real sessions against the in-memory store;
results are then read back through ResultsService.
"""
import asyncio

import pytest

from tabulation.exceptions import NotFoundError, StoreReadError
from tabulation.models import JudgeContext
from tabulation.services.results_service import ResultsService
from tabulation.services.scoring_session import JudgeScoringSession
from tabulation.tests.factories import (
    CRITERION_A,
    CRITERION_B,
    EVENT_ID,
    JUDGE_A,
    JUDGE_B,
    P1,
    P2,
    P3,
    RANK_CRITERION,
    RANKING_CATEGORY,
    SCORING_CATEGORY,
)


async def _session(store, settings, judge_id=JUDGE_A, category_id=SCORING_CATEGORY, division=None):
    session = JudgeScoringSession(store, JudgeContext(judge_id, category_id, division), settings=settings)
    return await session.load()


async def _score(store, settings, judge_id, entries):
    session = await _session(store, settings, judge_id=judge_id)
    for (participant_id, criterion_id), value in entries.items():
        assert session.set_score(participant_id, criterion_id, value) is True
    await session.close()
    return session


# ============================================================================
# Scoring
# ============================================================================

@pytest.mark.asyncio
async def test_two_judges_scoring_produces_dense_final_ranks(store, settings):
    await _score(store, settings, JUDGE_A, {
        (P1, CRITERION_A): 50, (P1, CRITERION_B): 30,
        (P2, CRITERION_A): 40, (P2, CRITERION_B): 30,
        (P3, CRITERION_A): 20, (P3, CRITERION_B): 10,
    })
    await _score(store, settings, JUDGE_B, {
        (P1, CRITERION_A): 40, (P1, CRITERION_B): 20,
        (P2, CRITERION_A): 50, (P2, CRITERION_B): 30,
        (P3, CRITERION_A): 10, (P3, CRITERION_B): 10,
    })

    service = await ResultsService.load(store, EVENT_ID)
    category = service.category_results(SCORING_CATEGORY, mode="rank")
    averages = {s.participant_id: s.average for s in category.standings}
    assert averages == {P1: 1.5, P2: 1.5, P3: 3.0}

    final = service.final_results(mode="rank")
    assert {s.participant_id: s.rank for s in final.standings} == {P1: 1, P2: 1, P3: 2}


@pytest.mark.asyncio
async def test_session_totals_and_rankings(store, settings):
    session = await _session(store, settings)
    session.set_score(P1, CRITERION_A, "55")
    session.set_score(P1, CRITERION_B, "45")   # clamped to 40
    session.set_score(P2, CRITERION_A, 70)     # clamped to 60
    session.set_score(P2, CRITERION_B, 35)

    assert session.total(P1) == 95.0
    assert session.total(P2) == 95.0
    assert session.rankings() == {P1: 1, P2: 1, P3: None}
    await session.close()


@pytest.mark.asyncio
async def test_malformed_input_is_ignored(store, settings):
    session = await _session(store, settings)
    assert session.set_score(P1, CRITERION_A, "12") is True
    assert session.set_score(P1, CRITERION_A, "twelve") is False
    assert session.get_score(P1, CRITERION_A) == 12.0
    assert session.set_score(P1, RANK_CRITERION, 5) is False
    await session.close()


@pytest.mark.asyncio
async def test_cleared_cell_persists_as_zero(store, settings):
    session = await _session(store, settings)
    session.set_score(P1, CRITERION_A, 30)
    await session.refresh()
    assert session.clear_score(P1, CRITERION_A) is True
    assert session.get_score(P1, CRITERION_A) is None
    await session.close()

    stored = [
        r for r in store.rows("scores")
        if r["participant_id"] == P1 and r["criteria_id"] == CRITERION_A
    ]
    assert [r["score"] for r in stored] == [0.0]


@pytest.mark.asyncio
async def test_edits_are_debounced_until_quiet(store, settings):
    session = await _session(store, settings)
    for value in (10, 20, 30):
        session.set_score(P1, CRITERION_A, value)
    assert store.rows("scores") == []

    await asyncio.sleep(settings.autosave_delay * 4)
    await session.scheduler.drain()
    assert [r["score"] for r in store.rows("scores")] == [30.0]
    await session.close()


@pytest.mark.asyncio
async def test_failed_autosave_surfaces_as_unsaved(store, settings):
    session = await _session(store, settings)
    store.fail_next_writes(1)
    session.set_score(P1, CRITERION_A, 10)
    await asyncio.sleep(settings.autosave_delay * 4)
    await session.scheduler.drain()
    assert session.unsaved is True

    session.set_score(P1, CRITERION_A, 11)
    await session.close()
    assert session.unsaved is False


# ============================================================================
# Ranking
# ============================================================================

@pytest.mark.asyncio
async def test_ranking_drag_persists_on_first_criterion(store, settings):
    session = await _session(store, settings, category_id=RANKING_CATEGORY)
    assert session.order() == [P1, P2, P3]

    assert await session.reorder([P2, P1, P3]) is True
    assert session.rankings() == {P1: 2, P2: 1, P3: 3}

    rows = {r["participant_id"]: r for r in store.rows("scores")}
    assert {pid: r["rank"] for pid, r in rows.items()} == {P2: 1, P1: 2, P3: 3}
    assert all(r["criteria_id"] == RANK_CRITERION and r["score"] == 0 for r in rows.values())
    await session.close()

    reloaded = await _session(store, settings, category_id=RANKING_CATEGORY)
    assert reloaded.order() == [P2, P1, P3]


@pytest.mark.asyncio
async def test_move_to_rank_through_session(store, settings):
    session = await _session(store, settings, category_id=RANKING_CATEGORY)
    await session.reorder([P1, P2, P3])

    assert await session.move_to_rank(P3, 1) is True
    assert session.order() == [P3, P1, P2]
    assert await session.move_to_rank(P3, 1) is False
    assert await session.move_to_rank(P3, 9) is False
    await session.close()


@pytest.mark.asyncio
async def test_uncommitted_reorder_is_debounced(store, settings):
    session = await _session(store, settings, category_id=RANKING_CATEGORY)
    await session.reorder([P3, P2, P1], commit=False)
    assert store.rows("scores") == []

    await session.close()
    assert {r["participant_id"]: r["rank"] for r in store.rows("scores")} == {P3: 1, P2: 2, P1: 3}


@pytest.mark.asyncio
async def test_division_session_ranks_only_its_bracket(divided_store, settings):
    session = await _session(divided_store, settings, category_id=RANKING_CATEGORY, division="female")
    assert [p.id for p in session.participants] == [P1, P3]

    await session.reorder([P3, P1])
    assert session.rankings() == {P3: 1, P1: 2}
    await session.close()

    ranked = {r["participant_id"] for r in divided_store.rows("scores")}
    assert ranked == {P1, P3}


# ============================================================================
# Loading
# ============================================================================

@pytest.mark.asyncio
async def test_unknown_category_raises_not_found(store, settings):
    with pytest.raises(NotFoundError):
        await _session(store, settings, category_id=999)


@pytest.mark.asyncio
async def test_read_failure_propagates_from_load(store, settings):
    store.fail_reads = True
    with pytest.raises(StoreReadError):
        await _session(store, settings)


@pytest.mark.asyncio
async def test_refresh_picks_up_other_judges_submission(store, settings):
    judge_a = await _session(store, settings)
    judge_a.set_score(P1, CRITERION_A, 10)
    await judge_a.refresh()
    assert judge_a.get_score(P1, CRITERION_A) == 10.0

    judge_b = await _session(store, settings, judge_id=JUDGE_B)
    judge_b.set_score(P1, CRITERION_A, 20)
    await judge_b.submit()
    await judge_b.close()

    await judge_a.refresh()
    assert judge_a.locked is False
    assert judge_a.get_score(P1, CRITERION_A) == 10.0
    await judge_a.close()
