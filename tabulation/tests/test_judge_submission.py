"""
Tests for the judge submission state machine

Tests transition rules, the lock invariant on stored rows, failure handling
and the activity audit trail.
"""
import pytest

from tabulation.config import Settings
from tabulation.exceptions import InvalidTransitionError
from tabulation.models import JudgeContext
from tabulation.services.scoring_session import JudgeScoringSession
from tabulation.state_machines.judge_submission import JudgeSubmissionMachine, SubmissionState
from tabulation.tests.factories import (
    CRITERION_A,
    CRITERION_B,
    JUDGE_A,
    JUDGE_B,
    P1,
    P2,
    P3,
    RANK_CRITERION,
    RANKING_CATEGORY,
    SCORING_CATEGORY,
    score_row,
)


async def _session(store, settings, category_id=SCORING_CATEGORY, judge_id=JUDGE_A, division=None):
    session = JudgeScoringSession(store, JudgeContext(judge_id, category_id, division), settings=settings)
    return await session.load()


def _rows(store, judge_id, criterion_ids):
    return [
        row for row in store.rows("scores")
        if row["judge_id"] == judge_id and row["criteria_id"] in criterion_ids
    ]


def _activity(store, action=None):
    return [
        row for row in store.rows("judge_activity_logs")
        if action is None or row["action"] == action
    ]


# ============================================================================
# Transition rules
# ============================================================================

def test_only_two_transitions_are_allowed():
    allowed = JudgeSubmissionMachine.ALLOWED_TRANSITIONS
    assert allowed[SubmissionState.DRAFT] == [SubmissionState.SUBMITTED]
    assert allowed[SubmissionState.SUBMITTED] == [SubmissionState.DRAFT]


@pytest.mark.asyncio
async def test_double_submit_is_invalid(store, settings):
    session = await _session(store, settings)
    assert await session.submit() is True
    with pytest.raises(InvalidTransitionError):
        await session.submit()


@pytest.mark.asyncio
async def test_unlock_from_draft_is_invalid(store, settings):
    session = await _session(store, settings)
    with pytest.raises(InvalidTransitionError):
        await session.unlock()


# ============================================================================
# Lock invariant
# ============================================================================

@pytest.mark.asyncio
async def test_submit_stamps_every_row_and_unlock_clears_them(store, settings):
    session = await _session(store, settings)
    session.set_score(P1, CRITERION_A, 50)

    assert await session.submit() is True
    rows = _rows(store, JUDGE_A, {CRITERION_A, CRITERION_B})
    assert len(rows) == 6
    assert all(row["submitted_at"] is not None for row in rows)
    assert len({row["submitted_at"] for row in rows}) == 1
    assert session.locked is True

    assert await session.unlock() is True
    rows = _rows(store, JUDGE_A, {CRITERION_A, CRITERION_B})
    assert all(row["submitted_at"] is None for row in rows)
    assert session.locked is False
    await session.close()


@pytest.mark.asyncio
async def test_locked_session_rejects_edits(store, settings):
    session = await _session(store, settings)
    session.set_score(P1, CRITERION_A, 50)
    await session.submit()

    assert session.set_score(P1, CRITERION_A, 10) is False
    assert session.get_score(P1, CRITERION_A) == 50.0
    await session.close()


@pytest.mark.asyncio
async def test_lock_state_is_derived_on_load(store, settings):
    first = await _session(store, settings)
    await first.submit()
    await first.close()

    reloaded = await _session(store, settings)
    assert reloaded.locked is True
    assert reloaded.is_submitted_once is True

    other_judge = await _session(store, settings, judge_id=JUDGE_B)
    assert other_judge.locked is False


@pytest.mark.asyncio
async def test_failed_submit_leaves_draft_and_marks_unsaved(store, settings):
    session = await _session(store, settings)
    session.set_score(P1, CRITERION_A, 50)
    await session.scheduler.drain()

    store.fail_writes = True
    assert await session.submit() is False
    assert session.locked is False
    assert session.unsaved is True
    assert session.set_score(P1, CRITERION_A, 55) is True

    store.fail_writes = False
    assert await session.submit() is True
    assert session.unsaved is False
    await session.close()


@pytest.mark.asyncio
async def test_failed_unlock_stays_submitted(store, settings):
    session = await _session(store, settings)
    await session.submit()

    store.fail_next_writes(1)
    assert await session.unlock() is False
    assert session.locked is True
    assert session.unsaved is True


# ============================================================================
# Ranking categories
# ============================================================================

@pytest.mark.asyncio
async def test_submitting_untouched_ranking_records_display_order(store, settings):
    session = await _session(store, settings, category_id=RANKING_CATEGORY)
    assert session.rankings() == {P1: None, P2: None, P3: None}

    assert await session.submit() is True
    rows = _rows(store, JUDGE_A, {RANK_CRITERION})
    assert {(r["participant_id"], r["rank"]) for r in rows} == {(P1, 1), (P2, 2), (P3, 3)}
    assert all(r["submitted_at"] is not None for r in rows)
    assert session.rankings() == {P1: 1, P2: 2, P3: 3}


@pytest.mark.asyncio
async def test_participant_without_stored_rank_is_placed_on_submit(store, settings):
    store.seed("scores", [
        score_row(JUDGE_A, P1, RANK_CRITERION, rank=2),
        score_row(JUDGE_A, P2, RANK_CRITERION, rank=1),
    ])
    session = await _session(store, settings, category_id=RANKING_CATEGORY)
    assert session.rankings() == {P1: 2, P2: 1, P3: None}

    assert await session.submit() is True
    rows = _rows(store, JUDGE_A, {RANK_CRITERION})
    assert {(r["participant_id"], r["rank"]) for r in rows} == {(P2, 1), (P1, 2), (P3, 3)}
    assert session.rankings() == {P1: 2, P2: 1, P3: 3}


# ============================================================================
# Audit trail
# ============================================================================

@pytest.mark.asyncio
async def test_submit_and_unlock_are_audited(store, settings):
    session = await _session(store, settings)
    session.set_score(P1, CRITERION_A, 50)
    session.set_score(P2, CRITERION_A, 40)
    await session.submit()
    await session.unlock()

    submit = _activity(store, "submit")[0]
    assert submit["category_id"] == SCORING_CATEGORY
    entries = {e["participant_id"]: e for e in submit["metadata"]["participants"]}
    assert entries[P1]["total"] == 50.0 and entries[P1]["rank"] == 1
    assert entries[P2]["rank"] == 2
    assert entries[P3]["rank"] is None

    unlock = _activity(store, "unlock")[0]
    assert unlock["metadata"]["participant_ids"] == [P1, P2, P3]


@pytest.mark.asyncio
async def test_changes_are_audited_only_after_first_submit(store, settings):
    session = await _session(store, settings)
    session.set_score(P1, CRITERION_A, 10)
    await session.wait_for_audits()
    assert _activity(store, "score_change") == []

    await session.submit()
    await session.unlock()
    session.set_score(P1, CRITERION_A, 15)
    session.set_score(P1, CRITERION_A, 15)
    await session.close()

    changes = _activity(store, "score_change")
    assert len(changes) == 1
    assert changes[0]["metadata"]["old_score"] == 10.0
    assert changes[0]["metadata"]["new_score"] == 15.0


@pytest.mark.asyncio
async def test_submitted_once_survives_reload_from_activity_log(store, settings):
    session = await _session(store, settings)
    await session.submit()
    await session.unlock()
    await session.close()

    reloaded = await _session(store, settings)
    assert reloaded.locked is False
    assert reloaded.is_submitted_once is True


@pytest.mark.asyncio
async def test_rank_changes_are_audited_after_submit(store, settings):
    session = await _session(store, settings, category_id=RANKING_CATEGORY)
    await session.submit()
    await session.unlock()

    await session.reorder([P2, P1, P3])
    await session.close()

    changes = {r["metadata"]["participant_id"]: r for r in _activity(store, "rank_change")}
    assert set(changes) == {P1, P2}
    assert changes[P2]["metadata"]["old_rank"] == 2
    assert changes[P2]["metadata"]["new_rank"] == 1


@pytest.mark.asyncio
async def test_audit_failure_does_not_block_submit(store, settings):
    session = await _session(store, settings)

    original_append = store.append

    async def failing_append(entity, row):
        if entity == "judge_activity_logs":
            store.fail_next_writes(1)
        return await original_append(entity, row)

    store.append = failing_append
    assert await session.submit() is True
    assert session.locked is True
    assert _activity(store) == []


@pytest.mark.asyncio
async def test_change_audit_can_be_switched_off(store):
    settings = Settings(autosave_delay_ms=20, score_change_audit=False)
    session = await _session(store, settings)
    await session.submit()
    await session.unlock()
    session.set_score(P1, CRITERION_A, 30)
    await session.close()

    assert _activity(store, "score_change") == []
    assert len(_activity(store, "submit")) == 1
