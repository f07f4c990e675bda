"""
tabulation/services/activity_logger.py
Centralized judge activity logging

Every audit row goes through `log_judge_activity()`. Logs are append-only:
no edits, no deletions. Auditing is best-effort; a failed append is logged
and never blocks the action that triggered it.
"""
import logging
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from tabulation.exceptions import StoreError
from tabulation.store import RemoteStore
from tabulation.store.base import Row

logger = logging.getLogger(__name__)

ACTIVITY_ENTITY = "judge_activity_logs"


class ActivityAction(str, Enum):
    SUBMIT = "submit"
    UNLOCK = "unlock"
    SCORE_CHANGE = "score_change"
    RANK_CHANGE = "rank_change"


async def log_judge_activity(
    store: RemoteStore,
    judge_id: int,
    category_id: int,
    action: ActivityAction,
    description: str,
    details: Optional[Dict[str, Any]] = None,
) -> Optional[Row]:
    """
    Append one judge activity row.

    Call this AFTER the action it describes has been persisted.

    Args:
        store: Remote store
        judge_id: Acting judge
        category_id: Category the action applies to
        action: submit, unlock, score_change or rank_change
        description: Human-readable summary
        details: JSON-serializable context, stored in `metadata`

    Returns:
        The stored row, or None if the append failed
    """
    try:
        row = await store.append(ACTIVITY_ENTITY, {
            "judge_id": judge_id,
            "category_id": category_id,
            "action": action.value,
            "description": description,
            "metadata": details or {},
            "created_at": datetime.utcnow(),
        })
        logger.info(f"Activity logged: judge {judge_id} {action.value} on category {category_id}")
        return row
    except StoreError as e:
        logger.error(f"Failed to log judge activity ({action.value}): {e.message}")
        return None


async def get_judge_activity(
    store: RemoteStore,
    judge_id: int,
    category_id: int,
    action: Optional[ActivityAction] = None,
) -> List[Row]:
    """Activity rows for one judge and category, newest first."""
    filters: Dict[str, Any] = {"judge_id": judge_id, "category_id": category_id}
    if action is not None:
        filters["action"] = action.value
    return await store.fetch(ACTIVITY_ENTITY, filters, order=["-created_at", "-id"])


async def has_submitted_before(store: RemoteStore, judge_id: int, category_id: int) -> bool:
    """Whether a submit was ever recorded for the pair."""
    rows = await get_judge_activity(store, judge_id, category_id, ActivityAction.SUBMIT)
    return bool(rows)


def _format_value(value: Optional[float]) -> str:
    if value is None:
        return "empty"
    return f"{value:g}"


def describe_submit(category_name: str, entries: List[Dict[str, Any]]) -> str:
    lines = [f"Submitted {category_name}"]
    for entry in entries:
        rank = entry.get("rank")
        rank_text = f"rank {rank}" if rank is not None else "unranked"
        if entry.get("total") is not None:
            lines.append(f"  {entry['name']}: {_format_value(entry['total'])} ({rank_text})")
        else:
            lines.append(f"  {entry['name']}: {rank_text}")
    return "\n".join(lines)


def describe_unlock(category_name: str, participant_ids: Iterable[int]) -> str:
    count = len(list(participant_ids))
    return f"Unlocked {category_name} for {count} participant(s)"


def describe_score_change(
    participant_name: str,
    criterion_name: str,
    old: Optional[float],
    new: Optional[float],
) -> str:
    return f"{participant_name} / {criterion_name}: {_format_value(old)} -> {_format_value(new)}"


def describe_rank_change(participant_name: str, old: Optional[int], new: Optional[int]) -> str:
    old_text = str(old) if old is not None else "unranked"
    new_text = str(new) if new is not None else "unranked"
    return f"{participant_name}: rank {old_text} -> {new_text}"
