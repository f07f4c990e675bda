"""
tabulation/services/event_loader.py
Load everything needed to tabulate one event from the remote store
"""
import logging
from typing import Dict, List

from tabulation.exceptions import NotFoundError
from tabulation.models import Category, Criterion, Event, EventSnapshot, Judge, Participant
from tabulation.store import RemoteStore

logger = logging.getLogger(__name__)


async def load_event_snapshot(store: RemoteStore, event_id: int) -> EventSnapshot:
    """
    Fetch an event with its categories, active criteria, active
    participants, judges and every score row.

    Raises:
        NotFoundError: If the event does not exist
        StoreReadError: If any fetch fails
    """
    event_rows = await store.fetch("events", {"id": event_id})
    if not event_rows:
        raise NotFoundError(f"Event {event_id} not found")
    event = Event.from_row(event_rows[0])

    category_rows = await store.fetch("categories", {"event_id": event_id}, order=["display_order", "id"])
    category_ids = [row["id"] for row in category_rows]

    criteria_by_category: Dict[int, List[Criterion]] = {cid: [] for cid in category_ids}
    if category_ids:
        criterion_rows = await store.fetch(
            "criteria",
            {"category_id": category_ids},
            order=["display_order", "id"],
        )
        for row in criterion_rows:
            if row.get("is_active", True) is False:
                continue
            criteria_by_category[row["category_id"]].append(Criterion.from_row(row))

    categories = [
        Category.from_row(row, criteria_by_category.get(row["id"], []))
        for row in category_rows
    ]

    participant_rows = await store.fetch(
        "participants",
        {"event_id": event_id, "is_active": True},
        order=["display_order", "number"],
    )
    participants = [Participant.from_row(row) for row in participant_rows]

    judge_rows = await store.fetch("judges", order=["id"])
    judges = [
        Judge.from_row(row)
        for row in judge_rows
        if row.get("event_id") in (None, event_id) and row.get("is_active", True) is not False
    ]

    criterion_ids = [c.id for category in categories for c in category.criteria]
    scores = []
    if criterion_ids:
        scores = await store.fetch("scores", {"criteria_id": criterion_ids})

    logger.info(
        f"Loaded event {event_id}: {len(categories)} categories, "
        f"{len(participants)} participants, {len(judges)} judges, {len(scores)} scores"
    )
    return EventSnapshot(
        event=event,
        categories=categories,
        participants=participants,
        judges=judges,
        scores=scores,
    )
