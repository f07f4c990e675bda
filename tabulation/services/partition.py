"""
tabulation/services/partition.py
Division view filter over the participant pool

Individual events are judged in separate gender brackets; group events are
not divided. The filter never persists anything.
"""
from typing import List, Optional, Sequence

from tabulation.models import Division, Event, Participant


def divisions_for(event: Optional[Event]) -> List[Optional[str]]:
    """
    Divisions to tabulate for an event.

    Returns [None] for undivided events so callers can loop uniformly.
    """
    if event is None or not event.has_divisions:
        return [None]
    return [d.value for d in Division]


def filter_by_division(participants: Sequence[Participant], division: Optional[str]) -> List[Participant]:
    """Participants in `division`, or everyone when division is None."""
    if division is None:
        return list(participants)
    return [p for p in participants if p.division == division]


def division_for(event: Optional[Event], participant: Participant) -> Optional[str]:
    """Bracket a participant belongs to within an event."""
    if event is None or not event.has_divisions:
        return None
    return participant.division
