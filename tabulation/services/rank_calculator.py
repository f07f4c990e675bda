"""
tabulation/services/rank_calculator.py
Dense ranking for one judge, one category, one division

Ties share a rank and the next distinct value takes the following integer
(1, 1, 2), never the competition-ranking gap (1, 1, 3). Entries without a
usable value stay unranked (None).
"""
from typing import Dict, Hashable, Mapping, Optional, TypeVar

K = TypeVar("K", bound=Hashable)


def dense_rank(values: Mapping[K, Optional[float]], descending: bool) -> Dict[K, Optional[int]]:
    """
    Dense-rank every non-null value.

    Args:
        values: key -> value, None meaning "no value"
        descending: True when a higher value is better

    Returns:
        key -> rank (1-based) or None for keys without a value
    """
    ranks: Dict[K, Optional[int]] = {key: None for key in values}
    present = [(key, value) for key, value in values.items() if value is not None]
    present.sort(key=lambda item: item[1], reverse=descending)

    current_rank = 0
    previous: Optional[float] = None
    for key, value in present:
        if previous is None or value != previous:
            current_rank += 1
            previous = value
        ranks[key] = current_rank

    return ranks


def rank_totals(totals: Mapping[K, float]) -> Dict[K, Optional[int]]:
    """
    Rank scoring-category totals, best (highest) first.

    A field where nobody has scored yet is left entirely unranked, and a
    participant whose own total is still zero is unranked as well.
    """
    if not any(total > 0 for total in totals.values()):
        return {key: None for key in totals}
    return dense_rank(
        {key: (total if total > 0 else None) for key, total in totals.items()},
        descending=True,
    )


def rank_positions(positions: Mapping[K, Optional[int]]) -> Dict[K, Optional[int]]:
    """
    Rank ranking-category placements, lowest position first.

    Participants with no recorded position are unranked.
    """
    if all(position is None for position in positions.values()):
        return {key: None for key in positions}
    return dense_rank(
        {key: (float(p) if p is not None and p > 0 else None) for key, p in positions.items()},
        descending=False,
    )


def ordinal(rank: int) -> str:
    """1 -> '1st', 2 -> '2nd', 11 -> '11th', 23 -> '23rd'."""
    suffixes = ["th", "st", "nd", "rd"]
    v = rank % 100
    if 10 < v < 14:
        return f"{rank}th"
    return f"{rank}{suffixes[v % 10] if v % 10 < 4 else suffixes[0]}"
