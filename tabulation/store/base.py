"""
Remote Store Interface

Abstract base class for the key-addressable store the tabulation engine
reads from and writes to. The engine never owns storage; it only issues
these four calls and reacts to their results.
"""
import abc
from typing import Any, Dict, Iterable, List, Optional, Sequence

from tabulation.exceptions import StoreReadError, StoreWriteError

ENTITIES = (
    "events",
    "categories",
    "criteria",
    "participants",
    "judges",
    "scores",
    "judge_activity_logs",
)

Row = Dict[str, Any]
Filters = Dict[str, Any]


class RemoteStore(abc.ABC):
    """
    Abstract base class for remote stores.

    Guarantees expected from implementations:
    - upsert is idempotent on its conflict key (last write wins)
    - update touches only rows matching every filter
    - append never mutates existing rows

    Filter semantics: a list/tuple/set value means IN, None means IS NULL,
    anything else is equality. Order entries are field names, prefixed with
    "-" for descending.
    """

    @abc.abstractmethod
    async def fetch(
        self,
        entity: str,
        filters: Optional[Filters] = None,
        order: Optional[Sequence[str]] = None,
    ) -> List[Row]:
        """
        Fetch rows of an entity.

        Raises:
            StoreReadError: If the store cannot serve the read
        """
        raise NotImplementedError

    @abc.abstractmethod
    async def upsert(self, entity: str, rows: Sequence[Row], conflict_key: Sequence[str]) -> None:
        """
        Insert rows, overwriting any existing row with the same conflict key.

        Raises:
            StoreWriteError: If the write is rejected
        """
        raise NotImplementedError

    @abc.abstractmethod
    async def update(self, entity: str, filters: Filters, patch: Row) -> int:
        """
        Patch every row matching filters. Returns the number of rows touched.

        Raises:
            StoreWriteError: If the write is rejected
        """
        raise NotImplementedError

    @abc.abstractmethod
    async def append(self, entity: str, row: Row) -> Row:
        """
        Append one row and return it as stored.

        Raises:
            StoreWriteError: If the write is rejected
        """
        raise NotImplementedError

    async def close(self) -> None:
        """Release connections. Default is a no-op."""
        return None

    def _check_entity(self, entity: str, writing: bool = False) -> None:
        if entity not in ENTITIES:
            error_cls = StoreWriteError if writing else StoreReadError
            raise error_cls(f"Unknown entity '{entity}'", entity=entity)


def row_matches(row: Row, filters: Optional[Filters]) -> bool:
    """Apply store filter semantics to a single row."""
    for field, expected in (filters or {}).items():
        actual = row.get(field)
        if expected is None:
            if actual is not None:
                return False
        elif isinstance(expected, (list, tuple, set, frozenset)):
            if actual not in expected:
                return False
        elif actual != expected:
            return False
    return True


def sort_rows(rows: Iterable[Row], order: Optional[Sequence[str]]) -> List[Row]:
    """
    Stable multi-key sort. NULLs sort last in either direction.
    """
    result = list(rows)
    for spec in reversed(list(order or [])):
        descending = spec.startswith("-")
        field = spec.lstrip("-")
        present = [r for r in result if r.get(field) is not None]
        missing = [r for r in result if r.get(field) is None]
        present.sort(key=lambda r: r[field], reverse=descending)
        result = present + missing
    return result
