from .base import ENTITIES, RemoteStore, row_matches, sort_rows
from .memory import InMemoryStore
from .sqlalchemy_store import SQLAlchemyStore

__all__ = [
    "ENTITIES",
    "RemoteStore",
    "row_matches",
    "sort_rows",
    "InMemoryStore",
    "SQLAlchemyStore",
]
