"""
tabulation/store/sqlalchemy_store.py
RemoteStore backed by async SQLAlchemy

Maps store entities onto the ORM tables and translates the generic
fetch/upsert/update/append calls into SQL. Every SQLAlchemy failure is
wrapped into StoreReadError / StoreWriteError so callers only ever see the
engine's own error taxonomy.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import Table, and_, insert, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tabulation.exceptions import StoreReadError, StoreWriteError
from tabulation.orm import ENTITY_TABLES
from tabulation.store.base import Filters, RemoteStore, Row

logger = logging.getLogger(__name__)

_DIALECT_INSERTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


class SQLAlchemyStore(RemoteStore):
    """
    SQL-backed store. Each call runs in its own short-lived session so that
    concurrent autosave writes never share a transaction.
    """

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    def _table(self, entity: str, writing: bool = False) -> Table:
        self._check_entity(entity, writing=writing)
        return ENTITY_TABLES[entity]

    @staticmethod
    def _where(table: Table, filters: Optional[Filters]):
        clauses = []
        for field, expected in (filters or {}).items():
            column = table.c[field]
            if expected is None:
                clauses.append(column.is_(None))
            elif isinstance(expected, (list, tuple, set, frozenset)):
                clauses.append(column.in_(list(expected)))
            else:
                clauses.append(column == expected)
        return and_(*clauses) if clauses else None

    @staticmethod
    def _to_row(table: Table, values: Sequence[Any]) -> Row:
        return {column.name: value for column, value in zip(table.columns, values)}

    @staticmethod
    def _to_values(table: Table, row: Row) -> Dict[str, Any]:
        # Column keys can differ from stored names (e.g. "metadata")
        return {column.key: row[column.name] for column in table.columns if column.name in row}

    async def fetch(
        self,
        entity: str,
        filters: Optional[Filters] = None,
        order: Optional[Sequence[str]] = None,
    ) -> List[Row]:
        table = self._table(entity)
        query = select(*table.columns)
        where = self._where(table, filters)
        if where is not None:
            query = query.where(where)
        for spec in order or ["id"]:
            column = table.c[spec.lstrip("-")]
            query = query.order_by(column.desc().nulls_last() if spec.startswith("-") else column.asc().nulls_last())

        try:
            async with self._session_factory() as session:
                result = await session.execute(query)
                return [self._to_row(table, values) for values in result.all()]
        except SQLAlchemyError as e:
            logger.error(f"Fetch failed on {entity}: {e}")
            raise StoreReadError(f"Failed to fetch {entity}", entity=entity) from e

    async def upsert(self, entity: str, rows: Sequence[Row], conflict_key: Sequence[str]) -> None:
        table = self._table(entity, writing=True)
        if not rows:
            return

        now = datetime.utcnow()
        prepared = []
        for row in rows:
            values = self._to_values(table, row)
            if "updated_at" in table.c:
                values["updated_at"] = now
            if "created_at" in table.c:
                values.setdefault("created_at", now)
            prepared.append(values)

        try:
            async with self._session_factory() as session:
                dialect = session.bind.dialect.name if session.bind is not None else ""
                dialect_insert = _DIALECT_INSERTS.get(dialect)
                if dialect_insert is not None:
                    await self._native_upsert(session, dialect_insert, table, prepared, conflict_key)
                else:
                    await self._emulated_upsert(session, table, prepared, conflict_key)
                await session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Upsert failed on {entity} ({len(rows)} rows): {e}")
            raise StoreWriteError(f"Failed to upsert {entity}", entity=entity) from e

    @staticmethod
    async def _native_upsert(
        session: AsyncSession,
        dialect_insert,
        table: Table,
        prepared: List[Dict[str, Any]],
        conflict_key: Sequence[str],
    ) -> None:
        # Multi-row VALUES needs a uniform key set
        groups: Dict[tuple, List[Dict[str, Any]]] = {}
        for values in prepared:
            groups.setdefault(tuple(sorted(values)), []).append(values)

        for keys, group in groups.items():
            stmt = dialect_insert(table).values(group)
            replace = {
                key: stmt.excluded[key]
                for key in keys
                if key not in conflict_key and key not in ("id", "created_at")
            }
            if replace:
                stmt = stmt.on_conflict_do_update(
                    index_elements=[table.c[k] for k in conflict_key],
                    set_=replace,
                )
            else:
                stmt = stmt.on_conflict_do_nothing(index_elements=[table.c[k] for k in conflict_key])
            await session.execute(stmt)

    async def _emulated_upsert(
        self,
        session: AsyncSession,
        table: Table,
        prepared: List[Dict[str, Any]],
        conflict_key: Sequence[str],
    ) -> None:
        for values in prepared:
            where = self._where(table, {k: values.get(k) for k in conflict_key})
            existing = await session.execute(select(table.c.id).where(where))
            if existing.first() is not None:
                patch = {k: v for k, v in values.items() if k not in conflict_key and k not in ("id", "created_at")}
                await session.execute(update(table).where(where).values(**patch))
            else:
                await session.execute(insert(table).values(**values))

    async def update(self, entity: str, filters: Filters, patch: Row) -> int:
        table = self._table(entity, writing=True)
        values = self._to_values(table, patch)
        if "updated_at" in table.c:
            values["updated_at"] = datetime.utcnow()

        stmt = update(table).values(**values)
        where = self._where(table, filters)
        if where is not None:
            stmt = stmt.where(where)

        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                await session.commit()
                return result.rowcount or 0
        except SQLAlchemyError as e:
            logger.error(f"Update failed on {entity}: {e}")
            raise StoreWriteError(f"Failed to update {entity}", entity=entity) from e

    async def append(self, entity: str, row: Row) -> Row:
        table = self._table(entity, writing=True)
        values = self._to_values(table, row)
        if "created_at" in table.c:
            values.setdefault("created_at", datetime.utcnow())
        if "updated_at" in table.c:
            values.setdefault("updated_at", values.get("created_at") or datetime.utcnow())

        try:
            async with self._session_factory() as session:
                result = await session.execute(insert(table).values(**values))
                await session.commit()
                stored = dict(row)
                stored["id"] = result.inserted_primary_key[0]
                return stored
        except SQLAlchemyError as e:
            logger.error(f"Append failed on {entity}: {e}")
            raise StoreWriteError(f"Failed to append to {entity}", entity=entity) from e
