"""
Record store adapters.

The identity core only needs key lookup and filtered scans over logical
tables. ``InMemoryRecordStore`` serves tests and local development;
``SqlRecordStore`` keeps items as JSON rows through SQLAlchemy's async engine.
Scan filtering happens in Python; no query planning is attempted.
"""

import copy
from typing import Any, Callable, Dict, List, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.exc import (
    DBAPIError,
    DisconnectionError,
    IntegrityError,
    OperationalError,
    SQLAlchemyError,
    TimeoutError as PoolTimeoutError,
)
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.kernel.errors import ErrorKind, InfraError, PermanentInfraError, TransientInfraError
from src.kernel.models.record import Record
from src.logging_config import get_logger

logger = get_logger(__name__)

Item = Dict[str, Any]
Predicate = Callable[[Item], bool]

KEY_FIELD = "id"


class RecordStore(Protocol):
    """Keyed item storage consumed by the identity core."""

    async def get(self, table: str, key: str) -> Optional[Item]:
        ...

    async def put(self, table: str, item: Item) -> Item:
        ...

    async def update(self, table: str, key: str, attributes: Item) -> Item:
        ...

    async def delete(self, table: str, key: str) -> None:
        ...

    async def scan(self, table: str, predicate: Optional[Predicate] = None) -> List[Item]:
        ...


def _key_of(item: Item) -> str:
    key = item.get(KEY_FIELD)
    if not key:
        raise PermanentInfraError(ErrorKind.VALIDATION, f"item has no '{KEY_FIELD}'")
    return str(key)


class InMemoryRecordStore:
    """Dict-backed record store. Items are copied in and out."""

    def __init__(self) -> None:
        self._tables: Dict[str, Dict[str, Item]] = {}

    def _table(self, table: str) -> Dict[str, Item]:
        return self._tables.setdefault(table, {})

    async def get(self, table: str, key: str) -> Optional[Item]:
        item = self._table(table).get(key)
        return copy.deepcopy(item) if item is not None else None

    async def put(self, table: str, item: Item) -> Item:
        self._table(table)[_key_of(item)] = copy.deepcopy(item)
        return copy.deepcopy(item)

    async def update(self, table: str, key: str, attributes: Item) -> Item:
        rows = self._table(table)
        if key not in rows:
            raise PermanentInfraError(ErrorKind.NOT_FOUND, f"{table}/{key} does not exist")
        rows[key].update(copy.deepcopy(attributes))
        return copy.deepcopy(rows[key])

    async def delete(self, table: str, key: str) -> None:
        self._table(table).pop(key, None)

    async def scan(self, table: str, predicate: Optional[Predicate] = None) -> List[Item]:
        items = [copy.deepcopy(item) for item in self._table(table).values()]
        if predicate is None:
            return items
        return [item for item in items if predicate(item)]


def _translate(exc: SQLAlchemyError, action: str) -> InfraError:
    """Map SQLAlchemy failures into the infra error taxonomy."""
    if isinstance(exc, IntegrityError):
        # Concurrent insert of the same key; a retry takes the update path
        error: InfraError = TransientInfraError(ErrorKind.CONFLICT, f"{action}: {exc}")
    elif isinstance(exc, PoolTimeoutError):
        error = TransientInfraError(ErrorKind.TIMEOUT, f"{action}: {exc}")
    elif isinstance(exc, (OperationalError, DisconnectionError)):
        error = TransientInfraError(ErrorKind.UNAVAILABLE, f"{action}: {exc}")
    elif isinstance(exc, DBAPIError) and exc.connection_invalidated:
        error = TransientInfraError(ErrorKind.NETWORK, f"{action}: {exc}")
    else:
        error = TransientInfraError(ErrorKind.UNKNOWN, f"{action}: {exc}")
    error.__cause__ = exc
    return error


class SqlRecordStore:
    """
    Record store on a single ``records`` table.

    Usage:
        store = SqlRecordStore(async_session_maker)
        await store.put("users", {"id": "u1", "email": "a@b.com"})
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    async def get(self, table: str, key: str) -> Optional[Item]:
        try:
            async with self.session_maker() as session:
                row = await session.get(Record, (table, key))
                return dict(row.item) if row else None
        except SQLAlchemyError as exc:
            raise _translate(exc, f"get {table}/{key}") from exc

    async def put(self, table: str, item: Item) -> Item:
        key = _key_of(item)
        try:
            async with self.session_maker() as session:
                row = await session.get(Record, (table, key))
                if row is None:
                    session.add(Record(table_name=table, record_key=key, item=dict(item)))
                else:
                    row.item = dict(item)
                await session.commit()
        except SQLAlchemyError as exc:
            raise _translate(exc, f"put {table}/{key}") from exc
        return dict(item)

    async def update(self, table: str, key: str, attributes: Item) -> Item:
        try:
            async with self.session_maker() as session:
                row = await session.get(Record, (table, key))
                if row is None:
                    raise PermanentInfraError(ErrorKind.NOT_FOUND, f"{table}/{key} does not exist")
                merged = {**row.item, **attributes}
                # Reassign so the JSON column is flagged dirty
                row.item = merged
                await session.commit()
                return dict(merged)
        except SQLAlchemyError as exc:
            raise _translate(exc, f"update {table}/{key}") from exc

    async def delete(self, table: str, key: str) -> None:
        try:
            async with self.session_maker() as session:
                row = await session.get(Record, (table, key))
                if row is not None:
                    await session.delete(row)
                    await session.commit()
        except SQLAlchemyError as exc:
            raise _translate(exc, f"delete {table}/{key}") from exc

    async def scan(self, table: str, predicate: Optional[Predicate] = None) -> List[Item]:
        try:
            async with self.session_maker() as session:
                result = await session.execute(
                    select(Record.item).where(Record.table_name == table)
                )
                items = [dict(item) for item in result.scalars().all()]
        except SQLAlchemyError as exc:
            raise _translate(exc, f"scan {table}") from exc
        if predicate is None:
            return items
        return [item for item in items if predicate(item)]
