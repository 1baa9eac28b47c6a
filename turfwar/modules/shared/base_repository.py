"""
Base Repository Pattern

Purpose
-------
Generic async data access for turfwar models. Services never build SELECT
statements for plain lookups; they call these helpers so locking is applied
the same way everywhere.

Design Notes
------------
- Locked reads (`for_update=True`, `get_for_update`, `get_many_for_update`)
  emit SELECT ... FOR UPDATE and refresh rows already in the identity map
  (populate_existing), so a gang read earlier in the transaction is never
  used stale once it is locked.
- Multi-row locks are taken in ascending primary-key order.
- No transactions here; services open them through DatabaseService.

Usage
-----
    class GangRepository(BaseRepository[Gang]):
        async def find_by_name(self, session, name):
            return await self.find_one_where(
                session, func.lower(Gang.name) == name.lower()
            )
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Generic, List, Optional, Sequence, Type, TypeVar

from sqlalchemy import func, select

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy import ColumnElement, Select
    from sqlalchemy.ext.asyncio import AsyncSession

T = TypeVar("T")


class BaseRepository(Generic[T]):
    """Typed CRUD and locking helpers for one model class."""

    def __init__(self, model_class: Type[T], logger: Logger) -> None:
        self.model_class = model_class
        self.log = logger

    @property
    def _name(self) -> str:
        return self.model_class.__name__

    def _select(self, *conditions: ColumnElement[bool], for_update: bool = False) -> Select:
        stmt = select(self.model_class).where(*conditions)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return stmt

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, session: AsyncSession, id_value: Any) -> Optional[T]:
        """Row by primary key, unlocked."""
        return await self.find_one_where(session, self.model_class.id == id_value)  # type: ignore[attr-defined]

    async def get_for_update(self, session: AsyncSession, id_value: Any) -> Optional[T]:
        """Row by primary key under SELECT ... FOR UPDATE."""
        return await self.find_one_where(
            session,
            self.model_class.id == id_value,  # type: ignore[attr-defined]
            for_update=True,
        )

    async def get_many_for_update(
        self, session: AsyncSession, id_values: Sequence[Any]
    ) -> List[T]:
        """
        Lock several rows by primary key, lowest id first.

        Missing ids are simply absent from the result.
        """
        ids = sorted(set(id_values))
        if not ids:
            return []
        rows = await self.find_many_where(
            session,
            self.model_class.id.in_(ids),  # type: ignore[attr-defined]
            for_update=True,
        )
        self.log.debug(
            "Locked rows",
            extra={"model": self._name, "requested": ids, "locked": len(rows)},
        )
        return rows

    async def find_one_where(
        self,
        session: AsyncSession,
        *conditions: ColumnElement[bool],
        for_update: bool = False,
    ) -> Optional[T]:
        result = await session.execute(self._select(*conditions, for_update=for_update))
        return result.scalar_one_or_none()

    async def find_many_where(
        self,
        session: AsyncSession,
        *conditions: ColumnElement[bool],
        for_update: bool = False,
        order_by: Optional[Any] = None,
        limit: Optional[int] = None,
    ) -> List[T]:
        """Rows matching `conditions`, ordered by primary key unless `order_by` is given."""
        stmt = self._select(*conditions, for_update=for_update).order_by(
            order_by if order_by is not None else self.model_class.id  # type: ignore[attr-defined]
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await session.execute(stmt)
        return list(result.scalars().all())

    async def count(self, session: AsyncSession, *conditions: ColumnElement[bool]) -> int:
        stmt = select(func.count()).select_from(self.model_class).where(*conditions)
        return (await session.execute(stmt)).scalar_one()

    async def exists(self, session: AsyncSession, *conditions: ColumnElement[bool]) -> bool:
        return await self.count(session, *conditions) > 0

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def add(self, session: AsyncSession, instance: T) -> T:
        session.add(instance)
        return instance

    async def delete(self, session: AsyncSession, instance: T) -> None:
        await session.delete(instance)
        self.log.debug(
            "Deleted row",
            extra={"model": self._name, "id": getattr(instance, "id", None)},
        )

    async def flush(self, session: AsyncSession) -> None:
        await session.flush()
