"""Shared plumbing for the grading, submission and progression repositories.

Each repository wraps one ORM model and the session owned by the current
``UnitOfWork``. Repositories flush but never commit.
"""

from abc import ABC, abstractmethod
from typing import Any, Generic, TypeVar
from uuid import UUID

from sqlalchemy import Select, delete, select
from sqlalchemy.ext.asyncio import AsyncSession

T = TypeVar("T")


def parse_uuid(value: str | UUID) -> UUID | None:
    """``UUID`` for a UUID or its string form; None for anything malformed."""
    if isinstance(value, UUID):
        return value
    try:
        return UUID(value)
    except (ValueError, AttributeError, TypeError):
        return None


class BaseRepository(ABC, Generic[T]):
    """Id lookups, row locks, inserts and deletes for one ORM model."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    @property
    @abstractmethod
    def model_class(self) -> type[T]:
        """ORM model managed by this repository."""

    def _by_id(self, entity_id: UUID) -> Select[Any]:
        return select(self.model_class).where(self.model_class.id == entity_id)

    async def _scalar(self, query: Select[Any]) -> T | None:
        return (await self.session.execute(query)).scalar_one_or_none()

    async def get_by_id(self, entity_id: str | UUID) -> T | None:
        parsed = parse_uuid(entity_id)
        return None if parsed is None else await self._scalar(self._by_id(parsed))

    async def get_for_update(self, entity_id: str | UUID) -> T | None:
        """Like ``get_by_id`` but holds ``SELECT ... FOR UPDATE`` until commit.

        Reviews, reopens and XP postings on the same row queue behind it.
        """
        parsed = parse_uuid(entity_id)
        if parsed is None:
            return None
        return await self._scalar(self._by_id(parsed).with_for_update())

    async def create(self, entity: T) -> T:
        """Stage ``entity`` and flush so database defaults and keys are populated."""
        self.session.add(entity)
        await self.session.flush()
        return entity

    async def delete(self, entity_id: str | UUID) -> bool:
        """Delete by id; False when nothing matched."""
        parsed = parse_uuid(entity_id)
        if parsed is None:
            return False
        result = await self.session.execute(
            delete(self.model_class).where(self.model_class.id == parsed)
        )
        return bool(result.rowcount)


__all__ = [
    "BaseRepository",
    "parse_uuid",
]
