"""
Base Repository

Generic repository pattern implementation for async SQLAlchemy CRUD operations.
Provides type-safe database access with consistent session handling.
"""

import uuid
from typing import Any, Generic, TypeVar

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from draftdesk.models.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """
    Generic repository providing common CRUD operations.

    Implements the Repository pattern with async SQLAlchemy. All methods
    expect an externally managed session. ``create`` and ``update`` commit;
    ``add`` only flushes so callers can group several writes into one
    transaction. There is no delete: intake records and versions are
    append-only.

    Usage:
        class VersionRepository(BaseRepository[Version]):
            def __init__(self):
                super().__init__(Version)
    """

    def __init__(self, model: type[ModelType]):
        self.model = model

    async def create(self, session: AsyncSession, obj_in: Any) -> ModelType:
        """
        Create a new record and commit.

        Args:
            session: Active database session.
            obj_in: Pydantic schema or dict with entity data.

        Returns:
            The created entity with database-generated fields populated.
        """
        db_obj = await self.add(session, obj_in)
        await session.commit()
        await session.refresh(db_obj)
        return db_obj

    async def add(self, session: AsyncSession, obj_in: Any) -> ModelType:
        """Stage a new record and flush it without committing."""
        data = obj_in.model_dump() if hasattr(obj_in, "model_dump") else obj_in
        db_obj = self.model(**data)
        session.add(db_obj)
        await session.flush()
        return db_obj

    async def get_by_id(
        self, session: AsyncSession, id: uuid.UUID
    ) -> ModelType | None:
        """Get a record by primary key. Returns None if not found."""
        result = await session.execute(
            select(self.model).where(self.model.id == id)  # type: ignore[attr-defined]
        )
        return result.scalars().first()

    async def update_fields(
        self,
        session: AsyncSession,
        id: uuid.UUID,
        values: dict[str, Any],
    ) -> None:
        """
        Overwrite the given columns of one row (bulk UPDATE, no SELECT).

        Writes are keyed by primary key and unconditional, so replaying the
        same values is harmless. Does not commit.
        """
        stmt = (
            update(self.model)
            .where(self.model.id == id)  # type: ignore[attr-defined]
            .values(**values)
        )
        await session.execute(stmt)
