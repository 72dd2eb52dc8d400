"""
Version Repository

Data access layer for document versions and the project timeline.
Number allocation and the aggregate lookup live here; the locking
discipline around them is owned by the services.
"""

from __future__ import annotations

import uuid
from collections.abc import Sequence

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from draftdesk.models import TimelineEvent, Version
from draftdesk.repositories.base import BaseRepository


class VersionRepository(BaseRepository[Version]):
    """
    Repository for Version entities.

    Adds:
        - max_number: highest allocated version number (0 when none).
        - list_by_project: "most recent first" ordering consumers rely on.
        - find_aggregate: the augmentation target, optionally row-locked.
    """

    def __init__(self) -> None:
        super().__init__(Version)

    async def max_number(self, session: AsyncSession, project_id: uuid.UUID) -> int:
        stmt = select(func.max(Version.version_number)).where(
            Version.project_id == project_id
        )
        result = await session.execute(stmt)
        return result.scalar() or 0

    async def list_by_project(
        self, session: AsyncSession, project_id: uuid.UUID
    ) -> Sequence[Version]:
        """Versions ordered by version number, highest first."""
        stmt = (
            select(Version)
            .where(Version.project_id == project_id)
            .order_by(Version.version_number.desc())
        )
        result = await session.execute(stmt)
        return result.scalars().all()

    async def find_aggregate(
        self,
        session: AsyncSession,
        project_id: uuid.UUID,
        *,
        for_update: bool = False,
    ) -> Version | None:
        """
        Locate the project's aggregate ("v1") version.

        Preference: the lowest-numbered version titled like "raw"/"v1" or
        numbered 1; otherwise the lowest-numbered version overall.
        """
        designated = (
            select(Version)
            .where(
                Version.project_id == project_id,
                or_(
                    Version.title.ilike("%raw%"),
                    Version.title.ilike("%v1%"),
                    Version.version_number == 1,
                ),
            )
            .order_by(Version.version_number.asc())
            .limit(1)
        )
        if for_update:
            designated = designated.with_for_update()
        result = await session.execute(designated)
        aggregate = result.scalars().first()
        if aggregate is not None:
            return aggregate

        fallback = (
            select(Version)
            .where(Version.project_id == project_id)
            .order_by(Version.version_number.asc())
            .limit(1)
        )
        if for_update:
            fallback = fallback.with_for_update()
        result = await session.execute(fallback)
        return result.scalars().first()


class TimelineRepository(BaseRepository[TimelineEvent]):
    def __init__(self) -> None:
        super().__init__(TimelineEvent)

    async def list_by_project(
        self,
        session: AsyncSession,
        project_id: uuid.UUID,
        limit: int = 100,
    ) -> Sequence[TimelineEvent]:
        """History entries, newest first."""
        stmt = (
            select(TimelineEvent)
            .where(TimelineEvent.project_id == project_id)
            .order_by(TimelineEvent.created_at.desc())
            .limit(limit)
        )
        result = await session.execute(stmt)
        return result.scalars().all()
