"""
Intake Repository

Data access layer for reference files and their extraction jobs.
"""

from __future__ import annotations

import uuid
from collections.abc import Sequence
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from draftdesk.models import ExtractionJob, JobStatus, ReferenceFile
from draftdesk.repositories.base import BaseRepository

_ACTIVE_STATUSES = [JobStatus.QUEUED.value, JobStatus.EXTRACTING.value]


class ReferenceFileRepository(BaseRepository[ReferenceFile]):
    def __init__(self) -> None:
        super().__init__(ReferenceFile)

    async def lock(
        self, session: AsyncSession, reference_file_id: uuid.UUID
    ) -> ReferenceFile | None:
        stmt = (
            select(ReferenceFile)
            .where(ReferenceFile.id == reference_file_id)
            .with_for_update()
        )
        result = await session.execute(stmt)
        return result.scalars().first()

    async def list_by_project(
        self, session: AsyncSession, project_id: uuid.UUID
    ) -> Sequence[ReferenceFile]:
        """Reference files of a project, newest first."""
        stmt = (
            select(ReferenceFile)
            .where(ReferenceFile.project_id == project_id)
            .order_by(ReferenceFile.created_at.desc())
        )
        result = await session.execute(stmt)
        return result.scalars().all()


class ExtractionJobRepository(BaseRepository[ExtractionJob]):
    """
    Repository for extraction jobs.

    Key queries:
        - latest_for_reference: the job whose result owns the file's state.
        - active_for_reference: the (at most one) non-terminal job.
        - find_stuck: non-terminal jobs created before a cutoff.
    """

    def __init__(self) -> None:
        super().__init__(ExtractionJob)

    async def list_by_project(
        self, session: AsyncSession, project_id: uuid.UUID
    ) -> Sequence[ExtractionJob]:
        """Jobs of a project, newest first."""
        stmt = (
            select(ExtractionJob)
            .where(ExtractionJob.project_id == project_id)
            .order_by(ExtractionJob.created_at.desc())
        )
        result = await session.execute(stmt)
        return result.scalars().all()

    async def latest_for_reference(
        self, session: AsyncSession, reference_file_id: uuid.UUID
    ) -> ExtractionJob | None:
        stmt = (
            select(ExtractionJob)
            .where(ExtractionJob.reference_file_id == reference_file_id)
            .order_by(ExtractionJob.created_at.desc())
            .limit(1)
        )
        result = await session.execute(stmt)
        return result.scalars().first()

    async def active_for_reference(
        self, session: AsyncSession, reference_file_id: uuid.UUID
    ) -> Sequence[ExtractionJob]:
        stmt = select(ExtractionJob).where(
            ExtractionJob.reference_file_id == reference_file_id,
            ExtractionJob.status.in_(_ACTIVE_STATUSES),
        )
        result = await session.execute(stmt)
        return result.scalars().all()

    async def find_stuck(
        self,
        session: AsyncSession,
        cutoff: datetime,
        project_id: uuid.UUID | None = None,
    ) -> Sequence[ExtractionJob]:
        """Non-terminal jobs created before ``cutoff``, oldest first."""
        stmt = select(ExtractionJob).where(
            ExtractionJob.status.in_(_ACTIVE_STATUSES),
            ExtractionJob.created_at < cutoff,
        )
        if project_id is not None:
            stmt = stmt.where(ExtractionJob.project_id == project_id)
        result = await session.execute(stmt.order_by(ExtractionJob.created_at))
        return result.scalars().all()
