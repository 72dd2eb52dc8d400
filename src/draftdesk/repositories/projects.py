"""
Project Repository

Data access for projects, their collaborators and the user directory.
Backs the default access check, the intake flag and actor display names.
"""

from __future__ import annotations

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from draftdesk.models import Project, ProjectCollaborator, User
from draftdesk.repositories.base import BaseRepository

UNKNOWN_USER_NAME = "Unknown User"


class ProjectRepository(BaseRepository[Project]):
    """
    Repository for Project entities.

    Adds:
        - lock: ``SELECT ... FOR UPDATE`` on the project row, the per-project
          serialization point for version-number allocation.
        - has_member: owner-or-collaborator membership check.
        - set_intake_completed: toggles ``metadata.intake_completed``.
    """

    def __init__(self) -> None:
        super().__init__(Project)

    async def lock(
        self, session: AsyncSession, project_id: uuid.UUID
    ) -> Project | None:
        """Load a project with a row lock held until the transaction ends."""
        stmt = select(Project).where(Project.id == project_id).with_for_update()
        result = await session.execute(stmt)
        return result.scalars().first()

    async def has_member(
        self,
        session: AsyncSession,
        project_id: uuid.UUID,
        user_id: uuid.UUID,
    ) -> bool:
        project = await self.get_by_id(session, project_id)
        if project is None:
            return False
        if project.owner_id == user_id:
            return True
        stmt = select(ProjectCollaborator.id).where(
            ProjectCollaborator.project_id == project_id,
            ProjectCollaborator.user_id == user_id,
        )
        result = await session.execute(stmt)
        return result.first() is not None

    async def set_intake_completed(
        self,
        session: AsyncSession,
        project: Project,
        completed: bool,
    ) -> Project:
        # Reassign the dict so the JSON column is flagged dirty
        project.project_metadata = {
            **(project.project_metadata or {}),
            "intake_completed": completed,
        }
        await session.commit()
        await session.refresh(project)
        return project

    async def get_user_name(
        self,
        session: AsyncSession,
        user_id: uuid.UUID | None,
    ) -> str:
        """Resolve a display name, falling back to ``Unknown User``."""
        if user_id is None:
            return UNKNOWN_USER_NAME
        result = await session.execute(select(User.name).where(User.id == user_id))
        name = result.scalars().first()
        return name or UNKNOWN_USER_NAME
