"""
Access Service

Authorization collaborator used by the intake and version services.
The default implementation grants access to the project owner and its
collaborators; deployments can pass any object with the same method.
"""

from __future__ import annotations

import uuid
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from draftdesk.core.errors import AccessDenied
from draftdesk.repositories.projects import ProjectRepository


class AccessChecker(Protocol):
    async def has_project_access(
        self, project_id: uuid.UUID, actor_id: uuid.UUID
    ) -> bool: ...


class MembershipAccessChecker:
    """Owner-or-collaborator membership check backed by the database."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        projects: ProjectRepository | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._projects = projects or ProjectRepository()

    async def has_project_access(
        self, project_id: uuid.UUID, actor_id: uuid.UUID
    ) -> bool:
        async with self._session_factory() as session:
            return await self._projects.has_member(session, project_id, actor_id)


async def require_access(
    checker: AccessChecker,
    project_id: uuid.UUID,
    actor_id: uuid.UUID,
) -> None:
    """Raise ``AccessDenied`` unless ``actor_id`` may work on the project."""
    if not await checker.has_project_access(project_id, actor_id):
        raise AccessDenied("Access denied")
