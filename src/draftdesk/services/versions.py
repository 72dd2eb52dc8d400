"""
Version Store

Append-only history of numbered document snapshots.

Number allocation (``max + 1``) is a read-then-insert, so it runs under a
per-project serialization primitive: an in-process asyncio lock plus a
``SELECT ... FOR UPDATE`` on the project row, which covers several API
processes sharing one PostgreSQL database. The unique constraint on
``(project_id, version_number)`` stays as the last line of defence and
its violation is raised, never retried or swallowed.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from draftdesk.core.database import get_session_factory
from draftdesk.core.errors import (
    ProjectNotFound,
    VersionNotFound,
    VersionNumberConflict,
)
from draftdesk.models import TimelineEvent, TimelineEventType, Version
from draftdesk.repositories.projects import ProjectRepository
from draftdesk.repositories.versions import TimelineRepository, VersionRepository
from draftdesk.services.access import AccessChecker, require_access
from draftdesk.services.events import (
    VersionChanged,
    VersionChangeReason,
    VersionEventBus,
    version_events,
)
from draftdesk.services.locks import KeyedLocks, version_number_locks
from draftdesk.services.timeline import TimelineRecorder

logger = logging.getLogger(__name__)


def restored_title(version_number: int) -> str:
    return f"Restored from v{version_number}"


class VersionStore:
    """
    Create, restore, list and rename versions.

    When an ``access`` checker is given, every write first verifies that
    the actor may work on the project.

    Usage::

        store = VersionStore(session_factory)
        v = await store.create_version(project_id, "text", actor_id, title="Draft")
        restored = await store.restore_version(project_id, v.id, actor_id)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        *,
        access: AccessChecker | None = None,
        events: VersionEventBus | None = None,
        locks: KeyedLocks | None = None,
    ) -> None:
        self._session_factory = session_factory or get_session_factory()
        self._access = access
        self._events = events or version_events
        self._locks = locks or version_number_locks
        self._versions = VersionRepository()
        self._projects = ProjectRepository()
        self._timeline_repo = TimelineRepository()
        self._timeline = TimelineRecorder(self._session_factory)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create_version(
        self,
        project_id: uuid.UUID,
        content: str,
        actor_id: uuid.UUID,
        title: str | None = None,
        description: str | None = None,
    ) -> Version:
        """
        Insert a new version numbered one above the project's current maximum.

        Raises:
            AccessDenied: Actor may not write to the project.
            ProjectNotFound: Unknown project.
            VersionNumberConflict: Allocation raced despite serialization.
        """
        await self._check_access(project_id, actor_id)
        version = await self._insert_next(
            project_id, content, actor_id, title, description
        )

        await self._timeline.record(
            project_id,
            TimelineEventType.VERSION_CREATED,
            {"version": version.version_number, "title": version.title},
            actor_id,
        )
        await self._publish(version, VersionChangeReason.CREATED)
        return version

    async def restore_version(
        self,
        project_id: uuid.UUID,
        version_id: uuid.UUID,
        actor_id: uuid.UUID,
    ) -> Version:
        """
        Re-publish an old version's content as a new, higher-numbered version.

        The restored-from version is only read, never modified.
        """
        await self._check_access(project_id, actor_id)
        source = await self.get_version(version_id)
        if source.project_id != project_id:
            raise VersionNotFound(f"Version {version_id} not found")

        version = await self._insert_next(
            project_id,
            source.content,
            actor_id,
            restored_title(source.version_number),
            f"Restored version {source.version_number}",
        )
        logger.info(
            "Project %s: restored v%d as v%d",
            project_id,
            source.version_number,
            version.version_number,
        )

        await self._timeline.record(
            project_id,
            TimelineEventType.VERSION_RESTORED,
            {
                "version": version.version_number,
                "restored_from": source.version_number,
            },
            actor_id,
        )
        await self._publish(version, VersionChangeReason.RESTORED)
        return version

    async def rename_version(
        self,
        version_id: uuid.UUID,
        title: str,
        actor_id: uuid.UUID,
    ) -> Version:
        """Change a version's title. Content is untouched."""
        async with self._session_factory() as session:
            version = await self._versions.get_by_id(session, version_id)
            if version is None:
                raise VersionNotFound(f"Version {version_id} not found")
            await self._check_access(version.project_id, actor_id)
            version.title = title.strip()
            await session.commit()
            await session.refresh(version)
            return version

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list_versions(self, project_id: uuid.UUID) -> Sequence[Version]:
        """Versions of a project, highest version number first."""
        async with self._session_factory() as session:
            return await self._versions.list_by_project(session, project_id)

    async def get_version(self, version_id: uuid.UUID) -> Version:
        async with self._session_factory() as session:
            version = await self._versions.get_by_id(session, version_id)
        if version is None:
            raise VersionNotFound(f"Version {version_id} not found")
        return version

    async def history(
        self, project_id: uuid.UUID, limit: int = 100
    ) -> Sequence[TimelineEvent]:
        """Timeline entries with actor display names, newest first."""
        async with self._session_factory() as session:
            return await self._timeline_repo.list_by_project(
                session, project_id, limit
            )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _insert_next(
        self,
        project_id: uuid.UUID,
        content: str,
        actor_id: uuid.UUID,
        title: str | None,
        description: str | None,
    ) -> Version:
        async with self._locks.acquire(project_id):
            async with self._session_factory() as session:
                project = await self._projects.lock(session, project_id)
                if project is None:
                    raise ProjectNotFound(f"Project {project_id} not found")

                next_number = await self._versions.max_number(session, project_id) + 1
                try:
                    version = await self._versions.add(
                        session,
                        {
                            "project_id": project_id,
                            "version_number": next_number,
                            "title": title,
                            "description": description,
                            "content": content,
                            "created_by": actor_id,
                        },
                    )
                    await session.commit()
                except IntegrityError as e:
                    await session.rollback()
                    logger.error(
                        "Version number %d already taken in project %s",
                        next_number,
                        project_id,
                    )
                    raise VersionNumberConflict(
                        f"Version number {next_number} already exists"
                    ) from e

                await session.refresh(version)

        logger.info("Project %s: created v%d", project_id, version.version_number)
        return version

    async def _check_access(self, project_id: uuid.UUID, actor_id: uuid.UUID) -> None:
        if self._access is not None:
            await require_access(self._access, project_id, actor_id)

    async def _publish(self, version: Version, reason: VersionChangeReason) -> None:
        await self._events.publish(
            VersionChanged(
                project_id=version.project_id,
                version_id=version.id,
                version_number=version.version_number,
                reason=reason,
            )
        )
