"""
Timeline Service

Best-effort history entries. Recording is never allowed to fail the
operation being recorded: errors are logged and swallowed here.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from draftdesk.models import TimelineEventType
from draftdesk.repositories.projects import ProjectRepository
from draftdesk.repositories.versions import TimelineRepository

logger = logging.getLogger(__name__)


class TimelineRecorder:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        projects: ProjectRepository | None = None,
        timeline: TimelineRepository | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._projects = projects or ProjectRepository()
        self._timeline = timeline or TimelineRepository()

    async def record(
        self,
        project_id: uuid.UUID,
        event_type: TimelineEventType,
        details: dict[str, Any],
        user_id: uuid.UUID | None = None,
    ) -> None:
        try:
            async with self._session_factory() as session:
                user_name = await self._projects.get_user_name(session, user_id)
                await self._timeline.create(
                    session,
                    {
                        "project_id": project_id,
                        "event_type": event_type,
                        "event_details": details,
                        "user_id": user_id,
                        "user_name": user_name,
                    },
                )
        except Exception:
            logger.exception(
                "Failed to record %s timeline event for project %s",
                event_type,
                project_id,
            )
