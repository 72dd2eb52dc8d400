"""
Version Augmentation Engine

Appends extracted reference text to the project's aggregate ("v1")
version in place. This is the only code path allowed to change the
content of a stored version.

Concurrency:
    Several extraction callbacks may finish at once. Each append is a
    single read-modify-write transaction serialized twice over: an
    asyncio lock keyed by project (a project has one aggregate) and a
    ``SELECT ... FOR UPDATE`` on the aggregate row. Without both, two
    callers reading the same content would each write back their own
    append and one of them would be lost.
"""

from __future__ import annotations

import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from draftdesk.core.database import get_session_factory
from draftdesk.core.errors import AggregateNotFound
from draftdesk.repositories.intake import ReferenceFileRepository
from draftdesk.repositories.versions import VersionRepository
from draftdesk.services.events import (
    VersionChanged,
    VersionChangeReason,
    VersionEventBus,
    version_events,
)
from draftdesk.services.locks import KeyedLocks, aggregate_locks

logger = logging.getLogger(__name__)

UNKNOWN_SOURCE_NAME = "Unknown Source"


def attribution_block(source_name: str, content: str) -> str:
    """Wrap ``content`` in BEGIN/END markers naming its source."""
    name = source_name or UNKNOWN_SOURCE_NAME
    return (
        f"\n\n=== BEGIN SOURCE: {name} ===\n"
        f"{content}\n"
        f"=== END SOURCE: {name} ==="
    )


class AugmentationEngine:
    """
    Folds extracted text into the aggregate version.

    Usage::

        engine = AugmentationEngine(session_factory)
        version_id = await engine.append_to_aggregate(
            project_id, "extracted text", "report.pdf"
        )
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        *,
        events: VersionEventBus | None = None,
        locks: KeyedLocks | None = None,
    ) -> None:
        self._session_factory = session_factory or get_session_factory()
        self._events = events or version_events
        self._locks = locks or aggregate_locks
        self._versions = VersionRepository()
        self._references = ReferenceFileRepository()

    async def append_to_aggregate(
        self,
        project_id: uuid.UUID,
        new_content: str,
        source_name: str,
        *,
        reference_file_id: uuid.UUID | None = None,
    ) -> uuid.UUID:
        """
        Append ``new_content`` with a source marker to the aggregate version.

        Args:
            project_id: Project whose aggregate receives the text.
            new_content: Extracted text to append.
            source_name: Label written into the BEGIN/END markers.
            reference_file_id: When given, the file is marked as folded in
                and a repeated call for the same file appends nothing.

        Returns:
            ID of the aggregate version (unchanged identity).

        Raises:
            AggregateNotFound: The project has no version yet.
        """
        async with self._locks.acquire(project_id):
            async with self._session_factory() as session:
                aggregate = await self._versions.find_aggregate(
                    session, project_id, for_update=True
                )
                if aggregate is None:
                    raise AggregateNotFound(
                        f"Project {project_id} has no aggregate version"
                    )

                reference = None
                if reference_file_id is not None:
                    reference = await self._references.lock(session, reference_file_id)
                    if reference is not None and reference.augmented_version_id:
                        logger.info(
                            "Reference %s already folded into version %s, skipping",
                            reference_file_id,
                            reference.augmented_version_id,
                        )
                        return reference.augmented_version_id

                aggregate.content = (aggregate.content or "") + attribution_block(
                    source_name, new_content
                )
                if reference is not None:
                    reference.augmented_version_id = aggregate.id
                await session.commit()

                aggregate_id = aggregate.id
                version_number = aggregate.version_number

        logger.info(
            "Appended %d chars from '%s' to aggregate v%d of project %s",
            len(new_content),
            source_name,
            version_number,
            project_id,
        )
        await self._events.publish(
            VersionChanged(
                project_id=project_id,
                version_id=aggregate_id,
                version_number=version_number,
                reason=VersionChangeReason.AUGMENTED,
            )
        )
        return aggregate_id
