"""
Client Sync Poller

Keeps a read-only view of a project's intake progress fresh by
re-fetching it on a fixed interval. Job completion is observed by
polling; nothing is pushed.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from draftdesk.core.config import settings
from draftdesk.models import ExtractionJob, JobStatus, ReferenceFile, ReferenceStatus
from draftdesk.repositories.intake import (
    ExtractionJobRepository,
    ReferenceFileRepository,
)

logger = logging.getLogger(__name__)

_ACTIVE_FILE_STATUSES = {ReferenceStatus.QUEUED, ReferenceStatus.EXTRACTING}


@dataclass(frozen=True)
class IntakeSnapshot:
    """
    One observation of a project's reference files and jobs.

    Counters are over reference files; ``jobs`` is informational.
    """

    files: Sequence[ReferenceFile]
    jobs: Sequence[ExtractionJob]

    @property
    def total(self) -> int:
        return len(self.files)

    @property
    def completed(self) -> int:
        return sum(1 for f in self.files if f.status == ReferenceStatus.DONE)

    @property
    def failed(self) -> int:
        return sum(1 for f in self.files if f.status == ReferenceStatus.FAILED)

    @property
    def active(self) -> int:
        return sum(1 for f in self.files if f.status in _ACTIVE_FILE_STATUSES)

    @property
    def active_jobs(self) -> int:
        return sum(
            1
            for j in self.jobs
            if j.status in (JobStatus.QUEUED, JobStatus.EXTRACTING)
        )

    @property
    def all_complete(self) -> bool:
        return self.total > 0 and self.active == 0

    @property
    def has_failures(self) -> bool:
        return self.failed > 0


SnapshotFetch = Callable[[], Awaitable[IntakeSnapshot]]
SnapshotCallback = Callable[[IntakeSnapshot], Awaitable[None]]


async def fetch_intake_snapshot(
    session_factory: async_sessionmaker[AsyncSession],
    project_id: uuid.UUID,
) -> IntakeSnapshot:
    """Read the current reference files and jobs of ``project_id``."""
    async with session_factory() as session:
        files = await ReferenceFileRepository().list_by_project(session, project_id)
        jobs = await ExtractionJobRepository().list_by_project(session, project_id)
    return IntakeSnapshot(files=files, jobs=jobs)


class IntakeStatusPoller:
    """
    Fixed-interval re-fetch loop.

    Usage::

        poller = IntakeStatusPoller(
            lambda: fetch_intake_snapshot(factory, project_id),
            on_update=render,
        )
        poller.start()
        ...
        await poller.refresh()   # after the user adds a file
        await poller.stop()

    A failing fetch is logged and the previous snapshot is kept.
    """

    def __init__(
        self,
        fetch: SnapshotFetch,
        interval: float | None = None,
        on_update: SnapshotCallback | None = None,
    ) -> None:
        self._fetch = fetch
        self._interval = (
            interval if interval is not None else settings.POLL_INTERVAL_SECONDS
        )
        self._on_update = on_update
        self._task: asyncio.Task[None] | None = None
        self._latest: IntakeSnapshot | None = None

    @property
    def latest(self) -> IntakeSnapshot | None:
        return self._latest

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def refresh(self) -> IntakeSnapshot | None:
        """Fetch immediately, outside the regular schedule."""
        try:
            snapshot = await self._fetch()
        except Exception:
            logger.exception("Intake status fetch failed")
            return self._latest

        self._latest = snapshot
        if self._on_update is not None:
            try:
                await self._on_update(snapshot)
            except Exception:
                logger.exception("Intake status subscriber failed")
        return snapshot

    async def _run(self) -> None:
        while True:
            await self.refresh()
            await asyncio.sleep(self._interval)
