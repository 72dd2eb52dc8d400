"""
Reference Intake Registrar

Records a new ingestion source (uploaded file or URL) together with its
first extraction job, then hands the job to the worker. Dispatch is
fire-and-forget: if the worker cannot be reached the records stay
``queued`` and remain visible to pollers.
"""

from __future__ import annotations

import logging
import uuid
from datetime import timedelta
from pathlib import PurePosixPath
from typing import NamedTuple
from urllib.parse import urlsplit

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from draftdesk.core.config import settings
from draftdesk.core.database import get_session_factory
from draftdesk.core.errors import (
    InvalidSource,
    JobAlreadyActive,
    ReferenceFileNotFound,
)
from draftdesk.models import (
    ExtractionJob,
    JobKind,
    JobStatus,
    ReferenceStatus,
    SourceKind,
    TimelineEventType,
)
from draftdesk.models.base import ensure_utc, utcnow
from draftdesk.repositories.intake import (
    ExtractionJobRepository,
    ReferenceFileRepository,
)
from draftdesk.schemas.intake import SourceSpec
from draftdesk.services.access import AccessChecker, require_access
from draftdesk.services.orchestrator import ExtractionOrchestrator
from draftdesk.services.timeline import TimelineRecorder

logger = logging.getLogger(__name__)

ABANDONED_ERROR = "Abandoned: no worker callback received, superseded by retry"


class RegistrationResult(NamedTuple):
    """Identifiers of the created records and whether the worker took the job."""

    reference_file_id: uuid.UUID
    job_id: uuid.UUID
    dispatched: bool


class ParsedSource(NamedTuple):
    kind: SourceKind
    locator: str
    display_name: str


def parse_source(source: SourceSpec) -> ParsedSource:
    """
    Validate a source locator and derive its display name.

    URLs need an http(s) scheme and a host; the host becomes the display
    name. File sources need a non-empty path; the last path component
    becomes the display name unless one is supplied.

    Raises:
        InvalidSource: Locator cannot be parsed.
    """
    locator = source.locator.strip()
    if not locator or "\x00" in locator:
        raise InvalidSource("Source locator is empty or malformed")

    kind = source.kind
    if kind is None:
        kind = SourceKind.URL if "://" in locator else SourceKind.FILE

    if kind == SourceKind.URL:
        try:
            parts = urlsplit(locator)
            host = parts.hostname
        except ValueError as e:
            raise InvalidSource(f"Invalid URL: {locator}") from e
        if parts.scheme not in ("http", "https") or not host:
            raise InvalidSource(f"Invalid URL: {locator}")
        return ParsedSource(kind, locator, source.display_name or host)

    name = source.display_name
    if not name and not locator.endswith("/"):
        name = PurePosixPath(locator).name
    if not name:
        raise InvalidSource(f"Invalid file path: {locator}")
    return ParsedSource(kind, locator, name)


def job_kind_for(kind: SourceKind) -> JobKind:
    return JobKind.URL_PARSE if kind == SourceKind.URL else JobKind.FILE_PARSE


class IntakeRegistrar:
    """
    Creates reference files and extraction jobs.

    Usage::

        registrar = IntakeRegistrar(session_factory, access=checker, orchestrator=orch)
        result = await registrar.register_source(
            project_id, actor_id, SourceSpec(locator="https://example.com/post")
        )
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        *,
        access: AccessChecker,
        orchestrator: ExtractionOrchestrator | None = None,
        stuck_after: timedelta | None = None,
    ) -> None:
        self._session_factory = session_factory or get_session_factory()
        self._access = access
        self._orchestrator = orchestrator or ExtractionOrchestrator(
            self._session_factory, access=access
        )
        self._stuck_after = stuck_after or timedelta(
            seconds=settings.STUCK_JOB_AFTER_SECONDS
        )
        self._references = ReferenceFileRepository()
        self._jobs = ExtractionJobRepository()
        self._timeline = TimelineRecorder(self._session_factory)

    async def register_source(
        self,
        project_id: uuid.UUID,
        actor_id: uuid.UUID,
        source: SourceSpec,
    ) -> RegistrationResult:
        """
        Record a source, create its queued job and dispatch it.

        Raises:
            AccessDenied: Actor has no access to the project.
            InvalidSource: Locator cannot be parsed.
        """
        await require_access(self._access, project_id, actor_id)
        parsed = parse_source(source)

        metadata: dict[str, str] = {}
        if parsed.kind == SourceKind.URL:
            metadata["url"] = parsed.locator

        # Reference file and job in one transaction
        async with self._session_factory() as session:
            reference = await self._references.add(
                session,
                {
                    "project_id": project_id,
                    "uploaded_by": actor_id,
                    "source_locator": parsed.locator,
                    "display_name": parsed.display_name,
                    "source_kind": parsed.kind,
                    "size_bytes": source.size_bytes,
                    "status": ReferenceStatus.QUEUED,
                    "file_metadata": metadata,
                },
            )
            job = await self._jobs.add(
                session,
                {
                    "reference_file_id": reference.id,
                    "project_id": project_id,
                    "requested_by": actor_id,
                    "job_kind": job_kind_for(parsed.kind),
                    "status": JobStatus.QUEUED,
                },
            )
            await session.commit()

        logger.info(
            "Registered %s source '%s' for project %s (job %s)",
            parsed.kind,
            parsed.display_name,
            project_id,
            job.id,
        )
        await self._timeline.record(
            project_id,
            TimelineEventType.REFERENCE_ADDED,
            {"file_name": parsed.display_name, "source_kind": str(parsed.kind)},
            actor_id,
        )

        dispatched = await self._orchestrator.dispatch(job, parsed.locator)
        return RegistrationResult(reference.id, job.id, dispatched)

    async def retry_extraction(
        self,
        reference_file_id: uuid.UUID,
        actor_id: uuid.UUID,
    ) -> RegistrationResult:
        """
        Queue a brand-new job for an existing reference file.

        An active job younger than the stuck threshold blocks the retry;
        an older one is closed as failed first so that at most one job
        per file is ever active.

        Raises:
            ReferenceFileNotFound, AccessDenied, JobAlreadyActive.
        """
        async with self._session_factory() as session:
            reference = await self._references.get_by_id(session, reference_file_id)
        if reference is None:
            raise ReferenceFileNotFound(f"Reference file {reference_file_id} not found")
        await require_access(self._access, reference.project_id, actor_id)

        async with self._session_factory() as session:
            reference = await self._references.lock(session, reference_file_id)
            if reference is None:
                raise ReferenceFileNotFound(
                    f"Reference file {reference_file_id} not found"
                )

            now = utcnow()
            for active in await self._jobs.active_for_reference(session, reference.id):
                if ensure_utc(active.created_at) > now - self._stuck_after:
                    raise JobAlreadyActive(
                        f"Job {active.id} is still {active.status}"
                    )
                logger.warning("Abandoning stuck job %s (%s)", active.id, active.status)
                active.status = JobStatus.FAILED
                active.finished_at = now
                active.error_message = ABANDONED_ERROR

            reference.status = ReferenceStatus.QUEUED
            reference.extracted_text = None
            reference.extracted_chunks = None
            reference.error_text = None
            reference.augmented_version_id = None

            job: ExtractionJob = await self._jobs.add(
                session,
                {
                    "reference_file_id": reference.id,
                    "project_id": reference.project_id,
                    "requested_by": actor_id,
                    "job_kind": job_kind_for(SourceKind(reference.source_kind)),
                    "status": JobStatus.QUEUED,
                },
            )
            await session.commit()
            locator = reference.source_locator

        logger.info("Re-queued reference %s as job %s", reference_file_id, job.id)
        dispatched = await self._orchestrator.dispatch(job, locator)
        return RegistrationResult(reference_file_id, job.id, dispatched)
