"""
Extraction Job Orchestrator

Owns the extraction job lifecycle::

    queued ──► extracting ──► succeeded | failed
       └───────────────────────┘   (extracting is advisory)

The terminal transition is driven only by the worker callback
(``apply_result``). The callback is delivered at least once, so applying
the same result again must leave the same state: writes are overwrites
keyed by id, the first ``finished_at`` is kept, and augmentation is
guarded by the reference file's ``augmented_version_id`` marker.

Sub-steps commit in separate transactions. A failure while updating the
reference file or augmenting the aggregate is logged and does not undo
the job update that was already committed.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence
from datetime import timedelta
from typing import Any, NamedTuple

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from draftdesk.core.config import settings
from draftdesk.core.database import get_session_factory
from draftdesk.core.errors import (
    ExtractionFailed,
    JobNotFound,
    ProjectNotFound,
    ReferenceFileNotFound,
    ReferenceNotReady,
    WorkerDispatchFailed,
)
from draftdesk.models import (
    JOB_TRANSITIONS,
    ExtractionJob,
    JobStatus,
    Project,
    ReferenceFile,
    ReferenceStatus,
    TimelineEventType,
)
from draftdesk.models.base import utcnow
from draftdesk.repositories.intake import (
    ExtractionJobRepository,
    ReferenceFileRepository,
)
from draftdesk.repositories.projects import ProjectRepository
from draftdesk.services.access import AccessChecker, require_access
from draftdesk.services.augmentation import AugmentationEngine
from draftdesk.services.timeline import TimelineRecorder
from draftdesk.services.worker import (
    DispatchRequest,
    ExtractionWorker,
    HttpExtractionWorker,
)

logger = logging.getLogger(__name__)


class ApplyOutcome(NamedTuple):
    """
    Summary of one callback application.

    ``ignored`` is True when the callback conflicted with an already
    terminal job and nothing was written.
    """

    job_id: uuid.UUID
    job_status: str
    reference_status: str | None
    augmented_version_id: uuid.UUID | None
    ignored: bool = False


def normalize_result_status(status: str) -> JobStatus:
    """Map a worker-reported status onto a terminal job status."""
    if status == JobStatus.SUCCEEDED:
        return JobStatus.SUCCEEDED
    if status != JobStatus.FAILED:
        logger.warning("Unrecognized worker status '%s', treating as failed", status)
    return JobStatus.FAILED


class ExtractionOrchestrator:
    """
    Dispatches jobs, applies worker callbacks and triggers augmentation.

    Failed extractions are never retried automatically; a retry is a new
    job created through ``IntakeRegistrar.retry_extraction``.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        *,
        worker: ExtractionWorker | None = None,
        engine: AugmentationEngine | None = None,
        access: AccessChecker | None = None,
    ) -> None:
        self._session_factory = session_factory or get_session_factory()
        self._worker = worker or HttpExtractionWorker()
        self._engine = engine or AugmentationEngine(self._session_factory)
        self._access = access
        self._jobs = ExtractionJobRepository()
        self._references = ReferenceFileRepository()
        self._projects = ProjectRepository()
        self._timeline = TimelineRecorder(self._session_factory)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def dispatch(self, job: ExtractionJob, source_locator: str) -> bool:
        """
        Hand a job to the worker without waiting for its result.

        A dispatch failure is logged and leaves the job ``queued``; it can
        be retried by re-registering or via ``retry_extraction``.

        Returns:
            True if the worker accepted the job.
        """
        request = DispatchRequest(
            job_id=job.id,
            source_locator=source_locator,
            job_kind=job.job_kind,
        )
        try:
            await self._worker.dispatch(request)
        except WorkerDispatchFailed as e:
            logger.warning("Dispatch of job %s failed: %s", job.id, e.message)
            return False
        return True

    async def mark_extracting(self, job_id: uuid.UUID) -> ExtractionJob:
        """
        Record that the worker picked up a job (advisory).

        Only a ``queued`` job moves; an extracting or terminal job is
        returned unchanged.
        """
        async with self._session_factory() as session:
            job = await self._jobs.get_by_id(session, job_id)
            if job is None:
                raise JobNotFound(f"Job {job_id} not found")

            if JobStatus.EXTRACTING not in JOB_TRANSITIONS[JobStatus(job.status)]:
                logger.debug("Job %s already %s, start ignored", job_id, job.status)
                return job

            job.status = JobStatus.EXTRACTING
            job.started_at = utcnow()

            latest = await self._jobs.latest_for_reference(
                session, job.reference_file_id
            )
            reference = await self._references.get_by_id(
                session, job.reference_file_id
            )
            if (
                reference is not None
                and latest is not None
                and latest.id == job.id
                and reference.status == ReferenceStatus.QUEUED
            ):
                reference.status = ReferenceStatus.EXTRACTING

            await session.commit()
            await session.refresh(job)
            logger.info("Job %s extracting", job_id)
            return job

    # ------------------------------------------------------------------
    # Callback
    # ------------------------------------------------------------------

    async def apply_result(
        self,
        job_id: uuid.UUID,
        status: str,
        extracted_text: str | None = None,
        extracted_chunks: list[Any] | None = None,
        error_message: str | None = None,
        worker_response: dict[str, Any] | None = None,
    ) -> ApplyOutcome:
        """
        Apply a worker callback. Safe to receive more than once.

        Steps:
            (a) overwrite the job's terminal fields;
            (b) resolve its reference file and whether this job is the
                file's latest attempt;
            (c) mirror the outcome onto the reference file;
            (d) append the text to the aggregate if intake is completed.

        Raises:
            JobNotFound: Unknown job id; nothing is written.
        """
        new_status = normalize_result_status(status)

        # (a) + (b)
        async with self._session_factory() as session:
            job = await self._jobs.get_by_id(session, job_id)
            if job is None:
                raise JobNotFound(f"Job {job_id} not found")

            current = JobStatus(job.status)
            if current.is_terminal and current != new_status:
                logger.warning(
                    "Job %s is already %s, ignoring %s callback",
                    job_id,
                    current,
                    new_status,
                )
                return ApplyOutcome(job_id, current, None, None, ignored=True)

            await self._jobs.update_fields(
                session,
                job_id,
                {
                    "status": new_status,
                    "finished_at": job.finished_at or utcnow(),
                    "error_message": error_message,
                    "worker_response": worker_response,
                },
            )
            await session.commit()

            reference_file_id = job.reference_file_id
            project_id = job.project_id
            first_delivery = not current.is_terminal
            latest = await self._jobs.latest_for_reference(session, reference_file_id)
            is_latest = latest is None or latest.id == job_id

        logger.info("Job %s %s", job_id, new_status)

        if not is_latest:
            logger.info(
                "Job %s superseded by %s, reference %s left unchanged",
                job_id,
                latest.id if latest else None,
                reference_file_id,
            )
            return ApplyOutcome(job_id, new_status, None, None)

        succeeded = new_status == JobStatus.SUCCEEDED

        # (c)
        reference_status: str | None = None
        try:
            reference_status = await self._update_reference(
                reference_file_id,
                succeeded,
                extracted_text,
                extracted_chunks,
                error_message,
            )
        except Exception:
            logger.exception(
                "Failed to update reference %s for job %s", reference_file_id, job_id
            )

        if not succeeded:
            if first_delivery:
                await self._timeline.record(
                    project_id,
                    TimelineEventType.EXTRACTION_FAILED,
                    {
                        "reference_file_id": str(reference_file_id),
                        "error": error_message,
                    },
                )
            return ApplyOutcome(job_id, new_status, reference_status, None)

        # (d)
        augmented_version_id: uuid.UUID | None = None
        if extracted_text:
            try:
                augmented_version_id = await self._augment_if_intake_completed(
                    project_id, reference_file_id, extracted_text
                )
            except Exception:
                logger.exception(
                    "Augmentation failed for reference %s (job %s)",
                    reference_file_id,
                    job_id,
                )

        return ApplyOutcome(
            job_id, new_status, reference_status, augmented_version_id
        )

    # ------------------------------------------------------------------
    # Manual augmentation and intake state
    # ------------------------------------------------------------------

    async def augment_reference(
        self,
        project_id: uuid.UUID,
        reference_file_id: uuid.UUID,
        actor_id: uuid.UUID,
    ) -> uuid.UUID:
        """
        Fold a finished reference file into the aggregate on request.

        Repeated calls for the same file append nothing new.

        Raises:
            AccessDenied, ReferenceFileNotFound, ExtractionFailed,
            ReferenceNotReady, AggregateNotFound.
        """
        await self._check_access(project_id, actor_id)
        reference = await self._get_reference(reference_file_id)
        if reference.project_id != project_id:
            raise ReferenceFileNotFound(f"Reference file {reference_file_id} not found")
        if reference.status == ReferenceStatus.FAILED:
            raise ExtractionFailed(reference.error_text or "Extraction failed")
        if reference.status != ReferenceStatus.DONE or reference.extracted_text is None:
            raise ReferenceNotReady("Reference file not ready")

        version_id = await self._engine.append_to_aggregate(
            project_id,
            reference.extracted_text,
            reference.display_name,
            reference_file_id=reference.id,
        )
        await self._timeline.record(
            project_id,
            TimelineEventType.REFERENCE_AUGMENTED,
            {"file_name": reference.display_name, "augmented_v1": True},
            actor_id,
        )
        return version_id

    async def set_intake_completed(
        self,
        project_id: uuid.UUID,
        actor_id: uuid.UUID,
        completed: bool = True,
    ) -> Project:
        await self._check_access(project_id, actor_id)
        async with self._session_factory() as session:
            project = await self._projects.get_by_id(session, project_id)
            if project is None:
                raise ProjectNotFound(f"Project {project_id} not found")
            project = await self._projects.set_intake_completed(
                session, project, completed
            )
        logger.info("Project %s intake_completed=%s", project_id, completed)
        return project

    # ------------------------------------------------------------------
    # Status queries
    # ------------------------------------------------------------------

    async def list_references(self, project_id: uuid.UUID) -> Sequence[ReferenceFile]:
        async with self._session_factory() as session:
            return await self._references.list_by_project(session, project_id)

    async def list_jobs(self, project_id: uuid.UUID) -> Sequence[ExtractionJob]:
        async with self._session_factory() as session:
            return await self._jobs.list_by_project(session, project_id)

    async def get_job(self, job_id: uuid.UUID) -> ExtractionJob:
        async with self._session_factory() as session:
            job = await self._jobs.get_by_id(session, job_id)
        if job is None:
            raise JobNotFound(f"Job {job_id} not found")
        return job

    async def find_stuck_jobs(
        self,
        older_than: timedelta | None = None,
        project_id: uuid.UUID | None = None,
    ) -> Sequence[ExtractionJob]:
        """Queued or extracting jobs created more than ``older_than`` ago."""
        if older_than is None:
            older_than = timedelta(seconds=settings.STUCK_JOB_AFTER_SECONDS)
        cutoff = utcnow() - older_than
        async with self._session_factory() as session:
            return await self._jobs.find_stuck(session, cutoff, project_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _update_reference(
        self,
        reference_file_id: uuid.UUID,
        succeeded: bool,
        extracted_text: str | None,
        extracted_chunks: list[Any] | None,
        error_message: str | None,
    ) -> str:
        status = ReferenceStatus.DONE if succeeded else ReferenceStatus.FAILED
        async with self._session_factory() as session:
            await self._references.update_fields(
                session,
                reference_file_id,
                {
                    "status": status,
                    # extracted_text is non-null exactly when the file is done
                    "extracted_text": (extracted_text or "") if succeeded else None,
                    "extracted_chunks": extracted_chunks if succeeded else None,
                    "error_text": error_message,
                },
            )
            await session.commit()
        return status

    async def _augment_if_intake_completed(
        self,
        project_id: uuid.UUID,
        reference_file_id: uuid.UUID,
        extracted_text: str,
    ) -> uuid.UUID | None:
        async with self._session_factory() as session:
            project = await self._projects.get_by_id(session, project_id)
            reference = await self._references.get_by_id(session, reference_file_id)

        if project is None or not project.intake_completed:
            logger.info(
                "Project %s intake not completed, reference %s held for review",
                project_id,
                reference_file_id,
            )
            return None

        source_name = reference.display_name if reference else ""
        return await self._engine.append_to_aggregate(
            project_id,
            extracted_text,
            source_name,
            reference_file_id=reference_file_id,
        )

    async def _get_reference(self, reference_file_id: uuid.UUID) -> ReferenceFile:
        async with self._session_factory() as session:
            reference = await self._references.get_by_id(session, reference_file_id)
        if reference is None:
            raise ReferenceFileNotFound(f"Reference file {reference_file_id} not found")
        return reference

    async def _check_access(self, project_id: uuid.UUID, actor_id: uuid.UUID) -> None:
        if self._access is not None:
            await require_access(self._access, project_id, actor_id)
