"""
Intake API Router

HTTP endpoints for reference registration and the extraction worker.

Endpoints:
    POST /projects/{id}/references            — Register a file or URL (201).
    POST /references/{id}/retry               — Queue a new extraction job (201).
    GET  /projects/{id}/references            — Reference files, newest first.
    GET  /projects/{id}/jobs                  — Extraction jobs, newest first.
    GET  /projects/{id}/intake/status         — Poll snapshot with counters.
    PUT  /projects/{id}/intake                — Set intake_completed.
    POST /projects/{id}/references/{rid}/augment — Fold a file into v1.
    POST /jobs/{job_id}/started               — Worker picked the job up.
    POST /jobs/callback                       — Worker result (at least once).
    GET  /jobs/stuck                          — Jobs without a result for too long.
"""

from __future__ import annotations

import logging
import secrets
import uuid
from datetime import timedelta

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status

from draftdesk.api.deps import (
    SessionFactory,
    get_actor_id,
    get_orchestrator,
    get_readable_project,
    get_registrar,
)
from draftdesk.core.config import settings
from draftdesk.core.database import get_session_factory
from draftdesk.schemas.intake import (
    AugmentResponse,
    CallbackResponse,
    ExtractionJobRead,
    IntakeStateResponse,
    IntakeStatusResponse,
    IntakeUpdate,
    JobCallback,
    ReferenceFileRead,
    RegistrationResponse,
    SourceSpec,
)
from draftdesk.services.orchestrator import ExtractionOrchestrator
from draftdesk.services.poller import fetch_intake_snapshot
from draftdesk.services.registrar import IntakeRegistrar

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


def _verify_worker(x_worker_secret: str | None = Header(default=None)) -> None:
    """Check the shared secret when one is configured."""
    expected = settings.WORKER_CALLBACK_SECRET
    if not expected:
        return
    if x_worker_secret is None or not secrets.compare_digest(x_worker_secret, expected):
        logger.warning("Rejected worker request with missing or bad secret")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid worker secret",
        )


# ---------------------------------------------------------------------------
# Reference registration
# ---------------------------------------------------------------------------


@router.post(
    "/projects/{project_id}/references",
    response_model=RegistrationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a reference file or URL",
)
async def register_reference(
    project_id: uuid.UUID,
    source: SourceSpec,
    actor_id: uuid.UUID = Depends(get_actor_id),
    registrar: IntakeRegistrar = Depends(get_registrar),
) -> RegistrationResponse:
    """
    Record the source and queue its extraction.

    The job is dispatched before the response is sent, but the response
    does not wait for the extraction; poll the intake status instead.
    """
    result = await registrar.register_source(project_id, actor_id, source)
    return RegistrationResponse(**result._asdict())


@router.post(
    "/references/{reference_file_id}/retry",
    response_model=RegistrationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Retry extraction for a reference file",
)
async def retry_reference(
    reference_file_id: uuid.UUID,
    actor_id: uuid.UUID = Depends(get_actor_id),
    registrar: IntakeRegistrar = Depends(get_registrar),
) -> RegistrationResponse:
    result = await registrar.retry_extraction(reference_file_id, actor_id)
    return RegistrationResponse(**result._asdict())


@router.get(
    "/projects/{project_id}/references",
    response_model=list[ReferenceFileRead],
)
async def list_references(
    project_id: uuid.UUID = Depends(get_readable_project),
    orchestrator: ExtractionOrchestrator = Depends(get_orchestrator),
) -> list[ReferenceFileRead]:
    files = await orchestrator.list_references(project_id)
    return [ReferenceFileRead.model_validate(f) for f in files]


@router.get(
    "/projects/{project_id}/jobs",
    response_model=list[ExtractionJobRead],
)
async def list_jobs(
    project_id: uuid.UUID = Depends(get_readable_project),
    orchestrator: ExtractionOrchestrator = Depends(get_orchestrator),
) -> list[ExtractionJobRead]:
    jobs = await orchestrator.list_jobs(project_id)
    return [ExtractionJobRead.model_validate(j) for j in jobs]


@router.get(
    "/projects/{project_id}/intake/status",
    response_model=IntakeStatusResponse,
    summary="Intake progress snapshot for pollers",
)
async def intake_status(
    project_id: uuid.UUID = Depends(get_readable_project),
    factory: SessionFactory = Depends(get_session_factory),
) -> IntakeStatusResponse:
    snapshot = await fetch_intake_snapshot(factory, project_id)
    return IntakeStatusResponse(
        files=[ReferenceFileRead.model_validate(f) for f in snapshot.files],
        jobs=[ExtractionJobRead.model_validate(j) for j in snapshot.jobs],
        total=snapshot.total,
        completed=snapshot.completed,
        failed=snapshot.failed,
        active=snapshot.active,
        all_complete=snapshot.all_complete,
        has_failures=snapshot.has_failures,
    )


@router.put(
    "/projects/{project_id}/intake",
    response_model=IntakeStateResponse,
)
async def update_intake(
    project_id: uuid.UUID,
    body: IntakeUpdate,
    actor_id: uuid.UUID = Depends(get_actor_id),
    orchestrator: ExtractionOrchestrator = Depends(get_orchestrator),
) -> IntakeStateResponse:
    project = await orchestrator.set_intake_completed(
        project_id, actor_id, body.intake_completed
    )
    return IntakeStateResponse(
        project_id=project.id, intake_completed=project.intake_completed
    )


@router.post(
    "/projects/{project_id}/references/{reference_file_id}/augment",
    response_model=AugmentResponse,
    summary="Append a reference file's text to the aggregate version",
)
async def augment_reference(
    project_id: uuid.UUID,
    reference_file_id: uuid.UUID,
    actor_id: uuid.UUID = Depends(get_actor_id),
    orchestrator: ExtractionOrchestrator = Depends(get_orchestrator),
) -> AugmentResponse:
    version_id = await orchestrator.augment_reference(
        project_id, reference_file_id, actor_id
    )
    return AugmentResponse(version_id=version_id)


# ---------------------------------------------------------------------------
# Worker endpoints
# ---------------------------------------------------------------------------


@router.post(
    "/jobs/{job_id}/started",
    response_model=ExtractionJobRead,
    dependencies=[Depends(_verify_worker)],
)
async def job_started(
    job_id: uuid.UUID,
    orchestrator: ExtractionOrchestrator = Depends(get_orchestrator),
) -> ExtractionJobRead:
    job = await orchestrator.mark_extracting(job_id)
    return ExtractionJobRead.model_validate(job)


@router.post(
    "/jobs/callback",
    response_model=CallbackResponse,
    dependencies=[Depends(_verify_worker)],
    summary="Extraction result from the worker",
)
async def job_callback(
    payload: JobCallback,
    orchestrator: ExtractionOrchestrator = Depends(get_orchestrator),
) -> CallbackResponse:
    """
    Apply a worker result.

    Delivery is at least once: repeating a callback returns the same
    outcome and does not append the text to the aggregate twice.
    """
    outcome = await orchestrator.apply_result(
        payload.job_id,
        payload.status,
        extracted_text=payload.extracted_text,
        extracted_chunks=payload.extracted_chunks,
        error_message=payload.error_message,
        worker_response=payload.worker_response,
    )
    return CallbackResponse(**outcome._asdict())


@router.get(
    "/jobs/stuck",
    response_model=list[ExtractionJobRead],
    dependencies=[Depends(_verify_worker)],
)
async def stuck_jobs(
    older_than_seconds: int | None = Query(default=None, ge=0),
    project_id: uuid.UUID | None = Query(default=None),
    orchestrator: ExtractionOrchestrator = Depends(get_orchestrator),
) -> list[ExtractionJobRead]:
    older_than = (
        timedelta(seconds=older_than_seconds)
        if older_than_seconds is not None
        else None
    )
    jobs = await orchestrator.find_stuck_jobs(older_than, project_id)
    return [ExtractionJobRead.model_validate(j) for j in jobs]
