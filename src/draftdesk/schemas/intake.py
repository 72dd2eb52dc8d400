"""
Intake Schemas

Pydantic models for reference registration, worker callbacks and the
intake status snapshot.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from draftdesk.models import JobKind, JobStatus, ReferenceStatus, SourceKind


class SourceSpec(BaseModel):
    """Request body for POST /projects/{id}/references."""

    locator: str = Field(
        ...,
        min_length=1,
        max_length=4000,
        description="Storage path of an uploaded file, or an http(s) URL",
    )
    kind: SourceKind | None = Field(
        default=None,
        description="'file' or 'url'; inferred from the locator when omitted",
    )
    display_name: str | None = Field(default=None, max_length=500)
    size_bytes: int | None = Field(default=None, ge=0)


class RegistrationResponse(BaseModel):
    reference_file_id: UUID
    job_id: UUID
    dispatched: bool = Field(description="False if the worker did not accept the job")


class ReferenceFileRead(BaseModel):
    id: UUID
    project_id: UUID
    display_name: str
    source_locator: str
    source_kind: SourceKind
    size_bytes: int | None = None
    status: ReferenceStatus
    error_text: str | None = None
    augmented_version_id: UUID | None = None
    created_at: datetime
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class ExtractionJobRead(BaseModel):
    id: UUID
    reference_file_id: UUID
    project_id: UUID
    job_kind: JobKind
    status: JobStatus
    error_message: str | None = None
    created_at: datetime
    started_at: datetime | None = None
    finished_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class JobCallback(BaseModel):
    """
    Worker result payload for POST /jobs/callback.

    ``status`` is kept as a plain string: anything other than
    ``succeeded`` is recorded as a failure rather than rejected.
    """

    job_id: UUID
    status: str = Field(..., min_length=1, max_length=40)
    extracted_text: str | None = None
    extracted_chunks: list[Any] | None = None
    error_message: str | None = None
    worker_response: dict[str, Any] | None = Field(
        default=None, description="Raw worker output, stored on the job as is"
    )


class CallbackResponse(BaseModel):
    job_id: UUID
    job_status: JobStatus
    reference_status: ReferenceStatus | None = None
    augmented_version_id: UUID | None = None
    ignored: bool = False


class IntakeUpdate(BaseModel):
    """Request body for PUT /projects/{id}/intake."""

    intake_completed: bool


class IntakeStateResponse(BaseModel):
    project_id: UUID
    intake_completed: bool


class AugmentResponse(BaseModel):
    version_id: UUID


class IntakeStatusResponse(BaseModel):
    """Poll snapshot for GET /projects/{id}/intake/status."""

    files: list[ReferenceFileRead]
    jobs: list[ExtractionJobRead]
    total: int
    completed: int
    failed: int
    active: int
    all_complete: bool
    has_failures: bool
