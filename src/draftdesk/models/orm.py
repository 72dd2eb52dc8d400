"""
DraftDesk Database Models

SQLAlchemy 2.0 ORM models for reference intake and document versions.

Tables:
    projects               — Project shell; ``metadata.intake_completed`` lives here.
    project_collaborators  — Membership backing the default access check.
    users                  — Display names for history entries.
    reference_files        — One ingestion source (uploaded file or URL).
    extraction_jobs        — One dispatched extraction attempt.
    versions               — Numbered document snapshots.
    timeline               — Project history entries.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import StrEnum
from typing import Any

from sqlalchemy import (
    BigInteger,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from draftdesk.models.base import Base, JSONType, TimestampMixin, utcnow


class SourceKind(StrEnum):
    FILE = "file"
    URL = "url"


class ReferenceStatus(StrEnum):
    QUEUED = "queued"
    EXTRACTING = "extracting"
    DONE = "done"
    FAILED = "failed"


class JobKind(StrEnum):
    FILE_PARSE = "file_parse"
    URL_PARSE = "url_parse"


class JobStatus(StrEnum):
    QUEUED = "queued"
    EXTRACTING = "extracting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_JOB_STATUSES


TERMINAL_JOB_STATUSES: frozenset[JobStatus] = frozenset(
    {JobStatus.SUCCEEDED, JobStatus.FAILED}
)

# Entering EXTRACTING is advisory, so a terminal callback may arrive
# while the job is still QUEUED. Terminal states have no exits.
JOB_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.QUEUED: frozenset(
        {JobStatus.EXTRACTING, JobStatus.SUCCEEDED, JobStatus.FAILED}
    ),
    JobStatus.EXTRACTING: frozenset({JobStatus.SUCCEEDED, JobStatus.FAILED}),
    JobStatus.SUCCEEDED: frozenset(),
    JobStatus.FAILED: frozenset(),
}


class AccessLevel(StrEnum):
    VIEWER = "viewer"
    EDITOR = "editor"
    OWNER = "owner"


class TimelineEventType(StrEnum):
    VERSION_CREATED = "version_created"
    VERSION_RESTORED = "version_restored"
    REFERENCE_ADDED = "reference_added"
    REFERENCE_AUGMENTED = "reference_augmented"
    EXTRACTION_FAILED = "extraction_failed"


class Project(Base, TimestampMixin):
    """
    Project shell owned by an external collaborator.

    Only ``project_metadata["intake_completed"]`` is interpreted here.
    """

    __tablename__ = "projects"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(300), nullable=False)
    owner_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    project_metadata: Mapped[dict[str, Any]] = mapped_column(
        "metadata",
        JSONType,
        nullable=False,
        default=dict,
    )

    @property
    def intake_completed(self) -> bool:
        return (self.project_metadata or {}).get("intake_completed") is True

    def __repr__(self) -> str:
        return f"<Project(id={self.id!s:.8}, name='{self.name}')>"


class ProjectCollaborator(Base):
    __tablename__ = "project_collaborators"
    __table_args__ = (
        UniqueConstraint("project_id", "user_id", name="uq_collaborator_project_user"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    access_level: Mapped[str] = mapped_column(
        String(20), nullable=False, default=AccessLevel.VIEWER
    )


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(200), nullable=False)


class ReferenceFile(Base, TimestampMixin):
    """
    A user-supplied ingestion source queued for text extraction.

    Created by the registrar and afterwards mutated only by the
    orchestrator. ``extracted_text`` is non-null iff ``status == done``.

    Attributes:
        source_locator: Storage path or URL handed to the worker.
        display_name: Human label (file name or URL host).
        augmented_version_id: Aggregate version this file's text was
            folded into, or None. Guards against double augmentation.
    """

    __tablename__ = "reference_files"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    uploaded_by: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    source_locator: Mapped[str] = mapped_column(Text, nullable=False)
    display_name: Mapped[str] = mapped_column(String(500), nullable=False)
    source_kind: Mapped[str] = mapped_column(String(10), nullable=False)
    size_bytes: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ReferenceStatus.QUEUED, index=True
    )
    extracted_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    extracted_chunks: Mapped[list[Any] | None] = mapped_column(JSONType, nullable=True)
    error_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    file_metadata: Mapped[dict[str, Any]] = mapped_column(
        "metadata",
        JSONType,
        nullable=False,
        default=dict,
    )
    augmented_version_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("versions.id", ondelete="SET NULL"),
        nullable=True,
    )

    def __repr__(self) -> str:
        return (
            f"<ReferenceFile(id={self.id!s:.8}, name='{self.display_name}', "
            f"status={self.status})>"
        )


class ExtractionJob(Base):
    """
    One attempt to extract text from a reference file.

    A retry is a new row; an old row is never resumed. Once terminal the
    row is not rewritten except by re-delivery of the same result.
    """

    __tablename__ = "extraction_jobs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    reference_file_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("reference_files.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    requested_by: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    job_kind: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=JobStatus.QUEUED, index=True
    )
    worker_response: Mapped[dict[str, Any] | None] = mapped_column(
        JSONType, nullable=True
    )
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    finished_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    @property
    def is_terminal(self) -> bool:
        return JobStatus(self.status).is_terminal

    def __repr__(self) -> str:
        return f"<ExtractionJob(id={self.id!s:.8}, status={self.status})>"


class Version(Base, TimestampMixin):
    """
    Numbered snapshot of document content.

    ``(project_id, version_number)`` is unique. Content is immutable
    except for the aggregate version, which only
    ``AugmentationEngine.append_to_aggregate`` may extend.
    """

    __tablename__ = "versions"
    __table_args__ = (
        UniqueConstraint(
            "project_id", "version_number", name="uq_versions_project_number"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    version_number: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str | None] = mapped_column(String(300), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    created_by: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)

    def __repr__(self) -> str:
        return f"<Version(id={self.id!s:.8}, v{self.version_number})>"


class TimelineEvent(Base):
    __tablename__ = "timeline"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    event_type: Mapped[str] = mapped_column(String(40), nullable=False)
    event_details: Mapped[dict[str, Any]] = mapped_column(
        JSONType, nullable=False, default=dict
    )
    user_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    user_name: Mapped[str] = mapped_column(String(200), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
