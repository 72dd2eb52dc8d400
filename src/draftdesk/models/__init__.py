"""Models package - re-exports all models for convenient imports."""

from draftdesk.models.base import Base, TimestampMixin
from draftdesk.models.orm import (
    JOB_TRANSITIONS,
    AccessLevel,
    ExtractionJob,
    JobKind,
    JobStatus,
    Project,
    ProjectCollaborator,
    ReferenceFile,
    ReferenceStatus,
    SourceKind,
    TimelineEvent,
    TimelineEventType,
    User,
    Version,
)

__all__ = [
    "Base",
    "TimestampMixin",
    # Records
    "ExtractionJob",
    "Project",
    "ProjectCollaborator",
    "ReferenceFile",
    "TimelineEvent",
    "User",
    "Version",
    # Enumerations
    "AccessLevel",
    "JOB_TRANSITIONS",
    "JobKind",
    "JobStatus",
    "ReferenceStatus",
    "SourceKind",
    "TimelineEventType",
]
