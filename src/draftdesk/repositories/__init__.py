"""Repositories package."""

from draftdesk.repositories.base import BaseRepository
from draftdesk.repositories.intake import (
    ExtractionJobRepository,
    ReferenceFileRepository,
)
from draftdesk.repositories.projects import ProjectRepository
from draftdesk.repositories.versions import TimelineRepository, VersionRepository

__all__ = [
    "BaseRepository",
    "ExtractionJobRepository",
    "ProjectRepository",
    "ReferenceFileRepository",
    "TimelineRepository",
    "VersionRepository",
]
