"""
Domain Errors

Every failure the intake and version services surface carries a short,
user-presentable ``message``. The API layer maps each class to an HTTP
status in ``draftdesk.main``.
"""

from __future__ import annotations


class DraftDeskError(Exception):
    """Base class for all domain errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class AccessDenied(DraftDeskError):
    """Caller lacks permission on the project. Never retried."""


class InvalidSource(DraftDeskError):
    """Source locator could not be parsed."""


class WorkerDispatchFailed(DraftDeskError):
    """The extraction worker did not accept a job. The job stays queued."""


class ExtractionFailed(DraftDeskError):
    """The worker reported a failed extraction."""


class AggregateNotFound(DraftDeskError):
    """Project has no aggregate (v1) version to augment."""


class VersionNumberConflict(DraftDeskError):
    """
    Two versions were about to share a number.

    Allocation is serialized, so seeing this means the serialization
    primitive was bypassed.
    """


class JobAlreadyActive(DraftDeskError):
    """Reference file already has a queued or extracting job."""


class ReferenceNotReady(DraftDeskError):
    """Reference file has no extracted text yet."""


class NotFound(DraftDeskError):
    """Base for missing records."""


class ProjectNotFound(NotFound):
    pass


class ReferenceFileNotFound(NotFound):
    pass


class JobNotFound(NotFound):
    pass


class VersionNotFound(NotFound):
    pass
