"""
Version Events

In-process publish/subscribe for version changes. Consumers refresh
their view of a project when a ``VersionChanged`` arrives instead of
reloading everything after a restore.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum

logger = logging.getLogger(__name__)


class VersionChangeReason(StrEnum):
    CREATED = "created"
    RESTORED = "restored"
    AUGMENTED = "augmented"


@dataclass(frozen=True)
class VersionChanged:
    """
    A version of a project was created or its aggregate content grew.

    Attributes:
        project_id: Owning project.
        version_id: Affected version.
        version_number: Its number.
        reason: created | restored | augmented.
    """

    project_id: uuid.UUID
    version_id: uuid.UUID
    version_number: int
    reason: VersionChangeReason


Subscriber = Callable[[VersionChanged], Awaitable[None]]


class VersionEventBus:
    """Fan-out of ``VersionChanged`` to async subscribers, in order."""

    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []

    def subscribe(self, subscriber: Subscriber) -> Callable[[], None]:
        """Register a subscriber. Returns a function that unsubscribes it."""
        self._subscribers.append(subscriber)

        def unsubscribe() -> None:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

        return unsubscribe

    async def publish(self, event: VersionChanged) -> None:
        # A failing subscriber must not undo or block the write that produced the event
        for subscriber in list(self._subscribers):
            try:
                await subscriber(event)
            except Exception:
                logger.exception(
                    "Version event subscriber failed (project=%s, reason=%s)",
                    event.project_id,
                    event.reason,
                )


# Module-level singleton shared by the services and the API
version_events = VersionEventBus()
