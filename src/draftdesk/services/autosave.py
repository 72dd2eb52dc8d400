"""
Autosave Coordinator

Debounced persistence of an editor value: every change restarts a
timer and only the latest value is saved once the editor goes quiet.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterable, Awaitable, Callable
from typing import Any

from draftdesk.core.config import settings

logger = logging.getLogger(__name__)

SaveCallback = Callable[[Any], Awaitable[None]]

_UNSET = object()


class AutosaveCoordinator:
    """
    Debounce-and-save state machine.

    - The first observed value is the baseline and is not saved.
    - A save runs ``delay`` seconds after the last change.
    - At most one save is in flight. A change arriving during a save
      re-arms the debounce once the save finishes.
    - A failed save is logged and not retried; the next change tries again.
    """

    def __init__(
        self,
        on_save: SaveCallback,
        delay: float | None = None,
        enabled: bool = True,
    ) -> None:
        self._on_save = on_save
        self._delay = delay if delay is not None else settings.AUTOSAVE_DELAY_SECONDS
        self._enabled = enabled

        self._baseline: Any = _UNSET
        self._pending: Any = _UNSET
        self._last_saved: Any = _UNSET
        self._timer: asyncio.TimerHandle | None = None
        self._save_task: asyncio.Task[None] | None = None
        self._source_task: asyncio.Task[None] | None = None
        self._closed = False

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def dirty(self) -> bool:
        """True when a change has not been saved yet."""
        return self._pending is not _UNSET

    @property
    def saving(self) -> bool:
        return self._save_task is not None and not self._save_task.done()

    @property
    def last_saved(self) -> Any:
        return None if self._last_saved is _UNSET else self._last_saved

    def observe(self, value: Any) -> None:
        """Record a new editor value."""
        if self._closed:
            return
        if self._baseline is _UNSET:
            self._baseline = value
            return
        if value == self._baseline and self._pending is _UNSET:
            return

        self._pending = value
        if self._enabled:
            self._schedule()

    def set_enabled(self, enabled: bool) -> None:
        self._enabled = enabled
        if not enabled:
            self._cancel_timer()
        elif self.dirty:
            self._schedule()

    def attach(self, source: AsyncIterable[Any]) -> None:
        """Consume values from an async iterable in a background task."""
        self._source_task = asyncio.create_task(self._consume(source))

    async def flush(self) -> None:
        """Save the pending value now, skipping the remaining debounce."""
        self._cancel_timer()
        if self.saving:
            await asyncio.shield(self._save_task)
        if self.dirty:
            await self._start_save()

    async def close(self) -> None:
        """
        Stop observing and persist what is left.

        Cancels the pending debounce, waits for a save in flight and then
        saves once more if a change is still unsaved.
        """
        self._closed = True
        self._cancel_timer()
        if self._source_task is not None:
            self._source_task.cancel()
            try:
                await self._source_task
            except asyncio.CancelledError:
                pass
        if self.saving:
            await asyncio.shield(self._save_task)
        if self.dirty and self._enabled:
            await self._start_save()

    # ------------------------------------------------------------------

    async def _consume(self, source: AsyncIterable[Any]) -> None:
        async for value in source:
            self.observe(value)

    def _schedule(self) -> None:
        self._cancel_timer()
        if self.saving:
            # Re-armed from _save once the current save completes
            return
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self._delay, self._fire)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _fire(self) -> None:
        self._timer = None
        if self.dirty and not self.saving:
            self._start_save()

    def _start_save(self) -> asyncio.Task[None]:
        self._save_task = asyncio.create_task(self._save())
        return self._save_task

    async def _save(self) -> None:
        value = self._pending
        self._pending = _UNSET
        try:
            await self._on_save(value)
        except Exception:
            logger.exception("Autosave failed")
        else:
            self._baseline = value
            self._last_saved = value
            logger.debug("Autosaved")
        finally:
            if self.dirty and self._enabled and not self._closed:
                loop = asyncio.get_running_loop()
                self._timer = loop.call_later(self._delay, self._fire)


def start_autosave(
    source: AsyncIterable[Any] | None,
    on_save: SaveCallback,
    delay: float | None = None,
    enabled: bool = True,
) -> AutosaveCoordinator:
    """
    Create a coordinator and, if given, start consuming ``source``.

    Must be called from a running event loop when ``source`` is given.
    """
    coordinator = AutosaveCoordinator(on_save, delay=delay, enabled=enabled)
    if source is not None:
        coordinator.attach(source)
    return coordinator
