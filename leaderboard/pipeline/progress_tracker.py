"""Cycle progress tracking with callback-based listener notification.

Stages report progress through one :class:`ProgressTracker`; it keeps the
latest :class:`ProgressEvent` and forwards every event to the registered
listeners (a live event stream, a CLI printer ...).

    Stage --update()--> ProgressTracker --callback(event)--> listener

Listeners may be sync or async.  A listener that raises is logged and
skipped so a dropped stream connection can never fail a cycle.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

import structlog

from leaderboard.models.cycle import ProgressEvent, Stage
from leaderboard.utils.logging import get_logger

ProgressListener = Callable[[ProgressEvent], Any]


class ProgressTracker:
    """Tracks and broadcasts cycle progress via callbacks."""

    def __init__(self) -> None:
        self._latest: ProgressEvent | None = None
        self._listeners: list[ProgressListener] = []
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def update(
        self,
        stage: Stage,
        current: int = 0,
        total: int = 0,
        message: str = "",
    ) -> ProgressEvent:
        """Record a progress event and notify all registered listeners.

        Parameters
        ----------
        stage:
            The stage reporting progress.
        current:
            Units done so far (submissions, items ...).
        total:
            Units in the stage; 0 when unknown.
        message:
            Human-readable status message.
        """
        event = ProgressEvent(stage=stage, current=max(0, current), total=max(0, total), message=message)
        self._latest = event

        self._logger.debug(
            "progress_update",
            stage=stage.value,
            current=event.current,
            total=event.total,
            message=message,
        )

        await self._notify_listeners(event)
        return event

    def register_listener(self, callback: ProgressListener) -> None:
        """Register a sync or async callable accepting a :class:`ProgressEvent`."""
        if callback not in self._listeners:
            self._listeners.append(callback)
            self._logger.debug("listener_registered", total_listeners=len(self._listeners))

    def unregister_listener(self, callback: ProgressListener) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)
            self._logger.debug("listener_unregistered", remaining_listeners=len(self._listeners))

    @property
    def latest(self) -> ProgressEvent | None:
        """The most recent event, or ``None`` before the first update."""
        return self._latest

    def reset(self) -> None:
        self._latest = None

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _notify_listeners(self, event: ProgressEvent) -> None:
        for callback in list(self._listeners):
            try:
                result = callback(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as exc:
                self._logger.warning(
                    "listener_callback_error",
                    stage=event.stage.value,
                    error=str(exc),
                    callback=getattr(callback, "__name__", repr(callback)),
                )
