"""Unit tests for ProgressTracker listener notification."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from leaderboard.models import ProgressEvent, Stage
from leaderboard.pipeline.progress_tracker import ProgressTracker


class TestProgressTracker:
    @pytest.fixture()
    def tracker(self) -> ProgressTracker:
        return ProgressTracker()

    @pytest.mark.asyncio
    async def test_update_records_latest(self, tracker: ProgressTracker) -> None:
        assert tracker.latest is None
        event = await tracker.update(Stage.ACQUISITION, 2, 5, "working")

        assert tracker.latest == event
        assert event.stage is Stage.ACQUISITION
        assert (event.current, event.total, event.message) == (2, 5, "working")

    @pytest.mark.asyncio
    async def test_negative_counts_clamped(self, tracker: ProgressTracker) -> None:
        event = await tracker.update(Stage.CLEANUP, -1, -4)
        assert (event.current, event.total) == (0, 0)

    @pytest.mark.asyncio
    async def test_sync_and_async_listeners(self, tracker: ProgressTracker) -> None:
        sync_listener = MagicMock()
        async_listener = AsyncMock()
        tracker.register_listener(sync_listener)
        tracker.register_listener(async_listener)

        event = await tracker.update(Stage.FILTER)

        sync_listener.assert_called_once_with(event)
        async_listener.assert_awaited_once_with(event)

    @pytest.mark.asyncio
    async def test_failing_listener_is_skipped(self, tracker: ProgressTracker) -> None:
        received: list[ProgressEvent] = []
        tracker.register_listener(MagicMock(side_effect=RuntimeError("closed")))
        tracker.register_listener(received.append)

        await tracker.update(Stage.PUBLICATION)

        assert len(received) == 1

    @pytest.mark.asyncio
    async def test_register_is_idempotent_and_unregister(self, tracker: ProgressTracker) -> None:
        listener = MagicMock()
        tracker.register_listener(listener)
        tracker.register_listener(listener)
        await tracker.update(Stage.CLEANUP)
        assert listener.call_count == 1

        tracker.unregister_listener(listener)
        await tracker.update(Stage.CLEANUP)
        assert listener.call_count == 1

    @pytest.mark.asyncio
    async def test_reset(self, tracker: ProgressTracker) -> None:
        await tracker.update(Stage.CLEANUP)
        tracker.reset()
        assert tracker.latest is None
