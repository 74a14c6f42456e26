"""Unit tests for the cycle orchestrator."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from datetime import timedelta
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from leaderboard.models import CycleState, Stage, StageResult
from leaderboard.pipeline.cycle_lock import CycleLock
from leaderboard.pipeline.orchestrator import ALREADY_RUNNING, CycleOrchestrator
from leaderboard.pipeline.progress_tracker import ProgressTracker
from leaderboard.storage.documents import DocumentRepository
from leaderboard.utils.timestamps import to_iso, utc_now


def _stage(stage: Stage, success: bool = True, error: str | None = None) -> MagicMock:
    mock = MagicMock()
    mock.run = AsyncMock(return_value=StageResult(stage=stage, success=success, error=error, stats={"n": 1}))
    return mock


class TestCycleOrchestrator:
    @pytest.fixture()
    def lock_path(self, data_dir: Path) -> Path:
        return data_dir / "cycle.lock"

    @pytest.fixture()
    def stages(self) -> dict[str, MagicMock]:
        return {
            "cleaner": _stage(Stage.CLEANUP),
            "acquisition": _stage(Stage.ACQUISITION),
            "purger": _stage(Stage.FILTER),
            "publisher": _stage(Stage.PUBLICATION),
        }

    @pytest.fixture()
    def make_orchestrator(
        self,
        repository: DocumentRepository,
        lock_path: Path,
        stages: dict[str, MagicMock],
    ) -> Callable[..., CycleOrchestrator]:
        def _make(**overrides: Any) -> CycleOrchestrator:
            kwargs: dict[str, Any] = {
                "repository": repository,
                "lock": CycleLock(lock_path),
                **stages,
            }
            kwargs.update(overrides)
            return CycleOrchestrator(**kwargs)

        return _make

    @pytest.mark.asyncio
    async def test_successful_cycle(
        self,
        make_orchestrator: Callable[..., CycleOrchestrator],
        stages: dict[str, MagicMock],
        read_document: Callable[[str], Any],
        lock_path: Path,
    ) -> None:
        result = await make_orchestrator().run_cycle()

        assert result.success
        assert not result.rejected
        assert set(result.stats) == {"cleanup", "acquisition", "filter", "publication"}
        for stage in stages.values():
            stage.run.assert_awaited_once()

        status = read_document("metadata.json")["cycle_status"]
        assert status["state"] == CycleState.COMPLETED.value
        assert status["cycle_id"] == result.cycle_id
        assert status["completed_at"]
        assert not lock_path.exists()

    @pytest.mark.asyncio
    async def test_stage_order(
        self, make_orchestrator: Callable[..., CycleOrchestrator], stages: dict[str, MagicMock]
    ) -> None:
        calls: list[str] = []
        for name, stage in stages.items():
            result = stage.run.return_value
            stage.run = AsyncMock(side_effect=lambda n=name, r=result: calls.append(n) or r)

        await make_orchestrator(**stages).run_cycle()

        assert calls == ["cleaner", "acquisition", "purger", "publisher"]

    @pytest.mark.asyncio
    async def test_failed_stage_aborts_later_stages(
        self,
        make_orchestrator: Callable[..., CycleOrchestrator],
        stages: dict[str, MagicMock],
        read_document: Callable[[str], Any],
        lock_path: Path,
    ) -> None:
        stages["acquisition"] = _stage(Stage.ACQUISITION, success=False, error="disk full")

        result = await make_orchestrator(**stages).run_cycle()

        assert not result.success
        assert result.stage is Stage.ACQUISITION
        assert "disk full" in (result.error or "")
        stages["purger"].run.assert_not_awaited()
        stages["publisher"].run.assert_not_awaited()

        status = read_document("metadata.json")["cycle_status"]
        assert status["state"] == CycleState.FAILED.value
        assert status["stage"] == "acquisition"
        assert status["failed_at"]
        assert not lock_path.exists()

    @pytest.mark.asyncio
    async def test_crashing_stage_is_contained(
        self,
        make_orchestrator: Callable[..., CycleOrchestrator],
        stages: dict[str, MagicMock],
        lock_path: Path,
    ) -> None:
        stages["purger"].run = AsyncMock(side_effect=RuntimeError("kaboom"))

        result = await make_orchestrator(**stages).run_cycle()

        assert not result.success
        assert result.stage is Stage.FILTER
        assert "RuntimeError: kaboom" in (result.error or "")
        stages["publisher"].run.assert_not_awaited()
        assert not lock_path.exists()

    @pytest.mark.asyncio
    async def test_rejected_while_locked_writes_nothing(
        self,
        make_orchestrator: Callable[..., CycleOrchestrator],
        stages: dict[str, MagicMock],
        data_dir: Path,
        lock_path: Path,
    ) -> None:
        lock_path.write_text(
            json.dumps({"cycle_id": "other", "pid": 1, "acquired_at": to_iso(utc_now())}),
            encoding="utf-8",
        )

        result = await make_orchestrator().run_cycle()

        assert result.rejected
        assert not result.success
        assert result.error == ALREADY_RUNNING
        assert sorted(p.name for p in data_dir.iterdir()) == ["cycle.lock"]
        assert json.loads(lock_path.read_text())["cycle_id"] == "other"
        for stage in stages.values():
            stage.run.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_stale_lock_is_taken_over(
        self, make_orchestrator: Callable[..., CycleOrchestrator], lock_path: Path
    ) -> None:
        lock_path.write_text(
            json.dumps(
                {"cycle_id": "crashed", "pid": 1, "acquired_at": to_iso(utc_now() - timedelta(hours=2))}
            ),
            encoding="utf-8",
        )

        result = await make_orchestrator().run_cycle()

        assert result.success
        assert not lock_path.exists()

    @pytest.mark.asyncio
    async def test_concurrent_cycles_single_flight(
        self,
        make_orchestrator: Callable[..., CycleOrchestrator],
        stages: dict[str, MagicMock],
    ) -> None:
        gate = asyncio.Event()
        ok = StageResult(stage=Stage.CLEANUP, success=True)

        async def slow_cleanup() -> StageResult:
            await gate.wait()
            return ok

        stages["cleaner"].run = AsyncMock(side_effect=slow_cleanup)
        orchestrator = make_orchestrator(**stages)

        first = asyncio.create_task(orchestrator.run_cycle())
        second = asyncio.create_task(orchestrator.run_cycle())
        done, pending = await asyncio.wait({first, second}, return_when=asyncio.FIRST_COMPLETED)
        gate.set()
        results = [task.result() for task in done] + [await task for task in pending]

        assert [r.rejected for r in results] == [True, False]
        assert results[1].success
        stages["cleaner"].run.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_progress_events_at_stage_boundaries(
        self, make_orchestrator: Callable[..., CycleOrchestrator]
    ) -> None:
        tracker = ProgressTracker()
        events: list[Any] = []
        tracker.register_listener(events.append)

        await make_orchestrator(progress_tracker=tracker).run_cycle()

        assert [e.stage for e in events] == [
            Stage.CLEANUP,
            Stage.CLEANUP,
            Stage.ACQUISITION,
            Stage.ACQUISITION,
            Stage.FILTER,
            Stage.FILTER,
            Stage.PUBLICATION,
            Stage.PUBLICATION,
        ]

    @pytest.mark.asyncio
    async def test_get_status_defaults_to_idle(self, make_orchestrator: Callable[..., CycleOrchestrator]) -> None:
        status = await make_orchestrator().get_status()
        assert status.state is CycleState.IDLE

    @pytest.mark.asyncio
    async def test_status_write_failure_releases_lock(
        self,
        make_orchestrator: Callable[..., CycleOrchestrator],
        stages: dict[str, MagicMock],
        data_dir: Path,
        lock_path: Path,
    ) -> None:
        (data_dir / "metadata.json").write_text("{corrupt", encoding="utf-8")

        result = await make_orchestrator().run_cycle()

        assert not result.success
        assert not result.rejected
        stages["cleaner"].run.assert_not_awaited()
        assert not lock_path.exists()
