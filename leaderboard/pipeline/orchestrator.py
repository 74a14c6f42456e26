"""Cycle orchestrator: clean -> acquire -> filter -> publish, one at a time.

    IDLE -> RUNNING -> COMPLETED
                    -> FAILED

``run_cycle`` takes the file lock first.  If another live cycle holds it
the call returns a rejected :class:`CycleResult` immediately, having
written nothing.  Otherwise the stages run strictly in sequence; the first
one that fails (returns ``success=False`` or raises) ends the cycle, and
the stages after it do not run.  ``cycle_status`` in ``metadata.json`` is
written when the cycle starts and when it ends, and the lock is released
in a ``finally`` block whatever happens in between.

Every stage service is injected, so tests can swap any of them for a mock.
"""

from __future__ import annotations

import time
import uuid
from typing import Any, Protocol

import structlog

from leaderboard.models import (
    STAGE_ORDER,
    CycleResult,
    CycleState,
    CycleStatus,
    Stage,
    StageResult,
)
from leaderboard.pipeline.cycle_lock import CycleLock
from leaderboard.pipeline.progress_tracker import ProgressTracker
from leaderboard.storage.documents import DocumentRepository
from leaderboard.utils.errors import CycleLockError, LeaderboardError, StageError
from leaderboard.utils.logging import bind_cycle_context, clear_cycle_context, get_logger
from leaderboard.utils.timestamps import utc_now_iso

ALREADY_RUNNING = "An update cycle is already running"


class CycleStage(Protocol):
    async def run(self) -> StageResult: ...


class CycleOrchestrator:
    """Runs one update cycle at a time.

    Parameters
    ----------
    repository:
        Typed access to the data directory (for ``cycle_status``).
    lock:
        The single-flight lock.
    cleaner / acquisition / purger / publisher:
        Stage services, each exposing ``async run() -> StageResult``.
    progress_tracker:
        Receives stage-boundary events.
    """

    def __init__(
        self,
        repository: DocumentRepository,
        lock: CycleLock,
        cleaner: CycleStage,
        acquisition: CycleStage,
        purger: CycleStage,
        publisher: CycleStage,
        progress_tracker: ProgressTracker | None = None,
    ) -> None:
        self._repository = repository
        self._lock = lock
        self._stages: dict[Stage, CycleStage] = {
            Stage.CLEANUP: cleaner,
            Stage.ACQUISITION: acquisition,
            Stage.FILTER: purger,
            Stage.PUBLICATION: publisher,
        }
        self._progress = progress_tracker or ProgressTracker()
        self._logger: structlog.BoundLogger = get_logger(__name__)

    @property
    def progress_tracker(self) -> ProgressTracker:
        return self._progress

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def run_cycle(self) -> CycleResult:
        """Run a full cycle; never raises for stage or lock failures."""
        cycle_id = uuid.uuid4().hex[:12]

        try:
            holder = await self._lock.acquire(cycle_id)
        except CycleLockError as exc:
            self._logger.error("cycle_lock_unusable", error=str(exc))
            return CycleResult(success=False, error=str(exc))
        if holder is None:
            self._logger.info("cycle_rejected_already_running")
            return CycleResult(success=False, rejected=True, error=ALREADY_RUNNING)

        bind_cycle_context(cycle_id)
        try:
            return await self._run_locked(cycle_id)
        finally:
            try:
                await self._lock.release(cycle_id)
            except CycleLockError as exc:
                self._logger.error("cycle_lock_release_failed", error=str(exc))
            clear_cycle_context()

    async def get_status(self) -> CycleStatus:
        """The persisted ``cycle_status``; ``IDLE`` when none was recorded."""
        database = await self._repository.load_item_database()
        return database.cycle_status or CycleStatus(state=CycleState.IDLE)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _run_locked(self, cycle_id: str) -> CycleResult:
        started = time.monotonic()
        started_at = utc_now_iso()
        stats: dict[str, Any] = {}
        self._progress.reset()
        self._logger.info("cycle_started", started_at=started_at)

        running = CycleStatus(state=CycleState.RUNNING, cycle_id=cycle_id, started_at=started_at)
        try:
            await self._persist_status(running)
        except (LeaderboardError, OSError) as exc:
            self._logger.error("cycle_status_write_failed", error=str(exc))
            return CycleResult(
                success=False,
                cycle_id=cycle_id,
                error=str(exc),
                duration_seconds=round(time.monotonic() - started, 3),
            )

        for stage in STAGE_ORDER:
            await self._progress.update(stage, message=f"Starting {stage.value}")
            result = await self._run_stage(stage)
            stats[stage.value] = result.stats
            if not result.success:
                error = StageError(stage.value, result.error or "Stage failed")
                return await self._finish_failed(running, stage, str(error), stats, started)
            await self._progress.update(stage, message=f"Finished {stage.value}")

        return await self._finish_completed(running, stats, started)

    async def _run_stage(self, stage: Stage) -> StageResult:
        self._logger.info("stage_started", stage=stage.value)
        try:
            result = await self._stages[stage].run()
        except Exception as exc:
            self._logger.exception("stage_crashed", stage=stage.value)
            return StageResult(stage=stage, success=False, error=f"{type(exc).__name__}: {exc}")
        self._logger.info("stage_finished", stage=stage.value, success=result.success, error=result.error)
        return result

    async def _finish_completed(
        self,
        running: CycleStatus,
        stats: dict[str, Any],
        started: float,
    ) -> CycleResult:
        duration = round(time.monotonic() - started, 3)
        completed = running.model_copy(
            update={
                "state": CycleState.COMPLETED,
                "completed_at": utc_now_iso(),
                "duration": duration,
                "stats": stats,
            }
        )
        await self._persist_final(completed)
        self._logger.info("cycle_completed", duration_s=duration)
        return CycleResult(success=True, cycle_id=running.cycle_id, stats=stats, duration_seconds=duration)

    async def _finish_failed(
        self,
        running: CycleStatus,
        stage: Stage,
        error: str,
        stats: dict[str, Any],
        started: float,
    ) -> CycleResult:
        duration = round(time.monotonic() - started, 3)
        failed = running.model_copy(
            update={
                "state": CycleState.FAILED,
                "failed_at": utc_now_iso(),
                "duration": duration,
                "stage": stage,
                "error": error,
                "stats": stats,
            }
        )
        await self._persist_final(failed)
        self._logger.error("cycle_failed", stage=stage.value, error=error, duration_s=duration)
        return CycleResult(
            success=False,
            cycle_id=running.cycle_id,
            stats=stats,
            error=error,
            stage=stage,
            duration_seconds=duration,
        )

    async def _persist_final(self, status: CycleStatus) -> None:
        try:
            await self._persist_status(status)
        except (LeaderboardError, OSError) as exc:
            self._logger.critical("cycle_status_write_failed", state=status.state.value, error=str(exc))

    async def _persist_status(self, status: CycleStatus) -> None:
        database = await self._repository.load_item_database()
        await self._repository.save_item_database(database.model_copy(update={"cycle_status": status}))
