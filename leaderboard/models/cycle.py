"""Cycle state machine, stage results and progress events.

``CycleState`` drives the orchestrator:

    IDLE -> RUNNING -> COMPLETED
                    -> FAILED

Exactly one cycle may be RUNNING at a time.  That guarantee comes from the
lock file (see :mod:`leaderboard.pipeline.cycle_lock`); the persisted
``cycle_status`` is a report of what happened, not the lock itself.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from leaderboard.utils.timestamps import utc_now


class CycleState(str, Enum):  # noqa: UP042 -- StrEnum requires Python 3.11+
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class Stage(str, Enum):  # noqa: UP042
    """Pipeline stages, in execution order."""

    CLEANUP = "cleanup"
    ACQUISITION = "acquisition"
    FILTER = "filter"
    PUBLICATION = "publication"


STAGE_ORDER: tuple[Stage, ...] = (
    Stage.CLEANUP,
    Stage.ACQUISITION,
    Stage.FILTER,
    Stage.PUBLICATION,
)


class CycleStatus(BaseModel):
    """The ``cycle_status`` block persisted inside ``metadata.json``."""

    model_config = ConfigDict(frozen=True, extra="allow")

    state: CycleState = CycleState.IDLE
    cycle_id: str | None = None
    started_at: str | None = None
    completed_at: str | None = None
    failed_at: str | None = None
    duration: float | None = Field(default=None, description="Seconds from start to finish.")
    stage: Stage | None = Field(default=None, description="Stage that failed, if any.")
    error: str | None = None
    stats: dict[str, Any] = Field(default_factory=dict)


class StageResult(BaseModel):
    """Outcome of one stage.  Stages return this instead of raising."""

    model_config = ConfigDict(frozen=True)

    stage: Stage
    success: bool
    stats: dict[str, Any] = Field(default_factory=dict)
    error: str | None = None


class CycleResult(BaseModel):
    """What :meth:`CycleOrchestrator.run_cycle` returns to its caller.

    ``rejected`` is ``True`` only when another cycle held the lock; nothing
    was written in that case.
    """

    model_config = ConfigDict(frozen=True)

    success: bool
    rejected: bool = False
    cycle_id: str | None = None
    stats: dict[str, Any] = Field(default_factory=dict)
    error: str | None = None
    stage: Stage | None = None
    duration_seconds: float | None = None


class ProgressEvent(BaseModel):
    """A progress notification suitable for forwarding to a live stream."""

    model_config = ConfigDict(frozen=True)

    stage: Stage
    current: int = 0
    total: int = 0
    message: str = ""
    timestamp: datetime = Field(default_factory=utc_now)
