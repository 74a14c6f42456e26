"""Cycle orchestration: lock, progress tracking and stage sequencing.

Import :class:`~leaderboard.pipeline.orchestrator.CycleOrchestrator` from
its module; stage services depend on this package for progress tracking.
"""

from leaderboard.pipeline.progress_tracker import ProgressTracker

__all__ = ["ProgressTracker"]
