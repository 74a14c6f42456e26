"""Pydantic models for every document the update cycle reads or writes."""

from leaderboard.models.blacklist import (
    Blacklist,
    BlacklistMatch,
    RejectionReason,
    RejectionRecord,
)
from leaderboard.models.cycle import (
    STAGE_ORDER,
    CycleResult,
    CycleState,
    CycleStatus,
    ProgressEvent,
    Stage,
    StageResult,
)
from leaderboard.models.item import Item, ItemDatabase, RankHistoryEntry, ScrapingProgress
from leaderboard.models.leaderboard import LeaderboardEntry, PublishedLeaderboard
from leaderboard.models.submission import CleanupLogEntry, Submission, SubmissionQueue

__all__ = [
    "STAGE_ORDER",
    "Blacklist",
    "BlacklistMatch",
    "CleanupLogEntry",
    "CycleResult",
    "CycleState",
    "CycleStatus",
    "Item",
    "ItemDatabase",
    "LeaderboardEntry",
    "ProgressEvent",
    "PublishedLeaderboard",
    "RankHistoryEntry",
    "RejectionReason",
    "RejectionRecord",
    "ScrapingProgress",
    "Stage",
    "StageResult",
    "Submission",
    "SubmissionQueue",
]
