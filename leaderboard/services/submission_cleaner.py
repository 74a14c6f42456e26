"""Submission-queue hygiene, run at the start of every cycle.

For each submission, in order:

1. not a valid submission, or no item key in the URL
                                    -> removed (``invalid_key``)
2. item key present in the database -> kept, ``failed_attempts`` reset to 0
3. otherwise ``failed_attempts`` += 1; removed at the threshold
   (``failed_or_purged``), kept below it

Because the cleaner runs before acquisition, a submission whose key never
reaches the database is removed during its third cycle.  Its first miss is
counted before it has ever been fetched, so it gets two acquisition
attempts; that off-by-one is intended.  Satisfied submissions stay in the
queue so the intake endpoint can keep rejecting duplicates of them.

Every removal is appended to ``cleanup_log.json``.  That audit write is
best-effort: a failure is logged as a warning and the cleanup still
succeeds.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from leaderboard.models import (
    CleanupLogEntry,
    ItemDatabase,
    Stage,
    StageResult,
    Submission,
)
from leaderboard.pipeline.progress_tracker import ProgressTracker
from leaderboard.storage.documents import DocumentRepository
from leaderboard.utils.errors import LeaderboardError
from leaderboard.utils.item_key import extract_item_key
from leaderboard.utils.logging import get_logger
from leaderboard.utils.timestamps import utc_now_iso

logger = get_logger(__name__)

DEFAULT_MAX_FAILED_ATTEMPTS = 3


class CleanupReason:
    INVALID_KEY = "invalid_key"
    FAILED_OR_PURGED = "failed_or_purged"


@dataclass(frozen=True)
class RemovedSubmission:
    url: str
    reason: str
    submitted_at: str | None = None
    failed_attempts: int = 0

    @classmethod
    def of(cls, submission: Submission, reason: str) -> RemovedSubmission:
        return cls(submission.url, reason, submission.submitted_at, submission.failed_attempts)

    @classmethod
    def from_malformed(cls, raw: Any) -> RemovedSubmission:
        """Removal record for a queue entry that is not a valid submission."""
        fields = raw if isinstance(raw, dict) else {}
        url = fields.get("url")
        submitted_at = fields.get("submitted_at")
        return cls(
            url if isinstance(url, str) else "",
            CleanupReason.INVALID_KEY,
            submitted_at if isinstance(submitted_at, str) else None,
        )


def clean_submissions(
    submissions: Iterable[Submission],
    database: ItemDatabase,
    max_failed_attempts: int = DEFAULT_MAX_FAILED_ATTEMPTS,
) -> tuple[list[Submission], list[RemovedSubmission]]:
    """Apply the cleanup policy; returns ``(kept, removed)`` in input order."""
    kept: list[Submission] = []
    removed: list[RemovedSubmission] = []

    for submission in submissions:
        item_key = extract_item_key(submission.url)
        if item_key is None:
            removed.append(RemovedSubmission.of(submission, CleanupReason.INVALID_KEY))
            continue

        if item_key in database.books:
            if submission.failed_attempts:
                submission = submission.model_copy(update={"failed_attempts": 0})
            kept.append(submission)
            continue

        attempts = submission.failed_attempts + 1
        if attempts >= max_failed_attempts:
            removed.append(RemovedSubmission.of(submission, CleanupReason.FAILED_OR_PURGED))
        else:
            kept.append(submission.model_copy(update={"failed_attempts": attempts}))

    return kept, removed


class SubmissionCleaner:
    """Cleanup stage: prunes ``input.json`` against ``metadata.json``.

    Parameters
    ----------
    repository:
        Typed access to the data directory.
    max_failed_attempts:
        Consecutive misses after which a submission is dropped.
    progress:
        Optional tracker receiving stage-boundary events.
    """

    def __init__(
        self,
        repository: DocumentRepository,
        max_failed_attempts: int = DEFAULT_MAX_FAILED_ATTEMPTS,
        progress: ProgressTracker | None = None,
    ) -> None:
        self._repository = repository
        self._max_failed_attempts = max_failed_attempts
        self._progress = progress

    async def run(self) -> StageResult:
        try:
            stats = await self._clean()
        except LeaderboardError as exc:
            logger.error("cleanup_failed", error=str(exc))
            return StageResult(stage=Stage.CLEANUP, success=False, error=str(exc))
        return StageResult(stage=Stage.CLEANUP, success=True, stats=stats)

    async def _clean(self) -> dict[str, int]:
        queue = await self._repository.load_submissions()
        database = await self._repository.load_item_database()
        total = len(queue.submissions) + len(queue.malformed)
        await self._report(0, total, "Cleaning submissions")

        kept, removed = clean_submissions(queue.submissions, database, self._max_failed_attempts)
        removed = [RemovedSubmission.from_malformed(raw) for raw in queue.malformed] + removed
        for entry in removed:
            logger.info(
                "submission_removed",
                url=entry.url,
                reason=entry.reason,
                failed_attempts=entry.failed_attempts,
            )

        updated = queue.model_copy(update={"submissions": kept, "last_cleanup": utc_now_iso()})
        await self._repository.save_submissions(updated)

        if removed:
            await self._log_removals(removed)

        reasons = Counter(entry.reason for entry in removed)
        stats = {
            "total_checked": total,
            "removed": len(removed),
            "remaining": len(kept),
            "removed_invalid_key": reasons[CleanupReason.INVALID_KEY],
            "removed_failed": reasons[CleanupReason.FAILED_OR_PURGED],
        }
        logger.info("cleanup_completed", **stats)
        await self._report(total, total, f"Removed {len(removed)} of {total} submissions")
        return stats

    async def _log_removals(self, removed: list[RemovedSubmission]) -> None:
        timestamp = utc_now_iso()
        entries = [
            CleanupLogEntry(
                timestamp=timestamp,
                url=entry.url,
                submitted_at=entry.submitted_at,
                reason=entry.reason,
            )
            for entry in removed
        ]
        try:
            await self._repository.append_cleanup_entries(entries)
        except Exception as exc:
            # Audit logging must never fail the cleanup itself.
            logger.warning("cleanup_log_write_failed", error=str(exc), entries=len(entries))

    async def _report(self, current: int, total: int, message: str) -> None:
        if self._progress is not None:
            await self._progress.update(Stage.CLEANUP, current, total, message)
