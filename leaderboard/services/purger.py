"""Filter stage: remove blacklisted items from the item database.

Every stored item is evaluated by a :class:`BlacklistMatcher`; matches are
removed and a full snapshot of each is appended to ``brownlist.json``.

A missing blacklist is an empty policy.  A malformed one is logged and
also treated as empty, so a bad upload cannot abort the cycle.  The audit
append happens before ``metadata.json`` is rewritten: a crash in between
re-rejects the item next cycle (duplicate audit entry) instead of losing
the record.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from leaderboard.models import (
    Blacklist,
    Item,
    ItemDatabase,
    RejectionReason,
    RejectionRecord,
    Stage,
    StageResult,
)
from leaderboard.pipeline.progress_tracker import ProgressTracker
from leaderboard.services.blacklist_matcher import BlacklistMatcher
from leaderboard.storage.documents import DocumentRepository
from leaderboard.utils.errors import InvalidDocumentError, LeaderboardError
from leaderboard.utils.logging import get_logger
from leaderboard.utils.timestamps import utc_now_iso

logger = get_logger(__name__)


def filter_items(
    books: dict[str, Item],
    matcher: BlacklistMatcher,
    timestamp: str,
) -> tuple[dict[str, Item], list[RejectionRecord]]:
    """Split *books* into ``(kept, rejections)``; iteration order is preserved."""
    kept: dict[str, Item] = {}
    rejections: list[RejectionRecord] = []

    for item_key, item in books.items():
        match = matcher.evaluate(item, item_key)
        if match is None:
            kept[item_key] = item
            continue
        rejections.append(
            RejectionRecord(
                timestamp=timestamp,
                item_key=item_key,
                title=item.title,
                author=item.author,
                source_url=item.source_url,
                rank_value=item.rank_value,
                reason=match.reason,
                matched_pattern=match.matched_pattern,
            )
        )

    return kept, rejections


class Purger:
    """Filter stage.

    Parameters
    ----------
    repository:
        Typed access to the data directory.
    matcher_factory:
        Builds the matcher for the loaded blacklist.
    """

    def __init__(
        self,
        repository: DocumentRepository,
        progress: ProgressTracker | None = None,
        matcher_factory: Callable[[Blacklist], BlacklistMatcher] = BlacklistMatcher,
    ) -> None:
        self._repository = repository
        self._progress = progress
        self._matcher_factory = matcher_factory

    async def run(self) -> StageResult:
        try:
            stats = await self._purge()
        except LeaderboardError as exc:
            logger.error("purge_failed", error=str(exc))
            return StageResult(stage=Stage.FILTER, success=False, error=str(exc))
        return StageResult(stage=Stage.FILTER, success=True, stats=stats)

    async def load_policy(self) -> Blacklist:
        try:
            blacklist = await self._repository.load_blacklist()
        except InvalidDocumentError as exc:
            logger.error("blacklist_invalid_using_empty_policy", error=str(exc))
            return Blacklist()
        logger.info(
            "blacklist_loaded",
            authors=len(blacklist.authors),
            title_patterns=len(blacklist.title_patterns),
            legacy_patterns=len(blacklist.patterns),
        )
        return blacklist

    async def _purge(self) -> dict[str, Any]:
        matcher = self._matcher_factory(await self.load_policy())
        database = await self._repository.load_item_database()
        total = len(database.books)
        await self._report(0, total, f"Checking {total} items against the blacklist")

        timestamp = utc_now_iso()
        kept, rejections = filter_items(database.books, matcher, timestamp)
        for record in rejections:
            logger.info(
                "item_purged",
                item_key=record.item_key,
                title=record.title,
                author=record.author,
                reason=record.reason,
                matched_pattern=record.matched_pattern,
            )

        if rejections:
            await self._repository.append_rejections(rejections)

        errors = sum(1 for record in rejections if record.reason == RejectionReason.ERROR_DURING_CHECK)
        database = self._with_stats(database, kept, total, len(rejections), errors, timestamp)
        await self._repository.save_item_database(database)

        stats = {
            "total_scanned": total,
            "purged": len(rejections),
            "remaining": len(kept),
            "errors": errors,
        }
        logger.info("purge_completed", **stats)
        await self._report(total, total, f"Purged {len(rejections)} of {total} items")
        return stats

    @staticmethod
    def _with_stats(
        database: ItemDatabase,
        kept: dict[str, Item],
        checked: int,
        purged: int,
        errors: int,
        timestamp: str,
    ) -> ItemDatabase:
        stats = dict(database.stats)
        stats["total_books"] = len(kept)
        stats["active_books"] = sum(1 for item in kept.values() if item.status == "active")
        stats["last_purge"] = {
            "timestamp": timestamp,
            "books_checked": checked,
            "books_purged": purged,
            "errors": errors,
        }
        return database.model_copy(update={"books": kept, "stats": stats})

    async def _report(self, current: int, total: int, message: str) -> None:
        if self._progress is not None:
            await self._progress.update(Stage.FILTER, current, total, message)
