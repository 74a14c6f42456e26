"""Publication stage: turn the item database into the ranked ``books.json``.

Steps:

1. coerce each rank value to an int (``"1,234"`` -> 1234) and drop items
   whose value cannot be coerced, that lack a title, author, cover or
   source URL, or whose cover is not an absolute http(s) URL or whose
   source URL is off the expected domain; each drop is logged with its
   reason
2. sort ascending by rank value (stable)
3. assign dense ranks 1..N
4. decode HTML entities in title and author
5. validate the whole artifact; any violation raises
   :class:`PublicationValidationError` and nothing is written

An empty database publishes an empty artifact.  After a successful write
``metadata.last_publish`` records the publication; items are never touched.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from leaderboard.models import (
    Item,
    LeaderboardEntry,
    PublishedLeaderboard,
    Stage,
    StageResult,
)
from leaderboard.pipeline.progress_tracker import ProgressTracker
from leaderboard.storage.documents import DocumentRepository
from leaderboard.utils.errors import LeaderboardError, PublicationValidationError
from leaderboard.utils.item_key import belongs_to_domain, is_absolute_http_url
from leaderboard.utils.logging import get_logger
from leaderboard.utils.text_normalizer import decode_html_entities
from leaderboard.utils.timestamps import parse_iso, utc_now_iso

logger = get_logger(__name__)

_INTEGER_RE = re.compile(r"[+-]?\d+")


class DropReason:
    INVALID_RANK_VALUE = "invalid_rank_value"
    MISSING_TITLE = "missing_title"
    MISSING_AUTHOR = "missing_author"
    MISSING_COVER_URL = "missing_cover_url"
    MISSING_SOURCE_URL = "missing_source_url"
    INVALID_COVER_URL = "invalid_cover_url"
    INVALID_SOURCE_URL = "invalid_source_url"


@dataclass(frozen=True)
class DroppedItem:
    item_key: str
    reason: str


def coerce_rank_value(value: Any) -> int | None:
    """Plain int from an int, an integral float or a ``"1,234"`` string."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str):
        digits = value.replace(",", "").strip()
        if _INTEGER_RE.fullmatch(digits):
            return int(digits)
    return None


def _drop_reason(item: Item, rank_value: int | None, expected_domain: str) -> str | None:
    if rank_value is None:
        return DropReason.INVALID_RANK_VALUE
    if not (item.title or "").strip():
        return DropReason.MISSING_TITLE
    if not (item.author or "").strip():
        return DropReason.MISSING_AUTHOR
    if not (item.cover_url or "").strip():
        return DropReason.MISSING_COVER_URL
    if not (item.source_url or "").strip():
        return DropReason.MISSING_SOURCE_URL
    if not is_absolute_http_url(item.cover_url):
        return DropReason.INVALID_COVER_URL
    if not belongs_to_domain(item.source_url, expected_domain):
        return DropReason.INVALID_SOURCE_URL
    return None


def build_leaderboard(
    books: dict[str, Item],
    version: str,
    timestamp: str,
    expected_domain: str = "amazon.com",
) -> tuple[PublishedLeaderboard, list[DroppedItem]]:
    """Rank *books*; returns the (unvalidated) artifact and the dropped items."""
    candidates: list[tuple[int, str, Item]] = []
    dropped: list[DroppedItem] = []

    for item_key, item in books.items():
        rank_value = coerce_rank_value(item.rank_value)
        reason = _drop_reason(item, rank_value, expected_domain)
        if reason is not None:
            dropped.append(DroppedItem(item_key, reason))
            continue
        candidates.append((rank_value, item_key, item))

    candidates.sort(key=lambda candidate: candidate[0])

    entries: dict[str, LeaderboardEntry] = {}
    for position, (rank_value, item_key, item) in enumerate(candidates, start=1):
        entries[item_key] = LeaderboardEntry(
            rank=position,
            title=decode_html_entities(item.title).strip(),
            author=decode_html_entities(item.author).strip(),
            cover_url=(item.cover_url or "").strip(),
            rank_value=rank_value,
            source_url=(item.source_url or "").strip(),
        )

    return PublishedLeaderboard(version=version, last_updated=timestamp, books=entries), dropped


def validate_leaderboard(leaderboard: PublishedLeaderboard, expected_domain: str) -> None:
    """Raise :class:`PublicationValidationError` listing every violation found."""
    problems: list[str] = []

    if not isinstance(leaderboard.version, str) or not leaderboard.version.strip():
        problems.append("version must be a non-empty string")
    try:
        parse_iso(leaderboard.last_updated)
    except (TypeError, ValueError):
        problems.append(f"last_updated is not a valid timestamp: {leaderboard.last_updated!r}")

    ranks: list[int] = []
    for item_key, entry in leaderboard.books.items():
        if not item_key:
            problems.append("empty item key")
        for name in ("title", "author"):
            value = getattr(entry, name)
            if not isinstance(value, str) or not value.strip():
                problems.append(f"{item_key}: {name} must be a non-empty string")
        if not is_absolute_http_url(entry.cover_url):
            problems.append(f"{item_key}: cover_url is not an absolute http(s) URL")
        if not belongs_to_domain(entry.source_url, expected_domain):
            problems.append(f"{item_key}: source_url is not on {expected_domain}")
        if isinstance(entry.rank_value, bool) or not isinstance(entry.rank_value, int):
            problems.append(f"{item_key}: rank_value must be an integer")
        if isinstance(entry.rank, bool) or not isinstance(entry.rank, int):
            problems.append(f"{item_key}: rank must be an integer")
        else:
            ranks.append(entry.rank)

    expected_ranks = list(range(1, len(leaderboard.books) + 1))
    if sorted(ranks) != expected_ranks:
        problems.append("ranks are not the dense sequence 1..N")

    if problems:
        raise PublicationValidationError(
            message="; ".join(problems[:10]) + (f" (+{len(problems) - 10} more)" if len(problems) > 10 else ""),
            provider_name="publisher",
        )


class Publisher:
    """Publication stage.

    Parameters
    ----------
    repository:
        Typed access to the data directory.
    version:
        ``version`` field written into the artifact.
    expected_domain:
        Host every ``source_url`` must belong to.
    """

    def __init__(
        self,
        repository: DocumentRepository,
        version: str = "1.0",
        expected_domain: str = "amazon.com",
        progress: ProgressTracker | None = None,
    ) -> None:
        self._repository = repository
        self._version = version
        self._expected_domain = expected_domain
        self._progress = progress

    async def run(self) -> StageResult:
        try:
            stats = await self._publish()
        except LeaderboardError as exc:
            logger.error("publication_failed", error=str(exc))
            return StageResult(stage=Stage.PUBLICATION, success=False, error=str(exc))
        return StageResult(stage=Stage.PUBLICATION, success=True, stats=stats)

    def assemble(
        self,
        books: dict[str, Item],
        timestamp: str | None = None,
    ) -> tuple[PublishedLeaderboard, list[DroppedItem]]:
        """Build and validate the artifact without writing it."""
        leaderboard, dropped = build_leaderboard(
            books, self._version, timestamp or utc_now_iso(), self._expected_domain
        )
        for entry in dropped:
            logger.warning("item_not_published", item_key=entry.item_key, reason=entry.reason)
        validate_leaderboard(leaderboard, self._expected_domain)
        return leaderboard, dropped

    async def _publish(self) -> dict[str, Any]:
        database = await self._repository.load_item_database()
        total = len(database.books)
        await self._report(0, total, f"Publishing {total} items")

        leaderboard, dropped = self.assemble(database.books)
        await self._repository.save_leaderboard(leaderboard)

        last_publish = {
            "timestamp": leaderboard.last_updated,
            "total_books": total,
            "ranked_books": len(leaderboard.books),
        }
        await self._repository.save_item_database(database.model_copy(update={"last_publish": last_publish}))

        stats = {
            "total_items": total,
            "ranked_items": len(leaderboard.books),
            "dropped": len(dropped),
            "timestamp": leaderboard.last_updated,
        }
        logger.info("publication_completed", **stats)
        await self._report(total, total, f"Published {len(leaderboard.books)} items")
        return stats

    async def _report(self, current: int, total: int, message: str) -> None:
        if self._progress is not None:
            await self._progress.update(Stage.PUBLICATION, current, total, message)
