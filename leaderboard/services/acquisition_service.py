"""Acquisition stage: fetch, parse and classify every pending submission.

Submissions are processed strictly one at a time, in queue order.  For
each one the stage

1. extracts the item key (``invalid_key`` when absent or off-domain),
2. fetches the page through the injected :class:`IPageFetcher`, which owns
   retry/backoff (``network_error`` once it gives up),
3. parses the page and classifies it (``wrong_format``,
   ``missing_rank_value``, ``missing_metadata`` or ``success``),
4. upserts the item on success and persists ``metadata.json``,
5. waits a random politeness delay before the next submission.

The item database is written after every submission so a crash loses at
most one item's progress.  Terminal outcomes are not retried within the
cycle; the cleaner prunes submissions that keep failing.
"""

from __future__ import annotations

import asyncio
import random
from collections import Counter
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from leaderboard.interfaces.page_fetcher import FetchSession, IPageFetcher
from leaderboard.models import (
    Item,
    ItemDatabase,
    RankHistoryEntry,
    ScrapingProgress,
    Stage,
    StageResult,
    Submission,
)
from leaderboard.pipeline.progress_tracker import ProgressTracker
from leaderboard.services.page_parser import ParsedPage, ProductPageParser
from leaderboard.storage.documents import DocumentRepository
from leaderboard.utils.errors import FetchError, LeaderboardError, StoreError
from leaderboard.utils.item_key import belongs_to_domain, extract_item_key, is_absolute_http_url
from leaderboard.utils.logging import get_logger
from leaderboard.utils.timestamps import utc_now_iso

logger = get_logger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class AcquisitionStatus:
    SUCCESS = "success"
    INVALID_KEY = "invalid_key"
    NETWORK_ERROR = "network_error"
    WRONG_FORMAT = "wrong_format"
    MISSING_RANK_VALUE = "missing_rank_value"
    MISSING_METADATA = "missing_metadata"


@dataclass(frozen=True)
class AcquisitionOutcome:
    """Classified result for one submission."""

    url: str
    item_key: str | None
    status: str
    detail: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == AcquisitionStatus.SUCCESS


def classify_page(parsed: ParsedPage) -> tuple[str, str | None]:
    """Map a parsed page to ``(status, detail)``.  Cover is optional here."""
    if not parsed.is_expected_format:
        return AcquisitionStatus.WRONG_FORMAT, "no format signal found"
    if parsed.rank_value is None:
        return AcquisitionStatus.MISSING_RANK_VALUE, None
    missing = [name for name in ("title", "author") if not getattr(parsed, name)]
    if missing:
        return AcquisitionStatus.MISSING_METADATA, "missing " + ", ".join(missing)
    return AcquisitionStatus.SUCCESS, None


def upsert_item(
    database: ItemDatabase,
    item_key: str,
    parsed: ParsedPage,
    source_url: str,
    timestamp: str,
) -> ItemDatabase:
    """Return *database* with *item_key* created or refreshed from *parsed*."""
    cover_url = parsed.cover_url if is_absolute_http_url(parsed.cover_url) else None
    existing = database.books.get(item_key)

    if existing is None:
        item = Item(
            title=parsed.title,
            author=parsed.author,
            cover_url=cover_url,
            rank_value=parsed.rank_value,
            source_url=source_url,
            status="active",
            first_seen=timestamp,
            last_checked=timestamp,
            history=[],
        )
    else:
        history = [*existing.history, RankHistoryEntry(timestamp=timestamp, rank_value=parsed.rank_value)]
        item = existing.model_copy(
            update={
                "title": parsed.title,
                "author": parsed.author,
                # A page that momentarily lacks an image keeps the known cover.
                "cover_url": cover_url or existing.cover_url,
                "rank_value": parsed.rank_value,
                "source_url": source_url,
                "status": "active",
                "last_checked": timestamp,
                "history": history,
            }
        )

    return database.model_copy(update={"books": {**database.books, item_key: item}})


class AcquisitionService:
    """Acquisition stage.

    Parameters
    ----------
    repository:
        Typed access to the data directory.
    fetcher:
        Page transport (retry/backoff lives there).
    parser:
        Product-page field extractor.
    expected_domain:
        Host every submission URL must belong to.
    delay_range:
        ``(min, max)`` seconds of politeness delay between submissions.
    sleep:
        Awaitable used for the politeness delay; tests pass a no-op.
    """

    def __init__(
        self,
        repository: DocumentRepository,
        fetcher: IPageFetcher,
        parser: ProductPageParser | None = None,
        expected_domain: str = "amazon.com",
        delay_range: tuple[float, float] = (3.0, 10.0),
        progress: ProgressTracker | None = None,
        sleep: Sleep = asyncio.sleep,
        rng: random.Random | None = None,
    ) -> None:
        self._repository = repository
        self._fetcher = fetcher
        self._parser = parser or ProductPageParser()
        self._expected_domain = expected_domain
        self._delay_range = delay_range
        self._progress = progress
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._last_outcomes: list[AcquisitionOutcome] = []

    @property
    def last_outcomes(self) -> list[AcquisitionOutcome]:
        """Per-submission outcomes of the most recent :meth:`run`."""
        return list(self._last_outcomes)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def run(self) -> StageResult:
        try:
            stats = await self._acquire()
        except LeaderboardError as exc:
            logger.error("acquisition_failed", error=str(exc))
            return StageResult(stage=Stage.ACQUISITION, success=False, error=str(exc))
        return StageResult(stage=Stage.ACQUISITION, success=True, stats=stats)

    async def acquire(
        self,
        submissions: list[Submission],
        database: ItemDatabase,
    ) -> tuple[ItemDatabase, list[AcquisitionOutcome]]:
        """Process *submissions* in order, persisting *database* after each one.

        Raises
        ------
        StoreError
            When the item database cannot be persisted; the stage aborts.
        """
        total = len(submissions)
        successful = 0
        outcomes: list[AcquisitionOutcome] = []
        session = self._fetcher.new_session()

        database = database.model_copy(
            update={"scraping_progress": ScrapingProgress(current=0, total=total, successful=0)}
        )
        await self._repository.save_item_database(database)
        await self._report(0, total, f"Acquiring {total} submissions")

        for index, submission in enumerate(submissions, start=1):
            outcome, parsed, session = await self._process(submission, session)
            outcomes.append(outcome)

            if outcome.succeeded and parsed is not None and outcome.item_key:
                successful += 1
                database = upsert_item(database, outcome.item_key, parsed, submission.url, utc_now_iso())
                logger.info(
                    "item_acquired",
                    item_key=outcome.item_key,
                    title=parsed.title,
                    rank_value=parsed.rank_value,
                )
            else:
                logger.warning(
                    "acquisition_outcome",
                    url=outcome.url,
                    item_key=outcome.item_key,
                    reason=outcome.status,
                    detail=outcome.detail,
                )

            database = database.model_copy(
                update={"scraping_progress": ScrapingProgress(current=index, total=total, successful=successful)}
            )
            await self._repository.save_item_database(database)
            await self._report(index, total, f"{outcome.status}: {outcome.url}")

            if index < total:
                await self._politeness_delay()

        database = database.model_copy(update={"scraping_progress": None, "last_update": utc_now_iso()})
        await self._repository.save_item_database(database)
        return database, outcomes

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _acquire(self) -> dict[str, Any]:
        queue = await self._repository.load_submissions()
        database = await self._repository.load_item_database()

        database, outcomes = await self.acquire(queue.submissions, database)
        self._last_outcomes = outcomes

        by_status = Counter(outcome.status for outcome in outcomes)
        succeeded = by_status[AcquisitionStatus.SUCCESS]
        stats: dict[str, Any] = {
            "attempted": len(outcomes),
            "succeeded": succeeded,
            "failed": len(outcomes) - succeeded,
            "database_size": len(database.books),
            "outcomes": dict(by_status),
        }
        logger.info("acquisition_completed", **{k: v for k, v in stats.items() if k != "outcomes"})
        return stats

    async def _process(
        self,
        submission: Submission,
        session: FetchSession,
    ) -> tuple[AcquisitionOutcome, ParsedPage | None, FetchSession]:
        url = submission.url
        item_key = extract_item_key(url)
        if item_key is None:
            return AcquisitionOutcome(url, None, AcquisitionStatus.INVALID_KEY, "no item key in url"), None, session
        if not belongs_to_domain(url, self._expected_domain):
            detail = f"url is outside {self._expected_domain}"
            return AcquisitionOutcome(url, item_key, AcquisitionStatus.INVALID_KEY, detail), None, session

        try:
            result, session = await self._fetcher.fetch(url, session)
            parsed = self._parser.parse(result.text)
        except FetchError as exc:
            return AcquisitionOutcome(url, item_key, AcquisitionStatus.NETWORK_ERROR, exc.reason), None, session
        except StoreError:
            raise
        except Exception as exc:
            logger.exception("acquisition_unexpected_error", url=url, item_key=item_key)
            return AcquisitionOutcome(url, item_key, AcquisitionStatus.NETWORK_ERROR, str(exc)), None, session

        status, detail = classify_page(parsed)
        return AcquisitionOutcome(url, item_key, status, detail), parsed, session

    async def _politeness_delay(self) -> None:
        low, high = self._delay_range
        delay = self._rng.uniform(low, high)
        logger.debug("politeness_delay", delay_s=round(delay, 1))
        await self._sleep(delay)

    async def _report(self, current: int, total: int, message: str) -> None:
        if self._progress is not None:
            await self._progress.update(Stage.ACQUISITION, current, total, message)
