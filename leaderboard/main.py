"""Composition root: wires settings, storage, transport and stages together.

All construction happens here so services only ever receive their
collaborators; tests build the same graph with fakes injected.
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from leaderboard.config.settings import Settings
from leaderboard.models import CycleResult
from leaderboard.pipeline.cycle_lock import CycleLock
from leaderboard.pipeline.orchestrator import CycleOrchestrator
from leaderboard.pipeline.progress_tracker import ProgressTracker
from leaderboard.providers.fetch.retail_page_fetcher import RetailPageFetcher, classify_attempt
from leaderboard.services.acquisition_service import AcquisitionService
from leaderboard.services.page_parser import ProductPageParser
from leaderboard.services.publisher import Publisher
from leaderboard.services.purger import Purger
from leaderboard.services.submission_cleaner import SubmissionCleaner
from leaderboard.storage.documents import DocumentName, DocumentRepository
from leaderboard.storage.json_store import JsonStore
from leaderboard.utils.retry import RetryPolicy

Sleep = Callable[[float], Awaitable[None]]


def build_http_client(settings: Settings) -> httpx.AsyncClient:
    """Client for product pages; redirects are followed by the fetcher itself."""
    return httpx.AsyncClient(timeout=httpx.Timeout(settings.fetch_timeout), follow_redirects=False)


def build_components(
    settings: Settings,
    http_client: httpx.AsyncClient,
    sleep: Sleep = asyncio.sleep,
    rng: random.Random | None = None,
) -> dict[str, Any]:
    """Construct every collaborator of the cycle, keyed by role name."""
    rng = rng or random.Random()
    store = JsonStore(settings.data_dir)
    repository = DocumentRepository(store)
    progress = ProgressTracker()

    retry_policy = RetryPolicy(
        classifier=classify_attempt,
        max_retries=settings.fetch_max_retries,
        base_delay=settings.retry_base_delay,
        min_delay=settings.retry_min_delay,
        jitter=settings.retry_jitter,
        rng=rng,
    )
    fetcher = RetailPageFetcher(
        http_client=http_client,
        retry_policy=retry_policy,
        max_redirects=settings.max_redirects,
        sleep=sleep,
        rng=rng,
    )

    cleaner = SubmissionCleaner(
        repository,
        max_failed_attempts=settings.cleaner_max_failed_attempts,
        progress=progress,
    )
    acquisition = AcquisitionService(
        repository,
        fetcher,
        parser=ProductPageParser(),
        expected_domain=settings.expected_domain,
        delay_range=(settings.request_delay_min, settings.request_delay_max),
        progress=progress,
        sleep=sleep,
        rng=rng,
    )
    purger = Purger(repository, progress=progress)
    publisher = Publisher(
        repository,
        version=settings.leaderboard_version,
        expected_domain=settings.expected_domain,
        progress=progress,
    )
    lock = CycleLock(store.path_for(DocumentName.LOCK), stale_after=settings.stale_lock_seconds)

    orchestrator = CycleOrchestrator(
        repository=repository,
        lock=lock,
        cleaner=cleaner,
        acquisition=acquisition,
        purger=purger,
        publisher=publisher,
        progress_tracker=progress,
    )
    return {
        "store": store,
        "repository": repository,
        "progress_tracker": progress,
        "fetcher": fetcher,
        "cleaner": cleaner,
        "acquisition": acquisition,
        "purger": purger,
        "publisher": publisher,
        "lock": lock,
        "orchestrator": orchestrator,
        "settings": settings,
    }


def build_orchestrator(
    settings: Settings,
    http_client: httpx.AsyncClient,
    sleep: Sleep = asyncio.sleep,
) -> CycleOrchestrator:
    return build_components(settings, http_client, sleep=sleep)["orchestrator"]


async def run_cycle(settings: Settings) -> CycleResult:
    """Run one cycle with a client scoped to the call (standalone / CLI usage)."""
    async with build_http_client(settings) as client:
        orchestrator = build_orchestrator(settings, client)
        return await orchestrator.run_cycle()
