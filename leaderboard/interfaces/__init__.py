"""Abstract interfaces for external collaborators.

Concrete adapters live in ``leaderboard/providers/`` and are injected by
``leaderboard.main.build_orchestrator``, so stages can be tested with fakes.

    Interface      ->  Concrete implementation
    IPageFetcher   ->  RetailPageFetcher (httpx)
"""

from leaderboard.interfaces.page_fetcher import FetchResult, FetchSession, IPageFetcher

__all__ = ["FetchResult", "FetchSession", "IPageFetcher"]
