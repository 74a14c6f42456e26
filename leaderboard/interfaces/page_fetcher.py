"""Abstract base class for product-page fetch transports.

The acquisition stage never talks to the network directly; it goes
through an :class:`IPageFetcher`.  Transport state that the source site
cares about (cookies, the chosen user agent) lives in an explicit
:class:`FetchSession` value that is passed into each call and returned,
updated, alongside the result.  Fetchers therefore hold no per-run
mutable state and a test can inspect exactly what a call would send.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field, replace


@dataclass(frozen=True)
class FetchSession:
    """Immutable transport session.

    Attributes
    ----------
    user_agent:
        User-Agent header sent with every request of this session.
    cookies:
        Cookie name/value pairs collected from ``Set-Cookie`` headers,
        in the order they were first seen.
    """

    user_agent: str
    cookies: tuple[tuple[str, str], ...] = field(default_factory=tuple)

    def cookie_dict(self) -> dict[str, str]:
        return dict(self.cookies)

    def with_cookies(self, new_cookies: Mapping[str, str]) -> FetchSession:
        """Return a session with *new_cookies* merged over the current jar."""
        if not new_cookies:
            return self
        merged = self.cookie_dict()
        merged.update(new_cookies)
        return replace(self, cookies=tuple(merged.items()))


@dataclass(frozen=True)
class FetchResult:
    """A page that was fetched successfully (HTTP 200, no challenge).

    Attributes
    ----------
    url:
        The final URL after redirects.
    status_code:
        HTTP status of the final response.
    text:
        Decoded response body.
    attempts:
        Number of requests made, including retries and redirect hops.
    """

    url: str
    status_code: int
    text: str
    attempts: int = 1


# Concrete implementation: RetailPageFetcher (leaderboard/providers/fetch/)
class IPageFetcher(ABC):
    """Contract for transports that fetch product pages with retry/backoff."""

    @abstractmethod
    def new_session(self) -> FetchSession:
        """Return a fresh session to thread through a run of fetches."""

    @abstractmethod
    async def fetch(self, url: str, session: FetchSession) -> tuple[FetchResult, FetchSession]:
        """Fetch *url*, retrying transient failures.

        Parameters
        ----------
        url:
            Absolute product-page URL.
        session:
            The session returned by the previous call (or :meth:`new_session`).

        Returns
        -------
        tuple[FetchResult, FetchSession]
            The page and the session updated with any new cookies.

        Raises
        ------
        leaderboard.utils.errors.FetchError
            When the page could not be fetched within the retry budget, or
            the server answered with a non-retryable error status.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier for logs, e.g. ``"retail_page"``."""
