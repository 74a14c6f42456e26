"""Retail product-page transport built on httpx.

Fetches one page at a time with browser-like headers, follows redirects
hop by hop, and hands every attempt's outcome (a response or the exception
it raised) to a single :class:`RetryPolicy`.  Rate limiting (429/503),
transport errors, timeouts and anti-bot challenge pages are all retried
with the same capped exponential backoff; redirects themselves never
consume the retry budget.

Cookies and the user agent travel in the :class:`FetchSession` value
passed in and returned, so the fetcher carries no per-run state.
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from leaderboard.interfaces.page_fetcher import FetchResult, FetchSession, IPageFetcher
from leaderboard.utils.errors import FetchError, RateLimitError
from leaderboard.utils.logging import get_logger
from leaderboard.utils.retry import RetryPolicy

Sleep = Callable[[float], Awaitable[None]]

_DEFAULT_TIMEOUT = 30.0
_DEFAULT_MAX_REDIRECTS = 5

_USER_AGENTS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36 Edg/120.0.0.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.2.1 Safari/605.1.15",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:122.0) Gecko/20100101 Firefox/122.0",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36",
)

_BROWSER_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
    "DNT": "1",
    "Upgrade-Insecure-Requests": "1",
    "Sec-Fetch-Dest": "document",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Site": "none",
    "Sec-Fetch-User": "?1",
}

# Lowercased; matched case-insensitively against the body.
_CHALLENGE_MARKERS = (
    "type the characters you see in this image",
    "enter the characters you see below",
    "sorry, we just need to make sure you're not a robot",
    "to discuss automated access to amazon data please contact",
    "bot check",
    "captcha",
)

_RETRYABLE_STATUS = {429: "rate_limited", 503: "service_unavailable"}


def is_challenge_page(body: str) -> bool:
    """Return ``True`` if *body* looks like an anti-automation challenge."""
    lowered = body.lower()
    return any(marker in lowered for marker in _CHALLENGE_MARKERS)


def classify_attempt(outcome: Any) -> str | None:
    """Name the transient condition in one attempt's outcome, or ``None``.

    ``outcome`` is an :class:`httpx.Response` or the exception raised while
    sending the request.
    """
    if isinstance(outcome, httpx.TimeoutException):
        return "timeout"
    if isinstance(outcome, httpx.TransportError):
        return "transport_error"
    if isinstance(outcome, httpx.Response):
        if outcome.status_code in _RETRYABLE_STATUS:
            return _RETRYABLE_STATUS[outcome.status_code]
        if outcome.status_code == 200 and is_challenge_page(outcome.text):
            return "challenge_page"
    return None


def parse_set_cookies(headers: httpx.Headers) -> dict[str, str]:
    """Extract ``name=value`` pairs from every ``Set-Cookie`` header."""
    cookies: dict[str, str] = {}
    for raw in headers.get_list("set-cookie"):
        pair = raw.split(";", 1)[0]
        name, sep, value = pair.partition("=")
        if sep and name.strip():
            cookies[name.strip()] = value.strip()
    return cookies


class RetailPageFetcher(IPageFetcher):
    """Page fetcher for the retail product site.

    Parameters
    ----------
    http_client:
        Shared client; one is created (and closed by :meth:`aclose`) when
        omitted.  Redirects are followed manually, so an injected client
        should not follow them itself.
    retry_policy:
        Backoff policy; defaults to one using :func:`classify_attempt`.
    max_redirects:
        Redirect hops allowed per fetch.
    sleep:
        Awaitable used for backoff waits; tests pass a no-op.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        retry_policy: RetryPolicy | None = None,
        max_redirects: int = _DEFAULT_MAX_REDIRECTS,
        timeout: float = _DEFAULT_TIMEOUT,
        sleep: Sleep = asyncio.sleep,
        rng: random.Random | None = None,
    ) -> None:
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            follow_redirects=False,
        )
        self._rng = rng or random.Random()
        self._policy = retry_policy or RetryPolicy(classifier=classify_attempt, rng=self._rng)
        self._max_redirects = max_redirects
        self._sleep = sleep
        self._logger = get_logger(__name__)

    # ------------------------------------------------------------------
    # IPageFetcher implementation
    # ------------------------------------------------------------------

    def new_session(self) -> FetchSession:
        return FetchSession(user_agent=self._rng.choice(_USER_AGENTS))

    async def fetch(self, url: str, session: FetchSession) -> tuple[FetchResult, FetchSession]:
        current_url = url
        retries = 0
        requests = 0
        hops = 0

        while True:
            requests += 1
            outcome: httpx.Response | httpx.HTTPError
            try:
                outcome = await self._client.get(current_url, headers=self._headers(session))
                session = session.with_cookies(parse_set_cookies(outcome.headers))
            except httpx.HTTPError as exc:
                outcome = exc

            if isinstance(outcome, httpx.Response) and outcome.is_redirect:
                hops += 1
                current_url = self._follow(url, current_url, outcome, hops)
                continue

            decision = self._policy.evaluate(outcome, retries)
            if decision.retry:
                self._logger.warning(
                    "fetch_retry_scheduled",
                    url=current_url,
                    reason=decision.reason,
                    attempt=retries + 1,
                    max_retries=self._policy.max_retries,
                    delay_s=round(decision.delay, 1),
                )
                await self._sleep(decision.delay)
                retries += 1
                continue

            cause = outcome if isinstance(outcome, Exception) else None
            if decision.exhausted:
                error_cls = RateLimitError if decision.reason == "rate_limited" else FetchError
                raise error_cls(
                    message=f"Gave up on {url} after {retries + 1} attempts ({decision.reason})",
                    provider_name=self.get_provider_name(),
                    reason=decision.reason or "network_error",
                ) from cause
            if cause is not None:
                raise FetchError(
                    message=f"HTTP error fetching {url}: {cause}",
                    provider_name=self.get_provider_name(),
                ) from cause

            if outcome.status_code != 200:
                raise FetchError(
                    message=f"HTTP status code {outcome.status_code} for {url}",
                    provider_name=self.get_provider_name(),
                    reason=f"http_{outcome.status_code}",
                )

            self._logger.debug("page_fetched", url=current_url, attempts=requests, bytes=len(outcome.content))
            result = FetchResult(
                url=str(outcome.url),
                status_code=outcome.status_code,
                text=outcome.text,
                attempts=requests,
            )
            return result, session

    def get_provider_name(self) -> str:
        return "retail_page"

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _headers(self, session: FetchSession) -> dict[str, str]:
        headers = dict(_BROWSER_HEADERS)
        headers["User-Agent"] = session.user_agent
        headers["Referer"] = "https://www.amazon.com/"
        if session.cookies:
            headers["Cookie"] = "; ".join(f"{name}={value}" for name, value in session.cookies)
        return headers

    def _follow(self, original_url: str, current_url: str, response: httpx.Response, hops: int) -> str:
        if hops > self._max_redirects:
            raise FetchError(
                message=f"Too many redirects fetching {original_url}",
                provider_name=self.get_provider_name(),
                reason="too_many_redirects",
            )
        location = response.headers.get("location")
        if not location:
            raise FetchError(
                message=f"Redirect without Location header for {current_url}",
                provider_name=self.get_provider_name(),
            )
        target = str(httpx.URL(current_url).join(location))
        self._logger.debug("fetch_redirect", source=current_url, target=target, hop=hops)
        return target
