"""Item key extraction and source-domain checks for retail product URLs."""

from __future__ import annotations

import re
from urllib.parse import urlparse

# The item key (ASIN) sits in a fixed path segment: /dp/<KEY> or
# /gp/product/<KEY>.
_ITEM_KEY_PATTERNS = (
    re.compile(r"/dp/([A-Z0-9]{10})"),
    re.compile(r"/gp/product/([A-Z0-9]{10})"),
)


def extract_item_key(url: str | None) -> str | None:
    """Return the 10-character item key embedded in *url*, or ``None``.

    Pure function: the same input always yields the same result.
    """
    if not url or not isinstance(url, str):
        return None
    for pattern in _ITEM_KEY_PATTERNS:
        match = pattern.search(url)
        if match:
            return match.group(1)
    return None


def belongs_to_domain(url: str | None, domain: str) -> bool:
    """Return ``True`` when *url*'s host is *domain* or one of its subdomains."""
    if not url or not isinstance(url, str):
        return False
    host = (urlparse(url.strip()).hostname or "").lower()
    domain = domain.lower().lstrip(".")
    return host == domain or host.endswith("." + domain)


def is_absolute_http_url(url: str | None) -> bool:
    if not url or not isinstance(url, str):
        return False
    parsed = urlparse(url.strip())
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)
