"""Utility modules for the leaderboard cycle.

- **errors** -- exception hierarchy rooted at LeaderboardError.
- **logging** -- structlog setup: console renderer in development, JSON in
  production; cycle-scoped context via contextvars.
- **retry** -- one capped-exponential-backoff policy for every transient
  acquisition failure.
- **text_normalizer** -- accent/case/punctuation folding and the author and
  title matching rules used by the filter stage.
- **item_key** -- item-key extraction and domain checks for product URLs.
- **timestamps** -- UTC ISO-8601 helpers.
"""

# -- Domain exception hierarchy --------------------------------------------
from leaderboard.utils.errors import (
    BackupRestoreError,
    ConfigurationError,
    CycleLockError,
    DocumentNotFoundError,
    FetchError,
    InvalidDocumentError,
    LeaderboardError,
    PublicationValidationError,
    RateLimitError,
    StageError,
    StoreError,
)

# -- Item keys ---------------------------------------------------------------
from leaderboard.utils.item_key import belongs_to_domain, extract_item_key, is_absolute_http_url

# -- Structured logging ------------------------------------------------------
from leaderboard.utils.logging import configure_logging, get_logger

# -- Retry -------------------------------------------------------------------
from leaderboard.utils.retry import RetryDecision, RetryPolicy

# -- Text normalization --------------------------------------------------------
from leaderboard.utils.text_normalizer import (
    authors_match,
    decode_html_entities,
    normalize_text,
    title_matches,
)

# -- Timestamps ----------------------------------------------------------------
from leaderboard.utils.timestamps import parse_iso, to_iso, utc_now, utc_now_iso

__all__ = [
    "BackupRestoreError",
    "ConfigurationError",
    "CycleLockError",
    "DocumentNotFoundError",
    "FetchError",
    "InvalidDocumentError",
    "LeaderboardError",
    "PublicationValidationError",
    "RateLimitError",
    "RetryDecision",
    "RetryPolicy",
    "StageError",
    "StoreError",
    "authors_match",
    "belongs_to_domain",
    "configure_logging",
    "decode_html_entities",
    "extract_item_key",
    "get_logger",
    "is_absolute_http_url",
    "normalize_text",
    "parse_iso",
    "title_matches",
    "to_iso",
    "utc_now",
    "utc_now_iso",
]
