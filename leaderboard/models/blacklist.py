"""Filter policy (``blacklist.json``) and the rejection audit (``brownlist.json``)."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

# Prefix marking a title rule inside the legacy ``patterns`` list.
LEGACY_TITLE_PREFIX = "title:"


class Blacklist(BaseModel):
    """Content-filtering policy.

    ``patterns`` is the legacy mixed list: ``"title:<text>"`` entries are
    title rules, anything else is an author rule.  An absent document is
    equivalent to ``Blacklist()``.
    """

    model_config = ConfigDict(frozen=True, extra="allow")

    authors: list[str] = Field(default_factory=list)
    title_patterns: list[str] = Field(default_factory=list)
    patterns: list[str] = Field(default_factory=list)
    version: str | None = None
    last_updated: str | None = None

    def is_empty(self) -> bool:
        return not (self.authors or self.title_patterns or self.patterns)


class RejectionReason:
    BLACKLISTED_AUTHOR = "blacklisted_author"
    BLACKLISTED_TITLE = "blacklisted_title"
    ERROR_DURING_CHECK = "error_during_check"


class BlacklistMatch(BaseModel):
    """Why an item was rejected."""

    model_config = ConfigDict(frozen=True)

    reason: str
    matched_pattern: str | None = None


class RejectionRecord(BaseModel):
    """Snapshot of a purged item, appended to the brownlist."""

    model_config = ConfigDict(frozen=True)

    timestamp: str
    item_key: str
    title: str | None = None
    author: str | None = None
    source_url: str | None = None
    rank_value: int | str | float | None = None
    reason: str
    matched_pattern: str | None = None

