"""Pydantic v2 models for tracked items and the item database (``metadata.json``).

An :class:`Item` exists in the database only while its last acquisition
succeeded and it has not been blacklisted.  Items are frozen; the
acquisition stage produces a new instance per refresh (``model_copy``) and
appends to ``history`` rather than editing in place.

:class:`ItemDatabase` is deliberately permissive: it keeps unknown
top-level keys and tolerates legacy item shapes (``bsr``/``url`` instead of
``rank_value``/``source_url``, rank values stored as ``"1,234"``, ``null``
history) so that older data directories keep working.  Items are validated
one at a time; one that still fails lands in :attr:`ItemDatabase.malformed`
and is not written back.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from leaderboard.models.cycle import CycleStatus


class RankHistoryEntry(BaseModel):
    """One observation of an item's rank value."""

    model_config = ConfigDict(frozen=True)

    timestamp: str
    rank_value: int | str | None = None


class Item(BaseModel):
    """A tracked product, keyed by item key in :class:`ItemDatabase`."""

    model_config = ConfigDict(frozen=True, extra="allow")

    title: str | None = None
    author: str | None = None
    cover_url: str | None = None
    # Lower is better.  Normally an int; legacy data may hold "1,234".
    rank_value: int | str | float | None = None
    source_url: str | None = None
    status: str = "active"
    first_seen: str | None = None
    last_checked: str | None = None
    history: list[RankHistoryEntry] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _upgrade_legacy_fields(cls, data: Any) -> Any:
        # Documents written by the first deployment used bsr/url.
        if isinstance(data, dict):
            data = dict(data)
            if "rank_value" not in data and "bsr" in data:
                data["rank_value"] = data.pop("bsr")
            if "source_url" not in data and "url" in data:
                data["source_url"] = data.pop("url")
            for name in ("history", "status"):
                if name in data and data[name] is None:
                    del data[name]
        return data


class ScrapingProgress(BaseModel):
    """Acquisition progress, persisted while the stage runs."""

    current: int = 0
    total: int = 0
    successful: int = 0


class ItemDatabase(BaseModel):
    """The whole ``metadata.json`` document."""

    model_config = ConfigDict(extra="allow")

    books: dict[str, Item] = Field(default_factory=dict)
    last_update: str | None = None
    cycle_status: CycleStatus | None = None
    stats: dict[str, Any] = Field(default_factory=dict)
    last_publish: dict[str, Any] | None = None
    scraping_progress: ScrapingProgress | None = None
    # Item key -> validation error for entries dropped on load.
    malformed: dict[str, str] = Field(default_factory=dict, exclude=True)

    @model_validator(mode="before")
    @classmethod
    def _split_malformed(cls, data: Any) -> Any:
        if not isinstance(data, dict) or not isinstance(data.get("books"), dict):
            return data
        valid: dict[str, Item] = {}
        malformed: dict[str, str] = {}
        for item_key, raw in data["books"].items():
            try:
                valid[item_key] = Item.model_validate(raw)
            except ValidationError as exc:
                malformed[item_key] = str(exc)
        return {**data, "books": valid, "malformed": malformed}
