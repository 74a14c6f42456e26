"""The published leaderboard artifact (``books.json``)."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class LeaderboardEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    rank: int
    title: str
    author: str
    cover_url: str
    rank_value: int
    source_url: str


class PublishedLeaderboard(BaseModel):
    """Read-only public view.  ``books`` is keyed by item key, ranks are dense 1..N."""

    model_config = ConfigDict(frozen=True)

    version: str
    last_updated: str
    books: dict[str, LeaderboardEntry] = Field(default_factory=dict)
