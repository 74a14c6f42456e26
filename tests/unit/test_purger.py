"""Unit tests for the filter (purge) stage."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from leaderboard.models import Blacklist, Item, RejectionReason
from leaderboard.services.blacklist_matcher import BlacklistMatcher
from leaderboard.services.purger import Purger, filter_items
from leaderboard.storage.documents import DocumentRepository


def _books() -> dict[str, Any]:
    return {
        "B0AAAAAAAA": {
            "title": "Good Book",
            "author": "Jane Doe",
            "rank_value": 5,
            "source_url": "https://www.amazon.com/dp/B0AAAAAAAA",
        },
        "B0BBBBBBBB": {
            "title": "The Banned Book",
            "author": "Someone",
            "rank_value": 7,
            "source_url": "https://www.amazon.com/dp/B0BBBBBBBB",
        },
        "B0CCCCCCCC": {"title": "Harmless", "author": "Nobody", "rank_value": 9},
    }


class ExplodingMatcher(BlacklistMatcher):
    def check(self, item: Item) -> Any:
        if item.title == "Harmless":
            raise RuntimeError("boom")
        return super().check(item)


class TestFilterItems:
    def test_preserves_order_and_snapshots(self) -> None:
        books = {key: Item.model_validate(value) for key, value in _books().items()}
        kept, rejections = filter_items(
            books, BlacklistMatcher(Blacklist(title_patterns=["banned"])), "2024-01-01T00:00:00Z"
        )

        assert list(kept) == ["B0AAAAAAAA", "B0CCCCCCCC"]
        record = rejections[0]
        assert record.item_key == "B0BBBBBBBB"
        assert record.rank_value == 7
        assert record.source_url == "https://www.amazon.com/dp/B0BBBBBBBB"
        assert record.timestamp == "2024-01-01T00:00:00Z"


class TestPurger:
    @pytest.mark.asyncio
    async def test_author_purge(
        self,
        repository: DocumentRepository,
        write_document: Callable[[str, Any], Any],
        read_document: Callable[[str], Any],
    ) -> None:
        write_document("metadata.json", {"books": _books()})
        write_document("blacklist.json", {"authors": ["Jane Doe"]})

        result = await Purger(repository).run()

        assert result.success
        assert result.stats == {"total_scanned": 3, "purged": 1, "remaining": 2, "errors": 0}
        metadata = read_document("metadata.json")
        assert "B0AAAAAAAA" not in metadata["books"]
        assert metadata["stats"]["total_books"] == 2
        assert metadata["stats"]["last_purge"]["books_purged"] == 1

        rejected = read_document("brownlist.json")["rejected_entries"]
        assert len(rejected) == 1
        assert rejected[0]["reason"] == RejectionReason.BLACKLISTED_AUTHOR
        assert rejected[0]["matched_pattern"] == "Jane Doe"
        assert rejected[0]["title"] == "Good Book"

    @pytest.mark.asyncio
    async def test_legacy_title_purge(
        self,
        repository: DocumentRepository,
        write_document: Callable[[str, Any], Any],
        read_document: Callable[[str], Any],
    ) -> None:
        write_document("metadata.json", {"books": _books()})
        write_document("blacklist.json", {"patterns": ["title:banned"]})

        await Purger(repository).run()

        assert list(read_document("metadata.json")["books"]) == ["B0AAAAAAAA", "B0CCCCCCCC"]
        rejected = read_document("brownlist.json")["rejected_entries"]
        assert rejected[0]["reason"] == RejectionReason.BLACKLISTED_TITLE
        assert rejected[0]["matched_pattern"] == "title:banned"

    @pytest.mark.asyncio
    async def test_missing_blacklist_keeps_everything(
        self,
        repository: DocumentRepository,
        write_document: Callable[[str, Any], Any],
        read_document: Callable[[str], Any],
        data_dir: Path,
    ) -> None:
        write_document("metadata.json", {"books": _books()})

        result = await Purger(repository).run()

        assert result.stats["purged"] == 0
        assert len(read_document("metadata.json")["books"]) == 3
        assert not (data_dir / "brownlist.json").exists()

    @pytest.mark.asyncio
    async def test_malformed_blacklist_is_empty_policy(
        self,
        repository: DocumentRepository,
        write_document: Callable[[str, Any], Any],
        data_dir: Path,
    ) -> None:
        write_document("metadata.json", {"books": _books()})
        (data_dir / "blacklist.json").write_text("{not json", encoding="utf-8")

        result = await Purger(repository).run()

        assert result.success
        assert result.stats["purged"] == 0

    @pytest.mark.asyncio
    async def test_check_error_purges_conservatively(
        self,
        repository: DocumentRepository,
        write_document: Callable[[str, Any], Any],
        read_document: Callable[[str], Any],
    ) -> None:
        write_document("metadata.json", {"books": _books()})
        write_document("blacklist.json", {"authors": ["Nobody Known"]})

        result = await Purger(repository, matcher_factory=ExplodingMatcher).run()

        assert result.stats["errors"] == 1
        assert "B0CCCCCCCC" not in read_document("metadata.json")["books"]
        rejected = read_document("brownlist.json")["rejected_entries"]
        assert rejected[0]["reason"] == RejectionReason.ERROR_DURING_CHECK

    @pytest.mark.asyncio
    async def test_brownlist_is_appended(
        self,
        repository: DocumentRepository,
        write_document: Callable[[str, Any], Any],
        read_document: Callable[[str], Any],
    ) -> None:
        write_document("metadata.json", {"books": _books()})
        write_document("blacklist.json", {"title_patterns": ["banned"]})
        write_document("brownlist.json", {"rejected_entries": [{"item_key": "OLD"}]})

        await Purger(repository).run()

        keys = [entry["item_key"] for entry in read_document("brownlist.json")["rejected_entries"]]
        assert keys == ["OLD", "B0BBBBBBBB"]

    @pytest.mark.asyncio
    async def test_malformed_item_does_not_block_filtering(
        self,
        repository: DocumentRepository,
        write_document: Callable[[str, Any], Any],
        read_document: Callable[[str], Any],
    ) -> None:
        books = _books()
        books["B0BBBBBBBB"]["history"] = None
        books["B0DDDDDDDD"] = {"title": "Broken", "history": "not a list"}
        write_document("metadata.json", {"books": books})
        write_document("blacklist.json", {"title_patterns": ["banned"]})

        result = await Purger(repository).run()

        assert result.success
        assert list(read_document("metadata.json")["books"]) == ["B0AAAAAAAA", "B0CCCCCCCC"]
        rejected = read_document("brownlist.json")["rejected_entries"]
        assert [r["item_key"] for r in rejected] == ["B0BBBBBBBB"]

    @pytest.mark.asyncio
    async def test_malformed_database_fails_stage(
        self, repository: DocumentRepository, data_dir: Path
    ) -> None:
        (data_dir / "metadata.json").write_text("[", encoding="utf-8")

        result = await Purger(repository).run()

        assert not result.success
