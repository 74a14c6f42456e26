"""Unit tests for the submission cleanup stage."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any
from unittest.mock import AsyncMock, patch

import pytest

from leaderboard.models import Item, ItemDatabase, Stage, Submission
from leaderboard.pipeline.progress_tracker import ProgressTracker
from leaderboard.services.submission_cleaner import (
    CleanupReason,
    SubmissionCleaner,
    clean_submissions,
)
from leaderboard.storage.documents import DocumentRepository

KNOWN = "https://www.amazon.com/dp/B0KNOWN000"
UNKNOWN = "https://www.amazon.com/dp/B0UNKNOWN0"


def _database(*keys: str) -> ItemDatabase:
    return ItemDatabase(books={key: Item(title="T", author="A", rank_value=1) for key in keys})


# ======================================================================
# Pure policy
# ======================================================================


class TestCleanSubmissions:
    def test_invalid_key_removed(self) -> None:
        kept, removed = clean_submissions([Submission(url="https://www.amazon.com/s?k=x")], _database())
        assert kept == []
        assert [r.reason for r in removed] == [CleanupReason.INVALID_KEY]

    def test_found_key_is_kept_and_reset(self) -> None:
        kept, removed = clean_submissions(
            [Submission(url=KNOWN, failed_attempts=2)], _database("B0KNOWN000")
        )
        assert removed == []
        assert kept[0].failed_attempts == 0

    def test_missing_key_increments(self) -> None:
        kept, removed = clean_submissions([Submission(url=UNKNOWN, failed_attempts=1)], _database())
        assert removed == []
        assert kept[0].failed_attempts == 2

    def test_missing_key_removed_at_threshold(self) -> None:
        kept, removed = clean_submissions([Submission(url=UNKNOWN, failed_attempts=2)], _database())
        assert kept == []
        assert [r.reason for r in removed] == [CleanupReason.FAILED_OR_PURGED]

    def test_removed_during_third_cycle(self) -> None:
        queue = [Submission(url=UNKNOWN)]
        for _ in range(2):
            queue, removed = clean_submissions(queue, _database())
            assert removed == []
        queue, removed = clean_submissions(queue, _database())
        assert queue == []
        assert len(removed) == 1

    def test_order_and_extra_fields_preserved(self) -> None:
        submissions = [
            Submission(url=KNOWN, submitter="a"),
            Submission(url=UNKNOWN, submitter="b"),
            Submission.model_validate({"url": KNOWN, "submitter_ip": "1.2.3.4"}),
        ]
        kept, _ = clean_submissions(submissions, _database("B0KNOWN000"))
        assert [s.url for s in kept] == [KNOWN, UNKNOWN, KNOWN]
        assert kept[2].model_dump()["submitter_ip"] == "1.2.3.4"


# ======================================================================
# Stage
# ======================================================================


class TestSubmissionCleaner:
    @pytest.mark.asyncio
    async def test_run_rewrites_queue_and_logs_removals(
        self,
        repository: DocumentRepository,
        write_document: Callable[[str, Any], Any],
        read_document: Callable[[str], Any],
    ) -> None:
        write_document(
            "input.json",
            {
                "submissions": [
                    {"url": KNOWN, "submitted_at": "2024-01-01T00:00:00Z", "failed_attempts": 1},
                    {"url": "https://www.amazon.com/nokey", "submitted_at": "2024-01-02T00:00:00Z"},
                    {"url": UNKNOWN, "failed_attempts": 2},
                ]
            },
        )
        write_document("metadata.json", {"books": {"B0KNOWN000": {"title": "T", "author": "A"}}})

        result = await SubmissionCleaner(repository).run()

        assert result.success
        assert result.stage is Stage.CLEANUP
        assert result.stats == {
            "total_checked": 3,
            "removed": 2,
            "remaining": 1,
            "removed_invalid_key": 1,
            "removed_failed": 1,
        }
        queue = read_document("input.json")
        assert [s["url"] for s in queue["submissions"]] == [KNOWN]
        assert queue["submissions"][0]["failed_attempts"] == 0
        assert queue["last_cleanup"]

        log = read_document("cleanup_log.json")["cleaned_entries"]
        assert [e["reason"] for e in log] == ["invalid_key", "failed_or_purged"]
        assert log[0]["submitted_at"] == "2024-01-02T00:00:00Z"

    @pytest.mark.asyncio
    async def test_empty_queue(self, repository: DocumentRepository, read_document: Callable[[str], Any]) -> None:
        result = await SubmissionCleaner(repository).run()

        assert result.success
        assert result.stats["total_checked"] == 0
        assert read_document("input.json")["submissions"] == []

    @pytest.mark.asyncio
    async def test_cleanup_log_failure_does_not_fail_stage(
        self,
        repository: DocumentRepository,
        write_document: Callable[[str, Any], Any],
        read_document: Callable[[str], Any],
    ) -> None:
        write_document("input.json", {"submissions": [{"url": "https://www.amazon.com/nokey"}]})

        with patch.object(
            repository, "append_cleanup_entries", AsyncMock(side_effect=OSError("read-only"))
        ):
            result = await SubmissionCleaner(repository).run()

        assert result.success
        assert read_document("input.json")["submissions"] == []

    @pytest.mark.asyncio
    async def test_malformed_entry_removed_as_invalid_key(
        self,
        repository: DocumentRepository,
        write_document: Callable[[str, Any], Any],
        read_document: Callable[[str], Any],
    ) -> None:
        write_document(
            "input.json",
            {"submissions": [{"url": UNKNOWN}, {"submitted_at": "2024-01-03T00:00:00Z"}, "garbage"]},
        )

        first = await SubmissionCleaner(repository).run()
        second = await SubmissionCleaner(repository).run()

        assert first.success and second.success
        assert first.stats["total_checked"] == 3
        assert first.stats["removed_invalid_key"] == 2
        assert second.stats["total_checked"] == 1
        queue = read_document("input.json")["submissions"]
        assert [s["url"] for s in queue] == [UNKNOWN]
        assert queue[0]["failed_attempts"] == 2

        log = read_document("cleanup_log.json")["cleaned_entries"]
        assert [(e["url"], e["reason"]) for e in log] == [("", "invalid_key"), ("", "invalid_key")]
        assert log[0]["submitted_at"] == "2024-01-03T00:00:00Z"

    @pytest.mark.asyncio
    async def test_malformed_queue_fails_stage(
        self, repository: DocumentRepository, data_dir: Any
    ) -> None:
        (data_dir / "input.json").write_text("{broken", encoding="utf-8")

        result = await SubmissionCleaner(repository).run()

        assert not result.success
        assert "input.json" in (result.error or "")

    @pytest.mark.asyncio
    async def test_reports_progress(self, repository: DocumentRepository) -> None:
        tracker = ProgressTracker()
        events: list[Any] = []
        tracker.register_listener(events.append)

        await SubmissionCleaner(repository, progress=tracker).run()

        assert [e.stage for e in events] == [Stage.CLEANUP, Stage.CLEANUP]
