"""Typed access to the documents in the data directory.

:class:`DocumentRepository` turns raw JSON from :class:`JsonStore` into the
pydantic models in :mod:`leaderboard.models` and back.  A document that is
absent yields its default model; one that is present but malformed (bad
JSON or a shape the model rejects) raises :class:`InvalidDocumentError` so
the calling stage decides whether that is fatal.  A malformed entry inside
the submission queue or the item database does not make the document
invalid; the models set it aside instead.

:class:`DataDirectory` bootstraps a fresh volume.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from leaderboard.models import (
    Blacklist,
    CleanupLogEntry,
    ItemDatabase,
    PublishedLeaderboard,
    RejectionRecord,
    SubmissionQueue,
)
from leaderboard.storage.json_store import JsonStore
from leaderboard.utils.errors import InvalidDocumentError
from leaderboard.utils.logging import get_logger
from leaderboard.utils.timestamps import utc_now_iso

logger = get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class DocumentName:
    """File names inside the data directory."""

    SUBMISSIONS = "input.json"
    ITEM_DATABASE = "metadata.json"
    BLACKLIST = "blacklist.json"
    BROWNLIST = "brownlist.json"
    CLEANUP_LOG = "cleanup_log.json"
    LEADERBOARD = "books.json"
    LOCK = "cycle.lock"


def _validate(model: type[ModelT], data: Any, name: str) -> ModelT:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise InvalidDocumentError(f"{name} does not match the expected shape: {exc}") from exc


class DocumentRepository:
    """Load and save every document the cycle touches."""

    def __init__(self, store: JsonStore) -> None:
        self._store = store

    @property
    def store(self) -> JsonStore:
        return self._store

    # -- Submission queue ---------------------------------------------------

    async def load_submissions(self) -> SubmissionQueue:
        """Return the queue; entries that fail validation are in ``malformed``."""
        data = await self._store.read_or_default(DocumentName.SUBMISSIONS, dict)
        queue = _validate(SubmissionQueue, data, DocumentName.SUBMISSIONS)
        if queue.malformed:
            logger.warning("malformed_submissions", document=DocumentName.SUBMISSIONS, count=len(queue.malformed))
        return queue

    async def save_submissions(self, queue: SubmissionQueue) -> None:
        await self._store.write(DocumentName.SUBMISSIONS, queue)

    # -- Item database ------------------------------------------------------

    async def load_item_database(self) -> ItemDatabase:
        """Return the database; items that fail validation are dropped and logged."""
        data = await self._store.read_or_default(DocumentName.ITEM_DATABASE, dict)
        database = _validate(ItemDatabase, data, DocumentName.ITEM_DATABASE)
        for item_key, error in database.malformed.items():
            logger.warning("malformed_item_dropped", item_key=item_key, error=error)
        return database

    async def save_item_database(self, database: ItemDatabase) -> None:
        await self._store.write(DocumentName.ITEM_DATABASE, database)

    # -- Filter policy and audit trails --------------------------------------

    async def load_blacklist(self) -> Blacklist:
        """Return the blacklist; ``Blacklist()`` when the document is absent.

        Malformed content raises :class:`InvalidDocumentError`.
        """
        data = await self._store.read_or_default(DocumentName.BLACKLIST, dict)
        return _validate(Blacklist, data, DocumentName.BLACKLIST)

    async def append_rejections(self, records: Iterable[RejectionRecord]) -> int:
        return await self._store.append_entries(DocumentName.BROWNLIST, "rejected_entries", records)

    async def append_cleanup_entries(self, entries: Iterable[CleanupLogEntry]) -> int:
        return await self._store.append_entries(DocumentName.CLEANUP_LOG, "cleaned_entries", entries)

    # -- Published leaderboard ----------------------------------------------

    async def save_leaderboard(self, leaderboard: PublishedLeaderboard) -> None:
        await self._store.write(DocumentName.LEADERBOARD, leaderboard)

    async def load_leaderboard(self) -> PublishedLeaderboard | None:
        if not await self._store.exists(DocumentName.LEADERBOARD):
            return None
        data = await self._store.read(DocumentName.LEADERBOARD)
        return _validate(PublishedLeaderboard, data, DocumentName.LEADERBOARD)


class DataDirectory:
    """Creates the data directory and any missing document with default content.

    Existing documents are never overwritten, so ``initialize`` is safe to
    run on every deploy.
    """

    def __init__(self, store: JsonStore, leaderboard_version: str = "1.0") -> None:
        self._store = store
        self._defaults: dict[str, Callable[[], dict[str, Any]]] = {
            DocumentName.SUBMISSIONS: lambda: {"submissions": []},
            DocumentName.LEADERBOARD: lambda: {
                "version": leaderboard_version,
                "last_updated": utc_now_iso(),
                "books": {},
            },
            DocumentName.ITEM_DATABASE: lambda: {"books": {}, "last_update": utc_now_iso()},
            DocumentName.BLACKLIST: lambda: {
                "authors": [],
                "title_patterns": [],
                "patterns": [],
                "last_updated": utc_now_iso(),
            },
            DocumentName.BROWNLIST: lambda: {"rejected_entries": []},
            DocumentName.CLEANUP_LOG: lambda: {"cleaned_entries": []},
        }

    async def initialize(self) -> list[str]:
        """Create missing documents; return the names that were created."""
        self._store.data_dir.mkdir(parents=True, exist_ok=True)
        created: list[str] = []
        for name, default in self._defaults.items():
            if await self._store.exists(name):
                logger.debug("document_exists", document=name)
                continue
            await self._store.write(name, default())
            created.append(name)
            logger.info("document_created", document=name)
        return created

    def list_files(self) -> list[str]:
        """Names of the files currently in the data directory.

        Raises :class:`OSError` when the directory is missing or unreadable.
        """
        return sorted(entry.name for entry in self._store.data_dir.iterdir())
