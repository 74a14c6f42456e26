"""Crash-safe JSON documents on local disk.

Every persisted document in the data directory goes through
:class:`JsonStore`.  A write never leaves a document half-written:

    1. copy the current file (if any) to ``<name>.backup``
    2. write the new content to ``<name>.tmp`` and fsync it
    3. ``os.replace`` the temp file over the document (atomic rename)
    4. delete the backup

If step 2 or 3 fails the backup is copied back over the document and the
original exception is re-raised.  If the backup is missing or cannot be
copied back, :class:`BackupRestoreError` is raised instead; that is the
one condition where both old and new content may be gone.

Reads distinguish "not found" from "not valid JSON" so callers can fall
back to defaults only for the former.  A read also self-heals: when the
document is missing or unparseable but a valid ``.backup`` from an
interrupted write is lying next to it, the backup is restored first.

File I/O is blocking and runs in a worker thread via
:func:`asyncio.to_thread`; documents are small so this is about keeping
the event loop responsive, not throughput.
"""

from __future__ import annotations

import asyncio
import json
import os
import shutil
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any

import structlog
from pydantic import BaseModel

from leaderboard.utils.errors import (
    BackupRestoreError,
    DocumentNotFoundError,
    InvalidDocumentError,
)
from leaderboard.utils.logging import get_logger

_BACKUP_SUFFIX = ".backup"
_TEMP_SUFFIX = ".tmp"
_MISSING = object()


def _backup_path(path: Path) -> Path:
    return path.with_name(path.name + _BACKUP_SUFFIX)


def _temp_path(path: Path) -> Path:
    return path.with_name(path.name + _TEMP_SUFFIX)


def to_jsonable(document: Any) -> Any:
    """Convert pydantic models (at any depth of lists/dicts) to plain JSON data."""
    if isinstance(document, BaseModel):
        return document.model_dump(mode="json")
    if isinstance(document, dict):
        return {key: to_jsonable(value) for key, value in document.items()}
    if isinstance(document, (list, tuple)):
        return [to_jsonable(value) for value in document]
    return document


class JsonStore:
    """Named JSON documents inside one data directory.

    Parameters
    ----------
    data_dir:
        Directory holding the documents.  Created on first write.
    indent:
        JSON indentation; 4 matches the documents written by earlier
        deployments.
    """

    def __init__(self, data_dir: str | Path, indent: int = 4) -> None:
        self._data_dir = Path(data_dir)
        self._indent = indent
        self._logger: structlog.BoundLogger = get_logger(__name__)

    @property
    def data_dir(self) -> Path:
        return self._data_dir

    def path_for(self, name: str) -> Path:
        return self._data_dir / name

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def exists(self, name: str) -> bool:
        return await asyncio.to_thread(self.path_for(name).exists)

    async def read(self, name: str) -> Any:
        """Return the parsed content of document *name*.

        Raises
        ------
        DocumentNotFoundError
            The document does not exist and no usable backup was found.
        InvalidDocumentError
            The document exists but is not valid UTF-8 JSON, and no usable
            backup was found.
        """
        return await asyncio.to_thread(self._read_sync, self.path_for(name))

    async def read_or_default(self, name: str, default: Callable[[], Any]) -> Any:
        """Like :meth:`read` but returns ``default()`` when the document is absent.

        Invalid content still raises :class:`InvalidDocumentError`.
        """
        try:
            return await self.read(name)
        except DocumentNotFoundError:
            return default()

    async def write(self, name: str, document: Any) -> None:
        """Atomically replace document *name* with *document*.

        *document* may be a dict/list or a pydantic model.  Serialization
        happens before any file is touched, so an unserializable document
        leaves the data directory unchanged.
        """
        text = json.dumps(to_jsonable(document), indent=self._indent, ensure_ascii=False)
        await asyncio.to_thread(self._write_sync, self.path_for(name), text + "\n")

    async def append_entries(self, name: str, list_key: str, entries: Iterable[Any]) -> int:
        """Append *entries* to the list stored under *list_key* in document *name*.

        A missing document is created as ``{list_key: [...]}``.  Returns the
        new length of the list.
        """
        new_entries = [to_jsonable(entry) for entry in entries]
        document = await self.read_or_default(name, lambda: {list_key: []})
        if not isinstance(document, dict):
            raise InvalidDocumentError(f"{name} must contain a JSON object")
        existing = document.get(list_key)
        if not isinstance(existing, list):
            existing = []
        existing.extend(new_entries)
        document[list_key] = existing
        await self.write(name, document)
        return len(existing)

    # ------------------------------------------------------------------
    # Blocking helpers (run in a worker thread)
    # ------------------------------------------------------------------

    def _read_sync(self, path: Path) -> Any:
        try:
            raw = path.read_bytes()
        except FileNotFoundError:
            recovered = self._recover_from_backup(path, problem="missing")
            if recovered is _MISSING:
                raise DocumentNotFoundError(f"{path.name} does not exist") from None
            return recovered

        try:
            return json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            recovered = self._recover_from_backup(path, problem="invalid")
            if recovered is _MISSING:
                raise InvalidDocumentError(f"{path.name} is not valid JSON: {exc}") from exc
            return recovered

    def _recover_from_backup(self, path: Path, problem: str) -> Any:
        """Restore a valid leftover backup over *path*; ``_MISSING`` if there is none."""
        backup = _backup_path(path)
        try:
            raw = backup.read_bytes()
            content = json.loads(raw.decode("utf-8"))
        except FileNotFoundError:
            return _MISSING
        except (UnicodeDecodeError, json.JSONDecodeError):
            self._logger.warning("json_store_backup_unusable", document=path.name)
            return _MISSING

        shutil.copyfile(backup, path)
        backup.unlink(missing_ok=True)
        self._logger.warning(
            "json_store_recovered_from_backup",
            document=path.name,
            problem=problem,
        )
        return content

    def _write_sync(self, path: Path, text: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        backup = _backup_path(path)
        temp = _temp_path(path)

        has_backup = True
        try:
            shutil.copyfile(path, backup)
        except FileNotFoundError:
            has_backup = False

        try:
            with open(temp, "w", encoding="utf-8") as handle:
                handle.write(text)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(temp, path)
        except Exception as exc:
            self._logger.error("json_store_write_failed", document=path.name, error=str(exc))
            if has_backup:
                self._restore_backup(path, backup, exc)
            raise
        finally:
            self._discard(temp)

        try:
            backup.unlink(missing_ok=True)
        except OSError as exc:
            # The new content is already in place; a stray backup is harmless.
            self._logger.warning("json_store_backup_not_removed", document=path.name, error=str(exc))

    def _restore_backup(self, path: Path, backup: Path, cause: Exception) -> None:
        if not backup.exists():
            self._logger.critical("json_store_backup_missing", document=path.name)
            raise BackupRestoreError(
                f"Writing {path.name} failed ({cause}) and its backup is missing"
            ) from cause
        try:
            shutil.copyfile(backup, path)
        except OSError as restore_exc:
            self._logger.critical(
                "json_store_restore_failed",
                document=path.name,
                error=str(restore_exc),
            )
            raise BackupRestoreError(
                f"Writing {path.name} failed ({cause}) and restoring its backup failed ({restore_exc})"
            ) from restore_exc
        backup.unlink(missing_ok=True)
        self._logger.info("json_store_restored_from_backup", document=path.name)

    def _discard(self, path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            self._logger.warning("json_store_temp_not_removed", file=path.name, error=str(exc))
