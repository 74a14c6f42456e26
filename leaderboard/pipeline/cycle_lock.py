"""Single-flight lock for the update cycle.

The lock is a small JSON file (``cycle.lock``) created with
``O_CREAT | O_EXCL``, so exactly one process can hold it.  It records who
holds it and since when::

    {"cycle_id": "...", "pid": 4242, "acquired_at": "2024-05-01T12:00:00.000Z"}

A lock older than ``stale_after`` seconds belongs to a crashed run; it is
removed and acquisition is retried once.  When the file cannot be parsed
its modification time stands in for ``acquired_at``.
"""

from __future__ import annotations

import asyncio
import json
import os
from collections.abc import Callable
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path

from leaderboard.utils.errors import CycleLockError
from leaderboard.utils.logging import get_logger
from leaderboard.utils.timestamps import parse_iso, to_iso, utc_now

logger = get_logger(__name__)

DEFAULT_STALE_AFTER = 3600.0


@dataclass(frozen=True)
class LockInfo:
    cycle_id: str
    pid: int
    acquired_at: str


class CycleLock:
    """Exclusive, file-based cycle lock.

    Parameters
    ----------
    path:
        Lock file location, normally ``<data_dir>/cycle.lock``.
    stale_after:
        Age in seconds beyond which a held lock is considered abandoned.
    clock:
        Returns the current UTC time; tests pass a fixed clock.
    """

    def __init__(
        self,
        path: str | Path,
        stale_after: float = DEFAULT_STALE_AFTER,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._path = Path(path)
        self._stale_after = stale_after
        self._clock = clock

    @property
    def path(self) -> Path:
        return self._path

    async def acquire(self, cycle_id: str) -> LockInfo | None:
        """Take the lock for *cycle_id*; ``None`` when another live cycle holds it."""
        return await asyncio.to_thread(self._acquire_sync, cycle_id)

    async def release(self, cycle_id: str) -> None:
        """Remove the lock if *cycle_id* still holds it."""
        await asyncio.to_thread(self._release_sync, cycle_id)

    async def read(self) -> LockInfo | None:
        """Return the current holder, or ``None`` when unlocked or unreadable."""
        return await asyncio.to_thread(self._read_sync)

    # ------------------------------------------------------------------
    # Blocking helpers
    # ------------------------------------------------------------------

    def _acquire_sync(self, cycle_id: str) -> LockInfo | None:
        info = LockInfo(cycle_id=cycle_id, pid=os.getpid(), acquired_at=to_iso(self._clock()))
        if self._try_create(info):
            return info

        age = self._age_seconds()
        if age is None:
            # Released between our attempt and the age check.
            return info if self._try_create(info) else None

        if age < self._stale_after:
            holder = self._read_sync()
            logger.info(
                "cycle_lock_held",
                holder=holder.cycle_id if holder else None,
                age_s=round(age, 1),
            )
            return None

        logger.warning("cycle_lock_stale_cleared", age_s=round(age, 1), stale_after_s=self._stale_after)
        try:
            self._path.unlink(missing_ok=True)
        except OSError as exc:
            raise CycleLockError(f"Could not remove stale lock {self._path}: {exc}") from exc
        return info if self._try_create(info) else None

    def _try_create(self, info: LockInfo) -> bool:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        try:
            fd = os.open(self._path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            return False
        except OSError as exc:
            raise CycleLockError(f"Could not create lock {self._path}: {exc}") from exc

        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(asdict(info), handle)
            handle.flush()
            os.fsync(handle.fileno())
        return True

    def _read_sync(self) -> LockInfo | None:
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
            return LockInfo(
                cycle_id=str(data["cycle_id"]),
                pid=int(data["pid"]),
                acquired_at=str(data["acquired_at"]),
            )
        except (OSError, ValueError, KeyError, TypeError):
            return None

    def _age_seconds(self) -> float | None:
        """Seconds since the lock was taken; ``None`` if the file is gone."""
        holder = self._read_sync()
        acquired: datetime | None = None
        if holder is not None:
            try:
                acquired = parse_iso(holder.acquired_at)
            except ValueError:
                acquired = None

        if acquired is None:
            try:
                mtime = self._path.stat().st_mtime
            except FileNotFoundError:
                return None
            acquired = datetime.fromtimestamp(mtime, tz=timezone.utc)

        return (self._clock() - acquired).total_seconds()

    def _release_sync(self, cycle_id: str) -> None:
        holder = self._read_sync()
        if holder is not None and holder.cycle_id != cycle_id:
            logger.warning("cycle_lock_taken_over", ours=cycle_id, holder=holder.cycle_id)
            return
        try:
            self._path.unlink(missing_ok=True)
        except OSError as exc:
            raise CycleLockError(f"Could not release lock {self._path}: {exc}") from exc
        logger.debug("cycle_lock_released", cycle_id=cycle_id)
