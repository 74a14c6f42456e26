"""Exception hierarchy for the leaderboard cycle.

Every application exception derives from :class:`LeaderboardError`, which
carries a human-readable ``message`` and an optional ``provider_name``
naming the collaborator that failed (``"json_store"``, ``"retail_page"``
...).  The tree follows the cycle's failure taxonomy:

    LeaderboardError
    +-- StoreError                 (durable JSON store)
    |   +-- DocumentNotFoundError  (document absent, callers may default)
    |   +-- InvalidDocumentError   (document present but not valid JSON)
    |   +-- BackupRestoreError     (write AND restore failed, state at risk)
    +-- FetchError                 (transport gave up after retries)
    |   +-- RateLimitError         (429/503 budget exhausted)
    +-- CycleLockError             (lock file unusable, not contention)
    +-- PublicationValidationError (artifact failed validation)
    +-- ConfigurationError         (bad settings / config file)
    +-- StageError                 (a pipeline stage failed)

Lock contention is deliberately absent: the orchestrator reports it as a
rejected :class:`~leaderboard.models.cycle.CycleResult`, not an exception.
"""

from __future__ import annotations


class LeaderboardError(Exception):
    """Base exception for all leaderboard errors.

    ``__str__`` prefixes the provider name in brackets, e.g.
    ``[json_store] metadata.json is not valid JSON``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Durable JSON store
# ---------------------------------------------------------------------------

class StoreError(LeaderboardError):
    """Raised when a JSON document cannot be read or written."""

    def __init__(
        self,
        message: str = "JSON store operation failed",
        provider_name: str | None = "json_store",
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class DocumentNotFoundError(StoreError):
    """Raised when a document does not exist (and no backup could stand in)."""

    def __init__(self, message: str = "Document not found", provider_name: str | None = "json_store") -> None:
        super().__init__(message=message, provider_name=provider_name)


class InvalidDocumentError(StoreError):
    """Raised when a document exists but does not contain valid JSON."""

    def __init__(self, message: str = "Document is not valid JSON", provider_name: str | None = "json_store") -> None:
        super().__init__(message=message, provider_name=provider_name)


class BackupRestoreError(StoreError):
    """Raised when a failed write could not be rolled back from its backup.

    This is the one unrecoverable store condition: both the new and the
    previous content of the document may be lost.
    """

    def __init__(
        self,
        message: str = "Write failed and the backup could not be restored",
        provider_name: str | None = "json_store",
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Acquisition transport
# ---------------------------------------------------------------------------

class FetchError(LeaderboardError):
    """Raised when a page could not be fetched after the retry budget.

    ``reason`` is the last retry classification (``"http_503"``,
    ``"challenge_page"``, ``"transport_error"`` ...).
    """

    def __init__(
        self,
        message: str = "Page fetch failed",
        provider_name: str | None = None,
        reason: str = "network_error",
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self.reason = reason


class RateLimitError(FetchError):
    """Raised when rate-limit responses persisted through every retry."""

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        provider_name: str | None = None,
        reason: str = "rate_limited",
    ) -> None:
        super().__init__(message=message, provider_name=provider_name, reason=reason)


# ---------------------------------------------------------------------------
# Orchestration / publication / configuration
# ---------------------------------------------------------------------------

class CycleLockError(LeaderboardError):
    """Raised when the cycle lock file cannot be created, read or removed."""

    def __init__(self, message: str = "Cycle lock is unusable", provider_name: str | None = None) -> None:
        super().__init__(message=message, provider_name=provider_name)


class PublicationValidationError(LeaderboardError):
    """Raised when the assembled leaderboard violates its schema."""

    def __init__(
        self,
        message: str = "Published leaderboard failed validation",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ConfigurationError(LeaderboardError):
    """Raised when configuration is invalid or missing at startup."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class StageError(LeaderboardError):
    """Raised by the orchestrator when a stage reports failure."""

    def __init__(self, stage: str, message: str = "Stage failed") -> None:
        super().__init__(message=message, provider_name=stage)
        self.stage = stage
