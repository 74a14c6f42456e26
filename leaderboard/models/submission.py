"""Pydantic v2 models for the pending-submission queue (``input.json``).

Submissions are written by the external intake endpoint and consumed by
the cleaner and the acquisition stage.  Unknown fields (e.g. the intake's
``submitter_ip``) are preserved so a cleanup round-trip never strips data
another component relies on.

Entries are validated one at a time.  An entry that is not a valid
submission lands in :attr:`SubmissionQueue.malformed` instead of failing
the whole document; that list is never written back.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator


class Submission(BaseModel):
    """A pending request to track one product page."""

    model_config = ConfigDict(frozen=True, extra="allow")

    url: str = Field(description="Canonical product URL carrying the item key.")
    submitted_at: str | None = Field(default=None, description="ISO-8601 submission time.")
    submitter: str | None = Field(default=None, description="Opaque submitter identifier.")
    failed_attempts: int = Field(
        default=0,
        ge=0,
        description="Consecutive cycles in which the item key was absent from the item database.",
    )


class SubmissionQueue(BaseModel):
    """The whole ``input.json`` document."""

    model_config = ConfigDict(extra="allow")

    submissions: list[Submission] = Field(default_factory=list)
    last_cleanup: str | None = None
    malformed: list[Any] = Field(default_factory=list, exclude=True)

    @model_validator(mode="before")
    @classmethod
    def _split_malformed(cls, data: Any) -> Any:
        if not isinstance(data, dict) or not isinstance(data.get("submissions"), list):
            return data
        valid: list[Submission] = []
        malformed: list[Any] = []
        for raw in data["submissions"]:
            try:
                valid.append(Submission.model_validate(raw))
            except ValidationError:
                malformed.append(raw)
        return {**data, "submissions": valid, "malformed": malformed}


class CleanupLogEntry(BaseModel):
    """Audit record for one submission removed by the cleaner."""

    model_config = ConfigDict(frozen=True)

    timestamp: str
    url: str
    submitted_at: str | None = None
    reason: str

