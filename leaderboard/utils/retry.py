"""Single retry policy for every transient acquisition failure.

Rate-limit responses, gateway errors, transport errors and anti-bot
challenge pages all go through one :class:`RetryPolicy`.  The policy is
parameterized by a *classifier* that looks at one attempt's outcome (a
response, or the exception it raised) and names the retryable condition,
or returns ``None`` when the outcome should be accepted as final.

Delays grow exponentially from ``base_delay`` (doubling per attempt), are
never shorter than ``min_delay``, and get up to ``jitter`` seconds of
uniform random noise on top.
"""

from __future__ import annotations

import random
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

RetryClassifier = Callable[[Any], "str | None"]


@dataclass(frozen=True)
class RetryDecision:
    """What to do after one attempt.

    Attributes
    ----------
    retry:
        ``True`` when the caller should sleep ``delay`` seconds and try again.
    delay:
        Seconds to wait before the next attempt (0 when not retrying).
    reason:
        The classifier's name for the transient condition, if any.
    exhausted:
        ``True`` when the outcome was retryable but the budget is spent.
    """

    retry: bool
    delay: float = 0.0
    reason: str | None = None
    exhausted: bool = False


@dataclass
class RetryPolicy:
    """Capped exponential backoff driven by an outcome classifier."""

    classifier: RetryClassifier
    max_retries: int = 3
    base_delay: float = 300.0
    min_delay: float = 90.0
    jitter: float = 30.0
    rng: random.Random = field(default_factory=random.Random)

    def backoff_delay(self, attempt: int) -> float:
        """Delay before retry number ``attempt + 1`` (``attempt`` is 0-based)."""
        delay = max(self.base_delay * (2 ** attempt), self.min_delay)
        if self.jitter > 0:
            delay += self.rng.uniform(0, self.jitter)
        return delay

    def evaluate(self, outcome: Any, attempt: int) -> RetryDecision:
        """Classify *outcome* of the attempt made after ``attempt`` retries."""
        reason = self.classifier(outcome)
        if reason is None:
            return RetryDecision(retry=False)
        if attempt >= self.max_retries:
            return RetryDecision(retry=False, reason=reason, exhausted=True)
        return RetryDecision(retry=True, delay=self.backoff_delay(attempt), reason=reason)
