"""Retry/back-off policy for watch sessions.

Pure policy, no I/O: attempt number to delay, attempt number to give-up
decision, and failure classification.  The session owns the attempt counter.

    delay(n) = min(base * 2**n, cap)

With the defaults (1 s base, 30 s cap, 5 attempts) the first four
consecutive failures sleep 2, 4, 8 and 16 s; the fifth stops the session.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from kubemux.errors import ResourceGoneError, UnknownKindError
from kubemux.models.config import BackoffConfig


class FailureClass(StrEnum):
    """How a session must react to a failure."""

    TERMINAL = "terminal"
    STALE_CURSOR = "stale_cursor"
    TRANSIENT = "transient"


@dataclass(frozen=True)
class BackoffPolicy:
    """Exponential back-off with a cap and a maximum attempt count.

    Delays are in seconds.  ``min_watch_duration`` is how long a watch must
    stay open before its end counts as success and resets the attempt counter.
    """

    base_delay: float = 1.0
    max_delay: float = 30.0
    max_attempts: int = 5
    min_watch_duration: float = 10.0

    @classmethod
    def from_config(cls, backoff: BackoffConfig, min_watch_duration: float = 10.0) -> BackoffPolicy:
        return cls(
            base_delay=backoff.base_delay_ms / 1000.0,
            max_delay=backoff.max_delay_ms / 1000.0,
            max_attempts=backoff.max_attempts,
            min_watch_duration=min_watch_duration,
        )

    def delay(self, attempt: int) -> float:
        """Return the sleep before retry number *attempt*."""
        if attempt < 0:
            raise ValueError(f"attempt must be >= 0, got {attempt}")
        # Avoid float overflow for absurd attempt counts.
        if attempt >= 64:
            return self.max_delay
        return min(self.base_delay * 2**attempt, self.max_delay)

    def should_give_up(self, attempt: int) -> bool:
        """Return True once *attempt* consecutive failures exhaust the budget."""
        return attempt >= self.max_attempts

    def sustained(self, watch_seconds: float) -> bool:
        """Return True if a watch open for *watch_seconds* counts as a success."""
        return watch_seconds >= self.min_watch_duration

    @staticmethod
    def classify(exc: BaseException) -> FailureClass:
        """Classify a failure.  Anything not known to be terminal or stale is transient."""
        if isinstance(exc, UnknownKindError):
            return FailureClass.TERMINAL
        if isinstance(exc, ResourceGoneError):
            return FailureClass.STALE_CURSOR
        return FailureClass.TRANSIENT
