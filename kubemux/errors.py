"""Error taxonomy for the informer core.

Only ``UnknownKindError``, ``RetriesExhaustedError`` and individual
``TransientWatchError`` occurrences ever reach subscribers, and then only as
ERROR events.  Everything else is retried inside the session.
"""

from __future__ import annotations


class KubeMuxError(Exception):
    """Base class for all kubemux errors."""


class ConfigurationError(KubeMuxError):
    """No usable connection to the API server.  Fatal at startup."""


class DiscoveryError(KubeMuxError):
    """API discovery failed as a whole.  Retried on the next resolve."""


class UnknownKindError(KubeMuxError):
    """The cluster does not expose the requested kind.  Terminal per watch key."""

    def __init__(self, kind: str, detail: str = "") -> None:
        message = f"Unknown resource kind: {kind}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)
        self.kind = kind


class ResourceTypeAbsentError(UnknownKindError):
    """The API server answered 404 for a collection that discovery listed."""

    def __init__(self, kind: str) -> None:
        super().__init__(kind, "resource type not served by the API server")


class TransientWatchError(KubeMuxError):
    """A list or watch failed in a way that may succeed on retry."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class ResourceGoneError(KubeMuxError):
    """The resume cursor is too old (HTTP 410).  Forces a full re-list."""


class RetriesExhaustedError(KubeMuxError):
    """A session hit its maximum consecutive failures and stopped."""

    def __init__(self, attempts: int, last_error: BaseException | None = None) -> None:
        message = f"Giving up after {attempts} consecutive failures"
        if last_error is not None:
            message = f"{message}: {last_error}"
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error
