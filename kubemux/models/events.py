"""Watch keys, session states and the events delivered to subscribers."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum

from kubemux.models.resources import ResourceDocument


class WatchEventType(StrEnum):
    """Type of an event delivered to subscribers."""

    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"
    ERROR = "ERROR"


class SessionState(StrEnum):
    """Lifecycle state of a watch session."""

    INITIALIZING = "initializing"
    LISTING = "listing"
    WATCHING = "watching"
    RECONNECTING = "reconnecting"
    NOT_FOUND = "not_found"
    STOPPED = "stopped"


@dataclass(frozen=True)
class WatchKey:
    """Identity of one subscription target: a resource kind, optionally namespaced.

    Kind names are case-insensitive, so the kind is stored lower-cased.
    """

    kind: str
    namespace: str | None = None

    @classmethod
    def of(cls, kind: str, namespace: str | None = None) -> WatchKey:
        return cls(kind=kind.strip().lower(), namespace=namespace or None)

    def __str__(self) -> str:
        return f"{self.kind}:{self.namespace}" if self.namespace else self.kind


@dataclass(frozen=True)
class WatchEvent:
    """An event fanned out to subscribers.

    ``ERROR`` events are synthetic: they carry ``error`` and never an object.
    A ``terminal`` ERROR means the session has stopped and nothing further
    will arrive.
    """

    type: WatchEventType
    object: ResourceDocument | None = None
    error: str | None = None
    terminal: bool = False

    def to_dict(self) -> dict[str, object]:
        """Serialise for a downstream transport (JSON-ready)."""
        return {
            "type": self.type.value,
            "object": self.object.raw if self.object is not None else None,
            "error": self.error,
            "terminal": self.terminal,
        }


EventCallback = Callable[[WatchEvent], None]
Detach = Callable[[], None]
