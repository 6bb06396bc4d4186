"""Core data structures for kubemux."""

from kubemux.models.config import KubeMuxConfig
from kubemux.models.events import (
    Detach,
    EventCallback,
    SessionState,
    WatchEvent,
    WatchEventType,
    WatchKey,
)
from kubemux.models.resources import (
    ApiResourceDescriptor,
    Condition,
    ConditionedResource,
    ResourceDocument,
    parse_document,
)

__all__ = [
    "ApiResourceDescriptor",
    "Condition",
    "ConditionedResource",
    "Detach",
    "EventCallback",
    "KubeMuxConfig",
    "ResourceDocument",
    "SessionState",
    "WatchEvent",
    "WatchEventType",
    "WatchKey",
    "parse_document",
]
