"""Abstract control-plane interface consumed by the directory and watch sessions."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

from kubemux.models.resources import ApiResourceDescriptor


@dataclass
class ObjectList:
    """A point-in-time snapshot of one collection."""

    items: list[dict[str, Any]] = field(default_factory=list)
    resource_version: str = ""


class ControlPlane(ABC):
    """Discovery, list and watch against an API server.

    Implementations translate transport failures into the kubemux error
    taxonomy: discovery calls raise ``DiscoveryError``; list and watch raise
    ``ResourceTypeAbsentError`` (404), ``ResourceGoneError`` (410) or
    ``TransientWatchError`` (anything else).
    """

    @abstractmethod
    async def core_resources(self) -> list[dict[str, Any]]:
        """Return the APIResource entries of the legacy core group (``/api/v1``)."""

    @abstractmethod
    async def api_groups(self) -> list[tuple[str, str]]:
        """Return ``(group, preferred_version)`` for every named API group."""

    @abstractmethod
    async def group_resources(self, group: str, version: str) -> list[dict[str, Any]]:
        """Return the APIResource entries served at ``/apis/{group}/{version}``."""

    @abstractmethod
    async def list_objects(self, descriptor: ApiResourceDescriptor, namespace: str | None) -> ObjectList:
        """Fetch a full snapshot of a collection and its resourceVersion."""

    @abstractmethod
    def watch_objects(
        self,
        descriptor: ApiResourceDescriptor,
        namespace: str | None,
        resource_version: str,
        timeout_seconds: int | None = None,
    ) -> AsyncIterator[dict[str, Any]]:
        """Stream watch records ``{"type": ..., "object": {...}}`` starting after *resource_version*.

        The iterator ends cleanly when the server closes the stream.
        """

    async def close(self) -> None:
        """Release any pooled connections."""
        return None
