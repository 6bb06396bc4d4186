"""Resource catalog entries and cached resource documents."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class ApiResourceDescriptor:
    """One collection exposed by the API server, as found by discovery.

    Immutable once discovered.  ``group`` is empty for the legacy core group.
    """

    plural_name: str
    singular_name: str
    group: str
    version: str
    kind: str
    namespaced: bool

    @property
    def group_version(self) -> str:
        """Return the ``apiVersion`` string for objects of this collection."""
        return f"{self.group}/{self.version}" if self.group else self.version

    @property
    def qualified_name(self) -> str:
        """Return the ``plural.group`` lookup key (just ``plural`` for core)."""
        return f"{self.plural_name}.{self.group}" if self.group else self.plural_name

    def collection_path(self, namespace: str | None = None) -> str:
        """Build the list/watch URL path for this collection.

        The namespace segment is only added for namespaced kinds.
        """
        parts = ["/apis", self.group] if self.group else ["/api"]
        parts.append(self.version)
        if self.namespaced and namespace:
            parts.extend(["namespaces", namespace])
        parts.append(self.plural_name)
        return "/".join(parts)

    @classmethod
    def from_discovery(cls, resource: dict[str, Any], group: str, version: str) -> ApiResourceDescriptor:
        """Build a descriptor from one entry of an APIResourceList."""
        name = str(resource["name"])
        return cls(
            plural_name=name,
            singular_name=str(resource.get("singularName") or name),
            group=group,
            version=version,
            kind=str(resource.get("kind", "")),
            namespaced=bool(resource.get("namespaced", False)),
        )


@dataclass(frozen=True)
class Condition:
    """A single ``status.conditions`` entry."""

    type: str
    status: str
    reason: str = ""
    message: str = ""
    last_transition_time: str = ""

    @property
    def is_true(self) -> bool:
        return self.status == "True"


@dataclass(frozen=True, eq=False)
class ResourceDocument:
    """An upstream object held in a session cache.

    Only the identifying metadata is lifted out; ``raw`` is the document
    exactly as the API server sent it, so unknown fields survive untouched.
    Identity within one cache is ``uid``.
    """

    uid: str
    resource_version: str
    kind: str
    name: str
    namespace: str | None
    raw: dict[str, Any] = field(repr=False)


@dataclass(frozen=True, eq=False)
class ConditionedResource(ResourceDocument):
    """A document whose status carries a conditions list (workloads, Flux objects, ...)."""

    conditions: tuple[Condition, ...] = ()

    def condition(self, condition_type: str) -> Condition | None:
        for cond in self.conditions:
            if cond.type == condition_type:
                return cond
        return None

    @property
    def ready(self) -> bool | None:
        """Return the Ready condition as a bool, or None when there is none."""
        cond = self.condition("Ready")
        return None if cond is None else cond.is_true


def parse_document(raw: dict[str, Any], default_kind: str = "") -> ResourceDocument:
    """Wrap a raw upstream document in the matching ResourceDocument variant.

    List items usually omit ``kind``; *default_kind* fills it in from the
    collection descriptor without touching ``raw``.
    """
    metadata = raw.get("metadata")
    if not isinstance(metadata, dict):
        metadata = {}
    namespace = metadata.get("namespace")

    common: dict[str, Any] = {
        "uid": str(metadata.get("uid", "") or ""),
        "resource_version": str(metadata.get("resourceVersion", "") or ""),
        "kind": str(raw.get("kind") or default_kind),
        "name": str(metadata.get("name", "") or ""),
        "namespace": str(namespace) if namespace else None,
        "raw": raw,
    }

    status = raw.get("status")
    conditions = status.get("conditions") if isinstance(status, dict) else None
    if isinstance(conditions, list):
        return ConditionedResource(**common, conditions=tuple(_parse_conditions(conditions)))
    return ResourceDocument(**common)


def _parse_conditions(entries: list[Any]) -> list[Condition]:
    parsed: list[Condition] = []
    for entry in entries:
        if not isinstance(entry, dict) or "type" not in entry:
            continue
        parsed.append(
            Condition(
                type=str(entry["type"]),
                status=str(entry.get("status", "Unknown")),
                reason=str(entry.get("reason", "") or ""),
                message=str(entry.get("message", "") or ""),
                last_transition_time=str(entry.get("lastTransitionTime", "") or ""),
            )
        )
    return parsed
