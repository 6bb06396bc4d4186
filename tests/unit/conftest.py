"""Shared fixtures for kubemux tests.

``FakeControlPlane`` stands in for the API server: discovery answers come
from plain lists, list results are scripted FIFO, and every watch opens a
``FakeWatch`` whose records, errors and clean end are pushed by the test.
It also tracks how many list/watch calls are in flight at once so tests
can assert the one-upstream-session-per-key guarantee.
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import AsyncIterator, Callable
from typing import Any

import pytest

from kubemux.informer.backoff import BackoffPolicy
from kubemux.informer.registry import InformerRegistry
from kubemux.models.events import WatchEvent, WatchEventType
from kubemux.models.resources import ApiResourceDescriptor
from kubemux.upstream.base import ControlPlane, ObjectList

# ---------------------------------------------------------------------------
# Discovery fixtures
# ---------------------------------------------------------------------------

CORE_RESOURCES: list[dict[str, Any]] = [
    {"name": "pods", "singularName": "pod", "namespaced": True, "kind": "Pod"},
    {"name": "pods/log", "singularName": "", "namespaced": True, "kind": "Pod"},
    {"name": "configmaps", "singularName": "configmap", "namespaced": True, "kind": "ConfigMap"},
    {"name": "nodes", "singularName": "node", "namespaced": False, "kind": "Node"},
    {"name": "events", "singularName": "event", "namespaced": True, "kind": "Event"},
]

GROUP_RESOURCES: dict[tuple[str, str], list[dict[str, Any]]] = {
    ("apps", "v1"): [
        {"name": "deployments", "singularName": "deployment", "namespaced": True, "kind": "Deployment"},
        {"name": "deployments/status", "singularName": "", "namespaced": True, "kind": "Deployment"},
    ],
    ("events.k8s.io", "v1"): [
        {"name": "events", "singularName": "event", "namespaced": True, "kind": "Event"},
    ],
    ("kustomize.toolkit.fluxcd.io", "v1"): [
        {"name": "kustomizations", "singularName": "kustomization", "namespaced": True, "kind": "Kustomization"},
    ],
}


def make_obj(
    name: str,
    uid: str | None = None,
    rv: str = "1",
    namespace: str | None = "default",
    kind: str | None = None,
    conditions: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    """Create a raw Kubernetes object dict with sensible defaults."""
    metadata: dict[str, Any] = {"name": name, "uid": uid or f"uid-{name}", "resourceVersion": rv}
    if namespace:
        metadata["namespace"] = namespace
    obj: dict[str, Any] = {"metadata": metadata, "spec": {}}
    if kind:
        obj["kind"] = kind
    if conditions is not None:
        obj["status"] = {"conditions": conditions}
    return obj


# ---------------------------------------------------------------------------
# Fake control plane
# ---------------------------------------------------------------------------


class FakeWatch:
    """One open watch stream, driven by the test."""

    def __init__(self, plural: str, namespace: str | None, resource_version: str) -> None:
        self.plural = plural
        self.namespace = namespace
        self.resource_version = resource_version
        self.closed = False
        self._queue: asyncio.Queue[tuple[str, Any]] = asyncio.Queue()

    def send(self, event_type: str, obj: dict[str, Any]) -> None:
        self._queue.put_nowait(("record", {"type": event_type, "object": obj}))

    def bookmark(self, rv: str) -> None:
        self.send("BOOKMARK", {"metadata": {"resourceVersion": rv}})

    def fail(self, exc: Exception) -> None:
        self._queue.put_nowait(("error", exc))

    def end(self) -> None:
        self._queue.put_nowait(("end", None))


class FakeControlPlane(ControlPlane):
    def __init__(self) -> None:
        self.core = list(CORE_RESOURCES)
        self.groups: list[tuple[str, str]] = list(GROUP_RESOURCES)
        self.group_map = dict(GROUP_RESOURCES)
        self.core_error: Exception | None = None
        self.groups_error: Exception | None = None
        self.group_errors: dict[tuple[str, str], Exception] = {}
        self.discovery_gate: asyncio.Event | None = None
        self.discovery_calls = 0

        # FIFO of scripted list results; once drained every list returns default_list.
        self.list_results: deque[ObjectList | Exception] = deque()
        self.default_list = ObjectList(items=[], resource_version="100")
        self.list_calls: list[tuple[str, str | None]] = []

        # Exceptions raised immediately by the next watch calls, FIFO.
        self.watch_failures: deque[Exception] = deque()
        self.watch_calls: list[tuple[str, str | None, str]] = []
        self.watches: list[FakeWatch] = []

        self.in_flight: dict[tuple[str, str | None], int] = {}
        self.max_in_flight = 0
        self.closed = False

    # Discovery ------------------------------------------------------------

    async def core_resources(self) -> list[dict[str, Any]]:
        self.discovery_calls += 1
        if self.discovery_gate is not None:
            await self.discovery_gate.wait()
        if self.core_error is not None:
            raise self.core_error
        return self.core

    async def api_groups(self) -> list[tuple[str, str]]:
        if self.groups_error is not None:
            raise self.groups_error
        return self.groups

    async def group_resources(self, group: str, version: str) -> list[dict[str, Any]]:
        if (group, version) in self.group_errors:
            raise self.group_errors[(group, version)]
        return self.group_map.get((group, version), [])

    # List / watch ----------------------------------------------------------

    async def list_objects(self, descriptor: ApiResourceDescriptor, namespace: str | None) -> ObjectList:
        key = (descriptor.plural_name, namespace)
        self.list_calls.append(key)
        self._enter(key)
        try:
            await asyncio.sleep(0)
            result = self.list_results.popleft() if self.list_results else self.default_list
            if isinstance(result, Exception):
                raise result
            return result
        finally:
            self._exit(key)

    async def watch_objects(
        self,
        descriptor: ApiResourceDescriptor,
        namespace: str | None,
        resource_version: str,
        timeout_seconds: int | None = None,
    ) -> AsyncIterator[dict[str, Any]]:
        key = (descriptor.plural_name, namespace)
        self.watch_calls.append((descriptor.plural_name, namespace, resource_version))
        if self.watch_failures:
            raise self.watch_failures.popleft()
        stream = FakeWatch(descriptor.plural_name, namespace, resource_version)
        self.watches.append(stream)
        self._enter(key)
        try:
            while True:
                action, payload = await stream._queue.get()
                if action == "end":
                    return
                if action == "error":
                    raise payload
                yield payload
        finally:
            stream.closed = True
            self._exit(key)

    async def close(self) -> None:
        self.closed = True

    def _enter(self, key: tuple[str, str | None]) -> None:
        self.in_flight[key] = self.in_flight.get(key, 0) + 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight[key])

    def _exit(self, key: tuple[str, str | None]) -> None:
        self.in_flight[key] -= 1


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class Recorder:
    """Subscriber callback that records every event it receives."""

    def __init__(self) -> None:
        self.events: list[WatchEvent] = []

    def __call__(self, event: WatchEvent) -> None:
        self.events.append(event)

    def types(self) -> list[WatchEventType]:
        return [e.type for e in self.events]

    def names(self) -> list[str]:
        return [e.object.name for e in self.events if e.object is not None]

    def errors(self) -> list[WatchEvent]:
        return [e for e in self.events if e.type is WatchEventType.ERROR]


async def eventually(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Yield to the loop until *predicate* holds or *timeout* elapses."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.002)


async def settle(rounds: int = 20) -> None:
    """Give background tasks a few loop iterations to run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def fake() -> FakeControlPlane:
    return FakeControlPlane()


@pytest.fixture
def fast_policy() -> BackoffPolicy:
    """Millisecond back-off, and a watch never counts as sustained."""
    return BackoffPolicy(base_delay=0.001, max_delay=0.004, max_attempts=5, min_watch_duration=60.0)


@pytest.fixture
async def registry(fake: FakeControlPlane, fast_policy: BackoffPolicy) -> AsyncIterator[InformerRegistry]:
    reg = InformerRegistry(fake, policy=fast_policy)
    yield reg
    await reg.shutdown()
