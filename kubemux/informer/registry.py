"""Session registry: the single entry point for subscriptions.

Guarantees at most one live :class:`WatchSession` per watch key.  A session
record is inserted synchronously on the first subscribe, before any
discovery or list work starts, so every later subscribe for the same key
attaches to that session instead of opening a second upstream watch.
"""

from __future__ import annotations

import asyncio

from kubemux.informer.backoff import BackoffPolicy
from kubemux.informer.directory import ApiResourceDirectory
from kubemux.informer.session import WatchSession
from kubemux.models.events import Detach, EventCallback, WatchKey
from kubemux.observability.logging import get_logger
from kubemux.upstream.base import ControlPlane


class InformerRegistry:
    """Multiplexes subscribers onto shared watch sessions.

    Must be used from the event loop that runs the sessions.

    Example::

        registry = InformerRegistry(control_plane)
        detach = registry.subscribe("pods", "default", on_event)
        ...
        detach()
        await registry.shutdown()
    """

    def __init__(
        self,
        control_plane: ControlPlane,
        directory: ApiResourceDirectory | None = None,
        policy: BackoffPolicy | None = None,
        watch_timeout_seconds: int | None = None,
    ) -> None:
        self._control_plane = control_plane
        self._directory = directory or ApiResourceDirectory(control_plane)
        self._policy = policy or BackoffPolicy()
        self._watch_timeout_seconds = watch_timeout_seconds
        self._log = get_logger("informer.registry")

        self._sessions: dict[WatchKey, WatchSession] = {}
        # Tasks of stopped sessions that have not finished unwinding yet.
        self._retiring: dict[WatchKey, set[asyncio.Task[None]]] = {}

    @property
    def directory(self) -> ApiResourceDirectory:
        return self._directory

    @property
    def active_keys(self) -> list[WatchKey]:
        return list(self._sessions)

    def session(self, kind: str, namespace: str | None = None) -> WatchSession | None:
        """Return the live session for a key, if any."""
        return self._sessions.get(WatchKey.of(kind, namespace))

    def subscribe(self, kind: str, namespace: str | None, on_event: EventCallback) -> Detach:
        """Attach *on_event* to the session for (kind, namespace), creating it if needed.

        Synchronous: the callback receives a replay of the current cache
        before this returns, then live events as they arrive.
        """
        key = WatchKey.of(kind, namespace)
        session = self._sessions.get(key)
        if session is not None and session.stopped:
            # Stopped but still delivering its terminal ERROR.
            self._retire(session)
            session = None
        created = session is None
        if session is None:
            session = WatchSession(
                key,
                self._directory,
                self._control_plane,
                self._policy,
                watch_timeout_seconds=self._watch_timeout_seconds,
                on_stopped=self._retire,
                predecessors=self._retiring.get(key),
            )
            self._sessions[key] = session

        detach = session.subscribe(on_event)
        if created:
            session.start()
        return detach

    async def shutdown(self) -> None:
        """Force-stop every session and wait for their tasks to exit."""
        sessions = list(self._sessions.values())
        self._log.info("registry_shutdown", sessions=len(sessions))
        for session in sessions:
            session.close()
        pending = [task for tasks in self._retiring.values() for task in tasks]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._sessions.clear()
        self._retiring.clear()

    def _retire(self, session: WatchSession) -> None:
        key = session.key
        if self._sessions.get(key) is session:
            del self._sessions[key]
        task = session.task
        if task is not None and not task.done() and task not in self._retiring.get(key, ()):
            self._retiring.setdefault(key, set()).add(task)
            task.add_done_callback(lambda done, key=key: self._forget_retired(key, done))

    def _forget_retired(self, key: WatchKey, task: asyncio.Task[None]) -> None:
        tasks = self._retiring.get(key)
        if tasks is None:
            return
        tasks.discard(task)
        if not tasks:
            del self._retiring[key]
