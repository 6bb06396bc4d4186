"""Watch session: one list+watch+cache+fan-out loop per watch key.

State machine::

    INITIALIZING -> LISTING -> WATCHING <-> RECONNECTING -> STOPPED
                       |
                       +-> NOT_FOUND

- INITIALIZING resolves the kind through the directory.  An unknown kind
  emits one terminal ERROR and stops; it is never retried.
- LISTING replaces the cache with a fresh snapshot and captures its cursor.
  Attached subscribers receive the difference against the previous cache.
- WATCHING streams deltas from the cursor, applies them to the cache in
  arrival order, and fans every non-bookmark event out to all subscribers.
- RECONNECTING sleeps for the back-off delay, then resumes the watch from
  the cursor.  A 410 clears the cursor and forces a re-list instead.

All state is touched only from the event loop that owns the session task;
subscribe, detach and fan-out never suspend.
"""

from __future__ import annotations

import asyncio
import contextlib
import itertools
from collections import OrderedDict
from collections.abc import Callable
from typing import Any

from kubemux.errors import (
    KubeMuxError,
    ResourceGoneError,
    ResourceTypeAbsentError,
    RetriesExhaustedError,
    TransientWatchError,
    UnknownKindError,
)
from kubemux.informer.backoff import BackoffPolicy, FailureClass
from kubemux.informer.directory import ApiResourceDirectory
from kubemux.models.events import (
    Detach,
    EventCallback,
    SessionState,
    WatchEvent,
    WatchEventType,
    WatchKey,
)
from kubemux.models.resources import ApiResourceDescriptor, ResourceDocument, parse_document
from kubemux.observability.logging import get_logger
from kubemux.observability.metrics import (
    backoff_seconds,
    list_calls_total,
    reconnects_total,
    sessions_active,
    subscribers_active,
    watch_events_total,
)
from kubemux.upstream.base import ControlPlane

_MAX_TOMBSTONES: int = 4096
_TERMINAL_STATES = frozenset({SessionState.STOPPED, SessionState.NOT_FOUND})


class WatchSession:
    """Informer for one (kind, namespace) key.

    Created and owned by :class:`~kubemux.informer.registry.InformerRegistry`;
    *on_stopped* is called exactly once when the session stops for any reason.
    *predecessors* are tasks of earlier sessions on the same key that are
    still unwinding; no upstream call is made until they have finished.
    """

    def __init__(
        self,
        key: WatchKey,
        directory: ApiResourceDirectory,
        control_plane: ControlPlane,
        policy: BackoffPolicy,
        *,
        watch_timeout_seconds: int | None = None,
        on_stopped: Callable[[WatchSession], None] | None = None,
        predecessors: set[asyncio.Task[None]] | None = None,
    ) -> None:
        self.key = key
        self._directory = directory
        self._control_plane = control_plane
        self._policy = policy
        self._watch_timeout_seconds = watch_timeout_seconds
        self._on_stopped = on_stopped
        self._predecessors = set(predecessors or ())
        self._log = get_logger("informer.session", watch_key=str(key))

        self._state: SessionState = SessionState.INITIALIZING
        self._descriptor: ApiResourceDescriptor | None = None
        self._cache: dict[str, ResourceDocument] = {}
        self._tombstones: OrderedDict[str, None] = OrderedDict()
        self._cursor: str = ""

        self._subscribers: dict[int, EventCallback] = {}
        self._tokens = itertools.count()

        self._task: asyncio.Task[None] | None = None
        self._attempts: int = 0
        self._watch_opened_at: float | None = None
        self._released: bool = False

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def stopped(self) -> bool:
        return self._state in _TERMINAL_STATES

    @property
    def cursor(self) -> str:
        return self._cursor

    @property
    def attempts(self) -> int:
        return self._attempts

    @property
    def descriptor(self) -> ApiResourceDescriptor | None:
        return self._descriptor

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    @property
    def task(self) -> asyncio.Task[None] | None:
        return self._task

    def snapshot(self) -> list[ResourceDocument]:
        """Return the cached documents in insertion order."""
        return list(self._cache.values())

    # ------------------------------------------------------------------
    # Subscribers
    # ------------------------------------------------------------------

    def subscribe(self, callback: EventCallback) -> Detach:
        """Attach *callback*; replay the cache to it as ADDED events first.

        Never waits on I/O: the replay reflects whatever is cached right now.
        Returns an idempotent detach function.
        """
        if self.stopped:
            raise RuntimeError(f"watch session {self.key} is stopped")

        token = next(self._tokens)
        for document in list(self._cache.values()):
            self._deliver(callback, WatchEvent(WatchEventType.ADDED, document))

        self._subscribers[token] = callback
        subscribers_active.inc()
        count = len(self._subscribers)
        if count == 1 or count % 5 == 0:
            self._log.info("subscriber_attached", subscribers=count, replayed=len(self._cache))

        def detach() -> None:
            self._detach(token)

        return detach

    def _detach(self, token: int) -> None:
        if self._subscribers.pop(token, None) is None:
            return
        subscribers_active.dec()
        if not self._subscribers and not self.stopped:
            self._log.info("last_subscriber_detached")
            self.close()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Launch the list/watch loop as a background task."""
        if self._task is not None or self.stopped:
            return
        sessions_active.inc()
        self._task = asyncio.create_task(self._run(), name=f"watch-session-{self.key}")
        self._log.info("session_started")

    def close(self) -> None:
        """Stop without waiting: cancel in-flight I/O, drop cache, cursor and subscribers."""
        if self.stopped:
            return
        self._set_state(SessionState.STOPPED)
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._release()

    async def stop(self) -> None:
        """Stop and wait for the loop task to exit."""
        self.close()
        if self._task is not None and not self._task.done():
            with contextlib.suppress(asyncio.CancelledError):
                await self._task

    def _release(self) -> None:
        if self._released:
            return
        self._released = True
        if self._subscribers:
            subscribers_active.dec(len(self._subscribers))
        self._subscribers.clear()
        self._cache.clear()
        self._tombstones.clear()
        self._cursor = ""
        self._watch_opened_at = None
        if self._task is not None:
            sessions_active.dec()
        self._log.info("session_stopped", state=self._state.value)
        if self._on_stopped is not None:
            self._on_stopped(self)

    # ------------------------------------------------------------------
    # Run loop
    # ------------------------------------------------------------------

    async def _run(self) -> None:
        pending = {task for task in self._predecessors if not task.done()}
        self._predecessors.clear()
        if pending:
            self._log.debug("waiting_for_predecessor", tasks=len(pending))
            await asyncio.wait(pending)

        while not self.stopped:
            try:
                await self._cycle()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                if self.stopped:
                    return
                await self._handle_failure(exc)

    async def _cycle(self) -> None:
        """Resolve if needed, list if there is no cursor, then watch until the stream ends."""
        if self._descriptor is None:
            self._set_state(SessionState.INITIALIZING)
            descriptor = await self._directory.resolve(self.key.kind)
            if descriptor is None:
                raise UnknownKindError(self.key.kind)
            self._descriptor = descriptor

        if not self._cursor:
            self._set_state(SessionState.LISTING)
            await self._list(self._descriptor)
            if self.stopped:
                return

        self._set_state(SessionState.WATCHING)
        await self._watch(self._descriptor)
        if self.stopped:
            return

        # Clean end, usually the server-side watch timeout.
        if self._policy.sustained(self._consume_watch_duration()):
            self._attempts = 0
            await self._sleep(self._policy.delay(0), "stream_end")
            return
        self._attempts += 1
        if self._policy.should_give_up(self._attempts):
            self._terminate(RetriesExhaustedError(self._attempts), SessionState.STOPPED)
            return
        self._log.debug("watch_stream_ended_early", attempt=self._attempts)
        await self._sleep(self._policy.delay(self._attempts), "stream_end_early")

    async def _list(self, descriptor: ApiResourceDescriptor) -> None:
        list_calls_total.labels(kind=self.key.kind).inc()
        result = await self._control_plane.list_objects(descriptor, self.key.namespace)
        if self.stopped:
            return
        self._replace_cache(result.items, descriptor)
        self._cursor = result.resource_version
        self._log.info("list_complete", objects=len(self._cache), resource_version=self._cursor)

    async def _watch(self, descriptor: ApiResourceDescriptor) -> None:
        self._watch_opened_at = asyncio.get_running_loop().time()
        stream = self._control_plane.watch_objects(
            descriptor,
            self.key.namespace,
            self._cursor,
            timeout_seconds=self._watch_timeout_seconds,
        )
        async with contextlib.aclosing(stream):  # type: ignore[type-var]
            async for record in stream:
                if self.stopped:
                    return
                self._apply(record, descriptor)

    async def _handle_failure(self, exc: Exception) -> None:
        if self._policy.sustained(self._consume_watch_duration()):
            self._attempts = 0

        failure = self._policy.classify(exc)
        if failure is FailureClass.TERMINAL:
            # A 404 while listing means the collection itself is missing.
            state = (
                SessionState.NOT_FOUND
                if isinstance(exc, ResourceTypeAbsentError) and self._state is SessionState.LISTING
                else SessionState.STOPPED
            )
            self._log.warning("kind_not_available", error=str(exc))
            self._terminate(exc, state)
            return

        self._attempts += 1
        if self._policy.should_give_up(self._attempts):
            self._log.error("retries_exhausted", attempts=self._attempts, error=str(exc))
            self._terminate(RetriesExhaustedError(self._attempts, exc), SessionState.STOPPED)
            return

        if failure is FailureClass.STALE_CURSOR:
            self._log.info("cursor_expired_relisting", attempt=self._attempts)
            reconnects_total.labels(kind=self.key.kind, reason="gone").inc()
            self._cursor = ""
            return

        if isinstance(exc, TransientWatchError):
            self._log.warning("watch_failed", attempt=self._attempts, status=exc.status, error=str(exc))
            self._broadcast(WatchEvent(WatchEventType.ERROR, error=str(exc)))
        elif isinstance(exc, KubeMuxError):
            self._log.warning("session_step_failed", attempt=self._attempts, error=str(exc))
        else:
            self._log.error("session_unexpected_error", attempt=self._attempts, error=str(exc), exc_info=True)
        await self._sleep(self._policy.delay(self._attempts), type(exc).__name__)

    async def _sleep(self, delay: float, reason: str) -> None:
        self._set_state(SessionState.RECONNECTING)
        reconnects_total.labels(kind=self.key.kind, reason=reason).inc()
        backoff_seconds.labels(kind=self.key.kind).observe(delay)
        self._log.debug("session_backoff", reason=reason, delay_s=delay, attempt=self._attempts)
        await asyncio.sleep(delay)

    def _terminate(self, exc: Exception, state: SessionState) -> None:
        """Emit the one terminal ERROR and stop for good."""
        self._set_state(state)
        self._broadcast(WatchEvent(WatchEventType.ERROR, error=str(exc), terminal=True))
        self._release()

    def _consume_watch_duration(self) -> float:
        opened_at, self._watch_opened_at = self._watch_opened_at, None
        if opened_at is None:
            return 0.0
        return asyncio.get_running_loop().time() - opened_at

    def _set_state(self, state: SessionState) -> None:
        if state is not self._state:
            self._log.debug("session_state", previous=self._state.value, state=state.value)
            self._state = state

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------

    def _replace_cache(self, items: list[dict[str, Any]], descriptor: ApiResourceDescriptor) -> None:
        """Swap in a fresh snapshot and fan out its difference from the old cache.

        The old cache is discarded, never merged.
        """
        fresh: dict[str, ResourceDocument] = {}
        for raw in items:
            document = parse_document(raw, default_kind=descriptor.kind)
            if document.uid:
                fresh[document.uid] = document

        previous, self._cache = self._cache, fresh
        self._tombstones.clear()

        for uid, document in fresh.items():
            old = previous.get(uid)
            if old is None:
                self._broadcast(WatchEvent(WatchEventType.ADDED, document))
            elif old.resource_version != document.resource_version:
                self._broadcast(WatchEvent(WatchEventType.MODIFIED, document))
        for uid, old in previous.items():
            if uid not in fresh:
                self._broadcast(WatchEvent(WatchEventType.DELETED, old))

    def _apply(self, record: dict[str, Any], descriptor: ApiResourceDescriptor) -> None:
        event_type = str(record.get("type", "")).upper()
        obj = record.get("object")
        if not isinstance(obj, dict):
            obj = {}

        metadata = obj.get("metadata")
        if isinstance(metadata, dict) and metadata.get("resourceVersion"):
            self._cursor = str(metadata["resourceVersion"])

        watch_events_total.labels(kind=self.key.kind, event_type=event_type or "unknown").inc()
        if event_type == "BOOKMARK":
            return
        if event_type == "ERROR":
            raise _status_error(obj, descriptor)

        try:
            kind = WatchEventType(event_type)
        except ValueError:
            self._log.warning("unknown_watch_event_type", event_type=event_type)
            return

        document = parse_document(obj, default_kind=descriptor.kind)
        if self._apply_to_cache(kind, document):
            self._broadcast(WatchEvent(kind, document))

    def _apply_to_cache(self, kind: WatchEventType, document: ResourceDocument) -> bool:
        """Apply one delta; return False if it is stale and must not be fanned out."""
        uid = document.uid
        if not uid:
            return True
        if kind is WatchEventType.DELETED:
            self._cache.pop(uid, None)
            self._tombstones[uid] = None
            if len(self._tombstones) > _MAX_TOMBSTONES:
                self._tombstones.popitem(last=False)
            return True
        if uid in self._tombstones:
            self._log.debug("stale_event_dropped", uid=uid, event_type=kind.value, reason="deleted")
            return False
        if kind is WatchEventType.MODIFIED and uid not in self._cache:
            self._log.debug("stale_event_dropped", uid=uid, event_type=kind.value, reason="not_cached")
            return False
        self._cache[uid] = document
        return True

    # ------------------------------------------------------------------
    # Fan-out
    # ------------------------------------------------------------------

    def _broadcast(self, event: WatchEvent) -> None:
        """Deliver *event* to every subscriber in attach order, synchronously."""
        for token, callback in list(self._subscribers.items()):
            # A callback earlier in this pass may have detached a later one.
            if token in self._subscribers:
                self._deliver(callback, event)

    def _deliver(self, callback: EventCallback, event: WatchEvent) -> None:
        try:
            callback(event)
        except Exception as exc:
            self._log.error("subscriber_callback_failed", event_type=event.type.value, error=str(exc), exc_info=True)


def _status_error(status: dict[str, Any], descriptor: ApiResourceDescriptor) -> Exception:
    """Convert an ERROR record yielded by a ControlPlane into the error taxonomy."""
    code = status.get("code")
    message = str(status.get("message", "") or "watch stream reported an error")
    if code == 410:
        return ResourceGoneError(message)
    if code == 404:
        return ResourceTypeAbsentError(descriptor.kind or descriptor.plural_name)
    return TransientWatchError(message, status=code if isinstance(code, int) else None)
