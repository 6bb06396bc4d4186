"""Application root for kubemux.

Owns the connection, the resource directory and the informer registry, and
manages their lifetime.  Startup order: config -> logging -> k8s client ->
directory -> registry -> metrics endpoint.  Shutdown runs in reverse.

Whatever serves downstream connections (the CLI here, an HTTP bridge
elsewhere) holds one ``KubeMuxApp`` and calls :meth:`KubeMuxApp.subscribe`.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from prometheus_client import start_http_server

from kubemux.config import load_config
from kubemux.informer import ApiResourceDirectory, BackoffPolicy, InformerRegistry
from kubemux.models.config import KubeMuxConfig
from kubemux.models.events import Detach, EventCallback
from kubemux.observability.logging import get_logger, setup_logging
from kubemux.upstream.base import ControlPlane

if TYPE_CHECKING:
    import structlog


class KubeMuxApp:
    """Application root.  ``stop()`` is safe to call twice or without ``start()``.

    Pass *control_plane* to run against an existing connection; the app then
    does not close it on stop.
    """

    def __init__(self, config: KubeMuxConfig | None = None, control_plane: ControlPlane | None = None) -> None:
        self.config = config
        self._control_plane = control_plane
        self._owns_control_plane = control_plane is None
        self._directory: ApiResourceDirectory | None = None
        self._registry: InformerRegistry | None = None
        self._running = False
        self._log: structlog.stdlib.BoundLogger | None = None

    @property
    def running(self) -> bool:
        return self._running

    @property
    def context(self) -> str:
        """How the cluster connection was obtained (``in-cluster`` or a kubeconfig context)."""
        return str(getattr(self._control_plane, "context", "") or "")

    @property
    def directory(self) -> ApiResourceDirectory:
        if self._directory is None:
            raise RuntimeError("kubemux app is not started")
        return self._directory

    @property
    def registry(self) -> InformerRegistry:
        if self._registry is None:
            raise RuntimeError("kubemux app is not started")
        return self._registry

    async def start(self) -> None:
        """Start every component in dependency order.

        Raises:
            ConfigurationError: no usable cluster connection.
        """
        if self._running:
            return
        if self.config is None:
            self.config = load_config()

        setup_logging(self.config.log.level)
        self._log = get_logger("app")
        self._log.info("kubemux starting", version=_kubemux_version())

        if self._control_plane is None:
            # Imported lazily so tests and embedders with their own control
            # plane never touch kubeconfig loading.
            from kubemux.upstream.kubernetes import connect

            self._control_plane = await connect(self.config.cluster)

        self._directory = ApiResourceDirectory(self._control_plane)
        self._registry = InformerRegistry(
            self._control_plane,
            directory=self._directory,
            policy=BackoffPolicy.from_config(self.config.backoff, self.config.watch.min_duration_seconds),
            watch_timeout_seconds=self.config.watch.timeout_seconds,
        )

        if self.config.metrics.port:
            start_http_server(self.config.metrics.port)
            self._log.info("metrics endpoint started", port=self.config.metrics.port)

        self._running = True
        self._log.info("kubemux started", context=self.context)

    def subscribe(self, kind: str, namespace: str | None, on_event: EventCallback) -> Detach:
        return self.registry.subscribe(kind, namespace, on_event)

    async def stop(self) -> None:
        """Stop the registry, then close the connection if this app opened it."""
        if not self._running and self._log is None:
            return
        log = self._log or get_logger("app")
        log.info("kubemux shutting down")
        self._running = False

        if self._registry is not None:
            try:
                await self._registry.shutdown()
            except Exception as exc:
                log.error("registry shutdown raised an error", error=str(exc))
            self._registry = None
        self._directory = None

        if self._control_plane is not None and self._owns_control_plane:
            try:
                await self._control_plane.close()
            except Exception as exc:
                log.debug("k8s client close raised (non-fatal)", error=str(exc))
            self._control_plane = None

        log.info("kubemux stopped")


def _kubemux_version() -> str:
    from kubemux import __version__

    return __version__
