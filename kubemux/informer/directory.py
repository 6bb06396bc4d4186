"""API resource directory.

Maps logical kind names ("pods", "Deployment", "kustomizations.kustomize.toolkit.fluxcd.io")
to collection descriptors, using one discovery pass over the API server.

Discovery is single-flight: concurrent callers share one in-flight run. A
failing group/version is skipped and logged; failure of the whole pass is
raised to every waiter and nothing is cached, so the next resolve retries.
"""

from __future__ import annotations

import asyncio
import time

from kubemux.errors import DiscoveryError
from kubemux.models.resources import ApiResourceDescriptor
from kubemux.observability.logging import get_logger
from kubemux.observability.metrics import discovery_group_failures_total, discovery_runs_total
from kubemux.upstream.base import ControlPlane

_CORE_VERSION: str = "v1"


class ApiResourceDirectory:
    """Catalog of collections served by the cluster.

    Example::

        directory = ApiResourceDirectory(control_plane)
        descriptor = await directory.resolve("deployments")
        if descriptor is None:
            ...  # the cluster does not serve that kind
    """

    def __init__(self, control_plane: ControlPlane) -> None:
        self._control_plane = control_plane
        self._log = get_logger("informer.directory")
        self._catalog: dict[str, ApiResourceDescriptor] = {}
        self._discovered: bool = False
        self._inflight: asyncio.Task[dict[str, ApiResourceDescriptor]] | None = None

    @property
    def discovered(self) -> bool:
        return self._discovered

    async def discover(self) -> None:
        """Run discovery once; concurrent callers await the same run.

        Raises:
            DiscoveryError: the pass failed as a whole.
        """
        if self._discovered:
            return
        if self._inflight is None:
            self._inflight = asyncio.create_task(self._run_discovery(), name="api-discovery")
            self._inflight.add_done_callback(self._on_discovery_done)
        # Shielded so a cancelled waiter does not cancel the run for the others.
        await asyncio.shield(self._inflight)

    async def resolve(self, kind: str) -> ApiResourceDescriptor | None:
        """Return the descriptor for *kind*, discovering first if needed.

        ``None`` means the cluster does not serve that kind.
        """
        if not self._discovered:
            await self.discover()
        return self.lookup(kind)

    def lookup(self, kind: str) -> ApiResourceDescriptor | None:
        """Case-insensitive lookup against the current catalog, without I/O."""
        return self._catalog.get(kind.strip().lower())

    def resources(self) -> list[ApiResourceDescriptor]:
        """Return each distinct descriptor once, in discovery order."""
        seen: dict[str, ApiResourceDescriptor] = {}
        for descriptor in self._catalog.values():
            seen.setdefault(descriptor.qualified_name, descriptor)
        return list(seen.values())

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _run_discovery(self) -> dict[str, ApiResourceDescriptor]:
        started = time.monotonic()
        catalog: dict[str, ApiResourceDescriptor] = {}

        try:
            core = await self._control_plane.core_resources()
        except DiscoveryError as exc:
            self._skip_group("", _CORE_VERSION, exc)
        else:
            _register(catalog, core, "", _CORE_VERSION)

        # The group list itself failing means discovery failed as a whole.
        groups = await self._control_plane.api_groups()
        for group, version in groups:
            try:
                resources = await self._control_plane.group_resources(group, version)
            except DiscoveryError as exc:
                self._skip_group(group, version, exc)
                continue
            _register(catalog, resources, group, version)

        self._catalog = catalog
        self._discovered = True
        self._log.info(
            "discovery_complete",
            keys=len(catalog),
            groups=len(groups) + 1,
            duration_s=round(time.monotonic() - started, 3),
        )
        return catalog

    def _skip_group(self, group: str, version: str, exc: Exception) -> None:
        discovery_group_failures_total.inc()
        self._log.warning(
            "discovery_group_failed",
            group=group or "core",
            version=version,
            error=str(exc),
        )

    def _on_discovery_done(self, task: asyncio.Task[dict[str, ApiResourceDescriptor]]) -> None:
        self._inflight = None
        if task.cancelled():
            discovery_runs_total.labels(outcome="cancelled").inc()
            return
        exc = task.exception()
        if exc is not None:
            discovery_runs_total.labels(outcome="failed").inc()
            self._log.error("discovery_failed", error=str(exc))
        else:
            discovery_runs_total.labels(outcome="ok").inc()


def _register(
    catalog: dict[str, ApiResourceDescriptor],
    resources: list[dict[str, object]],
    group: str,
    version: str,
) -> None:
    """Add one group/version's resources to *catalog*.  First registration of a key wins."""
    for resource in resources:
        name = str(resource.get("name", ""))
        if not name or "/" in name:  # sub-resources such as pods/log
            continue
        descriptor = ApiResourceDescriptor.from_discovery(resource, group, version)
        catalog.setdefault(descriptor.qualified_name.lower(), descriptor)
        for alias in (descriptor.plural_name, descriptor.singular_name, descriptor.kind):
            if alias:
                catalog.setdefault(alias.lower(), descriptor)
