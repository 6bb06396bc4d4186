"""ControlPlane implementation backed by kubernetes_asyncio.

Every request goes through the shared ``ApiClient`` so authentication, TLS
and proxy settings come from whichever configuration :func:`connect` loaded.
Collections are addressed by URL path rather than generated API classes, which
lets one code path serve core kinds, built-in groups and CRDs alike.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from typing import Any

import aiohttp
from kubernetes_asyncio import client, watch
from kubernetes_asyncio import config as k8s_config
from kubernetes_asyncio.client.exceptions import ApiException

from kubemux.errors import (
    ConfigurationError,
    DiscoveryError,
    KubeMuxError,
    ResourceGoneError,
    ResourceTypeAbsentError,
    TransientWatchError,
)
from kubemux.models.config import ClusterConfig
from kubemux.models.resources import ApiResourceDescriptor
from kubemux.observability.logging import get_logger
from kubemux.upstream.base import ControlPlane, ObjectList

_LIST_PAGE_SIZE: int = 500
_REQUEST_TIMEOUT_S: float = 30.0

# Failures that may clear up on their own.
_TRANSPORT_ERRORS = (ApiException, aiohttp.ClientError, asyncio.TimeoutError)

_log = get_logger("upstream.kubernetes")


async def connect(cluster: ClusterConfig) -> KubernetesControlPlane:
    """Load connection parameters and return a ready control plane.

    Tries the in-cluster service account first, then kubeconfig.

    Raises:
        ConfigurationError: neither source yields a usable configuration.
    """
    try:
        # load_incluster_config() is synchronous in kubernetes-asyncio
        k8s_config.load_incluster_config()
        context = "in-cluster"
        _log.info("k8s client configured from in-cluster service account")
    except k8s_config.ConfigException:
        try:
            # load_kube_config() is async in kubernetes-asyncio
            await k8s_config.load_kube_config(context=cluster.context or None)
        except (k8s_config.ConfigException, OSError) as exc:
            raise ConfigurationError(f"No usable Kubernetes configuration: {exc}") from exc
        context = cluster.context or "current-context"
        _log.info("k8s client configured from kubeconfig", context=context)

    return KubernetesControlPlane(client.ApiClient(), context=context)


class KubernetesControlPlane(ControlPlane):
    """Discovery, list and watch over a kubernetes_asyncio ``ApiClient``."""

    def __init__(self, api_client: Any, context: str = "") -> None:
        self._api_client = api_client
        self.context = context

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    async def core_resources(self) -> list[dict[str, Any]]:
        body = await self._discovery_get("/api/v1")
        return list(body.get("resources") or [])

    async def api_groups(self) -> list[tuple[str, str]]:
        body = await self._discovery_get("/apis")
        groups: list[tuple[str, str]] = []
        for group in body.get("groups") or []:
            name = group.get("name")
            if not name:
                continue
            preferred = (group.get("preferredVersion") or {}).get("version")
            if not preferred:
                versions = group.get("versions") or []
                preferred = versions[0].get("version") if versions else None
            groups.append((str(name), str(preferred or "v1")))
        return groups

    async def group_resources(self, group: str, version: str) -> list[dict[str, Any]]:
        body = await self._discovery_get(f"/apis/{group}/{version}")
        return list(body.get("resources") or [])

    async def _discovery_get(self, path: str) -> dict[str, Any]:
        try:
            return await self._get_json(path)
        except (*_TRANSPORT_ERRORS, ValueError) as exc:
            raise DiscoveryError(f"Discovery request {path} failed: {exc}") from exc

    # ------------------------------------------------------------------
    # List / watch
    # ------------------------------------------------------------------

    async def list_objects(self, descriptor: ApiResourceDescriptor, namespace: str | None) -> ObjectList:
        """List a collection, following ``continue`` tokens across pages.

        The resourceVersion of the first page is the snapshot's version.
        """
        path = descriptor.collection_path(namespace)
        items: list[dict[str, Any]] = []
        resource_version = ""
        continue_token = ""
        try:
            while True:
                body = await self._get_json(path, limit=_LIST_PAGE_SIZE, continue_=continue_token or None)
                metadata = body.get("metadata") or {}
                if not resource_version:
                    resource_version = str(metadata.get("resourceVersion", "") or "")
                items.extend(body.get("items") or [])
                continue_token = str(metadata.get("continue", "") or "")
                if not continue_token:
                    break
        except (*_TRANSPORT_ERRORS, ValueError) as exc:
            raise _translate(exc, descriptor) from exc
        return ObjectList(items=items, resource_version=resource_version)

    async def watch_objects(
        self,
        descriptor: ApiResourceDescriptor,
        namespace: str | None,
        resource_version: str,
        timeout_seconds: int | None = None,
    ) -> AsyncIterator[dict[str, Any]]:
        path = descriptor.collection_path(namespace)
        kwargs: dict[str, Any] = {
            "allow_watch_bookmarks": True,
        }
        if resource_version:
            kwargs["resource_version"] = resource_version
        if timeout_seconds:
            kwargs["timeout_seconds"] = timeout_seconds

        w = watch.Watch()
        try:
            async for raw_event in w.stream(self._request, path, **kwargs):
                yield _normalise_record(raw_event)
        except _TRANSPORT_ERRORS as exc:
            raise _translate(exc, descriptor) from exc
        finally:
            await w.close()

    async def close(self) -> None:
        await self._api_client.close()

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------

    async def _get_json(self, path: str, **params: Any) -> dict[str, Any]:
        response = await self._request(path, _request_timeout=_REQUEST_TIMEOUT_S, **params)
        try:
            body = await response.json()
        finally:
            response.release()
        if not isinstance(body, dict):
            raise ValueError(f"Unexpected response body from {path}")
        return body

    async def _request(
        self,
        path: str,
        *,
        watch: bool = False,
        resource_version: str | None = None,
        allow_watch_bookmarks: bool | None = None,
        timeout_seconds: int | None = None,
        limit: int | None = None,
        continue_: str | None = None,
        _preload_content: bool = False,
        _request_timeout: float | None = None,
    ) -> Any:
        """Issue a GET against *path* and hand back the unread HTTP response.

        Also serves as the list function for ``Watch.stream``, which passes
        ``watch=True`` and reads the body line by line itself.
        """
        query: list[tuple[str, str]] = []
        if watch:
            query.append(("watch", "true"))
        if resource_version:
            query.append(("resourceVersion", resource_version))
        if allow_watch_bookmarks:
            query.append(("allowWatchBookmarks", "true"))
        if timeout_seconds:
            query.append(("timeoutSeconds", str(timeout_seconds)))
        if limit:
            query.append(("limit", str(limit)))
        if continue_:
            query.append(("continue", continue_))

        response = await self._api_client.call_api(
            path,
            "GET",
            query_params=query,
            header_params={"Accept": "application/json"},
            auth_settings=["BearerToken"],
            _preload_content=False,
            _request_timeout=_request_timeout,
        )
        if response.status != 200:
            reason = response.reason
            response.release()
            raise ApiException(status=response.status, reason=reason)
        return response


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _translate(exc: BaseException, descriptor: ApiResourceDescriptor) -> KubeMuxError:
    """Map a transport failure on a collection to the kubemux error taxonomy."""
    if isinstance(exc, ApiException):
        if exc.status == 404:
            return ResourceTypeAbsentError(descriptor.kind or descriptor.plural_name)
        if exc.status == 410:
            return ResourceGoneError(f"resourceVersion expired for {descriptor.qualified_name}")
        return TransientWatchError(
            f"API server returned {exc.status} {exc.reason} for {descriptor.qualified_name}",
            status=exc.status,
        )
    return TransientWatchError(f"{type(exc).__name__}: {exc}")


def _normalise_record(raw_event: dict[str, Any]) -> dict[str, Any]:
    """Reduce a Watch.stream event to ``{"type", "object"}`` with a plain dict object.

    Watch.stream raises ApiException for in-stream ERROR records itself, so
    those reach :func:`_translate` and never arrive here.
    """
    event_type = str(raw_event.get("type", ""))
    obj = raw_event.get("raw_object")
    if not isinstance(obj, dict):
        obj = raw_event.get("object")
    if not isinstance(obj, dict):
        obj = {}

    return {"type": event_type, "object": obj}
