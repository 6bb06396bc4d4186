"""Upstream control-plane access.

Submodules:
    base        -- ControlPlane: the async boundary the informer core consumes.
    kubernetes  -- KubernetesControlPlane over kubernetes_asyncio, plus connect().
"""

from kubemux.upstream.base import ControlPlane, ObjectList

__all__ = ["ControlPlane", "ObjectList"]
