"""Informer core: discovery, back-off, watch sessions and the session registry.

Submodules:
    backoff    -- BackoffPolicy: attempt -> delay, give-up, failure classification.
    directory  -- ApiResourceDirectory: kind name -> collection descriptor.
    session    -- WatchSession: list+watch+cache+fan-out for one watch key.
    registry   -- InformerRegistry: one session per key, subscribe/detach.
"""

from kubemux.informer.backoff import BackoffPolicy, FailureClass
from kubemux.informer.directory import ApiResourceDirectory
from kubemux.informer.registry import InformerRegistry
from kubemux.informer.session import WatchSession

__all__ = [
    "ApiResourceDirectory",
    "BackoffPolicy",
    "FailureClass",
    "InformerRegistry",
    "WatchSession",
]
