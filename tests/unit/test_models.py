"""Unit tests for kubemux.models: descriptors, documents, keys and events."""

from __future__ import annotations

from kubemux.models.events import WatchEvent, WatchEventType, WatchKey
from kubemux.models.resources import (
    ApiResourceDescriptor,
    ConditionedResource,
    ResourceDocument,
    parse_document,
)
from .conftest import make_obj

_PODS = ApiResourceDescriptor("pods", "pod", "", "v1", "Pod", namespaced=True)
_NODES = ApiResourceDescriptor("nodes", "node", "", "v1", "Node", namespaced=False)
_DEPLOYMENTS = ApiResourceDescriptor("deployments", "deployment", "apps", "v1", "Deployment", namespaced=True)


class TestDescriptor:
    def test_core_paths(self) -> None:
        assert _PODS.collection_path() == "/api/v1/pods"
        assert _PODS.collection_path("kube-system") == "/api/v1/namespaces/kube-system/pods"

    def test_cluster_scoped_ignores_namespace(self) -> None:
        assert _NODES.collection_path("default") == "/api/v1/nodes"

    def test_group_paths(self) -> None:
        assert _DEPLOYMENTS.collection_path("web") == "/apis/apps/v1/namespaces/web/deployments"
        assert _DEPLOYMENTS.group_version == "apps/v1"
        assert _DEPLOYMENTS.qualified_name == "deployments.apps"
        assert _PODS.qualified_name == "pods"

    def test_from_discovery_defaults_singular_to_plural(self) -> None:
        descriptor = ApiResourceDescriptor.from_discovery(
            {"name": "widgets", "singularName": "", "namespaced": False, "kind": "Widget"}, "example.com", "v1beta1"
        )
        assert descriptor.singular_name == "widgets"
        assert descriptor.namespaced is False
        assert descriptor.group_version == "example.com/v1beta1"


class TestParseDocument:
    def test_plain_document_keeps_raw_untouched(self) -> None:
        raw = make_obj("web-1", rv="42")
        raw["x-unknown"] = {"nested": [1, 2]}
        doc = parse_document(raw, default_kind="Pod")
        assert type(doc) is ResourceDocument
        assert doc.raw is raw
        assert (doc.uid, doc.resource_version, doc.kind, doc.name, doc.namespace) == (
            "uid-web-1",
            "42",
            "Pod",
            "web-1",
            "default",
        )
        assert "kind" not in raw

    def test_document_kind_wins_over_default(self) -> None:
        doc = parse_document(make_obj("a", kind="Deployment"), default_kind="Pod")
        assert doc.kind == "Deployment"

    def test_conditions_produce_conditioned_resource(self) -> None:
        raw = make_obj(
            "flux-system",
            kind="Kustomization",
            conditions=[
                {"type": "Ready", "status": "True", "reason": "ReconciliationSucceeded"},
                {"type": "Healthy", "status": "False", "message": "timeout"},
                "garbage",
            ],
        )
        doc = parse_document(raw)
        assert isinstance(doc, ConditionedResource)
        assert doc.ready is True
        assert len(doc.conditions) == 2
        healthy = doc.condition("Healthy")
        assert healthy is not None
        assert healthy.message == "timeout"
        assert doc.condition("Stalled") is None

    def test_no_ready_condition_is_none(self) -> None:
        doc = parse_document(make_obj("x", conditions=[]))
        assert isinstance(doc, ConditionedResource)
        assert doc.ready is None

    def test_missing_metadata_is_tolerated(self) -> None:
        doc = parse_document({"kind": "Thing"})
        assert doc.uid == ""
        assert doc.namespace is None


class TestWatchKey:
    def test_kind_is_case_insensitive(self) -> None:
        assert WatchKey.of("Pods", "default") == WatchKey.of("pods", "default")

    def test_empty_namespace_is_cluster_wide(self) -> None:
        assert WatchKey.of("pods", "") == WatchKey.of("pods")
        assert str(WatchKey.of("pods")) == "pods"
        assert str(WatchKey.of("pods", "web")) == "pods:web"


def test_watch_event_to_dict() -> None:
    raw = make_obj("a")
    assert WatchEvent(WatchEventType.ADDED, parse_document(raw)).to_dict() == {
        "type": "ADDED",
        "object": raw,
        "error": None,
        "terminal": False,
    }
    assert WatchEvent(WatchEventType.ERROR, error="boom", terminal=True).to_dict() == {
        "type": "ERROR",
        "object": None,
        "error": "boom",
        "terminal": True,
    }
