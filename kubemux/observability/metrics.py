"""Prometheus collectors for the informer core.

All collectors register on the default ``prometheus_client`` registry so a
single ``start_http_server`` call exposes them.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

sessions_active = Gauge(
    "kubemux_sessions_active",
    "Watch sessions currently holding an upstream list/watch.",
)

subscribers_active = Gauge(
    "kubemux_subscribers_active",
    "Subscriber callbacks attached across all watch sessions.",
)

watch_events_total = Counter(
    "kubemux_watch_events_total",
    "Watch records received from the API server, by kind and event type.",
    ["kind", "event_type"],
)

list_calls_total = Counter(
    "kubemux_list_calls_total",
    "Full list calls issued, by kind.",
    ["kind"],
)

reconnects_total = Counter(
    "kubemux_reconnects_total",
    "Watch reconnects, by kind and reason.",
    ["kind", "reason"],
)

backoff_seconds = Histogram(
    "kubemux_backoff_seconds",
    "Back-off delays slept before reconnecting, by kind.",
    ["kind"],
    buckets=(1, 2, 4, 8, 16, 30, 60),
)

discovery_runs_total = Counter(
    "kubemux_discovery_runs_total",
    "API discovery runs, by outcome.",
    ["outcome"],
)

discovery_group_failures_total = Counter(
    "kubemux_discovery_group_failures_total",
    "API group/versions skipped during discovery because their resource list failed.",
)
