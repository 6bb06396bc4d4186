"""Configuration data structures."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class ClusterConfig:
    """How to reach the API server.  Empty context means the kubeconfig's current one."""

    context: str = ""


@dataclass
class BackoffConfig:
    """Reconnect back-off policy."""

    base_delay_ms: int = 1000
    max_delay_ms: int = 30000
    max_attempts: int = 5


@dataclass
class WatchConfig:
    """Watch stream tuning."""

    min_duration_seconds: float = 10.0
    timeout_seconds: int = 300


@dataclass
class LogConfig:
    """Logging configuration."""

    level: str = "info"


@dataclass
class MetricsConfig:
    """Prometheus endpoint configuration.  Port 0 disables it."""

    port: int = 0


@dataclass
class KubeMuxConfig:
    """Top-level kubemux configuration."""

    cluster: ClusterConfig = field(default_factory=ClusterConfig)
    backoff: BackoffConfig = field(default_factory=BackoffConfig)
    watch: WatchConfig = field(default_factory=WatchConfig)
    log: LogConfig = field(default_factory=LogConfig)
    metrics: MetricsConfig = field(default_factory=MetricsConfig)
