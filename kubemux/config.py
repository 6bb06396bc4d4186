"""Configuration loading from environment variables."""

from __future__ import annotations

import os

from kubemux.models.config import (
    BackoffConfig,
    ClusterConfig,
    KubeMuxConfig,
    LogConfig,
    MetricsConfig,
    WatchConfig,
)


def _env(key: str, default: str = "") -> str:
    return os.environ.get(f"KUBEMUX_{key}", default)


def _env_int(key: str, default: int, min_val: int | None = None, max_val: int | None = None) -> int:
    val = int(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    if max_val is not None:
        val = min(val, max_val)
    return val


def _env_float(key: str, default: float) -> float:
    return float(_env(key, str(default)))


def _validate_log_level(value: str) -> str:
    valid = {"debug", "info", "warning", "error"}
    if value.lower() not in valid:
        raise ValueError(f"Invalid log level: {value}. Must be one of {valid}")
    return value.lower()


def _validate_backoff(backoff: BackoffConfig) -> BackoffConfig:
    if backoff.max_delay_ms < backoff.base_delay_ms:
        raise ValueError(
            f"Invalid back-off: max delay {backoff.max_delay_ms}ms is below base delay {backoff.base_delay_ms}ms"
        )
    return backoff


def _validate_non_negative(key: str, value: float) -> float:
    if value < 0:
        raise ValueError(f"Invalid {key}: {value} must not be negative")
    return value


def load_config() -> KubeMuxConfig:
    """Load configuration from KUBEMUX_* environment variables."""
    return KubeMuxConfig(
        cluster=ClusterConfig(
            context=_env("KUBE_CONTEXT", ""),
        ),
        backoff=_validate_backoff(
            BackoffConfig(
                base_delay_ms=_env_int("BACKOFF_BASE_MS", 1000, min_val=1),
                max_delay_ms=_env_int("BACKOFF_MAX_MS", 30000, min_val=1),
                max_attempts=_env_int("BACKOFF_MAX_ATTEMPTS", 5, min_val=1, max_val=20),
            )
        ),
        watch=WatchConfig(
            min_duration_seconds=_validate_non_negative(
                "WATCH_MIN_DURATION_S", _env_float("WATCH_MIN_DURATION_S", 10.0)
            ),
            timeout_seconds=_env_int("WATCH_TIMEOUT_S", 300, min_val=30, max_val=3600),
        ),
        log=LogConfig(
            level=_validate_log_level(_env("LOG_LEVEL", "info")),
        ),
        metrics=MetricsConfig(
            port=_env_int("METRICS_PORT", 0, min_val=0, max_val=65535),
        ),
    )
