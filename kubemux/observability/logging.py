"""Structured logging for kubemux.

Everything is rendered as one JSON object per line on stderr; stdout is left
to the CLI, which prints watch events there.  Records from the standard
``logging`` module (kubernetes_asyncio, aiohttp) go through the same
renderer so a log stream never mixes formats.
"""

from __future__ import annotations

import logging
import sys
from typing import IO, Any

import structlog

# Client libraries log every request at INFO/DEBUG.
_NOISY_LIBRARIES: tuple[str, ...] = ("kubernetes_asyncio", "aiohttp", "urllib3")

_SHARED_PROCESSORS: list[Any] = [
    structlog.contextvars.merge_contextvars,
    structlog.processors.add_log_level,
    structlog.processors.TimeStamper(fmt="iso", utc=True, key="ts"),
]


def setup_logging(level: str = "info", stream: IO[str] | None = None) -> None:
    """Configure structlog and the stdlib root logger for JSON lines on *stream* (stderr by default)."""
    log_level = getattr(logging, level.upper(), logging.INFO)
    stream = stream or sys.stderr

    structlog.configure(
        processors=[
            *_SHARED_PROCESSORS,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=stream),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(stream)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=[structlog.stdlib.add_logger_name, *_SHARED_PROCESSORS],
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.JSONRenderer(),
            ],
        )
    )
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(log_level)
    for name in _NOISY_LIBRARIES:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))


def get_logger(component: str, **context: Any) -> structlog.stdlib.BoundLogger:
    """Get a logger bound with a component name and any extra *context*."""
    return structlog.get_logger(component=component, **context)  # type: ignore[return-value]
