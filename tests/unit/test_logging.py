"""Unit tests for kubemux.observability.logging."""

from __future__ import annotations

import io
import json
import logging
from collections.abc import Iterator

import pytest
import structlog

from kubemux.observability.logging import get_logger, setup_logging


@pytest.fixture
def stream() -> Iterator[io.StringIO]:
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    buf = io.StringIO()
    yield buf
    root.handlers = handlers
    root.setLevel(level)
    structlog.reset_defaults()


def _lines(stream: io.StringIO) -> list[dict[str, object]]:
    return [json.loads(line) for line in stream.getvalue().splitlines()]


class TestSetupLogging:
    def test_structlog_records_are_json_with_context(self, stream: io.StringIO) -> None:
        setup_logging("info", stream=stream)
        get_logger("informer.session", watch_key="pods:default").info("session_started", subscribers=1)

        (line,) = _lines(stream)
        assert line["event"] == "session_started"
        assert line["component"] == "informer.session"
        assert line["watch_key"] == "pods:default"
        assert line["subscribers"] == 1
        assert line["level"] == "info"
        assert "ts" in line

    def test_level_filters_structlog_records(self, stream: io.StringIO) -> None:
        setup_logging("warning", stream=stream)
        log = get_logger("app")
        log.info("ignored")
        log.warning("kept")
        assert [line["event"] for line in _lines(stream)] == ["kept"]

    def test_stdlib_records_share_the_format(self, stream: io.StringIO) -> None:
        setup_logging("info", stream=stream)
        logging.getLogger("kubemux.embedder").warning("plain %s", "record")

        (line,) = _lines(stream)
        assert line["event"] == "plain record"
        assert line["logger"] == "kubemux.embedder"
        assert line["level"] == "warning"

    def test_client_libraries_are_quietened(self, stream: io.StringIO) -> None:
        setup_logging("debug", stream=stream)
        logging.getLogger("kubernetes_asyncio.client.rest").info("GET /api/v1/pods")
        logging.getLogger("aiohttp.client").warning("connection reset")
        assert [line["event"] for line in _lines(stream)] == ["connection reset"]

    def test_exceptions_are_rendered(self, stream: io.StringIO) -> None:
        setup_logging("info", stream=stream)
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            get_logger("informer.session").error("subscriber_callback_failed", exc_info=True)

        (line,) = _lines(stream)
        assert "RuntimeError: boom" in str(line["exception"])
