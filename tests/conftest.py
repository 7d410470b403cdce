"""Pytest configuration and fixtures."""

import json
import logging
from collections.abc import AsyncIterator, Callable, Iterable
from typing import Any

import httpx
import pytest

from chatstream.client import ChatStreamClient
from chatstream.config import ClientConfig
from chatstream.observability import register_metric_callback, unregister_metric_callback


class ChunkedBody(httpx.AsyncByteStream):
    """Response body delivered in exactly the given chunks."""

    def __init__(self, chunks: Iterable[bytes | str]) -> None:
        self.chunks = [c.encode() if isinstance(c, str) else c for c in chunks]
        self.served = 0
        self.closed = False

    async def __aiter__(self) -> AsyncIterator[bytes]:
        for chunk in self.chunks:
            self.served += 1
            yield chunk

    async def aclose(self) -> None:
        self.closed = True


def sse(*events: dict[str, Any]) -> str:
    """Encode events the way the agent service frames them (raw UTF-8)."""
    return "".join(f"data: {json.dumps(event, ensure_ascii=False)}\n\n" for event in events)


@pytest.fixture(autouse=True)
def reset_package_logger():
    """Drop handlers installed by configure_logging between tests."""
    yield
    logger = logging.getLogger("chatstream")
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def metrics():
    """Record (name, value, labels) for every metric emitted during a test."""
    emitted: list[tuple[str, float, dict[str, Any]]] = []

    def callback(name: str, value: float, labels: dict[str, Any]) -> None:
        emitted.append((name, value, labels))

    register_metric_callback(callback)
    yield emitted
    unregister_metric_callback(callback)


@pytest.fixture
def sample_config_dict() -> dict[str, Any]:
    """Sample configuration dictionary for testing."""
    return {
        "base_url": "http://agent.test",
        "auth": {"username": "admin", "password": "admin123"},
        "timeout": {"connect": 5, "read": 60},
        "stream": {"on_malformed": "discard", "on_premature_end": "complete"},
    }


@pytest.fixture
def make_client(sample_config_dict) -> Callable[..., ChatStreamClient]:
    """Build a client whose requests go to an httpx transport."""

    def factory(
        transport: httpx.AsyncBaseTransport,
        **overrides: Any,
    ) -> ChatStreamClient:
        config = ClientConfig.from_dict({**sample_config_dict, **overrides})
        return ChatStreamClient(config, http_client=httpx.AsyncClient(transport=transport))

    return factory
