"""Pytest configuration and fixtures for testing."""

from __future__ import annotations

from typing import Any, Generator

import httpx
import pytest

UPSTREAM_HOST = "upstream.local"
UPSTREAM_BASE_URL = f"http://{UPSTREAM_HOST}/api"


# =============================================================================
# Transport Registry Fixtures
# =============================================================================


@pytest.fixture
def clear_transport_registry() -> Generator[None, None, None]:
    """Clear upstream transport registry after test.

    Use this fixture in tests that register fake transports.
    """
    from onemin_relay.core.upstream_transport import clear_upstream_transports

    yield
    clear_upstream_transports()


# =============================================================================
# Configuration Builders
# =============================================================================


def build_relay_config(
    base_url: str = UPSTREAM_BASE_URL,
    *,
    api_key: str = "test-key",
    inter_segment_delay_ms: int = 0,
    models: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Build a relay config pointing at a fake upstream.

    Args:
        base_url: Upstream API base
        api_key: API key sent to the upstream
        inter_segment_delay_ms: Pause between chunked segment calls
        models: Optional models section override

    Returns:
        Config dict for RelayHarness
    """
    config: dict[str, Any] = {
        "backend": {
            "api_base": base_url,
            "api_key": api_key,
            "request_timeout": 5,
        },
        "chunking": {"inter_segment_delay_ms": inter_segment_delay_ms},
    }
    if models is not None:
        config["models"] = models
    return config


# =============================================================================
# Harness Fixtures
# =============================================================================


@pytest.fixture
def fake_upstream(clear_transport_registry: None) -> Any:
    """A FakeUpstream registered for upstream.local."""
    from onemin_relay.core.upstream_transport import register_upstream_transport
    from onemin_relay.testing import FakeUpstream

    upstream = FakeUpstream()
    register_upstream_transport(UPSTREAM_HOST, httpx.ASGITransport(app=upstream.app))
    return upstream


@pytest.fixture
def relay_harness(fake_upstream: Any) -> Generator[tuple[Any, Any], None, None]:
    """Create a harness for chat completions endpoint testing.

    Returns:
        Tuple of (FakeUpstream, RelayHarness)

    Usage:
        async def test_chat(relay_harness):
            upstream, harness = relay_harness
            upstream.enqueue_chat_response("Hola")
            # ... test code ...
    """
    from onemin_relay.testing import RelayHarness

    harness = RelayHarness(build_relay_config())
    try:
        yield fake_upstream, harness
    finally:
        harness.close()


# =============================================================================
# Helper Functions for Tests
# =============================================================================


class RecordingBackendClient:
    """Stand-in for BackendClient that replays canned replies in order.

    Each reply is either a string (returned as the translated text) or an
    exception instance (raised for that call).
    """

    def __init__(self, replies: list[Any]) -> None:
        self._replies = list(replies)
        self.payloads: list[dict[str, Any]] = []

    async def send_chat(self, payload: dict[str, Any], streaming: bool = False) -> Any:
        assert streaming is False
        self.payloads.append(payload)
        reply = self._replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        return {"aiRecord": {"aiRecordDetail": {"resultObject": [reply]}}}

    @property
    def prompts(self) -> list[str]:
        return [p["promptObject"]["prompt"] for p in self.payloads]


def parse_sse_frames(raw: bytes) -> list[str]:
    """Split an SSE body into the payload of each ``data:`` frame."""
    text = raw.decode("utf-8")
    frames = []
    for block in text.split("\n\n"):
        if not block:
            continue
        assert block.startswith("data: "), block
        frames.append(block[len("data: "):])
    return frames
