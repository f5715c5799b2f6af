"""Testing utilities for in-process relay simulations."""

from .fake_upstream import FakeUpstream, StreamError, UpstreamResponse, build_features_response
from .proxy_harness import RelayHarness

__all__ = [
    "FakeUpstream",
    "RelayHarness",
    "StreamError",
    "UpstreamResponse",
    "build_features_response",
]
