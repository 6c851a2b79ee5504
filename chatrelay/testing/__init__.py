"""Testing utilities for in-process gateway simulations."""

from .fake_upstream import (
    FakeJsonUpstream,
    FakeSearchUpstream,
    StreamError,
    UpstreamResponse,
    fragment,
    token_event,
)
from .harness import GatewayHarness

__all__ = [
    "FakeJsonUpstream",
    "FakeSearchUpstream",
    "GatewayHarness",
    "StreamError",
    "UpstreamResponse",
    "fragment",
    "token_event",
]
