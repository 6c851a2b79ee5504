"""Pytest configuration and fixtures for testing."""

from __future__ import annotations

from typing import Any, Generator

import httpx
import pytest

from chatrelay.core.upstream_transport import (
    clear_upstream_transports,
    register_upstream_transport,
)
from chatrelay.testing import FakeJsonUpstream, FakeSearchUpstream, GatewayHarness

SEARCH_HOST = "search.local"
JSON_HOST = "json.local"


@pytest.fixture(autouse=True)
def isolate_agent_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep AGENT_MODEL_IDS from the outer shell out of every test."""
    monkeypatch.delenv("AGENT_MODEL_IDS", raising=False)


# =============================================================================
# Transport Registry Fixtures
# =============================================================================


@pytest.fixture
def clear_transport_registry() -> Generator[None, None, None]:
    """Clear upstream transport registry after test.

    Use this fixture in tests that register fake transports.
    """
    yield
    clear_upstream_transports()


# =============================================================================
# Harness Configuration Builders
# =============================================================================


def build_search_entry(
    base_url: str = f"http://{SEARCH_HOST}",
    *,
    name: str = "search",
    agent_models: list[str] | None = None,
    **overrides: Any,
) -> dict[str, Any]:
    """Build one ``upstreams`` entry for a search upstream."""
    entry: dict[str, Any] = {
        "name": name,
        "type": "search",
        "api_base": base_url,
        "timeout": 5,
        "agent_models": agent_models or [],
    }
    entry.update(overrides)
    return entry


def build_json_entry(
    base_url: str = f"http://{JSON_HOST}",
    *,
    name: str = "vendor",
    model_map: dict[str, str] | None = None,
    **overrides: Any,
) -> dict[str, Any]:
    """Build one ``upstreams`` entry for a JSON upstream."""
    entry: dict[str, Any] = {
        "name": name,
        "type": "json",
        "api_base": base_url,
        "timeout": 5,
        "model_map": model_map or {"vendor-large": "Vendor-Large"},
    }
    entry.update(overrides)
    return entry


def build_gateway_config(*entries: dict[str, Any], default_model: str | None = None) -> dict[str, Any]:
    """Build a gateway config dict from upstream entries (first is default)."""
    settings: dict[str, Any] = {}
    if default_model:
        settings["default_model"] = default_model
    return {"gateway_settings": settings, "upstreams": list(entries)}


# =============================================================================
# Harness Fixtures
# =============================================================================


@pytest.fixture
def search_upstream(clear_transport_registry: None) -> FakeSearchUpstream:
    upstream = FakeSearchUpstream()
    register_upstream_transport(SEARCH_HOST, httpx.ASGITransport(app=upstream.app))
    return upstream


@pytest.fixture
def json_upstream(clear_transport_registry: None) -> FakeJsonUpstream:
    upstream = FakeJsonUpstream()
    register_upstream_transport(JSON_HOST, httpx.ASGITransport(app=upstream.app))
    return upstream


@pytest.fixture
def gateway_harness(
    search_upstream: FakeSearchUpstream,
    json_upstream: FakeJsonUpstream,
) -> Generator[tuple[FakeSearchUpstream, FakeJsonUpstream, GatewayHarness], None, None]:
    """Gateway wired to a fake search upstream (default) and a fake JSON upstream.

    Returns:
        Tuple of (FakeSearchUpstream, FakeJsonUpstream, GatewayHarness)
    """
    config = build_gateway_config(
        build_search_entry(agent_models=["research_agent"]),
        build_json_entry(),
    )
    harness = GatewayHarness(config)
    try:
        yield search_upstream, json_upstream, harness
    finally:
        harness.close()
