"""
Test fixtures for Novachat API tests.
"""

import os
from dataclasses import replace

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

# Keep the ambient environment out of the app before importing it
os.environ["OPENAI_API_KEY"] = ""

from novachat.main import app
from novachat.agent import CompletionRelay
from novachat.api.deps import get_relay
from novachat.config import Settings, get_settings
from novachat.db import stores_for


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings with an isolated data directory and no fallback delay."""
    return Settings(data_dir=tmp_path, fallback_stream_delay=0)


@pytest.fixture(autouse=True)
def override_settings(settings):
    """Point the app at the per-test settings."""
    app.dependency_overrides[get_settings] = lambda: settings
    yield
    app.dependency_overrides.clear()


@pytest.fixture
def configure(settings):
    """Swap in settings with some fields changed."""

    def apply(**changes) -> Settings:
        changed = replace(settings, **changes)
        app.dependency_overrides[get_settings] = lambda: changed
        return changed

    return apply


@pytest.fixture
def upstream(configure):
    """
    Enable the upstream relay against a mock transport.

    Usage: upstream(handler) where handler(request) returns an httpx.Response.
    """

    def install(handler, **changes) -> CompletionRelay:
        upstream_settings = configure(openai_api_key="test-key", **changes)
        relay = CompletionRelay(upstream_settings, transport=httpx.MockTransport(handler))
        app.dependency_overrides[get_relay] = lambda: relay
        return relay

    return install


@pytest.fixture
def stores(settings):
    """Direct store access for test setup/assertions."""
    return stores_for(settings.data_dir)


@pytest.fixture
async def client():
    """Async HTTP client for testing FastAPI app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
async def other_client():
    """A second client with its own cookies (another browser)."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
