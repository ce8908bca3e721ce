"""
Root conftest.py - Shared fixtures for all test types.

This file is automatically loaded by pytest and provides:
- Test settings (no telemetry, short verification poll)
- Fakes for the cloud API, auth, telemetry and dialog host
- FastAPI test client
"""
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from envsetup.config import Settings, get_settings
from envsetup.main import create_app
from envsetup.services.environment_cache import ENV_ID_VARIABLE, EnvironmentCache
from envsetup.services.interactive.registry import SessionRegistry
from envsetup.services.setup.orchestrator import SelectionOrchestrator
from shared.mocks import FakeAuthGateway, FakeCloudClient, FakeDialogHost, RecordingTelemetry


# -----------------------------------------------------------------------------
# Settings Fixtures
# -----------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch):
    """Keep CLOUDENV_* variables from the developer's shell out of tests."""
    monkeypatch.delenv(ENV_ID_VARIABLE, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        telemetry_disabled=True,
        verify_poll_interval=0.01,
        verify_timeout=0.05,
    )


@pytest.fixture
def headless_settings(settings) -> Settings:
    return settings.model_copy(update={"headless": True})


# -----------------------------------------------------------------------------
# Fake Dependencies
# -----------------------------------------------------------------------------

@pytest.fixture
def cloud() -> FakeCloudClient:
    return FakeCloudClient()


@pytest.fixture
def auth() -> FakeAuthGateway:
    return FakeAuthGateway()


@pytest.fixture
def telemetry() -> RecordingTelemetry:
    return RecordingTelemetry()


@pytest.fixture
def cache() -> EnvironmentCache:
    return EnvironmentCache()


@pytest.fixture
def registry() -> SessionRegistry:
    return SessionRegistry()


@pytest.fixture
def dialog_host(registry) -> FakeDialogHost:
    return FakeDialogHost(registry)


@pytest.fixture
def make_orchestrator(cloud, auth, telemetry, cache, dialog_host, registry, settings):
    """Build a SelectionOrchestrator from the fakes, overriding any of them."""
    def _make(**overrides) -> SelectionOrchestrator:
        deps = {
            "client_factory": lambda state: cloud,
            "auth": auth,
            "telemetry": telemetry,
            "cache": cache,
            "dialog_host": dialog_host,
            "registry": registry,
            "settings": settings,
        }
        deps.update(overrides)
        return SelectionOrchestrator(**deps)
    return _make


# -----------------------------------------------------------------------------
# HTTP Client
# -----------------------------------------------------------------------------

@pytest.fixture
def opened_links() -> list[str]:
    return []


@pytest.fixture
def app(registry, opened_links):
    return create_app(registry=registry, link_opener=opened_links.append)


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Provide an async HTTP client for API testing."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# -----------------------------------------------------------------------------
# Marker-based fixtures
# -----------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _mark_test(request):
    """Automatically apply markers based on test location."""
    if "unit" in str(request.fspath):
        request.applymarker(pytest.mark.unit)
    elif "integration" in str(request.fspath):
        request.applymarker(pytest.mark.integration)
