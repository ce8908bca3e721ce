"""
Integration tests for the dialog HTTP routes.

These tests DEFINE:
- GET /env-setup/{session_id} serves the dialog page for a live session
- POST /api/open-url opens links through the app's link opener
- GET /health reports the app is up
"""

import pytest

from envsetup.main import create_app
from envsetup.services.interactive.session import SessionView
from envsetup.services.setup.context import AccountInfo, EnvironmentRecord
from httpx import ASGITransport, AsyncClient


class TestDialogPage:

    @pytest.mark.asyncio
    async def test_page_for_live_session(self, client, registry):
        session = await registry.create(
            view=SessionView(
                envs=[EnvironmentRecord("env-1", "dev")],
                account=AccountInfo(user_id="100001"),
            )
        )

        response = await client.get(f"/env-setup/{session.session_id}")

        assert response.status_code == 200
        assert "text/html" in response.headers["content-type"]
        assert session.session_id in response.text
        assert '"envId": "env-1"' in response.text
        assert "/ws/" in response.text

    @pytest.mark.asyncio
    async def test_unknown_session(self, client):
        response = await client.get("/env-setup/does-not-exist")
        assert response.status_code == 404


class TestOpenUrl:

    @pytest.mark.asyncio
    async def test_opens_url(self, client, opened_links):
        response = await client.post("/api/open-url", json={"url": "https://example.com/help"})

        assert response.status_code == 200
        assert response.json() == {"success": True, "error": None}
        assert opened_links == ["https://example.com/help"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [{}, {"url": ""}, {"url": None}])
    async def test_missing_url(self, client, opened_links, body):
        response = await client.post("/api/open-url", json=body)

        assert response.status_code == 400
        assert response.json()["success"] is False
        assert opened_links == []

    @pytest.mark.asyncio
    async def test_opener_failure(self, registry):
        def broken(url):
            raise OSError("no browser available")

        app = create_app(registry=registry, link_opener=broken)
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            response = await ac.post("/api/open-url", json={"url": "https://example.com"})

        assert response.status_code == 500
        assert response.json() == {"success": False, "error": "no browser available"}


class TestHealth:

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"
