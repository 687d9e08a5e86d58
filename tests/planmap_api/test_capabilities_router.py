"""Unit tests for the per-session capability endpoints."""
from __future__ import annotations

import asyncio

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from planmap.plugins.manager import CapabilityManager
from planmap.session import EditorSession
from planmap_api.routers.capabilities import router


def _make_app(sessions=None):
    app = FastAPI()
    app.include_router(router)
    app.state.sessions = sessions or {}
    return app


@pytest.fixture
def mounted():
    session = EditorSession(session_id="s1", capabilities=CapabilityManager())
    asyncio.run(session.mount("map"))
    yield session
    session.unmount()


@pytest.mark.unit
class TestCapabilitiesRouter:

    def test_list(self, mounted):
        client = TestClient(_make_app({"s1": mounted}))
        data = client.get("/api/capabilities/s1").json()
        ids = {c["id"] for c in data["capabilities"]}
        assert ids == {"planmap.toolbar", "planmap.distortable-image", "planmap.draw"}
        assert all(c["status"] == "running" for c in data["capabilities"])
        assert data["failed_specs"] == {}

    def test_health(self, mounted):
        client = TestClient(_make_app({"s1": mounted}))
        health = client.get("/api/capabilities/s1/health").json()
        assert health and all(health.values())

    def test_detail(self, mounted):
        client = TestClient(_make_app({"s1": mounted}))
        data = client.get("/api/capabilities/s1/planmap.distortable-image").json()
        assert data["capabilities"] == ["distortable-image"]
        assert data["dependencies"] == ["planmap.toolbar"]

    def test_unknown_capability(self, mounted):
        client = TestClient(_make_app({"s1": mounted}))
        assert client.get("/api/capabilities/s1/planmap.nope").status_code == 404

    def test_unknown_session(self):
        client = TestClient(_make_app())
        assert client.get("/api/capabilities/nope").status_code == 404
        assert client.get("/api/capabilities/nope/health").status_code == 404

    def test_failed_spec_reported(self, monkeypatch):
        from planmap.config import settings

        monkeypatch.setattr(settings, "capabilities", ["planmap.nowhere:Missing"])
        session = EditorSession(session_id="s2", capabilities=CapabilityManager())
        asyncio.run(session.mount("map"))
        client = TestClient(_make_app({"s2": session}))
        data = client.get("/api/capabilities/s2").json()
        assert "planmap.nowhere:Missing" in data["failed_specs"]
        assert data["capabilities"] == []
        session.unmount()
