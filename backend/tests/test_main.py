"""Tests for ledgerchat.main FastAPI application wiring."""

import pytest
from starlette.testclient import TestClient

import ledgerchat.main as main_module
from ledgerchat.agent.client import LedgerChatAgent
from ledgerchat.config import Settings
from ledgerchat.main import app


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Point the lifespan at a temp data directory with no API key."""
    settings = Settings(DATABASE_DIR=str(tmp_path / "data"), ANTHROPIC_API_KEY=None)
    monkeypatch.setattr(main_module, "settings", settings)
    return settings


class TestHealthEndpoint:
    """GET /health returns 200 with {"status": "ok"}."""

    def test_health_returns_ok_status(self):
        with TestClient(app) as client:
            response = client.get("/health")
            assert response.status_code == 200
            assert response.json() == {"status": "ok"}


class TestCORSMiddleware:
    """CORS headers present on response when Origin header sent."""

    def test_cors_allows_configured_origin(self):
        with TestClient(app) as client:
            response = client.get(
                "/health",
                headers={"Origin": "http://localhost:3000"},
            )
            assert response.headers.get("access-control-allow-origin") == "http://localhost:3000"

    def test_cors_rejects_unknown_origin(self):
        with TestClient(app) as client:
            response = client.get(
                "/health",
                headers={"Origin": "http://evil.example.com"},
            )
            assert response.headers.get("access-control-allow-origin") != "http://evil.example.com"


class TestAppLifecycle:
    """Lifespan opens the ledger and wires state."""

    def test_creates_database_file(self, isolated_settings, tmp_path):
        with TestClient(app):
            pass
        assert (tmp_path / "data" / "ledgerchat.db").exists()

    def test_state_is_wired_without_agent(self):
        with TestClient(app) as client:
            state = client.app.state
            assert state.agent is None
            for name in ("engine", "analyzer", "context_builder", "user_repo", "session_repo"):
                assert getattr(state, name) is not None

    def test_agent_built_when_key_present(self, tmp_path, monkeypatch):
        monkeypatch.setattr(
            main_module, "settings",
            Settings(DATABASE_DIR=str(tmp_path / "keyed"), ANTHROPIC_API_KEY="sk-test"),
        )
        with TestClient(app) as client:
            assert client.app.state.agent is not None
            assert isinstance(client.app.state.agent, LedgerChatAgent)

    def test_api_router_mounted(self):
        with TestClient(app) as client:
            assert client.get("/api/v1/me").status_code == 401
            assert client.get("/api/v1/nonexistent").status_code == 404

    def test_chat_disabled_without_key(self):
        with TestClient(app) as client:
            user = client.app.state.user_repo.create("Ana", "ana@example.com")
            response = client.post(
                "/api/v1/chat",
                json={"messages": [{"role": "user", "content": "hi"}]},
                headers={"X-User-Id": user["id"]},
            )
            assert response.status_code == 503
