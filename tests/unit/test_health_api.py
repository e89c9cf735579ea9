"""
Tests for shared/api/health.py
"""

import pytest
from unittest.mock import MagicMock, patch
from fastapi import FastAPI
from fastapi.testclient import TestClient

from shared.api.health import router


@pytest.fixture
def client():
    app = FastAPI()
    app.include_router(router)
    return TestClient(app)


class TestReadRoot:

    def test_health_check(self, client):
        resp = client.get("/")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "ok"
        assert data["service"] == "Adaptive Tutor"
        assert data["version"] == "1.0.0"
        assert data["llm_configured"] is False

    def test_reports_configured_key(self, client, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        resp = client.get("/")
        assert resp.json()["llm_configured"] is True


class TestDatabaseHealth:

    @patch("shared.api.health.get_db_manager")
    def test_connected(self, mock_get_db_manager, client):
        mock_get_db_manager.return_value = MagicMock(health_check=MagicMock(return_value=True))
        resp = client.get("/health/db")
        assert resp.json() == {"status": "ok", "database": "connected"}

    @patch("shared.api.health.get_db_manager")
    def test_connection_failed(self, mock_get_db_manager, client):
        mock_get_db_manager.return_value = MagicMock(health_check=MagicMock(return_value=False))
        resp = client.get("/health/db")
        assert resp.json() == {"status": "error", "database": "connection_failed"}
