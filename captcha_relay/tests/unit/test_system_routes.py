"""Unit tests for the health and metrics endpoints."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from captcha_relay.core.config import get_settings
from captcha_relay.core.redis import RedisClient
from captcha_relay.main import create_app

pytestmark = pytest.mark.unit


@pytest.fixture
def client(clean_env) -> TestClient:
    return TestClient(create_app())


@pytest.fixture
def healthy_redis() -> MagicMock:
    redis = MagicMock(spec=RedisClient)
    redis.health_check = AsyncMock(
        return_value={"status": "healthy", "connected": True, "redis_version": "7.2.4"}
    )
    return redis


def _configure_all(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GEMINI_API_KEY", "gemini-secret")
    monkeypatch.setenv("GEMINI_MODEL", "gemini-test")
    monkeypatch.setenv("AUTH_TOKEN", "submit-secret")
    monkeypatch.setenv("API_KEY", "query-secret")
    monkeypatch.setenv("REDIS_URL", "redis://localhost:6379/15")
    # create_app() already cached the unconfigured settings
    get_settings.cache_clear()


class TestHealthEndpoint:
    def test_unconfigured_is_degraded(self, client):
        response = client.get("/health")

        assert response.status_code == 503
        data = response.json()
        assert data["status"] == "degraded"
        assert data["missing_settings"][0] == "gemini_api_key"
        assert data["result_store"]["connected"] is False

    def test_healthy(self, client, clean_env, healthy_redis):
        _configure_all(clean_env)

        with patch("captcha_relay.api.routes.system.get_redis_client", return_value=healthy_redis):
            response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["missing_settings"] == []
        assert data["version"] == "0.1.0"

    def test_store_down_is_degraded(self, client, clean_env, healthy_redis):
        _configure_all(clean_env)
        healthy_redis.health_check.return_value = {
            "status": "unhealthy",
            "connected": False,
            "error": "Connection refused",
        }

        with patch("captcha_relay.api.routes.system.get_redis_client", return_value=healthy_redis):
            response = client.get("/health")

        assert response.status_code == 503
        assert response.json()["result_store"]["error"] == "Connection refused"

    def test_secrets_not_exposed(self, client, clean_env, healthy_redis):
        _configure_all(clean_env)

        with patch("captcha_relay.api.routes.system.get_redis_client", return_value=healthy_redis):
            body = client.get("/health").text

        assert "submit-secret" not in body
        assert "query-secret" not in body
        assert "gemini-secret" not in body


class TestMetricsEndpoint:
    def test_exposes_relay_metrics(self, client):
        response = client.get("/metrics")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert "relay_tasks_created_total" in response.text
        assert "relay_inference_request_duration_seconds" in response.text
