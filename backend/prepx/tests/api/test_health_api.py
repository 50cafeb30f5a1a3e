"""Tests for liveness and readiness probes."""

from fastapi.testclient import TestClient

from prepx.database.session import create_db_engine, create_session_factory
from prepx.main import create_app


class TestHealth:

    def test_health_returns_ok(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_readiness_with_schema(self, client):
        response = client.get("/health/readiness")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ready"
        assert body["checks"]["tables"]["missing"] == []

    def test_readiness_without_schema_is_503(self, config):
        empty_factory = create_session_factory(create_db_engine("sqlite://"))
        client = TestClient(create_app(config=config, session_factory=empty_factory))

        response = client.get("/health/readiness")

        assert response.status_code == 503
        body = response.json()
        assert body["status"] == "not_ready"
        assert "subscriptions" in body["checks"]["tables"]["missing"]
