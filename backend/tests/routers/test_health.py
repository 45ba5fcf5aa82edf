"""
Unit tests for health and metrics endpoints.

Tests: GET /health, GET /health/deep, GET /metrics
Mocks: fake Secret Fetcher and balancer client on app.state.
"""
import pytest
from unittest.mock import patch

from prometheus_client import REGISTRY

WEBHOOK = "/update-nodebalancer-cert"


class TestHealthCheck:
    """Tests for GET /health endpoint."""

    @pytest.mark.asyncio
    async def test_health_returns_200(self, async_client):
        """GET /health returns 200 with healthy status."""
        response = await async_client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["service"] == "nodebalancer-cert-webhook"

    @pytest.mark.asyncio
    async def test_health_makes_no_external_calls(self, async_client, fetcher, balancer):
        """Liveness never touches the cluster or Linode."""
        fetcher.healthy = False
        balancer.credentials_ok = False
        response = await async_client.get("/health")
        assert response.status_code == 200
        assert fetcher.calls == []
        assert balancer.pushes == []

    @pytest.mark.asyncio
    async def test_health_reads_version(self, async_client):
        with patch.dict("os.environ", {"APP_VERSION": "1.2.3"}):
            response = await async_client.get("/health")
        assert response.json()["version"] == "1.2.3"


class TestDeepHealthCheck:
    """Tests for GET /health/deep endpoint."""

    @pytest.mark.asyncio
    async def test_all_dependencies_healthy(self, async_client):
        response = await async_client.get("/health/deep")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_cluster_unreachable(self, async_client, fetcher):
        fetcher.healthy = False
        response = await async_client.get("/health/deep")
        assert response.status_code == 503
        data = response.json()
        assert data["status"] == "degraded"
        assert "Kubernetes API" in data["message"]

    @pytest.mark.asyncio
    async def test_linode_rejects_token(self, async_client, balancer):
        balancer.credentials_ok = False
        response = await async_client.get("/health/deep")
        assert response.status_code == 503
        assert "Linode API" in response.json()["message"]

    @pytest.mark.asyncio
    async def test_uninitialized_app_is_unavailable(self, app):
        import httpx

        app.state.secret_fetcher = None
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get("/health/deep")
        assert response.status_code == 503


class TestMetrics:
    """Tests for GET /metrics endpoint."""

    @pytest.mark.asyncio
    async def test_metrics_exposition(self, async_client):
        response = await async_client.get("/metrics")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")

    @pytest.mark.asyncio
    async def test_sync_outcomes_are_counted(self, async_client):
        await async_client.post(
            WEBHOOK,
            json={"secretRef": {"name": "wildcard-mydomain-tls", "namespace": "default"}},
        )
        response = await async_client.get("/metrics")
        assert 'cert_webhook_sync_total{result="success",stage="none"}' in response.text
        assert "cert_webhook_sync_duration_seconds_count" in response.text

    @pytest.mark.asyncio
    async def test_http_requests_are_counted_by_route(self, async_client):
        labels = {"method": "GET", "path": "/health", "status": "200"}
        before = REGISTRY.get_sample_value("cert_webhook_http_requests_total", labels) or 0.0

        await async_client.get("/health")
        await async_client.get("/health")

        assert REGISTRY.get_sample_value("cert_webhook_http_requests_total", labels) == before + 2
        response = await async_client.get("/metrics")
        assert "cert_webhook_http_request_duration_seconds_count" in response.text

    @pytest.mark.asyncio
    async def test_unknown_paths_share_one_label(self, async_client):
        labels = {"method": "GET", "path": "unmatched", "status": "404"}
        before = REGISTRY.get_sample_value("cert_webhook_http_requests_total", labels) or 0.0

        await async_client.get("/nope/1")
        await async_client.get("/nope/2")

        assert REGISTRY.get_sample_value("cert_webhook_http_requests_total", labels) == before + 2
