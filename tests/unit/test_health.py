"""
Unit tests for health endpoints.
"""

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_health_check(async_client: AsyncClient) -> None:
    """Test basic health check endpoint."""
    response = await async_client.get("/api/v1/health")
    assert response.status_code == 200

    data = response.json()
    assert data["status"] == "healthy"
    assert "timestamp" in data


@pytest.mark.asyncio
async def test_readiness_check(async_client: AsyncClient) -> None:
    """In-memory storage and a healthy backend report ready."""
    response = await async_client.get("/api/v1/health/ready")
    assert response.status_code == 200

    data = response.json()
    assert data["status"] == "ready"
    assert data["checks"] == {"app": True, "database": True, "chatBackend": True}


@pytest.mark.asyncio
async def test_liveness_check(async_client: AsyncClient) -> None:
    """Test liveness check endpoint."""
    response = await async_client.get("/api/v1/health/live")
    assert response.status_code == 200

    data = response.json()
    assert data["status"] == "alive"


@pytest.mark.asyncio
async def test_root_endpoint(async_client: AsyncClient) -> None:
    """Test root endpoint."""
    response = await async_client.get("/")
    assert response.status_code == 200

    data = response.json()
    assert "name" in data
    assert "version" in data


@pytest.mark.asyncio
async def test_api_info_lists_routes(async_client: AsyncClient) -> None:
    response = await async_client.get("/api")
    assert response.status_code == 200
    assert response.json()["endpoints"]["dashboard"] == "/api/v1/dashboard"


@pytest.mark.asyncio
async def test_request_id_header(async_client: AsyncClient) -> None:
    """Responses echo the caller's request id or carry a generated one."""
    generated = await async_client.get("/api/v1/health/live")
    assert generated.headers["X-Request-ID"].startswith("req_")

    echoed = await async_client.get("/api/v1/health/live", headers={"X-Request-ID": "trace-123"})
    assert echoed.headers["X-Request-ID"] == "trace-123"
