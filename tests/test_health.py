"""Tests for health check endpoints."""

import pytest
from httpx import AsyncClient
from starlette.requests import Request

from storebuilder.middleware.logging import client_ip, redact_headers


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient):
    """Test basic health check endpoint."""
    response = await client.get("/health")

    assert response.status_code == 200
    data = response.json()

    assert data["status"] in ("healthy", "degraded")
    assert "timestamp" in data
    assert "version" in data
    assert data["environment"] == "test"

    dependencies = data["dependencies"]
    assert dependencies["database"]["status"] == "healthy"
    assert "stores_root" in dependencies
    assert "open_channels" in dependencies["progress"]


@pytest.mark.asyncio
async def test_database_health_lists_store_tables(client: AsyncClient):
    """Test detailed database health check on SQLite."""
    response = await client.get("/health/database")

    assert response.status_code == 200
    data = response.json()

    assert data["status"] == "healthy"
    assert data["details"]["dialect"] == "sqlite"
    assert data["details"]["tables"] == ["store_pages", "store_settings", "stores"]
    assert data["details"]["missing_tables"] == []


@pytest.mark.asyncio
async def test_version_endpoint(client: AsyncClient):
    """Test version information endpoint."""
    response = await client.get("/version")

    assert response.status_code == 200
    data = response.json()

    assert data["service"] == "storebuilder"
    assert "version" in data
    assert "environment" in data
    assert data["api_version"] == "v1"


@pytest.mark.asyncio
async def test_root_endpoint(client: AsyncClient):
    """Test root endpoint."""
    response = await client.get("/")

    assert response.status_code == 200
    data = response.json()

    assert data["service"] == "storebuilder"
    assert data["status"] == "running"


@pytest.mark.asyncio
async def test_unknown_route_returns_jsonapi_404(client: AsyncClient):
    response = await client.get("/api/v1/nothing-here")

    assert response.status_code == 404
    assert response.json()["errors"][0]["code"] == "RESOURCE_NOT_FOUND"


@pytest.mark.asyncio
async def test_openapi_documents_error_format(client: AsyncClient):
    response = await client.get("/openapi.json")

    assert response.status_code == 200
    schema = response.json()
    assert "JSONAPIErrorResponse" in schema["components"]["schemas"]
    store_get = schema["paths"]["/api/v1/stores/{store_id}"]["get"]
    assert "404" in store_get["responses"]


@pytest.mark.asyncio
async def test_request_id_is_echoed(client: AsyncClient):
    response = await client.get("/version", headers={"x-request-id": "req-123"})

    assert response.headers["x-request-id"] == "req-123"
    assert float(response.headers["x-process-time"]) >= 0


def test_redact_headers():
    assert redact_headers({"Authorization": "Bearer abc", "Host": "shop.example.com"}) == {
        "Authorization": "[REDACTED]",
        "Host": "shop.example.com",
    }


def test_client_ip_prefers_forwarded_for():
    request = Request({
        "type": "http",
        "headers": [(b"x-forwarded-for", b"203.0.113.7, 10.0.0.1")],
        "client": ("10.0.0.1", 1234),
    })

    assert client_ip(request) == "203.0.113.7"
