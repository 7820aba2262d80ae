"""
Unit tests for health check endpoints.

Tests cover:
- Liveness endpoint
- Readiness reporting the dimension catalog and preview configuration
- Catalog load failures
"""

from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from segment_builder.core.errors import ValidationError
from segment_builder.main import create_app


@pytest.mark.anyio
async def test_health_ok() -> None:
    client = TestClient(create_app())
    resp = client.get("/api/v1/health")
    assert resp.status_code == 200
    assert resp.json() == {"ok": True}


@pytest.mark.anyio
async def test_readyz_with_packaged_catalog() -> None:
    client = TestClient(create_app())
    resp = client.get("/api/v1/readyz")
    assert resp.status_code == 200
    body = resp.json()
    assert body["ok"] is True
    assert body["catalog"] == "ok"
    assert body["dimensions"] == 18
    assert body["preview"] == "disabled"


@patch("segment_builder.api.routes.health.settings")
@patch("segment_builder.api.routes.health.get_dimension_catalog")
@pytest.mark.anyio
async def test_readyz_reports_preview_configured(
    mock_get_catalog: MagicMock, mock_settings: MagicMock
) -> None:
    mock_get_catalog.return_value = []
    mock_settings.preview_endpoint_url = "https://analytics.test/api/preview"

    client = TestClient(create_app())
    body = client.get("/api/v1/readyz").json()
    assert body["preview"] == "configured"
    assert body["dimensions"] == 0


@pytest.mark.anyio
@pytest.mark.parametrize(
    "error",
    [
        FileNotFoundError("dimensions.json"),
        ValueError("Expecting value: line 1 column 1"),
        ValidationError("Duplicate dimension key 'country'"),
    ],
)
async def test_readyz_returns_503_when_catalog_fails(error: Exception) -> None:
    with patch(
        "segment_builder.api.routes.health.get_dimension_catalog", side_effect=error
    ):
        client = TestClient(create_app())
        resp = client.get("/api/v1/readyz")

    assert resp.status_code == 503
    # Internal error details are not exposed
    assert resp.json() == {"ok": False, "catalog": "unavailable"}
