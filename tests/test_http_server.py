"""Tests for the Memoria HTTP server (Streamable HTTP transport)."""

import stat
import pytest
from unittest.mock import MagicMock

from memoria.server.http_server import create_http_app, get_or_create_api_key


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def mock_server():
    server = MagicMock()
    server.name = "memoria"
    return server


@pytest.fixture
def app(mock_server):
    return create_http_app(mock_server, api_key=None)


@pytest.fixture
def app_with_auth(mock_server):
    return create_http_app(mock_server, api_key="test-secret-key")


# ============================================================================
# App creation tests
# ============================================================================

def test_create_http_app(mock_server):
    app = create_http_app(mock_server)
    route_paths = {r.path for r in app.routes}
    assert route_paths >= {"/mcp", "/health", "/.well-known/mcp.json"}


# ============================================================================
# Health and server card
# ============================================================================

def test_health_endpoint(app):
    from starlette.testclient import TestClient

    with TestClient(app) as client:
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok", "server": "memoria"}


def test_server_card_endpoint(app):
    from starlette.testclient import TestClient

    from memoria import __version__

    with TestClient(app) as client:
        data = client.get("/.well-known/mcp.json").json()
        assert data["name"] == "memoria"
        assert data["version"] == __version__
        assert data["tools_count"] == 18
        transport_types = [t["type"] for t in data["transports"]]
        assert transport_types == ["streamable-http", "stdio"]


# ============================================================================
# Auth tests
# ============================================================================

def test_mcp_endpoint_requires_auth(app_with_auth):
    from starlette.testclient import TestClient

    with TestClient(app_with_auth) as client:
        resp = client.post("/mcp/", json={"jsonrpc": "2.0", "method": "tools/list", "id": 1})
        assert resp.status_code == 401
        assert resp.json()["error"] == "Unauthorized"


def test_mcp_endpoint_wrong_key(app_with_auth):
    from starlette.testclient import TestClient

    with TestClient(app_with_auth) as client:
        resp = client.post(
            "/mcp/",
            json={"jsonrpc": "2.0", "method": "tools/list", "id": 1},
            headers={"X-API-Key": "wrong-key"},
        )
        assert resp.status_code == 401


@pytest.mark.parametrize("path,headers", [
    ("/mcp/?api_key=test-secret-key", {}),
    ("/mcp/", {"X-API-Key": "test-secret-key"}),
])
def test_mcp_endpoint_accepts_key(app_with_auth, path, headers):
    from starlette.testclient import TestClient

    with TestClient(app_with_auth, raise_server_exceptions=False) as client:
        resp = client.post(path, json={"jsonrpc": "2.0", "method": "tools/list", "id": 1}, headers=headers)
        # The mock server cannot speak MCP, but the auth layer let the request through
        assert resp.status_code != 401


def test_no_auth_mode(app):
    from starlette.testclient import TestClient

    with TestClient(app, raise_server_exceptions=False) as client:
        resp = client.post("/mcp/", json={"jsonrpc": "2.0", "method": "tools/list", "id": 1})
        assert resp.status_code != 401


# ============================================================================
# API key management tests
# ============================================================================

def test_api_key_generation(tmp_path):
    key = get_or_create_api_key(tmp_path)
    key_path = tmp_path / "api_key"
    assert len(key) > 20
    assert key_path.read_text().strip() == key
    mode = key_path.stat().st_mode
    assert mode & stat.S_IRWXG == 0
    assert mode & stat.S_IRWXO == 0


def test_api_key_persistence(tmp_path):
    assert get_or_create_api_key(tmp_path) == get_or_create_api_key(tmp_path)


def test_api_key_reads_existing(tmp_path):
    (tmp_path / "api_key").write_text("my-custom-key\n")
    assert get_or_create_api_key(tmp_path) == "my-custom-key"
