import pytest
from fastapi.testclient import TestClient
from sharegate.main import app

client = TestClient(app)

def test_ping_endpoint():
    """Test the ping endpoint for health checks."""
    response = client.get("/ping")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}

def test_healthz_endpoint(blob_store):
    """Database and blob store are both reachable in the test setup."""
    response = client.get("/healthz")
    assert response.status_code == 200
    data = response.json()
    assert data["ok"] is True
    assert data["db"] == "ok"
    assert data["blobs"] == "ok"

def test_healthz_reports_blob_outage(monkeypatch):
    from sharegate import blobs
    from sharegate.errors import InfrastructureFault

    class _Down:
        def ping(self):
            raise InfrastructureFault("bucket unreachable", component="blobs")

    monkeypatch.setattr(blobs, "_blob_store", _Down())
    response = client.get("/healthz")
    assert response.status_code == 503
    assert response.json()["blobs"] == "error: InfrastructureFault"

def test_version_endpoint():
    """Test the version endpoint."""
    response = client.get("/version")
    assert response.status_code == 200
    data = response.json()
    assert "version" in data
    assert "build" in data

def test_openapi_endpoint():
    """Test that OpenAPI schema is accessible."""
    response = client.get("/openapi.json")
    assert response.status_code == 200
    data = response.json()
    assert "paths" in data

@pytest.mark.api
def test_owner_endpoints_require_auth():
    assert client.get("/files").status_code == 401
    assert client.post("/shared-links", json={"fileId": 1}).status_code == 401
    assert client.post("/shared-links/1/revoke").status_code == 401

@pytest.mark.api
def test_x_auth_token_header_is_accepted():
    from sharegate.security import create_token

    response = client.get("/files", headers={"X-Auth-Token": create_token(2**31 - 1)})
    # token is valid, the user does not exist
    assert response.status_code == 401
    assert response.json()["detail"] == "User not found"
