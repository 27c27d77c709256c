from sharegate.main import app
from fastapi.testclient import TestClient

expected_paths = {
    "/public/files/{share_code}": {"get"},
    "/public/files/{share_code}/download": {"post"},
    "/shared/{token}": {"get"},
    "/shared/{token}/download": {"post"},
    "/files": {"get", "post"},
    "/files/{file_id}": {"get", "delete"},
    "/files/{file_id}/downloads": {"get"},
    "/files/{file_id}/links": {"get"},
    "/shared-links": {"post"},
    "/shared-links/email": {"post"},
    "/shared-links/{link_id}/revoke": {"post"},
    "/ping": {"get"},
    "/version": {"get"},
    "/healthz": {"get"},
    "/system/email-status": {"get"},
}


def test_routes_exist():
    client = TestClient(app)
    schema = client.get("/openapi.json").json()
    paths = schema["paths"]
    for path, methods in expected_paths.items():
        assert path in paths, f"missing path {path}"
        available = {m.lower() for m in paths[path].keys()}
        assert methods.issubset(available), f"{path} missing methods {methods - available}"
