from __future__ import annotations

from fastapi.testclient import TestClient

from icocodec.main import app


def _register_test_route() -> None:
    path = "/__test_error"

    if any(getattr(route, "path", None) == path for route in app.router.routes):
        return

    async def boom():
        raise RuntimeError("forced failure")

    app.add_api_route(path, boom, methods=["GET"], include_in_schema=False)


_register_test_route()


def test_problem_details_on_unhandled_error():
    client = TestClient(app, raise_server_exceptions=False)

    response = client.get("/__test_error")

    assert response.status_code == 500
    payload = response.json()
    assert payload["title"] == "Internal Server Error"
    assert payload["status"] == 500
    assert payload["detail"]
    assert payload["request_id"]
    assert response.headers.get("X-Request-ID") == payload["request_id"]


def test_request_id_is_echoed():
    client = TestClient(app)

    response = client.get("/health", headers={"X-Request-ID": "abc-123"})

    assert response.status_code == 200
    assert response.headers.get("X-Request-ID") == "abc-123"


def test_bad_icon_returns_problem_details():
    client = TestClient(app)

    response = client.post(
        "/api/v1/icons/inspect",
        files={"file": ("broken.ico", b"\x00\x00", "image/x-icon")},
    )

    assert response.status_code == 400
    payload = response.json()
    assert payload["title"] == "Bad Request"
    assert "too short" in payload["detail"]


def test_unknown_route_returns_problem_details():
    client = TestClient(app)

    response = client.get("/does-not-exist")

    assert response.status_code == 404
    payload = response.json()
    assert payload["title"] == "Not Found"
    assert payload["instance"].endswith("/does-not-exist")


def test_missing_upload_reports_field():
    client = TestClient(app)

    response = client.post("/api/v1/icons/inspect")

    assert response.status_code == 422
    payload = response.json()
    assert payload["title"] == "Validation Failed"
    assert "file" in payload["detail"]
