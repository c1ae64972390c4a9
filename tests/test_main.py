from __future__ import annotations

from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from app.main import app

_ID = uuid4()


def test_app_identity() -> None:
    assert app.title == "training-service"


@pytest.mark.parametrize(
    ("method", "path"),
    [
        ("GET", "/health"),
        ("GET", "/ready"),
        ("GET", "/metrics"),
        ("POST", "/v1/auth/login"),
        ("GET", "/v1/users"),
        ("GET", "/v1/courses"),
        ("GET", f"/v1/courses/{_ID}/subjects"),
        ("POST", f"/v1/tasks/{_ID}/complete"),
        ("GET", "/v1/trainee/dashboard"),
        ("GET", "/v1/trainer/dashboard"),
        ("GET", "/v1/supervisor/dashboard"),
        ("GET", "/v1/reports"),
        ("GET", "/v1/notifications"),
    ],
)
def test_routers_are_mounted(client: TestClient, method: str, path: str) -> None:
    # anonymous: mounted routes answer 401/400, never the router's 404
    resp = client.request(method, path, json={})
    assert resp.status_code != 404


def test_unmounted_path_is_404(client: TestClient) -> None:
    assert client.get("/v1/nothing-here").status_code == 404


def test_cors_allows_frontend_origin(client: TestClient) -> None:
    resp = client.options(
        "/v1/courses",
        headers={
            "Origin": "http://localhost:5173",
            "Access-Control-Request-Method": "GET",
        },
    )
    assert resp.headers["access-control-allow-origin"] == "http://localhost:5173"
