"""Rate limiting tests.

Verifies the token bucket rate limiter:
1. Login allows a burst of 10 attempts, then answers 429
2. The 429 response carries Retry-After and the error envelope
3. Progression writes have their own, larger bucket per user
4. Reads are not limited
"""

from __future__ import annotations

from fastapi.testclient import TestClient

from app.models.user import TRAINEE
from app.services.rate_limiter import LOGIN_LIMIT, WRITE_LIMIT
from tests.conftest import auth, make_course, make_user, subjects_of, tasks_of

_BAD_LOGIN = {"email": "test@example.com", "password": "wrong"}


def test_login_has_strict_rate_limit(client: TestClient) -> None:
    statuses = [
        client.post("/v1/auth/login", json=_BAD_LOGIN).status_code
        for _ in range(LOGIN_LIMIT.capacity + 2)
    ]

    assert statuses[: LOGIN_LIMIT.capacity] == [401] * LOGIN_LIMIT.capacity
    assert statuses[-1] == 429


def test_429_includes_retry_after_and_envelope(client: TestClient) -> None:
    for _ in range(LOGIN_LIMIT.capacity):
        client.post("/v1/auth/login", json=_BAD_LOGIN)

    resp = client.post("/v1/auth/login", json=_BAD_LOGIN)

    assert resp.status_code == 429
    assert int(resp.headers["retry-after"]) > 0
    assert resp.headers["x-ratelimit-remaining"] == "0"
    assert resp.json()["success"] is False
    assert resp.json()["message"] == "Too many requests, please try again later"


def test_successful_write_reports_remaining_budget(client: TestClient) -> None:
    t = make_user(TRAINEE)
    course = make_course(trainees=[t], start=True)
    task = tasks_of(subjects_of(course)[0].id)[0]

    resp = client.post(f"/v1/tasks/{task.id}/complete", headers=auth(t))

    assert resp.status_code == 200
    assert resp.headers["x-ratelimit-limit"] == str(WRITE_LIMIT.capacity)
    assert resp.headers["x-ratelimit-remaining"] == str(WRITE_LIMIT.capacity - 1)


def test_write_limit_is_per_user(client: TestClient) -> None:
    busy, quiet = make_user(TRAINEE), make_user(TRAINEE)
    course = make_course(trainees=[busy, quiet], start=True)
    task = tasks_of(subjects_of(course)[0].id)[0]

    statuses = [
        client.post(f"/v1/tasks/{task.id}/complete", headers=auth(busy)).status_code
        for _ in range(WRITE_LIMIT.capacity + 1)
    ]
    assert statuses[-1] == 429

    resp = client.post(f"/v1/tasks/{task.id}/complete", headers=auth(quiet))
    assert resp.status_code == 200


def test_reads_are_not_limited(client: TestClient) -> None:
    t = make_user(TRAINEE)
    for _ in range(WRITE_LIMIT.capacity + 10):
        assert client.get("/v1/courses", headers=auth(t)).status_code == 200
