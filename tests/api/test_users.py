from __future__ import annotations

from uuid import uuid4

import pytest

from app.models.user import ADMIN, TRAINEE, TRAINER
from tests.conftest import auth, make_user


@pytest.fixture
def admin():
    return make_user(ADMIN)


def test_admin_creates_user(client, admin) -> None:
    r = client.post(
        "/v1/users",
        json={
            "email": "New.Person@Example.com",
            "password": "correct-horse",
            "full_name": "New Person",
            "roles": [TRAINER],
        },
        headers=auth(admin),
    )

    assert r.status_code == 201
    body = r.json()
    assert body["message"] == "User created"
    assert body["data"]["email"] == "new.person@example.com"
    assert body["data"]["roles"] == [TRAINER]
    assert "password_hash" not in body["data"]


def test_created_user_can_log_in(client, admin) -> None:
    client.post(
        "/v1/users",
        json={"email": "login@example.com", "password": "long-password", "roles": [TRAINEE]},
        headers=auth(admin),
    )
    r = client.post(
        "/v1/auth/login", json={"email": "login@example.com", "password": "long-password"}
    )
    assert r.status_code == 200


def test_create_user_duplicate_email_is_409(client, admin) -> None:
    existing = make_user(TRAINEE)
    r = client.post(
        "/v1/users",
        json={"email": existing.email, "password": "long-password", "roles": [TRAINEE]},
        headers=auth(admin),
    )
    assert r.status_code == 409
    assert r.json()["success"] is False


def test_create_user_without_roles_fails_validation(client, admin) -> None:
    r = client.post(
        "/v1/users",
        json={"email": "x@example.com", "password": "long-password", "roles": []},
        headers=auth(admin),
    )
    assert r.status_code == 400
    assert r.json()["message"] == "Validation failed"
    assert r.json()["errors"][0]["field"] == "roles"


def test_create_user_short_password(client, admin) -> None:
    r = client.post(
        "/v1/users",
        json={"email": "x@example.com", "password": "short", "roles": [TRAINEE]},
        headers=auth(admin),
    )
    assert r.status_code == 400
    assert r.json()["message"] == "Password too short"


def test_supervisor_lists_users_by_role(client, supervisor) -> None:
    make_user(TRAINEE)
    make_user(TRAINEE)
    make_user(TRAINER)

    r = client.get("/v1/users", params={"role": TRAINEE}, headers=auth(supervisor))

    assert r.status_code == 200
    assert r.json()["pagination"]["total"] == 2
    assert all(TRAINEE in u["roles"] for u in r.json()["data"])


def test_invalid_role_filter(client, supervisor) -> None:
    r = client.get("/v1/users", params={"role": "wizard"}, headers=auth(supervisor))
    assert r.status_code == 400
    assert r.json()["message"] == "Invalid role filter"


def test_get_user(client, supervisor, trainee) -> None:
    r = client.get(f"/v1/users/{trainee.id}", headers=auth(supervisor))
    assert r.status_code == 200
    assert r.json()["data"]["email"] == trainee.email


def test_get_unknown_user(client, supervisor) -> None:
    r = client.get(f"/v1/users/{uuid4()}", headers=auth(supervisor))
    assert r.status_code == 404
    assert r.json()["message"] == "User not found"


def test_admin_updates_roles(client, admin, trainee) -> None:
    r = client.patch(
        f"/v1/users/{trainee.id}", json={"roles": [TRAINEE, TRAINER]}, headers=auth(admin)
    )
    assert r.status_code == 200
    assert r.json()["data"]["roles"] == [TRAINEE, TRAINER]


def test_admin_deactivates_user(client, admin, trainee) -> None:
    r = client.delete(f"/v1/users/{trainee.id}", headers=auth(admin))
    assert r.status_code == 200
    assert r.json()["data"]["is_active"] is False
    assert r.json()["message"] == "User deactivated"


def test_admin_cannot_deactivate_self(client, admin) -> None:
    r = client.delete(f"/v1/users/{admin.id}", headers=auth(admin))
    assert r.status_code == 400
    assert r.json()["message"] == "You cannot deactivate your own account"


def test_supervisor_cannot_create_users(client, supervisor) -> None:
    r = client.post(
        "/v1/users",
        json={"email": "x@example.com", "password": "long-password", "roles": [TRAINEE]},
        headers=auth(supervisor),
    )
    assert r.status_code == 403
