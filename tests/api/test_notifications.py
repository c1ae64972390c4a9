from __future__ import annotations

import asyncio
from uuid import uuid4

from app.services import notifier
from tests.conftest import auth


def _notify(user, n: int = 1) -> None:
    for i in range(n):
        asyncio.run(
            notifier.create_notification(
                user_id=user.id, type="COURSE_ENROLLED", title=f"Note {i}", message="m"
            )
        )


def test_list_notifications_with_unread_count(client, trainee, trainer) -> None:
    _notify(trainee, 3)
    _notify(trainer)

    r = client.get("/v1/notifications", headers=auth(trainee))

    assert r.status_code == 200
    body = r.json()
    assert len(body["data"]) == 3
    assert body["unread_count"] == 3
    assert body["pagination"]["total"] == 3


def test_mark_one_read(client, trainee) -> None:
    _notify(trainee, 2)
    first = client.get("/v1/notifications", headers=auth(trainee)).json()["data"][0]

    r = client.put(f"/v1/notifications/{first['id']}/read", headers=auth(trainee))

    assert r.status_code == 200
    body = client.get("/v1/notifications", headers=auth(trainee)).json()
    assert body["unread_count"] == 1
    assert {n["id"]: n["is_read"] for n in body["data"]}[first["id"]] is True


def test_cannot_mark_someone_elses_notification(client, trainee, trainer) -> None:
    _notify(trainer)
    theirs = client.get("/v1/notifications", headers=auth(trainer)).json()["data"][0]

    r = client.put(f"/v1/notifications/{theirs['id']}/read", headers=auth(trainee))

    assert r.status_code == 404
    assert r.json()["message"] == "Notification not found"


def test_mark_unknown_notification(client, trainee) -> None:
    r = client.put(f"/v1/notifications/{uuid4()}/read", headers=auth(trainee))
    assert r.status_code == 404


def test_mark_all_read(client, trainee) -> None:
    _notify(trainee, 4)

    r = client.put("/v1/notifications/read-all", headers=auth(trainee))

    assert r.status_code == 200
    assert r.json()["data"] == 4
    assert r.json()["message"] == "4 notification(s) marked as read"
    assert client.get("/v1/notifications", headers=auth(trainee)).json()["unread_count"] == 0


def test_notifications_paginate(client, trainee) -> None:
    _notify(trainee, 5)
    r = client.get("/v1/notifications", params={"limit": 2, "page": 3}, headers=auth(trainee))
    body = r.json()
    assert len(body["data"]) == 1
    assert body["pagination"]["hasMore"] is False
    assert body["unread_count"] == 5
