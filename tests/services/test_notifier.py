from __future__ import annotations

import asyncio
import logging

from app.models.user import TRAINEE
from app.repos.notification_repo import notification_repo
from app.services import notifier
from app.services.task_queue import EMAIL_QUEUE, task_queue
from tests.conftest import make_course, make_user


def _inbox(user):
    items, _ = asyncio.run(notification_repo.list_for_user(user.id, offset=0, limit=50))
    return items


def test_notify_enrolled_queues_email_and_notification() -> None:
    t = make_user(TRAINEE, full_name="Kim")
    course = make_course(title="Docker")

    asyncio.run(notifier.notify_enrolled(course, [t]))

    job = asyncio.run(task_queue.dequeue(EMAIL_QUEUE))
    assert job.payload["to"] == t.email
    assert "Docker" in job.payload["subject"]
    assert "Hello Kim" in job.payload["body"]
    (n,) = _inbox(t)
    assert n.type == notifier.COURSE_ENROLLED
    assert n.link_to == f"/trainee/courses/{course.id}"
    assert n.is_read is False


def test_notify_removed() -> None:
    t = make_user(TRAINEE)
    course = make_course(title="Docker")

    asyncio.run(notifier.notify_removed(course, t))

    assert asyncio.run(task_queue.queue_length(EMAIL_QUEUE)) == 1
    (n,) = _inbox(t)
    assert n.type == notifier.COURSE_REMOVED


def test_notify_course_finished_reaches_every_trainee() -> None:
    t1, t2 = make_user(TRAINEE), make_user(TRAINEE)
    course = make_course()

    asyncio.run(notifier.notify_course_finished(course, [t1.id, t2.id]))

    assert [n.type for n in _inbox(t1)] == [notifier.COURSE_FINISHED]
    assert [n.type for n in _inbox(t2)] == [notifier.COURSE_FINISHED]
    assert asyncio.run(task_queue.queue_length(EMAIL_QUEUE)) == 0


def test_queue_failure_is_logged_not_raised(monkeypatch, caplog) -> None:
    async def broken(*_args, **_kwargs):
        raise ConnectionError("redis down")

    monkeypatch.setattr(task_queue, "enqueue", broken)

    with caplog.at_level(logging.ERROR, logger="app.services.notifier"):
        ok = asyncio.run(notifier.queue_email({"to": "x@example.com", "subject": "s", "body": "b"}))

    assert ok is False
    assert "Failed to queue email" in caplog.text


def test_notification_failure_is_logged_not_raised(monkeypatch, caplog) -> None:
    async def broken(*_args, **_kwargs):
        raise RuntimeError("db down")

    monkeypatch.setattr(notification_repo, "add", broken)
    t = make_user(TRAINEE)

    with caplog.at_level(logging.ERROR, logger="app.services.notifier"):
        ok = asyncio.run(
            notifier.create_notification(
                user_id=t.id, type="X", title="t", message="m"
            )
        )

    assert ok is False
    assert "Failed to create notification" in caplog.text
