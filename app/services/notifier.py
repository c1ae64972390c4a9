"""Fire-and-forget side effects of progression changes.

Routes schedule these as FastAPI background tasks, so they run after the
request's unit of work has committed.  Nothing here may fail a request:
every error is logged and counted, never raised.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from uuid import UUID

from app.core.config import SETTINGS
from app.core.metrics import SIDE_EFFECTS
from app.db.engine import async_session_factory, session_scope
from app.models.course import Course
from app.models.notification import Notification
from app.models.user import User
from app.repos.notification_repo import PgNotificationRepo, notification_repo
from app.services.task_queue import EMAIL_QUEUE, task_queue

logger = logging.getLogger(__name__)

COURSE_ENROLLED = "COURSE_ENROLLED"
COURSE_REMOVED = "COURSE_REMOVED"
COURSE_FINISHED = "COURSE_FINISHED"


async def queue_email(payload: dict) -> bool:
    """Push an email job for the worker; payload has to, subject, body."""
    try:
        job = await task_queue.enqueue(EMAIL_QUEUE, payload)
    except Exception:
        SIDE_EFFECTS.labels(kind="email", outcome="failed").inc()
        logger.exception("Failed to queue email to=%s", payload.get("to"))
        return False
    SIDE_EFFECTS.labels(kind="email", outcome="queued").inc()
    logger.debug("Queued email job=%s to=%s", job.id, payload.get("to"))
    return True


async def create_notification(
    *,
    user_id: UUID,
    type: str,
    title: str,
    message: str,
    link_to: str | None = None,
) -> bool:
    """Persist an in-app notification in its own unit of work."""
    notification = Notification.new(
        user_id=user_id, type=type, title=title, message=message, link_to=link_to
    )
    try:
        if async_session_factory is None:
            await notification_repo.add(notification)
        else:
            async with session_scope() as session:
                await PgNotificationRepo(session).add(notification)
    except Exception:
        SIDE_EFFECTS.labels(kind="notification", outcome="failed").inc()
        logger.exception("Failed to create notification for user=%s", user_id)
        return False
    SIDE_EFFECTS.labels(kind="notification", outcome="queued").inc()
    return True


def _course_link(course: Course) -> str:
    return f"/trainee/courses/{course.id}"


async def notify_enrolled(course: Course, trainees: Iterable[User]) -> None:
    for user in trainees:
        await queue_email(
            {
                "to": user.email,
                "subject": f"You have been enrolled in {course.title}",
                "body": (
                    f"Hello {user.full_name or user.email},\n\n"
                    f"You have been added to the course \"{course.title}\".\n"
                    f"Open it at {SETTINGS.frontend_url}{_course_link(course)}\n"
                ),
            }
        )
        await create_notification(
            user_id=user.id,
            type=COURSE_ENROLLED,
            title="Added to course",
            message=f"You have been enrolled in {course.title}",
            link_to=_course_link(course),
        )


async def notify_removed(course: Course, trainee: User) -> None:
    await queue_email(
        {
            "to": trainee.email,
            "subject": f"You have been removed from {course.title}",
            "body": (
                f"Hello {trainee.full_name or trainee.email},\n\n"
                f"You are no longer enrolled in the course \"{course.title}\".\n"
            ),
        }
    )
    await create_notification(
        user_id=trainee.id,
        type=COURSE_REMOVED,
        title="Removed from course",
        message=f"You have been removed from {course.title}",
    )


async def notify_course_finished(course: Course, trainee_ids: Iterable[UUID]) -> None:
    for trainee_id in trainee_ids:
        await create_notification(
            user_id=trainee_id,
            type=COURSE_FINISHED,
            title="Course finished",
            message=f"{course.title} has finished",
            link_to=_course_link(course),
        )
