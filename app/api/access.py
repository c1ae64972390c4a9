"""Course-level access checks.

These are plain functions (not FastAPI dependencies) because they need
the Principal, a repository and a course identifier.  Call them at the
top of an endpoint body, before handing plain identifiers to a service.
"""

from __future__ import annotations

import logging
from uuid import UUID

from app.core.errors import AuthorizationError, NotFoundError
from app.models.course import Course
from app.models.principal import Principal
from app.repos.training_repo import TrainingRepo

logger = logging.getLogger(__name__)


async def _load_course(repo: TrainingRepo, course_id: UUID) -> Course:
    course = await repo.get_course(course_id)
    if course is None:
        raise NotFoundError("Course not found")
    return course


async def ensure_course_trainer(
    repo: TrainingRepo, principal: Principal, course_id: UUID
) -> Course:
    """Admins and supervisors pass; trainers only when assigned to the course."""
    course = await _load_course(repo, course_id)
    if principal.is_staff():
        return course
    if principal.is_trainer_or_above() and principal.uid in await repo.list_trainer_ids(
        course_id
    ):
        return course
    logger.warning(
        "Access denied: user=%s is not a trainer of course=%s",
        principal.user_id,
        course_id,
    )
    raise AuthorizationError("You are not a trainer of this course")


async def ensure_subject_trainer(
    repo: TrainingRepo, principal: Principal, subject_id: UUID
) -> Course:
    subject = await repo.get_subject(subject_id)
    if subject is None:
        raise NotFoundError("Subject not found")
    return await ensure_course_trainer(repo, principal, subject.course_id)


async def ensure_course_visible(
    repo: TrainingRepo, principal: Principal, course_id: UUID
) -> Course:
    """Staff see everything; trainers their courses; trainees their enrollments."""
    course = await _load_course(repo, course_id)
    if principal.is_staff():
        return course
    if principal.is_trainer_or_above() and principal.uid in await repo.list_trainer_ids(
        course_id
    ):
        return course
    if await repo.get_course_trainee(course_id, principal.uid) is not None:
        return course
    logger.warning(
        "Access denied: user=%s cannot view course=%s", principal.user_id, course_id
    )
    raise AuthorizationError("You do not have access to this course")
