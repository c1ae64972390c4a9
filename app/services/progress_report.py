"""Trainee progress summaries, read-through cached.

Summaries are keyed by progress:{course_id}:{trainee_id}.  Every
progression write on a course queues invalidate_course() to run after the
commit, dropping all of that course's summaries; the TTL bounds staleness
if a drop is missed.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from uuid import UUID

from app.core.errors import AuthorizationError, NotFoundError
from app.core.metrics import CACHE_OPERATIONS
from app.models.course import FINISHED, NOT_STARTED
from app.models.enrollment import COMPLETED
from app.repos.training_repo import TrainingRepo
from app.services.cache import cache_service

logger = logging.getLogger(__name__)

PROGRESS_CACHE_TTL = 300


def percent(part: int, whole: int) -> int:
    """Whole-number percentage, halves rounded up."""
    if whole <= 0:
        return 0
    return int(part * 100 / whole + 0.5)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _cache_key(course_id: UUID, trainee_id: UUID) -> str:
    return f"progress:{course_id}:{trainee_id}"


async def invalidate_course(course_id: UUID) -> None:
    dropped = await cache_service.delete_prefix(f"progress:{course_id}:")
    if dropped:
        CACHE_OPERATIONS.labels(operation="invalidate").inc(dropped)
        logger.debug("Dropped %d cached summaries for course=%s", dropped, course_id)


async def course_progress(repo: TrainingRepo, course_id: UUID, trainee_id: UUID) -> dict:
    """Per-subject and overall progress of one trainee in one course."""
    key = _cache_key(course_id, trainee_id)
    cached = await cache_service.get(key)
    if cached is not None:
        CACHE_OPERATIONS.labels(operation="hit").inc()
        return json.loads(cached)
    CACHE_OPERATIONS.labels(operation="miss").inc()

    summary = await _build_summary(repo, course_id, trainee_id)
    await cache_service.set(key, json.dumps(summary), PROGRESS_CACHE_TTL)
    return summary


async def all_progress(repo: TrainingRepo, trainee_id: UUID) -> list[dict]:
    enrollments = await repo.list_enrollments(trainee_id)
    return [await course_progress(repo, ct.course_id, trainee_id) for ct in enrollments]


async def _build_summary(repo: TrainingRepo, course_id: UUID, trainee_id: UUID) -> dict:
    course = await repo.get_course(course_id)
    if course is None:
        raise NotFoundError("Course not found")
    ct = await repo.get_course_trainee(course_id, trainee_id)
    if ct is None:
        raise AuthorizationError("You are not enrolled in this course")

    by_subject = {
        ts.subject_id: ts
        for ts in await repo.list_trainee_subjects(course_trainee_id=ct.id)
    }

    subjects_out = []
    finished_subjects = 0
    for subject in await repo.list_subjects(course_id):
        tasks = await repo.list_tasks(subject.id)
        records = {
            tt.task_id: tt
            for tt in await repo.list_trainee_tasks(
                task_ids=[t.id for t in tasks], trainee_id=trainee_id
            )
        }
        completed = sum(1 for tt in records.values() if tt.status == COMPLETED)
        ts = by_subject.get(subject.id)
        status = ts.status if ts is not None else NOT_STARTED
        if status == FINISHED:
            finished_subjects += 1

        subjects_out.append(
            {
                "subject_id": str(subject.id),
                "title": subject.title,
                "position": subject.position,
                "subject_status": subject.status,
                "status": status,
                "grade": ts.grade if ts is not None else None,
                "feedback": ts.feedback if ts is not None else None,
                "completed_at": _iso(ts.completed_at) if ts is not None else None,
                "completed_tasks": completed,
                "total_tasks": len(tasks),
                "percent": percent(completed, len(tasks)),
                "tasks": [
                    {
                        "task_id": str(t.id),
                        "title": t.title,
                        "position": t.position,
                        "due_date": _iso(t.due_date),
                        "status": records[t.id].status if t.id in records else NOT_STARTED,
                        "completed_at": (
                            _iso(records[t.id].completed_at) if t.id in records else None
                        ),
                    }
                    for t in tasks
                ],
            }
        )

    return {
        "course_id": str(course.id),
        "course_title": course.title,
        "course_status": course.status,
        "enrollment_status": ct.status,
        "finished_subjects": finished_subjects,
        "total_subjects": len(subjects_out),
        "overall_percent": percent(finished_subjects, len(subjects_out)),
        "subjects": subjects_out,
    }
