"""The trainee's own view: completing subjects, progress and the dashboard."""

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends
from pydantic import BaseModel

from app.api.dependencies import Notifications, Reports, Trainee, Training
from app.api.envelope import Envelope, ok
from app.api.ratelimit import require_rate_limit
from app.api.schemas import TraineeSubjectOut
from app.services import dashboard, notifier, progress_report, progression
from app.services.rate_limiter import WRITE_LIMIT

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/trainee", tags=["trainee"])


class SubjectCompletionOut(BaseModel):
    trainee_subject: TraineeSubjectOut
    subject_finished: bool
    trainee_finished_course: bool
    course_finished: bool


@router.post(
    "/subjects/{subject_id}/complete",
    response_model=Envelope[SubjectCompletionOut],
    dependencies=[Depends(require_rate_limit(WRITE_LIMIT))],
)
async def complete_subject(
    subject_id: UUID,
    principal: Trainee,
    repo: Training,
    background: BackgroundTasks,
) -> dict:
    result = await progression.complete_subject(repo, principal.uid, subject_id)

    if result.course_finished:
        subject = await repo.get_subject(subject_id)
        course = await repo.get_course(subject.course_id) if subject else None
        if course is not None:
            trainee_ids = [
                ct.trainee_id for ct in await repo.list_course_trainees(course.id)
            ]
            background.add_task(notifier.notify_course_finished, course, trainee_ids)

    return ok(
        SubjectCompletionOut(
            trainee_subject=TraineeSubjectOut.model_validate(result.trainee_subject),
            subject_finished=result.subject_finished,
            trainee_finished_course=result.trainee_finished_course,
            course_finished=result.course_finished,
        ),
        "Subject completed",
    )


@router.get("/courses/{course_id}/progress", response_model=Envelope[dict[str, Any]])
async def course_progress(course_id: UUID, principal: Trainee, repo: Training) -> dict:
    return ok(await progress_report.course_progress(repo, course_id, principal.uid))


@router.get("/progress", response_model=Envelope[list[dict[str, Any]]])
async def all_progress(principal: Trainee, repo: Training) -> dict:
    return ok(await progress_report.all_progress(repo, principal.uid))


@router.get("/dashboard", response_model=Envelope[dict[str, Any]])
async def trainee_dashboard(
    principal: Trainee,
    repo: Training,
    reports: Reports,
    notifications: Notifications,
) -> dict:
    return ok(
        await dashboard.trainee_dashboard(repo, reports, notifications, principal.uid)
    )
