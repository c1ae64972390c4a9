from __future__ import annotations

import logging
from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from app.api.access import (
    ensure_course_trainer,
    ensure_course_visible,
    ensure_subject_trainer,
)
from app.api.dependencies import CurrentUser, Training, TrainerOrAbove, Users
from app.api.envelope import Envelope, ok
from app.api.ratelimit import require_rate_limit
from app.api.schemas import (
    SubjectOut,
    SubjectWithTasksOut,
    TaskOut,
    TraineeSubjectOut,
    UserOut,
    subject_with_tasks,
)
from app.core.errors import NotFoundError
from app.services import course_service, progression
from app.services.course_service import TaskDraft
from app.services.rate_limiter import WRITE_LIMIT

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["subjects"])

_write_limit = [Depends(require_rate_limit(WRITE_LIMIT))]


class TaskIn(BaseModel):
    title: str
    description: str = ""
    due_date: datetime | None = None
    position: int | None = Field(None, ge=0)


class SubjectCreateIn(BaseModel):
    title: str
    description: str = ""
    position: int | None = Field(None, ge=0)
    tasks: list[TaskIn] = []


class SubjectUpdateIn(BaseModel):
    title: str | None = None
    description: str | None = None
    position: int | None = Field(None, ge=0)


class GradeIn(BaseModel):
    # range checked by the service so the message matches other callers
    grade: int
    feedback: str | None = None


class SubjectTraineeOut(BaseModel):
    trainee_id: UUID
    user: UserOut | None
    enrollment_status: str
    record: TraineeSubjectOut | None
    completed_tasks: int
    total_tasks: int
    percent: int


async def _subject_course_id(repo, subject_id: UUID) -> UUID:
    subject = await repo.get_subject(subject_id)
    if subject is None:
        raise NotFoundError("Subject not found")
    return subject.course_id


# ---------------------------------------------------------------------------
# Subjects under a course
# ---------------------------------------------------------------------------


@router.get(
    "/courses/{course_id}/subjects", response_model=Envelope[list[SubjectWithTasksOut]]
)
async def list_subjects(course_id: UUID, principal: CurrentUser, repo: Training) -> dict:
    await ensure_course_visible(repo, principal, course_id)
    outlines = [
        await course_service.get_subject_outline(repo, s.id)
        for s in await repo.list_subjects(course_id)
    ]
    return ok([subject_with_tasks(o) for o in outlines])


@router.post(
    "/courses/{course_id}/subjects",
    response_model=Envelope[SubjectOut],
    status_code=status.HTTP_201_CREATED,
)
async def create_subject(
    course_id: UUID,
    payload: SubjectCreateIn,
    principal: TrainerOrAbove,
    repo: Training,
) -> dict:
    await ensure_course_trainer(repo, principal, course_id)
    subject = await course_service.create_subject(
        repo,
        course_id,
        title=payload.title,
        description=payload.description,
        position=payload.position,
        tasks=[
            TaskDraft(
                title=t.title,
                description=t.description,
                due_date=t.due_date,
                position=t.position,
            )
            for t in payload.tasks
        ],
    )
    return ok(SubjectOut.model_validate(subject), "Subject created")


# ---------------------------------------------------------------------------
# Single subject
# ---------------------------------------------------------------------------


@router.get("/subjects/{subject_id}", response_model=Envelope[SubjectWithTasksOut])
async def get_subject(subject_id: UUID, principal: CurrentUser, repo: Training) -> dict:
    await ensure_course_visible(repo, principal, await _subject_course_id(repo, subject_id))
    outline = await course_service.get_subject_outline(repo, subject_id)
    return ok(subject_with_tasks(outline))


@router.put("/subjects/{subject_id}", response_model=Envelope[SubjectOut])
async def update_subject(
    subject_id: UUID,
    payload: SubjectUpdateIn,
    principal: TrainerOrAbove,
    repo: Training,
) -> dict:
    await ensure_subject_trainer(repo, principal, subject_id)
    subject = await course_service.update_subject(
        repo, subject_id, **payload.model_dump(exclude_unset=True)
    )
    return ok(SubjectOut.model_validate(subject), "Subject updated")


@router.delete("/subjects/{subject_id}", response_model=Envelope[None])
async def delete_subject(
    subject_id: UUID, principal: TrainerOrAbove, repo: Training
) -> dict:
    await ensure_subject_trainer(repo, principal, subject_id)
    await progression.delete_subject(repo, subject_id)
    return ok(None, "Subject deleted")


@router.post(
    "/subjects/{subject_id}/tasks",
    response_model=Envelope[TaskOut],
    status_code=status.HTTP_201_CREATED,
)
async def create_task(
    subject_id: UUID,
    payload: TaskIn,
    principal: TrainerOrAbove,
    repo: Training,
) -> dict:
    await ensure_subject_trainer(repo, principal, subject_id)
    task = await course_service.create_task(
        repo,
        subject_id,
        title=payload.title,
        description=payload.description,
        due_date=payload.due_date,
        position=payload.position,
    )
    return ok(TaskOut.model_validate(task), "Task created")


# ---------------------------------------------------------------------------
# Grading
# ---------------------------------------------------------------------------


@router.get(
    "/subjects/{subject_id}/trainees", response_model=Envelope[list[SubjectTraineeOut]]
)
async def subject_trainees(
    subject_id: UUID, principal: TrainerOrAbove, repo: Training, users: Users
) -> dict:
    await ensure_subject_trainer(repo, principal, subject_id)
    rows = await course_service.subject_trainees(repo, users, subject_id)
    return ok(
        [
            SubjectTraineeOut(
                trainee_id=r.enrollment.trainee_id,
                user=None if r.user is None else UserOut.model_validate(r.user),
                enrollment_status=r.enrollment.status,
                record=None
                if r.record is None
                else TraineeSubjectOut.model_validate(r.record),
                completed_tasks=r.completed_tasks,
                total_tasks=r.total_tasks,
                percent=r.percent,
            )
            for r in rows
        ]
    )


@router.put(
    "/subjects/{subject_id}/trainees/{trainee_id}/grade",
    response_model=Envelope[TraineeSubjectOut],
)
async def grade_trainee(
    subject_id: UUID,
    trainee_id: UUID,
    payload: GradeIn,
    principal: TrainerOrAbove,
    repo: Training,
) -> dict:
    await ensure_subject_trainer(repo, principal, subject_id)
    record = await course_service.grade_trainee(
        repo, subject_id, trainee_id, grade=payload.grade, feedback=payload.feedback
    )
    return ok(TraineeSubjectOut.model_validate(record), "Grade saved")


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


@router.post(
    "/subjects/{subject_id}/start",
    response_model=Envelope[SubjectOut],
    dependencies=_write_limit,
)
async def start_subject(
    subject_id: UUID, principal: TrainerOrAbove, repo: Training
) -> dict:
    await ensure_subject_trainer(repo, principal, subject_id)
    subject = await progression.start_subject(repo, subject_id)
    return ok(SubjectOut.model_validate(subject), "Subject started")


@router.post(
    "/subjects/{subject_id}/finish",
    response_model=Envelope[SubjectOut],
    dependencies=_write_limit,
)
async def finish_subject(
    subject_id: UUID, principal: TrainerOrAbove, repo: Training
) -> dict:
    await ensure_subject_trainer(repo, principal, subject_id)
    subject = await progression.finish_subject(repo, subject_id)
    return ok(SubjectOut.model_validate(subject), "Subject finished")
