"""Course endpoints: catalogue, management, trainers, enrollment and the
course lifecycle.

Progression writes (enroll, remove, start, finish) run under the write
rate limit.  Their emails and in-app notifications are scheduled as
background tasks, so they only go out once the request's unit of work
has committed and never fail the request.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from pydantic import BaseModel, Field

from app.api.access import ensure_course_trainer, ensure_course_visible
from app.api.dependencies import (
    CurrentUser,
    SupervisorOrAdmin,
    Training,
    TrainerOrAbove,
    Users,
)
from app.api.envelope import Envelope, PageParams, Paginated, ok, paginated
from app.api.ratelimit import require_rate_limit
from app.api.schemas import (
    CourseOut,
    CourseTraineeOut,
    SubjectWithTasksOut,
    UserOut,
    subject_with_tasks,
)
from app.core.errors import ValidationError
from app.models.course import STATUSES
from app.services import course_service, notifier, progression
from app.services.course_service import SubjectDraft, TaskDraft
from app.services.rate_limiter import WRITE_LIMIT

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/courses", tags=["courses"])

_write_limit = [Depends(require_rate_limit(WRITE_LIMIT))]


# ---------------------------------------------------------------------------
# Request / response models
# ---------------------------------------------------------------------------


class TaskIn(BaseModel):
    title: str
    description: str = ""
    due_date: datetime | None = None
    position: int | None = Field(None, ge=0)


class SubjectIn(BaseModel):
    title: str
    description: str = ""
    position: int | None = Field(None, ge=0)
    tasks: list[TaskIn] = []


class CourseCreateIn(BaseModel):
    title: str
    description: str = ""
    start_date: datetime | None = None
    end_date: datetime | None = None
    subjects: list[SubjectIn] = []
    trainer_ids: list[UUID] = []


class CourseUpdateIn(BaseModel):
    title: str | None = None
    description: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None


class CloneIn(BaseModel):
    title: str | None = None


class TrainersIn(BaseModel):
    trainer_ids: list[UUID]


class EnrollIn(BaseModel):
    trainee_ids: list[UUID]
    activate: bool = False


class TraineeStatusIn(BaseModel):
    status: str


class EnrolledTraineeOut(CourseTraineeOut):
    user: UserOut | None


class CourseDetailOut(CourseOut):
    subjects: list[SubjectWithTasksOut]
    trainers: list[UserOut]
    trainees: list[EnrolledTraineeOut]


class EnrollmentOut(BaseModel):
    course_id: UUID
    enrolled: list[UUID]
    already_enrolled: list[UUID]


def _subject_drafts(subjects: list[SubjectIn]) -> list[SubjectDraft]:
    return [
        SubjectDraft(
            title=s.title,
            description=s.description,
            position=s.position,
            tasks=[
                TaskDraft(
                    title=t.title,
                    description=t.description,
                    due_date=t.due_date,
                    position=t.position,
                )
                for t in s.tasks
            ],
        )
        for s in subjects
    ]


# ---------------------------------------------------------------------------
# Catalogue
# ---------------------------------------------------------------------------


@router.get("", response_model=Paginated[CourseOut])
async def list_courses(
    principal: CurrentUser,
    repo: Training,
    page: Annotated[PageParams, Depends()],
    status_filter: Annotated[str | None, Query(alias="status")] = None,
    search: str | None = None,
    mine: bool = False,
) -> dict:
    """Staff see every course, trainers their assigned courses, trainees
    the courses they are enrolled in.  `mine` narrows staff to their own.
    """
    if status_filter is not None and status_filter not in STATUSES:
        raise ValidationError(
            "Invalid status filter",
            errors=[{"field": "status", "message": f"must be one of {', '.join(STATUSES)}"}],
        )

    trainer_id = trainee_id = None
    if principal.is_staff():
        trainer_id = principal.uid if mine else None
    elif principal.is_trainer_or_above():
        trainer_id = principal.uid
    else:
        trainee_id = principal.uid

    courses, total = await repo.list_courses(
        status=status_filter,
        search=search,
        trainer_id=trainer_id,
        trainee_id=trainee_id,
        offset=page.offset,
        limit=page.limit,
    )
    return paginated([CourseOut.model_validate(c) for c in courses], page, total)


@router.get("/{course_id}", response_model=Envelope[CourseDetailOut])
async def get_course(
    course_id: UUID, principal: CurrentUser, repo: Training, users: Users
) -> dict:
    await ensure_course_visible(repo, principal, course_id)
    detail = await course_service.get_course_detail(repo, users, course_id)
    return ok(
        CourseDetailOut(
            **CourseOut.model_validate(detail.course).model_dump(),
            subjects=[subject_with_tasks(o) for o in detail.subjects],
            trainers=[UserOut.model_validate(u) for u in detail.trainers],
            trainees=[
                EnrolledTraineeOut(
                    **CourseTraineeOut.model_validate(t.enrollment).model_dump(),
                    user=None if t.user is None else UserOut.model_validate(t.user),
                )
                for t in detail.trainees
            ],
        )
    )


# ---------------------------------------------------------------------------
# Management
# ---------------------------------------------------------------------------


@router.post("", response_model=Envelope[CourseOut], status_code=status.HTTP_201_CREATED)
async def create_course(
    payload: CourseCreateIn,
    principal: SupervisorOrAdmin,
    repo: Training,
    users: Users,
) -> dict:
    course = await course_service.create_course(
        repo,
        users,
        title=payload.title,
        description=payload.description,
        start_date=payload.start_date,
        end_date=payload.end_date,
        created_by=principal.uid,
        subjects=_subject_drafts(payload.subjects),
        trainer_ids=payload.trainer_ids,
    )
    return ok(CourseOut.model_validate(course), "Course created")


@router.put("/{course_id}", response_model=Envelope[CourseOut])
async def update_course(
    course_id: UUID,
    payload: CourseUpdateIn,
    principal: TrainerOrAbove,
    repo: Training,
) -> dict:
    await ensure_course_trainer(repo, principal, course_id)
    course = await course_service.update_course(
        repo, course_id, **payload.model_dump(exclude_unset=True)
    )
    return ok(CourseOut.model_validate(course), "Course updated")


@router.delete("/{course_id}", response_model=Envelope[None])
async def delete_course(
    course_id: UUID, _principal: SupervisorOrAdmin, repo: Training
) -> dict:
    await progression.delete_course(repo, course_id)
    return ok(None, "Course deleted")


@router.post(
    "/{course_id}/clone",
    response_model=Envelope[CourseOut],
    status_code=status.HTTP_201_CREATED,
)
async def clone_course(
    course_id: UUID,
    principal: SupervisorOrAdmin,
    repo: Training,
    payload: CloneIn | None = None,
) -> dict:
    clone = await course_service.clone_course(
        repo,
        course_id,
        created_by=principal.uid,
        title=payload.title if payload else None,
    )
    return ok(CourseOut.model_validate(clone), "Course cloned")


# ---------------------------------------------------------------------------
# Trainers
# ---------------------------------------------------------------------------


@router.post("/{course_id}/trainers", response_model=Envelope[list[UUID]])
async def add_trainers(
    course_id: UUID,
    payload: TrainersIn,
    _principal: SupervisorOrAdmin,
    repo: Training,
    users: Users,
) -> dict:
    ids = await course_service.add_trainers(repo, users, course_id, payload.trainer_ids)
    return ok(ids, "Trainers assigned")


@router.delete("/{course_id}/trainers/{trainer_id}", response_model=Envelope[None])
async def remove_trainer(
    course_id: UUID,
    trainer_id: UUID,
    _principal: SupervisorOrAdmin,
    repo: Training,
) -> dict:
    await course_service.remove_trainer(repo, course_id, trainer_id)
    return ok(None, "Trainer removed")


# ---------------------------------------------------------------------------
# Enrollment
# ---------------------------------------------------------------------------


@router.post(
    "/{course_id}/trainees",
    response_model=Envelope[EnrollmentOut],
    dependencies=_write_limit,
)
async def enroll_trainees(
    course_id: UUID,
    payload: EnrollIn,
    principal: TrainerOrAbove,
    repo: Training,
    users: Users,
    background: BackgroundTasks,
) -> dict:
    await ensure_course_trainer(repo, principal, course_id)
    result = await progression.enroll_trainees(
        repo, users, course_id, payload.trainee_ids, activate=payload.activate
    )
    if result.enrolled:
        people = await users.get_many(result.enrolled)
        background.add_task(
            notifier.notify_enrolled,
            result.course,
            [people[i] for i in result.enrolled if i in people],
        )
    return ok(
        EnrollmentOut(
            course_id=course_id,
            enrolled=result.enrolled,
            already_enrolled=result.already_enrolled,
        ),
        f"{len(result.enrolled)} trainee(s) enrolled",
    )


@router.delete(
    "/{course_id}/trainees/{trainee_id}",
    response_model=Envelope[None],
    dependencies=_write_limit,
)
async def remove_trainee(
    course_id: UUID,
    trainee_id: UUID,
    principal: TrainerOrAbove,
    repo: Training,
    users: Users,
    background: BackgroundTasks,
) -> dict:
    course = await ensure_course_trainer(repo, principal, course_id)
    await progression.remove_trainee(repo, course_id, trainee_id)
    trainee = await users.get_by_id(trainee_id)
    if trainee is not None:
        background.add_task(notifier.notify_removed, course, trainee)
    return ok(None, "Trainee removed")


@router.put(
    "/{course_id}/trainees/{trainee_id}/status",
    response_model=Envelope[CourseTraineeOut],
)
async def set_trainee_status(
    course_id: UUID,
    trainee_id: UUID,
    payload: TraineeStatusIn,
    principal: TrainerOrAbove,
    repo: Training,
) -> dict:
    await ensure_course_trainer(repo, principal, course_id)
    ct = await course_service.set_trainee_status(repo, course_id, trainee_id, payload.status)
    return ok(CourseTraineeOut.model_validate(ct), "Trainee status updated")


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


@router.post(
    "/{course_id}/start", response_model=Envelope[CourseOut], dependencies=_write_limit
)
async def start_course(course_id: UUID, principal: TrainerOrAbove, repo: Training) -> dict:
    await ensure_course_trainer(repo, principal, course_id)
    course = await progression.start_course(repo, course_id)
    return ok(CourseOut.model_validate(course), "Course started")


@router.post(
    "/{course_id}/finish", response_model=Envelope[CourseOut], dependencies=_write_limit
)
async def finish_course(
    course_id: UUID,
    principal: TrainerOrAbove,
    repo: Training,
    background: BackgroundTasks,
) -> dict:
    await ensure_course_trainer(repo, principal, course_id)
    course = await progression.finish_course(repo, course_id)
    trainee_ids = [ct.trainee_id for ct in await repo.list_course_trainees(course_id)]
    background.add_task(notifier.notify_course_finished, course, trainee_ids)
    return ok(CourseOut.model_validate(course), "Course finished")
