"""Response models shared by several routers.

Request bodies live next to the route that accepts them; these are the
read shapes of domain objects, built straight from the frozen
dataclasses with ``Model.model_validate(obj)``.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class _FromDomain(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class UserOut(_FromDomain):
    id: UUID
    email: str
    full_name: str
    roles: list[str]
    is_active: bool


class CourseOut(_FromDomain):
    id: UUID
    title: str
    description: str
    status: str
    start_date: datetime | None
    end_date: datetime | None
    created_by: UUID | None
    created_at: datetime | None


class TaskOut(_FromDomain):
    id: UUID
    subject_id: UUID
    title: str
    description: str
    position: int
    due_date: datetime | None


class SubjectOut(_FromDomain):
    id: UUID
    course_id: UUID
    title: str
    description: str
    position: int
    status: str
    start_date: datetime | None
    end_date: datetime | None


class SubjectWithTasksOut(SubjectOut):
    tasks: list[TaskOut]


class CourseTraineeOut(_FromDomain):
    id: UUID
    course_id: UUID
    trainee_id: UUID
    status: str
    enrolled_at: datetime | None


class TraineeSubjectOut(_FromDomain):
    id: UUID
    course_trainee_id: UUID
    subject_id: UUID
    status: str
    grade: int | None
    feedback: str | None
    started_at: datetime | None
    completed_at: datetime | None


def subject_with_tasks(outline) -> SubjectWithTasksOut:
    """Flatten a course_service.SubjectOutline."""
    return SubjectWithTasksOut(
        **SubjectOut.model_validate(outline.subject).model_dump(),
        tasks=[TaskOut.model_validate(t) for t in outline.tasks],
    )
