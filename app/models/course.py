"""Course content: a Course owns ordered Subjects, a Subject owns ordered Tasks.

Course and Subject share the three-state lifecycle
NOT_STARTED -> IN_PROGRESS -> FINISHED.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Literal
from uuid import UUID, uuid4

NOT_STARTED = "NOT_STARTED"
IN_PROGRESS = "IN_PROGRESS"
FINISHED = "FINISHED"

Status = Literal["NOT_STARTED", "IN_PROGRESS", "FINISHED"]
STATUSES: tuple[str, ...] = (NOT_STARTED, IN_PROGRESS, FINISHED)


def utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True, slots=True)
class Course:
    id: UUID
    title: str
    description: str = ""
    status: Status = NOT_STARTED
    start_date: datetime | None = None
    end_date: datetime | None = None
    created_by: UUID | None = None
    created_at: datetime | None = None

    @staticmethod
    def new(
        *,
        title: str,
        description: str = "",
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        created_by: UUID | None = None,
    ) -> Course:
        return Course(
            id=uuid4(),
            title=title,
            description=description,
            start_date=start_date,
            end_date=end_date,
            created_by=created_by,
            created_at=utcnow(),
        )


@dataclass(frozen=True, slots=True)
class Subject:
    id: UUID
    course_id: UUID
    title: str
    position: int  # "order"; gaps and duplicates tolerated
    description: str = ""
    status: Status = NOT_STARTED
    start_date: datetime | None = None
    end_date: datetime | None = None

    @staticmethod
    def new(
        *, course_id: UUID, title: str, position: int, description: str = ""
    ) -> Subject:
        return Subject(
            id=uuid4(),
            course_id=course_id,
            title=title,
            position=position,
            description=description,
        )


@dataclass(frozen=True, slots=True)
class Task:
    id: UUID
    subject_id: UUID
    title: str
    position: int
    description: str = ""
    due_date: datetime | None = None

    @staticmethod
    def new(
        *,
        subject_id: UUID,
        title: str,
        position: int,
        description: str = "",
        due_date: datetime | None = None,
    ) -> Task:
        return Task(
            id=uuid4(),
            subject_id=subject_id,
            title=title,
            position=position,
            description=description,
            due_date=due_date,
        )
