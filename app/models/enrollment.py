"""Per-trainee participation records.

CourseTrainee is the enrollment itself.  TraineeSubject and TraineeTask
mirror Subject and Task for one trainee and only exist while that trainee
is enrolled in the owning course.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Literal
from uuid import UUID, uuid4

from app.models.course import NOT_STARTED, Status, utcnow

# CourseTrainee.status
ACTIVE = "ACTIVE"
PASS = "PASS"
FAIL = "FAIL"
RESIGN = "RESIGN"

EnrollmentStatus = Literal["ACTIVE", "PASS", "FAIL", "RESIGN"]
ENROLLMENT_STATUSES: tuple[str, ...] = (ACTIVE, PASS, FAIL, RESIGN)

# TraineeTask.status (NOT_STARTED / IN_PROGRESS shared with Status)
COMPLETED = "COMPLETED"

TaskStatus = Literal["NOT_STARTED", "IN_PROGRESS", "COMPLETED"]


@dataclass(frozen=True, slots=True)
class CourseTrainee:
    id: UUID
    course_id: UUID
    trainee_id: UUID
    status: EnrollmentStatus = ACTIVE
    enrolled_at: datetime | None = None

    @staticmethod
    def new(*, course_id: UUID, trainee_id: UUID) -> CourseTrainee:
        return CourseTrainee(
            id=uuid4(),
            course_id=course_id,
            trainee_id=trainee_id,
            enrolled_at=utcnow(),
        )


@dataclass(frozen=True, slots=True)
class TraineeSubject:
    """Unique per (course_trainee_id, subject_id)."""

    id: UUID
    course_trainee_id: UUID
    subject_id: UUID
    status: Status = NOT_STARTED
    grade: int | None = None  # 0-100
    feedback: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @staticmethod
    def new(
        *, course_trainee_id: UUID, subject_id: UUID, status: Status = NOT_STARTED
    ) -> TraineeSubject:
        return TraineeSubject(
            id=uuid4(),
            course_trainee_id=course_trainee_id,
            subject_id=subject_id,
            status=status,
        )


@dataclass(frozen=True, slots=True)
class TraineeTask:
    """Unique per (trainee_id, task_id); completed_at is set only when COMPLETED."""

    id: UUID
    trainee_id: UUID
    task_id: UUID
    status: TaskStatus = NOT_STARTED
    completed_at: datetime | None = None

    @staticmethod
    def new(
        *,
        trainee_id: UUID,
        task_id: UUID,
        status: TaskStatus = NOT_STARTED,
        completed_at: datetime | None = None,
    ) -> TraineeTask:
        return TraineeTask(
            id=uuid4(),
            trainee_id=trainee_id,
            task_id=task_id,
            status=status,
            completed_at=completed_at,
        )
