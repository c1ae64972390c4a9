"""Course, subject and task management outside the progression cascade:
creation, editing, cloning, trainer assignment, enrollment status and
grading.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any
from uuid import UUID

from app.core.errors import (
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from app.models.course import FINISHED, Course, Subject, Task
from app.models.enrollment import (
    COMPLETED,
    ENROLLMENT_STATUSES,
    CourseTrainee,
    TraineeSubject,
)
from app.models.user import SUPERVISOR, TRAINER, User
from app.repos.training_repo import TrainingRepo
from app.repos.user_repo import UserRepo
from app.services.progress_report import invalidate_course, percent

logger = logging.getLogger(__name__)

_COURSE_FIELDS = {"title", "description", "start_date", "end_date"}
_SUBJECT_FIELDS = {"title", "description", "position"}


@dataclass(frozen=True, slots=True)
class TaskDraft:
    title: str
    description: str = ""
    due_date: datetime | None = None
    position: int | None = None


@dataclass(frozen=True, slots=True)
class SubjectDraft:
    title: str
    description: str = ""
    position: int | None = None
    tasks: list[TaskDraft] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class SubjectOutline:
    subject: Subject
    tasks: list[Task]


@dataclass(frozen=True, slots=True)
class EnrolledTrainee:
    enrollment: CourseTrainee
    user: User | None


@dataclass(frozen=True, slots=True)
class CourseDetail:
    course: Course
    subjects: list[SubjectOutline]
    trainers: list[User]
    trainees: list[EnrolledTrainee]


@dataclass(frozen=True, slots=True)
class SubjectTraineeRow:
    """One line of the grading view for a subject."""

    enrollment: CourseTrainee
    user: User | None
    record: TraineeSubject | None
    completed_tasks: int
    total_tasks: int

    @property
    def percent(self) -> int:
        return percent(self.completed_tasks, self.total_tasks)


async def _require_course(repo: TrainingRepo, course_id: UUID) -> Course:
    course = await repo.get_course(course_id)
    if course is None:
        raise NotFoundError("Course not found")
    return course


async def _require_subject(repo: TrainingRepo, subject_id: UUID) -> Subject:
    subject = await repo.get_subject(subject_id)
    if subject is None:
        raise NotFoundError("Subject not found")
    return subject


def _require_title(title: str | None, field_name: str = "title") -> str:
    title = (title or "").strip()
    if not title:
        raise ValidationError(
            "Title is required",
            errors=[{"field": field_name, "message": "must not be blank"}],
        )
    return title


async def _validate_trainers(users: UserRepo, trainer_ids: list[UUID]) -> None:
    found = await users.get_many(trainer_ids)
    invalid = [
        i
        for i in trainer_ids
        if i not in found
        or not found[i].is_active
        or not (found[i].has_role(TRAINER) or found[i].has_role(SUPERVISOR))
    ]
    if invalid:
        raise ValidationError(
            "Some trainers not found or do not have trainer role",
            errors=[
                {"field": "trainer_ids", "message": f"{i} is not an active trainer"}
                for i in invalid
            ],
        )


def _build_tasks(subject_id: UUID, drafts: Iterable[TaskDraft]) -> list[Task]:
    return [
        Task.new(
            subject_id=subject_id,
            title=_require_title(d.title, f"tasks[{i}].title"),
            description=d.description,
            due_date=d.due_date,
            position=d.position if d.position is not None else i + 1,
        )
        for i, d in enumerate(drafts)
    ]


# ---------------------------------------------------------------------------
# Courses
# ---------------------------------------------------------------------------


async def create_course(
    repo: TrainingRepo,
    users: UserRepo,
    *,
    title: str,
    description: str = "",
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    created_by: UUID | None = None,
    subjects: list[SubjectDraft],
    trainer_ids: Iterable[UUID] = (),
) -> Course:
    """Create a course with its subjects and tasks in one go.

    A course needs at least one subject and every subject at least one
    task.  Orders default to the 1-based position in the request.
    """
    title = _require_title(title)
    errors: list[dict[str, Any]] = []
    if not subjects:
        errors.append({"field": "subjects", "message": "at least one subject is required"})
    for i, draft in enumerate(subjects):
        if not draft.title.strip():
            errors.append({"field": f"subjects[{i}].title", "message": "must not be blank"})
        if not draft.tasks:
            errors.append(
                {"field": f"subjects[{i}].tasks", "message": "at least one task is required"}
            )
        for j, task in enumerate(draft.tasks):
            if not task.title.strip():
                errors.append(
                    {"field": f"subjects[{i}].tasks[{j}].title", "message": "must not be blank"}
                )
    if start_date and end_date and end_date < start_date:
        errors.append({"field": "end_date", "message": "must not be before start_date"})
    if errors:
        raise ValidationError("Invalid course", errors=errors)

    trainers = list(dict.fromkeys(trainer_ids))
    await _validate_trainers(users, trainers)

    course = Course.new(
        title=title,
        description=description,
        start_date=start_date,
        end_date=end_date,
        created_by=created_by,
    )
    await repo.add_course(course)
    for i, draft in enumerate(subjects):
        subject = Subject.new(
            course_id=course.id,
            title=_require_title(draft.title, f"subjects[{i}].title"),
            description=draft.description,
            position=draft.position if draft.position is not None else i + 1,
        )
        await repo.add_subject(subject)
        for task in _build_tasks(subject.id, draft.tasks):
            await repo.add_task(task)
    await repo.add_trainers(course.id, trainers)

    logger.info(
        "Course=%s created by user=%s with %d subjects", course.id, created_by, len(subjects)
    )
    return course


async def update_course(repo: TrainingRepo, course_id: UUID, **changes: Any) -> Course:
    course = await _require_course(repo, course_id)
    unknown = set(changes) - _COURSE_FIELDS
    if unknown:
        raise ValidationError(f"Unknown fields: {', '.join(sorted(unknown))}")
    if "title" in changes:
        changes["title"] = _require_title(changes["title"])
    if course.status == FINISHED and ("start_date" in changes or "end_date" in changes):
        raise StateConflictError("Cannot change the dates of a finished course")

    course = replace(course, **changes)
    await repo.save_course(course)
    await repo.after_commit(invalidate_course, course_id)
    logger.info("Course=%s updated fields=%s", course_id, sorted(changes))
    return course


async def clone_course(
    repo: TrainingRepo,
    course_id: UUID,
    *,
    created_by: UUID | None,
    title: str | None = None,
) -> Course:
    """Copy subjects, tasks and trainers into a new NOT_STARTED course."""
    source = await _require_course(repo, course_id)
    clone = Course.new(
        title=_require_title(title) if title is not None else f"{source.title} (Copy)",
        description=source.description,
        created_by=created_by,
    )
    await repo.add_course(clone)
    for subject in await repo.list_subjects(course_id):
        copy = Subject.new(
            course_id=clone.id,
            title=subject.title,
            description=subject.description,
            position=subject.position,
        )
        await repo.add_subject(copy)
        for task in await repo.list_tasks(subject.id):
            await repo.add_task(
                Task.new(
                    subject_id=copy.id,
                    title=task.title,
                    description=task.description,
                    due_date=task.due_date,
                    position=task.position,
                )
            )
    await repo.add_trainers(clone.id, await repo.list_trainer_ids(course_id))
    logger.info("Course=%s cloned into course=%s", course_id, clone.id)
    return clone


async def get_course_detail(
    repo: TrainingRepo, users: UserRepo, course_id: UUID
) -> CourseDetail:
    course = await _require_course(repo, course_id)
    outlines = [
        SubjectOutline(subject=s, tasks=await repo.list_tasks(s.id))
        for s in await repo.list_subjects(course_id)
    ]
    trainer_ids = await repo.list_trainer_ids(course_id)
    enrollments = await repo.list_course_trainees(course_id)
    people = await users.get_many([*trainer_ids, *(ct.trainee_id for ct in enrollments)])
    return CourseDetail(
        course=course,
        subjects=outlines,
        trainers=[people[t] for t in trainer_ids if t in people],
        trainees=[
            EnrolledTrainee(enrollment=ct, user=people.get(ct.trainee_id))
            for ct in enrollments
        ],
    )


# ---------------------------------------------------------------------------
# Trainers and enrollment status
# ---------------------------------------------------------------------------


async def add_trainers(
    repo: TrainingRepo, users: UserRepo, course_id: UUID, trainer_ids: Iterable[UUID]
) -> list[UUID]:
    await _require_course(repo, course_id)
    ids = list(dict.fromkeys(trainer_ids))
    if not ids:
        raise ValidationError(
            "At least one trainer is required",
            errors=[{"field": "trainer_ids", "message": "must not be empty"}],
        )
    await _validate_trainers(users, ids)
    await repo.add_trainers(course_id, ids)
    logger.info("Trainers=%s assigned to course=%s", ids, course_id)
    return await repo.list_trainer_ids(course_id)


async def remove_trainer(repo: TrainingRepo, course_id: UUID, trainer_id: UUID) -> None:
    async with repo.transaction(course_id):
        await _require_course(repo, course_id)
        current = await repo.list_trainer_ids(course_id)
        if trainer_id not in current:
            raise NotFoundError("Trainer not assigned to this course")
        if len(current) <= 1:
            raise StateConflictError("Course must have at least one trainer")
        await repo.remove_trainer(course_id, trainer_id)
    logger.info("Trainer=%s removed from course=%s", trainer_id, course_id)


async def set_trainee_status(
    repo: TrainingRepo, course_id: UUID, trainee_id: UUID, status: str
) -> CourseTrainee:
    if status not in ENROLLMENT_STATUSES:
        raise ValidationError(
            "Invalid trainee status",
            errors=[
                {
                    "field": "status",
                    "message": f"must be one of {', '.join(ENROLLMENT_STATUSES)}",
                }
            ],
        )
    await _require_course(repo, course_id)
    ct = await repo.get_course_trainee(course_id, trainee_id)
    if ct is None:
        raise NotFoundError("Trainee not enrolled in this course")
    ct = replace(ct, status=status)  # type: ignore[arg-type]
    await repo.save_course_trainee(ct)
    await repo.after_commit(invalidate_course, course_id)
    logger.info("Trainee=%s in course=%s set to %s", trainee_id, course_id, status)
    return ct


# ---------------------------------------------------------------------------
# Subjects and tasks
# ---------------------------------------------------------------------------


async def create_subject(
    repo: TrainingRepo,
    course_id: UUID,
    *,
    title: str,
    description: str = "",
    position: int | None = None,
    tasks: Iterable[TaskDraft] = (),
) -> Subject:
    """Add a subject to a course that has not finished.

    Every enrolled trainee gets a NOT_STARTED record for the new subject.
    """
    title = _require_title(title)
    async with repo.transaction(course_id):
        course = await _require_course(repo, course_id)
        if course.status == FINISHED:
            raise StateConflictError("Cannot add subjects to a finished course")

        existing = await repo.list_subjects(course_id)
        if position is None:
            position = max((s.position for s in existing), default=0) + 1

        subject = Subject.new(
            course_id=course_id, title=title, description=description, position=position
        )
        await repo.add_subject(subject)
        for task in _build_tasks(subject.id, tasks):
            await repo.add_task(task)
        await repo.add_trainee_subjects(
            TraineeSubject.new(course_trainee_id=ct.id, subject_id=subject.id)
            for ct in await repo.list_course_trainees(course_id)
        )

    await repo.after_commit(invalidate_course, course_id)
    logger.info("Subject=%s added to course=%s", subject.id, course_id)
    return subject


async def get_subject_outline(repo: TrainingRepo, subject_id: UUID) -> SubjectOutline:
    subject = await _require_subject(repo, subject_id)
    return SubjectOutline(subject=subject, tasks=await repo.list_tasks(subject_id))


async def update_subject(repo: TrainingRepo, subject_id: UUID, **changes: Any) -> Subject:
    subject = await _require_subject(repo, subject_id)
    unknown = set(changes) - _SUBJECT_FIELDS
    if unknown:
        raise ValidationError(f"Unknown fields: {', '.join(sorted(unknown))}")
    if "title" in changes:
        changes["title"] = _require_title(changes["title"])
    subject = replace(subject, **changes)
    await repo.save_subject(subject)
    await repo.after_commit(invalidate_course, subject.course_id)
    return subject


async def create_task(
    repo: TrainingRepo,
    subject_id: UUID,
    *,
    title: str,
    description: str = "",
    due_date: datetime | None = None,
    position: int | None = None,
) -> Task:
    title = _require_title(title)
    subject = await _require_subject(repo, subject_id)
    async with repo.transaction(subject.course_id):
        course = await _require_course(repo, subject.course_id)
        if course.status == FINISHED:
            raise StateConflictError("Cannot add tasks to a finished course")
        if position is None:
            existing = await repo.list_tasks(subject_id)
            position = max((t.position for t in existing), default=0) + 1
        task = Task.new(
            subject_id=subject_id,
            title=title,
            description=description,
            due_date=due_date,
            position=position,
        )
        await repo.add_task(task)

    await repo.after_commit(invalidate_course, subject.course_id)
    logger.info("Task=%s added to subject=%s", task.id, subject_id)
    return task


# ---------------------------------------------------------------------------
# Grading
# ---------------------------------------------------------------------------


async def subject_trainees(
    repo: TrainingRepo, users: UserRepo, subject_id: UUID
) -> list[SubjectTraineeRow]:
    subject = await _require_subject(repo, subject_id)
    enrollments = await repo.list_course_trainees(subject.course_id)
    records = {
        ts.course_trainee_id: ts
        for ts in await repo.list_trainee_subjects(subject_id=subject_id)
    }
    task_ids = [t.id for t in await repo.list_tasks(subject_id)]
    done: dict[UUID, int] = {}
    for tt in await repo.list_trainee_tasks(task_ids=task_ids):
        if tt.status == COMPLETED:
            done[tt.trainee_id] = done.get(tt.trainee_id, 0) + 1
    people = await users.get_many(ct.trainee_id for ct in enrollments)

    return [
        SubjectTraineeRow(
            enrollment=ct,
            user=people.get(ct.trainee_id),
            record=records.get(ct.id),
            completed_tasks=done.get(ct.trainee_id, 0),
            total_tasks=len(task_ids),
        )
        for ct in enrollments
    ]


async def grade_trainee(
    repo: TrainingRepo,
    subject_id: UUID,
    trainee_id: UUID,
    *,
    grade: int,
    feedback: str | None = None,
) -> TraineeSubject:
    if not 0 <= grade <= 100:
        raise ValidationError(
            "Grade must be between 0 and 100",
            errors=[{"field": "grade", "message": "must be between 0 and 100"}],
        )
    subject = await _require_subject(repo, subject_id)
    ct = await repo.get_course_trainee(subject.course_id, trainee_id)
    record = None if ct is None else await repo.get_trainee_subject(ct.id, subject_id)
    if record is None:
        raise NotFoundError("Trainee not found in this subject")

    record = replace(record, grade=grade, feedback=feedback)
    await repo.save_trainee_subject(record)
    await repo.after_commit(invalidate_course, subject.course_id)
    logger.info("Trainee=%s graded %d on subject=%s", trainee_id, grade, subject_id)
    return record

