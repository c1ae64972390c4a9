"""Course progression: enrollment, task and subject completion, and the
course lifecycle.

Status moves upward through Course -> Subject -> TraineeSubject ->
TraineeTask.  A child's change can trigger a recount that flips its
parent:

  complete_subject:  trainee's tasks COMPLETED, trainee's subject FINISHED,
                     then "last trainee closes the subject" and "last
                     trainee's last subject closes the course".
  finish_course:     administrative override that force-finishes every
                     descendant record.

Every operation runs inside repo.transaction(course_id), so a cascade is
all-or-nothing and two cascades on one course never interleave.  The
parent flips themselves are conditional updates in the repo that report
whether this call flipped, so each flip happens exactly once.

These functions take plain identifiers.  Role and course-membership
checks of the caller happen in app.api before they are called.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, replace
from datetime import datetime
from uuid import UUID

from app.core.errors import (
    AuthorizationError,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from app.core.metrics import PROGRESSION_TRANSITIONS
from app.models.course import (
    FINISHED,
    IN_PROGRESS,
    NOT_STARTED,
    Course,
    Subject,
    utcnow,
)
from app.models.enrollment import (
    COMPLETED,
    CourseTrainee,
    TraineeSubject,
    TraineeTask,
)
from app.models.user import TRAINEE
from app.repos.training_repo import TrainingRepo
from app.repos.user_repo import UserRepo
from app.services.progress_report import invalidate_course

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class EnrollmentResult:
    course: Course
    enrolled: list[UUID]  # newly enrolled, in request order
    already_enrolled: list[UUID]


@dataclass(frozen=True, slots=True)
class TaskProgress:
    task_id: UUID
    status: str
    completed_tasks: int
    total_tasks: int


@dataclass(frozen=True, slots=True)
class SubjectCompletion:
    trainee_subject: TraineeSubject
    subject_finished: bool  # this call closed the subject for everyone
    trainee_finished_course: bool
    course_finished: bool  # this call closed the course


def _count(entity: str, status: str, n: int = 1) -> None:
    if n:
        PROGRESSION_TRANSITIONS.labels(entity=entity, status=status).inc(n)


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


async def _require_enrollment(
    repo: TrainingRepo, course_id: UUID, trainee_id: UUID
) -> CourseTrainee:
    ct = await repo.get_course_trainee(course_id, trainee_id)
    if ct is None:
        logger.warning("Trainee=%s not enrolled in course=%s", trainee_id, course_id)
        raise AuthorizationError("You are not enrolled in this course")
    return ct


async def _complete_course_tasks(
    repo: TrainingRepo, course_id: UUID, now: datetime
) -> int:
    trainee_ids = [ct.trainee_id for ct in await repo.list_course_trainees(course_id)]
    task_ids = [
        t.id
        for s in await repo.list_subjects(course_id)
        for t in await repo.list_tasks(s.id)
    ]
    return await repo.complete_trainee_tasks(trainee_ids, task_ids, now)


async def _open_subject(repo: TrainingRepo, subject: Subject, now: datetime) -> Subject:
    opened = replace(subject, status=IN_PROGRESS, start_date=now)
    await repo.save_subject(opened)
    started = await repo.start_trainee_subjects(subject.id, now)
    _count("subject", IN_PROGRESS)
    _count("trainee_subject", IN_PROGRESS, started)
    return opened


# ---------------------------------------------------------------------------
# Enrollment
# ---------------------------------------------------------------------------


async def enroll_trainees(
    repo: TrainingRepo,
    users: UserRepo,
    course_id: UUID,
    trainee_ids: Iterable[UUID],
    *,
    activate: bool = False,
) -> EnrollmentResult:
    """Enroll each trainee not already in the course.

    Every new enrollment gets one TraineeSubject per existing subject,
    mirroring the subject's status (or IN_PROGRESS when activate is set).
    The whole batch is validated before the first write: one unknown id
    or non-trainee rejects all of it.
    """
    ids = list(dict.fromkeys(trainee_ids))
    if not ids:
        raise ValidationError(
            "At least one trainee is required",
            errors=[{"field": "trainee_ids", "message": "must not be empty"}],
        )

    await _require_course(repo, course_id)

    found = await users.get_many(ids)
    invalid = [
        i
        for i in ids
        if i not in found or not found[i].is_active or not found[i].has_role(TRAINEE)
    ]
    if invalid:
        logger.warning(
            "Enrollment rejected for course=%s invalid trainees=%s", course_id, invalid
        )
        raise ValidationError(
            "Some trainees not found or do not have trainee role",
            errors=[
                {"field": "trainee_ids", "message": f"{i} is not an active trainee"}
                for i in invalid
            ],
        )

    enrolled: list[UUID] = []
    already: list[UUID] = []
    async with repo.transaction(course_id):
        course = await _require_course(repo, course_id)
        subjects = await repo.list_subjects(course_id)
        now = utcnow()

        for trainee_id in ids:
            if await repo.get_course_trainee(course_id, trainee_id) is not None:
                already.append(trainee_id)
                continue

            ct = CourseTrainee.new(course_id=course_id, trainee_id=trainee_id)
            await repo.add_course_trainee(ct)

            records = []
            for subject in subjects:
                status = IN_PROGRESS if activate else subject.status
                records.append(
                    replace(
                        TraineeSubject.new(
                            course_trainee_id=ct.id,
                            subject_id=subject.id,
                            status=status,
                        ),
                        started_at=now if status != NOT_STARTED else None,
                        completed_at=now if status == FINISHED else None,
                    )
                )
            await repo.add_trainee_subjects(records)
            enrolled.append(trainee_id)

    await repo.after_commit(invalidate_course, course_id)
    logger.info(
        "Enrolled %d trainees in course=%s (%d already enrolled)",
        len(enrolled),
        course_id,
        len(already),
    )
    return EnrollmentResult(course=course, enrolled=enrolled, already_enrolled=already)


async def remove_trainee(
    repo: TrainingRepo, course_id: UUID, trainee_id: UUID
) -> CourseTrainee:
    """Drop an enrollment together with the trainee's progress records.

    No recount follows: removing the last unfinished trainee does not
    close a subject or the course.
    """
    async with repo.transaction(course_id):
        await _require_course(repo, course_id)
        ct = await repo.get_course_trainee(course_id, trainee_id)
        if ct is None:
            raise NotFoundError("Trainee not enrolled in this course")
        await repo.remove_course_trainee(ct)

    await repo.after_commit(invalidate_course, course_id)
    logger.info("Removed trainee=%s from course=%s", trainee_id, course_id)
    return ct


# ---------------------------------------------------------------------------
# Task completion
# ---------------------------------------------------------------------------


async def _touch_trainee_subject(
    repo: TrainingRepo, ct: CourseTrainee, subject_id: UUID, now: datetime
) -> None:
    """Nudge the trainee's subject record to IN_PROGRESS unless FINISHED."""
    ts = await repo.get_trainee_subject(ct.id, subject_id)
    if ts is None:
        ts = replace(
            TraineeSubject.new(
                course_trainee_id=ct.id, subject_id=subject_id, status=IN_PROGRESS
            ),
            started_at=now,
        )
        await repo.add_trainee_subjects([ts])
        _count("trainee_subject", IN_PROGRESS)
    elif ts.status == NOT_STARTED:
        await repo.save_trainee_subject(
            replace(ts, status=IN_PROGRESS, started_at=ts.started_at or now)
        )
        _count("trainee_subject", IN_PROGRESS)


async def _toggle_task(
    repo: TrainingRepo, trainee_id: UUID, task_id: UUID, *, complete: bool
) -> TaskProgress:
    task = await repo.get_task(task_id)
    if task is None:
        raise NotFoundError("Task not found")
    subject = await _require_subject(repo, task.subject_id)
    course_id = subject.course_id

    async with repo.transaction(course_id):
        ct = await _require_enrollment(repo, course_id, trainee_id)
        subject = await _require_subject(repo, task.subject_id)
        if subject.status != IN_PROGRESS:
            logger.warning(
                "Task toggle rejected: subject=%s is %s", subject.id, subject.status
            )
            raise StateConflictError("Subject is not in progress")

        now = utcnow()
        if complete:
            record = TraineeTask.new(
                trainee_id=trainee_id,
                task_id=task_id,
                status=COMPLETED,
                completed_at=now,
            )
        else:
            existing = await repo.get_trainee_task(trainee_id, task_id)
            if existing is None:
                raise NotFoundError("Task not started")
            record = replace(existing, status=IN_PROGRESS, completed_at=None)
        await repo.save_trainee_task(record)
        _count("trainee_task", record.status)

        await _touch_trainee_subject(repo, ct, subject.id, now)

        task_ids = [t.id for t in await repo.list_tasks(subject.id)]
        done = sum(
            1
            for tt in await repo.list_trainee_tasks(
                task_ids=task_ids, trainee_id=trainee_id
            )
            if tt.status == COMPLETED
        )

    await repo.after_commit(invalidate_course, course_id)
    logger.info(
        "Task=%s %s by trainee=%s (%d/%d)",
        task_id,
        "completed" if complete else "uncompleted",
        trainee_id,
        done,
        len(task_ids),
    )
    return TaskProgress(
        task_id=task_id,
        status=record.status,
        completed_tasks=done,
        total_tasks=len(task_ids),
    )


async def complete_task(
    repo: TrainingRepo, trainee_id: UUID, task_id: UUID
) -> TaskProgress:
    """Mark a task COMPLETED for the trainee (upsert)."""
    return await _toggle_task(repo, trainee_id, task_id, complete=True)


async def uncomplete_task(
    repo: TrainingRepo, trainee_id: UUID, task_id: UUID
) -> TaskProgress:
    """Revert a task to IN_PROGRESS; a task never started is a NotFoundError."""
    return await _toggle_task(repo, trainee_id, task_id, complete=False)


# ---------------------------------------------------------------------------
# Subject completion (trainee)
# ---------------------------------------------------------------------------


async def complete_subject(
    repo: TrainingRepo, trainee_id: UUID, subject_id: UUID
) -> SubjectCompletion:
    """The trainee finishes a subject, then the recount cascade runs.

    1. all of the trainee's tasks in the subject become COMPLETED
    2. the trainee's subject record becomes FINISHED
    3. the subject closes when no trainee record for it is unfinished
    4. if the trainee has no unfinished subject left in the course,
    5. the course closes when no trainee record in it is unfinished
    """
    subject = await _require_subject(repo, subject_id)
    course_id = subject.course_id

    async with repo.transaction(course_id):
        ct = await _require_enrollment(repo, course_id, trainee_id)
        subject = await _require_subject(repo, subject_id)
        if subject.status != IN_PROGRESS:
            logger.warning(
                "Subject completion rejected: subject=%s is %s",
                subject_id,
                subject.status,
            )
            raise StateConflictError("Subject is not in progress")

        now = utcnow()
        task_ids = [t.id for t in await repo.list_tasks(subject_id)]
        _count(
            "trainee_task",
            COMPLETED,
            await repo.complete_trainee_tasks([trainee_id], task_ids, now),
        )

        ts = await repo.get_trainee_subject(ct.id, subject_id)
        if ts is None:
            ts = replace(
                TraineeSubject.new(
                    course_trainee_id=ct.id, subject_id=subject_id, status=FINISHED
                ),
                started_at=now,
                completed_at=now,
            )
            await repo.add_trainee_subjects([ts])
            _count("trainee_subject", FINISHED)
        elif ts.status != FINISHED:
            ts = replace(
                ts,
                status=FINISHED,
                started_at=ts.started_at or now,
                completed_at=now,
            )
            await repo.save_trainee_subject(ts)
            _count("trainee_subject", FINISHED)

        subject_finished = await repo.finish_subject_if_complete(subject_id, now)
        if subject_finished:
            _count("subject", FINISHED)
            logger.info("Subject=%s finished by its last trainee", subject_id)

        trainee_done = (
            await repo.count_unfinished_trainee_subjects(course_trainee_id=ct.id) == 0
        )
        course_finished = False
        if trainee_done:
            course_finished = await repo.finish_course_if_complete(course_id, now)
        if course_finished:
            # Keep "FINISHED course => every subject FINISHED and every
            # trainee task COMPLETED" even for subjects no trainee touched.
            _count("subject", FINISHED, await repo.finish_subjects(course_id, now))
            _count(
                "trainee_task",
                COMPLETED,
                await _complete_course_tasks(repo, course_id, now),
            )
            _count("course", FINISHED)
            logger.info("Course=%s finished by its last trainee", course_id)

    await repo.after_commit(invalidate_course, course_id)
    logger.info("Subject=%s completed by trainee=%s", subject_id, trainee_id)
    return SubjectCompletion(
        trainee_subject=ts,
        subject_finished=subject_finished,
        trainee_finished_course=trainee_done,
        course_finished=course_finished,
    )


# ---------------------------------------------------------------------------
# Course and subject lifecycle (trainer / supervisor)
# ---------------------------------------------------------------------------


async def start_course(repo: TrainingRepo, course_id: UUID) -> Course:
    """NOT_STARTED -> IN_PROGRESS; also opens the first subject by order."""
    async with repo.transaction(course_id):
        course = await _require_course(repo, course_id)
        if course.status != NOT_STARTED:
            raise StateConflictError("Course has already started")

        now = utcnow()
        course = replace(course, status=IN_PROGRESS, start_date=now)
        await repo.save_course(course)
        _count("course", IN_PROGRESS)

        subjects = await repo.list_subjects(course_id)
        if subjects and subjects[0].status == NOT_STARTED:
            await _open_subject(repo, subjects[0], now)

    await repo.after_commit(invalidate_course, course_id)
    logger.info("Course=%s started", course_id)
    return course


async def finish_course(repo: TrainingRepo, course_id: UUID) -> Course:
    """IN_PROGRESS -> FINISHED, force-finishing every descendant record."""
    async with repo.transaction(course_id):
        course = await _require_course(repo, course_id)
        if course.status != IN_PROGRESS:
            raise StateConflictError("Course is not in progress")

        now = utcnow()
        course = replace(course, status=FINISHED, end_date=now)
        await repo.save_course(course)
        _count("course", FINISHED)
        _count("subject", FINISHED, await repo.finish_subjects(course_id, now))
        _count(
            "trainee_subject",
            FINISHED,
            await repo.finish_trainee_subjects(now=now, course_id=course_id),
        )
        _count(
            "trainee_task", COMPLETED, await _complete_course_tasks(repo, course_id, now)
        )

    await repo.after_commit(invalidate_course, course_id)
    logger.info("Course=%s finished", course_id)
    return course


async def start_subject(repo: TrainingRepo, subject_id: UUID) -> Subject:
    subject = await _require_subject(repo, subject_id)
    async with repo.transaction(subject.course_id):
        subject = await _require_subject(repo, subject_id)
        course = await _require_course(repo, subject.course_id)
        if subject.status != NOT_STARTED:
            raise StateConflictError("Subject has already started")
        if course.status != IN_PROGRESS:
            raise StateConflictError("Course must be in progress to start subject")
        subject = await _open_subject(repo, subject, utcnow())

    await repo.after_commit(invalidate_course, subject.course_id)
    logger.info("Subject=%s started", subject_id)
    return subject


async def finish_subject(repo: TrainingRepo, subject_id: UUID) -> Subject:
    """Administrative finish: closes the subject for every trainee.

    Does not close the course even if this was its last open subject.
    """
    subject = await _require_subject(repo, subject_id)
    async with repo.transaction(subject.course_id):
        subject = await _require_subject(repo, subject_id)
        if subject.status != IN_PROGRESS:
            raise StateConflictError("Subject is not in progress")

        now = utcnow()
        subject = replace(subject, status=FINISHED, end_date=now)
        await repo.save_subject(subject)
        _count("subject", FINISHED)
        _count(
            "trainee_subject",
            FINISHED,
            await repo.finish_trainee_subjects(now=now, subject_id=subject_id),
        )
        trainee_ids = [
            ct.trainee_id for ct in await repo.list_course_trainees(subject.course_id)
        ]
        task_ids = [t.id for t in await repo.list_tasks(subject_id)]
        _count(
            "trainee_task",
            COMPLETED,
            await repo.complete_trainee_tasks(trainee_ids, task_ids, now),
        )

    await repo.after_commit(invalidate_course, subject.course_id)
    logger.info("Subject=%s finished", subject_id)
    return subject


# ---------------------------------------------------------------------------
# Deletion guards
# ---------------------------------------------------------------------------


async def delete_course(repo: TrainingRepo, course_id: UUID) -> None:
    async with repo.transaction(course_id):
        course = await _require_course(repo, course_id)
        if course.status != NOT_STARTED:
            raise StateConflictError("Cannot delete a course that has started")
        await repo.delete_course(course_id)
    await repo.after_commit(invalidate_course, course_id)
    logger.info("Course=%s deleted", course_id)


async def delete_subject(repo: TrainingRepo, subject_id: UUID) -> None:
    subject = await _require_subject(repo, subject_id)
    async with repo.transaction(subject.course_id):
        subject = await _require_subject(repo, subject_id)
        if subject.status != NOT_STARTED:
            raise StateConflictError("Cannot delete a subject that has started")
        await repo.delete_subject(subject_id)
    await repo.after_commit(invalidate_course, subject.course_id)
    logger.info("Subject=%s deleted", subject_id)


async def delete_task(repo: TrainingRepo, task_id: UUID) -> None:
    task = await repo.get_task(task_id)
    if task is None:
        raise NotFoundError("Task not found")
    subject = await _require_subject(repo, task.subject_id)
    async with repo.transaction(subject.course_id):
        subject = await _require_subject(repo, task.subject_id)
        if subject.status != NOT_STARTED:
            raise StateConflictError("Cannot delete a task from a subject that has started")
        await repo.delete_task(task_id)
    await repo.after_commit(invalidate_course, subject.course_id)
    logger.info("Task=%s deleted", task_id)
