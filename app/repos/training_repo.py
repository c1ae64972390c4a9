"""Course content, enrollment and per-trainee progress storage.

TrainingRepo is the only storage surface the progression services see.
Two implementations satisfy it:

  InMemoryTrainingRepo: dev/test backend, module-level singleton below.
  PgTrainingRepo (pg_training_repo.py): one instance per request session.

Aggregate-triggered transitions (finish_subject_if_complete,
finish_course_if_complete) are single conditional updates that report
whether this call performed the flip, so a parent flips exactly once even
when two trainees finish at the same moment.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Any, Protocol
from uuid import UUID

from app.models.course import FINISHED, IN_PROGRESS, NOT_STARTED, Course, Subject, Task
from app.models.enrollment import (
    COMPLETED,
    CourseTrainee,
    TraineeSubject,
    TraineeTask,
)

_EPOCH = datetime.min.replace(tzinfo=UTC)


class TrainingRepo(Protocol):
    def transaction(self, course_id: UUID) -> AbstractAsyncContextManager[None]: ...
    async def after_commit(
        self, fn: Callable[..., Awaitable[None]], *args: Any
    ) -> None: ...

    # --- courses ---
    async def get_course(self, course_id: UUID) -> Course | None: ...
    async def list_courses(
        self,
        *,
        status: str | None = None,
        search: str | None = None,
        trainer_id: UUID | None = None,
        trainee_id: UUID | None = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[Course], int]: ...
    async def add_course(self, course: Course) -> None: ...
    async def save_course(self, course: Course) -> None: ...
    async def delete_course(self, course_id: UUID) -> None: ...

    # --- trainers ---
    async def list_trainer_ids(self, course_id: UUID) -> list[UUID]: ...
    async def add_trainers(self, course_id: UUID, trainer_ids: Iterable[UUID]) -> None: ...
    async def remove_trainer(self, course_id: UUID, trainer_id: UUID) -> bool: ...

    # --- subjects and tasks ---
    async def get_subject(self, subject_id: UUID) -> Subject | None: ...
    async def list_subjects(self, course_id: UUID) -> list[Subject]: ...
    async def add_subject(self, subject: Subject) -> None: ...
    async def save_subject(self, subject: Subject) -> None: ...
    async def delete_subject(self, subject_id: UUID) -> None: ...
    async def get_task(self, task_id: UUID) -> Task | None: ...
    async def list_tasks(self, subject_id: UUID) -> list[Task]: ...
    async def add_task(self, task: Task) -> None: ...
    async def delete_task(self, task_id: UUID) -> None: ...

    # --- enrollment ---
    async def get_course_trainee(
        self, course_id: UUID, trainee_id: UUID
    ) -> CourseTrainee | None: ...
    async def list_course_trainees(self, course_id: UUID) -> list[CourseTrainee]: ...
    async def list_enrollments(self, trainee_id: UUID) -> list[CourseTrainee]: ...
    async def add_course_trainee(self, course_trainee: CourseTrainee) -> None: ...
    async def save_course_trainee(self, course_trainee: CourseTrainee) -> None: ...
    async def remove_course_trainee(self, course_trainee: CourseTrainee) -> None: ...

    # --- per-trainee records ---
    async def get_trainee_subject(
        self, course_trainee_id: UUID, subject_id: UUID
    ) -> TraineeSubject | None: ...
    async def list_trainee_subjects(
        self,
        *,
        course_trainee_id: UUID | None = None,
        subject_id: UUID | None = None,
    ) -> list[TraineeSubject]: ...
    async def add_trainee_subjects(self, records: Iterable[TraineeSubject]) -> None: ...
    async def save_trainee_subject(self, record: TraineeSubject) -> None: ...
    async def get_trainee_task(
        self, trainee_id: UUID, task_id: UUID
    ) -> TraineeTask | None: ...
    async def list_trainee_tasks(
        self, *, task_ids: Iterable[UUID], trainee_id: UUID | None = None
    ) -> list[TraineeTask]: ...
    async def save_trainee_task(self, record: TraineeTask) -> None: ...

    # --- bulk and conditional transitions ---
    async def start_trainee_subjects(self, subject_id: UUID, now: datetime) -> int: ...
    async def finish_trainee_subjects(
        self,
        *,
        now: datetime,
        subject_id: UUID | None = None,
        course_id: UUID | None = None,
        course_trainee_id: UUID | None = None,
    ) -> int: ...
    async def complete_trainee_tasks(
        self, trainee_ids: Iterable[UUID], task_ids: Iterable[UUID], now: datetime
    ) -> int: ...
    async def count_unfinished_trainee_subjects(
        self,
        *,
        subject_id: UUID | None = None,
        course_id: UUID | None = None,
        course_trainee_id: UUID | None = None,
    ) -> int: ...
    async def finish_subjects(self, course_id: UUID, now: datetime) -> int: ...
    async def finish_subject_if_complete(
        self, subject_id: UUID, now: datetime
    ) -> bool: ...
    async def finish_course_if_complete(
        self, course_id: UUID, now: datetime
    ) -> bool: ...


@dataclass
class _CourseLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class InMemoryTrainingRepo:
    """Dict-backed TrainingRepo.

    The per-course lock serializes cascades on one course, including ones
    that await something else (cache, notifier) between repo calls.
    transaction() snapshots only that course's rows and puts them back if
    the block raises, so writes other courses commit meanwhile survive.
    A lock lives only while some transaction holds or waits on it.
    """

    def __init__(self) -> None:
        self.clear()

    def clear(self) -> None:
        self._courses: dict[UUID, Course] = {}
        self._trainers: dict[UUID, set[UUID]] = {}
        self._subjects: dict[UUID, Subject] = {}
        self._tasks: dict[UUID, Task] = {}
        self._course_trainees: dict[UUID, CourseTrainee] = {}
        self._trainee_subjects: dict[UUID, TraineeSubject] = {}
        self._trainee_tasks: dict[tuple[UUID, UUID], TraineeTask] = {}
        self._locks: dict[UUID, _CourseLock] = {}

    # --- transaction ---

    def _course_rows(self, course_id: UUID) -> dict[str, dict[Any, Any]]:
        """Every stored row that belongs to one course, keyed like the stores."""
        subjects = {
            k: s for k, s in self._subjects.items() if s.course_id == course_id
        }
        tasks = {k: t for k, t in self._tasks.items() if t.subject_id in subjects}
        course_trainees = {
            k: ct for k, ct in self._course_trainees.items() if ct.course_id == course_id
        }
        rows: dict[str, dict[Any, Any]] = {
            "_courses": {},
            "_trainers": {},
            "_subjects": subjects,
            "_tasks": tasks,
            "_course_trainees": course_trainees,
            "_trainee_subjects": {
                k: ts
                for k, ts in self._trainee_subjects.items()
                if ts.course_trainee_id in course_trainees or ts.subject_id in subjects
            },
            "_trainee_tasks": {
                k: tt for k, tt in self._trainee_tasks.items() if tt.task_id in tasks
            },
        }
        if course_id in self._courses:
            rows["_courses"][course_id] = self._courses[course_id]
        if course_id in self._trainers:
            rows["_trainers"][course_id] = set(self._trainers[course_id])
        return rows

    def _restore(self, course_id: UUID, snapshot: dict[str, dict[Any, Any]]) -> None:
        for name, rows in self._course_rows(course_id).items():
            store = getattr(self, name)
            for key in rows:
                store.pop(key, None)
        for name, rows in snapshot.items():
            getattr(self, name).update(rows)

    @asynccontextmanager
    async def transaction(self, course_id: UUID) -> AsyncIterator[None]:
        entry = self._locks.get(course_id)
        if entry is None:
            entry = self._locks[course_id] = _CourseLock()
        entry.users += 1
        try:
            async with entry.lock:
                snapshot = self._course_rows(course_id)
                try:
                    yield
                except BaseException:
                    self._restore(course_id, snapshot)
                    raise
        finally:
            entry.users -= 1
            if entry.users == 0 and self._locks.get(course_id) is entry:
                del self._locks[course_id]

    async def after_commit(
        self, fn: Callable[..., Awaitable[None]], *args: Any
    ) -> None:
        # No outer transaction to wait for; each write is already visible.
        await fn(*args)

    # --- courses ---

    async def get_course(self, course_id: UUID) -> Course | None:
        return self._courses.get(course_id)

    async def list_courses(
        self,
        *,
        status: str | None = None,
        search: str | None = None,
        trainer_id: UUID | None = None,
        trainee_id: UUID | None = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[Course], int]:
        courses = list(self._courses.values())
        if status is not None:
            courses = [c for c in courses if c.status == status]
        if search:
            needle = search.lower()
            courses = [
                c
                for c in courses
                if needle in c.title.lower() or needle in c.description.lower()
            ]
        if trainer_id is not None:
            courses = [c for c in courses if trainer_id in self._trainers.get(c.id, ())]
        if trainee_id is not None:
            enrolled = {
                ct.course_id
                for ct in self._course_trainees.values()
                if ct.trainee_id == trainee_id
            }
            courses = [c for c in courses if c.id in enrolled]
        courses.sort(key=lambda c: c.created_at or _EPOCH, reverse=True)
        return courses[offset : offset + limit], len(courses)

    async def add_course(self, course: Course) -> None:
        self._courses[course.id] = course
        self._trainers.setdefault(course.id, set())

    async def save_course(self, course: Course) -> None:
        self._courses[course.id] = course

    async def delete_course(self, course_id: UUID) -> None:
        for subject in await self.list_subjects(course_id):
            await self.delete_subject(subject.id)
        for ct in await self.list_course_trainees(course_id):
            await self.remove_course_trainee(ct)
        self._trainers.pop(course_id, None)
        self._courses.pop(course_id, None)

    # --- trainers ---

    async def list_trainer_ids(self, course_id: UUID) -> list[UUID]:
        return sorted(self._trainers.get(course_id, ()), key=str)

    async def add_trainers(self, course_id: UUID, trainer_ids: Iterable[UUID]) -> None:
        self._trainers.setdefault(course_id, set()).update(trainer_ids)

    async def remove_trainer(self, course_id: UUID, trainer_id: UUID) -> bool:
        trainers = self._trainers.get(course_id, set())
        if trainer_id not in trainers:
            return False
        trainers.discard(trainer_id)
        return True

    # --- subjects and tasks ---

    async def get_subject(self, subject_id: UUID) -> Subject | None:
        return self._subjects.get(subject_id)

    async def list_subjects(self, course_id: UUID) -> list[Subject]:
        subjects = [s for s in self._subjects.values() if s.course_id == course_id]
        return sorted(subjects, key=lambda s: s.position)

    async def add_subject(self, subject: Subject) -> None:
        self._subjects[subject.id] = subject

    async def save_subject(self, subject: Subject) -> None:
        self._subjects[subject.id] = subject

    async def delete_subject(self, subject_id: UUID) -> None:
        for task in await self.list_tasks(subject_id):
            await self.delete_task(task.id)
        self._trainee_subjects = {
            k: ts
            for k, ts in self._trainee_subjects.items()
            if ts.subject_id != subject_id
        }
        self._subjects.pop(subject_id, None)

    async def get_task(self, task_id: UUID) -> Task | None:
        return self._tasks.get(task_id)

    async def list_tasks(self, subject_id: UUID) -> list[Task]:
        tasks = [t for t in self._tasks.values() if t.subject_id == subject_id]
        return sorted(tasks, key=lambda t: t.position)

    async def add_task(self, task: Task) -> None:
        self._tasks[task.id] = task

    async def delete_task(self, task_id: UUID) -> None:
        self._trainee_tasks = {
            k: tt for k, tt in self._trainee_tasks.items() if tt.task_id != task_id
        }
        self._tasks.pop(task_id, None)

    # --- enrollment ---

    async def get_course_trainee(
        self, course_id: UUID, trainee_id: UUID
    ) -> CourseTrainee | None:
        for ct in self._course_trainees.values():
            if ct.course_id == course_id and ct.trainee_id == trainee_id:
                return ct
        return None

    async def list_course_trainees(self, course_id: UUID) -> list[CourseTrainee]:
        trainees = [
            ct for ct in self._course_trainees.values() if ct.course_id == course_id
        ]
        return sorted(trainees, key=lambda ct: ct.enrolled_at or _EPOCH)

    async def list_enrollments(self, trainee_id: UUID) -> list[CourseTrainee]:
        return [
            ct for ct in self._course_trainees.values() if ct.trainee_id == trainee_id
        ]

    async def add_course_trainee(self, course_trainee: CourseTrainee) -> None:
        self._course_trainees[course_trainee.id] = course_trainee

    async def save_course_trainee(self, course_trainee: CourseTrainee) -> None:
        self._course_trainees[course_trainee.id] = course_trainee

    async def remove_course_trainee(self, course_trainee: CourseTrainee) -> None:
        course_task_ids = {
            t.id
            for t in self._tasks.values()
            if self._subjects[t.subject_id].course_id == course_trainee.course_id
        }
        self._trainee_tasks = {
            k: tt
            for k, tt in self._trainee_tasks.items()
            if not (
                tt.trainee_id == course_trainee.trainee_id
                and tt.task_id in course_task_ids
            )
        }
        self._trainee_subjects = {
            k: ts
            for k, ts in self._trainee_subjects.items()
            if ts.course_trainee_id != course_trainee.id
        }
        self._course_trainees.pop(course_trainee.id, None)

    # --- per-trainee records ---

    async def get_trainee_subject(
        self, course_trainee_id: UUID, subject_id: UUID
    ) -> TraineeSubject | None:
        for ts in self._trainee_subjects.values():
            if ts.course_trainee_id == course_trainee_id and ts.subject_id == subject_id:
                return ts
        return None

    async def list_trainee_subjects(
        self,
        *,
        course_trainee_id: UUID | None = None,
        subject_id: UUID | None = None,
    ) -> list[TraineeSubject]:
        return [
            ts
            for ts in self._trainee_subjects.values()
            if (course_trainee_id is None or ts.course_trainee_id == course_trainee_id)
            and (subject_id is None or ts.subject_id == subject_id)
        ]

    async def add_trainee_subjects(self, records: Iterable[TraineeSubject]) -> None:
        for ts in records:
            if await self.get_trainee_subject(ts.course_trainee_id, ts.subject_id):
                continue
            self._trainee_subjects[ts.id] = ts

    async def save_trainee_subject(self, record: TraineeSubject) -> None:
        self._trainee_subjects[record.id] = record

    async def get_trainee_task(
        self, trainee_id: UUID, task_id: UUID
    ) -> TraineeTask | None:
        return self._trainee_tasks.get((trainee_id, task_id))

    async def list_trainee_tasks(
        self, *, task_ids: Iterable[UUID], trainee_id: UUID | None = None
    ) -> list[TraineeTask]:
        wanted = set(task_ids)
        return [
            tt
            for tt in self._trainee_tasks.values()
            if tt.task_id in wanted and (trainee_id is None or tt.trainee_id == trainee_id)
        ]

    async def save_trainee_task(self, record: TraineeTask) -> None:
        key = (record.trainee_id, record.task_id)
        existing = self._trainee_tasks.get(key)
        if existing is not None:
            record = replace(record, id=existing.id)
        self._trainee_tasks[key] = record

    # --- bulk and conditional transitions ---

    def _course_of(self, ts: TraineeSubject) -> UUID:
        return self._course_trainees[ts.course_trainee_id].course_id

    def _matching_trainee_subjects(
        self,
        subject_id: UUID | None,
        course_id: UUID | None,
        course_trainee_id: UUID | None,
    ) -> list[TraineeSubject]:
        return [
            ts
            for ts in self._trainee_subjects.values()
            if (subject_id is None or ts.subject_id == subject_id)
            and (course_trainee_id is None or ts.course_trainee_id == course_trainee_id)
            and (course_id is None or self._course_of(ts) == course_id)
        ]

    async def start_trainee_subjects(self, subject_id: UUID, now: datetime) -> int:
        started = 0
        for ts in self._matching_trainee_subjects(subject_id, None, None):
            if ts.status == NOT_STARTED:
                self._trainee_subjects[ts.id] = replace(
                    ts, status=IN_PROGRESS, started_at=now
                )
                started += 1
        return started

    async def finish_trainee_subjects(
        self,
        *,
        now: datetime,
        subject_id: UUID | None = None,
        course_id: UUID | None = None,
        course_trainee_id: UUID | None = None,
    ) -> int:
        finished = 0
        for ts in self._matching_trainee_subjects(
            subject_id, course_id, course_trainee_id
        ):
            if ts.status != FINISHED:
                self._trainee_subjects[ts.id] = replace(
                    ts, status=FINISHED, completed_at=now
                )
                finished += 1
        return finished

    async def complete_trainee_tasks(
        self, trainee_ids: Iterable[UUID], task_ids: Iterable[UUID], now: datetime
    ) -> int:
        task_ids = list(task_ids)
        completed = 0
        for trainee_id in trainee_ids:
            for task_id in task_ids:
                existing = self._trainee_tasks.get((trainee_id, task_id))
                if existing is not None and existing.status == COMPLETED:
                    continue
                if existing is None:
                    record = TraineeTask.new(
                        trainee_id=trainee_id,
                        task_id=task_id,
                        status=COMPLETED,
                        completed_at=now,
                    )
                else:
                    record = replace(existing, status=COMPLETED, completed_at=now)
                self._trainee_tasks[(trainee_id, task_id)] = record
                completed += 1
        return completed

    async def count_unfinished_trainee_subjects(
        self,
        *,
        subject_id: UUID | None = None,
        course_id: UUID | None = None,
        course_trainee_id: UUID | None = None,
    ) -> int:
        return sum(
            1
            for ts in self._matching_trainee_subjects(
                subject_id, course_id, course_trainee_id
            )
            if ts.status != FINISHED
        )

    async def finish_subjects(self, course_id: UUID, now: datetime) -> int:
        finished = 0
        for subject in await self.list_subjects(course_id):
            if subject.status != FINISHED:
                self._subjects[subject.id] = replace(
                    subject, status=FINISHED, end_date=now
                )
                finished += 1
        return finished

    async def finish_subject_if_complete(self, subject_id: UUID, now: datetime) -> bool:
        subject = self._subjects.get(subject_id)
        if subject is None or subject.status == FINISHED:
            return False
        if await self.count_unfinished_trainee_subjects(subject_id=subject_id):
            return False
        self._subjects[subject_id] = replace(subject, status=FINISHED, end_date=now)
        return True

    async def finish_course_if_complete(self, course_id: UUID, now: datetime) -> bool:
        course = self._courses.get(course_id)
        if course is None or course.status == FINISHED:
            return False
        if await self.count_unfinished_trainee_subjects(course_id=course_id):
            return False
        self._courses[course_id] = replace(course, status=FINISHED, end_date=now)
        return True


# Module-level singleton used whenever DATABASE_URL is unset.
training_repo = InMemoryTrainingRepo()
