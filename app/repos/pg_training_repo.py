"""PostgreSQL implementation of TrainingRepo.

Bulk transitions are single UPDATE statements.  Reads use
populate_existing so rows already in the session's identity map pick up
changes made by those statements.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable, Iterable
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import delete, exists, func, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.engine import AFTER_COMMIT
from app.db.tables import (
    CourseRow,
    CourseTraineeRow,
    CourseTrainerRow,
    SubjectRow,
    TaskRow,
    TraineeSubjectRow,
    TraineeTaskRow,
)
from app.models.course import FINISHED, IN_PROGRESS, NOT_STARTED, Course, Subject, Task
from app.models.enrollment import (
    COMPLETED,
    CourseTrainee,
    TraineeSubject,
    TraineeTask,
)

_NO_SYNC = {"synchronize_session": False}


class PgTrainingRepo:
    """Satisfies the TrainingRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def _all(self, stmt) -> list:
        result = await self._session.execute(
            stmt.execution_options(populate_existing=True)
        )
        return list(result.scalars())

    async def _one(self, stmt):
        result = await self._session.execute(
            stmt.execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    @asynccontextmanager
    async def transaction(self, course_id: UUID) -> AsyncIterator[None]:
        # Savepoint plus a row lock on the course: cascades on one course
        # are serialized across processes and roll back as a unit.
        async with self._session.begin_nested():
            await self._session.execute(
                select(CourseRow.id).where(CourseRow.id == course_id).with_for_update()
            )
            yield

    async def after_commit(
        self, fn: Callable[..., Awaitable[None]], *args: Any
    ) -> None:
        # Run by session_scope once the request transaction has committed.
        self._session.info.setdefault(AFTER_COMMIT, []).append((fn, args))

    # --- courses ---

    async def get_course(self, course_id: UUID) -> Course | None:
        row = await self._one(select(CourseRow).where(CourseRow.id == course_id))
        return None if row is None else _row_to_course(row)

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
        stmt = select(CourseRow)
        if status is not None:
            stmt = stmt.where(CourseRow.status == status)
        if search:
            pattern = f"%{search}%"
            stmt = stmt.where(
                or_(CourseRow.title.ilike(pattern), CourseRow.description.ilike(pattern))
            )
        if trainer_id is not None:
            stmt = stmt.where(
                exists().where(
                    CourseTrainerRow.course_id == CourseRow.id,
                    CourseTrainerRow.trainer_id == trainer_id,
                )
            )
        if trainee_id is not None:
            stmt = stmt.where(
                exists().where(
                    CourseTraineeRow.course_id == CourseRow.id,
                    CourseTraineeRow.trainee_id == trainee_id,
                )
            )
        total = await self._session.scalar(
            select(func.count()).select_from(stmt.subquery())
        )
        rows = await self._all(
            stmt.order_by(CourseRow.created_at.desc()).offset(offset).limit(limit)
        )
        return [_row_to_course(r) for r in rows], int(total or 0)

    async def add_course(self, course: Course) -> None:
        self._session.add(
            CourseRow(
                id=course.id,
                title=course.title,
                description=course.description,
                status=course.status,
                start_date=course.start_date,
                end_date=course.end_date,
                created_by=course.created_by,
                created_at=course.created_at,
            )
        )
        await self._session.flush()

    async def save_course(self, course: Course) -> None:
        await self._session.execute(
            update(CourseRow)
            .where(CourseRow.id == course.id)
            .values(
                title=course.title,
                description=course.description,
                status=course.status,
                start_date=course.start_date,
                end_date=course.end_date,
            ),
            execution_options=_NO_SYNC,
        )

    async def delete_course(self, course_id: UUID) -> None:
        # Children go through ON DELETE CASCADE.
        await self._session.execute(
            delete(CourseRow).where(CourseRow.id == course_id),
            execution_options=_NO_SYNC,
        )

    # --- trainers ---

    async def list_trainer_ids(self, course_id: UUID) -> list[UUID]:
        result = await self._session.execute(
            select(CourseTrainerRow.trainer_id)
            .where(CourseTrainerRow.course_id == course_id)
            .order_by(CourseTrainerRow.trainer_id)
        )
        return list(result.scalars())

    async def add_trainers(self, course_id: UUID, trainer_ids: Iterable[UUID]) -> None:
        values = [{"course_id": course_id, "trainer_id": t} for t in set(trainer_ids)]
        if not values:
            return
        await self._session.execute(
            pg_insert(CourseTrainerRow).values(values).on_conflict_do_nothing()
        )

    async def remove_trainer(self, course_id: UUID, trainer_id: UUID) -> bool:
        result = await self._session.execute(
            delete(CourseTrainerRow).where(
                CourseTrainerRow.course_id == course_id,
                CourseTrainerRow.trainer_id == trainer_id,
            ),
            execution_options=_NO_SYNC,
        )
        return result.rowcount > 0

    # --- subjects and tasks ---

    async def get_subject(self, subject_id: UUID) -> Subject | None:
        row = await self._one(select(SubjectRow).where(SubjectRow.id == subject_id))
        return None if row is None else _row_to_subject(row)

    async def list_subjects(self, course_id: UUID) -> list[Subject]:
        rows = await self._all(
            select(SubjectRow)
            .where(SubjectRow.course_id == course_id)
            .order_by(SubjectRow.position)
        )
        return [_row_to_subject(r) for r in rows]

    async def add_subject(self, subject: Subject) -> None:
        self._session.add(
            SubjectRow(
                id=subject.id,
                course_id=subject.course_id,
                title=subject.title,
                description=subject.description,
                status=subject.status,
                position=subject.position,
                start_date=subject.start_date,
                end_date=subject.end_date,
            )
        )
        await self._session.flush()

    async def save_subject(self, subject: Subject) -> None:
        await self._session.execute(
            update(SubjectRow)
            .where(SubjectRow.id == subject.id)
            .values(
                title=subject.title,
                description=subject.description,
                status=subject.status,
                position=subject.position,
                start_date=subject.start_date,
                end_date=subject.end_date,
            ),
            execution_options=_NO_SYNC,
        )

    async def delete_subject(self, subject_id: UUID) -> None:
        await self._session.execute(
            delete(SubjectRow).where(SubjectRow.id == subject_id),
            execution_options=_NO_SYNC,
        )

    async def get_task(self, task_id: UUID) -> Task | None:
        row = await self._one(select(TaskRow).where(TaskRow.id == task_id))
        return None if row is None else _row_to_task(row)

    async def list_tasks(self, subject_id: UUID) -> list[Task]:
        rows = await self._all(
            select(TaskRow)
            .where(TaskRow.subject_id == subject_id)
            .order_by(TaskRow.position)
        )
        return [_row_to_task(r) for r in rows]

    async def add_task(self, task: Task) -> None:
        self._session.add(
            TaskRow(
                id=task.id,
                subject_id=task.subject_id,
                title=task.title,
                description=task.description,
                position=task.position,
                due_date=task.due_date,
            )
        )
        await self._session.flush()

    async def delete_task(self, task_id: UUID) -> None:
        await self._session.execute(
            delete(TaskRow).where(TaskRow.id == task_id),
            execution_options=_NO_SYNC,
        )

    # --- enrollment ---

    async def get_course_trainee(
        self, course_id: UUID, trainee_id: UUID
    ) -> CourseTrainee | None:
        row = await self._one(
            select(CourseTraineeRow).where(
                CourseTraineeRow.course_id == course_id,
                CourseTraineeRow.trainee_id == trainee_id,
            )
        )
        return None if row is None else _row_to_course_trainee(row)

    async def list_course_trainees(self, course_id: UUID) -> list[CourseTrainee]:
        rows = await self._all(
            select(CourseTraineeRow)
            .where(CourseTraineeRow.course_id == course_id)
            .order_by(CourseTraineeRow.enrolled_at)
        )
        return [_row_to_course_trainee(r) for r in rows]

    async def list_enrollments(self, trainee_id: UUID) -> list[CourseTrainee]:
        rows = await self._all(
            select(CourseTraineeRow).where(CourseTraineeRow.trainee_id == trainee_id)
        )
        return [_row_to_course_trainee(r) for r in rows]

    async def add_course_trainee(self, course_trainee: CourseTrainee) -> None:
        self._session.add(
            CourseTraineeRow(
                id=course_trainee.id,
                course_id=course_trainee.course_id,
                trainee_id=course_trainee.trainee_id,
                status=course_trainee.status,
                enrolled_at=course_trainee.enrolled_at,
            )
        )
        await self._session.flush()

    async def save_course_trainee(self, course_trainee: CourseTrainee) -> None:
        await self._session.execute(
            update(CourseTraineeRow)
            .where(CourseTraineeRow.id == course_trainee.id)
            .values(status=course_trainee.status),
            execution_options=_NO_SYNC,
        )

    async def remove_course_trainee(self, course_trainee: CourseTrainee) -> None:
        course_tasks = (
            select(TaskRow.id)
            .join(SubjectRow, SubjectRow.id == TaskRow.subject_id)
            .where(SubjectRow.course_id == course_trainee.course_id)
        )
        await self._session.execute(
            delete(TraineeTaskRow).where(
                TraineeTaskRow.trainee_id == course_trainee.trainee_id,
                TraineeTaskRow.task_id.in_(course_tasks),
            ),
            execution_options=_NO_SYNC,
        )
        # trainee_subjects go with the enrollment through ON DELETE CASCADE
        await self._session.execute(
            delete(CourseTraineeRow).where(CourseTraineeRow.id == course_trainee.id),
            execution_options=_NO_SYNC,
        )

    # --- per-trainee records ---

    async def get_trainee_subject(
        self, course_trainee_id: UUID, subject_id: UUID
    ) -> TraineeSubject | None:
        row = await self._one(
            select(TraineeSubjectRow).where(
                TraineeSubjectRow.course_trainee_id == course_trainee_id,
                TraineeSubjectRow.subject_id == subject_id,
            )
        )
        return None if row is None else _row_to_trainee_subject(row)

    async def list_trainee_subjects(
        self,
        *,
        course_trainee_id: UUID | None = None,
        subject_id: UUID | None = None,
    ) -> list[TraineeSubject]:
        stmt = select(TraineeSubjectRow)
        if course_trainee_id is not None:
            stmt = stmt.where(TraineeSubjectRow.course_trainee_id == course_trainee_id)
        if subject_id is not None:
            stmt = stmt.where(TraineeSubjectRow.subject_id == subject_id)
        return [_row_to_trainee_subject(r) for r in await self._all(stmt)]

    async def add_trainee_subjects(self, records: Iterable[TraineeSubject]) -> None:
        values = [
            {
                "id": ts.id,
                "course_trainee_id": ts.course_trainee_id,
                "subject_id": ts.subject_id,
                "status": ts.status,
                "grade": ts.grade,
                "feedback": ts.feedback,
                "started_at": ts.started_at,
                "completed_at": ts.completed_at,
            }
            for ts in records
        ]
        if not values:
            return
        await self._session.execute(
            pg_insert(TraineeSubjectRow)
            .values(values)
            .on_conflict_do_nothing(index_elements=["course_trainee_id", "subject_id"])
        )

    async def save_trainee_subject(self, record: TraineeSubject) -> None:
        await self._session.execute(
            update(TraineeSubjectRow)
            .where(TraineeSubjectRow.id == record.id)
            .values(
                status=record.status,
                grade=record.grade,
                feedback=record.feedback,
                started_at=record.started_at,
                completed_at=record.completed_at,
            ),
            execution_options=_NO_SYNC,
        )

    async def get_trainee_task(
        self, trainee_id: UUID, task_id: UUID
    ) -> TraineeTask | None:
        row = await self._one(
            select(TraineeTaskRow).where(
                TraineeTaskRow.trainee_id == trainee_id,
                TraineeTaskRow.task_id == task_id,
            )
        )
        return None if row is None else _row_to_trainee_task(row)

    async def list_trainee_tasks(
        self, *, task_ids: Iterable[UUID], trainee_id: UUID | None = None
    ) -> list[TraineeTask]:
        ids = list(task_ids)
        if not ids:
            return []
        stmt = select(TraineeTaskRow).where(TraineeTaskRow.task_id.in_(ids))
        if trainee_id is not None:
            stmt = stmt.where(TraineeTaskRow.trainee_id == trainee_id)
        return [_row_to_trainee_task(r) for r in await self._all(stmt)]

    async def save_trainee_task(self, record: TraineeTask) -> None:
        stmt = pg_insert(TraineeTaskRow).values(
            id=record.id,
            trainee_id=record.trainee_id,
            task_id=record.task_id,
            status=record.status,
            completed_at=record.completed_at,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["trainee_id", "task_id"],
            set_={"status": record.status, "completed_at": record.completed_at},
        )
        await self._session.execute(stmt)

    # --- bulk and conditional transitions ---

    async def start_trainee_subjects(self, subject_id: UUID, now: datetime) -> int:
        result = await self._session.execute(
            update(TraineeSubjectRow)
            .where(
                TraineeSubjectRow.subject_id == subject_id,
                TraineeSubjectRow.status == NOT_STARTED,
            )
            .values(status=IN_PROGRESS, started_at=now),
            execution_options=_NO_SYNC,
        )
        return result.rowcount

    def _trainee_subject_filter(
        self,
        subject_id: UUID | None,
        course_id: UUID | None,
        course_trainee_id: UUID | None,
    ) -> list:
        clauses = []
        if subject_id is not None:
            clauses.append(TraineeSubjectRow.subject_id == subject_id)
        if course_trainee_id is not None:
            clauses.append(TraineeSubjectRow.course_trainee_id == course_trainee_id)
        if course_id is not None:
            clauses.append(
                TraineeSubjectRow.course_trainee_id.in_(
                    select(CourseTraineeRow.id).where(
                        CourseTraineeRow.course_id == course_id
                    )
                )
            )
        return clauses

    async def finish_trainee_subjects(
        self,
        *,
        now: datetime,
        subject_id: UUID | None = None,
        course_id: UUID | None = None,
        course_trainee_id: UUID | None = None,
    ) -> int:
        result = await self._session.execute(
            update(TraineeSubjectRow)
            .where(
                TraineeSubjectRow.status != FINISHED,
                *self._trainee_subject_filter(subject_id, course_id, course_trainee_id),
            )
            .values(status=FINISHED, completed_at=now),
            execution_options=_NO_SYNC,
        )
        return result.rowcount

    async def complete_trainee_tasks(
        self, trainee_ids: Iterable[UUID], task_ids: Iterable[UUID], now: datetime
    ) -> int:
        task_ids = list(task_ids)
        values = [
            {
                "id": uuid4(),
                "trainee_id": trainee_id,
                "task_id": task_id,
                "status": COMPLETED,
                "completed_at": now,
            }
            for trainee_id in trainee_ids
            for task_id in task_ids
        ]
        if not values:
            return 0
        stmt = pg_insert(TraineeTaskRow).values(values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["trainee_id", "task_id"],
            set_={"status": COMPLETED, "completed_at": now},
            where=TraineeTaskRow.status != COMPLETED,
        )
        result = await self._session.execute(stmt)
        return result.rowcount

    async def count_unfinished_trainee_subjects(
        self,
        *,
        subject_id: UUID | None = None,
        course_id: UUID | None = None,
        course_trainee_id: UUID | None = None,
    ) -> int:
        total = await self._session.scalar(
            select(func.count())
            .select_from(TraineeSubjectRow)
            .where(
                TraineeSubjectRow.status != FINISHED,
                *self._trainee_subject_filter(subject_id, course_id, course_trainee_id),
            )
        )
        return int(total or 0)

    async def finish_subjects(self, course_id: UUID, now: datetime) -> int:
        result = await self._session.execute(
            update(SubjectRow)
            .where(SubjectRow.course_id == course_id, SubjectRow.status != FINISHED)
            .values(status=FINISHED, end_date=now),
            execution_options=_NO_SYNC,
        )
        return result.rowcount

    async def finish_subject_if_complete(self, subject_id: UUID, now: datetime) -> bool:
        unfinished = select(TraineeSubjectRow.id).where(
            TraineeSubjectRow.subject_id == subject_id,
            TraineeSubjectRow.status != FINISHED,
        )
        result = await self._session.execute(
            update(SubjectRow)
            .where(
                SubjectRow.id == subject_id,
                SubjectRow.status != FINISHED,
                ~exists(unfinished),
            )
            .values(status=FINISHED, end_date=now),
            execution_options=_NO_SYNC,
        )
        return result.rowcount == 1

    async def finish_course_if_complete(self, course_id: UUID, now: datetime) -> bool:
        unfinished = select(TraineeSubjectRow.id).where(
            TraineeSubjectRow.status != FINISHED,
            *self._trainee_subject_filter(None, course_id, None),
        )
        result = await self._session.execute(
            update(CourseRow)
            .where(
                CourseRow.id == course_id,
                CourseRow.status != FINISHED,
                ~exists(unfinished),
            )
            .values(status=FINISHED, end_date=now),
            execution_options=_NO_SYNC,
        )
        return result.rowcount == 1


def _row_to_course(row: CourseRow) -> Course:
    return Course(
        id=row.id,
        title=row.title,
        description=row.description or "",
        status=row.status,  # type: ignore[arg-type]
        start_date=row.start_date,
        end_date=row.end_date,
        created_by=row.created_by,
        created_at=row.created_at,
    )


def _row_to_subject(row: SubjectRow) -> Subject:
    return Subject(
        id=row.id,
        course_id=row.course_id,
        title=row.title,
        position=row.position,
        description=row.description or "",
        status=row.status,  # type: ignore[arg-type]
        start_date=row.start_date,
        end_date=row.end_date,
    )


def _row_to_task(row: TaskRow) -> Task:
    return Task(
        id=row.id,
        subject_id=row.subject_id,
        title=row.title,
        position=row.position,
        description=row.description or "",
        due_date=row.due_date,
    )


def _row_to_course_trainee(row: CourseTraineeRow) -> CourseTrainee:
    return CourseTrainee(
        id=row.id,
        course_id=row.course_id,
        trainee_id=row.trainee_id,
        status=row.status,  # type: ignore[arg-type]
        enrolled_at=row.enrolled_at,
    )


def _row_to_trainee_subject(row: TraineeSubjectRow) -> TraineeSubject:
    return TraineeSubject(
        id=row.id,
        course_trainee_id=row.course_trainee_id,
        subject_id=row.subject_id,
        status=row.status,  # type: ignore[arg-type]
        grade=row.grade,
        feedback=row.feedback,
        started_at=row.started_at,
        completed_at=row.completed_at,
    )


def _row_to_trainee_task(row: TraineeTaskRow) -> TraineeTask:
    return TraineeTask(
        id=row.id,
        trainee_id=row.trainee_id,
        task_id=row.task_id,
        status=row.status,  # type: ignore[arg-type]
        completed_at=row.completed_at,
    )
