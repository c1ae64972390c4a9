"""Postgres schema as SQLAlchemy declarative rows.

Only app/repos/pg_*.py import these; everything above the repos works
with the frozen dataclasses in app/models/.  alembic/versions holds the
migration that creates the same schema.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Annotated

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import ARRAY, UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.db.engine import Base

uuid_pk = Annotated[
    uuid.UUID, mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
]
timestamp = Annotated[datetime | None, mapped_column(DateTime(timezone=True), nullable=True)]
title_str = Annotated[str, mapped_column(String(500), nullable=False)]
text_str = Annotated[str, mapped_column(Text, nullable=False, default="")]


def _ref(target: str, *, cascade: bool = True, **kw):
    """A non-null UUID foreign key; rows go away with their parent unless cascade=False."""
    return mapped_column(
        UUID(as_uuid=True),
        ForeignKey(target, ondelete="CASCADE" if cascade else None),
        nullable=False,
        **kw,
    )


def _status(default: str):
    return mapped_column(String(32), nullable=False, default=default)


class UserRow(Base):
    __tablename__ = "users"

    id: Mapped[uuid_pk]
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    roles: Mapped[list[str]] = mapped_column(ARRAY(String), nullable=False, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


# --- Course content ---


class CourseRow(Base):
    __tablename__ = "courses"

    id: Mapped[uuid_pk]
    title: Mapped[title_str]
    description: Mapped[text_str]
    status: Mapped[str] = _status("NOT_STARTED")  # NOT_STARTED|IN_PROGRESS|FINISHED
    start_date: Mapped[timestamp]
    end_date: Mapped[timestamp]
    created_by: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=True
    )
    created_at: Mapped[timestamp]


class CourseTrainerRow(Base):
    __tablename__ = "course_trainers"

    course_id: Mapped[uuid.UUID] = _ref("courses.id", primary_key=True)
    trainer_id: Mapped[uuid.UUID] = _ref("users.id", cascade=False, primary_key=True)


class SubjectRow(Base):
    __tablename__ = "subjects"

    id: Mapped[uuid_pk]
    course_id: Mapped[uuid.UUID] = _ref("courses.id", index=True)
    title: Mapped[title_str]
    description: Mapped[text_str]
    status: Mapped[str] = _status("NOT_STARTED")
    # Gaps and duplicates in ordering are tolerated, hence no unique constraint.
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    start_date: Mapped[timestamp]
    end_date: Mapped[timestamp]


class TaskRow(Base):
    __tablename__ = "tasks"

    id: Mapped[uuid_pk]
    subject_id: Mapped[uuid.UUID] = _ref("subjects.id", index=True)
    title: Mapped[title_str]
    description: Mapped[text_str]
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    due_date: Mapped[timestamp]


# --- Enrollment and per-trainee progress ---


class CourseTraineeRow(Base):
    __tablename__ = "course_trainees"
    __table_args__ = (UniqueConstraint("course_id", "trainee_id"),)

    id: Mapped[uuid_pk]
    course_id: Mapped[uuid.UUID] = _ref("courses.id")
    trainee_id: Mapped[uuid.UUID] = _ref("users.id", cascade=False)
    status: Mapped[str] = _status("ACTIVE")  # ACTIVE|PASS|FAIL|RESIGN
    enrolled_at: Mapped[timestamp]


class TraineeSubjectRow(Base):
    __tablename__ = "trainee_subjects"
    __table_args__ = (
        UniqueConstraint("course_trainee_id", "subject_id"),
        # the "is anyone still working on this subject" check
        Index("ix_trainee_subjects_subject_status", "subject_id", "status"),
    )

    id: Mapped[uuid_pk]
    course_trainee_id: Mapped[uuid.UUID] = _ref("course_trainees.id")
    subject_id: Mapped[uuid.UUID] = _ref("subjects.id")
    status: Mapped[str] = _status("NOT_STARTED")
    grade: Mapped[int | None] = mapped_column(Integer, nullable=True)
    feedback: Mapped[str | None] = mapped_column(Text, nullable=True)
    started_at: Mapped[timestamp]
    completed_at: Mapped[timestamp]


class TraineeTaskRow(Base):
    __tablename__ = "trainee_tasks"
    __table_args__ = (UniqueConstraint("trainee_id", "task_id"),)

    id: Mapped[uuid_pk]
    trainee_id: Mapped[uuid.UUID] = _ref("users.id", cascade=False)
    task_id: Mapped[uuid.UUID] = _ref("tasks.id")
    status: Mapped[str] = _status("NOT_STARTED")  # NOT_STARTED|IN_PROGRESS|COMPLETED
    completed_at: Mapped[timestamp]


# --- Notifications ---


class NotificationRow(Base):
    __tablename__ = "notifications"

    id: Mapped[uuid_pk]
    user_id: Mapped[uuid.UUID] = _ref("users.id", cascade=False, index=True)
    type: Mapped[str] = mapped_column(String(64), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    link_to: Mapped[str | None] = mapped_column(String(500), nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[timestamp]


# --- Daily reports ---


class DailyReportRow(Base):
    __tablename__ = "daily_reports"
    __table_args__ = (UniqueConstraint("trainee_id", "report_date"),)

    id: Mapped[uuid_pk]
    trainee_id: Mapped[uuid.UUID] = _ref("users.id", cascade=False)
    report_date: Mapped[date] = mapped_column(Date, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[timestamp]
    updated_at: Mapped[timestamp]


class ReportTemplateRow(Base):
    __tablename__ = "report_templates"

    id: Mapped[uuid_pk]
    user_id: Mapped[uuid.UUID] = _ref("users.id", cascade=False, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[timestamp]
