"""training schema

Revision ID: 3b1f9c2e7a10
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3b1f9c2e7a10"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _uuid(name: str, *fk: sa.ForeignKey, **kw) -> sa.Column:
    return sa.Column(name, postgresql.UUID(as_uuid=True), *fk, **kw)


def _ts(name: str) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=True)


def upgrade() -> None:
    op.create_table(
        "users",
        _uuid("id", primary_key=True),
        sa.Column("email", sa.String(length=320), nullable=False, unique=True),
        sa.Column("password_hash", sa.Text(), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=False, server_default=""),
        sa.Column(
            "roles",
            postgresql.ARRAY(sa.String()),
            nullable=False,
            server_default="{}",
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
    )

    op.create_table(
        "courses",
        _uuid("id", primary_key=True),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="NOT_STARTED"),
        _ts("start_date"),
        _ts("end_date"),
        _uuid("created_by", sa.ForeignKey("users.id"), nullable=True),
        _ts("created_at"),
    )

    op.create_table(
        "course_trainers",
        _uuid("course_id", sa.ForeignKey("courses.id", ondelete="CASCADE"), primary_key=True),
        _uuid("trainer_id", sa.ForeignKey("users.id"), primary_key=True),
    )

    op.create_table(
        "subjects",
        _uuid("id", primary_key=True),
        _uuid("course_id", sa.ForeignKey("courses.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="NOT_STARTED"),
        sa.Column("position", sa.Integer(), nullable=False),
        _ts("start_date"),
        _ts("end_date"),
    )
    op.create_index("ix_subjects_course_id", "subjects", ["course_id"])

    op.create_table(
        "tasks",
        _uuid("id", primary_key=True),
        _uuid("subject_id", sa.ForeignKey("subjects.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("position", sa.Integer(), nullable=False),
        _ts("due_date"),
    )
    op.create_index("ix_tasks_subject_id", "tasks", ["subject_id"])

    op.create_table(
        "course_trainees",
        _uuid("id", primary_key=True),
        _uuid("course_id", sa.ForeignKey("courses.id", ondelete="CASCADE"), nullable=False),
        _uuid("trainee_id", sa.ForeignKey("users.id"), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="ACTIVE"),
        _ts("enrolled_at"),
        sa.UniqueConstraint("course_id", "trainee_id"),
    )

    op.create_table(
        "trainee_subjects",
        _uuid("id", primary_key=True),
        _uuid(
            "course_trainee_id",
            sa.ForeignKey("course_trainees.id", ondelete="CASCADE"),
            nullable=False,
        ),
        _uuid("subject_id", sa.ForeignKey("subjects.id", ondelete="CASCADE"), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="NOT_STARTED"),
        sa.Column("grade", sa.Integer(), nullable=True),
        sa.Column("feedback", sa.Text(), nullable=True),
        _ts("started_at"),
        _ts("completed_at"),
        sa.UniqueConstraint("course_trainee_id", "subject_id"),
    )
    op.create_index(
        "ix_trainee_subjects_subject_status", "trainee_subjects", ["subject_id", "status"]
    )

    op.create_table(
        "trainee_tasks",
        _uuid("id", primary_key=True),
        _uuid("trainee_id", sa.ForeignKey("users.id"), nullable=False),
        _uuid("task_id", sa.ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="NOT_STARTED"),
        _ts("completed_at"),
        sa.UniqueConstraint("trainee_id", "task_id"),
    )

    op.create_table(
        "notifications",
        _uuid("id", primary_key=True),
        _uuid("user_id", sa.ForeignKey("users.id"), nullable=False),
        sa.Column("type", sa.String(length=64), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("link_to", sa.String(length=500), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        _ts("created_at"),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])


def downgrade() -> None:
    op.drop_index("ix_notifications_user_id", table_name="notifications")
    op.drop_table("notifications")
    op.drop_table("trainee_tasks")
    op.drop_index("ix_trainee_subjects_subject_status", table_name="trainee_subjects")
    op.drop_table("trainee_subjects")
    op.drop_table("course_trainees")
    op.drop_index("ix_tasks_subject_id", table_name="tasks")
    op.drop_table("tasks")
    op.drop_index("ix_subjects_course_id", table_name="subjects")
    op.drop_table("subjects")
    op.drop_table("course_trainers")
    op.drop_table("courses")
    op.drop_table("users")
