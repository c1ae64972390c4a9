"""daily reports and report templates

Revision ID: 8c4d2a6f1b93
Revises: 3b1f9c2e7a10
Create Date: 2026-10-19 00:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "8c4d2a6f1b93"
down_revision: str | Sequence[str] | None = "3b1f9c2e7a10"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _uuid(name: str, *fk: sa.ForeignKey, **kw) -> sa.Column:
    return sa.Column(name, postgresql.UUID(as_uuid=True), *fk, **kw)


def _ts(name: str) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=True)


def upgrade() -> None:
    op.create_table(
        "daily_reports",
        _uuid("id", primary_key=True),
        _uuid("trainee_id", sa.ForeignKey("users.id"), nullable=False),
        sa.Column("report_date", sa.Date(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        _ts("created_at"),
        _ts("updated_at"),
        sa.UniqueConstraint("trainee_id", "report_date"),
    )
    op.create_table(
        "report_templates",
        _uuid("id", primary_key=True),
        _uuid("user_id", sa.ForeignKey("users.id"), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        _ts("created_at"),
    )
    op.create_index("ix_report_templates_user_id", "report_templates", ["user_id"])


def downgrade() -> None:
    op.drop_index("ix_report_templates_user_id", table_name="report_templates")
    op.drop_table("report_templates")
    op.drop_table("daily_reports")
