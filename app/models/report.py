from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from uuid import UUID, uuid4

from app.models.course import utcnow


@dataclass(frozen=True, slots=True)
class DailyReport:
    """What a trainee did on one day; at most one per trainee per date."""

    id: UUID
    trainee_id: UUID
    report_date: date
    content: str
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @staticmethod
    def new(*, trainee_id: UUID, report_date: date, content: str) -> DailyReport:
        now = utcnow()
        return DailyReport(
            id=uuid4(),
            trainee_id=trainee_id,
            report_date=report_date,
            content=content,
            created_at=now,
            updated_at=now,
        )


@dataclass(frozen=True, slots=True)
class ReportTemplate:
    """Reusable report text, private to the user who saved it."""

    id: UUID
    user_id: UUID
    title: str
    content: str
    created_at: datetime | None = None

    @staticmethod
    def new(*, user_id: UUID, title: str, content: str) -> ReportTemplate:
        return ReportTemplate(
            id=uuid4(), user_id=user_id, title=title, content=content, created_at=utcnow()
        )
