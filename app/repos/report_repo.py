from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, date, datetime
from typing import Protocol
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import DuplicateError
from app.db.tables import DailyReportRow, ReportTemplateRow
from app.models.report import DailyReport, ReportTemplate

_EPOCH = datetime.min.replace(tzinfo=UTC)
_DUPLICATE_DATE = "Report already exists for this date"


class ReportRepo(Protocol):
    async def get(self, report_id: UUID) -> DailyReport | None: ...
    async def get_for_date(
        self, trainee_id: UUID, report_date: date
    ) -> DailyReport | None: ...
    async def list_reports(
        self,
        *,
        trainee_ids: Iterable[UUID] | None = None,
        report_date: date | None = None,
        search: str | None = None,
        created_after: datetime | None = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[DailyReport], int]: ...
    async def add(self, report: DailyReport) -> None: ...
    async def save(self, report: DailyReport) -> None: ...
    async def delete(self, report_id: UUID) -> bool: ...

    async def get_template(self, template_id: UUID) -> ReportTemplate | None: ...
    async def list_templates(self, user_id: UUID) -> list[ReportTemplate]: ...
    async def add_template(self, template: ReportTemplate) -> None: ...
    async def save_template(self, template: ReportTemplate) -> None: ...
    async def delete_template(self, template_id: UUID) -> bool: ...


class InMemoryReportRepo:
    def __init__(self) -> None:
        self.clear()

    def clear(self) -> None:
        self._reports: dict[UUID, DailyReport] = {}
        self._templates: dict[UUID, ReportTemplate] = {}

    async def get(self, report_id: UUID) -> DailyReport | None:
        return self._reports.get(report_id)

    async def get_for_date(
        self, trainee_id: UUID, report_date: date
    ) -> DailyReport | None:
        return self._for_date(trainee_id, report_date)

    async def list_reports(
        self,
        *,
        trainee_ids: Iterable[UUID] | None = None,
        report_date: date | None = None,
        search: str | None = None,
        created_after: datetime | None = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[DailyReport], int]:
        reports = list(self._reports.values())
        if trainee_ids is not None:
            wanted = set(trainee_ids)
            reports = [r for r in reports if r.trainee_id in wanted]
        if report_date is not None:
            reports = [r for r in reports if r.report_date == report_date]
        if search:
            needle = search.lower()
            reports = [r for r in reports if needle in r.content.lower()]
        if created_after is not None:
            reports = [
                r for r in reports if (r.created_at or _EPOCH) >= created_after
            ]
        reports.sort(key=lambda r: (r.report_date, r.created_at or _EPOCH), reverse=True)
        return reports[offset : offset + limit], len(reports)

    def _check_date_free(self, report: DailyReport) -> None:
        existing = self._for_date(report.trainee_id, report.report_date)
        if existing is not None and existing.id != report.id:
            raise DuplicateError(_DUPLICATE_DATE)

    def _for_date(self, trainee_id: UUID, report_date: date) -> DailyReport | None:
        return next(
            (
                r
                for r in self._reports.values()
                if r.trainee_id == trainee_id and r.report_date == report_date
            ),
            None,
        )

    async def add(self, report: DailyReport) -> None:
        self._check_date_free(report)
        self._reports[report.id] = report

    async def save(self, report: DailyReport) -> None:
        self._check_date_free(report)
        self._reports[report.id] = report

    async def delete(self, report_id: UUID) -> bool:
        return self._reports.pop(report_id, None) is not None

    async def get_template(self, template_id: UUID) -> ReportTemplate | None:
        return self._templates.get(template_id)

    async def list_templates(self, user_id: UUID) -> list[ReportTemplate]:
        mine = [t for t in self._templates.values() if t.user_id == user_id]
        return sorted(mine, key=lambda t: t.created_at or _EPOCH, reverse=True)

    async def add_template(self, template: ReportTemplate) -> None:
        self._templates[template.id] = template

    async def save_template(self, template: ReportTemplate) -> None:
        self._templates[template.id] = template

    async def delete_template(self, template_id: UUID) -> bool:
        return self._templates.pop(template_id, None) is not None


class PgReportRepo:
    """Satisfies the ReportRepo Protocol using PostgreSQL via SQLAlchemy.

    The (trainee_id, report_date) unique constraint is what rejects a second
    report for the same day; the service's pre-check only gives the nicer
    error in the common case.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, report_id: UUID) -> DailyReport | None:
        row = await self._session.get(DailyReportRow, report_id, populate_existing=True)
        return None if row is None else _row_to_report(row)

    async def get_for_date(
        self, trainee_id: UUID, report_date: date
    ) -> DailyReport | None:
        row = await self._session.scalar(
            select(DailyReportRow).where(
                DailyReportRow.trainee_id == trainee_id,
                DailyReportRow.report_date == report_date,
            )
        )
        return None if row is None else _row_to_report(row)

    async def list_reports(
        self,
        *,
        trainee_ids: Iterable[UUID] | None = None,
        report_date: date | None = None,
        search: str | None = None,
        created_after: datetime | None = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[DailyReport], int]:
        stmt = select(DailyReportRow)
        if trainee_ids is not None:
            stmt = stmt.where(DailyReportRow.trainee_id.in_(list(trainee_ids)))
        if report_date is not None:
            stmt = stmt.where(DailyReportRow.report_date == report_date)
        if search:
            stmt = stmt.where(DailyReportRow.content.ilike(f"%{search}%"))
        if created_after is not None:
            stmt = stmt.where(DailyReportRow.created_at >= created_after)

        total = await self._session.scalar(
            select(func.count()).select_from(stmt.subquery())
        )
        rows = await self._session.execute(
            stmt.order_by(
                DailyReportRow.report_date.desc(), DailyReportRow.created_at.desc()
            )
            .offset(offset)
            .limit(limit)
        )
        return [_row_to_report(r) for r in rows.scalars()], int(total or 0)

    async def add(self, report: DailyReport) -> None:
        try:
            async with self._session.begin_nested():
                self._session.add(
                    DailyReportRow(
                        id=report.id,
                        trainee_id=report.trainee_id,
                        report_date=report.report_date,
                        content=report.content,
                        created_at=report.created_at,
                        updated_at=report.updated_at,
                    )
                )
                await self._session.flush()
        except IntegrityError:
            raise DuplicateError(_DUPLICATE_DATE) from None

    async def save(self, report: DailyReport) -> None:
        try:
            async with self._session.begin_nested():
                await self._session.execute(
                    update(DailyReportRow)
                    .where(DailyReportRow.id == report.id)
                    .values(
                        report_date=report.report_date,
                        content=report.content,
                        updated_at=report.updated_at,
                    )
                )
        except IntegrityError:
            raise DuplicateError(_DUPLICATE_DATE) from None

    async def delete(self, report_id: UUID) -> bool:
        result = await self._session.execute(
            delete(DailyReportRow).where(DailyReportRow.id == report_id)
        )
        return result.rowcount > 0

    async def get_template(self, template_id: UUID) -> ReportTemplate | None:
        row = await self._session.get(
            ReportTemplateRow, template_id, populate_existing=True
        )
        return None if row is None else _row_to_template(row)

    async def list_templates(self, user_id: UUID) -> list[ReportTemplate]:
        rows = await self._session.execute(
            select(ReportTemplateRow)
            .where(ReportTemplateRow.user_id == user_id)
            .order_by(ReportTemplateRow.created_at.desc())
        )
        return [_row_to_template(r) for r in rows.scalars()]

    async def add_template(self, template: ReportTemplate) -> None:
        self._session.add(
            ReportTemplateRow(
                id=template.id,
                user_id=template.user_id,
                title=template.title,
                content=template.content,
                created_at=template.created_at,
            )
        )
        await self._session.flush()

    async def save_template(self, template: ReportTemplate) -> None:
        await self._session.execute(
            update(ReportTemplateRow)
            .where(ReportTemplateRow.id == template.id)
            .values(title=template.title, content=template.content)
        )

    async def delete_template(self, template_id: UUID) -> bool:
        result = await self._session.execute(
            delete(ReportTemplateRow).where(ReportTemplateRow.id == template_id)
        )
        return result.rowcount > 0


def _row_to_report(row: DailyReportRow) -> DailyReport:
    return DailyReport(
        id=row.id,
        trainee_id=row.trainee_id,
        report_date=row.report_date,
        content=row.content,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_template(row: ReportTemplateRow) -> ReportTemplate:
    return ReportTemplate(
        id=row.id,
        user_id=row.user_id,
        title=row.title,
        content=row.content,
        created_at=row.created_at,
    )


# Module-level singleton used whenever DATABASE_URL is unset.
report_repo = InMemoryReportRepo()
