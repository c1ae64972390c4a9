"""Daily reports and the report templates trainees write them from.

Trainees write, edit and delete only their own reports, one per date.
Trainers and staff read everyone's; a caller who is only a trainee reads
only their own, whatever trainee filter they ask for.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date
from uuid import UUID

from app.core.errors import (
    AuthorizationError,
    DuplicateError,
    NotFoundError,
    ValidationError,
)
from app.models.course import utcnow
from app.models.principal import Principal
from app.models.report import DailyReport, ReportTemplate
from app.repos.report_repo import ReportRepo

logger = logging.getLogger(__name__)


def _required(value: str | None, field_name: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValidationError(
            f"{field_name.capitalize()} is required",
            errors=[{"field": field_name, "message": "must not be blank"}],
        )
    return value


def _owned(owner_id: UUID, caller_id: UUID, what: str, item_id: UUID) -> None:
    if owner_id != caller_id:
        logger.warning(
            "Access denied: user=%s does not own %s=%s", caller_id, what, item_id
        )
        raise AuthorizationError("Access denied")


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------


async def list_reports(
    repo: ReportRepo,
    viewer: Principal,
    *,
    trainee_id: UUID | None = None,
    report_date: date | None = None,
    search: str | None = None,
    offset: int = 0,
    limit: int = 20,
) -> tuple[list[DailyReport], int]:
    if not viewer.is_trainer_or_above():
        trainee_id = viewer.uid
    return await repo.list_reports(
        trainee_ids=None if trainee_id is None else [trainee_id],
        report_date=report_date,
        search=search,
        offset=offset,
        limit=limit,
    )


async def get_report(repo: ReportRepo, viewer: Principal, report_id: UUID) -> DailyReport:
    report = await repo.get(report_id)
    if report is None:
        raise NotFoundError("Report not found")
    if not viewer.is_trainer_or_above():
        _owned(report.trainee_id, viewer.uid, "report", report_id)
    return report


async def _own_report(repo: ReportRepo, trainee_id: UUID, report_id: UUID) -> DailyReport:
    report = await repo.get(report_id)
    if report is None:
        raise NotFoundError("Report not found")
    _owned(report.trainee_id, trainee_id, "report", report_id)
    return report


async def create_report(
    repo: ReportRepo, trainee_id: UUID, *, content: str, report_date: date
) -> DailyReport:
    """One report per trainee per date; a second one is a DuplicateError (409)."""
    content = _required(content, "content")
    if await repo.get_for_date(trainee_id, report_date) is not None:
        raise DuplicateError("Report already exists for this date")

    report = DailyReport.new(
        trainee_id=trainee_id, report_date=report_date, content=content
    )
    await repo.add(report)
    logger.info(
        "Daily report %s for %s by trainee=%s", report.id, report_date, trainee_id
    )
    return report


async def update_report(
    repo: ReportRepo,
    trainee_id: UUID,
    report_id: UUID,
    *,
    content: str | None = None,
    report_date: date | None = None,
) -> DailyReport:
    report = await _own_report(repo, trainee_id, report_id)
    changes: dict = {"updated_at": utcnow()}
    if content is not None:
        changes["content"] = _required(content, "content")
    if report_date is not None and report_date != report.report_date:
        if await repo.get_for_date(trainee_id, report_date) is not None:
            raise DuplicateError("Report already exists for this date")
        changes["report_date"] = report_date

    report = replace(report, **changes)
    await repo.save(report)
    return report


async def delete_report(repo: ReportRepo, trainee_id: UUID, report_id: UUID) -> None:
    await _own_report(repo, trainee_id, report_id)
    await repo.delete(report_id)
    logger.info("Daily report %s deleted by trainee=%s", report_id, trainee_id)


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------


async def create_template(
    repo: ReportRepo, user_id: UUID, *, title: str, content: str
) -> ReportTemplate:
    template = ReportTemplate.new(
        user_id=user_id,
        title=_required(title, "title"),
        content=_required(content, "content"),
    )
    await repo.add_template(template)
    return template


async def _own_template(
    repo: ReportRepo, user_id: UUID, template_id: UUID
) -> ReportTemplate:
    template = await repo.get_template(template_id)
    if template is None:
        raise NotFoundError("Template not found")
    _owned(template.user_id, user_id, "template", template_id)
    return template


async def update_template(
    repo: ReportRepo,
    user_id: UUID,
    template_id: UUID,
    *,
    title: str | None = None,
    content: str | None = None,
) -> ReportTemplate:
    template = await _own_template(repo, user_id, template_id)
    if title is not None:
        template = replace(template, title=_required(title, "title"))
    if content is not None:
        template = replace(template, content=_required(content, "content"))
    await repo.save_template(template)
    return template


async def delete_template(repo: ReportRepo, user_id: UUID, template_id: UUID) -> None:
    await _own_template(repo, user_id, template_id)
    await repo.delete_template(template_id)
