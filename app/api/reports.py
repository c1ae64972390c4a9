"""Daily reports and report templates.

Trainees write their own reports, one per date; trainers and staff read
everyone's.  Templates are private to whoever saved them, whatever their
role.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict

from app.api.dependencies import CurrentUser, Reports, Trainee
from app.api.envelope import Envelope, PageParams, Paginated, ok, paginated
from app.services import report_service

router = APIRouter(prefix="/v1/reports", tags=["reports"])


class ReportIn(BaseModel):
    content: str
    report_date: date


class ReportUpdateIn(BaseModel):
    content: str | None = None
    report_date: date | None = None


class ReportOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    trainee_id: UUID
    report_date: date
    content: str
    created_at: datetime | None
    updated_at: datetime | None


class TemplateIn(BaseModel):
    title: str
    content: str


class TemplateUpdateIn(BaseModel):
    title: str | None = None
    content: str | None = None


class TemplateOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    content: str
    created_at: datetime | None


# ---------------------------------------------------------------------------
# Templates (registered first so /templates never parses as a report id)
# ---------------------------------------------------------------------------


@router.get("/templates", response_model=Envelope[list[TemplateOut]])
async def list_templates(principal: CurrentUser, repo: Reports) -> dict:
    templates = await repo.list_templates(principal.uid)
    return ok([TemplateOut.model_validate(t) for t in templates])


@router.post(
    "/templates",
    response_model=Envelope[TemplateOut],
    status_code=status.HTTP_201_CREATED,
)
async def create_template(
    payload: TemplateIn, principal: CurrentUser, repo: Reports
) -> dict:
    template = await report_service.create_template(
        repo, principal.uid, title=payload.title, content=payload.content
    )
    return ok(TemplateOut.model_validate(template), "Template created successfully")


@router.put("/templates/{template_id}", response_model=Envelope[TemplateOut])
async def update_template(
    template_id: UUID, payload: TemplateUpdateIn, principal: CurrentUser, repo: Reports
) -> dict:
    template = await report_service.update_template(
        repo, principal.uid, template_id, title=payload.title, content=payload.content
    )
    return ok(TemplateOut.model_validate(template), "Template updated successfully")


@router.delete("/templates/{template_id}", response_model=Envelope[None])
async def delete_template(
    template_id: UUID, principal: CurrentUser, repo: Reports
) -> dict:
    await report_service.delete_template(repo, principal.uid, template_id)
    return ok(None, "Template deleted successfully")


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------


@router.get("", response_model=Paginated[ReportOut])
async def list_reports(
    principal: CurrentUser,
    repo: Reports,
    page: Annotated[PageParams, Depends()],
    trainee_id: UUID | None = None,
    report_date: Annotated[date | None, Query(alias="date")] = None,
    search: str | None = None,
) -> dict:
    items, total = await report_service.list_reports(
        repo,
        principal,
        trainee_id=trainee_id,
        report_date=report_date,
        search=search,
        offset=page.offset,
        limit=page.limit,
    )
    return paginated([ReportOut.model_validate(r) for r in items], page, total)


@router.get("/{report_id}", response_model=Envelope[ReportOut])
async def get_report(report_id: UUID, principal: CurrentUser, repo: Reports) -> dict:
    report = await report_service.get_report(repo, principal, report_id)
    return ok(ReportOut.model_validate(report))


@router.post("", response_model=Envelope[ReportOut], status_code=status.HTTP_201_CREATED)
async def create_report(payload: ReportIn, principal: Trainee, repo: Reports) -> dict:
    report = await report_service.create_report(
        repo, principal.uid, content=payload.content, report_date=payload.report_date
    )
    return ok(ReportOut.model_validate(report), "Report created successfully")


@router.put("/{report_id}", response_model=Envelope[ReportOut])
async def update_report(
    report_id: UUID, payload: ReportUpdateIn, principal: Trainee, repo: Reports
) -> dict:
    report = await report_service.update_report(
        repo,
        principal.uid,
        report_id,
        content=payload.content,
        report_date=payload.report_date,
    )
    return ok(ReportOut.model_validate(report), "Report updated successfully")


@router.delete("/{report_id}", response_model=Envelope[None])
async def delete_report(report_id: UUID, principal: Trainee, repo: Reports) -> dict:
    await report_service.delete_report(repo, principal.uid, report_id)
    return ok(None, "Report deleted successfully")
