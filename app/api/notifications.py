from __future__ import annotations

from datetime import datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict

from app.api.dependencies import CurrentUser, Notifications
from app.api.envelope import Envelope, PageParams, Paginated, ok, paginated
from app.core.errors import NotFoundError

router = APIRouter(prefix="/v1/notifications", tags=["notifications"])


class NotificationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    type: str
    title: str
    message: str
    link_to: str | None
    is_read: bool
    created_at: datetime | None


class NotificationPage(Paginated[NotificationOut]):
    unread_count: int


@router.get("", response_model=NotificationPage)
async def list_notifications(
    principal: CurrentUser,
    repo: Notifications,
    page: Annotated[PageParams, Depends()],
) -> dict:
    items, total = await repo.list_for_user(
        principal.uid, offset=page.offset, limit=page.limit
    )
    body = paginated([NotificationOut.model_validate(n) for n in items], page, total)
    body["unread_count"] = await repo.count_unread(principal.uid)
    return body


@router.put("/read-all", response_model=Envelope[int])
async def mark_all_read(principal: CurrentUser, repo: Notifications) -> dict:
    changed = await repo.mark_all_read(principal.uid)
    return ok(changed, f"{changed} notification(s) marked as read")


@router.put("/{notification_id}/read", response_model=Envelope[None])
async def mark_read(
    notification_id: UUID, principal: CurrentUser, repo: Notifications
) -> dict:
    if not await repo.mark_read(principal.uid, notification_id):
        raise NotFoundError("Notification not found")
    return ok(None, "Notification marked as read")
