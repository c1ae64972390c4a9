from __future__ import annotations

from dataclasses import replace
from datetime import UTC, datetime
from typing import Protocol
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.tables import NotificationRow
from app.models.notification import Notification

_EPOCH = datetime.min.replace(tzinfo=UTC)


class NotificationRepo(Protocol):
    async def add(self, notification: Notification) -> None: ...
    async def list_for_user(
        self, user_id: UUID, *, offset: int, limit: int
    ) -> tuple[list[Notification], int]: ...
    async def count_unread(self, user_id: UUID) -> int: ...
    async def mark_read(self, user_id: UUID, notification_id: UUID) -> bool: ...
    async def mark_all_read(self, user_id: UUID) -> int: ...


class InMemoryNotificationRepo:
    def __init__(self) -> None:
        self._items: dict[UUID, Notification] = {}

    def clear(self) -> None:
        self._items.clear()

    async def add(self, notification: Notification) -> None:
        self._items[notification.id] = notification

    async def list_for_user(
        self, user_id: UUID, *, offset: int, limit: int
    ) -> tuple[list[Notification], int]:
        mine = [n for n in self._items.values() if n.user_id == user_id]
        mine.sort(key=lambda n: n.created_at or _EPOCH, reverse=True)
        return mine[offset : offset + limit], len(mine)

    async def count_unread(self, user_id: UUID) -> int:
        return sum(
            1 for n in self._items.values() if n.user_id == user_id and not n.is_read
        )

    async def mark_read(self, user_id: UUID, notification_id: UUID) -> bool:
        n = self._items.get(notification_id)
        if n is None or n.user_id != user_id:
            return False
        self._items[notification_id] = replace(n, is_read=True)
        return True

    async def mark_all_read(self, user_id: UUID) -> int:
        changed = 0
        for n in list(self._items.values()):
            if n.user_id == user_id and not n.is_read:
                self._items[n.id] = replace(n, is_read=True)
                changed += 1
        return changed


class PgNotificationRepo:
    """Satisfies the NotificationRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, notification: Notification) -> None:
        self._session.add(
            NotificationRow(
                id=notification.id,
                user_id=notification.user_id,
                type=notification.type,
                title=notification.title,
                message=notification.message,
                link_to=notification.link_to,
                is_read=notification.is_read,
                created_at=notification.created_at,
            )
        )
        await self._session.flush()

    async def list_for_user(
        self, user_id: UUID, *, offset: int, limit: int
    ) -> tuple[list[Notification], int]:
        base = select(NotificationRow).where(NotificationRow.user_id == user_id)
        total = await self._session.scalar(
            select(func.count()).select_from(base.subquery())
        )
        rows = await self._session.execute(
            base.order_by(NotificationRow.created_at.desc()).offset(offset).limit(limit)
        )
        return [_row_to_notification(r) for r in rows.scalars()], int(total or 0)

    async def count_unread(self, user_id: UUID) -> int:
        total = await self._session.scalar(
            select(func.count())
            .select_from(NotificationRow)
            .where(NotificationRow.user_id == user_id, NotificationRow.is_read.is_(False))
        )
        return int(total or 0)

    async def mark_read(self, user_id: UUID, notification_id: UUID) -> bool:
        result = await self._session.execute(
            update(NotificationRow)
            .where(
                NotificationRow.id == notification_id,
                NotificationRow.user_id == user_id,
            )
            .values(is_read=True)
        )
        return result.rowcount > 0

    async def mark_all_read(self, user_id: UUID) -> int:
        result = await self._session.execute(
            update(NotificationRow)
            .where(NotificationRow.user_id == user_id, NotificationRow.is_read.is_(False))
            .values(is_read=True)
        )
        return result.rowcount


def _row_to_notification(row: NotificationRow) -> Notification:
    return Notification(
        id=row.id,
        user_id=row.user_id,
        type=row.type,
        title=row.title,
        message=row.message,
        link_to=row.link_to,
        is_read=row.is_read,
        created_at=row.created_at,
    )


# Module-level singleton used whenever DATABASE_URL is unset.
notification_repo = InMemoryNotificationRepo()
