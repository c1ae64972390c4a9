from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID, uuid4

from app.models.course import utcnow


@dataclass(frozen=True, slots=True)
class Notification:
    id: UUID
    user_id: UUID
    type: str  # COURSE_ENROLLED|COURSE_REMOVED|COURSE_FINISHED|...
    title: str
    message: str
    link_to: str | None = None
    is_read: bool = False
    created_at: datetime | None = None

    @staticmethod
    def new(
        *,
        user_id: UUID,
        type: str,
        title: str,
        message: str,
        link_to: str | None = None,
    ) -> Notification:
        return Notification(
            id=uuid4(),
            user_id=user_id,
            type=type,
            title=title,
            message=message,
            link_to=link_to,
            created_at=utcnow(),
        )
