"""PostgreSQL implementation of UserRepo."""

from __future__ import annotations

from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import DuplicateError
from app.db.tables import UserRow
from app.models.user import User


class PgUserRepo:
    """Satisfies the UserRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, user_id: UUID) -> User | None:
        row = await self._session.get(UserRow, user_id)
        return None if row is None else _row_to_user(row)

    async def get_by_email(self, email: str) -> User | None:
        stmt = select(UserRow).where(UserRow.email == email)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return None if row is None else _row_to_user(row)

    async def get_many(self, user_ids: Iterable[UUID]) -> dict[UUID, User]:
        ids = list(user_ids)
        if not ids:
            return {}
        stmt = select(UserRow).where(UserRow.id.in_(ids))
        rows = (await self._session.execute(stmt)).scalars()
        return {row.id: _row_to_user(row) for row in rows}

    async def list_users(
        self, *, role: str | None, offset: int, limit: int
    ) -> tuple[list[User], int]:
        stmt = select(UserRow)
        if role is not None:
            stmt = stmt.where(UserRow.roles.any(role))
        total = await self._session.scalar(
            select(func.count()).select_from(stmt.subquery())
        )
        rows = await self._session.execute(
            stmt.order_by(UserRow.email).offset(offset).limit(limit)
        )
        return [_row_to_user(r) for r in rows.scalars()], int(total or 0)

    async def add(self, user: User) -> None:
        row = UserRow(
            id=user.id,
            email=user.email,
            password_hash=user.password_hash,
            full_name=user.full_name,
            roles=list(user.roles),
            is_active=user.is_active,
        )
        try:
            async with self._session.begin_nested():
                self._session.add(row)
                await self._session.flush()
        except IntegrityError:
            raise DuplicateError("Email already exists") from None

    async def save(self, user: User) -> None:
        stmt = (
            update(UserRow)
            .where(UserRow.id == user.id)
            .values(
                email=user.email,
                full_name=user.full_name,
                roles=list(user.roles),
                is_active=user.is_active,
                password_hash=user.password_hash,
            )
        )
        await self._session.execute(stmt)

    async def update_password_hash(self, user_id: UUID, password_hash: str) -> None:
        stmt = (
            update(UserRow)
            .where(UserRow.id == user_id)
            .values(password_hash=password_hash)
        )
        await self._session.execute(stmt)


def _row_to_user(row: UserRow) -> User:
    return User(
        id=row.id,
        email=row.email,
        password_hash=row.password_hash,
        full_name=row.full_name or "",
        roles=tuple(row.roles) if row.roles else (),
        is_active=row.is_active,
    )
