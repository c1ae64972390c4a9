from __future__ import annotations

from collections.abc import Iterable
from dataclasses import replace
from typing import Protocol
from uuid import UUID

from app.core.errors import DuplicateError
from app.models.user import User


class UserRepo(Protocol):
    async def get_by_id(self, user_id: UUID) -> User | None: ...
    async def get_by_email(self, email: str) -> User | None: ...
    async def get_many(self, user_ids: Iterable[UUID]) -> dict[UUID, User]: ...
    async def list_users(
        self, *, role: str | None, offset: int, limit: int
    ) -> tuple[list[User], int]: ...
    async def add(self, user: User) -> None: ...
    async def save(self, user: User) -> None: ...
    async def update_password_hash(self, user_id: UUID, password_hash: str) -> None: ...


class InMemoryUserRepo:
    def __init__(self) -> None:
        self._by_email: dict[str, User] = {}
        self._by_id: dict[UUID, User] = {}

    def clear(self) -> None:
        self._by_email.clear()
        self._by_id.clear()

    async def get_by_id(self, user_id: UUID) -> User | None:
        return self._by_id.get(user_id)

    async def get_by_email(self, email: str) -> User | None:
        return self._by_email.get(email)

    async def get_many(self, user_ids: Iterable[UUID]) -> dict[UUID, User]:
        return {uid: self._by_id[uid] for uid in user_ids if uid in self._by_id}

    async def list_users(
        self, *, role: str | None, offset: int, limit: int
    ) -> tuple[list[User], int]:
        users = sorted(self._by_id.values(), key=lambda u: u.email)
        if role is not None:
            users = [u for u in users if role in u.roles]
        return users[offset : offset + limit], len(users)

    async def add(self, user: User) -> None:
        if user.email in self._by_email:
            raise DuplicateError("Email already exists")
        self._by_email[user.email] = user
        self._by_id[user.id] = user

    async def save(self, user: User) -> None:
        if user.id not in self._by_id:
            raise KeyError("user not found")
        self._by_id[user.id] = user
        self._by_email[user.email] = user

    async def update_password_hash(self, user_id: UUID, password_hash: str) -> None:
        u = self._by_id.get(user_id)
        if u is None:
            raise KeyError("user not found")
        await self.save(replace(u, password_hash=password_hash))


# Module-level singleton used whenever DATABASE_URL is unset.
user_repo = InMemoryUserRepo()
