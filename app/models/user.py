from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID, uuid4

ADMIN = "admin"
SUPERVISOR = "supervisor"
TRAINER = "trainer"
TRAINEE = "trainee"

ROLES = frozenset({ADMIN, SUPERVISOR, TRAINER, TRAINEE})


def normalize_email(email: str) -> str:
    return email.strip().lower()


@dataclass(frozen=True, slots=True)
class User:
    id: UUID
    email: str
    password_hash: str
    full_name: str = ""
    roles: tuple[str, ...] = ()  # immutable
    is_active: bool = True

    def has_role(self, role: str) -> bool:
        return role in self.roles

    @staticmethod
    def new(
        *,
        email: str,
        password_hash: str,
        full_name: str = "",
        roles: tuple[str, ...] = (),
    ) -> User:
        return User(
            id=uuid4(),
            email=normalize_email(email),
            password_hash=password_hash,
            full_name=full_name,
            roles=roles,
            is_active=True,
        )
