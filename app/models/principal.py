from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from app.models.user import ADMIN, SUPERVISOR, TRAINER

_STAFF = frozenset({ADMIN, SUPERVISOR})
_TRAINERS = _STAFF | {TRAINER}


@dataclass(frozen=True, slots=True)
class Principal:
    """The caller, as read from a validated access token.

    user_id is the token's `sub` (a user UUID as a string); roles are the
    roles the token was minted with, not a fresh lookup.
    """

    user_id: str
    roles: frozenset[str]

    @property
    def uid(self) -> UUID:
        return UUID(self.user_id)

    def has_any_role(self, roles: frozenset[str]) -> bool:
        return not self.roles.isdisjoint(roles)

    def is_staff(self) -> bool:
        """Admins and supervisors see and manage every course."""
        return self.has_any_role(_STAFF)

    def is_trainer_or_above(self) -> bool:
        return self.has_any_role(_TRAINERS)
