from __future__ import annotations

import logging
from typing import Annotated

import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.engine import get_async_session
from app.models.principal import Principal
from app.models.user import ADMIN, SUPERVISOR, TRAINEE, TRAINER
from app.repos.notification_repo import (
    NotificationRepo,
    PgNotificationRepo,
    notification_repo,
)
from app.repos.pg_training_repo import PgTrainingRepo
from app.repos.pg_user_repo import PgUserRepo
from app.repos.report_repo import PgReportRepo, ReportRepo, report_repo
from app.repos.training_repo import TrainingRepo, training_repo
from app.repos.user_repo import UserRepo, user_repo
from app.services import token_service

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/v1/auth/login")


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def require_user(
    request: Request,
    raw_token: Annotated[str, Depends(oauth2_scheme)],
) -> Principal:
    """Validate the bearer token and return the caller as a Principal."""
    try:
        claims = token_service.decode_access_token(raw_token)
    except jwt.ExpiredSignatureError:
        logger.info("Rejected expired token")
        raise _unauthorized("Token expired") from None
    except jwt.InvalidTokenError as e:
        logger.warning("Rejected invalid token: %s", e)
        raise _unauthorized("Invalid token") from None

    principal = Principal(user_id=claims["sub"], roles=frozenset(claims.get("roles", ())))
    # read by RequestContextMiddleware for the summary log line
    request.state.user_id = principal.user_id
    return principal


def require_roles(*roles: str):
    """Dependency factory: the caller must hold at least one of `roles`.

    Usage: Depends(require_roles(ADMIN, SUPERVISOR))
    """
    wanted = frozenset(roles)

    def _guard(principal: Annotated[Principal, Depends(require_user)]) -> Principal:
        if principal.has_any_role(wanted):
            return principal
        logger.warning(
            "Access denied: user=%s roles=%s needs one of %s",
            principal.user_id,
            sorted(principal.roles),
            sorted(wanted),
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Insufficient permissions",
        )

    return _guard


CurrentUser = Annotated[Principal, Depends(require_user)]
Admin = Annotated[Principal, Depends(require_roles(ADMIN))]
Trainee = Annotated[Principal, Depends(require_roles(TRAINEE))]
SupervisorOrAdmin = Annotated[Principal, Depends(require_roles(ADMIN, SUPERVISOR))]
TrainerOrAbove = Annotated[Principal, Depends(require_roles(ADMIN, SUPERVISOR, TRAINER))]


# ---------------------------------------------------------------------------
# Repository selection
# ---------------------------------------------------------------------------
# The session dependency yields None without DATABASE_URL; repos then fall
# back to the in-memory singletons.  FastAPI caches get_async_session per
# request, so every repo in one request shares one unit of work.

Session = Annotated[AsyncSession | None, Depends(get_async_session)]


def get_training_repo(session: Session) -> TrainingRepo:
    return training_repo if session is None else PgTrainingRepo(session)


def get_user_repo(session: Session) -> UserRepo:
    return user_repo if session is None else PgUserRepo(session)


def get_notification_repo(session: Session) -> NotificationRepo:
    return notification_repo if session is None else PgNotificationRepo(session)


def get_report_repo(session: Session) -> ReportRepo:
    return report_repo if session is None else PgReportRepo(session)


Training = Annotated[TrainingRepo, Depends(get_training_repo)]
Users = Annotated[UserRepo, Depends(get_user_repo)]
Notifications = Annotated[NotificationRepo, Depends(get_notification_repo)]
Reports = Annotated[ReportRepo, Depends(get_report_repo)]
