"""Login and current-user endpoints.

POST /v1/auth/login exchanges email + password for an ES256 bearer token
whose `roles` claim drives every role guard in app.api.dependencies.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from app.api.dependencies import CurrentUser, Users
from app.api.envelope import Envelope, ok
from app.api.ratelimit import require_rate_limit
from app.api.schemas import UserOut
from app.services import auth_service, token_service, users_service
from app.services.rate_limiter import LOGIN_LIMIT

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/auth", tags=["auth"])


class LoginIn(BaseModel):
    email: str
    password: str


class TokenOut(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserOut


@router.post(
    "/login",
    response_model=Envelope[TokenOut],
    dependencies=[Depends(require_rate_limit(LOGIN_LIMIT))],
)
async def login(payload: LoginIn, users: Users) -> dict:
    user = await auth_service.authenticate_user(users, payload.email, payload.password)
    if user is None:
        logger.warning("Login failed email=%s", payload.email)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token = token_service.create_access_token(sub=str(user.id), roles=list(user.roles))
    logger.info("Login succeeded user=%s", user.id)
    return ok(
        TokenOut(
            access_token=token,
            expires_in=token_service.ACCESS_TOKEN_TTL_MIN * 60,
            user=UserOut.model_validate(user),
        ),
        "Login successful",
    )


@router.get("/me", response_model=Envelope[UserOut])
async def me(principal: CurrentUser, users: Users) -> dict:
    user = await users_service.get_user(users, principal.uid)
    return ok(UserOut.model_validate(user))
