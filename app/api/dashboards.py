"""Trainer and supervisor dashboards.

The trainee dashboard lives with the rest of the trainee's own view in
app.api.trainee.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from fastapi import APIRouter

from app.api.dependencies import (
    Reports,
    SupervisorOrAdmin,
    Training,
    TrainerOrAbove,
    Users,
)
from app.api.envelope import Envelope, ok
from app.services import dashboard

trainer_router = APIRouter(prefix="/v1/trainer", tags=["dashboards"])
supervisor_router = APIRouter(prefix="/v1/supervisor", tags=["dashboards"])


@trainer_router.get("/dashboard", response_model=Envelope[dict[str, Any]])
async def trainer_dashboard(
    principal: TrainerOrAbove, repo: Training, reports: Reports
) -> dict:
    return ok(await dashboard.trainer_dashboard(repo, reports, principal.uid))


@supervisor_router.get("/dashboard", response_model=Envelope[dict[str, Any]])
async def supervisor_dashboard(
    _principal: SupervisorOrAdmin, repo: Training, users: Users, reports: Reports
) -> dict:
    return ok(await dashboard.supervisor_dashboard(repo, users, reports))


@supervisor_router.get("/trainees/{trainee_id}", response_model=Envelope[dict[str, Any]])
async def trainee_details(
    trainee_id: UUID,
    _principal: SupervisorOrAdmin,
    repo: Training,
    users: Users,
    reports: Reports,
) -> dict:
    return ok(await dashboard.trainee_details(repo, users, reports, trainee_id))
