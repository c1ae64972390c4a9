"""Task completion by trainees, and task deletion by course trainers."""

from __future__ import annotations

import logging
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from app.api.access import ensure_subject_trainer
from app.api.dependencies import Trainee, Training, TrainerOrAbove
from app.api.envelope import Envelope, ok
from app.api.ratelimit import require_rate_limit
from app.core.errors import NotFoundError
from app.services import progression
from app.services.progress_report import percent
from app.services.rate_limiter import WRITE_LIMIT

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/tasks", tags=["tasks"])

_write_limit = [Depends(require_rate_limit(WRITE_LIMIT))]


class TaskProgressOut(BaseModel):
    task_id: UUID
    status: str
    completed_tasks: int
    total_tasks: int
    percent: int


def _progress_out(progress: progression.TaskProgress) -> TaskProgressOut:
    return TaskProgressOut(
        task_id=progress.task_id,
        status=progress.status,
        completed_tasks=progress.completed_tasks,
        total_tasks=progress.total_tasks,
        percent=percent(progress.completed_tasks, progress.total_tasks),
    )


@router.post(
    "/{task_id}/complete",
    response_model=Envelope[TaskProgressOut],
    dependencies=_write_limit,
)
async def complete_task(task_id: UUID, principal: Trainee, repo: Training) -> dict:
    progress = await progression.complete_task(repo, principal.uid, task_id)
    return ok(_progress_out(progress), "Task completed")


@router.post(
    "/{task_id}/uncomplete",
    response_model=Envelope[TaskProgressOut],
    dependencies=_write_limit,
)
async def uncomplete_task(task_id: UUID, principal: Trainee, repo: Training) -> dict:
    progress = await progression.uncomplete_task(repo, principal.uid, task_id)
    return ok(_progress_out(progress), "Task marked as not completed")


@router.delete("/{task_id}", response_model=Envelope[None])
async def delete_task(task_id: UUID, principal: TrainerOrAbove, repo: Training) -> dict:
    task = await repo.get_task(task_id)
    if task is None:
        raise NotFoundError("Task not found")
    await ensure_subject_trainer(repo, principal, task.subject_id)
    await progression.delete_task(repo, task_id)
    return ok(None, "Task deleted")
