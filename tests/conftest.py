from __future__ import annotations

import asyncio
from collections.abc import Iterable
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from app.api.ratelimit import _rate_limiter
from app.main import app
from app.models.course import Course
from app.models.user import SUPERVISOR, TRAINEE, TRAINER, User
from app.repos.notification_repo import notification_repo
from app.repos.report_repo import report_repo
from app.repos.training_repo import training_repo
from app.repos.user_repo import user_repo
from app.services import course_service, progression, token_service
from app.services.cache import cache_service
from app.services.course_service import SubjectDraft, TaskDraft
from app.services.task_queue import task_queue


@pytest.fixture(autouse=True)
def reset_stores() -> None:
    """Every in-memory backend starts empty so tests don't bleed."""
    training_repo.clear()
    user_repo.clear()
    notification_repo.clear()
    report_repo.clear()


@pytest.fixture(autouse=True)
def reset_rate_limiter() -> None:
    if hasattr(_rate_limiter, "clear"):
        _rate_limiter.clear()  # type: ignore[union-attr]


@pytest.fixture(autouse=True)
def reset_cache() -> None:
    if hasattr(cache_service, "clear"):
        cache_service.clear()  # type: ignore[union-attr]


@pytest.fixture(autouse=True)
def reset_task_queue() -> None:
    if hasattr(task_queue, "clear"):
        task_queue.clear()  # type: ignore[union-attr]


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


# ---------------------------------------------------------------------------
# Users and tokens
# ---------------------------------------------------------------------------


def mint_token(user_id: str | None = None, roles: Iterable[str] = ()) -> str:
    """Create a valid ES256 JWT without going through /v1/auth/login."""
    return token_service.create_access_token(
        sub=user_id or str(uuid4()), roles=list(roles)
    )


def make_user(
    *roles: str,
    email: str | None = None,
    full_name: str = "",
    password_hash: str = "x",
) -> User:
    """Persist a user in the in-memory repo."""
    user = User.new(
        email=email or f"{'-'.join(roles) or 'user'}-{uuid4().hex[:8]}@test.com",
        password_hash=password_hash,
        full_name=full_name,
        roles=tuple(roles),
    )
    asyncio.run(user_repo.add(user))
    return user


def auth(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {mint_token(str(user.id), user.roles)}"}


@pytest.fixture
def supervisor() -> User:
    return make_user(SUPERVISOR)


@pytest.fixture
def trainer() -> User:
    return make_user(TRAINER)


@pytest.fixture
def trainee() -> User:
    return make_user(TRAINEE)


# ---------------------------------------------------------------------------
# Courses
# ---------------------------------------------------------------------------


def make_course(
    *,
    subjects: int = 1,
    tasks: int = 2,
    trainers: Iterable[User] = (),
    trainees: Iterable[User] = (),
    start: bool = False,
    title: str = "Python Basics",
) -> Course:
    """Create a course with `subjects` x `tasks` content, then optionally
    enroll trainees and start it (which opens the first subject).
    """
    course = asyncio.run(
        course_service.create_course(
            training_repo,
            user_repo,
            title=title,
            subjects=[
                SubjectDraft(
                    title=f"Subject {i + 1}",
                    tasks=[TaskDraft(title=f"Task {i + 1}.{j + 1}") for j in range(tasks)],
                )
                for i in range(subjects)
            ],
            trainer_ids=[t.id for t in trainers],
        )
    )
    trainee_ids = [t.id for t in trainees]
    if trainee_ids:
        asyncio.run(
            progression.enroll_trainees(training_repo, user_repo, course.id, trainee_ids)
        )
    if start:
        course = asyncio.run(progression.start_course(training_repo, course.id))
    return course


def subjects_of(course: Course):
    return asyncio.run(training_repo.list_subjects(course.id))


def tasks_of(subject_id):
    return asyncio.run(training_repo.list_tasks(subject_id))
