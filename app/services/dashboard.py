"""Read-only dashboards, one per role.

Each one is a single aggregate over the repositories.  The trainee's is
built on the cached progress summaries; the trainer's and supervisor's
read the course tables directly.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from uuid import UUID

from app.core.errors import NotFoundError
from app.models.course import FINISHED, IN_PROGRESS, NOT_STARTED, Course, utcnow
from app.models.enrollment import ACTIVE, COMPLETED, PASS
from app.models.report import DailyReport
from app.models.user import ADMIN, SUPERVISOR, TRAINEE, TRAINER
from app.repos.notification_repo import NotificationRepo
from app.repos.report_repo import ReportRepo
from app.repos.training_repo import TrainingRepo
from app.repos.user_repo import UserRepo
from app.services.progress_report import all_progress, percent

RECENT = 5
RECENT_WINDOW = timedelta(days=7)
PREVIEW_CHARS = 100

# Page size for "every row" reads; dashboards never page.
_ALL = 10_000


def _iso(value) -> str | None:
    return value.isoformat() if value is not None else None


def _report_brief(report: DailyReport) -> dict:
    content = report.content
    if len(content) > PREVIEW_CHARS:
        content = content[:PREVIEW_CHARS] + "..."
    return {
        "id": str(report.id),
        "trainee_id": str(report.trainee_id),
        "report_date": report.report_date.isoformat(),
        "content": content,
        "created_at": _iso(report.created_at),
    }


def _course_brief(course: Course) -> dict:
    return {
        "course_id": str(course.id),
        "title": course.title,
        "status": course.status,
        "start_date": _iso(course.start_date),
        "end_date": _iso(course.end_date),
    }


async def _count_users(users: UserRepo, *roles: str) -> int:
    """Active users holding any of `roles`, each counted once."""
    seen: set[UUID] = set()
    for role in roles:
        found, _ = await users.list_users(role=role, offset=0, limit=_ALL)
        seen.update(u.id for u in found if u.is_active)
    return len(seen)


# ---------------------------------------------------------------------------
# Trainee
# ---------------------------------------------------------------------------


async def trainee_dashboard(
    repo: TrainingRepo,
    reports: ReportRepo,
    notifications: NotificationRepo,
    trainee_id: UUID,
) -> dict:
    summaries = await all_progress(repo, trainee_id)
    now = utcnow()

    courses = []
    upcoming = []
    total_tasks = completed_tasks = 0
    for summary in summaries:
        course_total = sum(s["total_tasks"] for s in summary["subjects"])
        course_done = sum(s["completed_tasks"] for s in summary["subjects"])
        total_tasks += course_total
        completed_tasks += course_done
        courses.append(
            {
                "course_id": summary["course_id"],
                "title": summary["course_title"],
                "status": summary["course_status"],
                "enrollment_status": summary["enrollment_status"],
                "overall_percent": summary["overall_percent"],
                "completed_tasks": course_done,
                "total_tasks": course_total,
                "task_percent": percent(course_done, course_total),
            }
        )
        for subject in summary["subjects"]:
            for task in subject["tasks"]:
                due = task["due_date"]
                if due is None or task["status"] == COMPLETED:
                    continue
                due_at = datetime.fromisoformat(due)
                if due_at.tzinfo is None:
                    due_at = due_at.replace(tzinfo=UTC)
                if due_at < now:
                    continue
                upcoming.append(
                    {
                        "task_id": task["task_id"],
                        "title": task["title"],
                        "due_date": due,
                        "subject_id": subject["subject_id"],
                        "subject_title": subject["title"],
                        "course_id": summary["course_id"],
                        "course_title": summary["course_title"],
                    }
                )
    upcoming.sort(key=lambda t: t["due_date"])

    recent, total_reports = await reports.list_reports(
        trainee_ids=[trainee_id], limit=RECENT
    )
    statuses = [c["status"] for c in courses]
    return {
        "courses": courses,
        "statistics": {
            "total_courses": len(courses),
            "active_courses": statuses.count(IN_PROGRESS),
            "completed_courses": statuses.count(FINISHED),
            "total_tasks": total_tasks,
            "completed_tasks": completed_tasks,
            "completion_rate": percent(completed_tasks, total_tasks),
            "total_reports": total_reports,
            "unread_notifications": await notifications.count_unread(trainee_id),
        },
        "upcoming_deadlines": upcoming[:RECENT],
        "recent_reports": [_report_brief(r) for r in recent],
    }


# ---------------------------------------------------------------------------
# Trainer
# ---------------------------------------------------------------------------


async def trainer_dashboard(
    repo: TrainingRepo, reports: ReportRepo, trainer_id: UUID
) -> dict:
    courses, _ = await repo.list_courses(trainer_id=trainer_id, limit=_ALL)

    out = []
    trainee_ids: set[UUID] = set()
    enrollments = active = 0
    for course in courses:
        subjects = await repo.list_subjects(course.id)
        trainees = await repo.list_course_trainees(course.id)
        trainee_ids.update(ct.trainee_id for ct in trainees)
        enrollments += len(trainees)
        active += sum(1 for ct in trainees if ct.status == ACTIVE)
        out.append(
            _course_brief(course)
            | {"subject_count": len(subjects), "trainee_count": len(trainees)}
        )

    recent: list[DailyReport] = []
    if trainee_ids:
        recent, _ = await reports.list_reports(trainee_ids=trainee_ids, limit=RECENT)

    return {
        "courses": out,
        "statistics": {
            "total_courses": len(courses),
            "active_courses": sum(1 for c in courses if c.status == IN_PROGRESS),
            "total_trainees": enrollments,
            "active_trainees": active,
        },
        "recent_reports": [_report_brief(r) for r in recent],
    }


# ---------------------------------------------------------------------------
# Supervisor
# ---------------------------------------------------------------------------


async def _course_task_percent(repo: TrainingRepo, course: Course, trainees: int) -> int:
    """Completed trainee tasks over tasks x enrolled trainees."""
    task_ids = [
        t.id
        for s in await repo.list_subjects(course.id)
        for t in await repo.list_tasks(s.id)
    ]
    if not task_ids or not trainees:
        return 0
    done = sum(
        1
        for tt in await repo.list_trainee_tasks(task_ids=task_ids)
        if tt.status == COMPLETED
    )
    return percent(done, len(task_ids) * trainees)


async def supervisor_dashboard(
    repo: TrainingRepo, users: UserRepo, reports: ReportRepo
) -> dict:
    courses, total_courses = await repo.list_courses(limit=_ALL)

    enrollment_counts = {ACTIVE: 0, PASS: 0}
    active_courses = []
    for course in courses:
        trainees = await repo.list_course_trainees(course.id)
        for ct in trainees:
            if ct.status in enrollment_counts:
                enrollment_counts[ct.status] += 1
        if course.status == IN_PROGRESS and len(active_courses) < RECENT:
            active_courses.append(
                _course_brief(course)
                | {
                    "trainee_count": len(trainees),
                    "subject_count": len(await repo.list_subjects(course.id)),
                    "progress": await _course_task_percent(repo, course, len(trainees)),
                }
            )

    recent, _ = await reports.list_reports(
        created_after=utcnow() - RECENT_WINDOW, limit=RECENT * 2
    )
    statuses = [c.status for c in courses]
    return {
        "stats": {
            "courses": {
                "total": total_courses,
                "active": statuses.count(IN_PROGRESS),
                "upcoming": statuses.count(NOT_STARTED),
                "completed": statuses.count(FINISHED),
            },
            "trainees": {
                "total": await _count_users(users, TRAINEE),
                "active": enrollment_counts[ACTIVE],
                "passed": enrollment_counts[PASS],
            },
            "staff": {
                "trainers": await _count_users(users, TRAINER),
                "supervisors": await _count_users(users, SUPERVISOR, ADMIN),
            },
        },
        "active_courses": active_courses,
        "recent_reports": [_report_brief(r) for r in recent],
    }


async def trainee_details(
    repo: TrainingRepo, users: UserRepo, reports: ReportRepo, trainee_id: UUID
) -> dict:
    """One trainee as a supervisor sees them: every course's progress plus reports."""
    user = await users.get_by_id(trainee_id)
    if user is None or not user.has_role(TRAINEE):
        raise NotFoundError("Trainee not found")

    recent, total_reports = await reports.list_reports(
        trainee_ids=[trainee_id], limit=RECENT
    )
    return {
        "trainee": {
            "id": str(user.id),
            "email": user.email,
            "full_name": user.full_name,
            "is_active": user.is_active,
        },
        "courses": await all_progress(repo, trainee_id),
        "total_reports": total_reports,
        "recent_reports": [_report_brief(r) for r in recent],
    }
