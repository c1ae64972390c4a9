from __future__ import annotations

import asyncio
from datetime import UTC, datetime

import pytest

from app.core.errors import NotFoundError, StateConflictError, ValidationError
from app.models.course import FINISHED, NOT_STARTED
from app.models.enrollment import PASS
from app.models.user import SUPERVISOR, TRAINEE, TRAINER
from app.repos.training_repo import training_repo as repo
from app.repos.user_repo import user_repo
from app.services import course_service, progression
from app.services.course_service import SubjectDraft, TaskDraft
from tests.conftest import make_course, make_user, subjects_of, tasks_of


def _create(**kw):
    kw.setdefault("title", "Git 101")
    kw.setdefault("subjects", [SubjectDraft(title="Basics", tasks=[TaskDraft(title="init")])])
    return asyncio.run(course_service.create_course(repo, user_repo, **kw))


# ---- create ----


def test_create_course_builds_ordered_content() -> None:
    course = _create(
        subjects=[
            SubjectDraft(title="One", tasks=[TaskDraft(title="a"), TaskDraft(title="b")]),
            SubjectDraft(title="Two", tasks=[TaskDraft(title="c")]),
        ]
    )

    assert course.status == NOT_STARTED
    subjects = subjects_of(course)
    assert [(s.title, s.position) for s in subjects] == [("One", 1), ("Two", 2)]
    assert [(t.title, t.position) for t in tasks_of(subjects[0].id)] == [("a", 1), ("b", 2)]


def test_create_course_keeps_explicit_positions() -> None:
    course = _create(
        subjects=[
            SubjectDraft(title="Late", position=5, tasks=[TaskDraft(title="x")]),
            SubjectDraft(title="Early", position=2, tasks=[TaskDraft(title="y")]),
        ]
    )
    assert [s.title for s in subjects_of(course)] == ["Early", "Late"]


def test_create_course_reports_every_content_error() -> None:
    with pytest.raises(ValidationError) as exc:
        _create(
            title="Broken",
            subjects=[
                SubjectDraft(title="", tasks=[TaskDraft(title="ok")]),
                SubjectDraft(title="No tasks"),
            ],
        )

    fields = {e["field"] for e in exc.value.errors}
    assert fields == {"subjects[0].title", "subjects[1].tasks"}
    assert asyncio.run(repo.list_courses(offset=0, limit=10)) == ([], 0)


def test_create_course_requires_subjects_and_title() -> None:
    with pytest.raises(ValidationError):
        _create(subjects=[])
    with pytest.raises(ValidationError, match="Title is required"):
        _create(title="   ")


def test_create_course_rejects_end_before_start() -> None:
    with pytest.raises(ValidationError):
        _create(
            start_date=datetime(2026, 5, 1, tzinfo=UTC),
            end_date=datetime(2026, 4, 1, tzinfo=UTC),
        )


def test_create_course_assigns_trainers_and_supervisors() -> None:
    trainer, supervisor = make_user(TRAINER), make_user(SUPERVISOR)
    course = _create(trainer_ids=[trainer.id, supervisor.id])
    assert set(asyncio.run(repo.list_trainer_ids(course.id))) == {trainer.id, supervisor.id}


def test_create_course_rejects_trainee_as_trainer() -> None:
    trainee = make_user(TRAINEE)
    with pytest.raises(ValidationError, match="trainer role"):
        _create(trainer_ids=[trainee.id])


# ---- update / clone ----


def test_update_course_changes_listed_fields() -> None:
    course = make_course()
    updated = asyncio.run(
        course_service.update_course(repo, course.id, title="Renamed", description="new")
    )
    assert (updated.title, updated.description) == ("Renamed", "new")
    assert asyncio.run(repo.get_course(course.id)).title == "Renamed"


def test_update_course_rejects_status_changes() -> None:
    course = make_course()
    with pytest.raises(ValidationError, match="Unknown fields: status"):
        asyncio.run(course_service.update_course(repo, course.id, status=FINISHED))


def test_update_finished_course_dates_is_a_conflict() -> None:
    course = make_course(start=True)
    asyncio.run(progression.finish_course(repo, course.id))
    with pytest.raises(StateConflictError):
        asyncio.run(
            course_service.update_course(
                repo, course.id, end_date=datetime(2030, 1, 1, tzinfo=UTC)
            )
        )


def test_clone_copies_content_and_trainers_but_not_trainees() -> None:
    trainer = make_user(TRAINER)
    source = make_course(subjects=2, tasks=3, trainers=[trainer], trainees=[make_user(TRAINEE)], start=True)

    clone = asyncio.run(course_service.clone_course(repo, source.id, created_by=trainer.id))

    assert clone.status == NOT_STARTED
    assert clone.title == "Python Basics (Copy)"
    copied = subjects_of(clone)
    assert [s.title for s in copied] == ["Subject 1", "Subject 2"]
    assert all(s.status == NOT_STARTED for s in copied)
    assert [len(tasks_of(s.id)) for s in copied] == [3, 3]
    assert asyncio.run(repo.list_trainer_ids(clone.id)) == [trainer.id]
    assert asyncio.run(repo.list_course_trainees(clone.id)) == []


def test_clone_unknown_course_is_not_found() -> None:
    from uuid import uuid4

    with pytest.raises(NotFoundError):
        asyncio.run(course_service.clone_course(repo, uuid4(), created_by=None))


# ---- trainers ----


def test_remove_last_trainer_is_rejected() -> None:
    trainer = make_user(TRAINER)
    course = make_course(trainers=[trainer])
    with pytest.raises(StateConflictError, match="at least one trainer"):
        asyncio.run(course_service.remove_trainer(repo, course.id, trainer.id))


def test_remove_trainer_keeps_the_others() -> None:
    t1, t2 = make_user(TRAINER), make_user(TRAINER)
    course = make_course(trainers=[t1, t2])

    asyncio.run(course_service.remove_trainer(repo, course.id, t1.id))

    assert asyncio.run(repo.list_trainer_ids(course.id)) == [t2.id]


def test_remove_unassigned_trainer_is_not_found() -> None:
    course = make_course(trainers=[make_user(TRAINER)])
    with pytest.raises(NotFoundError):
        asyncio.run(course_service.remove_trainer(repo, course.id, make_user(TRAINER).id))


def test_add_trainers_is_idempotent() -> None:
    trainer = make_user(TRAINER)
    course = make_course(trainers=[trainer])
    ids = asyncio.run(course_service.add_trainers(repo, user_repo, course.id, [trainer.id]))
    assert ids == [trainer.id]


# ---- subjects and tasks ----


def test_new_subject_gets_records_for_enrolled_trainees() -> None:
    t = make_user(TRAINEE)
    course = make_course(subjects=1, trainees=[t])

    subject = asyncio.run(
        course_service.create_subject(
            repo, course.id, title="Extra", tasks=[TaskDraft(title="extra task")]
        )
    )

    assert subject.position == 2
    ct = asyncio.run(repo.get_course_trainee(course.id, t.id))
    record = asyncio.run(repo.get_trainee_subject(ct.id, subject.id))
    assert record is not None and record.status == NOT_STARTED
    assert [task.title for task in tasks_of(subject.id)] == ["extra task"]


def test_cannot_add_content_to_finished_course() -> None:
    course = make_course(start=True)
    asyncio.run(progression.finish_course(repo, course.id))
    subject = subjects_of(course)[0]

    with pytest.raises(StateConflictError):
        asyncio.run(course_service.create_subject(repo, course.id, title="Late"))
    with pytest.raises(StateConflictError):
        asyncio.run(course_service.create_task(repo, subject.id, title="Late"))


def test_create_task_appends_after_last_position() -> None:
    course = make_course(tasks=2)
    subject = subjects_of(course)[0]
    task = asyncio.run(course_service.create_task(repo, subject.id, title="Third"))
    assert task.position == 3


# ---- enrollment status and grading ----


def test_set_trainee_status() -> None:
    t = make_user(TRAINEE)
    course = make_course(trainees=[t])
    ct = asyncio.run(course_service.set_trainee_status(repo, course.id, t.id, PASS))
    assert ct.status == PASS


def test_set_trainee_status_rejects_unknown_status() -> None:
    t = make_user(TRAINEE)
    course = make_course(trainees=[t])
    with pytest.raises(ValidationError):
        asyncio.run(course_service.set_trainee_status(repo, course.id, t.id, "GRADUATED"))


def test_grade_trainee_stores_grade_and_feedback() -> None:
    t = make_user(TRAINEE)
    course = make_course(trainees=[t])
    subject = subjects_of(course)[0]

    record = asyncio.run(
        course_service.grade_trainee(repo, subject.id, t.id, grade=87, feedback="Solid")
    )

    assert (record.grade, record.feedback) == (87, "Solid")


@pytest.mark.parametrize("grade", [-1, 101])
def test_grade_out_of_range_is_rejected(grade) -> None:
    t = make_user(TRAINEE)
    course = make_course(trainees=[t])
    with pytest.raises(ValidationError):
        asyncio.run(
            course_service.grade_trainee(repo, subjects_of(course)[0].id, t.id, grade=grade)
        )


def test_grade_unenrolled_trainee_is_not_found() -> None:
    course = make_course()
    with pytest.raises(NotFoundError):
        asyncio.run(
            course_service.grade_trainee(
                repo, subjects_of(course)[0].id, make_user(TRAINEE).id, grade=50
            )
        )


def test_subject_trainees_reports_task_counts() -> None:
    t1, t2 = make_user(TRAINEE), make_user(TRAINEE)
    course = make_course(tasks=3, trainees=[t1, t2], start=True)
    subject = subjects_of(course)[0]
    first = tasks_of(subject.id)[0]
    asyncio.run(progression.complete_task(repo, t1.id, first.id))

    rows = asyncio.run(course_service.subject_trainees(repo, user_repo, subject.id))
    rows = {r.enrollment.trainee_id: r for r in rows}

    assert (rows[t1.id].completed_tasks, rows[t1.id].total_tasks) == (1, 3)
    assert rows[t1.id].percent == 33
    assert rows[t2.id].completed_tasks == 0
    assert rows[t1.id].user.email == t1.email
