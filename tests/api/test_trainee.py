from __future__ import annotations

from app.models.user import TRAINEE
from tests.conftest import auth, make_course, make_user, subjects_of, tasks_of


def test_two_trainees_finish_the_course_over_http(client, trainer) -> None:
    t1, t2 = make_user(TRAINEE), make_user(TRAINEE)
    course = make_course(subjects=1, tasks=2, trainers=[trainer], trainees=[t1, t2], start=True)
    subject = subjects_of(course)[0]
    tasks = tasks_of(subject.id)

    for task in tasks:
        client.post(f"/v1/tasks/{task.id}/complete", headers=auth(t1))
    r = client.post(f"/v1/trainee/subjects/{subject.id}/complete", headers=auth(t1))
    assert r.status_code == 200
    assert r.json()["message"] == "Subject completed"
    first = r.json()["data"]
    assert first["trainee_subject"]["status"] == "FINISHED"
    assert first["subject_finished"] is False
    assert first["course_finished"] is False

    for task in tasks:
        client.post(f"/v1/tasks/{task.id}/complete", headers=auth(t2))
    r = client.post(f"/v1/trainee/subjects/{subject.id}/complete", headers=auth(t2))
    second = r.json()["data"]
    assert second["subject_finished"] is True
    assert second["trainee_finished_course"] is True
    assert second["course_finished"] is True

    detail = client.get(f"/v1/courses/{course.id}", headers=auth(trainer)).json()["data"]
    assert detail["status"] == "FINISHED"
    assert detail["subjects"][0]["status"] == "FINISHED"

    for t in (t1, t2):
        notes = client.get("/v1/notifications", headers=auth(t)).json()["data"]
        assert [n["type"] for n in notes] == ["COURSE_FINISHED"]


def test_complete_subject_without_tasks_done_finishes_them(client, trainee) -> None:
    course = make_course(tasks=3, trainees=[trainee, make_user(TRAINEE)], start=True)
    subject = subjects_of(course)[0]

    client.post(f"/v1/trainee/subjects/{subject.id}/complete", headers=auth(trainee))

    progress = client.get(f"/v1/trainee/courses/{course.id}/progress", headers=auth(trainee))
    row = progress.json()["data"]["subjects"][0]
    assert (row["completed_tasks"], row["percent"]) == (3, 100)
    assert {t["status"] for t in row["tasks"]} == {"COMPLETED"}


def test_complete_subject_not_in_progress(client, trainee) -> None:
    course = make_course(trainees=[trainee])
    subject = subjects_of(course)[0]
    r = client.post(f"/v1/trainee/subjects/{subject.id}/complete", headers=auth(trainee))
    assert r.status_code == 400
    assert r.json()["message"] == "Subject is not in progress"


def test_progress_of_one_course(client, trainee) -> None:
    course = make_course(subjects=2, tasks=2, trainees=[trainee], start=True)
    task = tasks_of(subjects_of(course)[0].id)[0]
    client.post(f"/v1/tasks/{task.id}/complete", headers=auth(trainee))

    r = client.get(f"/v1/trainee/courses/{course.id}/progress", headers=auth(trainee))

    assert r.status_code == 200
    data = r.json()["data"]
    assert data["course_id"] == str(course.id)
    assert data["total_subjects"] == 2
    assert data["subjects"][0]["percent"] == 50


def test_progress_of_foreign_course_is_forbidden(client, trainee) -> None:
    course = make_course()
    r = client.get(f"/v1/trainee/courses/{course.id}/progress", headers=auth(trainee))
    assert r.status_code == 403


def test_progress_across_courses(client, trainee) -> None:
    make_course(title="A", trainees=[trainee])
    make_course(title="B", trainees=[trainee])

    r = client.get("/v1/trainee/progress", headers=auth(trainee))

    assert r.status_code == 200
    assert {c["course_title"] for c in r.json()["data"]} == {"A", "B"}


def test_trainer_has_no_trainee_progress(client, trainer) -> None:
    r = client.get("/v1/trainee/progress", headers=auth(trainer))
    assert r.status_code == 403
