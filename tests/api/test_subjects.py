from __future__ import annotations

from uuid import UUID, uuid4

from app.models.user import TRAINEE
from tests.conftest import auth, make_course, make_user, subjects_of, tasks_of


def test_list_subjects_with_tasks(client, trainee) -> None:
    course = make_course(subjects=2, tasks=1, trainees=[trainee])

    r = client.get(f"/v1/courses/{course.id}/subjects", headers=auth(trainee))

    assert r.status_code == 200
    data = r.json()["data"]
    assert [s["title"] for s in data] == ["Subject 1", "Subject 2"]
    assert [t["title"] for t in data[1]["tasks"]] == ["Task 2.1"]


def test_list_subjects_hidden_from_outsiders(client, trainee) -> None:
    course = make_course()
    r = client.get(f"/v1/courses/{course.id}/subjects", headers=auth(trainee))
    assert r.status_code == 403


def test_trainer_adds_subject_with_tasks(client, trainer) -> None:
    course = make_course(trainers=[trainer])

    r = client.post(
        f"/v1/courses/{course.id}/subjects",
        json={"title": "Testing", "tasks": [{"title": "pytest"}, {"title": "fixtures"}]},
        headers=auth(trainer),
    )

    assert r.status_code == 201
    data = r.json()["data"]
    assert data["position"] == 2
    assert data["status"] == "NOT_STARTED"
    assert [t.title for t in tasks_of(UUID(data["id"]))] == ["pytest", "fixtures"]


def test_blank_subject_title_is_rejected(client, trainer) -> None:
    course = make_course(trainers=[trainer])
    r = client.post(
        f"/v1/courses/{course.id}/subjects", json={"title": "  "}, headers=auth(trainer)
    )
    assert r.status_code == 400
    assert r.json()["message"] == "Title is required"


def test_get_subject(client, trainer) -> None:
    course = make_course(tasks=3, trainers=[trainer])
    subject = subjects_of(course)[0]

    r = client.get(f"/v1/subjects/{subject.id}", headers=auth(trainer))

    assert r.status_code == 200
    assert len(r.json()["data"]["tasks"]) == 3


def test_unknown_subject_is_404(client, trainer) -> None:
    r = client.get(f"/v1/subjects/{uuid4()}", headers=auth(trainer))
    assert r.status_code == 404
    assert r.json()["message"] == "Subject not found"


def test_update_subject(client, trainer) -> None:
    course = make_course(trainers=[trainer])
    subject = subjects_of(course)[0]

    r = client.put(
        f"/v1/subjects/{subject.id}",
        json={"title": "Renamed", "position": 7},
        headers=auth(trainer),
    )

    assert r.status_code == 200
    assert (r.json()["data"]["title"], r.json()["data"]["position"]) == ("Renamed", 7)


def test_delete_subject_only_before_start(client, trainer) -> None:
    course = make_course(subjects=2, trainers=[trainer], start=True)
    first, second = subjects_of(course)

    r = client.delete(f"/v1/subjects/{first.id}", headers=auth(trainer))
    assert r.status_code == 400

    r = client.delete(f"/v1/subjects/{second.id}", headers=auth(trainer))
    assert r.status_code == 200
    assert r.json()["message"] == "Subject deleted"
    assert [s.id for s in subjects_of(course)] == [first.id]


def test_add_task_to_subject(client, trainer) -> None:
    course = make_course(tasks=1, trainers=[trainer])
    subject = subjects_of(course)[0]

    r = client.post(
        f"/v1/subjects/{subject.id}/tasks",
        json={"title": "Extra", "description": "bonus"},
        headers=auth(trainer),
    )

    assert r.status_code == 201
    assert r.json()["data"]["position"] == 2
    assert len(tasks_of(subject.id)) == 2


def test_trainee_cannot_manage_subjects(client, trainee) -> None:
    course = make_course(trainees=[trainee])
    subject = subjects_of(course)[0]
    r = client.post(f"/v1/subjects/{subject.id}/tasks", json={"title": "x"}, headers=auth(trainee))
    assert r.status_code == 403


# ---- grading ----


def test_subject_trainees_view(client, trainer) -> None:
    t1, t2 = make_user(TRAINEE), make_user(TRAINEE)
    course = make_course(tasks=2, trainers=[trainer], trainees=[t1, t2], start=True)
    subject = subjects_of(course)[0]
    task = tasks_of(subject.id)[0]
    client.post(f"/v1/tasks/{task.id}/complete", headers=auth(t1))

    r = client.get(f"/v1/subjects/{subject.id}/trainees", headers=auth(trainer))

    assert r.status_code == 200
    rows = {row["trainee_id"]: row for row in r.json()["data"]}
    assert rows[str(t1.id)]["percent"] == 50
    assert rows[str(t1.id)]["record"]["status"] == "IN_PROGRESS"
    assert rows[str(t2.id)]["completed_tasks"] == 0
    assert rows[str(t2.id)]["enrollment_status"] == "ACTIVE"


def test_grade_trainee(client, trainer, trainee) -> None:
    course = make_course(trainers=[trainer], trainees=[trainee])
    subject = subjects_of(course)[0]

    r = client.put(
        f"/v1/subjects/{subject.id}/trainees/{trainee.id}/grade",
        json={"grade": 92, "feedback": "Great work"},
        headers=auth(trainer),
    )

    assert r.status_code == 200
    assert r.json()["message"] == "Grade saved"
    assert (r.json()["data"]["grade"], r.json()["data"]["feedback"]) == (92, "Great work")


def test_grade_out_of_range(client, trainer, trainee) -> None:
    course = make_course(trainers=[trainer], trainees=[trainee])
    subject = subjects_of(course)[0]
    r = client.put(
        f"/v1/subjects/{subject.id}/trainees/{trainee.id}/grade",
        json={"grade": 120},
        headers=auth(trainer),
    )
    assert r.status_code == 400
    assert r.json()["message"] == "Grade must be between 0 and 100"


# ---- lifecycle ----


def test_start_and_finish_subject(client, trainer, trainee) -> None:
    course = make_course(subjects=2, tasks=2, trainers=[trainer], trainees=[trainee], start=True)
    second = subjects_of(course)[1]

    r = client.post(f"/v1/subjects/{second.id}/start", headers=auth(trainer))
    assert r.status_code == 200
    assert r.json()["data"]["status"] == "IN_PROGRESS"

    r = client.post(f"/v1/subjects/{second.id}/finish", headers=auth(trainer))
    assert r.status_code == 200
    assert r.json()["data"]["status"] == "FINISHED"

    progress = client.get(f"/v1/trainee/courses/{course.id}/progress", headers=auth(trainee))
    subjects = progress.json()["data"]["subjects"]
    assert subjects[1]["status"] == "FINISHED"
    assert subjects[1]["completed_tasks"] == 2
    assert progress.json()["data"]["course_status"] == "IN_PROGRESS"


def test_start_subject_before_course_is_rejected(client, trainer) -> None:
    course = make_course(trainers=[trainer])
    subject = subjects_of(course)[0]
    r = client.post(f"/v1/subjects/{subject.id}/start", headers=auth(trainer))
    assert r.status_code == 400
    assert r.json()["message"] == "Course must be in progress to start subject"
