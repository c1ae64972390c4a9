from __future__ import annotations

from uuid import uuid4

from app.models.user import TRAINEE
from tests.conftest import auth, make_user


def _report(client, user, day: str = "2026-10-01", content: str = "Read the pytest docs"):
    r = client.post(
        "/v1/reports", json={"content": content, "report_date": day}, headers=auth(user)
    )
    assert r.status_code == 201, r.text
    return r.json()["data"]


# ---------------------------------------------------------------------------
# Writing
# ---------------------------------------------------------------------------


def test_trainee_creates_report(client, trainee) -> None:
    data = _report(client, trainee)

    assert data["trainee_id"] == str(trainee.id)
    assert data["report_date"] == "2026-10-01"
    assert data["content"] == "Read the pytest docs"


def test_one_report_per_day(client, trainee) -> None:
    _report(client, trainee)

    r = client.post(
        "/v1/reports",
        json={"content": "again", "report_date": "2026-10-01"},
        headers=auth(trainee),
    )

    assert r.status_code == 409
    assert r.json()["message"] == "Report already exists for this date"


def test_blank_content_rejected(client, trainee) -> None:
    r = client.post(
        "/v1/reports",
        json={"content": "   ", "report_date": "2026-10-01"},
        headers=auth(trainee),
    )
    assert r.status_code == 400
    assert r.json()["errors"][0]["field"] == "content"


def test_only_trainees_write_reports(client, trainer) -> None:
    r = client.post(
        "/v1/reports",
        json={"content": "x", "report_date": "2026-10-01"},
        headers=auth(trainer),
    )
    assert r.status_code == 403


def test_update_own_report(client, trainee) -> None:
    report = _report(client, trainee)

    r = client.put(
        f"/v1/reports/{report['id']}",
        json={"content": "Wrote fixtures"},
        headers=auth(trainee),
    )

    assert r.status_code == 200
    assert r.json()["data"]["content"] == "Wrote fixtures"
    assert r.json()["data"]["report_date"] == "2026-10-01"


def test_moving_report_onto_a_taken_date_conflicts(client, trainee) -> None:
    _report(client, trainee, "2026-10-01")
    second = _report(client, trainee, "2026-10-02")

    r = client.put(
        f"/v1/reports/{second['id']}",
        json={"report_date": "2026-10-01"},
        headers=auth(trainee),
    )

    assert r.status_code == 409


def test_cannot_edit_or_delete_someone_elses_report(client, trainee) -> None:
    other = make_user(TRAINEE)
    report = _report(client, other)

    put = client.put(
        f"/v1/reports/{report['id']}", json={"content": "mine now"}, headers=auth(trainee)
    )
    delete = client.delete(f"/v1/reports/{report['id']}", headers=auth(trainee))

    assert put.status_code == 403
    assert delete.status_code == 403


def test_delete_own_report(client, trainee) -> None:
    report = _report(client, trainee)

    r = client.delete(f"/v1/reports/{report['id']}", headers=auth(trainee))

    assert r.status_code == 200
    gone = client.get(f"/v1/reports/{report['id']}", headers=auth(trainee))
    assert gone.status_code == 404


# ---------------------------------------------------------------------------
# Reading
# ---------------------------------------------------------------------------


def test_trainee_lists_only_own_reports(client, trainee) -> None:
    other = make_user(TRAINEE)
    _report(client, trainee)
    _report(client, other)

    r = client.get(
        "/v1/reports", params={"trainee_id": str(other.id)}, headers=auth(trainee)
    )

    assert r.status_code == 200
    assert [d["trainee_id"] for d in r.json()["data"]] == [str(trainee.id)]


def test_trainer_lists_everyone_and_filters(client, trainer, trainee) -> None:
    other = make_user(TRAINEE)
    _report(client, trainee, "2026-10-01")
    _report(client, trainee, "2026-10-02")
    _report(client, other, "2026-10-02")

    everyone = client.get("/v1/reports", headers=auth(trainer)).json()
    one_day = client.get(
        "/v1/reports", params={"date": "2026-10-02"}, headers=auth(trainer)
    ).json()
    one_trainee = client.get(
        "/v1/reports", params={"trainee_id": str(trainee.id)}, headers=auth(trainer)
    ).json()

    assert everyone["pagination"]["total"] == 3
    assert [d["report_date"] for d in everyone["data"]][0] == "2026-10-02"
    assert one_day["pagination"]["total"] == 2
    assert one_trainee["pagination"]["total"] == 2


def test_search_matches_content(client, trainer, trainee) -> None:
    _report(client, trainee, "2026-10-01", "Learned about FIXTURES")
    _report(client, trainee, "2026-10-02", "Refactored the parser")

    r = client.get("/v1/reports", params={"search": "fixtures"}, headers=auth(trainer))

    assert [d["report_date"] for d in r.json()["data"]] == ["2026-10-01"]


def test_get_report_visibility(client, trainer, trainee) -> None:
    other = make_user(TRAINEE)
    report = _report(client, other)

    path = f"/v1/reports/{report['id']}"
    assert client.get(path, headers=auth(trainer)).status_code == 200
    assert client.get(path, headers=auth(trainee)).status_code == 403
    assert client.get(f"/v1/reports/{uuid4()}", headers=auth(trainer)).status_code == 404


def test_anonymous_cannot_list(client) -> None:
    assert client.get("/v1/reports").status_code == 401


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------


def test_templates_are_private(client, trainee, trainer) -> None:
    created = client.post(
        "/v1/reports/templates",
        json={"title": "Standup", "content": "Done:\nNext:\nBlocked:"},
        headers=auth(trainee),
    )
    assert created.status_code == 201
    template_id = created.json()["data"]["id"]

    mine = client.get("/v1/reports/templates", headers=auth(trainee)).json()["data"]
    theirs = client.get("/v1/reports/templates", headers=auth(trainer)).json()["data"]
    assert [t["title"] for t in mine] == ["Standup"]
    assert theirs == []

    r = client.put(
        f"/v1/reports/templates/{template_id}",
        json={"title": "Hijacked"},
        headers=auth(trainer),
    )
    assert r.status_code == 403


def test_update_and_delete_template(client, trainer) -> None:
    template_id = client.post(
        "/v1/reports/templates",
        json={"title": "Weekly", "content": "Summary"},
        headers=auth(trainer),
    ).json()["data"]["id"]

    r = client.put(
        f"/v1/reports/templates/{template_id}",
        json={"content": "Summary and plan"},
        headers=auth(trainer),
    )
    data = r.json()["data"]
    assert (data["title"], data["content"]) == ("Weekly", "Summary and plan")

    r = client.delete(f"/v1/reports/templates/{template_id}", headers=auth(trainer))
    assert r.status_code == 200
    assert client.get("/v1/reports/templates", headers=auth(trainer)).json()["data"] == []
