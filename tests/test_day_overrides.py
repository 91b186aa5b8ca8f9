"""
Tests for admin day overrides and their effect on student progress.
"""

from datetime import date

from app import db
from app.models import DayOverride


def test_create_override_updates_student_view(admin_client, exam_period, make_record):
    make_record("ada01", "Ada Lovelace", {1: (45, 2), 3: (45, 2), 4: (10, 0)})

    before = admin_client.post("/api/student", json={"studentId": "ada01"}).json["student"]
    assert before["coins"] == 2

    response = admin_client.post("/admin/day-overrides", json={
        "studentId": "ADA01",
        "date": "2025-06-27",
        "overrideType": "qualified",
        "reason": "ALEKS outage",
        "dayNumber": 4,
    })

    assert response.status_code == 200
    assert response.json["override"]["studentId"] == "ada01"
    assert response.json["override"]["dayNumber"] == 4

    after = admin_client.post("/api/student", json={"studentId": "ada01"}).json["student"]
    assert after["coins"] == 3
    assert after["percentComplete"] == 75.0
    day4 = after["dailyLog"][3]
    assert day4["qualified"] is True
    assert day4["reason"] == "ALEKS outage"


def test_override_is_upserted_per_student_and_date(admin_client):
    payload = {"studentId": "ada01", "date": "2025-06-27", "overrideType": "qualified"}
    admin_client.post("/admin/day-overrides", json=payload)
    admin_client.post("/admin/day-overrides", json=dict(payload, overrideType="not_qualified"))

    overrides = DayOverride.query.all()
    assert len(overrides) == 1
    assert overrides[0].override_type == "not_qualified"
    assert overrides[0].date == date(2025, 6, 27)


def test_override_validation(admin_client):
    missing = admin_client.post("/admin/day-overrides", json={"studentId": "ada01"})
    assert missing.status_code == 400

    bad_type = admin_client.post("/admin/day-overrides", json={
        "studentId": "ada01", "date": "2025-06-27", "overrideType": "maybe",
    })
    assert bad_type.status_code == 400
    assert bad_type.json["message"] == "Invalid override type"

    bad_date = admin_client.post("/admin/day-overrides", json={
        "studentId": "ada01", "date": "06/27/2025", "overrideType": "qualified",
    })
    assert bad_date.status_code == 400
    assert DayOverride.query.count() == 0


def test_list_overrides_by_student(admin_client):
    for student_id in ("ada01", "grace02"):
        admin_client.post("/admin/day-overrides", json={
            "studentId": student_id, "date": "2025-06-27", "overrideType": "qualified",
        })

    response = admin_client.get("/admin/day-overrides?studentId=grace02")

    assert response.status_code == 200
    assert [o["studentId"] for o in response.json["overrides"]] == ["grace02"]
    assert len(admin_client.get("/admin/day-overrides").json["overrides"]) == 2


def test_delete_override(admin_client):
    created = admin_client.post("/admin/day-overrides", json={
        "studentId": "ada01", "date": "2025-06-27", "overrideType": "qualified",
    }).json["override"]

    response = admin_client.delete(f"/admin/day-overrides?id={created['id']}")

    assert response.status_code == 200
    assert DayOverride.query.count() == 0


def test_delete_override_by_student_and_date(admin_client):
    admin_client.post("/admin/day-overrides", json={
        "studentId": "ada01", "date": "2025-06-27", "overrideType": "qualified",
    })

    response = admin_client.delete("/admin/day-overrides", json={"studentId": "ada01", "date": "2025-06-27"})

    assert response.status_code == 200
    assert DayOverride.query.count() == 0


def test_delete_missing_override(admin_client):
    response = admin_client.delete("/admin/day-overrides?id=999")
    assert response.status_code == 404
    assert response.json["message"] == "Override not found"


def test_override_on_exempt_day_grants_credit(admin_client, exam_period, make_record):
    make_record("ada01", "Ada Lovelace", {1: (45, 2), 2: (5, 0)})

    db.session.add(DayOverride(student_id="ada01", date=date(2025, 6, 25), override_type="qualified"))
    db.session.commit()

    student = admin_client.post("/api/student", json={"studentId": "ada01"}).json["student"]
    assert student["exemptDayCredits"] == 1
    assert student["coins"] == 2
    assert student["dailyLog"][1]["isExcluded"] is True
