"""
Tests for exam period management: create, update, rename and delete.
"""

from datetime import date

from app import db
from app.models import CoinAdjustment, ExamPeriod, RequestStatus, StudentPeriodRecord, StudentRequest


def _period_payload(**fields):
    payload = {
        "periodKey": "fall2025",
        "name": "Fall 2025 - Exam 1 Period",
        "startDate": "2025-08-26",
        "endDate": "2025-09-20",
        "excludedDates": ["2025-09-02", "2025-12-25", "2025-09-02", "2025-08-30"],
    }
    payload.update(fields)
    return payload


def test_create_period_normalizes_excluded_dates(admin_client):
    response = admin_client.post("/admin/exam-periods", json=_period_payload())

    assert response.status_code == 200
    period = response.json["period"]
    assert period["periodKey"] == "fall2025"
    assert period["excludedDates"] == ["2025-08-30", "2025-09-02"]
    assert response.json["renamed"] is False


def test_update_existing_period(admin_client):
    admin_client.post("/admin/exam-periods", json=_period_payload())

    response = admin_client.post("/admin/exam-periods", json=_period_payload(
        name="Fall 2025 - Unit 1", endDate="2025-09-25", excludedDates=[],
    ))

    assert response.status_code == 200
    assert ExamPeriod.query.count() == 1
    period = ExamPeriod.query.one()
    assert period.name == "Fall 2025 - Unit 1"
    assert period.end_date == date(2025, 9, 25)
    assert period.excluded_dates == []


def test_period_validation(admin_client):
    inverted = admin_client.post("/admin/exam-periods", json=_period_payload(startDate="2025-09-21"))
    assert inverted.status_code == 400

    malformed = admin_client.post("/admin/exam-periods", json=_period_payload(endDate="Sept 20"))
    assert malformed.status_code == 400

    bad_exclusion = admin_client.post("/admin/exam-periods", json=_period_payload(excludedDates=["soon"]))
    assert bad_exclusion.status_code == 400

    missing = admin_client.post("/admin/exam-periods", json={"periodKey": "x"})
    assert missing.status_code == 400

    assert ExamPeriod.query.count() == 0


def test_public_period_list(admin_client, exam_period):
    admin_client.post("/admin/exam-periods", json=_period_payload())

    response = admin_client.get("/api/periods")

    assert response.status_code == 200
    assert [p["periodKey"] for p in response.json["periods"]] == ["summer2025", "fall2025"]


def test_rename_moves_records_adjustments_and_requests(admin_client, exam_period, make_record):
    make_record("ada01", "Ada Lovelace", {1: (45, 2)})
    db.session.add(CoinAdjustment(student_id="ada01", period_key="summer2025", section_id="default", amount=3, reason="Bonus"))
    db.session.add(StudentRequest(
        student_id="ada01", request_type="extra_credit", description="Extra?",
        period_key="summer2025", status=RequestStatus.PENDING,
    ))
    db.session.commit()

    response = admin_client.post("/admin/exam-periods", json={
        "originalPeriodKey": "summer2025",
        "periodKey": "summer2025_exam1",
        "name": "Summer 2025 - Exam 1",
        "startDate": "2025-06-24",
        "endDate": "2025-06-28",
        "excludedDates": ["2025-06-25"],
    })

    assert response.status_code == 200
    assert response.json["renamed"] is True
    db.session.expire_all()
    assert ExamPeriod.query.filter_by(period_key="summer2025").first() is None
    assert StudentPeriodRecord.query.filter_by(period_key="summer2025_exam1").count() == 1
    assert CoinAdjustment.query.filter_by(period_key="summer2025_exam1").count() == 1
    assert StudentRequest.query.filter_by(period_key="summer2025_exam1").count() == 1

    balance = admin_client.post("/admin/student-balances", json={"studentIds": ["ada01"]}).json["balances"]["ada01"]
    assert balance == 4


def test_rename_onto_existing_key_conflicts(admin_client, exam_period):
    admin_client.post("/admin/exam-periods", json=_period_payload())

    response = admin_client.post("/admin/exam-periods", json=_period_payload(
        originalPeriodKey="summer2025", periodKey="fall2025",
    ))

    assert response.status_code == 409
    assert ExamPeriod.query.filter_by(period_key="summer2025").count() == 1


def test_rename_of_unknown_period(admin_client):
    response = admin_client.post("/admin/exam-periods", json=_period_payload(originalPeriodKey="nope"))
    assert response.status_code == 404


def test_delete_period_removes_records_only(admin_client, exam_period, make_record):
    make_record("ada01", "Ada Lovelace", {1: (45, 2)})
    db.session.add(CoinAdjustment(student_id="ada01", period_key="summer2025", section_id="default", amount=3, reason="Bonus"))
    db.session.commit()

    response = admin_client.delete("/admin/exam-periods?periodKey=summer2025")

    assert response.status_code == 200
    assert response.json["recordsDeleted"] == 1
    assert ExamPeriod.query.count() == 0
    assert StudentPeriodRecord.query.count() == 0
    assert CoinAdjustment.query.count() == 1


def test_delete_unknown_period(admin_client):
    assert admin_client.delete("/admin/exam-periods?periodKey=nope").status_code == 404
    assert admin_client.delete("/admin/exam-periods").status_code == 400


def test_init_periods_seeds_defaults_once(admin_client):
    first = admin_client.post("/admin/init-periods", json={"year": 2026})

    assert first.status_code == 200
    assert len(first.json["created"]) == 12
    assert "spring2026" in first.json["created"]
    assert "fall2026_exam2" in first.json["created"]

    second = admin_client.post("/admin/init-periods", json={"year": 2026})
    assert second.json["created"] == []
    assert ExamPeriod.query.count() == 12
