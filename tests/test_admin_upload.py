"""
Tests for uploading ALEKS progress exports through the admin API.
"""

import io
from datetime import time

from openpyxl import Workbook

from app import db
from app.models import StudentPeriodRecord


HEADER = "Student,Class,Student Id,Email,h:mm,added to pie,h:mm,added to pie,h:mm,added to pie,h:mm,added to pie"


def _csv(*rows):
    return "\n".join((HEADER,) + rows).encode("utf-8")


def _upload(client, content, period="summer2025", section="101", filename="progress.csv"):
    return client.post(
        "/admin/upload",
        data={
            "file": (io.BytesIO(content), filename),
            "examPeriod": period,
            "sectionId": section,
        },
        content_type="multipart/form-data",
    )


def test_upload_creates_records(admin_client, exam_period):
    response = _upload(admin_client, _csv(
        "Ada Lovelace,MATH,ADA01,ada@example.edu,2:00,5,0:45,2,0:45,2,0:45,2",
        "Grace Hopper,MATH,grace02,grace@example.edu,1:00,1,0:10,0,0:00,0,0:50,1",
    ))

    assert response.status_code == 200
    body = response.json
    assert body["studentCount"] == 2
    assert body["createdCount"] == 2
    assert body["skippedRows"] == 0
    assert body["examPeriod"] == "Summer 2025 - Exam 1 Period"
    assert body["sectionId"] == "101"
    assert body["observedDays"] == 3

    ada = StudentPeriodRecord.query.filter_by(student_id="ada01").one()
    # Day 1 and day 3 are working days, day 2 is exempt with qualifying activity
    assert ada.coins == 3
    assert ada.exempt_day_credits == 1
    assert ada.total_days == 2
    assert ada.period_days == 4
    assert ada.percent_complete == 100.0
    assert len(ada.daily_log) == 3
    assert ada.section_id == "101"


def test_upload_reports_skipped_rows(admin_client, exam_period):
    response = _upload(admin_client, _csv(
        "Ada Lovelace,MATH,ada01,ada@example.edu,0:00,0,0:45,2,0:00,0,0:00,0",
        ",MATH,nameless,x@example.edu,0:00,0,0:45,2,0:00,0,0:00,0",
    ))

    assert response.status_code == 200
    assert response.json["studentCount"] == 1
    assert response.json["skippedRows"] == 1
    assert response.json["errors"]


def test_reupload_keeps_absent_students(admin_client, exam_period):
    _upload(admin_client, _csv(
        "Ada Lovelace,MATH,ada01,ada@example.edu,0:00,0,0:10,0,0:00,0,0:00,0",
        "Grace Hopper,MATH,grace02,grace@example.edu,0:00,0,0:45,2,0:00,0,0:45,2",
    ))
    grace_before = StudentPeriodRecord.query.filter_by(student_id="grace02").one().to_dict()

    response = _upload(admin_client, _csv(
        "Ada Lovelace,MATH,ada01,ada@example.edu,0:00,0,0:45,2,0:00,0,0:45,2",
    ))

    assert response.status_code == 200
    assert response.json["createdCount"] == 0
    assert response.json["updatedCount"] == 1

    db.session.expire_all()
    assert StudentPeriodRecord.query.count() == 2
    assert StudentPeriodRecord.query.filter_by(student_id="grace02").one().to_dict() == grace_before
    assert StudentPeriodRecord.query.filter_by(student_id="ada01").one().coins == 2


def test_sections_are_stored_separately(admin_client, exam_period):
    row = "Ada Lovelace,MATH,ada01,ada@example.edu,0:00,0,0:45,2,0:00,0,0:00,0"
    _upload(admin_client, _csv(row), section="101")
    _upload(admin_client, _csv(row), section="102")

    assert StudentPeriodRecord.query.filter_by(student_id="ada01").count() == 2


def test_blank_section_uses_default(admin_client, exam_period):
    _upload(admin_client, _csv("Ada Lovelace,MATH,ada01,ada@example.edu,0:00,0,0:45,2,0:00,0,0:00,0"), section="")

    assert StudentPeriodRecord.query.filter_by(student_id="ada01").one().section_id == "default"


def test_upload_to_unknown_period(admin_client, exam_period):
    response = _upload(admin_client, _csv("Ada,MATH,ada01,ada@example.edu,0:00,0,0:45,2,0:00,0,0:00,0"), period="nope")

    assert response.status_code == 404
    assert response.json["message"] == "Exam period not found: nope"


def test_upload_without_file(admin_client, exam_period):
    response = admin_client.post(
        "/admin/upload",
        data={"examPeriod": "summer2025"},
        content_type="multipart/form-data",
    )

    assert response.status_code == 400
    assert response.json["message"] == "No file uploaded"


def test_upload_rejects_other_file_types(admin_client, exam_period):
    response = _upload(admin_client, b"not a spreadsheet", filename="progress.pdf")
    assert response.status_code == 400


def test_upload_with_no_valid_rows(admin_client, exam_period):
    response = _upload(admin_client, _csv(",MATH,,x@example.edu,0:00,0,0:45,2,0:00,0,0:00,0"))

    assert response.status_code == 400
    assert response.json["skippedRows"] == 1
    assert StudentPeriodRecord.query.count() == 0


def test_upload_requires_admin(client, exam_period):
    response = _upload(client, _csv("Ada,MATH,ada01,ada@example.edu,0:00,0,0:45,2,0:00,0,0:00,0"))
    assert response.status_code == 401


def test_student_data_lists_period_records(admin_client, exam_period):
    _upload(admin_client, _csv(
        "Grace Hopper,MATH,grace02,grace@example.edu,0:00,0,0:45,2,0:00,0,0:45,2",
        "Ada Lovelace,MATH,ada01,ada@example.edu,0:00,0,0:45,2,0:00,0,0:00,0",
    ))

    response = admin_client.get("/admin/student-data?period=summer2025&sectionId=101")

    assert response.status_code == 200
    assert [s["name"] for s in response.json["students"]] == ["Ada Lovelace", "Grace Hopper"]
    assert response.json["studentCount"] == 2


def test_student_data_requires_period(admin_client):
    assert admin_client.get("/admin/student-data").status_code == 400


def _xlsx(*rows):
    workbook = Workbook()
    sheet = workbook.active
    sheet.append(["Time and Topic Report"])
    sheet.append(HEADER.split(","))
    for row in rows:
        sheet.append(row)
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def test_upload_accepts_aleks_workbook(admin_client, exam_period):
    response = _upload(admin_client, _xlsx(
        ["Ada Lovelace", "MATH", "ADA01", "ada@example.edu", time(2, 0), 5, time(0, 45), 2, time(0, 45), 2, "0:45", 2],
        ["Grace Hopper", "MATH", "grace02", "grace@example.edu", time(1, 0), 1, time(0, 10), 0, None, None, time(0, 50), 1],
    ), filename="Time_and_Topic.xlsx")

    assert response.status_code == 200
    assert response.json["studentCount"] == 2
    assert response.json["observedDays"] == 3

    ada = StudentPeriodRecord.query.filter_by(student_id="ada01").one()
    assert ada.coins == 3
    assert ada.exempt_day_credits == 1
    assert ada.daily_log[0]["minutes"] == 45

    grace = StudentPeriodRecord.query.filter_by(student_id="grace02").one()
    assert grace.coins == 1


def test_upload_rejects_corrupt_workbook(admin_client, exam_period):
    response = _upload(admin_client, b"not really a workbook", filename="Time_and_Topic.xlsx")

    assert response.status_code == 400
    assert response.json["status"] == "error"
    assert StudentPeriodRecord.query.count() == 0
