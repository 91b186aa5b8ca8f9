"""
Tests for manual coin adjustments and the balances they feed.
"""

from app import db
from app.models import CoinAdjustment
from app.utils.constants import GLOBAL_SCOPE


def _balance(client, student_id):
    response = client.post("/admin/student-balances", json={"studentIds": [student_id]})
    assert response.status_code == 200
    return response.json["balances"][student_id]


def test_global_adjustment_changes_balance(admin_client, exam_period, make_record):
    make_record("ada01", "Ada Lovelace", {1: (45, 2), 3: (45, 2)})

    response = admin_client.post("/admin/coin-adjustments", json={
        "studentId": "ADA01", "amount": "5", "reason": "Helped a classmate",
    })

    assert response.status_code == 201
    adjustment = response.json["adjustment"]
    assert adjustment["period"] == GLOBAL_SCOPE
    assert adjustment["sectionId"] is None
    assert adjustment["amount"] == 5
    assert adjustment["createdBy"] == "admin"
    assert _balance(admin_client, "ada01") == 7


def test_period_adjustment_needs_a_record_in_that_period(admin_client, exam_period, make_record):
    make_record("ada01", "Ada Lovelace", {1: (45, 2)})

    admin_client.post("/admin/coin-adjustments", json={
        "studentId": "ada01", "amount": 4, "reason": "Bonus", "period": "summer2025",
    })
    admin_client.post("/admin/coin-adjustments", json={
        "studentId": "ada01", "amount": 9, "reason": "Wrong section", "period": "summer2025", "sectionId": "102",
    })

    assert _balance(admin_client, "ada01") == 5


def test_balance_is_clamped_at_zero(admin_client, exam_period, make_record):
    make_record("ada01", "Ada Lovelace", {1: (45, 2)})
    admin_client.post("/admin/coin-adjustments", json={"studentId": "ada01", "amount": -50, "reason": "Penalty"})

    assert _balance(admin_client, "ada01") == 0


def test_unknown_student_has_zero_balance(admin_client):
    assert _balance(admin_client, "nobody") == 0


def test_adjustment_validation(admin_client, exam_period):
    missing = admin_client.post("/admin/coin-adjustments", json={"studentId": "ada01", "amount": 5})
    assert missing.status_code == 400

    zero = admin_client.post("/admin/coin-adjustments", json={"studentId": "ada01", "amount": 0, "reason": "x"})
    assert zero.status_code == 400

    words = admin_client.post("/admin/coin-adjustments", json={"studentId": "ada01", "amount": "five", "reason": "x"})
    assert words.status_code == 400

    fraction = admin_client.post("/admin/coin-adjustments", json={"studentId": "ada01", "amount": "1.5", "reason": "x"})
    assert fraction.status_code == 400

    no_period = admin_client.post("/admin/coin-adjustments", json={
        "studentId": "ada01", "amount": 2, "reason": "x", "period": "winter1999",
    })
    assert no_period.status_code == 404

    numeric_period = admin_client.post("/admin/coin-adjustments", json={
        "studentId": "ada01", "amount": 2, "reason": "x", "period": 5,
    })
    assert numeric_period.status_code == 400

    assert CoinAdjustment.query.count() == 0


def test_list_returns_active_adjustments(admin_client):
    admin_client.post("/admin/coin-adjustments", json={"studentId": "ada01", "amount": 3, "reason": "a"})
    admin_client.post("/admin/coin-adjustments", json={"studentId": "grace02", "amount": 2, "reason": "b"})
    db.session.add(CoinAdjustment(student_id="ada01", amount=-1, reason="old", is_active=False))
    db.session.commit()

    response = admin_client.get("/admin/coin-adjustments?studentId=ada01")

    assert response.status_code == 200
    assert [a["amount"] for a in response.json["adjustments"]] == [3]


def test_delete_is_a_soft_delete(admin_client, exam_period, make_record):
    make_record("ada01", "Ada Lovelace", {1: (45, 2)})
    created = admin_client.post("/admin/coin-adjustments", json={
        "studentId": "ada01", "amount": 10, "reason": "Bonus",
    }).json["adjustment"]
    assert _balance(admin_client, "ada01") == 11

    response = admin_client.delete(f"/admin/coin-adjustments?id={created['id']}")

    assert response.status_code == 200
    row = db.session.get(CoinAdjustment, created["id"])
    assert row is not None
    assert row.is_active is False
    assert row.deactivated_at is not None
    assert _balance(admin_client, "ada01") == 1

    again = admin_client.delete(f"/admin/coin-adjustments?id={created['id']}")
    assert again.status_code == 404


def test_student_balances_requires_list(admin_client):
    response = admin_client.post("/admin/student-balances", json={"studentIds": "ada01"})
    assert response.status_code == 400
