"""
Student-facing routes for the ALEKS Coins portal.

Public JSON API: students look themselves up by their ALEKS student id, see
their per-period progress and coin balance, and submit requests. There is no
student login; the id is the lookup key.
"""

from flask import Blueprint, request, jsonify, current_app
from sqlalchemy.exc import SQLAlchemyError

from app.extensions import db, limiter
from app.models import AdminSetting, ExamPeriod
from app.utils.constants import DEMO_STUDENT_ID
from app.utils.demo_data import build_demo_student
from app.utils.helpers import course_today, error_response, normalize_student_id
from app.utils.settings import get_feature_toggles

from coins import get_student_balances
from records import get_student_records, load_overrides, record_with_overrides
from student_requests import get_requests_for_student, submit_request

# Create blueprint
student_bp = Blueprint('student', __name__, url_prefix='/api')


# -------------------- STUDENT LOOKUP --------------------

@student_bp.route('/student', methods=['POST'])
@limiter.limit("60 per minute")
def lookup_student():
    """
    Return a student's progress for every period they appear in.

    Each period's daily log and totals have the student's day overrides
    applied. The top-level fields mirror the most recently uploaded period.
    """
    data = request.get_json(silent=True) or {}
    raw_id = data.get("studentId")
    if not isinstance(raw_id, str) or not raw_id.strip():
        return error_response("Student ID is required", 400)

    student_id = normalize_student_id(raw_id)
    if student_id == DEMO_STUDENT_ID:
        return jsonify({"status": "success", "student": build_demo_student()})

    try:
        records = get_student_records(student_id)
        if not records:
            return error_response("Student ID not found. Please check your ID and try again.", 404)

        overrides = load_overrides([student_id]).get(student_id, {})
        periods = [record_with_overrides(record, overrides) for record in records]

        period_keys = {record.period_key for record in records}
        names = {
            period.period_key: period.name
            for period in ExamPeriod.query.filter(ExamPeriod.period_key.in_(period_keys)).all()
        }
        for period in periods:
            period["periodName"] = names.get(period["period"], period["period"])

        balance = get_student_balances([student_id]).get(student_id, 0)
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Student lookup failed for {student_id}: {e}", exc_info=True)
        return error_response("Database error. Please contact your instructor.", 500)

    latest = periods[0]
    return jsonify({
        "status": "success",
        "student": {
            "studentId": student_id,
            "name": latest["name"],
            "email": latest["email"],
            "balance": balance,
            "coins": latest["coins"],
            "totalDays": latest["totalDays"],
            "periodDays": latest["periodDays"],
            "exemptDayCredits": latest["exemptDayCredits"],
            "percentComplete": latest["percentComplete"],
            "dailyLog": latest["dailyLog"],
            "periods": periods,
            "today": course_today().isoformat(),
        },
    })


# -------------------- STUDENT REQUESTS --------------------

@student_bp.route('/student/requests', methods=['GET'])
def list_student_requests():
    student_id = normalize_student_id(request.args.get("studentId"))
    if not student_id:
        return error_response("Student ID is required", 400)

    try:
        requests_ = get_requests_for_student(student_id)
    except SQLAlchemyError as e:
        current_app.logger.error(f"Failed to load requests for {student_id}: {e}", exc_info=True)
        return error_response("Failed to fetch requests", 500)

    return jsonify({"status": "success", "requests": [r.to_dict() for r in requests_]})


@student_bp.route('/student/requests', methods=['POST'])
@limiter.limit("20 per minute")
def create_student_request():
    """Submit a redemption, override request, or inquiry."""
    data = request.get_json(silent=True) or {}

    try:
        toggles = get_feature_toggles()
        student_request = submit_request(data, toggles)
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Failed to submit request: {e}", exc_info=True)
        return error_response("Failed to submit request", 500)

    return jsonify({
        "status": "success",
        "message": "Request submitted successfully",
        "requestId": student_request.id,
        "coinsDeducted": student_request.coins_cost,
        "submittedAt": student_request.to_dict()["createdAt"],
    }), 201


# -------------------- PUBLIC SETTINGS AND PERIODS --------------------

@student_bp.route('/settings', methods=['GET'])
def public_settings():
    try:
        toggles = get_feature_toggles()
    except SQLAlchemyError as e:
        current_app.logger.warning(f"Could not load settings, falling back to defaults: {e}")
        return jsonify({"status": "success", "settings": AdminSetting.get_defaults()})
    return jsonify({"status": "success", "settings": toggles.to_dict()})


@student_bp.route('/periods', methods=['GET'])
def list_periods():
    try:
        periods = ExamPeriod.query.order_by(ExamPeriod.start_date).all()
    except SQLAlchemyError as e:
        current_app.logger.error(f"Failed to load exam periods: {e}", exc_info=True)
        return error_response("Failed to load exam periods", 500)
    return jsonify({"status": "success", "periods": [period.to_dict() for period in periods]})
