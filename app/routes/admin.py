"""
Admin routes for the ALEKS Coins portal.

JSON endpoints behind the shared admin password: progress uploads, exam period
management, day overrides, coin adjustments, student requests, balances and
the leaderboard. Every route except login requires an admin session.
"""

from datetime import date, datetime, timezone

from flask import Blueprint, request, jsonify, current_app
from flask_wtf.csrf import generate_csrf
from sqlalchemy.exc import SQLAlchemyError

from app.auth import admin_required, check_admin_password, end_admin_session, start_admin_session
from app.extensions import csrf, db, limiter
from app.models import CoinAdjustment, DayOverride, ExamPeriod, RequestStatus, StudentRequest
from app.utils.constants import GLOBAL_SCOPE, OVERRIDE_TYPES
from app.utils.errors import RequestValidationError
from app.utils.exam_periods import seed_default_periods
from app.utils.helpers import error_response, normalize_student_id, parse_positive_int
from app.utils.progress import generate_period_days, parse_iso_date
from app.utils.settings import (
    get_feature_toggles,
    get_thresholds,
    normalize_section,
    update_feature_toggles,
)
from app.utils.upload_parser import build_upload_progress, parse_progress_upload

from coins import build_leaderboard, get_student_balances
from forms import AdminLoginForm, ProgressUploadForm
from records import (
    calendar_for_period,
    delete_period,
    get_exam_period,
    get_period_records,
    load_overrides,
    merge_upload,
    record_with_overrides,
    rename_period_key,
    upsert_day_override,
)
from student_requests import fast_approve, request_stats, resolve_request

# Create blueprint
admin_bp = Blueprint('admin', __name__, url_prefix='/admin')

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 200


def _json_body():
    return request.get_json(silent=True) or {}


def _first_form_error(form):
    for errors in form.errors.values():
        if errors:
            return errors[0]
    return "Invalid form submission"


# -------------------- AUTH --------------------

@admin_bp.route('/login', methods=['POST'])
@csrf.exempt
@limiter.limit("10 per minute")
def login():
    """Exchange the shared admin password for an admin session."""
    form = AdminLoginForm(meta={'csrf': False})
    if not form.validate_on_submit():
        return error_response("Password is required", 400)

    if not check_admin_password(form.password.data):
        current_app.logger.warning(f"Failed admin login from {request.remote_addr}")
        return error_response("Invalid password", 401)

    start_admin_session()
    current_app.logger.info("Admin logged in")
    return jsonify({"status": "success", "message": "Logged in", "csrfToken": generate_csrf()})


@admin_bp.route('/logout', methods=['POST'])
def logout():
    end_admin_session()
    return jsonify({"status": "success", "message": "Logged out"})


# -------------------- UPLOAD --------------------

@admin_bp.route('/upload', methods=['POST'])
@admin_required
def upload_progress():
    """
    Upload an ALEKS progress export for one period/section.

    Each student row is qualified day by day against the period calendar and
    merged into the stored records. Students absent from the file keep their
    previous record. Rows without an id or name are skipped and counted.
    """
    form = ProgressUploadForm()
    if not form.validate_on_submit():
        return error_response(_first_form_error(form), 400)

    period_key = form.examPeriod.data.strip()
    section_id = normalize_section(form.sectionId.data)

    period = get_exam_period(period_key)
    calendar = calendar_for_period(period)

    upload = form.file.data
    parsed = parse_progress_upload(upload.filename, upload.stream.read())

    if not parsed.students:
        return error_response(
            "No valid student rows found in the upload",
            400,
            skippedRows=parsed.skipped_rows,
            errors=parsed.errors[:20],
        )

    results = build_upload_progress(parsed, calendar, get_thresholds())

    try:
        merged = merge_upload(period_key, section_id, results)
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Upload merge failed for {period_key}/{section_id}: {e}", exc_info=True)
        return error_response("Failed to save uploaded data", 500)

    current_app.logger.info(
        f"Upload for {period_key}/{section_id}: {len(results)} students "
        f"({merged['created']} new), {parsed.skipped_rows} rows skipped"
    )
    return jsonify({
        "status": "success",
        "message": f"Successfully processed data for {len(results)} students",
        "studentCount": len(results),
        "createdCount": merged["created"],
        "updatedCount": merged["updated"],
        "skippedRows": parsed.skipped_rows,
        "errors": parsed.errors[:20],
        "observedDays": min(parsed.observed_day_count, len(calendar)),
        "examPeriod": period.name,
        "period": period_key,
        "sectionId": section_id,
    })


@admin_bp.route('/student-data', methods=['GET'])
@admin_required
def student_data():
    """Stored records for a period/section with overrides applied."""
    period_key = (request.args.get("period") or "").strip()
    if not period_key:
        return error_response("period is required", 400)
    section_id = normalize_section(request.args.get("sectionId"))

    try:
        records = get_period_records(period_key, section_id)
        overrides = load_overrides([record.student_id for record in records])
        students = [
            record_with_overrides(record, overrides.get(record.student_id))
            for record in records
        ]
    except SQLAlchemyError as e:
        current_app.logger.error(f"Failed to load student data: {e}", exc_info=True)
        return error_response("Failed to load student data", 500)

    return jsonify({
        "status": "success",
        "period": period_key,
        "sectionId": section_id,
        "studentCount": len(students),
        "students": students,
    })


# -------------------- EXAM PERIODS --------------------

@admin_bp.route('/exam-periods', methods=['GET'])
@admin_required
def list_exam_periods():
    periods = ExamPeriod.query.order_by(ExamPeriod.start_date).all()
    return jsonify({"status": "success", "periods": [period.to_dict() for period in periods]})


@admin_bp.route('/exam-periods', methods=['POST'])
@admin_required
def save_exam_period():
    """
    Create or update a period.

    Pass ``originalPeriodKey`` to rename an existing period; every record,
    adjustment and request under the old key moves to the new one.
    """
    data = _json_body()
    period_key = (data.get("periodKey") or "").strip()
    name = (data.get("name") or "").strip()
    if not period_key or not name or not data.get("startDate") or not data.get("endDate"):
        return error_response("periodKey, name, startDate and endDate are required", 400)

    excluded_raw = data.get("excludedDates") or []
    if not isinstance(excluded_raw, list):
        return error_response("excludedDates must be a list of YYYY-MM-DD dates", 400)

    # Validates the range and every date before anything is written
    calendar = generate_period_days(data["startDate"], data["endDate"], excluded_raw)
    excluded = sorted(day.date.isoformat() for day in calendar if day.is_excluded)

    original_key = (data.get("originalPeriodKey") or "").strip() or period_key
    renamed = original_key != period_key

    try:
        if renamed:
            period = get_exam_period(original_key)
            if ExamPeriod.query.filter_by(period_key=period_key).first():
                return error_response(f"Exam period already exists: {period_key}", 409)
            counts = rename_period_key(original_key, period_key)
            period.period_key = period_key
            current_app.logger.info(f"Renamed period {original_key} -> {period_key}: {counts}")
        else:
            period = ExamPeriod.query.filter_by(period_key=period_key).first()
            if period is None:
                period = ExamPeriod(period_key=period_key)
                db.session.add(period)

        period.name = name
        period.start_date = calendar[0].date
        period.end_date = calendar[-1].date
        period.excluded_dates = excluded
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Failed to save exam period {period_key}: {e}", exc_info=True)
        return error_response("Failed to save exam period", 500)

    return jsonify({"status": "success", "period": period.to_dict(), "renamed": renamed})


@admin_bp.route('/exam-periods', methods=['DELETE'])
@admin_required
def remove_exam_period():
    """Delete a period and its student records."""
    period_key = (request.args.get("periodKey") or _json_body().get("periodKey") or "").strip()
    if not period_key:
        return error_response("periodKey is required", 400)

    try:
        removed = delete_period(period_key)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Failed to delete exam period {period_key}: {e}", exc_info=True)
        return error_response("Failed to delete exam period", 500)

    current_app.logger.info(f"Deleted period {period_key} and {removed} student records")
    return jsonify({"status": "success", "message": f"Deleted {period_key}", "recordsDeleted": removed})


@admin_bp.route('/init-periods', methods=['POST'])
@admin_required
def init_periods():
    """Seed the default periods for a year (current year by default)."""
    year = _json_body().get("year") or date.today().year
    try:
        year = int(year)
    except (TypeError, ValueError):
        return error_response("year must be a number", 400)

    try:
        created = seed_default_periods(year)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Failed to seed exam periods: {e}", exc_info=True)
        return error_response("Failed to initialize exam periods", 500)

    return jsonify({"status": "success", "created": created, "year": year})


# -------------------- DAY OVERRIDES --------------------

@admin_bp.route('/day-overrides', methods=['GET'])
@admin_required
def list_day_overrides():
    query = DayOverride.query
    student_id = normalize_student_id(request.args.get("studentId"))
    if student_id:
        query = query.filter_by(student_id=student_id)
    overrides = query.order_by(DayOverride.student_id, DayOverride.date).all()
    return jsonify({"status": "success", "overrides": [override.to_dict() for override in overrides]})


@admin_bp.route('/day-overrides', methods=['POST'])
@admin_required
def save_day_override():
    """Create or replace the override for one (student, date)."""
    data = _json_body()
    student_id = normalize_student_id(data.get("studentId"))
    override_type = data.get("overrideType")
    if not student_id or not data.get("date") or not override_type:
        return error_response("studentId, date and overrideType are required", 400)
    if override_type not in OVERRIDE_TYPES:
        return error_response("Invalid override type", 400)

    override_date = parse_iso_date(data["date"])
    day_number = data.get("dayNumber")
    try:
        day_number = int(day_number) if day_number not in (None, "") else None
    except (TypeError, ValueError):
        return error_response("dayNumber must be a number", 400)

    try:
        override = upsert_day_override(
            student_id,
            override_date,
            override_type,
            reason=(data.get("reason") or "").strip() or None,
            day_number=day_number,
            created_by="admin",
        )
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Failed to save day override for {student_id}: {e}", exc_info=True)
        return error_response("Failed to save day override", 500)

    return jsonify({"status": "success", "override": override.to_dict()})


@admin_bp.route('/day-overrides', methods=['DELETE'])
@admin_required
def delete_day_override():
    data = _json_body()
    override_id = request.args.get("id") or data.get("id")
    student_id = normalize_student_id(request.args.get("studentId") or data.get("studentId"))
    override_date = request.args.get("date") or data.get("date")

    if override_id:
        override = db.session.get(DayOverride, parse_positive_int(override_id, 0))
    elif student_id and override_date:
        override = DayOverride.query.filter_by(
            student_id=student_id, date=parse_iso_date(override_date)
        ).first()
    else:
        return error_response("id, or studentId and date, are required", 400)

    if override is None:
        return error_response("Override not found", 404)

    try:
        db.session.delete(override)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Failed to delete day override: {e}", exc_info=True)
        return error_response("Failed to delete override", 500)

    return jsonify({"status": "success", "message": "Override deleted"})


# -------------------- COIN ADJUSTMENTS --------------------

@admin_bp.route('/coin-adjustments', methods=['GET'])
@admin_required
def list_coin_adjustments():
    """Active adjustments for a student, or for a period/section."""
    query = CoinAdjustment.query.filter(CoinAdjustment.is_active.is_(True))
    student_id = normalize_student_id(request.args.get("studentId"))
    period_key = (request.args.get("period") or "").strip()
    if student_id:
        query = query.filter(CoinAdjustment.student_id == student_id)
    if period_key:
        query = query.filter(CoinAdjustment.period_key == period_key)
        if period_key != GLOBAL_SCOPE and request.args.get("sectionId"):
            query = query.filter(CoinAdjustment.section_id == normalize_section(request.args.get("sectionId")))

    adjustments = query.order_by(CoinAdjustment.created_at.desc()).all()
    return jsonify({"status": "success", "adjustments": [adj.to_dict() for adj in adjustments]})


@admin_bp.route('/coin-adjustments', methods=['POST'])
@admin_required
def create_coin_adjustment():
    data = _json_body()
    student_id = normalize_student_id(data.get("studentId"))
    reason = (data.get("reason") or "").strip()
    if not student_id or not reason or data.get("amount") in (None, ""):
        return error_response("studentId, amount and reason are required", 400)

    amount = data.get("amount")
    if isinstance(amount, bool):
        return error_response("Adjustment amount must be a whole number", 400)
    try:
        amount = int(str(amount).strip())
    except ValueError:
        return error_response("Adjustment amount must be a whole number", 400)
    if amount == 0:
        return error_response("Adjustment amount cannot be zero", 400)

    period_key = data.get("period") or GLOBAL_SCOPE
    if not isinstance(period_key, str):
        return error_response("period must be a period key", 400)
    period_key = period_key.strip() or GLOBAL_SCOPE
    if period_key == GLOBAL_SCOPE:
        section_id = None
    else:
        get_exam_period(period_key)
        section_id = normalize_section(data.get("sectionId"))

    adjustment = CoinAdjustment(
        student_id=student_id,
        period_key=period_key,
        section_id=section_id,
        amount=amount,
        reason=reason,
        created_by=(data.get("createdBy") or "admin").strip(),
    )
    try:
        db.session.add(adjustment)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Failed to create coin adjustment for {student_id}: {e}", exc_info=True)
        return error_response("Failed to create coin adjustment", 500)

    current_app.logger.info(f"Coin adjustment {amount:+d} for {student_id} ({period_key})")
    return jsonify({"status": "success", "adjustment": adjustment.to_dict()}), 201


@admin_bp.route('/coin-adjustments', methods=['DELETE'])
@admin_required
def deactivate_coin_adjustment():
    """Soft-delete an adjustment; the row is kept with ``is_active`` cleared."""
    adjustment_id = parse_positive_int(request.args.get("id") or _json_body().get("id"), 0)
    if not adjustment_id:
        return error_response("Adjustment ID is required", 400)

    adjustment = db.session.get(CoinAdjustment, adjustment_id)
    if adjustment is None or not adjustment.is_active:
        return error_response("Adjustment not found", 404)

    try:
        adjustment.is_active = False
        adjustment.deactivated_at = datetime.now(timezone.utc)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Failed to deactivate adjustment {adjustment_id}: {e}", exc_info=True)
        return error_response("Failed to delete coin adjustment", 500)

    return jsonify({"status": "success", "message": "Adjustment removed", "id": adjustment_id})


# -------------------- STUDENT REQUESTS --------------------

@admin_bp.route('/requests', methods=['GET'])
@admin_required
def list_requests():
    query = StudentRequest.query
    status = request.args.get("status")
    if status:
        try:
            query = query.filter(StudentRequest.status == RequestStatus.from_string(status))
        except ValueError:
            return error_response(f"Invalid status: {status}", 400)
    requests_ = query.order_by(
        StudentRequest.section_id,
        StudentRequest.student_name,
        StudentRequest.created_at.desc(),
    ).all()
    return jsonify({"status": "success", "requests": [r.to_dict() for r in requests_]})


@admin_bp.route('/requests', methods=['PUT'])
@admin_required
def update_request():
    """Approve or reject a single request."""
    data = _json_body()
    request_id = parse_positive_int(data.get("requestId"), 0)
    if not request_id or not data.get("status"):
        return error_response("Request ID and status are required", 400)

    try:
        result = resolve_request(
            request_id,
            data["status"],
            get_feature_toggles(),
            admin_notes=(data.get("adminNotes") or "").strip() or None,
            processed_by=data.get("processedBy") or "admin",
        )
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Failed to update request {request_id}: {e}", exc_info=True)
        return error_response("Failed to update request", 500)

    return jsonify({"status": "success", **result})


@admin_bp.route('/requests', methods=['POST'])
@admin_required
def fast_approve_requests():
    """Approve every pending request for one student."""
    data = _json_body()
    student_id = normalize_student_id(data.get("studentId"))
    if not student_id:
        return error_response("Student ID is required", 400)

    try:
        result = fast_approve(student_id, get_feature_toggles(), (data.get("adminNotes") or "").strip() or None)
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Fast approve failed for {student_id}: {e}", exc_info=True)
        return error_response("Failed to fast approve requests", 500)

    if not result["approvedCount"]:
        message = "No pending requests found for this student"
    else:
        message = f"Successfully approved {result['approvedCount']} requests for student {student_id}"
    return jsonify({"status": "success", "message": message, **result})


@admin_bp.route('/request-stats', methods=['GET'])
@admin_required
def get_request_stats():
    return jsonify({"status": "success", **request_stats()})


# -------------------- BALANCES AND LEADERBOARD --------------------

@admin_bp.route('/student-balances', methods=['POST'])
@admin_required
def student_balances():
    """Final balances for a list of students. Fails as a whole if adjustments are unavailable."""
    student_ids = _json_body().get("studentIds")
    if not isinstance(student_ids, list):
        raise RequestValidationError("studentIds must be a list")

    balances = get_student_balances([sid for sid in student_ids if isinstance(sid, str)])
    return jsonify({"status": "success", "balances": balances})


@admin_bp.route('/leaderboard', methods=['GET'])
@admin_required
def leaderboard():
    period_key = (request.args.get("period") or "").strip()
    section_raw = request.args.get("sectionId") or request.args.get("sectionNumber")
    if not period_key or not section_raw:
        return error_response("period and sectionId are required", 400)

    page = parse_positive_int(request.args.get("page"), 1)
    page_size = min(parse_positive_int(request.args.get("pageSize"), DEFAULT_PAGE_SIZE), MAX_PAGE_SIZE)

    result = build_leaderboard(period_key, normalize_section(section_raw), page, page_size)
    return jsonify({"status": "success", **result})


# -------------------- SETTINGS --------------------

@admin_bp.route('/settings', methods=['GET'])
@admin_required
def get_settings():
    return jsonify({"status": "success", "settings": get_feature_toggles().to_dict()})


@admin_bp.route('/settings', methods=['PUT'])
@admin_required
def update_settings():
    data = _json_body()
    try:
        toggles = update_feature_toggles(data)
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Failed to update settings: {e}", exc_info=True)
        return error_response("Failed to update settings", 500)

    current_app.logger.info(f"Feature toggles updated: {toggles.to_dict()}")
    return jsonify({"status": "success", "settings": toggles.to_dict()})
