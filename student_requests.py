import re
from datetime import datetime, timezone

from flask import current_app
from sqlalchemy import or_

from app.extensions import db
from app.models import CoinAdjustment, DayOverride, RequestStatus, StudentRequest
from app.utils.constants import (
    GLOBAL_SCOPE,
    OVERRIDE_QUALIFIED,
    REDEMPTION_COSTS,
    REQUEST_OVERRIDE,
    REQUEST_TYPE_LABELS,
    SYSTEM_AUTHOR,
)
from app.utils.errors import (
    FeatureDisabledError,
    InsufficientCoinsError,
    RequestNotFoundError,
    RequestValidationError,
)
from app.utils.helpers import normalize_student_id
from app.utils.progress import parse_iso_date
from app.utils.settings import normalize_section
from coins import get_student_balances
from records import upsert_day_override

_REASON_RE = re.compile(r"Reason:\s*(.+)", re.DOTALL)


def redemption_adjustment_reason(request_type, details):
    """Reason text stored on the automatic deduction for a redemption."""
    return f"Pending {request_type.replace('_', ' ')} request - {details[:50]}..."


def override_reason(student_request, admin_notes=None):
    """Admin notes win; otherwise the text after ``Reason:`` in the request."""
    if admin_notes:
        return admin_notes.strip()
    match = _REASON_RE.search(student_request.description or "")
    return match.group(1).strip() if match else ""


def _parse_day_number(value):
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise RequestValidationError(f"Invalid day number: {value!r}")


# -------------------- STUDENT SUBMISSION --------------------

def submit_request(data, toggles):
    """
    Record a student request.

    Redemptions are paid immediately: a negative global adjustment for the
    cost is created in the same transaction and linked to the request.

    Raises:
        RequestValidationError: Missing fields or unknown request type.
        FeatureDisabledError: The toggle for this request type is off.
        InsufficientCoinsError: The balance does not cover the redemption.
    """
    student_id = normalize_student_id(data.get("studentId"))
    request_type = (data.get("requestType") or "").strip()
    details = (data.get("requestDetails") or data.get("description") or "").strip()

    if not student_id or not request_type or not details:
        raise RequestValidationError("studentId, requestType and requestDetails are required")
    if request_type not in REQUEST_TYPE_LABELS:
        raise RequestValidationError(f"Invalid request type: {request_type}")

    cost = REDEMPTION_COSTS.get(request_type, 0)
    if request_type == REQUEST_OVERRIDE and not toggles.overrides_enabled:
        raise FeatureDisabledError("Day override requests are currently disabled. Please contact your instructor.")
    if cost and not toggles.redemption_requests_enabled:
        raise FeatureDisabledError("Redemption requests are currently disabled. Please contact your instructor.")

    override_date = None
    if request_type == REQUEST_OVERRIDE:
        if not data.get("overrideDate"):
            raise RequestValidationError("overrideDate is required for override requests")
        override_date = parse_iso_date(data["overrideDate"])

    if cost:
        balance = get_student_balances([student_id]).get(student_id, 0)
        if balance < cost:
            raise InsufficientCoinsError(cost, balance)

    section_id = data.get("sectionId") or data.get("sectionNumber")
    student_request = StudentRequest(
        student_id=student_id,
        student_name=data.get("studentName"),
        student_email=data.get("studentEmail"),
        request_type=request_type,
        description=details,
        coins_cost=cost,
        period_key=data.get("period") or None,
        section_id=normalize_section(section_id) if section_id else None,
        day_number=_parse_day_number(data.get("dayNumber")),
        override_date=override_date,
        status=RequestStatus.PENDING,
    )
    db.session.add(student_request)

    if cost:
        db.session.add(CoinAdjustment(
            student_id=student_id,
            period_key=GLOBAL_SCOPE,
            section_id=student_request.section_id,
            amount=-cost,
            reason=redemption_adjustment_reason(request_type, details),
            created_by=SYSTEM_AUTHOR,
            request=student_request,
        ))

    db.session.commit()
    current_app.logger.info(
        f"Request {student_request.id} ({request_type}) submitted by {student_id}"
        + (f", {cost} coins deducted" if cost else "")
    )
    return student_request


def get_requests_for_student(student_id):
    return (
        StudentRequest.query
        .filter_by(student_id=normalize_student_id(student_id))
        .order_by(StudentRequest.created_at.desc(), StudentRequest.id.desc())
        .all()
    )


# -------------------- ADMIN RESOLUTION --------------------

def _set_linked_adjustments_active(student_request, active):
    """Flip the request's linked deductions; returns how many changed."""
    now = datetime.now(timezone.utc)
    changed = 0
    for adjustment in student_request.adjustments.filter(CoinAdjustment.is_active.is_(not active)):
        adjustment.is_active = active
        adjustment.deactivated_at = None if active else now
        changed += 1
    return changed


def _approve_override(student_request, admin_notes, processed_by, fallback_reason):
    return upsert_day_override(
        student_request.student_id,
        student_request.override_date,
        OVERRIDE_QUALIFIED,
        reason=override_reason(student_request, admin_notes) or fallback_reason,
        day_number=student_request.day_number,
        created_by=processed_by,
    )


def resolve_request(request_id, status, toggles, admin_notes=None, processed_by="admin"):
    """
    Approve or reject one request.

    - Approving an override request upserts a ``qualified`` day override.
    - Rejecting a redemption cancels its deduction. Rejecting again changes
      nothing; approving a previously rejected redemption charges it again.

    Returns:
        dict: ``request``, ``overrideId``, ``adjustmentDeactivated``, ``message``.
    """
    student_request = db.session.get(StudentRequest, request_id)
    if student_request is None:
        raise RequestNotFoundError(request_id)

    try:
        new_status = RequestStatus.from_string(status)
    except ValueError:
        raise RequestValidationError(f"Invalid status: {status}")
    if new_status == RequestStatus.PENDING:
        raise RequestValidationError("Status must be 'approved' or 'rejected'")

    previous_status = student_request.status
    is_redemption = student_request.request_type in REDEMPTION_COSTS

    override = None
    if (new_status == RequestStatus.APPROVED
            and student_request.request_type == REQUEST_OVERRIDE
            and student_request.override_date):
        if not toggles.overrides_enabled:
            raise FeatureDisabledError("Day overrides are currently disabled. Cannot approve override requests.")
        override = _approve_override(student_request, admin_notes, processed_by, "Override approved")

    adjustment_deactivated = False
    if is_redemption and new_status == RequestStatus.REJECTED and previous_status != RequestStatus.REJECTED:
        adjustment_deactivated = _set_linked_adjustments_active(student_request, False) > 0
    elif is_redemption and new_status == RequestStatus.APPROVED and previous_status == RequestStatus.REJECTED:
        _set_linked_adjustments_active(student_request, True)

    student_request.status = new_status
    student_request.admin_notes = admin_notes or None
    student_request.processed_by = processed_by or "admin"
    student_request.resolved_at = datetime.now(timezone.utc)
    db.session.commit()

    if override is not None:
        message = "Override approved and applied to student record"
    elif adjustment_deactivated:
        message = "Request rejected and coin deduction cancelled"
    elif new_status == RequestStatus.REJECTED:
        message = "Request rejected successfully"
    else:
        message = "Request updated successfully"

    return {
        "request": student_request.to_dict(),
        "overrideId": override.id if override is not None else None,
        "adjustmentDeactivated": adjustment_deactivated,
        "message": message,
    }


def fast_approve(student_id, toggles, admin_notes=None):
    """
    Approve every pending request for a student in one transaction.

    Override requests are left pending while overrides are disabled.

    Returns:
        dict: ``approvedCount`` and ``createdOverrides``.
    """
    student_id = normalize_student_id(student_id)
    pending = StudentRequest.query.filter_by(student_id=student_id, status=RequestStatus.PENDING).all()

    approved = 0
    overrides_created = 0
    now = datetime.now(timezone.utc)
    for student_request in pending:
        if student_request.request_type == REQUEST_OVERRIDE and student_request.override_date:
            if not toggles.overrides_enabled:
                continue
            _approve_override(student_request, admin_notes, "admin", "Override approved via fast approve")
            overrides_created += 1

        student_request.status = RequestStatus.APPROVED
        student_request.admin_notes = admin_notes or "Fast approved all requests"
        student_request.processed_by = "admin"
        student_request.resolved_at = now
        approved += 1

    db.session.commit()
    return {"approvedCount": approved, "createdOverrides": overrides_created}


def request_stats():
    pending = StudentRequest.query.filter_by(status=RequestStatus.PENDING)
    pending_overrides = pending.filter(StudentRequest.request_type == REQUEST_OVERRIDE).count()
    pending_redemptions = pending.filter(StudentRequest.request_type.in_(list(REDEMPTION_COSTS))).count()
    return {
        "pendingOverrides": pending_overrides,
        "pendingRedemptions": pending_redemptions,
        "totalPending": pending.count(),
    }


# -------------------- REPAIRS --------------------

def find_missing_overrides():
    """Approved override requests whose (student, date) override row is missing."""
    approved = StudentRequest.query.filter(
        StudentRequest.request_type == REQUEST_OVERRIDE,
        StudentRequest.status == RequestStatus.APPROVED,
        StudentRequest.override_date.isnot(None),
    ).all()
    missing = []
    for student_request in approved:
        exists = DayOverride.query.filter_by(
            student_id=student_request.student_id,
            date=student_request.override_date,
        ).first()
        if exists is None:
            missing.append(student_request)
    return missing


def fix_missing_overrides():
    """Create the missing overrides. Returns the repaired requests."""
    missing = find_missing_overrides()
    for student_request in missing:
        upsert_day_override(
            student_request.student_id,
            student_request.override_date,
            OVERRIDE_QUALIFIED,
            reason=f"Override approved: {student_request.admin_notes or student_request.description}",
            day_number=student_request.day_number,
            created_by=student_request.processed_by,
        )
    db.session.commit()
    return missing


def find_misscoped_redemptions():
    """Active system redemption deductions stored against a specific period."""
    return CoinAdjustment.query.filter(
        CoinAdjustment.created_by == SYSTEM_AUTHOR,
        CoinAdjustment.is_active.is_(True),
        CoinAdjustment.period_key != GLOBAL_SCOPE,
        or_(
            CoinAdjustment.request_id.isnot(None),
            CoinAdjustment.reason.like("Pending assignment replacement%"),
            CoinAdjustment.reason.like("Pending quiz replacement%"),
        ),
    ).all()


def fix_redemption_scopes():
    """Move misscoped redemption deductions to the global scope. Returns them."""
    adjustments = find_misscoped_redemptions()
    for adjustment in adjustments:
        adjustment.period_key = GLOBAL_SCOPE
    db.session.commit()
    return adjustments
