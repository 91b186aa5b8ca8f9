from datetime import datetime, timezone

from flask import current_app
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from app.extensions import db
from app.models import CoinAdjustment, DayOverride, ExamPeriod, StudentPeriodRecord, StudentRequest
from app.utils.errors import MissingPeriodError
from app.utils.helpers import normalize_student_id
from app.utils.progress import (
    DayRecord,
    OverrideEntry,
    apply_overrides_and_aggregate,
    build_day_record,
    generate_period_days,
    aggregate_student,
)


def get_exam_period(period_key):
    """
    Look up a period by key.

    Raises:
        MissingPeriodError: No period is configured under ``period_key``.
    """
    period = ExamPeriod.query.filter_by(period_key=period_key).first() if period_key else None
    if period is None:
        raise MissingPeriodError(period_key)
    return period


def calendar_for_period(period):
    """Ordered calendar days for a stored ExamPeriod."""
    return generate_period_days(period.start_date, period.end_date, period.excluded_dates or [])


def _use_row_locking():
    bind = db.session.get_bind()
    return bool(bind) and bind.dialect.name != 'sqlite'


def _apply_progress(record, student, progress, uploaded_at):
    record.name = student.name
    record.email = student.email
    record.coins = progress.coins
    record.total_days = progress.total_days
    record.period_days = progress.period_days
    record.exempt_day_credits = progress.exempt_day_credits
    record.percent_complete = progress.percent_complete
    record.daily_log = [day.to_dict() for day in progress.daily_log]
    record.uploaded_at = uploaded_at


def _merge_upload_once(period_key, section_id, results, uploaded_at):
    student_ids = list(results)
    query = select(StudentPeriodRecord).where(
        StudentPeriodRecord.period_key == period_key,
        StudentPeriodRecord.section_id == section_id,
        StudentPeriodRecord.student_id.in_(student_ids),
    )
    if _use_row_locking():
        query = query.with_for_update()
    existing = {record.student_id: record for record in db.session.execute(query).scalars()}

    created = 0
    for student_id, (student, progress) in results.items():
        record = existing.get(student_id)
        if record is None:
            record = StudentPeriodRecord(
                student_id=student_id,
                period_key=period_key,
                section_id=section_id,
            )
            db.session.add(record)
            created += 1
        _apply_progress(record, student, progress, uploaded_at)

    db.session.commit()
    return created


def merge_upload(period_key, section_id, results):
    """
    Merge freshly computed upload results into the stored records.

    Students in ``results`` replace their record for this period/section;
    students already stored but absent from the upload keep their old record.
    The whole merge is one transaction; a unique-constraint race with a
    concurrent upload is rolled back and retried once.

    Args:
        period_key: Period the upload belongs to.
        section_id: Normalized section id.
        results: ``{student_id: (StudentActivity, StudentProgress)}``.

    Returns:
        dict: ``{"updated": n, "created": n}``.
    """
    uploaded_at = datetime.now(timezone.utc)
    for attempt in range(2):
        try:
            created = _merge_upload_once(period_key, section_id, results, uploaded_at)
            return {"updated": len(results) - created, "created": created}
        except IntegrityError:
            db.session.rollback()
            if attempt:
                raise
            current_app.logger.warning(
                f"Concurrent upload detected for {period_key}/{section_id}, retrying merge"
            )


# -------------------- OVERRIDES --------------------

def load_overrides(student_ids=None):
    """Return ``{student_id: {date: OverrideEntry}}`` for the given students (or all)."""
    query = DayOverride.query
    if student_ids is not None:
        student_ids = [normalize_student_id(sid) for sid in student_ids]
        if not student_ids:
            return {}
        query = query.filter(DayOverride.student_id.in_(student_ids))

    overrides = {}
    for row in query.all():
        overrides.setdefault(row.student_id, {})[row.date] = OverrideEntry(
            date=row.date,
            override_type=row.override_type,
            reason=row.reason,
        )
    return overrides


def upsert_day_override(student_id, override_date, override_type, reason=None, day_number=None, created_by=None):
    """Create or replace the override for (student, date). Caller commits."""
    student_id = normalize_student_id(student_id)
    # Validates the type before touching the session
    OverrideEntry(date=override_date, override_type=override_type, reason=reason)

    override = DayOverride.query.filter_by(student_id=student_id, date=override_date).first()
    if override is None:
        override = DayOverride(student_id=student_id, date=override_date)
        db.session.add(override)
    override.override_type = override_type
    override.reason = reason
    override.day_number = day_number
    override.created_by = created_by
    override.updated_at = datetime.now(timezone.utc)
    return override


def stored_day_records(record):
    return [DayRecord.from_dict(entry) for entry in (record.daily_log or [])]


def corrected_progress(record, overrides_by_date):
    """Re-aggregate a stored record with the student's overrides applied."""
    return apply_overrides_and_aggregate(
        stored_day_records(record),
        overrides_by_date or {},
        period_days=record.period_days,
    )


def record_with_overrides(record, overrides_by_date):
    """Serialize a stored record with post-override totals and daily log."""
    data = record.to_dict()
    data.update(corrected_progress(record, overrides_by_date).to_dict())
    return data


def get_student_records(student_id):
    """All stored records for one student, newest upload first."""
    return (
        StudentPeriodRecord.query
        .filter_by(student_id=normalize_student_id(student_id))
        .order_by(StudentPeriodRecord.uploaded_at.desc())
        .all()
    )


def get_period_records(period_key, section_id):
    return (
        StudentPeriodRecord.query
        .filter_by(period_key=period_key, section_id=section_id)
        .order_by(StudentPeriodRecord.name)
        .all()
    )


# -------------------- PERIOD MAINTENANCE --------------------

def rename_period_key(old_key, new_key):
    """
    Move every reference to ``old_key`` over to ``new_key``. Caller commits.

    Returns:
        dict: Row counts updated per table.
    """
    counts = {}
    for label, model in (
        ("records", StudentPeriodRecord),
        ("adjustments", CoinAdjustment),
        ("requests", StudentRequest),
    ):
        counts[label] = (
            model.query
            .filter(model.period_key == old_key)
            .update({model.period_key: new_key}, synchronize_session=False)
        )
    return counts


def delete_period(period_key):
    """Delete a period and its student records. Adjustments and requests are kept. Caller commits."""
    period = get_exam_period(period_key)
    removed = StudentPeriodRecord.query.filter_by(period_key=period_key).delete(synchronize_session=False)
    db.session.delete(period)
    return removed


def recompute_records(thresholds, period_key=None):
    """
    Re-qualify every stored day log against ``thresholds`` and refresh totals.

    Days are re-dated from the period's current calendar so exemptions added
    after the upload take effect. Records whose period no longer exists are
    re-aggregated without re-qualification.

    Returns:
        int: Number of records rewritten.
    """
    query = StudentPeriodRecord.query
    if period_key:
        query = query.filter_by(period_key=period_key)

    calendars = {}
    updated = 0
    for record in query.all():
        if record.period_key not in calendars:
            period = ExamPeriod.query.filter_by(period_key=record.period_key).first()
            calendars[record.period_key] = calendar_for_period(period) if period else None
        calendar = calendars[record.period_key]

        days = stored_day_records(record)
        if calendar is not None:
            by_number = {day.day_number: day for day in calendar}
            days = [
                build_day_record(by_number[day.day], day.minutes, day.topics, thresholds)
                for day in days
                if day.day in by_number
            ]
            period_days = sum(1 for day in calendar if not day.is_excluded)
        else:
            period_days = record.period_days

        progress = aggregate_student(days, period_days=period_days)
        record.coins = progress.coins
        record.total_days = progress.total_days
        record.period_days = progress.period_days
        record.exempt_day_credits = progress.exempt_day_credits
        record.percent_complete = progress.percent_complete
        record.daily_log = [day.to_dict() for day in progress.daily_log]
        updated += 1

    db.session.commit()
    return updated
