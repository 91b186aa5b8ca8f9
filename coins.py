import math

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from app.models import CoinAdjustment, StudentPeriodRecord
from app.utils.coin_balance import (
    Adjustment,
    PeriodCoins,
    calculate_balance_breakdown,
    calculate_balances,
    scope_key,
)
from app.utils.errors import AdjustmentLookupError
from app.utils.helpers import normalize_student_id
from records import corrected_progress, get_period_records, load_overrides


def _to_adjustment(row):
    return Adjustment(
        amount=row.amount,
        period_key=row.period_key,
        section_id=row.section_id,
        is_active=row.is_active,
    )


def load_adjustments(student_ids):
    """
    Return ``{student_id: [Adjustment, ...]}`` of active adjustments.

    Raises:
        AdjustmentLookupError: The adjustments could not be read. Callers must
            not compute any balance from partial data.
    """
    student_ids = [normalize_student_id(sid) for sid in student_ids]
    if not student_ids:
        return {}
    try:
        rows = CoinAdjustment.query.filter(
            CoinAdjustment.student_id.in_(student_ids),
            CoinAdjustment.is_active.is_(True),
        ).all()
    except SQLAlchemyError as e:
        current_app.logger.error(f"Failed to load coin adjustments: {e}", exc_info=True)
        raise AdjustmentLookupError("Coin adjustments are unavailable; balances cannot be computed") from e

    adjustments = {}
    for row in rows:
        adjustments.setdefault(row.student_id, []).append(_to_adjustment(row))
    return adjustments


def load_period_coins(student_ids):
    """Return ``{student_id: [PeriodCoins, ...]}`` using post-override coins."""
    student_ids = [normalize_student_id(sid) for sid in student_ids]
    if not student_ids:
        return {}
    overrides = load_overrides(student_ids)
    records = StudentPeriodRecord.query.filter(StudentPeriodRecord.student_id.in_(student_ids)).all()

    period_coins = {}
    for record in records:
        progress = corrected_progress(record, overrides.get(record.student_id))
        period_coins.setdefault(record.student_id, []).append(
            PeriodCoins(period_key=record.period_key, section_id=record.section_id, coins=progress.coins)
        )
    return period_coins


def get_student_balances(student_ids):
    """Balances for many students, keyed by the normalized student id."""
    student_ids = [normalize_student_id(sid) for sid in student_ids if normalize_student_id(sid)]
    adjustments = load_adjustments(student_ids)
    period_coins = load_period_coins(student_ids)
    return calculate_balances(student_ids, period_coins, adjustments)


def get_student_balance_breakdown(student_id):
    student_id = normalize_student_id(student_id)
    adjustments = load_adjustments([student_id])
    period_coins = load_period_coins([student_id])
    return calculate_balance_breakdown(period_coins.get(student_id, []), adjustments.get(student_id, []))


# -------------------- LEADERBOARD --------------------

def average_working_day_minutes(daily_log):
    """Mean minutes over non-exempt days; 0 when there are none."""
    working = [day for day in daily_log if not day.is_excluded]
    if not working:
        return 0
    return sum(day.minutes for day in working) / len(working)


def build_leaderboard(period_key, section_id, page=1, page_size=20):
    """
    Rank a period/section by coins earned there.

    Each student's score is their post-override period coins plus the active
    adjustments scoped to this period/section. Global adjustments (such as
    redemptions) are not part of the ranking. Ties go to the higher average
    minutes per working day.
    """
    records = get_period_records(period_key, section_id)
    if not records:
        return {
            "students": [],
            "totalStudents": 0,
            "totalPages": 0,
            "currentPage": page,
            "pageSize": page_size,
            "period": period_key,
            "sectionId": section_id,
        }

    student_ids = [record.student_id for record in records]
    overrides = load_overrides(student_ids)
    adjustments = load_adjustments(student_ids)
    target_scope = scope_key(period_key, section_id)

    entries = []
    for record in records:
        progress = corrected_progress(record, overrides.get(record.student_id))
        scoped = sum(
            adjustment.amount
            for adjustment in adjustments.get(record.student_id, [])
            if not adjustment.is_global and adjustment.scope == target_scope
        )
        entries.append({
            "studentId": record.student_id,
            "name": record.name,
            "email": record.email,
            "totalCoins": progress.coins + scoped,
            "baseCoins": progress.coins,
            "adjustments": scoped,
            "exemptDayCredits": progress.exempt_day_credits,
            "percentComplete": progress.percent_complete,
            "avgMinutesPerDay": round(average_working_day_minutes(progress.daily_log), 1),
            "_avg": average_working_day_minutes(progress.daily_log),
        })

    entries.sort(key=lambda entry: (-entry["totalCoins"], -entry["_avg"], entry["name"]))

    total = len(entries)
    start = (page - 1) * page_size
    ranked = []
    for offset, entry in enumerate(entries[start:start + page_size]):
        entry.pop("_avg")
        entry["rank"] = start + offset + 1
        ranked.append(entry)

    return {
        "students": ranked,
        "totalStudents": total,
        "totalPages": math.ceil(total / page_size),
        "currentPage": page,
        "pageSize": page_size,
        "period": period_key,
        "sectionId": section_id,
    }