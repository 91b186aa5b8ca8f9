"""
Progress Qualification - calendar, daily qualification and per-student totals.

This module holds the rules that turn raw ALEKS activity into coins:
- Build the calendar of an exam period (day numbers, exempt days)
- Decide whether a single day qualifies (minutes AND topics thresholds)
- Roll a student's days up into coins, exempt-day credits and percent complete
- Re-apply admin day overrides and recompute the totals

Everything here is pure: no database, no request context. All dates are plain
``datetime.date`` values with no time component and no timezone.
"""

import logging
import math
import re
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from app.utils.constants import (
    EXEMPT_DAY_REASON,
    MIN_DAILY_MINUTES,
    MIN_DAILY_TOPICS,
    OVERRIDE_QUALIFIED,
    OVERRIDE_TYPES,
)
from app.utils.errors import InvalidDateError, InvalidRangeError

logger = logging.getLogger(__name__)

DateLike = Union[date, str]

_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


# -------------------- DATA TYPES --------------------

@dataclass(frozen=True)
class Thresholds:
    """Minimum activity for a working day to qualify."""
    min_minutes: float = MIN_DAILY_MINUTES
    min_topics: float = MIN_DAILY_TOPICS


DEFAULT_THRESHOLDS = Thresholds()


@dataclass(frozen=True)
class CalendarDay:
    """One calendar date inside a period. Never persisted."""
    day_number: int             # 1-based, contiguous
    date: date
    is_excluded: bool


@dataclass(frozen=True)
class Qualification:
    qualified: bool
    reason: str


@dataclass(frozen=True)
class DayRecord:
    """A student's outcome for one observed day."""
    day: int
    date: date
    minutes: float
    topics: float
    is_excluded: bool
    qualified: bool
    reason: str
    would_have_qualified: bool = False   # exempt-day credit flag

    def to_dict(self) -> Dict[str, Any]:
        return {
            "day": self.day,
            "date": self.date.isoformat(),
            "qualified": self.qualified,
            "minutes": _clean_number(self.minutes),
            "topics": _clean_number(self.topics),
            "reason": self.reason,
            "isExcluded": self.is_excluded,
            "wouldHaveQualified": self.would_have_qualified,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DayRecord":
        """Rebuild a record from its stored JSON form."""
        return cls(
            day=int(data["day"]),
            date=parse_iso_date(data["date"]),
            minutes=coerce_count(data.get("minutes")),
            topics=coerce_count(data.get("topics")),
            is_excluded=bool(data.get("isExcluded", False)),
            qualified=bool(data.get("qualified", False)),
            reason=data.get("reason") or "",
            would_have_qualified=bool(data.get("wouldHaveQualified", False)),
        )


@dataclass(frozen=True)
class OverrideEntry:
    """An admin correction for one student-date."""
    date: date
    override_type: str
    reason: Optional[str] = None

    def __post_init__(self):
        if self.override_type not in OVERRIDE_TYPES:
            raise ValueError(f"Invalid override type: {self.override_type}")

    @property
    def qualified(self) -> bool:
        return self.override_type == OVERRIDE_QUALIFIED


@dataclass
class StudentProgress:
    """Aggregated totals for one student in one period/section."""
    coins: int
    total_days: int                 # completed (observed) working days
    period_days: int                # working days in the whole period
    qualified_working_days: int
    exempt_day_credits: int
    percent_complete: float
    daily_log: List[DayRecord]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "coins": self.coins,
            "totalDays": self.total_days,
            "periodDays": self.period_days,
            "exemptDayCredits": self.exempt_day_credits,
            "percentComplete": self.percent_complete,
            "dailyLog": [record.to_dict() for record in self.daily_log],
        }


# -------------------- PARSING HELPERS --------------------

def parse_iso_date(value: DateLike) -> date:
    """Return a ``date`` for a date value or a strict ``YYYY-MM-DD`` string."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        raise InvalidDateError(f"Empty or missing date: {value!r}")

    cleaned = value.strip()
    if not _ISO_DATE_RE.match(cleaned):
        raise InvalidDateError(f"Malformed date (expected YYYY-MM-DD): {value!r}")
    try:
        return datetime.strptime(cleaned, "%Y-%m-%d").date()
    except ValueError as exc:
        raise InvalidDateError(f"Invalid calendar date: {value!r}") from exc


def coerce_count(value: Any) -> float:
    """Return a non-negative number; absent or unparseable values count as 0."""
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        number = value
    else:
        try:
            number = float(str(value).strip())
        except ValueError:
            return 0
    if math.isnan(number) or math.isinf(number) or number < 0:
        return 0
    return number


def _clean_number(value: float) -> Union[int, float]:
    """Render whole floats as ints (``2.0`` -> ``2``)."""
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


# -------------------- CALENDAR --------------------

def generate_period_days(
    start_date: DateLike,
    end_date: DateLike,
    excluded_dates: Iterable[DateLike] = (),
) -> List[CalendarDay]:
    """
    Build the ordered calendar for a period.

    Args:
        start_date: First day of the period (inclusive).
        end_date: Last day of the period (inclusive).
        excluded_dates: Exempt dates. Dates outside the range are ignored.

    Returns:
        One CalendarDay per date from start to end, numbered from 1.

    Raises:
        InvalidRangeError: start_date is after end_date.
        InvalidDateError: a date (including an excluded one) is empty or malformed.
    """
    start = parse_iso_date(start_date)
    end = parse_iso_date(end_date)
    if start > end:
        raise InvalidRangeError(f"Start date {start.isoformat()} is after end date {end.isoformat()}")

    excluded = {parse_iso_date(value) for value in excluded_dates}

    days = []
    total = (end - start).days + 1
    for offset in range(total):
        current = start + timedelta(days=offset)
        days.append(CalendarDay(day_number=offset + 1, date=current, is_excluded=current in excluded))
    return days


def count_working_days(calendar_days: Iterable[CalendarDay]) -> int:
    return sum(1 for day in calendar_days if not day.is_excluded)


# -------------------- DAY QUALIFIER --------------------

def _plural(count: float, noun: str) -> str:
    return noun if count == 1 else f"{noun}s"


def meets_thresholds(minutes: Any, topics: Any, thresholds: Thresholds = DEFAULT_THRESHOLDS) -> bool:
    """True when raw activity clears both thresholds, ignoring exemption."""
    return (coerce_count(minutes) >= thresholds.min_minutes
            and coerce_count(topics) >= thresholds.min_topics)


def qualify_day(
    minutes: Any,
    topics: Any,
    is_excluded: bool,
    thresholds: Thresholds = DEFAULT_THRESHOLDS,
) -> Qualification:
    """
    Decide whether one day qualifies and explain why.

    Exempt days never qualify; exemption is informational, not a pass.
    """
    if is_excluded:
        return Qualification(qualified=False, reason=EXEMPT_DAY_REASON)

    minutes = _clean_number(coerce_count(minutes))
    topics = _clean_number(coerce_count(topics))
    min_minutes = _clean_number(thresholds.min_minutes)
    min_topics = _clean_number(thresholds.min_topics)

    shortfalls = []
    if minutes < min_minutes:
        shortfalls.append(f"{minutes} mins (needs {min_minutes} mins)")
    if topics < min_topics:
        shortfalls.append(f"{topics} topics (needs {min_topics} {_plural(min_topics, 'topic')})")

    if not shortfalls:
        return Qualification(
            qualified=True,
            reason=f"✅ Met requirement: {minutes} mins + {topics} {_plural(topics, 'topic')}",
        )
    return Qualification(qualified=False, reason="❌ Not enough: " + " and ".join(shortfalls))


def build_day_record(
    calendar_day: CalendarDay,
    minutes: Any,
    topics: Any,
    thresholds: Thresholds = DEFAULT_THRESHOLDS,
) -> DayRecord:
    minutes = coerce_count(minutes)
    topics = coerce_count(topics)
    outcome = qualify_day(minutes, topics, calendar_day.is_excluded, thresholds)
    return DayRecord(
        day=calendar_day.day_number,
        date=calendar_day.date,
        minutes=minutes,
        topics=topics,
        is_excluded=calendar_day.is_excluded,
        qualified=outcome.qualified,
        reason=outcome.reason,
        would_have_qualified=calendar_day.is_excluded and meets_thresholds(minutes, topics, thresholds),
    )


# -------------------- STUDENT AGGREGATOR --------------------

def compute_percent_complete(credited_days: int, completed_working_days: int) -> float:
    """One-decimal percentage, 0 for no completed days, capped at 100."""
    if completed_working_days <= 0:
        return 0.0
    ratio = credited_days / completed_working_days
    # Half-up rounding to one decimal place
    percent = math.floor(ratio * 1000 + 0.5) / 10
    return min(100.0, max(0.0, percent))


def aggregate_student(
    day_records: Iterable[DayRecord],
    observed_day_count: Optional[int] = None,
    period_days: int = 0,
) -> StudentProgress:
    """
    Roll one student's day records up into coins and completion.

    Args:
        day_records: Records for one student in one period/section.
        observed_day_count: Highest day number the data source reported.
            Records beyond it are ignored. Defaults to the highest day present.
        period_days: Working days in the full period (reported as-is).

    Returns:
        StudentProgress with coins = qualified working days + exempt-day credits.
    """
    records = sorted(day_records, key=lambda record: record.day)
    if observed_day_count is None:
        observed_day_count = records[-1].day if records else 0

    if observed_day_count <= 0:
        return StudentProgress(
            coins=0,
            total_days=0,
            period_days=period_days,
            qualified_working_days=0,
            exempt_day_credits=0,
            percent_complete=0.0,
            daily_log=[],
        )

    records = [record for record in records if record.day <= observed_day_count]
    working = [record for record in records if not record.is_excluded]
    excluded = [record for record in records if record.is_excluded]

    completed_working_days = len(working)
    qualified_working_days = sum(1 for record in working if record.qualified)
    exempt_day_credits = sum(1 for record in excluded if record.would_have_qualified)
    coins = qualified_working_days + exempt_day_credits

    return StudentProgress(
        coins=coins,
        total_days=completed_working_days,
        period_days=period_days,
        qualified_working_days=qualified_working_days,
        exempt_day_credits=exempt_day_credits,
        percent_complete=compute_percent_complete(coins, completed_working_days),
        daily_log=records,
    )


def process_student_activity(
    calendar_days: List[CalendarDay],
    activity_by_day: Mapping[int, tuple],
    observed_day_count: int,
    thresholds: Thresholds = DEFAULT_THRESHOLDS,
) -> StudentProgress:
    """
    Qualify every observed day for one student and aggregate the result.

    ``activity_by_day`` maps a day number to ``(minutes, topics)``; observed
    days with no entry count as zero activity.
    """
    if observed_day_count > len(calendar_days):
        logger.warning(
            "Upload reports %s days but the period only has %s; extra days ignored",
            observed_day_count, len(calendar_days),
        )
        observed_day_count = len(calendar_days)

    records = []
    for calendar_day in calendar_days[:max(observed_day_count, 0)]:
        minutes, topics = activity_by_day.get(calendar_day.day_number, (0, 0))
        records.append(build_day_record(calendar_day, minutes, topics, thresholds))

    return aggregate_student(records, observed_day_count, count_working_days(calendar_days))


# -------------------- OVERRIDE APPLIER --------------------

def _index_overrides(overrides) -> Dict[date, OverrideEntry]:
    if isinstance(overrides, Mapping):
        return {parse_iso_date(key): value for key, value in overrides.items()}
    return {entry.date: entry for entry in overrides}


def apply_overrides(
    day_records: Iterable[DayRecord],
    overrides: Union[Mapping[DateLike, OverrideEntry], Iterable[OverrideEntry]],
) -> List[DayRecord]:
    """
    Return a new record list with admin overrides substituted by date.

    The override's type replaces ``qualified``; a non-empty override reason
    replaces the record's reason. Exempt days keep ``is_excluded`` and the
    override sets their exempt-day credit directly. Input records are not
    modified, so applying the same overrides twice gives the same result.
    """
    by_date = _index_overrides(overrides)
    corrected = []
    for record in day_records:
        override = by_date.get(record.date)
        if override is None:
            corrected.append(record)
            continue

        changes = {
            "qualified": override.qualified,
            "reason": override.reason or record.reason,
        }
        if record.is_excluded:
            changes["would_have_qualified"] = override.qualified
        corrected.append(replace(record, **changes))
    return corrected


def apply_overrides_and_aggregate(
    day_records: Iterable[DayRecord],
    overrides: Union[Mapping[DateLike, OverrideEntry], Iterable[OverrideEntry]],
    observed_day_count: Optional[int] = None,
    period_days: int = 0,
) -> StudentProgress:
    """Apply overrides, then recompute the student's totals from the corrected days."""
    corrected = apply_overrides(day_records, overrides)
    return aggregate_student(corrected, observed_day_count, period_days)
