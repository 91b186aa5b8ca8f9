"""
Fixed demo student shown for the id ``abc123``.

The data is generated through the same calendar, qualifier and aggregator the
real uploads use, so the demo always matches the live rules.
"""

from datetime import date

from app.utils.progress import (
    DEFAULT_THRESHOLDS,
    DayRecord,
    generate_period_days,
    process_student_activity,
)

DEMO_PERIOD = {
    "periodKey": "demo",
    "name": "Demo Period",
    "startDate": date(2025, 6, 24),
    "endDate": date(2025, 7, 17),
    "excludedDates": [date(2025, 7, 4), date(2025, 7, 5), date(2025, 7, 6)],
}

DEMO_OBSERVED_DAYS = 20
DEMO_QUALIFIED_DAYS = frozenset({1, 2, 4, 5, 7, 8, 9, 14, 15})

NO_DATA_REASON = "⏳ No data available"


def _demo_activity(day_number, is_excluded):
    if is_excluded:
        return 45, 2
    if day_number in DEMO_QUALIFIED_DAYS:
        return 35 + day_number * 2, 1 + day_number % 3
    # Missed days alternate between too few minutes and no topics
    if day_number % 2 == 0:
        return 25, 2
    return 35, 0


def _placeholder_day(calendar_day):
    """Log entry for a day past the observed data, so the whole period renders."""
    return DayRecord(
        day=calendar_day.day_number,
        date=calendar_day.date,
        minutes=0,
        topics=0,
        is_excluded=calendar_day.is_excluded,
        qualified=False,
        reason=NO_DATA_REASON,
    ).to_dict()


def build_demo_student(thresholds=DEFAULT_THRESHOLDS):
    """Return the demo student in the same shape as a real student lookup."""
    calendar = generate_period_days(
        DEMO_PERIOD["startDate"], DEMO_PERIOD["endDate"], DEMO_PERIOD["excludedDates"]
    )
    activity = {
        day.day_number: _demo_activity(day.day_number, day.is_excluded)
        for day in calendar
    }
    progress = process_student_activity(calendar, activity, DEMO_OBSERVED_DAYS, thresholds)

    period = progress.to_dict()
    # Placeholders are display-only; coins and completion come from observed days
    period["dailyLog"] = period["dailyLog"] + [
        _placeholder_day(day) for day in calendar[DEMO_OBSERVED_DAYS:]
    ]
    period.update({
        "period": DEMO_PERIOD["periodKey"],
        "periodName": DEMO_PERIOD["name"],
        "sectionId": "demo",
        "periodInfo": {
            "startDate": DEMO_PERIOD["startDate"].isoformat(),
            "endDate": DEMO_PERIOD["endDate"].isoformat(),
            "excludedDates": [d.isoformat() for d in DEMO_PERIOD["excludedDates"]],
        },
    })

    return {
        "studentId": "abc123",
        "name": "Demo Student",
        "email": "demo@example.com",
        "isDemo": True,
        "balance": progress.coins,
        "coins": progress.coins,
        "totalDays": progress.total_days,
        "periodDays": progress.period_days,
        "percentComplete": progress.percent_complete,
        "dailyLog": period["dailyLog"],
        "periods": [period],
    }
