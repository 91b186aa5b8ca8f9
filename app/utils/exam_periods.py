"""Default academic-year exam periods seeded by ``flask init-periods``."""

from datetime import date

# (key suffix, name template, start (month, day), end (month, day), excluded [(month, day), ...])
_DEFAULT_LAYOUT = [
    ("spring", "Spring {year} - Exam 1 Period", (1, 15), (2, 10), [(1, 20), (2, 3)]),
    ("spring_exam2", "Spring {year} - Exam 2 Period", (2, 11), (3, 10), [(2, 17), (3, 3)]),
    ("spring_exam3", "Spring {year} - Exam 3 Period", (3, 11), (4, 7), [(3, 17), (3, 31)]),
    ("spring_final", "Spring {year} - Final Exam Period", (4, 8), (4, 28), [(4, 21)]),
    ("summer", "Summer {year} - Exam 1 Period", (5, 31), (6, 23), [(6, 7), (6, 8)]),
    ("summer_exam2", "Summer {year} - Exam 2 Period", (6, 24), (7, 17), [(7, 4), (7, 5), (7, 6)]),
    ("summer_exam3", "Summer {year} - Exam 3 Period", (7, 18), (8, 3), [(7, 26), (7, 27)]),
    ("summer_final", "Summer {year} - Final Exam Period", (8, 4), (8, 10), []),
    ("fall", "Fall {year} - Exam 1 Period", (8, 26), (9, 20), [(9, 2), (9, 16)]),
    ("fall_exam2", "Fall {year} - Exam 2 Period", (9, 21), (10, 18), [(10, 14)]),
    ("fall_exam3", "Fall {year} - Exam 3 Period", (10, 19), (11, 15), [(11, 11)]),
    ("fall_final", "Fall {year} - Final Exam Period", (11, 16), (12, 13),
     [(11, 25), (11, 26), (11, 27), (11, 28), (11, 29)]),
]


def default_exam_periods(year):
    """Return the default periods for ``year`` as plain dicts.

    Keys look like ``spring2026`` or ``fall2026_exam2``.
    """
    periods = []
    for suffix, name, start, end, excluded in _DEFAULT_LAYOUT:
        season, _, rest = suffix.partition("_")
        key = f"{season}{year}" + (f"_{rest}" if rest else "")
        periods.append({
            "period_key": key,
            "name": name.format(year=year),
            "start_date": date(year, *start),
            "end_date": date(year, *end),
            "excluded_dates": [date(year, *day).isoformat() for day in excluded],
        })
    return periods


def seed_default_periods(year):
    """Insert any default period for ``year`` that does not exist yet. Caller commits.

    Returns:
        list: Keys of the periods that were created.
    """
    from app.extensions import db
    from app.models import ExamPeriod  # Imported lazily to avoid circular import

    created = []
    for data in default_exam_periods(year):
        if ExamPeriod.query.filter_by(period_key=data["period_key"]).first():
            continue
        db.session.add(ExamPeriod(**data))
        created.append(data["period_key"])
    return created
