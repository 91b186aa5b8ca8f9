"""
Common utility functions for the ALEKS Coins portal.

This module provides reusable helper functions for:
- Date/time formatting (ISO-8601 with UTC)
- Student id normalization
- The course-local "today"
- Uniform JSON error responses
"""

from datetime import datetime, timezone

import pytz
from flask import current_app, jsonify


def format_utc_iso(dt):
    """Return a UTC ISO-8601 string (with trailing Z) for a datetime or None."""
    if not dt:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    else:
        dt = dt.astimezone(timezone.utc)
    return dt.isoformat().replace("+00:00", "Z")


def normalize_student_id(value):
    """Student ids are matched case-insensitively and stored lowercased."""
    if value is None:
        return ""
    return str(value).strip().lower()


def course_today(tz_name=None):
    """Return today's date in the course timezone (``COURSE_TIMEZONE``)."""
    tz_name = tz_name or current_app.config.get("COURSE_TIMEZONE", "America/Chicago")
    try:
        course_tz = pytz.timezone(tz_name)
    except pytz.UnknownTimeZoneError:
        current_app.logger.warning(f"Invalid course timezone '{tz_name}', defaulting to UTC.")
        course_tz = pytz.utc
    return datetime.now(course_tz).date()


def parse_positive_int(value, default):
    """Parse a query-string integer, falling back to ``default`` for junk or values < 1."""
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number >= 1 else default


def error_response(message, status_code=400, **extra):
    """Standard JSON error body used by every API route."""
    body = {"status": "error", "message": message}
    body.update(extra)
    return jsonify(body), status_code


def progress_error_response(exc):
    """Map a ProgressError (or subclass) to its JSON error response."""
    return error_response(str(exc), getattr(exc, "status_code", 400))
