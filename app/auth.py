"""
Authentication and authorization utilities for the ALEKS Coins portal.

Admins share a single password (``ADMIN_PASSWORD``). A successful login marks
the session as admin; the session expires after a period of inactivity.
"""

import hmac
from datetime import datetime, timedelta, timezone
from functools import wraps

from flask import session, current_app

from app.utils.helpers import error_response


# -------------------- SESSION CONFIGURATION --------------------

SESSION_TIMEOUT_MINUTES = 30


def check_admin_password(candidate):
    """Constant-time comparison against the configured admin password."""
    expected = current_app.config.get("ADMIN_PASSWORD") or ""
    if not candidate or not expected:
        return False
    return hmac.compare_digest(str(candidate).encode(), expected.encode())


def start_admin_session():
    session["is_admin"] = True
    session["last_activity"] = datetime.now(timezone.utc).isoformat()


def end_admin_session():
    session.pop("is_admin", None)
    session.pop("last_activity", None)


# -------------------- AUTHENTICATION DECORATORS --------------------

def admin_required(f):
    """
    Decorator to require admin authentication for a route.

    Enforces session timeout based on last activity. Answers 401 JSON when
    the session is missing or expired.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not session.get("is_admin"):
            return error_response("Admin login required", 401)

        now = datetime.now(timezone.utc)
        last_activity = session.get('last_activity')

        if last_activity:
            last_activity = datetime.fromisoformat(last_activity)
            if (now - last_activity) > timedelta(minutes=SESSION_TIMEOUT_MINUTES):
                end_admin_session()
                current_app.logger.info("Admin session expired after inactivity")
                return error_response("Admin session expired. Please log in again.", 401)

        session['last_activity'] = now.isoformat()
        return f(*args, **kwargs)
    return decorated_function
