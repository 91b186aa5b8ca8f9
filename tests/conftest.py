import os
import sys
from datetime import date
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Override env vars for testing
os.environ["SECRET_KEY"] = "test-secret"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["FLASK_ENV"] = "testing"
os.environ["ADMIN_PASSWORD"] = "test-admin-password"
os.environ.setdefault("RATELIMIT_STORAGE_URI", "memory://")


sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import pytest
from datetime import datetime, timezone
from app import app as flask_app, db, ExamPeriod
from app.extensions import limiter
from app.utils.progress import DEFAULT_THRESHOLDS, process_student_activity
from app.utils.upload_parser import StudentActivity


@pytest.fixture
def app():
    """Provide the Flask app instance for tests."""
    flask_app.config.update(
        TESTING=True,
        WTF_CSRF_ENABLED=False,
        SQLALCHEMY_DATABASE_URI="sqlite:///:memory:",
        ENV="testing",
        SESSION_COOKIE_SECURE=False,
        RATELIMIT_ENABLED=False,
    )
    limiter.enabled = False
    yield flask_app


@pytest.fixture
def client(app):
    ctx = app.app_context()
    ctx.push()
    db.create_all()
    client = flask_app.test_client()
    yield client
    db.session.remove()
    db.drop_all()
    ctx.pop()


@pytest.fixture
def admin_client(client):
    """Test client with a live admin session."""
    with client.session_transaction() as sess:
        sess["is_admin"] = True
        sess["last_activity"] = datetime.now(timezone.utc).isoformat()
    return client


# SQLite pragma event listener for foreign key constraints
# Registered at module level and persists across all tests
from sqlalchemy import event
from sqlalchemy.engine import Engine

def _enable_sqlite_foreign_keys(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite connections."""
    if 'sqlite' in str(type(dbapi_conn)):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

# Register event listener once at module load time
# Only applies to SQLite connections, so won't affect other databases
event.listen(Engine, "connect", _enable_sqlite_foreign_keys)


@pytest.fixture
def exam_period(client):
    """
    Five-day period 2025-06-24..2025-06-28 with 2025-06-25 exempt.

    Day 2 is the exempt day; days 1, 3, 4 and 5 are working days.
    """
    period = ExamPeriod(
        period_key="summer2025",
        name="Summer 2025 - Exam 1 Period",
        start_date=date(2025, 6, 24),
        end_date=date(2025, 6, 28),
        excluded_dates=["2025-06-25"],
    )
    db.session.add(period)
    db.session.commit()
    return period


@pytest.fixture
def make_record(client):
    """
    Store a student's progress the way an upload does.

    ``activity`` maps day number -> (minutes, topics); missing observed days
    count as no activity.
    """
    from records import calendar_for_period, get_exam_period, merge_upload

    def _make(student_id, name, activity, period_key="summer2025", section_id="default", observed=None):
        calendar = calendar_for_period(get_exam_period(period_key))
        observed = len(calendar) if observed is None else observed
        progress = process_student_activity(calendar, activity, observed, DEFAULT_THRESHOLDS)
        student = StudentActivity(
            student_id=student_id,
            name=name,
            email=f"{student_id}@example.edu",
            activity_by_day=activity,
        )
        merge_upload(period_key, section_id, {student_id: (student, progress)})
        return progress

    return _make
