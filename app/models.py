"""
Database models for the ALEKS Coins portal.

All SQLAlchemy models are defined here. Times are stored as UTC in the
database; calendar dates (period ranges, override dates) are plain DATE columns.
"""

from datetime import datetime, timezone
import enum

from app.extensions import db
from app.utils.constants import DEFAULT_SECTION, GLOBAL_SCOPE
from app.utils.helpers import format_utc_iso


def _utc_now():
    """Helper function for timezone-aware datetime defaults in SQLAlchemy models."""
    return datetime.now(timezone.utc)


# -------------------- EXAM PERIODS --------------------

class ExamPeriod(db.Model):
    """
    A named date range (one exam unit) that uploads and coins are scoped to.

    ``excluded_dates`` holds ``YYYY-MM-DD`` strings for exempt days inside the
    range (holidays, exam days).
    """
    __tablename__ = 'exam_periods'

    id = db.Column(db.Integer, primary_key=True)
    period_key = db.Column(db.String(64), unique=True, nullable=False)
    name = db.Column(db.String(120), nullable=False)
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    excluded_dates = db.Column(db.JSON, nullable=False, default=list)

    created_at = db.Column(db.DateTime, default=_utc_now)
    updated_at = db.Column(db.DateTime, default=_utc_now, onupdate=_utc_now)

    def __repr__(self):
        return f'<ExamPeriod {self.period_key} {self.start_date}..{self.end_date}>'

    def to_dict(self):
        return {
            'periodKey': self.period_key,
            'name': self.name,
            'startDate': self.start_date.isoformat(),
            'endDate': self.end_date.isoformat(),
            'excludedDates': sorted(self.excluded_dates or []),
            'updatedAt': format_utc_iso(self.updated_at),
        }


# -------------------- STUDENT PROGRESS --------------------

class StudentPeriodRecord(db.Model):
    """
    One student's aggregated progress for one period and section.

    ``daily_log`` is the list of day qualification records exactly as they
    were computed from the upload, before any admin override. Overrides are
    applied when the record is read.
    """
    __tablename__ = 'student_period_records'

    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.String(64), nullable=False)   # stored lowercased
    period_key = db.Column(db.String(64), nullable=False)
    section_id = db.Column(db.String(64), nullable=False, default=DEFAULT_SECTION)

    name = db.Column(db.String(200), nullable=False)
    email = db.Column(db.String(200), nullable=True)

    coins = db.Column(db.Integer, nullable=False, default=0)
    total_days = db.Column(db.Integer, nullable=False, default=0)
    period_days = db.Column(db.Integer, nullable=False, default=0)
    exempt_day_credits = db.Column(db.Integer, nullable=False, default=0)
    percent_complete = db.Column(db.Float, nullable=False, default=0.0)
    daily_log = db.Column(db.JSON, nullable=False, default=list)

    uploaded_at = db.Column(db.DateTime, default=_utc_now, nullable=False)

    __table_args__ = (
        db.UniqueConstraint('student_id', 'period_key', 'section_id', name='uq_student_period_records_scope'),
        db.Index('ix_student_period_records_student_id', 'student_id'),
        db.Index('ix_student_period_records_period_section', 'period_key', 'section_id'),
    )

    def __repr__(self):
        return f'<StudentPeriodRecord {self.student_id} {self.period_key}/{self.section_id} coins={self.coins}>'

    def to_dict(self):
        return {
            'studentId': self.student_id,
            'name': self.name,
            'email': self.email,
            'period': self.period_key,
            'sectionId': self.section_id,
            'coins': self.coins,
            'totalDays': self.total_days,
            'periodDays': self.period_days,
            'exemptDayCredits': self.exempt_day_credits,
            'percentComplete': self.percent_complete,
            'dailyLog': self.daily_log or [],
            'uploadedAt': format_utc_iso(self.uploaded_at),
        }


class DayOverride(db.Model):
    """Admin correction of a single student-date's qualification."""
    __tablename__ = 'day_overrides'

    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.String(64), nullable=False)
    date = db.Column(db.Date, nullable=False)
    override_type = db.Column(db.String(20), nullable=False)   # qualified | not_qualified
    reason = db.Column(db.Text, nullable=True)
    day_number = db.Column(db.Integer, nullable=True)          # informational only
    created_by = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime, default=_utc_now)
    updated_at = db.Column(db.DateTime, default=_utc_now, onupdate=_utc_now)

    __table_args__ = (
        db.UniqueConstraint('student_id', 'date', name='uq_day_overrides_student_date'),
        db.Index('ix_day_overrides_student_id', 'student_id'),
    )

    def __repr__(self):
        return f'<DayOverride {self.student_id} {self.date} {self.override_type}>'

    def to_dict(self):
        return {
            'id': self.id,
            'studentId': self.student_id,
            'date': self.date.isoformat(),
            'overrideType': self.override_type,
            'reason': self.reason,
            'dayNumber': self.day_number,
            'createdBy': self.created_by,
            'createdAt': format_utc_iso(self.created_at),
            'updatedAt': format_utc_iso(self.updated_at),
        }


# -------------------- COINS --------------------

class CoinAdjustment(db.Model):
    """
    A signed manual change to a student's coins.

    ``period_key`` is either a real period key (the adjustment only counts if
    the student has a record in that period/section) or ``__GLOBAL__``.
    Adjustments are never deleted; ``is_active`` is cleared instead.
    """
    __tablename__ = 'coin_adjustments'

    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.String(64), nullable=False)
    period_key = db.Column(db.String(64), nullable=False, default=GLOBAL_SCOPE)
    section_id = db.Column(db.String(64), nullable=True)
    amount = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.Text, nullable=False)
    created_by = db.Column(db.String(64), nullable=False, default='admin')
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    request_id = db.Column(db.Integer, db.ForeignKey('student_requests.id', ondelete='SET NULL'), nullable=True)

    created_at = db.Column(db.DateTime, default=_utc_now)
    deactivated_at = db.Column(db.DateTime, nullable=True)

    request = db.relationship('StudentRequest', backref=db.backref('adjustments', lazy='dynamic'))

    __table_args__ = (
        db.Index('ix_coin_adjustments_student_active', 'student_id', 'is_active'),
        db.Index('ix_coin_adjustments_period_section', 'period_key', 'section_id'),
    )

    def __repr__(self):
        return f'<CoinAdjustment {self.student_id} {self.amount:+d} {self.period_key}>'

    @property
    def is_global(self):
        return self.period_key == GLOBAL_SCOPE

    def to_dict(self):
        return {
            'id': self.id,
            'studentId': self.student_id,
            'period': self.period_key,
            'sectionId': self.section_id,
            'amount': self.amount,
            'reason': self.reason,
            'createdBy': self.created_by,
            'active': self.is_active,
            'requestId': self.request_id,
            'createdAt': format_utc_iso(self.created_at),
        }


class RequestStatus(enum.Enum):
    """Enum for student request statuses."""
    PENDING = 'pending'
    APPROVED = 'approved'
    REJECTED = 'rejected'

    @classmethod
    def from_string(cls, value):
        """Convert string to enum, raising ValueError if invalid."""
        if isinstance(value, cls):
            return value
        for member in cls:
            if member.value == value:
                return member
        raise ValueError(f"Invalid RequestStatus: {value}")


class StudentRequest(db.Model):
    """
    A student-submitted request: a coin redemption, a day override request,
    or a free-form inquiry. Redemptions carry their coin cost.
    """
    __tablename__ = 'student_requests'

    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.String(64), nullable=False)
    student_name = db.Column(db.String(200), nullable=True)
    student_email = db.Column(db.String(200), nullable=True)
    request_type = db.Column(db.String(40), nullable=False)
    description = db.Column(db.Text, nullable=False)
    coins_cost = db.Column(db.Integer, nullable=False, default=0)
    period_key = db.Column(db.String(64), nullable=True)
    section_id = db.Column(db.String(64), nullable=True)
    # Override requests name the day they want corrected
    day_number = db.Column(db.Integer, nullable=True)
    override_date = db.Column(db.Date, nullable=True)
    status = db.Column(
        db.Enum(RequestStatus, values_callable=lambda x: [e.value for e in x]),
        default=RequestStatus.PENDING,
        nullable=False,
    )
    admin_notes = db.Column(db.Text, nullable=True)
    processed_by = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime, default=_utc_now, nullable=False)
    resolved_at = db.Column(db.DateTime, nullable=True)

    __table_args__ = (
        db.Index('ix_student_requests_student_id', 'student_id'),
        db.Index('ix_student_requests_status', 'status'),
    )

    def __repr__(self):
        return f'<StudentRequest {self.id} {self.request_type} {self.student_id} - {self.status}>'

    def to_dict(self):
        return {
            'id': self.id,
            'studentId': self.student_id,
            'studentName': self.student_name,
            'studentEmail': self.student_email,
            'requestType': self.request_type,
            'description': self.description,
            'coinsCost': self.coins_cost,
            'period': self.period_key,
            'sectionId': self.section_id,
            'dayNumber': self.day_number,
            'overrideDate': self.override_date.isoformat() if self.override_date else None,
            'status': self.status.value if self.status else None,
            'adminNotes': self.admin_notes,
            'processedBy': self.processed_by,
            'createdAt': format_utc_iso(self.created_at),
            'resolvedAt': format_utc_iso(self.resolved_at),
        }


# -------------------- SETTINGS --------------------

class AdminSetting(db.Model):
    """
    Portal-wide feature toggles. A single row; defaults apply when it is absent.

    - overrides_enabled: students may submit day override requests
    - redemption_requests_enabled: students may spend coins on replacements
    """
    __tablename__ = 'admin_settings'

    id = db.Column(db.Integer, primary_key=True)
    overrides_enabled = db.Column(db.Boolean, default=True, nullable=False)
    redemption_requests_enabled = db.Column(db.Boolean, default=True, nullable=False)

    updated_at = db.Column(db.DateTime, default=_utc_now, onupdate=_utc_now)

    def __repr__(self):
        return f'<AdminSetting overrides={self.overrides_enabled} redemptions={self.redemption_requests_enabled}>'

    def to_dict(self):
        """Return the toggles as a dictionary."""
        return {
            'overridesEnabled': self.overrides_enabled,
            'redemptionRequestsEnabled': self.redemption_requests_enabled,
        }

    @classmethod
    def get_defaults(cls):
        """Return default toggles dictionary."""
        return {
            'overridesEnabled': True,
            'redemptionRequestsEnabled': True,
        }
