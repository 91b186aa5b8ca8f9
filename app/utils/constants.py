"""
Application-wide constants for the ALEKS Coins portal.

Qualification thresholds, adjustment scopes, request types and the fixed
reason strings shown on a student's daily log.
"""

# Default qualification thresholds (overridable via MIN_DAILY_MINUTES / MIN_DAILY_TOPICS)
MIN_DAILY_MINUTES = 31
MIN_DAILY_TOPICS = 1

# Adjustments stored with this period key apply to the student's total,
# not to any single period's coins.
GLOBAL_SCOPE = "__GLOBAL__"

# Section id used when an upload or adjustment does not name one
DEFAULT_SECTION = "default"

EXEMPT_DAY_REASON = "📅 Exempt day - does not count toward progress"

OVERRIDE_QUALIFIED = "qualified"
OVERRIDE_NOT_QUALIFIED = "not_qualified"
OVERRIDE_TYPES = (OVERRIDE_QUALIFIED, OVERRIDE_NOT_QUALIFIED)

# Student request types and what they cost
REQUEST_ASSIGNMENT_REPLACEMENT = "assignment_replacement"
REQUEST_QUIZ_REPLACEMENT = "quiz_replacement"
REQUEST_OVERRIDE = "override_request"
REQUEST_EXTRA_CREDIT = "extra_credit"
REQUEST_DATA_CORRECTION = "data_correction"

REDEMPTION_COSTS = {
    REQUEST_ASSIGNMENT_REPLACEMENT: 10,
    REQUEST_QUIZ_REPLACEMENT: 20,
}

REQUEST_TYPE_LABELS = {
    REQUEST_ASSIGNMENT_REPLACEMENT: "Assignment/Video Replacement",
    REQUEST_QUIZ_REPLACEMENT: "Quiz Replacement",
    REQUEST_OVERRIDE: "Day Override Request",
    REQUEST_EXTRA_CREDIT: "Extra Credit Inquiry",
    REQUEST_DATA_CORRECTION: "Data Correction Request",
}

# Adjustments created automatically for redemptions carry this author
SYSTEM_AUTHOR = "system"

# Student id that always returns generated demo data
DEMO_STUDENT_ID = "abc123"
