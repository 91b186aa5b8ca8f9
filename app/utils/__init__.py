"""
Utility modules for the ALEKS Coins portal.

This package contains the calculation core and reusable helpers:
- progress: calendar generation, day qualification, aggregation, overrides
- coin_balance: balance calculation with period-scoped and global adjustments
- upload_parser: ALEKS progress export parsing (.xlsx and CSV)
- helpers: Common utility functions (date formatting, error responses)
- constants: Application-wide constants (thresholds, request types)
"""

from app.utils.helpers import format_utc_iso, normalize_student_id
from app.utils.constants import GLOBAL_SCOPE, MIN_DAILY_MINUTES, MIN_DAILY_TOPICS

__all__ = [
    'format_utc_iso',
    'normalize_student_id',
    'GLOBAL_SCOPE',
    'MIN_DAILY_MINUTES',
    'MIN_DAILY_TOPICS',
]
