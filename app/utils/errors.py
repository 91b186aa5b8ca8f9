"""
Exceptions raised by the progress and coin calculations.

Period and store errors abort the operation they belong to. Row errors are
raised per upload row and counted by the caller instead of aborting the batch.
"""


class ProgressError(Exception):
    """Base class for progress/coin computation errors."""

    status_code = 400


class InvalidRangeError(ProgressError):
    """A period's start date falls after its end date."""


class InvalidDateError(ProgressError):
    """A date string is empty or not a valid YYYY-MM-DD calendar date."""


class MissingPeriodError(ProgressError):
    """A referenced period key has no configuration."""

    status_code = 404

    def __init__(self, period_key):
        self.period_key = period_key
        super().__init__(f"Exam period not found: {period_key}")


class MalformedRowError(ProgressError):
    """An upload row lacks a student id or name."""

    def __init__(self, row_number, message="Missing student ID or name"):
        self.row_number = row_number
        super().__init__(f"Row {row_number}: {message}")


class UnreadableUploadError(ProgressError):
    """The uploaded file is not a CSV or workbook the parser can open."""


class AdjustmentLookupError(ProgressError):
    """Coin adjustments could not be loaded, so no balance can be trusted."""

    status_code = 503


class RequestValidationError(ProgressError):
    """A student request or admin action is missing fields or is not allowed."""


class InsufficientCoinsError(ProgressError):
    """A redemption costs more than the student's current balance."""

    def __init__(self, cost, balance):
        self.cost = cost
        self.balance = balance
        super().__init__(f"Insufficient coins: this request costs {cost} coins but your balance is {balance}")


class FeatureDisabledError(ProgressError):
    """The feature toggle guarding this action is switched off."""

    status_code = 403


class RequestNotFoundError(ProgressError):
    status_code = 404

    def __init__(self, request_id):
        self.request_id = request_id
        super().__init__(f"Request not found: {request_id}")
