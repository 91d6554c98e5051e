"""
Application-level exception types.

Routes translate these into HTTP responses (see intake.main):
- DuplicateRecordError -> 400 "... already exists"
- RecordNotFoundError  -> 404
- InvalidSubmissionError -> 400
- SheetsError          -> logged; aborts the current sync pass
"""


class IntakeError(Exception):
    """Base class for errors raised by intake services."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class DuplicateRecordError(IntakeError):
    """A write collided with a uniqueness constraint."""


class RecordNotFoundError(IntakeError):
    """The requested record does not exist."""


class InvalidSubmissionError(IntakeError):
    """A submission cannot be tied to a registered applicant."""


class SheetsError(IntakeError):
    """A spreadsheet operation failed after all retries."""

    def __init__(self, operation: str, cause: Exception):
        self.operation = operation
        self.cause = cause
        super().__init__(f"Sheets {operation} failed: {cause}")
