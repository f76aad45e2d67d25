"""
Domain errors raised by the services.

Each error carries the HTTP status it maps to; main.py registers a single
exception handler that renders them as ``{"detail": ...}``.
"""


class ExamVariantsError(Exception):
    """Base class for all domain errors."""

    status_code: int = 500

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class NotFoundError(ExamVariantsError):
    """A referenced subject, test, variant or result does not exist."""

    status_code = 404


class InvalidRequestError(ExamVariantsError):
    """Request parameters failed validation."""

    status_code = 400


class InsufficientPoolError(InvalidRequestError):
    """The subject's question pool cannot satisfy the requested count."""

    def __init__(self, available: int, requested: int):
        if available == 0:
            detail = "Subject has no questions to build a test from"
        else:
            detail = (
                f"Subject has only {available} questions, "
                f"{requested} requested per variant"
            )
        super().__init__(detail)
        self.available = available
        self.requested = requested


class UniqueNumberConflictError(ExamVariantsError):
    """Could not allocate a free unique number within the retry budget."""

    status_code = 409


class ForbiddenError(ExamVariantsError):
    status_code = 403
