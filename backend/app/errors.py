"""Domain error taxonomy.

Services raise these; the HTTP layer renders them through the handler
registered in ``app.main``. Every error is recoverable and user-facing.
Storage failures are not wrapped and surface as 5xx.
"""
from typing import Any, Optional


class AppError(Exception):
    """Base class for all domain errors."""

    status_code = 400
    code = "APP_ERROR"

    def __init__(self, message: str, **detail: Any):
        super().__init__(message)
        self.message = message
        self.detail = detail

    def to_dict(self) -> dict[str, Any]:
        return {"message": self.message, "error": self.code, **self.detail}


class ValidationError(AppError):
    status_code = 422
    code = "VALIDATION_ERROR"


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"


class NotAuthorizedError(AppError):
    status_code = 403
    code = "AUTHORIZATION_ERROR"


class ScheduleConflictError(AppError):
    """Category/city overlap or venue/time overlap. Carries the conflict list."""

    status_code = 409
    code = "SCHEDULE_CONFLICT"

    def __init__(self, message: str, conflicts: Optional[list[dict]] = None, **detail: Any):
        super().__init__(message, conflicts=conflicts or [], **detail)
        self.conflicts = conflicts or []


class CapacityExceededError(AppError):
    status_code = 409
    code = "CAPACITY_EXCEEDED"


class DuplicateError(AppError):
    status_code = 409
    code = "DUPLICATE_ERROR"


class DuplicateHoldError(DuplicateError):
    pass


class HoldExpiredError(AppError):
    status_code = 410
    code = "HOLD_EXPIRED"


class InvalidStateTransitionError(AppError):
    status_code = 409
    code = "INVALID_STATE_TRANSITION"


class AlreadyCancelledError(InvalidStateTransitionError):
    code = "ALREADY_CANCELLED"


class ConcurrentModificationError(AppError):
    """The record changed underneath the request; re-fetch and retry."""

    status_code = 409
    code = "CONCURRENT_MODIFICATION"


class VersionConflictError(ConcurrentModificationError):
    pass
