"""Error taxonomy for Birthday Club.

Every error a workflow can raise carries the HTTP status it maps to, a
client-safe message, and optional extra fields that are merged into the JSON
error body.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional


class BirthdayClubError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None, **extra: Any):
        self.message = message or self.default_message
        self.extra: Dict[str, Any] = extra
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, **self.extra}


class ValidationError(BirthdayClubError):
    """Malformed or out-of-range input."""

    status_code = 400
    default_message = "Invalid input data"

    def __init__(self, details: List[Dict[str, str]], message: Optional[str] = None):
        self.details = details
        super().__init__(message, details=details)


class DuplicateEmailError(BirthdayClubError):
    status_code = 400
    default_message = "Registration failed. Please check your details and try again."


class NotFoundError(BirthdayClubError):
    status_code = 404
    default_message = "User not found"


class StateConflictError(BirthdayClubError):
    """The user is not in a state that allows the requested transition."""

    status_code = 400


class AlreadyVerifiedError(StateConflictError):
    default_message = "User is already verified"


class NoOtpError(StateConflictError):
    default_message = "No verification code found. Please request a new one."


class ExpiredOtpError(StateConflictError):
    default_message = "Verification code has expired. Please request a new one."


class InvalidOtpError(StateConflictError):
    default_message = "Invalid verification code"


class AuthorizationError(BirthdayClubError):
    status_code = 401
    default_message = "Unauthorized"


class RateLimitExceededError(BirthdayClubError):
    status_code = 429
    default_message = "Rate limit exceeded. Try again later."

    def __init__(self, reset_time: datetime, limit: int, message: Optional[str] = None):
        self.reset_time = reset_time
        self.limit = limit
        super().__init__(message, resetTime=reset_time.isoformat(), limit=limit)


class StoreUnavailableError(BirthdayClubError):
    """The document store could not be reached."""

    status_code = 503
    default_message = "Service temporarily unavailable. Please try again later."

    def __init__(self, detail: Optional[str] = None):
        # `detail` is for logs only; callers always get the generic message.
        self.detail = detail
        super().__init__()

    def __str__(self) -> str:
        return self.detail or self.message


class EmailDeliveryError(BirthdayClubError):
    status_code = 500
    default_message = "Failed to send verification email. Please try again later."


class MigrationIncompleteError(BirthdayClubError):
    """Archive phase inserted fewer rows than were read; nothing was deleted."""

    status_code = 500
    default_message = (
        "Failed to safely delete unauthenticated users. "
        "Operation aborted to prevent data loss."
    )

    def __init__(self, expected: int, moved: int):
        self.expected = expected
        self.moved = moved
        super().__init__(movedCount=moved, deletedCount=0, expectedCount=expected)


class PartialDeletionError(BirthdayClubError):
    """Users were archived but not all of them were removed from the primary store."""

    status_code = 500
    default_message = (
        "Partial deletion occurred. Some users were moved to the archive "
        "but not removed from the main database."
    )

    def __init__(self, moved: int, deleted: int):
        self.moved = moved
        self.deleted = deleted
        super().__init__(movedCount=moved, deletedCount=deleted)
