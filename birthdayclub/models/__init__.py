"""Data models for Birthday Club."""

from birthdayclub.models.user import User, ArchivedUser, DeletionReason
from birthdayclub.models.rate_limit import RateLimitCounter, RateLimitDecision

__all__ = [
    "User",
    "ArchivedUser",
    "DeletionReason",
    "RateLimitCounter",
    "RateLimitDecision",
]
