"""Pure helpers for Birthday Club: OTPs, input validation and rate limiting."""

from birthdayclub.engine import otp
from birthdayclub.engine.rate_limiter import check_and_increment
from birthdayclub.engine.validation import (
    EmailInput,
    RegistrationInput,
    OtpVerificationInput,
    parse,
    is_bot_submission,
    sanitize_name,
    sanitize_email,
)

__all__ = [
    "otp",
    "check_and_increment",
    "EmailInput",
    "RegistrationInput",
    "OtpVerificationInput",
    "parse",
    "is_bot_submission",
    "sanitize_name",
    "sanitize_email",
]
