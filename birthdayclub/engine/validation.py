"""Input validation and sanitization for public endpoints.

Request payloads are validated with Pydantic models; failures are converted
into a single `ValidationError` listing every offending field.
"""

from datetime import date
from typing import Any, Dict, List, Optional, Type, TypeVar

from markupsafe import escape
from pydantic import BaseModel, EmailStr, Field, ValidationInfo, field_validator
from pydantic import ValidationError as PydanticValidationError

from birthdayclub.errors import ValidationError
from birthdayclub.models.constants import (
    EMAIL_MAX_LENGTH,
    HONEYPOT_FIELDS,
    MAX_AGE_YEARS,
    MIN_AGE_YEARS,
    NAME_MAX_LENGTH,
    SCRIPT_MARKER,
)

M = TypeVar("M", bound=BaseModel)


def _years_before(today: date, years: int) -> date:
    try:
        return today.replace(year=today.year - years)
    except ValueError:
        # Feb 29 in a non-leap target year
        return today.replace(year=today.year - years, day=28)


def _has_control_chars(v: str) -> bool:
    # Names end up in mail headers; line breaks there split the header.
    return any(ord(c) < 32 or ord(c) == 127 for c in v)


def _normalize_email(v: Any) -> Any:
    if not isinstance(v, str):
        return v
    v = v.strip().lower()
    if len(v) > EMAIL_MAX_LENGTH:
        raise ValueError(f"Email must be at most {EMAIL_MAX_LENGTH} characters")
    if SCRIPT_MARKER in v:
        raise ValueError("Email contains invalid characters")
    return v


class EmailInput(BaseModel):
    """Payload carrying only an email address."""

    email: EmailStr

    @field_validator("email", mode="before")
    @classmethod
    def _normalize(cls, v):
        return _normalize_email(v)

    @field_validator("email")
    @classmethod
    def _lowercase(cls, v):
        return v.lower()


class RegistrationInput(EmailInput):
    """Registration payload: name, email, date of birth."""

    name: str
    date_of_birth: date = Field(..., alias="dateOfBirth")

    class Config:
        """Pydantic configuration."""
        populate_by_name = True

    @field_validator("name")
    @classmethod
    def _validate_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Name is required")
        if len(v) > NAME_MAX_LENGTH:
            raise ValueError(f"Name must be at most {NAME_MAX_LENGTH} characters")
        if SCRIPT_MARKER in v.lower() or _has_control_chars(v):
            raise ValueError("Name contains invalid characters")
        return v

    @field_validator("date_of_birth")
    @classmethod
    def _validate_age(cls, v: date, info: ValidationInfo) -> date:
        today = (info.context or {}).get("today") or date.today()
        oldest = _years_before(today, MAX_AGE_YEARS)
        youngest = _years_before(today, MIN_AGE_YEARS)
        if not (oldest <= v <= youngest):
            raise ValueError(
                f"Date of birth must be between {MIN_AGE_YEARS} and {MAX_AGE_YEARS} years ago"
            )
        return v


class OtpVerificationInput(EmailInput):
    """Verification payload: email plus the 6-digit code."""

    otp: str = Field(..., pattern=r"^\d{6}$")

    @field_validator("otp", mode="before")
    @classmethod
    def _strip(cls, v):
        return v.strip() if isinstance(v, str) else v


def _error_details(exc: PydanticValidationError) -> List[Dict[str, str]]:
    details = []
    for err in exc.errors():
        message = err.get("msg", "Invalid value")
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        details.append({
            "field": ".".join(str(part) for part in err.get("loc", ())) or "body",
            "message": message,
        })
    return details


def parse(model: Type[M], data: Any, today: Optional[date] = None) -> M:
    """Validate `data` against `model`.

    Raises:
        ValidationError: With one entry per invalid field
    """
    if not isinstance(data, dict):
        raise ValidationError([{"field": "body", "message": "Request body must be a JSON object"}])
    try:
        return model.model_validate(data, context={"today": today})
    except PydanticValidationError as e:
        raise ValidationError(_error_details(e)) from e


def is_bot_submission(data: Dict[str, Any]) -> bool:
    """True if any honeypot field carries a non-blank string."""
    for field in HONEYPOT_FIELDS:
        value = data.get(field)
        if isinstance(value, str) and value.strip():
            return True
    return False


def sanitize_name(name: str) -> str:
    """Trim and HTML-escape a display name."""
    return str(escape(name.strip()))


def sanitize_email(email: str) -> str:
    return email.strip().lower()
