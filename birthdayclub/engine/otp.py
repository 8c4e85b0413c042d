"""One-time passcode helpers."""

import secrets
from datetime import datetime, timedelta
from typing import Optional

from birthdayclub.models.constants import OTP_LENGTH, OTP_TTL_MINUTES


def generate() -> str:
    """Return a zero-padded numeric code of OTP_LENGTH digits."""
    return str(secrets.randbelow(10 ** OTP_LENGTH)).zfill(OTP_LENGTH)


def get_expiration_time(now: Optional[datetime] = None) -> datetime:
    """Expiry instant for a code issued at `now` (UTC)."""
    return (now or datetime.utcnow()) + timedelta(minutes=OTP_TTL_MINUTES)


def is_expired(expires_at: datetime, now: Optional[datetime] = None) -> bool:
    """True once `now` has reached `expires_at` (equality counts as expired)."""
    return (now or datetime.utcnow()) >= expires_at


def matches(submitted: str, stored: str) -> bool:
    """Constant-time code comparison."""
    return secrets.compare_digest(submitted.encode("utf-8"), stored.encode("utf-8"))
