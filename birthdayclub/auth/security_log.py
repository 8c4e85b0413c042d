"""Security event logging.

Events go to the `birthdayclub.security` logger so deployments can route them
to a dedicated sink.
"""

import logging
from enum import Enum
from typing import Any

from fastapi import Request

security_logger = logging.getLogger("birthdayclub.security")


class SecurityEventType(str, Enum):
    """Security event type enumeration."""
    REGISTRATION = "registration"
    OTP_VERIFICATION = "otp_verification"
    AUTH_FAILURE = "auth_failure"
    USER_CLEANUP = "user_cleanup"
    EMAIL_TRIGGER = "email_trigger"
    BOT_DETECTED = "bot_detected"


def client_ip(request: Request) -> str:
    """Caller IP: first X-Forwarded-For hop, else the peer address."""
    forwarded = request.headers.get("x-forwarded-for", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def log_security_event(event_type: SecurityEventType, ip: str, **details: Any) -> None:
    """Log a security-relevant event. Never pass OTP values in `details`."""
    level = logging.WARNING if event_type in (SecurityEventType.AUTH_FAILURE, SecurityEventType.BOT_DETECTED) else logging.INFO
    security_logger.log(level, f"[SECURITY] {event_type.value.upper()} - IP: {ip} {details or ''}".rstrip())
