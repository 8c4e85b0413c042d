"""Registration and email verification workflows.

User lifecycle:
    Unverified(no OTP) -> Unverified(OTP issued) -> Verified
A failed verification leaves the user Unverified; an expired code is discarded.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, Optional

from birthdayclub.auth.security_log import SecurityEventType, log_security_event
from birthdayclub.database.user_repository import UserRepository
from birthdayclub.engine import otp as otp_utils
from birthdayclub.engine.validation import (
    EmailInput,
    OtpVerificationInput,
    RegistrationInput,
    is_bot_submission,
    parse,
    sanitize_email,
    sanitize_name,
)
from birthdayclub.errors import (
    AlreadyVerifiedError,
    DuplicateEmailError,
    EmailDeliveryError,
    ExpiredOtpError,
    InvalidOtpError,
    NoOtpError,
    NotFoundError,
)
from birthdayclub.integrations.email_client import EmailClient
from birthdayclub.models.user import User

logger = logging.getLogger(__name__)


@dataclass
class RegistrationResult:
    """Outcome of a registration attempt."""
    user: Dict[str, Any]
    email_sent: bool
    bot_detected: bool = False


@dataclass
class UserStatus:
    exists: bool
    authenticated: bool = False
    has_otp: bool = False
    otp_expired: bool = False
    needs_verification: bool = False
    can_resend_otp: bool = False
    message: str = "User not found"


def register_user(
    users: UserRepository,
    email_client: EmailClient,
    data: Dict[str, Any],
    ip: str = "unknown",
    today: Optional[date] = None,
    now: Optional[datetime] = None,
) -> RegistrationResult:
    """Register a new user and send the verification code.

    Raises:
        ValidationError: If the payload is invalid
        DuplicateEmailError: If the email is already registered
    """
    if isinstance(data, dict) and is_bot_submission(data):
        log_security_event(SecurityEventType.BOT_DETECTED, ip, endpoint="register")
        # Look like a normal registration so bots learn nothing.
        decoy = {
            "id": str(uuid.uuid4()),
            "name": sanitize_name(str(data.get("name", ""))),
            "email": sanitize_email(str(data.get("email", ""))),
            "authenticated": False,
        }
        return RegistrationResult(user=decoy, email_sent=True, bot_detected=True)

    payload = parse(RegistrationInput, data, today=today)
    email = sanitize_email(payload.email)

    if users.get_by_email(email) is not None:
        log_security_event(SecurityEventType.REGISTRATION, ip, reason="duplicate_email")
        raise DuplicateEmailError()

    now = now or datetime.utcnow()
    user = users.create(User(
        id=str(uuid.uuid4()),
        name=sanitize_name(payload.name),
        email=email,
        date_of_birth=payload.date_of_birth,
        authenticated=False,
        otp=otp_utils.generate(),
        otp_expires_at=otp_utils.get_expiration_time(now),
        created_at=now,
    ))

    # The user is kept even if the email can't be sent; they can ask for a resend.
    email_sent = True
    try:
        email_client.send_verification_email(user, user.otp)
    except EmailDeliveryError as e:
        email_sent = False
        logger.error(f"Verification email for user {user.id} failed: {e}")

    log_security_event(SecurityEventType.REGISTRATION, ip, success=True, user_id=user.id, email_sent=email_sent)
    return RegistrationResult(user=user.public_dict(), email_sent=email_sent)


def verify_otp(
    users: UserRepository,
    data: Dict[str, Any],
    ip: str = "unknown",
    now: Optional[datetime] = None,
) -> User:
    """Check a submitted code and mark the user as verified.

    Raises:
        ValidationError, NotFoundError, AlreadyVerifiedError, NoOtpError,
        ExpiredOtpError, InvalidOtpError
    """
    payload = parse(OtpVerificationInput, data)
    user = users.get_by_email(payload.email)
    if user is None:
        log_security_event(SecurityEventType.OTP_VERIFICATION, ip, reason="user_not_found")
        raise NotFoundError()

    if user.authenticated:
        log_security_event(SecurityEventType.OTP_VERIFICATION, ip, reason="already_authenticated", user_id=user.id)
        raise AlreadyVerifiedError()

    if not user.has_otp:
        log_security_event(SecurityEventType.OTP_VERIFICATION, ip, reason="no_otp_found", user_id=user.id)
        raise NoOtpError()

    if otp_utils.is_expired(user.otp_expires_at, now):
        # Expired codes are one-shot: discard so only a fresh code can verify.
        users.update_verification_state(user.model_copy(update={"otp": None, "otp_expires_at": None}))
        log_security_event(SecurityEventType.OTP_VERIFICATION, ip, reason="otp_expired", user_id=user.id)
        raise ExpiredOtpError()

    if not otp_utils.matches(payload.otp, user.otp):
        log_security_event(SecurityEventType.OTP_VERIFICATION, ip, reason="invalid_otp", user_id=user.id)
        raise InvalidOtpError()

    verified = users.update_verification_state(
        user.model_copy(update={"authenticated": True, "otp": None, "otp_expires_at": None})
    )
    log_security_event(SecurityEventType.OTP_VERIFICATION, ip, success=True, user_id=user.id)
    return verified


def resend_otp(
    users: UserRepository,
    email_client: EmailClient,
    data: Dict[str, Any],
    ip: str = "unknown",
    now: Optional[datetime] = None,
) -> User:
    """Issue a new code (invalidating any previous one) and email it.

    Raises:
        ValidationError, NotFoundError, AlreadyVerifiedError
        EmailDeliveryError: The new code was saved but could not be sent
    """
    payload = parse(EmailInput, data)
    user = users.get_by_email(payload.email)
    if user is None:
        log_security_event(SecurityEventType.OTP_VERIFICATION, ip, reason="user_not_found_resend")
        raise NotFoundError()

    if user.authenticated:
        log_security_event(SecurityEventType.OTP_VERIFICATION, ip, reason="already_authenticated_resend", user_id=user.id)
        raise AlreadyVerifiedError()

    new_otp = otp_utils.generate()
    while new_otp == user.otp:
        new_otp = otp_utils.generate()

    now = now or datetime.utcnow()
    updated = users.update_verification_state(user.model_copy(update={
        "otp": new_otp,
        "otp_expires_at": otp_utils.get_expiration_time(now),
    }))

    try:
        email_client.send_verification_email(updated, updated.otp)
    except EmailDeliveryError:
        log_security_event(SecurityEventType.OTP_VERIFICATION, ip, reason="email_send_failed_resend", user_id=user.id)
        raise

    log_security_event(SecurityEventType.OTP_VERIFICATION, ip, success=True, action="otp_resent", user_id=user.id)
    return updated


def get_user_status(
    users: UserRepository,
    data: Dict[str, Any],
    now: Optional[datetime] = None,
) -> UserStatus:
    """Describe where a user is in the verification flow."""
    payload = parse(EmailInput, data)
    user = users.get_by_email(payload.email)
    if user is None:
        return UserStatus(exists=False)

    otp_expired = False
    if not user.authenticated and user.otp_expires_at is not None:
        otp_expired = otp_utils.is_expired(user.otp_expires_at, now)

    if user.authenticated:
        message = "User is verified and active"
    elif user.otp:
        message = (
            "Verification code expired. Please request a new one."
            if otp_expired
            else "Verification code sent. Please check your email."
        )
    else:
        message = "No verification code pending. Please request a new one."

    return UserStatus(
        exists=True,
        authenticated=user.authenticated,
        has_otp=bool(user.otp),
        otp_expired=otp_expired,
        needs_verification=not user.authenticated,
        can_resend_otp=not user.authenticated and (otp_expired or not user.otp),
        message=message,
    )
