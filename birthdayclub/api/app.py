"""FastAPI web application for Birthday Club."""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict

from fastapi import Body, Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from birthdayclub.api.models import (
    BirthdayDeliveryResponse,
    BirthdayPerson,
    BirthdayPreviewResponse,
    BroadcastResponse,
    DeletionResponse,
    MessageResponse,
    OtpCleanupResponse,
    OtpStatusResponse,
    RegisterResponse,
    UserCountsResponse,
    UserStatusResponse,
    UserSummary,
    VerifyResponse,
)
from birthdayclub.auth.api_key import require_api_key
from birthdayclub.auth.security_log import SecurityEventType, client_ip, log_security_event
from birthdayclub.database.archive_repository import ArchiveRepository
from birthdayclub.database.database import get_archive_db, get_db, init_db
from birthdayclub.database.rate_limit_repository import RateLimitRepository
from birthdayclub.database.user_repository import UserRepository
from birthdayclub.errors import BirthdayClubError, ValidationError
from birthdayclub.integrations.email_client import EmailClient
from birthdayclub.workflows import birthdays, cleanup, registration

logger = logging.getLogger(__name__)

VERSION = "0.1.0"

SECURITY_HEADERS = {
    "X-Frame-Options": "DENY",
    "X-Content-Type-Options": "nosniff",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "X-XSS-Protection": "1; mode=block",
    "Permissions-Policy": "camera=(), microphone=(), geolocation=()",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


app = FastAPI(
    title="Birthday Club API",
    description="Register your birthday and hear about everyone else's",
    version=VERSION,
    lifespan=lifespan,
)


@app.middleware("http")
async def security_headers(request: Request, call_next):
    """Attach hardening headers to every response, including unexpected failures."""
    try:
        response = await call_next(request)
    except Exception:
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        response = JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Internal server error"},
        )
    for header, value in SECURITY_HEADERS.items():
        response.headers[header] = value
    return response


@app.exception_handler(BirthdayClubError)
async def birthday_club_error_handler(request: Request, exc: BirthdayClubError):
    if exc.status_code >= 500:
        logger.error(f"{type(exc).__name__} on {request.url.path}: {exc}", exc_info=exc.__cause__)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    details = [
        {"field": ".".join(str(p) for p in err.get("loc", ()) if p != "body") or "body", "message": err.get("msg", "")}
        for err in exc.errors()
    ]
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=ValidationError(details).to_dict())


# Dependencies

def get_user_repository(db: Session = Depends(get_db)) -> UserRepository:
    return UserRepository(db)


def get_archive_repository(db: Session = Depends(get_archive_db)) -> ArchiveRepository:
    return ArchiveRepository(db)


def get_rate_limit_repository(db: Session = Depends(get_db)) -> RateLimitRepository:
    return RateLimitRepository(db)


def get_email_client() -> EmailClient:
    return EmailClient()


# Public endpoints

@app.get("/health")
def health(check_email: bool = False, email_client: EmailClient = Depends(get_email_client)):
    """Health check endpoint."""
    body = {"status": "healthy", "version": VERSION}
    if check_email:
        body["email"] = "ok" if email_client.test_connection() else "unavailable"
    return body


@app.post("/api/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
def register(
    request: Request,
    payload: Dict[str, Any] = Body(...),
    users: UserRepository = Depends(get_user_repository),
    email_client: EmailClient = Depends(get_email_client),
):
    """Register a new user and email them a verification code."""
    result = registration.register_user(users, email_client, payload, ip=client_ip(request))
    if result.email_sent:
        message = "Registration successful! Please check your email for the verification code."
    else:
        message = (
            "Registration successful, but we could not send the verification email. "
            "Please request a new code."
        )
    return RegisterResponse(message=message, user=UserSummary(**result.user), email_sent=result.email_sent)


@app.post("/api/verify-otp", response_model=VerifyResponse)
def verify_otp(
    request: Request,
    payload: Dict[str, Any] = Body(...),
    users: UserRepository = Depends(get_user_repository),
):
    """Verify an email address with the emailed code."""
    user = registration.verify_otp(users, payload, ip=client_ip(request))
    return VerifyResponse(
        message="Email verified successfully. Welcome to Birthday Club!",
        user=UserSummary(**user.public_dict()),
    )


@app.post("/api/resend-otp", response_model=MessageResponse)
def resend_otp(
    request: Request,
    payload: Dict[str, Any] = Body(...),
    users: UserRepository = Depends(get_user_repository),
    email_client: EmailClient = Depends(get_email_client),
):
    """Replace the pending verification code and email the new one."""
    registration.resend_otp(users, email_client, payload, ip=client_ip(request))
    return MessageResponse(message="New verification code sent to your email")


@app.post("/api/user-status", response_model=UserStatusResponse)
def user_status(
    payload: Dict[str, Any] = Body(...),
    users: UserRepository = Depends(get_user_repository),
):
    """Report where a user is in the verification flow."""
    s = registration.get_user_status(users, payload)
    return UserStatusResponse(
        exists=s.exists,
        authenticated=s.authenticated,
        has_otp=s.has_otp,
        otp_expired=s.otp_expired,
        needs_verification=s.needs_verification,
        can_resend_otp=s.can_resend_otp,
        message=s.message,
    )


# Maintenance endpoints (API key required)

@app.post(
    "/api/cleanup-expired-otps",
    response_model=OtpCleanupResponse,
    dependencies=[Depends(require_api_key)],
)
def cleanup_expired_otps(request: Request, users: UserRepository = Depends(get_user_repository)):
    """Clear expired verification codes from unverified users."""
    result = cleanup.cleanup_expired_otps(users)
    log_security_event(
        SecurityEventType.USER_CLEANUP,
        client_ip(request),
        action="cleanup_expired_otps",
        found=result.found,
        cleaned=result.cleaned,
    )
    message = (
        f"Cleaned up {result.cleaned} expired OTPs" if result.found else "No expired OTPs found to cleanup"
    )
    return OtpCleanupResponse(message=message, found_expired_otps=result.found, cleaned_count=result.cleaned)


@app.get(
    "/api/cleanup-expired-otps",
    response_model=OtpStatusResponse,
    dependencies=[Depends(require_api_key)],
)
def expired_otp_status(users: UserRepository = Depends(get_user_repository)):
    """Count unverified users by OTP state."""
    counts = cleanup.otp_status_counts(users)
    message = (
        f"{counts['expired']} expired OTPs ready for cleanup" if counts["expired"] else "No expired OTPs found"
    )
    return OtpStatusResponse(
        expired_otps=counts["expired"],
        active_otps=counts["active"],
        unauthenticated_without_otp=counts["without_otp"],
        total_unauthenticated=counts["total_unauthenticated"],
        message=message,
    )


@app.post(
    "/api/delete-unauthenticated-users",
    response_model=DeletionResponse,
    dependencies=[Depends(require_api_key)],
)
def delete_unauthenticated_users(
    request: Request,
    users: UserRepository = Depends(get_user_repository),
    archive: ArchiveRepository = Depends(get_archive_repository),
):
    """Move unverified users to the archive store and delete them."""
    ip = client_ip(request)
    try:
        result = cleanup.delete_unauthenticated_users(users, archive)
    except BirthdayClubError as e:
        log_security_event(SecurityEventType.USER_CLEANUP, ip, error=type(e).__name__, **e.extra)
        raise
    log_security_event(
        SecurityEventType.USER_CLEANUP,
        ip,
        success=True,
        moved=result.moved_count,
        deleted=result.deleted_count,
    )
    if result.total_processed == 0:
        message = "No unauthenticated users found to delete"
    else:
        message = f"Successfully cleaned up {result.deleted_count} unauthenticated users"
    return DeletionResponse(
        message=message,
        total_processed=result.total_processed,
        moved_count=result.moved_count,
        deleted_count=result.deleted_count,
    )


@app.get(
    "/api/delete-unauthenticated-users",
    response_model=UserCountsResponse,
    dependencies=[Depends(require_api_key)],
)
def unauthenticated_user_counts(users: UserRepository = Depends(get_user_repository)):
    """Count verified and unverified users."""
    counts = cleanup.unauthenticated_counts(users)
    message = (
        f"{counts['unauthenticated']} unauthenticated users ready for cleanup"
        if counts["unauthenticated"]
        else "No unauthenticated users found"
    )
    return UserCountsResponse(
        unauthenticated_users=counts["unauthenticated"],
        authenticated_users=counts["authenticated"],
        total_users=counts["total"],
        message=message,
    )


@app.post(
    "/api/send-birthday-emails",
    response_model=BroadcastResponse,
    dependencies=[Depends(require_api_key)],
)
def send_birthday_emails(
    request: Request,
    users: UserRepository = Depends(get_user_repository),
    rate_limits: RateLimitRepository = Depends(get_rate_limit_repository),
    email_client: EmailClient = Depends(get_email_client),
):
    """Send today's birthday notifications (rate limited)."""
    result = birthdays.send_birthday_emails(users, rate_limits, email_client)
    log_security_event(
        SecurityEventType.EMAIL_TRIGGER,
        client_ip(request),
        birthdays=len(result.birthdays),
        sent=result.total_sent,
        failed=result.total_failed,
    )
    return BroadcastResponse(
        message=result.message,
        total_birthdays=len(result.birthdays),
        total_emails_attempted=result.total_attempted,
        total_emails_sent=result.total_sent,
        total_emails_failed=result.total_failed,
        results=[
            BirthdayDeliveryResponse(
                user_id=b.user_id,
                name=b.name,
                emails_attempted=b.attempted,
                emails_sent=b.sent,
                emails_failed=b.failed,
            )
            for b in result.birthdays
        ],
    )


@app.get(
    "/api/send-birthday-emails",
    response_model=BirthdayPreviewResponse,
    dependencies=[Depends(require_api_key)],
)
def preview_birthdays(users: UserRepository = Depends(get_user_repository)):
    """List today's birthdays without sending anything."""
    today = datetime.utcnow().date()
    people = birthdays.todays_birthdays(users, today)
    return BirthdayPreviewResponse(
        todays_date=today,
        birthday_count=len(people),
        birthdays=[BirthdayPerson(name=p.name, email=p.email) for p in people],
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
