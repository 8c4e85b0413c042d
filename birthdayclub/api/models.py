"""Response models for the Birthday Club API.

Fields are declared in snake_case and serialized in camelCase.
"""

from datetime import date
from typing import List

from pydantic import BaseModel
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    class Config:
        """Pydantic configuration."""
        alias_generator = to_camel
        populate_by_name = True


class UserSummary(ApiModel):
    id: str
    name: str
    email: str
    authenticated: bool


class MessageResponse(ApiModel):
    message: str


class RegisterResponse(ApiModel):
    message: str
    user: UserSummary
    email_sent: bool


class VerifyResponse(ApiModel):
    message: str
    user: UserSummary


class UserStatusResponse(ApiModel):
    exists: bool
    authenticated: bool = False
    has_otp: bool = False
    otp_expired: bool = False
    needs_verification: bool = False
    can_resend_otp: bool = False
    message: str


class OtpCleanupResponse(ApiModel):
    message: str
    found_expired_otps: int
    cleaned_count: int


class OtpStatusResponse(ApiModel):
    expired_otps: int
    active_otps: int
    unauthenticated_without_otp: int
    total_unauthenticated: int
    message: str


class DeletionResponse(ApiModel):
    message: str
    total_processed: int
    moved_count: int
    deleted_count: int


class UserCountsResponse(ApiModel):
    unauthenticated_users: int
    authenticated_users: int
    total_users: int
    message: str


class BirthdayDeliveryResponse(ApiModel):
    user_id: str
    name: str
    emails_attempted: int
    emails_sent: int
    emails_failed: int


class BroadcastResponse(ApiModel):
    message: str
    total_birthdays: int
    total_emails_attempted: int
    total_emails_sent: int
    total_emails_failed: int
    results: List[BirthdayDeliveryResponse]


class BirthdayPerson(ApiModel):
    name: str
    email: str


class BirthdayPreviewResponse(ApiModel):
    todays_date: date
    birthday_count: int
    birthdays: List[BirthdayPerson]
