"""User data models for Birthday Club."""

from datetime import date, datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


class DeletionReason(str, Enum):
    """Why a user record was moved to the archive store."""
    UNAUTHENTICATED_CLEANUP = "unauthenticated_cleanup"


class User(BaseModel):
    """A registrant in the primary user directory."""

    id: str = Field(..., description="Unique user identifier (UUID v4)")
    name: str = Field(..., description="Display name (sanitized)")
    email: str = Field(..., description="Lower-cased email address, unique")
    date_of_birth: date = Field(..., description="Calendar date of birth")
    authenticated: bool = Field(False, description="Whether the email has been verified")
    otp: Optional[str] = Field(None, description="Pending 6-digit verification code")
    otp_expires_at: Optional[datetime] = Field(None, description="When the pending code expires (UTC)")
    created_at: datetime = Field(..., description="Registration timestamp (UTC)")

    @property
    def has_otp(self) -> bool:
        return bool(self.otp) and self.otp_expires_at is not None

    def public_dict(self) -> dict:
        """Fields that are safe to return to API callers."""
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "authenticated": self.authenticated,
        }


class ArchivedUser(BaseModel):
    """Point-in-time copy of a user removed from the primary directory."""

    id: str = Field(..., description="Archive row identifier")
    original_user_id: str = Field(..., description="ID the user had in the primary directory")
    name: str
    email: str
    date_of_birth: date
    authenticated: bool
    otp: Optional[str] = None
    otp_expires_at: Optional[datetime] = None
    original_created_at: datetime = Field(..., description="created_at of the original user")
    deleted_at: datetime = Field(default_factory=datetime.utcnow, description="Archival timestamp")
    deletion_reason: DeletionReason = Field(DeletionReason.UNAUTHENTICATED_CLEANUP)

    class Config:
        """Pydantic configuration."""
        use_enum_values = True

    @classmethod
    def from_user(cls, user: User, archive_id: str, reason: DeletionReason, deleted_at: datetime) -> "ArchivedUser":
        return cls(
            id=archive_id,
            original_user_id=user.id,
            name=user.name,
            email=user.email,
            date_of_birth=user.date_of_birth,
            authenticated=user.authenticated,
            otp=user.otp,
            otp_expires_at=user.otp_expires_at,
            original_created_at=user.created_at,
            deleted_at=deleted_at,
            deletion_reason=reason,
        )
