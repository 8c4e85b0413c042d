"""SQLAlchemy database models for Birthday Club."""

from datetime import datetime
import uuid
from sqlalchemy import Column, String, Integer, Boolean, Date, DateTime, CheckConstraint

from birthdayclub.database.database import Base, ArchiveBase
from birthdayclub.models.user import User, ArchivedUser, DeletionReason
from birthdayclub.models.rate_limit import RateLimitCounter


def enum_to_value(enum_obj) -> str:
    """Convert enum to string value (handles both enum and string)."""
    if hasattr(enum_obj, 'value'):
        return enum_obj.value
    return str(enum_obj)


class UserDB(Base):
    """Database model for User."""

    __tablename__ = "users"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String, nullable=False)
    email = Column(String, nullable=False, unique=True, index=True)
    date_of_birth = Column(Date, nullable=False)

    # Verification state
    authenticated = Column(Boolean, nullable=False, default=False, index=True)
    otp = Column(String, nullable=True)
    otp_expires_at = Column(DateTime, nullable=True, index=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    def to_pydantic(self) -> User:
        """Convert database model to Pydantic model."""
        return User(
            id=self.id,
            name=self.name,
            email=self.email,
            date_of_birth=self.date_of_birth,
            authenticated=bool(self.authenticated),
            otp=self.otp,
            otp_expires_at=self.otp_expires_at,
            created_at=self.created_at,
        )

    @classmethod
    def from_pydantic(cls, user: User) -> "UserDB":
        """Create database model from Pydantic model."""
        return cls(
            id=user.id,
            name=user.name,
            email=user.email,
            date_of_birth=user.date_of_birth,
            authenticated=user.authenticated,
            otp=user.otp,
            otp_expires_at=user.otp_expires_at,
            created_at=user.created_at,
        )


class RateLimitCounterDB(Base):
    """Database model for a fixed-window rate limit counter."""

    __tablename__ = "rate_limits"
    __table_args__ = (
        CheckConstraint("counter >= 0", name="ck_rate_limits_counter_non_negative"),
    )

    operation = Column(String, primary_key=True)
    counter = Column(Integer, nullable=False, default=0)
    last_updated = Column(DateTime, nullable=False, default=datetime.utcnow)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    def to_pydantic(self) -> RateLimitCounter:
        return RateLimitCounter(
            operation=self.operation,
            counter=self.counter,
            last_updated=self.last_updated,
            created_at=self.created_at,
        )


class ArchivedUserDB(ArchiveBase):
    """Database model for a user copied into the archive store."""

    __tablename__ = "deleted_users"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    original_user_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=False, index=True)
    date_of_birth = Column(Date, nullable=False)
    authenticated = Column(Boolean, nullable=False)
    otp = Column(String, nullable=True)
    otp_expires_at = Column(DateTime, nullable=True)
    original_created_at = Column(DateTime, nullable=False)
    deleted_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    deletion_reason = Column(String, nullable=False, default=DeletionReason.UNAUTHENTICATED_CLEANUP.value)

    def to_pydantic(self) -> ArchivedUser:
        return ArchivedUser(
            id=self.id,
            original_user_id=self.original_user_id,
            name=self.name,
            email=self.email,
            date_of_birth=self.date_of_birth,
            authenticated=bool(self.authenticated),
            otp=self.otp,
            otp_expires_at=self.otp_expires_at,
            original_created_at=self.original_created_at,
            deleted_at=self.deleted_at,
            deletion_reason=self.deletion_reason,
        )

    @classmethod
    def from_pydantic(cls, archived: ArchivedUser) -> "ArchivedUserDB":
        return cls(
            id=archived.id,
            original_user_id=archived.original_user_id,
            name=archived.name,
            email=archived.email,
            date_of_birth=archived.date_of_birth,
            authenticated=archived.authenticated,
            otp=archived.otp,
            otp_expires_at=archived.otp_expires_at,
            original_created_at=archived.original_created_at,
            deleted_at=archived.deleted_at,
            deletion_reason=enum_to_value(archived.deletion_reason),
        )
