"""Repository for User database operations."""

import logging
from datetime import datetime
from typing import Dict, List, Optional, Sequence
from sqlalchemy import extract
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from birthdayclub.database.database import translate_store_errors
from birthdayclub.database.models import UserDB
from birthdayclub.errors import DuplicateEmailError
from birthdayclub.models.user import User

logger = logging.getLogger(__name__)


class UserRepository:
    """Repository for User database operations."""

    def __init__(self, db: Session):
        self.db = db

    def _expired_otp_filter(self, now: datetime):
        return (
            UserDB.authenticated.is_(False),
            UserDB.otp.isnot(None),
            UserDB.otp_expires_at < now,
        )

    def get(self, user_id: str) -> Optional[User]:
        """Get user by ID."""
        with translate_store_errors(self.db, "load user"):
            user_db = self.db.query(UserDB).filter(UserDB.id == user_id).first()
        return user_db.to_pydantic() if user_db else None

    def get_by_email(self, email: str) -> Optional[User]:
        """Get user by (already normalized) email."""
        with translate_store_errors(self.db, "look up user"):
            user_db = self.db.query(UserDB).filter(UserDB.email == email).first()
        return user_db.to_pydantic() if user_db else None

    def create(self, user: User) -> User:
        """Create a new user.

        Raises:
            DuplicateEmailError: If a user with the same email already exists
        """
        with translate_store_errors(self.db, "create user"):
            try:
                user_db = UserDB.from_pydantic(user)
                self.db.add(user_db)
                self.db.commit()
            except IntegrityError as e:
                self.db.rollback()
                logger.info(f"Rejected duplicate registration for user {user.id}")
                raise DuplicateEmailError() from e
            self.db.refresh(user_db)
            logger.debug(f"Created user {user.id}")
            return user_db.to_pydantic()

    def update_verification_state(self, user: User) -> User:
        """Persist the authentication flag and OTP fields of an existing user."""
        with translate_store_errors(self.db, "update user"):
            user_db = self.db.query(UserDB).filter(UserDB.id == user.id).first()
            if not user_db:
                raise ValueError(f"User {user.id} not found")
            user_db.authenticated = user.authenticated
            user_db.otp = user.otp
            user_db.otp_expires_at = user.otp_expires_at
            self.db.commit()
            self.db.refresh(user_db)
            logger.debug(f"Updated verification state for user {user.id} (authenticated={user.authenticated})")
            return user_db.to_pydantic()

    def find_with_expired_otp(self, now: datetime) -> List[User]:
        """Unauthenticated users holding an OTP that expired before `now`."""
        with translate_store_errors(self.db, "find expired OTPs"):
            rows = self.db.query(UserDB).filter(*self._expired_otp_filter(now)).all()
        return [row.to_pydantic() for row in rows]

    def clear_expired_otps(self, now: datetime) -> int:
        """Bulk-clear OTP fields on unauthenticated users whose OTP expired before `now`.

        Returns:
            Number of rows modified
        """
        with translate_store_errors(self.db, "clear expired OTPs"):
            modified = (
                self.db.query(UserDB)
                .filter(*self._expired_otp_filter(now))
                .update({UserDB.otp: None, UserDB.otp_expires_at: None}, synchronize_session=False)
            )
            self.db.commit()
        return modified

    def count_otp_states(self, now: datetime) -> Dict[str, int]:
        """Count unauthenticated users by OTP state (expired / active / none)."""
        with translate_store_errors(self.db, "count OTP states"):
            unauthenticated = self.db.query(UserDB).filter(UserDB.authenticated.is_(False))
            expired = unauthenticated.filter(UserDB.otp.isnot(None), UserDB.otp_expires_at < now).count()
            active = unauthenticated.filter(UserDB.otp.isnot(None), UserDB.otp_expires_at >= now).count()
            without_otp = unauthenticated.filter((UserDB.otp.is_(None)) | (UserDB.otp == "")).count()
        return {"expired": expired, "active": active, "without_otp": without_otp}

    def get_unauthenticated(self) -> List[User]:
        """All users that never verified their email."""
        with translate_store_errors(self.db, "load unauthenticated users"):
            rows = (
                self.db.query(UserDB)
                .filter(UserDB.authenticated.is_(False))
                .order_by(UserDB.created_at)
                .all()
            )
        return [row.to_pydantic() for row in rows]

    def delete_unauthenticated(self, user_ids: Sequence[str]) -> int:
        """Delete the given users, provided they are still unauthenticated.

        Returns:
            Number of rows deleted
        """
        if not user_ids:
            return 0
        with translate_store_errors(self.db, "delete unauthenticated users"):
            deleted = (
                self.db.query(UserDB)
                .filter(UserDB.id.in_(list(user_ids)), UserDB.authenticated.is_(False))
                .delete(synchronize_session=False)
            )
            self.db.commit()
        logger.debug(f"Deleted {deleted} unauthenticated users")
        return deleted

    def count_by_authentication(self) -> Dict[str, int]:
        with translate_store_errors(self.db, "count users"):
            authenticated = self.db.query(UserDB).filter(UserDB.authenticated.is_(True)).count()
            unauthenticated = self.db.query(UserDB).filter(UserDB.authenticated.is_(False)).count()
        return {"authenticated": authenticated, "unauthenticated": unauthenticated}

    def get_authenticated(self) -> List[User]:
        """All verified users, oldest registration first."""
        with translate_store_errors(self.db, "load authenticated users"):
            rows = (
                self.db.query(UserDB)
                .filter(UserDB.authenticated.is_(True))
                .order_by(UserDB.created_at)
                .all()
            )
        return [row.to_pydantic() for row in rows]

    def get_birthday_users(self, month: int, day: int) -> List[User]:
        """Verified users whose date of birth falls on the given month and day."""
        with translate_store_errors(self.db, "find birthdays"):
            rows = (
                self.db.query(UserDB)
                .filter(
                    UserDB.authenticated.is_(True),
                    extract("month", UserDB.date_of_birth) == month,
                    extract("day", UserDB.date_of_birth) == day,
                )
                .order_by(UserDB.name)
                .all()
            )
        return [row.to_pydantic() for row in rows]
