"""Pytest fixtures and configuration for Birthday Club tests."""

import uuid
from datetime import date, datetime, timedelta
from typing import List, Optional, Set, Tuple
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from birthdayclub.database.database import Base, ArchiveBase
from birthdayclub.database import models  # noqa: F401  (registers tables)
from birthdayclub.database.archive_repository import ArchiveRepository
from birthdayclub.database.rate_limit_repository import RateLimitRepository
from birthdayclub.database.user_repository import UserRepository
from birthdayclub.errors import EmailDeliveryError
from birthdayclub.integrations.email_client import DeliveryReport
from birthdayclub.models.user import User


# Use in-memory SQLite databases for tests
TEST_DATABASE_URL = "sqlite:///:memory:"
TEST_API_KEY = "test-api-key"


def _memory_session(base) -> Tuple[Session, object]:
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    base.metadata.create_all(bind=engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    return TestingSessionLocal(), engine


@pytest.fixture(scope="function")
def db_session():
    """Primary database session on a fresh in-memory SQLite database."""
    session, engine = _memory_session(Base)
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def archive_session():
    """Archive database session on its own in-memory SQLite database."""
    session, engine = _memory_session(ArchiveBase)
    try:
        yield session
    finally:
        session.close()
        ArchiveBase.metadata.drop_all(bind=engine)


@pytest.fixture
def user_repository(db_session: Session):
    return UserRepository(db_session)


@pytest.fixture
def archive_repository(archive_session: Session):
    return ArchiveRepository(archive_session)


@pytest.fixture
def rate_limit_repository(db_session: Session):
    return RateLimitRepository(db_session)


class FakeEmailClient:
    """Records outgoing mail instead of talking to an SMTP server."""

    def __init__(self):
        self.verification_emails: List[Tuple[str, str]] = []
        self.birthday_emails: List[Tuple[str, str]] = []
        self.fail_verification = False
        self.failing_recipients: Set[str] = set()

    def send_verification_email(self, user: User, otp: str) -> None:
        if self.fail_verification:
            raise EmailDeliveryError(f"Failed to send email to {user.email}")
        self.verification_emails.append((user.email, otp))

    def send_birthday_emails(self, birthday_person: User, recipients) -> DeliveryReport:
        report = DeliveryReport()
        for recipient in recipients:
            if recipient.email == birthday_person.email:
                continue
            if recipient.email in self.failing_recipients:
                report.failed.append(recipient.email)
            else:
                report.sent.append(recipient.email)
                self.birthday_emails.append((birthday_person.email, recipient.email))
        return report

    def test_connection(self) -> bool:
        return True

    def last_otp_for(self, email: str) -> Optional[str]:
        for to, otp in reversed(self.verification_emails):
            if to == email:
                return otp
        return None


@pytest.fixture
def email_client():
    return FakeEmailClient()


@pytest.fixture
def make_user(user_repository):
    """Factory inserting users directly through the repository."""

    def _make(
        email: str,
        name: str = "Test User",
        date_of_birth: date = date(1990, 5, 15),
        authenticated: bool = False,
        otp: Optional[str] = None,
        otp_expires_at: Optional[datetime] = None,
        created_at: Optional[datetime] = None,
    ) -> User:
        return user_repository.create(User(
            id=str(uuid.uuid4()),
            name=name,
            email=email,
            date_of_birth=date_of_birth,
            authenticated=authenticated,
            otp=otp,
            otp_expires_at=otp_expires_at,
            created_at=created_at or datetime.utcnow(),
        ))

    return _make


@pytest.fixture
def registration_payload():
    return {
        "name": "Ada Lovelace",
        "email": "Ada@Example.com",
        "dateOfBirth": "1990-12-10",
    }


@pytest.fixture
def test_client(db_session: Session, archive_session: Session, email_client, monkeypatch):
    """FastAPI test client with overridden database and email dependencies."""
    from birthdayclub.api.app import app, get_email_client
    from birthdayclub.database.database import get_db, get_archive_db

    monkeypatch.setenv("API_KEY", TEST_API_KEY)
    monkeypatch.delenv("ALLOW_MISSING_API_KEY", raising=False)

    def override_get_db():
        yield db_session

    def override_get_archive_db():
        yield archive_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_archive_db] = override_get_archive_db
    app.dependency_overrides[get_email_client] = lambda: email_client

    with patch("birthdayclub.api.app.init_db"):
        with TestClient(app) as client:
            yield client

    app.dependency_overrides.clear()


@pytest.fixture
def api_headers():
    return {"x-api-key": TEST_API_KEY}


@pytest.fixture
def expired_time():
    return datetime.utcnow() - timedelta(minutes=1)
