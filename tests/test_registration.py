"""Tests for registration, verification, resend and status workflows."""

from datetime import date, datetime, timedelta

import pytest

from birthdayclub.errors import (
    AlreadyVerifiedError,
    DuplicateEmailError,
    EmailDeliveryError,
    ExpiredOtpError,
    InvalidOtpError,
    NoOtpError,
    NotFoundError,
    ValidationError,
)
from birthdayclub.workflows import registration

TODAY = date(2026, 10, 18)
NOW = datetime(2026, 10, 18, 12, 0, 0)


def _register(user_repository, email_client, payload, now=NOW):
    return registration.register_user(user_repository, email_client, payload, today=TODAY, now=now)


class TestRegisterUser:
    def test_creates_unverified_user_and_sends_code(self, user_repository, email_client, registration_payload):
        result = _register(user_repository, email_client, registration_payload)

        assert result.email_sent is True
        assert result.user["email"] == "ada@example.com"
        assert result.user["authenticated"] is False
        assert "otp" not in result.user

        stored = user_repository.get_by_email("ada@example.com")
        assert stored.otp is not None and len(stored.otp) == 6
        assert stored.otp_expires_at == NOW + timedelta(minutes=10)
        assert stored.date_of_birth == date(1990, 12, 10)
        assert email_client.verification_emails == [("ada@example.com", stored.otp)]

    def test_duplicate_email_differs_only_in_case(self, user_repository, email_client, registration_payload):
        _register(user_repository, email_client, registration_payload)

        with pytest.raises(DuplicateEmailError):
            _register(user_repository, email_client, {**registration_payload, "email": "ADA@example.com "})
        assert user_repository.count_by_authentication()["unauthenticated"] == 1

    def test_honeypot_returns_decoy(self, user_repository, email_client, registration_payload):
        result = _register(user_repository, email_client, {**registration_payload, "website": "http://spam"})

        assert result.bot_detected is True
        assert result.email_sent is True
        assert user_repository.get_by_email("ada@example.com") is None
        assert email_client.verification_emails == []

    def test_invalid_payload_lists_fields(self, user_repository, email_client):
        with pytest.raises(ValidationError) as exc_info:
            _register(user_repository, email_client, {"name": "", "email": "bad", "dateOfBirth": "2030-01-01"})

        assert {d["field"] for d in exc_info.value.details} == {"name", "email", "dateOfBirth"}
        assert user_repository.count_by_authentication()["unauthenticated"] == 0

    def test_email_failure_keeps_user(self, user_repository, email_client, registration_payload):
        email_client.fail_verification = True

        result = _register(user_repository, email_client, registration_payload)

        assert result.email_sent is False
        assert user_repository.get_by_email("ada@example.com") is not None

    def test_name_is_html_escaped(self, user_repository, email_client, registration_payload):
        result = _register(user_repository, email_client, {**registration_payload, "name": "Tom & Jerry"})

        assert result.user["name"] == "Tom &amp; Jerry"
        assert user_repository.get_by_email("ada@example.com").name == "Tom &amp; Jerry"


class TestVerifyOtp:
    def test_correct_code_verifies(self, user_repository, make_user):
        make_user("ada@example.com", otp="123456", otp_expires_at=NOW + timedelta(minutes=5))

        user = registration.verify_otp(user_repository, {"email": "Ada@Example.com", "otp": "123456"}, now=NOW)

        assert user.authenticated is True
        stored = user_repository.get_by_email("ada@example.com")
        assert stored.authenticated is True
        assert stored.otp is None
        assert stored.otp_expires_at is None

    def test_second_verification_is_rejected(self, user_repository, make_user):
        make_user("ada@example.com", otp="123456", otp_expires_at=NOW + timedelta(minutes=5))
        registration.verify_otp(user_repository, {"email": "ada@example.com", "otp": "123456"}, now=NOW)

        with pytest.raises(AlreadyVerifiedError):
            registration.verify_otp(user_repository, {"email": "ada@example.com", "otp": "123456"}, now=NOW)

    def test_wrong_code_leaves_user_unchanged(self, user_repository, make_user):
        expires = NOW + timedelta(minutes=5)
        make_user("ada@example.com", otp="123456", otp_expires_at=expires)

        with pytest.raises(InvalidOtpError):
            registration.verify_otp(user_repository, {"email": "ada@example.com", "otp": "654321"}, now=NOW)

        stored = user_repository.get_by_email("ada@example.com")
        assert stored.authenticated is False
        assert stored.otp == "123456"
        assert stored.otp_expires_at == expires

    def test_expired_code_is_discarded(self, user_repository, email_client, make_user):
        make_user("ada@example.com", otp="123456", otp_expires_at=NOW - timedelta(seconds=1))

        with pytest.raises(ExpiredOtpError):
            registration.verify_otp(user_repository, {"email": "ada@example.com", "otp": "123456"}, now=NOW)
        stored = user_repository.get_by_email("ada@example.com")
        assert stored.otp is None and stored.otp_expires_at is None

        # Only a fresh code can verify now.
        with pytest.raises(NoOtpError):
            registration.verify_otp(user_repository, {"email": "ada@example.com", "otp": "123456"}, now=NOW)

        registration.resend_otp(user_repository, email_client, {"email": "ada@example.com"}, now=NOW)
        new_code = email_client.last_otp_for("ada@example.com")
        user = registration.verify_otp(user_repository, {"email": "ada@example.com", "otp": new_code}, now=NOW)
        assert user.authenticated is True

    def test_unknown_email(self, user_repository):
        with pytest.raises(NotFoundError):
            registration.verify_otp(user_repository, {"email": "nobody@example.com", "otp": "123456"})

    def test_malformed_code(self, user_repository, make_user):
        make_user("ada@example.com", otp="123456", otp_expires_at=NOW + timedelta(minutes=5))
        with pytest.raises(ValidationError):
            registration.verify_otp(user_repository, {"email": "ada@example.com", "otp": "12345"}, now=NOW)


class TestResendOtp:
    def test_replaces_code_and_expiry(self, user_repository, email_client, make_user):
        make_user("ada@example.com", otp="123456", otp_expires_at=NOW - timedelta(minutes=1))

        updated = registration.resend_otp(user_repository, email_client, {"email": "ada@example.com"}, now=NOW)

        assert updated.otp != "123456"
        assert updated.otp_expires_at == NOW + timedelta(minutes=10)
        assert email_client.last_otp_for("ada@example.com") == updated.otp

    def test_old_code_stops_working(self, user_repository, email_client, make_user):
        make_user("ada@example.com", otp="123456", otp_expires_at=NOW + timedelta(minutes=5))
        registration.resend_otp(user_repository, email_client, {"email": "ada@example.com"}, now=NOW)

        with pytest.raises(InvalidOtpError):
            registration.verify_otp(user_repository, {"email": "ada@example.com", "otp": "123456"}, now=NOW)

    def test_already_verified(self, user_repository, email_client, make_user):
        make_user("ada@example.com", authenticated=True)
        with pytest.raises(AlreadyVerifiedError):
            registration.resend_otp(user_repository, email_client, {"email": "ada@example.com"})

    def test_unknown_email(self, user_repository, email_client):
        with pytest.raises(NotFoundError):
            registration.resend_otp(user_repository, email_client, {"email": "nobody@example.com"})

    def test_email_failure_propagates(self, user_repository, email_client, make_user):
        make_user("ada@example.com")
        email_client.fail_verification = True

        with pytest.raises(EmailDeliveryError):
            registration.resend_otp(user_repository, email_client, {"email": "ada@example.com"}, now=NOW)


class TestUserStatus:
    def test_unknown_user(self, user_repository):
        status = registration.get_user_status(user_repository, {"email": "nobody@example.com"})
        assert status.exists is False
        assert status.message == "User not found"

    def test_pending_code(self, user_repository, make_user):
        make_user("ada@example.com", otp="123456", otp_expires_at=NOW + timedelta(minutes=5))

        status = registration.get_user_status(user_repository, {"email": "ada@example.com"}, now=NOW)

        assert status.exists is True
        assert status.has_otp is True
        assert status.otp_expired is False
        assert status.needs_verification is True
        assert status.can_resend_otp is False

    def test_expired_code_can_resend(self, user_repository, make_user):
        make_user("ada@example.com", otp="123456", otp_expires_at=NOW - timedelta(minutes=5))

        status = registration.get_user_status(user_repository, {"email": "ada@example.com"}, now=NOW)

        assert status.otp_expired is True
        assert status.can_resend_otp is True

    def test_verified_user(self, user_repository, make_user):
        make_user("ada@example.com", authenticated=True)

        status = registration.get_user_status(user_repository, {"email": "ada@example.com"})

        assert status.authenticated is True
        assert status.needs_verification is False
        assert status.can_resend_otp is False


def test_name_with_line_break_is_rejected(user_repository, email_client, registration_payload):
    with pytest.raises(ValidationError):
        _register(user_repository, email_client, {**registration_payload, "name": "Ada\nBcc: x@example.com"})

    assert user_repository.get_by_email("ada@example.com") is None
    assert email_client.verification_emails == []
