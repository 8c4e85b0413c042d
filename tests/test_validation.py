"""Tests for request validation and sanitization."""

from datetime import date

import pytest

from birthdayclub.engine.validation import (
    EmailInput,
    OtpVerificationInput,
    RegistrationInput,
    is_bot_submission,
    parse,
    sanitize_name,
)
from birthdayclub.errors import ValidationError

TODAY = date(2026, 10, 18)


def _fields(exc_info) -> set:
    return {d["field"] for d in exc_info.value.details}


class TestRegistrationInput:
    def test_valid_payload_is_normalized(self):
        data = parse(
            RegistrationInput,
            {"name": "  Ada  ", "email": "  Ada@Example.COM ", "dateOfBirth": "1990-12-10"},
            today=TODAY,
        )
        assert data.name == "Ada"
        assert data.email == "ada@example.com"
        assert data.date_of_birth == date(1990, 12, 10)

    def test_reports_every_invalid_field(self):
        with pytest.raises(ValidationError) as exc_info:
            parse(RegistrationInput, {"name": "", "email": "nope", "dateOfBirth": "2030-01-01"}, today=TODAY)
        assert _fields(exc_info) == {"name", "email", "dateOfBirth"}

    def test_missing_fields(self):
        with pytest.raises(ValidationError) as exc_info:
            parse(RegistrationInput, {}, today=TODAY)
        assert _fields(exc_info) == {"name", "email", "dateOfBirth"}

    def test_rejects_script_in_name(self):
        with pytest.raises(ValidationError) as exc_info:
            parse(
                RegistrationInput,
                {"name": "<script>alert('xss')</script>", "email": "a@example.com", "dateOfBirth": "1990-01-01"},
                today=TODAY,
            )
        assert exc_info.value.details[0]["message"] == "Name contains invalid characters"

    @pytest.mark.parametrize("name", ["Ada\nLovelace", "Ada\r\nBcc: x@example.com", "Ada\x00", "Ada\tLovelace"])
    def test_rejects_control_characters_in_name(self, name):
        with pytest.raises(ValidationError) as exc_info:
            parse(
                RegistrationInput,
                {"name": name, "email": "a@example.com", "dateOfBirth": "1990-01-01"},
                today=TODAY,
            )
        assert exc_info.value.details == [{"field": "name", "message": "Name contains invalid characters"}]

    def test_rejects_long_name(self):
        with pytest.raises(ValidationError):
            parse(
                RegistrationInput,
                {"name": "x" * 101, "email": "a@example.com", "dateOfBirth": "1990-01-01"},
                today=TODAY,
            )

    @pytest.mark.parametrize("dob", ["2022-01-01", "1900-01-01", "not-a-date"])
    def test_rejects_out_of_range_dates(self, dob):
        with pytest.raises(ValidationError) as exc_info:
            parse(RegistrationInput, {"name": "Ada", "email": "a@example.com", "dateOfBirth": dob}, today=TODAY)
        assert _fields(exc_info) == {"dateOfBirth"}

    def test_age_bounds_are_inclusive(self):
        youngest = parse(
            RegistrationInput, {"name": "A", "email": "a@example.com", "dateOfBirth": "2021-10-18"}, today=TODAY
        )
        oldest = parse(
            RegistrationInput, {"name": "A", "email": "a@example.com", "dateOfBirth": "1906-10-18"}, today=TODAY
        )
        assert youngest.date_of_birth == date(2021, 10, 18)
        assert oldest.date_of_birth == date(1906, 10, 18)

    def test_rejects_non_object_body(self):
        with pytest.raises(ValidationError) as exc_info:
            parse(RegistrationInput, ["not", "an", "object"])
        assert _fields(exc_info) == {"body"}


class TestOtherInputs:
    def test_otp_must_be_six_digits(self):
        with pytest.raises(ValidationError) as exc_info:
            parse(OtpVerificationInput, {"email": "a@example.com", "otp": "12ab"})
        assert _fields(exc_info) == {"otp"}

    def test_email_input_lowercases(self):
        assert parse(EmailInput, {"email": "BOB@Example.com"}).email == "bob@example.com"


class TestHoneypot:
    def test_blank_fields_are_human(self):
        assert is_bot_submission({"name": "Ada", "website": "", "phone": "   "}) is False

    @pytest.mark.parametrize("field", ["website", "url", "phone", "fax"])
    def test_filled_field_is_bot(self, field):
        assert is_bot_submission({"name": "Bot", field: "http://spam.example"}) is True


def test_sanitize_name_escapes_markup():
    assert sanitize_name("  Tom & <b>Jerry</b> ") == "Tom &amp; &lt;b&gt;Jerry&lt;/b&gt;"
