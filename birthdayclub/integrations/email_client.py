"""SMTP email integration for Birthday Club.

Messages are rendered from the Jinja2 templates in `templates/`. Delivery to
a single address is retried a fixed number of times; birthday notifications
are sent in batches that share one SMTP connection.
"""

import logging
import os
import smtplib
import time
from dataclasses import dataclass, field
from email.message import EmailMessage
from email.utils import formataddr
from pathlib import Path
from typing import Iterator, List, Optional, Sequence

from dotenv import load_dotenv
from jinja2 import Environment, FileSystemLoader, StrictUndefined, select_autoescape
from markupsafe import Markup

from birthdayclub.errors import EmailDeliveryError
from birthdayclub.models.constants import OTP_TTL_MINUTES
from birthdayclub.models.user import User

load_dotenv()

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).parent / "templates"
SENDER_NAME = "Birthday Club"

_env = Environment(
    loader=FileSystemLoader(str(TEMPLATES_DIR)),
    autoescape=select_autoescape(["html"]),
    undefined=StrictUndefined,
)


def _stored_text(value: str) -> Markup:
    # Names are HTML-escaped when they are stored; don't escape them twice.
    return Markup(value)


def _header_text(value: str) -> str:
    # Header values may not contain line breaks; fold any whitespace run to one space.
    return " ".join(value.split())


def render_template(template_name: str, **context) -> str:
    return _env.get_template(template_name).render(**context)


@dataclass
class DeliveryReport:
    """Per-address outcome of a bulk send."""
    sent: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)

    @property
    def attempted(self) -> int:
        return len(self.sent) + len(self.failed)


class EmailClient:
    """Client for sending templated emails over SMTP."""

    def __init__(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        sender: Optional[str] = None,
        batch_size: Optional[int] = None,
        retry_attempts: Optional[int] = None,
        retry_delay: Optional[float] = None,
        timeout: float = 30.0,
    ):
        """Initialize the email client.

        Every argument falls back to its environment variable (SMTP_HOST,
        SMTP_PORT, SMTP_USERNAME, SMTP_PASSWORD, EMAIL_FROM, EMAIL_BATCH_SIZE,
        EMAIL_RETRY_ATTEMPTS, EMAIL_RETRY_DELAY_SEC).
        """
        self.host = host or os.getenv("SMTP_HOST", "smtp.gmail.com")
        self.port = port or int(os.getenv("SMTP_PORT", "587"))
        self.username = username if username is not None else os.getenv("SMTP_USERNAME", "")
        self.password = password if password is not None else os.getenv("SMTP_PASSWORD", "")
        self.sender = sender or os.getenv("EMAIL_FROM") or self.username
        self.batch_size = max(1, batch_size or int(os.getenv("EMAIL_BATCH_SIZE", "10")))
        self.retry_attempts = max(1, retry_attempts or int(os.getenv("EMAIL_RETRY_ATTEMPTS", "3")))
        self.retry_delay = (
            retry_delay if retry_delay is not None else float(os.getenv("EMAIL_RETRY_DELAY_SEC", "1.0"))
        )
        self.timeout = timeout

    def _connect(self) -> smtplib.SMTP:
        smtp = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
        try:
            smtp.starttls()
            if self.username:
                smtp.login(self.username, self.password)
        except (smtplib.SMTPException, OSError):
            smtp.close()
            raise
        return smtp

    def _build_message(self, to: str, subject: str, html: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = formataddr((SENDER_NAME, self.sender))
        message["To"] = to
        message["Subject"] = subject
        message.set_content("This message requires an HTML-capable email client.")
        message.add_alternative(html, subtype="html")
        return message

    def _deliver(self, smtp: smtplib.SMTP, message: EmailMessage) -> smtplib.SMTP:
        """Send one message, retrying with a fixed delay.

        Returns the (possibly reconnected) SMTP connection.

        Raises:
            EmailDeliveryError: If every attempt fails
        """
        original = smtp
        last_error: Optional[Exception] = None
        for attempt in range(1, self.retry_attempts + 1):
            try:
                smtp.send_message(message)
                return smtp
            except smtplib.SMTPServerDisconnected as e:
                last_error = e
                logger.warning(f"SMTP connection dropped sending to {message['To']} (attempt {attempt})")
                if attempt < self.retry_attempts:
                    time.sleep(self.retry_delay)
                    if smtp is not original:
                        _quit_quietly(smtp)
                    try:
                        smtp = self._connect()
                    except (smtplib.SMTPException, OSError) as reconnect_error:
                        last_error = reconnect_error
            except (smtplib.SMTPException, OSError) as e:
                last_error = e
                logger.warning(
                    f"Failed to send email to {message['To']} (attempt {attempt}): {type(e).__name__}: {e}"
                )
                if attempt < self.retry_attempts:
                    time.sleep(self.retry_delay)
        if smtp is not original:
            # The caller only holds the original connection; don't leak ours.
            _quit_quietly(smtp)
        raise EmailDeliveryError(f"Failed to send email to {message['To']}") from last_error

    def send_email(self, to: str, subject: str, html: str) -> None:
        """Send a single HTML email.

        Raises:
            EmailDeliveryError: If the message could not be delivered
        """
        message = self._build_message(to, subject, html)
        try:
            smtp = self._connect()
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Could not connect to SMTP server {self.host}:{self.port}: {type(e).__name__}: {e}")
            raise EmailDeliveryError() from e
        try:
            smtp = self._deliver(smtp, message)
        finally:
            _quit_quietly(smtp)
        logger.info(f"Email '{subject}' sent to {to}")

    def send_verification_email(self, user: User, otp: str) -> None:
        """Send the welcome email carrying the verification code."""
        html = render_template(
            "verification_email.html",
            name=_stored_text(user.name),
            otp=otp,
            ttl_minutes=OTP_TTL_MINUTES,
        )
        self.send_email(user.email, "Welcome to Birthday Club! Verify your email", html)

    def send_birthday_emails(self, birthday_person: User, recipients: Sequence[User]) -> DeliveryReport:
        """Tell every recipient except the birthday person about their birthday.

        One recipient's failure never stops delivery to the others.
        """
        report = DeliveryReport()
        targets = [r for r in recipients if r.email != birthday_person.email]
        subject = f"🎉 It's {_header_text(_stored_text(birthday_person.name).unescape())}'s Birthday Today!"

        for batch in _chunks(targets, self.batch_size):
            try:
                smtp = self._connect()
            except (smtplib.SMTPException, OSError) as e:
                logger.error(f"Could not connect to SMTP server for a batch of {len(batch)}: {type(e).__name__}: {e}")
                report.failed.extend(r.email for r in batch)
                continue
            try:
                for recipient in batch:
                    try:
                        html = render_template(
                            "birthday_email.html",
                            recipient_name=_stored_text(recipient.name),
                            birthday_name=_stored_text(birthday_person.name),
                            birthday_email=birthday_person.email,
                        )
                        message = self._build_message(recipient.email, subject, html)
                    except ValueError as e:
                        logger.error(f"Could not build birthday email for {recipient.email}: {e}")
                        report.failed.append(recipient.email)
                        continue
                    try:
                        smtp = self._deliver(smtp, message)
                        report.sent.append(recipient.email)
                    except EmailDeliveryError:
                        report.failed.append(recipient.email)
            finally:
                _quit_quietly(smtp)

        logger.info(
            f"Birthday emails for {birthday_person.id}: {len(report.sent)} sent, {len(report.failed)} failed"
        )
        return report

    def test_connection(self) -> bool:
        """Return True if the SMTP server accepts a connection and login."""
        try:
            smtp = self._connect()
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Email connection test failed: {type(e).__name__}: {e}")
            return False
        _quit_quietly(smtp)
        return True


def _chunks(items: Sequence[User], size: int) -> Iterator[Sequence[User]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


def _quit_quietly(smtp: smtplib.SMTP) -> None:
    try:
        smtp.quit()
    except (smtplib.SMTPException, OSError):
        smtp.close()
