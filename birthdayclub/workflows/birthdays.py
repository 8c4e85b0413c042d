"""Daily birthday broadcast."""

import logging
import os
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import List, Optional

from birthdayclub.database.rate_limit_repository import RateLimitRepository
from birthdayclub.database.user_repository import UserRepository
from birthdayclub.engine.rate_limiter import check_and_increment
from birthdayclub.errors import RateLimitExceededError
from birthdayclub.integrations.email_client import EmailClient
from birthdayclub.models.constants import BIRTHDAY_EMAILS_OPERATION, DEFAULT_RATE_LIMIT, DEFAULT_RATE_WINDOW_HOURS
from birthdayclub.models.user import User

logger = logging.getLogger(__name__)


@dataclass
class BirthdayDelivery:
    """Emails sent about one birthday person."""
    user_id: str
    name: str
    attempted: int
    sent: int
    failed: int


@dataclass
class BroadcastResult:
    message: str
    birthdays: List[BirthdayDelivery] = field(default_factory=list)

    @property
    def total_attempted(self) -> int:
        return sum(b.attempted for b in self.birthdays)

    @property
    def total_sent(self) -> int:
        return sum(b.sent for b in self.birthdays)

    @property
    def total_failed(self) -> int:
        return sum(b.failed for b in self.birthdays)


def _daily_limit() -> int:
    return int(os.getenv("BIRTHDAY_EMAIL_DAILY_LIMIT", str(DEFAULT_RATE_LIMIT)))


def todays_birthdays(users: UserRepository, today: Optional[date] = None) -> List[User]:
    """Verified users whose birthday (month and day) is today (UTC)."""
    today = today or datetime.utcnow().date()
    return users.get_birthday_users(today.month, today.day)


def send_birthday_emails(
    users: UserRepository,
    rate_limits: RateLimitRepository,
    email_client: EmailClient,
    today: Optional[date] = None,
    now: Optional[datetime] = None,
) -> BroadcastResult:
    """Email every other verified user about each of today's birthdays.

    Raises:
        RateLimitExceededError: The daily allowance is used up; nothing was sent
    """
    limit = _daily_limit()
    decision = check_and_increment(
        rate_limits, BIRTHDAY_EMAILS_OPERATION, limit=limit, window_hours=DEFAULT_RATE_WINDOW_HOURS, now=now
    )
    if not decision.allowed:
        raise RateLimitExceededError(reset_time=decision.reset_time, limit=limit)

    birthday_users = todays_birthdays(users, today)
    if not birthday_users:
        return BroadcastResult(message="No birthdays today")

    pool = users.get_authenticated()
    if len(pool) < 2:
        return BroadcastResult(message="Not enough users to send birthday notifications")

    result = BroadcastResult(message="Birthday emails processed")
    for person in birthday_users:
        recipients = [u for u in pool if u.id != person.id]
        report = email_client.send_birthday_emails(person, recipients)
        result.birthdays.append(BirthdayDelivery(
            user_id=person.id,
            name=person.name,
            attempted=report.attempted,
            sent=len(report.sent),
            failed=len(report.failed),
        ))

    logger.info(
        f"Birthday broadcast: {len(birthday_users)} birthdays, "
        f"{result.total_sent}/{result.total_attempted} emails sent"
    )
    return result
