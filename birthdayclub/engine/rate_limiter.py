"""Fixed-window rate limiter backed by persisted counters.

The limiter is a global throttle per operation name, not per caller: at most
`limit` calls are allowed while fewer than `window_hours` have passed since the
counter was last updated.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from birthdayclub.database.rate_limit_repository import RateLimitRepository
from birthdayclub.models.constants import DEFAULT_RATE_LIMIT, DEFAULT_RATE_WINDOW_HOURS
from birthdayclub.models.rate_limit import RateLimitDecision

logger = logging.getLogger(__name__)

# Each attempt re-reads the row; more than a couple means heavy contention.
MAX_ATTEMPTS = 3


def check_and_increment(
    repository: RateLimitRepository,
    operation: str,
    limit: int = DEFAULT_RATE_LIMIT,
    window_hours: int = DEFAULT_RATE_WINDOW_HOURS,
    now: Optional[datetime] = None,
) -> RateLimitDecision:
    """Record one invocation of `operation` if the window allows it.

    Args:
        repository: Counter storage
        operation: Name of the guarded operation
        limit: Allowed invocations per window
        window_hours: Window length
        now: Current time (UTC); defaults to datetime.utcnow()

    Returns:
        RateLimitDecision; when denied, `reset_time` is last_updated + window
        and the counter is left untouched.
    """
    now = now or datetime.utcnow()
    window = timedelta(hours=window_hours)
    window_start = now - window

    current = None
    for _ in range(MAX_ATTEMPTS):
        current = repository.get(operation)

        if current is None:
            if repository.try_create(operation, now):
                logger.info(f"Rate limit window opened for {operation} (1/{limit})")
                return RateLimitDecision(allowed=True, operation=operation, counter=1, limit=limit)
            continue

        if repository.try_reset_window(operation, now, window_start):
            logger.info(f"Rate limit window reset for {operation} (1/{limit})")
            return RateLimitDecision(allowed=True, operation=operation, counter=1, limit=limit)

        if repository.try_increment(operation, now, limit, window_start):
            counter = min(current.counter + 1, limit)
            updated = repository.get(operation)
            if updated is not None:
                counter = updated.counter
            logger.info(f"Rate limit counter for {operation} at {counter}/{limit}")
            return RateLimitDecision(allowed=True, operation=operation, counter=counter, limit=limit)

        current = repository.get(operation)
        if current is not None and current.counter >= limit and current.last_updated > window_start:
            break

    reset_time = (current.last_updated + window) if current else now + window
    logger.warning(f"Rate limit exceeded for {operation}; resets at {reset_time.isoformat()}")
    return RateLimitDecision(
        allowed=False,
        operation=operation,
        counter=current.counter if current else limit,
        limit=limit,
        reset_time=reset_time,
    )
