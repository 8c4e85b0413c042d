"""Repository for persisted rate-limit counters.

Every mutating method is a single conditional statement, so two concurrent
callers can never both act on the same counter value.
"""

import logging
from datetime import datetime
from typing import Optional
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from birthdayclub.database.database import translate_store_errors
from birthdayclub.database.models import RateLimitCounterDB
from birthdayclub.models.rate_limit import RateLimitCounter

logger = logging.getLogger(__name__)


class RateLimitRepository:
    """Repository for RateLimitCounter rows."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, operation: str) -> Optional[RateLimitCounter]:
        with translate_store_errors(self.db, "read rate limit"):
            row = (
                self.db.query(RateLimitCounterDB)
                .filter(RateLimitCounterDB.operation == operation)
                .populate_existing()
                .first()
            )
        return row.to_pydantic() if row else None

    def try_create(self, operation: str, now: datetime) -> bool:
        """Insert a fresh counter (counter=1). Returns False if one already exists."""
        with translate_store_errors(self.db, "create rate limit"):
            try:
                self.db.add(RateLimitCounterDB(operation=operation, counter=1, last_updated=now, created_at=now))
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                logger.debug(f"Rate limit counter for {operation} was created concurrently")
                return False
        return True

    def try_reset_window(self, operation: str, now: datetime, window_start: datetime) -> bool:
        """Restart the window (counter=1) if the last update is at or before `window_start`."""
        with translate_store_errors(self.db, "reset rate limit"):
            updated = (
                self.db.query(RateLimitCounterDB)
                .filter(
                    RateLimitCounterDB.operation == operation,
                    RateLimitCounterDB.last_updated <= window_start,
                )
                .update(
                    {RateLimitCounterDB.counter: 1, RateLimitCounterDB.last_updated: now},
                    synchronize_session=False,
                )
            )
            self.db.commit()
        return updated == 1

    def try_increment(self, operation: str, now: datetime, limit: int, window_start: datetime) -> bool:
        """Increment the counter if it is below `limit` and the window is still open."""
        with translate_store_errors(self.db, "increment rate limit"):
            updated = (
                self.db.query(RateLimitCounterDB)
                .filter(
                    RateLimitCounterDB.operation == operation,
                    RateLimitCounterDB.counter < limit,
                    RateLimitCounterDB.last_updated > window_start,
                )
                .update(
                    {
                        RateLimitCounterDB.counter: RateLimitCounterDB.counter + 1,
                        RateLimitCounterDB.last_updated: now,
                    },
                    synchronize_session=False,
                )
            )
            self.db.commit()
        return updated == 1

    def set_state(self, operation: str, counter: int, last_updated: datetime) -> None:
        """Overwrite a counter (administrative use and tests)."""
        with translate_store_errors(self.db, "set rate limit"):
            row = self.db.query(RateLimitCounterDB).filter(RateLimitCounterDB.operation == operation).first()
            if row is None:
                row = RateLimitCounterDB(operation=operation, created_at=last_updated)
                self.db.add(row)
            row.counter = counter
            row.last_updated = last_updated
            self.db.commit()
