"""Repository for the archive store (copies of removed users)."""

import logging
from typing import List, Sequence
from sqlalchemy.orm import Session

from birthdayclub.database.database import translate_store_errors
from birthdayclub.database.models import ArchivedUserDB
from birthdayclub.models.user import ArchivedUser

logger = logging.getLogger(__name__)


class ArchiveRepository:
    """Append-only access to archived users."""

    def __init__(self, db: Session):
        self.db = db

    def insert_many(self, archived_users: Sequence[ArchivedUser]) -> int:
        """Insert all rows in a single transaction.

        Returns:
            Number of rows inserted (0 or len(archived_users))
        """
        if not archived_users:
            return 0
        with translate_store_errors(self.db, "archive users"):
            rows = [ArchivedUserDB.from_pydantic(a) for a in archived_users]
            self.db.add_all(rows)
            self.db.commit()
        logger.debug(f"Archived {len(rows)} users")
        return len(rows)

    def count(self) -> int:
        with translate_store_errors(self.db, "count archived users"):
            return self.db.query(ArchivedUserDB).count()

    def get_by_email(self, email: str) -> List[ArchivedUser]:
        """All archive rows for an email, newest first.

        Operator lookup (audit and recovery of removed users); not used by any endpoint.
        """
        with translate_store_errors(self.db, "look up archived user"):
            rows = (
                self.db.query(ArchivedUserDB)
                .filter(ArchivedUserDB.email == email)
                .order_by(ArchivedUserDB.deleted_at.desc())
                .all()
            )
        return [row.to_pydantic() for row in rows]
