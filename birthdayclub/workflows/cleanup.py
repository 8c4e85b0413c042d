"""Maintenance workflows: expired-OTP cleanup and removal of unverified users.

Removal is a two-phase operation across two stores with no shared
transaction, so it is sequenced copy -> verify -> delete. Nothing is deleted
unless every row read has a confirmed archive copy.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional

from birthdayclub.database.archive_repository import ArchiveRepository
from birthdayclub.database.user_repository import UserRepository
from birthdayclub.errors import MigrationIncompleteError, PartialDeletionError
from birthdayclub.models.user import ArchivedUser, DeletionReason

logger = logging.getLogger(__name__)


@dataclass
class OtpCleanupResult:
    found: int
    cleaned: int


@dataclass
class DeletionResult:
    total_processed: int
    moved_count: int
    deleted_count: int


def cleanup_expired_otps(users: UserRepository, now: Optional[datetime] = None) -> OtpCleanupResult:
    """Clear OTP fields on unverified users whose code has expired.

    Idempotent: cleared rows no longer match, so a second run modifies nothing.
    """
    now = now or datetime.utcnow()
    found = len(users.find_with_expired_otp(now))
    if found == 0:
        return OtpCleanupResult(found=0, cleaned=0)

    cleaned = users.clear_expired_otps(now)
    if cleaned != found:
        # Another run (or a verification) got there first; not an error.
        logger.warning(f"Expired OTP cleanup found {found} but cleared {cleaned}")
    logger.info(f"Cleared {cleaned} expired OTPs")
    return OtpCleanupResult(found=found, cleaned=cleaned)


def otp_status_counts(users: UserRepository, now: Optional[datetime] = None) -> Dict[str, int]:
    """Counts of unverified users by OTP state, for monitoring."""
    counts = users.count_otp_states(now or datetime.utcnow())
    counts["total_unauthenticated"] = counts["expired"] + counts["active"] + counts["without_otp"]
    return counts


def delete_unauthenticated_users(
    users: UserRepository,
    archive: ArchiveRepository,
    now: Optional[datetime] = None,
) -> DeletionResult:
    """Archive, then delete, every unverified user.

    Raises:
        MigrationIncompleteError: Fewer rows archived than read; nothing deleted
        PartialDeletionError: Rows archived but not all deleted (now in both stores)
    """
    now = now or datetime.utcnow()
    pending = users.get_unauthenticated()
    if not pending:
        logger.info("No unauthenticated users to delete")
        return DeletionResult(total_processed=0, moved_count=0, deleted_count=0)

    copies = [
        ArchivedUser.from_user(user, str(uuid.uuid4()), DeletionReason.UNAUTHENTICATED_CLEANUP, now)
        for user in pending
    ]
    moved_count = archive.insert_many(copies)
    logger.info(f"Archived {moved_count} of {len(pending)} unauthenticated users")

    if moved_count != len(pending):
        logger.error(f"Archive incomplete ({moved_count}/{len(pending)}); aborting before delete")
        raise MigrationIncompleteError(expected=len(pending), moved=moved_count)

    # Only the users that were archived; anyone who registered since stays put.
    deleted_count = users.delete_unauthenticated([user.id for user in pending])

    if deleted_count != moved_count:
        logger.critical(
            f"Partial deletion: {moved_count} archived but {deleted_count} deleted; "
            "records now exist in both stores and need operator review"
        )
        raise PartialDeletionError(moved=moved_count, deleted=deleted_count)

    logger.info(f"Deleted {deleted_count} unauthenticated users")
    return DeletionResult(total_processed=len(pending), moved_count=moved_count, deleted_count=deleted_count)


def unauthenticated_counts(users: UserRepository) -> Dict[str, int]:
    """Counts of verified and unverified users, for monitoring."""
    counts = users.count_by_authentication()
    counts["total"] = counts["authenticated"] + counts["unauthenticated"]
    return counts
