"""
Retention policy enforcement for backups.

Keeps the backup directory within its byte quota by deleting the oldest
archives first. Deletion is driven purely by file extension and creation
time; the engine does not know which run (or site) produced a file, so an
archive written moments ago is deleted if it is the oldest one left.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from webhost_backup.utils.sizes import human_filesize, usage_percent
from .runlog import RunLog
from .storage import LocalStorage, StorageError, DeleteError


@dataclass
class RetentionResult:
    deleted_count: int = 0
    total_before: int = 0
    total_after: int = 0
    aborted: bool = False


class RetentionManager:
    """
    Enforces the backup quota on a backup directory.
    """

    def __init__(self, log: Optional[RunLog] = None, date_format: str = '%Y-%m-%d'):
        """
        Initialize retention manager.

        Args:
            log: Run log to record progress in
            date_format: strftime pattern for archive dates in log messages
        """
        self.log = log or RunLog()
        self.date_format = date_format

    def enforce(self, backup_directory: str, quota_bytes: int) -> RetentionResult:
        """
        Delete the oldest archives until the directory fits the quota.

        Stops at the first delete failure: the remaining files would most
        likely fail the same way.

        Args:
            backup_directory: Directory holding the archives (not scanned recursively)
            quota_bytes: Maximum total archive size

        Returns:
            RetentionResult with the number of deleted files and sizes
        """
        result = RetentionResult()

        try:
            storage = LocalStorage(backup_directory)
            archives = storage.list_archives()
        except StorageError as e:
            self.log.error(f"Failed to list backups for cleanup: {e}")
            result.aborted = True
            return result

        total = sum(archive['size'] for archive in archives)
        result.total_before = total
        result.total_after = total
        quota_display = human_filesize(quota_bytes)

        if total <= quota_bytes:
            self.log.info(
                f"Backups use {human_filesize(total)} of {quota_display} "
                f"({usage_percent(total, quota_bytes)}%). No cleanup needed."
            )
            return result

        self.log.info(
            f"Cleaning up old backups because current directory size of {human_filesize(total)} "
            f"is bigger than the allowed quota of {quota_display}."
        )

        # Stable sort keeps listing order for equal timestamps
        candidates = sorted(archives, key=lambda archive: archive['created'])

        for archive in candidates:
            date_display = datetime.fromtimestamp(archive['created']).strftime(self.date_format)
            self.log.info(f"Deleting file {archive['path']} from {date_display}.")

            try:
                storage.delete(archive['path'])
            except DeleteError as e:
                self.log.error(f"Error deleting file {archive['path']}: {e}. Aborting cleanup.")
                result.aborted = True
                break

            result.deleted_count += 1
            total -= archive['size']
            if total <= quota_bytes:
                break

        result.total_after = total

        if total > quota_bytes and not result.aborted:
            self.log.warning(
                f"All {len(candidates)} backups were deleted but the quota of {quota_display} "
                f"is still exceeded."
            )

        self.log.info(
            f"Backups use {human_filesize(total)} of {quota_display} after cleanup "
            f"({usage_percent(total, quota_bytes)}%)."
        )
        return result


def enforce_retention(backup_directory: str, quota_bytes: int, log: Optional[RunLog] = None) -> int:
    """
    Enforce the quota on a backup directory.

    Returns:
        Number of deleted archives
    """
    manager = RetentionManager(log)
    return manager.enforce(backup_directory, quota_bytes).deleted_count
