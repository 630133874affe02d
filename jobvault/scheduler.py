"""
Periodic automatic backups.

The scheduler runs on a daemon thread and snapshots the live application
set every ``interval`` seconds. A tick that fires while the previous one is
still running is skipped rather than queued.
"""

import threading
from typing import Optional

from .backup import AUTOMATIC, BackupMetadata, BackupService
from .errors import JobVaultError
from .logger import get_logger

AUTO_BACKUP_DESCRIPTION = "Automatic scheduled backup"

logger = get_logger()


class AutoBackupScheduler:
    """
    Args:
        service: backup service to snapshot through
        interval: seconds between ticks (default: 24 hours)
    """

    def __init__(self, service: BackupService, interval: float = 24 * 60 * 60):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.service = service
        self.interval = interval
        self._stop = threading.Event()
        self._tick_lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        """Start ticking. Calling start on a running scheduler is a no-op."""
        if self.is_running():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="jobvault-auto-backup", daemon=True)
        self._thread.start()
        logger.info("Auto-backup scheduler started", interval_seconds=self.interval)

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop ticking and wait for the worker thread to exit."""
        self._stop.set()
        thread = self._thread
        if thread is not None:
            thread.join(timeout)
        self._thread = None
        logger.info("Auto-backup scheduler stopped")

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _loop(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                self.run_once()
            except JobVaultError as e:
                # keep the schedule alive; the next tick retries
                logger.error("Scheduled backup failed", error=str(e), error_type=type(e).__name__)

    def run_once(self) -> Optional[BackupMetadata]:
        """
        Snapshot the live set once.

        Returns the new snapshot's metadata, or None when the live set is
        empty or another tick is still in progress.
        """
        if not self._tick_lock.acquire(blocking=False):
            logger.debug("Skipping auto-backup tick, previous tick still running")
            return None
        try:
            applications = self.service.get_current_applications()
            if not applications:
                logger.debug("Skipping auto-backup, no applications stored")
                return None
            return self.service.create_backup(applications, AUTO_BACKUP_DESCRIPTION, AUTOMATIC)
        finally:
            self._tick_lock.release()
