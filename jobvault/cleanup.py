"""
Cleanup module for pruning the backup store.

Two passes are offered: retention (keep the newest ``max_backups`` snapshots)
and corruption cleanup (drop snapshots that fail checksum, decoding or
validation).
"""

from typing import TYPE_CHECKING, List, Tuple

from .logger import get_logger

if TYPE_CHECKING:
    from .backup import BackupService

logger = get_logger()


def cleanup_old_backups(service: "BackupService", max_backups: int) -> Tuple[int, int]:
    """
    Remove the oldest snapshots beyond ``max_backups``.

    Args:
        service: backup service owning the index
        max_backups: Number of snapshots to keep

    Returns:
        Tuple of (total_backups_before, total_backups_after)
        Difference = backups_removed
    """
    with service.index.transaction():
        backups = service.get_backup_list()
        total_before = len(backups)
        for backup in backups[max_backups:]:
            logger.debug(
                "Removing backup beyond retention",
                backup_id=backup.id,
                timestamp=backup.timestamp.isoformat(),
            )
            service.delete_backup(backup.id)
        total_after = len(service.get_backup_list())

    if total_before != total_after:
        logger.info(
            f"Retention complete: {total_before - total_after} removed, {total_after} remaining",
            backups_before=total_before,
            backups_after=total_after,
            max_backups=max_backups,
        )
    return (total_before, total_after)


def cleanup_corrupted_backups(service: "BackupService") -> List[str]:
    """Delete every snapshot that fails verification and return their ids."""
    removed: List[str] = []
    with service.index.transaction():
        for backup in service.get_backup_list():
            problem = service.inspect_backup(backup.id)
            if problem is None:
                continue
            logger.warning("Removing corrupted backup", backup_id=backup.id, problem=problem)
            service.delete_backup(backup.id)
            removed.append(backup.id)

    logger.info("Corrupted backup cleanup complete", removed=len(removed))
    return removed
