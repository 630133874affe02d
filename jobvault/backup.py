"""
Backup and version store.

Snapshots are immutable, checksummed copies of the full application set.
Payload bytes live under ``backup_<id>``; the authoritative list of snapshots
(including each checksum) is the ``VersionIndex`` under ``backup_metadata``.
Every read-modify-write of the index happens under the index lock.
"""

import json
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence

from .cleanup import cleanup_corrupted_backups as _cleanup_corrupted
from .cleanup import cleanup_old_backups
from .errors import CorruptedError, NotFoundError, ValidationFailedError
from .logger import StructuredLogger, get_logger
from .models import ApplicationRecord, records_from_dicts, records_to_dicts
from .repair import repair_records
from .storage import KeyValueStore
from .validation import ValidationResult, validate_records
from .versioning import (
    DEFAULT_HASHER,
    Hasher,
    default_hasher,
    hasher_by_name,
    new_backup_id,
    new_version_tag,
)

BACKUP_KEY_PREFIX = "backup_"
METADATA_KEY = "backup_metadata"
APPLICATIONS_KEY = "applications"
PREFERENCES_KEY = "user_preferences"
SETTINGS_KEY = "app_settings"

MANUAL = "manual"
AUTOMATIC = "automatic"
MIGRATION = "migration"
BACKUP_TYPES = (MANUAL, AUTOMATIC, MIGRATION)

DEFAULT_MAX_BACKUPS = 10
CURRENT = "current"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _canonical_json(value: Any) -> bytes:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def diff_dict(old: Dict[str, Any], new: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    changed = {}
    keys = set(old.keys()) | set(new.keys())
    for k in keys:
        ov = old.get(k)
        nv = new.get(k)
        if ov != nv:
            changed[k] = {"old": ov, "new": nv}
    return changed


@dataclass(frozen=True)
class BackupMetadata:
    id: str
    timestamp: datetime
    version: str
    description: str
    data_size: int
    checksum: str
    type: str
    application_count: int
    parent_version: Optional[str] = None
    changes_summary: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    hasher: str = DEFAULT_HASHER

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "version": self.version,
            "description": self.description,
            "dataSize": self.data_size,
            "checksum": self.checksum,
            "type": self.type,
            "applicationCount": self.application_count,
            "parentVersion": self.parent_version,
            "changesSummary": list(self.changes_summary),
            "tags": list(self.tags),
            "hasher": self.hasher,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BackupMetadata":
        return cls(
            id=data["id"],
            timestamp=datetime.fromisoformat(data["timestamp"]),
            version=data["version"],
            description=data.get("description", ""),
            data_size=int(data.get("dataSize", 0)),
            checksum=data.get("checksum", ""),
            type=data.get("type", AUTOMATIC),
            application_count=int(data.get("applicationCount", 0)),
            parent_version=data.get("parentVersion"),
            changes_summary=list(data.get("changesSummary") or []),
            tags=list(data.get("tags") or []),
            hasher=data.get("hasher") or DEFAULT_HASHER,
        )


@dataclass
class BackupData:
    metadata: BackupMetadata
    applications: List[ApplicationRecord]
    user_preferences: Optional[Any] = None
    settings: Optional[Any] = None


@dataclass
class VersionDiff:
    added: List[ApplicationRecord] = field(default_factory=list)
    removed: List[ApplicationRecord] = field(default_factory=list)
    modified: List[ApplicationRecord] = field(default_factory=list)
    changes: Dict[str, Dict[str, Dict[str, Any]]] = field(default_factory=dict)


@dataclass
class BackupHealth:
    total_backups: int
    total_size: int
    oldest_backup: Optional[datetime]
    newest_backup: Optional[datetime]
    corrupted_backups: List[str]
    recommendations: List[str]


@dataclass
class BackupStatistics:
    total_backups: int
    total_size: int
    average_size: float
    backups_by_type: Dict[str, int]
    oldest_backup: Optional[datetime]
    newest_backup: Optional[datetime]
    daily: int
    weekly: int
    monthly: int


class VersionIndex:
    """
    Snapshot index persisted as one JSON array under ``backup_metadata``.

    Entries are kept in insertion order on disk; ``entries()`` returns them
    newest-first by timestamp, later insertions first on equal timestamps.
    """

    def __init__(self, store: KeyValueStore, key: str = METADATA_KEY):
        self._store = store
        self._key = key
        self._lock = threading.RLock()

    @contextmanager
    def transaction(self) -> Iterator["VersionIndex"]:
        """Hold the index lock across a read-modify-write sequence."""
        with self._lock:
            yield self

    def _read(self) -> List[BackupMetadata]:
        raw = self._store.get(self._key)
        if raw is None:
            return []
        try:
            return [BackupMetadata.from_dict(item) for item in json.loads(raw.decode("utf-8"))]
        except (ValueError, KeyError, TypeError) as e:
            raise CorruptedError(f"Backup index is unreadable: {e}") from e

    def _write(self, entries: Sequence[BackupMetadata]) -> None:
        self._store.set(self._key, json.dumps([m.to_dict() for m in entries]).encode("utf-8"))

    def entries(self) -> List[BackupMetadata]:
        with self._lock:
            raw = self._read()
        return sorted(reversed(raw), key=lambda m: m.timestamp, reverse=True)

    def get(self, backup_id: str) -> Optional[BackupMetadata]:
        for entry in self.entries():
            if entry.id == backup_id:
                return entry
        return None

    def latest(self) -> Optional[BackupMetadata]:
        entries = self.entries()
        return entries[0] if entries else None

    def append(self, metadata: BackupMetadata) -> None:
        with self._lock:
            entries = self._read()
            entries.append(metadata)
            self._write(entries)

    def remove(self, backup_id: str) -> bool:
        with self._lock:
            entries = self._read()
            kept = [m for m in entries if m.id != backup_id]
            if len(kept) == len(entries):
                return False
            self._write(kept)
            return True

    def __len__(self) -> int:
        return len(self.entries())


class BackupService:
    """
    Creates, restores, compares and prunes snapshots of the application set.

    Args:
        store: key-value backend holding payloads, the index and the live set
        hasher: digest for new snapshots (default SHA-256); existing ones
            verify with the hasher named in their metadata
        max_backups: retention cap applied after every create
        logger: structured logger (default: the global one)
        clock: returns the current time, UTC-aware
    """

    def __init__(
        self,
        store: KeyValueStore,
        hasher: Optional[Hasher] = None,
        max_backups: int = DEFAULT_MAX_BACKUPS,
        logger: Optional[StructuredLogger] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        if max_backups < 1:
            raise ValueError("max_backups must be at least 1")
        self.store = store
        self.hasher = hasher or default_hasher()
        self.max_backups = max_backups
        self.logger = logger or get_logger()
        self.clock = clock or _utcnow
        self.index = VersionIndex(store)

    # Snapshot lifecycle

    def create_backup(
        self,
        applications: Sequence[ApplicationRecord],
        description: str = "Automatic backup",
        backup_type: str = AUTOMATIC,
        tags: Optional[List[str]] = None,
    ) -> BackupMetadata:
        """
        Snapshot ``applications`` together with the stored preferences and settings.

        The checksum covers the exact payload bytes written to the store.
        Retention runs afterwards, dropping the oldest snapshots beyond
        ``max_backups``.
        """
        if backup_type not in BACKUP_TYPES:
            raise ValueError(f"Unknown backup type: {backup_type}")

        records = [record.copy() for record in applications]
        self.logger.record_operation_attempt("create_backup")
        try:
            metadata = self._write_snapshot(records, description, backup_type, tags)
        except Exception as e:
            self.logger.record_operation_failure("create_backup", type(e).__name__)
            self.logger.error("Backup creation failed", type=backup_type, error=str(e))
            raise

        self.logger.record_operation_success("create_backup")
        self.logger.record_backup_created()
        self.logger.info(
            "Backup created",
            backup_id=metadata.id,
            type=backup_type,
            applications=len(records),
            size=metadata.data_size,
        )
        return metadata

    def _write_snapshot(
        self,
        records: List[ApplicationRecord],
        description: str,
        backup_type: str,
        tags: Optional[List[str]],
    ) -> BackupMetadata:
        with self.index.transaction():
            timestamp = self.clock()
            version = new_version_tag()
            backup_id = new_backup_id(timestamp, version)
            latest = self.index.latest()

            metadata = BackupMetadata(
                id=backup_id,
                timestamp=timestamp,
                version=version,
                description=description,
                data_size=0,
                checksum="",
                type=backup_type,
                application_count=len(records),
                parent_version=latest.id if latest else None,
                changes_summary=self._changes_summary(latest, records),
                tags=list(tags or []),
                hasher=self.hasher.name,
            )
            payload = self._serialize(metadata, records, self.get_user_preferences(), self.get_settings())
            metadata = replace(metadata, data_size=len(payload), checksum=self.hasher.digest(payload))

            key = f"{BACKUP_KEY_PREFIX}{backup_id}"
            self.store.set(key, payload)
            try:
                self.index.append(metadata)
            except Exception:
                self.store.remove(key)
                raise

            cleanup_old_backups(self, self.max_backups)
        return metadata

    def restore_backup(self, backup_id: str) -> List[ApplicationRecord]:
        """Replace the live set with a snapshot, snapshotting the live set first."""
        return self._restore(backup_id, "Pre-restore backup")

    def rollback_to_version(self, backup_id: str) -> List[ApplicationRecord]:
        """Restore ``backup_id``; the safety snapshot names the rollback target."""
        return self._restore(backup_id, f"Pre-rollback backup (rolling back to {backup_id})")

    def _restore(self, backup_id: str, pre_description: str) -> List[ApplicationRecord]:
        self.logger.record_operation_attempt("restore_backup")
        try:
            data = self._swap_in(backup_id, pre_description)
        except Exception as e:
            self.logger.record_operation_failure("restore_backup", type(e).__name__)
            raise

        self.logger.record_operation_success("restore_backup")
        self.logger.record_backup_restored()
        self.logger.info("Backup restored", backup_id=backup_id, applications=len(data.applications))
        return [record.copy() for record in data.applications]

    def _swap_in(self, backup_id: str, pre_description: str) -> BackupData:
        with self.index.transaction():
            data = self.get_backup(backup_id)

            validation = self.validate_data(data.applications)
            if not validation.is_valid:
                messages = ", ".join(e.message for e in validation.critical_errors)
                raise ValidationFailedError(f"Backup validation failed: {messages}", validation)

            current = self.get_current_applications()
            if current:
                self.create_backup(current, pre_description, AUTOMATIC)

            self.save_current_applications(data.applications)
            if data.user_preferences is not None:
                self.set_user_preferences(data.user_preferences)
        return data

    def get_backup(self, backup_id: str) -> BackupData:
        """
        Load and verify one snapshot.

        Raises:
            NotFoundError: no index entry or no payload for ``backup_id``
            CorruptedError: payload undecodable or checksum mismatch
        """
        metadata = self.index.get(backup_id)
        if metadata is None:
            raise NotFoundError(backup_id)
        payload = self.store.get(f"{BACKUP_KEY_PREFIX}{backup_id}")
        if payload is None:
            raise NotFoundError(backup_id)

        try:
            hasher = hasher_by_name(metadata.hasher)
        except ValueError as e:
            raise CorruptedError(f"Backup {backup_id} cannot be verified: {e}", backup_id) from e
        if hasher.digest(payload) != metadata.checksum:
            raise CorruptedError(f"Checksum mismatch for backup {backup_id}", backup_id)
        try:
            data = json.loads(payload.decode("utf-8"))
            if data["metadata"]["id"] != backup_id:
                raise CorruptedError(f"Payload under {backup_id} belongs to another backup", backup_id)
            applications = records_from_dicts(data["applications"])
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise CorruptedError(f"Backup {backup_id} cannot be decoded: {e}", backup_id) from e

        return BackupData(
            metadata=metadata,
            applications=applications,
            user_preferences=data.get("userPreferences"),
            settings=data.get("settings"),
        )

    def get_backup_list(self) -> List[BackupMetadata]:
        """All snapshot metadata, newest first."""
        return self.index.entries()

    def get_version_history(self, limit: int = 20) -> List[BackupMetadata]:
        return self.index.entries()[:limit]

    def delete_backup(self, backup_id: str) -> None:
        """Remove a snapshot's payload and index entry. Deleting twice is a no-op."""
        with self.index.transaction():
            self.store.remove(f"{BACKUP_KEY_PREFIX}{backup_id}")
            removed = self.index.remove(backup_id)
        if removed:
            self.logger.record_backup_deleted()
            self.logger.info("Backup deleted", backup_id=backup_id)
        else:
            self.logger.debug("Backup already absent", backup_id=backup_id)

    def cleanup_corrupted_backups(self) -> List[str]:
        """Delete every snapshot that fails verification; returns the removed ids."""
        return _cleanup_corrupted(self)

    # Comparison

    def compare_versions(self, version_a: str, version_b: str = CURRENT) -> VersionDiff:
        """
        Diff two snapshots by record id, or a snapshot against the live set.

        A record present on both sides whose serialized form differs is
        reported as modified, with a per-field diff in ``changes``.
        """
        apps_a = self.get_backup(version_a).applications
        if version_b == CURRENT:
            apps_b = self.get_current_applications()
        else:
            apps_b = self.get_backup(version_b).applications
        return diff_record_sets(apps_a, apps_b)

    def _changes_summary(
        self,
        latest: Optional[BackupMetadata],
        records: Sequence[ApplicationRecord],
    ) -> List[str]:
        if latest is None:
            return []
        try:
            previous = self.get_backup(latest.id).applications
        except (NotFoundError, CorruptedError) as e:
            self.logger.warning("Cannot diff against previous backup", backup_id=latest.id, error=str(e))
            return ["Unable to generate changes summary"]

        diff = diff_record_sets(previous, records)
        changes = []
        if diff.added:
            changes.append(f"Added {len(diff.added)} new application(s)")
        if diff.removed:
            changes.append(f"Removed {len(diff.removed)} application(s)")
        if diff.modified:
            changes.append(f"Modified {len(diff.modified)} application(s)")
        return changes or ["No changes detected"]

    # Validation

    def validate_data(self, applications: Sequence[ApplicationRecord]) -> ValidationResult:
        self.logger.record_validation_run()
        return validate_records(applications)

    def repair_data(self, applications: Sequence[ApplicationRecord]) -> List[ApplicationRecord]:
        return repair_records(applications)

    def inspect_backup(self, backup_id: str) -> Optional[str]:
        """Return a description of what is wrong with a snapshot, or None if healthy."""
        try:
            data = self.get_backup(backup_id)
        except NotFoundError:
            return "payload missing"
        except CorruptedError as e:
            return str(e)
        validation = validate_records(data.applications)
        if not validation.is_valid:
            return f"{len(validation.critical_errors)} critical validation error(s)"
        return None

    # Health and statistics (read-only)

    def get_backup_health(self) -> BackupHealth:
        backups = self.index.entries()
        total_size = sum(b.data_size for b in backups)
        corrupted = []
        for backup in backups:
            problem = self.inspect_backup(backup.id)
            if problem is not None:
                self.logger.warning("Backup failed health check", backup_id=backup.id, problem=problem)
                corrupted.append(backup.id)

        recommendations = []
        if not backups:
            recommendations.append("Create your first backup to protect your data")
        elif len(backups) < 3:
            recommendations.append("Consider creating more frequent backups for better data protection")
        if corrupted:
            recommendations.append(f"{len(corrupted)} corrupted backup(s) found - consider cleaning up")
        if backups and self.clock() - backups[0].timestamp > timedelta(days=7):
            recommendations.append("Latest backup is over a week old - consider creating a new backup")

        return BackupHealth(
            total_backups=len(backups),
            total_size=total_size,
            oldest_backup=backups[-1].timestamp if backups else None,
            newest_backup=backups[0].timestamp if backups else None,
            corrupted_backups=corrupted,
            recommendations=recommendations,
        )

    def get_backup_statistics(self) -> BackupStatistics:
        backups = self.index.entries()
        total_size = sum(b.data_size for b in backups)
        by_type: Dict[str, int] = {}
        for backup in backups:
            by_type[backup.type] = by_type.get(backup.type, 0) + 1

        now = self.clock()

        def _since(days: int) -> int:
            cutoff = now - timedelta(days=days)
            return sum(1 for b in backups if b.timestamp > cutoff)

        return BackupStatistics(
            total_backups=len(backups),
            total_size=total_size,
            average_size=total_size / len(backups) if backups else 0.0,
            backups_by_type=by_type,
            oldest_backup=backups[-1].timestamp if backups else None,
            newest_backup=backups[0].timestamp if backups else None,
            daily=_since(1),
            weekly=_since(7),
            monthly=_since(30),
        )

    # Live set and ambient blobs

    def get_current_applications(self) -> List[ApplicationRecord]:
        raw = self.store.get(APPLICATIONS_KEY)
        if raw is None:
            return []
        try:
            return records_from_dicts(json.loads(raw.decode("utf-8")))
        except (ValueError, TypeError, AttributeError) as e:
            raise CorruptedError(f"Live application set is unreadable: {e}") from e

    def save_current_applications(self, applications: Sequence[ApplicationRecord]) -> None:
        self.store.set(APPLICATIONS_KEY, json.dumps(records_to_dicts(list(applications))).encode("utf-8"))

    def _get_json(self, key: str) -> Optional[Any]:
        raw = self.store.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw.decode("utf-8"))
        except ValueError:
            self.logger.warning("Ignoring unreadable blob", key=key)
            return None

    def get_user_preferences(self) -> Optional[Any]:
        return self._get_json(PREFERENCES_KEY)

    def set_user_preferences(self, preferences: Any) -> None:
        self.store.set(PREFERENCES_KEY, json.dumps(preferences).encode("utf-8"))

    def get_settings(self) -> Optional[Any]:
        return self._get_json(SETTINGS_KEY)

    def set_settings(self, settings: Any) -> None:
        self.store.set(SETTINGS_KEY, json.dumps(settings).encode("utf-8"))

    @staticmethod
    def _serialize(
        metadata: BackupMetadata,
        applications: Sequence[ApplicationRecord],
        preferences: Optional[Any],
        settings: Optional[Any],
    ) -> bytes:
        return _canonical_json({
            "metadata": metadata.to_dict(),
            "applications": records_to_dicts(list(applications)),
            "userPreferences": preferences,
            "settings": settings,
        })


def diff_record_sets(
    before: Sequence[ApplicationRecord],
    after: Sequence[ApplicationRecord],
) -> VersionDiff:
    """Set difference by id; later duplicates of an id win, as in a dict."""
    map_a = {record.id: record for record in before}
    map_b = {record.id: record for record in after}
    diff = VersionDiff()

    for record_id, record in map_b.items():
        if record_id not in map_a:
            diff.added.append(record)
    for record_id, record in map_a.items():
        if record_id not in map_b:
            diff.removed.append(record)
    for record_id, record in map_b.items():
        old = map_a.get(record_id)
        if old is None:
            continue
        old_dict, new_dict = old.to_dict(), record.to_dict()
        if _canonical_json(old_dict) != _canonical_json(new_dict):
            diff.modified.append(record)
            diff.changes[record_id] = diff_dict(old_dict, new_dict)
    return diff
