"""
Tests for the backup and version store.
"""

import json
import threading
from datetime import timedelta

import pytest

from jobvault.backup import (
    APPLICATIONS_KEY,
    AUTOMATIC,
    MANUAL,
    METADATA_KEY,
    MIGRATION,
    BackupService,
    VersionIndex,
)
from jobvault.errors import CorruptedError, NotFoundError, ValidationFailedError
from jobvault.models import ApplicationRecord
from jobvault.storage import MemoryStore
from jobvault.versioning import RollingHasher


def tamper(store, backup_id):
    """Flip one byte inside a stored payload."""
    key = f"backup_{backup_id}"
    payload = bytearray(store.get(key))
    index = payload.index(b"Acme")
    payload[index] = ord("X")
    store.set(key, bytes(payload))


class TestCreateBackup:
    """Test snapshot creation."""

    def test_metadata(self, service, memory_store, sample_records, clock):
        meta = service.create_backup(sample_records, "First", MANUAL, tags=["weekly"])

        assert meta.application_count == 3
        assert meta.type == MANUAL
        assert meta.description == "First"
        assert meta.tags == ["weekly"]
        assert meta.parent_version is None
        assert meta.changes_summary == []
        assert meta.version.startswith("v")
        assert meta.id.startswith(str(int(meta.timestamp.timestamp() * 1000)))

    def test_checksum_covers_stored_bytes(self, service, memory_store, sample_records):
        meta = service.create_backup(sample_records)
        payload = memory_store.get(f"backup_{meta.id}")

        assert meta.data_size == len(payload)
        assert meta.checksum == service.hasher.digest(payload)
        assert service.hasher.digest(payload) == service.hasher.digest(payload)

    def test_defaults(self, service, sample_records):
        meta = service.create_backup(sample_records)

        assert meta.description == "Automatic backup"
        assert meta.type == AUTOMATIC

    def test_unknown_type_rejected(self, service, sample_records):
        with pytest.raises(ValueError):
            service.create_backup(sample_records, backup_type="nightly")

    def test_parent_and_changes_summary(self, service, sample_records):
        first = service.create_backup(sample_records[:2])

        changed = [r.copy() for r in sample_records]
        changed[0].status = "Offered"
        second = service.create_backup(changed)

        assert second.parent_version == first.id
        assert second.changes_summary == [
            "Added 1 new application(s)",
            "Modified 1 application(s)",
        ]

    def test_no_changes(self, service, sample_records):
        service.create_backup(sample_records)
        meta = service.create_backup(sample_records)

        assert meta.changes_summary == ["No changes detected"]

    def test_unreadable_parent_noted(self, service, memory_store, sample_records):
        first = service.create_backup(sample_records)
        tamper(memory_store, first.id)

        meta = service.create_backup(sample_records)
        assert meta.changes_summary == ["Unable to generate changes summary"]

    def test_snapshot_includes_preferences(self, service, memory_store, sample_records):
        service.set_user_preferences({"theme": "dark"})
        service.set_settings({"autoBackup": True})
        meta = service.create_backup(sample_records)

        data = service.get_backup(meta.id)
        assert data.user_preferences == {"theme": "dark"}
        assert data.settings == {"autoBackup": True}

    def test_empty_backup(self, service):
        meta = service.create_backup([])

        assert meta.application_count == 0
        assert service.restore_backup(meta.id) == []

    def test_rolling_hasher(self, memory_store, sample_records, clock):
        service = BackupService(memory_store, hasher=RollingHasher(), clock=clock)
        meta = service.create_backup(sample_records)

        assert len(meta.checksum) == 16
        assert meta.hasher == "rolling"
        assert service.get_backup(meta.id).applications == sample_records

    def test_hasher_recorded_in_index(self, service, memory_store, sample_records):
        meta = service.create_backup(sample_records)

        entries = json.loads(memory_store.get(METADATA_KEY))
        assert meta.hasher == "sha256"
        assert entries[0]["hasher"] == "sha256"

    def test_switching_hasher_keeps_existing_backups(self, service, memory_store, sample_records, clock):
        """Snapshots verify with the hasher that wrote them, not the current one."""
        old = service.create_backup(sample_records)
        rolling = BackupService(memory_store, hasher=RollingHasher(), clock=clock)
        new = rolling.create_backup(sample_records)

        assert rolling.get_backup_health().corrupted_backups == []
        assert rolling.cleanup_corrupted_backups() == []
        assert {b.id for b in rolling.get_backup_list()} == {old.id, new.id}
        assert rolling.get_backup(old.id).applications == sample_records
        assert service.get_backup(new.id).applications == sample_records

    def test_index_entry_without_hasher_uses_sha256(self, service, memory_store, sample_records):
        meta = service.create_backup(sample_records)
        entries = json.loads(memory_store.get(METADATA_KEY))
        del entries[0]["hasher"]
        memory_store.set(METADATA_KEY, json.dumps(entries).encode("utf-8"))

        assert service.get_backup(meta.id).applications == sample_records

    def test_unknown_hasher_is_corrupted(self, service, memory_store, sample_records):
        meta = service.create_backup(sample_records)
        entries = json.loads(memory_store.get(METADATA_KEY))
        entries[0]["hasher"] = "md5"
        memory_store.set(METADATA_KEY, json.dumps(entries).encode("utf-8"))

        with pytest.raises(CorruptedError, match="Unknown hasher: md5"):
            service.get_backup(meta.id)


class TestRetention:
    """Test the backup cap."""

    def test_twelve_backups_keep_ten(self, service, memory_store, sample_records):
        for i in range(12):
            service.create_backup(sample_records, f"Backup {i}")

        backups = service.get_backup_list()
        assert len(backups) == 10
        assert backups[0].description == "Backup 11"
        assert backups[-1].description == "Backup 2"
        timestamps = [b.timestamp for b in backups]
        assert timestamps == sorted(timestamps, reverse=True)
        assert len(memory_store.list_keys("backup_")) == 11  # 10 payloads + index

    def test_custom_cap(self, memory_store, sample_records, clock):
        service = BackupService(memory_store, max_backups=2, clock=clock)
        for i in range(4):
            service.create_backup(sample_records, f"Backup {i}")

        assert [b.description for b in service.get_backup_list()] == ["Backup 3", "Backup 2"]

    def test_invalid_cap(self, memory_store):
        with pytest.raises(ValueError):
            BackupService(memory_store, max_backups=0)

    def test_equal_timestamps_newest_insert_first(self, memory_store, sample_records, clock):
        clock.step = timedelta(0)
        service = BackupService(memory_store, clock=clock)
        for i in range(3):
            service.create_backup(sample_records, f"Backup {i}")

        assert [b.description for b in service.get_backup_list()] == ["Backup 2", "Backup 1", "Backup 0"]

    def test_version_history_limit(self, service, sample_records):
        for i in range(5):
            service.create_backup(sample_records, f"Backup {i}")

        history = service.get_version_history(limit=3)
        assert [b.description for b in history] == ["Backup 4", "Backup 3", "Backup 2"]


class TestRestore:
    """Test restore and rollback."""

    def test_round_trip(self, service, sample_records):
        meta = service.create_backup(sample_records)
        restored = service.restore_backup(meta.id)

        assert restored == sample_records
        assert service.get_current_applications() == sample_records

    def test_round_trip_keeps_extra_fields(self, service, acme_record):
        acme_record.extra = {"rating": 4, "source": "referral"}
        meta = service.create_backup([acme_record])

        assert service.restore_backup(meta.id) == [acme_record]

    def test_pre_restore_snapshot(self, service, sample_records):
        meta = service.create_backup(sample_records[:1], "Old")
        service.save_current_applications(sample_records)

        service.restore_backup(meta.id)
        latest = service.get_backup_list()[0]

        assert latest.description == "Pre-restore backup"
        assert latest.application_count == 3
        assert service.get_current_applications() == sample_records[:1]

    def test_no_pre_snapshot_when_live_set_empty(self, service, sample_records):
        meta = service.create_backup(sample_records)
        service.restore_backup(meta.id)

        assert len(service.get_backup_list()) == 1

    def test_restores_preferences(self, service, sample_records):
        service.set_user_preferences({"theme": "dark"})
        meta = service.create_backup(sample_records)
        service.set_user_preferences({"theme": "light"})

        service.restore_backup(meta.id)
        assert service.get_user_preferences() == {"theme": "dark"}

    def test_not_found(self, service):
        with pytest.raises(NotFoundError):
            service.restore_backup("missing")

    def test_corrupted_payload(self, service, memory_store, sample_records):
        meta = service.create_backup(sample_records)
        service.save_current_applications(sample_records[:1])
        tamper(memory_store, meta.id)

        with pytest.raises(CorruptedError):
            service.restore_backup(meta.id)
        assert service.get_current_applications() == sample_records[:1]

    def test_invalid_snapshot_blocks_restore(self, service, sample_records):
        meta = service.create_backup([ApplicationRecord(id="", company="", position="")])
        service.save_current_applications(sample_records)

        with pytest.raises(ValidationFailedError) as exc_info:
            service.restore_backup(meta.id)

        assert not exc_info.value.result.is_valid
        assert service.get_current_applications() == sample_records
        assert len(service.get_backup_list()) == 1

    def test_rollback(self, service, sample_records):
        target = service.create_backup(sample_records[:2], "Target")
        service.save_current_applications(sample_records)

        restored = service.rollback_to_version(target.id)
        backups = service.get_backup_list()

        assert restored == sample_records[:2]
        assert backups[0].description == f"Pre-rollback backup (rolling back to {target.id})"
        assert len(backups) == 2


class TestGetAndDelete:
    """Test loading and deleting individual backups."""

    def test_get_backup_not_found(self, service):
        with pytest.raises(NotFoundError):
            service.get_backup("missing")

    def test_missing_payload_is_not_found(self, service, memory_store, sample_records):
        meta = service.create_backup(sample_records)
        memory_store.remove(f"backup_{meta.id}")

        with pytest.raises(NotFoundError):
            service.get_backup(meta.id)

    def test_delete_twice(self, service, memory_store, sample_records):
        meta = service.create_backup(sample_records)

        service.delete_backup(meta.id)
        service.delete_backup(meta.id)

        assert service.get_backup_list() == []
        assert memory_store.get(f"backup_{meta.id}") is None

    def test_delete_unknown_is_noop(self, service, sample_records):
        service.create_backup(sample_records)
        service.delete_backup("missing")

        assert len(service.get_backup_list()) == 1


class TestCompare:
    """Test version diffs."""

    def test_compare_two_versions(self, service, sample_records):
        a = service.create_backup(sample_records[:2])
        changed = [sample_records[0].copy(), sample_records[2]]
        changed[0].notes = "Follow up next week"
        b = service.create_backup(changed)

        diff = service.compare_versions(a.id, b.id)

        assert [r.id for r in diff.added] == ["app_3"]
        assert [r.id for r in diff.removed] == ["app_2"]
        assert [r.id for r in diff.modified] == ["app_1"]
        assert diff.changes["app_1"] == {"notes": {"old": "", "new": "Follow up next week"}}

    def test_compare_with_current(self, service, sample_records):
        meta = service.create_backup(sample_records)
        service.save_current_applications(sample_records[1:])

        diff = service.compare_versions(meta.id)

        assert [r.id for r in diff.removed] == ["app_1"]
        assert diff.added == []
        assert diff.modified == []

    def test_compare_missing(self, service):
        with pytest.raises(NotFoundError):
            service.compare_versions("missing")


class TestHealthAndStatistics:
    """Test read-only reporting."""

    def test_health_no_backups(self, service):
        health = service.get_backup_health()

        assert health.total_backups == 0
        assert health.recommendations == ["Create your first backup to protect your data"]

    def test_health_reports_corrupted_per_backup(self, service, memory_store, sample_records):
        good = service.create_backup(sample_records)
        bad = service.create_backup(sample_records)
        invalid = service.create_backup([ApplicationRecord(company="", position="")])
        tamper(memory_store, bad.id)

        health = service.get_backup_health()

        assert health.total_backups == 3
        assert set(health.corrupted_backups) == {bad.id, invalid.id}
        assert good.id not in health.corrupted_backups
        assert "2 corrupted backup(s) found - consider cleaning up" in health.recommendations

    def test_health_does_not_mutate(self, service, memory_store, sample_records):
        meta = service.create_backup(sample_records)
        tamper(memory_store, meta.id)
        before = dict((k, memory_store.get(k)) for k in memory_store.list_keys())

        service.get_backup_health()
        service.get_backup_statistics()

        assert dict((k, memory_store.get(k)) for k in memory_store.list_keys()) == before
        assert len(service.get_backup_list()) == 1

    def test_stale_backup_recommendation(self, service, sample_records, clock):
        service.create_backup(sample_records)
        clock.now += timedelta(days=8)

        health = service.get_backup_health()
        assert "Latest backup is over a week old - consider creating a new backup" in health.recommendations

    def test_statistics(self, service, sample_records, clock):
        service.create_backup(sample_records, backup_type=MANUAL)
        clock.now += timedelta(days=10)
        service.create_backup(sample_records, backup_type=AUTOMATIC)
        service.create_backup(sample_records, backup_type=MIGRATION)

        stats = service.get_backup_statistics()

        assert stats.total_backups == 3
        assert stats.backups_by_type == {MANUAL: 1, AUTOMATIC: 1, MIGRATION: 1}
        assert stats.average_size == pytest.approx(stats.total_size / 3)
        assert stats.daily == 2
        assert stats.weekly == 2
        assert stats.monthly == 3
        assert stats.oldest_backup < stats.newest_backup

    def test_cleanup_corrupted(self, service, memory_store, sample_records):
        good = service.create_backup(sample_records)
        bad = service.create_backup(sample_records)
        tamper(memory_store, bad.id)

        removed = service.cleanup_corrupted_backups()

        assert removed == [bad.id]
        assert [b.id for b in service.get_backup_list()] == [good.id]


class TestVersionIndex:
    """Test the snapshot index."""

    def test_corrupt_index_raises(self, memory_store):
        memory_store.set(METADATA_KEY, b"{oops")

        with pytest.raises(CorruptedError):
            VersionIndex(memory_store).entries()

    def test_concurrent_creates_keep_every_entry(self, sample_records):
        service = BackupService(MemoryStore(), max_backups=100)
        errors = []

        def worker():
            try:
                for _ in range(5):
                    service.create_backup(sample_records)
            except Exception as e:  # pragma: no cover - surfaced below
                errors.append(e)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert len(service.get_backup_list()) == 20
        assert len({b.id for b in service.get_backup_list()}) == 20


class TestLiveSet:
    """Test live application helpers."""

    def test_empty_by_default(self, service):
        assert service.get_current_applications() == []

    def test_save_and_load(self, service, memory_store, sample_records):
        service.save_current_applications(sample_records)

        assert service.get_current_applications() == sample_records
        assert len(json.loads(memory_store.get(APPLICATIONS_KEY))) == 3

    def test_unreadable_live_set(self, service, memory_store):
        memory_store.set(APPLICATIONS_KEY, b"not json")

        with pytest.raises(CorruptedError):
            service.get_current_applications()
