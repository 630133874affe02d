#!/usr/bin/env python3
"""
Load a JSON export into the SQLite store and take a migration backup.

Usage:
    python scripts/migrate_json_to_store.py --json exports/applications.json --db data/jobvault.db
"""

import argparse
from pathlib import Path
import sys

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from jobvault.backup import MANUAL, MIGRATION, BackupService
from jobvault.database import SQLiteStore
from jobvault.errors import JobVaultError
from jobvault.migration import MigrationOptions, import_records


def migrate(json_path: Path, db_path: Path, dry_run: bool = False, repair: bool = True) -> bool:
    """
    Replace the store's live applications with the contents of an export.

    Args:
        json_path: Path to JSON export file
        db_path: Path to SQLite database file
        dry_run: If True, don't write to the store
        repair: Auto-fix records that fail validation
    """
    print(f"Loading applications from {json_path}...")
    try:
        records = import_records(json_path.read_bytes(), MigrationOptions(source_format="json", validate=repair))
    except JobVaultError as e:
        print(f"❌ Cannot read export: {e}")
        return False
    print(f"Found {len(records)} applications in export")

    if dry_run:
        print("\n[DRY RUN] Would migrate the following applications:")
        for i, record in enumerate(records[:5], 1):
            print(f"  {i}. {record.id}: {record.company} - {record.position}")
        if len(records) > 5:
            print(f"  ... and {len(records) - 5} more")
        return True

    print(f"\nOpening store at {db_path}...")
    db_path.parent.mkdir(parents=True, exist_ok=True)
    store = SQLiteStore(db_path)
    service = BackupService(store)
    try:
        current = service.get_current_applications()
        if current:
            print(f"  Backing up {len(current)} existing applications first")
            service.create_backup(current, "Pre-migration backup", MANUAL)

        service.save_current_applications(records)
        meta = service.create_backup(records, f"Migrated from {json_path.name}", MIGRATION)
    except JobVaultError as e:
        print(f"❌ Migration failed: {e}")
        return False
    finally:
        store.close()

    print(f"\n✅ Migration complete!")
    print(f"   Migrated: {len(records)}")
    print(f"   Backup:   {meta.id}")
    return True


def main():
    parser = argparse.ArgumentParser(description="Migrate applications from a JSON export into the store")
    parser.add_argument("--json", type=Path, required=True,
                       help="Path to JSON export file")
    parser.add_argument("--db", type=Path, default=Path("data/jobvault.db"),
                       help="Path to SQLite database file")
    parser.add_argument("--dry-run", action="store_true",
                       help="Show what would be migrated without writing")
    parser.add_argument("--no-repair", action="store_true",
                       help="Import records as-is even if they fail validation")

    args = parser.parse_args()

    if not args.json.exists():
        print(f"❌ JSON file not found: {args.json}")
        sys.exit(1)

    success = migrate(args.json, args.db, dry_run=args.dry_run, repair=not args.no_repair)
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
