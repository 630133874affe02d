#!/usr/bin/env python3
"""
Validate that the store's live applications match a JSON export.

Usage:
    python scripts/validate_migration.py --json exports/applications.json --db data/jobvault.db
"""

import argparse
from pathlib import Path
import sys

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from jobvault.backup import BackupService, diff_record_sets
from jobvault.database import SQLiteStore
from jobvault.migration import MigrationOptions, import_records


def validate(json_path: Path, db_path: Path) -> bool:
    """
    Compare a JSON export with the store contents.

    Returns True if they match, False otherwise.
    """
    print(f"Loading JSON from {json_path}...")
    exported = import_records(json_path.read_bytes(), MigrationOptions(source_format="json"))
    print(f"  JSON:  {len(exported)} applications")

    print(f"\nReading store at {db_path}...")
    store = SQLiteStore(db_path)
    try:
        current = BackupService(store).get_current_applications()
    finally:
        store.close()
    print(f"  Store: {len(current)} applications")

    if len(exported) != len(current):
        print(f"\n❌ COUNT MISMATCH: JSON has {len(exported)}, store has {len(current)}")
        return False

    print(f"\n✅ Counts match: {len(exported)} applications in both")

    print("\nValidating application data...")
    diff = diff_record_sets(exported, current)

    if diff.removed:
        print(f"\n❌ MISSING from store: {len(diff.removed)} applications")
        for record in diff.removed[:5]:
            print(f"   - {record.id}")
        if len(diff.removed) > 5:
            print(f"   ... and {len(diff.removed) - 5} more")

    if diff.added:
        print(f"\n❌ UNEXPECTED in store: {len(diff.added)} applications")
        for record in diff.added[:5]:
            print(f"   - {record.id}")

    if diff.modified:
        print(f"\n❌ DATA MISMATCHES: {len(diff.modified)} applications differ")
        for record in diff.modified[:5]:
            print(f"   - {record.id}")
            for field, change in sorted(diff.changes[record.id].items()):
                print(f"     {field}: JSON='{change['old']}' vs store='{change['new']}'")
        if len(diff.modified) > 5:
            print(f"   ... and {len(diff.modified) - 5} more")

    if not diff.added and not diff.removed and not diff.modified:
        print("✅ All applications validated successfully!")
        print("   - All ids present in store")
        print("   - All fields match between JSON and store")
        return True
    return False


def main():
    parser = argparse.ArgumentParser(description="Validate migration from a JSON export into the store")
    parser.add_argument("--json", type=Path, required=True,
                       help="Path to JSON export file")
    parser.add_argument("--db", type=Path, default=Path("data/jobvault.db"),
                       help="Path to SQLite database file")

    args = parser.parse_args()

    if not args.json.exists():
        print(f"❌ JSON file not found: {args.json}")
        sys.exit(1)

    if not args.db.exists():
        print(f"❌ Database file not found: {args.db}")
        sys.exit(1)

    success = validate(args.json, args.db)
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
