import argparse
import time
from pathlib import Path
from typing import List

from . import __version__
from .backup import BACKUP_TYPES, MANUAL, MIGRATION, BackupService
from .config import VaultConfig, load_env
from .database import SQLiteStore
from .dedupe import apply_resolutions, detect_bulk_duplicates
from .errors import JobVaultError
from .logger import get_logger, reset_logger
from .migration import FORMATS, MigrationOptions, export_records, import_records
from .models import ApplicationRecord
from .scheduler import AutoBackupScheduler
from .versioning import hasher_by_name


def open_service(args: argparse.Namespace) -> BackupService:
    config: VaultConfig = args.config
    db_path = Path(args.db) if args.db else config.db_path
    db_path.parent.mkdir(parents=True, exist_ok=True)
    return BackupService(
        SQLiteStore(db_path),
        hasher=hasher_by_name(config.hasher),
        max_backups=config.max_backups,
    )


def load_records(args: argparse.Namespace, service: BackupService) -> List[ApplicationRecord]:
    """Records from ``--input`` (a JSON export) when given, otherwise the live set."""
    if not getattr(args, "input", None):
        return service.get_current_applications()
    input_path = Path(args.input)
    if not input_path.exists():
        raise SystemExit(f"Input file not found: {input_path}")
    return import_records(input_path.read_bytes(), MigrationOptions(source_format="json"))


def print_backup(meta) -> None:
    print(f"ID: {meta.id}")
    print(f"  Created: {meta.timestamp.isoformat()}")
    print(f"  Type: {meta.type}")
    print(f"  Description: {meta.description}")
    print(f"  Applications: {meta.application_count}")
    print(f"  Size: {meta.data_size} bytes")
    if meta.changes_summary:
        print(f"  Changes: {'; '.join(meta.changes_summary)}")
    print()


def cmd_backup_create(args: argparse.Namespace) -> None:
    service = open_service(args)
    applications = service.get_current_applications()
    meta = service.create_backup(applications, args.description, args.type, tags=args.tag)
    print(f"Created backup {meta.id} ({meta.application_count} applications)")


def cmd_backup_list(args: argparse.Namespace) -> None:
    service = open_service(args)
    backups = service.get_version_history(args.limit)
    if not backups:
        print("No backups in store.")
        return
    print(f"Found {len(backups)} backups:\n")
    for meta in backups:
        print_backup(meta)


def cmd_backup_restore(args: argparse.Namespace) -> None:
    service = open_service(args)
    restored = service.restore_backup(args.backup_id)
    print(f"Restored {len(restored)} applications from {args.backup_id}")


def cmd_backup_rollback(args: argparse.Namespace) -> None:
    service = open_service(args)
    restored = service.rollback_to_version(args.backup_id)
    print(f"Rolled back to {args.backup_id} ({len(restored)} applications)")


def cmd_backup_delete(args: argparse.Namespace) -> None:
    service = open_service(args)
    service.delete_backup(args.backup_id)
    print(f"Deleted backup {args.backup_id}")


def cmd_backup_compare(args: argparse.Namespace) -> None:
    service = open_service(args)
    diff = service.compare_versions(args.version_a, args.version_b)
    print(f"Added: {len(diff.added)}")
    for record in diff.added:
        print(f" + {record.id} {record.company} / {record.position}")
    print(f"Removed: {len(diff.removed)}")
    for record in diff.removed:
        print(f" - {record.id} {record.company} / {record.position}")
    print(f"Modified: {len(diff.modified)}")
    for record in diff.modified:
        fields = ", ".join(sorted(diff.changes[record.id]))
        print(f" ~ {record.id} ({fields})")


def cmd_backup_health(args: argparse.Namespace) -> None:
    service = open_service(args)
    health = service.get_backup_health()
    print(f"Backups: {health.total_backups}")
    print(f"Total size: {health.total_size} bytes")
    if health.newest_backup:
        print(f"Newest: {health.newest_backup.isoformat()}")
        print(f"Oldest: {health.oldest_backup.isoformat()}")
    print(f"Corrupted: {len(health.corrupted_backups)}")
    for backup_id in health.corrupted_backups:
        print(f" - {backup_id}")
    for rec in health.recommendations:
        print(f"[hint] {rec}")


def cmd_backup_stats(args: argparse.Namespace) -> None:
    service = open_service(args)
    stats = service.get_backup_statistics()
    print(f"Backups: {stats.total_backups}")
    print(f"Total size: {stats.total_size} bytes (avg {stats.average_size:.0f})")
    for backup_type, count in sorted(stats.backups_by_type.items()):
        print(f"  {backup_type}: {count}")
    print(f"Last 24h: {stats.daily}, last 7d: {stats.weekly}, last 30d: {stats.monthly}")


def cmd_backup_cleanup(args: argparse.Namespace) -> None:
    service = open_service(args)
    removed = service.cleanup_corrupted_backups()
    print(f"Removed {len(removed)} corrupted backups")
    for backup_id in removed:
        print(f" - {backup_id}")


def cmd_backup_auto(args: argparse.Namespace) -> None:
    service = open_service(args)
    interval = args.interval if args.interval else args.config.auto_backup_interval
    scheduler = AutoBackupScheduler(service, interval)
    scheduler.start()
    print(f"Automatic backups every {interval:.0f}s. Press Ctrl+C to stop.")
    try:
        while scheduler.is_running():
            time.sleep(1)
    except KeyboardInterrupt:
        pass
    finally:
        scheduler.stop()


def cmd_validate(args: argparse.Namespace) -> None:
    service = open_service(args)
    result = service.validate_data(load_records(args, service))
    for error in result.errors:
        print(f"[{error.severity}] {error.message}")
    for warning in result.warnings:
        print(f"[warning] {warning.message}")
    if not result.is_valid:
        print("Invalid")
        raise SystemExit(2)
    print("Valid")


def cmd_repair(args: argparse.Namespace) -> None:
    service = open_service(args)
    records = load_records(args, service)
    repaired = service.repair_data(records)
    if args.input:
        output = Path(args.output or args.input)
        output.write_bytes(export_records(repaired, MigrationOptions(target_format="json")))
        print(f"Wrote {len(repaired)} repaired applications to {output}")
        return
    service.create_backup(records, "Pre-repair backup", MANUAL)
    service.save_current_applications(repaired)
    print(f"Repaired {len(repaired)} applications")


def cmd_dedupe(args: argparse.Namespace) -> None:
    service = open_service(args)
    records = service.get_current_applications()
    result = detect_bulk_duplicates(records)
    for group in result.groups:
        print(f"{group.id}: {len(group.indices)} records, {group.confidence_level} ({group.confidence:.2f})")
        for index in group.indices:
            record = records[index]
            print(f"  - {record.id} {record.company} / {record.position}")
        print(f"  reasons: {', '.join(group.match_reasons)}")
        print(f"  recommended: {group.recommended_resolution}")
    for rec in result.recommendations:
        print(f"[hint] {rec}")

    if not args.apply or not result.groups:
        return
    service.create_backup(records, "Pre-dedupe backup", MANUAL)
    outcome = apply_resolutions(records, result.groups)
    service.save_current_applications(outcome.records)
    summary = outcome.summary
    print(
        f"Merged {summary.merged}, skipped {summary.skipped}, kept {summary.kept}, "
        f"deleted {summary.deleted} records"
    )


def cmd_export(args: argparse.Namespace) -> None:
    service = open_service(args)
    options = MigrationOptions(
        target_format=args.format,
        include_metadata=not args.no_metadata,
        validate=args.validate,
    )
    data = export_records(service.get_current_applications(), options)
    output = Path(args.output)
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(data)
    print(f"Exported to {output} ({len(data)} bytes)")


def cmd_import(args: argparse.Namespace) -> None:
    service = open_service(args)
    input_path = Path(args.input)
    if not input_path.exists():
        raise SystemExit(f"Input file not found: {input_path}")
    options = MigrationOptions(source_format=args.format, validate=args.validate)
    records = import_records(input_path.read_bytes(), options)
    current = service.get_current_applications()
    if current:
        service.create_backup(current, "Pre-import backup", MANUAL)
    service.save_current_applications(records)
    service.create_backup(records, f"Imported from {input_path.name}", MIGRATION)
    print(f"Imported {len(records)} applications")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="jobvault", description="Job application backup and integrity CLI")
    parser.add_argument("--version", action="store_true", help="Show version")
    parser.add_argument("--db", help="Path to SQLite store (default: JOBVAULT_DB_PATH or data/jobvault.db)")

    subparsers = parser.add_subparsers(dest="command")

    bak = subparsers.add_parser("backup", help="Create, inspect and restore backups")
    bak_sub = bak.add_subparsers(dest="backup_command")

    create = bak_sub.add_parser("create", help="Back up the current applications")
    create.add_argument("--description", default="Manual backup", help="Backup description")
    create.add_argument("--type", default=MANUAL, choices=BACKUP_TYPES, help="Backup type (default: manual)")
    create.add_argument("--tag", action="append", help="Tag to attach (repeatable)")
    create.set_defaults(func=cmd_backup_create)

    lst = bak_sub.add_parser("list", help="List backups, newest first")
    lst.add_argument("--limit", type=int, default=20, help="Maximum backups to show (default: 20)")
    lst.set_defaults(func=cmd_backup_list)

    rst = bak_sub.add_parser("restore", help="Replace current applications with a backup")
    rst.add_argument("backup_id")
    rst.set_defaults(func=cmd_backup_restore)

    rbk = bak_sub.add_parser("rollback", help="Roll back to an earlier version")
    rbk.add_argument("backup_id")
    rbk.set_defaults(func=cmd_backup_rollback)

    dlt = bak_sub.add_parser("delete", help="Delete a backup")
    dlt.add_argument("backup_id")
    dlt.set_defaults(func=cmd_backup_delete)

    cmp_ = bak_sub.add_parser("compare", help="Diff two backups, or a backup against current data")
    cmp_.add_argument("version_a")
    cmp_.add_argument("version_b", nargs="?", default="current")
    cmp_.set_defaults(func=cmd_backup_compare)

    hlt = bak_sub.add_parser("health", help="Check every backup's integrity")
    hlt.set_defaults(func=cmd_backup_health)

    sts = bak_sub.add_parser("stats", help="Backup counts, sizes and frequency")
    sts.set_defaults(func=cmd_backup_stats)

    cln = bak_sub.add_parser("cleanup", help="Delete corrupted backups")
    cln.set_defaults(func=cmd_backup_cleanup)

    auto = bak_sub.add_parser("auto", help="Run automatic backups in the foreground")
    auto.add_argument("--interval", type=float, help="Seconds between backups (default: JOBVAULT_AUTO_BACKUP_HOURS)")
    auto.set_defaults(func=cmd_backup_auto)

    val = subparsers.add_parser("validate", help="Validate current applications or a JSON export")
    val.add_argument("--input", help="JSON export to validate instead of the current data")
    val.set_defaults(func=cmd_validate)

    rep = subparsers.add_parser("repair", help="Auto-fix current applications or a JSON export")
    rep.add_argument("--input", help="JSON export to repair instead of the current data")
    rep.add_argument("--output", help="Where to write the repaired export (default: overwrite --input)")
    rep.set_defaults(func=cmd_repair)

    ddp = subparsers.add_parser("dedupe", help="Find duplicate applications")
    ddp.add_argument("--apply", action="store_true", help="Apply the recommended resolution to every group")
    ddp.set_defaults(func=cmd_dedupe)

    exp = subparsers.add_parser("export", help="Export current applications")
    exp.add_argument("--output", required=True, help="Output file path")
    exp.add_argument("--format", default="json", choices=FORMATS, help="Export format (default: json)")
    exp.add_argument("--no-metadata", action="store_true", help="Omit export metadata (JSON only)")
    exp.add_argument("--validate", action="store_true", help="Refuse to export data with critical errors")
    exp.set_defaults(func=cmd_export)

    imp = subparsers.add_parser("import", help="Import applications, replacing the current data")
    imp.add_argument("--input", required=True, help="File to import")
    imp.add_argument("--format", default="json", choices=FORMATS, help="Input format (default: json)")
    imp.add_argument("--validate", action="store_true", help="Repair the data if it fails validation")
    imp.set_defaults(func=cmd_import)

    return parser


def main(argv=None):
    # Load .env if present (JOBVAULT_DB_PATH, JOBVAULT_MAX_BACKUPS, etc.)
    load_env()
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version:
        print(__version__)
        return

    try:
        args.config = VaultConfig.from_env()
    except ValueError as e:
        raise SystemExit(f"Configuration error: {e}")

    reset_logger()
    get_logger(level=args.config.log_level, log_dir=args.config.log_dir)

    if not hasattr(args, "func"):
        parser.print_help()
        return

    try:
        args.func(args)
    except JobVaultError as e:
        raise SystemExit(f"Error: {e}")


if __name__ == "__main__":
    main()
