"""
Case Folder Migration Script - Canonicalize keys and backfill sent history
Run: python -m scripts.migrate_case_folders [--dry-run]
"""
import argparse

from casecustody.engine.case_folder import (
    canonicalize_case_folder_keys, migrate_case_folders_from_reports
)
from casecustody.repositories.report_store import ReportStore, get_report_store
from casecustody.utils.logger import setup_logging
from casecustody.utils.time import utc_now


def migrate(store: ReportStore, dry_run: bool = False) -> dict:
    """
    Re-key every folder under its normalized case key, then backfill
    folders and sent entries from the live report list.

    Safe to re-run: existing entries are skipped by snapshot ID.
    """
    existing = store.load_case_folders()
    canonical = canonicalize_case_folder_keys(existing)
    migrated = migrate_case_folders_from_reports(canonical, store.load_reports(), utc_now())

    stale_keys = [key for key in existing if key not in migrated]
    stats = {
        "folders_before": len(existing),
        "folders_after": len(migrated),
        "stale_keys": stale_keys,
        "entries": sum(len(f.sent_reports) for f in migrated.values()),
    }
    if dry_run:
        return stats

    # Deleting a raw key also drops its canonical twin, so delete before saving
    for key in stale_keys:
        store.delete_case_folder(key)
    for key, folder in migrated.items():
        store.save_case_folder(key, folder)
    return stats


def main():
    parser = argparse.ArgumentParser(description="Canonicalize and backfill case folders")
    parser.add_argument("--dry-run", action="store_true", help="Report what would change without saving")
    args = parser.parse_args()

    setup_logging()
    stats = migrate(get_report_store(), dry_run=args.dry_run)

    print("Case folder migration" + (" (dry run)" if args.dry_run else ""))
    print(f"  Folders before: {stats['folders_before']}")
    print(f"  Folders after:  {stats['folders_after']}")
    print(f"  Sent entries:   {stats['entries']}")
    if stats["stale_keys"]:
        print(f"  Merged keys:    {', '.join(stats['stale_keys'])}")


if __name__ == "__main__":
    main()
