"""
Run the case custody background jobs.

Usage:
    python run.py scheduler                 # Periodic retention sweeps
    python run.py scheduler --interval 600  # Custom interval in seconds
    python run.py sweep                     # One sweep, then exit
    python run.py sweep --now 2024-03-01T00:00:00Z --in-edit RPT-1 RPT-2
    python run.py summary 7/42              # Numbering overview of a case
    python run.py health                    # Storage connectivity
"""
import argparse
import asyncio
import json

from casecustody.config.settings import settings
from casecustody.domain.errors import DomainError
from casecustody.repositories.mongo_client import create_indexes, close_connection, health_check
from casecustody.scheduler.retention_scheduler import RetentionScheduler, start_scheduler, stop_scheduler
from casecustody.services.report_service import ReportCustodyService
from casecustody.utils.logger import setup_logging, get_logger
from casecustody.utils.time import parse_iso, format_iso

logger = get_logger(__name__)


def build_service(now: str = None) -> ReportCustodyService:
    if now:
        fixed = parse_iso(now)
        return ReportCustodyService(clock=lambda: fixed)
    return ReportCustodyService()


def run_sweep(args: argparse.Namespace) -> None:
    scheduler = RetentionScheduler(
        service=build_service(args.now),
        in_edit_ids_provider=lambda: args.in_edit
    )
    result = scheduler.run_once()

    print(f"Sweep at {format_iso(result.swept_at)}")
    print(f"  Kept:         {len(result.kept)}")
    print(f"  Archived:     {len(result.archived_ids)}")
    print(f"  Hard-deleted: {len(result.hard_deleted_ids)}")
    print(f"  Deferred:     {len(result.deferred_ids)}")
    for report_id in result.hard_deleted_ids:
        print(f"    - {report_id}")


def run_summary(args: argparse.Namespace) -> None:
    summary = build_service().case_summary(args.case_key)
    print(f"Case {summary.case_key or '(none)'}")
    print(f"  Latest report #: {summary.latest_sequence_number or '-'}")
    print(f"  Next report #:   {summary.next_sequence_number}")
    print(f"  Sent entries:    {summary.sent_count}")
    print(f"  Open work:       {summary.has_open_work}")
    print(f"  Closed:          {summary.is_closed}")


def run_health(args: argparse.Namespace) -> None:
    if settings.uses_memory_store:
        print("Storage: in-memory (no database)")
        return
    status = health_check()
    print(f"Storage: {status['status']} ({status['database']})")
    if "error" in status:
        print(f"  Error: {status['error']}")


async def run_scheduler(args: argparse.Namespace) -> None:
    scheduler = start_scheduler(args.interval)
    print(f"Retention scheduler running every {scheduler.interval_seconds}s (Ctrl+C to stop)")
    try:
        while True:
            await asyncio.sleep(3600)
    finally:
        stop_scheduler()


def main():
    parser = argparse.ArgumentParser(description="Case custody maintenance jobs")
    subparsers = parser.add_subparsers(dest="command", required=True)

    scheduler_parser = subparsers.add_parser("scheduler", help="Run periodic retention sweeps")
    scheduler_parser.add_argument(
        "--interval",
        type=int,
        default=None,
        help=f"Seconds between sweeps (default: {settings.retention_sweep_interval_seconds})"
    )

    sweep_parser = subparsers.add_parser("sweep", help="Run one retention sweep")
    sweep_parser.add_argument(
        "--now",
        type=str,
        default=None,
        help="Evaluate as of this ISO 8601 time instead of the current time"
    )
    sweep_parser.add_argument(
        "--in-edit",
        nargs="*",
        default=[],
        help="Report IDs currently open in an editor (skipped)"
    )

    summary_parser = subparsers.add_parser("summary", help="Show numbering for a case")
    summary_parser.add_argument("case_key", type=str, help="Case number as typed")

    subparsers.add_parser("health", help="Check storage connectivity")

    args = parser.parse_args()

    setup_logging()
    if not settings.uses_memory_store and args.command != "health":
        create_indexes()

    try:
        if args.command == "scheduler":
            asyncio.run(run_scheduler(args))
        elif args.command == "sweep":
            run_sweep(args)
        elif args.command == "summary":
            run_summary(args)
        elif args.command == "health":
            run_health(args)
    except KeyboardInterrupt:
        print("Stopped.")
    except DomainError as e:
        print(json.dumps(e.to_dict(), indent=2, default=str))
        raise SystemExit(1)
    finally:
        if not settings.uses_memory_store:
            close_connection()


if __name__ == "__main__":
    main()
