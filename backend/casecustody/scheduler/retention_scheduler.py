"""Retention Scheduler - Periodic archive and hard-delete sweep

Runs the retention policy on a fixed interval with APScheduler. Each run:
- captures one clock reading for lock and retention evaluation
- skips reports that are open in an editor (deferred to the next run)
- drops expired reports from the live list, leaving case folders intact
"""
from typing import Callable, Collection, Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..config.settings import settings
from ..domain.models import SweepResult
from ..domain.errors import DomainError
from ..services.report_service import ReportCustodyService
from ..utils.logger import get_logger, set_correlation_id
from ..utils.idgen import generate_correlation_id

logger = get_logger(__name__)


class RetentionScheduler:
    """
    Background retention sweeps using APScheduler.

    The host supplies which reports currently have an open editing session;
    the sweep never deletes those.
    """

    def __init__(
        self,
        service: Optional[ReportCustodyService] = None,
        in_edit_ids_provider: Optional[Callable[[], Collection[str]]] = None,
        interval_seconds: Optional[int] = None
    ):
        self.scheduler: Optional[AsyncIOScheduler] = None
        self.service = service or ReportCustodyService()
        self.in_edit_ids_provider = in_edit_ids_provider or (lambda: ())
        self.interval_seconds = interval_seconds or settings.retention_sweep_interval_seconds
        self._is_running = False
        self._run_count = 0
        self.last_result: Optional[SweepResult] = None

    def start(self) -> None:
        """Start the scheduler (requires a running asyncio loop)"""
        if self._is_running:
            logger.warning("Scheduler already running")
            return

        self.scheduler = AsyncIOScheduler()
        self.scheduler.add_job(
            self._sweep_job,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id="retention_sweep",
            name="Archive and purge reports",
            replace_existing=True,
            max_instances=1,
            coalesce=True
        )
        self.scheduler.start()
        self._is_running = True
        logger.info(f"Retention scheduler started (every {self.interval_seconds}s)")

    def stop(self) -> None:
        """Stop the scheduler"""
        if self.scheduler:
            self.scheduler.shutdown()
            self._is_running = False
            logger.info("Retention scheduler stopped")

    @property
    def is_running(self) -> bool:
        """Check if scheduler is running"""
        return self._is_running

    @property
    def run_count(self) -> int:
        return self._run_count

    def run_once(self) -> SweepResult:
        """Run one sweep synchronously"""
        correlation_id = generate_correlation_id()
        set_correlation_id(correlation_id)

        in_edit_ids = set(self.in_edit_ids_provider())
        result = self.service.run_retention_sweep(in_edit_ids=in_edit_ids, correlation_id=correlation_id)
        self._run_count += 1
        self.last_result = result

        if result.hard_deleted_ids or result.deferred_ids:
            logger.info(
                f"Sweep removed {len(result.hard_deleted_ids)} report(s), deferred {len(result.deferred_ids)}",
                extra={"action": "retention_sweep"}
            )
        return result

    async def _sweep_job(self) -> None:
        """Scheduled entry point; a failed run is logged and retried next interval"""
        try:
            self.run_once()
        except DomainError as e:
            logger.error(f"Retention sweep failed: {e.message}", extra={"action": "retention_sweep"})


# Global scheduler instance
_scheduler: Optional[RetentionScheduler] = None


def get_scheduler(interval_seconds: Optional[int] = None) -> RetentionScheduler:
    """Get or create the process-wide scheduler"""
    global _scheduler
    if _scheduler is None:
        _scheduler = RetentionScheduler(interval_seconds=interval_seconds)
    return _scheduler


def start_scheduler(interval_seconds: Optional[int] = None) -> RetentionScheduler:
    """Start the process-wide scheduler"""
    scheduler = get_scheduler(interval_seconds)
    scheduler.start()
    return scheduler


def stop_scheduler() -> None:
    """Stop and forget the process-wide scheduler"""
    global _scheduler
    if _scheduler:
        _scheduler.stop()
        _scheduler = None
