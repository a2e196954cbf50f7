"""Retention Policy - Archive and hard-delete decisions for the live report list"""
from datetime import datetime
from typing import Collection, Dict, Iterable, Optional

from ..config.settings import settings
from ..domain.models import Report, CaseFolder, RetentionDecision, SweepResult
from ..domain.enums import ReportStatus, RetentionAction, ReportBucket
from ..utils.time import elapsed_days, elapsed_hours, ensure_utc
from ..utils.logger import get_logger
from .case_key import normalize_case_key
from .lock_evaluator import compute_lock_state

logger = get_logger(__name__)


class RetentionPolicy:
    """
    Time-driven retention rules.

    - soft-deleted for at least soft_delete_retention_days -> hard delete
    - SENT and last sent more than sent_retention_days ago -> hard delete
    - SENT and last sent more than archive_after_hours ago -> archived view

    Hard deletes only drop reports from the live list; case folder history
    is never touched.
    """

    def __init__(
        self,
        soft_delete_retention_days: Optional[int] = None,
        archive_after_hours: Optional[int] = None,
        sent_retention_days: Optional[int] = None,
        auto_lock_days: Optional[int] = None
    ):
        self.soft_delete_retention_days = (
            settings.soft_delete_retention_days if soft_delete_retention_days is None
            else soft_delete_retention_days
        )
        self.archive_after_hours = (
            settings.archive_after_hours if archive_after_hours is None else archive_after_hours
        )
        self.sent_retention_days = (
            settings.sent_retention_days if sent_retention_days is None else sent_retention_days
        )
        self.auto_lock_days = auto_lock_days

    def classify(self, report: Report, now: datetime) -> RetentionDecision:
        """Decide what a sweep at `now` does with one report"""
        if report.deleted_at is not None:
            age = elapsed_days(report.deleted_at, now)
            if age >= self.soft_delete_retention_days:
                return RetentionDecision(
                    report_id=report.id,
                    action=RetentionAction.HARD_DELETE,
                    bucket=ReportBucket.DELETED,
                    reason=f"soft-deleted {age:.1f} days ago",
                )
            return RetentionDecision(
                report_id=report.id,
                action=RetentionAction.KEEP,
                bucket=ReportBucket.DELETED,
                reason="within soft-delete window",
            )

        if report.status != ReportStatus.SENT or report.last_sent_at is None:
            return RetentionDecision(report_id=report.id, action=RetentionAction.KEEP, bucket=ReportBucket.ACTIVE)

        sent_at = report.last_sent_at
        if elapsed_days(sent_at, now) >= self.sent_retention_days:
            return RetentionDecision(
                report_id=report.id,
                action=RetentionAction.HARD_DELETE,
                bucket=ReportBucket.ARCHIVED,
                reason=f"sent more than {self.sent_retention_days} days ago",
            )
        if elapsed_hours(sent_at, now) >= self.archive_after_hours:
            return RetentionDecision(
                report_id=report.id,
                action=RetentionAction.ARCHIVE,
                bucket=ReportBucket.ARCHIVED,
                reason=f"sent more than {self.archive_after_hours} hours ago",
            )
        return RetentionDecision(report_id=report.id, action=RetentionAction.KEEP, bucket=ReportBucket.ACTIVE)

    def bucket_for(self, report: Report, now: datetime) -> ReportBucket:
        """Display bucket of a report (no data change)"""
        return self.classify(report, now).bucket

    def sweep(
        self,
        reports: Iterable[Report],
        folders: Dict[str, CaseFolder],
        now: datetime,
        in_edit_ids: Collection[str] = ()
    ) -> SweepResult:
        """
        Run one sweep over the live report list.

        Lock states and retention are evaluated against the same `now`.
        Reports with an open editing session are deferred and kept as is.

        Args:
            reports: Current live report list
            folders: Case folders keyed by normalized case key
            now: Sweep time
            in_edit_ids: IDs of reports currently open in an editor

        Returns:
            SweepResult whose `kept` list replaces the live list
        """
        now = ensure_utc(now)
        result = SweepResult(swept_at=now)

        for report in reports:
            folder = folders.get(normalize_case_key(report.case_key)) if report.case_key else None
            result.lock_states[report.id] = compute_lock_state(report, folder, now, self.auto_lock_days)

            if report.id in in_edit_ids:
                result.deferred_ids.append(report.id)
                result.decisions.append(RetentionDecision(
                    report_id=report.id,
                    action=RetentionAction.DEFERRED,
                    bucket=self.bucket_for(report, now),
                    reason="open editing session",
                ))
                result.kept.append(report)
                continue

            decision = self.classify(report, now)
            result.decisions.append(decision)
            if decision.action == RetentionAction.HARD_DELETE:
                result.hard_deleted_ids.append(report.id)
                continue
            if decision.action == RetentionAction.ARCHIVE:
                result.archived_ids.append(report.id)
            result.kept.append(report)

        logger.info(
            f"Retention sweep: {len(result.kept)} kept, {len(result.hard_deleted_ids)} hard-deleted, "
            f"{len(result.archived_ids)} archived, {len(result.deferred_ids)} deferred"
        )
        return result
