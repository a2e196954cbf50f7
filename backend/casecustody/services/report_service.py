"""Report Custody Service - Host-side façade over the store, engine and audit log"""
from datetime import datetime
from typing import Any, Callable, Collection, Dict, List, Optional, Tuple, Union

from ..domain.models import (
    Report, CaseFolder, ReportSnapshot, SentReportEntry, EngineResult,
    ActorContext, AdminOverride, LockState, CaseSummary, SweepResult
)
from ..domain.enums import (
    ReportEvent, ReportStatus, ReportBucket, AuditEventType, UserRole
)
from ..domain.errors import (
    ReportNotFoundError, CaseFolderNotFoundError, PermissionDeniedError,
    ValidationError, CaseNotClosedError
)
from ..engine.case_key import normalize_case_key
from ..engine.lock_evaluator import compute_lock_state
from ..engine.numbering import summarize_case
from ..engine.state_machine import ReportStateMachine
from ..engine.retention import RetentionPolicy
from ..engine.audit_writer import AuditWriter
from ..repositories.report_store import ReportStore, get_report_store
from ..utils.idgen import generate_report_id
from ..utils.time import utc_now, ensure_utc
from ..utils.logger import get_logger

logger = get_logger(__name__)

# Actor recorded on events produced by background jobs
SYSTEM_ACTOR = ActorContext(user_id="system", display_name="Retention Scheduler", role=UserRole.ADMIN)


class ReportCustodyService:
    """
    Service for report custody operations.

    Loads state from the store, asks the engine for a decision, persists
    accepted results and writes one audit event per accepted action.
    Rejections are logged, audited and returned unchanged; call
    `raise_for_signal()` on the result to turn them into exceptions.
    """

    def __init__(
        self,
        store: Optional[ReportStore] = None,
        audit_writer: Optional[AuditWriter] = None,
        state_machine: Optional[ReportStateMachine] = None,
        retention_policy: Optional[RetentionPolicy] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.store = store or get_report_store()
        self.audit = audit_writer or AuditWriter()
        self.state_machine = state_machine or ReportStateMachine()
        self.aggregator = self.state_machine.aggregator
        self.retention = retention_policy or RetentionPolicy(auto_lock_days=self.state_machine.auto_lock_days)
        self.clock = clock or utc_now

    # =========================================================================
    # Helpers
    # =========================================================================

    def _now(self) -> datetime:
        return ensure_utc(self.clock())

    def _load(self, report_id: str) -> Tuple[List[Report], Report, Optional[CaseFolder]]:
        reports = self.store.load_reports()
        for report in reports:
            if report.id == report_id:
                key = normalize_case_key(report.case_key)
                folder = self.store.load_case_folder(key) if key else None
                return reports, report, folder
        raise ReportNotFoundError(f"Report {report_id} not found", details={"report_id": report_id})

    def _load_folder(self, case_key: str) -> CaseFolder:
        key = normalize_case_key(case_key)
        folder = self.store.load_case_folder(key) if key else None
        if folder is None:
            raise CaseFolderNotFoundError(f"Case {case_key} not found", details={"case_key": case_key})
        return folder

    def _override(self, actor: ActorContext, reason: Optional[str], now: datetime) -> Optional[AdminOverride]:
        """Build an override for this request; only administrators may bypass a lock"""
        if reason is None:
            return None
        if not actor.is_admin:
            raise PermissionDeniedError(
                "Only administrators may override a report lock",
                details={"actor_id": actor.user_id}
            )
        if not reason.strip():
            raise ValidationError("An override requires a reason", details={"actor_id": actor.user_id})
        return AdminOverride(
            at=now,
            by_id=actor.user_id,
            by_name=actor.display_name or None,
            reason=reason.strip()
        )

    def _persist(
        self,
        reports: List[Report],
        result: EngineResult,
        folder_before: Optional[CaseFolder]
    ) -> None:
        # Folder first: its log is the numbering watermark and appends are idempotent
        folder = result.case_folder
        if folder is not None and folder != folder_before:
            self.store.save_case_folder(folder.case_key, folder)

        if result.report is None:
            return
        updated: List[Report] = []
        replaced = False
        for report in reports:
            if report.id == result.report.id:
                if report == result.report:
                    return
                updated.append(result.report)
                replaced = True
            else:
                updated.append(report)
        if not replaced:
            updated.append(result.report)
        self.store.save_reports(updated)

    def _finish(
        self,
        result: EngineResult,
        action: str,
        event_type: AuditEventType,
        actor: ActorContext,
        reports: List[Report],
        folder: Optional[CaseFolder],
        now: datetime,
        report: Optional[Report] = None,
        override: Optional[AdminOverride] = None,
        extra: Optional[Dict[str, Any]] = None,
        correlation_id: Optional[str] = None
    ) -> EngineResult:
        """Persist and audit an accepted result, or audit a rejection"""
        subject = result.report or report
        report_id = subject.id if subject is not None else None
        case_key = (
            normalize_case_key(subject.case_key) if subject is not None and subject.case_key
            else (result.case_folder.case_key if result.case_folder is not None else None)
        ) or None

        if not result.ok:
            logger.warning(
                f"{action} rejected: {result.message}",
                extra={"report_id": report_id, "case_key": case_key, "signal": result.signal.value, "actor_id": actor.user_id}
            )
            self.audit.write_rejection(
                result, actor, action,
                report_id=report_id, case_key=case_key,
                timestamp=now, correlation_id=correlation_id
            )
            return result

        self._persist(reports, result, folder)

        if override is not None and result.report is not None and result.report.admin_override == override:
            self.audit.write_admin_override(
                result.report.id, case_key, actor, override, action, correlation_id=correlation_id
            )

        details = dict(result.details)
        details.update(extra or {})
        self.audit.write_event(
            event_type=event_type,
            actor=actor,
            report_id=report_id,
            case_key=case_key,
            details=details,
            timestamp=now,
            correlation_id=correlation_id
        )
        logger.info(
            f"{action} accepted",
            extra={"report_id": report_id, "case_key": case_key, "action": action, "actor_id": actor.user_id}
        )
        return result

    @staticmethod
    def _last_snapshot(key: str, reports: List[Report], folder: Optional[CaseFolder]) -> Optional[ReportSnapshot]:
        """Most recent snapshot sent in a case"""
        candidates: List[ReportSnapshot] = []
        if folder is not None:
            candidates.extend(entry.snapshot for entry in folder.sent_reports)
        for report in reports:
            if normalize_case_key(report.case_key) == key:
                candidates.extend(report.history)
        if not candidates:
            return None
        return max(candidates, key=lambda s: ensure_utc(s.created_at))

    # =========================================================================
    # Report Lifecycle
    # =========================================================================

    def create_report(
        self,
        actor: ActorContext,
        case_key: Optional[str] = None,
        seed_from_last: bool = False,
        report_id: Optional[str] = None,
        correlation_id: Optional[str] = None,
        **content: Any
    ) -> EngineResult:
        """
        Create a DRAFT report in a case.

        Args:
            actor: Creating user
            case_key: Free-text case number (normalized here)
            seed_from_last: Copy content from the latest snapshot of the case
            report_id: Explicit ID, generated when omitted
            **content: Initial content fields

        Returns:
            EngineResult with the new report, or CASE_CLOSED
        """
        now = self._now()
        reports = self.store.load_reports()
        key = normalize_case_key(case_key)
        folder = self.store.load_case_folder(key) if key else None

        seed = self._last_snapshot(key, reports, folder) if seed_from_last and key else None
        result = self.state_machine.create_report(
            report_id or generate_report_id(), case_key, reports, folder, now, actor,
            seed=seed, **content
        )
        extra = {"seeded_from": seed.snapshot_id} if seed is not None else {}
        if result.report is not None:
            extra["sequence_number"] = result.report.sequence_number
        return self._finish(
            result, "create", AuditEventType.CREATE_REPORT, actor, reports, folder, now,
            extra=extra, correlation_id=correlation_id
        )

    def edit_report(
        self,
        report_id: str,
        changes: Dict[str, Any],
        actor: ActorContext,
        override_reason: Optional[str] = None,
        correlation_id: Optional[str] = None
    ) -> EngineResult:
        """Edit content fields, all or nothing"""
        now = self._now()
        reports, report, folder = self._load(report_id)
        override = self._override(actor, override_reason, now)
        result = self.state_machine.edit(report, changes, folder, now, override=override)
        return self._finish(
            result, "edit", AuditEventType.EDIT_REPORT, actor, reports, folder, now,
            report=report, override=override, correlation_id=correlation_id
        )

    def transition(
        self,
        report_id: str,
        request: Union[ReportEvent, ReportStatus],
        actor: ActorContext,
        override_reason: Optional[str] = None,
        file_name: Optional[str] = None,
        is_correction: bool = False,
        correction_reason: Optional[str] = None,
        correlation_id: Optional[str] = None
    ) -> EngineResult:
        """Apply a status change given as an event or a target status"""
        now = self._now()
        reports, report, folder = self._load(report_id)
        override = self._override(actor, override_reason, now)
        result = self.state_machine.transition(
            report, request, folder, now,
            override=override, file_name=file_name,
            is_correction=is_correction, correction_reason=correction_reason
        )

        if result.snapshot is not None:
            event_type = AuditEventType.REPORT_RESENT if result.snapshot.is_resend else AuditEventType.REPORT_FINALIZED
        else:
            event_type = AuditEventType.STATUS_CHANGED
        extra: Dict[str, Any] = {"to": result.report.status.value} if result.ok and result.report else {}
        if result.snapshot is not None:
            extra.update({
                "revision_index": result.snapshot.revision_index,
                "is_correction": result.snapshot.is_correction,
                "correction_reason": result.snapshot.correction_reason,
            })
        return self._finish(
            result, request.value, event_type, actor, reports, folder, now,
            report=report, override=override, extra=extra, correlation_id=correlation_id
        )

    def finalize(
        self,
        report_id: str,
        actor: ActorContext,
        file_name: Optional[str] = None,
        override_reason: Optional[str] = None,
        correlation_id: Optional[str] = None
    ) -> EngineResult:
        """Send a READY_TO_SEND report"""
        return self.transition(
            report_id, ReportEvent.FINALIZE, actor,
            override_reason=override_reason, file_name=file_name, correlation_id=correlation_id
        )

    def resend(
        self,
        report_id: str,
        actor: ActorContext,
        file_name: Optional[str] = None,
        override_reason: Optional[str] = None,
        is_correction: bool = False,
        correction_reason: Optional[str] = None,
        correlation_id: Optional[str] = None
    ) -> EngineResult:
        """Send a SENT report again, optionally as a correction"""
        return self.transition(
            report_id, ReportEvent.RESEND, actor,
            override_reason=override_reason, file_name=file_name,
            is_correction=is_correction, correction_reason=correction_reason,
            correlation_id=correlation_id
        )

    # =========================================================================
    # Lock Controls
    # =========================================================================

    def lock_report(
        self,
        report_id: str,
        actor: ActorContext,
        reason: Optional[str] = None,
        correlation_id: Optional[str] = None
    ) -> EngineResult:
        now = self._now()
        reports, report, folder = self._load(report_id)
        result = self.state_machine.lock_manually(report, folder, now, actor, reason)
        return self._finish(
            result, "lock", AuditEventType.MANUAL_LOCK, actor, reports, folder, now,
            report=report, extra={"reason": reason}, correlation_id=correlation_id
        )

    def unlock_report(
        self,
        report_id: str,
        actor: ActorContext,
        correlation_id: Optional[str] = None
    ) -> EngineResult:
        now = self._now()
        reports, report, folder = self._load(report_id)
        result = self.state_machine.unlock_manually(report, folder, now)
        return self._finish(
            result, "unlock", AuditEventType.MANUAL_UNLOCK, actor, reports, folder, now,
            report=report, correlation_id=correlation_id
        )

    def extend_lock(
        self,
        report_id: str,
        actor: ActorContext,
        days: int,
        reason: str = "",
        correlation_id: Optional[str] = None
    ) -> EngineResult:
        """Push the auto-lock horizon forward by `days`"""
        now = self._now()
        reports, report, folder = self._load(report_id)
        result = self.state_machine.extend_lock(report, folder, now, actor, days, reason)
        return self._finish(
            result, "extend_lock", AuditEventType.LOCK_EXTENDED, actor, reports, folder, now,
            report=report, extra={"reason": reason}, correlation_id=correlation_id
        )

    # =========================================================================
    # Soft Delete
    # =========================================================================

    def soft_delete(
        self,
        report_id: str,
        actor: ActorContext,
        override_reason: Optional[str] = None,
        correlation_id: Optional[str] = None
    ) -> EngineResult:
        now = self._now()
        reports, report, folder = self._load(report_id)
        override = self._override(actor, override_reason, now)
        result = self.state_machine.soft_delete(report, folder, now, actor, override=override)
        return self._finish(
            result, "delete", AuditEventType.SOFT_DELETE, actor, reports, folder, now,
            report=report, override=override, correlation_id=correlation_id
        )

    def restore(
        self,
        report_id: str,
        actor: ActorContext,
        correlation_id: Optional[str] = None
    ) -> EngineResult:
        now = self._now()
        reports, report, folder = self._load(report_id)
        result = self.state_machine.restore(report, folder, now)
        return self._finish(
            result, "restore", AuditEventType.RESTORE, actor, reports, folder, now,
            report=report, correlation_id=correlation_id
        )

    # =========================================================================
    # Case Folder
    # =========================================================================

    def close_case(
        self,
        case_key: str,
        actor: ActorContext,
        correlation_id: Optional[str] = None
    ) -> EngineResult:
        """Close a case; refused while unsent drafts remain"""
        now = self._now()
        folder = self._load_folder(case_key)
        reports = self.store.load_reports()
        result = self.aggregator.close_case(folder, reports, now, actor.user_id)
        return self._finish(
            result, "close_case", AuditEventType.CASE_CLOSED, actor, reports, folder, now,
            correlation_id=correlation_id
        )

    def reopen_case(
        self,
        case_key: str,
        actor: ActorContext,
        correlation_id: Optional[str] = None
    ) -> EngineResult:
        now = self._now()
        folder = self._load_folder(case_key)
        result = EngineResult.accepted(case_folder=self.aggregator.reopen_case(folder, now))
        return self._finish(
            result, "reopen_case", AuditEventType.CASE_REOPENED, actor, [], folder, now,
            correlation_id=correlation_id
        )

    def update_re_template(
        self,
        case_key: str,
        value: str,
        actor: ActorContext,
        correlation_id: Optional[str] = None
    ) -> EngineResult:
        """Replace the case subject template; allowed while closed or locked"""
        now = self._now()
        folder = self._load_folder(case_key)
        result = EngineResult.accepted(case_folder=self.aggregator.update_re_template(folder, value, now))
        return self._finish(
            result, "update_re_template", AuditEventType.RE_TEMPLATE_UPDATED, actor, [], folder, now,
            extra={"re_template": result.case_folder.re_template}, correlation_id=correlation_id
        )

    def delete_case(
        self,
        case_key: str,
        actor: ActorContext,
        correlation_id: Optional[str] = None
    ) -> List[str]:
        """
        Hard-delete a closed case with all its reports.

        Returns:
            IDs of the reports removed from the live list
        """
        if not actor.is_admin:
            raise PermissionDeniedError(
                "Only administrators may delete a case",
                details={"actor_id": actor.user_id, "case_key": case_key}
            )
        now = self._now()
        folder = self._load_folder(case_key)
        if not folder.is_closed:
            raise CaseNotClosedError(
                f"Case {folder.case_key} must be closed before it is deleted",
                details={"case_key": folder.case_key}
            )

        reports = self.store.load_reports()
        removed = [r.id for r in reports if normalize_case_key(r.case_key) == folder.case_key]
        self.store.save_reports([r for r in reports if r.id not in removed])
        self.store.delete_case_folder(folder.case_key)

        self.audit.write_event(
            event_type=AuditEventType.CASE_DELETED,
            actor=actor,
            case_key=folder.case_key,
            details={"deleted_report_ids": removed, "sent_count": len(folder.sent_reports)},
            timestamp=now,
            correlation_id=correlation_id
        )
        logger.warning(
            f"Deleted case {folder.case_key} with {len(removed)} report(s)",
            extra={"case_key": folder.case_key, "actor_id": actor.user_id}
        )
        return removed

    # =========================================================================
    # Queries
    # =========================================================================

    def get_report(self, report_id: str) -> Report:
        _, report, _ = self._load(report_id)
        return report

    def list_reports(self, case_key: Optional[str] = None, include_deleted: bool = False) -> List[Report]:
        """Live reports, optionally restricted to one case"""
        key = normalize_case_key(case_key) if case_key is not None else None
        return [
            r for r in self.store.load_reports()
            if (include_deleted or not r.is_deleted)
            and (key is None or normalize_case_key(r.case_key) == key)
        ]

    def get_lock_state(self, report_id: str) -> LockState:
        _, report, folder = self._load(report_id)
        return compute_lock_state(report, folder, self._now(), self.state_machine.auto_lock_days)

    def get_report_bucket(self, report_id: str) -> ReportBucket:
        """Display bucket (active, archived or deleted) of a report"""
        return self.retention.bucket_for(self.get_report(report_id), self._now())

    def get_case_folder(self, case_key: str) -> CaseFolder:
        return self._load_folder(case_key)

    def case_history(self, case_key: str) -> List[SentReportEntry]:
        """Latest sent entry per report of a case"""
        return self.aggregator.latest_sent_per_report(self._load_folder(case_key))

    def case_summary(self, case_key: str) -> CaseSummary:
        key = normalize_case_key(case_key)
        folder = self.store.load_case_folder(key) if key else None
        return summarize_case(key, self.store.load_reports(), folder)

    # =========================================================================
    # Retention
    # =========================================================================

    def run_retention_sweep(
        self,
        in_edit_ids: Collection[str] = (),
        correlation_id: Optional[str] = None
    ) -> SweepResult:
        """Apply the retention policy to the live list with one captured clock reading"""
        now = self._now()
        reports = self.store.load_reports()
        folders = self.store.load_case_folders()
        result = self.retention.sweep(reports, folders, now, in_edit_ids=in_edit_ids)

        if result.hard_deleted_ids:
            self.store.save_reports(result.kept)
            by_id = {r.id: r for r in reports}
            for report_id in result.hard_deleted_ids:
                report = by_id[report_id]
                self.audit.write_event(
                    event_type=AuditEventType.HARD_DELETE,
                    actor=SYSTEM_ACTOR,
                    report_id=report_id,
                    case_key=normalize_case_key(report.case_key) or None,
                    details={"was_soft_deleted": report.is_deleted, "status": report.status.value},
                    timestamp=now,
                    correlation_id=correlation_id
                )
        return result
