"""Report State Machine - Guarded status transitions and mutations"""
from datetime import datetime
from typing import Any, Dict, Iterable, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from ..domain.models import (
    Report, CaseFolder, ReportSnapshot, EngineResult, AdminOverride,
    ManualLock, LockExtension, ActorContext, CONTENT_FIELDS
)
from ..domain.enums import ReportStatus, ReportEvent, LockType, Signal
from ..domain.errors import ValidationError
from ..utils.logger import get_logger
from .case_key import normalize_case_key, same_case
from .case_folder import CaseFolderAggregator
from .lock_evaluator import compute_lock_state
from .numbering import next_sequence_number
from .snapshot_builder import build_snapshot, seed_content_from_snapshot
from .transition_resolver import TransitionResolver

logger = get_logger(__name__)


def _replace(report: Report, **updates: Any) -> Report:
    """New report with updates applied and validated"""
    data = report.model_dump()
    data.update(updates)
    try:
        return Report.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(
            f"Invalid update for report {report.id}",
            details={"report_id": report.id, "errors": str(e)}
        )


class ReportStateMachine:
    """
    Apply report mutations after checking the lock gate.

    Every method is a pure function of (report, case folder, now, request):
    it returns an EngineResult carrying the new report and folder, or a
    rejection signal with the inputs untouched. Persisting the result is the
    caller's job.

    Gate for every mutation:
    - closed case -> CASE_CLOSED (no override possible)
    - locked report without an admin override for this action -> LOCKED
    """

    def __init__(
        self,
        resolver: Optional[TransitionResolver] = None,
        aggregator: Optional[CaseFolderAggregator] = None,
        auto_lock_days: Optional[int] = None
    ):
        self.resolver = resolver or TransitionResolver()
        self.aggregator = aggregator or CaseFolderAggregator()
        self.auto_lock_days = auto_lock_days

    # =========================================================================
    # Gate
    # =========================================================================

    def _folder_for(self, report: Report, folder: Optional[CaseFolder]) -> Optional[CaseFolder]:
        """Only a folder of the report's own case governs it"""
        if folder is None:
            return None
        return folder if same_case(report.case_key, folder.case_key) else None

    def check_mutation(
        self,
        report: Report,
        folder: Optional[CaseFolder],
        now: datetime,
        override: Optional[AdminOverride] = None,
        action: str = "mutate"
    ) -> Optional[EngineResult]:
        """
        Gate a mutation against the lock state.

        Returns:
            A rejection result, or None if the mutation may proceed
        """
        lock_state = compute_lock_state(report, self._folder_for(report, folder), now, self.auto_lock_days)

        if lock_state.lock_type == LockType.CASE_CLOSED:
            logger.info(
                f"Rejected {action}: case closed",
                extra={"report_id": report.id, "case_key": report.case_key, "signal": Signal.CASE_CLOSED.value}
            )
            return EngineResult.rejected(
                Signal.CASE_CLOSED,
                f"Case {report.case_key} is closed",
                report=report,
                case_folder=folder,
                lock_state=lock_state,
                details={"action": action}
            )

        if lock_state.is_locked and override is None:
            logger.info(
                f"Rejected {action}: report locked ({lock_state.lock_type.value})",
                extra={
                    "report_id": report.id,
                    "lock_type": lock_state.lock_type.value,
                    "signal": Signal.LOCKED.value
                }
            )
            return EngineResult.rejected(
                Signal.LOCKED,
                f"Report {report.id} is locked",
                report=report,
                case_folder=folder,
                lock_state=lock_state,
                details={"action": action, "lock_type": lock_state.lock_type.value}
            )

        return None

    def _override_updates(
        self,
        report: Report,
        folder: Optional[CaseFolder],
        now: datetime,
        override: Optional[AdminOverride]
    ) -> Dict[str, Any]:
        """Record the override only when it actually bypassed a lock"""
        if override is None:
            return {}
        lock_state = compute_lock_state(report, self._folder_for(report, folder), now, self.auto_lock_days)
        if not lock_state.is_locked:
            return {}
        logger.warning(
            f"Admin override on locked report {report.id}",
            extra={"report_id": report.id, "actor_id": override.by_id, "lock_type": lock_state.lock_type.value}
        )
        return {"admin_override": override}

    def _accepted(
        self,
        report: Report,
        folder: Optional[CaseFolder],
        now: datetime,
        **kwargs: Any
    ) -> EngineResult:
        lock_state = compute_lock_state(report, self._folder_for(report, folder), now, self.auto_lock_days)
        return EngineResult.accepted(report=report, case_folder=folder, lock_state=lock_state, **kwargs)

    # =========================================================================
    # Creation & Edits
    # =========================================================================

    def create_report(
        self,
        report_id: str,
        raw_case_key: Optional[str],
        all_reports: Iterable[Report],
        folder: Optional[CaseFolder],
        now: datetime,
        actor: ActorContext,
        seed: Optional[ReportSnapshot] = None,
        **content: Any
    ) -> EngineResult:
        """
        Create a DRAFT report, numbered from the case history.

        Content is seeded from a deep copy of an earlier snapshot when given,
        then overlaid with explicit content fields.
        """
        key = normalize_case_key(raw_case_key)
        folder = folder if folder is not None and same_case(folder.case_key, key) else None

        if folder is not None and folder.is_closed:
            return EngineResult.rejected(
                Signal.CASE_CLOSED,
                f"Case {key} is closed",
                case_folder=folder,
                details={"action": "create"}
            )

        unknown = set(content) - set(CONTENT_FIELDS)
        if unknown:
            raise ValidationError(
                "Unknown report fields",
                details={"fields": sorted(unknown)}
            )

        fields: Dict[str, Any] = seed_content_from_snapshot(seed) if seed is not None else {}
        fields.update(content)
        # A seeded report belongs to whoever creates it
        fields["owner_id"] = content.get("owner_id") or actor.user_id

        try:
            report = Report(
                id=report_id,
                case_key=key or None,
                status=ReportStatus.DRAFT,
                sequence_number=next_sequence_number(key, all_reports, folder) if key else 1,
                created_at=now,
                updated_at=now,
                **fields
            )
        except PydanticValidationError as e:
            raise ValidationError("Invalid report content", details={"errors": str(e)})

        new_folder = self.aggregator.upsert_from_report(folder, report, now)
        logger.info(
            f"Created report {report.id} as #{report.sequence_number}",
            extra={"report_id": report.id, "case_key": key, "sequence_number": report.sequence_number}
        )
        return self._accepted(report, new_folder, now)

    def edit(
        self,
        report: Report,
        changes: Dict[str, Any],
        folder: Optional[CaseFolder],
        now: datetime,
        override: Optional[AdminOverride] = None
    ) -> EngineResult:
        """Apply content field edits atomically, or reject without change"""
        unknown = set(changes) - set(CONTENT_FIELDS)
        if unknown:
            raise ValidationError(
                f"Fields not editable on report {report.id}",
                details={"report_id": report.id, "fields": sorted(unknown)}
            )

        rejection = self.check_mutation(report, folder, now, override, action="edit")
        if rejection is not None:
            return rejection

        updated = _replace(
            report,
            **changes,
            updated_at=now,
            **self._override_updates(report, folder, now, override)
        )
        new_folder = self._refresh_folder(updated, folder, now)
        return self._accepted(updated, new_folder, now, details={"fields": sorted(changes)})

    def _refresh_folder(self, report: Report, folder: Optional[CaseFolder], now: datetime) -> Optional[CaseFolder]:
        if not normalize_case_key(report.case_key):
            return folder
        governing = self._folder_for(report, folder)
        if folder is not None and governing is None:
            return folder
        return self.aggregator.upsert_from_report(governing, report, now)

    # =========================================================================
    # Status Transitions
    # =========================================================================

    def transition(
        self,
        report: Report,
        request: Union[ReportEvent, ReportStatus],
        folder: Optional[CaseFolder],
        now: datetime,
        override: Optional[AdminOverride] = None,
        file_name: Optional[str] = None,
        is_correction: bool = False,
        correction_reason: Optional[str] = None
    ) -> EngineResult:
        """
        Move a report along the transition table.

        The request may name the event or the target status. FINALIZE and
        RESEND build a snapshot and append it to the report history and the
        case folder.
        """
        if isinstance(request, ReportStatus):
            target = request
            event = self.resolver.resolve_event(report.status, target)
        else:
            event = request
            target = self.resolver.resolve_target(report.status, event)

        if event is None or target is None or report.is_deleted:
            requested = request.value
            logger.info(
                f"Rejected transition {report.status.value} -> {requested}",
                extra={"report_id": report.id, "status": report.status.value, "signal": Signal.INVALID_TRANSITION.value}
            )
            return EngineResult.rejected(
                Signal.INVALID_TRANSITION,
                f"Cannot apply {requested} to a {'deleted ' if report.is_deleted else ''}{report.status.value} report",
                report=report,
                case_folder=folder,
                details={"from": report.status.value, "requested": requested}
            )

        rejection = self.check_mutation(report, folder, now, override, action=event.value)
        if rejection is not None:
            return rejection

        if self.resolver.is_send_event(event):
            return self._send(report, event, folder, now, override, file_name, is_correction, correction_reason)

        updated = _replace(
            report,
            status=target,
            updated_at=now,
            **self._override_updates(report, folder, now, override)
        )
        logger.info(
            f"Report {report.id}: {report.status.value} -> {target.value}",
            extra={"report_id": report.id, "status": target.value, "action": event.value}
        )
        return self._accepted(updated, folder, now, details={"from": report.status.value, "event": event.value})

    def finalize(
        self,
        report: Report,
        folder: Optional[CaseFolder],
        now: datetime,
        file_name: Optional[str] = None,
        override: Optional[AdminOverride] = None
    ) -> EngineResult:
        """READY_TO_SEND -> SENT"""
        return self.transition(report, ReportEvent.FINALIZE, folder, now, override=override, file_name=file_name)

    def resend(
        self,
        report: Report,
        folder: Optional[CaseFolder],
        now: datetime,
        file_name: Optional[str] = None,
        override: Optional[AdminOverride] = None,
        is_correction: bool = False,
        correction_reason: Optional[str] = None
    ) -> EngineResult:
        """SENT -> SENT with a new snapshot"""
        return self.transition(
            report, ReportEvent.RESEND, folder, now,
            override=override, file_name=file_name,
            is_correction=is_correction, correction_reason=correction_reason
        )

    def _send(
        self,
        report: Report,
        event: ReportEvent,
        folder: Optional[CaseFolder],
        now: datetime,
        override: Optional[AdminOverride],
        file_name: Optional[str],
        is_correction: bool,
        correction_reason: Optional[str]
    ) -> EngineResult:
        is_resend = event == ReportEvent.RESEND
        snapshot = build_snapshot(
            report,
            now,
            file_name=file_name,
            is_resend=is_resend,
            is_correction=is_resend and is_correction,
            correction_reason=correction_reason if is_resend and is_correction else None,
        )

        updated = _replace(
            report,
            status=ReportStatus.SENT,
            first_sent_at=report.first_sent_at or now,
            history=[*report.history, snapshot],
            updated_at=now,
            **self._override_updates(report, folder, now, override)
        )

        new_folder = folder
        details: Dict[str, Any] = {"event": event.value, "snapshot_id": snapshot.snapshot_id}
        if normalize_case_key(updated.case_key):
            governing = self._folder_for(updated, folder)
            if folder is None or governing is not None:
                new_folder = self.aggregator.upsert_from_report(governing, updated, now)
                append = self.aggregator.append_sent_report(
                    new_folder, updated, snapshot, now, file_name, is_resend
                )
                if not append.ok:
                    return EngineResult.rejected(
                        append.signal, append.message,
                        report=report, case_folder=folder, details=append.details
                    )
                new_folder = append.case_folder
                details.update(append.details)

        logger.info(
            f"Report {report.id} {'resent' if is_resend else 'finalized'} as #{updated.sequence_number}",
            extra={
                "report_id": report.id,
                "case_key": updated.case_key,
                "snapshot_id": snapshot.snapshot_id,
                "sequence_number": updated.sequence_number
            }
        )
        return self._accepted(updated, new_folder, now, snapshot=snapshot, details=details)

    # =========================================================================
    # Lock Controls
    # =========================================================================

    def _closed_rejection(self, report: Report, folder: Optional[CaseFolder], action: str) -> Optional[EngineResult]:
        governing = self._folder_for(report, folder)
        if governing is not None and governing.is_closed:
            return EngineResult.rejected(
                Signal.CASE_CLOSED,
                f"Case {report.case_key} is closed",
                report=report,
                case_folder=folder,
                details={"action": action}
            )
        return None

    def lock_manually(
        self,
        report: Report,
        folder: Optional[CaseFolder],
        now: datetime,
        actor: ActorContext,
        reason: Optional[str] = None
    ) -> EngineResult:
        """Place an explicit lock; a second lock keeps the first"""
        rejection = self._closed_rejection(report, folder, "lock")
        if rejection is not None:
            return rejection
        if report.manual_lock is not None:
            return self._accepted(report, folder, now, details={"already_locked": True})

        lock = ManualLock(at=now, by_id=actor.user_id, by_name=actor.display_name or None, reason=reason)
        updated = _replace(report, manual_lock=lock, updated_at=now)
        return self._accepted(updated, folder, now)

    def unlock_manually(
        self,
        report: Report,
        folder: Optional[CaseFolder],
        now: datetime
    ) -> EngineResult:
        """Reopen a manually locked report"""
        rejection = self._closed_rejection(report, folder, "unlock")
        if rejection is not None:
            return rejection
        if report.manual_lock is None:
            return self._accepted(report, folder, now, details={"already_unlocked": True})

        updated = _replace(report, manual_lock=None, updated_at=now)
        return self._accepted(updated, folder, now)

    def extend_lock(
        self,
        report: Report,
        folder: Optional[CaseFolder],
        now: datetime,
        actor: ActorContext,
        days: int,
        reason: str = ""
    ) -> EngineResult:
        """Append an extension pushing the auto-lock horizon forward"""
        rejection = self._closed_rejection(report, folder, "extend_lock")
        if rejection is not None:
            return rejection
        try:
            extension = LockExtension(
                at=now, by_id=actor.user_id, by_name=actor.display_name or None,
                days=days, reason=reason
            )
        except PydanticValidationError as e:
            raise ValidationError(
                "Lock extension must add a positive number of days",
                details={"report_id": report.id, "days": days, "errors": str(e)}
            )

        updated = _replace(report, lock_extensions=[*report.lock_extensions, extension], updated_at=now)
        return self._accepted(updated, folder, now, details={"days": days})

    # =========================================================================
    # Soft Delete
    # =========================================================================

    def soft_delete(
        self,
        report: Report,
        folder: Optional[CaseFolder],
        now: datetime,
        actor: ActorContext,
        override: Optional[AdminOverride] = None
    ) -> EngineResult:
        """Mark a report deleted; the retention sweep purges it later"""
        if report.is_deleted:
            return self._accepted(report, folder, now, details={"already_deleted": True})

        rejection = self.check_mutation(report, folder, now, override, action="delete")
        if rejection is not None:
            return rejection

        updated = _replace(
            report,
            deleted_at=now,
            deleted_by=actor.user_id,
            updated_at=now,
            **self._override_updates(report, folder, now, override)
        )
        return self._accepted(updated, folder, now)

    def restore(
        self,
        report: Report,
        folder: Optional[CaseFolder],
        now: datetime
    ) -> EngineResult:
        """Undo a soft delete before it is purged"""
        rejection = self._closed_rejection(report, folder, "restore")
        if rejection is not None:
            return rejection
        if not report.is_deleted:
            return self._accepted(report, folder, now, details={"not_deleted": True})

        updated = _replace(report, deleted_at=None, deleted_by=None, updated_at=now)
        return self._accepted(updated, folder, now)
