"""Domain Models - Pydantic schemas for all entities"""
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
from pydantic import BaseModel, Field, ConfigDict, model_validator

from .enums import (
    ReportStatus, LockType, Signal, UserRole, RetentionAction, ReportBucket,
    AuditEventType
)
from .errors import (
    EngineSignalError, InvalidTransitionError, ReportLockedError,
    CaseClosedError, OpenDraftsExistError
)
from ..utils.time import latest


# Fields a user may edit on a working report; everything else is engine-owned
CONTENT_FIELDS: Tuple[str, ...] = (
    "report_subject",
    "report_date",
    "insurer_name",
    "insured_name",
    "plaintiff_name",
    "market_ref",
    "line_slip_no",
    "certificate_ref",
    "selected_sections",
    "content",
    "translated_content",
    "file_name_titles",
    "expenses_items",
    "expenses_sheet_id",
    "owner_id",
)

# Denormalized display fields cached on the case folder
DISPLAY_FIELDS: Tuple[str, ...] = (
    "insurer_name",
    "insured_name",
    "plaintiff_name",
    "market_ref",
    "line_slip_no",
    "certificate_ref",
)


# ============================================================================
# Actor & Lock Metadata
# ============================================================================

class ActorContext(BaseModel):
    """Who is acting, as supplied by the authorization collaborator"""
    model_config = ConfigDict(extra="forbid")

    user_id: str = Field(..., description="Stable user identifier")
    display_name: str = Field(default="", description="User display name")
    role: UserRole = Field(default=UserRole.LAWYER)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


class ManualLock(BaseModel):
    """Explicit lock placed on a report, released only by reopening"""
    model_config = ConfigDict(extra="forbid")

    at: datetime
    by_id: str
    by_name: Optional[str] = None
    reason: Optional[str] = None


class LockExtension(BaseModel):
    """One extension of the auto-lock horizon"""
    model_config = ConfigDict(extra="forbid")

    at: datetime
    by_id: str
    by_name: Optional[str] = None
    days: int = Field(..., gt=0, description="Days added to the horizon")
    reason: str = ""


class AdminOverride(BaseModel):
    """Audit record of a privileged bypass of an active lock"""
    model_config = ConfigDict(extra="forbid")

    at: datetime
    by_id: str
    by_name: Optional[str] = None
    reason: str = Field(..., min_length=1)


class ExpenseItem(BaseModel):
    """Single expense line on a report"""
    model_config = ConfigDict(extra="forbid")

    description: str
    amount: float
    currency: str = "ILS"


# ============================================================================
# Snapshot & Report
# ============================================================================

class ReportSnapshot(BaseModel):
    """
    Immutable point-in-time copy of a report taken when it is sent.

    Sequences are stored as tuples and the model is frozen; dict payloads are
    deep copies owned by the snapshot alone.
    """
    model_config = ConfigDict(extra="forbid", frozen=True)

    snapshot_id: str
    report_id: str
    created_at: datetime
    sequence_number: int = Field(..., ge=1)
    case_key: Optional[str] = None
    status: ReportStatus = ReportStatus.SENT
    file_name: Optional[str] = None

    # Resend / correction metadata
    is_resend: bool = False
    is_correction: bool = False
    correction_reason: Optional[str] = None
    revision_index: int = Field(default=0, ge=0)

    # Content copied from the report
    report_subject: Optional[str] = None
    report_date: Optional[datetime] = None
    insurer_name: str = ""
    insured_name: str = ""
    plaintiff_name: str = ""
    market_ref: str = ""
    line_slip_no: str = ""
    certificate_ref: str = ""
    selected_sections: Tuple[str, ...] = ()
    content: Dict[str, str] = Field(default_factory=dict)
    translated_content: Dict[str, str] = Field(default_factory=dict)
    file_name_titles: Tuple[str, ...] = ()
    expenses_items: Tuple[ExpenseItem, ...] = ()
    expenses_sheet_id: Optional[str] = None
    owner_id: Optional[str] = None


class Report(BaseModel):
    """Mutable working document progressing toward being sent"""
    model_config = ConfigDict(extra="forbid")

    id: str = Field(..., description="Opaque immutable report ID")
    case_key: Optional[str] = Field(None, description="Normalized case number")
    status: ReportStatus = Field(default=ReportStatus.DRAFT)
    sequence_number: int = Field(default=1, ge=1, description="Position within the case")
    owner_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    # Locking metadata
    first_sent_at: Optional[datetime] = None
    manual_lock: Optional[ManualLock] = None
    lock_extensions: List[LockExtension] = Field(default_factory=list)
    admin_override: Optional[AdminOverride] = None

    # Append-only send history
    history: List[ReportSnapshot] = Field(default_factory=list)

    # Soft delete
    deleted_at: Optional[datetime] = None
    deleted_by: Optional[str] = None

    # Content
    report_subject: Optional[str] = None
    report_date: Optional[datetime] = None
    insurer_name: str = ""
    insured_name: str = ""
    plaintiff_name: str = ""
    market_ref: str = ""
    line_slip_no: str = ""
    certificate_ref: str = ""
    selected_sections: List[str] = Field(default_factory=list)
    content: Dict[str, str] = Field(default_factory=dict)
    translated_content: Dict[str, str] = Field(default_factory=dict)
    file_name_titles: List[str] = Field(default_factory=list)
    expenses_items: List[ExpenseItem] = Field(default_factory=list)
    expenses_sheet_id: Optional[str] = Field(None, description="Recurring financial sub-report key")

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def last_sent_at(self) -> Optional[datetime]:
        """Time of the most recent send (falls back to first send)"""
        return latest(self.history[-1].created_at if self.history else None, self.first_sent_at)


# ============================================================================
# Case Folder
# ============================================================================

class SentReportEntry(BaseModel):
    """Immutable entry in a case folder's sent-report log"""
    model_config = ConfigDict(extra="forbid", frozen=True)

    entry_id: str = Field(..., description="Equal to the snapshot ID")
    report_id: str
    sequence_number: int = Field(..., ge=1)
    sent_at: datetime
    file_name: Optional[str] = None
    is_resend: bool = False
    recurring_key: Optional[str] = Field(None, description="Recurring sub-report key (expenses sheet)")
    snapshot: ReportSnapshot
    supersedes: Optional[str] = None
    superseded_by: Optional[str] = None


def find_supersession_problems(entries: List[SentReportEntry]) -> List[str]:
    """
    Check that supersession pointers form forward-only chains.

    Every pointer must target an existing entry, point forward (superseded_by)
    or backward (supersedes) in log order, be mirrored by its target, and
    stay within one recurring key. Forward-only plus mirroring rules out cycles.
    """
    problems: List[str] = []
    positions: Dict[str, int] = {}
    for index, entry in enumerate(entries):
        if entry.entry_id in positions:
            problems.append(f"duplicate entry {entry.entry_id}")
        positions[entry.entry_id] = index

    for index, entry in enumerate(entries):
        if entry.supersedes is not None:
            prior_index = positions.get(entry.supersedes)
            if prior_index is None:
                problems.append(f"{entry.entry_id} supersedes unknown entry {entry.supersedes}")
            elif prior_index >= index:
                problems.append(f"{entry.entry_id} supersedes a later entry {entry.supersedes}")
            else:
                prior = entries[prior_index]
                if prior.superseded_by != entry.entry_id:
                    problems.append(f"{entry.supersedes} is not marked superseded by {entry.entry_id}")
                if prior.recurring_key != entry.recurring_key:
                    problems.append(f"{entry.entry_id} supersedes an entry of another sub-report")
        if entry.superseded_by is not None:
            next_index = positions.get(entry.superseded_by)
            if next_index is None:
                problems.append(f"{entry.entry_id} superseded by unknown entry {entry.superseded_by}")
            elif next_index <= index:
                problems.append(f"{entry.entry_id} superseded by an earlier entry {entry.superseded_by}")
            elif entries[next_index].supersedes != entry.entry_id:
                problems.append(f"{entry.superseded_by} does not point back to {entry.entry_id}")
    return problems


class CaseFolder(BaseModel):
    """Durable identity of a case and its append-only sent history"""
    model_config = ConfigDict(extra="forbid")

    case_key: str = Field(..., min_length=1)
    re_template: str = ""

    # Best-effort display cache
    insurer_name: str = ""
    insured_name: str = ""
    plaintiff_name: str = ""
    market_ref: str = ""
    line_slip_no: str = ""
    certificate_ref: str = ""

    created_at: datetime
    updated_at: datetime
    report_ids: List[str] = Field(default_factory=list)
    sent_reports: List[SentReportEntry] = Field(default_factory=list)

    closed_at: Optional[datetime] = None
    closed_by_user_id: Optional[str] = None

    @model_validator(mode="after")
    def _check_supersession_chain(self) -> "CaseFolder":
        problems = find_supersession_problems(self.sent_reports)
        if problems:
            raise ValueError("invalid supersession chain: " + "; ".join(problems))
        return self

    @property
    def is_closed(self) -> bool:
        return self.closed_at is not None

    def find_entry(self, entry_id: str) -> Optional[SentReportEntry]:
        for entry in self.sent_reports:
            if entry.entry_id == entry_id:
                return entry
        return None


# ============================================================================
# Engine Outputs
# ============================================================================

class LockState(BaseModel):
    """Computed, non-persisted lock state of a report"""
    model_config = ConfigDict(extra="forbid", frozen=True)

    is_locked: bool = False
    lock_type: LockType = LockType.NONE
    lock_at: Optional[datetime] = None
    auto_lock_at: Optional[datetime] = Field(None, description="Auto-lock horizon when known")
    remaining_days: Optional[int] = Field(None, description="Whole days left while unlocked")
    reason_summary: Optional[str] = None


_SIGNAL_ERRORS = {
    Signal.INVALID_TRANSITION: InvalidTransitionError,
    Signal.LOCKED: ReportLockedError,
    Signal.CASE_CLOSED: CaseClosedError,
    Signal.OPEN_DRAFTS_EXIST: OpenDraftsExistError,
}


class EngineResult(BaseModel):
    """Discriminated result of an engine operation"""
    model_config = ConfigDict(extra="forbid")

    signal: Signal = Signal.OK
    message: str = ""
    report: Optional[Report] = None
    case_folder: Optional[CaseFolder] = None
    snapshot: Optional[ReportSnapshot] = None
    lock_state: Optional[LockState] = None
    details: Dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        """Accepted (a duplicate append is a no-op success)"""
        return self.signal in (Signal.OK, Signal.DUPLICATE_SNAPSHOT)

    @classmethod
    def accepted(cls, signal: Signal = Signal.OK, **kwargs: Any) -> "EngineResult":
        return cls(signal=signal, **kwargs)

    @classmethod
    def rejected(cls, signal: Signal, message: str, **kwargs: Any) -> "EngineResult":
        return cls(signal=signal, message=message, **kwargs)

    def raise_for_signal(self) -> "EngineResult":
        """Raise the matching DomainError if rejected, else return self"""
        if self.ok:
            return self
        error_cls = _SIGNAL_ERRORS.get(self.signal, EngineSignalError)
        raise error_cls(self.message or self.signal.value, details=dict(self.details))


class RetentionDecision(BaseModel):
    """Retention outcome for a single report"""
    model_config = ConfigDict(extra="forbid")

    report_id: str
    action: RetentionAction
    bucket: ReportBucket
    reason: str = ""


class SweepResult(BaseModel):
    """Outcome of one retention sweep"""
    model_config = ConfigDict(extra="forbid")

    swept_at: datetime
    kept: List[Report] = Field(default_factory=list)
    archived_ids: List[str] = Field(default_factory=list)
    hard_deleted_ids: List[str] = Field(default_factory=list)
    deferred_ids: List[str] = Field(default_factory=list)
    decisions: List[RetentionDecision] = Field(default_factory=list)
    lock_states: Dict[str, LockState] = Field(default_factory=dict)


class CaseSummary(BaseModel):
    """Numbering and open-work overview of a case"""
    model_config = ConfigDict(extra="forbid")

    case_key: str
    latest_sequence_number: Optional[int] = None
    next_sequence_number: int = 1
    sent_count: int = 0
    has_open_work: bool = False
    is_closed: bool = False


# ============================================================================
# Audit
# ============================================================================

class AuditEvent(BaseModel):
    """Audit event (append-only)"""
    model_config = ConfigDict(extra="forbid")

    audit_event_id: str
    report_id: Optional[str] = None
    case_key: Optional[str] = None
    event_type: AuditEventType
    actor: ActorContext
    details: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime
    correlation_id: Optional[str] = None

