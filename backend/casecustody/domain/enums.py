"""Domain Enumerations - All status and type definitions"""
from enum import Enum


class ReportStatus(str, Enum):
    """Report document status"""
    DRAFT = "DRAFT"
    TASK_ASSIGNED = "TASK_ASSIGNED"
    WAITING_FOR_INVOICES = "WAITING_FOR_INVOICES"  # Missing required attachments
    READY_TO_SEND = "READY_TO_SEND"
    SENT = "SENT"


class ReportEvent(str, Enum):
    """Events that move a report between statuses"""
    ASSIGN_TASK = "ASSIGN_TASK"
    AWAIT_INVOICES = "AWAIT_INVOICES"
    INVOICES_RECEIVED = "INVOICES_RECEIVED"
    MARK_READY = "MARK_READY"
    FINALIZE = "FINALIZE"
    RESEND = "RESEND"


class LockType(str, Enum):
    """Why a report is (or is not) locked"""
    NONE = "NONE"
    AUTO = "AUTO"
    MANUAL = "MANUAL"
    CASE_CLOSED = "CASE_CLOSED"


class Signal(str, Enum):
    """Outcome signals returned by engine operations"""
    OK = "OK"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    LOCKED = "LOCKED"
    CASE_CLOSED = "CASE_CLOSED"
    OPEN_DRAFTS_EXIST = "OPEN_DRAFTS_EXIST"
    DUPLICATE_SNAPSHOT = "DUPLICATE_SNAPSHOT"  # No-op success on idempotent retry


class UserRole(str, Enum):
    """Roles supplied by the authorization collaborator"""
    ADMIN = "ADMIN"
    SUB_ADMIN = "SUB_ADMIN"
    FINANCE = "FINANCE"
    LAWYER = "LAWYER"


class RetentionAction(str, Enum):
    """What a retention sweep decided for a report"""
    KEEP = "KEEP"
    ARCHIVE = "ARCHIVE"
    HARD_DELETE = "HARD_DELETE"
    DEFERRED = "DEFERRED"  # Report has an open editing session


class ReportBucket(str, Enum):
    """Display-only classification of a report"""
    ACTIVE = "ACTIVE"
    ARCHIVED = "ARCHIVED"
    DELETED = "DELETED"


class AuditEventType(str, Enum):
    """Types of audit events"""
    CREATE_REPORT = "CREATE_REPORT"
    EDIT_REPORT = "EDIT_REPORT"
    STATUS_CHANGED = "STATUS_CHANGED"
    REPORT_FINALIZED = "REPORT_FINALIZED"
    REPORT_RESENT = "REPORT_RESENT"
    MANUAL_LOCK = "MANUAL_LOCK"
    MANUAL_UNLOCK = "MANUAL_UNLOCK"
    LOCK_EXTENDED = "LOCK_EXTENDED"
    ADMIN_OVERRIDE = "ADMIN_OVERRIDE"
    SOFT_DELETE = "SOFT_DELETE"
    RESTORE = "RESTORE"
    HARD_DELETE = "HARD_DELETE"
    CASE_CLOSED = "CASE_CLOSED"
    CASE_REOPENED = "CASE_REOPENED"
    CASE_DELETED = "CASE_DELETED"
    RE_TEMPLATE_UPDATED = "RE_TEMPLATE_UPDATED"
    MUTATION_REJECTED = "MUTATION_REJECTED"
