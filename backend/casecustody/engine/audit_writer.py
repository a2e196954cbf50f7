"""Audit Writer - Append-only audit events"""
from datetime import datetime
from typing import Any, Dict, Optional

from ..domain.models import AuditEvent, ActorContext, AdminOverride, EngineResult
from ..domain.enums import AuditEventType
from ..repositories.audit_repo import AuditRepository, get_audit_repository
from ..utils.idgen import generate_audit_event_id
from ..utils.logger import get_correlation_id
from ..utils.time import utc_now


class AuditWriter:
    """
    Write audit events (append-only)

    Every accepted mutation and every privileged bypass produces an event.
    """

    def __init__(self, repo: Optional[AuditRepository] = None):
        self.repo = repo or get_audit_repository()

    def write_event(
        self,
        event_type: AuditEventType,
        actor: ActorContext,
        report_id: Optional[str] = None,
        case_key: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        timestamp: Optional[datetime] = None,
        correlation_id: Optional[str] = None
    ) -> AuditEvent:
        """Write a single audit event"""
        event = AuditEvent(
            audit_event_id=generate_audit_event_id(),
            report_id=report_id,
            case_key=case_key,
            event_type=event_type,
            actor=actor,
            details=details or {},
            timestamp=timestamp or utc_now(),
            correlation_id=correlation_id or get_correlation_id() or None
        )

        return self.repo.create_event(event)

    def write_admin_override(
        self,
        report_id: str,
        case_key: Optional[str],
        actor: ActorContext,
        override: AdminOverride,
        action: str,
        correlation_id: Optional[str] = None
    ) -> AuditEvent:
        """Write a privileged lock bypass"""
        return self.write_event(
            event_type=AuditEventType.ADMIN_OVERRIDE,
            actor=actor,
            report_id=report_id,
            case_key=case_key,
            details={"action": action, "reason": override.reason},
            timestamp=override.at,
            correlation_id=correlation_id
        )

    def write_rejection(
        self,
        result: EngineResult,
        actor: ActorContext,
        action: str,
        report_id: Optional[str] = None,
        case_key: Optional[str] = None,
        timestamp: Optional[datetime] = None,
        correlation_id: Optional[str] = None
    ) -> AuditEvent:
        """Write a rejected mutation attempt"""
        return self.write_event(
            event_type=AuditEventType.MUTATION_REJECTED,
            actor=actor,
            report_id=report_id,
            case_key=case_key,
            details={
                "action": action,
                "signal": result.signal.value,
                "message": result.message,
            },
            timestamp=timestamp,
            correlation_id=correlation_id
        )
