"""Audit Repository - Data access for audit events"""
from typing import Any, Dict, List, Optional
from pymongo.collection import Collection
from pymongo import DESCENDING

from .mongo_client import get_collection, AUDIT_EVENTS_COLLECTION
from ..config.settings import settings
from ..domain.models import AuditEvent
from ..domain.enums import AuditEventType
from ..utils.time import ensure_utc
from ..utils.logger import get_logger

logger = get_logger(__name__)


class AuditRepository:
    """Repository for audit event operations (append-only)"""

    def __init__(self):
        self._audit_events: Collection = get_collection(AUDIT_EVENTS_COLLECTION)

    def create_event(self, event: AuditEvent) -> AuditEvent:
        """Create an audit event (append-only)"""
        doc = event.model_dump(mode="json")
        doc["_id"] = event.audit_event_id

        self._audit_events.insert_one(doc)
        logger.info(
            f"Created audit event: {event.event_type.value}",
            extra={
                "report_id": event.report_id,
                "case_key": event.case_key,
                "actor_id": event.actor.user_id
            }
        )
        return event

    def get_events_for_report(
        self,
        report_id: str,
        event_types: Optional[List[AuditEventType]] = None,
        skip: int = 0,
        limit: int = 100
    ) -> List[AuditEvent]:
        """Get audit events for a report, newest first"""
        query: Dict[str, Any] = {"report_id": report_id}

        if event_types:
            query["event_type"] = {"$in": [et.value for et in event_types]}

        cursor = self._audit_events.find(query).sort("timestamp", DESCENDING).skip(skip).limit(limit)
        return self._to_events(cursor)

    def get_events_for_case(self, case_key: str, limit: int = 100) -> List[AuditEvent]:
        """Get audit events for a case, newest first"""
        cursor = self._audit_events.find({"case_key": case_key}).sort("timestamp", DESCENDING).limit(limit)
        return self._to_events(cursor)

    def get_events_by_correlation_id(self, correlation_id: str) -> List[AuditEvent]:
        """Get audit events by correlation ID"""
        cursor = self._audit_events.find(
            {"correlation_id": correlation_id}
        ).sort("timestamp", DESCENDING)
        return self._to_events(cursor)

    def count_events_for_report(self, report_id: str) -> int:
        """Count audit events for a report"""
        return self._audit_events.count_documents({"report_id": report_id})

    @staticmethod
    def _to_events(cursor) -> List[AuditEvent]:
        events = []
        for doc in cursor:
            doc.pop("_id", None)
            events.append(AuditEvent.model_validate(doc))
        return events


class InMemoryAuditRepository(AuditRepository):
    """Append-only audit log kept in process memory"""

    def __init__(self):
        self._events: List[AuditEvent] = []

    @property
    def events(self) -> List[AuditEvent]:
        """All events in write order"""
        return list(self._events)

    def create_event(self, event: AuditEvent) -> AuditEvent:
        self._events.append(event.model_copy(deep=True))
        logger.debug(
            f"Recorded audit event: {event.event_type.value}",
            extra={"report_id": event.report_id, "case_key": event.case_key}
        )
        return event

    def _newest_first(self, events: List[AuditEvent]) -> List[AuditEvent]:
        return sorted(events, key=lambda e: ensure_utc(e.timestamp), reverse=True)

    def get_events_for_report(
        self,
        report_id: str,
        event_types: Optional[List[AuditEventType]] = None,
        skip: int = 0,
        limit: int = 100
    ) -> List[AuditEvent]:
        matches = [
            e for e in self._events
            if e.report_id == report_id and (not event_types or e.event_type in event_types)
        ]
        return self._newest_first(matches)[skip:skip + limit]

    def get_events_for_case(self, case_key: str, limit: int = 100) -> List[AuditEvent]:
        return self._newest_first([e for e in self._events if e.case_key == case_key])[:limit]

    def get_events_by_correlation_id(self, correlation_id: str) -> List[AuditEvent]:
        return self._newest_first([e for e in self._events if e.correlation_id == correlation_id])

    def count_events_for_report(self, report_id: str) -> int:
        return sum(1 for e in self._events if e.report_id == report_id)


def get_audit_repository() -> AuditRepository:
    """Build the audit repository matching settings.storage_backend"""
    if settings.uses_memory_store:
        return InMemoryAuditRepository()
    return AuditRepository()
