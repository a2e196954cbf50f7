"""Transition Resolver - Structural validity of report status changes"""
from typing import Dict, List, Optional, Tuple

from ..domain.enums import ReportStatus, ReportEvent
from ..utils.logger import get_logger

logger = get_logger(__name__)


# (from_status, event) -> to_status
TRANSITIONS: Dict[Tuple[ReportStatus, ReportEvent], ReportStatus] = {
    (ReportStatus.DRAFT, ReportEvent.ASSIGN_TASK): ReportStatus.TASK_ASSIGNED,
    (ReportStatus.DRAFT, ReportEvent.AWAIT_INVOICES): ReportStatus.WAITING_FOR_INVOICES,
    (ReportStatus.WAITING_FOR_INVOICES, ReportEvent.INVOICES_RECEIVED): ReportStatus.TASK_ASSIGNED,
    (ReportStatus.TASK_ASSIGNED, ReportEvent.MARK_READY): ReportStatus.READY_TO_SEND,
    (ReportStatus.READY_TO_SEND, ReportEvent.FINALIZE): ReportStatus.SENT,
    (ReportStatus.SENT, ReportEvent.RESEND): ReportStatus.SENT,
}

# Events that produce a snapshot
SEND_EVENTS = frozenset({ReportEvent.FINALIZE, ReportEvent.RESEND})


class TransitionResolver:
    """
    Resolve report status transitions against the fixed transition table.

    Only structural validity is decided here. Role authorization belongs to
    the caller; lock state is checked by the state machine.
    """

    def __init__(self, transitions: Optional[Dict[Tuple[ReportStatus, ReportEvent], ReportStatus]] = None):
        self.transitions = dict(transitions or TRANSITIONS)

    def resolve_target(self, current: ReportStatus, event: ReportEvent) -> Optional[ReportStatus]:
        """
        Resolve the target status for an event

        Returns:
            Target status, or None if the event is not allowed from current
        """
        target = self.transitions.get((current, event))
        if target is None:
            logger.debug(
                f"No transition from {current.value} on {event.value}",
                extra={"status": current.value, "action": event.value}
            )
        return target

    def resolve_event(self, current: ReportStatus, target: ReportStatus) -> Optional[ReportEvent]:
        """Find the event that moves current to target, if the move is allowed"""
        for (from_status, event), to_status in self.transitions.items():
            if from_status == current and to_status == target:
                return event
        return None

    def is_allowed(self, current: ReportStatus, target: ReportStatus) -> bool:
        """Check whether current -> target is in the table"""
        return self.resolve_event(current, target) is not None

    def get_events_for_status(self, current: ReportStatus) -> List[ReportEvent]:
        """All events available from a status"""
        return [event for (from_status, event) in self.transitions if from_status == current]

    def get_allowed_targets(self, current: ReportStatus) -> List[ReportStatus]:
        """All statuses reachable in one step from current"""
        return [
            to_status for (from_status, _), to_status in self.transitions.items()
            if from_status == current
        ]

    @staticmethod
    def is_send_event(event: ReportEvent) -> bool:
        return event in SEND_EVENTS
