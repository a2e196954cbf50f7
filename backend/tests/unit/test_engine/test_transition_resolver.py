"""Tests for the transition table"""
import pytest

from casecustody.domain.enums import ReportEvent, ReportStatus
from casecustody.engine.transition_resolver import TransitionResolver


@pytest.fixture
def resolver():
    return TransitionResolver()


class TestTransitionResolver:

    @pytest.mark.parametrize("current, event, target", [
        (ReportStatus.DRAFT, ReportEvent.ASSIGN_TASK, ReportStatus.TASK_ASSIGNED),
        (ReportStatus.DRAFT, ReportEvent.AWAIT_INVOICES, ReportStatus.WAITING_FOR_INVOICES),
        (ReportStatus.WAITING_FOR_INVOICES, ReportEvent.INVOICES_RECEIVED, ReportStatus.TASK_ASSIGNED),
        (ReportStatus.TASK_ASSIGNED, ReportEvent.MARK_READY, ReportStatus.READY_TO_SEND),
        (ReportStatus.READY_TO_SEND, ReportEvent.FINALIZE, ReportStatus.SENT),
        (ReportStatus.SENT, ReportEvent.RESEND, ReportStatus.SENT),
    ])
    def test_allowed_transitions(self, resolver, current, event, target):
        assert resolver.resolve_target(current, event) == target
        assert resolver.resolve_event(current, target) == event

    @pytest.mark.parametrize("current, target", [
        (ReportStatus.DRAFT, ReportStatus.SENT),
        (ReportStatus.DRAFT, ReportStatus.READY_TO_SEND),
        (ReportStatus.SENT, ReportStatus.DRAFT),
        (ReportStatus.READY_TO_SEND, ReportStatus.TASK_ASSIGNED),
        (ReportStatus.WAITING_FOR_INVOICES, ReportStatus.SENT),
    ])
    def test_disallowed_transitions(self, resolver, current, target):
        assert resolver.is_allowed(current, target) is False

    def test_finalize_only_from_ready(self, resolver):
        assert resolver.resolve_target(ReportStatus.TASK_ASSIGNED, ReportEvent.FINALIZE) is None

    def test_events_for_draft(self, resolver):
        assert set(resolver.get_events_for_status(ReportStatus.DRAFT)) == {
            ReportEvent.ASSIGN_TASK, ReportEvent.AWAIT_INVOICES
        }

    def test_sent_only_resends(self, resolver):
        assert resolver.get_allowed_targets(ReportStatus.SENT) == [ReportStatus.SENT]

    def test_send_events(self):
        assert TransitionResolver.is_send_event(ReportEvent.FINALIZE)
        assert TransitionResolver.is_send_event(ReportEvent.RESEND)
        assert not TransitionResolver.is_send_event(ReportEvent.MARK_READY)
