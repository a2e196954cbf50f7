"""Tests for the report state machine"""
from datetime import timedelta

import pytest

from casecustody.domain.enums import LockType, ReportEvent, ReportStatus, Signal
from casecustody.domain.errors import InvalidTransitionError, ReportLockedError, ValidationError
from casecustody.domain.models import AdminOverride, ManualLock


def _days(n):
    return timedelta(days=n)


@pytest.fixture
def ready_report(make_report):
    return make_report(status=ReportStatus.READY_TO_SEND, insurer_name="Harel", content={"intro": "v1"})


class TestCreateReport:

    def test_first_report_of_case(self, state_machine, lawyer, t0):
        result = state_machine.create_report("RPT-new", " 7 - 42 ", [], None, t0, lawyer, insurer_name="Harel")

        assert result.signal == Signal.OK
        report = result.report
        assert report.case_key == "7/42"
        assert report.status == ReportStatus.DRAFT
        assert report.sequence_number == 1
        assert report.owner_id == lawyer.user_id
        assert result.case_folder.case_key == "7/42"
        assert result.case_folder.report_ids == ["RPT-new"]

    def test_numbered_after_sent_reports(self, state_machine, make_report, lawyer, t0):
        reports = [
            make_report(status=ReportStatus.SENT, sequence_number=1),
            make_report(status=ReportStatus.DRAFT, sequence_number=2),
        ]
        result = state_machine.create_report("RPT-new", "7/42", reports, None, t0, lawyer)
        assert result.report.sequence_number == 2

    def test_caseless_report(self, state_machine, lawyer, t0):
        result = state_machine.create_report("RPT-new", "   ", [], None, t0, lawyer)
        assert result.ok
        assert result.report.case_key is None
        assert result.case_folder is None

    def test_closed_case_rejects_new_reports(self, state_machine, make_folder, lawyer, t0):
        folder = make_folder(closed_at=t0, closed_by_user_id="u-admin")
        result = state_machine.create_report("RPT-new", "7/42", [], folder, t0, lawyer)
        assert result.signal == Signal.CASE_CLOSED
        assert result.report is None

    def test_unknown_fields_raise(self, state_machine, lawyer, t0):
        with pytest.raises(ValidationError):
            state_machine.create_report("RPT-new", "7/42", [], None, t0, lawyer, status="SENT")

    def test_seeded_from_snapshot(self, state_machine, ready_report, lawyer, t0):
        sent = state_machine.finalize(ready_report, None, t0).snapshot
        result = state_machine.create_report("RPT-new", "7/42", [], None, t0, lawyer, seed=sent, report_subject="Update")

        assert result.report.content == {"intro": "v1"}
        assert result.report.insurer_name == "Harel"
        assert result.report.report_subject == "Update"
        assert result.report.history == []


class TestEdit:

    def test_edit_applies_fields(self, state_machine, make_report, t0):
        report = make_report()
        result = state_machine.edit(report, {"insurer_name": "Menora", "content": {"a": "b"}}, None, t0 + _days(1))

        assert result.ok
        assert result.report.insurer_name == "Menora"
        assert result.report.content == {"a": "b"}
        assert result.report.updated_at == t0 + _days(1)
        assert report.insurer_name == ""

    def test_engine_owned_fields_not_editable(self, state_machine, make_report, t0):
        with pytest.raises(ValidationError):
            state_machine.edit(make_report(), {"sequence_number": 9}, None, t0)

    def test_locked_report_rejects_edit(self, state_machine, make_report, t0):
        report = make_report(status=ReportStatus.SENT, first_sent_at=t0, content={"a": "old"})
        result = state_machine.edit(report, {"content": {"a": "new"}}, None, t0 + _days(36))

        assert result.signal == Signal.LOCKED
        assert result.report is report
        assert result.lock_state.lock_type == LockType.AUTO
        with pytest.raises(ReportLockedError):
            result.raise_for_signal()

    def test_override_bypasses_auto_lock_and_is_recorded(self, state_machine, make_report, t0):
        now = t0 + _days(36)
        report = make_report(status=ReportStatus.SENT, first_sent_at=t0)
        override = AdminOverride(at=now, by_id="u-admin", reason="court order")

        result = state_machine.edit(report, {"insurer_name": "Menora"}, None, now, override=override)

        assert result.ok
        assert result.report.admin_override == override

    def test_override_not_recorded_when_unlocked(self, state_machine, make_report, t0):
        override = AdminOverride(at=t0, by_id="u-admin", reason="not needed")
        result = state_machine.edit(make_report(), {"insurer_name": "Menora"}, None, t0, override=override)
        assert result.report.admin_override is None

    def test_stored_override_does_not_unlock_later(self, state_machine, make_report, t0):
        earlier = AdminOverride(at=t0 + _days(36), by_id="u-admin", reason="once")
        report = make_report(status=ReportStatus.SENT, first_sent_at=t0, admin_override=earlier)
        result = state_machine.edit(report, {"insurer_name": "X"}, None, t0 + _days(37))
        assert result.signal == Signal.LOCKED

    def test_override_cannot_reopen_closed_case(self, state_machine, make_report, make_folder, t0):
        folder = make_folder(closed_at=t0, closed_by_user_id="u-admin")
        override = AdminOverride(at=t0, by_id="u-admin", reason="please")
        result = state_machine.edit(make_report(), {"insurer_name": "X"}, folder, t0, override=override)
        assert result.signal == Signal.CASE_CLOSED

    def test_edit_refreshes_folder_cache(self, state_machine, make_report, make_folder, t0):
        result = state_machine.edit(make_report(), {"plaintiff_name": "Cohen"}, make_folder(), t0)
        assert result.case_folder.plaintiff_name == "Cohen"


class TestTransitions:

    def test_walk_to_ready(self, state_machine, make_report, t0):
        report = make_report()
        for event, expected in [
            (ReportEvent.AWAIT_INVOICES, ReportStatus.WAITING_FOR_INVOICES),
            (ReportEvent.INVOICES_RECEIVED, ReportStatus.TASK_ASSIGNED),
            (ReportEvent.MARK_READY, ReportStatus.READY_TO_SEND),
        ]:
            result = state_machine.transition(report, event, None, t0)
            assert result.ok
            report = result.report
            assert report.status == expected

    def test_transition_by_target_status(self, state_machine, make_report, t0):
        result = state_machine.transition(make_report(), ReportStatus.TASK_ASSIGNED, None, t0)
        assert result.report.status == ReportStatus.TASK_ASSIGNED

    def test_invalid_transition(self, state_machine, make_report, t0):
        report = make_report()
        result = state_machine.transition(report, ReportStatus.SENT, None, t0)

        assert result.signal == Signal.INVALID_TRANSITION
        assert result.report is report
        with pytest.raises(InvalidTransitionError):
            result.raise_for_signal()

    def test_deleted_report_cannot_move(self, state_machine, make_report, t0):
        report = make_report(deleted_at=t0, deleted_by="u-1")
        result = state_machine.transition(report, ReportEvent.ASSIGN_TASK, None, t0)
        assert result.signal == Signal.INVALID_TRANSITION

    def test_manual_lock_blocks_transition(self, state_machine, make_report, t0):
        report = make_report(manual_lock=ManualLock(at=t0, by_id="u-admin"))
        result = state_machine.transition(report, ReportEvent.ASSIGN_TASK, None, t0)
        assert result.signal == Signal.LOCKED


class TestFinalizeAndResend:

    def test_finalize_sets_first_send_and_appends(self, state_machine, ready_report, t0):
        result = state_machine.finalize(ready_report, None, t0, file_name="r1.pdf")

        report = result.report
        assert report.status == ReportStatus.SENT
        assert report.first_sent_at == t0
        assert len(report.history) == 1
        assert report.history[0] == result.snapshot
        assert result.snapshot.is_resend is False

        folder = result.case_folder
        assert folder.case_key == "7/42"
        assert [e.entry_id for e in folder.sent_reports] == [result.snapshot.snapshot_id]
        assert folder.sent_reports[0].file_name == "r1.pdf"

    def test_history_and_folder_log_do_not_share_content(self, state_machine, ready_report, t0):
        result = state_machine.finalize(ready_report, None, t0)
        entry = result.case_folder.sent_reports[-1]

        result.report.history[-1].content["intro"] = "rewritten"

        assert entry.snapshot is not result.report.history[-1]
        assert entry.snapshot.content == {"intro": "v1"}

    def test_last_sent_at_follows_latest_send(self, state_machine, ready_report, t0):
        sent = state_machine.finalize(ready_report, None, t0).report
        assert sent.last_sent_at == t0

        resent = state_machine.resend(sent, None, t0 + _days(3)).report
        assert resent.first_sent_at == t0
        assert resent.last_sent_at == t0 + _days(3)

    def test_finalize_does_not_modify_inputs(self, state_machine, ready_report, make_folder, t0):
        folder = make_folder()
        state_machine.finalize(ready_report, folder, t0)
        assert ready_report.status == ReportStatus.READY_TO_SEND
        assert ready_report.history == []
        assert folder.sent_reports == []

    def test_finalize_caseless_report(self, state_machine, make_report, t0):
        report = make_report(case_key=None, status=ReportStatus.READY_TO_SEND)
        result = state_machine.finalize(report, None, t0)
        assert result.ok
        assert result.case_folder is None
        assert len(result.report.history) == 1

    def test_finalize_blocked_by_closed_case(self, state_machine, ready_report, make_folder, t0):
        folder = make_folder(closed_at=t0, closed_by_user_id="u-admin")
        result = state_machine.finalize(ready_report, folder, t0)
        assert result.signal == Signal.CASE_CLOSED

    def test_resend_keeps_number_and_first_send(self, state_machine, ready_report, t0):
        sent = state_machine.finalize(ready_report, None, t0)
        resent = state_machine.resend(
            sent.report, sent.case_folder, t0 + _days(10),
            is_correction=True, correction_reason="wrong amount"
        )

        report = resent.report
        assert resent.ok
        assert report.sequence_number == ready_report.sequence_number
        assert report.first_sent_at == t0
        assert len(report.history) == 2
        assert resent.snapshot.is_resend is True
        assert resent.snapshot.is_correction is True
        assert resent.snapshot.correction_reason == "wrong amount"
        assert resent.snapshot.revision_index == 1
        assert len(resent.case_folder.sent_reports) == 2
        assert report.last_sent_at == t0 + _days(10)

    def test_resend_after_window_needs_override(self, state_machine, ready_report, t0):
        sent = state_machine.finalize(ready_report, None, t0)
        later = t0 + _days(40)

        blocked = state_machine.resend(sent.report, sent.case_folder, later)
        assert blocked.signal == Signal.LOCKED

        override = AdminOverride(at=later, by_id="u-admin", reason="insurer request")
        allowed = state_machine.resend(sent.report, sent.case_folder, later, override=override)
        assert allowed.ok
        assert allowed.report.admin_override == override
        # The first send still anchors the window
        assert allowed.report.first_sent_at == t0

    def test_resend_from_draft_invalid(self, state_machine, make_report, t0):
        result = state_machine.resend(make_report(), None, t0)
        assert result.signal == Signal.INVALID_TRANSITION


class TestLockControls:

    def test_manual_lock_and_unlock(self, state_machine, make_report, admin, t0):
        locked = state_machine.lock_manually(make_report(), None, t0, admin, reason="hold")
        assert locked.lock_state.lock_type == LockType.MANUAL
        assert locked.report.manual_lock.by_id == admin.user_id

        unlocked = state_machine.unlock_manually(locked.report, None, t0)
        assert unlocked.report.manual_lock is None
        assert unlocked.lock_state.is_locked is False

    def test_second_lock_keeps_first(self, state_machine, make_report, admin, t0):
        first = state_machine.lock_manually(make_report(), None, t0, admin, reason="first").report
        again = state_machine.lock_manually(first, None, t0 + _days(1), admin, reason="second")
        assert again.details["already_locked"] is True
        assert again.report.manual_lock.reason == "first"

    def test_lock_controls_rejected_on_closed_case(self, state_machine, make_report, make_folder, admin, t0):
        folder = make_folder(closed_at=t0, closed_by_user_id="u-admin")
        report = make_report(status=ReportStatus.SENT, first_sent_at=t0)
        assert state_machine.lock_manually(report, folder, t0, admin).signal == Signal.CASE_CLOSED
        assert state_machine.unlock_manually(report, folder, t0).signal == Signal.CASE_CLOSED
        assert state_machine.extend_lock(report, folder, t0, admin, 5).signal == Signal.CASE_CLOSED

    def test_extension_unlocks_auto_locked_report(self, state_machine, make_report, admin, t0):
        report = make_report(status=ReportStatus.SENT, first_sent_at=t0)
        now = t0 + _days(36)
        result = state_machine.extend_lock(report, None, now, admin, 10, reason="appeal")

        assert result.ok
        assert result.report.lock_extensions[0].days == 10
        assert result.lock_state.is_locked is False
        assert result.lock_state.auto_lock_at == t0 + _days(45)

    def test_extension_must_be_positive(self, state_machine, make_report, admin, t0):
        with pytest.raises(ValidationError):
            state_machine.extend_lock(make_report(), None, t0, admin, 0)


class TestSoftDelete:

    def test_soft_delete_and_restore(self, state_machine, make_report, lawyer, t0):
        deleted = state_machine.soft_delete(make_report(), None, t0, lawyer)
        assert deleted.report.deleted_at == t0
        assert deleted.report.deleted_by == lawyer.user_id

        restored = state_machine.restore(deleted.report, None, t0 + _days(1))
        assert restored.report.is_deleted is False

    def test_locked_report_cannot_be_deleted(self, state_machine, make_report, lawyer, t0):
        report = make_report(status=ReportStatus.SENT, first_sent_at=t0)
        result = state_machine.soft_delete(report, None, t0 + _days(40), lawyer)
        assert result.signal == Signal.LOCKED

    def test_delete_twice_is_noop(self, state_machine, make_report, lawyer, t0):
        report = make_report(deleted_at=t0, deleted_by="u-1")
        result = state_machine.soft_delete(report, None, t0 + _days(1), lawyer)
        assert result.details["already_deleted"] is True
        assert result.report.deleted_at == t0
