"""Tests for snapshot building"""
import pytest
from pydantic import ValidationError

from casecustody.domain.enums import ReportStatus
from casecustody.domain.models import ExpenseItem
from casecustody.engine.snapshot_builder import build_snapshot, seed_content_from_snapshot


@pytest.fixture
def rich_report(make_report):
    return make_report(
        status=ReportStatus.READY_TO_SEND,
        sequence_number=3,
        report_subject="Status update",
        insurer_name="Harel",
        selected_sections=["background", "strategy"],
        content={"background": "Original text"},
        expenses_items=[ExpenseItem(description="Court fee", amount=250.0)],
        expenses_sheet_id="EXP-1",
    )


class TestBuildSnapshot:

    def test_copies_identity_and_content(self, rich_report, t0):
        snapshot = build_snapshot(rich_report, t0, file_name="report-3.pdf")
        assert snapshot.report_id == rich_report.id
        assert snapshot.sequence_number == 3
        assert snapshot.case_key == "7/42"
        assert snapshot.status == ReportStatus.SENT
        assert snapshot.file_name == "report-3.pdf"
        assert snapshot.selected_sections == ("background", "strategy")
        assert snapshot.content == {"background": "Original text"}
        assert snapshot.snapshot_id.startswith("SNAP-")

    def test_live_edits_do_not_reach_snapshot(self, rich_report, t0):
        snapshot = build_snapshot(rich_report, t0)

        rich_report.content["background"] = "Edited later"
        rich_report.selected_sections.append("summary")
        rich_report.expenses_items[0].amount = 999.0

        assert snapshot.content == {"background": "Original text"}
        assert snapshot.selected_sections == ("background", "strategy")
        assert snapshot.expenses_items[0].amount == 250.0

    def test_snapshot_is_frozen(self, rich_report, t0):
        snapshot = build_snapshot(rich_report, t0)
        with pytest.raises(ValidationError):
            snapshot.file_name = "other.pdf"

    def test_revision_index_counts_earlier_sends(self, rich_report, t0):
        first = build_snapshot(rich_report, t0)
        resent = rich_report.model_copy(update={"history": [first]})
        second = build_snapshot(resent, t0, is_resend=True, is_correction=True, correction_reason="typo")
        assert first.revision_index == 0
        assert second.revision_index == 1
        assert second.is_correction is True
        assert second.correction_reason == "typo"

    def test_explicit_snapshot_id(self, rich_report, t0):
        assert build_snapshot(rich_report, t0, snapshot_id="SNAP-fixed").snapshot_id == "SNAP-fixed"


class TestSeedContent:

    def test_seed_is_independent_copy(self, rich_report, t0):
        snapshot = build_snapshot(rich_report, t0)
        seeded = seed_content_from_snapshot(snapshot)

        seeded["content"]["background"] = "New draft"
        seeded["selected_sections"].append("new")

        assert isinstance(seeded["selected_sections"], list)
        assert snapshot.content == {"background": "Original text"}
        assert snapshot.selected_sections == ("background", "strategy")
        assert seeded["expenses_sheet_id"] == "EXP-1"

    def test_seed_fields_are_valid_report_content(self, rich_report, make_report, t0):
        seeded = seed_content_from_snapshot(build_snapshot(rich_report, t0))
        report = make_report(**seeded)
        assert report.insurer_name == "Harel"
        assert report.expenses_items[0].description == "Court fee"
