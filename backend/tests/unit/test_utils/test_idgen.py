"""Tests for ID generation"""
import re

from casecustody.utils.idgen import (
    generate_audit_event_id, generate_correlation_id, generate_id,
    generate_report_id, generate_snapshot_id
)


class TestIdGeneration:

    def test_prefixes(self):
        assert generate_report_id().startswith("RPT-")
        assert generate_snapshot_id().startswith("SNAP-")
        assert generate_audit_event_id().startswith("AUD-")

    def test_unprefixed(self):
        assert re.fullmatch(r"[0-9a-f]{12}", generate_id())

    def test_unique(self):
        assert len({generate_snapshot_id() for _ in range(200)}) == 200

    def test_correlation_id_format(self):
        assert re.fullmatch(r"COR-\d{14}-[0-9a-f]{8}", generate_correlation_id())
