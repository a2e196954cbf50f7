"""Tests for structured logging"""
import json
import logging

from casecustody.utils.logger import JsonFormatter, get_correlation_id, set_correlation_id


def _record(**extra):
    record = logging.LogRecord("casecustody.test", logging.INFO, __file__, 1, "Report %s sent", ("RPT-1",), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJsonFormatter:

    def test_basic_fields(self):
        payload = json.loads(JsonFormatter().format(_record()))
        assert payload["level"] == "INFO"
        assert payload["logger"] == "casecustody.test"
        assert payload["message"] == "Report RPT-1 sent"
        assert payload["timestamp"].endswith("Z")

    def test_whitelisted_extras_only(self):
        payload = json.loads(JsonFormatter().format(_record(report_id="RPT-1", case_key="7/42", secret="x")))
        assert payload["report_id"] == "RPT-1"
        assert payload["case_key"] == "7/42"
        assert "secret" not in payload

    def test_correlation_id_from_context(self):
        set_correlation_id("COR-test")
        payload = json.loads(JsonFormatter().format(_record()))
        assert payload["correlation_id"] == "COR-test"
        assert get_correlation_id() == "COR-test"
