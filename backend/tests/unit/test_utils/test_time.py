"""Tests for time utilities"""
from datetime import datetime, timedelta, timezone

from casecustody.utils.time import (
    add_days, days_until_ceil, elapsed_days, elapsed_hours, ensure_utc,
    format_iso, latest, parse_iso
)

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


class TestTimeUtils:

    def test_naive_treated_as_utc(self):
        assert ensure_utc(datetime(2024, 1, 1)) == T0

    def test_offsets_converted(self):
        local = datetime(2024, 1, 1, 2, 0, tzinfo=timezone(timedelta(hours=2)))
        assert ensure_utc(local) == T0

    def test_iso_round_trip(self):
        assert format_iso(T0) == "2024-01-01T00:00:00Z"
        assert parse_iso("2024-01-01T00:00:00Z") == T0
        assert parse_iso("2024-01-01T02:00:00+02:00") == T0

    def test_elapsed(self):
        assert elapsed_days(T0, T0 + timedelta(days=2, hours=12)) == 2.5
        assert elapsed_hours(T0, T0 + timedelta(days=1)) == 24
        assert elapsed_days(T0 + timedelta(days=1), T0) == -1

    def test_days_until_ceil(self):
        assert days_until_ceil(T0 + timedelta(days=3), T0) == 3
        assert days_until_ceil(T0 + timedelta(days=2, hours=1), T0) == 3
        assert days_until_ceil(T0, T0 + timedelta(days=1)) == 0

    def test_add_days_and_latest(self):
        assert add_days(T0, 35) == T0 + timedelta(days=35)
        assert latest(None, T0, T0 + timedelta(hours=1)) == T0 + timedelta(hours=1)
        assert latest(None, None) is None
