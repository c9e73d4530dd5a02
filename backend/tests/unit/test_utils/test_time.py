"""
Time Utility Tests
"""

from datetime import datetime, timezone

import pytest

from expense_approval.utils.time import (
    days_between, ensure_utc, format_iso, parse_iso, parse_optional_iso
)


def test_naive_datetimes_become_utc():
    assert ensure_utc(datetime(2024, 3, 1)).tzinfo == timezone.utc


def test_format_uses_z_suffix():
    assert format_iso(datetime(2024, 3, 1, 9, 30, tzinfo=timezone.utc)) == "2024-03-01T09:30:00Z"


@pytest.mark.parametrize("value", ["2024-03-01T09:30:00Z", "2024-03-01T09:30:00+00:00", "2024-03-01T09:30:00"])
def test_parse_iso_variants(value):
    assert parse_iso(value) == datetime(2024, 3, 1, 9, 30, tzinfo=timezone.utc)


def test_parse_date_only():
    assert parse_iso("2024-03-01") == datetime(2024, 3, 1, tzinfo=timezone.utc)


def test_parse_optional_passes_none():
    assert parse_optional_iso(None) is None
    assert parse_optional_iso("") is None


def test_parse_invalid_raises_value_error():
    with pytest.raises(ValueError):
        parse_iso("first of march")


def test_days_between_mixed_awareness():
    start = datetime(2024, 3, 1)
    end = datetime(2024, 3, 2, 12, tzinfo=timezone.utc)
    assert days_between(start, end) == 1.5
