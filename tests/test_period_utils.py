"""Tests for period resolution."""
from datetime import date, datetime, timezone

import pytest

from app.core.exceptions import InvalidPeriodKeyError
from app.services.tax_reporting.period_utils import (
    period_for_range,
    periods_for_year,
    previous_period,
    resolve_month,
    resolve_period_key,
    resolve_quarter,
    to_utc,
)


def _utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


def test_quarter_boundaries_are_half_open():
    q4 = resolve_period_key("2025-Q4")
    assert q4.start == _utc(2025, 10, 1)
    assert q4.end == _utc(2026, 1, 1)
    assert q4.label == "Q4 2025"
    assert q4.last_day == date(2025, 12, 31)
    assert q4.contains(_utc(2025, 12, 31, 23, 59, 59))
    assert not q4.contains(_utc(2026, 1, 1))


def test_offset_instant_resolves_in_utc():
    # 23:30 at UTC-5 on Mar 31 is already Apr 1 in UTC
    assert resolve_quarter("2025-03-31T23:30:00-05:00").key == "2025-Q2"
    assert resolve_quarter("2025-03-31T23:30:00Z").key == "2025-Q1"


def test_quarter_key_round_trip():
    for key in ("2024-Q1", "2024-Q2", "2024-Q3", "2024-Q4"):
        assert resolve_quarter(key).key == key
        period = resolve_period_key(key)
        assert resolve_quarter(period.start).key == key


def test_month_and_year_keys():
    feb = resolve_period_key("2024-02")
    assert feb.start == _utc(2024, 2, 1)
    assert feb.end == _utc(2024, 3, 1)
    assert feb.label == "Feb 2024"
    assert feb.duration_days == 29

    year = resolve_period_key("2025")
    assert year.start == _utc(2025, 1, 1)
    assert year.end == _utc(2026, 1, 1)
    assert year.duration_days == 365

    assert resolve_month(date(2025, 12, 5)).end == _utc(2026, 1, 1)


@pytest.mark.parametrize("key", ["2025-Q5", "2025-Q0", "2025-13", "2025-00", "25-Q1", "2025Q1", "", "Q1-2025"])
def test_invalid_keys_raise(key):
    with pytest.raises(InvalidPeriodKeyError) as exc:
        resolve_period_key(key)
    assert exc.value.status_code == 400


@pytest.mark.parametrize("value", ["2025-Q", "2025-Qx", "2025-Q12", "25-Q1", "2025-Q5", "not a date"])
def test_resolve_quarter_rejects_malformed_keys(value):
    with pytest.raises(InvalidPeriodKeyError) as exc:
        resolve_quarter(value)
    assert exc.value.code == "PER001"


@pytest.mark.parametrize("value", ["2025-13", "May 2025", "2025-M5"])
def test_resolve_month_rejects_malformed_keys(value):
    with pytest.raises(InvalidPeriodKeyError):
        resolve_month(value)


def test_naive_datetime_taken_as_utc():
    assert to_utc(datetime(2025, 1, 1, 0, 0)) == _utc(2025, 1, 1)


def test_periods_for_year_by_frequency():
    assert [p.key for p in periods_for_year(2025)] == ["2025-Q1", "2025-Q2", "2025-Q3", "2025-Q4"]
    assert len(periods_for_year(2025, "MONTHLY")) == 12
    assert [p.key for p in periods_for_year(2025, "YEARLY")] == ["2025"]


def test_previous_period():
    assert previous_period(_utc(2025, 4, 1, 2), "QUARTERLY").key == "2025-Q1"
    assert previous_period(_utc(2025, 1, 1, 2), "QUARTERLY").key == "2024-Q4"
    assert previous_period(_utc(2025, 1, 1, 2), "MONTHLY").key == "2024-12"
    assert previous_period(_utc(2025, 7, 1), "YEARLY").key == "2024"


def test_period_for_range_rejects_empty_range():
    with pytest.raises(ValueError):
        period_for_range(_utc(2025, 2, 1), _utc(2025, 2, 1))
    period = period_for_range(_utc(2025, 1, 1), _utc(2025, 4, 1), "Q1 2025")
    assert period.label == "Q1 2025"
