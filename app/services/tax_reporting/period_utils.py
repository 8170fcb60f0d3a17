"""Period date range calculation utilities.

Maps instants and period keys to tax periods. All periods are half-open UTC
ranges ``[start, end)`` that begin at UTC midnight, so a period's ``end`` is
the next period's ``start``.

Period keys:
- ``"2025-Q3"``: quarter
- ``"2025-07"``: month
- ``"2025"``: full year
"""
import re
from calendar import month_abbr
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import List, Union

from app.core.exceptions import InvalidPeriodKeyError
from app.models.tax_models import FilingFrequency

_QUARTER_KEY = re.compile(r"^(\d{4})-Q(\d)$")
_MONTH_KEY = re.compile(r"^(\d{4})-(\d{2})$")
_YEAR_KEY = re.compile(r"^(\d{4})$")

_MIN_YEAR = 1900
_MAX_YEAR = 9998

InstantLike = Union[datetime, date, str]


@dataclass(frozen=True)
class VatPeriod:
    """A tax period. ``end`` is exclusive."""

    key: str
    label: str
    start: datetime
    end: datetime

    def contains(self, instant: datetime) -> bool:
        return self.start <= to_utc(instant) < self.end

    @property
    def last_day(self) -> date:
        """Calendar date of the last day inside the period."""
        return (self.end - timedelta(days=1)).date()

    @property
    def duration_days(self) -> int:
        return (self.end - self.start).days


def _utc_midnight(year: int, month: int, day: int = 1) -> datetime:
    return datetime(year, month, day, tzinfo=timezone.utc)


def to_utc(value: InstantLike) -> datetime:
    """Normalize a datetime, date or ISO-8601 string to an aware UTC datetime.

    Naive datetimes are taken to be UTC already; offset-aware ones are
    converted. Dates map to UTC midnight.
    """
    if isinstance(value, str):
        text = value.strip()
        try:
            value = datetime.fromisoformat(text)
        except ValueError as e:
            raise ValueError(f"Invalid ISO-8601 instant: {value!r}") from e
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, date):
        return _utc_midnight(value.year, value.month, value.day)
    raise TypeError(f"Unsupported instant type: {type(value).__name__}")


def _check_year(key: str, year: int) -> None:
    if not _MIN_YEAR <= year <= _MAX_YEAR:
        raise InvalidPeriodKeyError(key, f"year must be between {_MIN_YEAR} and {_MAX_YEAR}")


def quarter_period(year: int, quarter: int) -> VatPeriod:
    if not 1 <= quarter <= 4:
        raise InvalidPeriodKeyError(f"{year}-Q{quarter}", "quarter must be 1-4")
    start_month = (quarter - 1) * 3 + 1
    start = _utc_midnight(year, start_month)
    end = _utc_midnight(year + 1, 1) if quarter == 4 else _utc_midnight(year, start_month + 3)
    return VatPeriod(key=f"{year}-Q{quarter}", label=f"Q{quarter} {year}", start=start, end=end)


def month_period(year: int, month: int) -> VatPeriod:
    if not 1 <= month <= 12:
        raise InvalidPeriodKeyError(f"{year}-{month:02d}", "month must be 01-12")
    start = _utc_midnight(year, month)
    end = _utc_midnight(year + 1, 1) if month == 12 else _utc_midnight(year, month + 1)
    return VatPeriod(key=f"{year}-{month:02d}", label=f"{month_abbr[month]} {year}", start=start, end=end)


def year_period(year: int) -> VatPeriod:
    return VatPeriod(
        key=str(year),
        label=str(year),
        start=_utc_midnight(year, 1),
        end=_utc_midnight(year + 1, 1),
    )


def resolve_period_key(key: str) -> VatPeriod:
    """Parse a quarter, month or year key into its period.

    Raises:
        InvalidPeriodKeyError: If the key is malformed or out of range
    """
    if not isinstance(key, str):
        raise InvalidPeriodKeyError(str(key), "key must be a string")
    text = key.strip()

    match = _QUARTER_KEY.match(text)
    if match:
        year, quarter = int(match.group(1)), int(match.group(2))
        _check_year(key, year)
        if not 1 <= quarter <= 4:
            raise InvalidPeriodKeyError(key, "quarter must be 1-4")
        return quarter_period(year, quarter)

    match = _MONTH_KEY.match(text)
    if match:
        year, month = int(match.group(1)), int(match.group(2))
        _check_year(key, year)
        if not 1 <= month <= 12:
            raise InvalidPeriodKeyError(key, "month must be 01-12")
        return month_period(year, month)

    match = _YEAR_KEY.match(text)
    if match:
        year = int(match.group(1))
        _check_year(key, year)
        return year_period(year)

    raise InvalidPeriodKeyError(key, "expected YYYY-Qn, YYYY-MM or YYYY")


def _instant_or_key(value: InstantLike, expected: str) -> datetime:
    # Strings that are neither a valid key nor an instant are malformed keys
    if not isinstance(value, str):
        return to_utc(value)
    try:
        return to_utc(value)
    except ValueError as e:
        raise InvalidPeriodKeyError(value, expected) from e


def resolve_quarter(value: InstantLike) -> VatPeriod:
    """Return the UTC quarter containing ``value``.

    ``value`` may be a datetime, a date, an ISO-8601 instant string or a
    quarter key such as ``"2025-Q3"``.
    """
    if isinstance(value, str) and _QUARTER_KEY.match(value.strip()):
        return resolve_period_key(value)
    instant = _instant_or_key(value, "expected YYYY-Qn or an ISO-8601 instant")
    return quarter_period(instant.year, (instant.month - 1) // 3 + 1)


def resolve_month(value: InstantLike) -> VatPeriod:
    if isinstance(value, str) and _MONTH_KEY.match(value.strip()):
        return resolve_period_key(value)
    instant = _instant_or_key(value, "expected YYYY-MM or an ISO-8601 instant")
    return month_period(instant.year, instant.month)


def quarters_for_year(year: int) -> List[VatPeriod]:
    return [quarter_period(year, q) for q in range(1, 5)]


def months_for_year(year: int) -> List[VatPeriod]:
    return [month_period(year, m) for m in range(1, 13)]


def periods_for_year(year: int, frequency: str = FilingFrequency.QUARTERLY.value) -> List[VatPeriod]:
    """All filing periods of ``year`` for a filing frequency."""
    if frequency == FilingFrequency.MONTHLY.value:
        return months_for_year(year)
    if frequency == FilingFrequency.YEARLY.value:
        return [year_period(year)]
    return quarters_for_year(year)


def previous_period(value: InstantLike, frequency: str = FilingFrequency.QUARTERLY.value) -> VatPeriod:
    """The filing period that ended most recently before ``value``."""
    instant = to_utc(value)
    if frequency == FilingFrequency.MONTHLY.value:
        current = month_period(instant.year, instant.month)
        return resolve_month(current.start - timedelta(days=1))
    if frequency == FilingFrequency.YEARLY.value:
        return year_period(instant.year - 1)
    current = resolve_quarter(instant)
    return resolve_quarter(current.start - timedelta(days=1))


def period_for_range(start: datetime, end: datetime, label: str | None = None) -> VatPeriod:
    """Wrap an arbitrary ``[start, end)`` range, keyed by its start date."""
    start_utc, end_utc = to_utc(start), to_utc(end)
    if end_utc <= start_utc:
        raise ValueError("period_end must be after period_start")
    key = f"{start_utc.date().isoformat()}..{end_utc.date().isoformat()}"
    return VatPeriod(key=key, label=label or key, start=start_utc, end=end_utc)
