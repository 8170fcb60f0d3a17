"""Report strategy contract.

A strategy knows, for one (report type, country) pair, whether a tenant owes
the report for a period, how much it amounts to and when it is due.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from functools import cached_property

from app.core.config import settings
from app.models.tax_meta import ReportMeta
from app.models.tax_models import TaxProfile
from app.services.tax_reporting.aggregation import PeriodAggregation, PeriodTotals
from app.services.tax_reporting.period_utils import VatPeriod


@dataclass
class ReportContext:
    """Everything a strategy may look at for one tenant and period."""

    tenant_id: str
    period: VatPeriod
    profile: TaxProfile
    aggregation: PeriodAggregation
    now: datetime

    @property
    def is_full_year(self) -> bool:
        return self.period.duration_days > settings.TAX_FULL_YEAR_MIN_DAYS

    @cached_property
    def totals(self) -> PeriodTotals:
        return self.aggregation.get_totals(
            self.tenant_id,
            self.period.start,
            self.period.end,
            self.profile.vat_accounting_method,
        )


@dataclass(frozen=True)
class ReportLineDraft:
    section: str
    label: str
    net_amount_cents: int = 0
    tax_amount_cents: int = 0


@dataclass
class GeneratedReport:
    # None when the engine does not compute the amount (e.g. income tax)
    amount_due_cents: int | None
    meta: ReportMeta
    lines: list[ReportLineDraft] = field(default_factory=list)


class ReportStrategy(ABC):
    report_type: str
    country_code: str

    @abstractmethod
    def is_required(self, ctx: ReportContext) -> bool:
        raise NotImplementedError

    @abstractmethod
    def generate(self, ctx: ReportContext) -> GeneratedReport:
        raise NotImplementedError

    @abstractmethod
    def get_due_date(self, period_end: datetime, ctx: ReportContext) -> datetime:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.report_type}/{self.country_code}>"


def last_day_of_period(period_end: datetime) -> date:
    """Calendar day before an exclusive period end."""
    return (period_end - timedelta(days=1)).date()


def day_of_following_month(period_end: datetime, day: int) -> datetime:
    """``day`` of the month after the period's last month, at UTC midnight."""
    last = last_day_of_period(period_end)
    year, month = (last.year + 1, 1) if last.month == 12 else (last.year, last.month + 1)
    return datetime(year, month, day, tzinfo=timezone.utc)


def annual_return_due_date(period_end: datetime, uses_tax_advisor: bool) -> datetime:
    """July 31 of the following year, or Feb 28 two years out with an advisor."""
    tax_year = last_day_of_period(period_end).year
    if uses_tax_advisor:
        return datetime(tax_year + 2, 2, 28, tzinfo=timezone.utc)
    return datetime(tax_year + 1, 7, 31, tzinfo=timezone.utc)
