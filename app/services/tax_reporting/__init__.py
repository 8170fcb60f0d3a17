"""Tax Reporting Module.

Periodic tax report generation and lifecycle.

Sub-modules:
- period_utils: UTC period arithmetic and period keys
- aggregation: sales/purchase totals per period (SOLL and IST)
- strategies: per (report type, country) report rules
- repository: idempotent report persistence
- lifecycle: status transitions and derived OVERDUE
- generation_service: TaxReportGenerationService
- report_service: TaxReportService (transitions, filings, payments, periods)

Only the dependency-free building blocks are re-exported here; the services
depend on the tax profile service, which itself uses ``period_utils``.
"""
from .aggregation import PeriodAggregation, PeriodTotals, SqlPeriodAggregation
from .period_utils import (
    VatPeriod,
    periods_for_year,
    previous_period,
    quarters_for_year,
    resolve_period_key,
    resolve_quarter,
)

__all__ = [
    "PeriodAggregation",
    "PeriodTotals",
    "SqlPeriodAggregation",
    "VatPeriod",
    "periods_for_year",
    "previous_period",
    "quarters_for_year",
    "resolve_period_key",
    "resolve_quarter",
]
