"""
VAT Period and Summary Routes.

Period calendar, per-period totals and line items, and the dashboard summary.
"""
from __future__ import annotations

import logging
from typing import Literal

from fastapi import APIRouter, Query

from app.api.dependencies import DbDep, TenantDep
from app.db.base_class import utcnow
from app.services.tax_reporting.report_service import TaxReportService
from app.services.tax_summary_service import TaxSummaryService

from .schemas import (
    PeriodDetailRowOut,
    PeriodDetailsOut,
    PeriodSummaryOut,
    PeriodTotalsOut,
    TaxSummaryOut,
    VatPeriodOut,
    VatPeriodsResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/periods", response_model=VatPeriodsResponse)
def list_vat_periods(
    tenant_id: TenantDep,
    db: DbDep,
    year: int | None = Query(None, ge=1900, le=9998, description="Defaults to the current year"),
):
    """VAT filing periods of a year with the status of each return."""
    year = year or utcnow().year
    frequency, periods = TaxReportService(db).get_vat_periods_for_year(tenant_id, year)
    return VatPeriodsResponse(
        year=year,
        frequency=frequency,
        periods=[VatPeriodOut.model_validate(p, from_attributes=True) for p in periods],
    )


@router.get("/periods/{period_key}", response_model=PeriodSummaryOut)
def get_period_summary(period_key: str, tenant_id: TenantDep, db: DbDep):
    summary = TaxReportService(db).get_period_summary(tenant_id, period_key)
    return PeriodSummaryOut(
        key=summary.key,
        label=summary.label,
        start=summary.start,
        end=summary.end,
        accounting_method=summary.accounting_method,
        currency=summary.currency,
        totals=PeriodTotalsOut.model_validate(summary.totals, from_attributes=True),
    )


@router.get("/periods/{period_key}/details", response_model=PeriodDetailsOut)
def get_period_details(
    period_key: str,
    tenant_id: TenantDep,
    db: DbDep,
    source_type: Literal["INVOICE", "PAYMENT", "EXPENSE"] | None = Query(None),
):
    """Documents behind a period's totals, optionally filtered by source type."""
    summary, sales, purchases = TaxReportService(db).get_period_details(tenant_id, period_key, source_type)
    return PeriodDetailsOut(
        key=summary.key,
        label=summary.label,
        start=summary.start,
        end=summary.end,
        accounting_method=summary.accounting_method,
        currency=summary.currency,
        totals=PeriodTotalsOut.model_validate(summary.totals, from_attributes=True),
        sales=[PeriodDetailRowOut.model_validate(r, from_attributes=True) for r in sales],
        purchases=[PeriodDetailRowOut.model_validate(r, from_attributes=True) for r in purchases],
    )


@router.get("/summary", response_model=TaxSummaryOut)
def get_tax_summary(tenant_id: TenantDep, db: DbDep):
    summary = TaxSummaryService(db).get_summary(tenant_id)
    return TaxSummaryOut.model_validate(summary, from_attributes=True)
