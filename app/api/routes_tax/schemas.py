"""
Shared Pydantic schemas for tax routes.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from app.models.tax_meta import ReportIssue

Regime = Literal["STANDARD_VAT", "SMALL_BUSINESS", "VAT_EXEMPT"]
AccountingMethod = Literal["SOLL", "IST"]
Frequency = Literal["MONTHLY", "QUARTERLY", "YEARLY"]
ReportType = Literal["VAT_ADVANCE", "VAT_ANNUAL", "INCOME_TAX", "EU_SALES_LIST"]


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------

class TaxProfileUpdate(BaseModel):
    """Tax profile upsert request."""

    country: str | None = Field(None, min_length=2, max_length=2, description="ISO-3166 country code")
    regime: Regime | None = None
    vat_enabled: bool | None = None
    vat_id: str | None = Field(None, max_length=32, description="VAT identification number")
    vat_accounting_method: AccountingMethod | None = Field(
        None, description="SOLL (accrual, by invoice date) or IST (cash, by payment date)"
    )
    filing_frequency: Frequency | None = None
    currency: str | None = Field(None, min_length=3, max_length=3)
    tax_year_start_month: int | None = Field(None, ge=1, le=12)
    local_tax_office_name: str | None = Field(None, max_length=120)
    has_cross_border_sales: bool | None = None
    has_employees: bool | None = None
    uses_tax_advisor: bool | None = None
    effective_from: datetime | None = Field(
        None, description="Start of a new profile window; omit to correct the active profile"
    )
    effective_to: datetime | None = None


class TaxProfileOut(BaseModel):
    id: int
    tenant_id: str
    country: str
    regime: str
    vat_enabled: bool
    vat_id: str | None
    vat_accounting_method: str
    filing_frequency: str
    currency: str
    tax_year_start_month: int
    local_tax_office_name: str | None
    has_cross_border_sales: bool
    has_employees: bool
    uses_tax_advisor: bool
    effective_from: datetime
    effective_to: datetime | None

    model_config = {"from_attributes": True}


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------

class GenerateReportsRequest(BaseModel):
    period_key: str | None = Field(None, description="YYYY-Qn, YYYY-MM or YYYY")
    period_start: datetime | None = None
    period_end: datetime | None = Field(None, description="Exclusive end of the period")
    period_label: str | None = None
    dry_run: bool = False


class GeneratedReportOut(BaseModel):
    type: str
    group: str
    period_label: str
    due_date: datetime
    status: str
    amount_estimated_cents: int | None
    report_id: int | None = None
    created: bool = False
    updated: bool = False

    model_config = {"from_attributes": True}


class StrategyFailureOut(BaseModel):
    type: str
    error: str

    model_config = {"from_attributes": True}


class GenerationResultOut(BaseModel):
    tenant_id: str
    period_label: str
    period_start: datetime
    period_end: datetime
    dry_run: bool
    profile_missing: bool
    reports: list[GeneratedReportOut]
    failures: list[StrategyFailureOut]
    warnings: list[str]

    model_config = {"from_attributes": True}


class TaxReportLineOut(BaseModel):
    section: str
    label: str
    net_amount_cents: int
    tax_amount_cents: int

    model_config = {"from_attributes": True}


class TaxReportOut(BaseModel):
    id: int
    type: str
    group: str
    status: str = Field(..., description="Lifecycle status; OVERDUE is derived")
    stored_status: str
    period_label: str
    period_start: datetime
    period_end: datetime
    due_date: datetime
    amount_estimated_cents: int | None
    amount_final_cents: int | None
    currency: str
    submitted_at: datetime | None
    submission_reference: str | None
    archived_reason: str | None
    has_document: bool
    meta: dict[str, Any]
    lines: list[TaxReportLineOut] = []


class SubmitReportRequest(BaseModel):
    reference: str | None = Field(None, max_length=120, description="Authority transfer ticket or receipt id")
    notes: str | None = None
    method: str = Field("manual", max_length=32)


class MarkNilRequest(BaseModel):
    notes: str | None = None


class MarkPaidRequest(BaseModel):
    paid_at: datetime | None = None
    method: str | None = Field(None, max_length=32)
    amount_cents: int | None = None
    proof_document_id: str | None = Field(None, max_length=64)


class ArchiveReportRequest(BaseModel):
    reason: str | None = None


class ReportIssuesRequest(BaseModel):
    issues: list[ReportIssue]


class AttachDocumentRequest(BaseModel):
    storage_key: str = Field(..., min_length=1, max_length=255)


class ReportDocumentOut(BaseModel):
    status: Literal["PENDING", "READY"]
    download_url: str | None = None
    expires_at: datetime | None = None

    model_config = {"from_attributes": True}


class AddAttachmentRequest(BaseModel):
    document_id: str = Field(..., min_length=1, max_length=64)
    file_name: str | None = Field(None, max_length=255)
    content_type: str | None = Field(None, max_length=100)
    storage_key: str | None = Field(None, max_length=255)


class ReportAttachmentOut(BaseModel):
    id: int
    document_id: str
    file_name: str | None = None
    content_type: str | None = None
    created_at: datetime | None = None
    download_url: str | None = None


class ReportActivityOut(BaseModel):
    id: int
    action: str
    status_before: str | None = None
    status_after: str | None = None
    detail: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class CreateFilingRequest(BaseModel):
    type: ReportType
    period_key: str = Field(..., description="YYYY-Qn, YYYY-MM or YYYY")


class TaxPaymentOut(BaseModel):
    report_id: int
    type: str
    period_label: str
    due_date: datetime
    amount_cents: int
    currency: str
    direction: Literal["payable", "receivable"]
    payment_status: Literal["paid", "due", "overdue"]
    paid_at: datetime | None

    model_config = {"from_attributes": True}


# ---------------------------------------------------------------------------
# Periods
# ---------------------------------------------------------------------------

class VatPeriodOut(BaseModel):
    key: str
    label: str
    start: datetime
    end: datetime
    status: str
    due_date: datetime | None
    report_id: int | None
    amount_estimated_cents: int | None

    model_config = {"from_attributes": True}


class VatPeriodsResponse(BaseModel):
    year: int
    frequency: str
    periods: list[VatPeriodOut]


class PeriodTotalsOut(BaseModel):
    sales_net_cents: int
    sales_vat_cents: int
    purchase_net_cents: int
    purchase_vat_cents: int
    cross_border_sales_net_cents: int
    vat_payable_cents: int

    model_config = {"from_attributes": True}


class PeriodSummaryOut(BaseModel):
    key: str
    label: str
    start: datetime
    end: datetime
    accounting_method: str
    currency: str
    totals: PeriodTotalsOut


class PeriodDetailRowOut(BaseModel):
    source_type: str
    source_id: str
    display_number: str | None
    counterparty: str | None
    date_used: datetime
    net_cents: int
    tax_cents: int
    gross_cents: int
    currency: str
    status: str

    model_config = {"from_attributes": True}


class PeriodDetailsOut(PeriodSummaryOut):
    sales: list[PeriodDetailRowOut]
    purchases: list[PeriodDetailRowOut]


# ---------------------------------------------------------------------------
# Summary
# ---------------------------------------------------------------------------

class UpcomingReportPreviewOut(BaseModel):
    report_id: int
    type: str
    period_label: str
    due_date: datetime
    status: str
    amount_estimated_cents: int | None

    model_config = {"from_attributes": True}


class TaxSummaryOut(BaseModel):
    legal_entity_kind: str
    configuration_status: Literal["READY", "MISSING_SETTINGS", "NOT_APPLICABLE"]
    taxes_to_be_paid_estimated_cents: int
    currency: str
    period_key: str | None
    period_label: str | None
    warnings: list[str]
    upcoming_reports_preview: list[UpcomingReportPreviewOut]

    model_config = {"from_attributes": True}


# ---------------------------------------------------------------------------
# Calculation and snapshots
# ---------------------------------------------------------------------------

class LineInputIn(BaseModel):
    net_amount_cents: int
    vat_kind: str = Field("STANDARD", description="STANDARD, REDUCED, ZERO, EXEMPT or REVERSE_CHARGE")
    description: str | None = None


class CalculateTaxRequest(BaseModel):
    document_date: datetime
    lines: list[LineInputIn] = Field(..., min_length=1)
    jurisdiction: str | None = Field(None, min_length=2, max_length=2)
    currency: str | None = Field(None, min_length=3, max_length=3)


class LockSnapshotRequest(CalculateTaxRequest):
    source_type: Literal["INVOICE", "EXPENSE"]
    source_id: str = Field(..., min_length=1, max_length=64)


class TaxSnapshotOut(BaseModel):
    id: int
    source_type: str
    source_id: str
    jurisdiction: str
    regime: str | None
    rounding_mode: str
    currency: str
    calculated_at: datetime
    subtotal_amount_cents: int
    tax_total_amount_cents: int
    total_amount_cents: int
    breakdown: dict[str, Any]
    version: int
