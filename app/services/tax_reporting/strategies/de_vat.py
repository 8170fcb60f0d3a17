"""German VAT returns.

- VAT_ADVANCE (Umsatzsteuer-Voranmeldung): monthly or quarterly, due on the
  10th of the following month.
- VAT_ANNUAL (Umsatzsteuererklärung): once per year.

Both owe output VAT minus input VAT for the period. A negative amount is a
refund and is kept as is.
"""
from datetime import datetime

from app.models.tax_meta import ReportMeta, VatComputation
from app.models.tax_models import FilingFrequency, TaxReportType

from .base import (
    GeneratedReport,
    ReportContext,
    ReportLineDraft,
    ReportStrategy,
    annual_return_due_date,
    day_of_following_month,
)


def _vat_report(ctx: ReportContext) -> GeneratedReport:
    totals = ctx.totals
    lines = [
        ReportLineDraft("sales", "Taxable sales", totals.sales_net_cents, totals.sales_vat_cents),
        ReportLineDraft("purchases", "Input VAT on purchases", totals.purchase_net_cents, totals.purchase_vat_cents),
    ]
    if totals.cross_border_sales_net_cents:
        lines.append(
            ReportLineDraft("sales", "Intra-community supplies", totals.cross_border_sales_net_cents, 0)
        )
    lines.append(ReportLineDraft("result", "VAT payable", 0, totals.vat_payable_cents))

    meta = ReportMeta(
        computation=VatComputation(
            accounting_method=ctx.profile.vat_accounting_method,
            sales_net_cents=totals.sales_net_cents,
            sales_vat_cents=totals.sales_vat_cents,
            purchase_net_cents=totals.purchase_net_cents,
            purchase_vat_cents=totals.purchase_vat_cents,
        )
    )
    return GeneratedReport(amount_due_cents=totals.vat_payable_cents, meta=meta, lines=lines)


class GermanVatAdvanceStrategy(ReportStrategy):
    report_type = TaxReportType.VAT_ADVANCE.value
    country_code = "DE"
    due_day = 10

    def is_required(self, ctx: ReportContext) -> bool:
        if not ctx.profile.is_vat_applicable:
            return False
        if ctx.profile.filing_frequency == FilingFrequency.YEARLY.value:
            return False
        return not ctx.is_full_year

    def generate(self, ctx: ReportContext) -> GeneratedReport:
        return _vat_report(ctx)

    def get_due_date(self, period_end: datetime, ctx: ReportContext) -> datetime:
        return day_of_following_month(period_end, self.due_day)


class GermanVatAnnualStrategy(ReportStrategy):
    report_type = TaxReportType.VAT_ANNUAL.value
    country_code = "DE"

    def is_required(self, ctx: ReportContext) -> bool:
        return ctx.profile.is_vat_applicable and ctx.is_full_year

    def generate(self, ctx: ReportContext) -> GeneratedReport:
        return _vat_report(ctx)

    def get_due_date(self, period_end: datetime, ctx: ReportContext) -> datetime:
        return annual_return_due_date(period_end, bool(ctx.profile.uses_tax_advisor))
