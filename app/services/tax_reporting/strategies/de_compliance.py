"""German annual income tax checklist and EU sales list."""
from datetime import datetime

from app.models.tax_meta import ChecklistItem, EuSalesListComputation, IncomeTaxChecklist, ReportMeta
from app.models.tax_models import TaxReportType

from .base import (
    GeneratedReport,
    ReportContext,
    ReportLineDraft,
    ReportStrategy,
    annual_return_due_date,
    day_of_following_month,
)

_INCOME_TAX_CHECKLIST = (
    ("profit_statement", "Prepare profit and loss statement (EÜR)"),
    ("income_documents", "Collect income documents and bank statements"),
    ("deductions", "Collect receipts for deductible expenses"),
    ("prepayments", "Reconcile income tax prepayments"),
)


class GermanIncomeTaxStrategy(ReportStrategy):
    """Income tax return scaffold. The tax itself is not computed."""

    report_type = TaxReportType.INCOME_TAX.value
    country_code = "DE"

    def is_required(self, ctx: ReportContext) -> bool:
        return ctx.is_full_year

    def generate(self, ctx: ReportContext) -> GeneratedReport:
        totals = ctx.totals
        profit = totals.sales_net_cents - totals.purchase_net_cents
        items = [ChecklistItem(id=item_id, label=label) for item_id, label in _INCOME_TAX_CHECKLIST]
        if ctx.profile.has_employees:
            items.append(ChecklistItem(id="payroll", label="Reconcile annual payroll tax certificates"))
        meta = ReportMeta(
            computation=IncomeTaxChecklist(
                uses_tax_advisor=bool(ctx.profile.uses_tax_advisor),
                items=items,
                profit_estimate_cents=profit,
            )
        )
        lines = [
            ReportLineDraft("income", "Net revenue", totals.sales_net_cents, 0),
            ReportLineDraft("expenses", "Net expenses", totals.purchase_net_cents, 0),
            ReportLineDraft("result", "Profit estimate", profit, 0),
        ]
        return GeneratedReport(amount_due_cents=None, meta=meta, lines=lines)

    def get_due_date(self, period_end: datetime, ctx: ReportContext) -> datetime:
        return annual_return_due_date(period_end, bool(ctx.profile.uses_tax_advisor))


class GermanEuSalesListStrategy(ReportStrategy):
    """Zusammenfassende Meldung: informational, nothing to pay."""

    report_type = TaxReportType.EU_SALES_LIST.value
    country_code = "DE"
    due_day = 25

    def is_required(self, ctx: ReportContext) -> bool:
        return bool(ctx.profile.has_cross_border_sales) and not ctx.is_full_year

    def generate(self, ctx: ReportContext) -> GeneratedReport:
        cross_border = ctx.totals.cross_border_sales_net_cents
        meta = ReportMeta(computation=EuSalesListComputation(cross_border_sales_net_cents=cross_border))
        lines = [ReportLineDraft("sales", "Intra-community supplies", cross_border, 0)]
        return GeneratedReport(amount_due_cents=0, meta=meta, lines=lines)

    def get_due_date(self, period_end: datetime, ctx: ReportContext) -> datetime:
        return day_of_following_month(period_end, self.due_day)
