"""Period aggregation of sales and purchases.

``PeriodAggregation`` is the seam between report strategies and the document
store. ``SqlPeriodAggregation`` reads the mirrored invoice, payment and
expense tables.

Accounting bases:
- SOLL (accrual): finalized invoices count in full by issue date.
- IST (cash): each payment counts by payment date, prorated against the
  invoice total. Net and VAT are rounded half-up to the cent independently,
  so prorated net + VAT can drift from the payment by one cent.
- Purchases count by expense date under both bases.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.source_models import (
    FINALIZED_INVOICE_STATUSES,
    Expense,
    ExpenseStatus,
    InvoicePayment,
    SourceInvoice,
)
from app.models.tax_models import SnapshotSourceType, TaxSnapshot, VatAccountingMethod

logger = logging.getLogger(__name__)


def prorate_cents(amount_cents: int, part_cents: int, whole_cents: int) -> int:
    """Share of ``amount_cents`` that ``part_cents`` of ``whole_cents`` represents, half-up."""
    if whole_cents == 0:
        return 0
    share = Decimal(amount_cents) * Decimal(part_cents) / Decimal(whole_cents)
    return int(share.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class PeriodTotals:
    sales_net_cents: int = 0
    sales_vat_cents: int = 0
    purchase_net_cents: int = 0
    purchase_vat_cents: int = 0
    cross_border_sales_net_cents: int = 0

    @property
    def vat_payable_cents(self) -> int:
        """Output VAT minus input VAT. Negative means a refund is due."""
        return self.sales_vat_cents - self.purchase_vat_cents


@dataclass(frozen=True)
class DetailRow:
    source_type: str  # INVOICE | PAYMENT | EXPENSE
    source_id: str
    display_number: str | None
    counterparty: str | None
    date_used: datetime
    net_cents: int
    tax_cents: int
    gross_cents: int
    currency: str
    status: str
    is_cross_border: bool = False


@dataclass
class PeriodDetails:
    sales: list[DetailRow] = field(default_factory=list)
    purchases: list[DetailRow] = field(default_factory=list)

    def totals(self) -> PeriodTotals:
        return PeriodTotals(
            sales_net_cents=sum(r.net_cents for r in self.sales),
            sales_vat_cents=sum(r.tax_cents for r in self.sales),
            purchase_net_cents=sum(r.net_cents for r in self.purchases),
            purchase_vat_cents=sum(r.tax_cents for r in self.purchases),
            cross_border_sales_net_cents=sum(r.net_cents for r in self.sales if r.is_cross_border),
        )


class PeriodAggregation(ABC):
    """Read port: period totals for a tenant under an accounting method."""

    @abstractmethod
    def get_details(self, tenant_id: str, start: datetime, end: datetime, method: str) -> PeriodDetails:
        raise NotImplementedError

    def get_totals(self, tenant_id: str, start: datetime, end: datetime, method: str) -> PeriodTotals:
        return self.get_details(tenant_id, start, end, method).totals()


class SqlPeriodAggregation(PeriodAggregation):
    """Aggregation over the mirrored document tables.

    Invoice amounts come from the invoice's locked tax snapshot when one
    exists, otherwise from the invoice row itself.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_details(self, tenant_id: str, start: datetime, end: datetime, method: str) -> PeriodDetails:
        if method == VatAccountingMethod.IST.value:
            sales = self._cash_sales(tenant_id, start, end)
        elif method == VatAccountingMethod.SOLL.value:
            sales = self._accrual_sales(tenant_id, start, end)
        else:
            raise ValueError(f"Unknown VAT accounting method: {method}")
        purchases = self._purchases(tenant_id, start, end)
        logger.debug(
            "Aggregated tenant=%s [%s, %s) method=%s sales=%d purchases=%d",
            tenant_id, start.isoformat(), end.isoformat(), method, len(sales), len(purchases),
        )
        return PeriodDetails(sales=sales, purchases=purchases)

    def _snapshot_amounts(self, tenant_id: str, invoice_ids: Iterable[str]) -> dict[str, tuple[int, int, int]]:
        ids = list(invoice_ids)
        if not ids:
            return {}
        rows = self.db.execute(
            select(TaxSnapshot).where(
                TaxSnapshot.tenant_id == tenant_id,
                TaxSnapshot.source_type == SnapshotSourceType.INVOICE.value,
                TaxSnapshot.source_id.in_(ids),
            )
        ).scalars()
        return {
            snap.source_id: (
                snap.subtotal_amount_cents,
                snap.tax_total_amount_cents,
                snap.total_amount_cents,
            )
            for snap in rows
        }

    def _invoice_amounts(self, invoice: SourceInvoice, snapshots: dict[str, tuple[int, int, int]]):
        if invoice.id in snapshots:
            return snapshots[invoice.id]
        return (
            invoice.net_amount_cents or 0,
            invoice.tax_amount_cents or 0,
            invoice.total_amount_cents or 0,
        )

    def _accrual_sales(self, tenant_id: str, start: datetime, end: datetime) -> list[DetailRow]:
        invoices = self.db.execute(
            select(SourceInvoice)
            .where(
                SourceInvoice.tenant_id == tenant_id,
                SourceInvoice.status.in_(FINALIZED_INVOICE_STATUSES),
                SourceInvoice.issued_at >= start,
                SourceInvoice.issued_at < end,
            )
            .order_by(SourceInvoice.issued_at, SourceInvoice.id)
        ).scalars().all()
        snapshots = self._snapshot_amounts(tenant_id, (inv.id for inv in invoices))

        rows = []
        for invoice in invoices:
            net, tax, gross = self._invoice_amounts(invoice, snapshots)
            rows.append(
                DetailRow(
                    source_type="INVOICE",
                    source_id=invoice.id,
                    display_number=invoice.number,
                    counterparty=invoice.customer_name,
                    date_used=invoice.issued_at,
                    net_cents=net,
                    tax_cents=tax,
                    gross_cents=gross,
                    currency=invoice.currency,
                    status=invoice.status,
                    is_cross_border=bool(invoice.is_cross_border),
                )
            )
        return rows

    def _cash_sales(self, tenant_id: str, start: datetime, end: datetime) -> list[DetailRow]:
        pairs = self.db.execute(
            select(InvoicePayment, SourceInvoice)
            .join(SourceInvoice, InvoicePayment.invoice_id == SourceInvoice.id)
            .where(
                SourceInvoice.tenant_id == tenant_id,
                SourceInvoice.status.in_(FINALIZED_INVOICE_STATUSES),
                InvoicePayment.paid_at >= start,
                InvoicePayment.paid_at < end,
            )
            .order_by(InvoicePayment.paid_at, InvoicePayment.id)
        ).all()
        snapshots = self._snapshot_amounts(tenant_id, {inv.id for _, inv in pairs})

        rows = []
        for payment, invoice in pairs:
            net, tax, total = self._invoice_amounts(invoice, snapshots)
            if total <= 0:
                # Nothing to prorate against
                continue
            net_part = prorate_cents(net, payment.amount_cents, total)
            tax_part = prorate_cents(tax, payment.amount_cents, total)
            rows.append(
                DetailRow(
                    source_type="PAYMENT",
                    source_id=payment.id,
                    display_number=invoice.number,
                    counterparty=invoice.customer_name,
                    date_used=payment.paid_at,
                    net_cents=net_part,
                    tax_cents=tax_part,
                    gross_cents=net_part + tax_part,
                    currency=invoice.currency,
                    status=invoice.status,
                    is_cross_border=bool(invoice.is_cross_border),
                )
            )
        return rows

    def _purchases(self, tenant_id: str, start: datetime, end: datetime) -> list[DetailRow]:
        expenses = self.db.execute(
            select(Expense)
            .where(
                Expense.tenant_id == tenant_id,
                Expense.status != ExpenseStatus.DRAFT.value,
                Expense.archived_at.is_(None),
                Expense.expense_date >= start,
                Expense.expense_date < end,
            )
            .order_by(Expense.expense_date, Expense.id)
        ).scalars().all()

        rows = []
        for expense in expenses:
            gross = expense.total_amount_cents or 0
            tax = expense.tax_amount_cents or 0
            rows.append(
                DetailRow(
                    source_type="EXPENSE",
                    source_id=expense.id,
                    display_number=None,
                    counterparty=expense.merchant_name,
                    date_used=expense.expense_date,
                    net_cents=gross - tax,
                    tax_cents=tax,
                    gross_cents=gross,
                    currency=expense.currency,
                    status=expense.status,
                )
            )
        return rows
