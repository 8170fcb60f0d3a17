"""
Source document models.

Read-only mirrors of the document store that feeds tax aggregation. The tax
engine never writes these tables; invoices, payments and expenses are owned
by the invoicing and bookkeeping services.
"""
from enum import Enum

from sqlalchemy import BigInteger, Boolean, Column, ForeignKey, String
from sqlalchemy.orm import relationship

from app.db.base_class import Base, UTCDateTime


class LegalEntityKind(str, Enum):
    PERSONAL = "PERSONAL"
    COMPANY = "COMPANY"


class InvoiceStatus(str, Enum):
    DRAFT = "DRAFT"
    ISSUED = "ISSUED"
    SENT = "SENT"
    PAID = "PAID"
    CANCELLED = "CANCELLED"


# Invoices in these states count towards VAT
FINALIZED_INVOICE_STATUSES = (
    InvoiceStatus.ISSUED.value,
    InvoiceStatus.SENT.value,
    InvoiceStatus.PAID.value,
)


class ExpenseStatus(str, Enum):
    DRAFT = "DRAFT"
    REVIEW = "REVIEW"
    BOOKED = "BOOKED"


class Workspace(Base):
    __tablename__ = "workspaces"

    id = Column(String(64), primary_key=True)
    name = Column(String(120), nullable=True)
    legal_entity_kind = Column(String(16), nullable=False, default=LegalEntityKind.PERSONAL.value)


class SourceInvoice(Base):
    __tablename__ = "source_invoices"

    id = Column(String(64), primary_key=True)
    tenant_id = Column(String(64), nullable=False, index=True)
    number = Column(String(64), nullable=True)
    customer_name = Column(String(255), nullable=True)
    status = Column(String(16), nullable=False, default=InvoiceStatus.DRAFT.value)
    issued_at = Column(UTCDateTime, nullable=True, index=True)
    currency = Column(String(3), nullable=False, default="EUR")
    net_amount_cents = Column(BigInteger, nullable=False, default=0)
    tax_amount_cents = Column(BigInteger, nullable=False, default=0)
    total_amount_cents = Column(BigInteger, nullable=False, default=0)
    # Intra-community supply, reported on the EU sales list
    is_cross_border = Column(Boolean, nullable=False, default=False)

    payments = relationship("InvoicePayment", back_populates="invoice")


class InvoicePayment(Base):
    __tablename__ = "invoice_payments"

    id = Column(String(64), primary_key=True)
    invoice_id = Column(String(64), ForeignKey("source_invoices.id"), nullable=False, index=True)
    amount_cents = Column(BigInteger, nullable=False)
    paid_at = Column(UTCDateTime, nullable=False, index=True)

    invoice = relationship("SourceInvoice", back_populates="payments")


class Expense(Base):
    __tablename__ = "expenses"

    id = Column(String(64), primary_key=True)
    tenant_id = Column(String(64), nullable=False, index=True)
    status = Column(String(16), nullable=False, default=ExpenseStatus.DRAFT.value)
    expense_date = Column(UTCDateTime, nullable=False, index=True)
    merchant_name = Column(String(255), nullable=True)
    currency = Column(String(3), nullable=False, default="EUR")
    total_amount_cents = Column(BigInteger, nullable=False, default=0)
    tax_amount_cents = Column(BigInteger, nullable=False, default=0)
    archived_at = Column(UTCDateTime, nullable=True)
