"""
Tax Filing Models.

Models for:
- Effective-dated tax profiles (regime, VAT method, filing frequency)
- Periodic tax reports, their line items, attachments and activity history
- Immutable per-document tax calculation snapshots
"""
from enum import Enum

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from app.db.base_class import Base, UTCDateTime, utcnow


class TaxRegime(str, Enum):
    """VAT regime of a business"""
    STANDARD_VAT = "STANDARD_VAT"
    SMALL_BUSINESS = "SMALL_BUSINESS"  # Kleinunternehmer: no VAT charged
    VAT_EXEMPT = "VAT_EXEMPT"


class VatAccountingMethod(str, Enum):
    """Which event makes VAT reportable"""
    SOLL = "SOLL"  # accrual: invoice issue date
    IST = "IST"    # cash: payment date


class FilingFrequency(str, Enum):
    MONTHLY = "MONTHLY"
    QUARTERLY = "QUARTERLY"
    YEARLY = "YEARLY"


class TaxReportType(str, Enum):
    VAT_ADVANCE = "VAT_ADVANCE"
    VAT_ANNUAL = "VAT_ANNUAL"
    INCOME_TAX = "INCOME_TAX"
    EU_SALES_LIST = "EU_SALES_LIST"


class TaxReportGroup(str, Enum):
    ADVANCE_VAT = "ADVANCE_VAT"
    ANNUAL_REPORT = "ANNUAL_REPORT"
    COMPLIANCE = "COMPLIANCE"


class TaxReportStatus(str, Enum):
    """Persisted lifecycle states. OVERDUE is derived at read time, never stored."""
    UPCOMING = "UPCOMING"
    OPEN = "OPEN"
    SUBMITTED = "SUBMITTED"
    NIL = "NIL"
    PAID = "PAID"
    ARCHIVED = "ARCHIVED"


class SnapshotSourceType(str, Enum):
    INVOICE = "INVOICE"
    EXPENSE = "EXPENSE"


class RoundingMode(str, Enum):
    PER_LINE = "PER_LINE"
    PER_DOCUMENT = "PER_DOCUMENT"


class TaxProfile(Base):
    """
    Tax configuration of a tenant for a validity window.

    Tracks:
    - Country and VAT regime
    - VAT accounting method (SOLL/IST) and filing frequency
    - Flags that switch optional reports on (cross-border sales, employees)
    - Validity window [effective_from, effective_to); an open effective_to
      means the profile is current

    Profiles are superseded, never deleted.
    """
    __tablename__ = "tax_profiles"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(String(64), nullable=False, index=True)

    country = Column(String(2), nullable=False, default="DE")
    regime = Column(String(20), nullable=False, default=TaxRegime.STANDARD_VAT.value)
    vat_enabled = Column(Boolean, nullable=False, default=True)
    vat_id = Column(String(32), nullable=True)
    vat_accounting_method = Column(String(8), nullable=False, default=VatAccountingMethod.SOLL.value)
    filing_frequency = Column(String(16), nullable=False, default=FilingFrequency.QUARTERLY.value)
    currency = Column(String(3), nullable=False, default="EUR")
    tax_year_start_month = Column(Integer, nullable=False, default=1)
    local_tax_office_name = Column(String(120), nullable=True)

    has_cross_border_sales = Column(Boolean, nullable=False, default=False)
    has_employees = Column(Boolean, nullable=False, default=False)
    uses_tax_advisor = Column(Boolean, nullable=False, default=False)

    effective_from = Column(UTCDateTime, nullable=False)
    effective_to = Column(UTCDateTime, nullable=True)

    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    @property
    def is_vat_applicable(self) -> bool:
        """VAT returns are owed only by VAT-enabled, non small-business tenants"""
        return bool(self.vat_enabled) and self.regime != TaxRegime.SMALL_BUSINESS.value

    def is_active_at(self, instant) -> bool:
        if instant < self.effective_from:
            return False
        return self.effective_to is None or instant < self.effective_to


class TaxReport(Base):
    """
    One periodic tax obligation of a tenant.

    Unique per (tenant, type, period_start, period_end); generation upserts on
    that key. Periods are half-open: period_end is the first instant after the
    period.
    """
    __tablename__ = "tax_reports"
    __table_args__ = (
        UniqueConstraint("tenant_id", "type", "period_start", "period_end", name="uq_tax_report_period"),
    )

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(String(64), nullable=False, index=True)

    type = Column(String(32), nullable=False)
    group = Column(String(32), nullable=False, default=TaxReportGroup.COMPLIANCE.value)
    status = Column(String(16), nullable=False, default=TaxReportStatus.UPCOMING.value, index=True)

    period_label = Column(String(32), nullable=False)
    period_start = Column(UTCDateTime, nullable=False)
    period_end = Column(UTCDateTime, nullable=False)
    due_date = Column(UTCDateTime, nullable=False, index=True)

    amount_estimated_cents = Column(BigInteger, nullable=True)
    amount_final_cents = Column(BigInteger, nullable=True)
    currency = Column(String(3), nullable=False, default="EUR")

    submitted_at = Column(UTCDateTime, nullable=True)
    submission_reference = Column(String(120), nullable=True)
    submission_notes = Column(Text, nullable=True)
    archived_reason = Column(Text, nullable=True)

    pdf_storage_key = Column(String(255), nullable=True)
    pdf_generated_at = Column(UTCDateTime, nullable=True)

    meta = Column(JSON, nullable=False, default=dict)

    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    lines = relationship(
        "TaxReportLine",
        back_populates="report",
        cascade="all, delete-orphan",
        order_by="TaxReportLine.position",
    )
    attachments = relationship(
        "TaxReportAttachment",
        back_populates="report",
        cascade="all, delete-orphan",
        order_by="TaxReportAttachment.id",
    )
    activities = relationship(
        "TaxReportActivity",
        back_populates="report",
        cascade="all, delete-orphan",
        order_by="TaxReportActivity.id",
    )


class TaxReportLine(Base):
    """Line of a report form (e.g. sales at 19 %, input VAT)"""
    __tablename__ = "tax_report_lines"

    id = Column(Integer, primary_key=True, index=True)
    report_id = Column(Integer, ForeignKey("tax_reports.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    section = Column(String(32), nullable=False)
    label = Column(String(255), nullable=False)
    net_amount_cents = Column(BigInteger, nullable=False, default=0)
    tax_amount_cents = Column(BigInteger, nullable=False, default=0)

    report = relationship("TaxReport", back_populates="lines")


class TaxReportAttachment(Base):
    """Evidence document linked to a report (receipt, notice, payment proof)"""
    __tablename__ = "tax_report_attachments"
    __table_args__ = (
        UniqueConstraint("report_id", "document_id", name="uq_tax_report_attachment"),
    )

    id = Column(Integer, primary_key=True, index=True)
    report_id = Column(Integer, ForeignKey("tax_reports.id", ondelete="CASCADE"), nullable=False, index=True)
    tenant_id = Column(String(64), nullable=False, index=True)
    document_id = Column(String(64), nullable=False)
    file_name = Column(String(255), nullable=True)
    content_type = Column(String(100), nullable=True)
    storage_key = Column(String(255), nullable=True)
    created_at = Column(UTCDateTime, default=utcnow)

    report = relationship("TaxReport", back_populates="attachments")


class TaxReportActivity(Base):
    """
    Append-only history entry of a report.

    Written in the same transaction as the change it describes.
    """
    __tablename__ = "tax_report_activities"

    id = Column(Integer, primary_key=True, index=True)
    report_id = Column(Integer, ForeignKey("tax_reports.id", ondelete="CASCADE"), nullable=False, index=True)
    tenant_id = Column(String(64), nullable=False, index=True)
    action = Column(String(48), nullable=False)
    status_before = Column(String(16), nullable=True)
    status_after = Column(String(16), nullable=True)
    detail = Column(JSON, nullable=False, default=dict)
    created_at = Column(UTCDateTime, default=utcnow)

    report = relationship("TaxReport", back_populates="activities")


class TaxSnapshot(Base):
    """
    Immutable tax calculation of one finalized source document.

    Written once by the snapshot locker and never updated; later changes to
    rates or the tenant's profile do not alter it.
    """
    __tablename__ = "tax_snapshots"
    __table_args__ = (
        UniqueConstraint("tenant_id", "source_type", "source_id", name="uq_tax_snapshot_source"),
    )

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(String(64), nullable=False, index=True)
    source_type = Column(String(16), nullable=False)
    source_id = Column(String(64), nullable=False)

    jurisdiction = Column(String(2), nullable=False)
    regime = Column(String(20), nullable=True)
    rounding_mode = Column(String(16), nullable=False, default=RoundingMode.PER_LINE.value)
    currency = Column(String(3), nullable=False, default="EUR")
    calculated_at = Column(UTCDateTime, nullable=False)

    subtotal_amount_cents = Column(BigInteger, nullable=False)
    tax_total_amount_cents = Column(BigInteger, nullable=False)
    total_amount_cents = Column(BigInteger, nullable=False)
    breakdown_json = Column(Text, nullable=False)
    version = Column(Integer, nullable=False, default=1)
