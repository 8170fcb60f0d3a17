"""Tax report operations.

Lifecycle transitions, manual filings, payment overview, VAT period calendar,
report documents, evidence attachments and activity history. Each transition
is guarded by ``lifecycle``, persisted, recorded in the report's activity,
audited and counted.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app import metrics
from app.core.audit import log_audit_event, log_denied
from app.core.config import settings
from app.core.exceptions import (
    AttachmentNotFoundError,
    ConflictingTransitionError,
    DuplicateReportError,
    ReportNotFoundError,
)
from app.db.base_class import utcnow
from app.models.tax_meta import PaymentInfo, ReportIssue, ReportMeta, SubmissionInfo, dump_meta
from app.models.tax_models import (
    FilingFrequency,
    TaxReport,
    TaxReportActivity,
    TaxReportAttachment,
    TaxReportStatus,
    TaxReportType,
)
from app.services.tax_profile_service import TaxProfileService
from app.storage.s3_client import S3Client

from . import lifecycle
from .aggregation import DetailRow, PeriodAggregation, PeriodTotals, SqlPeriodAggregation
from .generation_service import TaxReportGenerationService
from .period_utils import VatPeriod, periods_for_year, resolve_period_key, to_utc, year_period
from .repository import TaxReportRepository
from .strategies import ReportContext, StrategyRegistry, default_registry

logger = logging.getLogger(__name__)

_PAYMENT_STATUSES = (
    TaxReportStatus.SUBMITTED.value,
    TaxReportStatus.PAID.value,
    TaxReportStatus.NIL.value,
)


@dataclass
class PaymentRow:
    report_id: int
    type: str
    period_label: str
    due_date: datetime
    amount_cents: int
    currency: str
    direction: str  # payable | receivable
    payment_status: str  # paid | due | overdue
    paid_at: Optional[datetime]


@dataclass
class VatPeriodOverview:
    key: str
    label: str
    start: datetime
    end: datetime
    status: str
    due_date: Optional[datetime]
    report_id: Optional[int]
    amount_estimated_cents: Optional[int]


@dataclass
class PeriodSummary:
    key: str
    label: str
    start: datetime
    end: datetime
    accounting_method: str
    currency: str
    totals: PeriodTotals

    @property
    def vat_payable_cents(self) -> int:
        return self.totals.vat_payable_cents


@dataclass
class DocumentLink:
    status: str  # PENDING | READY
    download_url: Optional[str] = None
    expires_at: Optional[datetime] = None


class TaxReportService:
    def __init__(
        self,
        db: Session,
        aggregation: Optional[PeriodAggregation] = None,
        registry: Optional[StrategyRegistry] = None,
        storage: Optional[S3Client] = None,
    ):
        self.db = db
        self.aggregation = aggregation or SqlPeriodAggregation(db)
        self.registry = registry or default_registry
        self.storage = storage
        self.repository = TaxReportRepository(db)
        self.profiles = TaxProfileService(db)
        self.generator = TaxReportGenerationService(db, self.aggregation, self.registry)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_report(self, tenant_id: str, report_id: int) -> TaxReport:
        report = self.repository.find_by_id(tenant_id, report_id)
        if report is None:
            raise ReportNotFoundError(report_id)
        return report

    def list_reports(self, tenant_id: str, status_filter: str = "upcoming") -> List[TaxReport]:
        return self.repository.list_by_status(tenant_id, status_filter)

    def list_payments(
        self, tenant_id: str, year: Optional[int] = None, now: Optional[datetime] = None
    ) -> List[PaymentRow]:
        """Filed reports as payments (positive) or refunds (negative)."""
        now = to_utc(now) if now is not None else utcnow()
        reports = self.repository.list_with_statuses(tenant_id, _PAYMENT_STATUSES)
        if year is not None:
            window = year_period(year)
            reports = [r for r in reports if window.contains(r.period_start)]

        rows = []
        for report in reports:
            if report.amount_final_cents is not None:
                amount = report.amount_final_cents
            else:
                amount = report.amount_estimated_cents or 0
            meta = ReportMeta.load(report.meta)
            if report.status in (TaxReportStatus.PAID.value, TaxReportStatus.NIL.value):
                payment_status = "paid"
            elif now.date() > report.due_date.date():
                payment_status = "overdue"
            else:
                payment_status = "due"
            rows.append(
                PaymentRow(
                    report_id=report.id,
                    type=report.type,
                    period_label=report.period_label,
                    due_date=report.due_date,
                    amount_cents=amount,
                    currency=report.currency,
                    direction="receivable" if amount < 0 else "payable",
                    payment_status=payment_status,
                    paid_at=meta.payment.paid_at if meta.payment else None,
                )
            )
        return rows

    def get_vat_periods_for_year(
        self, tenant_id: str, year: int, now: Optional[datetime] = None
    ) -> tuple[str, List[VatPeriodOverview]]:
        """VAT filing periods of ``year`` with the state of their return.

        Returns:
            (filing frequency, one overview per period)
        """
        now = to_utc(now) if now is not None else utcnow()
        year_window = year_period(year)
        profile = self.profiles.get_active(tenant_id, min(now, year_window.end - timedelta(microseconds=1)))
        frequency = profile.filing_frequency if profile is not None else FilingFrequency.QUARTERLY.value
        report_type = (
            TaxReportType.VAT_ANNUAL.value
            if frequency == FilingFrequency.YEARLY.value
            else TaxReportType.VAT_ADVANCE.value
        )
        reports = {
            (r.period_start, r.period_end): r
            for r in self.repository.list_by_period_range(
                tenant_id, year_window.start, year_window.end, report_type
            )
        }

        overview = []
        for period in periods_for_year(year, frequency):
            report = reports.get((period.start, period.end))
            if report is not None:
                overview.append(
                    VatPeriodOverview(
                        key=period.key,
                        label=period.label,
                        start=period.start,
                        end=period.end,
                        status=lifecycle.display_status(report.status, report.due_date, now),
                        due_date=report.due_date,
                        report_id=report.id,
                        amount_estimated_cents=report.amount_estimated_cents,
                    )
                )
                continue

            due_date = None
            if profile is not None and profile.country in self.registry.countries():
                strategy = self.registry.get(report_type, profile.country)
                ctx = ReportContext(tenant_id, period, profile, self.aggregation, now)
                due_date = strategy.get_due_date(period.end, ctx)
            status = lifecycle.initial_status(period.end, now)
            if due_date is not None:
                status = lifecycle.display_status(status, due_date, now)
            overview.append(
                VatPeriodOverview(
                    key=period.key,
                    label=period.label,
                    start=period.start,
                    end=period.end,
                    status=status,
                    due_date=due_date,
                    report_id=None,
                    amount_estimated_cents=None,
                )
            )
        return frequency, overview

    def _period_inputs(self, tenant_id: str, period: VatPeriod) -> tuple[str, str]:
        profile = self.profiles.get_active(tenant_id, period.end - timedelta(microseconds=1))
        if profile is None:
            return "SOLL", settings.TAX_DEFAULT_CURRENCY
        return profile.vat_accounting_method, profile.currency

    def get_period_summary(self, tenant_id: str, key: str) -> PeriodSummary:
        period = resolve_period_key(key)
        method, currency = self._period_inputs(tenant_id, period)
        totals = self.aggregation.get_totals(tenant_id, period.start, period.end, method)
        return PeriodSummary(
            key=period.key,
            label=period.label,
            start=period.start,
            end=period.end,
            accounting_method=method,
            currency=currency,
            totals=totals,
        )

    def get_period_details(
        self, tenant_id: str, key: str, source_type: Optional[str] = None
    ) -> tuple[PeriodSummary, List[DetailRow], List[DetailRow]]:
        """Per-document rows behind a period's totals.

        Returns:
            (summary, sales rows, purchase rows)
        """
        period = resolve_period_key(key)
        method, currency = self._period_inputs(tenant_id, period)
        details = self.aggregation.get_details(tenant_id, period.start, period.end, method)
        summary = PeriodSummary(
            key=period.key,
            label=period.label,
            start=period.start,
            end=period.end,
            accounting_method=method,
            currency=currency,
            totals=details.totals(),
        )
        sales, purchases = details.sales, details.purchases
        if source_type:
            sales = [row for row in sales if row.source_type == source_type]
            purchases = [row for row in purchases if row.source_type == source_type]
        return summary, sales, purchases

    # ------------------------------------------------------------------
    # Lifecycle transitions
    # ------------------------------------------------------------------

    def _transition(self, report: TaxReport, action: str, **audit) -> TaxReport:
        detail = {k: v for k, v in audit.items() if k != "status_before"}
        report.activities.append(
            self.repository.activity(
                report, action, status_before=audit.get("status_before"), status_after=report.status, **detail
            )
        )
        self.repository.save(report)
        metrics.report_transition(report.status)
        log_audit_event(
            f"tax_report.{action}",
            tenant_id=report.tenant_id,
            report_id=report.id,
            type=report.type,
            period=report.period_label,
            new_status=report.status,
            **audit,
        )
        logger.info(f"Tax report {report.id} ({report.type} {report.period_label}) -> {report.status}")
        return report

    def _guarded(self, guard, report: TaxReport, action: str) -> None:
        try:
            guard(report)
        except ConflictingTransitionError as exc:
            log_denied(
                f"tax_report.{action}",
                tenant_id=report.tenant_id,
                reason=exc.message,
                report_id=report.id,
                status_before=report.status,
            )
            raise

    def mark_submitted(
        self,
        tenant_id: str,
        report_id: int,
        reference: Optional[str] = None,
        notes: Optional[str] = None,
        method: str = "manual",
        now: Optional[datetime] = None,
    ) -> TaxReport:
        now = to_utc(now) if now is not None else utcnow()
        report = self.get_report(tenant_id, report_id)
        self._guarded(lifecycle.ensure_can_submit, report, "submit")

        previous = report.status
        meta = ReportMeta.load(report.meta)
        meta.submission = SubmissionInfo(method=method, reference=reference, notes=notes, submitted_at=now)
        report.meta = dump_meta(meta)
        report.status = TaxReportStatus.SUBMITTED.value
        report.submitted_at = now
        report.submission_reference = reference
        report.submission_notes = notes
        return self._transition(report, "submitted", status_before=previous, reference=reference)

    def mark_nil(
        self, tenant_id: str, report_id: int, notes: Optional[str] = None, now: Optional[datetime] = None
    ) -> TaxReport:
        """File a zero return."""
        now = to_utc(now) if now is not None else utcnow()
        report = self.get_report(tenant_id, report_id)
        self._guarded(lifecycle.ensure_can_mark_nil, report, "mark_nil")

        previous = report.status
        meta = ReportMeta.load(report.meta)
        meta.submission = SubmissionInfo(method="nil", notes=notes, submitted_at=now)
        report.meta = dump_meta(meta)
        report.status = TaxReportStatus.NIL.value
        report.amount_final_cents = 0
        report.submitted_at = now
        report.submission_notes = notes
        return self._transition(report, "nil", status_before=previous)

    def mark_paid(
        self,
        tenant_id: str,
        report_id: int,
        paid_at: Optional[datetime] = None,
        method: Optional[str] = None,
        amount_cents: Optional[int] = None,
        proof_document_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> TaxReport:
        now = to_utc(now) if now is not None else utcnow()
        report = self.get_report(tenant_id, report_id)
        self._guarded(lifecycle.ensure_can_mark_paid, report, "mark_paid")

        if amount_cents is None:
            amount_cents = report.amount_estimated_cents or 0
        meta = ReportMeta.load(report.meta)
        meta.payment = PaymentInfo(
            paid_at=to_utc(paid_at) if paid_at is not None else now,
            method=method,
            amount_cents=amount_cents,
            proof_document_id=proof_document_id,
        )
        report.meta = dump_meta(meta)
        report.status = TaxReportStatus.PAID.value
        report.amount_final_cents = amount_cents
        return self._transition(report, "paid", status_before=TaxReportStatus.SUBMITTED.value, amount_cents=amount_cents)

    def archive(self, tenant_id: str, report_id: int, reason: Optional[str] = None) -> TaxReport:
        report = self.get_report(tenant_id, report_id)
        self._guarded(lifecycle.ensure_can_archive, report, "archive")

        previous = report.status
        report.status = TaxReportStatus.ARCHIVED.value
        report.archived_reason = reason
        return self._transition(report, "archived", status_before=previous, reason=reason)

    def delete(self, tenant_id: str, report_id: int) -> None:
        report = self.get_report(tenant_id, report_id)
        self._guarded(lifecycle.ensure_can_delete, report, "delete")

        audit = {"report_id": report.id, "type": report.type, "period": report.period_label}
        self.repository.delete(report)
        log_audit_event("tax_report.deleted", tenant_id=tenant_id, **audit)
        logger.info(f"Tax report {report_id} deleted for tenant {tenant_id}")

    def record_issues(self, tenant_id: str, report_id: int, issues: List[ReportIssue]) -> TaxReport:
        """Replace the review issues on a report. Blockers prevent submission."""
        report = self.get_report(tenant_id, report_id)
        meta = ReportMeta.load(report.meta)
        meta.issues = list(issues)
        report.meta = dump_meta(meta)
        report.activities.append(
            self.repository.activity(
                report,
                "issues_updated",
                issues=len(issues),
                blockers=sum(1 for issue in issues if issue.severity == "blocker"),
            )
        )
        self.repository.save(report)
        logger.info(f"Tax report {report_id} now has {len(issues)} issue(s)")
        return report

    def recalculate(self, tenant_id: str, report_id: int, now: Optional[datetime] = None) -> TaxReport:
        """Recompute a pending report from current source data."""
        now = to_utc(now) if now is not None else utcnow()
        report = self.get_report(tenant_id, report_id)
        self._guarded(lifecycle.ensure_can_recalculate, report, "recalculate")

        period = VatPeriod(
            key=report.period_label,
            label=report.period_label,
            start=report.period_start,
            end=report.period_end,
        )
        draft = self.generator.build_draft(tenant_id, report.type, period, now)
        outcome = self.repository.upsert_by_period(tenant_id, draft)
        metrics.report_generated(report.type)
        logger.info(
            f"Tax report {report_id} recalculated: estimate={outcome.report.amount_estimated_cents}"
        )
        return outcome.report

    def create_filing(
        self, tenant_id: str, report_type: str, period_key: str, now: Optional[datetime] = None
    ) -> TaxReport:
        """Create a report by hand for a period, whether or not it is required.

        Raises:
            DuplicateReportError: If the report already exists for the period
        """
        now = to_utc(now) if now is not None else utcnow()
        try:
            report_type = TaxReportType(report_type).value
        except ValueError as e:
            raise ValueError(f"Invalid report type: {report_type}") from e
        period = resolve_period_key(period_key)

        existing = self.repository.find_by_period(tenant_id, report_type, period.start, period.end)
        if existing is not None:
            raise DuplicateReportError(report_type, period.label, existing.id)

        draft = self.generator.build_draft(tenant_id, report_type, period, now)
        outcome = self.repository.upsert_by_period(tenant_id, draft)
        if not outcome.created:
            # Lost a race with generation for the same period
            raise DuplicateReportError(report_type, period.label, outcome.report.id)
        log_audit_event(
            "tax_report.created",
            tenant_id=tenant_id,
            report_id=outcome.report.id,
            type=report_type,
            period=period.label,
        )
        return outcome.report

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def attach_document(
        self, tenant_id: str, report_id: int, storage_key: str, now: Optional[datetime] = None
    ) -> TaxReport:
        """Link a rendered report document stored under ``storage_key``."""
        report = self.get_report(tenant_id, report_id)
        report.pdf_storage_key = storage_key
        report.pdf_generated_at = to_utc(now) if now is not None else utcnow()
        report.activities.append(self.repository.activity(report, "document_attached", storage_key=storage_key))
        self.repository.save(report)
        log_audit_event("tax_report.document_attached", tenant_id=tenant_id, report_id=report.id, key=storage_key)
        return report

    def get_document_url(self, tenant_id: str, report_id: int) -> DocumentLink:
        report = self.get_report(tenant_id, report_id)
        if not report.pdf_storage_key:
            return DocumentLink(status="PENDING")
        if self.storage is None:
            raise RuntimeError("Report storage is not configured")
        url, expires_at = self.storage.generate_download_url(report.pdf_storage_key)
        return DocumentLink(status="READY", download_url=url, expires_at=expires_at)

    # ------------------------------------------------------------------
    # Attachments and activity
    # ------------------------------------------------------------------

    def list_attachments(self, tenant_id: str, report_id: int) -> List[TaxReportAttachment]:
        return list(self.get_report(tenant_id, report_id).attachments)

    def add_attachment(
        self,
        tenant_id: str,
        report_id: int,
        document_id: str,
        file_name: Optional[str] = None,
        content_type: Optional[str] = None,
        storage_key: Optional[str] = None,
    ) -> TaxReportAttachment:
        """Link an evidence document to a report.

        Attaching the same document twice returns the existing attachment.
        """
        report = self.get_report(tenant_id, report_id)
        self._guarded(lifecycle.ensure_can_change_attachments, report, "attach")

        for attachment in report.attachments:
            if attachment.document_id == document_id:
                return attachment

        attachment = TaxReportAttachment(
            tenant_id=tenant_id,
            document_id=document_id,
            file_name=file_name,
            content_type=content_type,
            storage_key=storage_key,
        )
        report.attachments.append(attachment)
        report.activities.append(
            self.repository.activity(report, "attachment_added", document_id=document_id, file_name=file_name)
        )
        try:
            self.db.commit()
        except IntegrityError:
            # Same document attached concurrently
            self.db.rollback()
            report = self.get_report(tenant_id, report_id)
            existing = next((a for a in report.attachments if a.document_id == document_id), None)
            if existing is None:
                raise
            return existing
        self.db.refresh(attachment)
        log_audit_event(
            "tax_report.attachment_added",
            tenant_id=tenant_id,
            report_id=report.id,
            document_id=document_id,
        )
        return attachment

    def upload_attachment(
        self,
        tenant_id: str,
        report_id: int,
        data: bytes,
        file_name: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> TaxReportAttachment:
        """Store an uploaded evidence file and attach it to the report."""
        if self.storage is None:
            raise RuntimeError("Report storage is not configured")
        report = self.get_report(tenant_id, report_id)
        self._guarded(lifecycle.ensure_can_change_attachments, report, "attach")

        document_id = uuid.uuid4().hex
        suffix = Path(file_name).suffix if file_name else ""
        key = f"{tenant_id}/reports/{report_id}/attachments/{document_id}{suffix}"
        self.storage.upload_bytes(data, key, content_type=content_type or "application/octet-stream")
        return self.add_attachment(
            tenant_id,
            report_id,
            document_id,
            file_name=file_name,
            content_type=content_type,
            storage_key=key,
        )

    def remove_attachment(self, tenant_id: str, report_id: int, attachment_id: int) -> None:
        report = self.get_report(tenant_id, report_id)
        self._guarded(lifecycle.ensure_can_change_attachments, report, "detach")

        attachment = next((a for a in report.attachments if a.id == attachment_id), None)
        if attachment is None:
            raise AttachmentNotFoundError(report_id, attachment_id)
        document_id = attachment.document_id
        report.attachments.remove(attachment)
        report.activities.append(self.repository.activity(report, "attachment_removed", document_id=document_id))
        self.repository.save(report)
        log_audit_event(
            "tax_report.attachment_removed",
            tenant_id=tenant_id,
            report_id=report.id,
            document_id=document_id,
        )

    def get_attachment_url(self, attachment: TaxReportAttachment) -> Optional[str]:
        if not attachment.storage_key or self.storage is None:
            return None
        url, _ = self.storage.generate_download_url(attachment.storage_key)
        return url

    def list_activity(self, tenant_id: str, report_id: int) -> List[TaxReportActivity]:
        """History of a report, oldest first."""
        return list(self.get_report(tenant_id, report_id).activities)
