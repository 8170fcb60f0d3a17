"""
Tax Reports Routes.

Report generation, listing, lifecycle transitions, manual filings, payments,
report documents, attachments and activity history.
"""
from __future__ import annotations

import logging
from typing import Literal

from fastapi import APIRouter, File, HTTPException, Query, UploadFile, status

from app.api.dependencies import DbDep, StorageDep, TenantDep
from app.core.config import settings
from app.db.base_class import utcnow
from app.models.tax_models import TaxReport, TaxReportAttachment
from app.services.tax_reporting.generation_service import TaxReportGenerationService
from app.services.tax_reporting.report_service import TaxReportService
from app.services.tax_reporting.lifecycle import display_status

from .schemas import (
    AddAttachmentRequest,
    ArchiveReportRequest,
    AttachDocumentRequest,
    CreateFilingRequest,
    GenerateReportsRequest,
    GenerationResultOut,
    MarkNilRequest,
    MarkPaidRequest,
    ReportActivityOut,
    ReportAttachmentOut,
    ReportDocumentOut,
    ReportIssuesRequest,
    SubmitReportRequest,
    TaxPaymentOut,
    TaxReportLineOut,
    TaxReportOut,
)

logger = logging.getLogger(__name__)
router = APIRouter()


def _report_out(report: TaxReport) -> TaxReportOut:
    return TaxReportOut(
        id=report.id,
        type=report.type,
        group=report.group,
        status=display_status(report.status, report.due_date, utcnow()),
        stored_status=report.status,
        period_label=report.period_label,
        period_start=report.period_start,
        period_end=report.period_end,
        due_date=report.due_date,
        amount_estimated_cents=report.amount_estimated_cents,
        amount_final_cents=report.amount_final_cents,
        currency=report.currency,
        submitted_at=report.submitted_at,
        submission_reference=report.submission_reference,
        archived_reason=report.archived_reason,
        has_document=bool(report.pdf_storage_key),
        meta=report.meta or {},
        lines=[TaxReportLineOut.model_validate(line) for line in report.lines],
    )


def _attachment_out(service: TaxReportService, attachment: TaxReportAttachment) -> ReportAttachmentOut:
    return ReportAttachmentOut(
        id=attachment.id,
        document_id=attachment.document_id,
        file_name=attachment.file_name,
        content_type=attachment.content_type,
        created_at=attachment.created_at,
        download_url=service.get_attachment_url(attachment),
    )


@router.post("/reports/generate", response_model=GenerationResultOut)
def generate_tax_reports(data: GenerateReportsRequest, tenant_id: TenantDep, db: DbDep):
    """Generate the reports owed for a period (by key or explicit range)."""
    service = TaxReportGenerationService(db)
    if data.period_key:
        result = service.generate_for_period_key(tenant_id, data.period_key, dry_run=data.dry_run)
    elif data.period_start and data.period_end:
        try:
            result = service.execute(
                tenant_id,
                data.period_start,
                data.period_end,
                data.period_label or "",
                dry_run=data.dry_run,
            )
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
    else:
        raise HTTPException(status_code=400, detail="Provide period_key or period_start and period_end")
    return GenerationResultOut.model_validate(result, from_attributes=True)


@router.get("/reports", response_model=list[TaxReportOut])
def list_tax_reports(
    tenant_id: TenantDep,
    db: DbDep,
    status_filter: Literal["upcoming", "submitted"] = Query(
        "upcoming", alias="status", description="upcoming (open work) or submitted (filed)"
    ),
):
    reports = TaxReportService(db).list_reports(tenant_id, status_filter)
    return [_report_out(r) for r in reports]


@router.get("/reports/{report_id}", response_model=TaxReportOut)
def get_tax_report(report_id: int, tenant_id: TenantDep, db: DbDep):
    return _report_out(TaxReportService(db).get_report(tenant_id, report_id))


@router.post("/reports/{report_id}/submit", response_model=TaxReportOut)
def submit_tax_report(report_id: int, data: SubmitReportRequest, tenant_id: TenantDep, db: DbDep):
    report = TaxReportService(db).mark_submitted(
        tenant_id, report_id, reference=data.reference, notes=data.notes, method=data.method
    )
    return _report_out(report)


@router.post("/reports/{report_id}/mark-nil", response_model=TaxReportOut)
def mark_tax_report_nil(report_id: int, data: MarkNilRequest, tenant_id: TenantDep, db: DbDep):
    return _report_out(TaxReportService(db).mark_nil(tenant_id, report_id, notes=data.notes))


@router.post("/reports/{report_id}/mark-paid", response_model=TaxReportOut)
def mark_tax_report_paid(report_id: int, data: MarkPaidRequest, tenant_id: TenantDep, db: DbDep):
    report = TaxReportService(db).mark_paid(
        tenant_id,
        report_id,
        paid_at=data.paid_at,
        method=data.method,
        amount_cents=data.amount_cents,
        proof_document_id=data.proof_document_id,
    )
    return _report_out(report)


@router.post("/reports/{report_id}/archive", response_model=TaxReportOut)
def archive_tax_report(report_id: int, data: ArchiveReportRequest, tenant_id: TenantDep, db: DbDep):
    return _report_out(TaxReportService(db).archive(tenant_id, report_id, reason=data.reason))


@router.post("/reports/{report_id}/recalculate", response_model=TaxReportOut)
def recalculate_tax_report(report_id: int, tenant_id: TenantDep, db: DbDep):
    return _report_out(TaxReportService(db).recalculate(tenant_id, report_id))


@router.put("/reports/{report_id}/issues", response_model=TaxReportOut)
def record_tax_report_issues(report_id: int, data: ReportIssuesRequest, tenant_id: TenantDep, db: DbDep):
    """Replace review issues. Blocker issues prevent submission."""
    return _report_out(TaxReportService(db).record_issues(tenant_id, report_id, data.issues))


@router.delete("/reports/{report_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_tax_report(report_id: int, tenant_id: TenantDep, db: DbDep):
    TaxReportService(db).delete(tenant_id, report_id)


@router.post("/reports/{report_id}/document", response_model=TaxReportOut)
def attach_tax_report_document(
    report_id: int, data: AttachDocumentRequest, tenant_id: TenantDep, db: DbDep
):
    """Link a rendered report document already stored under ``storage_key``."""
    return _report_out(TaxReportService(db).attach_document(tenant_id, report_id, data.storage_key))


@router.get("/reports/{report_id}/pdf-url", response_model=ReportDocumentOut)
def get_tax_report_pdf_url(report_id: int, tenant_id: TenantDep, db: DbDep, storage: StorageDep):
    """Signed, time-limited download URL; PENDING until a document is attached."""
    link = TaxReportService(db, storage=storage).get_document_url(tenant_id, report_id)
    return ReportDocumentOut.model_validate(link, from_attributes=True)


@router.post("/filings", response_model=TaxReportOut, status_code=status.HTTP_201_CREATED)
def create_tax_filing(data: CreateFilingRequest, tenant_id: TenantDep, db: DbDep):
    """Create a report by hand; 409 if it already exists for the period."""
    try:
        report = TaxReportService(db).create_filing(tenant_id, data.type, data.period_key)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _report_out(report)


@router.get("/payments", response_model=list[TaxPaymentOut])
def list_tax_payments(
    tenant_id: TenantDep,
    db: DbDep,
    year: int | None = Query(None, ge=1900, le=9998),
):
    rows = TaxReportService(db).list_payments(tenant_id, year=year)
    return [TaxPaymentOut.model_validate(row, from_attributes=True) for row in rows]


@router.get("/reports/{report_id}/attachments", response_model=list[ReportAttachmentOut])
def list_tax_report_attachments(report_id: int, tenant_id: TenantDep, db: DbDep, storage: StorageDep):
    service = TaxReportService(db, storage=storage)
    return [_attachment_out(service, a) for a in service.list_attachments(tenant_id, report_id)]


@router.post(
    "/reports/{report_id}/attachments",
    response_model=ReportAttachmentOut,
    status_code=status.HTTP_201_CREATED,
)
def add_tax_report_attachment(
    report_id: int, data: AddAttachmentRequest, tenant_id: TenantDep, db: DbDep, storage: StorageDep
):
    """Link an evidence document; attaching the same document again is a no-op."""
    service = TaxReportService(db, storage=storage)
    attachment = service.add_attachment(
        tenant_id,
        report_id,
        data.document_id,
        file_name=data.file_name,
        content_type=data.content_type,
        storage_key=data.storage_key,
    )
    return _attachment_out(service, attachment)


@router.delete(
    "/reports/{report_id}/attachments/{attachment_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
def remove_tax_report_attachment(report_id: int, attachment_id: int, tenant_id: TenantDep, db: DbDep):
    TaxReportService(db).remove_attachment(tenant_id, report_id, attachment_id)


@router.get("/reports/{report_id}/activity", response_model=list[ReportActivityOut])
def list_tax_report_activity(report_id: int, tenant_id: TenantDep, db: DbDep):
    activities = TaxReportService(db).list_activity(tenant_id, report_id)
    return [ReportActivityOut.model_validate(a) for a in activities]


@router.post(
    "/reports/{report_id}/attachments/upload",
    response_model=ReportAttachmentOut,
    status_code=status.HTTP_201_CREATED,
)
async def upload_tax_report_attachment(
    report_id: int,
    tenant_id: TenantDep,
    db: DbDep,
    storage: StorageDep,
    file: UploadFile = File(...),
):
    """Upload an evidence file (receipt, tax office notice) and attach it."""
    content = await file.read()
    if not content:
        raise HTTPException(status_code=400, detail="File is empty")
    if len(content) > settings.ATTACHMENT_MAX_BYTES:
        raise HTTPException(status_code=413, detail="File exceeds the attachment size limit")
    logger.info("Uploading attachment for tax report %s: %s bytes, type: %s", report_id, len(content), file.content_type)
    service = TaxReportService(db, storage=storage)
    attachment = service.upload_attachment(
        tenant_id, report_id, content, file_name=file.filename, content_type=file.content_type
    )
    return _attachment_out(service, attachment)
