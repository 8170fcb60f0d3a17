"""Tests for report attachments and the activity history."""
from pathlib import Path

import pytest
from sqlalchemy import select

from app.core.exceptions import AttachmentNotFoundError, ConflictingTransitionError, ReportNotFoundError
from app.models.tax_meta import ReportIssue
from app.models.tax_models import TaxReportActivity, TaxReportAttachment
from app.services.tax_reporting.generation_service import TaxReportGenerationService
from app.services.tax_reporting.report_service import TaxReportService

from conftest import NOW, TENANT, utc


@pytest.fixture
def report(db_session, profile_factory, documents):
    profile_factory()
    documents.invoice(utc(2025, 2, 3), 10000, 1900)
    result = TaxReportGenerationService(db_session).generate_for_period_key(TENANT, "2025-Q1", now=NOW)
    return TaxReportService(db_session).get_report(TENANT, result.reports[0].report_id)


@pytest.fixture
def service(db_session, storage):
    return TaxReportService(db_session, storage=storage)


def test_attach_list_and_remove(service, report):
    receipt = service.add_attachment(TENANT, report.id, "doc_1", file_name="receipt.pdf")
    notice = service.add_attachment(TENANT, report.id, "doc_2", file_name="notice.pdf")

    assert [a.document_id for a in service.list_attachments(TENANT, report.id)] == ["doc_1", "doc_2"]

    service.remove_attachment(TENANT, report.id, receipt.id)
    assert [a.id for a in service.list_attachments(TENANT, report.id)] == [notice.id]


def test_attaching_same_document_twice_is_idempotent(db_session, service, report):
    first = service.add_attachment(TENANT, report.id, "doc_1")
    again = service.add_attachment(TENANT, report.id, "doc_1", file_name="renamed.pdf")

    assert again.id == first.id
    assert len(db_session.execute(select(TaxReportAttachment)).scalars().all()) == 1


def test_remove_unknown_attachment(service, report):
    with pytest.raises(AttachmentNotFoundError) as exc:
        service.remove_attachment(TENANT, report.id, 999)
    assert exc.value.status_code == 404


def test_archived_report_attachments_are_frozen(service, report):
    attachment = service.add_attachment(TENANT, report.id, "doc_1")
    service.archive(TENANT, report.id, reason="duplicate")

    with pytest.raises(ConflictingTransitionError):
        service.add_attachment(TENANT, report.id, "doc_2")
    with pytest.raises(ConflictingTransitionError):
        service.remove_attachment(TENANT, report.id, attachment.id)


def test_attachments_of_other_tenant_are_hidden(service, report):
    service.add_attachment(TENANT, report.id, "doc_1")
    with pytest.raises(ReportNotFoundError):
        service.list_attachments("ws_other", report.id)


def test_upload_stores_file_and_attaches(service, report, storage):
    attachment = service.upload_attachment(
        TENANT, report.id, b"%PDF-1.4 receipt", file_name="receipt.pdf", content_type="application/pdf"
    )

    assert attachment.storage_key.startswith(f"{TENANT}/reports/{report.id}/attachments/")
    assert attachment.storage_key.endswith(".pdf")
    url = service.get_attachment_url(attachment)
    assert url.startswith("file://")
    assert Path(url[len("file://"):]).read_bytes() == b"%PDF-1.4 receipt"


def test_activity_records_each_change(service, report):
    service.record_issues(
        TENANT, report.id, [ReportIssue(id="i1", type="data", severity="warning", title="Check rates")]
    )
    service.add_attachment(TENANT, report.id, "doc_1")
    service.mark_submitted(TENANT, report.id, reference="ELSTER-1", now=NOW)
    service.mark_paid(TENANT, report.id, now=NOW)

    activity = service.list_activity(TENANT, report.id)

    assert [a.action for a in activity] == [
        "created",
        "issues_updated",
        "attachment_added",
        "submitted",
        "paid",
    ]
    submitted = activity[3]
    assert submitted.status_before == "OPEN"
    assert submitted.status_after == "SUBMITTED"
    assert submitted.detail["reference"] == "ELSTER-1"
    assert activity[1].detail == {"issues": 1, "blockers": 0}


def test_recalculation_is_recorded(service, report, documents):
    documents.invoice(utc(2025, 3, 3), 10000, 1900)
    service.recalculate(TENANT, report.id, now=NOW)

    last = service.list_activity(TENANT, report.id)[-1]
    assert last.action == "recalculated"
    assert last.detail["amount_estimated_cents"] == 3800


def test_deleting_report_removes_attachments_and_activity(db_session, service, report):
    service.add_attachment(TENANT, report.id, "doc_1")
    service.delete(TENANT, report.id)

    assert db_session.execute(select(TaxReportAttachment)).scalars().all() == []
    assert db_session.execute(select(TaxReportActivity)).scalars().all() == []
