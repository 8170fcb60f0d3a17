"""Tests for Celery tasks (executed eagerly in the test environment)."""
from sqlalchemy import select

from app.models.tax_models import TaxReport, TaxSnapshot
from app.workers.tasks import generate_previous_period_reports, lock_document_snapshot

from conftest import TENANT, utc


def _reports(db_session, tenant_id=TENANT):
    db_session.expire_all()
    return db_session.execute(
        select(TaxReport).where(TaxReport.tenant_id == tenant_id).order_by(TaxReport.type)
    ).scalars().all()


def test_generates_previous_period_per_tenant_frequency(db_session, profile_factory):
    profile_factory()
    profile_factory(tenant_id="ws_monthly", filing_frequency="MONTHLY")

    result = generate_previous_period_reports.delay(reference="2025-04-01T02:00:00Z").get()

    assert result == {"tenants": 2, "reports": 2, "failures": 0}
    quarterly = _reports(db_session)
    assert [(r.type, r.period_label) for r in quarterly] == [("VAT_ADVANCE", "Q1 2025")]
    monthly = _reports(db_session, "ws_monthly")
    assert [(r.type, r.period_label) for r in monthly] == [("VAT_ADVANCE", "Mar 2025")]


def test_january_run_adds_annual_returns(db_session, profile_factory):
    profile_factory()

    result = generate_previous_period_reports.delay(reference="2026-01-01T02:00:00Z").get()

    assert result["reports"] == 3
    assert sorted(r.type for r in _reports(db_session)) == ["INCOME_TAX", "VAT_ADVANCE", "VAT_ANNUAL"]


def test_rerun_does_not_duplicate(db_session, profile_factory):
    profile_factory()
    generate_previous_period_reports.delay(reference="2025-04-01T02:00:00Z").get()
    generate_previous_period_reports.delay(reference="2025-04-01T02:00:00Z").get()

    assert len(_reports(db_session)) == 1


def test_tenant_without_active_profile_is_skipped(db_session, profile_factory):
    profile_factory(effective_to=utc(2025, 1, 1))

    result = generate_previous_period_reports.delay(reference="2025-04-01T02:00:00Z").get()

    assert result == {"tenants": 0, "reports": 0, "failures": 0}


def test_lock_document_snapshot_task(db_session, profile_factory):
    profile_factory()
    lines = [{"net_amount_cents": 10000, "vat_kind": "standard"}]

    snapshot_id = lock_document_snapshot.delay(TENANT, "INVOICE", "inv_1", lines, "2025-03-01T00:00:00Z").get()
    again = lock_document_snapshot.delay(TENANT, "INVOICE", "inv_1", lines, "2025-03-01T00:00:00Z").get()

    assert again == snapshot_id
    snapshot = db_session.get(TaxSnapshot, snapshot_id)
    assert snapshot.tax_total_amount_cents == 1900
