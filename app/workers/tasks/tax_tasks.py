"""
Tax Tasks.

Celery tasks for period-close report generation and snapshot locking.
"""
from __future__ import annotations

import logging
from typing import Any

from celery import Task
from sqlalchemy.exc import OperationalError

from app.db.base_class import utcnow
from app.db.session import session_scope
from app.models.tax_models import FilingFrequency
from app.services.tax_calculation import LineInput
from app.services.tax_profile_service import TaxProfileService
from app.services.tax_reporting.generation_service import TaxReportGenerationService
from app.services.tax_reporting.period_utils import previous_period, to_utc, year_period
from app.services.tax_snapshot_service import TaxSnapshotLocker
from app.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(
    bind=True,
    name="tax.generate_previous_period_reports",
    autoretry_for=(OperationalError,),
    retry_backoff=60,
    retry_jitter=True,
    retry_kwargs={"max_retries": 3},
)
def generate_previous_period_reports(self: Task, reference: str | None = None) -> dict[str, int]:
    """Generate reports for the filing period that just closed, for every tenant.

    ``reference`` (ISO-8601) overrides the current instant. In January the
    previous calendar year is generated as well, which yields the annual
    returns. Generation is idempotent, so retries and re-runs are safe.
    """
    now = to_utc(reference) if reference else utcnow()
    tenants = 0
    reports = 0
    failures = 0

    with session_scope() as db:
        profiles = TaxProfileService(db)
        generator = TaxReportGenerationService(db)

        for tenant_id in profiles.list_tenants():
            profile = profiles.get_active(tenant_id, now)
            if profile is None:
                logger.info("Skipping tenant=%s: no active tax profile", tenant_id)
                continue
            tenants += 1

            periods = []
            if profile.filing_frequency != FilingFrequency.YEARLY.value:
                periods.append(previous_period(now, profile.filing_frequency))
            if now.month == 1:
                periods.append(year_period(now.year - 1))

            for period in periods:
                try:
                    result = generator.execute(tenant_id, period.start, period.end, period.label, now=now)
                except Exception as e:  # noqa: BLE001 - keep going for other tenants
                    failures += 1
                    db.rollback()
                    logger.exception("Failed generating tax reports for tenant %s %s: %s", tenant_id, period.label, e)
                    continue
                reports += len(result.reports)
                failures += len(result.failures)
                logger.info(
                    "Generated tax reports tenant=%s period=%s reports=%s failures=%s",
                    tenant_id, period.label, len(result.reports), len(result.failures),
                )
            db.expire_all()

    logger.info(
        "[tax.generate_previous_period_reports] completed tenants=%s reports=%s failures=%s",
        tenants, reports, failures,
    )
    return {"tenants": tenants, "reports": reports, "failures": failures}


@celery_app.task(
    bind=True,
    name="tax.lock_document_snapshot",
    autoretry_for=(OperationalError,),
    retry_backoff=30,
    retry_kwargs={"max_retries": 5},
)
def lock_document_snapshot(
    self: Task,
    tenant_id: str,
    source_type: str,
    source_id: str,
    lines: list[dict[str, Any]],
    document_date: str,
    jurisdiction: str | None = None,
    currency: str | None = None,
) -> int:
    """Lock the tax snapshot of a document that was just finalized.

    Returns:
        The snapshot id (the existing one when already locked)
    """
    line_inputs = [
        LineInput(
            net_amount_cents=int(line["net_amount_cents"]),
            vat_kind=str(line.get("vat_kind", "STANDARD")).upper(),
            description=line.get("description"),
        )
        for line in lines
    ]
    with session_scope() as db:
        snapshot = TaxSnapshotLocker(db).lock(
            tenant_id,
            source_type,
            source_id,
            document_date=to_utc(document_date),
            lines=line_inputs,
            jurisdiction=jurisdiction,
            currency=currency,
        )
        snapshot_id = snapshot.id
    logger.info("Snapshot %s locked for %s %s (tenant=%s)", snapshot_id, source_type, source_id, tenant_id)
    return snapshot_id
