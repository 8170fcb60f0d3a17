"""
Tax Snapshot Locking.

Freezes the tax calculation of a finalized invoice or expense. The first lock
for a (tenant, source type, source id) writes the snapshot; every later lock
returns that same row untouched, so rate or profile changes never rewrite
history. Concurrent first locks converge on the unique constraint.
"""
import json
import logging
from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app import metrics
from app.core.exceptions import SnapshotNotFoundError
from app.db.base_class import utcnow
from app.models.tax_models import SnapshotSourceType, TaxSnapshot
from app.services.tax_calculation import LineInput, TaxBreakdown, TaxCalculator
from app.services.tax_reporting.period_utils import to_utc

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1


def canonical_json(payload: dict) -> str:
    return json.dumps(payload, sort_keys=True, separators=(",", ":"))


class TaxSnapshotLocker:
    def __init__(self, db: Session, calculator: Optional[TaxCalculator] = None):
        self.db = db
        self.calculator = calculator or TaxCalculator(db)

    def find(self, tenant_id: str, source_type: str, source_id: str) -> Optional[TaxSnapshot]:
        return self.db.execute(
            select(TaxSnapshot).where(
                TaxSnapshot.tenant_id == tenant_id,
                TaxSnapshot.source_type == source_type,
                TaxSnapshot.source_id == source_id,
            )
        ).scalars().first()

    def get(self, tenant_id: str, source_type: str, source_id: str) -> TaxSnapshot:
        snapshot = self.find(tenant_id, source_type, source_id)
        if snapshot is None:
            raise SnapshotNotFoundError(source_type, source_id)
        return snapshot

    def lock(
        self,
        tenant_id: str,
        source_type: str,
        source_id: str,
        document_date: Optional[datetime] = None,
        lines: Optional[Sequence[LineInput]] = None,
        breakdown: Optional[TaxBreakdown] = None,
        jurisdiction: Optional[str] = None,
        currency: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> TaxSnapshot:
        """
        Lock the tax calculation of a source document.

        Either pass a ready ``breakdown`` or the document's ``lines`` to be
        calculated with the profile active at ``document_date``.

        Returns:
            The stored snapshot (pre-existing one when already locked)
        """
        try:
            source_type = SnapshotSourceType(source_type).value
        except ValueError as e:
            raise ValueError(f"Invalid source type: {source_type}") from e

        existing = self.find(tenant_id, source_type, source_id)
        if existing is not None:
            logger.debug(f"Snapshot for {source_type} {source_id} already locked (tenant {tenant_id})")
            return existing

        now = to_utc(now) if now is not None else utcnow()
        if breakdown is None:
            if lines is None:
                raise ValueError("Either breakdown or lines must be provided")
            breakdown = self.calculator.calculate(
                tenant_id,
                to_utc(document_date) if document_date is not None else now,
                lines,
                jurisdiction=jurisdiction,
                currency=currency,
            )

        snapshot = TaxSnapshot(
            tenant_id=tenant_id,
            source_type=source_type,
            source_id=source_id,
            jurisdiction=breakdown.jurisdiction,
            regime=breakdown.regime,
            rounding_mode=breakdown.rounding_mode,
            currency=breakdown.currency,
            calculated_at=now,
            subtotal_amount_cents=breakdown.subtotal_amount_cents,
            tax_total_amount_cents=breakdown.tax_total_amount_cents,
            total_amount_cents=breakdown.total_amount_cents,
            breakdown_json=canonical_json(breakdown.to_dict()),
            version=SNAPSHOT_VERSION,
        )
        self.db.add(snapshot)
        try:
            self.db.commit()
        except IntegrityError:
            # A concurrent lock won; its snapshot is the one of record
            self.db.rollback()
            winner = self.find(tenant_id, source_type, source_id)
            if winner is None:
                raise
            logger.info(f"Concurrent snapshot lock for {source_type} {source_id}; using existing")
            return winner

        self.db.refresh(snapshot)
        metrics.snapshot_locked()
        logger.info(
            f"Locked tax snapshot {snapshot.id} for {source_type} {source_id} "
            f"(tenant {tenant_id}, tax={snapshot.tax_total_amount_cents})"
        )
        return snapshot
