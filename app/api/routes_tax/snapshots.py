"""
Tax Calculation and Snapshot Routes.
"""
from __future__ import annotations

import json
import logging

from fastapi import APIRouter, HTTPException

from app.api.dependencies import DbDep, TenantDep
from app.models.tax_models import TaxSnapshot
from app.services.tax_calculation import LineInput, TaxCalculator
from app.services.tax_snapshot_service import TaxSnapshotLocker

from .schemas import CalculateTaxRequest, LockSnapshotRequest, TaxSnapshotOut

logger = logging.getLogger(__name__)
router = APIRouter()


def _snapshot_out(snapshot: TaxSnapshot) -> TaxSnapshotOut:
    return TaxSnapshotOut(
        id=snapshot.id,
        source_type=snapshot.source_type,
        source_id=snapshot.source_id,
        jurisdiction=snapshot.jurisdiction,
        regime=snapshot.regime,
        rounding_mode=snapshot.rounding_mode,
        currency=snapshot.currency,
        calculated_at=snapshot.calculated_at,
        subtotal_amount_cents=snapshot.subtotal_amount_cents,
        tax_total_amount_cents=snapshot.tax_total_amount_cents,
        total_amount_cents=snapshot.total_amount_cents,
        breakdown=json.loads(snapshot.breakdown_json),
        version=snapshot.version,
    )


def _lines(data: CalculateTaxRequest) -> list[LineInput]:
    return [
        LineInput(net_amount_cents=line.net_amount_cents, vat_kind=line.vat_kind.upper(), description=line.description)
        for line in data.lines
    ]


@router.post("/calculate")
def calculate_tax(data: CalculateTaxRequest, tenant_id: TenantDep, db: DbDep):
    """Preview the VAT breakdown of a document without locking it."""
    breakdown = TaxCalculator(db).calculate(
        tenant_id,
        data.document_date,
        _lines(data),
        jurisdiction=data.jurisdiction,
        currency=data.currency,
    )
    return breakdown.to_dict()


@router.post("/snapshots/lock", response_model=TaxSnapshotOut)
def lock_tax_snapshot(data: LockSnapshotRequest, tenant_id: TenantDep, db: DbDep):
    """Lock the tax calculation of a finalized document. Idempotent."""
    try:
        snapshot = TaxSnapshotLocker(db).lock(
            tenant_id,
            data.source_type,
            data.source_id,
            document_date=data.document_date,
            lines=_lines(data),
            jurisdiction=data.jurisdiction,
            currency=data.currency,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _snapshot_out(snapshot)


@router.get("/snapshots/{source_type}/{source_id}", response_model=TaxSnapshotOut)
def get_tax_snapshot(source_type: str, source_id: str, tenant_id: TenantDep, db: DbDep):
    snapshot = TaxSnapshotLocker(db).get(tenant_id, source_type.upper(), source_id)
    return _snapshot_out(snapshot)
