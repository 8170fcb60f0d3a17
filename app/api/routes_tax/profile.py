"""
Tax Profile Routes.

Read and maintain the effective-dated tax profile of the current tenant.
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException

from app.api.dependencies import DbDep, TenantDep
from app.services.tax_profile_service import TaxProfileService

from .schemas import TaxProfileOut, TaxProfileUpdate

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/profile", response_model=TaxProfileOut)
def get_tax_profile(tenant_id: TenantDep, db: DbDep):
    """Tax profile active now."""
    profile = TaxProfileService(db).get_active(tenant_id)
    if profile is None:
        raise HTTPException(status_code=404, detail="Tax profile is not configured")
    return profile


@router.get("/profile/history", response_model=list[TaxProfileOut])
def get_tax_profile_history(tenant_id: TenantDep, db: DbDep):
    """All profile windows, oldest first."""
    return TaxProfileService(db).list_history(tenant_id)


@router.put("/profile", response_model=TaxProfileOut)
def upsert_tax_profile(data: TaxProfileUpdate, tenant_id: TenantDep, db: DbDep):
    """
    Create or update the tax profile.

    Without ``effective_from`` the active profile is corrected in place.
    With it, a new window starts and supersedes the open one.
    """
    try:
        return TaxProfileService(db).upsert(tenant_id, data.model_dump(exclude_unset=True))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
