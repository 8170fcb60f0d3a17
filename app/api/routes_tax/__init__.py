"""
Tax API Routes Module.

All routes are prefixed with /tax and act on the tenant named by the
X-Tenant-Id header.

Sub-modules:
- profile: Tax profile windows
- reports: Report generation, lifecycle, filings, payments, documents
- periods: VAT period calendar, period totals and details, summary
- snapshots: Document tax calculation and snapshot locking
"""
from __future__ import annotations

from fastapi import APIRouter

from .periods import router as periods_router
from .profile import router as profile_router
from .reports import router as reports_router
from .snapshots import router as snapshots_router

# Main router with /tax prefix
router = APIRouter(prefix="/tax", tags=["tax"])

router.include_router(profile_router)
router.include_router(reports_router)
router.include_router(periods_router)
router.include_router(snapshots_router)

__all__ = ["router"]
