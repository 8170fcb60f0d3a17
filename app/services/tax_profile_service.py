"""
Tax Profile Management Service.

Resolves and maintains the effective-dated tax profiles of a tenant.
At most one profile is active at any instant; profiles are superseded by
closing their window, never deleted.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from app import metrics
from app.core.config import settings
from app.core.exceptions import ConflictingProfileWindowError
from app.db.base_class import utcnow
from app.models.tax_models import FilingFrequency, TaxProfile, TaxRegime, VatAccountingMethod
from app.services.tax_reporting.period_utils import to_utc, year_period

logger = logging.getLogger(__name__)

_ENUM_FIELDS = {
    "regime": TaxRegime,
    "vat_accounting_method": VatAccountingMethod,
    "filing_frequency": FilingFrequency,
}

_COPIED_FIELDS = (
    "country",
    "regime",
    "vat_enabled",
    "vat_id",
    "vat_accounting_method",
    "filing_frequency",
    "currency",
    "tax_year_start_month",
    "local_tax_office_name",
    "has_cross_border_sales",
    "has_employees",
    "uses_tax_advisor",
)


class TaxProfileService:
    """
    Manage tax profiles for tenants.

    Responsibilities:
    - Resolve the profile active at an instant
    - Create profile windows and supersede open-ended ones
    - Reject overlapping windows
    """

    def __init__(self, db: Session):
        self.db = db

    def get_active(self, tenant_id: str, at: Optional[datetime] = None) -> Optional[TaxProfile]:
        """
        Profile whose window contains ``at`` (defaults to now).

        Returns:
            TaxProfile, or None when the tenant has no profile for that instant
        """
        instant = to_utc(at) if at is not None else utcnow()
        return self.db.execute(
            select(TaxProfile)
            .where(
                TaxProfile.tenant_id == tenant_id,
                TaxProfile.effective_from <= instant,
                or_(TaxProfile.effective_to.is_(None), TaxProfile.effective_to > instant),
            )
            .order_by(TaxProfile.effective_from.desc())
        ).scalars().first()

    def list_history(self, tenant_id: str) -> List[TaxProfile]:
        return list(
            self.db.execute(
                select(TaxProfile)
                .where(TaxProfile.tenant_id == tenant_id)
                .order_by(TaxProfile.effective_from)
            ).scalars()
        )

    def list_tenants(self) -> List[str]:
        """Tenants that have at least one profile."""
        return list(self.db.execute(select(TaxProfile.tenant_id).distinct()).scalars())

    def upsert(self, tenant_id: str, data: Dict[str, Any], now: Optional[datetime] = None) -> TaxProfile:
        """
        Create or update a tax profile.

        Without ``effective_from`` the currently active profile is corrected in
        place; a tenant's first profile then starts at the beginning of the
        current year. With ``effective_from`` a new window is opened that
        inherits unspecified fields from the profile it supersedes.

        Raises:
            ValueError: If a field value is invalid
            ConflictingProfileWindowError: If the window overlaps another profile
        """
        now = to_utc(now) if now is not None else utcnow()
        fields = self._clean(data)
        effective_from = fields.pop("effective_from", None)
        effective_to = fields.pop("effective_to", None)

        if effective_from is None:
            active = self.get_active(tenant_id, now)
            if active is not None:
                self._check_new_end(active, effective_to)
                return self._apply(active, fields, effective_to, created=False)
            effective_from = year_period(now.year).start

        if effective_to is not None and effective_to <= effective_from:
            raise ValueError("effective_to must be after effective_from")

        profiles = self.list_history(tenant_id)
        same_start = next((p for p in profiles if p.effective_from == effective_from), None)
        if same_start is not None:
            self._check_new_end(same_start, effective_to)
            return self._apply(same_start, fields, effective_to, created=False)

        # An open-ended profile that starts earlier is superseded by the new one
        superseded = [
            p for p in profiles if p.effective_to is None and p.effective_from < effective_from
        ]
        later_starts = [p.effective_from for p in profiles if p.effective_from > effective_from]
        if effective_to is None and later_starts:
            effective_to = min(later_starts)

        for other in profiles:
            other_end = effective_from if other in superseded else other.effective_to
            if self._overlaps(other.effective_from, other_end, effective_from, effective_to):
                raise ConflictingProfileWindowError(tenant_id, effective_from, other.id)

        base = self.get_active(tenant_id, effective_from)
        for profile in superseded:
            profile.effective_to = effective_from
            logger.info(
                f"Tax profile {profile.id} for tenant {tenant_id} superseded at {effective_from.isoformat()}"
            )

        profile = TaxProfile(tenant_id=tenant_id, effective_from=effective_from)
        if base is not None:
            for name in _COPIED_FIELDS:
                setattr(profile, name, getattr(base, name))
        else:
            profile.country = settings.TAX_DEFAULT_COUNTRY
            profile.currency = settings.TAX_DEFAULT_CURRENCY
        self.db.add(profile)
        return self._apply(profile, fields, effective_to, created=True)

    def _check_new_end(self, profile: TaxProfile, effective_to: Optional[datetime]) -> None:
        """Reject moving the end of an existing window onto another window."""
        if effective_to is None:
            return
        if effective_to <= profile.effective_from:
            raise ValueError("effective_to must be after effective_from")
        for other in self.list_history(profile.tenant_id):
            if other.id == profile.id:
                continue
            if self._overlaps(other.effective_from, other.effective_to, profile.effective_from, effective_to):
                raise ConflictingProfileWindowError(profile.tenant_id, profile.effective_from, other.id)

    def _apply(
        self,
        profile: TaxProfile,
        fields: Dict[str, Any],
        effective_to: Optional[datetime],
        created: bool,
    ) -> TaxProfile:
        for name, value in fields.items():
            setattr(profile, name, value)
        if effective_to is not None:
            profile.effective_to = effective_to
        self.db.commit()
        self.db.refresh(profile)
        metrics.tax_profile_updated()
        logger.info(
            f"Tax profile {'created' if created else 'updated'} for tenant {profile.tenant_id}: "
            f"fields={', '.join(sorted(fields)) or '-'}"
        )
        return profile

    @staticmethod
    def _overlaps(a_start, a_end, b_start, b_end) -> bool:
        a_before_b_ends = b_end is None or a_start < b_end
        b_before_a_ends = a_end is None or b_start < a_end
        return a_before_b_ends and b_before_a_ends

    def _clean(self, data: Dict[str, Any]) -> Dict[str, Any]:
        allowed = set(_COPIED_FIELDS) | {"effective_from", "effective_to"}
        cleaned: Dict[str, Any] = {}
        for name, value in data.items():
            if name not in allowed or value is None:
                continue
            if name in _ENUM_FIELDS:
                enum_cls = _ENUM_FIELDS[name]
                try:
                    value = enum_cls(value).value
                except ValueError as e:
                    raise ValueError(f"Invalid {name}: {value}") from e
            elif name in ("effective_from", "effective_to"):
                value = to_utc(value)
            elif name in ("country", "currency"):
                value = str(value).strip().upper()
                expected = 2 if name == "country" else 3
                if len(value) != expected or not value.isalpha():
                    raise ValueError(f"Invalid {name}: {value}")
            elif name == "tax_year_start_month" and not 1 <= int(value) <= 12:
                raise ValueError("tax_year_start_month must be 1-12")
            cleaned[name] = value
        return cleaned
