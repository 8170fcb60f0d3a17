"""
Document Tax Calculation.

Computes the VAT breakdown of a document from its net line amounts, using the
rate table of a jurisdiction pack and the regime of the tenant's tax profile
at the document date.

Following SRP:
- JurisdictionPack: rate table of one country
- TaxCalculator: applies a pack to document lines
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from app.core.exceptions import JurisdictionNotSupportedError, ProfileMissingError, UnknownTaxRateError
from app.models.tax_models import RoundingMode, TaxRegime
from app.services.tax_profile_service import TaxProfileService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LineInput:
    net_amount_cents: int
    vat_kind: str = "STANDARD"
    description: Optional[str] = None


@dataclass(frozen=True)
class TaxLineResult:
    kind: str
    rate_bps: int
    net_amount_cents: int
    tax_amount_cents: int
    gross_amount_cents: int


@dataclass
class TaxBreakdown:
    jurisdiction: str
    regime: Optional[str]
    currency: str
    rounding_mode: str
    subtotal_amount_cents: int
    tax_total_amount_cents: int
    total_amount_cents: int
    lines: List[TaxLineResult] = field(default_factory=list)
    totals_by_kind: Dict[str, Dict[str, int]] = field(default_factory=dict)
    is_small_business_no_vat_charged: bool = False

    def to_dict(self) -> dict:
        return {
            "jurisdiction": self.jurisdiction,
            "regime": self.regime,
            "currency": self.currency,
            "roundingMode": self.rounding_mode,
            "subtotalAmountCents": self.subtotal_amount_cents,
            "taxTotalAmountCents": self.tax_total_amount_cents,
            "totalAmountCents": self.total_amount_cents,
            "isSmallBusinessNoVatCharged": self.is_small_business_no_vat_charged,
            "lines": [
                {
                    "kind": line.kind,
                    "rateBps": line.rate_bps,
                    "netAmountCents": line.net_amount_cents,
                    "taxAmountCents": line.tax_amount_cents,
                    "grossAmountCents": line.gross_amount_cents,
                }
                for line in self.lines
            ],
            "totalsByKind": self.totals_by_kind,
        }


class JurisdictionPack:
    """VAT rate table of one country, rates in basis points."""

    code: str = ""
    rates_bps: Dict[str, int] = {}

    def rate_for(self, kind: str) -> int:
        try:
            return self.rates_bps[kind]
        except KeyError as e:
            raise UnknownTaxRateError(self.code, kind) from e


class GermanTaxPack(JurisdictionPack):
    code = "DE"
    rates_bps = {
        "STANDARD": 1900,
        "REDUCED": 700,
        "ZERO": 0,
        "EXEMPT": 0,
        "REVERSE_CHARGE": 0,
    }


DEFAULT_PACKS: Dict[str, JurisdictionPack] = {pack.code: pack for pack in (GermanTaxPack(),)}


def tax_for(net_cents: int, rate_bps: int) -> int:
    """VAT on a net amount, rounded half-up to the cent."""
    amount = Decimal(net_cents) * Decimal(rate_bps) / Decimal(10_000)
    return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class TaxCalculator:
    """Calculate document VAT for a tenant."""

    def __init__(self, db: Session, packs: Optional[Dict[str, JurisdictionPack]] = None):
        self.profiles = TaxProfileService(db)
        self.packs = packs or DEFAULT_PACKS

    def get_pack(self, jurisdiction: str) -> JurisdictionPack:
        pack = self.packs.get((jurisdiction or "").upper())
        if pack is None:
            raise JurisdictionNotSupportedError(jurisdiction)
        return pack

    def calculate(
        self,
        tenant_id: str,
        document_date: datetime,
        lines: Sequence[LineInput],
        jurisdiction: Optional[str] = None,
        currency: Optional[str] = None,
    ) -> TaxBreakdown:
        """
        Compute the VAT breakdown of a document.

        Args:
            tenant_id: Issuing tenant
            document_date: Date that selects the tax profile
            lines: Net line amounts with their VAT kind
            jurisdiction: Country pack to use (defaults to the profile's country)
            currency: Document currency (defaults to the profile's currency)

        Raises:
            ProfileMissingError: If no profile is active at ``document_date``
            JurisdictionNotSupportedError: If no pack exists for the jurisdiction
        """
        profile = self.profiles.get_active(tenant_id, document_date)
        if profile is None:
            raise ProfileMissingError(tenant_id, document_date)
        pack = self.get_pack(jurisdiction or profile.country)
        no_vat = profile.regime == TaxRegime.SMALL_BUSINESS.value

        results: List[TaxLineResult] = []
        by_kind: Dict[str, Dict[str, int]] = {}
        for line in lines:
            rate = pack.rate_for(line.vat_kind)
            if no_vat:
                rate = 0
            tax = tax_for(line.net_amount_cents, rate)
            results.append(
                TaxLineResult(
                    kind=line.vat_kind,
                    rate_bps=rate,
                    net_amount_cents=line.net_amount_cents,
                    tax_amount_cents=tax,
                    gross_amount_cents=line.net_amount_cents + tax,
                )
            )
            bucket = by_kind.setdefault(line.vat_kind, {"net": 0, "tax": 0, "gross": 0})
            bucket["net"] += line.net_amount_cents
            bucket["tax"] += tax
            bucket["gross"] += line.net_amount_cents + tax

        subtotal = sum(r.net_amount_cents for r in results)
        tax_total = sum(r.tax_amount_cents for r in results)
        logger.debug(
            "Calculated %s VAT for tenant %s: net=%s tax=%s", pack.code, tenant_id, subtotal, tax_total
        )
        return TaxBreakdown(
            jurisdiction=pack.code,
            regime=profile.regime,
            currency=(currency or profile.currency).upper(),
            rounding_mode=RoundingMode.PER_LINE.value,
            subtotal_amount_cents=subtotal,
            tax_total_amount_cents=tax_total,
            total_amount_cents=subtotal + tax_total,
            lines=results,
            totals_by_kind=by_kind,
            is_small_business_no_vat_charged=no_vat,
        )
