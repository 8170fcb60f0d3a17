"""Tests for document tax calculation and snapshot locking."""
import json

import pytest

from app.core.exceptions import (
    JurisdictionNotSupportedError,
    ProfileMissingError,
    SnapshotNotFoundError,
    UnknownTaxRateError,
)
from app.services.tax_calculation import LineInput, TaxCalculator, tax_for
from app.services.tax_snapshot_service import TaxSnapshotLocker

from conftest import NOW, TENANT, utc

LINES = [LineInput(10000, "STANDARD"), LineInput(5000, "REDUCED"), LineInput(333, "STANDARD")]


def test_tax_for_rounds_half_up():
    assert tax_for(10000, 1900) == 1900
    assert tax_for(333, 1900) == 63  # 63.27
    assert tax_for(50, 700) == 4  # 3.5


def test_calculate_standard_vat(db_session, profile_factory):
    profile_factory()
    breakdown = TaxCalculator(db_session).calculate(TENANT, utc(2025, 3, 1), LINES)

    assert breakdown.jurisdiction == "DE"
    assert breakdown.subtotal_amount_cents == 15333
    assert breakdown.tax_total_amount_cents == 1900 + 350 + 63
    assert breakdown.total_amount_cents == 15333 + 2313
    assert breakdown.totals_by_kind["REDUCED"] == {"net": 5000, "tax": 350, "gross": 5350}
    assert not breakdown.is_small_business_no_vat_charged


def test_small_business_charges_no_vat(db_session, profile_factory):
    profile_factory(regime="SMALL_BUSINESS")
    breakdown = TaxCalculator(db_session).calculate(TENANT, utc(2025, 3, 1), LINES)

    assert breakdown.tax_total_amount_cents == 0
    assert breakdown.total_amount_cents == 15333
    assert breakdown.is_small_business_no_vat_charged
    assert breakdown.to_dict()["isSmallBusinessNoVatCharged"] is True


def test_calculation_errors(db_session, profile_factory):
    calculator = TaxCalculator(db_session)
    with pytest.raises(ProfileMissingError):
        calculator.calculate(TENANT, utc(2025, 3, 1), LINES)

    profile_factory()
    with pytest.raises(JurisdictionNotSupportedError) as exc:
        calculator.calculate(TENANT, utc(2025, 3, 1), LINES, jurisdiction="FR")
    assert exc.value.message == "Jurisdiction pack not found"
    with pytest.raises(UnknownTaxRateError):
        calculator.calculate(TENANT, utc(2025, 3, 1), [LineInput(100, "LUXURY")])


def test_lock_is_idempotent(db_session, profile_factory):
    profile_factory()
    locker = TaxSnapshotLocker(db_session)

    first = locker.lock(TENANT, "INVOICE", "inv_1", document_date=utc(2025, 3, 1), lines=LINES, now=NOW)
    # Different lines on a second lock do not rewrite the snapshot
    second = locker.lock(
        TENANT, "INVOICE", "inv_1", document_date=utc(2025, 3, 1), lines=[LineInput(1, "STANDARD")], now=NOW
    )

    assert second.id == first.id
    assert second.tax_total_amount_cents == 2313
    assert second.breakdown_json == first.breakdown_json
    assert json.loads(first.breakdown_json)["subtotalAmountCents"] == 15333
    assert first.calculated_at == NOW
    assert first.version == 1


def test_snapshot_survives_profile_change(db_session, profile_factory):
    profile = profile_factory()
    locker = TaxSnapshotLocker(db_session)
    locker.lock(TENANT, "EXPENSE", "exp_1", document_date=utc(2025, 3, 1), lines=LINES, now=NOW)

    profile.regime = "SMALL_BUSINESS"
    db_session.commit()

    snapshot = locker.get(TENANT, "EXPENSE", "exp_1")
    assert snapshot.tax_total_amount_cents == 2313
    assert snapshot.regime == "STANDARD_VAT"


def test_lock_rejects_unknown_source_type(db_session, profile_factory):
    profile_factory()
    with pytest.raises(ValueError):
        TaxSnapshotLocker(db_session).lock(TENANT, "RECEIPT", "r_1", lines=LINES, now=NOW)


def test_get_missing_snapshot(db_session):
    with pytest.raises(SnapshotNotFoundError):
        TaxSnapshotLocker(db_session).get(TENANT, "INVOICE", "nope")
