"""Tests for effective-dated tax profiles."""
import pytest

from app.core.exceptions import ConflictingProfileWindowError
from app.services.tax_profile_service import TaxProfileService

from conftest import NOW, TENANT, utc


def test_first_profile_starts_at_beginning_of_year(db_session):
    profile = TaxProfileService(db_session).upsert(TENANT, {"vat_id": "DE999999999"}, now=NOW)

    assert profile.effective_from == utc(2025, 1, 1)
    assert profile.effective_to is None
    assert profile.country == "DE"
    assert profile.currency == "EUR"
    assert profile.regime == "STANDARD_VAT"


def test_update_without_effective_from_corrects_in_place(db_session):
    service = TaxProfileService(db_session)
    first = service.upsert(TENANT, {"vat_accounting_method": "SOLL"}, now=NOW)
    second = service.upsert(TENANT, {"vat_accounting_method": "IST", "has_employees": True}, now=NOW)

    assert second.id == first.id
    assert second.vat_accounting_method == "IST"
    assert second.has_employees is True
    assert len(service.list_history(TENANT)) == 1


def test_new_window_supersedes_open_profile(db_session):
    service = TaxProfileService(db_session)
    old = service.upsert(TENANT, {"vat_id": "DE111111111", "filing_frequency": "QUARTERLY"}, now=NOW)
    new = service.upsert(
        TENANT,
        {"filing_frequency": "MONTHLY", "effective_from": "2025-07-01T00:00:00Z"},
        now=NOW,
    )

    db_session.refresh(old)
    assert old.effective_to == utc(2025, 7, 1)
    assert new.effective_from == utc(2025, 7, 1)
    assert new.effective_to is None
    # Fields not given are inherited from the superseded window
    assert new.vat_id == "DE111111111"
    assert service.get_active(TENANT, utc(2025, 6, 30, 23, 59)).id == old.id
    assert service.get_active(TENANT, utc(2025, 7, 1)).id == new.id


def test_overlapping_window_is_rejected(db_session, profile_factory):
    profile_factory(effective_from=utc(2024, 1, 1), effective_to=utc(2024, 7, 1))
    profile_factory(effective_from=utc(2024, 7, 1))

    with pytest.raises(ConflictingProfileWindowError) as exc:
        TaxProfileService(db_session).upsert(TENANT, {"effective_from": utc(2024, 3, 1)}, now=NOW)
    assert exc.value.status_code == 409


def test_earlier_window_fills_gap_up_to_next_start(db_session, profile_factory):
    profile_factory(effective_from=utc(2025, 1, 1))
    service = TaxProfileService(db_session)

    backfill = service.upsert(TENANT, {"effective_from": utc(2024, 1, 1), "regime": "SMALL_BUSINESS"}, now=NOW)

    assert backfill.effective_to == utc(2025, 1, 1)
    assert service.get_active(TENANT, utc(2024, 6, 1)).regime == "SMALL_BUSINESS"
    assert service.get_active(TENANT, utc(2025, 6, 1)).regime == "STANDARD_VAT"
    assert service.get_active(TENANT, utc(2023, 6, 1)) is None


def test_same_start_updates_that_window(db_session, profile_factory):
    existing = profile_factory(effective_from=utc(2025, 1, 1))
    updated = TaxProfileService(db_session).upsert(
        TENANT, {"effective_from": utc(2025, 1, 1), "uses_tax_advisor": True}, now=NOW
    )
    assert updated.id == existing.id
    assert updated.uses_tax_advisor is True


def test_in_place_end_cannot_run_into_next_window(db_session):
    service = TaxProfileService(db_session)
    service.upsert(TENANT, {"vat_id": "DE111111111"}, now=NOW)
    service.upsert(TENANT, {"effective_from": "2025-07-01T00:00:00Z"}, now=NOW)

    with pytest.raises(ConflictingProfileWindowError):
        service.upsert(TENANT, {"effective_to": "2025-12-01T00:00:00Z"}, now=NOW)

    db_session.rollback()
    assert service.get_active(TENANT, utc(2025, 8, 1)).effective_from == utc(2025, 7, 1)
    assert service.list_history(TENANT)[0].effective_to == utc(2025, 7, 1)


def test_in_place_end_before_start_is_rejected(db_session):
    service = TaxProfileService(db_session)
    service.upsert(TENANT, {"vat_id": "DE111111111"}, now=NOW)

    with pytest.raises(ValueError):
        service.upsert(TENANT, {"effective_to": "2024-06-01T00:00:00Z"}, now=NOW)


def test_in_place_end_can_close_the_window(db_session):
    service = TaxProfileService(db_session)
    profile = service.upsert(TENANT, {"vat_id": "DE111111111"}, now=NOW)

    closed = service.upsert(TENANT, {"effective_to": "2025-10-01T00:00:00Z"}, now=NOW)

    assert closed.id == profile.id
    assert closed.effective_to == utc(2025, 10, 1)
    assert service.get_active(TENANT, utc(2025, 10, 1)) is None


def test_same_start_end_cannot_overlap_next_window(db_session, profile_factory):
    profile_factory(effective_from=utc(2024, 1, 1), effective_to=utc(2024, 7, 1))
    profile_factory(effective_from=utc(2024, 7, 1))

    with pytest.raises(ConflictingProfileWindowError):
        TaxProfileService(db_session).upsert(
            TENANT, {"effective_from": utc(2024, 1, 1), "effective_to": utc(2024, 9, 1)}, now=NOW
        )


@pytest.mark.parametrize(
    "data",
    [
        {"regime": "FLAT_RATE"},
        {"vat_accounting_method": "ACCRUAL"},
        {"country": "DEU"},
        {"currency": "EU"},
        {"tax_year_start_month": 13},
    ],
)
def test_invalid_fields_rejected(db_session, data):
    with pytest.raises(ValueError):
        TaxProfileService(db_session).upsert(TENANT, data, now=NOW)


def test_list_tenants(db_session, profile_factory):
    profile_factory()
    profile_factory(tenant_id="ws_other")
    assert sorted(TaxProfileService(db_session).list_tenants()) == ["ws_other", TENANT]
