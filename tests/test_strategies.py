"""Tests for the German report strategies and the registry."""
import pytest

from app.core.exceptions import StrategyNotFoundError
from app.models.tax_models import TaxProfile
from app.services.tax_reporting.aggregation import PeriodTotals
from app.services.tax_reporting.period_utils import resolve_period_key
from app.services.tax_reporting.strategies import (
    GermanEuSalesListStrategy,
    GermanIncomeTaxStrategy,
    GermanVatAdvanceStrategy,
    GermanVatAnnualStrategy,
    ReportContext,
    StrategyRegistry,
    default_registry,
)

from conftest import NOW, TENANT, FakeAggregation, utc


def _profile(**overrides) -> TaxProfile:
    data = {
        "tenant_id": TENANT,
        "country": "DE",
        "regime": "STANDARD_VAT",
        "vat_enabled": True,
        "vat_accounting_method": "SOLL",
        "filing_frequency": "QUARTERLY",
        "currency": "EUR",
        "has_cross_border_sales": False,
        "has_employees": False,
        "uses_tax_advisor": False,
        "effective_from": utc(2020, 1, 1),
    }
    data.update(overrides)
    return TaxProfile(**data)


def _ctx(key: str, totals: PeriodTotals | None = None, **profile) -> ReportContext:
    return ReportContext(
        tenant_id=TENANT,
        period=resolve_period_key(key),
        profile=_profile(**profile),
        aggregation=FakeAggregation(totals),
        now=NOW,
    )


def test_vat_advance_required_for_quarter_not_year():
    strategy = GermanVatAdvanceStrategy()
    assert strategy.is_required(_ctx("2025-Q1"))
    assert strategy.is_required(_ctx("2025-03", filing_frequency="MONTHLY"))
    assert not strategy.is_required(_ctx("2025"))


@pytest.mark.parametrize(
    "overrides",
    [
        {"regime": "SMALL_BUSINESS"},
        {"vat_enabled": False},
        {"filing_frequency": "YEARLY"},
    ],
)
def test_vat_advance_not_required(overrides):
    assert not GermanVatAdvanceStrategy().is_required(_ctx("2025-Q1", **overrides))


def test_vat_advance_due_on_tenth_of_following_month():
    strategy = GermanVatAdvanceStrategy()
    q1 = _ctx("2025-Q1")
    assert strategy.get_due_date(q1.period.end, q1) == utc(2025, 4, 10)
    dec = _ctx("2025-12", filing_frequency="MONTHLY")
    assert strategy.get_due_date(dec.period.end, dec) == utc(2026, 1, 10)


def test_vat_report_amount_and_lines():
    totals = PeriodTotals(
        sales_net_cents=100000,
        sales_vat_cents=19000,
        purchase_net_cents=20000,
        purchase_vat_cents=3800,
        cross_border_sales_net_cents=5000,
    )
    generated = GermanVatAdvanceStrategy().generate(_ctx("2025-Q1", totals))

    assert generated.amount_due_cents == 15200
    assert generated.meta.computation.kind == "vat"
    assert [line.label for line in generated.lines] == [
        "Taxable sales",
        "Input VAT on purchases",
        "Intra-community supplies",
        "VAT payable",
    ]


def test_negative_vat_payable_is_kept():
    totals = PeriodTotals(sales_vat_cents=1000, purchase_vat_cents=5000)
    generated = GermanVatAdvanceStrategy().generate(_ctx("2025-Q1", totals))
    assert generated.amount_due_cents == -4000


def test_annual_returns_due_dates():
    annual = GermanVatAnnualStrategy()
    ctx = _ctx("2025")
    assert annual.is_required(ctx)
    assert annual.get_due_date(ctx.period.end, ctx) == utc(2026, 7, 31)

    advised = _ctx("2025", uses_tax_advisor=True)
    assert annual.get_due_date(advised.period.end, advised) == utc(2027, 2, 28)
    assert not annual.is_required(_ctx("2025-Q1"))
    assert not annual.is_required(_ctx("2025", regime="SMALL_BUSINESS"))


def test_income_tax_has_checklist_but_no_amount():
    strategy = GermanIncomeTaxStrategy()
    ctx = _ctx("2025", PeriodTotals(sales_net_cents=50000, purchase_net_cents=20000), has_employees=True)

    assert strategy.is_required(ctx)
    assert strategy.is_required(_ctx("2025", regime="SMALL_BUSINESS"))
    generated = strategy.generate(ctx)
    assert generated.amount_due_cents is None
    checklist = generated.meta.computation
    assert checklist.profit_estimate_cents == 30000
    assert "payroll" in [item.id for item in checklist.items]


def test_eu_sales_list_only_with_cross_border_sales():
    strategy = GermanEuSalesListStrategy()
    assert not strategy.is_required(_ctx("2025-Q1"))
    ctx = _ctx("2025-Q1", PeriodTotals(cross_border_sales_net_cents=4000), has_cross_border_sales=True)
    assert strategy.is_required(ctx)
    assert strategy.get_due_date(ctx.period.end, ctx) == utc(2025, 4, 25)
    assert strategy.generate(ctx).amount_due_cents == 0


def test_registry_lookup():
    assert isinstance(default_registry.get("VAT_ADVANCE", "de"), GermanVatAdvanceStrategy)
    assert [s.report_type for s in default_registry.get_strategies_for_country("DE")] == [
        "VAT_ADVANCE",
        "VAT_ANNUAL",
        "INCOME_TAX",
        "EU_SALES_LIST",
    ]
    assert default_registry.get_strategies_for_country("FR") == ()
    with pytest.raises(StrategyNotFoundError):
        default_registry.get("VAT_ADVANCE", "FR")


def test_registry_rejects_duplicates():
    with pytest.raises(ValueError):
        StrategyRegistry([GermanVatAdvanceStrategy(), GermanVatAdvanceStrategy()])
