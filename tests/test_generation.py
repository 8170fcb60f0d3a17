"""Tests for tax report generation."""
from sqlalchemy import func, select

from app.models.tax_models import TaxReport
from app.services.tax_reporting.aggregation import PeriodTotals
from app.services.tax_reporting.generation_service import PROFILE_MISSING_WARNING, TaxReportGenerationService
from app.services.tax_reporting.report_service import TaxReportService
from app.services.tax_reporting.strategies import GermanVatAdvanceStrategy, ReportStrategy, StrategyRegistry

from conftest import NOW, TENANT, FakeAggregation, utc


def _report_count(db_session) -> int:
    return db_session.execute(select(func.count()).select_from(TaxReport)).scalar_one()


def test_generates_vat_advance_for_closed_quarter(db_session, profile_factory, documents):
    profile_factory()
    documents.invoice(utc(2025, 2, 3), 100000, 19000)
    documents.expense(utc(2025, 2, 4), 23800, 3800)

    result = TaxReportGenerationService(db_session).generate_for_period_key(TENANT, "2025-Q1", now=NOW)

    assert not result.profile_missing
    assert result.failures == []
    assert [r.type for r in result.reports] == ["VAT_ADVANCE"]
    outcome = result.reports[0]
    assert outcome.created
    assert outcome.status == "OPEN"
    assert outcome.due_date == utc(2025, 4, 10)
    assert outcome.amount_estimated_cents == 15200

    report = db_session.get(TaxReport, outcome.report_id)
    assert report.group == "ADVANCE_VAT"
    assert report.period_label == "Q1 2025"
    assert report.meta["computation"]["kind"] == "vat"
    assert [line.label for line in report.lines][-1] == "VAT payable"


def test_generation_is_idempotent(db_session, profile_factory, documents):
    profile_factory()
    documents.invoice(utc(2025, 2, 3), 10000, 1900)
    service = TaxReportGenerationService(db_session)

    first = service.generate_for_period_key(TENANT, "2025-Q1", now=NOW)
    second = service.generate_for_period_key(TENANT, "2025-Q1", now=NOW)

    assert _report_count(db_session) == 1
    assert second.reports[0].report_id == first.reports[0].report_id
    assert not second.reports[0].created
    assert second.reports[0].updated
    assert second.reports[0].amount_estimated_cents == 1900


def test_regeneration_picks_up_new_documents(db_session, profile_factory, documents):
    profile_factory()
    service = TaxReportGenerationService(db_session)
    service.generate_for_period_key(TENANT, "2025-Q1", now=NOW)
    documents.invoice(utc(2025, 3, 3), 10000, 1900)

    result = service.generate_for_period_key(TENANT, "2025-Q1", now=NOW)
    assert result.reports[0].amount_estimated_cents == 1900


def test_dry_run_persists_nothing(db_session, profile_factory):
    profile_factory()
    result = TaxReportGenerationService(db_session).generate_for_period_key(
        TENANT, "2025-Q1", dry_run=True, now=NOW
    )

    assert result.dry_run
    assert len(result.reports) == 1
    assert result.reports[0].report_id is None
    assert _report_count(db_session) == 0


def test_missing_profile_is_reported_not_raised(db_session):
    result = TaxReportGenerationService(db_session).generate_for_period_key(TENANT, "2025-Q1", now=NOW)

    assert result.profile_missing
    assert result.reports == []
    assert PROFILE_MISSING_WARNING in result.warnings


def test_running_period_is_upcoming(db_session, profile_factory):
    profile_factory()
    result = TaxReportGenerationService(db_session).generate_for_period_key(TENANT, "2025-Q2", now=NOW)
    assert result.reports[0].status == "UPCOMING"


def test_full_year_generates_annual_returns(db_session, profile_factory):
    profile_factory(uses_tax_advisor=True)
    result = TaxReportGenerationService(db_session).execute(
        TENANT, utc(2024, 1, 1), utc(2025, 1, 1), "2024", now=NOW
    )

    by_type = {r.type: r for r in result.reports}
    assert set(by_type) == {"VAT_ANNUAL", "INCOME_TAX"}
    assert by_type["INCOME_TAX"].amount_estimated_cents is None
    assert by_type["VAT_ANNUAL"].due_date == utc(2026, 2, 28)


def test_profile_at_end_of_period_decides(db_session, profile_factory):
    profile_factory(effective_to=utc(2025, 3, 1))
    profile_factory(regime="SMALL_BUSINESS", effective_from=utc(2025, 3, 1))

    result = TaxReportGenerationService(db_session).generate_for_period_key(TENANT, "2025-Q1", now=NOW)
    assert result.reports == []
    assert not result.profile_missing


def test_filed_report_is_not_regenerated(db_session, profile_factory, documents):
    profile_factory()
    service = TaxReportGenerationService(db_session)
    report_id = service.generate_for_period_key(TENANT, "2025-Q1", now=NOW).reports[0].report_id
    TaxReportService(db_session).mark_submitted(TENANT, report_id, reference="ELSTER-1", now=NOW)
    documents.invoice(utc(2025, 3, 3), 10000, 1900)

    again = service.generate_for_period_key(TENANT, "2025-Q1", now=NOW).reports[0]

    assert not again.created and not again.updated
    assert again.status == "SUBMITTED"
    assert again.amount_estimated_cents == 0


class _ExplodingStrategy(ReportStrategy):
    report_type = "EU_SALES_LIST"
    country_code = "DE"

    def is_required(self, ctx):
        raise RuntimeError("source store unavailable")

    def generate(self, ctx):
        raise AssertionError("not reached")

    def get_due_date(self, period_end, ctx):
        raise AssertionError("not reached")


def test_failing_strategy_does_not_stop_others(db_session, profile_factory):
    profile_factory()
    registry = StrategyRegistry([_ExplodingStrategy(), GermanVatAdvanceStrategy()])
    aggregation = FakeAggregation(PeriodTotals(sales_vat_cents=500))

    result = TaxReportGenerationService(db_session, aggregation, registry).generate_for_period_key(
        TENANT, "2025-Q1", now=NOW
    )

    assert [f.type for f in result.failures] == ["EU_SALES_LIST"]
    assert "source store unavailable" in result.failures[0].error
    assert [r.type for r in result.reports] == ["VAT_ADVANCE"]
    assert result.reports[0].amount_estimated_cents == 500


def test_unsupported_country_warns(db_session, profile_factory):
    profile_factory(country="FR")
    result = TaxReportGenerationService(db_session).generate_for_period_key(TENANT, "2025-Q1", now=NOW)
    assert result.reports == []
    assert result.warnings
