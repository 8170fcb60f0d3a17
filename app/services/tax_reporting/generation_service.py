"""Tax report generation.

For one tenant and period: resolve the tax profile in force at the end of the
period, run every registered strategy of the profile's country that applies,
and upsert one report per applicable strategy. Running it twice for the same
period yields the same reports.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.orm import Session

from app import metrics
from app.core.exceptions import ProfileMissingError
from app.db.base_class import utcnow
from app.models.tax_models import TaxReport
from app.services.tax_profile_service import TaxProfileService

from .aggregation import PeriodAggregation, SqlPeriodAggregation
from .lifecycle import group_for_type, initial_status
from .period_utils import VatPeriod, period_for_range, resolve_period_key, to_utc
from .repository import ReportDraft, TaxReportRepository
from .strategies import ReportContext, ReportStrategy, StrategyRegistry, default_registry

logger = logging.getLogger(__name__)

PROFILE_MISSING_WARNING = "No active tax profile for the period; no reports generated"


@dataclass
class GeneratedReportOutcome:
    type: str
    group: str
    period_label: str
    due_date: datetime
    status: str
    amount_estimated_cents: Optional[int]
    report_id: Optional[int] = None
    created: bool = False
    updated: bool = False


@dataclass
class StrategyFailure:
    type: str
    error: str


@dataclass
class GenerationResult:
    tenant_id: str
    period_label: str
    period_start: datetime
    period_end: datetime
    dry_run: bool
    profile_missing: bool = False
    reports: List[GeneratedReportOutcome] = field(default_factory=list)
    failures: List[StrategyFailure] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


class TaxReportGenerationService:
    """Generate the tax reports a tenant owes for a period."""

    def __init__(
        self,
        db: Session,
        aggregation: Optional[PeriodAggregation] = None,
        registry: Optional[StrategyRegistry] = None,
    ):
        self.db = db
        self.aggregation = aggregation or SqlPeriodAggregation(db)
        self.registry = registry or default_registry
        self.profiles = TaxProfileService(db)
        self.repository = TaxReportRepository(db)

    def generate_for_period_key(
        self, tenant_id: str, key: str, dry_run: bool = False, now: Optional[datetime] = None
    ) -> GenerationResult:
        period = resolve_period_key(key)
        return self._run(tenant_id, period, dry_run, now)

    def execute(
        self,
        tenant_id: str,
        period_start: datetime,
        period_end: datetime,
        period_label: str,
        dry_run: bool = False,
        now: Optional[datetime] = None,
    ) -> GenerationResult:
        """Generate reports for ``[period_start, period_end)``.

        Args:
            tenant_id: Tenant to generate for
            period_start: Inclusive start
            period_end: Exclusive end
            period_label: Display label stored on the reports (e.g. "Q1 2025")
            dry_run: Compute only, persist nothing
            now: Reference instant for statuses (defaults to current time)

        Returns:
            GenerationResult with one outcome per applicable strategy and one
            failure entry per strategy that raised
        """
        period = period_for_range(period_start, period_end, period_label)
        return self._run(tenant_id, period, dry_run, now)

    def _run(
        self, tenant_id: str, period: VatPeriod, dry_run: bool, now: Optional[datetime]
    ) -> GenerationResult:
        now = to_utc(now) if now is not None else utcnow()
        result = GenerationResult(
            tenant_id=tenant_id,
            period_label=period.label,
            period_start=period.start,
            period_end=period.end,
            dry_run=dry_run,
        )

        # The profile in force on the last day of the period decides
        profile = self.profiles.get_active(tenant_id, period.end - timedelta(microseconds=1))
        if profile is None:
            logger.warning(f"No active tax profile for tenant {tenant_id} in {period.label}; skipping generation")
            result.profile_missing = True
            result.warnings.append(PROFILE_MISSING_WARNING)
            return result

        ctx = ReportContext(
            tenant_id=tenant_id,
            period=period,
            profile=profile,
            aggregation=self.aggregation,
            now=now,
        )
        strategies = self.registry.get_strategies_for_country(profile.country)
        if not strategies:
            logger.warning(f"No report strategies registered for country {profile.country} (tenant {tenant_id})")
            result.warnings.append(f"No tax reports are supported for country {profile.country}")
            return result

        for strategy in strategies:
            try:
                outcome = self._run_strategy(strategy, ctx, profile.currency, dry_run)
            except Exception as exc:  # noqa: BLE001 - one strategy must not stop the others
                self.db.rollback()
                logger.exception(
                    f"Strategy {strategy.report_type} failed for tenant {tenant_id} period {period.label}"
                )
                metrics.report_generation_failed(strategy.report_type)
                result.failures.append(StrategyFailure(type=strategy.report_type, error=str(exc)))
                continue
            if outcome is not None:
                result.reports.append(outcome)

        logger.info(
            f"Generated {len(result.reports)} tax report(s) for tenant {tenant_id} {period.label} "
            f"(dry_run={dry_run}, failures={len(result.failures)})"
        )
        return result

    def _run_strategy(
        self, strategy: ReportStrategy, ctx: ReportContext, currency: str, dry_run: bool
    ) -> Optional[GeneratedReportOutcome]:
        if not strategy.is_required(ctx):
            return None

        generated = strategy.generate(ctx)
        draft = ReportDraft(
            type=strategy.report_type,
            group=group_for_type(strategy.report_type),
            period_label=ctx.period.label,
            period_start=ctx.period.start,
            period_end=ctx.period.end,
            due_date=strategy.get_due_date(ctx.period.end, ctx),
            status=initial_status(ctx.period.end, ctx.now),
            amount_estimated_cents=generated.amount_due_cents,
            currency=currency,
            meta=generated.meta,
            lines=generated.lines,
        )
        if dry_run:
            return self._outcome_from_draft(draft)

        upsert = self.repository.upsert_by_period(ctx.tenant_id, draft)
        if upsert.created or upsert.updated:
            metrics.report_generated(strategy.report_type)
        return self._outcome_from_report(upsert.report, upsert.created, upsert.updated)

    @staticmethod
    def _outcome_from_draft(draft: ReportDraft) -> GeneratedReportOutcome:
        return GeneratedReportOutcome(
            type=draft.type,
            group=draft.group,
            period_label=draft.period_label,
            due_date=draft.due_date,
            status=draft.status,
            amount_estimated_cents=draft.amount_estimated_cents,
        )

    @staticmethod
    def _outcome_from_report(report: TaxReport, created: bool, updated: bool) -> GeneratedReportOutcome:
        return GeneratedReportOutcome(
            type=report.type,
            group=report.group,
            period_label=report.period_label,
            due_date=report.due_date,
            status=report.status,
            amount_estimated_cents=report.amount_estimated_cents,
            report_id=report.id,
            created=created,
            updated=updated,
        )

    def build_draft(self, tenant_id: str, report_type: str, period: VatPeriod, now: datetime) -> ReportDraft:
        """Draft for one report type regardless of ``is_required``.

        Used for manual filings and recalculation.

        Raises:
            ProfileMissingError: If no profile is active at the end of the period
            StrategyNotFoundError: If the type is not supported for the profile's country
        """
        at = period.end - timedelta(microseconds=1)
        profile = self.profiles.get_active(tenant_id, at)
        if profile is None:
            raise ProfileMissingError(tenant_id, at)
        strategy = self.registry.get(report_type, profile.country)
        ctx = ReportContext(
            tenant_id=tenant_id, period=period, profile=profile, aggregation=self.aggregation, now=now
        )
        generated = strategy.generate(ctx)
        return ReportDraft(
            type=report_type,
            group=group_for_type(report_type),
            period_label=period.label,
            period_start=period.start,
            period_end=period.end,
            due_date=strategy.get_due_date(period.end, ctx),
            status=initial_status(period.end, now),
            amount_estimated_cents=generated.amount_due_cents,
            currency=profile.currency,
            meta=generated.meta,
            lines=generated.lines,
        )
