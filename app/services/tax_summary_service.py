"""
Tax Summary Service.

Dashboard summary of what a workspace currently owes. The summary strategy is
picked from the workspace's legal-entity kind:

- PersonalTaxSummaryStrategy: sole traders and freelancers (VAT based)
- CompanyTaxSummaryStrategy: placeholder, returns zeroed totals

A missing or non-VAT configuration is reported through
``configuration_status`` and warnings, never raised.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from app import metrics
from app.core.config import settings
from app.db.base_class import utcnow
from app.models.source_models import LegalEntityKind, Workspace
from app.models.tax_models import FilingFrequency, TaxReportType
from app.services.tax_profile_service import TaxProfileService
from app.services.tax_reporting.aggregation import PeriodAggregation, SqlPeriodAggregation
from app.services.tax_reporting.lifecycle import OVERDUE, PENDING_STATUSES, display_status
from app.services.tax_reporting.period_utils import (
    VatPeriod,
    resolve_month,
    resolve_quarter,
    to_utc,
    year_period,
)
from app.services.tax_reporting.repository import TaxReportRepository

logger = logging.getLogger(__name__)

PREVIEW_LIMIT = 5

WARNING_PROFILE_MISSING = "Tax profile is not configured"
WARNING_VAT_NOT_APPLICABLE = "VAT is not applicable for this tax profile; no VAT returns are due"
WARNING_SMALL_BUSINESS = "VAT is not applicable under the small business regime"
WARNING_VAT_ID_MISSING = "VAT ID is missing from the tax profile"
WARNING_COMPANY_UNSUPPORTED = "Tax estimates for companies are not available yet"


class ConfigurationStatus(str, Enum):
    READY = "READY"
    MISSING_SETTINGS = "MISSING_SETTINGS"
    NOT_APPLICABLE = "NOT_APPLICABLE"


@dataclass
class UpcomingReportPreview:
    report_id: int
    type: str
    period_label: str
    due_date: datetime
    status: str
    amount_estimated_cents: Optional[int]


@dataclass
class TaxSummary:
    legal_entity_kind: str
    configuration_status: str
    taxes_to_be_paid_estimated_cents: int
    currency: str
    period_key: Optional[str] = None
    period_label: Optional[str] = None
    warnings: List[str] = field(default_factory=list)
    upcoming_reports_preview: List[UpcomingReportPreview] = field(default_factory=list)


class WorkspaceDirectory:
    """Looks up workspace facts owned by tenant administration."""

    def __init__(self, db: Session):
        self.db = db

    def get_legal_entity_kind(self, tenant_id: str) -> str:
        kind = self.db.execute(
            select(Workspace.legal_entity_kind).where(Workspace.id == tenant_id)
        ).scalar_one_or_none()
        return kind or LegalEntityKind.PERSONAL.value


class TaxSummaryStrategy(ABC):
    legal_entity_kind: str

    @abstractmethod
    def get_summary(self, tenant_id: str, now: datetime) -> TaxSummary:
        raise NotImplementedError


class PersonalTaxSummaryStrategy(TaxSummaryStrategy):
    legal_entity_kind = LegalEntityKind.PERSONAL.value

    def __init__(self, db: Session, aggregation: PeriodAggregation):
        self.profiles = TaxProfileService(db)
        self.reports = TaxReportRepository(db)
        self.aggregation = aggregation

    def get_summary(self, tenant_id: str, now: datetime) -> TaxSummary:
        profile = self.profiles.get_active(tenant_id, now)
        if profile is None:
            return TaxSummary(
                legal_entity_kind=self.legal_entity_kind,
                configuration_status=ConfigurationStatus.MISSING_SETTINGS.value,
                taxes_to_be_paid_estimated_cents=0,
                currency=settings.TAX_DEFAULT_CURRENCY,
                warnings=[WARNING_PROFILE_MISSING],
            )

        pending = self.reports.list_with_statuses(tenant_id, PENDING_STATUSES)
        preview = [
            UpcomingReportPreview(
                report_id=report.id,
                type=report.type,
                period_label=report.period_label,
                due_date=report.due_date,
                status=display_status(report.status, report.due_date, now),
                amount_estimated_cents=report.amount_estimated_cents,
            )
            for report in pending[:PREVIEW_LIMIT]
        ]

        if not profile.is_vat_applicable:
            warning = WARNING_SMALL_BUSINESS if profile.vat_enabled else WARNING_VAT_NOT_APPLICABLE
            return TaxSummary(
                legal_entity_kind=self.legal_entity_kind,
                configuration_status=ConfigurationStatus.NOT_APPLICABLE.value,
                taxes_to_be_paid_estimated_cents=0,
                currency=profile.currency,
                warnings=[warning],
                upcoming_reports_preview=preview,
            )

        next_vat = next((r for r in pending if r.type == TaxReportType.VAT_ADVANCE.value), None)
        if next_vat is not None:
            period = VatPeriod(
                key=next_vat.period_label,
                label=next_vat.period_label,
                start=next_vat.period_start,
                end=next_vat.period_end,
            )
        else:
            period = self._current_period(profile.filing_frequency, now)

        totals = self.aggregation.get_totals(
            tenant_id, period.start, period.end, profile.vat_accounting_method
        )

        warnings = []
        if not profile.vat_id:
            warnings.append(WARNING_VAT_ID_MISSING)
        overdue = sum(1 for item in preview if item.status == OVERDUE)
        if overdue:
            warnings.append(f"{overdue} tax report(s) are overdue")

        return TaxSummary(
            legal_entity_kind=self.legal_entity_kind,
            configuration_status=ConfigurationStatus.READY.value,
            taxes_to_be_paid_estimated_cents=totals.vat_payable_cents,
            currency=profile.currency,
            period_key=period.key,
            period_label=period.label,
            warnings=warnings,
            upcoming_reports_preview=preview,
        )

    @staticmethod
    def _current_period(frequency: str, now: datetime) -> VatPeriod:
        if frequency == FilingFrequency.MONTHLY.value:
            return resolve_month(now)
        if frequency == FilingFrequency.YEARLY.value:
            return year_period(now.year)
        return resolve_quarter(now)


class CompanyTaxSummaryStrategy(TaxSummaryStrategy):
    legal_entity_kind = LegalEntityKind.COMPANY.value

    def __init__(self, db: Session):
        self.profiles = TaxProfileService(db)

    def get_summary(self, tenant_id: str, now: datetime) -> TaxSummary:
        profile = self.profiles.get_active(tenant_id, now)
        status = ConfigurationStatus.READY if profile is not None else ConfigurationStatus.MISSING_SETTINGS
        return TaxSummary(
            legal_entity_kind=self.legal_entity_kind,
            configuration_status=status.value,
            taxes_to_be_paid_estimated_cents=0,
            currency=profile.currency if profile is not None else settings.TAX_DEFAULT_CURRENCY,
            warnings=[WARNING_COMPANY_UNSUPPORTED],
        )


class TaxSummaryService:
    def __init__(
        self,
        db: Session,
        aggregation: Optional[PeriodAggregation] = None,
        directory: Optional[WorkspaceDirectory] = None,
    ):
        self.directory = directory or WorkspaceDirectory(db)
        aggregation = aggregation or SqlPeriodAggregation(db)
        self._strategies = {
            LegalEntityKind.PERSONAL.value: PersonalTaxSummaryStrategy(db, aggregation),
            LegalEntityKind.COMPANY.value: CompanyTaxSummaryStrategy(db),
        }

    def resolve(self, tenant_id: str) -> TaxSummaryStrategy:
        kind = self.directory.get_legal_entity_kind(tenant_id)
        strategy = self._strategies.get(kind)
        if strategy is None:
            logger.warning(f"Unknown legal entity kind {kind!r} for tenant {tenant_id}; using PERSONAL")
            strategy = self._strategies[LegalEntityKind.PERSONAL.value]
        return strategy

    def get_summary(self, tenant_id: str, now: Optional[datetime] = None) -> TaxSummary:
        now = to_utc(now) if now is not None else utcnow()
        summary = self.resolve(tenant_id).get_summary(tenant_id, now)
        metrics.summary_served(summary.configuration_status)
        return summary
