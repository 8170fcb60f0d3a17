"""Persistence of tax reports.

Writes are keyed by (tenant, type, period_start, period_end). The unique
constraint on that key is what makes concurrent generation converge: the
loser of an insert race re-reads the winner's row and updates it instead.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from app.models.tax_meta import ReportMeta, dump_meta
from app.models.tax_models import TaxReport, TaxReportActivity, TaxReportLine

from .lifecycle import PENDING_STATUSES, STATUS_FILTERS
from .strategies.base import ReportLineDraft

logger = logging.getLogger(__name__)


@dataclass
class ReportDraft:
    type: str
    group: str
    period_label: str
    period_start: datetime
    period_end: datetime
    due_date: datetime
    status: str
    amount_estimated_cents: Optional[int]
    currency: str
    meta: ReportMeta
    lines: List[ReportLineDraft] = field(default_factory=list)


@dataclass
class UpsertOutcome:
    report: TaxReport
    created: bool
    updated: bool


class TaxReportRepository:
    def __init__(self, db: Session):
        self.db = db

    def find_by_id(self, tenant_id: str, report_id: int) -> Optional[TaxReport]:
        return self.db.execute(
            select(TaxReport)
            .options(selectinload(TaxReport.lines))
            .where(TaxReport.tenant_id == tenant_id, TaxReport.id == report_id)
        ).scalars().first()

    def find_by_period(
        self, tenant_id: str, report_type: str, period_start: datetime, period_end: datetime
    ) -> Optional[TaxReport]:
        return self.db.execute(
            select(TaxReport).where(
                TaxReport.tenant_id == tenant_id,
                TaxReport.type == report_type,
                TaxReport.period_start == period_start,
                TaxReport.period_end == period_end,
            )
        ).scalars().first()

    def list_by_status(self, tenant_id: str, status_filter: str) -> List[TaxReport]:
        """Reports of one status bucket ('upcoming' or 'submitted') by due date."""
        try:
            statuses = STATUS_FILTERS[status_filter]
        except KeyError as e:
            raise ValueError(f"Invalid status filter: {status_filter}. Must be upcoming/submitted") from e
        return self.list_with_statuses(tenant_id, statuses)

    def list_with_statuses(
        self,
        tenant_id: str,
        statuses: Iterable[str],
        report_type: Optional[str] = None,
        due_from: Optional[datetime] = None,
        due_before: Optional[datetime] = None,
    ) -> List[TaxReport]:
        query = select(TaxReport).where(
            TaxReport.tenant_id == tenant_id,
            TaxReport.status.in_(list(statuses)),
        )
        if report_type is not None:
            query = query.where(TaxReport.type == report_type)
        if due_from is not None:
            query = query.where(TaxReport.due_date >= due_from)
        if due_before is not None:
            query = query.where(TaxReport.due_date < due_before)
        return list(self.db.execute(query.order_by(TaxReport.due_date, TaxReport.id)).scalars())

    def list_by_period_range(
        self,
        tenant_id: str,
        start: datetime,
        end: datetime,
        report_type: Optional[str] = None,
    ) -> List[TaxReport]:
        """Reports whose period lies within ``[start, end)``."""
        query = select(TaxReport).where(
            TaxReport.tenant_id == tenant_id,
            TaxReport.period_start >= start,
            TaxReport.period_end <= end,
        )
        if report_type is not None:
            query = query.where(TaxReport.type == report_type)
        return list(self.db.execute(query.order_by(TaxReport.period_start, TaxReport.id)).scalars())

    def upsert_by_period(self, tenant_id: str, draft: ReportDraft) -> UpsertOutcome:
        """Insert the report or refresh the existing one for the same period.

        Reports that have already left UPCOMING/OPEN are returned unchanged.
        """
        existing = self.find_by_period(tenant_id, draft.type, draft.period_start, draft.period_end)
        if existing is None:
            report = TaxReport(
                tenant_id=tenant_id,
                type=draft.type,
                period_start=draft.period_start,
                period_end=draft.period_end,
            )
            self._apply_draft(report, draft, ReportMeta())
            report.activities.append(self.activity(report, "created", status_after=draft.status))
            self.db.add(report)
            try:
                self.db.commit()
            except IntegrityError:
                # Another writer created the same period first
                self.db.rollback()
                existing = self.find_by_period(tenant_id, draft.type, draft.period_start, draft.period_end)
                if existing is None:
                    raise
                logger.info(
                    f"Concurrent insert of {draft.type} {draft.period_label} for tenant {tenant_id}; updating"
                )
            else:
                self.db.refresh(report)
                return UpsertOutcome(report=report, created=True, updated=False)

        if existing.status not in PENDING_STATUSES:
            logger.warning(
                f"{draft.type} {draft.period_label} for tenant {tenant_id} is {existing.status}; not regenerating"
            )
            return UpsertOutcome(report=existing, created=False, updated=False)

        previous = existing.status
        self._apply_draft(existing, draft, ReportMeta.load(existing.meta))
        existing.activities.append(
            self.activity(
                existing,
                "recalculated",
                status_before=previous,
                status_after=draft.status,
                amount_estimated_cents=draft.amount_estimated_cents,
            )
        )
        self.db.commit()
        self.db.refresh(existing)
        return UpsertOutcome(report=existing, created=False, updated=True)

    @staticmethod
    def activity(
        report: TaxReport,
        action: str,
        status_before: Optional[str] = None,
        status_after: Optional[str] = None,
        **detail,
    ) -> TaxReportActivity:
        """History entry for ``report``; persisted with the report's next commit."""
        return TaxReportActivity(
            tenant_id=report.tenant_id,
            action=action,
            status_before=status_before,
            status_after=status_after,
            detail=detail,
        )

    def _apply_draft(self, report: TaxReport, draft: ReportDraft, current_meta: ReportMeta) -> None:
        report.group = draft.group
        report.period_label = draft.period_label
        report.due_date = draft.due_date
        report.status = draft.status
        report.amount_estimated_cents = draft.amount_estimated_cents
        report.currency = draft.currency
        # Keep issues recorded by reviewers; replace the computation
        merged = current_meta.model_copy(update={"computation": draft.meta.computation})
        if draft.meta.issues:
            merged = merged.model_copy(update={"issues": draft.meta.issues})
        report.meta = dump_meta(merged)
        report.lines = [
            TaxReportLine(
                position=position,
                section=line.section,
                label=line.label,
                net_amount_cents=line.net_amount_cents,
                tax_amount_cents=line.tax_amount_cents,
            )
            for position, line in enumerate(draft.lines)
        ]

    def save(self, report: TaxReport) -> TaxReport:
        self.db.commit()
        self.db.refresh(report)
        return report

    def delete(self, report: TaxReport) -> None:
        self.db.delete(report)
        self.db.commit()
