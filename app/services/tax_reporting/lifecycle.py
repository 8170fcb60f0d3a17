"""Tax report lifecycle rules.

Persisted states::

    UPCOMING -> OPEN -> SUBMITTED -> PAID
                    \\-> NIL
    UPCOMING/OPEN/SUBMITTED/NIL -> ARCHIVED

OVERDUE is never stored. It is what UPCOMING and OPEN reports look like once
their due day has passed (see ``display_status``).
"""
from datetime import datetime

from app.core.exceptions import ConflictingTransitionError
from app.models.tax_meta import ReportMeta
from app.models.tax_models import TaxReport, TaxReportGroup, TaxReportStatus, TaxReportType

OVERDUE = "OVERDUE"

PENDING_STATUSES = frozenset({TaxReportStatus.UPCOMING.value, TaxReportStatus.OPEN.value})
FILED_STATUSES = frozenset(
    {
        TaxReportStatus.SUBMITTED.value,
        TaxReportStatus.PAID.value,
        TaxReportStatus.NIL.value,
        TaxReportStatus.ARCHIVED.value,
    }
)

_SUBMIT_BLOCKED = frozenset(
    {TaxReportStatus.SUBMITTED.value, TaxReportStatus.PAID.value, TaxReportStatus.ARCHIVED.value}
)
_ARCHIVABLE = frozenset(
    {
        TaxReportStatus.UPCOMING.value,
        TaxReportStatus.OPEN.value,
        TaxReportStatus.SUBMITTED.value,
        TaxReportStatus.NIL.value,
    }
)

# Which list a status filter returns
STATUS_FILTERS = {
    "upcoming": PENDING_STATUSES,
    "submitted": FILED_STATUSES,
}

_GROUP_BY_TYPE = {
    TaxReportType.VAT_ADVANCE.value: TaxReportGroup.ADVANCE_VAT.value,
    TaxReportType.VAT_ANNUAL.value: TaxReportGroup.ANNUAL_REPORT.value,
    TaxReportType.INCOME_TAX.value: TaxReportGroup.ANNUAL_REPORT.value,
}


def group_for_type(report_type: str) -> str:
    return _GROUP_BY_TYPE.get(report_type, TaxReportGroup.COMPLIANCE.value)


def initial_status(period_end: datetime, now: datetime) -> str:
    """UPCOMING while the period is still running, OPEN once it has ended."""
    return TaxReportStatus.UPCOMING.value if now < period_end else TaxReportStatus.OPEN.value


def is_overdue(status: str, due_date: datetime, now: datetime) -> bool:
    # A report can be filed through the whole of its due day
    return status in PENDING_STATUSES and now.date() > due_date.date()


def display_status(status: str, due_date: datetime, now: datetime) -> str:
    return OVERDUE if is_overdue(status, due_date, now) else status


def ensure_can_submit(report: TaxReport) -> None:
    if report.status in _SUBMIT_BLOCKED:
        raise ConflictingTransitionError(report.id, report.status, "submit")
    if ReportMeta.load(report.meta).has_blockers:
        raise ConflictingTransitionError(
            report.id, report.status, "submit", reason="report has unresolved blocker issues"
        )


def ensure_can_mark_nil(report: TaxReport) -> None:
    if report.status not in PENDING_STATUSES:
        raise ConflictingTransitionError(report.id, report.status, "mark as nil")


def ensure_can_mark_paid(report: TaxReport) -> None:
    if report.status != TaxReportStatus.SUBMITTED.value:
        raise ConflictingTransitionError(
            report.id, report.status, "mark as paid", reason="report must be submitted first"
        )


def ensure_can_archive(report: TaxReport) -> None:
    if report.status not in _ARCHIVABLE:
        raise ConflictingTransitionError(report.id, report.status, "archive")


def ensure_can_delete(report: TaxReport) -> None:
    if report.status not in PENDING_STATUSES:
        raise ConflictingTransitionError(report.id, report.status, "delete")


def ensure_can_recalculate(report: TaxReport) -> None:
    if report.status not in PENDING_STATUSES:
        raise ConflictingTransitionError(report.id, report.status, "recalculate")


def ensure_can_change_attachments(report: TaxReport) -> None:
    if report.status == TaxReportStatus.ARCHIVED.value:
        raise ConflictingTransitionError(report.id, report.status, "change attachments of")
