"""Custom exception hierarchy for the tax engine.

Every error the engine raises on purpose derives from ``TaxEngineException`` so
the API layer can render them uniformly (see ``app.core.errors``).

Error codes follow pattern: [CATEGORY][NUMBER]
- PER: Period key errors (001-099)
- PRF: Tax profile errors (100-199)
- RPT: Tax report errors (200-299)
- SNP: Snapshot errors (300-399)
- CAL: Tax calculation errors (400-499)
- SYS: System errors (500-599)
"""

from __future__ import annotations

from typing import Any


class TaxEngineException(Exception):
    """Base exception for all tax engine errors."""

    def __init__(
        self,
        message: str,
        code: str,
        status_code: int = 400,
        details: dict[str, Any] | None = None,
    ):
        """Initialize exception with a readable message and metadata.

        Args:
            message: Human readable error message
            code: Unique error code (e.g., "RPT002")
            status_code: HTTP status code (default: 400 Bad Request)
            details: Optional additional context
        """
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to API response format."""
        return {
            "error": {
                "message": self.message,
                "code": self.code,
                "details": self.details,
            }
        }


# ============================================================================
# PERIOD ERRORS (PER001-099)
# ============================================================================

class InvalidPeriodKeyError(TaxEngineException):
    """Period key does not match YYYY-Qn, YYYY-MM or YYYY."""

    def __init__(self, key: str, reason: str | None = None):
        message = f"Invalid period key '{key}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(
            message=message,
            code="PER001",
            status_code=400,
            details={"key": key},
        )


# ============================================================================
# TAX PROFILE ERRORS (PRF100-199)
# ============================================================================

class ProfileError(TaxEngineException):
    """Base class for tax profile errors."""
    pass


class ProfileMissingError(ProfileError):
    """No tax profile is active for the tenant at the requested instant."""

    def __init__(self, tenant_id: str, at: Any | None = None):
        super().__init__(
            message="No active tax profile",
            code="PRF100",
            status_code=422,
            details={"tenant_id": tenant_id, "at": str(at) if at is not None else None},
        )


class ConflictingProfileWindowError(ProfileError):
    """New profile window would overlap an existing one."""

    def __init__(self, tenant_id: str, effective_from: Any, conflicting_id: int):
        super().__init__(
            message=(
                f"Tax profile effective from {effective_from} overlaps existing profile {conflicting_id}"
            ),
            code="PRF101",
            status_code=409,
            details={
                "tenant_id": tenant_id,
                "effective_from": str(effective_from),
                "conflicting_profile_id": conflicting_id,
            },
        )


# ============================================================================
# TAX REPORT ERRORS (RPT200-299)
# ============================================================================

class ReportError(TaxEngineException):
    """Base class for tax report errors."""
    pass


class ReportNotFoundError(ReportError):
    """Report does not exist or belongs to another tenant."""

    def __init__(self, report_id: int | None = None):
        message = "Tax report not found" if report_id is None else f"Tax report {report_id} not found"
        super().__init__(
            message=message,
            code="RPT200",
            status_code=404,
            details={"report_id": report_id} if report_id is not None else {},
        )


class ConflictingTransitionError(ReportError):
    """Requested lifecycle transition is not allowed from the current state."""

    def __init__(self, report_id: int | None, current_status: str, action: str, reason: str | None = None):
        message = f"Cannot {action} a report in status {current_status}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(
            message=message,
            code="RPT201",
            status_code=409,
            details={"report_id": report_id, "current_status": current_status, "action": action},
        )


class DuplicateReportError(ReportError):
    """A report of this type already exists for the period."""

    def __init__(self, report_type: str, period_label: str, existing_id: int):
        super().__init__(
            message=f"{report_type} report for {period_label} already exists",
            code="RPT202",
            status_code=409,
            details={"type": report_type, "period_label": period_label, "report_id": existing_id},
        )


class StrategyNotFoundError(ReportError):
    """No strategy is registered for the report type and country."""

    def __init__(self, report_type: str, country: str):
        super().__init__(
            message=f"No {report_type} strategy registered for {country}",
            code="RPT203",
            status_code=400,
            details={"type": report_type, "country": country},
        )


class AttachmentNotFoundError(ReportError):
    """Attachment does not exist on the report."""

    def __init__(self, report_id: int, attachment_id: int):
        super().__init__(
            message=f"Attachment {attachment_id} not found on tax report {report_id}",
            code="RPT204",
            status_code=404,
            details={"report_id": report_id, "attachment_id": attachment_id},
        )


# ============================================================================
# SNAPSHOT ERRORS (SNP300-399)
# ============================================================================

class SnapshotNotFoundError(TaxEngineException):
    """No snapshot has been locked for the source document."""

    def __init__(self, source_type: str, source_id: str):
        super().__init__(
            message=f"No tax snapshot for {source_type} {source_id}",
            code="SNP300",
            status_code=404,
            details={"source_type": source_type, "source_id": source_id},
        )


# ============================================================================
# CALCULATION ERRORS (CAL400-499)
# ============================================================================

class JurisdictionNotSupportedError(TaxEngineException):
    """No jurisdiction pack exists for the requested country."""

    def __init__(self, jurisdiction: str):
        super().__init__(
            message="Jurisdiction pack not found",
            code="CAL400",
            status_code=400,
            details={"jurisdiction": jurisdiction},
        )


class UnknownTaxRateError(TaxEngineException):
    """Line item references a VAT kind the jurisdiction does not define."""

    def __init__(self, jurisdiction: str, kind: str):
        super().__init__(
            message=f"Unknown VAT rate kind '{kind}' for {jurisdiction}",
            code="CAL401",
            status_code=400,
            details={"jurisdiction": jurisdiction, "kind": kind},
        )


# ============================================================================
# SYSTEM ERRORS (SYS500-599)
# ============================================================================

class ConfigurationError(TaxEngineException):
    """Engine is misconfigured (missing setting, registry wiring)."""

    def __init__(self, message: str):
        super().__init__(message=message, code="SYS500", status_code=500)
