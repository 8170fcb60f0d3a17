"""Report strategies per (report type, country)."""
from .base import GeneratedReport, ReportContext, ReportLineDraft, ReportStrategy
from .de_compliance import GermanEuSalesListStrategy, GermanIncomeTaxStrategy
from .de_vat import GermanVatAdvanceStrategy, GermanVatAnnualStrategy
from .registry import StrategyRegistry, build_default_registry, default_registry

__all__ = [
    "GeneratedReport",
    "ReportContext",
    "ReportLineDraft",
    "ReportStrategy",
    "GermanEuSalesListStrategy",
    "GermanIncomeTaxStrategy",
    "GermanVatAdvanceStrategy",
    "GermanVatAnnualStrategy",
    "StrategyRegistry",
    "build_default_registry",
    "default_registry",
]
