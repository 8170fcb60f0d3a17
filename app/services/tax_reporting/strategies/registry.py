"""Static (report type, country) -> strategy lookup.

Built once at import time and read-only afterwards, so it is safe to share
between requests and worker processes.
"""
from __future__ import annotations

from types import MappingProxyType
from typing import Iterable, Mapping

from app.core.exceptions import StrategyNotFoundError

from .base import ReportStrategy
from .de_compliance import GermanEuSalesListStrategy, GermanIncomeTaxStrategy
from .de_vat import GermanVatAdvanceStrategy, GermanVatAnnualStrategy


class StrategyRegistry:
    def __init__(self, strategies: Iterable[ReportStrategy]):
        table: dict[tuple[str, str], ReportStrategy] = {}
        for strategy in strategies:
            key = (strategy.report_type, strategy.country_code.upper())
            if key in table:
                raise ValueError(f"Duplicate strategy for {key[0]}/{key[1]}")
            table[key] = strategy
        self._table: Mapping[tuple[str, str], ReportStrategy] = MappingProxyType(table)

    def get(self, report_type: str, country: str) -> ReportStrategy:
        strategy = self._table.get((report_type, country.upper()))
        if strategy is None:
            raise StrategyNotFoundError(report_type, country)
        return strategy

    def get_strategies_for_country(self, country: str) -> tuple[ReportStrategy, ...]:
        """Strategies for ``country`` in registration order."""
        code = country.upper()
        return tuple(s for (_, c), s in self._table.items() if c == code)

    def countries(self) -> set[str]:
        return {country for _, country in self._table}


def build_default_registry() -> StrategyRegistry:
    return StrategyRegistry(
        [
            GermanVatAdvanceStrategy(),
            GermanVatAnnualStrategy(),
            GermanIncomeTaxStrategy(),
            GermanEuSalesListStrategy(),
        ]
    )


default_registry = build_default_registry()
