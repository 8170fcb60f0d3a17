"""Metrics facade.

Service code should ONLY call the semantic helpers here so the backend can
change freely.

Metrics:
- tax_reports_generated_total     Reports created or refreshed by generation, per type
- tax_report_generation_failures_total  Strategy failures during generation, per type
- tax_report_transitions_total    Lifecycle transitions, per target status
- tax_snapshots_locked_total      New snapshots written (idempotent hits excluded)
- tax_profile_updates_total       Tax profile upserts
- tax_summaries_total             Summary requests, per configuration status
"""

from __future__ import annotations

import logging

from prometheus_client import Counter

logger = logging.getLogger("metrics")

_REPORTS_GENERATED = Counter(
    "tax_reports_generated_total", "Tax reports created or refreshed by generation", ["type"]
)
_GENERATION_FAILURES = Counter(
    "tax_report_generation_failures_total", "Strategy failures during report generation", ["type"]
)
_TRANSITIONS = Counter(
    "tax_report_transitions_total", "Tax report lifecycle transitions", ["status"]
)
_SNAPSHOTS_LOCKED = Counter("tax_snapshots_locked_total", "Tax snapshots written")
_PROFILE_UPDATES = Counter("tax_profile_updates_total", "Tax profile upserts")
_SUMMARIES = Counter("tax_summaries_total", "Tax summaries served", ["configuration_status"])


def report_generated(report_type: str) -> None:
    _REPORTS_GENERATED.labels(type=report_type).inc()


def report_generation_failed(report_type: str) -> None:
    _GENERATION_FAILURES.labels(type=report_type).inc()


def report_transition(status: str) -> None:
    _TRANSITIONS.labels(status=status).inc()


def snapshot_locked() -> None:
    _SNAPSHOTS_LOCKED.inc()


def tax_profile_updated() -> None:
    _PROFILE_UPDATES.inc()


def summary_served(configuration_status: str) -> None:
    _SUMMARIES.labels(configuration_status=configuration_status).inc()
    logger.debug("metric tax_summaries_total{%s} += 1", configuration_status)
