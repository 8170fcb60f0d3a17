"""
Celery Tasks Module.

All tasks are registered with the Celery app.

Sub-modules:
- tax_tasks: Period-close report generation and snapshot locking
"""
from __future__ import annotations

from .tax_tasks import (
    generate_previous_period_reports,
    lock_document_snapshot,
)

__all__ = [
    "generate_previous_period_reports",
    "lock_document_snapshot",
]
