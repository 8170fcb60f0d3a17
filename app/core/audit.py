"""Audit logging utilities.

Every tax report lifecycle change (submission, payment, archival, deletion)
is a compliance-relevant action and is written as one structured JSON line to
a dedicated audit log file and to the ``audit`` logger.
"""
from __future__ import annotations

import json
import logging
import os
import time
from typing import Any

_AUDIT_LOG_PATH = os.getenv("AUDIT_LOG_FILE", "storage/audit.log")
_logger = logging.getLogger("audit")


def log_audit_event(action: str, tenant_id: str | None = None, status: str = "success", **metadata: Any) -> None:
    """Record an audit event.

    Parameters:
        action: A machine-readable action key (e.g. 'tax_report.submitted').
        tenant_id: The tenant the action applies to.
        status: 'success' | 'failure' | 'denied'.
        **metadata: Additional context fields (report id, statuses, amounts).
    """
    event = {
        "ts": int(time.time()),
        "action": action,
        "tenant_id": tenant_id,
        "status": status,
        **metadata,
    }
    line = json.dumps(event, separators=(",", ":"), default=str)
    try:
        os.makedirs(os.path.dirname(_AUDIT_LOG_PATH), exist_ok=True)
        with open(_AUDIT_LOG_PATH, "a", encoding="utf-8") as f:
            f.write(line + "\n")
    except OSError:
        _logger.warning("Failed to write audit event to %s", _AUDIT_LOG_PATH)
    _logger.info(line)


def log_denied(action: str, tenant_id: str | None = None, reason: str | None = None, **extra: Any) -> None:
    log_audit_event(action, tenant_id=tenant_id, status="denied", reason=reason, **extra)
