import logging

from prometheus_client import Counter
from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request

from app.core.config import settings

logger = logging.getLogger(__name__)

_PROM_RATE_LIMIT = Counter("tax_rate_limit_exceeded_events", "Rate limit exceeded events (handler invocations)")


def get_tenant_identifier(request: Request) -> str:
    """Rate limit per tenant, falling back to the client address.

    Example:
        >>> get_tenant_identifier(request)
        'tenant:ws_123'   # X-Tenant-Id present
        '10.0.0.1'        # no tenant header
    """
    tenant_id = request.headers.get("X-Tenant-Id", "").strip()
    if tenant_id:
        return f"tenant:{tenant_id}"
    return get_remote_address(request)


def _storage_uri() -> str:
    if settings.ENV.lower() != "prod":
        logger.info("Rate limiter using in-memory storage (dev/test mode)")
        return "memory://"
    return settings.REDIS_URL or "memory://"


limiter = Limiter(
    key_func=get_tenant_identifier,
    default_limits=[settings.RATE_LIMIT_DEFAULT],
    storage_uri=_storage_uri(),
    enabled=settings.RATE_LIMIT_ENABLED,
)


def increment_rate_limit_exceeded() -> None:
    _PROM_RATE_LIMIT.inc()
