"""Common request dependencies."""
from typing import Annotated, TypeAlias

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.storage.s3_client import S3Client, get_report_storage


def get_current_tenant_id(
    x_tenant_id: Annotated[str | None, Header(alias="X-Tenant-Id")] = None,
) -> str:
    """
    Tenant the request acts for.

    Authentication happens upstream; the gateway forwards the resolved
    workspace id in the ``X-Tenant-Id`` header.
    """
    tenant_id = (x_tenant_id or "").strip()
    if not tenant_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-Tenant-Id header",
        )
    if len(tenant_id) > 64:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid X-Tenant-Id header")
    return tenant_id


TenantDep: TypeAlias = Annotated[str, Depends(get_current_tenant_id)]
DbDep: TypeAlias = Annotated[Session, Depends(get_db)]
StorageDep: TypeAlias = Annotated[S3Client, Depends(get_report_storage)]
