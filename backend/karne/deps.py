from fastapi import Header, HTTPException, Depends
from typing import Optional
import uuid

from .db import ledger_session


def get_tenant_id(x_tenant_id: Optional[str] = Header(None, alias="X-Tenant-Id")) -> str:
    raw = (x_tenant_id or "").strip()
    if not raw:
        raise HTTPException(status_code=400, detail="missing tenant id")
    try:
        return str(uuid.UUID(raw))
    except ValueError:
        raise HTTPException(status_code=400, detail="invalid tenant id")


def require_tenant_access(tenant_id: str = Depends(get_tenant_id)):
    """
    The tenant must exist and be active. Authentication (who the caller is)
    happens upstream; this only decides which ledger the request touches.
    """
    with ledger_session(tenant_id) as store:
        tenant = store.get_tenant(tenant_id)
    if not tenant:
        raise HTTPException(status_code=404, detail="tenant not found")
    if not tenant.get("is_active", True):
        raise HTTPException(status_code=403, detail="tenant suspended")
    return True
