from fastapi import APIRouter, Depends

from ..db import ledger_session
from ..deps import get_tenant_id
from ..parties import ledger_summary
from ..reconciliation import findings_as_dicts, reconcile

router = APIRouter(prefix="/ledger", tags=["ledger"])


@router.get("/summary")
def get_summary(tenant_id: str = Depends(get_tenant_id)):
    with ledger_session(tenant_id) as store:
        return ledger_summary(store, tenant_id)


@router.get("/reconciliation")
def get_reconciliation(limit: int = 1000, tenant_id: str = Depends(get_tenant_id)):
    limit = max(1, min(limit, 5000))
    with ledger_session(tenant_id) as store:
        findings = reconcile(store, tenant_id, limit=limit)
    return {"ok": not findings, "findings": findings_as_dicts(findings)}
