from datetime import datetime
from decimal import Decimal
from fastapi import APIRouter, Depends
from pydantic import BaseModel
from typing import List, Optional

from ..db import ledger_session
from ..deps import get_tenant_id
from ..errors import NotFound
from ..purchase_posting import PurchaseResult, delete_purchase, edit_purchase, list_purchases, post_purchase_debt

router = APIRouter(prefix="/purchases", tags=["purchases"])


class PurchaseItemIn(BaseModel):
    name: str = ""
    quantity: Decimal
    cost: Decimal


class PurchaseIn(BaseModel):
    id: Optional[str] = None
    supplier_id: Optional[str] = None
    date: Optional[datetime] = None
    items: List[PurchaseItemIn]
    total: Optional[Decimal] = None


class PurchaseUpdate(BaseModel):
    items: List[PurchaseItemIn]
    total: Optional[Decimal] = None


def _result(res: PurchaseResult) -> dict:
    return {"purchase": res.purchase, "debt": res.debt, "duplicate": res.duplicate}


@router.get("")
def get_purchases(supplier_id: Optional[str] = None, limit: int = 500, tenant_id: str = Depends(get_tenant_id)):
    limit = max(1, min(limit, 2000))
    with ledger_session(tenant_id) as store:
        return {"purchases": list_purchases(store, tenant_id, supplier_id=supplier_id, limit=limit)}


@router.post("")
def create_purchase(data: PurchaseIn, tenant_id: str = Depends(get_tenant_id)):
    with ledger_session(tenant_id) as store:
        res = post_purchase_debt(store, tenant_id, data.model_dump())
    return _result(res)


@router.get("/{purchase_id}")
def get_purchase(purchase_id: str, tenant_id: str = Depends(get_tenant_id)):
    with ledger_session(tenant_id) as store:
        purchase = store.get_purchase(tenant_id, purchase_id)
    if not purchase:
        raise NotFound("purchase not found")
    return {"purchase": purchase}


@router.patch("/{purchase_id}")
def update_purchase(purchase_id: str, data: PurchaseUpdate, tenant_id: str = Depends(get_tenant_id)):
    items = [it.model_dump() for it in data.items]
    with ledger_session(tenant_id) as store:
        res = edit_purchase(store, tenant_id, purchase_id, items, total=data.total)
    return _result(res)


@router.delete("/{purchase_id}")
def remove_purchase(purchase_id: str, tenant_id: str = Depends(get_tenant_id)):
    with ledger_session(tenant_id) as store:
        res = delete_purchase(store, tenant_id, purchase_id)
    return _result(res)
