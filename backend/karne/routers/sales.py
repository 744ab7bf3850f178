from datetime import datetime
from decimal import Decimal
from fastapi import APIRouter, Depends
from pydantic import BaseModel
from typing import List, Optional

from ..db import ledger_session
from ..deps import get_tenant_id
from ..errors import NotFound
from ..sale_posting import SaleResult, delete_sale, edit_sale, list_sales, mark_sale_settled, post_sale_debt
from ..validation import PaymentMethod

router = APIRouter(prefix="/sales", tags=["sales"])


class SaleItemIn(BaseModel):
    product_id: Optional[str] = None
    name: str = ""
    quantity: Decimal
    unit_price: Decimal


class SaleIn(BaseModel):
    # Client-generated id; a retried checkout with the same id posts once.
    id: Optional[str] = None
    date: Optional[datetime] = None
    items: List[SaleItemIn]
    total: Optional[Decimal] = None
    advance: Decimal = Decimal("0")
    payment_method: PaymentMethod
    customer_id: Optional[str] = None


class SaleUpdate(BaseModel):
    items: List[SaleItemIn]
    total: Optional[Decimal] = None
    advance: Optional[Decimal] = None


class SaleSettleIn(BaseModel):
    customer_id: str
    method: PaymentMethod = "CASH"
    settlement_id: Optional[str] = None


def _result(res: SaleResult) -> dict:
    return {"sale": res.sale, "balance": res.balance, "duplicate": res.duplicate}


@router.get("")
def get_sales(customer_id: Optional[str] = None, unpaid_only: bool = False, limit: int = 500, tenant_id: str = Depends(get_tenant_id)):
    limit = max(1, min(limit, 2000))
    with ledger_session(tenant_id) as store:
        return {"sales": list_sales(store, tenant_id, customer_id=customer_id, unpaid_only=unpaid_only, limit=limit)}


@router.post("")
def create_sale(data: SaleIn, tenant_id: str = Depends(get_tenant_id)):
    with ledger_session(tenant_id) as store:
        res = post_sale_debt(store, tenant_id, data.model_dump())
    return _result(res)


@router.get("/{sale_id}")
def get_sale(sale_id: str, tenant_id: str = Depends(get_tenant_id)):
    with ledger_session(tenant_id) as store:
        sale = store.get_sale(tenant_id, sale_id)
    if not sale:
        raise NotFound("sale not found")
    return {"sale": sale}


@router.patch("/{sale_id}")
def update_sale(sale_id: str, data: SaleUpdate, tenant_id: str = Depends(get_tenant_id)):
    items = [it.model_dump() for it in data.items]
    with ledger_session(tenant_id) as store:
        res = edit_sale(store, tenant_id, sale_id, items, advance=data.advance, total=data.total)
    return _result(res)


@router.delete("/{sale_id}")
def remove_sale(sale_id: str, tenant_id: str = Depends(get_tenant_id)):
    with ledger_session(tenant_id) as store:
        res = delete_sale(store, tenant_id, sale_id)
    return _result(res)


@router.post("/{sale_id}/settle")
def settle_sale(sale_id: str, data: SaleSettleIn, tenant_id: str = Depends(get_tenant_id)):
    with ledger_session(tenant_id) as store:
        res = mark_sale_settled(
            store,
            tenant_id,
            sale_id,
            data.customer_id,
            method=data.method,
            settlement_id=data.settlement_id,
        )
    return _result(res)
