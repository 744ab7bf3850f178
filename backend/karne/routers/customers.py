from decimal import Decimal
from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict
from typing import Optional

from ..db import ledger_session
from ..deps import get_tenant_id
from ..errors import NotFound
from ..parties import customer_statement, delete_customer, register_customer, update_customer
from ..validation import OpeningBalanceType

router = APIRouter(prefix="/customers", tags=["customers"])


class CustomerIn(BaseModel):
    id: Optional[str] = None
    name: str
    phone: Optional[str] = None
    opening_balance: Decimal = Decimal("0")
    opening_type: OpeningBalanceType = "credit"  # credit|advance
    ice: Optional[str] = None
    address: Optional[str] = None
    notes: Optional[str] = None


class CustomerUpdate(BaseModel):
    # balance is not editable; a payload carrying it fails validation.
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = None
    phone: Optional[str] = None
    ice: Optional[str] = None
    address: Optional[str] = None
    notes: Optional[str] = None


@router.get("")
def list_customers(tenant_id: str = Depends(get_tenant_id)):
    with ledger_session(tenant_id) as store:
        return {"customers": store.list_customers(tenant_id)}


@router.post("")
def create_customer(data: CustomerIn, tenant_id: str = Depends(get_tenant_id)):
    with ledger_session(tenant_id) as store:
        return register_customer(store, tenant_id, data.model_dump())


@router.get("/{customer_id}")
def get_customer(customer_id: str, tenant_id: str = Depends(get_tenant_id)):
    with ledger_session(tenant_id) as store:
        customer = store.get_customer(tenant_id, customer_id)
    if not customer:
        raise NotFound("customer not found")
    return {"customer": customer}


@router.patch("/{customer_id}")
def patch_customer(customer_id: str, data: CustomerUpdate, tenant_id: str = Depends(get_tenant_id)):
    payload = data.model_dump(exclude_none=True)
    with ledger_session(tenant_id) as store:
        update_customer(store, tenant_id, customer_id, payload)
    return {"ok": True}


@router.delete("/{customer_id}")
def remove_customer(customer_id: str, tenant_id: str = Depends(get_tenant_id)):
    with ledger_session(tenant_id) as store:
        delete_customer(store, tenant_id, customer_id)
    return {"ok": True}


@router.get("/{customer_id}/statement")
def get_statement(customer_id: str, tenant_id: str = Depends(get_tenant_id)):
    with ledger_session(tenant_id) as store:
        return customer_statement(store, tenant_id, customer_id)
