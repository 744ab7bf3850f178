from decimal import Decimal
from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict
from typing import Optional

from ..db import ledger_session
from ..deps import get_tenant_id
from ..errors import NotFound
from ..parties import delete_supplier, register_supplier, update_supplier

router = APIRouter(prefix="/suppliers", tags=["suppliers"])


class SupplierIn(BaseModel):
    id: Optional[str] = None
    name: str
    phone: Optional[str] = None
    category: Optional[str] = None
    opening_debt: Decimal = Decimal("0")
    ice: Optional[str] = None
    address: Optional[str] = None
    notes: Optional[str] = None


class SupplierUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = None
    phone: Optional[str] = None
    category: Optional[str] = None
    ice: Optional[str] = None
    address: Optional[str] = None
    notes: Optional[str] = None


@router.get("")
def list_suppliers(tenant_id: str = Depends(get_tenant_id)):
    with ledger_session(tenant_id) as store:
        return {"suppliers": store.list_suppliers(tenant_id)}


@router.post("")
def create_supplier(data: SupplierIn, tenant_id: str = Depends(get_tenant_id)):
    with ledger_session(tenant_id) as store:
        return register_supplier(store, tenant_id, data.model_dump())


@router.get("/{supplier_id}")
def get_supplier(supplier_id: str, tenant_id: str = Depends(get_tenant_id)):
    with ledger_session(tenant_id) as store:
        supplier = store.get_supplier(tenant_id, supplier_id)
        if not supplier:
            raise NotFound("supplier not found")
        purchases = store.list_purchases(tenant_id, supplier_id=supplier_id)
        settlements = store.list_settlements(tenant_id, supplier_id, "SUPPLIER_OUT")
    return {"supplier": supplier, "purchases": purchases, "settlements": settlements}


@router.patch("/{supplier_id}")
def patch_supplier(supplier_id: str, data: SupplierUpdate, tenant_id: str = Depends(get_tenant_id)):
    payload = data.model_dump(exclude_none=True)
    with ledger_session(tenant_id) as store:
        update_supplier(store, tenant_id, supplier_id, payload)
    return {"ok": True}


@router.delete("/{supplier_id}")
def remove_supplier(supplier_id: str, tenant_id: str = Depends(get_tenant_id)):
    with ledger_session(tenant_id) as store:
        delete_supplier(store, tenant_id, supplier_id)
    return {"ok": True}
