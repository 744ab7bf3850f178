from decimal import Decimal
from fastapi import APIRouter, Depends
from pydantic import BaseModel
from typing import Optional

from ..db import ledger_session
from ..deps import get_tenant_id
from ..errors import NotFound
from ..settlements import (
    DEFAULT_METHOD,
    SettlementResult,
    delete_settlement,
    edit_settlement,
    list_settlements,
    quick_settle,
    record_settlement,
)
from ..tenant_policy import load_ledger_policy
from ..validation import PaymentMethod, SettlementType

router = APIRouter(prefix="/settlements", tags=["settlements"])


class SettlementIn(BaseModel):
    # Client-generated id; retries with the same id are applied once.
    id: Optional[str] = None
    entity_id: str
    type: SettlementType
    amount: Decimal
    method: PaymentMethod = DEFAULT_METHOD
    note: Optional[str] = None


class QuickSettlementIn(BaseModel):
    id: Optional[str] = None
    entity_id: str
    type: SettlementType
    amount: Decimal


class SettlementUpdate(BaseModel):
    amount: Decimal
    method: Optional[PaymentMethod] = None
    note: Optional[str] = None
    # Amount the client last saw; when given and stale, the edit is rejected (409).
    expected_amount: Optional[Decimal] = None


def _result(res: SettlementResult) -> dict:
    return {"settlement": res.settlement, "balance": res.balance, "duplicate": res.duplicate}


@router.get("")
def get_settlements(entity_id: str, type: Optional[SettlementType] = None, tenant_id: str = Depends(get_tenant_id)):
    with ledger_session(tenant_id) as store:
        return {"settlements": list_settlements(store, tenant_id, entity_id, type)}


@router.post("")
def create_settlement(data: SettlementIn, tenant_id: str = Depends(get_tenant_id)):
    with ledger_session(tenant_id) as store:
        load_ledger_policy(store, tenant_id).assert_payment_method(data.method)
        res = record_settlement(
            store,
            tenant_id,
            data.entity_id,
            data.type,
            data.amount,
            method=data.method,
            note=data.note,
            settlement_id=data.id,
        )
    return _result(res)


@router.post("/quick")
def create_quick_settlement(data: QuickSettlementIn, tenant_id: str = Depends(get_tenant_id)):
    with ledger_session(tenant_id) as store:
        load_ledger_policy(store, tenant_id).assert_payment_method(DEFAULT_METHOD)
        res = quick_settle(store, tenant_id, data.entity_id, data.type, data.amount, settlement_id=data.id)
    return _result(res)


@router.get("/{settlement_id}")
def get_settlement(settlement_id: str, tenant_id: str = Depends(get_tenant_id)):
    with ledger_session(tenant_id) as store:
        settlement = store.get_settlement(tenant_id, settlement_id)
    if not settlement:
        raise NotFound("settlement not found")
    return {"settlement": settlement}


@router.patch("/{settlement_id}")
def update_settlement(settlement_id: str, data: SettlementUpdate, tenant_id: str = Depends(get_tenant_id)):
    with ledger_session(tenant_id) as store:
        if data.method:
            load_ledger_policy(store, tenant_id).assert_payment_method(data.method)
        res = edit_settlement(
            store,
            tenant_id,
            settlement_id,
            data.amount,
            new_method=data.method,
            new_note=data.note,
            expected_amount=data.expected_amount,
        )
    return _result(res)


@router.delete("/{settlement_id}")
def remove_settlement(settlement_id: str, tenant_id: str = Depends(get_tenant_id)):
    with ledger_session(tenant_id) as store:
        res = delete_settlement(store, tenant_id, settlement_id)
    return _result(res)
