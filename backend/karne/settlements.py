"""
Settlement engine.

A settlement is one payment event: a customer paying down their Karné
(CUSTOMER_IN) or the shop paying a supplier (SUPPLIER_OUT). Recording, editing
and deleting a settlement each apply exactly one balance delta on the
referenced party, through `store.apply_balance_delta`.

Every function runs inside the caller's transaction (`ledger_session`), so the
settlement row and the balance move together.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from .amounts import assert_positive_amount, q_money
from .errors import ConcurrencyConflict, LedgerError, NotFound
from .logs import json_log
from .validation import CUSTOMER_IN, SETTLEMENT_KINDS, SUPPLIER_OUT

DEFAULT_METHOD = "CASH"
QUICK_NOTES = {
    CUSTOMER_IN: "Quick settlement",
    SUPPLIER_OUT: "Quick payment",
}


@dataclass
class SettlementResult:
    settlement: dict
    balance: Decimal
    duplicate: bool = False


def _kind_for(settlement_type: str) -> tuple[str, int]:
    try:
        return SETTLEMENT_KINDS[settlement_type]
    except KeyError:
        raise LedgerError(f"invalid settlement type: {settlement_type}")


def _now(now: Optional[datetime]) -> datetime:
    return now if now is not None else datetime.now(timezone.utc)


def record_settlement(
    store,
    tenant_id: str,
    entity_id: str,
    settlement_type: str,
    amount,
    method: str = DEFAULT_METHOD,
    note: Optional[str] = None,
    settlement_id: Optional[str] = None,
    sale_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> SettlementResult:
    """
    Persist a settlement and subtract its amount from the party's balance/debt.

    A balance pushed below zero is a prepaid credit and is accepted. When the
    caller supplies `settlement_id`, a retry with the same id returns the
    stored settlement instead of deducting twice.
    """
    amt = assert_positive_amount(amount)
    kind, sign = _kind_for(settlement_type)

    entity = store.lock_entity(tenant_id, kind, entity_id)
    if not entity:
        raise NotFound(f"{kind} not found")

    row = {
        "id": (settlement_id or "").strip() or str(uuid.uuid4()),
        "entity_id": entity_id,
        "entity_name": entity.get("name") or "",
        "type": settlement_type,
        "amount": amt,
        "settlement_date": _now(now),
        "method": method or DEFAULT_METHOD,
        "note": (note or "").strip() or None,
        "sale_id": sale_id,
    }
    if not store.insert_settlement(tenant_id, row):
        existing = store.get_settlement(tenant_id, row["id"])
        if (
            existing
            and existing["entity_id"] == entity_id
            and existing["type"] == settlement_type
            and q_money(existing["amount"]) == amt
        ):
            return SettlementResult(settlement=existing, balance=q_money(entity["balance"]), duplicate=True)
        raise ConcurrencyConflict("settlement id already used for a different payment")

    balance = store.apply_balance_delta(tenant_id, kind, entity_id, sign * amt)
    json_log(
        "info",
        "ledger.settlement.recorded",
        tenant_id=tenant_id,
        settlement_id=row["id"],
        entity_id=entity_id,
        type=settlement_type,
        amount=amt,
        balance=balance,
    )
    return SettlementResult(settlement=row, balance=balance)


def quick_settle(store, tenant_id: str, entity_id: str, settlement_type: str, amount, settlement_id: Optional[str] = None) -> SettlementResult:
    _kind_for(settlement_type)
    return record_settlement(
        store,
        tenant_id,
        entity_id,
        settlement_type,
        amount,
        method=DEFAULT_METHOD,
        note=QUICK_NOTES[settlement_type],
        settlement_id=settlement_id,
    )


def edit_settlement(
    store,
    tenant_id: str,
    settlement_id: str,
    new_amount,
    new_method: Optional[str] = None,
    new_note: Optional[str] = None,
    expected_amount=None,
    now: Optional[datetime] = None,
) -> SettlementResult:
    """
    Change a settlement's amount/method/note and move the balance by the difference.

    Paying more lowers the debt further; paying less restores part of it.
    The pre-edit amount comes from the locked row. `expected_amount` is the amount
    the caller last saw; a mismatch means someone else edited it first.
    """
    new_amt = assert_positive_amount(new_amount)
    current = store.get_settlement(tenant_id, settlement_id, for_update=True)
    if not current:
        raise NotFound("settlement not found")

    old_amt = q_money(current["amount"])
    if expected_amount is not None and q_money(expected_amount) != old_amt:
        raise ConcurrencyConflict(f"settlement amount is now {old_amt}; reload and retry")
    if current.get("sale_id") and new_amt != old_amt:
        raise ConcurrencyConflict("settlement pays a sale; delete it to reopen the sale instead of changing its amount")

    kind, sign = _kind_for(current["type"])
    diff = new_amt - old_amt
    if diff != 0:
        balance = store.apply_balance_delta(tenant_id, kind, current["entity_id"], sign * diff)
    else:
        balance = store.get_balance(tenant_id, kind, current["entity_id"])
        if balance is None:
            raise NotFound(f"{kind} not found")

    method = new_method or current.get("method") or DEFAULT_METHOD
    note = current.get("note") if new_note is None else ((new_note or "").strip() or None)
    settlement_date = _now(now)
    store.update_settlement(tenant_id, settlement_id, new_amt, method, note, settlement_date)

    updated = {**current, "amount": new_amt, "method": method, "note": note, "settlement_date": settlement_date}
    json_log(
        "info",
        "ledger.settlement.edited",
        tenant_id=tenant_id,
        settlement_id=settlement_id,
        entity_id=current["entity_id"],
        old_amount=old_amt,
        amount=new_amt,
        balance=balance,
    )
    return SettlementResult(settlement=updated, balance=balance)


def delete_settlement(store, tenant_id: str, settlement_id: str) -> SettlementResult:
    """
    Give the settlement's amount back to the party, then drop the row.
    A settlement that paid a sale reopens that sale.
    """
    current = store.get_settlement(tenant_id, settlement_id, for_update=True)
    if not current:
        raise NotFound("settlement not found")

    kind, sign = _kind_for(current["type"])
    amt = q_money(current["amount"])
    balance = store.apply_balance_delta(tenant_id, kind, current["entity_id"], -sign * amt)
    store.delete_settlement_row(tenant_id, settlement_id)
    if current.get("sale_id"):
        store.update_sale(tenant_id, current["sale_id"], {"is_paid": False})

    json_log(
        "info",
        "ledger.settlement.deleted",
        tenant_id=tenant_id,
        settlement_id=settlement_id,
        entity_id=current["entity_id"],
        amount=amt,
        balance=balance,
    )
    return SettlementResult(settlement=current, balance=balance)


def list_settlements(store, tenant_id: str, entity_id: str, settlement_type: Optional[str] = None) -> list[dict]:
    if settlement_type:
        _kind_for(settlement_type)
    return store.list_settlements(tenant_id, entity_id, settlement_type)


__all__ = [
    "CUSTOMER_IN",
    "SUPPLIER_OUT",
    "SettlementResult",
    "record_settlement",
    "quick_settle",
    "edit_settlement",
    "delete_settlement",
    "list_settlements",
]
