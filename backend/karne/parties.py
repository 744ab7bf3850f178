"""
Customer/supplier registry.

Registration may carry an opening balance (customer) or opening debt
(supplier); after that, balance and debt move only through the settlement
engine and the debt posters. Descriptive updates never touch them.
"""

from datetime import datetime, timezone
from typing import Optional

from .amounts import q_money
from .errors import InvalidAmount, NotFound
from .logs import json_log
from .store import CUSTOMER_EDITABLE, SUPPLIER_EDITABLE


def _clean(v) -> Optional[str]:
    return (str(v) if v is not None else "").strip() or None


def register_customer(store, tenant_id: str, data: dict, now: Optional[datetime] = None) -> dict:
    """
    `opening_type='credit'` means the customer already owes `opening_balance`;
    `'advance'` means they prepaid it and it is stored negated.
    """
    name = _clean(data.get("name"))
    if not name:
        raise InvalidAmount("name is required")
    opening = q_money(data.get("opening_balance") or 0)
    if opening < 0:
        raise InvalidAmount("opening_balance must be >= 0; use opening_type='advance' for prepaid credit")
    if (data.get("opening_type") or "credit") == "advance":
        opening = -opening

    notes = _clean(data.get("notes"))
    if opening != 0:
        notes = f"Opening balance: {opening}." + (f" {notes}" if notes else "")

    row = {
        "id": _clean(data.get("id")),
        "name": name,
        "phone": _clean(data.get("phone")),
        "opening_balance": opening,
        "last_visit": now if now is not None else datetime.now(timezone.utc),
        "ice": _clean(data.get("ice")),
        "address": _clean(data.get("address")),
        "notes": notes,
    }
    customer_id = store.insert_customer(tenant_id, row)
    json_log("info", "ledger.customer.registered", tenant_id=tenant_id, customer_id=customer_id, opening_balance=opening)
    return {"id": customer_id, "balance": opening}


def register_supplier(store, tenant_id: str, data: dict) -> dict:
    name = _clean(data.get("name"))
    if not name:
        raise InvalidAmount("name is required")
    opening = q_money(data.get("opening_debt") or 0)
    if opening < 0:
        raise InvalidAmount("opening_debt must be >= 0")
    row = {
        "id": _clean(data.get("id")),
        "name": name,
        "phone": _clean(data.get("phone")),
        "category": _clean(data.get("category")) or "General",
        "opening_debt": opening,
        "ice": _clean(data.get("ice")),
        "address": _clean(data.get("address")),
        "notes": _clean(data.get("notes")),
    }
    supplier_id = store.insert_supplier(tenant_id, row)
    json_log("info", "ledger.supplier.registered", tenant_id=tenant_id, supplier_id=supplier_id, opening_debt=opening)
    return {"id": supplier_id, "debt": opening}


def _descriptive(payload: dict, allowed: tuple) -> dict:
    out = {}
    for k, v in payload.items():
        if k not in allowed:
            continue
        out[k] = _clean(v)
    if "name" in out and not out["name"]:
        raise InvalidAmount("name cannot be blank")
    return out


def update_customer(store, tenant_id: str, customer_id: str, payload: dict):
    if not store.update_customer(tenant_id, customer_id, _descriptive(payload, CUSTOMER_EDITABLE)):
        raise NotFound("customer not found")


def update_supplier(store, tenant_id: str, supplier_id: str, payload: dict):
    if not store.update_supplier(tenant_id, supplier_id, _descriptive(payload, SUPPLIER_EDITABLE)):
        raise NotFound("supplier not found")


def delete_customer(store, tenant_id: str, customer_id: str):
    if not store.delete_customer(tenant_id, customer_id):
        raise NotFound("customer not found")
    json_log("info", "ledger.customer.deleted", tenant_id=tenant_id, customer_id=customer_id)


def delete_supplier(store, tenant_id: str, supplier_id: str):
    if not store.delete_supplier(tenant_id, supplier_id):
        raise NotFound("supplier not found")
    json_log("info", "ledger.supplier.deleted", tenant_id=tenant_id, supplier_id=supplier_id)


def customer_statement(store, tenant_id: str, customer_id: str) -> dict:
    customer = store.get_customer(tenant_id, customer_id)
    if not customer:
        raise NotFound("customer not found")
    unpaid = []
    for s in store.list_sales(tenant_id, customer_id=customer_id, unpaid_only=True):
        unpaid.append({**s, "remainder": q_money(s["total"]) - q_money(s.get("advance"))})
    return {
        "customer": customer,
        "unpaid_sales": unpaid,
        "settlements": store.list_settlements(tenant_id, customer_id, "CUSTOMER_IN"),
    }


def ledger_summary(store, tenant_id: str) -> dict:
    t = store.ledger_totals(tenant_id)
    return {
        "customer_credit": q_money(t.get("customer_credit")),
        "customer_prepaid": q_money(t.get("customer_prepaid")),
        "debtors": int(t.get("debtors") or 0),
        "supplier_debt": q_money(t.get("supplier_debt")),
    }
