"""
Sale debt poster: turns checkouts into Karné (customer ledger) effects.

Edits and deletions reconcile by delta, the same way settlement edits do:
whatever a sale added to a customer's balance is exactly what is taken back
(or adjusted) later.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from .amounts import (
    assert_advance_within_total,
    assert_total_matches,
    d,
    q_money,
    sale_items_total,
    sale_remainder,
)
from .errors import ConcurrencyConflict, LedgerError, NotFound
from .logs import json_log
from .settlements import delete_settlement, record_settlement
from .tenant_policy import LedgerPolicy, load_ledger_policy
from .validation import CUSTOMER_IN, KARNE


@dataclass
class SaleResult:
    sale: dict
    balance: Optional[Decimal] = None
    duplicate: bool = False


def _normalize_items(items) -> list[dict]:
    out = []
    for it in items or []:
        out.append(
            {
                "product_id": it.get("product_id"),
                "name": (it.get("name") or "").strip(),
                "quantity": d(it.get("quantity")),
                "unit_price": q_money(it.get("unit_price")),
            }
        )
    return out


def _is_credit(sale: dict) -> bool:
    return sale.get("payment_method") == KARNE and bool(sale.get("customer_id"))


def _same_checkout(existing: Optional[dict], row: dict) -> bool:
    return bool(existing) and (
        existing.get("customer_id") == row["customer_id"]
        and existing.get("payment_method") == row["payment_method"]
        and q_money(existing["total"]) == row["total"]
        and q_money(existing.get("advance")) == row["advance"]
    )


def _current_balance(store, tenant_id: str, customer_id: Optional[str]) -> Optional[Decimal]:
    if not customer_id:
        return None
    return store.get_balance(tenant_id, "customer", customer_id)


def post_sale_debt(
    store,
    tenant_id: str,
    sale: dict,
    policy: Optional[LedgerPolicy] = None,
    now: Optional[datetime] = None,
) -> SaleResult:
    """
    Persist a finished checkout and post it to the customer's ledger.

    - KARNE + customer: balance += total - advance, plus a visit.
    - other method + customer: visit only (last_visit, loyalty points).
    - no customer: the sale row only.
    """
    policy = policy or load_ledger_policy(store, tenant_id)
    method = str(sale.get("payment_method") or "").strip().upper()
    policy.assert_payment_method(method)

    items = _normalize_items(sale.get("items"))
    total = sale_items_total(items)
    assert_total_matches(sale.get("total"), total)
    advance = assert_advance_within_total(sale.get("advance") or 0, total)

    customer_id = (sale.get("customer_id") or "").strip() or None
    credit = method == KARNE
    if credit and not customer_id:
        raise LedgerError("a KARNE sale requires a customer")
    remainder = sale_remainder(total, advance)

    customer = None
    if customer_id:
        customer = store.lock_entity(tenant_id, "customer", customer_id)
        if not customer:
            raise NotFound("customer not found")

    sale_date = sale.get("date") or (now if now is not None else datetime.now(timezone.utc))
    row = {
        "id": (sale.get("id") or "").strip() or str(uuid.uuid4()),
        "sale_date": sale_date,
        "items": items,
        "total": total,
        "advance": advance,
        "payment_method": method,
        "customer_id": customer_id,
        "is_paid": not (credit and remainder > 0),
        "points_awarded": policy.points_per_visit if customer_id else 0,
    }
    if not store.insert_sale(tenant_id, row):
        existing = store.get_sale(tenant_id, row["id"])
        if not _same_checkout(existing, row):
            raise ConcurrencyConflict("sale id already used for a different checkout")
        return SaleResult(sale=existing, balance=_current_balance(store, tenant_id, customer_id), duplicate=True)

    balance = None
    if customer_id:
        if credit and remainder > 0:
            balance = store.apply_balance_delta(tenant_id, "customer", customer_id, remainder)
        else:
            balance = q_money(customer["balance"])
        store.touch_customer_visit(tenant_id, customer_id, sale_date, row["points_awarded"])

    json_log(
        "info",
        "ledger.sale.posted",
        tenant_id=tenant_id,
        sale_id=row["id"],
        customer_id=customer_id,
        payment_method=method,
        total=total,
        advance=advance,
        balance=balance,
    )
    return SaleResult(sale=row, balance=balance)


def mark_sale_settled(
    store,
    tenant_id: str,
    sale_id: str,
    customer_id: str,
    method: str = "CASH",
    settlement_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> SaleResult:
    """
    Settle exactly this sale's outstanding remainder.

    The balance moves only through `record_settlement`; this function never does
    its own balance arithmetic, so one user action can only deduct once.
    """
    sale = store.get_sale(tenant_id, sale_id, for_update=True)
    if not sale or sale.get("customer_id") != customer_id:
        raise NotFound("sale not found for this customer")
    if sale.get("is_paid"):
        return SaleResult(sale=sale, balance=_current_balance(store, tenant_id, customer_id), duplicate=True)

    remainder = sale_remainder(sale["total"], sale.get("advance"))
    store.update_sale(tenant_id, sale_id, {"is_paid": True})
    if remainder > 0:
        res = record_settlement(
            store,
            tenant_id,
            customer_id,
            CUSTOMER_IN,
            remainder,
            method=method or "CASH",
            note=f"Settlement of sale #{sale_id}",
            settlement_id=settlement_id,
            sale_id=sale_id,
            now=now,
        )
        balance = res.balance
    else:
        balance = _current_balance(store, tenant_id, customer_id)

    json_log("info", "ledger.sale.settled", tenant_id=tenant_id, sale_id=sale_id, customer_id=customer_id, amount=remainder, balance=balance)
    return SaleResult(sale={**sale, "is_paid": True}, balance=balance)


def edit_sale(
    store,
    tenant_id: str,
    sale_id: str,
    items,
    advance=None,
    total=None,
) -> SaleResult:
    """
    Replace a sale's lines (and optionally its advance); the total is recomputed.

    An unpaid credit sale moves the customer's balance by the change in its
    remainder. A credit sale already settled through "mark as paid" is locked:
    delete that settlement first.
    """
    sale = store.get_sale(tenant_id, sale_id, for_update=True)
    if not sale:
        raise NotFound("sale not found")

    new_items = _normalize_items(items)
    new_total = sale_items_total(new_items)
    assert_total_matches(total, new_total)
    new_advance = assert_advance_within_total(sale.get("advance") if advance is None else advance, new_total)

    credit = _is_credit(sale)
    balance = None
    if credit:
        if store.list_sale_settlements(tenant_id, sale_id):
            raise ConcurrencyConflict("sale is settled; delete its settlement before editing")
        old_remainder = sale_remainder(sale["total"], sale.get("advance"))
        new_remainder = sale_remainder(new_total, new_advance)
        delta = new_remainder - old_remainder
        if delta != 0:
            balance = store.apply_balance_delta(tenant_id, "customer", sale["customer_id"], delta)
        else:
            balance = _current_balance(store, tenant_id, sale["customer_id"])
        is_paid = new_remainder <= 0
    else:
        is_paid = bool(sale.get("is_paid", True))

    changes = {"items": new_items, "total": new_total, "advance": new_advance, "is_paid": is_paid}
    store.update_sale(tenant_id, sale_id, changes)
    json_log(
        "info",
        "ledger.sale.edited",
        tenant_id=tenant_id,
        sale_id=sale_id,
        old_total=q_money(sale["total"]),
        total=new_total,
        balance=balance,
    )
    return SaleResult(sale={**sale, **changes}, balance=balance)


def delete_sale(store, tenant_id: str, sale_id: str) -> SaleResult:
    """
    Remove a sale and everything it did to the customer's ledger.

    Settlements that paid this sale are deleted first (each gives its amount
    back); then the posted remainder of a credit sale is taken off the balance
    and the loyalty reward withdrawn. Unpaid credit sale: balance -= remainder.
    Settled credit sale: net zero.
    """
    sale = store.get_sale(tenant_id, sale_id, for_update=True)
    if not sale:
        raise NotFound("sale not found")

    customer_id = sale.get("customer_id")
    balance = None
    for s in store.list_sale_settlements(tenant_id, sale_id):
        balance = delete_settlement(store, tenant_id, s["id"]).balance

    if _is_credit(sale):
        remainder = sale_remainder(sale["total"], sale.get("advance"))
        if remainder > 0:
            balance = store.apply_balance_delta(tenant_id, "customer", customer_id, -remainder)
    if customer_id and int(sale.get("points_awarded") or 0) > 0:
        store.adjust_customer_points(tenant_id, customer_id, -int(sale["points_awarded"]))
    if balance is None:
        balance = _current_balance(store, tenant_id, customer_id)

    store.delete_sale_row(tenant_id, sale_id)
    json_log("info", "ledger.sale.deleted", tenant_id=tenant_id, sale_id=sale_id, customer_id=customer_id, balance=balance)
    return SaleResult(sale=sale, balance=balance)


def list_sales(store, tenant_id: str, customer_id: Optional[str] = None, unpaid_only: bool = False, limit: int = 500) -> list[dict]:
    return store.list_sales(tenant_id, customer_id=customer_id, unpaid_only=unpaid_only, limit=limit)
