import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from .amounts import assert_total_matches, d, purchase_items_total, q_money
from .errors import ConcurrencyConflict, NotFound
from .logs import json_log

# Placeholders the purchase import screen sends before a supplier is resolved.
UNRESOLVED_SUPPLIER_IDS = {"", "unknown", "new", "create-new"}


@dataclass
class PurchaseResult:
    purchase: dict
    debt: Optional[Decimal] = None
    duplicate: bool = False


def _resolved_supplier_id(raw) -> Optional[str]:
    sid = str(raw or "").strip()
    if sid.lower() in UNRESOLVED_SUPPLIER_IDS:
        return None
    return sid


def _normalize_items(items) -> list[dict]:
    return [
        {
            "name": (it.get("name") or "").strip(),
            "quantity": d(it.get("quantity")),
            "cost": q_money(it.get("cost")),
        }
        for it in (items or [])
    ]


def post_purchase_debt(store, tenant_id: str, purchase: dict, now: Optional[datetime] = None) -> PurchaseResult:
    """
    Persist a supplier purchase and add its total to the supplier's debt.

    Purchases without a resolved supplier are stored with `debt_posted=false`
    and never touch a ledger. Stock receipt is handled elsewhere.
    """
    items = _normalize_items(purchase.get("items"))
    total = purchase_items_total(items)
    assert_total_matches(purchase.get("total"), total)

    supplier_id = _resolved_supplier_id(purchase.get("supplier_id"))
    if supplier_id and not store.lock_entity(tenant_id, "supplier", supplier_id):
        raise NotFound("supplier not found")

    row = {
        "id": (purchase.get("id") or "").strip() or str(uuid.uuid4()),
        "supplier_id": supplier_id,
        "purchase_date": purchase.get("date") or (now if now is not None else datetime.now(timezone.utc)),
        "items": items,
        "total": total,
        "debt_posted": bool(supplier_id),
    }
    if not store.insert_purchase(tenant_id, row):
        existing = store.get_purchase(tenant_id, row["id"])
        if not existing or existing.get("supplier_id") != supplier_id or q_money(existing["total"]) != total:
            raise ConcurrencyConflict("purchase id already used for a different purchase")
        debt = store.get_balance(tenant_id, "supplier", supplier_id) if supplier_id else None
        return PurchaseResult(purchase=existing, debt=debt, duplicate=True)

    debt = None
    if row["debt_posted"]:
        debt = store.apply_balance_delta(tenant_id, "supplier", supplier_id, total)
    json_log("info", "ledger.purchase.posted", tenant_id=tenant_id, purchase_id=row["id"], supplier_id=supplier_id, total=total, debt=debt)
    return PurchaseResult(purchase=row, debt=debt)


def edit_purchase(store, tenant_id: str, purchase_id: str, items, total=None) -> PurchaseResult:
    """
    Replace a purchase's lines; a posted purchase moves the supplier's debt by
    the change in total.
    """
    current = store.get_purchase(tenant_id, purchase_id, for_update=True)
    if not current:
        raise NotFound("purchase not found")

    new_items = _normalize_items(items)
    new_total = purchase_items_total(new_items)
    assert_total_matches(total, new_total)

    debt = None
    if current.get("debt_posted") and current.get("supplier_id"):
        delta = new_total - q_money(current["total"])
        if delta != 0:
            debt = store.apply_balance_delta(tenant_id, "supplier", current["supplier_id"], delta)
        else:
            debt = store.get_balance(tenant_id, "supplier", current["supplier_id"])

    changes = {"items": new_items, "total": new_total}
    store.update_purchase(tenant_id, purchase_id, changes)
    json_log(
        "info",
        "ledger.purchase.edited",
        tenant_id=tenant_id,
        purchase_id=purchase_id,
        old_total=q_money(current["total"]),
        total=new_total,
        debt=debt,
    )
    return PurchaseResult(purchase={**current, **changes}, debt=debt)


def delete_purchase(store, tenant_id: str, purchase_id: str) -> PurchaseResult:
    current = store.get_purchase(tenant_id, purchase_id, for_update=True)
    if not current:
        raise NotFound("purchase not found")

    debt = None
    if current.get("debt_posted") and current.get("supplier_id"):
        debt = store.apply_balance_delta(tenant_id, "supplier", current["supplier_id"], -q_money(current["total"]))
    store.delete_purchase_row(tenant_id, purchase_id)
    json_log("info", "ledger.purchase.deleted", tenant_id=tenant_id, purchase_id=purchase_id, supplier_id=current.get("supplier_id"), debt=debt)
    return PurchaseResult(purchase=current, debt=debt)


def list_purchases(store, tenant_id: str, supplier_id: Optional[str] = None, limit: int = 500) -> list[dict]:
    return store.list_purchases(tenant_id, supplier_id=supplier_id, limit=limit)
