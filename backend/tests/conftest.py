import copy
import os
import sys
import threading
import uuid
from contextlib import contextmanager
from decimal import Decimal

import pytest


# Allow running pytest from either the repo root or from within `backend/`.
# Tests import `backend.*`, which requires the repo root on sys.path.
REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))
if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)

from backend.karne.errors import NotFound  # noqa: E402

TENANT = "11111111-1111-1111-1111-111111111111"
OTHER_TENANT = "22222222-2222-2222-2222-222222222222"

_BALANCE_COL = {"customer": ("customers", "balance"), "supplier": ("suppliers", "debt")}


class MemoryLedgerStore:
    """
    In-memory stand-in for PgLedgerStore with the same method contract.
    Rows are keyed by (tenant_id, id); each method holds one lock, so a
    balance delta is applied atomically like the relative UPDATE in SQL.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self.tenants = {}
        self.settings = {}
        self.customers = {}
        self.suppliers = {}
        self.sales = {}
        self.purchases = {}
        self.settlements = {}
        self._seq = 0

    def _table(self, name):
        return getattr(self, name)

    def _next_seq(self):
        self._seq += 1
        return self._seq

    # -- tenant -----------------------------------------------------------

    def add_tenant(self, tenant_id=TENANT, is_active=True):
        self.tenants[tenant_id] = {"id": tenant_id, "company_name": "Shop", "is_active": is_active}

    def get_tenant(self, tenant_id):
        return copy.deepcopy(self.tenants.get(tenant_id))

    def fetch_setting(self, tenant_id, key):
        return copy.deepcopy(self.settings.get((tenant_id, key)))

    # -- balances ---------------------------------------------------------

    def lock_entity(self, tenant_id, kind, entity_id):
        table, col = _BALANCE_COL[kind]
        with self._lock:
            row = self._table(table).get((tenant_id, entity_id))
            if not row:
                return None
            return {"id": row["id"], "name": row["name"], "balance": row[col]}

    def get_balance(self, tenant_id, kind, entity_id):
        table, col = _BALANCE_COL[kind]
        with self._lock:
            row = self._table(table).get((tenant_id, entity_id))
            return row[col] if row else None

    def apply_balance_delta(self, tenant_id, kind, entity_id, delta):
        table, col = _BALANCE_COL[kind]
        with self._lock:
            row = self._table(table).get((tenant_id, entity_id))
            if not row:
                raise NotFound(f"{kind} not found")
            row[col] = row[col] + Decimal(str(delta))
            return row[col]

    def touch_customer_visit(self, tenant_id, customer_id, visited_at, points_delta):
        with self._lock:
            row = self.customers.get((tenant_id, customer_id))
            if row:
                row["last_visit"] = visited_at
                row["points"] = max(row["points"] + points_delta, 0)

    def adjust_customer_points(self, tenant_id, customer_id, points_delta):
        with self._lock:
            row = self.customers.get((tenant_id, customer_id))
            if row:
                row["points"] = max(row["points"] + points_delta, 0)

    # -- customers / suppliers -------------------------------------------

    def list_customers(self, tenant_id):
        rows = [copy.deepcopy(r) for (t, _), r in self.customers.items() if t == tenant_id]
        return sorted(rows, key=lambda r: (-r["balance"], r["name"]))

    def get_customer(self, tenant_id, customer_id):
        return copy.deepcopy(self.customers.get((tenant_id, customer_id)))

    def insert_customer(self, tenant_id, row):
        cid = row.get("id") or str(uuid.uuid4())
        opening = Decimal(str(row.get("opening_balance") or 0))
        self.customers[(tenant_id, cid)] = {
            "id": cid,
            "name": row["name"],
            "phone": row.get("phone"),
            "balance": opening,
            "opening_balance": opening,
            "last_visit": row.get("last_visit"),
            "points": 0,
            "ice": row.get("ice"),
            "address": row.get("address"),
            "notes": row.get("notes"),
        }
        return cid

    def update_customer(self, tenant_id, customer_id, payload):
        row = self.customers.get((tenant_id, customer_id))
        if not row:
            return False
        row.update(payload)
        return True

    def delete_customer(self, tenant_id, customer_id):
        for key, s in list(self.settlements.items()):
            if key[0] == tenant_id and s["entity_id"] == customer_id and s["type"] == "CUSTOMER_IN":
                del self.settlements[key]
        for (t, _), s in self.sales.items():
            if t == tenant_id and s["customer_id"] == customer_id:
                s["customer_id"] = None
        return self.customers.pop((tenant_id, customer_id), None) is not None

    def list_suppliers(self, tenant_id):
        rows = [copy.deepcopy(r) for (t, _), r in self.suppliers.items() if t == tenant_id]
        return sorted(rows, key=lambda r: r["name"])

    def get_supplier(self, tenant_id, supplier_id):
        return copy.deepcopy(self.suppliers.get((tenant_id, supplier_id)))

    def insert_supplier(self, tenant_id, row):
        sid = row.get("id") or str(uuid.uuid4())
        opening = Decimal(str(row.get("opening_debt") or 0))
        self.suppliers[(tenant_id, sid)] = {
            "id": sid,
            "name": row["name"],
            "phone": row.get("phone"),
            "category": row.get("category") or "General",
            "debt": opening,
            "opening_debt": opening,
            "ice": row.get("ice"),
            "address": row.get("address"),
            "notes": row.get("notes"),
        }
        return sid

    def update_supplier(self, tenant_id, supplier_id, payload):
        row = self.suppliers.get((tenant_id, supplier_id))
        if not row:
            return False
        row.update(payload)
        return True

    def delete_supplier(self, tenant_id, supplier_id):
        for key, s in list(self.settlements.items()):
            if key[0] == tenant_id and s["entity_id"] == supplier_id and s["type"] == "SUPPLIER_OUT":
                del self.settlements[key]
        for (t, _), p in self.purchases.items():
            if t == tenant_id and p["supplier_id"] == supplier_id:
                p["supplier_id"] = None
                p["debt_posted"] = False
        return self.suppliers.pop((tenant_id, supplier_id), None) is not None

    # -- settlements ------------------------------------------------------

    def insert_settlement(self, tenant_id, row):
        with self._lock:
            key = (tenant_id, row["id"])
            if key in self.settlements:
                return False
            self.settlements[key] = {**copy.deepcopy(row), "created_at": self._next_seq()}
            return True

    def get_settlement(self, tenant_id, settlement_id, for_update=False):
        return copy.deepcopy(self.settlements.get((tenant_id, settlement_id)))

    def update_settlement(self, tenant_id, settlement_id, amount, method, note, settlement_date):
        row = self.settlements.get((tenant_id, settlement_id))
        if row:
            row.update({"amount": amount, "method": method, "note": note, "settlement_date": settlement_date})

    def delete_settlement_row(self, tenant_id, settlement_id):
        self.settlements.pop((tenant_id, settlement_id), None)

    def list_settlements(self, tenant_id, entity_id, settlement_type=None):
        rows = [
            copy.deepcopy(s)
            for (t, _), s in self.settlements.items()
            if t == tenant_id and s["entity_id"] == entity_id and (not settlement_type or s["type"] == settlement_type)
        ]
        return sorted(rows, key=lambda s: (s["settlement_date"], s["created_at"]), reverse=True)

    def list_sale_settlements(self, tenant_id, sale_id):
        return [copy.deepcopy(s) for (t, _), s in self.settlements.items() if t == tenant_id and s.get("sale_id") == sale_id]

    # -- sales ------------------------------------------------------------

    def insert_sale(self, tenant_id, row):
        key = (tenant_id, row["id"])
        if key in self.sales:
            return False
        self.sales[key] = copy.deepcopy(row)
        return True

    def get_sale(self, tenant_id, sale_id, for_update=False):
        return copy.deepcopy(self.sales.get((tenant_id, sale_id)))

    def update_sale(self, tenant_id, sale_id, payload):
        row = self.sales.get((tenant_id, sale_id))
        if row:
            row.update(copy.deepcopy(payload))

    def delete_sale_row(self, tenant_id, sale_id):
        self.sales.pop((tenant_id, sale_id), None)

    def list_sales(self, tenant_id, customer_id=None, unpaid_only=False, limit=500):
        rows = [
            copy.deepcopy(s)
            for (t, _), s in self.sales.items()
            if t == tenant_id
            and (not customer_id or s["customer_id"] == customer_id)
            and (not unpaid_only or not s["is_paid"])
        ]
        return sorted(rows, key=lambda s: s["sale_date"], reverse=True)[:limit]

    # -- purchases --------------------------------------------------------

    def insert_purchase(self, tenant_id, row):
        key = (tenant_id, row["id"])
        if key in self.purchases:
            return False
        self.purchases[key] = copy.deepcopy(row)
        return True

    def get_purchase(self, tenant_id, purchase_id, for_update=False):
        return copy.deepcopy(self.purchases.get((tenant_id, purchase_id)))

    def update_purchase(self, tenant_id, purchase_id, payload):
        row = self.purchases.get((tenant_id, purchase_id))
        if row:
            row.update(copy.deepcopy(payload))

    def delete_purchase_row(self, tenant_id, purchase_id):
        self.purchases.pop((tenant_id, purchase_id), None)

    def list_purchases(self, tenant_id, supplier_id=None, limit=500):
        rows = [
            copy.deepcopy(p)
            for (t, _), p in self.purchases.items()
            if t == tenant_id and (not supplier_id or p["supplier_id"] == supplier_id)
        ]
        return sorted(rows, key=lambda p: p["purchase_date"], reverse=True)[:limit]

    # -- reports ----------------------------------------------------------

    def ledger_totals(self, tenant_id):
        balances = [c["balance"] for (t, _), c in self.customers.items() if t == tenant_id]
        return {
            "customer_credit": sum((b for b in balances if b > 0), Decimal("0")),
            "customer_prepaid": sum((b for b in balances if b < 0), Decimal("0")),
            "debtors": len([b for b in balances if b > 0]),
            "supplier_debt": sum((s["debt"] for (t, _), s in self.suppliers.items() if t == tenant_id), Decimal("0")),
        }

    def reconciliation_rows(self, tenant_id, kind, limit=1000):
        rows = []
        if kind == "customer":
            for (t, cid), c in self.customers.items():
                if t != tenant_id:
                    continue
                posted = sum(
                    (Decimal(str(s["total"])) - Decimal(str(s["advance"])) for (st, _), s in self.sales.items()
                     if st == t and s["customer_id"] == cid and s["payment_method"] == "KARNE"),
                    Decimal("0"),
                )
                settled = sum(
                    (s["amount"] for (st, _), s in self.settlements.items()
                     if st == t and s["entity_id"] == cid and s["type"] == "CUSTOMER_IN"),
                    Decimal("0"),
                )
                rows.append({"id": cid, "name": c["name"], "stored": c["balance"], "opening": c["opening_balance"], "posted": posted, "settled": settled})
        else:
            for (t, sid), su in self.suppliers.items():
                if t != tenant_id:
                    continue
                posted = sum(
                    (Decimal(str(p["total"])) for (pt, _), p in self.purchases.items()
                     if pt == t and p["supplier_id"] == sid and p["debt_posted"]),
                    Decimal("0"),
                )
                settled = sum(
                    (s["amount"] for (st, _), s in self.settlements.items()
                     if st == t and s["entity_id"] == sid and s["type"] == "SUPPLIER_OUT"),
                    Decimal("0"),
                )
                rows.append({"id": sid, "name": su["name"], "stored": su["debt"], "opening": su["opening_debt"], "posted": posted, "settled": settled})
        return sorted(rows, key=lambda r: r["name"])[:limit]


@pytest.fixture
def store():
    s = MemoryLedgerStore()
    s.add_tenant(TENANT)
    s.add_tenant(OTHER_TENANT)
    return s


@pytest.fixture
def customer(store):
    return store.insert_customer(TENANT, {"id": "c1", "name": "Fatima", "opening_balance": Decimal("0")})


@pytest.fixture
def supplier(store):
    return store.insert_supplier(TENANT, {"id": "s1", "name": "Grossiste Atlas", "opening_debt": Decimal("0")})


@pytest.fixture
def session_for(monkeypatch, store):
    """
    Point a router module's `ledger_session` at the memory store:
    `session_for(settlements_router_module)`.
    """

    def _patch(module):
        @contextmanager
        def _session(_tenant_id):
            yield store

        monkeypatch.setattr(module, "ledger_session", _session)
        return store

    return _patch
