"""
PostgreSQL implementation of the ledger store contract.

Every method takes the tenant id explicitly and filters on it. Balance changes
go through `apply_balance_delta`, a single relative UPDATE executed by the
database, so concurrent settlements on one customer cannot lose an update.
"""

import json
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from .errors import NotFound

# entity kind -> (table, balance column, opening column)
ENTITY_TABLES = {
    "customer": ("customers", "balance", "opening_balance"),
    "supplier": ("suppliers", "debt", "opening_debt"),
}

CUSTOMER_COLUMNS = "id, name, phone, balance, opening_balance, last_visit, points, ice, address, notes, created_at, updated_at"
SUPPLIER_COLUMNS = "id, name, phone, category, debt, opening_debt, ice, address, notes, created_at, updated_at"
SALE_COLUMNS = "id, sale_date, items, total, advance, payment_method, customer_id, is_paid, points_awarded, created_at, updated_at"
PURCHASE_COLUMNS = "id, supplier_id, purchase_date, items, total, debt_posted, created_at, updated_at"
SETTLEMENT_COLUMNS = "id, entity_id, entity_name, type, amount, settlement_date, method, note, sale_id, created_at"

# Descriptive fields a party update may touch. Balance/debt are never in here.
CUSTOMER_EDITABLE = ("name", "phone", "ice", "address", "notes")
SUPPLIER_EDITABLE = ("name", "phone", "category", "ice", "address", "notes")
SALE_EDITABLE = ("items", "total", "advance", "is_paid")
PURCHASE_EDITABLE = ("items", "total")


def _entity(kind: str):
    try:
        return ENTITY_TABLES[kind]
    except KeyError:
        raise ValueError(f"unknown entity kind: {kind}")


def _set_clause(payload: dict, allowed: tuple) -> tuple[list[str], list[Any]]:
    fields = []
    params = []
    for k, v in payload.items():
        if k not in allowed:
            raise ValueError(f"field not updatable: {k}")
        if k == "items":
            fields.append("items = %s::jsonb")
            params.append(json.dumps(v, default=str))
        else:
            fields.append(f"{k} = %s")
            params.append(v)
    return fields, params


class PgLedgerStore:
    def __init__(self, cur):
        self.cur = cur

    # -- tenant -----------------------------------------------------------

    def get_tenant(self, tenant_id: str) -> Optional[dict]:
        self.cur.execute(
            "SELECT id, company_name, is_active FROM tenants WHERE id = %s",
            (tenant_id,),
        )
        return self.cur.fetchone()

    def fetch_setting(self, tenant_id: str, key: str) -> Optional[dict]:
        self.cur.execute(
            """
            SELECT value_json
            FROM tenant_settings
            WHERE tenant_id = %s AND key = %s
            """,
            (tenant_id, key),
        )
        row = self.cur.fetchone()
        if not row:
            return None
        return row.get("value_json") or {}

    # -- balances ---------------------------------------------------------

    def lock_entity(self, tenant_id: str, kind: str, entity_id: str) -> Optional[dict]:
        table, col, _ = _entity(kind)
        self.cur.execute(
            f"""
            SELECT id, name, {col} AS balance
            FROM {table}
            WHERE tenant_id = %s AND id = %s
            FOR UPDATE
            """,
            (tenant_id, entity_id),
        )
        return self.cur.fetchone()

    def get_balance(self, tenant_id: str, kind: str, entity_id: str) -> Optional[Decimal]:
        table, col, _ = _entity(kind)
        self.cur.execute(
            f"SELECT {col} AS balance FROM {table} WHERE tenant_id = %s AND id = %s",
            (tenant_id, entity_id),
        )
        row = self.cur.fetchone()
        return Decimal(str(row["balance"])) if row else None

    def apply_balance_delta(self, tenant_id: str, kind: str, entity_id: str, delta: Decimal) -> Decimal:
        table, col, _ = _entity(kind)
        self.cur.execute(
            f"""
            UPDATE {table}
            SET {col} = {col} + %s,
                updated_at = now()
            WHERE tenant_id = %s AND id = %s
            RETURNING {col} AS balance
            """,
            (delta, tenant_id, entity_id),
        )
        row = self.cur.fetchone()
        if not row:
            raise NotFound(f"{kind} not found")
        return Decimal(str(row["balance"]))

    def touch_customer_visit(self, tenant_id: str, customer_id: str, visited_at: datetime, points_delta: int):
        self.cur.execute(
            """
            UPDATE customers
            SET last_visit = %s,
                points = GREATEST(points + %s, 0),
                updated_at = now()
            WHERE tenant_id = %s AND id = %s
            """,
            (visited_at, points_delta, tenant_id, customer_id),
        )

    def adjust_customer_points(self, tenant_id: str, customer_id: str, points_delta: int):
        self.cur.execute(
            """
            UPDATE customers
            SET points = GREATEST(points + %s, 0),
                updated_at = now()
            WHERE tenant_id = %s AND id = %s
            """,
            (points_delta, tenant_id, customer_id),
        )

    # -- customers / suppliers -------------------------------------------

    def list_customers(self, tenant_id: str) -> list[dict]:
        self.cur.execute(
            f"""
            SELECT {CUSTOMER_COLUMNS}
            FROM customers
            WHERE tenant_id = %s
            ORDER BY balance DESC, name
            """,
            (tenant_id,),
        )
        return self.cur.fetchall()

    def get_customer(self, tenant_id: str, customer_id: str) -> Optional[dict]:
        self.cur.execute(
            f"SELECT {CUSTOMER_COLUMNS} FROM customers WHERE tenant_id = %s AND id = %s",
            (tenant_id, customer_id),
        )
        return self.cur.fetchone()

    def insert_customer(self, tenant_id: str, row: dict) -> str:
        self.cur.execute(
            """
            INSERT INTO customers
              (tenant_id, id, name, phone, balance, opening_balance, last_visit, points, ice, address, notes)
            VALUES
              (%s, COALESCE(%s, gen_random_uuid()::text), %s, %s, %s, %s, %s, 0, %s, %s, %s)
            RETURNING id
            """,
            (
                tenant_id,
                row.get("id"),
                row["name"],
                row.get("phone"),
                row.get("opening_balance") or 0,
                row.get("opening_balance") or 0,
                row.get("last_visit"),
                row.get("ice"),
                row.get("address"),
                row.get("notes"),
            ),
        )
        return self.cur.fetchone()["id"]

    def update_customer(self, tenant_id: str, customer_id: str, payload: dict) -> bool:
        fields, params = _set_clause(payload, CUSTOMER_EDITABLE)
        if not fields:
            return self.get_customer(tenant_id, customer_id) is not None
        self.cur.execute(
            f"""
            UPDATE customers
            SET {', '.join(fields)}, updated_at = now()
            WHERE tenant_id = %s AND id = %s
            RETURNING id
            """,
            (*params, tenant_id, customer_id),
        )
        return self.cur.fetchone() is not None

    def delete_customer(self, tenant_id: str, customer_id: str) -> bool:
        self.cur.execute(
            "DELETE FROM settlements WHERE tenant_id = %s AND entity_id = %s AND type = 'CUSTOMER_IN'",
            (tenant_id, customer_id),
        )
        self.cur.execute(
            "UPDATE sales SET customer_id = NULL, updated_at = now() WHERE tenant_id = %s AND customer_id = %s",
            (tenant_id, customer_id),
        )
        self.cur.execute(
            "DELETE FROM customers WHERE tenant_id = %s AND id = %s RETURNING id",
            (tenant_id, customer_id),
        )
        return self.cur.fetchone() is not None

    def list_suppliers(self, tenant_id: str) -> list[dict]:
        self.cur.execute(
            f"""
            SELECT {SUPPLIER_COLUMNS}
            FROM suppliers
            WHERE tenant_id = %s
            ORDER BY name
            """,
            (tenant_id,),
        )
        return self.cur.fetchall()

    def get_supplier(self, tenant_id: str, supplier_id: str) -> Optional[dict]:
        self.cur.execute(
            f"SELECT {SUPPLIER_COLUMNS} FROM suppliers WHERE tenant_id = %s AND id = %s",
            (tenant_id, supplier_id),
        )
        return self.cur.fetchone()

    def insert_supplier(self, tenant_id: str, row: dict) -> str:
        self.cur.execute(
            """
            INSERT INTO suppliers
              (tenant_id, id, name, phone, category, debt, opening_debt, ice, address, notes)
            VALUES
              (%s, COALESCE(%s, gen_random_uuid()::text), %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING id
            """,
            (
                tenant_id,
                row.get("id"),
                row["name"],
                row.get("phone"),
                row.get("category") or "General",
                row.get("opening_debt") or 0,
                row.get("opening_debt") or 0,
                row.get("ice"),
                row.get("address"),
                row.get("notes"),
            ),
        )
        return self.cur.fetchone()["id"]

    def update_supplier(self, tenant_id: str, supplier_id: str, payload: dict) -> bool:
        fields, params = _set_clause(payload, SUPPLIER_EDITABLE)
        if not fields:
            return self.get_supplier(tenant_id, supplier_id) is not None
        self.cur.execute(
            f"""
            UPDATE suppliers
            SET {', '.join(fields)}, updated_at = now()
            WHERE tenant_id = %s AND id = %s
            RETURNING id
            """,
            (*params, tenant_id, supplier_id),
        )
        return self.cur.fetchone() is not None

    def delete_supplier(self, tenant_id: str, supplier_id: str) -> bool:
        self.cur.execute(
            "DELETE FROM settlements WHERE tenant_id = %s AND entity_id = %s AND type = 'SUPPLIER_OUT'",
            (tenant_id, supplier_id),
        )
        self.cur.execute(
            """
            UPDATE purchases
            SET supplier_id = NULL, debt_posted = false, updated_at = now()
            WHERE tenant_id = %s AND supplier_id = %s
            """,
            (tenant_id, supplier_id),
        )
        self.cur.execute(
            "DELETE FROM suppliers WHERE tenant_id = %s AND id = %s RETURNING id",
            (tenant_id, supplier_id),
        )
        return self.cur.fetchone() is not None

    # -- settlements ------------------------------------------------------

    def insert_settlement(self, tenant_id: str, row: dict) -> bool:
        """
        Returns False when a settlement with this id already exists (dedup key).
        """
        self.cur.execute(
            """
            INSERT INTO settlements
              (tenant_id, id, entity_id, entity_name, type, amount, settlement_date, method, note, sale_id)
            VALUES
              (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (tenant_id, id) DO NOTHING
            RETURNING id
            """,
            (
                tenant_id,
                row["id"],
                row["entity_id"],
                row.get("entity_name") or "",
                row["type"],
                row["amount"],
                row["settlement_date"],
                row["method"],
                row.get("note"),
                row.get("sale_id"),
            ),
        )
        return self.cur.fetchone() is not None

    def get_settlement(self, tenant_id: str, settlement_id: str, for_update: bool = False) -> Optional[dict]:
        sql = f"SELECT {SETTLEMENT_COLUMNS} FROM settlements WHERE tenant_id = %s AND id = %s"
        if for_update:
            sql += " FOR UPDATE"
        self.cur.execute(sql, (tenant_id, settlement_id))
        return self.cur.fetchone()

    def update_settlement(self, tenant_id: str, settlement_id: str, amount: Decimal, method: str, note: Optional[str], settlement_date: datetime):
        self.cur.execute(
            """
            UPDATE settlements
            SET amount = %s, method = %s, note = %s, settlement_date = %s
            WHERE tenant_id = %s AND id = %s
            """,
            (amount, method, note, settlement_date, tenant_id, settlement_id),
        )

    def delete_settlement_row(self, tenant_id: str, settlement_id: str):
        self.cur.execute(
            "DELETE FROM settlements WHERE tenant_id = %s AND id = %s",
            (tenant_id, settlement_id),
        )

    def list_settlements(self, tenant_id: str, entity_id: str, settlement_type: Optional[str] = None) -> list[dict]:
        sql = f"SELECT {SETTLEMENT_COLUMNS} FROM settlements WHERE tenant_id = %s AND entity_id = %s"
        params: list = [tenant_id, entity_id]
        if settlement_type:
            sql += " AND type = %s"
            params.append(settlement_type)
        sql += " ORDER BY settlement_date DESC, created_at DESC"
        self.cur.execute(sql, params)
        return self.cur.fetchall()

    def list_sale_settlements(self, tenant_id: str, sale_id: str) -> list[dict]:
        self.cur.execute(
            f"""
            SELECT {SETTLEMENT_COLUMNS}
            FROM settlements
            WHERE tenant_id = %s AND sale_id = %s
            ORDER BY settlement_date DESC
            """,
            (tenant_id, sale_id),
        )
        return self.cur.fetchall()

    # -- sales ------------------------------------------------------------

    def insert_sale(self, tenant_id: str, row: dict) -> bool:
        self.cur.execute(
            """
            INSERT INTO sales
              (tenant_id, id, sale_date, items, total, advance, payment_method, customer_id, is_paid, points_awarded)
            VALUES
              (%s, %s, %s, %s::jsonb, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (tenant_id, id) DO NOTHING
            RETURNING id
            """,
            (
                tenant_id,
                row["id"],
                row["sale_date"],
                json.dumps(row["items"], default=str),
                row["total"],
                row["advance"],
                row["payment_method"],
                row.get("customer_id"),
                row["is_paid"],
                row.get("points_awarded") or 0,
            ),
        )
        return self.cur.fetchone() is not None

    def get_sale(self, tenant_id: str, sale_id: str, for_update: bool = False) -> Optional[dict]:
        sql = f"SELECT {SALE_COLUMNS} FROM sales WHERE tenant_id = %s AND id = %s"
        if for_update:
            sql += " FOR UPDATE"
        self.cur.execute(sql, (tenant_id, sale_id))
        return self.cur.fetchone()

    def update_sale(self, tenant_id: str, sale_id: str, payload: dict):
        fields, params = _set_clause(payload, SALE_EDITABLE)
        if not fields:
            return
        self.cur.execute(
            f"""
            UPDATE sales
            SET {', '.join(fields)}, updated_at = now()
            WHERE tenant_id = %s AND id = %s
            """,
            (*params, tenant_id, sale_id),
        )

    def delete_sale_row(self, tenant_id: str, sale_id: str):
        self.cur.execute("DELETE FROM sales WHERE tenant_id = %s AND id = %s", (tenant_id, sale_id))

    def list_sales(self, tenant_id: str, customer_id: Optional[str] = None, unpaid_only: bool = False, limit: int = 500) -> list[dict]:
        sql = f"SELECT {SALE_COLUMNS} FROM sales WHERE tenant_id = %s"
        params: list = [tenant_id]
        if customer_id:
            sql += " AND customer_id = %s"
            params.append(customer_id)
        if unpaid_only:
            sql += " AND is_paid = false"
        sql += " ORDER BY sale_date DESC LIMIT %s"
        params.append(limit)
        self.cur.execute(sql, params)
        return self.cur.fetchall()

    # -- purchases --------------------------------------------------------

    def insert_purchase(self, tenant_id: str, row: dict) -> bool:
        self.cur.execute(
            """
            INSERT INTO purchases
              (tenant_id, id, supplier_id, purchase_date, items, total, debt_posted)
            VALUES
              (%s, %s, %s, %s, %s::jsonb, %s, %s)
            ON CONFLICT (tenant_id, id) DO NOTHING
            RETURNING id
            """,
            (
                tenant_id,
                row["id"],
                row.get("supplier_id"),
                row["purchase_date"],
                json.dumps(row["items"], default=str),
                row["total"],
                row["debt_posted"],
            ),
        )
        return self.cur.fetchone() is not None

    def get_purchase(self, tenant_id: str, purchase_id: str, for_update: bool = False) -> Optional[dict]:
        sql = f"SELECT {PURCHASE_COLUMNS} FROM purchases WHERE tenant_id = %s AND id = %s"
        if for_update:
            sql += " FOR UPDATE"
        self.cur.execute(sql, (tenant_id, purchase_id))
        return self.cur.fetchone()

    def update_purchase(self, tenant_id: str, purchase_id: str, payload: dict):
        fields, params = _set_clause(payload, PURCHASE_EDITABLE)
        if not fields:
            return
        self.cur.execute(
            f"""
            UPDATE purchases
            SET {', '.join(fields)}, updated_at = now()
            WHERE tenant_id = %s AND id = %s
            """,
            (*params, tenant_id, purchase_id),
        )

    def delete_purchase_row(self, tenant_id: str, purchase_id: str):
        self.cur.execute("DELETE FROM purchases WHERE tenant_id = %s AND id = %s", (tenant_id, purchase_id))

    def list_purchases(self, tenant_id: str, supplier_id: Optional[str] = None, limit: int = 500) -> list[dict]:
        sql = f"SELECT {PURCHASE_COLUMNS} FROM purchases WHERE tenant_id = %s"
        params: list = [tenant_id]
        if supplier_id:
            sql += " AND supplier_id = %s"
            params.append(supplier_id)
        sql += " ORDER BY purchase_date DESC LIMIT %s"
        params.append(limit)
        self.cur.execute(sql, params)
        return self.cur.fetchall()

    # -- reports ----------------------------------------------------------

    def ledger_totals(self, tenant_id: str) -> dict:
        self.cur.execute(
            """
            SELECT
              (SELECT COALESCE(SUM(balance) FILTER (WHERE balance > 0), 0) FROM customers WHERE tenant_id = %s) AS customer_credit,
              (SELECT COALESCE(SUM(balance) FILTER (WHERE balance < 0), 0) FROM customers WHERE tenant_id = %s) AS customer_prepaid,
              (SELECT COUNT(*) FILTER (WHERE balance > 0) FROM customers WHERE tenant_id = %s) AS debtors,
              (SELECT COALESCE(SUM(debt), 0) FROM suppliers WHERE tenant_id = %s) AS supplier_debt
            """,
            (tenant_id, tenant_id, tenant_id, tenant_id),
        )
        return self.cur.fetchone() or {}

    def reconciliation_rows(self, tenant_id: str, kind: str, limit: int = 1000) -> list[dict]:
        """
        Per party: stored balance next to the components it should equal
        (opening + posted - settled).
        """
        if kind == "customer":
            self.cur.execute(
                """
                SELECT c.id, c.name, c.balance AS stored, c.opening_balance AS opening,
                       COALESCE(s.posted, 0) AS posted, COALESCE(st.settled, 0) AS settled
                FROM customers c
                LEFT JOIN LATERAL (
                  SELECT SUM(total - advance) AS posted
                  FROM sales
                  WHERE tenant_id = c.tenant_id AND customer_id = c.id AND payment_method = 'KARNE'
                ) s ON true
                LEFT JOIN LATERAL (
                  SELECT SUM(amount) AS settled
                  FROM settlements
                  WHERE tenant_id = c.tenant_id AND entity_id = c.id AND type = 'CUSTOMER_IN'
                ) st ON true
                WHERE c.tenant_id = %s
                ORDER BY c.name
                LIMIT %s
                """,
                (tenant_id, limit),
            )
        elif kind == "supplier":
            self.cur.execute(
                """
                SELECT su.id, su.name, su.debt AS stored, su.opening_debt AS opening,
                       COALESCE(p.posted, 0) AS posted, COALESCE(st.settled, 0) AS settled
                FROM suppliers su
                LEFT JOIN LATERAL (
                  SELECT SUM(total) AS posted
                  FROM purchases
                  WHERE tenant_id = su.tenant_id AND supplier_id = su.id AND debt_posted = true
                ) p ON true
                LEFT JOIN LATERAL (
                  SELECT SUM(amount) AS settled
                  FROM settlements
                  WHERE tenant_id = su.tenant_id AND entity_id = su.id AND type = 'SUPPLIER_OUT'
                ) st ON true
                WHERE su.tenant_id = %s
                ORDER BY su.name
                LIMIT %s
                """,
                (tenant_id, limit),
            )
        else:
            raise ValueError(f"unknown entity kind: {kind}")
        return self.cur.fetchall()
