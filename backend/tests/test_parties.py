from decimal import Decimal

import pytest

from backend.karne.errors import InvalidAmount, NotFound
from backend.karne.parties import (
    customer_statement,
    delete_customer,
    delete_supplier,
    ledger_summary,
    register_customer,
    register_supplier,
    update_customer,
    update_supplier,
)
from backend.karne.purchase_posting import post_purchase_debt
from backend.karne.sale_posting import post_sale_debt
from backend.karne.settlements import record_settlement
from backend.karne.tenant_policy import LedgerPolicy

TENANT = "11111111-1111-1111-1111-111111111111"
POLICY = LedgerPolicy(payment_methods=["CASH", "KARNE"], points_per_visit=0)


def test_register_customer_with_opening_credit(store):
    res = register_customer(store, TENANT, {"name": " Amina ", "opening_balance": "150"})
    row = store.get_customer(TENANT, res["id"])
    assert row["name"] == "Amina"
    assert row["balance"] == Decimal("150.00")
    assert row["opening_balance"] == Decimal("150.00")
    assert row["notes"].startswith("Opening balance: 150.00.")


def test_register_customer_with_opening_advance(store):
    res = register_customer(store, TENANT, {"name": "Omar", "opening_balance": "80", "opening_type": "advance"})
    assert res["balance"] == Decimal("-80.00")


def test_register_rejects_blank_name_and_negative_opening(store):
    with pytest.raises(InvalidAmount):
        register_customer(store, TENANT, {"name": "  "})
    with pytest.raises(InvalidAmount):
        register_customer(store, TENANT, {"name": "x", "opening_balance": "-1"})
    with pytest.raises(InvalidAmount):
        register_supplier(store, TENANT, {"name": "x", "opening_debt": "-1"})


def test_register_supplier_defaults_category(store):
    res = register_supplier(store, TENANT, {"name": "Centrale Laitière", "opening_debt": "1000"})
    row = store.get_supplier(TENANT, res["id"])
    assert row["category"] == "General"
    assert row["debt"] == Decimal("1000.00")


def test_descriptive_update_ignores_balance(store, customer):
    store.apply_balance_delta(TENANT, "customer", "c1", Decimal("90"))
    update_customer(store, TENANT, "c1", {"phone": "0600000000", "balance": "0"})
    row = store.get_customer(TENANT, "c1")
    assert row["phone"] == "0600000000"
    assert row["balance"] == Decimal("90")
    with pytest.raises(NotFound):
        update_customer(store, TENANT, "ghost", {"phone": "1"})
    with pytest.raises(InvalidAmount):
        update_supplier(store, TENANT, "s1", {"name": ""})


def test_delete_customer_drops_its_settlements(store, customer):
    record_settlement(store, TENANT, "c1", "CUSTOMER_IN", "10")
    delete_customer(store, TENANT, "c1")
    assert store.settlements == {}
    with pytest.raises(NotFound):
        delete_customer(store, TENANT, "c1")


def test_delete_supplier_unposts_purchases(store, supplier):
    post_purchase_debt(store, TENANT, {"id": "p-1", "supplier_id": "s1", "items": [{"quantity": 1, "cost": "5"}]})
    delete_supplier(store, TENANT, "s1")
    purchase = store.get_purchase(TENANT, "p-1")
    assert purchase["supplier_id"] is None
    assert purchase["debt_posted"] is False


def test_statement_lists_unpaid_sales_with_remainder(store, customer):
    post_sale_debt(
        store,
        TENANT,
        {"id": "s-1", "items": [{"quantity": 1, "unit_price": "100"}], "advance": "30", "payment_method": "KARNE", "customer_id": "c1"},
        policy=POLICY,
    )
    record_settlement(store, TENANT, "c1", "CUSTOMER_IN", "20")
    st = customer_statement(store, TENANT, "c1")
    assert st["customer"]["balance"] == Decimal("50.00")
    assert [(s["id"], s["remainder"]) for s in st["unpaid_sales"]] == [("s-1", Decimal("70.00"))]
    assert len(st["settlements"]) == 1
    with pytest.raises(NotFound):
        customer_statement(store, TENANT, "ghost")


def test_ledger_summary(store):
    register_customer(store, TENANT, {"name": "a", "opening_balance": "100"})
    register_customer(store, TENANT, {"name": "b", "opening_balance": "40", "opening_type": "advance"})
    register_supplier(store, TENANT, {"name": "s", "opening_debt": "70"})
    assert ledger_summary(store, TENANT) == {
        "customer_credit": Decimal("100.00"),
        "customer_prepaid": Decimal("-40.00"),
        "debtors": 1,
        "supplier_debt": Decimal("70.00"),
    }
