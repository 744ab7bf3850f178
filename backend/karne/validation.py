from __future__ import annotations

from typing import Annotated, Literal

from pydantic import BeforeValidator, StringConstraints


def _to_upper_str(v):
    if v is None:
        return v
    return str(v).strip().upper()


def _to_lower_str(v):
    if v is None:
        return v
    return str(v).strip().lower()


# Canonical codes mirror Postgres checks in `backend/db/migrations/001_init.sql`.
SettlementType = Annotated[Literal["CUSTOMER_IN", "SUPPLIER_OUT"], BeforeValidator(_to_upper_str)]
OpeningBalanceType = Annotated[Literal["credit", "advance"], BeforeValidator(_to_lower_str)]


# Payment and settlement methods are tenant-configurable (`tenant_settings.payment_methods`).
# Keep a tight, safe character set so methods are stable identifiers.
PaymentMethod = Annotated[
    str,
    BeforeValidator(_to_upper_str),
    StringConstraints(min_length=1, max_length=32, pattern=r"^[A-Z0-9][A-Z0-9_-]*$"),
]

KARNE = "KARNE"
CUSTOMER_IN = "CUSTOMER_IN"
SUPPLIER_OUT = "SUPPLIER_OUT"

# settlement type -> (entity kind, sign applied to the entity balance per unit paid)
SETTLEMENT_KINDS = {
    CUSTOMER_IN: ("customer", -1),
    SUPPLIER_OUT: ("supplier", -1),
}
