from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Iterable

from .errors import InvalidAdvance, InvalidAmount

MONEY_Q = Decimal("0.01")
# numeric(14,2) holds strictly less than this.
MAX_AMOUNT = Decimal("1000000000000")
# Drift tolerated when comparing client totals or reconciling stored balances.
EPS = Decimal("0.01")


def d(v) -> Decimal:
    try:
        out = Decimal(str(v if v is not None else 0))
    except InvalidOperation:
        raise InvalidAmount(f"invalid amount: {v!r}")
    if not out.is_finite() or abs(out) >= MAX_AMOUNT:
        raise InvalidAmount(f"amount out of range: {v!r}")
    return out


def q_money(v) -> Decimal:
    return d(v).quantize(MONEY_Q, rounding=ROUND_HALF_UP)


def assert_positive_amount(amount, field: str = "amount") -> Decimal:
    amt = q_money(amount)
    if amt <= 0:
        raise InvalidAmount(f"{field} must be > 0")
    return amt


def assert_advance_within_total(advance, total) -> Decimal:
    adv = q_money(advance)
    if adv < 0:
        raise InvalidAdvance("advance must be >= 0")
    if adv > q_money(total):
        raise InvalidAdvance("advance cannot exceed the sale total")
    return adv


def sale_items_total(items: Iterable[dict]) -> Decimal:
    """
    Sum of quantity * unit_price over sale lines (prices are checkout snapshots).
    """
    total = Decimal("0")
    count = 0
    for it in items:
        count += 1
        qty = d(it.get("quantity"))
        price = d(it.get("unit_price"))
        if qty <= 0:
            raise InvalidAmount("item quantity must be > 0")
        if price < 0:
            raise InvalidAmount("item unit_price must be >= 0")
        total += qty * price
    if count == 0:
        raise InvalidAmount("at least one item is required")
    return q_money(total)


def purchase_items_total(items: Iterable[dict]) -> Decimal:
    total = Decimal("0")
    count = 0
    for it in items:
        count += 1
        qty = d(it.get("quantity"))
        cost = d(it.get("cost"))
        if qty <= 0:
            raise InvalidAmount("item quantity must be > 0")
        if cost < 0:
            raise InvalidAmount("item cost must be >= 0")
        total += qty * cost
    if count == 0:
        raise InvalidAmount("at least one item is required")
    return q_money(total)


def assert_total_matches(claimed, computed: Decimal):
    if claimed is None:
        return
    if abs(q_money(claimed) - computed) > EPS:
        raise InvalidAmount(f"total {q_money(claimed)} does not match items ({computed})")


def sale_remainder(total, advance) -> Decimal:
    return q_money(d(total) - d(advance))
