from dataclasses import dataclass, field

from .config import settings
from .errors import LedgerError
from .validation import KARNE


@dataclass
class LedgerPolicy:
    payment_methods: list[str] = field(default_factory=lambda: list(settings.default_payment_methods))
    points_per_visit: int = settings.loyalty_points_per_visit

    def assert_payment_method(self, method: str):
        if method not in self.payment_methods:
            raise LedgerError(f"Unknown payment method: {method}")


def load_ledger_policy(store, tenant_id: str) -> LedgerPolicy:
    """
    Tenant overrides from `tenant_settings`:
      key='payment_methods' -> {"methods": ["CASH", "CARD", "KARNE", ...]}
      key='loyalty'         -> {"points_per_visit": 10}
    KARNE is always accepted; a tenant cannot switch credit sales off.
    """
    policy = LedgerPolicy()

    pm = store.fetch_setting(tenant_id, "payment_methods")
    if pm:
        methods = [str(m or "").strip().upper() for m in (pm.get("methods") or [])]
        methods = [m for m in methods if m]
        if methods:
            policy.payment_methods = methods
    if KARNE not in policy.payment_methods:
        policy.payment_methods.append(KARNE)

    loyalty = store.fetch_setting(tenant_id, "loyalty")
    if loyalty and loyalty.get("points_per_visit") is not None:
        try:
            policy.points_per_visit = max(int(loyalty.get("points_per_visit")), 0)
        except (TypeError, ValueError):
            policy.points_per_visit = settings.loyalty_points_per_visit
    return policy
