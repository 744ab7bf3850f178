"""
Read-only balance reconciliation.

Balances are maintained procedurally (every operation applies its own delta),
so this recomputes what each one should be from the rows and reports drift:

    customer.balance == opening + sum(KARNE sale remainders) - sum(CUSTOMER_IN settlements)
    supplier.debt    == opening + sum(posted purchase totals) - sum(SUPPLIER_OUT settlements)
"""

from dataclasses import asdict, dataclass

from .amounts import EPS, q_money


@dataclass
class Finding:
    kind: str
    id: str
    ref: str
    message: str
    stored: str
    expected: str


def findings_for_rows(kind: str, rows: list[dict]) -> list[Finding]:
    findings: list[Finding] = []
    for r in rows:
        stored = q_money(r.get("stored"))
        expected = q_money(r.get("opening")) + q_money(r.get("posted")) - q_money(r.get("settled"))
        delta = stored - expected
        if abs(delta) > EPS:
            findings.append(
                Finding(
                    kind=f"{kind}_balance_drift",
                    id=str(r["id"]),
                    ref=str(r.get("name") or r["id"]),
                    message=f"stored={stored} expected={expected} delta={delta}",
                    stored=str(stored),
                    expected=str(expected),
                )
            )
    return findings


def reconcile(store, tenant_id: str, limit: int = 1000) -> list[Finding]:
    findings = findings_for_rows("customer", store.reconciliation_rows(tenant_id, "customer", limit))
    findings.extend(findings_for_rows("supplier", store.reconciliation_rows(tenant_id, "supplier", limit)))
    return findings


def findings_as_dicts(findings: list[Finding]) -> list[dict]:
    return [asdict(f) for f in findings]
