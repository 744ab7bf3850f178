#!/usr/bin/env python3
"""
Karné ledger integrity check.

Recomputes every customer balance and supplier debt from its rows
(opening + posted - settled) and reports parties whose stored value drifted.
Read-only; safe to run against production.
"""

from __future__ import annotations

import argparse
import os
import sys


# Allow running from repo root without installing as a package.
REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)

from backend.karne.db import close_pools, ledger_session  # noqa: E402
from backend.karne.reconciliation import reconcile  # noqa: E402


def _parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser()
    p.add_argument("--tenant-id", default=os.environ.get("TENANT_ID") or "", help="Tenant UUID (or env TENANT_ID)")
    p.add_argument("--limit", type=int, default=1000, help="Parties per kind (default: 1000)")
    return p.parse_args()


def main() -> int:
    args = _parse_args()
    tenant_id = (args.tenant_id or "").strip()
    if not tenant_id:
        print("Missing --tenant-id (or env TENANT_ID).", file=sys.stderr)
        return 2
    limit = max(1, min(int(args.limit or 1000), 5000))

    try:
        with ledger_session(tenant_id) as store:
            findings = reconcile(store, tenant_id, limit=limit)
    finally:
        close_pools()

    if not findings:
        print("OK: every balance matches its sales, purchases and settlements.")
        return 0

    print(f"Found {len(findings)} issue(s):")
    for f in findings[:200]:
        print(f"- {f.kind}: {f.ref} ({f.id}) -> {f.message}")
    if len(findings) > 200:
        print(f"... plus {len(findings) - 200} more")
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
