"""Usage ledger reconciliation.

Lists generations that were served but whose token debit failed, and with
``--resolve`` retries the debit for each of them.

Usage:
  uv run scripts/reconcile_usage.py [--resolve]
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

# Ensure project root is on sys.path so `app` package imports resolve
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from app.core.db.base import get_session
from app.core.db_services import SqlProfileStore


async def main(resolve: bool = False) -> int:
    async for session in get_session():  # get_session is an async generator
        store = SqlProfileStore(session)
        anomalies = await store.list_unresolved_anomalies()

        print("Usage anomalies:")
        if not anomalies:
            print("- None unresolved.")
            return 0

        for a in anomalies:
            print(
                f"  • ID {a.id} | user={a.user_id} | cost={a.cost} | "
                f"at={a.created_at.isoformat()} | reason={a.reason[:100]!r}"
            )

        if not resolve:
            print(f"\n{len(anomalies)} unresolved; rerun with --resolve to charge them.")
            return 0

        failed = 0
        print("\nResolving:")
        for a in anomalies:
            charged = await store.resolve_anomaly(a.id)
            print(f"  - {a.id}: {'charged' if charged else 'still insufficient balance'}")
            if not charged:
                failed += 1
        return 1 if failed else 0
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Reconcile failed usage debits")
    parser.add_argument(
        "--resolve", action="store_true", help="Retry the debit for each anomaly"
    )
    args = parser.parse_args()
    raise SystemExit(asyncio.run(main(resolve=args.resolve)))
