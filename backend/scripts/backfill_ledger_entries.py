#!/usr/bin/env python3
"""
Create the missing ledger entry for every recorded payment.

Safe to run repeatedly: payments that already have an entry are left alone,
and queued ledger_outbox rows are marked done as their entries get posted.

Usage:
    # Count payments missing an entry without writing anything
    python scripts/backfill_ledger_entries.py --dry-run

    # Create the missing entries
    python scripts/backfill_ledger_entries.py
"""

import argparse
import sys
from pathlib import Path

# Add backend to path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

from parish_ledger.core.database import SessionLocal
from parish_ledger.modules.finance.models import LedgerOutbox
from parish_ledger.modules.finance.services import backfill_ledger_entries


def show_pending_outbox(db):
    rows = db.query(LedgerOutbox).filter(LedgerOutbox.status == "pending").order_by(LedgerOutbox.id).all()
    if not rows:
        print("No payments queued in ledger_outbox.")
        return
    print(f"\n{'Txn ID':<8} {'Attempts':<9} Last error")
    print("-" * 80)
    for row in rows:
        print(f"{row.transaction_id:<8} {row.attempts:<9} {(row.last_error or '')[:60]}")
    print()


def main():
    parser = argparse.ArgumentParser(description="Backfill missing ledger entries")
    parser.add_argument("--dry-run", action="store_true", help="Report what would be created")
    args = parser.parse_args()

    db = SessionLocal()
    try:
        show_pending_outbox(db)
        result = backfill_ledger_entries(db, dry_run=args.dry_run)

        print(f"Payments missing a ledger entry: {result['candidates']}")
        if args.dry_run:
            print("Dry run, nothing written.")
            return 0

        print(f"  Created:          {result['created']}")
        print(f"  Already posted:   {result['skipped']}")
        print(f"  Failed:           {result['failed']}")
        print(f"  Outbox resolved:  {result['outbox_resolved']}")
        return 1 if result["failed"] else 0
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
