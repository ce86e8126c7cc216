#!/usr/bin/env python3
"""
Seed income and expense GL categories.

Existing GL codes are never modified, so this can be run on every deploy.

Run with: python scripts/seed_categories.py
"""

import argparse
import sys
from pathlib import Path

# Add backend to path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

from parish_ledger.core.database import SessionLocal
from parish_ledger.modules.finance.gl_mapping import EXPENSE_CATEGORIES, INCOME_CATEGORIES
from parish_ledger.modules.finance.services import seed_categories


def main():
    parser = argparse.ArgumentParser(description="Seed GL categories")
    parser.add_argument("--list", action="store_true", help="Print the categories without writing")
    args = parser.parse_args()

    if args.list:
        print("Income categories:")
        for row in INCOME_CATEGORIES:
            print(f"  {row['gl_code']:<8} {row['name']:<20} {row['payment_type_mapping'] or '-'}")
        print("Expense categories:")
        for row in EXPENSE_CATEGORIES:
            print(f"  {row['gl_code']:<8} {row['name']}")
        return

    db = SessionLocal()
    try:
        created = seed_categories(db, INCOME_CATEGORIES, EXPENSE_CATEGORIES)
        print(f"Seeded {created['income']} income and {created['expense']} expense categories.")
    finally:
        db.close()


if __name__ == "__main__":
    main()
