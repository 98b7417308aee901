#!/usr/bin/env python3
"""
Test Type Catalog Seeding Script

Upserts the default test types (CBC, metabolic panel, lipids, liver,
thyroid and others) into the lab intake database. Safe to run repeatedly:
entries are keyed by code and updated in place.

Usage:
    python scripts/seed_catalog.py
    python scripts/seed_catalog.py --db data/lab_intake.db
    python scripts/seed_catalog.py --list  # Print the catalog after seeding
"""

import argparse
import sys
from pathlib import Path

from lab_intake.config import StorageSettings
from lab_intake.constants import seed_test_types
from lab_intake.core import LabStore, format_reference_range
from lab_intake.utils import LabIntakeError, setup_logging


def main():
    parser = argparse.ArgumentParser(description="Seed the test type catalog")
    parser.add_argument("--db", type=str, help="SQLite database path (default: DATABASE_PATH)")
    parser.add_argument("--list", action="store_true", help="Print the catalog after seeding")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    args = parser.parse_args()

    setup_logging(level="DEBUG" if args.verbose else "INFO")

    db_path = Path(args.db) if args.db else StorageSettings().DATABASE_PATH
    db_path.parent.mkdir(parents=True, exist_ok=True)

    try:
        store = LabStore(db_path)
        count = seed_test_types(store)
    except LabIntakeError as e:
        print(f"ERROR: {e.message}")
        sys.exit(1)

    print(f"Seeded {count} test types into {db_path}")

    if args.list:
        for test_type in store.list_test_types():
            reference = format_reference_range(test_type.min_value, test_type.max_value) or "-"
            print(f"  {test_type.code:<8} {test_type.name:<32} {test_type.unit or '':<10} {reference}")


if __name__ == "__main__":
    main()
