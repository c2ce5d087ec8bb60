#!/usr/bin/env python
"""Script to import legality reference rows from a CSV file into Supabase."""

import sys
from pathlib import Path

import pandas as pd

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from buildpass.core.config import validate_settings
from buildpass.db.client import get_supabase_client
from buildpass.db.repository import LegalityRepository
from buildpass.services.reference_import import import_rows


def main():
    if len(sys.argv) < 2:
        print("Usage: import_reference_csv.py <path/to/references.csv>")
        sys.exit(1)

    csv_path = Path(sys.argv[1])
    if not csv_path.exists():
        print(f"Error: CSV file not found at {csv_path}")
        sys.exit(1)

    validate_settings()

    print(f"Loading reference rows from {csv_path}...")
    df = pd.read_csv(csv_path, dtype=str)
    df = df.fillna("")
    rows = [row.to_dict() for _, row in df.iterrows()]

    repo = LegalityRepository(get_supabase_client())
    report = import_rows(rows, repo)
    print(
        f"Upserted {report.upserted} reference entries "
        f"({report.skipped} rows skipped: missing brand, part, category or approval type)"
    )


if __name__ == "__main__":
    main()
