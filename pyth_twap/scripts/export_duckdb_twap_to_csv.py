#!/usr/bin/env python3
from __future__ import annotations

"""
Export stored TWAP snapshots from a DuckDB file to CSV.

Usage examples:
  python -m pyth_twap.scripts.export_duckdb_twap_to_csv \
    --duckdb data/pyth_twap.duckdb \
    --symbol Crypto.BTC/USD \
    --out data/btc_usd_twap.csv --overwrite

Notes:
  - Outputs one row per stored run, ascending by computed_at (UTC-naive timestamps)
  - By default prevents overwriting unless --overwrite is passed
"""

import argparse
import sys
from pathlib import Path
from typing import Optional

# Add project root to path if running as script
if __name__ == "__main__":
    project_root = Path(__file__).resolve().parent.parent.parent
    if str(project_root) not in sys.path:
        sys.path.insert(0, str(project_root))

from pyth_twap.pyth.db import SNAPSHOT_COLUMNS, ensure_table, read_snapshots


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Export TWAP snapshots from DuckDB to CSV")
    parser.add_argument("--duckdb", type=Path, required=True, help="Path to DuckDB file")
    parser.add_argument("--symbol", default=None, help="Only export rows for this symbol")
    parser.add_argument("--last", type=int, default=None, help="Only export the most recent N rows")
    parser.add_argument("--out", type=Path, default=Path("data") / "pyth_twap_snapshots.csv", help="Output CSV path")
    parser.add_argument("--overwrite", action="store_true", help="Allow overwriting existing output file")
    args = parser.parse_args(argv)

    out_path = args.out
    out_path.parent.mkdir(parents=True, exist_ok=True)
    if out_path.exists() and not args.overwrite:
        print(f"ERROR: Output exists: {out_path}. Pass --overwrite to replace.")
        return 2

    ensure_table(args.duckdb)
    df = read_snapshots(args.duckdb, symbol=args.symbol, n=args.last)
    if df.empty:
        print("WARN: No rows fetched from DuckDB; writing empty CSV with header.")
    df = df[SNAPSHOT_COLUMNS].copy()

    df.to_csv(out_path, index=False)
    if not df.empty:
        print(f"Wrote {len(df):,} rows to {out_path}")
        print(f"Range: {df['computed_at'].iloc[0]} .. {df['computed_at'].iloc[-1]}")
    else:
        print(f"Wrote empty CSV to {out_path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
