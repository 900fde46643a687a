#!/usr/bin/env python3
from __future__ import annotations

"""
List every product reachable from a Pyth mapping account.

Walks the mapping chain, decodes each product's reference attributes and
prints symbol, product account and price account. Handy for finding the
exact symbol string to pass to the TWAP CLI.

Example:
  python -m pyth_twap.scripts.list_pyth_symbols --cluster devnet --filter BTC
  python -m pyth_twap.scripts.list_pyth_symbols --out data/pyth_products.csv
"""

import argparse
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

# Add project root to path if running as script
if __name__ == "__main__":
    project_root = Path(__file__).resolve().parent.parent.parent
    if str(project_root) not in sys.path:
        sys.path.insert(0, str(project_root))

import pandas as pd

from pyth_twap.pyth.errors import DecodeError
from pyth_twap.pyth.resolver import DEFAULT_MAPPING_KEY, iter_products
from pyth_twap.pyth.rpc import CLUSTER_URLS, DEFAULT_CLUSTER, SolanaRpcClient, cluster_url


PRODUCT_COLUMNS = ["symbol", "asset_type", "product_account", "price_account"]


@dataclass
class RunConfig:
    mapping_key: str = DEFAULT_MAPPING_KEY
    rpc_url: str = CLUSTER_URLS[DEFAULT_CLUSTER]
    contains: Optional[str] = None
    out: Optional[Path] = None
    debug: bool = False


def collect_products(client, mapping_key: str, debug: bool = False) -> pd.DataFrame:
    skipped = 0

    def on_skip(address: str, err: Exception) -> None:
        nonlocal skipped
        skipped += 1
        if debug:
            print(f"[DEBUG] skipping product {address}: {err}")

    rows = []
    for address, product in iter_products(client, mapping_key, on_skip=on_skip):
        try:
            attrs = product.attributes
        except DecodeError as e:
            on_skip(address, e)
            continue
        rows.append(
            {
                "symbol": attrs.get("symbol", ""),
                "asset_type": attrs.get("asset_type", ""),
                "product_account": address,
                "price_account": product.price_account or "",
            }
        )
    if debug:
        print(f"[INFO] products={len(rows)} skipped={skipped}")
    return pd.DataFrame(rows, columns=PRODUCT_COLUMNS)


def run_once(cfg: RunConfig, client=None) -> int:
    client = client if client is not None else SolanaRpcClient(cfg.rpc_url)
    df = collect_products(client, cfg.mapping_key, debug=cfg.debug)
    if cfg.contains:
        df = df[df["symbol"].str.contains(cfg.contains, regex=False)].reset_index(drop=True)
    if df.empty:
        print("WARN: No matching products found.")
        return 1

    if cfg.out is not None:
        cfg.out.parent.mkdir(parents=True, exist_ok=True)
        df.to_csv(cfg.out, index=False)
        print(f"Wrote {len(df):,} products to {cfg.out}")
    else:
        for _, row in df.iterrows():
            print(f"{row['symbol']:.<32} {row['price_account']}")
    return 0


def parse_args(argv: Optional[list[str]] = None) -> RunConfig:
    p = argparse.ArgumentParser(description="List products in a Pyth mapping chain")
    p.add_argument("-p", "--pyth", default=DEFAULT_MAPPING_KEY, help="Public key of the pyth mapping account")
    p.add_argument("--cluster", choices=sorted(CLUSTER_URLS), default=DEFAULT_CLUSTER)
    p.add_argument("-l", "--local", action="store_true", help="Use a local validator")
    p.add_argument("--rpc-url", default=None, help="Explicit RPC endpoint")
    p.add_argument("--filter", default=None, help="Only list symbols containing this substring")
    p.add_argument("--out", type=Path, default=None, help="Write the listing to a CSV instead of stdout")
    p.add_argument("--debug", action="store_true")
    args = p.parse_args(argv)
    return RunConfig(
        mapping_key=args.pyth,
        rpc_url=args.rpc_url or cluster_url("local" if args.local else args.cluster),
        contains=args.filter,
        out=args.out,
        debug=bool(args.debug),
    )


def main(argv: Optional[list[str]] = None) -> int:
    cfg = parse_args(argv)
    try:
        return run_once(cfg)
    except Exception as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        if cfg.debug:
            raise
        return 3


if __name__ == "__main__":
    raise SystemExit(main())
