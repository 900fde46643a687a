from __future__ import annotations

import argparse
import sys
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional

import pandas as pd

from .aggregate import OhlcAggregator, TwapResult, scale_price
from .db import append_snapshot_if_absent, ensure_table
from .errors import InsufficientDataError, NotFoundError, SymbolNotFoundError
from .history import HistoryStats, iter_price_updates, updates_to_dataframe, window_start
from .persistence import PersistConfig, now_utc_run_id, write_updates_snapshot
from .records import PriceUpdate
from .resolver import DEFAULT_MAPPING_KEY, PriceAccount, get_price_account
from .rpc import CLUSTER_URLS, DEFAULT_CLUSTER, MAX_SIGNATURE_PAGE, SolanaRpcClient, cluster_url
from .validation import validate_result


MIN_INTERVAL_MINUTES = 1
MAX_INTERVAL_MINUTES = 1440
SYMBOLS_URL = "https://pyth.network/markets/"


@dataclass
class RunConfig:
    symbol: str
    interval: timedelta
    mapping_key: str = DEFAULT_MAPPING_KEY
    rpc_url: str = CLUSTER_URLS[DEFAULT_CLUSTER]
    retries: int = 0
    page_limit: int = MAX_SIGNATURE_PAGE
    max_pages: Optional[int] = None
    duckdb_path: Optional[Path] = None
    persist_dir: Optional[Path] = None
    dataset_slug: str = "pyth_updates"
    debug: bool = False

    @property
    def interval_minutes(self) -> int:
        return int(self.interval.total_seconds() // 60)


def _debug_skip(address: str, err: Exception) -> None:
    print(f"[DEBUG] skipping product {address}: {err}")


def _fmt(value: float, exponent: int) -> str:
    return f"${value:.{max(-exponent, 0)}f}"


def _print_summary(cfg: RunConfig, account: PriceAccount, result: TwapResult) -> None:
    e = account.exponent
    print("")
    print(f"TWAP Interval: {cfg.interval_minutes} minutes")
    print(f"Open: {_fmt(result.open, e)} ({result.open_slot})")
    print(f"High: {_fmt(result.high, e)} ({result.high_slot})")
    print(f"Low: {_fmt(result.low, e)} ({result.low_slot})")
    print(f"Close: {_fmt(result.close, e)} ({result.close_slot})")
    print(f"TWAP Price: {_fmt(result.twap, e)}")
    print(f"On-chain TWAP (reference): {_fmt(scale_price(account.record.twap, e), e)}")


def run_once(cfg: RunConfig, client=None) -> int:
    """Resolve the feed, replay the window and print the aggregate.

    Raises NotFoundError when the symbol or its price account cannot be
    resolved and InsufficientDataError when the window holds no usable update.
    """
    client = client if client is not None else SolanaRpcClient(cfg.rpc_url, retries=cfg.retries)

    print(f"{'symbol':.<20} {cfg.symbol}")
    print(f"{'TWAP interval':.<20} {cfg.interval_minutes} minute(s)")
    print(f"{'Solana RPC Url':.<20} {cfg.rpc_url}")

    account = get_price_account(
        client, cfg.mapping_key, cfg.symbol, on_skip=_debug_skip if cfg.debug else None
    )
    print(f"{'product_account':.<20} {account.product_address}")
    print(f"{'price_account':.<20} {account.address}")

    now = datetime.now(timezone.utc)
    start = window_start(cfg.interval, now)
    if cfg.debug:
        print(f"[DEBUG] replaying transactions from {start.isoformat()} to {now.isoformat()}")

    stats = HistoryStats()
    agg = OhlcAggregator()
    kept: List[PriceUpdate] = []
    for update in iter_price_updates(
        client, account.address, start, stats=stats, page_limit=cfg.page_limit, max_pages=cfg.max_pages
    ):
        if cfg.debug:
            print(f"[DEBUG] {update.publish_slot}: p: {update.price}, c: {update.confidence}")
        agg.add(update)
        if cfg.persist_dir is not None:
            kept.append(update)

    if cfg.debug:
        print(f"[DEBUG] {stats.summary()}")

    if stats.truncated:
        raise InsufficientDataError(
            f"paging stopped after {stats.pages} page(s) (--max-pages) before reaching {start.isoformat()}; "
            f"the {cfg.interval_minutes} minute window for {cfg.symbol!r} is not fully covered"
        )

    try:
        result = agg.result(account.exponent)
    except InsufficientDataError as e:
        raise InsufficientDataError(f"{e} for {cfg.symbol!r} ({stats.summary()})") from None

    raw_path = None
    if cfg.persist_dir is not None:
        persist_cfg = PersistConfig(cfg.persist_dir, cfg.dataset_slug)
        raw_path = write_updates_snapshot(persist_cfg, now_utc_run_id(), cfg.symbol, updates_to_dataframe(kept))

    _print_summary(cfg, account, result)

    v = validate_result(result)
    stored = 0
    if not v.ok:
        print(f"[WARN] validation failed: {v.reason}")
    elif cfg.duckdb_path is not None:
        ensure_table(cfg.duckdb_path)
        computed_at = pd.Timestamp(now).tz_convert(None)
        append_snapshot_if_absent(
            cfg.duckdb_path, computed_at, cfg.symbol, account.address, cfg.interval_minutes, result
        )
        stored = 1

    print(
        f"accepted={stats.accepted} signatures={stats.signatures} pages={stats.pages} "
        f"stored={stored} raw={raw_path}"
    )
    return 0 if v.ok else 1


def parse_args(argv: Optional[list[str]] = None) -> RunConfig:
    p = argparse.ArgumentParser(description="Compute a TWAP for a Pyth price feed from on-chain price updates")
    p.add_argument("symbol", help="Product symbol to calculate the TWAP for (e.g. Crypto.BTC/USD)")
    window = p.add_mutually_exclusive_group()
    window.add_argument(
        "-i", "--interval", type=int, default=60, help="Interval to calculate the TWAP over, in minutes (1-1440)"
    )
    window.add_argument("--hours", type=int, default=None, help="Interval in hours (1-24), instead of --interval")
    p.add_argument("-p", "--pyth", default=DEFAULT_MAPPING_KEY, help="Public key of the pyth mapping account")
    p.add_argument("--cluster", choices=sorted(CLUSTER_URLS), default=DEFAULT_CLUSTER, help="Solana cluster")
    p.add_argument("-l", "--local", action="store_true", help="Use a local validator (http://localhost:8899)")
    p.add_argument("--rpc-url", default=None, help="Explicit RPC endpoint; overrides --cluster/--local")
    p.add_argument("--retries", type=int, default=0, help="Retries per RPC call on transport errors")
    p.add_argument("--page-limit", type=int, default=MAX_SIGNATURE_PAGE, help="Signatures requested per page")
    p.add_argument("--max-pages", type=int, default=None, help="Stop paging after this many pages")
    p.add_argument("--duckdb", type=Path, default=None, help="Append the TWAP snapshot to this DuckDB file")
    p.add_argument("--persist-dir", type=Path, default=None, help="Directory root for accepted-update CSVs")
    p.add_argument("--dataset", type=str, default="pyth_updates", help="Dataset slug directory for CSVs")
    p.add_argument("-d", "--debug", action="store_true", help="Print debug information verbosely")
    args = p.parse_args(argv)

    minutes = args.hours * 60 if args.hours is not None else args.interval
    if not MIN_INTERVAL_MINUTES <= minutes <= MAX_INTERVAL_MINUTES:
        p.error(f"interval should be between {MIN_INTERVAL_MINUTES} and {MAX_INTERVAL_MINUTES} minutes (1 day)")
    if args.retries < 0:
        p.error("--retries must be >= 0")
    if not 1 <= args.page_limit <= MAX_SIGNATURE_PAGE:
        p.error(f"--page-limit must be between 1 and {MAX_SIGNATURE_PAGE}")

    rpc_url = args.rpc_url or cluster_url("local" if args.local else args.cluster)

    return RunConfig(
        symbol=args.symbol,
        interval=timedelta(minutes=minutes),
        mapping_key=args.pyth,
        rpc_url=rpc_url,
        retries=args.retries,
        page_limit=args.page_limit,
        max_pages=args.max_pages,
        duckdb_path=args.duckdb,
        persist_dir=args.persist_dir,
        dataset_slug=args.dataset,
        debug=args.debug,
    )


def main(argv: Optional[list[str]] = None) -> int:
    cfg = parse_args(argv)
    try:
        return run_once(cfg)
    except NotFoundError as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        if isinstance(e, SymbolNotFoundError):
            print(f"[INFO] See {SYMBOLS_URL} for a list of symbols", file=sys.stderr)
        if cfg.debug:
            raise
        return 2
    except InsufficientDataError as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        if cfg.debug:
            raise
        return 2
    except Exception as e:  # surface clear error message
        print(f"[ERROR] {e}", file=sys.stderr)
        if cfg.debug:
            raise
        return 3


if __name__ == "__main__":
    raise SystemExit(main())
