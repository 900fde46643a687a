#!/usr/bin/env python3
from __future__ import annotations

import io
import time
from contextlib import redirect_stdout
from datetime import timedelta

import pytest

from _fixtures import FakeRpcClient, addr, build_feed, tmp_dir

import pyth_twap.pyth.cli as cli_mod
from pyth_twap.pyth.cli import RunConfig, parse_args, run_once
from pyth_twap.pyth.cli import main as cli_main
from pyth_twap.pyth.db import ensure_table, read_snapshots
from pyth_twap.pyth.errors import InsufficientDataError
from pyth_twap.pyth.records import PriceStatus


SYMBOL = "Crypto.ETH/USD"


def _feed(with_updates: bool = True):
    client = FakeRpcClient()
    root, _ = build_feed(client, [[("Crypto.BTC/USD", addr(600)), (SYMBOL, addr(601))]], exponent=-2, twap=9600)
    if with_updates:
        now = int(time.time())
        client.add_update("sig4", now - 10, 9000, 12)
        client.add_update("sig3", now - 20, 9500, 11)
        client.add_update("sigHalted", now - 25, 1, 99, status=PriceStatus.HALTED)
        client.add_update("sig1", now - 30, 10000, 10)
        client.add_update("sigOld", now - 7200, 1, 5)
    return client, root


def _fresh_db(name: str):
    db_path = tmp_dir("cli") / name
    if db_path.exists():
        db_path.unlink()
    return db_path


def _with_client(client, fn):
    """Run ``fn`` with the CLI's RPC client constructor returning ``client``."""
    original = cli_mod.SolanaRpcClient
    cli_mod.SolanaRpcClient = lambda url, retries=0: client  # type: ignore
    try:
        return fn()
    finally:
        cli_mod.SolanaRpcClient = original


def test_run_once_prints_and_stores() -> None:
    client, root = _feed()
    db_path = _fresh_db("twap_cli.duckdb")
    cfg = RunConfig(
        symbol=SYMBOL,
        interval=timedelta(minutes=60),
        mapping_key=root,
        duckdb_path=db_path,
        persist_dir=tmp_dir("cli_raw"),
        dataset_slug="cli_test",
    )
    buf = io.StringIO()
    with redirect_stdout(buf):
        assert run_once(cfg, client=client) == 0

    out = buf.getvalue()
    assert f"price_account....... {addr(601)}" in out
    assert "Open: $100.00 (10)" in out
    assert "Close: $90.00 (12)" in out
    assert "TWAP Price: $95.00" in out
    assert "On-chain TWAP (reference): $96.00" in out
    assert "accepted=3" in out
    # the window ends before the old signature, so it is never fetched
    assert "sigOld" not in client.calls_of("getTransaction")

    rows = read_snapshots(db_path, symbol=SYMBOL)
    assert len(rows) == 1
    assert rows["twap"].iloc[0] == pytest.approx(95.0)
    assert int(rows["updates"].iloc[0]) == 3
    assert rows["price_account"].iloc[0] == addr(601)

    csvs = list((tmp_dir("cli_raw") / "cli_test").glob("*_crypto_eth_usd_updates.csv"))
    assert csvs


def test_run_once_without_updates_is_insufficient() -> None:
    client, root = _feed(with_updates=False)
    cfg = RunConfig(symbol=SYMBOL, interval=timedelta(minutes=5), mapping_key=root)
    with redirect_stdout(io.StringIO()):
        with pytest.raises(InsufficientDataError):
            run_once(cfg, client=client)


def test_page_budget_short_of_window_stores_nothing() -> None:
    client, root = _feed(with_updates=False)
    now = int(time.time())
    for i in range(6):
        client.add_update(f"s{i}", now - 300 * i - 10, 10000 + i, 50 - i)
    db_path = _fresh_db("twap_cli_truncated.duckdb")
    cfg = RunConfig(
        symbol=SYMBOL,
        interval=timedelta(minutes=60),
        mapping_key=root,
        page_limit=2,
        max_pages=1,
        duckdb_path=db_path,
    )
    buf = io.StringIO()
    with redirect_stdout(buf):
        with pytest.raises(InsufficientDataError) as exc:
            run_once(cfg, client=client)
    assert "--max-pages" in str(exc.value)
    assert "TWAP Price" not in buf.getvalue()
    ensure_table(db_path)
    assert read_snapshots(db_path).empty

    argv = [SYMBOL, "-p", root, "--page-limit", "2", "--max-pages", "1"]
    with redirect_stdout(io.StringIO()):
        assert _with_client(client, lambda: cli_main(argv)) == 2
        # enough pages to cross the window start
        assert _with_client(client, lambda: cli_main([SYMBOL, "-p", root, "--page-limit", "2", "--max-pages", "4"])) == 0


def test_main_exit_codes() -> None:
    client, root = _feed(with_updates=False)
    with redirect_stdout(io.StringIO()):
        assert _with_client(client, lambda: cli_main([SYMBOL, "-p", root, "-i", "5"])) == 2
        assert _with_client(client, lambda: cli_main(["Crypto.NOPE/USD", "-p", root])) == 2

        client, root = _feed()
        assert _with_client(client, lambda: cli_main([SYMBOL, "-p", root, "--hours", "1"])) == 0


def test_parse_args() -> None:
    cfg = parse_args([SYMBOL])
    assert cfg.interval_minutes == 60
    assert cfg.rpc_url == "https://api.devnet.solana.com"
    assert cfg.max_pages is None and cfg.duckdb_path is None

    assert parse_args([SYMBOL, "--hours", "2"]).interval_minutes == 120
    assert parse_args([SYMBOL, "--local"]).rpc_url == "http://localhost:8899"
    assert parse_args([SYMBOL, "--local", "--rpc-url", "http://node:8899"]).rpc_url == "http://node:8899"
    assert parse_args([SYMBOL, "-i", "1440"]).interval == timedelta(days=1)
    assert parse_args([SYMBOL, "--max-pages", "3"]).max_pages == 3

    for bad in (["-i", "0"], ["-i", "1441"], ["--hours", "25"], ["--page-limit", "0"], ["-i", "5", "--hours", "1"]):
        with pytest.raises(SystemExit):
            parse_args([SYMBOL, *bad])


def main() -> None:
    for name, fn in sorted(globals().items()):
        if name.startswith("test_") and callable(fn):
            fn()
    print("cli tests OK")


if __name__ == "__main__":
    main()
