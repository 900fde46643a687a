from __future__ import annotations

from pathlib import Path
from typing import Optional

import duckdb  # type: ignore
import pandas as pd

from .aggregate import TwapResult


TABLE_NAME = "twap_snapshots"

SNAPSHOT_COLUMNS = [
    "computed_at",
    "symbol",
    "price_account",
    "interval_minutes",
    "open",
    "high",
    "low",
    "close",
    "twap",
    "open_slot",
    "close_slot",
    "updates",
    "exponent",
]


def _connect(db_path: Path):
    db_path.parent.mkdir(parents=True, exist_ok=True)
    return duckdb.connect(str(db_path))


def ensure_table(db_path: Path) -> None:
    con = _connect(db_path)
    try:
        con.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {TABLE_NAME} (
              computed_at TIMESTAMP,
              symbol VARCHAR,
              price_account VARCHAR,
              interval_minutes INTEGER,
              open DOUBLE,
              high DOUBLE,
              low DOUBLE,
              close DOUBLE,
              twap DOUBLE,
              open_slot BIGINT,
              close_slot BIGINT,
              updates INTEGER,
              exponent INTEGER,
              created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            );
            """
        )
        con.execute(
            f"CREATE UNIQUE INDEX IF NOT EXISTS idx_{TABLE_NAME}_key "
            f"ON {TABLE_NAME}(symbol, interval_minutes, computed_at);"
        )
    finally:
        con.close()


def append_snapshot_if_absent(
    db_path: Path,
    computed_at: pd.Timestamp,
    symbol: str,
    price_account: str,
    interval_minutes: int,
    result: TwapResult,
) -> None:
    """Append one TWAP row unless (symbol, interval, computed_at) already exists."""
    ts = pd.to_datetime(computed_at).to_pydatetime()
    con = _connect(db_path)
    try:
        con.execute("SET TimeZone='UTC';")
        con.execute(
            f"""
            INSERT INTO {TABLE_NAME} ({", ".join(SNAPSHOT_COLUMNS)})
            SELECT ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?
            WHERE NOT EXISTS (
                SELECT 1 FROM {TABLE_NAME}
                WHERE symbol = ? AND interval_minutes = ? AND computed_at = ?
            );
            """,
            [
                ts,
                symbol,
                price_account,
                int(interval_minutes),
                float(result.open),
                float(result.high),
                float(result.low),
                float(result.close),
                float(result.twap),
                int(result.open_slot),
                int(result.close_slot),
                int(result.count),
                int(result.exponent),
                symbol,
                int(interval_minutes),
                ts,
            ],
        )
    finally:
        con.close()


def read_snapshots(db_path: Path, symbol: Optional[str] = None, n: Optional[int] = None) -> pd.DataFrame:
    """Return stored snapshots ascending by computed_at; the last ``n`` if given."""
    con = _connect(db_path)
    try:
        con.execute("SET TimeZone='UTC';")
        where = "WHERE symbol = ?" if symbol is not None else ""
        params: list = [symbol] if symbol is not None else []
        limit = ""
        if n is not None:
            limit = "LIMIT ?"
            params.append(int(n))
        q = f"""
            SELECT {", ".join(SNAPSHOT_COLUMNS)}
            FROM {TABLE_NAME}
            {where}
            ORDER BY computed_at DESC
            {limit}
        """
        df = con.execute(q, params).fetch_df()
        df = df.sort_values("computed_at", kind="mergesort").reset_index(drop=True)
        return df
    finally:
        con.close()
