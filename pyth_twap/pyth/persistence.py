from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

import pandas as pd

from .history import UPDATE_COLUMNS


@dataclass(frozen=True)
class PersistConfig:
    root_dir: Path
    dataset_slug: str

    def dataset_dir(self) -> Path:
        d = self.root_dir / self.dataset_slug
        d.mkdir(parents=True, exist_ok=True)
        return d


def now_utc_run_id() -> str:
    return datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%SZ")


def symbol_slug(symbol: str) -> str:
    """'Crypto.BTC/USD' -> 'crypto_btc_usd'"""
    return re.sub(r"[^A-Za-z0-9]+", "_", symbol).strip("_").lower() or "unknown"


def write_updates_snapshot(cfg: PersistConfig, run_id: str, symbol: str, df: pd.DataFrame) -> Path:
    out = cfg.dataset_dir() / f"{run_id}_{symbol_slug(symbol)}_updates.csv"
    df_to_write = df.loc[:, UPDATE_COLUMNS].copy()
    df_to_write.to_csv(out, index=False)
    return out
