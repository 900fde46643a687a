from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Iterable, Iterator, Optional

import pandas as pd

from .errors import DecodeError
from .records import UPDATE_PRICE_COMMANDS, PriceStatus, PriceUpdate, decode_price_update, enum_name
from .rpc import MAX_SIGNATURE_PAGE, SignatureInfo, TransactionInfo


UPDATE_COLUMNS = ["block_time", "publish_slot", "price", "confidence", "status", "signature"]


@dataclass
class HistoryStats:
    pages: int = 0
    signatures: int = 0
    failed: int = 0
    no_block_time: int = 0
    missing: int = 0
    undecodable: int = 0
    rejected: int = 0
    accepted: int = 0
    oldest_block_time: Optional[int] = None
    truncated: bool = False

    def summary(self) -> str:
        return (
            f"pages={self.pages} signatures={self.signatures} failed={self.failed} "
            f"no_block_time={self.no_block_time} missing={self.missing} "
            f"undecodable={self.undecodable} rejected={self.rejected} accepted={self.accepted}"
            f"{' truncated=1' if self.truncated else ''}"
        )


def window_start(interval: timedelta, now: datetime | None = None) -> datetime:
    """Start of the trailing window ending at ``now`` (UTC-aware)."""
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now - interval


def iter_signatures(
    client,
    address: str,
    start: datetime,
    page_limit: int = MAX_SIGNATURE_PAGE,
    max_pages: Optional[int] = None,
    stats: Optional[HistoryStats] = None,
) -> Iterator[SignatureInfo]:
    """Yield signatures for ``address`` newest first, back to ``start``.

    Each page is requested with the previous page's last (oldest) signature as
    the exclusive ``before`` cursor. The walk ends at the first signature whose
    block time is strictly older than ``start``; it and the rest of its page are
    dropped. An empty page or ``max_pages`` also ends it; stopping on a full
    last page at ``max_pages`` sets ``stats.truncated`` since older signatures
    may still fall inside the window.
    """
    start_ts = start.timestamp()
    before: Optional[str] = None
    pages = 0
    while max_pages is None or pages < max_pages:
        page = client.get_signatures_for_address(address, before=before, limit=page_limit)
        pages += 1
        if stats is not None:
            stats.pages += 1
        if not page:
            return
        for sig in page:
            if sig.block_time is not None and sig.block_time < start_ts:
                return
            if stats is not None:
                stats.signatures += 1
            yield sig
        if stats is not None and max_pages is not None and pages >= max_pages:
            stats.truncated = len(page) >= page_limit
        before = page[-1].signature


def decode_update(tx: TransactionInfo) -> Optional[PriceUpdate]:
    """Decode the first instruction of ``tx`` as an upd_price payload, or None."""
    if not tx.instructions:
        return None
    try:
        update = decode_price_update(tx.instructions[0])
    except DecodeError:
        return None
    if update.cmd not in UPDATE_PRICE_COMMANDS:
        return None
    return replace(update, block_time=tx.block_time, signature=tx.signature)


def is_usable(update: PriceUpdate) -> bool:
    return update.status == PriceStatus.TRADING and update.price != 0


def iter_price_updates(
    client,
    address: str,
    start: datetime,
    stats: Optional[HistoryStats] = None,
    page_limit: int = MAX_SIGNATURE_PAGE,
    max_pages: Optional[int] = None,
) -> Iterator[PriceUpdate]:
    """Replay the price account's transactions in the window, yielding usable updates."""
    stats = stats if stats is not None else HistoryStats()
    for sig in iter_signatures(client, address, start, page_limit=page_limit, max_pages=max_pages, stats=stats):
        if sig.failed:
            stats.failed += 1
            continue
        if sig.block_time is None:
            stats.no_block_time += 1
            continue
        tx = client.get_transaction(sig.signature)
        if tx is None:
            stats.missing += 1
            continue
        if tx.failed:
            stats.failed += 1
            continue
        update = decode_update(tx)
        if update is None:
            stats.undecodable += 1
            continue
        if update.block_time is None:
            update = replace(update, block_time=sig.block_time)
        if not is_usable(update):
            stats.rejected += 1
            continue
        stats.accepted += 1
        stats.oldest_block_time = sig.block_time
        yield update


def updates_to_dataframe(updates: Iterable[PriceUpdate]) -> pd.DataFrame:
    """Map accepted updates into a frame sorted by publish slot.

    - block_time: pandas datetime64[ns] (UTC, naive by convention)
    - price/confidence: raw integers, unscaled
    """
    rows = [
        {
            "block_time": (
                pd.to_datetime(u.block_time, unit="s", utc=True).tz_convert(None)
                if u.block_time is not None
                else pd.NaT
            ),
            "publish_slot": u.publish_slot,
            "price": u.price,
            "confidence": u.confidence,
            "status": enum_name(PriceStatus, u.status),
            "signature": u.signature,
        }
        for u in updates
    ]
    if not rows:
        return pd.DataFrame(columns=UPDATE_COLUMNS).astype(
            {"block_time": "datetime64[ns]", "publish_slot": "int64", "price": "int64", "confidence": "int64"}
        )
    df = pd.DataFrame(rows, columns=UPDATE_COLUMNS)
    df = df.sort_values("publish_slot", kind="mergesort").reset_index(drop=True)
    return df
