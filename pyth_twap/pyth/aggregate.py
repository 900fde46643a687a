from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, Optional

from .errors import InsufficientDataError
from .history import is_usable
from .records import PriceUpdate


def scale_price(value: int, exponent: int) -> float:
    """Apply a feed's power-of-ten exponent to a raw integer price."""
    if exponent < 0:
        return value / 10 ** -exponent
    return float(value * 10 ** exponent)


@dataclass(frozen=True)
class TwapResult:
    open: float
    high: float
    low: float
    close: float
    twap: float
    open_slot: int
    close_slot: int
    high_slot: int
    low_slot: int
    exponent: int
    count: int

    def as_row(self) -> Dict[str, Any]:
        return asdict(self)


class OhlcAggregator:
    """Single-pass open/high/low/close fold over accepted price updates.

    Open and close are the prices at the lowest and highest publish slot seen,
    not the first and last by wall-clock time. When several updates share the
    current extreme slot the one processed last wins.
    """

    def __init__(self) -> None:
        self.count = 0
        self.open: Optional[int] = None
        self.high: Optional[int] = None
        self.low: Optional[int] = None
        self.close: Optional[int] = None
        self.open_slot: Optional[int] = None
        self.close_slot: Optional[int] = None
        self.high_slot: Optional[int] = None
        self.low_slot: Optional[int] = None

    def add(self, update: PriceUpdate) -> bool:
        """Fold one update in; returns False (and changes nothing) if it is unusable."""
        if not is_usable(update):
            return False
        price, slot = update.price, update.publish_slot
        if self.count == 0:
            self.open = self.high = self.low = self.close = price
            self.open_slot = self.close_slot = self.high_slot = self.low_slot = slot
        else:
            if price > self.high:
                self.high, self.high_slot = price, slot
            if price < self.low:
                self.low, self.low_slot = price, slot
            if slot <= self.open_slot:
                self.open, self.open_slot = price, slot
            if slot >= self.close_slot:
                self.close, self.close_slot = price, slot
        self.count += 1
        return True

    def result(self, exponent: int) -> TwapResult:
        """Scale the four points and average them.

        The TWAP is the plain mean of open, high, low and close, not a
        duration-weighted integral.
        """
        if self.count == 0:
            raise InsufficientDataError("no usable price updates in the requested interval")
        o, h, l, c = (scale_price(v, exponent) for v in (self.open, self.high, self.low, self.close))
        return TwapResult(
            open=o,
            high=h,
            low=l,
            close=c,
            twap=(o + h + l + c) / 4.0,
            open_slot=self.open_slot,
            close_slot=self.close_slot,
            high_slot=self.high_slot,
            low_slot=self.low_slot,
            exponent=exponent,
            count=self.count,
        )


def aggregate_updates(updates: Iterable[PriceUpdate], exponent: int) -> TwapResult:
    agg = OhlcAggregator()
    for update in updates:
        agg.add(update)
    return agg.result(exponent)
