from __future__ import annotations

from typing import Optional


class PythTwapError(Exception):
    """Base class for every error raised by the feed."""


class DecodeError(PythTwapError):
    """Buffer is too short or its fields are out of bounds for the target record."""


class AccountValidationError(DecodeError):
    """Record decoded, but magic, version or account type is wrong."""


class NotFoundError(PythTwapError):
    pass


class SymbolNotFoundError(NotFoundError):
    def __init__(self, symbol: str):
        super().__init__(f"no product with symbol {symbol!r} in the mapping chain")
        self.symbol = symbol


class PriceAccountNotFoundError(NotFoundError):
    def __init__(self, address: Optional[str], symbol: Optional[str] = None):
        where = f" for {symbol!r}" if symbol else ""
        if address is None:
            super().__init__(f"product{where} has no price account")
        else:
            super().__init__(f"no price account of type 'price'{where} (chain start {address})")
        self.address = address
        self.symbol = symbol


class ChainLoopError(PythTwapError):
    """A linked list of accounts did not terminate within the iteration bound."""


class RemoteCallError(PythTwapError):
    """Transport or JSON-RPC failure talking to the ledger."""


class AccountNotFoundError(RemoteCallError):
    def __init__(self, address: str):
        super().__init__(f"account {address} not found")
        self.address = address


class InsufficientDataError(PythTwapError):
    """The window held no usable price updates."""
