"""Pyth TWAP - time-weighted average prices replayed from Pyth oracle history.

Provides:
- Symbol -> price account resolution over the Pyth mapping chain
- Backward paging of price-account transactions and upd_price decoding
- OHLC/TWAP aggregation, CSV snapshots and a DuckDB history table
- CLI scripts for listing symbols and exporting stored snapshots
"""

__version__ = "0.1.0"

# Expose main submodules
from . import pyth
from . import scripts

__all__ = ["pyth", "scripts", "__version__"]
