"""Pyth price feed TWAP over a trailing interval.

Implements account decoding, symbol resolution, transaction history replay,
aggregation, validation and snapshot persistence.
"""

__all__ = [
    "aggregate",
    "cli",
    "db",
    "errors",
    "history",
    "persistence",
    "records",
    "resolver",
    "rpc",
    "validation",
]
