"""CLI scripts around the Pyth TWAP feed.

Scripts:
- list_pyth_symbols: Walk the mapping chain and print every product symbol
- export_duckdb_twap_to_csv: Export stored TWAP snapshots from DuckDB to CSV

Usage:
    python -m pyth_twap.scripts.list_pyth_symbols --help
    python -m pyth_twap.scripts.export_duckdb_twap_to_csv --help
"""

__all__ = [
    "list_pyth_symbols",
    "export_duckdb_twap_to_csv",
]
