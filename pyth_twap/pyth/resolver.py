from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Callable, Iterator, Optional, Set, Tuple

from .errors import (
    AccountNotFoundError,
    ChainLoopError,
    DecodeError,
    PriceAccountNotFoundError,
    SymbolNotFoundError,
)
from .records import MappingRecord, PriceRecord, ProductRecord, decode_mapping, decode_price, decode_product


# Devnet mapping account
DEFAULT_MAPPING_KEY = "BmA9Z6FjioHJPpjT39QazZyhDRUdZy2ezwx4GiDdE2u2"

MAX_MAPPING_NODES = 1024
MAX_PRICE_NODES = 64

SkipHook = Callable[[str, Exception], None]


@dataclass(frozen=True)
class PriceAccount:
    address: str
    exponent: int
    record: PriceRecord
    product_address: Optional[str] = None
    symbol: Optional[str] = None


def _visit(seen: Set[str], address: str, max_nodes: int, what: str) -> None:
    if address in seen:
        raise ChainLoopError(f"{what} chain revisits {address}")
    if len(seen) >= max_nodes:
        raise ChainLoopError(f"{what} chain longer than {max_nodes} nodes")
    seen.add(address)


def iter_mapping_chain(client, root: str, max_nodes: int = MAX_MAPPING_NODES) -> Iterator[Tuple[str, MappingRecord]]:
    """Yield (address, record) for each mapping node from ``root`` until ``next`` is null.

    A node that cannot be fetched or decoded ends the walk with its error.
    """
    seen: Set[str] = set()
    address: Optional[str] = root
    while address is not None:
        _visit(seen, address, max_nodes, "mapping")
        node = decode_mapping(client.get_account_data(address))
        yield address, node
        address = node.next


def iter_products(
    client,
    root: str,
    on_skip: Optional[SkipHook] = None,
    max_nodes: int = MAX_MAPPING_NODES,
) -> Iterator[Tuple[str, ProductRecord]]:
    """Yield every decodable product in chain order, then array order.

    Only the first ``product_count`` slots of each node are visited. Products
    that are missing or fail to decode are reported to ``on_skip`` and passed over.
    """
    for _, node in iter_mapping_chain(client, root, max_nodes=max_nodes):
        for prod_address in node.products:
            if prod_address is None:
                if on_skip is not None:
                    on_skip("<null>", DecodeError("null product key in mapping"))
                continue
            try:
                product = decode_product(client.get_account_data(prod_address))
            except (DecodeError, AccountNotFoundError) as e:
                if on_skip is not None:
                    on_skip(prod_address, e)
                continue
            yield prod_address, product


def find_product(
    client,
    root: str,
    symbol: str,
    on_skip: Optional[SkipHook] = None,
    max_nodes: int = MAX_MAPPING_NODES,
) -> Tuple[str, ProductRecord]:
    """Return the first product whose ``symbol`` attribute equals ``symbol`` exactly."""
    for address, product in iter_products(client, root, on_skip=on_skip, max_nodes=max_nodes):
        try:
            candidate = product.symbol
        except DecodeError as e:
            if on_skip is not None:
                on_skip(address, e)
            continue
        if candidate == symbol:
            return address, product
    raise SymbolNotFoundError(symbol)


def walk_price_chain(
    client,
    address: Optional[str],
    symbol: Optional[str] = None,
    max_nodes: int = MAX_PRICE_NODES,
) -> PriceAccount:
    """Follow a price account's ``next`` pointers to the first record of type price.

    Every node must decode; a corrupted node aborts the walk.
    """
    if address is None:
        raise PriceAccountNotFoundError(None, symbol)
    seen: Set[str] = set()
    current: Optional[str] = address
    while current is not None:
        _visit(seen, current, max_nodes, "price")
        record = decode_price(client.get_account_data(current))
        if record.is_price:
            return PriceAccount(address=current, exponent=record.exponent, record=record, symbol=symbol)
        current = record.next
    raise PriceAccountNotFoundError(address, symbol)


def get_price_account(
    client,
    root: str,
    symbol: str,
    on_skip: Optional[SkipHook] = None,
) -> PriceAccount:
    product_address, product = find_product(client, root, symbol, on_skip=on_skip)
    account = walk_price_chain(client, product.price_account, symbol=symbol)
    return replace(account, product_address=product_address)
