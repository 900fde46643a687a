#!/usr/bin/env python3
from __future__ import annotations

import pytest

from _fixtures import (
    FakeRpcClient,
    addr,
    build_feed,
    mapping_bytes,
    price_bytes,
    product_bytes,
)

from pyth_twap.pyth.errors import (
    AccountValidationError,
    ChainLoopError,
    DecodeError,
    PriceAccountNotFoundError,
    SymbolNotFoundError,
)
from pyth_twap.pyth.records import PriceType
from pyth_twap.pyth.resolver import (
    find_product,
    get_price_account,
    iter_mapping_chain,
    iter_products,
    walk_price_chain,
)


def test_resolves_symbol_in_later_mapping_node() -> None:
    client = FakeRpcClient()
    root, products = build_feed(
        client,
        [
            [("BTC/USD", addr(1)), ("SOL/USD", addr(2))],
            [("ETH/USD", addr(3)), ("DOGE/USD", addr(4))],
        ],
        exponent=-6,
    )
    acct = get_price_account(client, root, "ETH/USD")
    assert acct.address == addr(3)
    assert acct.exponent == -6
    assert acct.product_address == products["ETH/USD"]
    assert acct.symbol == "ETH/USD"


def test_every_product_position_is_reachable() -> None:
    for size in range(1, 6):
        for pos in range(size):
            client = FakeRpcClient()
            node = [(f"SYM{i}", addr(i + 1)) for i in range(size)]
            root, products = build_feed(client, [node, [("TAIL", addr(99))]])
            address, prod = find_product(client, root, f"SYM{pos}")
            assert address == products[f"SYM{pos}"], (size, pos)
            assert prod.price_account == addr(pos + 1)


def test_products_beyond_count_are_not_visited() -> None:
    client = FakeRpcClient()
    keys = [addr(501), addr(502), addr(503)]
    for i, k in enumerate(keys):
        client.accounts[k] = product_bytes({"symbol": f"S{i}"}, addr(10 + i))
    root = addr(500)
    client.accounts[root] = mapping_bytes(keys, num=2)
    visited = [a for a, _ in iter_products(client, root)]
    assert visited == keys[:2]
    with pytest.raises(SymbolNotFoundError):
        find_product(client, root, "S2")


def test_bad_products_are_skipped() -> None:
    client = FakeRpcClient()
    good, bad_magic, missing, bad_attrs = addr(601), addr(602), addr(603), addr(604)
    client.accounts[good] = product_bytes({"symbol": "ETH/USD"}, addr(1))
    client.accounts[addr(1)] = price_bytes()
    data = bytearray(product_bytes({"symbol": "ETH/USD"}, addr(2)))
    data[0] ^= 0xFF
    client.accounts[bad_magic] = bytes(data)
    client.accounts[bad_attrs] = product_bytes(b"\x06symbol\x40ETH", addr(3))
    root = addr(600)
    client.accounts[root] = mapping_bytes([bad_magic, missing, bad_attrs, good])

    skipped = []
    acct = get_price_account(client, root, "ETH/USD", on_skip=lambda a, e: skipped.append((a, type(e).__name__)))
    assert acct.address == addr(1)
    assert [a for a, _ in skipped] == [bad_magic, missing, bad_attrs]
    assert skipped[0][1] == "AccountValidationError"
    assert skipped[1][1] == "AccountNotFoundError"
    assert skipped[2][1] == "DecodeError"


def test_symbol_not_found_names_symbol() -> None:
    client = FakeRpcClient()
    root, _ = build_feed(client, [[("BTC/USD", addr(1))], [("ETH/USD", addr(2))]])
    with pytest.raises(SymbolNotFoundError) as exc:
        find_product(client, root, "XRP/USD")
    assert exc.value.symbol == "XRP/USD"
    assert "XRP/USD" in str(exc.value)
    # both mapping nodes were walked
    assert len(list(iter_mapping_chain(client, root))) == 2


def test_exact_case_sensitive_match() -> None:
    client = FakeRpcClient()
    root, _ = build_feed(client, [[("ETH/USD", addr(1))]])
    for near_miss in ("eth/usd", "ETH", "ETH/USD ", "Crypto.ETH/USD"):
        with pytest.raises(SymbolNotFoundError):
            find_product(client, root, near_miss)


def test_first_match_wins_and_resolution_is_idempotent() -> None:
    client = FakeRpcClient()
    root, _ = build_feed(client, [[("ETH/USD", addr(1))], [("ETH/USD", addr(2))]])
    first = get_price_account(client, root, "ETH/USD")
    second = get_price_account(client, root, "ETH/USD")
    assert first.address == addr(1)
    assert (first.address, first.product_address) == (second.address, second.product_address)


def test_corrupt_mapping_node_is_fatal() -> None:
    client = FakeRpcClient()
    root, _ = build_feed(client, [[("BTC/USD", addr(1))], [("ETH/USD", addr(2))]])
    _, first_node = next(iter_mapping_chain(client, root))
    second = first_node.next
    data = bytearray(client.accounts[second])
    data[0] ^= 0xFF
    client.accounts[second] = bytes(data)
    with pytest.raises(AccountValidationError):
        find_product(client, root, "ETH/USD")


def test_mapping_cycle_is_bounded() -> None:
    client = FakeRpcClient()
    a, b = addr(700), addr(701)
    client.accounts[a] = mapping_bytes([], next_addr=b)
    client.accounts[b] = mapping_bytes([], next_addr=a)
    with pytest.raises(ChainLoopError):
        find_product(client, a, "ETH/USD")

    chain = [addr(800 + i) for i in range(5)]
    for i, k in enumerate(chain):
        client.accounts[k] = mapping_bytes([], next_addr=chain[i + 1] if i + 1 < len(chain) else None)
    with pytest.raises(ChainLoopError):
        list(iter_mapping_chain(client, chain[0], max_nodes=3))
    assert len(list(iter_mapping_chain(client, chain[0], max_nodes=5))) == 5


def test_price_chain_walks_to_price_type() -> None:
    client = FakeRpcClient()
    first, second, third = addr(901), addr(902), addr(903)
    client.accounts[first] = price_bytes(ptype=PriceType.TWAP, next_addr=second)
    client.accounts[second] = price_bytes(ptype=PriceType.VOLATILITY, next_addr=third)
    client.accounts[third] = price_bytes(ptype=PriceType.PRICE, exponent=-4, twap=777)
    acct = walk_price_chain(client, first)
    assert acct.address == third
    assert acct.exponent == -4
    assert acct.record.twap == 777


def test_price_chain_without_price_type() -> None:
    client = FakeRpcClient()
    first, second = addr(911), addr(912)
    client.accounts[first] = price_bytes(ptype=PriceType.TWAP, next_addr=second)
    client.accounts[second] = price_bytes(ptype=PriceType.UNKNOWN)
    with pytest.raises(PriceAccountNotFoundError):
        walk_price_chain(client, first, symbol="ETH/USD")


def test_price_chain_corrupt_node_is_fatal() -> None:
    client = FakeRpcClient()
    first, second = addr(921), addr(922)
    client.accounts[first] = price_bytes(ptype=PriceType.TWAP, next_addr=second)
    client.accounts[second] = price_bytes()[:100]
    with pytest.raises(DecodeError):
        walk_price_chain(client, first)

    client.accounts[first] = price_bytes(ptype=PriceType.TWAP, next_addr=first)
    with pytest.raises(ChainLoopError):
        walk_price_chain(client, first)


def test_product_without_price_account() -> None:
    client = FakeRpcClient()
    root, _ = build_feed(client, [[("ETH/USD", None)]])
    with pytest.raises(PriceAccountNotFoundError) as exc:
        get_price_account(client, root, "ETH/USD")
    assert exc.value.symbol == "ETH/USD"
    assert exc.value.address is None
    assert str(exc.value) == "product for 'ETH/USD' has no price account"


def main() -> None:
    for name, fn in sorted(globals().items()):
        if name.startswith("test_") and callable(fn):
            fn()
    print("resolver tests OK")


if __name__ == "__main__":
    main()
