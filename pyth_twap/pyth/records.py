"""
Checked decoders for Pyth on-chain account records and update instructions.

Layouts follow the Pyth v2 account format (little-endian, C packing):

  mapping   magic ver atype size num unused | next[32] | products[32] * num
  product   magic ver atype size | px_acc[32] | attr (len u8, bytes)...
  price     magic ver atype size ptype expo num num_qt last_slot valid_slot
            twap{val,numer,denom} twac{...} drv1 drv2 prod[32] next[32]
            prev_slot prev_price prev_conf drv3 agg{price conf status corp_act pub_slot}
  upd_price version cmd status unused price conf pub_slot

Every decoder checks the buffer length before reading a field and validates
magic/version/account type on account records.
"""

from __future__ import annotations

import struct
from collections.abc import Mapping as MappingT
from dataclasses import dataclass, field
from enum import IntEnum
from functools import cached_property
from typing import Dict, Iterable, Optional, Tuple, Type, Union

import base58

from .errors import AccountValidationError, DecodeError


MAGIC = 0xA1B2C3D4
VERSION = 2

PUBKEY_SIZE = 32
MAP_TABLE_SIZE = 640
PROD_ACCT_SIZE = 512
PROD_HDR_SIZE = 48
PROD_ATTR_SIZE = PROD_ACCT_SIZE - PROD_HDR_SIZE

NULL_KEY = bytes(PUBKEY_SIZE)

# upd_price command ids
CMD_UPD_PRICE = 7
CMD_UPD_PRICE_NO_FAIL_ON_ERROR = 13
UPDATE_PRICE_COMMANDS = frozenset({CMD_UPD_PRICE, CMD_UPD_PRICE_NO_FAIL_ON_ERROR})


class AccountType(IntEnum):
    UNKNOWN = 0
    MAPPING = 1
    PRODUCT = 2
    PRICE = 3


class PriceType(IntEnum):
    UNKNOWN = 0
    PRICE = 1
    TWAP = 2
    VOLATILITY = 3


class PriceStatus(IntEnum):
    UNKNOWN = 0
    TRADING = 1
    HALTED = 2
    AUCTION = 3


_ACCOUNT_HDR = struct.Struct("<IIII")
_MAPPING_HDR = struct.Struct(f"<IIIIII{PUBKEY_SIZE}s")
_PRODUCT_HDR = struct.Struct(f"<IIII{PUBKEY_SIZE}s")
_PRICE_HDR = struct.Struct(f"<IIIIIiIIQQqqqqqqqq{PUBKEY_SIZE}s{PUBKEY_SIZE}sQqQqqQIIQ")
_UPDATE_PRICE = struct.Struct("<IiIIqQQ")

MAPPING_HDR_SIZE = _MAPPING_HDR.size
PRICE_HDR_SIZE = _PRICE_HDR.size
UPDATE_PRICE_SIZE = _UPDATE_PRICE.size

Buffer = Union[bytes, bytearray, memoryview]


def enum_name(enum_cls: Type[IntEnum], value: int) -> str:
    try:
        return enum_cls(value).name.lower()
    except ValueError:
        return f"unknown({value})"


# --- keys --------------------------------------------------------------------

def encode_pubkey(raw: Buffer) -> str:
    return base58.b58encode(bytes(raw)).decode("ascii")


def decode_pubkey(address: str) -> bytes:
    try:
        raw = base58.b58decode(address)
    except ValueError as e:
        raise DecodeError(f"invalid base58 address {address!r}: {e}") from e
    if len(raw) != PUBKEY_SIZE:
        raise DecodeError(f"address {address!r} decodes to {len(raw)} bytes, expected {PUBKEY_SIZE}")
    return raw


def is_null_key(raw: Buffer) -> bool:
    return bytes(raw) == NULL_KEY


def _optional_key(raw: bytes) -> Optional[str]:
    return None if is_null_key(raw) else encode_pubkey(raw)


# --- records -----------------------------------------------------------------

@dataclass(frozen=True)
class MappingRecord:
    magic: int
    version: int
    account_type: int
    size: int
    product_count: int
    next: Optional[str]
    products: Tuple[Optional[str], ...]


@dataclass(frozen=True)
class ProductRecord:
    magic: int
    version: int
    account_type: int
    size: int
    price_account: Optional[str]
    attr: bytes = field(repr=False)

    @cached_property
    def attributes(self) -> Dict[str, str]:
        """Key/value reference data; raises DecodeError on a malformed list."""
        return decode_attributes(self.attr, self.size - PROD_HDR_SIZE)

    @property
    def symbol(self) -> Optional[str]:
        return self.attributes.get("symbol")


@dataclass(frozen=True)
class PriceRecord:
    magic: int
    version: int
    account_type: int
    size: int
    price_type: int
    exponent: int
    num_components: int
    last_slot: int
    valid_slot: int
    twap: int
    twac: int
    product: Optional[str]
    next: Optional[str]
    agg_price: int
    agg_confidence: int
    agg_status: int
    agg_publish_slot: int

    @property
    def is_price(self) -> bool:
        return self.price_type == PriceType.PRICE


@dataclass(frozen=True)
class PriceUpdate:
    version: int
    cmd: int
    status: int
    price: int
    confidence: int
    publish_slot: int
    block_time: Optional[int] = None
    signature: Optional[str] = None

    @property
    def is_trading(self) -> bool:
        return self.status == PriceStatus.TRADING


def _check_header(magic: int, version: int, account_type: int, expected: AccountType) -> None:
    if magic != MAGIC:
        raise AccountValidationError(f"not a valid pyth account (magic {magic:#010x})")
    if account_type != expected:
        raise AccountValidationError(
            f"not a valid pyth {expected.name.lower()} account (type {enum_name(AccountType, account_type)})"
        )
    if version != VERSION:
        raise AccountValidationError(
            f"unexpected pyth {expected.name.lower()} account version {version} (supported: {VERSION})"
        )


def _require(data: Buffer, size: int, what: str) -> None:
    if len(data) < size:
        raise DecodeError(f"{what} buffer too short: {len(data)} < {size} bytes")


def decode_mapping(data: Buffer) -> MappingRecord:
    _require(data, MAPPING_HDR_SIZE, "mapping")
    magic, ver, atype, size, num, _unused, nxt = _MAPPING_HDR.unpack_from(data, 0)
    _check_header(magic, ver, atype, AccountType.MAPPING)
    if num > MAP_TABLE_SIZE:
        raise DecodeError(f"mapping product count {num} exceeds capacity {MAP_TABLE_SIZE}")
    _require(data, MAPPING_HDR_SIZE + num * PUBKEY_SIZE, "mapping")
    products = tuple(
        _optional_key(bytes(data[off : off + PUBKEY_SIZE]))
        for off in range(MAPPING_HDR_SIZE, MAPPING_HDR_SIZE + num * PUBKEY_SIZE, PUBKEY_SIZE)
    )
    return MappingRecord(
        magic=magic,
        version=ver,
        account_type=atype,
        size=size,
        product_count=num,
        next=_optional_key(nxt),
        products=products,
    )


def decode_product(data: Buffer) -> ProductRecord:
    _require(data, PROD_HDR_SIZE, "product")
    magic, ver, atype, size, px_acc = _PRODUCT_HDR.unpack_from(data, 0)
    _check_header(magic, ver, atype, AccountType.PRODUCT)
    if size < PROD_HDR_SIZE or size > len(data):
        raise DecodeError(f"product declared size {size} outside [{PROD_HDR_SIZE}, {len(data)}]")
    return ProductRecord(
        magic=magic,
        version=ver,
        account_type=atype,
        size=size,
        price_account=_optional_key(px_acc),
        attr=bytes(data[PROD_HDR_SIZE:]),
    )


def decode_price(data: Buffer) -> PriceRecord:
    _require(data, PRICE_HDR_SIZE, "price")
    (
        magic, ver, atype, size,
        ptype, expo, num, _num_qt,
        last_slot, valid_slot,
        twap, _twap_numer, _twap_denom,
        twac, _twac_numer, _twac_denom,
        _drv1, _drv2,
        prod, nxt,
        _prev_slot, _prev_price, _prev_conf, _drv3,
        agg_price, agg_conf, agg_status, _corp_act, agg_pub_slot,
    ) = _PRICE_HDR.unpack_from(data, 0)
    _check_header(magic, ver, atype, AccountType.PRICE)
    return PriceRecord(
        magic=magic,
        version=ver,
        account_type=atype,
        size=size,
        price_type=ptype,
        exponent=expo,
        num_components=num,
        last_slot=last_slot,
        valid_slot=valid_slot,
        twap=twap,
        twac=twac,
        product=_optional_key(prod),
        next=_optional_key(nxt),
        agg_price=agg_price,
        agg_confidence=agg_conf,
        agg_status=agg_status,
        agg_publish_slot=agg_pub_slot,
    )


def decode_price_update(data: Buffer) -> PriceUpdate:
    """Decode an upd_price instruction payload (trailing bytes are ignored)."""
    _require(data, UPDATE_PRICE_SIZE, "price update")
    version, cmd, status, _unused, price, conf, pub_slot = _UPDATE_PRICE.unpack_from(data, 0)
    return PriceUpdate(
        version=version,
        cmd=cmd,
        status=status,
        price=price,
        confidence=conf,
        publish_slot=pub_slot,
    )


# --- product attributes ------------------------------------------------------

def _read_str(buf: Buffer, pos: int, end: int) -> Tuple[str, int]:
    if pos >= end:
        raise DecodeError(f"attribute list truncated at byte {pos}")
    n = buf[pos]
    start, stop = pos + 1, pos + 1 + n
    if stop > end:
        raise DecodeError(f"attribute of length {n} at byte {pos} runs past end ({end})")
    try:
        return bytes(buf[start:stop]).decode("utf-8"), stop
    except UnicodeDecodeError as e:
        raise DecodeError(f"attribute at byte {pos} is not valid utf-8") from e


def decode_attributes(buf: Buffer, length: int) -> Dict[str, str]:
    """Decode exactly ``length`` bytes of (len, key)(len, value) pairs.

    Later duplicates of a key overwrite earlier ones.
    """
    if length < 0 or length > len(buf):
        raise DecodeError(f"attribute length {length} outside buffer of {len(buf)} bytes")
    attrs: Dict[str, str] = {}
    pos = 0
    while pos < length:
        key, pos = _read_str(buf, pos, length)
        val, pos = _read_str(buf, pos, length)
        attrs[key] = val
    return attrs


def encode_attributes(pairs: Union[MappingT[str, str], Iterable[Tuple[str, str]]]) -> bytes:
    items = pairs.items() if isinstance(pairs, MappingT) else pairs
    out = bytearray()
    for key, val in items:
        for text in (key, val):
            raw = text.encode("utf-8")
            if len(raw) > 0xFF:
                raise ValueError(f"attribute {text[:16]!r}... longer than 255 bytes")
            out.append(len(raw))
            out += raw
    return bytes(out)
