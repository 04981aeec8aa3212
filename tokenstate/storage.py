"""Key layout and value encoding for the token chain's state and metadata stores.

Metadata
  0x0/ (tx)       [txID] => timestamp|success|units
State
  0x0/ (balance)  [owner|asset] => balance
  0x1/ (assets)   [asset] => metadataLen|metadata|supply|owner|warp
  0x2/ (orders)   [txID] => in|inTick|out|outTick|remaining|owner
  0x3/ (loans)    [asset|destination] => amount
  0x4/ (height)
  0x5/ (incoming warp)
  0x6/ (outgoing warp)
"""

from __future__ import annotations

import struct
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Protocol

from tokenstate.encoding import encode_id

ID_LEN = 32
PUBLIC_KEY_LEN = 32
UINT64_LEN = 8
UINT16_LEN = 2
MAX_UINT64 = (1 << 64) - 1
MAX_UINT16 = (1 << 16) - 1

TX_PREFIX = 0x0
BALANCE_PREFIX = 0x0
ASSET_PREFIX = 0x1
ORDER_PREFIX = 0x2
LOAN_PREFIX = 0x3
HEIGHT_PREFIX = 0x4
INCOMING_WARP_PREFIX = 0x5
OUTGOING_WARP_PREFIX = 0x6

_FAILURE_BYTE = 0x0
_SUCCESS_BYTE = 0x1
_HEIGHT_KEY = bytes([HEIGHT_PREFIX])

_TX_VALUE = struct.Struct(">qBQ")
_ORDER_VALUE = struct.Struct(f">{ID_LEN}sQ{ID_LEN}sQQ{PUBLIC_KEY_LEN}s")

ReadState = Callable[[Sequence[bytes]], Sequence["bytes | None"]]
"""Reads many keys at once; a missing key yields None, other failures raise."""


class NotFoundError(KeyError):
    """Raised by a database when a key has no value."""


class InvalidBalanceError(ValueError):
    """Raised when a balance or loan would overflow or go below zero."""


class Database(Protocol):
    """The key-value store that state is read from and written to."""

    def get_value(self, key: bytes) -> bytes: ...

    def insert(self, key: bytes, value: bytes) -> None: ...

    def remove(self, key: bytes) -> None: ...


class MemoryDatabase:
    """A dictionary-backed database."""

    def __init__(self) -> None:
        self._data: dict[bytes, bytes] = {}

    def get_value(self, key: bytes) -> bytes:
        try:
            return self._data[bytes(key)]
        except KeyError:
            raise NotFoundError(bytes(key)) from None

    def insert(self, key: bytes, value: bytes) -> None:
        self._data[bytes(key)] = bytes(value)

    def remove(self, key: bytes) -> None:
        self._data.pop(bytes(key), None)

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)


@dataclass(frozen=True)
class Transaction:
    timestamp: int
    success: bool
    units: int


@dataclass(frozen=True)
class Asset:
    metadata: bytes
    supply: int
    owner: bytes
    warp: bool


@dataclass(frozen=True)
class Order:
    in_asset: bytes
    in_tick: int
    out_asset: bytes
    out_tick: int
    remaining: int
    owner: bytes


def _fixed(value: bytes, length: int, name: str) -> bytes:
    value = bytes(value)
    if len(value) != length:
        raise ValueError(f"{name} must be {length} bytes, got {len(value)}")
    return value


def _u64(value: int, name: str) -> int:
    if not 0 <= value <= MAX_UINT64:
        raise ValueError(f"{name} must fit in an unsigned 64-bit integer, got {value}")
    return value


def _pack_u64(value: int) -> bytes:
    return _u64(value, "value").to_bytes(UINT64_LEN, "big")


def _unpack_u64(value: bytes) -> int:
    return int.from_bytes(value[:UINT64_LEN], "big")


def _get_optional(db: Database, key: bytes) -> bytes | None:
    try:
        return db.get_value(key)
    except NotFoundError:
        return None


def _read_one(read_state: ReadState, key: bytes) -> bytes | None:
    return read_state([key])[0]


# Transactions


def prefix_tx_key(tx_id: bytes) -> bytes:
    """[txPrefix] + [txID]"""
    return bytes([TX_PREFIX]) + _fixed(tx_id, ID_LEN, "tx id")


def store_transaction(db: Database, tx_id: bytes, timestamp: int, success: bool, units: int) -> None:
    """Record when a transaction was accepted, whether it succeeded and its units."""
    flag = _SUCCESS_BYTE if success else _FAILURE_BYTE
    value = _TX_VALUE.pack(timestamp, flag, _u64(units, "units"))
    db.insert(prefix_tx_key(tx_id), value)


def get_transaction(db: Database, tx_id: bytes) -> Transaction | None:
    """Return the stored transaction record, or None if there is none."""
    value = _get_optional(db, prefix_tx_key(tx_id))
    if value is None:
        return None
    timestamp, flag, units = _TX_VALUE.unpack(value[: _TX_VALUE.size])
    return Transaction(timestamp=timestamp, success=flag != _FAILURE_BYTE, units=units)


# Balances


def prefix_balance_key(public_key: bytes, asset: bytes) -> bytes:
    """[balancePrefix] + [address] + [asset]"""
    return (
        bytes([BALANCE_PREFIX])
        + _fixed(public_key, PUBLIC_KEY_LEN, "public key")
        + _fixed(asset, ID_LEN, "asset")
    )


def _decode_amount(value: bytes | None) -> int:
    return 0 if value is None else _unpack_u64(value)


def get_balance(db: Database, public_key: bytes, asset: bytes) -> int:
    """Return the balance, which is 0 when the account holds none of the asset."""
    return _decode_amount(_get_optional(db, prefix_balance_key(public_key, asset)))


def get_balance_from_state(read_state: ReadState, public_key: bytes, asset: bytes) -> int:
    """Return a balance through a bulk state reader, as used to serve queries."""
    return _decode_amount(_read_one(read_state, prefix_balance_key(public_key, asset)))


def set_balance(db: Database, public_key: bytes, asset: bytes, balance: int) -> None:
    db.insert(prefix_balance_key(public_key, asset), _pack_u64(balance))


def delete_balance(db: Database, public_key: bytes, asset: bytes) -> None:
    db.remove(prefix_balance_key(public_key, asset))


def add_balance(db: Database, public_key: bytes, asset: bytes, amount: int) -> None:
    """Increase a balance, raising InvalidBalanceError on overflow."""
    key = prefix_balance_key(public_key, asset)
    balance = _decode_amount(_get_optional(db, key))
    new_balance = balance + _u64(amount, "amount")
    if new_balance > MAX_UINT64:
        raise InvalidBalanceError(
            f"invalid balance: could not add balance (asset={encode_id(asset)}, "
            f"bal={balance}, addr={bytes(public_key).hex()}, amount={amount})"
        )
    db.insert(key, _pack_u64(new_balance))


def sub_balance(db: Database, public_key: bytes, asset: bytes, amount: int) -> None:
    """Decrease a balance, removing the record when it reaches zero."""
    key = prefix_balance_key(public_key, asset)
    balance = _decode_amount(_get_optional(db, key))
    new_balance = balance - _u64(amount, "amount")
    if new_balance < 0:
        raise InvalidBalanceError(
            f"invalid balance: could not subtract balance (asset={encode_id(asset)}, "
            f"bal={balance}, addr={bytes(public_key).hex()}, amount={amount})"
        )
    if new_balance == 0:
        db.remove(key)
    else:
        db.insert(key, _pack_u64(new_balance))


# Assets


def prefix_asset_key(asset: bytes) -> bytes:
    """[assetPrefix] + [asset]"""
    return bytes([ASSET_PREFIX]) + _fixed(asset, ID_LEN, "asset")


def _decode_asset(value: bytes | None) -> Asset | None:
    if value is None:
        return None
    metadata_len = int.from_bytes(value[:UINT16_LEN], "big")
    offset = UINT16_LEN + metadata_len
    metadata = value[UINT16_LEN:offset]
    supply = _unpack_u64(value[offset:])
    offset += UINT64_LEN
    owner = value[offset : offset + PUBLIC_KEY_LEN]
    warp = value[offset + PUBLIC_KEY_LEN] == 0x1
    return Asset(metadata=bytes(metadata), supply=supply, owner=bytes(owner), warp=warp)


def get_asset_from_state(read_state: ReadState, asset: bytes) -> Asset | None:
    """Return an asset through a bulk state reader, or None if it does not exist."""
    return _decode_asset(_read_one(read_state, prefix_asset_key(asset)))


def get_asset(db: Database, asset: bytes) -> Asset | None:
    """Return an asset, or None if it does not exist."""
    return _decode_asset(_get_optional(db, prefix_asset_key(asset)))


def set_asset(
    db: Database,
    asset: bytes,
    metadata: bytes,
    supply: int,
    owner: bytes,
    warp: bool,
) -> None:
    metadata = bytes(metadata)
    if len(metadata) > MAX_UINT16:
        raise ValueError(f"metadata is longer than {MAX_UINT16} bytes")
    value = b"".join(
        (
            len(metadata).to_bytes(UINT16_LEN, "big"),
            metadata,
            _pack_u64(supply),
            _fixed(owner, PUBLIC_KEY_LEN, "owner"),
            b"\x01" if warp else b"\x00",
        )
    )
    db.insert(prefix_asset_key(asset), value)


def delete_asset(db: Database, asset: bytes) -> None:
    db.remove(prefix_asset_key(asset))


# Orders


def prefix_order_key(tx_id: bytes) -> bytes:
    """[orderPrefix] + [txID]"""
    return bytes([ORDER_PREFIX]) + _fixed(tx_id, ID_LEN, "tx id")


def set_order(
    db: Database,
    tx_id: bytes,
    in_asset: bytes,
    in_tick: int,
    out_asset: bytes,
    out_tick: int,
    supply: int,
    owner: bytes,
) -> None:
    value = _ORDER_VALUE.pack(
        _fixed(in_asset, ID_LEN, "in asset"),
        _u64(in_tick, "in tick"),
        _fixed(out_asset, ID_LEN, "out asset"),
        _u64(out_tick, "out tick"),
        _u64(supply, "supply"),
        _fixed(owner, PUBLIC_KEY_LEN, "owner"),
    )
    db.insert(prefix_order_key(tx_id), value)


def get_order(db: Database, order_id: bytes) -> Order | None:
    """Return an open order, or None if it does not exist."""
    value = _get_optional(db, prefix_order_key(order_id))
    if value is None:
        return None
    in_asset, in_tick, out_asset, out_tick, remaining, owner = _ORDER_VALUE.unpack(
        value[: _ORDER_VALUE.size]
    )
    return Order(
        in_asset=in_asset,
        in_tick=in_tick,
        out_asset=out_asset,
        out_tick=out_tick,
        remaining=remaining,
        owner=owner,
    )


def delete_order(db: Database, order_id: bytes) -> None:
    db.remove(prefix_order_key(order_id))


# Loans


def prefix_loan_key(asset: bytes, destination: bytes) -> bytes:
    """[loanPrefix] + [asset] + [destination]"""
    return (
        bytes([LOAN_PREFIX])
        + _fixed(asset, ID_LEN, "asset")
        + _fixed(destination, ID_LEN, "destination")
    )


def get_loan_from_state(read_state: ReadState, asset: bytes, destination: bytes) -> int:
    """Return a loan amount through a bulk state reader, 0 if there is none."""
    return _decode_amount(_read_one(read_state, prefix_loan_key(asset, destination)))


def get_loan(db: Database, asset: bytes, destination: bytes) -> int:
    """Return the amount of an asset lent to a destination chain, 0 if none."""
    return _decode_amount(_get_optional(db, prefix_loan_key(asset, destination)))


def set_loan(db: Database, asset: bytes, destination: bytes, amount: int) -> None:
    db.insert(prefix_loan_key(asset, destination), _pack_u64(amount))


def add_loan(db: Database, asset: bytes, destination: bytes, amount: int) -> None:
    """Increase a loan, raising InvalidBalanceError on overflow."""
    loan = get_loan(db, asset, destination)
    new_loan = loan + _u64(amount, "amount")
    if new_loan > MAX_UINT64:
        raise InvalidBalanceError(
            f"invalid balance: could not add loan (asset={encode_id(asset)}, "
            f"destination={encode_id(destination)}, amount={amount})"
        )
    set_loan(db, asset, destination, new_loan)


def sub_loan(db: Database, asset: bytes, destination: bytes, amount: int) -> None:
    """Decrease a loan, removing the record when it reaches zero."""
    loan = get_loan(db, asset, destination)
    new_loan = loan - _u64(amount, "amount")
    if new_loan < 0:
        raise InvalidBalanceError(
            f"invalid balance: could not subtract loan (asset={encode_id(asset)}, "
            f"destination={encode_id(destination)}, amount={amount})"
        )
    if new_loan == 0:
        db.remove(prefix_loan_key(asset, destination))
    else:
        set_loan(db, asset, destination, new_loan)


# Other keys


def height_key() -> bytes:
    return _HEIGHT_KEY


def incoming_warp_key_prefix(source_chain_id: bytes, msg_id: bytes) -> bytes:
    return (
        bytes([INCOMING_WARP_PREFIX])
        + _fixed(source_chain_id, ID_LEN, "source chain id")
        + _fixed(msg_id, ID_LEN, "message id")
    )


def outgoing_warp_key_prefix(tx_id: bytes) -> bytes:
    return bytes([OUTGOING_WARP_PREFIX]) + _fixed(tx_id, ID_LEN, "tx id")