# tokenstate

`tokenstate` is the state layer of a small token ledger. It provides:

- `tokenstate.storage`: the binary key layout and value encoding for
  transactions, balances, assets, orders, loans and warp messages, on top of
  any key-value database, with balance and loan bookkeeping that checks for
  unsigned 64-bit overflow and underflow;
- `tokenstate.encoding`: bech32 addresses for 32-byte public keys and cb58
  text for 32-byte identifiers;
- `tokenstate.rpc_server`: a JSON-RPC 2.0 request handler that answers queries
  from a controller's state;
- `tokenstate.rpc_client`: a client for that service.

The package has no third-party dependencies.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Storage

Any object with `get_value(key)`, `insert(key, value)` and `remove(key)`
serves as a database (the `Database` protocol). `get_value` must raise
`NotFoundError` for a missing key. `MemoryDatabase` is a dictionary-backed one.

```python
from tokenstate.storage import (
    MemoryDatabase, set_balance, add_balance, sub_balance, get_balance,
    set_asset, get_asset, InvalidBalanceError,
)

db = MemoryDatabase()
owner = bytes(32)
asset = bytes(range(32))

set_balance(db, owner, asset, 100)
add_balance(db, owner, asset, 50)
sub_balance(db, owner, asset, 150)    # the record is removed once it reaches zero
assert get_balance(db, owner, asset) == 0

try:
    sub_balance(db, owner, asset, 1)
except InvalidBalanceError as exc:
    print(exc)

set_asset(db, asset, b"TKN", 1_000, owner, False)
print(get_asset(db, asset))           # an Asset, or None if the asset is missing
```

Keys, public keys and identifiers are 32-byte `bytes`; a value of the wrong
length, or an amount outside the unsigned 64-bit range, raises `ValueError`.

- Transactions: `store_transaction` and `get_transaction`, which returns a
  `Transaction(timestamp, success, units)` or `None`.
- Assets: `set_asset`, `get_asset`, `delete_asset`; `Asset(metadata, supply,
  owner, warp)`. Metadata is limited to 65535 bytes.
- Orders: `set_order`, `get_order` (an `Order(in_asset, in_tick, out_asset,
  out_tick, remaining, owner)` or `None`) and `delete_order`.
- Loans: `set_loan`, `get_loan`, `add_loan` and `sub_loan`; a loan that
  reaches zero is removed. Missing balances and loans read as 0.
- Bulk readers: `get_balance_from_state`, `get_asset_from_state` and
  `get_loan_from_state` take a `ReadState` callable that receives a sequence
  of keys and returns one value per key, `None` for a missing one.
- Raw keys: the `prefix_*_key` functions, `height_key`,
  `incoming_warp_key_prefix` and `outgoing_warp_key_prefix`.

## Addresses and identifiers

`address(public_key, hrp)` formats a 32-byte public key as a bech32 address
and `parse_address(text, hrp)` turns it back, checking the prefix; a malformed
address raises `AddressError`. `encode_id` and `decode_id` convert 32-byte
identifiers to cb58 text and back; a bad checksum or length raises
`ValueError`.

## JSON-RPC

`JSONRPCServer(controller, hrp="token")` wraps a `Controller`, which supplies
`genesis()`, `get_transaction`, `get_asset_from_state`,
`get_balance_from_state`, `orders(pair, limit)` and `get_loan_from_state`.
Its methods `genesis`, `tx`, `asset`, `balance`, `orders` (at most 128 orders)
and `loan` can be called directly; `tx` raises `TxNotFoundError` and `asset`
raises `AssetNotFoundError` when nothing is found.

`handle(payload)` takes a JSON-RPC 2.0 request (a string, bytes or a mapping)
and returns the response object. The method name may carry a namespace prefix
such as `tokenvm.balance`. Identifiers in parameters are cb58 strings, bytes
in results are base64. Bad JSON, an unknown method or bad parameters give the
standard error codes; any handler failure is returned as error -32000 with
its message.

`JSONRPCClient(uri, chain_id, *, namespace="tokenvm", transport=None,
poll_interval=0.5, timeout=None)` posts to `uri` followed by `/tokenapi`,
using `urllib` unless a `transport(url, body) -> bytes` is given. The genesis
is fetched once and cached. `tx` returns a `TxStatus(success, timestamp)` or
`None` when the transaction is not known; `asset` returns an
`AssetInfo(metadata, supply, owner, warp)` or `None` when the asset does not
exist. `balance`, `orders` and `loan` return the service's answers.
`wait_for_balance` and `wait_for_transaction` poll every `poll_interval`
seconds and raise `TimeoutError` once `timeout` is exceeded; any other error
reply raises `RPCError`.

## What this package does not do

There is no chain behind the service: no block production, transaction
execution, genesis format or order book. A `Controller` with those lookups
must be supplied. `JSONRPCServer` also does not listen on a network socket;
`handle` answers request bodies that an HTTP server of your choosing passes to
it. There is no command-line program.