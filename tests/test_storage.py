import pytest

from tokenstate.storage import (
    MAX_UINT64,
    Asset,
    InvalidBalanceError,
    MemoryDatabase,
    NotFoundError,
    Order,
    Transaction,
    add_balance,
    add_loan,
    delete_asset,
    delete_balance,
    delete_order,
    get_asset,
    get_asset_from_state,
    get_balance,
    get_balance_from_state,
    get_loan,
    get_loan_from_state,
    get_order,
    get_transaction,
    height_key,
    incoming_warp_key_prefix,
    outgoing_warp_key_prefix,
    prefix_asset_key,
    prefix_balance_key,
    prefix_loan_key,
    prefix_order_key,
    prefix_tx_key,
    set_asset,
    set_balance,
    set_loan,
    set_order,
    store_transaction,
    sub_balance,
    sub_loan,
)

EMPTY_ID = bytes(32)
ASSET = b"\x0a" * 32
OTHER_ASSET = b"\x0b" * 32
TX_ID = b"\x0c" * 32
DEST = b"\x0d" * 32
PK = b"\x01" * 32
OWNER = b"\x02" * 32


def reader(db):
    def read_state(keys):
        values = []
        for key in keys:
            try:
                values.append(db.get_value(key))
            except NotFoundError:
                values.append(None)
        return values

    return read_state


@pytest.fixture
def db():
    return MemoryDatabase()


def test_memory_database_missing_key_raises(db):
    with pytest.raises(NotFoundError):
        db.get_value(b"missing")


def test_memory_database_insert_remove(db):
    db.insert(b"k", b"v")
    assert db.get_value(b"k") == b"v"
    db.remove(b"k")
    assert b"k" not in db
    assert len(db) == 0


def test_key_prefixes():
    assert prefix_tx_key(TX_ID) == b"\x00" + TX_ID
    assert prefix_balance_key(PK, ASSET) == b"\x00" + PK + ASSET
    assert prefix_asset_key(ASSET) == b"\x01" + ASSET
    assert prefix_order_key(TX_ID) == b"\x02" + TX_ID
    assert prefix_loan_key(ASSET, DEST) == b"\x03" + ASSET + DEST
    assert height_key() == b"\x04"
    assert incoming_warp_key_prefix(ASSET, TX_ID) == b"\x05" + ASSET + TX_ID
    assert outgoing_warp_key_prefix(TX_ID) == b"\x06" + TX_ID


def test_key_rejects_wrong_length():
    with pytest.raises(ValueError):
        prefix_asset_key(b"\x01" * 31)


def test_transaction_wire_format(db):
    store_transaction(db, TX_ID, 1, True, 2)
    raw = db.get_value(prefix_tx_key(TX_ID))
    assert raw == b"\x00" * 7 + b"\x01" + b"\x01" + b"\x00" * 7 + b"\x02"


def test_transaction_round_trip(db):
    store_transaction(db, TX_ID, 1_700_000_000, False, 472)
    assert get_transaction(db, TX_ID) == Transaction(1_700_000_000, False, 472)


def test_negative_timestamp_round_trip(db):
    store_transaction(db, TX_ID, -5, True, 0)
    assert get_transaction(db, TX_ID) == Transaction(-5, True, 0)


def test_missing_transaction(db):
    assert get_transaction(db, TX_ID) is None


def test_balance_missing_is_zero(db):
    assert get_balance(db, PK, ASSET) == 0
    assert get_balance_from_state(reader(db), PK, ASSET) == 0


def test_set_and_get_balance(db):
    set_balance(db, PK, ASSET, 1000000000000)
    assert get_balance(db, PK, ASSET) == 1000000000000
    assert get_balance_from_state(reader(db), PK, ASSET) == 1000000000000
    assert get_balance(db, PK, OTHER_ASSET) == 0


def test_delete_balance(db):
    set_balance(db, PK, ASSET, 7)
    delete_balance(db, PK, ASSET)
    assert prefix_balance_key(PK, ASSET) not in db


def test_add_and_sub_balance(db):
    add_balance(db, PK, ASSET, 5000)
    add_balance(db, PK, ASSET, 100)
    assert get_balance(db, PK, ASSET) == 5100
    sub_balance(db, PK, ASSET, 100)
    assert get_balance(db, PK, ASSET) == 5000


def test_sub_balance_to_zero_removes_record(db):
    set_balance(db, PK, ASSET, 10)
    sub_balance(db, PK, ASSET, 10)
    assert prefix_balance_key(PK, ASSET) not in db
    assert get_balance(db, PK, ASSET) == 0


def test_sub_balance_underflow(db):
    set_balance(db, PK, ASSET, 3)
    with pytest.raises(InvalidBalanceError, match="invalid balance"):
        sub_balance(db, PK, ASSET, 4)
    assert get_balance(db, PK, ASSET) == 3


def test_add_balance_overflow(db):
    set_balance(db, PK, ASSET, MAX_UINT64)
    with pytest.raises(InvalidBalanceError, match="could not add balance"):
        add_balance(db, PK, ASSET, 1)
    assert get_balance(db, PK, ASSET) == MAX_UINT64


def test_asset_round_trip(db):
    set_asset(db, ASSET, b"blah", 15, OWNER, False)
    expected = Asset(metadata=b"blah", supply=15, owner=OWNER, warp=False)
    assert get_asset(db, ASSET) == expected
    assert get_asset_from_state(reader(db), ASSET) == expected


def test_asset_empty_metadata_and_warp(db):
    set_asset(db, ASSET, b"", 0, EMPTY_ID, True)
    asset = get_asset(db, ASSET)
    assert asset.metadata == b""
    assert asset.warp is True
    assert asset.owner == EMPTY_ID


def test_asset_wire_layout(db):
    set_asset(db, ASSET, b"1", 0, OWNER, True)
    raw = db.get_value(prefix_asset_key(ASSET))
    assert raw[:3] == b"\x00\x01" + b"1"
    assert raw[3:11] == bytes(8)
    assert raw[11:43] == OWNER
    assert raw[43:] == b"\x01"


def test_asset_missing_and_delete(db):
    assert get_asset(db, ASSET) is None
    assert get_asset_from_state(reader(db), ASSET) is None
    set_asset(db, ASSET, b"x", 1, OWNER, False)
    delete_asset(db, ASSET)
    assert get_asset(db, ASSET) is None


def test_order_round_trip(db):
    set_order(db, TX_ID, ASSET, 1, OTHER_ASSET, 2, 4, OWNER)
    assert get_order(db, TX_ID) == Order(
        in_asset=ASSET, in_tick=1, out_asset=OTHER_ASSET, out_tick=2, remaining=4, owner=OWNER
    )
    raw = db.get_value(prefix_order_key(TX_ID))
    assert raw[:32] == ASSET
    assert raw[-32:] == OWNER


def test_order_missing_and_delete(db):
    assert get_order(db, TX_ID) is None
    set_order(db, TX_ID, ASSET, 4, OTHER_ASSET, 1, 5, OWNER)
    delete_order(db, TX_ID)
    assert get_order(db, TX_ID) is None


def test_loan_add_and_sub(db):
    assert get_loan(db, EMPTY_ID, DEST) == 0
    add_loan(db, EMPTY_ID, DEST, 100)
    add_loan(db, EMPTY_ID, DEST, 10)
    assert get_loan(db, EMPTY_ID, DEST) == 110
    assert get_loan_from_state(reader(db), EMPTY_ID, DEST) == 110
    sub_loan(db, EMPTY_ID, DEST, 110)
    assert prefix_loan_key(EMPTY_ID, DEST) not in db


def test_sub_loan_underflow(db):
    set_loan(db, ASSET, DEST, 5)
    with pytest.raises(InvalidBalanceError, match="could not subtract loan"):
        sub_loan(db, ASSET, DEST, 6)
    assert get_loan(db, ASSET, DEST) == 5


def test_add_loan_overflow(db):
    set_loan(db, ASSET, DEST, MAX_UINT64)
    with pytest.raises(InvalidBalanceError):
        add_loan(db, ASSET, DEST, 1)


def test_set_balance_rejects_out_of_range(db):
    with pytest.raises(ValueError):
        set_balance(db, PK, ASSET, MAX_UINT64 + 1)
    with pytest.raises(ValueError):
        set_balance(db, PK, ASSET, -1)