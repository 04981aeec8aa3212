import json

import pytest

from tokenstate import storage
from tokenstate.encoding import address
from tokenstate.rpc_client import AssetInfo, JSONRPCClient, RPCError, TxStatus
from tokenstate.rpc_server import DEFAULT_HRP, JSON_RPC_ENDPOINT, JSONRPCServer
from tokenstate.storage import MemoryDatabase, NotFoundError

CHAIN = bytes([9]) * 32
TX = bytes([1]) * 32
ASSET = bytes([2]) * 32
DEST = bytes([3]) * 32
OWNER = bytes(range(32))
BASE_URI = "http://localhost:9650/ext/bc/chain"


class FakeController:
    def __init__(self):
        self.db = MemoryDatabase()
        self.book = {"pair": [{"id": "order-1", "remaining": 4}]}

    def _read(self, keys):
        values = []
        for key in keys:
            try:
                values.append(self.db.get_value(key))
            except NotFoundError:
                values.append(None)
        return values

    def genesis(self):
        return {"minUnitPrice": 1}

    def get_transaction(self, tx_id):
        return storage.get_transaction(self.db, tx_id)

    def get_asset_from_state(self, asset):
        return storage.get_asset_from_state(self._read, asset)

    def get_balance_from_state(self, public_key, asset):
        return storage.get_balance_from_state(self._read, public_key, asset)

    def orders(self, pair, limit):
        return self.book.get(pair, [])[:limit]

    def get_loan_from_state(self, asset, destination):
        return storage.get_loan_from_state(self._read, asset, destination)


class Wire:
    def __init__(self, server, before=None):
        self.server = server
        self.before = before
        self.calls = []

    def __call__(self, url, body):
        self.calls.append((url, json.loads(body)))
        if self.before is not None:
            self.before(len(self.calls))
        return json.dumps(self.server.handle(body)).encode()


@pytest.fixture
def controller():
    return FakeController()


@pytest.fixture
def wire(controller):
    return Wire(JSONRPCServer(controller))


@pytest.fixture
def client(wire):
    return JSONRPCClient(BASE_URI + "/", CHAIN, transport=wire, poll_interval=0)


def test_url_and_method_name(client, wire, controller):
    assert client.uri == BASE_URI + JSON_RPC_ENDPOINT
    client.balance(address(OWNER, DEFAULT_HRP), ASSET)
    url, request = wire.calls[0]
    assert url == BASE_URI + JSON_RPC_ENDPOINT
    assert request["method"] == "tokenvm.balance"


def test_genesis_is_cached(client, wire):
    first = client.genesis()
    second = client.genesis()
    assert first == second == {"minUnitPrice": 1}
    assert len(wire.calls) == 1


def test_tx_found(client, controller):
    storage.store_transaction(controller.db, TX, 1234, False, 1)
    assert client.tx(TX) == TxStatus(success=False, timestamp=1234)


def test_tx_missing_is_none(client):
    assert client.tx(TX) is None


def test_asset_found(client, controller):
    storage.set_asset(controller.db, ASSET, b"coin", 15, OWNER, True)
    assert client.asset(ASSET) == AssetInfo(
        metadata=b"coin", supply=15, owner=address(OWNER, DEFAULT_HRP), warp=True
    )


def test_asset_without_metadata(client, controller):
    storage.set_asset(controller.db, ASSET, b"", 0, OWNER, False)
    assert client.asset(ASSET).metadata == b""


def test_asset_missing_is_none(client):
    assert client.asset(ASSET) is None


def test_balance_orders_and_loan(client, controller):
    storage.set_balance(controller.db, OWNER, ASSET, 100)
    storage.set_loan(controller.db, ASSET, DEST, 2900)
    assert client.balance(address(OWNER, DEFAULT_HRP), ASSET) == 100
    assert client.orders("pair") == controller.book["pair"]
    assert client.orders("other") == []
    assert client.loan(ASSET, DEST) == 2900


def test_server_error_is_raised(client):
    with pytest.raises(RPCError):
        client.balance("bogus", ASSET)


def test_unreadable_response_is_raised():
    broken = JSONRPCClient(BASE_URI, CHAIN, transport=lambda url, body: b"<html>")
    with pytest.raises(RPCError, match="invalid response"):
        broken.balance(address(OWNER, DEFAULT_HRP), ASSET)


def test_wait_for_transaction(controller):
    def before(count):
        if count == 3:
            storage.store_transaction(controller.db, TX, 10, True, 1)

    wire = Wire(JSONRPCServer(controller), before)
    client = JSONRPCClient(BASE_URI, CHAIN, transport=wire, poll_interval=0)
    assert client.wait_for_transaction(TX) is True
    assert len(wire.calls) == 3


def test_wait_for_balance(controller):
    def before(count):
        storage.add_balance(controller.db, OWNER, ASSET, 2)

    wire = Wire(JSONRPCServer(controller), before)
    client = JSONRPCClient(BASE_URI, CHAIN, transport=wire, poll_interval=0)
    client.wait_for_balance(address(OWNER, DEFAULT_HRP), ASSET, 5)
    assert storage.get_balance(controller.db, OWNER, ASSET) >= 5
    assert len(wire.calls) == 3


def test_wait_for_balance_times_out(wire):
    client = JSONRPCClient(BASE_URI, CHAIN, transport=wire, poll_interval=0, timeout=0)
    with pytest.raises(TimeoutError):
        client.wait_for_balance(address(OWNER, DEFAULT_HRP), ASSET, 5)