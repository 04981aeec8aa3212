"""JSON-RPC service that answers token-chain queries from a controller's state."""

from __future__ import annotations

import base64
import dataclasses
import json
from collections.abc import Callable, Mapping, Sequence
from typing import Any, Protocol

from tokenstate.encoding import ID_LEN, decode_id, parse_address, address
from tokenstate.storage import Asset, Transaction

JSON_RPC_ENDPOINT = "/tokenapi"
ORDERS_TO_SEND = 128

DEFAULT_HRP = "token"
DEFAULT_NAMESPACE = "tokenvm"
EMPTY_ID = bytes(ID_LEN)

TX_NOT_FOUND = "tx not found"
ASSET_NOT_FOUND = "asset not found"

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
SERVER_ERROR = -32000


class TxNotFoundError(LookupError):
    """Raised when a queried transaction is unknown."""

    def __init__(self, message: str = TX_NOT_FOUND) -> None:
        super().__init__(message)

    def __str__(self) -> str:
        return self.args[0]


class AssetNotFoundError(LookupError):
    """Raised when a queried asset does not exist."""

    def __init__(self, message: str = ASSET_NOT_FOUND) -> None:
        super().__init__(message)

    def __str__(self) -> str:
        return self.args[0]


class _InvalidParams(ValueError):
    pass


class Controller(Protocol):
    """What the service needs from the running chain."""

    def genesis(self) -> Any: ...

    def get_transaction(self, tx_id: bytes) -> Transaction | None: ...

    def get_asset_from_state(self, asset: bytes) -> Asset | None: ...

    def get_balance_from_state(self, public_key: bytes, asset: bytes) -> int: ...

    def orders(self, pair: str, limit: int) -> Sequence[Any]: ...

    def get_loan_from_state(self, asset: bytes, destination: bytes) -> int: ...


def _jsonable(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return base64.b64encode(bytes(value)).decode("ascii")
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: _jsonable(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, Mapping):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


def _id_param(params: Mapping[str, Any], key: str) -> bytes:
    value = params.get(key)
    if value is None:
        return EMPTY_ID
    if not isinstance(value, str):
        raise _InvalidParams(f"{key} must be a string")
    try:
        return decode_id(value)
    except ValueError as exc:
        raise _InvalidParams(f"invalid {key}: {exc}") from exc


def _str_param(params: Mapping[str, Any], key: str) -> str:
    value = params.get(key, "")
    if not isinstance(value, str):
        raise _InvalidParams(f"{key} must be a string")
    return value


def _error(request_id: Any, code: int, message: str) -> dict[str, Any]:
    return {"jsonrpc": "2.0", "error": {"code": code, "message": message}, "id": request_id}


class JSONRPCServer:
    """Serves genesis, transaction, asset, balance, order and loan queries."""

    def __init__(self, controller: Controller, hrp: str = DEFAULT_HRP) -> None:
        self.controller = controller
        self.hrp = hrp
        self._handlers: dict[str, Callable[[Mapping[str, Any]], Any]] = {
            "genesis": lambda p: self.genesis(),
            "tx": lambda p: self.tx(_id_param(p, "txId")),
            "asset": lambda p: self.asset(_id_param(p, "asset")),
            "balance": lambda p: self.balance(_str_param(p, "address"), _id_param(p, "asset")),
            "orders": lambda p: self.orders(_str_param(p, "pair")),
            "loan": lambda p: self.loan(_id_param(p, "asset"), _id_param(p, "destination")),
        }

    def genesis(self) -> dict[str, Any]:
        return {"genesis": self.controller.genesis()}

    def tx(self, tx_id: bytes) -> dict[str, Any]:
        record = self.controller.get_transaction(tx_id)
        if record is None:
            raise TxNotFoundError()
        return {"timestamp": record.timestamp, "success": record.success, "units": record.units}

    def asset(self, asset: bytes) -> dict[str, Any]:
        info = self.controller.get_asset_from_state(asset)
        if info is None:
            raise AssetNotFoundError()
        return {
            "metadata": info.metadata,
            "supply": info.supply,
            "owner": address(info.owner, self.hrp),
            "warp": info.warp,
        }

    def balance(self, address: str, asset: bytes) -> dict[str, Any]:
        public_key = parse_address(address, self.hrp)
        return {"amount": self.controller.get_balance_from_state(public_key, asset)}

    def orders(self, pair: str) -> dict[str, Any]:
        return {"orders": list(self.controller.orders(pair, ORDERS_TO_SEND))}

    def loan(self, asset: bytes, destination: bytes) -> dict[str, Any]:
        return {"amount": self.controller.get_loan_from_state(asset, destination)}

    def handle(self, payload: str | bytes | Mapping[str, Any]) -> dict[str, Any]:
        """Answer one JSON-RPC 2.0 request and return the response object."""
        if isinstance(payload, (str, bytes, bytearray)):
            try:
                request = json.loads(payload)
            except ValueError as exc:
                return _error(None, PARSE_ERROR, f"invalid JSON: {exc}")
        else:
            request = payload
        if not isinstance(request, Mapping):
            return _error(None, INVALID_REQUEST, "request must be an object")

        request_id = request.get("id")
        method = request.get("method")
        if not isinstance(method, str):
            return _error(request_id, INVALID_REQUEST, "method must be a string")
        handler = self._handlers.get(method.rsplit(".", 1)[-1])
        if handler is None:
            return _error(request_id, METHOD_NOT_FOUND, f"method {method!r} not found")

        params = request.get("params")
        if isinstance(params, list):
            params = params[0] if params else None
        if params is None:
            params = {}
        if not isinstance(params, Mapping):
            return _error(request_id, INVALID_PARAMS, "params must be an object")

        try:
            result = handler(params)
        except _InvalidParams as exc:
            return _error(request_id, INVALID_PARAMS, str(exc))
        except Exception as exc:  # every handler failure is reported to the caller
            return _error(request_id, SERVER_ERROR, str(exc))
        return {"jsonrpc": "2.0", "result": _jsonable(result), "id": request_id}