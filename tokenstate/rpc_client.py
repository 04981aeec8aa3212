"""Client for the token chain's JSON-RPC query service."""

from __future__ import annotations

import base64
import itertools
import json
import logging
import time
import urllib.request
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from tokenstate.encoding import encode_id
from tokenstate.rpc_server import (
    ASSET_NOT_FOUND,
    DEFAULT_NAMESPACE,
    JSON_RPC_ENDPOINT,
    TX_NOT_FOUND,
)

_log = logging.getLogger(__name__)

Transport = Callable[[str, bytes], bytes]
"""Posts a request body to a URL and returns the response body."""


class RPCError(Exception):
    """Raised when the service answers with an error or an unreadable reply."""

    def __init__(self, message: str, code: int | None = None) -> None:
        super().__init__(message)
        self.code = code


@dataclass(frozen=True)
class TxStatus:
    success: bool
    timestamp: int


@dataclass(frozen=True)
class AssetInfo:
    metadata: bytes
    supply: int
    owner: str
    warp: bool


def _http_post(url: str, body: bytes) -> bytes:
    request = urllib.request.Request(
        url, data=body, headers={"Content-Type": "application/json"}, method="POST"
    )
    with urllib.request.urlopen(request) as response:
        return response.read()


class JSONRPCClient:
    """Queries one chain's token service; the genesis is fetched once and cached."""

    def __init__(
        self,
        uri: str,
        chain_id: bytes,
        *,
        namespace: str = DEFAULT_NAMESPACE,
        transport: Transport | None = None,
        poll_interval: float = 0.5,
        timeout: float | None = None,
    ) -> None:
        self.uri = uri.removesuffix("/") + JSON_RPC_ENDPOINT
        self.chain_id = bytes(chain_id)
        self.namespace = namespace
        self.poll_interval = poll_interval
        self.timeout = timeout
        self._transport = transport or _http_post
        self._request_ids = itertools.count(1)
        self._genesis: Any = None

    def _request(self, method: str, params: dict[str, Any] | None) -> Any:
        body = json.dumps(
            {
                "jsonrpc": "2.0",
                "method": f"{self.namespace}.{method}",
                "params": params,
                "id": next(self._request_ids),
            }
        ).encode()
        raw = self._transport(self.uri, body)
        try:
            response = json.loads(raw)
        except ValueError as exc:
            raise RPCError(f"invalid response: {exc}") from exc
        if not isinstance(response, dict):
            raise RPCError("invalid response: not an object")
        error = response.get("error")
        if error:
            if isinstance(error, dict):
                raise RPCError(str(error.get("message", error)), error.get("code"))
            raise RPCError(str(error))
        return response.get("result") or {}

    def genesis(self) -> Any:
        if self._genesis is not None:
            return self._genesis
        self._genesis = self._request("genesis", None).get("genesis")
        return self._genesis

    def tx(self, tx_id: bytes) -> TxStatus | None:
        """Return the transaction's outcome, or None if it is not yet known."""
        try:
            result = self._request("tx", {"txId": encode_id(tx_id)})
        except RPCError as exc:
            if TX_NOT_FOUND in str(exc):
                return None
            raise
        return TxStatus(success=bool(result.get("success")), timestamp=int(result.get("timestamp", 0)))

    def asset(self, asset: bytes) -> AssetInfo | None:
        """Return the asset's details, or None if it does not exist."""
        try:
            result = self._request("asset", {"asset": encode_id(asset)})
        except RPCError as exc:
            if ASSET_NOT_FOUND in str(exc):
                return None
            raise
        metadata = result.get("metadata")
        return AssetInfo(
            metadata=base64.b64decode(metadata) if metadata else b"",
            supply=int(result.get("supply", 0)),
            owner=str(result.get("owner", "")),
            warp=bool(result.get("warp")),
        )

    def balance(self, address: str, asset: bytes) -> int:
        result = self._request("balance", {"address": address, "asset": encode_id(asset)})
        return int(result.get("amount", 0))

    def orders(self, pair: str) -> list[Any]:
        return list(self._request("orders", {"pair": pair}).get("orders") or [])

    def loan(self, asset: bytes, destination: bytes) -> int:
        result = self._request(
            "loan", {"asset": encode_id(asset), "destination": encode_id(destination)}
        )
        return int(result.get("amount", 0))

    def _wait(self, done: Callable[[], bool]) -> None:
        deadline = None if self.timeout is None else time.monotonic() + self.timeout
        while not done():
            if deadline is not None and time.monotonic() >= deadline:
                raise TimeoutError("timed out waiting for condition")
            time.sleep(self.poll_interval)

    def wait_for_balance(self, address: str, asset: bytes, minimum: int) -> None:
        """Poll until the address holds at least ``minimum`` of the asset."""

        def reached() -> bool:
            if self.balance(address, asset) >= minimum:
                return True
            _log.info("waiting for %d balance: %s", minimum, address)
            return False

        self._wait(reached)

    def wait_for_transaction(self, tx_id: bytes) -> bool:
        """Poll until the transaction is known and return whether it succeeded."""
        outcome: list[TxStatus] = []

        def found() -> bool:
            status = self.tx(tx_id)
            if status is None:
                return False
            outcome.append(status)
            return True

        self._wait(found)
        return outcome[0].success