"""Typed JSON-RPC client for CKB nodes.

The client backs the live data source used when a mock transaction does not
declare a cell or header itself. Configuration is shared via
``load_rpc_config`` so library callers reuse a consistent connection surface.
No consensus logic is implemented here; the client simply forwards requests
and surfaces errors clearly.
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import Any, Dict, Optional

import requests
from requests import RequestException, Response

from .config import RPCConfig, load_rpc_config

logger = logging.getLogger(__name__)


class RPCError(RuntimeError):
    """Raised when the CKB node responds with an RPC error."""

    def __init__(self, code: int, message: str) -> None:
        super().__init__(f"RPC error {code}: {message}")
        self.code = code
        self.message = message


class RPCTransportError(RuntimeError):
    """Raised when the RPC endpoint is unreachable or returns malformed data."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class CkbRpcClient:
    """Blocking JSON-RPC client for a CKB node.

    Each helper maps directly to an RPC method exposed by the node and returns
    the parsed JSON ``result``. Hashes are passed as ``0x``-prefixed hex
    strings, exactly as the node expects them. The endpoint can be overridden
    with ``CKB_RPC_URL`` or the ``rpc.url`` key of ``~/.ckb-offline.yaml``.
    """

    def __init__(self, config: RPCConfig) -> None:
        self.config = config
        self._session = requests.Session()

    @classmethod
    def from_env(cls) -> "CkbRpcClient":
        """Instantiate a client using environment variables or config file."""

        return cls(load_rpc_config())

    def call(self, method: str, params: Optional[list[Any]] = None) -> Any:
        """Perform a JSON-RPC request."""

        payload = {
            "jsonrpc": "2.0",
            "id": str(uuid.uuid4()),
            "method": method,
            "params": params or [],
        }
        logger.debug("RPC call %s params=%s", method, params)
        try:
            response = self._session.post(
                self.config.base_url,
                data=json.dumps(payload),
                headers={"content-type": "application/json"},
                timeout=self.config.timeout,
            )
        except RequestException as exc:
            logger.error(
                "RPC connection failed: %s",
                exc,
                exc_info=logger.isEnabledFor(logging.DEBUG),
            )
            raise RPCTransportError(
                "RPC connection failed. Ensure your CKB node is reachable and CKB_RPC_URL "
                "(or ~/.ckb-offline.yaml) points to the right host and port."
            ) from exc
        try:
            self._raise_for_status(response)
        except requests.HTTPError as exc:
            raise RPCTransportError(
                "RPC server returned an HTTP error; check the URL and CKB_RPC_URL settings.",
                status_code=response.status_code,
            ) from exc
        try:
            result = response.json()
        except ValueError as exc:
            logger.debug("RPC JSON parse error: %s", response.text, exc_info=True)
            raise RPCTransportError("RPC server returned malformed JSON") from exc
        if not isinstance(result, dict):
            raise RPCTransportError("RPC server returned a non-object JSON response")
        if result.get("error"):
            error = result["error"]
            raise RPCError(error.get("code", -1), error.get("message", "unknown"))
        return result.get("result")

    def _raise_for_status(self, response: Response) -> None:
        if not response.ok:
            logger.error("RPC HTTP error %s from %s", response.status_code, response.url)
            logger.error("RPC error body: %s", response.text)
        response.raise_for_status()

    # Convenience wrappers -------------------------------------------------

    def get_blockchain_info(self) -> Dict[str, Any]:
        return self.call("get_blockchain_info")

    def get_tip_block_number(self) -> int:
        return int(self.call("get_tip_block_number"), 16)

    def get_header(self, block_hash: str) -> Optional[Dict[str, Any]]:
        return self.call("get_header", [block_hash])

    def get_live_cell(self, out_point: Dict[str, Any], with_data: bool = True) -> Dict[str, Any]:
        """Return ``{"cell": ..., "status": ...}`` for ``out_point``."""

        return self.call("get_live_cell", [out_point, with_data])

    def get_transaction(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        return self.call("get_transaction", [tx_hash])

    def send_transaction(
        self, transaction: Dict[str, Any], outputs_validator: str | None = None
    ) -> str:
        params: list[Any] = [transaction]
        if outputs_validator is not None:
            params.append(outputs_validator)
        return self.call("send_transaction", params)
