"""Live data source backed by a CKB node."""

from __future__ import annotations

import logging
from typing import Dict, Optional

from .json_codec import decode_cell_output, decode_header, hex_bytes, parse_bytes
from .mock_tx import CellWithData
from .resource import LiveSourceError
from .rpc_client import CkbRpcClient, RPCError, RPCTransportError
from .types import HeaderView, OutPoint

logger = logging.getLogger(__name__)


class RpcResourceLoader:
    """Fetch cells and headers a mock transaction does not declare.

    Cells reported by the node as anything but ``live`` are treated as absent.
    Successful lookups are cached for the lifetime of the loader, so one
    loader serves one resolution session.
    """

    def __init__(self, rpc: CkbRpcClient, *, use_cache: bool = True) -> None:
        self.rpc = rpc
        self.use_cache = use_cache
        self._cells: Dict[OutPoint, CellWithData] = {}
        self._headers: Dict[bytes, HeaderView] = {}

    def get_live_cell(self, out_point: OutPoint) -> Optional[CellWithData]:
        if self.use_cache and out_point in self._cells:
            return self._cells[out_point]
        try:
            response = self.rpc.get_live_cell(out_point.rpc(), True)
        except (RPCError, RPCTransportError) as exc:
            raise LiveSourceError(str(exc)) from exc

        status = (response or {}).get("status")
        cell = (response or {}).get("cell")
        if status != "live" or cell is None:
            logger.debug("Cell %s is not live (status=%s)", out_point, status)
            return None
        try:
            output = decode_cell_output(cell["output"])
            data_obj = cell.get("data") or {}
            data = parse_bytes(data_obj["content"]) if data_obj else b""
        except (KeyError, TypeError, ValueError) as exc:
            raise LiveSourceError(f"Malformed live cell response for {out_point}: {exc}") from exc

        found = (output, data)
        if self.use_cache:
            self._cells[out_point] = found
        return found

    def get_header(self, block_hash: bytes) -> Optional[HeaderView]:
        block_hash = bytes(block_hash)
        if self.use_cache and block_hash in self._headers:
            return self._headers[block_hash]
        try:
            raw = self.rpc.get_header(hex_bytes(block_hash))
        except (RPCError, RPCTransportError) as exc:
            raise LiveSourceError(str(exc)) from exc
        if raw is None:
            return None
        try:
            header = decode_header(raw)
        except (TypeError, ValueError) as exc:
            raise LiveSourceError(
                f"Malformed header response for 0x{block_hash.hex()}: {exc}"
            ) from exc
        if self.use_cache:
            self._headers[block_hash] = header
        return header
