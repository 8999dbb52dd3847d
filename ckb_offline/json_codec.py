"""Checked wrappers around pyckb's JSON-RPC encoding.

Encoding uses each type's ``rpc()`` as is. Decoding goes through
``rpc_decode`` and then range-checks the result, so every malformed value
surfaces as :class:`CodecError` rather than whatever pyckb happened to raise.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, TypeVar

from .types import (
    CellDep,
    CellInput,
    CellOutput,
    Header,
    HeaderView,
    OutPoint,
    Transaction,
    check_cell_dep,
    check_cell_input,
    check_cell_output,
    check_out_point,
    check_transaction,
)

HEX_PREFIX = "0x"

_T = TypeVar("_T")

# pyckb reports bad input through asserts and plain lookups.
_DECODE_ERRORS = (AssertionError, AttributeError, IndexError, KeyError, TypeError, ValueError)


class CodecError(ValueError):
    """Raised when a JSON value does not match the ledger encoding."""


def hex_bytes(data: bytes) -> str:
    return HEX_PREFIX + bytes(data).hex()


def parse_bytes(raw: Any) -> bytes:
    if not isinstance(raw, str) or not raw.startswith(HEX_PREFIX):
        raise CodecError(f"expected 0x-prefixed hex bytes, got {raw!r}")
    try:
        return bytes.fromhex(raw[len(HEX_PREFIX) :])
    except ValueError as exc:
        raise CodecError(f"invalid hex bytes: {raw!r}") from exc


def _decoded(kind: str, decode: Callable[[Any], _T], check: Callable[[_T], None], obj: Any) -> _T:
    if not isinstance(obj, dict):
        raise CodecError(f"invalid {kind}: expected a JSON object, got {type(obj).__name__}")
    try:
        value = decode(obj)
        check(value)
    except _DECODE_ERRORS as exc:
        raise CodecError(f"invalid {kind}: {exc!r}") from exc
    return value


def decode_out_point(obj: Any) -> OutPoint:
    return _decoded("out point", OutPoint.rpc_decode, check_out_point, obj)


def decode_cell_output(obj: Any) -> CellOutput:
    return _decoded("cell output", CellOutput.rpc_decode, check_cell_output, obj)


def decode_cell_input(obj: Any) -> CellInput:
    return _decoded("cell input", CellInput.rpc_decode, check_cell_input, obj)


def decode_cell_dep(obj: Any) -> CellDep:
    return _decoded("cell dep", CellDep.rpc_decode, check_cell_dep, obj)


def decode_transaction(obj: Any) -> Transaction:
    return _decoded("transaction", Transaction.rpc_decode, check_transaction, obj)


def encode_header(view: HeaderView) -> Dict[str, Any]:
    """Encode a header view; ``hash`` is the view's hash, forced or computed."""

    return {**view.header.rpc(), "hash": hex_bytes(view.hash)}


def _header_view(obj: Dict[str, Any]) -> HeaderView:
    # Older nodes name the extension hash field ``uncles_hash``.
    if "extra_hash" not in obj and "uncles_hash" in obj:
        obj = {**obj, "extra_hash": obj["uncles_hash"]}
    header = Header.rpc_decode(obj)
    raw_hash = obj.get("hash")
    return HeaderView(header, parse_bytes(raw_hash) if raw_hash is not None else None)


def decode_header(obj: Any) -> HeaderView:
    """Rebuild a header view, keeping the literal ``hash`` when one is given."""

    return _decoded("header", _header_view, lambda view: None, obj)
