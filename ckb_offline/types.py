"""Ledger types for CKB cells, transactions and headers.

The value types themselves come from :mod:`pyckb.core`. This module adds what
a resolution snapshot needs on top of them: header views that may carry a
caller-supplied hash, epoch fractions, dependency group payloads, occupied
capacity and the range checks that keep skeletons from untrusted documents
hashable.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Iterable, Optional, Tuple

import pyckb.core
import pyckb.molecule
from pyckb.core import (
    CellDep,
    CellInput,
    CellOutput,
    Header,
    OutPoint,
    RawHeader,
    RawTransaction,
    Script,
    Transaction,
)

__all__ = [
    "CellDep",
    "CellInput",
    "CellOutput",
    "DepGroupDataError",
    "EpochNumberWithFraction",
    "Header",
    "HeaderView",
    "OutPoint",
    "RawHeader",
    "RawTransaction",
    "Script",
    "Transaction",
]

HASH_SIZE = 32
OUT_POINT_SIZE = OutPoint.molecule_size()
SHANNONS_PER_BYTE = 100_000_000
MAX_U64 = (1 << 64) - 1
ZERO_HASH = bytes(HASH_SIZE)

DEP_TYPE_CODE = 0
DEP_TYPE_DEP_GROUP = 1

_HEADER_HASH_FIELDS = ("parent_hash", "transactions_root", "proposals_hash", "extra_hash", "dao")


class DepGroupDataError(ValueError):
    """Raised when dependency group cell data is not a vector of out-points."""


def _check_uint(value: Any, bits: int, name: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be an integer, got {value!r}")
    if not 0 <= value < (1 << bits):
        raise ValueError(f"{name} {value} does not fit in u{bits}")


def _check_bytes(value: Any, size: int, name: str) -> None:
    if not isinstance(value, (bytes, bytearray)) or len(value) != size:
        raise ValueError(f"{name} must be {size} bytes, got {value!r}")


def calc_data_hash(data: bytes) -> bytes:
    # Empty cell data hashes to all zeroes.
    if not data:
        return ZERO_HASH
    return bytes(pyckb.core.hash(bytearray(data)))


def tx_hash(tx: Transaction) -> bytes:
    """Return the transaction hash; witnesses do not take part in it."""

    return bytes(tx.raw.hash())


def empty_transaction() -> Transaction:
    return Transaction(RawTransaction(0, [], [], [], [], []), [])


def output_with_data(tx: Transaction, index: int) -> Optional[Tuple[CellOutput, bytes]]:
    outputs = tx.raw.outputs
    if not 0 <= index < len(outputs):
        return None
    outputs_data = tx.raw.outputs_data
    data = bytes(outputs_data[index]) if index < len(outputs_data) else b""
    return outputs[index], data


def script_occupied_size(script: Script) -> int:
    return HASH_SIZE + 1 + len(script.args)


def occupied_capacity(output: CellOutput, data_len: int) -> int:
    """Return the minimal capacity (in shannons) needed to store ``output``."""

    occupied_bytes = 8 + script_occupied_size(output.lock) + data_len
    if output.kype is not None:
        occupied_bytes += script_occupied_size(output.kype)
    occupied = occupied_bytes * SHANNONS_PER_BYTE
    if occupied > MAX_U64:
        raise ValueError(f"occupied capacity {occupied} overflows u64")
    return occupied


def serialize_out_point_vec(out_points: Iterable[OutPoint]) -> bytes:
    """Serialize out-points the way dependency group cells store them."""

    vector = pyckb.molecule.Slice(pyckb.molecule.Custom(OUT_POINT_SIZE))
    return bytes(vector.encode([out_point.molecule() for out_point in out_points]))


def parse_out_point_vec(data: bytes) -> list[OutPoint]:
    """Parse dependency group cell data into its member out-points.

    The payload must hold a 4-byte little-endian count followed by exactly
    that many 36-byte out-points.
    """

    data = bytearray(data)
    if len(data) < 4:
        raise DepGroupDataError(f"out-point vector header needs 4 bytes, got {len(data)}")
    count = pyckb.molecule.U32.decode(data[:4])
    body_size = len(data) - 4
    if body_size % OUT_POINT_SIZE != 0:
        raise DepGroupDataError(
            f"out-point vector body of {body_size} bytes is not a multiple of {OUT_POINT_SIZE}"
        )
    if body_size != count * OUT_POINT_SIZE:
        raise DepGroupDataError(
            f"out-point vector declares {count} items but carries {body_size // OUT_POINT_SIZE}"
        )
    items = pyckb.molecule.Slice(pyckb.molecule.Custom(OUT_POINT_SIZE)).decode(data)
    return [OutPoint.molecule_decode(item) for item in items]


def check_script(script: Script, name: str = "script") -> None:
    _check_bytes(script.code_hash, HASH_SIZE, f"{name} code_hash")
    if not isinstance(script.args, (bytes, bytearray)):
        raise ValueError(f"{name} args must be bytes, got {script.args!r}")


def check_cell_output(output: CellOutput) -> None:
    _check_uint(output.capacity, 64, "capacity")
    check_script(output.lock, "lock")
    if output.kype is not None:
        check_script(output.kype, "type")


def check_out_point(out_point: OutPoint) -> None:
    _check_bytes(out_point.tx_hash, HASH_SIZE, "tx_hash")
    _check_uint(out_point.index, 32, "out point index")


def check_cell_input(cell_input: CellInput) -> None:
    _check_uint(cell_input.since, 64, "since")
    check_out_point(cell_input.previous_output)


def check_cell_dep(cell_dep: CellDep) -> None:
    check_out_point(cell_dep.out_point)
    if cell_dep.dep_type not in (DEP_TYPE_CODE, DEP_TYPE_DEP_GROUP):
        raise ValueError(f"unknown dep_type {cell_dep.dep_type!r}")


def check_transaction(tx: Transaction) -> None:
    """Range-check every field that takes part in the transaction hash.

    The skeleton is otherwise left alone: no capacity, script or signature
    rule is enforced here.
    """

    raw = tx.raw
    _check_uint(raw.version, 32, "transaction version")
    for cell_dep in raw.cell_deps:
        check_cell_dep(cell_dep)
    for block_hash in raw.header_deps:
        _check_bytes(block_hash, HASH_SIZE, "header dep")
    for cell_input in raw.inputs:
        check_cell_input(cell_input)
    for output in raw.outputs:
        check_cell_output(output)


def check_header(header: Header) -> None:
    raw = header.raw
    _check_uint(raw.version, 32, "header version")
    _check_uint(raw.compact_target, 32, "compact_target")
    _check_uint(raw.timestamp, 64, "timestamp")
    _check_uint(raw.number, 64, "block number")
    _check_uint(raw.epoch, 64, "epoch")
    for name in _HEADER_HASH_FIELDS:
        _check_bytes(getattr(raw, name), HASH_SIZE, name)
    _check_uint(header.nonce, 128, "nonce")


@dataclass(frozen=True)
class EpochNumberWithFraction:
    """Epoch number plus the fractional position ``index / length`` inside it."""

    number: int
    index: int
    length: int

    def __post_init__(self) -> None:
        _check_uint(self.number, 24, "epoch number")
        _check_uint(self.index, 16, "epoch index")
        _check_uint(self.length, 16, "epoch length")

    def __str__(self) -> str:
        return f"{self.number}({self.index}/{self.length})"

    @property
    def full_value(self) -> int:
        return pyckb.core.epoch_encode(self.number, self.index, self.length)

    @classmethod
    def from_full_value(cls, value: int) -> "EpochNumberWithFraction":
        return cls(*pyckb.core.epoch_decode(value))


@dataclass(frozen=True, eq=False)
class HeaderView:
    """A header together with the block hash it is known by.

    ``hash_override`` carries a hash that was supplied by the caller rather
    than recomputed, so test fixtures whose content does not hash to the
    claimed value keep that claimed value.
    """

    header: Header
    hash_override: Optional[bytes] = None

    def __post_init__(self) -> None:
        check_header(self.header)
        if self.hash_override is not None:
            _check_bytes(self.hash_override, HASH_SIZE, "header hash")
            object.__setattr__(self, "hash_override", bytes(self.hash_override))

    @property
    def hash(self) -> bytes:
        if self.hash_override is not None:
            return self.hash_override
        return bytes(self.header.hash())

    @property
    def number(self) -> int:
        return self.header.raw.number

    @property
    def epoch_point(self) -> EpochNumberWithFraction:
        return EpochNumberWithFraction.from_full_value(self.header.raw.epoch)

    @property
    def dao(self) -> bytes:
        return bytes(self.header.raw.dao)

    def fake_hash(self, block_hash: bytes) -> "HeaderView":
        return replace(self, hash_override=block_hash)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, HeaderView):
            return NotImplemented
        return self.header == other.header and self.hash == other.hash

    def __hash__(self) -> int:
        return hash(self.hash)
