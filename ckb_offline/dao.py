"""Nervos DAO withdrawal arithmetic.

The calculations mirror the consensus DAO type script exactly: integer
arithmetic only, no floats, nothing clamped.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Tuple, Union

import pyckb.core

from .json_codec import decode_header, decode_transaction, hex_bytes
from .types import (
    MAX_U64,
    CellOutput,
    EpochNumberWithFraction,
    Header,
    HeaderView,
    OutPoint,
    RawHeader,
    Transaction,
    occupied_capacity,
    output_with_data,
)

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .rpc_client import CkbRpcClient

logger = logging.getLogger(__name__)

LOCK_PERIOD_EPOCHS = 180

AnyHeader = Union[Header, HeaderView]


class DaoCalculationError(ArithmeticError):
    """Raised when DAO inputs make the withdrawal arithmetic impossible.

    Besides the checks the consensus script performs, two cases are rejected
    on purpose where the script would not reach them: a deposit header whose
    accumulated rate is zero, and a result that does not fit in u64.
    """


def _raw_header(header: AnyHeader) -> RawHeader:
    if isinstance(header, HeaderView):
        return header.header.raw
    return header.raw


def extract_dao_data(dao: bytes) -> Tuple[int, int, int, int]:
    """Split a header's DAO field into ``(ar, c, s, u)``.

    The field packs four little-endian u64 values: total issuance ``c``, the
    accumulated rate ``ar``, secondary issuance ``s`` and occupied capacity
    ``u``, in that byte order.
    """

    if len(dao) != 32:
        raise DaoCalculationError(f"DAO field must be 32 bytes, got {len(dao)}")
    c, ar, s, u = pyckb.core.dao_decode(bytearray(dao))
    return ar, c, s, u


def pack_dao_data(ar: int, c: int, s: int, u: int) -> bytes:
    return bytes(pyckb.core.dao_encode(c, ar, s, u))


def maximum_withdraw(
    deposit_header: AnyHeader,
    prepare_header: AnyHeader,
    output: CellOutput,
    occupied_capacity: int,
) -> int:
    """Return the maximum capacity a deposited cell can withdraw.

    Only the part of the capacity above ``occupied_capacity`` earns interest,
    scaled by the ratio of the prepare and deposit accumulated rates.
    """

    deposit_ar, _, _, _ = extract_dao_data(_raw_header(deposit_header).dao)
    prepare_ar, _, _, _ = extract_dao_data(_raw_header(prepare_header).dao)
    if deposit_ar == 0:
        raise DaoCalculationError("deposit header carries a zero accumulated rate")
    countable_capacity = output.capacity - occupied_capacity
    if countable_capacity < 0:
        raise DaoCalculationError(
            f"output capacity {output.capacity} is below occupied capacity {occupied_capacity}"
        )
    withdraw_countable = countable_capacity * prepare_ar // deposit_ar
    interest = withdraw_countable - countable_capacity
    withdraw = output.capacity + interest
    if withdraw > MAX_U64:
        raise DaoCalculationError(f"maximum withdraw {withdraw} overflows u64")
    return withdraw


def minimal_unlock_epoch(
    deposit_header: AnyHeader, prepare_header: AnyHeader
) -> EpochNumberWithFraction:
    """Return the earliest epoch at which a prepared deposit can be withdrawn.

    The elapsed epochs are rounded up to whole lock periods and the result
    keeps the deposit's own position inside its epoch.
    """

    deposit_point = EpochNumberWithFraction.from_full_value(_raw_header(deposit_header).epoch)
    prepare_point = EpochNumberWithFraction.from_full_value(_raw_header(prepare_header).epoch)
    prepare_fraction = prepare_point.index * deposit_point.length
    deposit_fraction = deposit_point.index * prepare_point.length
    passed_epoch_cnt = prepare_point.number - deposit_point.number
    if prepare_fraction > deposit_fraction:
        passed_epoch_cnt += 1
    rest_epoch_cnt = (
        (passed_epoch_cnt + LOCK_PERIOD_EPOCHS - 1) // LOCK_PERIOD_EPOCHS * LOCK_PERIOD_EPOCHS
    )
    return EpochNumberWithFraction(
        deposit_point.number + rest_epoch_cnt,
        deposit_point.index,
        deposit_point.length,
    )


def _committed_transaction(
    rpc: "CkbRpcClient", tx_hash: bytes, role: str
) -> Tuple[Transaction, str]:
    status = rpc.get_transaction(hex_bytes(tx_hash))
    if status is None:
        raise DaoCalculationError(f"invalid {role} out_point, the tx is not found")
    block_hash = (status.get("tx_status") or {}).get("block_hash")
    if block_hash is None:
        raise DaoCalculationError(f"invalid {role} out_point, the tx is not committed")
    transaction = status.get("transaction")
    if transaction is None:
        raise DaoCalculationError(f"invalid {role} out_point, the tx body is missing")
    return decode_transaction(transaction), block_hash


def _fetch_header(rpc: "CkbRpcClient", block_hash: str, role: str) -> HeaderView:
    raw = rpc.get_header(block_hash)
    if raw is None:
        raise DaoCalculationError(f"failed to get {role}_header")
    return decode_header(raw)


def calculate_dao_maximum_withdraw(rpc: "CkbRpcClient", prepare_out_point: OutPoint) -> int:
    """Compute the maximum withdraw of a prepared DAO cell using the node.

    The prepare transaction spends the deposit cell through the input at the
    same index as the prepared output, which locates the deposit transaction,
    its output and both block headers.
    """

    prepare_tx, prepare_block_hash = _committed_transaction(
        rpc, prepare_out_point.tx_hash, "prepare"
    )
    if prepare_out_point.index >= len(prepare_tx.raw.inputs):
        raise DaoCalculationError(f"invalid prepare out_point {prepare_out_point}")
    deposit_input = prepare_tx.raw.inputs[prepare_out_point.index]
    deposit_tx, deposit_block_hash = _committed_transaction(
        rpc, deposit_input.previous_output.tx_hash, "deposit"
    )
    found = output_with_data(deposit_tx, deposit_input.previous_output.index)
    if found is None:
        raise DaoCalculationError("invalid deposit out_point, the cell is not found")
    output, output_data = found

    deposit_header = _fetch_header(rpc, deposit_block_hash, "deposit")
    prepare_header = _fetch_header(rpc, prepare_block_hash, "prepare")
    occupied = occupied_capacity(output, len(output_data))
    withdraw = maximum_withdraw(deposit_header, prepare_header, output, occupied)
    logger.info(
        "Maximum withdraw of %s (deposit block %s): %d shannons",
        prepare_out_point,
        deposit_block_hash,
        withdraw,
    )
    return withdraw

