from __future__ import annotations

import hashlib

import pyckb.core
import pytest

from ckb_offline.json_codec import CodecError, decode_out_point
from ckb_offline.types import (
    DEP_TYPE_DEP_GROUP,
    ZERO_HASH,
    CellDep,
    CellInput,
    CellOutput,
    DepGroupDataError,
    EpochNumberWithFraction,
    Header,
    HeaderView,
    OutPoint,
    RawHeader,
    RawTransaction,
    Script,
    Transaction,
    calc_data_hash,
    check_transaction,
    occupied_capacity,
    output_with_data,
    parse_out_point_vec,
    serialize_out_point_vec,
    tx_hash,
)


def _lock(args: bytes = b"\x11" * 20) -> Script:
    return Script(b"\x9b" * 32, pyckb.core.script_hash_type_type, args)


def _header(number: int = 0, epoch: int = 0, version: int = 0) -> Header:
    raw = RawHeader(
        version=version,
        compact_target=0,
        timestamp=0,
        number=number,
        epoch=epoch,
        parent_hash=ZERO_HASH,
        transactions_root=ZERO_HASH,
        proposals_hash=ZERO_HASH,
        extra_hash=ZERO_HASH,
        dao=ZERO_HASH,
    )
    return Header(raw, 0)


def _tx(witnesses: list[bytes] | None = None, version: int = 0) -> Transaction:
    dep = CellDep(OutPoint(b"\x01" * 32, 0), DEP_TYPE_DEP_GROUP)
    cell_input = CellInput(0, OutPoint(b"\x02" * 32, 1))
    output = CellOutput(61 * 10**8, _lock(), None)
    raw = RawTransaction(version, [dep], [], [cell_input], [output], [b""])
    return Transaction(raw, witnesses or [])


def test_epoch_full_value_packs_number_index_length() -> None:
    epoch = EpochNumberWithFraction(number=5, index=6, length=1000)
    assert epoch.full_value == (1000 << 40) | (6 << 24) | 5
    assert EpochNumberWithFraction.from_full_value(epoch.full_value) == epoch
    assert str(epoch) == "5(6/1000)"


def test_epoch_rejects_out_of_range_components() -> None:
    with pytest.raises(ValueError):
        EpochNumberWithFraction(number=1 << 24, index=0, length=1)


def test_header_hash_follows_fields_unless_overridden() -> None:
    header = _header(number=7, epoch=EpochNumberWithFraction(1, 2, 10).full_value)
    other = _header(number=8, epoch=header.raw.epoch)
    assert HeaderView(header).hash == bytes(header.hash())
    assert HeaderView(header).hash != HeaderView(other).hash

    forged = HeaderView(header).fake_hash(b"\xab" * 32)
    assert forged.hash == b"\xab" * 32
    assert forged != HeaderView(header)
    assert forged.epoch_point == EpochNumberWithFraction(1, 2, 10)
    assert forged.number == 7


def test_header_view_equality_uses_effective_hash() -> None:
    header = _header(number=1)
    assert HeaderView(header) == HeaderView(header, bytes(header.hash()))
    assert hash(HeaderView(header)) == hash(HeaderView(header, bytes(header.hash())))


@pytest.mark.parametrize(
    "field, value",
    [("version", 1 << 32), ("number", 1 << 64), ("epoch", -1)],
)
def test_header_view_rejects_fields_that_do_not_fit(field: str, value: int) -> None:
    header = _header()
    setattr(header.raw, field, value)
    with pytest.raises(ValueError, match="does not fit"):
        HeaderView(header)


def test_header_view_rejects_short_hash_override() -> None:
    with pytest.raises(ValueError):
        HeaderView(_header(), b"\x01" * 31)


def test_out_point_vec_round_trip() -> None:
    out_points = [OutPoint(bytes([i]) * 32, i) for i in range(3)]
    data = serialize_out_point_vec(out_points)
    assert len(data) == 4 + 36 * 3
    assert parse_out_point_vec(data) == out_points
    assert parse_out_point_vec(serialize_out_point_vec([])) == []


@pytest.mark.parametrize(
    "payload",
    [
        b"",
        b"\x01\x00",
        (1).to_bytes(4, "little") + b"\x00" * 35,
        (2).to_bytes(4, "little") + b"\x00" * 36,
        (0).to_bytes(4, "little") + b"\x00" * 36,
    ],
)
def test_out_point_vec_rejects_malformed_payload(payload: bytes) -> None:
    with pytest.raises(DepGroupDataError):
        parse_out_point_vec(payload)


def test_occupied_capacity_counts_scripts_and_data() -> None:
    dao_type = Script(b"\x82" * 32, pyckb.core.script_hash_type_type, b"")
    output = CellOutput(200 * 10**8, _lock(), dao_type)
    # 8 capacity + 53 lock + 33 type + 8 data bytes
    assert occupied_capacity(output, 8) == 102 * 10**8
    assert occupied_capacity(CellOutput(0, _lock(), None), 0) == 61 * 10**8


def test_transaction_hash_depends_on_raw_fields_only() -> None:
    tx = _tx()
    witnessed = _tx(witnesses=[b"\x55" * 65])
    assert tx_hash(tx) == tx_hash(witnessed)
    assert tx_hash(tx) != tx_hash(_tx(version=1))

    output, data = output_with_data(tx, 0)
    assert output.capacity == 61 * 10**8
    assert data == b""
    assert output_with_data(tx, 1) is None


def test_check_transaction_rejects_overflowing_version() -> None:
    check_transaction(_tx())
    with pytest.raises(ValueError, match="transaction version"):
        check_transaction(_tx(version=1 << 32))


def test_data_hash_of_empty_data_is_zero() -> None:
    assert calc_data_hash(b"") == ZERO_HASH
    expected = hashlib.blake2b(b"\x01", digest_size=32, person=b"ckb-default-hash").digest()
    assert calc_data_hash(b"\x01") == expected


def test_out_point_requires_32_byte_hash() -> None:
    with pytest.raises(CodecError):
        decode_out_point({"tx_hash": "0x" + "01" * 31, "index": "0x0"})
