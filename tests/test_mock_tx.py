from __future__ import annotations

import logging

import pyckb.core
import pytest

from ckb_offline.mock_tx import (
    DuplicateMockError,
    MockCellDep,
    MockInfo,
    MockInput,
    MockTransaction,
)
from ckb_offline.types import (
    DEP_TYPE_CODE,
    ZERO_HASH,
    CellDep,
    CellInput,
    CellOutput,
    Header,
    HeaderView,
    OutPoint,
    RawHeader,
    RawTransaction,
    Script,
    Transaction,
)

LOCK = Script(b"\x9b" * 32, pyckb.core.script_hash_type_type, b"\x01" * 20)


def _output(capacity: int) -> CellOutput:
    return CellOutput(capacity, LOCK, None)


def _header(number: int) -> Header:
    raw = RawHeader(0, 0, 0, number, 0, ZERO_HASH, ZERO_HASH, ZERO_HASH, ZERO_HASH, ZERO_HASH)
    return Header(raw, 0)


class RecordingFallback:
    def __init__(self, result=None) -> None:
        self.result = result
        self.calls: list = []

    def __call__(self, key):
        self.calls.append(key)
        return self.result


class StubLoader:
    def __init__(self, cells=None) -> None:
        self.cells = cells or {}

    def get_live_cell(self, out_point):
        return self.cells.get(out_point)

    def get_header(self, block_hash):
        return None


def test_input_override_wins_over_fallback() -> None:
    cell_input = CellInput(0, OutPoint(b"\x01" * 32, 0))
    mock_tx = MockTransaction(MockInfo(inputs=[MockInput(cell_input, _output(100), b"d")]))
    fallback = RecordingFallback((_output(999), b"live"))

    assert mock_tx.get_input_cell(cell_input, fallback) == (_output(100), b"d")
    assert fallback.calls == []


def test_input_fallback_receives_previous_output() -> None:
    declared = CellInput(0, OutPoint(b"\x01" * 32, 0))
    # Same out point but a different since: structurally a different input.
    other = CellInput(5, OutPoint(b"\x01" * 32, 0))
    mock_tx = MockTransaction(MockInfo(inputs=[MockInput(declared, _output(100))]))
    fallback = RecordingFallback()

    assert mock_tx.get_input_cell(other, fallback) is None
    assert fallback.calls == [other.previous_output]


def test_dep_and_header_lookups_fall_back_when_undeclared() -> None:
    mock_tx = MockTransaction()
    cell_fallback = RecordingFallback((_output(5), b""))
    header_fallback = RecordingFallback()
    out_point = OutPoint(b"\x03" * 32, 2)

    assert mock_tx.get_dep_cell(out_point, cell_fallback) == (_output(5), b"")
    assert cell_fallback.calls == [out_point]
    assert mock_tx.get_header(b"\x04" * 32, header_fallback) is None
    assert header_fallback.calls == [b"\x04" * 32]


def test_header_override_matches_forced_hash() -> None:
    forged = HeaderView(_header(3), b"\xee" * 32)
    mock_tx = MockTransaction(MockInfo(header_deps=[forged]))
    fallback = RecordingFallback()

    assert mock_tx.get_header(b"\xee" * 32, fallback) is forged
    assert fallback.calls == []


def test_first_duplicate_wins_and_logs_warning(caplog: pytest.LogCaptureFixture) -> None:
    out_point = OutPoint(b"\x05" * 32, 0)
    mock_tx = MockTransaction(
        MockInfo(
            cell_deps=[
                MockCellDep(CellDep(out_point, DEP_TYPE_CODE), _output(1), b"first"),
                MockCellDep(CellDep(out_point, DEP_TYPE_CODE), _output(2), b"second"),
            ]
        )
    )

    with caplog.at_level(logging.WARNING, logger="ckb_offline.mock_tx"):
        found = mock_tx.get_dep_cell(out_point, RecordingFallback())

    assert found == (_output(1), b"first")
    assert "using the first one" in caplog.text


def test_check_unique_reports_duplicates() -> None:
    out_point = OutPoint(b"\x05" * 32, 0)
    cell_input = CellInput(0, out_point)
    info = MockInfo(
        inputs=[MockInput(cell_input, _output(1)), MockInput(CellInput(0, out_point), _output(2))],
        cell_deps=[
            MockCellDep(CellDep(out_point, DEP_TYPE_CODE), _output(1)),
            MockCellDep(CellDep(out_point, DEP_TYPE_CODE), _output(2)),
        ],
    )
    assert info.duplicate_keys() == {"inputs": [cell_input], "cell_deps": [out_point]}
    with pytest.raises(DuplicateMockError) as excinfo:
        info.check_unique()
    assert "cell_deps" in str(excinfo.value)

    MockInfo().check_unique()


def test_skeleton_with_overflowing_version_is_rejected() -> None:
    tx = Transaction(RawTransaction(1 << 32, [], [], [], [], []), [])
    with pytest.raises(ValueError, match="transaction version"):
        MockTransaction(MockInfo(), tx)


def test_complete_keeps_input_cell_when_out_point_is_also_a_dep() -> None:
    shared = OutPoint(b"\x06" * 32, 0)
    cell_input = CellInput(0, shared)
    raw = RawTransaction(0, [CellDep(shared, DEP_TYPE_CODE)], [], [cell_input], [], [])
    mock_tx = MockTransaction(
        MockInfo(cell_deps=[MockCellDep(CellDep(shared, DEP_TYPE_CODE), _output(7), b"dep")]),
        Transaction(raw, []),
    )
    loader = StubLoader({shared: (_output(100), b"input")})

    completed = mock_tx.complete(loader)

    (mock_input,) = completed.mock_info.inputs
    assert mock_input.input == cell_input
    assert mock_input.output.capacity == 100
    assert mock_input.data == b"input"
    (mock_dep,) = completed.mock_info.cell_deps
    assert mock_dep.data == b"dep"
