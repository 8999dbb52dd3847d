"""JSON-safe mirror of mock transactions for saving reproducible fixtures.

Header overrides keep the literal hash they were declared with. Encoding
writes that hash next to the header fields; decoding forces it back onto the
rebuilt header even when the fields would hash to something else, so forged
or adversarial fixtures survive a save/load cycle unchanged.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List

from . import json_codec
from .mock_tx import MockCellDep, MockInfo, MockInput, MockTransaction

logger = logging.getLogger(__name__)


class PortableFormatError(ValueError):
    """Raised when a mock transaction document is malformed."""


def _section(obj: Any, name: str) -> list:
    if not isinstance(obj, dict):
        raise PortableFormatError(f"expected a JSON object, got {type(obj).__name__}")
    value = obj.get(name)
    if not isinstance(value, list):
        raise PortableFormatError(f"'{name}' must be a list")
    return value


@dataclass
class ReprMockInput:
    input: Dict[str, Any]
    output: Dict[str, Any]
    data: str

    @classmethod
    def from_mock(cls, mock: MockInput) -> "ReprMockInput":
        return cls(
            input=mock.input.rpc(),
            output=mock.output.rpc(),
            data=json_codec.hex_bytes(mock.data),
        )

    def to_mock(self) -> MockInput:
        return MockInput(
            input=json_codec.decode_cell_input(self.input),
            output=json_codec.decode_cell_output(self.output),
            data=json_codec.parse_bytes(self.data),
        )

    def to_jsonable(self) -> Dict[str, Any]:
        return {"input": self.input, "output": self.output, "data": self.data}

    @classmethod
    def from_jsonable(cls, obj: Dict[str, Any]) -> "ReprMockInput":
        return cls(input=obj["input"], output=obj["output"], data=obj["data"])


@dataclass
class ReprMockCellDep:
    cell_dep: Dict[str, Any]
    output: Dict[str, Any]
    data: str

    @classmethod
    def from_mock(cls, mock: MockCellDep) -> "ReprMockCellDep":
        return cls(
            cell_dep=mock.cell_dep.rpc(),
            output=mock.output.rpc(),
            data=json_codec.hex_bytes(mock.data),
        )

    def to_mock(self) -> MockCellDep:
        return MockCellDep(
            cell_dep=json_codec.decode_cell_dep(self.cell_dep),
            output=json_codec.decode_cell_output(self.output),
            data=json_codec.parse_bytes(self.data),
        )

    def to_jsonable(self) -> Dict[str, Any]:
        return {"cell_dep": self.cell_dep, "output": self.output, "data": self.data}

    @classmethod
    def from_jsonable(cls, obj: Dict[str, Any]) -> "ReprMockCellDep":
        return cls(cell_dep=obj["cell_dep"], output=obj["output"], data=obj["data"])


@dataclass
class ReprMockInfo:
    inputs: List[ReprMockInput] = field(default_factory=list)
    cell_deps: List[ReprMockCellDep] = field(default_factory=list)
    header_deps: List[Dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_mock(cls, info: MockInfo) -> "ReprMockInfo":
        return cls(
            inputs=[ReprMockInput.from_mock(mock) for mock in info.inputs],
            cell_deps=[ReprMockCellDep.from_mock(mock) for mock in info.cell_deps],
            # encode_header records the view's own hash, forced or computed.
            header_deps=[json_codec.encode_header(header) for header in info.header_deps],
        )

    def to_mock(self) -> MockInfo:
        return MockInfo(
            inputs=[entry.to_mock() for entry in self.inputs],
            cell_deps=[entry.to_mock() for entry in self.cell_deps],
            header_deps=[json_codec.decode_header(header) for header in self.header_deps],
        )

    def to_jsonable(self) -> Dict[str, Any]:
        return {
            "inputs": [entry.to_jsonable() for entry in self.inputs],
            "cell_deps": [entry.to_jsonable() for entry in self.cell_deps],
            "header_deps": list(self.header_deps),
        }

    @classmethod
    def from_jsonable(cls, obj: Any) -> "ReprMockInfo":
        return cls(
            inputs=[ReprMockInput.from_jsonable(entry) for entry in _section(obj, "inputs")],
            cell_deps=[
                ReprMockCellDep.from_jsonable(entry) for entry in _section(obj, "cell_deps")
            ],
            header_deps=list(_section(obj, "header_deps")),
        )


@dataclass
class ReprMockTransaction:
    mock_info: ReprMockInfo
    tx: Dict[str, Any]

    @classmethod
    def from_mock(cls, mock_tx: MockTransaction) -> "ReprMockTransaction":
        return cls(
            mock_info=ReprMockInfo.from_mock(mock_tx.mock_info),
            tx=mock_tx.tx.rpc(),
        )

    def to_mock(self) -> MockTransaction:
        return MockTransaction(
            mock_info=self.mock_info.to_mock(),
            tx=json_codec.decode_transaction(self.tx),
        )

    def to_jsonable(self) -> Dict[str, Any]:
        return {"mock_info": self.mock_info.to_jsonable(), "tx": self.tx}

    @classmethod
    def from_jsonable(cls, obj: Any) -> "ReprMockTransaction":
        if not isinstance(obj, dict) or "mock_info" not in obj or "tx" not in obj:
            raise PortableFormatError("mock transaction must contain 'mock_info' and 'tx'")
        return cls(mock_info=ReprMockInfo.from_jsonable(obj["mock_info"]), tx=obj["tx"])


def encode(mock_tx: MockTransaction) -> Dict[str, Any]:
    return ReprMockTransaction.from_mock(mock_tx).to_jsonable()


def decode(obj: Any, *, strict: bool = False) -> MockTransaction:
    """Rebuild a mock transaction from its JSON object.

    With ``strict`` set, duplicate override keys are rejected instead of
    resolving to the first declaration.
    """

    try:
        mock_tx = ReprMockTransaction.from_jsonable(obj).to_mock()
    except PortableFormatError:
        raise
    except (AssertionError, KeyError, TypeError, ValueError) as exc:
        raise PortableFormatError(f"Invalid mock transaction: {exc}") from exc
    if strict:
        mock_tx.mock_info.check_unique()
    return mock_tx


def dumps(mock_tx: MockTransaction, *, indent: int | None = 2) -> str:
    return json.dumps(encode(mock_tx), indent=indent)


def loads(raw: str, *, strict: bool = False) -> MockTransaction:
    try:
        obj = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise PortableFormatError(f"Mock transaction is not valid JSON: {exc}") from exc
    return decode(obj, strict=strict)


def save(mock_tx: MockTransaction, path: str | Path) -> None:
    target = Path(path).expanduser()
    target.write_text(dumps(mock_tx) + "\n")
    logger.info("Saved mock transaction to %s", target)


def load(path: str | Path, *, strict: bool = False) -> MockTransaction:
    source = Path(path).expanduser()
    logger.debug("Loading mock transaction from %s", source)
    return loads(source.read_text(), strict=strict)
