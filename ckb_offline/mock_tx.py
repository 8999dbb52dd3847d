"""Mock transactions: a transaction skeleton plus caller-declared overrides.

Every lookup answers "override wins over live fallback": the declared mock
entries are scanned in declaration order and the fallback is only invoked
when no entry matches. The fallback may return ``None`` for an absent key.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import (
    TYPE_CHECKING,
    Callable,
    Dict,
    Hashable,
    List,
    Optional,
    Sequence,
    Tuple,
    TypeVar,
)

from .types import (
    DEP_TYPE_CODE,
    CellDep,
    CellInput,
    CellOutput,
    HeaderView,
    OutPoint,
    Transaction,
    check_transaction,
    empty_transaction,
)

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .resource import ResourceLoader

logger = logging.getLogger(__name__)

CellWithData = Tuple[CellOutput, bytes]
CellFallback = Callable[[OutPoint], Optional[CellWithData]]
HeaderFallback = Callable[[bytes], Optional[HeaderView]]

_Entry = TypeVar("_Entry")


class DuplicateMockError(ValueError):
    """Raised when mock info declares the same key more than once."""


def input_key(cell_input: CellInput) -> Tuple[OutPoint, int]:
    """Hashable identity of a cell input."""

    return cell_input.previous_output, cell_input.since


@dataclass(frozen=True)
class MockInput:
    input: CellInput
    output: CellOutput
    data: bytes = b""


@dataclass(frozen=True)
class MockCellDep:
    cell_dep: CellDep
    output: CellOutput
    data: bytes = b""


def _repeated(entries: Sequence[_Entry], key: Callable[[_Entry], Hashable]) -> List[_Entry]:
    counts = Counter(key(entry) for entry in entries)
    reported = set()
    repeated = []
    for entry in entries:
        entry_key = key(entry)
        if counts[entry_key] > 1 and entry_key not in reported:
            reported.add(entry_key)
            repeated.append(entry)
    return repeated


@dataclass(frozen=True)
class MockInfo:
    """Ordered override declarations; order only matters for display."""

    inputs: Tuple[MockInput, ...] = field(default_factory=tuple)
    cell_deps: Tuple[MockCellDep, ...] = field(default_factory=tuple)
    header_deps: Tuple[HeaderView, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, "inputs", tuple(self.inputs))
        object.__setattr__(self, "cell_deps", tuple(self.cell_deps))
        object.__setattr__(self, "header_deps", tuple(self.header_deps))

    def duplicate_keys(self) -> Dict[str, list]:
        """Return the keys declared more than once, grouped by section."""

        sections = {
            "inputs": _repeated([mock.input for mock in self.inputs], input_key),
            "cell_deps": _repeated(
                [mock.cell_dep.out_point for mock in self.cell_deps], lambda out_point: out_point
            ),
            "header_deps": _repeated(
                [header.hash for header in self.header_deps], lambda block_hash: block_hash
            ),
        }
        return {name: keys for name, keys in sections.items() if keys}

    def check_unique(self) -> None:
        duplicates = self.duplicate_keys()
        if duplicates:
            details = "; ".join(
                f"{section}: {', '.join(_describe_key(key) for key in keys)}"
                for section, keys in duplicates.items()
            )
            raise DuplicateMockError(f"Duplicate mock entries declared ({details})")


def _describe_key(key: object) -> str:
    if isinstance(key, (bytes, bytearray)):
        return "0x" + bytes(key).hex()
    return str(key)


def _first_match(
    entries: Sequence[_Entry], matches: Callable[[_Entry], bool], label: str
) -> Optional[_Entry]:
    found = [entry for entry in entries if matches(entry)]
    if not found:
        return None
    if len(found) > 1:
        logger.warning(
            "%d mock entries declared for %s; using the first one", len(found), label
        )
    return found[0]


@dataclass(frozen=True)
class MockTransaction:
    """A transaction skeleton paired with the overrides needed to resolve it.

    Construction range-checks the skeleton, so a transaction whose fields
    cannot be serialized is rejected with :class:`ValueError` up front.
    """

    mock_info: MockInfo = field(default_factory=MockInfo)
    tx: Transaction = field(default_factory=empty_transaction)

    def __post_init__(self) -> None:
        check_transaction(self.tx)

    def get_input_cell(
        self, cell_input: CellInput, fallback: CellFallback
    ) -> Optional[CellWithData]:
        wanted = input_key(cell_input)
        mock = _first_match(
            self.mock_info.inputs, lambda entry: input_key(entry.input) == wanted, str(cell_input)
        )
        if mock is not None:
            return mock.output, mock.data
        return fallback(cell_input.previous_output)

    def get_dep_cell(self, out_point: OutPoint, fallback: CellFallback) -> Optional[CellWithData]:
        mock = _first_match(
            self.mock_info.cell_deps,
            lambda entry: entry.cell_dep.out_point == out_point,
            str(out_point),
        )
        if mock is not None:
            return mock.output, mock.data
        return fallback(out_point)

    def get_header(self, block_hash: bytes, fallback: HeaderFallback) -> Optional[HeaderView]:
        block_hash = bytes(block_hash)
        header = _first_match(
            self.mock_info.header_deps,
            lambda entry: entry.hash == block_hash,
            "header 0x" + block_hash.hex(),
        )
        if header is not None:
            return header
        return fallback(block_hash)

    def core_transaction(self) -> Transaction:
        return self.tx

    def complete(self, loader: "ResourceLoader") -> "MockTransaction":
        """Return a copy whose mock info covers every key the skeleton needs.

        The current overrides are kept in place; anything fetched through
        ``loader`` is appended, dependency group members included. The result
        resolves without a live source.
        """

        from .resource import Resource, ResolutionError, _fetch_cell

        resource = Resource.from_both(self, loader)
        tx = self.tx

        def fetch_cell(out_point: OutPoint) -> Optional[CellWithData]:
            return _fetch_cell(loader, out_point)

        inputs: List[MockInput] = list(self.mock_info.inputs)
        declared_inputs = {input_key(mock.input) for mock in inputs}
        for cell_input in tx.raw.inputs:
            if input_key(cell_input) in declared_inputs:
                continue
            # A shared out-point holds the dep's cell in the snapshot.
            found = self.get_input_cell(cell_input, fetch_cell)
            if found is None:
                raise ResolutionError(
                    f"Can not get CellOutput by input={cell_input}", cell_input
                )
            output, data = found
            inputs.append(MockInput(cell_input, output, bytes(data)))
            declared_inputs.add(input_key(cell_input))

        cell_deps: List[MockCellDep] = list(self.mock_info.cell_deps)
        declared_deps = {mock.cell_dep.out_point for mock in cell_deps}

        def declare(cell_dep: CellDep) -> None:
            if cell_dep.out_point in declared_deps:
                return
            meta = resource.required_cells[cell_dep.out_point]
            cell_deps.append(MockCellDep(cell_dep, meta.cell_output, meta.data))
            declared_deps.add(cell_dep.out_point)

        for cell_dep in tx.raw.cell_deps:
            declare(cell_dep)
            for member in resource.dep_group_members.get(cell_dep.out_point, ()):
                declare(CellDep(member, DEP_TYPE_CODE))

        header_deps: List[HeaderView] = list(self.mock_info.header_deps)
        declared_headers = {header.hash for header in header_deps}
        for block_hash in tx.raw.header_deps:
            block_hash = bytes(block_hash)
            if block_hash in declared_headers:
                continue
            header_deps.append(resource.required_headers[block_hash])
            declared_headers.add(block_hash)

        logger.info(
            "Completed mock info: %d inputs, %d cell deps, %d headers",
            len(inputs),
            len(cell_deps),
            len(header_deps),
        )
        return MockTransaction(MockInfo(inputs, cell_deps, header_deps), tx)
