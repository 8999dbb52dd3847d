"""Resolve a mock transaction into a closed snapshot of everything it references.

:class:`Resource` is built fresh for one resolution or verification run. It
answers the lookups an external script verifier performs (header checks, cell
status, cell data) from the snapshot alone, without touching the live source
again.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Protocol, Tuple

from .mock_tx import CellWithData, MockTransaction
from .types import (
    DEP_TYPE_DEP_GROUP,
    CellOutput,
    DepGroupDataError,
    HeaderView,
    OutPoint,
    calc_data_hash,
    parse_out_point_vec,
)

logger = logging.getLogger(__name__)


class LiveSourceError(RuntimeError):
    """Raised by a resource loader when the live source cannot be reached."""


class ResolutionError(RuntimeError):
    """Raised when a referenced cell or header cannot be resolved."""

    def __init__(self, message: str, key: object = None) -> None:
        super().__init__(message)
        self.key = key


class DepGroupParseError(ResolutionError):
    """Raised when dependency group cell data is not a valid out-point vector."""


class ResourceLoader(Protocol):
    """Live data source consulted for keys the mock info does not declare.

    Both methods return ``None`` when the key is absent and raise
    :class:`LiveSourceError` when the source itself fails.
    """

    def get_header(self, block_hash: bytes) -> Optional[HeaderView]:
        ...

    def get_live_cell(self, out_point: OutPoint) -> Optional[CellWithData]:
        ...


@dataclass(frozen=True)
class CellMeta:
    """A resolved cell: its output plus the data loaded alongside it."""

    out_point: OutPoint
    cell_output: CellOutput
    data: Optional[bytes] = None
    data_hash: Optional[bytes] = None

    @classmethod
    def from_cell_output(
        cls, cell_output: CellOutput, data: bytes, out_point: OutPoint
    ) -> "CellMeta":
        data = bytes(data)
        return cls(out_point, cell_output, data, calc_data_hash(data))

    @property
    def mem_cell_data(self) -> Optional[Tuple[bytes, bytes]]:
        if self.data is None or self.data_hash is None:
            return None
        return self.data, self.data_hash


class CellStatusKind(Enum):
    LIVE = "live"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class CellStatus:
    kind: CellStatusKind
    cell: Optional[CellMeta] = None

    @classmethod
    def live_cell(cls, cell: CellMeta) -> "CellStatus":
        return cls(CellStatusKind.LIVE, cell)

    @classmethod
    def unknown(cls) -> "CellStatus":
        return cls(CellStatusKind.UNKNOWN)

    @property
    def is_live(self) -> bool:
        return self.kind is CellStatusKind.LIVE


class HeaderChecker(Protocol):
    def header_check(self, block_hash: bytes) -> bool:
        ...


class CellProvider(Protocol):
    def cell_lookup(self, out_point: OutPoint, with_data: bool = False) -> CellStatus:
        ...


class DataLoader(Protocol):
    def cell_data_load(self, cell: CellMeta) -> Optional[Tuple[bytes, bytes]]:
        ...

    def block_metadata_load(self, block_hash: bytes) -> None:
        ...

    def block_epoch_load(self, block_hash: bytes) -> None:
        ...

    def header_load(self, block_hash: bytes) -> Optional[HeaderView]:
        ...


def _fetch_cell(loader: ResourceLoader, out_point: OutPoint) -> Optional[CellWithData]:
    logger.debug("Fetching live cell %s", out_point)
    try:
        return loader.get_live_cell(out_point)
    except LiveSourceError as exc:
        raise ResolutionError(f"Failed to fetch live cell {out_point}: {exc}", out_point) from exc


def _fetch_header(loader: ResourceLoader, block_hash: bytes) -> Optional[HeaderView]:
    logger.debug("Fetching header 0x%s", block_hash.hex())
    try:
        return loader.get_header(block_hash)
    except LiveSourceError as exc:
        raise ResolutionError(
            f"Failed to fetch header 0x{block_hash.hex()}: {exc}", block_hash
        ) from exc


@dataclass(frozen=True)
class Resource:
    """Snapshot of every cell and header a transaction references."""

    required_cells: Dict[OutPoint, CellMeta] = field(default_factory=dict)
    required_headers: Dict[bytes, HeaderView] = field(default_factory=dict)
    dep_group_members: Dict[OutPoint, Tuple[OutPoint, ...]] = field(default_factory=dict)

    @classmethod
    def from_both(cls, mock_tx: MockTransaction, loader: ResourceLoader) -> "Resource":
        """Resolve ``mock_tx`` using its overrides first and ``loader`` second.

        Inputs, then cell deps (expanding dependency groups), then header deps
        are resolved in skeleton order so the first failure is reproducible.
        Any failure raises :class:`ResolutionError`; no partial snapshot is
        returned.
        """

        raw = mock_tx.core_transaction().raw
        required_cells: Dict[OutPoint, CellMeta] = {}
        required_headers: Dict[bytes, HeaderView] = {}
        dep_group_members: Dict[OutPoint, Tuple[OutPoint, ...]] = {}

        def fetch_cell(out_point: OutPoint) -> Optional[CellWithData]:
            return _fetch_cell(loader, out_point)

        for cell_input in raw.inputs:
            found = mock_tx.get_input_cell(cell_input, fetch_cell)
            if found is None:
                raise ResolutionError(
                    f"Can not get CellOutput by input={cell_input}", cell_input
                )
            output, data = found
            out_point = cell_input.previous_output
            required_cells[out_point] = CellMeta.from_cell_output(output, data, out_point)

        for cell_dep in raw.cell_deps:
            found = mock_tx.get_dep_cell(cell_dep.out_point, fetch_cell)
            if found is None:
                raise ResolutionError(f"Can not get CellOutput by dep={cell_dep}", cell_dep)
            output, data = found
            if cell_dep.dep_type == DEP_TYPE_DEP_GROUP:
                try:
                    members = parse_out_point_vec(data)
                except DepGroupDataError as exc:
                    raise DepGroupParseError(
                        f"Parse dep group data error: {exc}", cell_dep.out_point
                    ) from exc
                for member in members:
                    sub_found = mock_tx.get_dep_cell(member, fetch_cell)
                    if sub_found is None:
                        raise ResolutionError(
                            f"(dep group) Can not get CellOutput by out_point={member}", member
                        )
                    sub_output, sub_data = sub_found
                    required_cells[member] = CellMeta.from_cell_output(
                        sub_output, sub_data, member
                    )
                dep_group_members[cell_dep.out_point] = tuple(members)
            required_cells[cell_dep.out_point] = CellMeta.from_cell_output(
                output, data, cell_dep.out_point
            )

        for block_hash in raw.header_deps:
            block_hash = bytes(block_hash)
            header = mock_tx.get_header(
                block_hash, lambda wanted: _fetch_header(loader, wanted)
            )
            if header is None:
                raise ResolutionError(f"Can not get header: 0x{block_hash.hex()}", block_hash)
            required_headers[block_hash] = header

        logger.info(
            "Resolved transaction: %d cells, %d headers",
            len(required_cells),
            len(required_headers),
        )
        return cls(required_cells, required_headers, dep_group_members)

    # Verifier capabilities -------------------------------------------------

    def header_check(self, block_hash: bytes) -> bool:
        return bytes(block_hash) in self.required_headers

    def cell_lookup(self, out_point: OutPoint, with_data: bool = False) -> CellStatus:
        # A snapshot has no notion of spent cells: anything missing is unknown.
        cell = self.required_cells.get(out_point)
        if cell is None:
            return CellStatus.unknown()
        return CellStatus.live_cell(cell)

    def cell_data_load(self, cell: CellMeta) -> Optional[Tuple[bytes, bytes]]:
        """Return ``(data, data_hash)`` for ``cell``.

        Data already attached to ``cell`` wins; otherwise the snapshot entry
        for the same out-point is used.
        """

        attached = cell.mem_cell_data
        if attached is not None:
            return attached
        resolved = self.required_cells.get(cell.out_point)
        if resolved is None:
            return None
        return resolved.mem_cell_data

    def block_metadata_load(self, block_hash: bytes) -> None:
        # Block extension data is never part of a snapshot.
        return None

    def block_epoch_load(self, block_hash: bytes) -> None:
        return None

    def header_load(self, block_hash: bytes) -> Optional[HeaderView]:
        return self.required_headers.get(bytes(block_hash))


def resolve(mock_tx: MockTransaction, loader: ResourceLoader) -> Resource:
    """Build the :class:`Resource` snapshot for ``mock_tx``."""

    return Resource.from_both(mock_tx, loader)
