"""Offline mock-transaction resolution for CKB wallets."""

from .dao import (
    LOCK_PERIOD_EPOCHS,
    DaoCalculationError,
    calculate_dao_maximum_withdraw,
    extract_dao_data,
    maximum_withdraw,
    minimal_unlock_epoch,
)
from .mock_tx import DuplicateMockError, MockCellDep, MockInfo, MockInput, MockTransaction
from .portable import PortableFormatError, ReprMockTransaction
from .resource import (
    CellMeta,
    CellStatus,
    CellStatusKind,
    DepGroupParseError,
    LiveSourceError,
    ResolutionError,
    Resource,
    ResourceLoader,
    resolve,
)
from .types import (
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
)

__all__ = [
    "LOCK_PERIOD_EPOCHS",
    "DaoCalculationError",
    "calculate_dao_maximum_withdraw",
    "extract_dao_data",
    "maximum_withdraw",
    "minimal_unlock_epoch",
    "DuplicateMockError",
    "MockCellDep",
    "MockInfo",
    "MockInput",
    "MockTransaction",
    "PortableFormatError",
    "ReprMockTransaction",
    "CellMeta",
    "CellStatus",
    "CellStatusKind",
    "DepGroupParseError",
    "LiveSourceError",
    "ResolutionError",
    "Resource",
    "ResourceLoader",
    "resolve",
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
