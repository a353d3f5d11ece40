"""
Ledger Store

A small account ledger: named accounts with hashed credentials, an
append-only log of integer transfers, balances derived by replaying the
log, and debounced persistence of the whole state to a JSON snapshot.
"""

__version__ = "1.0.0"

from .accounts import Account, VerificationResult
from .errors import (
    ConflictError, FatalLedgerError, InstanceLockError, IntegrityViolation,
    LedgerError, LedgerIOError, NotFoundError, SnapshotParseError,
    SnapshotReadError, StoreClosedError, ValidationError
)
from .ledger import RESERVOIR_ID, Transfer
from .store import LedgerStore
from .transactions import InsufficientFunds, TransferReceipt

__all__ = [
    "Account", "VerificationResult", "Transfer", "RESERVOIR_ID",
    "LedgerStore", "TransferReceipt", "InsufficientFunds",
    "LedgerError", "ValidationError", "ConflictError", "NotFoundError",
    "LedgerIOError", "FatalLedgerError", "SnapshotReadError",
    "SnapshotParseError", "IntegrityViolation", "InstanceLockError",
    "StoreClosedError",
]
