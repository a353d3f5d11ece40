"""
Ledger Error Taxonomy

Recoverable errors are raised to the immediate caller and leave state
untouched. Fatal errors carry a process exit code so the embedding program
can decide its own shutdown policy.
"""


class LedgerError(Exception):
    """Base class for all ledger store errors"""


class ValidationError(LedgerError, ValueError):
    """Malformed caller input"""


class ConflictError(LedgerError):
    """Uniqueness violation on account creation"""


class NotFoundError(LedgerError, LookupError):
    """Referenced account does not exist"""


class LedgerIOError(LedgerError, OSError):
    """Snapshot write or credential hashing failed"""


class FatalLedgerError(LedgerError):
    """
    The store cannot keep operating.

    Exit codes are powers of two so they can be combined.
    """
    exit_code = 1


class SnapshotReadError(FatalLedgerError):
    """Snapshot file exists but could not be read"""
    exit_code = 1


class SnapshotParseError(FatalLedgerError):
    """Snapshot is not a JSON object or fails structural validation"""
    exit_code = 2


class IntegrityViolation(FatalLedgerError):
    """Duplicate account ids or names detected"""
    exit_code = 4


class InstanceLockError(FatalLedgerError):
    """Another instance already holds the store lock"""
    exit_code = 8


class StoreClosedError(LedgerError):
    """The store was closed and no longer holds the instance lock"""
