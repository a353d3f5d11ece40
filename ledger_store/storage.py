"""
Snapshot Storage Module

The whole ledger state lives in one JSON file. This module owns the
instance lock that keeps a second process away from that file, reading
and validating the snapshot at startup, and writing it back.
"""

from dataclasses import dataclass, field
from typing import List, Union, Any
from pathlib import Path
import json
import os

from pydantic import BaseModel, Field, StrictInt, StrictStr, ValidationError as PydanticValidationError, field_validator

from .accounts import Account, check_unique
from .errors import InstanceLockError, SnapshotReadError, SnapshotParseError
from .ledger import Transfer, RESERVOIR_ID
from .logging_config import get_logger, log_action


logger = get_logger("ledger_store.storage")


class AccountRecord(BaseModel):
    """Account as stored in the snapshot"""
    uuid: StrictStr
    name: StrictStr
    pash: StrictStr
    balance: StrictInt = 0


class TransferRecord(BaseModel):
    """Transfer as stored in the snapshot"""
    time: StrictInt
    from_: Union[StrictStr, StrictInt] = Field(..., alias="from")
    to: Union[StrictStr, StrictInt]
    amount: StrictInt = Field(..., gt=0)
    memo: StrictStr = ""

    @field_validator("from_", "to")
    @classmethod
    def only_reservoir_is_numeric(cls, value):
        if isinstance(value, int) and value != RESERVOIR_ID:
            raise ValueError(f"numeric account reference must be {RESERVOIR_ID}")
        return value


class SnapshotModel(BaseModel):
    """Top-level snapshot; missing collections default to empty"""
    students: List[AccountRecord] = Field(default_factory=list)
    transactions: List[TransferRecord] = Field(default_factory=list)

    @field_validator("students", "transactions", mode="before")
    @classmethod
    def default_missing(cls, value):
        return [] if value is None else value


@dataclass
class LedgerState:
    """Accounts and transfers, persisted together"""
    accounts: List[Account] = field(default_factory=list)
    transfers: List[Transfer] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "students": [account.to_dict() for account in self.accounts],
            "transactions": [transfer.to_dict() for transfer in self.transfers],
        }

    def serialize(self) -> str:
        """JSON text with a trailing newline"""
        return json.dumps(self.to_dict(), indent=2) + "\n"

    @classmethod
    def from_model(cls, model: SnapshotModel) -> 'LedgerState':
        return cls(
            accounts=[Account.from_dict(record.model_dump()) for record in model.students],
            transfers=[
                Transfer.from_dict(record.model_dump(by_alias=True))
                for record in model.transactions
            ],
        )


class InstanceLock:
    """
    Lock file guaranteeing a single process owns the store.

    The file is created exclusively; its existence means the store is
    taken. Release removes it.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self.held = False

    def acquire(self) -> None:
        try:
            fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError as e:
            raise InstanceLockError(
                f"Lock {self.path} is held; another instance is running"
            ) from e
        except OSError as e:
            raise InstanceLockError(f"Could not create lock {self.path}: {e}") from e
        with os.fdopen(fd, "w") as f:
            f.write(f"{os.getpid()}\n")
        self.held = True
        log_action(logger, "debug", "Instance lock acquired", action="lock", resource=str(self.path))

    def release(self) -> None:
        if not self.held:
            return
        try:
            self.path.unlink()
        except FileNotFoundError:
            logger.warning(f"Lock {self.path} vanished before release")
        self.held = False
        log_action(logger, "debug", "Instance lock released", action="unlock", resource=str(self.path))

    def __enter__(self):
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()


class SnapshotFile:
    """Reads and atomically replaces the snapshot file"""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def read(self) -> str:
        """
        Read the snapshot text; a missing file reads as empty

        Raises:
            SnapshotReadError: If the file exists but cannot be read
        """
        if not self.path.exists():
            return ""
        try:
            return self.path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise SnapshotReadError(f"{self.path} could not be read: {e}") from e

    def write(self, text: str) -> None:
        """Write via a temporary file so readers never see a partial snapshot"""
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, self.path)


def parse_snapshot(text: str, source: Any = "snapshot") -> LedgerState:
    """
    Parse and validate snapshot text

    Blank text yields an empty state.

    Raises:
        SnapshotParseError: If the text is not a JSON object or fails validation
        IntegrityViolation: If account ids or names repeat
    """
    if not text.strip():
        return LedgerState()

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise SnapshotParseError(f"{source} could not be parsed: {e}") from e
    if not isinstance(data, dict):
        raise SnapshotParseError(f"{source} does not contain a JSON object")

    try:
        model = SnapshotModel.model_validate(data)
    except PydanticValidationError as e:
        raise SnapshotParseError(f"{source} failed validation: {e}") from e

    state = LedgerState.from_model(model)
    check_unique(state.accounts)
    return state


class PersistenceLoader:
    """
    Takes the instance lock and loads the snapshot, once, at startup.

    If loading fails the lock is released again before the error
    propagates.
    """

    def __init__(self, snapshot_path: Union[str, Path], lock_path: Union[str, Path]):
        self.lock = InstanceLock(lock_path)
        self.snapshot = SnapshotFile(snapshot_path)
        self.lock.acquire()
        try:
            self.state = parse_snapshot(self.snapshot.read(), source=self.snapshot.path)
        except Exception:
            self.lock.release()
            raise

        log_action(
            logger, "info", "Snapshot loaded",
            action="load", resource=str(self.snapshot.path),
            extra={"accounts": len(self.state.accounts), "transfers": len(self.state.transfers)}
        )
