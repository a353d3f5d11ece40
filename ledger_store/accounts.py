"""
Account Management Module

Owns the account list: creation with credential hashing, credential
verification, lookups and uniqueness enforcement. Lookups hand out
independent copies; only the ledger and the transaction processor get the
live records through live_by_id().
"""

import asyncio
import copy
from collections import Counter
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Any
import uuid

from .errors import ValidationError, ConflictError, IntegrityViolation, LedgerIOError
from .logging_config import get_logger, log_action
from .security import CredentialHasher


@dataclass
class Account:
    """Named account with a hashed credential and a cached balance"""
    id: str
    name: str
    credential_digest: str
    balance: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the snapshot representation"""
        return {
            "uuid": self.id,
            "name": self.name,
            "pash": self.credential_digest,
            "balance": self.balance,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Account':
        """Create instance from the snapshot representation"""
        return cls(
            id=data["uuid"],
            name=data["name"],
            credential_digest=data["pash"],
            balance=data.get("balance", 0),
        )


@dataclass
class VerificationResult:
    """Outcome of a credential check; errors is empty on success"""
    account: Optional[Account] = None
    errors: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.account is not None and not self.errors


def default_id_factory() -> str:
    return str(uuid.uuid4())


def check_unique(accounts: List[Account]) -> None:
    """Raise IntegrityViolation if any account id or name appears twice"""
    for attribute in ("id", "name"):
        counts = Counter(getattr(account, attribute) for account in accounts)
        duplicates = sorted(str(value) for value, count in counts.items() if count > 1)
        if duplicates:
            raise IntegrityViolation(
                f"Duplicate account {attribute}: {', '.join(duplicates)}"
            )


class AccountStore:
    """
    Account list with create, verify and lookup operations.

    The store-wide lock is shared with the transaction processor so that
    committing a new account never interleaves with a transfer.
    """

    def __init__(
        self,
        accounts: List[Account],
        hasher: CredentialHasher,
        lock: asyncio.Lock,
        id_factory: Callable[[], str] = default_id_factory,
        password_min_length: int = 10
    ):
        self._accounts = accounts
        self._hasher = hasher
        self._lock = lock
        self._id_factory = id_factory
        self.password_min_length = password_min_length
        self.logger = get_logger("ledger_store.accounts")

    async def create(self, name: str, credential: str) -> str:
        """
        Create a new account

        Args:
            name: Unique account name, no surrounding whitespace
            credential: Plain credential, hashed before storage

        Returns:
            Id of the new account

        Raises:
            ValidationError: If name or credential are malformed
            ConflictError: If the name is taken
            LedgerIOError: If hashing fails
        """
        if name.strip() != name:
            raise ValidationError("Name must not have leading/trailing spaces")
        if len(name) == 0:
            raise ValidationError("Name must be provided")
        if len(credential) < self.password_min_length:
            raise ValidationError(
                f"Password must be at least {self.password_min_length} characters"
            )
        self._check_name_available(name)

        digest = await self._run_hasher(self._hasher.hash, credential)

        async with self._lock:
            # Name may have been taken while hashing
            self._check_name_available(name)

            existing_ids = {account.id for account in self._accounts}
            account_id = self._id_factory()
            while account_id in existing_ids:
                account_id = self._id_factory()

            self._accounts.append(Account(
                id=account_id,
                name=name,
                credential_digest=digest,
                balance=0
            ))

        log_action(
            self.logger, "info", f"Account created: {name}",
            action="create_account", resource=account_id
        )
        return account_id

    async def verify(self, name: str, credential: str) -> VerificationResult:
        """
        Check a credential for the named account

        Precondition failures and bad credentials are reported in the
        result, not raised.

        Raises:
            IntegrityViolation: If more than one account has this name
        """
        result = VerificationResult()
        if len(name) == 0:
            result.errors.append("Name must not be blank")
        if len(credential) == 0:
            result.errors.append("Password must not be blank")
        if result.errors:
            return result

        matches = self._find(lambda account: account.name == name, name)
        if matches is None:
            result.errors.append(f'"{name}" does not exist')
            return result

        digest = matches.credential_digest
        if not await self._run_hasher(self._hasher.verify, credential, digest):
            log_action(
                self.logger, "warning", f"Wrong password for {name}",
                action="verify_account", resource=matches.id
            )
            result.errors.append("Wrong password")
            return result

        result.account = copy.deepcopy(matches)
        return result

    def get_by_id(self, account_id: str) -> Optional[Account]:
        """Get a copy of an account by id"""
        account = self.live_by_id(account_id)
        return copy.deepcopy(account) if account else None

    def get_by_name(self, name: str) -> Optional[Account]:
        """Get a copy of an account by name"""
        account = self._find(lambda a: a.name == name, name)
        return copy.deepcopy(account) if account else None

    def list_all(self) -> List[Account]:
        """Get copies of all accounts in creation order"""
        return copy.deepcopy(self._accounts)

    def live_by_id(self, account_id: Any) -> Optional[Account]:
        """
        Get the live, mutable record for an account.

        Only for the ledger and transaction processor; callers outside the
        package would bypass every invariant the store enforces.
        """
        return self._find(lambda a: a.id == account_id, account_id)

    def ensure_unique(self) -> None:
        """Raise IntegrityViolation if any id or name appears twice"""
        check_unique(self._accounts)

    def __len__(self) -> int:
        return len(self._accounts)

    def _find(self, predicate: Callable[[Account], bool], identifier: Any) -> Optional[Account]:
        matches = [account for account in self._accounts if predicate(account)]
        if len(matches) > 1:
            self.logger.critical(f"Multiple accounts found for {identifier!r}")
            raise IntegrityViolation(f"Multiple accounts found for {identifier!r}")
        return matches[0] if matches else None

    def _check_name_available(self, name: str) -> None:
        if any(account.name == name for account in self._accounts):
            raise ConflictError(f'User "{name}" already exists.')

    async def _run_hasher(self, func, *args):
        try:
            return await asyncio.to_thread(func, *args)
        except (OSError, ValueError, MemoryError) as e:
            raise LedgerIOError(f"Credential hashing failed: {e}") from e
