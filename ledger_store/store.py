"""
Ledger Store Facade

The single public entry point. Wires the persistence loader, account
store, ledger, transaction processor and write scheduler together, and
owns the instance lock for its lifetime.

Usage:
    async with await LedgerStore.open() as store:
        alice = await store.create_account("Alice", "correct horse")
        await store.transfer(RESERVOIR_ID, alice, 20)
"""

import asyncio
from typing import Callable, Dict, List, Optional, Tuple

from .accounts import Account, AccountStore, VerificationResult, default_id_factory
from .config import LedgerConfig, get_config
from .errors import StoreClosedError
from .ledger import Ledger, Transfer, AccountRef
from .logging_config import get_logger
from .security import CredentialHasher, ScryptCredentialHasher
from .storage import LedgerState, PersistenceLoader
from .transactions import TransactionProcessor, TransferOutcome
from .write_scheduler import WriteScheduler


class LedgerStore:
    """
    Accounts, transfers and their persistence behind one async API

    Returned accounts are copies; mutating them has no effect on the store.
    """

    def __init__(
        self,
        config: Optional[LedgerConfig] = None,
        hasher: Optional[CredentialHasher] = None,
        id_factory: Callable[[], str] = default_id_factory
    ):
        self.config = config or get_config()
        self.logger = get_logger("ledger_store.store")
        self._closed = False

        loader = PersistenceLoader(self.config.snapshot_path, self.config.lock_path)
        self._instance_lock = loader.lock
        self._state = loader.state

        store_lock = asyncio.Lock()
        self._accounts = AccountStore(
            self._state.accounts,
            hasher or ScryptCredentialHasher(n=self.config.scrypt_n),
            store_lock,
            id_factory=id_factory,
            password_min_length=self.config.password_min_length
        )
        self._ledger = Ledger(
            self._state.transfers,
            self._accounts,
            reservoir_balance=self.config.reservoir_balance
        )
        self._writer = WriteScheduler(
            loader.snapshot,
            self._state.serialize,
            delay=self.config.write_debounce_seconds
        )
        self._processor = TransactionProcessor(
            self._accounts,
            self._ledger,
            store_lock,
            on_commit=self._writer.schedule_write
        )

    @classmethod
    async def open(
        cls,
        config: Optional[LedgerConfig] = None,
        hasher: Optional[CredentialHasher] = None,
        id_factory: Callable[[], str] = default_id_factory
    ) -> 'LedgerStore':
        """
        Acquire the instance lock and load the snapshot

        Raises:
            InstanceLockError: If another instance holds the lock
            SnapshotReadError: If the snapshot cannot be read
            SnapshotParseError: If the snapshot is malformed
            IntegrityViolation: If the snapshot repeats account ids or names
        """
        return await asyncio.to_thread(cls, config, hasher, id_factory)

    async def __aenter__(self) -> 'LedgerStore':
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    def _check_open(self) -> None:
        if self._closed:
            raise StoreClosedError("Ledger store is closed")

    async def close(self) -> None:
        """Flush the current state and release the instance lock"""
        if self._closed:
            return
        self._closed = True
        try:
            await self._writer.flush()
        finally:
            self._instance_lock.release()
            self.logger.info("Ledger store closed")

    # Accounts

    async def create_account(self, name: str, credential: str) -> str:
        """Create an account and return its id"""
        self._check_open()
        account_id = await self._accounts.create(name, credential)
        self._writer.schedule_write()
        return account_id

    async def verify_account(self, name: str, credential: str) -> VerificationResult:
        return await self._accounts.verify(name, credential)

    def get_account_by_id(self, account_id: str) -> Optional[Account]:
        return self._accounts.get_by_id(account_id)

    def get_account_by_name(self, name: str) -> Optional[Account]:
        return self._accounts.get_by_name(name)

    def list_accounts(self) -> List[Account]:
        return self._accounts.list_all()

    # Ledger

    def balance_of(self, account_id: AccountRef, recompute: bool = False) -> int:
        """
        Get a balance; a recompute refreshes the cache and schedules a write
        """
        if recompute:
            self._check_open()
        balance = self._ledger.balance_of(account_id, recompute=recompute)
        if recompute:
            self._writer.schedule_write()
        return balance

    async def transfer(
        self,
        from_id: AccountRef,
        to_id: AccountRef,
        amount: int,
        memo: str = ""
    ) -> TransferOutcome:
        self._check_open()
        return await self._processor.transfer(from_id, to_id, amount, memo)

    def history(self, account_id: AccountRef) -> List[Transfer]:
        return self._ledger.history(account_id)

    def transfers(self) -> List[Transfer]:
        return list(self._ledger.transfers)

    def reconcile(self) -> Dict[str, Tuple[int, int]]:
        return self._ledger.reconcile()

    # Persistence

    def schedule_write(self) -> asyncio.Future:
        self._check_open()
        return self._writer.schedule_write()

    def snapshot(self) -> LedgerState:
        """Deep copy of the current state"""
        return LedgerState(
            accounts=self._accounts.list_all(),
            transfers=list(self._ledger.transfers)
        )
