"""
Transaction Processing Module

Validates and commits transfers between accounts. The balance check and
the append run under the store-wide lock with no suspension point in
between, so two transfers from one account can never both pass the check
before either is logged.
"""

import asyncio
from dataclasses import dataclass
from typing import Callable, Optional, Union

from .accounts import AccountStore
from .errors import NotFoundError
from .ledger import Ledger, Transfer, AccountRef, is_reservoir, validate_transfer_fields
from .logging_config import get_logger, log_action


@dataclass(frozen=True)
class TransferReceipt:
    """New balances of both parties after a committed transfer"""
    from_balance: int
    to_balance: int
    transfer: Transfer


@dataclass(frozen=True)
class InsufficientFunds:
    """A declined transfer; nothing was changed"""
    account_id: AccountRef
    balance: int
    requested: int


TransferOutcome = Union[TransferReceipt, InsufficientFunds]


class TransactionProcessor:
    """
    Commits transfers, coordinating the account store and the ledger
    """

    def __init__(
        self,
        accounts: AccountStore,
        ledger: Ledger,
        lock: asyncio.Lock,
        on_commit: Optional[Callable[[], object]] = None
    ):
        self.accounts = accounts
        self.ledger = ledger
        self._lock = lock
        self._on_commit = on_commit
        self.logger = get_logger("ledger_store.transactions")

    async def transfer(
        self,
        from_id: AccountRef,
        to_id: AccountRef,
        amount: int,
        memo: str = ""
    ) -> TransferOutcome:
        """
        Move money between two accounts

        Either side may be the reservoir. Durability is not awaited: the
        commit requests a write and returns.

        Args:
            from_id: Paying account (or RESERVOIR_ID for a deposit)
            to_id: Receiving account (or RESERVOIR_ID for a withdrawal)
            amount: Positive integer amount
            memo: Free text stored with the transfer

        Returns:
            TransferReceipt with new balances, or InsufficientFunds

        Raises:
            ValidationError: If a reference, the amount or the memo is malformed, or from_id == to_id
            NotFoundError: If either account does not exist
        """
        async with self._lock:
            outcome = self._commit(from_id, to_id, amount, memo)

        if isinstance(outcome, TransferReceipt) and self._on_commit:
            self._on_commit()
        return outcome

    def _commit(self, from_id: AccountRef, to_id: AccountRef, amount: int, memo: str) -> TransferOutcome:
        # Must stay synchronous: an await here would reopen the overdraft race
        validate_transfer_fields(from_id, to_id, amount, memo)

        if not is_reservoir(from_id):
            balance = self.ledger.balance_of(from_id, recompute=True)
            if balance < amount:
                log_action(
                    self.logger, "info", "Transfer declined: insufficient funds",
                    action="transfer_declined", resource=str(from_id),
                    extra={"balance": balance, "requested": amount}
                )
                return InsufficientFunds(account_id=from_id, balance=balance, requested=amount)

        if not is_reservoir(to_id) and self.accounts.live_by_id(to_id) is None:
            raise NotFoundError(f"Account with id '{to_id}' does not exist")

        transfer = Transfer(
            time=self.ledger.next_timestamp(),
            from_id=from_id,
            to_id=to_id,
            amount=amount,
            memo=memo
        )
        self.ledger.append(transfer)

        receipt = TransferReceipt(
            from_balance=self.ledger.balance_of(from_id, recompute=True),
            to_balance=self.ledger.balance_of(to_id, recompute=True),
            transfer=transfer
        )
        log_action(
            self.logger, "info", f"Transfer committed: {amount}",
            action="transfer", resource=str(from_id),
            extra={"to": to_id, "amount": amount}
        )
        return receipt
