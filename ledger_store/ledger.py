"""
Transfer Ledger

Append-only log of transfers between accounts. Account balances are
derived by replaying the log; the balance stored on each account is a
cache that can be rebuilt from zero at any time.
"""

from dataclasses import dataclass
from typing import Dict, List, Tuple, Union, Any
import time

from .accounts import AccountStore
from .errors import ValidationError, NotFoundError
from .logging_config import get_logger


# Money entering or leaving the system from outside all tracked accounts
RESERVOIR_ID = 0

AccountRef = Union[str, int]


def is_valid_amount(amount: Any) -> bool:
    """Amounts are positive ints; bools are not amounts"""
    return isinstance(amount, int) and not isinstance(amount, bool) and amount > 0


def is_reservoir(ref: Any) -> bool:
    """Only the int 0 names the reservoir; False and 0.0 do not"""
    return type(ref) is int and ref == RESERVOIR_ID


def validate_transfer_fields(from_id: Any, to_id: Any, amount: Any, memo: Any) -> None:
    """
    Reject anything the snapshot could not store and load back

    Raises:
        ValidationError: On a malformed reference, amount or memo
    """
    for ref in (from_id, to_id):
        if not (isinstance(ref, str) or is_reservoir(ref)):
            raise ValidationError(f"Invalid account reference {ref!r}")
    if from_id == to_id:
        raise ValidationError("Self to self money transfer doesn't make sense")
    if not is_valid_amount(amount):
        raise ValidationError("Amount must be a positive integer")
    if not isinstance(memo, str):
        raise ValidationError("Memo must be a string")


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class Transfer:
    """A single immutable movement of money"""
    time: int  # ms since epoch
    from_id: AccountRef
    to_id: AccountRef
    amount: int
    memo: str = ""

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the snapshot representation"""
        return {
            "time": self.time,
            "from": self.from_id,
            "to": self.to_id,
            "amount": self.amount,
            "memo": self.memo,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Transfer':
        """Create instance from the snapshot representation"""
        return cls(
            time=data["time"],
            from_id=data["from"],
            to_id=data["to"],
            amount=data["amount"],
            memo=data.get("memo", ""),
        )

    def delta_for(self, account_id: AccountRef) -> int:
        """Signed effect of this transfer on an account's balance"""
        return self.amount * ((self.to_id == account_id) - (self.from_id == account_id))


class Ledger:
    """
    Append-only transfer log with balance derivation by replay
    """

    def __init__(
        self,
        transfers: List[Transfer],
        accounts: AccountStore,
        reservoir_balance: int = 10000
    ):
        self._transfers = transfers
        self._accounts = accounts
        self.reservoir_balance = reservoir_balance
        self.logger = get_logger("ledger_store.ledger")

    @property
    def transfers(self) -> Tuple[Transfer, ...]:
        """Read-only view of the log"""
        return tuple(self._transfers)

    def __len__(self) -> int:
        return len(self._transfers)

    def next_timestamp(self) -> int:
        """Current time, never earlier than the last logged transfer"""
        current = now_ms()
        if self._transfers:
            current = max(current, self._transfers[-1].time)
        return current

    def append(self, transfer: Transfer) -> None:
        """
        Validate and append a transfer. Cached balances are not touched.

        Raises:
            ValidationError: If the transfer is self-to-self or a field is malformed
            NotFoundError: If the destination account does not exist
        """
        validate_transfer_fields(transfer.from_id, transfer.to_id, transfer.amount, transfer.memo)
        if not is_reservoir(transfer.to_id) and self._accounts.live_by_id(transfer.to_id) is None:
            raise NotFoundError(f"Account with id '{transfer.to_id}' does not exist")

        self._transfers.append(transfer)

    def balance_of(self, account_id: AccountRef, recompute: bool = False) -> int:
        """
        Get an account balance

        The reservoir reports a fixed cap, not a ledger-derived value.

        Args:
            account_id: Account to get the balance for
            recompute: Replay the whole log and refresh the cached value

        Raises:
            NotFoundError: If the account does not exist
        """
        if is_reservoir(account_id):
            return self.reservoir_balance

        account = self._accounts.live_by_id(account_id)
        if account is None:
            raise NotFoundError(f"Account with id '{account_id}' does not exist")

        if recompute:
            account.balance = self.replay(account_id)
        return account.balance

    def replay(self, account_id: AccountRef) -> int:
        """Fold the full log into a balance for one account"""
        return sum(transfer.delta_for(account_id) for transfer in self._transfers)

    def history(self, account_id: AccountRef) -> List[Transfer]:
        """
        Get all transfers touching an account, in log order

        Raises:
            NotFoundError: If a non-reservoir account does not exist
        """
        if not is_reservoir(account_id) and self._accounts.live_by_id(account_id) is None:
            raise NotFoundError(f"Account with id '{account_id}' does not exist")
        return [
            transfer for transfer in self._transfers
            if account_id in (transfer.from_id, transfer.to_id)
        ]

    def reconcile(self) -> Dict[str, Tuple[int, int]]:
        """
        Compare every cached balance with a replay of the log

        Returns:
            Map of account id -> (cached, replayed) for accounts that disagree
        """
        mismatches = {}
        for account in self._accounts.list_all():
            replayed = self.replay(account.id)
            if replayed != account.balance:
                mismatches[account.id] = (account.balance, replayed)
        if mismatches:
            self.logger.warning(f"{len(mismatches)} cached balance(s) disagree with the log")
        return mismatches
