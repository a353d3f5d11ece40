"""
Shared fixtures for the ledger store test suite
"""

import pytest

from ledger_store.config import LedgerConfig
from ledger_store.security import CredentialHasher


class PlainHasher(CredentialHasher):
    """Fast deterministic hasher; scrypt is too slow for every test"""

    def hash(self, credential: str) -> str:
        return "plain$" + credential[::-1]

    def verify(self, credential: str, digest: str) -> bool:
        return digest == self.hash(credential)


def sequential_ids(*ids):
    """Id factory handing out the given ids in order"""
    iterator = iter(ids)
    return lambda: next(iterator)


@pytest.fixture
def hasher():
    return PlainHasher()


@pytest.fixture
def config(tmp_path):
    """Config pointing at a temporary directory with a short debounce window"""
    return LedgerConfig(
        snapshot_path=str(tmp_path / "bank.json"),
        lock_path=str(tmp_path / "bank.lock"),
        write_debounce_seconds=0.05,
    )
