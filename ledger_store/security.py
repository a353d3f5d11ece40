"""
Credential Hashing

Accounts store an opaque credential digest. The hasher is injectable so
tests and embedding programs can supply their own.
"""

from abc import ABC, abstractmethod
import hashlib
import hmac
import secrets


class CredentialHasher(ABC):
    """Produces and verifies opaque credential digests"""

    @abstractmethod
    def hash(self, credential: str) -> str:
        """Return a digest for the credential"""
        pass

    @abstractmethod
    def verify(self, credential: str, digest: str) -> bool:
        """Check a credential against a digest produced by hash()"""
        pass


class ScryptCredentialHasher(CredentialHasher):
    """
    scrypt with a random per-credential salt.

    Digests look like ``scrypt$<n>$<salt>$<hex>`` so the cost parameter
    travels with the digest.
    """

    scheme = "scrypt"

    def __init__(self, n: int = 16384, r: int = 8, p: int = 1):
        self.n = n
        self.r = r
        self.p = p

    def _derive(self, credential: str, salt: str, n: int) -> str:
        return hashlib.scrypt(
            credential.encode(),
            salt=salt.encode(),
            n=n, r=self.r, p=self.p
        ).hex()

    def hash(self, credential: str) -> str:
        salt = secrets.token_hex(16)
        return f"{self.scheme}${self.n}${salt}${self._derive(credential, salt, self.n)}"

    def verify(self, credential: str, digest: str) -> bool:
        try:
            scheme, n, salt, expected = digest.split("$")
            n = int(n)
        except ValueError:
            return False
        if scheme != self.scheme:
            return False
        return hmac.compare_digest(self._derive(credential, salt, n), expected)
