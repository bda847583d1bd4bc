"""
Password hashing utilities using bcrypt.

Accounts created before the bcrypt migration carry unsalted SHA-256 digests.
Those are recognized by shape and always rejected, which sends the user
through password reset.
"""

import asyncio
import re
from enum import Enum
from typing import Optional

import bcrypt

from src.logging_config import get_logger

logger = get_logger(__name__)

# Number of rounds for bcrypt hashing (12 is secure default)
BCRYPT_ROUNDS = 12

_LEGACY_SHA256 = re.compile(r"^[a-f0-9]{64}$", re.IGNORECASE)
_BCRYPT = re.compile(r"^\$2[aby]\$(\d{2})\$[./A-Za-z0-9]{53}$")


class HashScheme(str, Enum):
    """Digest formats we can recognize."""
    LEGACY_SHA256 = "legacy_sha256"
    BCRYPT = "bcrypt"
    UNKNOWN = "unknown"


class CredentialManager:
    """Password hashing service."""

    def __init__(self, rounds: int = BCRYPT_ROUNDS):
        self.rounds = rounds

    @staticmethod
    def _truncate_password(password: str) -> bytes:
        """
        Truncate password to 72 bytes (bcrypt limit) and encode.

        bcrypt only uses the first 72 bytes of a password.
        """
        return password.encode('utf-8')[:72]

    @staticmethod
    def scheme_of(digest: Optional[str]) -> HashScheme:
        if not digest:
            return HashScheme.UNKNOWN
        if _LEGACY_SHA256.match(digest):
            return HashScheme.LEGACY_SHA256
        if _BCRYPT.match(digest):
            return HashScheme.BCRYPT
        return HashScheme.UNKNOWN

    @classmethod
    def is_legacy(cls, digest: Optional[str]) -> bool:
        return cls.scheme_of(digest) is HashScheme.LEGACY_SHA256

    def hash(self, password: str) -> str:
        """
        Hash a password using bcrypt with a fresh random salt.

        Args:
            password: Plain text password

        Returns:
            Hashed password string
        """
        pwd_bytes = self._truncate_password(password)
        salt = bcrypt.gensalt(rounds=self.rounds)
        return bcrypt.hashpw(pwd_bytes, salt).decode('utf-8')

    def verify(self, password: str, digest: Optional[str]) -> bool:
        """
        Verify a password against its stored digest.

        Fails closed: a missing digest (delegated-identity-only account), a
        legacy digest, or an unparsable one never verifies.
        """
        if not digest or password is None:
            return False
        if self.is_legacy(digest):
            logger.warning("Detected legacy SHA-256 password hash; user must reset password")
            return False
        try:
            return bcrypt.checkpw(self._truncate_password(password), digest.encode('utf-8'))
        except ValueError:
            logger.warning("Unrecognized password hash format")
            return False

    def needs_rehash(self, digest: Optional[str]) -> bool:
        """
        Check if a password hash needs to be upgraded.

        True for legacy digests and bcrypt digests with a different cost.
        """
        if not digest:
            return False
        match = _BCRYPT.match(digest)
        if match is None:
            return True
        return int(match.group(1)) != self.rounds

    async def hash_async(self, password: str) -> str:
        """Hash on a worker thread so the event loop keeps serving requests."""
        return await asyncio.to_thread(self.hash, password)

    async def verify_async(self, password: str, digest: Optional[str]) -> bool:
        return await asyncio.to_thread(self.verify, password, digest)


_default_manager = CredentialManager()


# Convenience functions
def hash_password(password: str) -> str:
    """Hash a password."""
    return _default_manager.hash(password)


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """Verify a password."""
    return _default_manager.verify(plain_password, hashed_password)
