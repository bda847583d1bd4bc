"""
Time-boxed, single-use code store.

Backs phone OTP login and password reset. State is process-local and lost on
restart. Each subject key holds at most one live code; reissuing replaces it.
Verification is an atomic compare-and-delete per key so a code can be
redeemed only once even under concurrent attempts. Locks are striped by key
hash, so unrelated keys never wait on each other.
"""

import asyncio
import secrets
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional

from src.kernel.errors import ExpiredCodeError, InvalidCodeError
from src.logging_config import get_logger

logger = get_logger(__name__)

CODE_MIN = 100000
CODE_MAX = 999999

_LOCK_STRIPES = 64


def generate_code() -> str:
    """Uniform 6-digit code in [100000, 999999]."""
    return str(CODE_MIN + secrets.randbelow(CODE_MAX - CODE_MIN + 1))


@dataclass
class OneTimeCodeRecord:
    """A live code for one subject."""

    subject: str
    code: str
    expires_at: float
    metadata: Dict[str, Any] = field(default_factory=dict)

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at


class OneTimeCodeStore:
    """
    Keyed cache of single-use codes.

    Usage:
        otp_store = OneTimeCodeStore("login_otp", default_ttl=300)
        code = otp_store.issue(phone)
        if otp_store.verify(phone, submitted):
            ...
    """

    def __init__(
        self,
        name: str,
        default_ttl: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        code_factory: Callable[[], str] = generate_code,
        key_normalizer: Optional[Callable[[str], str]] = None,
    ):
        self.name = name
        self.default_ttl = default_ttl
        self._clock = clock
        self._code_factory = code_factory
        self._key_normalizer = key_normalizer
        self._records: Dict[str, OneTimeCodeRecord] = {}
        self._locks = [threading.Lock() for _ in range(_LOCK_STRIPES)]

    def _key(self, key: str) -> str:
        return self._key_normalizer(key) if self._key_normalizer else key

    def _lock_for(self, key: str) -> threading.Lock:
        return self._locks[hash(key) % _LOCK_STRIPES]

    def issue(
        self,
        key: str,
        ttl: Optional[float] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Create a code for ``key``, replacing any live one. Returns the code."""
        key = self._key(key)
        code = self._code_factory()
        record = OneTimeCodeRecord(
            subject=key,
            code=code,
            expires_at=self._clock() + (self.default_ttl if ttl is None else ttl),
            metadata=dict(metadata or {}),
        )
        with self._lock_for(key):
            replaced = key in self._records
            self._records[key] = record
        logger.debug(
            "Issued %s code",
            self.name,
            extra={"replaced": replaced},
        )
        return code

    def consume(self, key: str, code: str) -> OneTimeCodeRecord:
        """
        Redeem ``code`` for ``key``.

        Returns:
            The redeemed record (now deleted)

        Raises:
            InvalidCodeError: no live code, or the code does not match
            ExpiredCodeError: the code's TTL has elapsed (record removed)
        """
        key = self._key(key)
        with self._lock_for(key):
            record = self._records.get(key)
            if record is None:
                raise InvalidCodeError("Invalid or expired code")
            if record.is_expired(self._clock()):
                del self._records[key]
                raise ExpiredCodeError()
            if not secrets.compare_digest(record.code.encode(), str(code or "").encode()):
                raise InvalidCodeError()
            del self._records[key]
        return record

    def verify(self, key: str, code: str) -> bool:
        """True exactly once for a live, matching code."""
        try:
            self.consume(key, code)
        except (InvalidCodeError, ExpiredCodeError) as exc:
            logger.info("%s verification failed: %s", self.name, exc.code)
            return False
        return True

    def peek(self, key: str) -> Optional[OneTimeCodeRecord]:
        """Live record for ``key`` without consuming it."""
        key = self._key(key)
        with self._lock_for(key):
            record = self._records.get(key)
            if record is None or record.is_expired(self._clock()):
                return None
            return record

    def discard(self, key: str) -> None:
        key = self._key(key)
        with self._lock_for(key):
            self._records.pop(key, None)

    def sweep(self) -> int:
        """Delete every expired record. Returns how many were removed."""
        now = self._clock()
        removed = 0
        for key in list(self._records):
            with self._lock_for(key):
                record = self._records.get(key)
                if record is not None and record.is_expired(now):
                    del self._records[key]
                    removed += 1
        if removed:
            logger.debug("Swept %d expired %s codes", removed, self.name)
        return removed

    def __len__(self) -> int:
        return len(self._records)


class CodeSweeper:
    """Background task that periodically sweeps code stores."""

    def __init__(self, stores: Iterable[OneTimeCodeStore], interval: float = 60.0):
        self.stores: List[OneTimeCodeStore] = list(stores)
        self.interval = interval
        self._task: Optional[asyncio.Task] = None

    def sweep_once(self) -> int:
        return sum(store.sweep() for store in self.stores)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            self.sweep_once()

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run(), name="code-sweeper")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()
