"""
Retry with exponential backoff for external calls.

Every call to the record store or the messaging gateway goes through
``RetryExecutor``. Failures are classified into the closed ``ErrorKind``
enumeration; non-retryable kinds abort immediately, everything else is
retried with ``min(base_delay * multiplier**attempt, max_delay)`` seconds of
backoff. Backoff uses ``asyncio.sleep`` so only the calling task waits.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

from src.kernel.errors import (
    ErrorKind,
    IdentityError,
    InfraError,
    TransientInfraError,
)
from src.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

Operation = Callable[[], Awaitable[T]]


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff configuration for external calls."""

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0
    backoff_multiplier: float = 2.0

    def delay_for(self, attempt: int) -> float:
        """Delay after failed attempt ``attempt`` (0-based)."""
        return min(self.base_delay * (self.backoff_multiplier ** attempt), self.max_delay)


@dataclass(frozen=True)
class OperationResult:
    """Uniform envelope for a single external operation."""

    success: bool
    data: Any = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        if self.success:
            return {"success": True, "data": self.data}
        return {"success": False, "error": self.error}


def classify(exc: BaseException) -> InfraError:
    """Map an arbitrary exception from an external call to an InfraError."""
    if isinstance(exc, InfraError):
        return exc
    if isinstance(exc, (TimeoutError, asyncio.TimeoutError)):
        error: InfraError = TransientInfraError(ErrorKind.TIMEOUT, str(exc) or "timeout")
    elif isinstance(exc, ConnectionError):
        error = TransientInfraError(ErrorKind.NETWORK, str(exc) or "connection error")
    else:
        error = TransientInfraError(ErrorKind.UNKNOWN, f"{type(exc).__name__}: {exc}")
    error.__cause__ = exc
    return error


class RetryExecutor:
    """
    Run external operations with bounded exponential-backoff retry.

    Usage:
        executor = RetryExecutor(RetryPolicy(max_retries=3))
        item = await executor.run(lambda: store.get("users", user_id), "get user")
    """

    def __init__(
        self,
        policy: Optional[RetryPolicy] = None,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.policy = policy or RetryPolicy()
        self._sleep = sleep

    async def run(
        self,
        operation: Operation[T],
        name: str = "operation",
        policy: Optional[RetryPolicy] = None,
    ) -> T:
        """
        Await ``operation`` until it succeeds or retries are exhausted.

        Raises:
            IdentityError: domain errors raised by the operation, unchanged
            InfraError: the classified last failure
        """
        policy = policy or self.policy
        last_error: Optional[InfraError] = None

        for attempt in range(policy.max_retries + 1):
            try:
                return await operation()
            except InfraError as exc:
                last_error = exc
            except IdentityError:
                raise
            except Exception as exc:
                last_error = classify(exc)

            if not last_error.retryable:
                logger.warning(
                    "%s failed with non-retryable error: %s",
                    name,
                    last_error,
                    extra={"error_kind": last_error.kind.value, "attempt": attempt + 1},
                )
                raise last_error

            if attempt == policy.max_retries:
                break

            delay = policy.delay_for(attempt)
            logger.info(
                "%s attempt %d failed (%s), retrying in %.2fs",
                name,
                attempt + 1,
                last_error.kind.value,
                delay,
            )
            await self._sleep(delay)

        if last_error is None:
            raise ValueError(f"{name}: retry policy allows no attempts")
        logger.error(
            "%s failed after %d attempts: %s",
            name,
            policy.max_retries + 1,
            last_error,
            extra={"error_kind": last_error.kind.value},
        )
        raise last_error

    async def execute(
        self,
        operation: Operation[T],
        name: str = "operation",
        policy: Optional[RetryPolicy] = None,
    ) -> OperationResult:
        """Like ``run`` but return an envelope instead of raising."""
        try:
            data = await self.run(operation, name, policy)
        except IdentityError as exc:
            logger.error(
                "Cloud %s error: %s",
                name,
                exc,
                exc_info=exc.__cause__ is not None,
            )
            return OperationResult(success=False, error=exc.user_message)
        return OperationResult(success=True, data=data)
