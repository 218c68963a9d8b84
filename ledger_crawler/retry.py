"""
Retry / backoff policy for ledger reads.

Transient failures (TransientFetchError, timeouts, aiohttp client errors)
are retried with exponential backoff: base_delay, 2*base_delay, ... capped
at max_delay. A server-provided retry_after hint raises the wait, still
under the cap. Permanent failures pass straight through.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

import aiohttp

from .errors import ConfigurationError, RetriesExhaustedError, TransientFetchError


logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_ERRORS = (TransientFetchError, asyncio.TimeoutError, aiohttp.ClientError)


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff."""
    attempts: int = 5          # Total attempts, including the first
    base_delay: float = 0.5    # Wait after the first failure (seconds)
    max_delay: float = 30.0    # Cap for any single wait

    def validate(self):
        if self.attempts < 1:
            raise ConfigurationError(f"retry attempts must be >= 1, got {self.attempts}")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ConfigurationError("retry delays must be non-negative")

    def delay_for(self, failures: int, retry_after: Optional[float] = None) -> float:
        """Wait before the next attempt after `failures` consecutive failures."""
        delay = self.base_delay * (2 ** (failures - 1))
        if retry_after is not None:
            delay = max(delay, retry_after)
        return min(delay, self.max_delay)


async def call_with_retry(
    policy: RetryPolicy,
    operation: Callable[[], Awaitable[T]],
    description: str,
    timeout: Optional[float] = None,
    signature: Optional[str] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
) -> T:
    """
    Run `operation` until it succeeds, fails permanently, or runs out of attempts.

    Each attempt is bounded by `timeout`; a timeout counts as transient.

    Raises:
        RetriesExhaustedError: every attempt failed transiently
        PermanentFetchError: propagated unchanged from the operation
    """
    failures = 0
    while True:
        try:
            if timeout is not None:
                return await asyncio.wait_for(operation(), timeout)
            return await operation()
        except TRANSIENT_ERRORS as e:
            failures += 1
            reason = str(e) or type(e).__name__
            if failures >= policy.attempts:
                logger.warning(f"{description}: giving up after {failures} attempts ({reason})")
                raise RetriesExhaustedError(reason, attempts=failures, signature=signature) from e

            delay = policy.delay_for(failures, getattr(e, "retry_after", None))
            logger.debug(f"{description}: attempt {failures} failed ({reason}), retrying in {delay:.2f}s")
            await sleep(delay)
