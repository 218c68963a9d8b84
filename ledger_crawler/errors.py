"""
Crawl error taxonomy.

- ConfigurationError: fatal, raised before any fetch
- TransientFetchError: retried with backoff, then counted as skipped
- PermanentFetchError: skipped immediately, counted
"""

from typing import Optional


class CrawlError(Exception):
    """Base class for all crawler errors."""


class ConfigurationError(CrawlError):
    """Invalid crawl configuration. Aborts the run before any fetch."""


class FetchError(CrawlError):
    """A ledger read failed."""

    def __init__(self, reason: str, signature: Optional[str] = None):
        super().__init__(reason)
        self.reason = reason
        self.signature = signature


class TransientFetchError(FetchError):
    """Timeout, rate limit or server-side failure. Worth retrying."""

    def __init__(
        self,
        reason: str,
        signature: Optional[str] = None,
        retry_after: Optional[float] = None
    ):
        super().__init__(reason, signature)
        self.retry_after = retry_after


class PermanentFetchError(FetchError):
    """Retrying cannot help."""


class NotFoundError(PermanentFetchError):
    """The ledger does not know the signature."""


class MalformedResponseError(PermanentFetchError):
    """The ledger answered with something that cannot be decoded."""


class RetriesExhaustedError(FetchError):
    """A transient failure persisted through every allowed attempt."""

    def __init__(self, reason: str, attempts: int, signature: Optional[str] = None):
        super().__init__(reason, signature)
        self.attempts = attempts
