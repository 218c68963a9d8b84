"""
Pagination cursor over a reverse-chronological signature stream.

The cursor only ever moves backward in history. Each successful listing
moves it to the oldest signature returned; an empty listing means history
is exhausted. A lower bound (signature and/or block time, both exclusive)
stops the sweep early: entries at or older than the bound never leave the
cursor.
"""

import logging
from typing import List, Optional

from .ledger.reader import LedgerReader
from .retry import RetryPolicy, call_with_retry
from .types import SignatureInfo


logger = logging.getLogger(__name__)


class PaginationCursor:
    """
    Tracks progress through one account's signature history.

    Usage:
        cursor = PaginationCursor(reader, address, policy)
        while not cursor.exhausted:
            batch = await cursor.next_batch(1000)
    """

    def __init__(
        self,
        reader: LedgerReader,
        account: str,
        retry_policy: Optional[RetryPolicy] = None,
        start: Optional[str] = None,
        until_signature: Optional[str] = None,
        until_block_time: Optional[int] = None,
        timeout: Optional[float] = None
    ):
        self._reader = reader
        self._account = account
        self._policy = retry_policy or RetryPolicy()
        self._timeout = timeout
        self.until_signature = until_signature
        self.until_block_time = until_block_time

        # None = start (newest available)
        self.position: Optional[str] = start
        self.exhausted = False
        self.reached_lower_bound = False
        self.pages = 0

    async def next_batch(self, size: int) -> List[SignatureInfo]:
        """
        Next page of signatures older than the current position.

        Raises:
            RetriesExhaustedError / PermanentFetchError from the listing call
        """
        if self.exhausted:
            return []

        before = self.position
        listing = await call_with_retry(
            self._policy,
            lambda: self._reader.list_signatures(self._account, before=before, limit=size),
            description=f"list_signatures(before={before})",
            timeout=self._timeout
        )
        self.pages += 1

        if not listing:
            self.exhausted = True
            logger.debug(f"History exhausted for {self._account} after {self.pages} pages")
            return []

        self.position = listing[-1].signature

        batch = []
        for info in listing:
            if self._at_or_past_bound(info):
                self.reached_lower_bound = True
                self.exhausted = True
                logger.info(f"Lower bound reached at {info.signature}")
                break
            batch.append(info)
        return batch

    def _at_or_past_bound(self, info: SignatureInfo) -> bool:
        if self.until_signature is not None and info.signature == self.until_signature:
            return True
        if self.until_block_time is not None and info.block_time is not None:
            return info.block_time <= self.until_block_time
        return False
