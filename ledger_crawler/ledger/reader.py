"""
LedgerReader capability consumed by the crawl engine.
"""

from typing import List, Optional, Protocol, runtime_checkable

from ..types import SignatureInfo, TransactionRecord


MAX_SIGNATURES_PER_REQUEST = 1000


@runtime_checkable
class LedgerReader(Protocol):
    """
    Read-only access to a ledger's transaction history.

    list_signatures returns entries newest -> oldest, strictly older than
    `before` when given. An empty list means no older history is available.

    get_transaction raises NotFoundError / MalformedResponseError for
    permanent failures and TransientFetchError for retryable ones.
    """

    async def list_signatures(
        self,
        account: str,
        before: Optional[str] = None,
        limit: int = MAX_SIGNATURES_PER_REQUEST
    ) -> List[SignatureInfo]:
        ...

    async def get_transaction(self, signature: str, target: str) -> TransactionRecord:
        ...
