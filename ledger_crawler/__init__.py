"""
Ledger Crawler

Crawls one account's transaction history backwards, filters transactions
and instructions, and extracts instruction accounts into labeled lists.

Components:
- engine.py: CrawlEngine (pagination, bounded fetch, filter, extract)
- cursor.py: PaginationCursor over the signature stream
- retry.py: RetryPolicy / exponential backoff
- filters/: filter capability, pipeline and built-ins
- extraction.py: AccountExtractor and ResultAggregator
- builder.py: CrawlerBuilder -> immutable CrawlerConfig
- ledger/: LedgerReader contract, JSON-RPC and in-memory readers
"""

from .builder import CrawlerBuilder, CrawlerConfig
from .engine import CrawlEngine
from .errors import (
    ConfigurationError,
    CrawlError,
    MalformedResponseError,
    NotFoundError,
    PermanentFetchError,
    RetriesExhaustedError,
    TransientFetchError,
)
from .retry import RetryPolicy
from .types import (
    CrawlOutcome,
    CrawlResult,
    CrawlSummary,
    ExtractionSpec,
    InstructionRecord,
    SignatureInfo,
    TransactionRecord,
)

__all__ = [
    'CrawlEngine',
    'CrawlerBuilder',
    'CrawlerConfig',
    'RetryPolicy',
    'CrawlOutcome',
    'CrawlResult',
    'CrawlSummary',
    'ExtractionSpec',
    'InstructionRecord',
    'SignatureInfo',
    'TransactionRecord',
    'CrawlError',
    'ConfigurationError',
    'TransientFetchError',
    'PermanentFetchError',
    'NotFoundError',
    'MalformedResponseError',
    'RetriesExhaustedError',
]
