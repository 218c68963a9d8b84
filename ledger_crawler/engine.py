"""
Crawl Engine

Drives one backward sweep over a target account's transaction history:

    cursor -> signature batch -> bounded parallel fetch -> slot arena
           -> tx filters -> ix filters -> extraction -> aggregation

Only transaction-body fetches run concurrently (at most `concurrency` at a
time). Each requested signature owns a slot in a per-batch arena; filtering
and extraction walk the slots in request order once the whole batch has
resolved, so the result order depends on ledger order alone.

Failure handling:
- transient fetch failures retry with backoff, then count as skipped
- permanent fetch failures count as skipped immediately
- a listing failure ends the sweep with terminal_error set
- cancellation abandons the in-flight batch and keeps prior batches
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, List, Optional, Sequence, TypeVar, Union

from .builder import CrawlerConfig
from .cursor import PaginationCursor
from .errors import PermanentFetchError, RetriesExhaustedError
from .extraction import AccountExtractor, Pair, ResultAggregator
from .filters.base import FilterPipeline
from .ledger.reader import LedgerReader
from .retry import call_with_retry
from .types import CrawlOutcome, CrawlSummary, SignatureInfo, TransactionRecord


T = TypeVar("T")


@dataclass(frozen=True)
class FetchFailure:
    """Terminal failure marker written into a slot."""
    signature: str
    reason: str
    transient: bool


Slot = Union[TransactionRecord, FetchFailure, None]


class _Cancelled(Exception):
    """Internal: the cancel event fired while awaiting a ledger call."""


class CrawlEngine:
    """
    Crawl engine for a single target account.

    Usage:
        engine = CrawlEngine(reader, config)
        outcome = await engine.run()
        outcome.result["mint"]      # addresses, newest first
        outcome.summary.to_dict()   # counters

    The engine holds no per-run state; run() can be called repeatedly and
    every call starts a fresh sweep (from the newest signature unless
    resume_from is given).
    """

    def __init__(self, reader: LedgerReader, config: CrawlerConfig):
        config.validate()
        self.config = config
        self._reader = reader
        self._logger = logging.getLogger("CrawlEngine")
        self.pipeline = FilterPipeline(config.tx_filters, config.ix_filters)
        self.extractor = AccountExtractor(config.extraction)

    async def run(
        self,
        cancel_event: Optional[asyncio.Event] = None,
        resume_from: Optional[str] = None
    ) -> CrawlOutcome:
        """
        Execute one full sweep.

        Args:
            cancel_event: set it to stop the sweep; fully processed batches are kept
            resume_from: continue strictly older than this signature

        Returns:
            CrawlOutcome with the finished CrawlResult and run summary
        """
        config = self.config
        summary = CrawlSummary(last_signature=resume_from)
        aggregator = ResultAggregator(config.labels)
        cursor = PaginationCursor(
            self._reader,
            config.target,
            retry_policy=config.retry,
            start=resume_from,
            until_signature=config.until_signature,
            until_block_time=config.until_block_time,
            timeout=config.fetch_timeout
        )
        semaphore = asyncio.Semaphore(config.concurrency)
        started = time.monotonic()

        self._logger.info(
            f"Crawling {config.target} (workers={config.concurrency}, "
            f"batch={config.batch_size}, resume_from={resume_from})"
        )

        while not cursor.exhausted:
            if cancel_event is not None and cancel_event.is_set():
                summary.cancelled = True
                break

            size = config.batch_size
            if config.max_transactions is not None:
                size = min(size, config.max_transactions - summary.processed)
                if size <= 0:
                    self._logger.info(f"Stopping at max_transactions={config.max_transactions}")
                    break

            try:
                batch = await self._until_cancelled(cursor.next_batch(size), cancel_event)
            except _Cancelled:
                summary.cancelled = True
                break
            except (RetriesExhaustedError, PermanentFetchError) as e:
                summary.terminal_error = f"signature listing failed: {e}"
                self._logger.error(f"Stopping sweep: {summary.terminal_error}")
                break

            if not batch:
                continue

            try:
                slots = await self._until_cancelled(self._fetch_batch(batch, semaphore), cancel_event)
            except _Cancelled:
                summary.cancelled = True
                break

            pairs = self._process_slots(batch, slots, summary)
            summary.extracted += aggregator.merge(pairs)
            summary.processed += len(batch)
            summary.batches += 1
            summary.last_signature = batch[-1].signature

            self._logger.info(
                f"Batch {summary.batches}: {len(batch)} signatures, "
                f"{summary.processed} processed, {summary.matched_transactions} matched, "
                f"{summary.skipped} skipped"
            )

        summary.reached_lower_bound = cursor.reached_lower_bound
        summary.elapsed_seconds = time.monotonic() - started

        if summary.cancelled:
            self._logger.warning(f"Crawl cancelled after {summary.batches} batches")
        else:
            self._logger.info(
                f"Crawl finished: {summary.processed} processed, "
                f"{summary.matched_instructions} matching instructions, "
                f"{summary.extracted} addresses in {summary.elapsed_seconds:.1f}s"
            )

        result = aggregator.finalize(chronological=config.chronological, unique=config.unique)
        return CrawlOutcome(result=result, summary=summary)

    # =========================================================================
    # Fetch
    # =========================================================================

    async def _fetch_batch(
        self,
        batch: Sequence[SignatureInfo],
        semaphore: asyncio.Semaphore
    ) -> List[Slot]:
        """Fetch every signature of the batch into its slot."""
        slots: List[Slot] = [None] * len(batch)

        async def fetch(index: int, signature: str):
            async with semaphore:
                slots[index] = await self._fetch_one(signature)

        tasks = [asyncio.ensure_future(fetch(i, info.signature)) for i, info in enumerate(batch)]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            # Unclassified error or cancellation: no sibling fetch outlives the batch
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        return slots

    async def _fetch_one(self, signature: str) -> Slot:
        config = self.config
        try:
            return await call_with_retry(
                config.retry,
                lambda: self._reader.get_transaction(signature, config.target),
                description=f"get_transaction({signature})",
                timeout=config.fetch_timeout,
                signature=signature
            )
        except RetriesExhaustedError as e:
            return FetchFailure(signature=signature, reason=e.reason, transient=True)
        except PermanentFetchError as e:
            self._logger.warning(f"Skipping {signature}: {e.reason}")
            return FetchFailure(signature=signature, reason=e.reason, transient=False)

    async def _until_cancelled(self, coro: Awaitable[T], cancel_event: Optional[asyncio.Event]) -> T:
        """Await coro unless cancel_event fires first; then abandon it."""
        if cancel_event is None:
            return await coro

        task = asyncio.ensure_future(coro)
        waiter = asyncio.ensure_future(cancel_event.wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            waiter.cancel()
            raise

        if task in done:
            waiter.cancel()
            return task.result()

        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise _Cancelled()

    # =========================================================================
    # Filter + extract
    # =========================================================================

    def _process_slots(
        self,
        batch: Sequence[SignatureInfo],
        slots: Sequence[Slot],
        summary: CrawlSummary
    ) -> List[Pair]:
        """Walk slots in request order; returns the batch's extracted pairs."""
        pairs: List[Pair] = []
        for info, slot in zip(batch, slots):
            if isinstance(slot, FetchFailure):
                if slot.transient:
                    summary.transient_exhausted += 1
                else:
                    summary.permanent_skipped += 1
                continue
            if slot is None:
                raise RuntimeError(f"slot for {info.signature} never resolved")

            summary.fetched += 1
            if not self.pipeline.transaction_matches(slot):
                continue

            matched = 0
            for ix in slot.instructions:
                if not self.pipeline.instruction_matches(ix):
                    continue
                matched += 1
                pairs.extend(self.extractor.extract(ix))
            if matched:
                summary.matched_transactions += 1
                summary.matched_instructions += matched
        return pairs
