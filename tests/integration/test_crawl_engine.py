"""
Crawl Engine Integration Tests

Runs full sweeps against the in-memory ledger:
1. Filtering and extraction over a small scripted history
2. Lower bounds, resumption and max_transactions
3. Transient / permanent fetch failures and listing failures
4. Cancellation mid-batch
5. Ordering under out-of-order fetch completion
"""

import asyncio
import random

import pytest

from ledger_crawler.builder import CrawlerBuilder
from ledger_crawler.engine import CrawlEngine
from ledger_crawler.filters import IxProgramIdFilter, SuccessfulTxFilter, TxPredicate
from ledger_crawler.ledger.memory import InMemoryLedger, make_transaction
from ledger_crawler.types import InstructionRecord


TARGET = "Target11111111111111111111111111111111111111"
PROG_P = "ProgP111111111111111111111111111111111111111"
PROG_Q = "ProgQ111111111111111111111111111111111111111"


# =============================================================================
# History helpers
# =============================================================================

def accounts(tag, n=14):
    return tuple(f"{tag}_acct{i}" for i in range(n))


def single_ix_tx(signature, program, success=True, slot=0, n_accounts=14):
    ix = InstructionRecord(program_id=program, accounts=accounts(signature, n_accounts))
    return make_transaction(signature, TARGET, [ix], success=success, slot=slot)


def mint_history(count):
    """count successful PROG_P transactions, m0 oldest."""
    return [single_ix_tx(f"m{i}", PROG_P, slot=i) for i in range(count)]


def mint_builder(**retry):
    return (
        CrawlerBuilder(TARGET)
        .add_tx_filter(SuccessfulTxFilter())
        .add_ix_filter(IxProgramIdFilter(PROG_P))
        .add_account_index("mint", 5)
        .retry(attempts=retry.get("attempts", 3), base_delay=0.0)
    )


@pytest.fixture
def three_tx_ledger():
    """T1 failed, T2 program P, T3 program Q (oldest -> newest)."""
    return InMemoryLedger([
        single_ix_tx("T1", PROG_P, success=False, slot=1),
        single_ix_tx("T2", PROG_P, slot=2),
        single_ix_tx("T3", PROG_Q, slot=3),
    ])


# =============================================================================
# Filtering and extraction
# =============================================================================

class TestBasicSweep:
    """Three-transaction history."""

    @pytest.mark.asyncio
    async def test_success_and_program_filters(self, three_tx_ledger):
        engine = CrawlEngine(three_tx_ledger, mint_builder().build())

        outcome = await engine.run()

        assert outcome.result == {"mint": ["T2_acct5"]}
        summary = outcome.summary
        assert summary.processed == 3
        assert summary.fetched == 3
        assert summary.matched_transactions == 1
        assert summary.matched_instructions == 1
        assert summary.extracted == 1
        # T1 fetched fine and was filtered out, it is not a skip
        assert summary.skipped == 0
        assert summary.completed
        assert summary.last_signature == "T1"

    @pytest.mark.asyncio
    async def test_no_filters_extracts_everything(self, three_tx_ledger):
        config = CrawlerBuilder(TARGET).add_account_index("first", 0).build()

        outcome = await CrawlEngine(three_tx_ledger, config).run()

        assert outcome.result == {"first": ["T3_acct0", "T2_acct0", "T1_acct0"]}

    @pytest.mark.asyncio
    async def test_out_of_range_position_emits_nothing(self, three_tx_ledger):
        config = CrawlerBuilder(TARGET).add_account_index("far", 14).build()

        outcome = await CrawlEngine(three_tx_ledger, config).run()

        assert outcome.result == {"far": []}
        assert outcome.summary.matched_instructions == 3

    @pytest.mark.asyncio
    async def test_labels_present_without_matches(self):
        config = (
            CrawlerBuilder(TARGET)
            .add_account_index("metadata", 4)
            .add_account_index("mint", 5)
            .build()
        )
        outcome = await CrawlEngine(InMemoryLedger(), config).run()

        assert list(outcome.result) == ["metadata", "mint"]
        assert outcome.summary.processed == 0
        assert outcome.summary.completed

    @pytest.mark.asyncio
    async def test_chronological_and_unique(self):
        shared = InstructionRecord(PROG_P, accounts=("a0", "a1", "a2", "a3", "a4", "same"))
        history = [
            make_transaction("old", TARGET, [InstructionRecord(PROG_P, accounts=accounts("old", 6))]),
            make_transaction("mid", TARGET, [shared]),
            make_transaction("new", TARGET, [shared]),
        ]
        config = mint_builder().chronological().unique().build()

        outcome = await CrawlEngine(InMemoryLedger(history), config).run()

        assert outcome.result == {"mint": ["old_acct5", "same"]}
        assert outcome.summary.extracted == 3


# =============================================================================
# Bounds
# =============================================================================

class TestBounds:
    """Lower bound, resume_from and max_transactions."""

    @pytest.mark.asyncio
    async def test_until_signature_is_exclusive(self, three_tx_ledger):
        config = mint_builder().until_signature("T2").build()

        outcome = await CrawlEngine(three_tx_ledger, config).run()

        assert outcome.result == {"mint": []}
        assert outcome.summary.processed == 1
        assert outcome.summary.reached_lower_bound
        assert three_tx_ledger.stats.fetches_by_signature == {"T3": 1}

    @pytest.mark.asyncio
    async def test_resume_from(self, three_tx_ledger):
        outcome = await CrawlEngine(three_tx_ledger, mint_builder().build()).run(resume_from="T3")

        assert outcome.result == {"mint": ["T2_acct5"]}
        assert outcome.summary.processed == 2
        assert "T3" not in three_tx_ledger.stats.fetches_by_signature

    @pytest.mark.asyncio
    async def test_resume_from_with_nothing_older(self, three_tx_ledger):
        outcome = await CrawlEngine(three_tx_ledger, mint_builder().build()).run(resume_from="T1")

        assert outcome.summary.processed == 0
        assert outcome.summary.last_signature == "T1"

    @pytest.mark.asyncio
    async def test_max_transactions(self):
        ledger = InMemoryLedger(mint_history(25))
        config = mint_builder().batch_size(10).max_transactions(15).build()

        outcome = await CrawlEngine(ledger, config).run()

        assert outcome.summary.processed == 15
        assert outcome.summary.batches == 2
        assert outcome.result["mint"] == [f"m{i}_acct5" for i in range(24, 9, -1)]
        assert outcome.summary.last_signature == "m10"

    @pytest.mark.asyncio
    async def test_multiple_batches_cover_history(self):
        ledger = InMemoryLedger(mint_history(23))
        config = mint_builder().batch_size(5).build()

        outcome = await CrawlEngine(ledger, config).run()

        assert outcome.summary.batches == 5
        assert outcome.summary.processed == 23
        assert outcome.result["mint"] == [f"m{i}_acct5" for i in reversed(range(23))]


# =============================================================================
# Failures
# =============================================================================

class TestFetchFailures:
    """Retry, exhaustion and permanent skips."""

    @pytest.mark.asyncio
    async def test_transient_failure_retried(self, three_tx_ledger):
        three_tx_ledger.fail_transiently("T2", times=2)

        outcome = await CrawlEngine(three_tx_ledger, mint_builder(attempts=3).build()).run()

        assert outcome.result == {"mint": ["T2_acct5"]}
        assert outcome.summary.skipped == 0
        assert three_tx_ledger.stats.fetches_by_signature["T2"] == 3

    @pytest.mark.asyncio
    async def test_transient_exhausted_is_counted(self, three_tx_ledger):
        three_tx_ledger.fail_transiently("T2", times=10)

        outcome = await CrawlEngine(three_tx_ledger, mint_builder(attempts=3).build()).run()

        assert outcome.result == {"mint": []}
        assert outcome.summary.transient_exhausted == 1
        assert outcome.summary.processed == 3
        assert outcome.summary.fetched == 2
        assert outcome.summary.completed
        assert three_tx_ledger.stats.fetches_by_signature["T2"] == 3

    @pytest.mark.asyncio
    async def test_permanent_failure_skipped_without_retry(self, three_tx_ledger):
        three_tx_ledger.mark_missing("T2")

        outcome = await CrawlEngine(three_tx_ledger, mint_builder().build()).run()

        assert outcome.summary.permanent_skipped == 1
        assert outcome.summary.transient_exhausted == 0
        assert three_tx_ledger.stats.fetches_by_signature["T2"] == 1

    @pytest.mark.asyncio
    async def test_timeout_counts_as_transient(self, three_tx_ledger):
        three_tx_ledger.set_delay("T2", 5.0)
        config = mint_builder(attempts=2).fetch_timeout(0.05).build()

        outcome = await CrawlEngine(three_tx_ledger, config).run()

        assert outcome.summary.transient_exhausted == 1
        assert outcome.result == {"mint": []}

    @pytest.mark.asyncio
    async def test_listing_failure_sets_terminal_error(self, three_tx_ledger):
        three_tx_ledger.fail_listing(times=10)

        outcome = await CrawlEngine(three_tx_ledger, mint_builder().build()).run()

        assert outcome.summary.terminal_error.startswith("signature listing failed")
        assert not outcome.summary.completed
        assert outcome.summary.processed == 0

    @pytest.mark.asyncio
    async def test_listing_failure_keeps_earlier_batches(self):
        ledger = InMemoryLedger(mint_history(10))
        ledger.set_after_fetch(lambda signature: ledger.fail_listing(times=10))
        config = mint_builder().batch_size(4).build()

        outcome = await CrawlEngine(ledger, config).run()

        assert outcome.summary.terminal_error is not None
        assert outcome.summary.batches == 1
        assert outcome.result["mint"] == ["m9_acct5", "m8_acct5", "m7_acct5", "m6_acct5"]

    @pytest.mark.asyncio
    async def test_unexpected_reader_error_stops_sibling_fetches(self):
        class BrokenLedger(InMemoryLedger):
            async def get_transaction(self, signature, target):
                if signature == "m9":
                    raise RuntimeError("reader bug")
                return await super().get_transaction(signature, target)

        ledger = BrokenLedger(mint_history(10), fetch_delay=0.05)
        config = mint_builder().concurrency(4).build()

        with pytest.raises(RuntimeError, match="reader bug"):
            await CrawlEngine(ledger, config).run()

        assert ledger.stats.in_flight == 0
        await asyncio.sleep(0.1)
        assert ledger.stats.fetch_calls < 10

    @pytest.mark.asyncio
    async def test_raising_predicate_counts_as_non_match(self, three_tx_ledger):
        def explode(tx):
            raise ValueError("bad predicate")

        config = mint_builder().add_tx_filter(TxPredicate(explode, name="explode")).build()
        outcome = await CrawlEngine(three_tx_ledger, config).run()

        assert outcome.result == {"mint": []}
        assert outcome.summary.matched_transactions == 0
        assert outcome.summary.completed


# =============================================================================
# Cancellation and concurrency
# =============================================================================

class TestCancellation:
    """cancel_event handling."""

    @pytest.mark.asyncio
    async def test_cancel_before_run(self, three_tx_ledger):
        event = asyncio.Event()
        event.set()

        outcome = await CrawlEngine(three_tx_ledger, mint_builder().build()).run(cancel_event=event)

        assert outcome.summary.cancelled
        assert outcome.summary.processed == 0
        assert three_tx_ledger.stats.list_calls == 0

    @pytest.mark.asyncio
    async def test_cancel_mid_batch_keeps_completed_batches(self):
        ledger = InMemoryLedger(mint_history(30), fetch_delay=0.01)
        config = mint_builder().batch_size(10).concurrency(2).build()
        full = (await CrawlEngine(ledger, config).run()).result["mint"]

        event = asyncio.Event()
        fetched = []

        def after_fetch(signature):
            fetched.append(signature)
            if len(fetched) == 15:
                event.set()

        ledger.set_after_fetch(after_fetch)
        outcome = await CrawlEngine(ledger, config).run(cancel_event=event)

        assert outcome.summary.cancelled
        assert outcome.summary.batches == 1
        assert outcome.summary.processed == 10
        partial = outcome.result["mint"]
        assert partial == full[:len(partial)]
        assert len(partial) == 10

    @pytest.mark.asyncio
    async def test_failures_in_abandoned_batch_not_counted(self):
        ledger = InMemoryLedger(mint_history(20), fetch_delay=0.01)
        ledger.fail_transiently("m9", times=10)
        ledger.mark_missing("m8")
        ledger.set_delay("m6", 0.05)
        config = mint_builder(attempts=3).batch_size(10).concurrency(2).build()
        event = asyncio.Event()

        def after_fetch(signature):
            if signature == "m6":
                event.set()

        ledger.set_after_fetch(after_fetch)
        outcome = await CrawlEngine(ledger, config).run(cancel_event=event)

        summary = outcome.summary
        assert summary.cancelled
        assert ledger.stats.fetches_by_signature["m9"] == 3
        assert ledger.stats.fetches_by_signature["m8"] == 1
        assert summary.transient_exhausted == 0
        assert summary.permanent_skipped == 0
        assert summary.fetched == 10
        assert summary.processed == 10
        assert outcome.result["mint"] == [f"m{i}_acct5" for i in range(19, 9, -1)]


class TestConcurrency:
    """Bounded parallelism and order preservation."""

    @pytest.mark.asyncio
    async def test_order_preserved_with_random_latency(self):
        history = mint_history(40)
        ledger = InMemoryLedger(history)
        rng = random.Random(7)
        for tx in history:
            ledger.set_delay(tx.signature, rng.uniform(0, 0.01))

        config = mint_builder().concurrency(8).batch_size(16).build()
        outcome = await CrawlEngine(ledger, config).run()

        assert outcome.result["mint"] == [f"m{i}_acct5" for i in reversed(range(40))]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("workers", [1, 3, 8])
    async def test_in_flight_never_exceeds_limit(self, workers):
        ledger = InMemoryLedger(mint_history(30), fetch_delay=0.001)
        config = mint_builder().concurrency(workers).batch_size(30).build()

        await CrawlEngine(ledger, config).run()

        assert ledger.stats.max_in_flight <= workers
        if workers > 1:
            assert ledger.stats.max_in_flight > 1

    @pytest.mark.asyncio
    async def test_engine_is_reusable(self, three_tx_ledger):
        engine = CrawlEngine(three_tx_ledger, mint_builder().build())

        first = await engine.run()
        three_tx_ledger.append(single_ix_tx("T4", PROG_P, slot=4))
        second = await engine.run()

        assert first.result == {"mint": ["T2_acct5"]}
        assert second.result == {"mint": ["T4_acct5", "T2_acct5"]}
