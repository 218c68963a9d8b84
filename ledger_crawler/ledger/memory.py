"""
In-Memory Ledger

Serves a fixed transaction history through the LedgerReader contract for
offline development and testing. Failure behaviour (transient errors,
missing signatures, slow fetches) is scripted per signature.

Usage:
    ledger = InMemoryLedger(history)            # oldest -> newest
    ledger.fail_transiently("sig", times=2)
    ledger.mark_missing("other-sig")
    engine = CrawlEngine(ledger, config)
"""

import asyncio
import random
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Set

from ..errors import NotFoundError, TransientFetchError
from ..types import InstructionRecord, SignatureInfo, TransactionRecord
from .reader import MAX_SIGNATURES_PER_REQUEST


BASE58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"


@dataclass
class LedgerCallStats:
    """Call accounting for assertions in tests."""
    list_calls: int = 0
    fetch_calls: int = 0
    in_flight: int = 0
    max_in_flight: int = 0
    fetches_by_signature: Dict[str, int] = field(default_factory=dict)


class InMemoryLedger:
    """
    LedgerReader over an in-memory history.

    History is given oldest -> newest, which is the order transactions land
    on a ledger; listings are served newest -> oldest.
    """

    def __init__(self, history: Sequence[TransactionRecord] = (), fetch_delay: float = 0.0):
        self._history: List[TransactionRecord] = list(history)
        self._by_signature: Dict[str, TransactionRecord] = {tx.signature: tx for tx in self._history}
        self._fetch_delay = fetch_delay
        self._delays: Dict[str, float] = {}
        self._transient: Dict[str, int] = {}
        self._missing: Set[str] = set()
        self._listing_failures = 0
        self._after_fetch: Optional[Callable[[str], None]] = None
        self.stats = LedgerCallStats()

    # =========================================================================
    # Scripting
    # =========================================================================

    def append(self, tx: TransactionRecord):
        """Land a new (newest) transaction."""
        self._history.append(tx)
        self._by_signature[tx.signature] = tx

    def fail_transiently(self, signature: str, times: int = 1):
        """Raise TransientFetchError for the next `times` fetches of signature."""
        self._transient[signature] = times

    def mark_missing(self, signature: str):
        """Listing still returns the signature but fetching it is NotFound."""
        self._missing.add(signature)

    def set_delay(self, signature: str, seconds: float):
        self._delays[signature] = seconds

    def fail_listing(self, times: int = 1):
        self._listing_failures = times

    def set_after_fetch(self, callback: Callable[[str], None]):
        """Called with the signature after every fetch attempt completes."""
        self._after_fetch = callback

    # =========================================================================
    # LedgerReader
    # =========================================================================

    @property
    def signatures(self) -> List[str]:
        """All signatures newest -> oldest."""
        return [tx.signature for tx in reversed(self._history)]

    async def list_signatures(
        self,
        account: str,
        before: Optional[str] = None,
        limit: int = MAX_SIGNATURES_PER_REQUEST
    ) -> List[SignatureInfo]:
        self.stats.list_calls += 1
        await asyncio.sleep(0)

        if self._listing_failures > 0:
            self._listing_failures -= 1
            raise TransientFetchError("listing unavailable")

        newest_first = list(reversed(self._history))
        start = 0
        if before is not None:
            positions = [i for i, tx in enumerate(newest_first) if tx.signature == before]
            if not positions:
                return []
            start = positions[0] + 1

        page = []
        for tx in newest_first[start:]:
            if len(page) >= limit:
                break
            page.append(SignatureInfo(
                signature=tx.signature,
                slot=tx.slot,
                block_time=tx.block_time,
                err=tx.error
            ))
        return page

    async def get_transaction(self, signature: str, target: str) -> TransactionRecord:
        self.stats.fetch_calls += 1
        self.stats.fetches_by_signature[signature] = self.stats.fetches_by_signature.get(signature, 0) + 1
        self.stats.in_flight += 1
        self.stats.max_in_flight = max(self.stats.max_in_flight, self.stats.in_flight)
        try:
            await asyncio.sleep(self._delays.get(signature, self._fetch_delay))

            remaining = self._transient.get(signature, 0)
            if remaining > 0:
                self._transient[signature] = remaining - 1
                raise TransientFetchError("rate limited", signature=signature)

            if signature in self._missing or signature not in self._by_signature:
                raise NotFoundError("unknown signature", signature=signature)

            return self._by_signature[signature]
        finally:
            self.stats.in_flight -= 1
            if self._after_fetch is not None:
                self._after_fetch(signature)


# =============================================================================
# History builders
# =============================================================================

def random_address(rng: random.Random, length: int = 44) -> str:
    return "".join(rng.choice(BASE58_ALPHABET) for _ in range(length))


def make_transaction(
    signature: str,
    target: str,
    instructions: Sequence[InstructionRecord] = (),
    success: bool = True,
    slot: int = 0,
    block_time: Optional[int] = None,
    log_messages: Sequence[str] = (),
    signers: Sequence[str] = ()
) -> TransactionRecord:
    """Build a TransactionRecord with account keys derived from its instructions."""
    keys = list(dict.fromkeys(
        list(signers) + [target]
        + [a for ix in instructions for a in ix.accounts]
        + [ix.program_id for ix in instructions]
    ))
    return TransactionRecord(
        signature=signature,
        target=target,
        success=success,
        error=None if success else {"InstructionError": [0, "Custom"]},
        instructions=tuple(instructions),
        block_time=block_time,
        slot=slot,
        account_keys=tuple(keys),
        signers=tuple(signers),
        log_messages=tuple(log_messages),
    )


def generate_history(
    target: str,
    count: int,
    programs: Sequence[str],
    seed: Optional[int] = None,
    failure_rate: float = 0.1,
    max_instructions: int = 3,
    max_accounts: int = 20
) -> List[TransactionRecord]:
    """Random history (oldest -> newest) with reproducible content for a seed."""
    rng = random.Random(seed)
    history = []
    for i in range(count):
        instructions = []
        for _ in range(rng.randint(1, max_instructions)):
            instructions.append(InstructionRecord(
                program_id=rng.choice(list(programs)),
                accounts=tuple(random_address(rng) for _ in range(rng.randint(0, max_accounts))),
                data=random_address(rng, rng.randint(0, 12)),
            ))
        history.append(make_transaction(
            signature=random_address(rng, 88),
            target=target,
            instructions=instructions,
            success=rng.random() >= failure_rate,
            slot=1000 + i,
            block_time=1_650_000_000 + i * 10,
        ))
    return history
