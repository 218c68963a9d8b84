"""
Ledger Crawler Data Types

Pure data structures for crawled transactions and extraction results.
Records are immutable once fetched - filters and extractors only read them.
"""

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional, Tuple


Address = str
CrawlResult = Dict[str, List[Address]]


@dataclass(frozen=True)
class SignatureInfo:
    """Single entry of a signature listing (newest first)."""
    signature: str
    slot: int = 0
    block_time: Optional[int] = None
    err: Optional[Any] = None


@dataclass(frozen=True)
class InstructionRecord:
    """
    One instruction of a transaction.

    accounts are already resolved from account-key indices, so position N
    is the address the program saw as its Nth account.
    """
    program_id: Address
    accounts: Tuple[Address, ...] = ()
    data: str = ""

    @property
    def account_count(self) -> int:
        return len(self.accounts)


@dataclass(frozen=True)
class TransactionRecord:
    """
    Full transaction body attributed to the crawled target account.

    error is present iff success is False.
    """
    signature: str
    target: Address
    success: bool
    instructions: Tuple[InstructionRecord, ...] = ()
    error: Optional[Any] = None
    block_time: Optional[int] = None
    slot: int = 0
    account_keys: Tuple[Address, ...] = ()
    signers: Tuple[Address, ...] = ()
    log_messages: Tuple[str, ...] = ()

    def __post_init__(self):
        if self.success and self.error is not None:
            raise ValueError(f"successful transaction {self.signature} carries an error")
        if not self.success and self.error is None:
            raise ValueError(f"failed transaction {self.signature} has no error detail")

    def has_program(self, program_id: Address) -> bool:
        """True if the program is invoked or referenced by the transaction."""
        if program_id in self.account_keys:
            return True
        return any(ix.program_id == program_id for ix in self.instructions)


@dataclass(frozen=True)
class ExtractionSpec:
    """Pull the account at `position` of a matching instruction into `label`."""
    label: str
    position: int


@dataclass
class CrawlSummary:
    """Counters for one sweep."""
    processed: int = 0
    fetched: int = 0
    matched_transactions: int = 0          # passed tx filters with >= 1 matching instruction
    matched_instructions: int = 0
    extracted: int = 0
    transient_exhausted: int = 0
    permanent_skipped: int = 0
    batches: int = 0
    cancelled: bool = False
    reached_lower_bound: bool = False
    terminal_error: Optional[str] = None
    last_signature: Optional[str] = None
    elapsed_seconds: float = 0.0

    @property
    def skipped(self) -> int:
        return self.transient_exhausted + self.permanent_skipped

    @property
    def completed(self) -> bool:
        return not self.cancelled and self.terminal_error is None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/output."""
        return asdict(self)


@dataclass
class CrawlOutcome:
    """Terminal result of CrawlEngine.run()."""
    result: CrawlResult = field(default_factory=dict)
    summary: CrawlSummary = field(default_factory=CrawlSummary)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "result": {label: list(addresses) for label, addresses in self.result.items()},
            "summary": self.summary.to_dict(),
        }
