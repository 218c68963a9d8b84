"""
Crawl configuration.

CrawlerBuilder collects filters and extraction specs in call order and
produces an immutable CrawlerConfig. The config is validated once, before
any ledger call, and can be reused for any number of independent runs.

Usage:
    config = (
        CrawlerBuilder("CandyMachine111...")
        .add_tx_filter(SuccessfulTxFilter())
        .add_ix_filter(IxProgramIdFilter(PROGRAM_ID))
        .add_account_index("mint", 5)
        .concurrency(16)
        .build()
    )
"""

from dataclasses import dataclass, field, replace
from typing import Iterable, List, Optional, Set, Tuple, Union

from .errors import ConfigurationError
from .filters.base import IxFilter, TxFilter
from .ledger.reader import MAX_SIGNATURES_PER_REQUEST
from .retry import RetryPolicy
from .types import ExtractionSpec


DEFAULT_CONCURRENCY = 8


@dataclass(frozen=True)
class CrawlerConfig:
    """Immutable configuration for one crawl target."""
    target: str
    tx_filters: Tuple[TxFilter, ...] = ()
    ix_filters: Tuple[IxFilter, ...] = ()
    extraction: Tuple[ExtractionSpec, ...] = ()

    # Fetching
    concurrency: int = DEFAULT_CONCURRENCY
    batch_size: int = MAX_SIGNATURES_PER_REQUEST
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    fetch_timeout: Optional[float] = 30.0

    # Stop conditions (exclusive lower bounds)
    until_signature: Optional[str] = None
    until_block_time: Optional[int] = None
    max_transactions: Optional[int] = None

    # Result shaping
    chronological: bool = False
    unique: bool = False

    @property
    def labels(self) -> List[str]:
        return list(dict.fromkeys(spec.label for spec in self.extraction))

    def validate(self):
        """Raise ConfigurationError on anything that would make the run meaningless."""
        if not self.target or not self.target.strip():
            raise ConfigurationError("target address is empty")
        if self.concurrency < 1:
            raise ConfigurationError(f"concurrency must be >= 1, got {self.concurrency}")
        if not 1 <= self.batch_size <= MAX_SIGNATURES_PER_REQUEST:
            raise ConfigurationError(
                f"batch_size must be between 1 and {MAX_SIGNATURES_PER_REQUEST}, got {self.batch_size}"
            )
        if self.fetch_timeout is not None and self.fetch_timeout <= 0:
            raise ConfigurationError(f"fetch_timeout must be positive, got {self.fetch_timeout}")
        if self.max_transactions is not None and self.max_transactions < 1:
            raise ConfigurationError(f"max_transactions must be >= 1, got {self.max_transactions}")
        self.retry.validate()

        seen: Set[Tuple[str, int]] = set()
        for spec in self.extraction:
            if not spec.label:
                raise ConfigurationError("extraction label is empty")
            if spec.position < 0:
                raise ConfigurationError(f"extraction '{spec.label}' has negative position {spec.position}")
            key = (spec.label, spec.position)
            if key in seen:
                raise ConfigurationError(
                    f"extraction '{spec.label}' at position {spec.position} is configured twice"
                )
            seen.add(key)

        for flt in self.tx_filters + self.ix_filters:
            if not callable(getattr(flt, "evaluate", None)):
                raise ConfigurationError(f"{flt!r} has no evaluate(record) method")


class CrawlerBuilder:
    """Staged builder for CrawlerConfig. Every setter returns self."""

    def __init__(self, target: str):
        self._config = CrawlerConfig(target=target)
        self._tx_filters: List[TxFilter] = []
        self._ix_filters: List[IxFilter] = []
        self._extraction: List[ExtractionSpec] = []

    def add_tx_filter(self, flt: TxFilter) -> "CrawlerBuilder":
        self._tx_filters.append(flt)
        return self

    def add_ix_filter(self, flt: IxFilter) -> "CrawlerBuilder":
        self._ix_filters.append(flt)
        return self

    def add_account_index(self, label: Union[str, ExtractionSpec], position: Optional[int] = None) -> "CrawlerBuilder":
        if isinstance(label, ExtractionSpec):
            self._extraction.append(label)
        else:
            if position is None:
                raise ConfigurationError(f"extraction '{label}' needs a position")
            self._extraction.append(ExtractionSpec(label=label, position=position))
        return self

    def account_indices(self, specs: Iterable[ExtractionSpec]) -> "CrawlerBuilder":
        """Replace all extraction specs."""
        self._extraction = list(specs)
        return self

    def concurrency(self, workers: int) -> "CrawlerBuilder":
        return self._set(concurrency=workers)

    def batch_size(self, size: int) -> "CrawlerBuilder":
        return self._set(batch_size=size)

    def retry(self, attempts: int = 5, base_delay: float = 0.5, max_delay: float = 30.0) -> "CrawlerBuilder":
        return self._set(retry=RetryPolicy(attempts=attempts, base_delay=base_delay, max_delay=max_delay))

    def fetch_timeout(self, seconds: Optional[float]) -> "CrawlerBuilder":
        return self._set(fetch_timeout=seconds)

    def until_signature(self, signature: Optional[str]) -> "CrawlerBuilder":
        return self._set(until_signature=signature)

    def until_block_time(self, timestamp: Optional[int]) -> "CrawlerBuilder":
        return self._set(until_block_time=timestamp)

    def max_transactions(self, count: Optional[int]) -> "CrawlerBuilder":
        return self._set(max_transactions=count)

    def chronological(self, enabled: bool = True) -> "CrawlerBuilder":
        return self._set(chronological=enabled)

    def unique(self, enabled: bool = True) -> "CrawlerBuilder":
        return self._set(unique=enabled)

    def _set(self, **changes) -> "CrawlerBuilder":
        self._config = replace(self._config, **changes)
        return self

    def build(self) -> CrawlerConfig:
        config = replace(
            self._config,
            tx_filters=tuple(self._tx_filters),
            ix_filters=tuple(self._ix_filters),
            extraction=tuple(self._extraction),
        )
        config.validate()
        return config
