"""
Filter capability and pipeline.

A filter is anything with a `name` and an `evaluate(record) -> bool` that
never mutates the record and never blocks. Transaction-level and
instruction-level chains are independent; each is a short-circuiting AND
over its filters in the order they were added. An empty chain matches
everything.
"""

import logging
from typing import Callable, Iterable, Protocol, Set, Tuple, runtime_checkable

from ..types import InstructionRecord, TransactionRecord


logger = logging.getLogger(__name__)


@runtime_checkable
class TxFilter(Protocol):
    """Predicate over a fetched transaction."""
    name: str

    def evaluate(self, tx: TransactionRecord) -> bool:
        ...


@runtime_checkable
class IxFilter(Protocol):
    """Predicate over a single instruction."""
    name: str

    def evaluate(self, ix: InstructionRecord) -> bool:
        ...


class TxPredicate:
    """Wrap a plain callable as a transaction filter."""

    def __init__(self, fn: Callable[[TransactionRecord], bool], name: str = ""):
        self._fn = fn
        self.name = name or getattr(fn, "__name__", "tx_predicate")

    def evaluate(self, tx: TransactionRecord) -> bool:
        return bool(self._fn(tx))


class IxPredicate:
    """Wrap a plain callable as an instruction filter."""

    def __init__(self, fn: Callable[[InstructionRecord], bool], name: str = ""):
        self._fn = fn
        self.name = name or getattr(fn, "__name__", "ix_predicate")

    def evaluate(self, ix: InstructionRecord) -> bool:
        return bool(self._fn(ix))


def filter_name(flt) -> str:
    return getattr(flt, "name", None) or type(flt).__name__


class FilterPipeline:
    """
    Two ordered predicate chains evaluated with AND semantics.

    A predicate that raises is treated as returning False for that record,
    so evaluation stays total. The failure is logged once per filter.
    """

    def __init__(
        self,
        tx_filters: Iterable[TxFilter] = (),
        ix_filters: Iterable[IxFilter] = ()
    ):
        self.tx_filters: Tuple[TxFilter, ...] = tuple(tx_filters)
        self.ix_filters: Tuple[IxFilter, ...] = tuple(ix_filters)
        self._reported: Set[str] = set()

    def transaction_matches(self, tx: TransactionRecord) -> bool:
        return all(self._safe_evaluate(flt, tx) for flt in self.tx_filters)

    def instruction_matches(self, ix: InstructionRecord) -> bool:
        return all(self._safe_evaluate(flt, ix) for flt in self.ix_filters)

    def _safe_evaluate(self, flt, record) -> bool:
        try:
            return bool(flt.evaluate(record))
        except Exception as e:
            name = filter_name(flt)
            if name not in self._reported:
                self._reported.add(name)
                logger.warning(f"Filter {name} raised {type(e).__name__}: {e} - treating as no match")
            return False
