"""
Account extraction and result aggregation.

Extraction is pure and total: out-of-range positions are skipped, never an
error. Aggregation is append-only and mutated once per batch.
"""

from typing import Dict, Iterable, List, Sequence, Tuple

from .types import Address, CrawlResult, ExtractionSpec, InstructionRecord


Pair = Tuple[str, Address]


class AccountExtractor:
    """Turns a matching instruction into (label, address) pairs."""

    def __init__(self, specs: Sequence[ExtractionSpec]):
        self.specs: Tuple[ExtractionSpec, ...] = tuple(specs)

    @property
    def labels(self) -> List[str]:
        """Distinct labels in configured order."""
        return list(dict.fromkeys(spec.label for spec in self.specs))

    def extract(self, ix: InstructionRecord) -> List[Pair]:
        pairs = []
        for spec in self.specs:
            if spec.position < ix.account_count:
                pairs.append((spec.label, ix.accounts[spec.position]))
        return pairs


class ResultAggregator:
    """
    Label -> ordered addresses.

    The label set is fixed at construction; pairs for unknown labels are
    rejected rather than silently adding a bucket.
    """

    def __init__(self, labels: Iterable[str]):
        self._result: Dict[str, List[Address]] = {label: [] for label in labels}

    def merge(self, pairs: Iterable[Pair]) -> int:
        """Append a batch of pairs in order. Returns how many were added."""
        pairs = list(pairs)
        for label, _ in pairs:
            if label not in self._result:
                raise KeyError(f"Label '{label}' was not configured before the run")
        for label, address in pairs:
            self._result[label].append(address)
        return len(pairs)

    def snapshot(self) -> CrawlResult:
        return {label: list(addresses) for label, addresses in self._result.items()}

    def finalize(self, chronological: bool = False, unique: bool = False) -> CrawlResult:
        """
        Produce the terminal CrawlResult.

        chronological reverses discovery order (oldest first); unique keeps
        only the first occurrence of each address in the final order.
        """
        result = self.snapshot()
        for label, addresses in result.items():
            if chronological:
                addresses.reverse()
            if unique:
                result[label] = list(dict.fromkeys(addresses))
        return result

    def __len__(self) -> int:
        return sum(len(addresses) for addresses in self._result.values())
