"""
Built-in instruction filters.
"""

import operator
from typing import Optional

from ..errors import ConfigurationError
from ..types import InstructionRecord


_COMPARISONS = {
    "eq": operator.eq,
    "lt": operator.lt,
    "le": operator.le,
    "gt": operator.gt,
    "ge": operator.ge,
}


class IxNumberAccounts:
    """
    Compares an instruction's account count against a bound.

    Operators: eq (exact), lt, le (at most), gt, ge (at least) and
    between (inclusive range, needs `upper`).
    """

    def __init__(self, op: str, value: int, upper: Optional[int] = None):
        if op == "between":
            if upper is None or upper < value:
                raise ConfigurationError(f"between needs upper >= {value}, got {upper}")
        elif op not in _COMPARISONS:
            raise ConfigurationError(f"Unknown account count operator: {op}")
        self.op = op
        self.value = value
        self.upper = upper
        self.name = f"accounts_{op}:{value}" if upper is None else f"accounts_{op}:{value}-{upper}"

    @classmethod
    def exactly(cls, n: int) -> "IxNumberAccounts":
        return cls("eq", n)

    @classmethod
    def at_least(cls, n: int) -> "IxNumberAccounts":
        return cls("ge", n)

    @classmethod
    def at_most(cls, n: int) -> "IxNumberAccounts":
        return cls("le", n)

    @classmethod
    def in_range(cls, low: int, high: int) -> "IxNumberAccounts":
        return cls("between", low, high)

    def evaluate(self, ix: InstructionRecord) -> bool:
        count = ix.account_count
        if self.op == "between":
            return self.value <= count <= self.upper
        return _COMPARISONS[self.op](count, self.value)


class IxProgramIdFilter:
    """Passes instructions executed by the given program."""

    def __init__(self, program_id: str):
        self.program_id = program_id
        self.name = f"program:{program_id}"

    def evaluate(self, ix: InstructionRecord) -> bool:
        return ix.program_id == self.program_id


class IxDataFilter:
    """Passes instructions whose encoded data equals the given string."""

    def __init__(self, data: str):
        self.data = data
        self.name = f"data:{data}"

    def evaluate(self, ix: InstructionRecord) -> bool:
        return ix.data == self.data


class IxDataNotEmpty:
    name = "data_not_empty"

    def evaluate(self, ix: InstructionRecord) -> bool:
        return bool(ix.data)


class IxHasAccountFilter:
    """Passes instructions that reference the account at any position."""

    def __init__(self, account: str):
        self.account = account
        self.name = f"has_account:{account}"

    def evaluate(self, ix: InstructionRecord) -> bool:
        return self.account in ix.accounts


class IxHasAccountAtIndexFilter:
    """Passes instructions with the account at exactly the given position."""

    def __init__(self, account: str, index: int):
        self.account = account
        self.index = index
        self.name = f"account_at:{index}:{account}"

    def evaluate(self, ix: InstructionRecord) -> bool:
        if 0 <= self.index < ix.account_count:
            return ix.accounts[self.index] == self.account
        return False
