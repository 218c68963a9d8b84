"""
Transaction and instruction filters.

Components:
- base.py: filter capability and FilterPipeline
- tx.py: built-in transaction filters
- ix.py: built-in instruction filters
- registry.py: build filters from job-file specs
"""

from .base import FilterPipeline, IxFilter, IxPredicate, TxFilter, TxPredicate
from .ix import (
    IxDataFilter,
    IxDataNotEmpty,
    IxHasAccountAtIndexFilter,
    IxHasAccountFilter,
    IxNumberAccounts,
    IxProgramIdFilter,
)
from .registry import build_ix_filter, build_tx_filter
from .tx import SuccessfulTxFilter, TxHasProgramId, TxHasSigner, TxLogExcludes

__all__ = [
    'FilterPipeline',
    'TxFilter',
    'IxFilter',
    'TxPredicate',
    'IxPredicate',
    'SuccessfulTxFilter',
    'TxHasProgramId',
    'TxHasSigner',
    'TxLogExcludes',
    'IxNumberAccounts',
    'IxProgramIdFilter',
    'IxDataFilter',
    'IxDataNotEmpty',
    'IxHasAccountFilter',
    'IxHasAccountAtIndexFilter',
    'build_tx_filter',
    'build_ix_filter',
]
