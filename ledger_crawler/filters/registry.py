"""
Filter registry.

Maps `{"type": ..., **params}` mappings (as found in job files) to built-in
filters. Custom predicates are added in code through the builder instead.
"""

from typing import Any, Callable, Dict, Mapping

from ..errors import ConfigurationError
from .ix import (
    IxDataFilter,
    IxDataNotEmpty,
    IxHasAccountAtIndexFilter,
    IxHasAccountFilter,
    IxNumberAccounts,
    IxProgramIdFilter,
)
from .tx import SuccessfulTxFilter, TxHasProgramId, TxHasSigner, TxLogExcludes


TX_FILTERS: Dict[str, Callable[..., Any]] = {
    "successful": SuccessfulTxFilter,
    "has_program": TxHasProgramId,
    "has_signer": TxHasSigner,
    "log_excludes": TxLogExcludes,
}

IX_FILTERS: Dict[str, Callable[..., Any]] = {
    "program": IxProgramIdFilter,
    "account_count": IxNumberAccounts,
    "data": IxDataFilter,
    "data_not_empty": IxDataNotEmpty,
    "has_account": IxHasAccountFilter,
    "account_at": IxHasAccountAtIndexFilter,
}


def _build(registry: Dict[str, Callable[..., Any]], spec: Mapping[str, Any], kind: str):
    if not isinstance(spec, Mapping) or "type" not in spec:
        raise ConfigurationError(f"{kind} filter needs a 'type': {spec!r}")

    params = dict(spec)
    filter_type = params.pop("type")
    factory = registry.get(filter_type)
    if factory is None:
        known = ", ".join(sorted(registry))
        raise ConfigurationError(f"Unknown {kind} filter '{filter_type}' (known: {known})")

    try:
        return factory(**params)
    except TypeError as e:
        raise ConfigurationError(f"Bad parameters for {kind} filter '{filter_type}': {e}") from e


def build_tx_filter(spec: Mapping[str, Any]):
    """Build a transaction filter from a registry spec."""
    return _build(TX_FILTERS, spec, "transaction")


def build_ix_filter(spec: Mapping[str, Any]):
    """Build an instruction filter from a registry spec."""
    return _build(IX_FILTERS, spec, "instruction")
