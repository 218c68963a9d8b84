"""
Ledger access.

Components:
- reader.py: LedgerReader capability consumed by the crawl engine
- rpc_client.py: Solana JSON-RPC implementation (aiohttp)
- memory.py: in-memory implementation for offline testing
"""

from .reader import LedgerReader, MAX_SIGNATURES_PER_REQUEST
from .rpc_client import RpcConfig, SolanaRpcReader, parse_transaction
from .memory import InMemoryLedger, generate_history, make_transaction

__all__ = [
    'LedgerReader',
    'MAX_SIGNATURES_PER_REQUEST',
    'RpcConfig',
    'SolanaRpcReader',
    'parse_transaction',
    'InMemoryLedger',
    'generate_history',
    'make_transaction',
]
