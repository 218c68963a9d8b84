"""
Built-in transaction filters.
"""

from typing import Optional

from ..types import TransactionRecord


class SuccessfulTxFilter:
    """Passes successful transactions, rejecting any with errors."""
    name = "successful"

    def evaluate(self, tx: TransactionRecord) -> bool:
        return tx.success


class TxHasProgramId:
    """Passes transactions that invoke or reference the given program id."""

    def __init__(self, program_id: str):
        self.program_id = program_id
        self.name = f"has_program:{program_id}"

    def evaluate(self, tx: TransactionRecord) -> bool:
        return tx.has_program(self.program_id)


class TxHasSigner:
    """Passes transactions where the address is a signer."""

    def __init__(self, address: str):
        self.address = address
        self.name = f"has_signer:{address}"

    def evaluate(self, tx: TransactionRecord) -> bool:
        return self.address in tx.signers


class TxLogExcludes:
    """
    Rejects transactions whose log output contains the given text.

    Useful for dropping transactions that succeeded on-chain but did not do
    the work (e.g. Candy Machine v2 bot tax). Transactions without logs pass.
    """

    def __init__(self, text: str, name: Optional[str] = None):
        self.text = text
        self.name = name or f"log_excludes:{text}"

    def evaluate(self, tx: TransactionRecord) -> bool:
        return not any(self.text in message for message in tx.log_messages)
