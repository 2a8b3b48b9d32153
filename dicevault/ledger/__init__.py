"""
dicevault Ledger - accounts, transactions and the committed-transaction journal.
"""

from dicevault.ledger.journal import Journal, JournalEntry
from dicevault.ledger.ledger import (
    Account,
    Ledger,
    TransactionReceipt,
    system_transfer_instruction,
)
from dicevault.ledger.transaction import (
    AccountMeta,
    Instruction,
    InstructionContext,
    Transaction,
)

__all__ = [
    "Account",
    "AccountMeta",
    "Instruction",
    "InstructionContext",
    "Journal",
    "JournalEntry",
    "Ledger",
    "Transaction",
    "TransactionReceipt",
    "system_transfer_instruction",
]
