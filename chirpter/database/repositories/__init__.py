"""
Repository layer for MongoDB data access.
Provides clean abstraction over database operations.
"""

from .credit_ledger_repository import CreditLedgerRepository
from .transaction_repository import TransactionRepository

__all__ = [
    "CreditLedgerRepository",
    "TransactionRepository",
]
