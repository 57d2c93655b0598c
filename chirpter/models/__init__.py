"""
Pydantic models for MongoDB collections.
Provides type safety and validation for database operations.
"""

from .transaction import (
    ITEM_TYPES,
    TRANSACTION_STATUSES,
    CreditTransaction,
    ItemType,
    ReservationCreate,
    TransactionStatus,
)
from .user import UserCredits, UserStats

__all__ = [
    "CreditTransaction",
    "ReservationCreate",
    "ItemType",
    "TransactionStatus",
    "ITEM_TYPES",
    "TRANSACTION_STATUSES",
    "UserCredits",
    "UserStats",
]
