"""API request/response schemas."""

from .admin_models import (
    CleanupResponse,
    Pagination,
    TransactionHistoryResponse,
    UserBalanceResponse,
)

__all__ = [
    "CleanupResponse",
    "Pagination",
    "TransactionHistoryResponse",
    "UserBalanceResponse",
]
