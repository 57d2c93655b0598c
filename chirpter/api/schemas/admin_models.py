"""
Admin-only API models for credit escrow operations and diagnostics.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from ...models.transaction import CreditTransaction


class CleanupResponse(BaseModel):
    """Result of one stale-reservation sweep."""

    refunded: int = Field(..., description="Reservations refunded by this run")
    ran_at: datetime = Field(..., description="When the sweep finished")


class UserBalanceResponse(BaseModel):
    """Credit ledger view of one user."""

    user_id: str
    credits: int = Field(..., description="Spendable balance")
    pending_credits: int = Field(..., description="Credits held in escrow")
    credits_spent: int = Field(..., description="Lifetime credits committed")

    class Config:
        json_schema_extra = {
            "example": {
                "user_id": "user_abc123",
                "credits": 6,
                "pending_credits": 4,
                "credits_spent": 12,
            }
        }


class Pagination(BaseModel):
    """Pagination block for list responses."""

    page: int
    page_size: int
    total: int
    total_pages: int


class TransactionHistoryResponse(BaseModel):
    """Paginated credit transaction audit trail."""

    transactions: list[CreditTransaction]
    pagination: Pagination
