"""
Credit transaction models for the credit escrow ledger.
Append-only audit trail: one record per reservation lifecycle.
"""

from datetime import datetime
from typing import Literal, get_args

from pydantic import BaseModel, Field

TransactionStatus = Literal["pending", "spent", "refunded"]
ItemType = Literal["book-content", "book-cover", "piece-content"]

ITEM_TYPES: tuple[str, ...] = get_args(ItemType)
TRANSACTION_STATUSES: tuple[str, ...] = get_args(TransactionStatus)


class CreditTransaction(BaseModel):
    """
    Credit transaction model for database storage.
    Represents credits held in escrow for one paid generation.

    Status flow: pending → spent (commit) or pending → refunded (refund/sweep)
    Both outcomes are terminal.
    """

    transaction_id: str = Field(..., description="Unique transaction identifier")
    user_id: str = Field(..., description="User whose credits are reserved")
    amount: int = Field(..., gt=0, description="Credits reserved")
    status: TransactionStatus = Field(..., description="Escrow state")
    reason: str = Field(..., description="Why the credits were reserved")

    # Resource the reservation pays for
    item_id: str = Field(..., description="Book or piece identifier")
    item_type: ItemType = Field(..., description="Which part of the item is billed")

    # Timestamps
    created_at: datetime = Field(..., description="Reservation time")
    updated_at: datetime = Field(..., description="Last state change")
    expires_at: datetime = Field(
        ..., description="After this time a pending reservation is auto-refunded"
    )

    refund_reason: str | None = Field(
        None, description="Set only when status is refunded"
    )

    class Config:
        json_schema_extra = {
            "example": {
                "transaction_id": "ctx_4f1c2a9e0b7d4c3e8a61",
                "user_id": "user_xyz789",
                "amount": 4,
                "status": "spent",
                "reason": "Book cover generation",
                "item_id": "book_abc123",
                "item_type": "book-cover",
                "created_at": "2025-10-13T10:00:00Z",
                "updated_at": "2025-10-13T10:00:42Z",
                "expires_at": "2025-10-13T10:15:00Z",
                "refund_reason": None,
            }
        }


class ReservationCreate(BaseModel):
    """Data needed to open a new reservation."""

    user_id: str
    amount: int = Field(..., gt=0)
    reason: str
    item_id: str
    item_type: ItemType
    expires_at: datetime
