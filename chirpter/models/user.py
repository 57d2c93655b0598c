"""
User credit ledger models.

Only the credit-related subset of a user document is modelled here; profile
fields belong to the auth layer and are never read by the escrow code.
"""

from pydantic import BaseModel, Field


class UserStats(BaseModel):
    """Lifetime counters stored under the user's `stats` sub-document."""

    credits_spent: int = Field(default=0, description="Lifetime credits committed")


class UserCredits(BaseModel):
    """
    Credit balance view of a user document.

    credits + pending_credits only changes when a reservation is committed.
    """

    user_id: str = Field(..., description="Unique user identifier")
    credits: int = Field(default=0, description="Spendable balance")
    pending_credits: int = Field(
        default=0, description="Credits held by pending reservations"
    )
    stats: UserStats = Field(default_factory=UserStats)

    @property
    def total_credits(self) -> int:
        """Spendable plus reserved credits."""
        return self.credits + self.pending_credits

    class Config:
        json_schema_extra = {
            "example": {
                "user_id": "user_abc123",
                "credits": 6,
                "pending_credits": 4,
                "stats": {"credits_spent": 12},
            }
        }
