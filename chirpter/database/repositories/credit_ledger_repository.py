"""
Credit ledger repository: the only writer of users.credits / users.pending_credits.
Mutating methods are meant to be called from CreditEscrowService inside a
MongoDB transaction (pass session=session).
"""

from typing import Any

import structlog
from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo import ReturnDocument

from ...models.user import UserCredits

logger = structlog.get_logger()

LEDGER_PROJECTION = {
    "_id": 0,
    "user_id": 1,
    "credits": 1,
    "pending_credits": 1,
    "stats.credits_spent": 1,
}


class CreditLedgerRepository:
    """Repository for the credit fields of the users collection."""

    def __init__(self, collection: AsyncIOMotorCollection):
        """
        Initialize ledger repository.

        Args:
            collection: MongoDB collection for users
        """
        self.collection = collection

    async def ensure_indexes(self) -> None:
        """Create the user_id lookup index used by every ledger update."""
        await self.collection.create_index("user_id", unique=True)
        logger.info("Credit ledger indexes created")

    async def get_credits(
        self, user_id: str, session: Any = None
    ) -> UserCredits | None:
        """
        Read a user's credit fields.

        Args:
            user_id: User identifier
            session: Optional MongoDB session for transactions

        Returns:
            Credit view of the user, None if the user does not exist
        """
        user_dict = await self.collection.find_one(
            {"user_id": user_id}, LEDGER_PROJECTION, session=session
        )

        if not user_dict:
            return None

        return UserCredits(**user_dict)

    async def _apply(
        self,
        query: dict[str, Any],
        increments: dict[str, int],
        session: Any = None,
    ) -> UserCredits | None:
        result = await self.collection.find_one_and_update(
            query,
            {"$inc": increments, "$currentDate": {"updated_at": True}},
            projection=LEDGER_PROJECTION,
            return_document=ReturnDocument.AFTER,
            session=session,
        )

        if not result:
            return None

        return UserCredits(**result)

    async def hold_credits(
        self, user_id: str, amount: int, session: Any = None
    ) -> UserCredits | None:
        """
        Move credits from the spendable balance into escrow.

        The filter requires credits >= amount, so the balance never goes negative.

        Args:
            user_id: User identifier
            amount: Credits to hold
            session: Optional MongoDB session for transactions

        Returns:
            Updated balances, None if the user is missing or cannot cover amount
        """
        updated = await self._apply(
            {"user_id": user_id, "credits": {"$gte": amount}},
            {"credits": -amount, "pending_credits": amount},
            session,
        )

        if not updated:
            logger.warning(
                "Failed to hold credits - user missing or balance too low",
                user_id=user_id,
                amount=amount,
            )
            return None

        logger.info(
            "Credits held",
            user_id=user_id,
            amount=amount,
            credits=updated.credits,
            pending_credits=updated.pending_credits,
        )
        return updated

    async def spend_held_credits(
        self, user_id: str, amount: int, session: Any = None
    ) -> UserCredits | None:
        """
        Permanently consume held credits and add them to lifetime stats.

        Args:
            user_id: User identifier
            amount: Credits to consume from escrow
            session: Optional MongoDB session for transactions

        Returns:
            Updated balances, None if the user does not exist
        """
        updated = await self._apply(
            {"user_id": user_id},
            {"pending_credits": -amount, "stats.credits_spent": amount},
            session,
        )

        if not updated:
            logger.warning("Failed to spend held credits - user not found", user_id=user_id)
            return None

        logger.info(
            "Held credits spent",
            user_id=user_id,
            amount=amount,
            pending_credits=updated.pending_credits,
            credits_spent=updated.stats.credits_spent,
        )
        return updated

    async def release_held_credits(
        self, user_id: str, amount: int, session: Any = None
    ) -> UserCredits | None:
        """
        Return held credits to the spendable balance.

        Args:
            user_id: User identifier
            amount: Credits to move back out of escrow
            session: Optional MongoDB session for transactions

        Returns:
            Updated balances, None if the user does not exist
        """
        updated = await self._apply(
            {"user_id": user_id},
            {"credits": amount, "pending_credits": -amount},
            session,
        )

        if not updated:
            logger.warning(
                "Failed to release held credits - user not found", user_id=user_id
            )
            return None

        logger.info(
            "Held credits released",
            user_id=user_id,
            amount=amount,
            credits=updated.credits,
            pending_credits=updated.pending_credits,
        )
        return updated
