"""
Credit transaction repository for the escrow ledger.
Handles CRUD operations for the credit_transactions collection.
"""

import uuid
from datetime import datetime
from typing import Any

import structlog
from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from ...core.exceptions import DuplicatePendingReservationError
from ...core.utils.date_utils import utcnow
from ...models.transaction import CreditTransaction, ReservationCreate

logger = structlog.get_logger()

# Partial unique index: one live reservation per (user, item, item type)
PENDING_ITEM_INDEX = "uniq_pending_reservation_per_item"


class TransactionRepository:
    """Repository for credit transaction data access operations."""

    def __init__(self, collection: AsyncIOMotorCollection):
        """
        Initialize transaction repository.

        Args:
            collection: MongoDB collection for credit transactions
        """
        self.collection = collection

    async def ensure_indexes(self) -> None:
        """
        Create indexes for optimal query performance.
        Called during application startup.
        """
        await self.collection.create_index("transaction_id", unique=True)
        await self.collection.create_index(
            [
                ("user_id", ASCENDING),
                ("item_id", ASCENDING),
                ("item_type", ASCENDING),
                ("status", ASCENDING),
            ]
        )
        await self.collection.create_index(
            [("user_id", ASCENDING), ("item_id", ASCENDING), ("item_type", ASCENDING)],
            name=PENDING_ITEM_INDEX,
            unique=True,
            partialFilterExpression={"status": "pending"},
        )
        await self.collection.create_index(
            [("status", ASCENDING), ("expires_at", ASCENDING)]
        )
        await self.collection.create_index(
            [("user_id", ASCENDING), ("created_at", DESCENDING)]
        )

        logger.info("Credit transaction indexes created")

    async def create_pending(
        self, reservation: ReservationCreate, session: Any = None
    ) -> CreditTransaction:
        """
        Insert a new pending transaction.

        Args:
            reservation: Reservation data (user, amount, item, expiry)
            session: Optional MongoDB session for transactions

        Returns:
            Created transaction with pending status

        Raises:
            DuplicatePendingReservationError: If the partial unique index
                already holds a pending transaction for this item
        """
        now = utcnow()
        transaction = CreditTransaction(
            transaction_id=f"ctx_{uuid.uuid4().hex[:20]}",
            user_id=reservation.user_id,
            amount=reservation.amount,
            status="pending",
            reason=reservation.reason,
            item_id=reservation.item_id,
            item_type=reservation.item_type,
            created_at=now,
            updated_at=now,
            expires_at=reservation.expires_at,
            refund_reason=None,
        )

        try:
            await self.collection.insert_one(transaction.model_dump(), session=session)
        except DuplicateKeyError as e:
            if PENDING_ITEM_INDEX not in str(e):
                raise
            logger.warning(
                "Pending reservation rejected by unique index",
                user_id=reservation.user_id,
                item_id=reservation.item_id,
                item_type=reservation.item_type,
            )
            raise DuplicatePendingReservationError(
                reservation.item_id, reservation.item_type, user_id=reservation.user_id
            ) from e

        return transaction

    async def get_by_id(
        self, transaction_id: str, session: Any = None
    ) -> CreditTransaction | None:
        """
        Get transaction by ID.

        Args:
            transaction_id: Transaction identifier
            session: Optional MongoDB session for transactions

        Returns:
            Transaction if found, None otherwise
        """
        transaction_dict = await self.collection.find_one(
            {"transaction_id": transaction_id}, session=session
        )

        if not transaction_dict:
            return None

        # Remove MongoDB _id field
        transaction_dict.pop("_id", None)

        return CreditTransaction(**transaction_dict)

    async def find_pending_for_item(
        self, user_id: str, item_id: str, item_type: str, session: Any = None
    ) -> CreditTransaction | None:
        """
        Find the live reservation for an item, if any.

        Args:
            user_id: Owning user
            item_id: Book or piece identifier
            item_type: Billed part of the item
            session: Optional MongoDB session for transactions

        Returns:
            Pending transaction if one exists, None otherwise
        """
        transaction_dict = await self.collection.find_one(
            {
                "user_id": user_id,
                "item_id": item_id,
                "item_type": item_type,
                "status": "pending",
            },
            session=session,
        )

        if not transaction_dict:
            return None

        transaction_dict.pop("_id", None)
        return CreditTransaction(**transaction_dict)

    async def _settle(
        self, transaction_id: str, fields: dict[str, Any], session: Any = None
    ) -> CreditTransaction | None:
        # Status condition makes settlement a compare-and-set on "pending"
        result = await self.collection.find_one_and_update(
            {"transaction_id": transaction_id, "status": "pending"},
            {"$set": fields, "$currentDate": {"updated_at": True}},
            return_document=ReturnDocument.AFTER,
            session=session,
        )

        if not result:
            logger.warning(
                "Transaction settlement skipped - not found or not pending",
                transaction_id=transaction_id,
                target_status=fields.get("status"),
            )
            return None

        result.pop("_id", None)
        return CreditTransaction(**result)

    async def mark_spent(
        self, transaction_id: str, session: Any = None
    ) -> CreditTransaction | None:
        """
        Mark a pending transaction as spent.

        Args:
            transaction_id: Transaction identifier
            session: Optional MongoDB session for transactions

        Returns:
            Updated transaction if found and was pending, None otherwise
        """
        return await self._settle(transaction_id, {"status": "spent"}, session)

    async def mark_refunded(
        self, transaction_id: str, refund_reason: str, session: Any = None
    ) -> CreditTransaction | None:
        """
        Mark a pending transaction as refunded.

        Args:
            transaction_id: Transaction identifier
            refund_reason: Why the credits were returned
            session: Optional MongoDB session for transactions

        Returns:
            Updated transaction if found and was pending, None otherwise
        """
        return await self._settle(
            transaction_id,
            {"status": "refunded", "refund_reason": refund_reason},
            session,
        )

    async def find_expired_pending(
        self, now: datetime | None = None, limit: int = 50
    ) -> list[CreditTransaction]:
        """
        Find pending transactions past their expiry for the sweep job.

        Args:
            now: Reference time (defaults to utcnow())
            limit: Maximum number of transactions to return

        Returns:
            Expired pending transactions, oldest expiry first
        """
        cutoff_time = now or utcnow()

        cursor = (
            self.collection.find(
                {"status": "pending", "expires_at": {"$lt": cutoff_time}}
            )
            .sort("expires_at", ASCENDING)
            .limit(limit)
        )

        transactions = []
        async for transaction_dict in cursor:
            transaction_dict.pop("_id", None)
            transactions.append(CreditTransaction(**transaction_dict))

        if transactions:
            logger.info(
                "Found expired pending transactions",
                count=len(transactions),
                cutoff_time=cutoff_time.isoformat(),
            )

        return transactions

    async def get_user_transactions(
        self,
        user_id: str,
        page: int = 1,
        page_size: int = 20,
        status: str | None = None,
    ) -> tuple[list[CreditTransaction], int]:
        """
        Get paginated transaction history for a user.

        Args:
            user_id: User identifier
            page: Page number (1-indexed)
            page_size: Number of transactions per page
            status: Optional status filter (pending, spent, refunded)

        Returns:
            Tuple of (transactions list, total count)
        """
        # Build query filter
        query_filter: dict[str, Any] = {"user_id": user_id}
        if status:
            query_filter["status"] = status

        # Get total count
        total = await self.collection.count_documents(query_filter)

        # Get paginated results
        skip = (page - 1) * page_size
        cursor = (
            self.collection.find(query_filter)
            .sort("created_at", DESCENDING)  # Newest first
            .skip(skip)
            .limit(page_size)
        )

        transactions = []
        async for transaction_dict in cursor:
            transaction_dict.pop("_id", None)
            transactions.append(CreditTransaction(**transaction_dict))

        logger.info(
            "Fetched user transactions",
            user_id=user_id,
            page=page,
            page_size=page_size,
            count=len(transactions),
            total=total,
        )

        return transactions, total
