"""
Credit escrow service for paid AI generation.

Reserve → commit | refund protocol:
- reserve_credits moves credits into escrow before costly work starts
- commit_credits consumes them once the work succeeded
- refund_credits returns them when the work failed
- cleanup_stale_pending_credits refunds reservations nobody settled in time

Every mutation runs inside one MongoDB transaction, so the transaction log and
the user's credits/pending_credits fields always change together. Settling a
transaction that is no longer pending is a logged no-op, which makes duplicate
or out-of-order settlement calls safe.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import structlog

from ..core.config import Settings
from ..core.exceptions import (
    DuplicatePendingReservationError,
    InsufficientCreditsError,
    InvalidAmountError,
    TransactionNotFoundError,
    UserNotFoundError,
    ValidationError,
)
from ..core.utils.date_utils import minutes_from_now, utcnow
from ..database.mongodb import MongoDB
from ..database.repositories.credit_ledger_repository import CreditLedgerRepository
from ..database.repositories.transaction_repository import TransactionRepository
from ..models.transaction import (
    ITEM_TYPES,
    TRANSACTION_STATUSES,
    CreditTransaction,
    ItemType,
    ReservationCreate,
)
from ..models.user import UserCredits

logger = structlog.get_logger()

DEFAULT_REFUND_REASON = "Generation failed"
EXPIRED_REFUND_REASON = "Auto-refunded: Transaction expired"


def refund_reason_for(error: BaseException) -> str:
    """Audit-trail refund reason for a job that ended with `error`."""
    message = str(error)
    return f"{type(error).__name__}: {message}" if message else type(error).__name__


class CreditEscrowService:
    """Service holding credits in escrow while paid generation runs."""

    def __init__(
        self,
        mongodb: MongoDB,
        ledger_repo: CreditLedgerRepository,
        transaction_repo: TransactionRepository,
        settings: Settings,
    ):
        """
        Initialize credit escrow service.

        Args:
            mongodb: MongoDB connection used to run multi-document transactions
            ledger_repo: Repository for user credit fields
            transaction_repo: Repository for the credit transaction log
            settings: Application settings (reservation TTL, sweep batch size)
        """
        self.mongodb = mongodb
        self.ledger_repo = ledger_repo
        self.transaction_repo = transaction_repo
        self.settings = settings

    async def reserve_credits(
        self,
        user_id: str,
        amount: int,
        reason: str,
        item_id: str,
        item_type: ItemType,
    ) -> str:
        """
        Reserve credits in escrow for one item (atomic).

        Args:
            user_id: User paying for the item
            amount: Credits to reserve (positive integer)
            reason: Human-readable reason, kept in the audit trail
            item_id: Book or piece identifier
            item_type: Billed part of the item

        Returns:
            Transaction ID to pass to commit_credits / refund_credits

        Raises:
            InvalidAmountError: If amount is not a positive integer
            ValidationError: If item_type is unknown
            UserNotFoundError: If the user does not exist
            InsufficientCreditsError: If the balance cannot cover amount
            DuplicatePendingReservationError: If the item already has a live reservation
        """
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise InvalidAmountError(
                "Credit amount must be positive", amount=amount, user_id=user_id
            )

        if item_type not in ITEM_TYPES:
            raise ValidationError(
                "Unknown item type", item_type=item_type, allowed=list(ITEM_TYPES)
            )

        async def _reserve(session: Any) -> CreditTransaction:
            user = await self.ledger_repo.get_credits(user_id, session=session)
            if user is None:
                raise UserNotFoundError("User not found", user_id=user_id)

            available_credits = user.credits
            if available_credits < amount:
                raise InsufficientCreditsError(
                    required=amount, available=available_credits, user_id=user_id
                )

            existing = await self.transaction_repo.find_pending_for_item(
                user_id, item_id, item_type, session=session
            )
            if existing is not None:
                raise DuplicatePendingReservationError(
                    item_id,
                    item_type,
                    user_id=user_id,
                    existing_transaction_id=existing.transaction_id,
                )

            # Transaction record first so the audit trail exists before balances move
            transaction = await self.transaction_repo.create_pending(
                ReservationCreate(
                    user_id=user_id,
                    amount=amount,
                    reason=reason,
                    item_id=item_id,
                    item_type=item_type,
                    expires_at=minutes_from_now(self.settings.reservation_ttl_minutes),
                ),
                session=session,
            )

            held = await self.ledger_repo.hold_credits(user_id, amount, session=session)
            if held is None:
                raise InsufficientCreditsError(
                    required=amount, available=available_credits, user_id=user_id
                )

            return transaction

        try:
            transaction = await self.mongodb.run_transaction(_reserve)
        except (
            UserNotFoundError,
            InsufficientCreditsError,
            DuplicatePendingReservationError,
        ) as e:
            logger.warning(
                "Credit reservation rejected",
                user_id=user_id,
                item_id=item_id,
                item_type=item_type,
                amount=amount,
                error_type=e.error_type,
            )
            raise

        logger.info(
            "Credits reserved",
            transaction_id=transaction.transaction_id,
            user_id=user_id,
            item_id=item_id,
            item_type=item_type,
            amount=amount,
            expires_at=transaction.expires_at.isoformat(),
        )

        return transaction.transaction_id

    async def commit_credits(self, transaction_id: str) -> bool:
        """
        Commit reserved credits after successful generation (atomic).

        Args:
            transaction_id: Transaction returned by reserve_credits

        Returns:
            True if the credits were spent, False if the transaction was
            already settled (no-op)

        Raises:
            TransactionNotFoundError: If the transaction does not exist
        """

        async def _commit(session: Any) -> CreditTransaction | None:
            transaction = await self.transaction_repo.get_by_id(
                transaction_id, session=session
            )
            if transaction is None:
                raise TransactionNotFoundError(transaction_id)

            # Only pending reservations can be committed
            if transaction.status != "pending":
                logger.warning(
                    "Cannot commit transaction - already settled",
                    transaction_id=transaction_id,
                    status=transaction.status,
                )
                return None

            # Status flips first; a concurrent settlement leaves nothing to undo
            if await self.transaction_repo.mark_spent(transaction_id, session=session) is None:
                return None

            spent = await self.ledger_repo.spend_held_credits(
                transaction.user_id, transaction.amount, session=session
            )
            if spent is None:
                raise UserNotFoundError(
                    "User not found",
                    user_id=transaction.user_id,
                    transaction_id=transaction_id,
                )

            return transaction

        committed = await self.mongodb.run_transaction(_commit)
        if committed is None:
            return False

        logger.info(
            "Credits committed",
            transaction_id=transaction_id,
            user_id=committed.user_id,
            amount=committed.amount,
        )
        return True

    async def refund_credits(
        self, transaction_id: str, reason: str = DEFAULT_REFUND_REASON
    ) -> bool:
        """
        Refund reserved credits on failure (atomic).

        Args:
            transaction_id: Transaction returned by reserve_credits
            reason: Why the credits are returned (stored as refund_reason)

        Returns:
            True if the credits were returned, False if the transaction was
            already settled (no-op; a spent transaction is never refunded)

        Raises:
            TransactionNotFoundError: If the transaction does not exist
        """

        async def _refund(session: Any) -> CreditTransaction | None:
            transaction = await self.transaction_repo.get_by_id(
                transaction_id, session=session
            )
            if transaction is None:
                raise TransactionNotFoundError(transaction_id)

            # Only pending reservations can be refunded
            if transaction.status != "pending":
                logger.warning(
                    "Cannot refund transaction - already settled",
                    transaction_id=transaction_id,
                    status=transaction.status,
                )
                return None

            marked = await self.transaction_repo.mark_refunded(
                transaction_id, reason, session=session
            )
            if marked is None:
                return None

            released = await self.ledger_repo.release_held_credits(
                transaction.user_id, transaction.amount, session=session
            )
            if released is None:
                raise UserNotFoundError(
                    "User not found",
                    user_id=transaction.user_id,
                    transaction_id=transaction_id,
                )

            return transaction

        refunded = await self.mongodb.run_transaction(_refund)
        if refunded is None:
            return False

        logger.info(
            "Credits refunded",
            transaction_id=transaction_id,
            user_id=refunded.user_id,
            amount=refunded.amount,
            refund_reason=reason,
        )
        return True

    async def cleanup_stale_pending_credits(self) -> int:
        """
        Auto-refund pending reservations past their expiry.

        Meant to be triggered externally (CronJob every 5 minutes). Each run
        handles at most cleanup_batch_size transactions; a failure on one
        transaction is logged and does not stop the rest of the batch.

        Returns:
            Number of transactions refunded by this run
        """
        stale_transactions = await self.transaction_repo.find_expired_pending(
            now=utcnow(), limit=self.settings.cleanup_batch_size
        )

        refunded_count = 0

        for transaction in stale_transactions:
            try:
                if await self.refund_credits(
                    transaction.transaction_id, EXPIRED_REFUND_REASON
                ):
                    refunded_count += 1
            except Exception as e:
                logger.error(
                    "Failed to auto-refund stale transaction",
                    transaction_id=transaction.transaction_id,
                    user_id=transaction.user_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )

        if refunded_count > 0:
            logger.info(
                "Auto-refunded stale transactions",
                refunded=refunded_count,
                scanned=len(stale_transactions),
            )

        return refunded_count

    async def get_transaction_status(
        self, transaction_id: str
    ) -> CreditTransaction | None:
        """
        Get transaction status (for diagnostics).

        Args:
            transaction_id: Transaction identifier

        Returns:
            Transaction if found, None otherwise
        """
        return await self.transaction_repo.get_by_id(transaction_id)

    async def get_user_balance(self, user_id: str) -> UserCredits:
        """
        Read a user's credit ledger fields.

        Raises:
            UserNotFoundError: If the user does not exist
        """
        user = await self.ledger_repo.get_credits(user_id)
        if user is None:
            raise UserNotFoundError("User not found", user_id=user_id)
        return user

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
            status: Optional status filter

        Returns:
            Tuple of (transactions list, total count)
        """
        if page < 1:
            raise ValidationError("Page must be >= 1", page=page)

        if page_size < 1 or page_size > 100:
            raise ValidationError("Page size must be 1-100", page_size=page_size)

        if status and status not in TRANSACTION_STATUSES:
            raise ValidationError("Invalid status filter", status=status)

        return await self.transaction_repo.get_user_transactions(
            user_id=user_id,
            page=page,
            page_size=page_size,
            status=status,
        )

    @asynccontextmanager
    async def reservation(
        self,
        user_id: str,
        amount: int,
        reason: str,
        item_id: str,
        item_type: ItemType,
    ) -> AsyncIterator[str]:
        """
        Hold credits for the duration of a block.

        Commits on normal exit; refunds on any exception (including task
        cancellation and timeouts) and re-raises it.

        Usage:
            async with escrow.reservation(user_id, 1, "Piece", piece_id, "piece-content"):
                await generate_piece(...)
        """
        transaction_id = await self.reserve_credits(
            user_id, amount, reason, item_id, item_type
        )

        try:
            yield transaction_id
        except BaseException as e:
            await self.refund_credits(transaction_id, refund_reason_for(e))
            raise

        await self.commit_credits(transaction_id)
