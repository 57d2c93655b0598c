"""
Admin-only API endpoints for the credit escrow.

The cleanup endpoint is the HTTP trigger for the stale-reservation sweep
(Kubernetes CronJob / Cloud Scheduler); the others are diagnostics.
"""

import math

import structlog
from fastapi import APIRouter, Depends

from ..core.exceptions import TransactionNotFoundError
from ..core.utils.date_utils import utcnow
from ..models.transaction import CreditTransaction
from ..services.credit_escrow_service import CreditEscrowService
from .dependencies.auth import require_admin
from .dependencies.credit_deps import get_escrow_service
from .schemas.admin_models import (
    CleanupResponse,
    Pagination,
    TransactionHistoryResponse,
    UserBalanceResponse,
)

logger = structlog.get_logger()

router = APIRouter(prefix="/api/admin/credits", tags=["admin"])


@router.post("/cleanup", response_model=CleanupResponse)
async def cleanup_stale_reservations(
    _: None = Depends(require_admin),
    escrow_service: CreditEscrowService = Depends(get_escrow_service),
) -> CleanupResponse:
    """
    Refund pending reservations past their expiry.

    **Admin only**: Requires X-Admin-Secret header. Safe to call concurrently.
    """
    refunded = await escrow_service.cleanup_stale_pending_credits()

    logger.info("Stale reservation cleanup triggered via API", refunded=refunded)

    return CleanupResponse(refunded=refunded, ran_at=utcnow())


@router.get("/transactions/{transaction_id}", response_model=CreditTransaction)
async def get_transaction_status(
    transaction_id: str,
    _: None = Depends(require_admin),
    escrow_service: CreditEscrowService = Depends(get_escrow_service),
) -> CreditTransaction:
    """Look up one escrow transaction (diagnostics)."""
    transaction = await escrow_service.get_transaction_status(transaction_id)

    if transaction is None:
        raise TransactionNotFoundError(transaction_id)

    return transaction


@router.get("/users/{user_id}/balance", response_model=UserBalanceResponse)
async def get_user_balance(
    user_id: str,
    _: None = Depends(require_admin),
    escrow_service: CreditEscrowService = Depends(get_escrow_service),
) -> UserBalanceResponse:
    """Show a user's spendable, held and lifetime-spent credits."""
    user = await escrow_service.get_user_balance(user_id)

    return UserBalanceResponse(
        user_id=user.user_id,
        credits=user.credits,
        pending_credits=user.pending_credits,
        credits_spent=user.stats.credits_spent,
    )


@router.get(
    "/users/{user_id}/transactions", response_model=TransactionHistoryResponse
)
async def get_user_transactions(
    user_id: str,
    page: int = 1,
    page_size: int = 20,
    status: str | None = None,
    _: None = Depends(require_admin),
    escrow_service: CreditEscrowService = Depends(get_escrow_service),
) -> TransactionHistoryResponse:
    """
    Paginated escrow audit trail for a user, newest first.

    **Query parameters:**
    - page: 1-indexed page number
    - page_size: 1-100
    - status: optional filter (pending, spent, refunded)
    """
    transactions, total = await escrow_service.get_user_transactions(
        user_id=user_id, page=page, page_size=page_size, status=status
    )

    return TransactionHistoryResponse(
        transactions=transactions,
        pagination=Pagination(
            page=page,
            page_size=page_size,
            total=total,
            total_pages=math.ceil(total / page_size) if total else 0,
        ),
    )
