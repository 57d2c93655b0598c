"""
Dependencies for credit escrow API endpoints.
"""

from fastapi import Depends

from ...core.config import Settings, get_settings
from ...database.mongodb import MongoDB
from ...database.repositories.credit_ledger_repository import CreditLedgerRepository
from ...database.repositories.transaction_repository import TransactionRepository
from ...services.credit_escrow_service import CreditEscrowService
from .auth import get_mongodb

# ===== Repository Dependencies =====


def get_ledger_repository(
    mongodb: MongoDB = Depends(get_mongodb),
    settings: Settings = Depends(get_settings),
) -> CreditLedgerRepository:
    """Get credit ledger repository instance."""
    users_collection = mongodb.get_collection(settings.users_collection)
    return CreditLedgerRepository(users_collection)


def get_transaction_repository(
    mongodb: MongoDB = Depends(get_mongodb),
    settings: Settings = Depends(get_settings),
) -> TransactionRepository:
    """Get transaction repository instance."""
    transactions_collection = mongodb.get_collection(settings.transactions_collection)
    return TransactionRepository(transactions_collection)


# ===== Service Dependencies =====


def get_escrow_service(
    ledger_repo: CreditLedgerRepository = Depends(get_ledger_repository),
    transaction_repo: TransactionRepository = Depends(get_transaction_repository),
    mongodb: MongoDB = Depends(get_mongodb),
    settings: Settings = Depends(get_settings),
) -> CreditEscrowService:
    """Get credit escrow service instance."""
    return CreditEscrowService(mongodb, ledger_repo, transaction_repo, settings)


__all__ = ["get_escrow_service", "get_ledger_repository", "get_transaction_repository"]
