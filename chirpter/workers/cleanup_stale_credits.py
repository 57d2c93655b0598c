"""
Stale credit reservation sweep.

Refunds pending escrow reservations that were neither committed nor refunded
before their expiry (the caller crashed or lost track of the transaction).

Run via cron/Kubernetes CronJob every 5 minutes:
    python -m chirpter.workers.cleanup_stale_credits

Concurrent runs are safe: refunding an already-settled transaction is a no-op.

Environment variables:
    MONGODB_URL: MongoDB connection string (required, replica set)
    CLEANUP_BATCH_SIZE: Max reservations refunded per run (default: 50)
"""

import asyncio
import logging
import sys

import structlog

from ..core.config import Settings, get_settings
from ..database.mongodb import MongoDB
from ..database.repositories.credit_ledger_repository import CreditLedgerRepository
from ..database.repositories.transaction_repository import TransactionRepository
from ..services.credit_escrow_service import CreditEscrowService

logging.basicConfig(level=logging.INFO)

logger = structlog.get_logger()


def build_escrow_service(mongodb: MongoDB, settings: Settings) -> CreditEscrowService:
    """Wire repositories and the escrow service onto a connected MongoDB."""
    ledger_repo = CreditLedgerRepository(mongodb.get_collection(settings.users_collection))
    transaction_repo = TransactionRepository(
        mongodb.get_collection(settings.transactions_collection)
    )
    return CreditEscrowService(mongodb, ledger_repo, transaction_repo, settings)


async def run_cleanup(escrow_service: CreditEscrowService) -> int:
    """
    Run one sweep pass.

    Args:
        escrow_service: Escrow service bound to the live database

    Returns:
        Number of reservations refunded
    """
    logger.info(
        "Starting stale credit cleanup",
        batch_size=escrow_service.settings.cleanup_batch_size,
    )

    refunded = await escrow_service.cleanup_stale_pending_credits()

    logger.info("Stale credit cleanup completed", refunded=refunded)
    return refunded


async def main() -> int:
    """
    Main entry point for the cleanup worker.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    mongodb = MongoDB()
    try:
        settings: Settings = get_settings()

        await mongodb.connect(settings.mongodb_url)
        logger.info("MongoDB connected")

        escrow_service = build_escrow_service(mongodb, settings)
        refunded = await run_cleanup(escrow_service)

        logger.info("Cleanup worker finished successfully", refunded=refunded)
        return 0

    except Exception as e:
        logger.error("Cleanup worker failed", error=str(e), exc_info=True)
        return 1

    finally:
        await mongodb.disconnect()


if __name__ == "__main__":
    exit_code = asyncio.run(main())
    sys.exit(exit_code)
