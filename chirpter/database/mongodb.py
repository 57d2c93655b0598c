"""
MongoDB connection and transactions for the credit ledger.
Following Factor 3: External Dependencies as Services.

Escrow writes span two collections, so the server must support
multi-document transactions (replica set or sharded cluster).
"""

from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import structlog
from motor.motor_asyncio import (
    AsyncIOMotorClient,
    AsyncIOMotorClientSession,
    AsyncIOMotorDatabase,
)

from ..core.exceptions import ConfigurationError, DatabaseError

logger = structlog.get_logger()

T = TypeVar("T")


def parse_database_name(mongodb_url: str) -> str:
    """
    Extract the database name from a MongoDB URL.

    Raises:
        ConfigurationError: If the URL path holds no usable database name
    """
    path = mongodb_url.rsplit("/", 1)[-1]
    database_name = path.split("?", 1)[0]

    if not database_name or any(char in database_name for char in "&=:"):
        raise ConfigurationError(
            f"No database name in MONGODB_URL (got '{path}'); "
            "expected mongodb://host/dbname?replicaSet=...",
            raw_db_name=path,
        )

    return database_name


def supports_transactions(hello: dict[str, Any]) -> bool:
    """True if a `hello` reply comes from a replica set member or a mongos router."""
    return bool(hello.get("setName")) or hello.get("msg") == "isdbgrid"


class MongoDB:
    """MongoDB connection manager with async support."""

    def __init__(self) -> None:
        self.client: AsyncIOMotorClient | None = None
        self.database: AsyncIOMotorDatabase | None = None

    async def connect(self, mongodb_url: str) -> None:
        """
        Connect and verify the deployment can run escrow transactions.

        Raises:
            ConfigurationError: Bad URL or a standalone server
            DatabaseError: Server unreachable
        """
        database_name = parse_database_name(mongodb_url)

        # tz_aware so expires_at comparisons stay in UTC
        client = AsyncIOMotorClient(mongodb_url, tz_aware=True)
        try:
            hello = await client.admin.command("hello")
        except Exception as e:
            client.close()
            logger.error(
                "Failed to connect to MongoDB",
                error=str(e),
                error_type=type(e).__name__,
            )
            raise DatabaseError(
                f"MongoDB connection failed: {str(e)}",
                original_error=type(e).__name__,
            ) from e

        if not supports_transactions(hello):
            client.close()
            raise ConfigurationError(
                "MongoDB is running standalone; credit escrow needs a replica set",
                database=database_name,
            )

        self.client = client
        self.database = client[database_name]

        logger.info(
            "MongoDB connection established",
            database=database_name,
            replica_set=hello.get("setName"),
        )

    async def disconnect(self) -> None:
        """Close MongoDB connection."""
        if self.client:
            self.client.close()
            self.client = None
            self.database = None
            logger.info("MongoDB connection closed")

    async def health_check(self) -> dict[str, bool | str | None]:
        """Report connectivity and the replica set serving transactions."""
        if not self.client:
            return {"connected": False, "error": "No client connection"}

        try:
            hello = await self.client.admin.command("hello")
        except Exception as e:
            logger.error("MongoDB health check failed", error=str(e))
            return {"connected": False, "error": str(e)}

        return {
            "connected": True,
            "database": self.database.name if self.database is not None else None,
            "replica_set": hello.get("setName"),
            "transactions": supports_transactions(hello),
        }

    def get_collection(self, collection_name: str):
        """Get a MongoDB collection."""
        if self.database is None:
            raise DatabaseError(
                "Cannot get collection: database connection not established",
                collection_name=collection_name,
            )
        return self.database[collection_name]

    async def run_transaction(
        self, callback: Callable[[AsyncIOMotorClientSession], Awaitable[T]]
    ) -> T:
        """
        Run callback(session) inside a multi-document transaction.

        Uses the driver's with_transaction helper, which commits atomically and
        re-runs the whole callback on TransientTransactionError (write conflicts)
        and retries UnknownTransactionCommitResult on commit. Any other exception
        raised by the callback aborts the transaction and propagates unchanged.

        Args:
            callback: Coroutine function receiving the session; every read and
                write it performs must pass session=session

        Returns:
            Whatever the callback returns
        """
        if not self.client:
            raise DatabaseError(
                "Cannot start transaction: database connection not established"
            )

        async with await self.client.start_session() as session:
            return await session.with_transaction(callback)
