"""
Health check endpoints for monitoring and connectivity verification.
"""

from typing import Any

import structlog
from fastapi import APIRouter, Depends

from ..core.config import Settings, get_settings
from ..database.mongodb import MongoDB
from .dependencies.auth import get_mongodb

logger = structlog.get_logger()

router = APIRouter()


@router.get("/health")
async def health_check(
    mongodb: MongoDB = Depends(get_mongodb),
    settings: Settings = Depends(get_settings),
) -> dict[str, Any]:
    """
    Health check endpoint.

    Tests connectivity to MongoDB, the only hard dependency of the ledger.
    """
    logger.info("Health check requested")

    mongodb_status = await mongodb.health_check()
    healthy = bool(mongodb_status.get("connected", False))

    health_response = {
        "status": "ok" if healthy else "degraded",
        "environment": settings.environment,
        "version": "0.1.0",
        "dependencies": {
            "mongodb": mongodb_status,
        },
        "configuration": {
            "database_name": settings.database_name,
            "reservation_ttl_minutes": settings.reservation_ttl_minutes,
        },
    }

    if healthy:
        logger.info("Health check passed", status="healthy")
    else:
        logger.warning("Health check failed", mongodb=mongodb_status)

    return health_response
