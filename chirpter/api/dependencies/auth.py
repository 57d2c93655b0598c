"""
Shared authentication dependencies for API endpoints.

End-user sessions are verified upstream (session-cookie middleware); this
backend only authenticates service-to-service callers such as the CronJob.
"""

import secrets

import structlog
from fastapi import Depends, Header, HTTPException, Request, status

from ...core.config import Settings, get_settings
from ...database.mongodb import MongoDB

logger = structlog.get_logger()


def get_mongodb(request: Request) -> MongoDB:
    """Get MongoDB instance from app state."""
    mongodb: MongoDB = request.app.state.mongodb
    return mongodb


async def require_admin(
    x_admin_secret: str | None = Header(None),
    settings: Settings = Depends(get_settings),
) -> None:
    """
    Require admin privileges for endpoint access.

    Callers authenticate with the X-Admin-Secret header (CronJob/internal tools).

    Args:
        x_admin_secret: Admin secret header
        settings: Application settings holding the expected secret

    Raises:
        HTTPException: 401 if the header is missing or wrong

    Usage:
        @router.post("/admin/endpoint")
        async def admin_endpoint(
            _: None = Depends(require_admin),  # Admin check
        ):
            # Only admins can reach here
            pass
    """
    if not x_admin_secret:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Admin authentication required (use X-Admin-Secret header)",
        )

    # Use constant-time comparison to prevent timing attacks
    if not secrets.compare_digest(x_admin_secret, settings.admin_secret):
        logger.warning("Invalid admin secret provided")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid admin secret",
        )

    logger.info("Admin access via admin secret header")
