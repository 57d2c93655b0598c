"""
FastAPI application entry point for the Chirpter credit backend.
Following Factor 11/12: Triggerable & Stateless design.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api.admin import router as admin_router
from .api.health import router as health_router
from .core.config import get_settings
from .core.exceptions import AppError
from .database.mongodb import MongoDB
from .database.repositories.credit_ledger_repository import CreditLedgerRepository
from .database.repositories.transaction_repository import TransactionRepository

# Set the root logger level to INFO so we can see detailed logs
logging.basicConfig(level=logging.INFO)

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan management for database connections."""
    settings = get_settings()

    logger.info("Starting Chirpter credit backend", environment=settings.environment)

    mongodb = MongoDB()

    try:
        await mongodb.connect(settings.mongodb_url)

        # Indexes back the duplicate-reservation check and the sweep query
        ledger_repo = CreditLedgerRepository(
            mongodb.get_collection(settings.users_collection)
        )
        await ledger_repo.ensure_indexes()

        transaction_repo = TransactionRepository(
            mongodb.get_collection(settings.transactions_collection)
        )
        await transaction_repo.ensure_indexes()

        # Store in app state for dependency injection
        app.state.mongodb = mongodb

        logger.info("Database connections started")

        yield

    finally:
        await mongodb.disconnect()
        logger.info("Database connections stopped")


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Chirpter Credit API",
        description="Credit escrow for AI-assisted book and piece generation",
        version="0.1.0",
        docs_url="/docs" if settings.environment == "development" else None,
        redoc_url="/redoc" if settings.environment == "development" else None,
        lifespan=lifespan,
    )

    # CORS middleware for frontend communication
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    # Global exception handler for custom app errors
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        """
        Handle all custom AppError exceptions with proper HTTP status codes.

        Insufficient credits, duplicate reservations and unknown transactions
        surface as 402/409/404 instead of generic 500 errors.
        """
        error_dict = exc.to_dict()

        # Log error with full context
        logger.error(
            "Application error occurred",
            path=request.url.path,
            method=request.method,
            **error_dict,
        )

        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.message, "error_type": exc.error_type},
        )

    # Include routers
    app.include_router(health_router, prefix="/api", tags=["health"])
    app.include_router(admin_router)  # Admin-only escrow endpoints

    return app


app = create_app()
