"""
Custom exception hierarchy for proper error categorization and HTTP status mapping.

This module maps internal errors to HTTP status codes so callers can tell apart:
- User errors (400-level): Client sent bad data or cannot afford the request
- Server errors (500-level): Our infrastructure/code failed

Usage:
    from chirpter.core.exceptions import InsufficientCreditsError

    raise InsufficientCreditsError(required=4, available=1, user_id=user_id)
"""

from typing import Any


class AppError(Exception):
    """
    Base application error with HTTP status mapping.

    All custom exceptions inherit from this to enable consistent error handling.
    """

    # Default status code (subclasses override)
    status_code: int = 500
    error_type: str = "internal_error"

    def __init__(self, message: str, **context: Any):
        """
        Initialize error with message and optional context.

        Args:
            message: Human-readable error description
            **context: Additional key-value pairs for logging (e.g., user_id, amount)
        """
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict for JSON response and structured logging."""
        return {
            "error_type": self.error_type,
            "message": self.message,
            "status_code": self.status_code,
            **self.context,
        }


# ===== 400-level: Client Errors =====


class ValidationError(AppError):
    """User provided invalid input (e.g., unknown item type, bad page size)."""

    status_code = 400
    error_type = "validation_error"


class PaymentRequiredError(AppError):
    """Request cannot be paid for with the user's current balance."""

    status_code = 402
    error_type = "payment_required"


class NotFoundError(AppError):
    """Requested resource does not exist."""

    status_code = 404
    error_type = "not_found_error"


class ConflictError(AppError):
    """Request conflicts with an operation already in flight."""

    status_code = 409
    error_type = "conflict_error"


# ===== Credit escrow errors =====


class InvalidAmountError(ValidationError):
    """Reservation amount is not a positive integer."""

    error_type = "invalid_amount"


class UserNotFoundError(NotFoundError):
    """Reservation target user does not exist."""

    error_type = "user_not_found"


class InsufficientCreditsError(PaymentRequiredError):
    """
    Available balance is below the requested amount.

    The message always includes both figures so it can be shown to the user as-is.
    """

    error_type = "insufficient_credits"

    def __init__(self, required: int, available: int, **context: Any):
        super().__init__(
            f"Insufficient credits. Required: {required}, Available: {available}",
            required=required,
            available=available,
            **context,
        )
        self.required = required
        self.available = available


class DuplicatePendingReservationError(ConflictError):
    """A live reservation already exists for the same (user, item, item type)."""

    error_type = "duplicate_pending_reservation"

    def __init__(self, item_id: str, item_type: str, **context: Any):
        super().__init__(
            "A pending transaction already exists for this item. "
            "Please wait for it to complete.",
            item_id=item_id,
            item_type=item_type,
            **context,
        )


class TransactionNotFoundError(NotFoundError):
    """Settlement or lookup referenced an unknown transaction id."""

    error_type = "transaction_not_found"

    def __init__(self, transaction_id: str, **context: Any):
        super().__init__(
            f"Transaction {transaction_id} not found",
            transaction_id=transaction_id,
            **context,
        )


# ===== 500-level: Server Errors =====


class DatabaseError(AppError):
    """
    Database operation failed (connection, query, schema issues).

    Examples:
        - Connection timeout to MongoDB
        - Collection requested before connect()
        - Database name parsing issue

    Maps to 500 Internal Server Error (our infrastructure problem).
    """

    status_code = 500
    error_type = "database_error"


class ConfigurationError(AppError):
    """
    Application misconfigured (e.g., missing env vars, invalid settings).

    Should be caught during startup, not during request handling.
    """

    status_code = 500
    error_type = "configuration_error"
