"""
Billing for book and piece creation.

Prices each generation request, then runs the AI job inside an escrow
reservation so a failed, timed-out or cancelled job never costs the user
credits.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Literal, TypeVar

import structlog

from ..core.config import Settings
from ..core.exceptions import ValidationError
from .credit_escrow_service import CreditEscrowService, refund_reason_for

logger = structlog.get_logger()

T = TypeVar("T")

BookLength = Literal["short-story", "mini-book", "standard-book", "long-book"]
GenerationScope = Literal["full", "firstFew"]
CoverOption = Literal["none", "ai", "upload"]

# Flat content prices; standard-book depends on generation scope
BOOK_CONTENT_COSTS: dict[str, int] = {
    "short-story": 1,
    "mini-book": 2,
    "long-book": 15,
}
STANDARD_BOOK_FULL_COST = 8
STANDARD_BOOK_PARTIAL_COST = 2
BOOK_COVER_COST = 1
PIECE_CONTENT_COST = 1


def calculate_book_content_cost(book_length: str, generation_scope: str = "full") -> int:
    """
    Calculate credits for generating a book's content.

    Args:
        book_length: One of short-story, mini-book, standard-book, long-book
        generation_scope: "full" or "firstFew" (only matters for standard-book)

    Returns:
        Credit cost

    Raises:
        ValidationError: If book_length is unknown
    """
    if book_length == "standard-book":
        if generation_scope == "full":
            return STANDARD_BOOK_FULL_COST
        return STANDARD_BOOK_PARTIAL_COST

    if book_length not in BOOK_CONTENT_COSTS:
        raise ValidationError("Unknown book length", book_length=book_length)

    return BOOK_CONTENT_COSTS[book_length]


def calculate_cover_cost(cover_option: str) -> int:
    """Credits for the cover: AI-generated and uploaded covers cost 1, none is free."""
    if cover_option in ("ai", "upload"):
        return BOOK_COVER_COST
    if cover_option == "none":
        return 0
    raise ValidationError("Unknown cover option", cover_option=cover_option)


@dataclass
class BookGenerationOutcome:
    """Per-part result of a book generation run."""

    book_id: str
    content: Any = None
    content_error: BaseException | None = None
    cover: Any = None
    cover_error: BaseException | None = None
    credits_charged: int = 0

    @property
    def succeeded(self) -> bool:
        return self.content_error is None and self.cover_error is None


class CreationBillingService:
    """Runs billed generation jobs on top of the credit escrow."""

    def __init__(self, escrow: CreditEscrowService, settings: Settings):
        self.escrow = escrow
        self.settings = settings

    async def _run_reserved(
        self, transaction_id: str, generate: Callable[[], Awaitable[T]]
    ) -> T:
        """Run one job for an existing reservation and settle it on the outcome."""
        try:
            result = await asyncio.wait_for(
                generate(), timeout=self.settings.generation_timeout_seconds
            )
        except BaseException as e:
            await self.escrow.refund_credits(transaction_id, refund_reason_for(e))
            raise

        await self.escrow.commit_credits(transaction_id)
        return result

    async def run_piece_generation(
        self,
        user_id: str,
        piece_id: str,
        generate: Callable[[], Awaitable[T]],
    ) -> T:
        """
        Reserve piece credits, run generation, settle.

        Args:
            user_id: User paying for the piece
            piece_id: Piece identifier
            generate: Black-box coroutine function producing the piece content

        Returns:
            Whatever generate() returns

        Raises:
            Reservation errors (insufficient credits, duplicate, ...) before
            generate() is called; otherwise the job's own exception after refund
        """
        async with self.escrow.reservation(
            user_id,
            PIECE_CONTENT_COST,
            "Piece content generation",
            piece_id,
            "piece-content",
        ) as transaction_id:
            logger.info(
                "Piece generation started",
                user_id=user_id,
                piece_id=piece_id,
                transaction_id=transaction_id,
            )
            return await asyncio.wait_for(
                generate(), timeout=self.settings.generation_timeout_seconds
            )

    async def run_book_generation(
        self,
        user_id: str,
        book_id: str,
        book_length: BookLength,
        generation_scope: GenerationScope,
        cover_option: CoverOption,
        generate_content: Callable[[], Awaitable[Any]],
        generate_cover: Callable[[], Awaitable[Any]] | None = None,
    ) -> BookGenerationOutcome:
        """
        Reserve content (and cover) credits up front, then generate both in parallel.

        Each part is settled on its own outcome: a failed cover is refunded
        while successful content is still charged, and vice versa.

        Args:
            user_id: User paying for the book
            book_id: Book identifier
            book_length: Requested length (drives content price)
            generation_scope: "full" or "firstFew"
            cover_option: "none", "ai" or "upload"
            generate_content: Coroutine function producing the book content
            generate_cover: Coroutine function producing the cover
                (required unless cover_option is "none")

        Returns:
            BookGenerationOutcome with results and errors per part

        Raises:
            Reservation errors before any generation starts
        """
        content_cost = calculate_book_content_cost(book_length, generation_scope)
        cover_cost = calculate_cover_cost(cover_option)

        if cover_cost and generate_cover is None:
            raise ValidationError(
                "Cover generator required for cover option", cover_option=cover_option
            )

        content_tx = await self.escrow.reserve_credits(
            user_id, content_cost, f"Book content ({book_length})", book_id, "book-content"
        )

        cover_tx: str | None = None
        if cover_cost:
            try:
                cover_tx = await self.escrow.reserve_credits(
                    user_id,
                    cover_cost,
                    f"Book cover ({cover_option})",
                    book_id,
                    "book-cover",
                )
            except BaseException as e:
                # Includes cancellation
                await self.escrow.refund_credits(
                    content_tx, f"Cover reservation failed: {refund_reason_for(e)}"
                )
                raise

        logger.info(
            "Book generation started",
            user_id=user_id,
            book_id=book_id,
            content_transaction_id=content_tx,
            cover_transaction_id=cover_tx,
            credits_reserved=content_cost + cover_cost,
        )

        jobs = [self._run_reserved(content_tx, generate_content)]
        if cover_tx is not None and generate_cover is not None:
            jobs.append(self._run_reserved(cover_tx, generate_cover))

        results = await asyncio.gather(*jobs, return_exceptions=True)

        outcome = BookGenerationOutcome(book_id=book_id)
        if isinstance(results[0], BaseException):
            outcome.content_error = results[0]
        else:
            outcome.content = results[0]
            outcome.credits_charged += content_cost

        if len(results) > 1:
            if isinstance(results[1], BaseException):
                outcome.cover_error = results[1]
            else:
                outcome.cover = results[1]
                outcome.credits_charged += cover_cost

        logger.info(
            "Book generation finished",
            user_id=user_id,
            book_id=book_id,
            content_ok=outcome.content_error is None,
            cover_ok=outcome.cover_error is None,
            credits_charged=outcome.credits_charged,
        )

        return outcome
