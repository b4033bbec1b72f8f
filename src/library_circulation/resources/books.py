"""Book Resources - Catalog and Circulation State

Read-only views of the catalog. Book text is never included; use the
read_book tool to page through it.

Resources:
- library://books/list - Book catalog with availability
- library://books/{book_id} - One book, its current loan and queue length
- library://books/{book_id}/reservations - The book's reservation queue in order
- library://books/{book_id}/history - Loans of the book, newest first
"""

import logging
from typing import Any

from fastmcp.exceptions import ResourceError
from pydantic import BaseModel, Field

from ..database.book_repository import BookRepository
from ..database.circulation_repository import CirculationRepository
from ..database.errors import NotFoundError, RepositoryException
from ..database.repository import PaginationParams
from ..database.session import session_scope
from ..models.book import BookSummary
from ..observability import trace_resource
from .uri_utils import parse_id

logger = logging.getLogger(__name__)


class BookListResponse(BaseModel):
    """Response schema with books and pagination metadata."""

    books: list[BookSummary] = Field(..., description="Books on this page, without text")
    total: int = Field(..., description="Total number of books")
    page: int
    page_size: int
    total_pages: int
    has_next: bool
    has_previous: bool


@trace_resource("books.list")
async def list_books_handler() -> dict[str, Any]:
    """Returns the first page of the catalog, ordered by id."""
    try:
        with session_scope() as session:
            result = BookRepository(session).get_all(
                pagination=PaginationParams(page=1, page_size=100)
            )
            return BookListResponse(
                books=result.items,
                total=result.total,
                page=result.page,
                page_size=result.page_size,
                total_pages=result.total_pages,
                has_next=result.has_next,
                has_previous=result.has_previous,
            ).model_dump(mode="json")
    except RepositoryException as e:
        logger.exception("Error in books/list resource")
        raise ResourceError(f"Failed to retrieve book list: {e!s}") from e


@trace_resource("books.detail")
async def get_book_handler(book_id: str) -> dict[str, Any]:
    """Returns a book's catalog entry, current loan and queue length."""
    parsed_id = parse_id(book_id, "book id")
    try:
        with session_scope() as session:
            book = BookRepository(session).get_summary(parsed_id)
            circulation = CirculationRepository(session)
            checkout = circulation.get_open_checkout(parsed_id)
            queue = circulation.get_reservation_queue(parsed_id)
    except RepositoryException as e:
        logger.exception("Error in books/{book_id} resource")
        raise ResourceError(f"Failed to retrieve book details: {e!s}") from e

    if book is None:
        raise ResourceError(f"Book not found: {parsed_id}")

    details = book.model_dump(mode="json")
    details["current_checkout"] = None if checkout is None else checkout.model_dump(mode="json")
    details["queue_length"] = len(queue)
    return details


@trace_resource("books.reservations")
async def get_book_reservations_handler(book_id: str) -> dict[str, Any]:
    """Returns the open reservations for a book, next in line first."""
    parsed_id = parse_id(book_id, "book id")
    try:
        with session_scope() as session:
            queue = BookRepository(session).get_open_reservations(parsed_id)
    except NotFoundError as e:
        raise ResourceError(str(e)) from e
    except RepositoryException as e:
        logger.exception("Error in books/{book_id}/reservations resource")
        raise ResourceError(f"Failed to retrieve reservations: {e!s}") from e

    return {
        "book_id": parsed_id,
        "queue": [
            {"position": position, **reservation.model_dump(mode="json")}
            for position, reservation in enumerate(queue, start=1)
        ],
    }


@trace_resource("books.history")
async def get_book_history_handler(book_id: str) -> dict[str, Any]:
    """Returns the book's loans, newest first, open loan included."""
    parsed_id = parse_id(book_id, "book id")
    try:
        with session_scope() as session:
            if not BookRepository(session).exists(parsed_id):
                raise ResourceError(f"Book not found: {parsed_id}")
            history = CirculationRepository(session).get_checkout_history(book_id=parsed_id)
    except RepositoryException as e:
        logger.exception("Error in books/{book_id}/history resource")
        raise ResourceError(f"Failed to retrieve checkout history: {e!s}") from e

    return {
        "book_id": parsed_id,
        "checkouts": [checkout.model_dump(mode="json") for checkout in history],
    }


book_resources: list[dict[str, Any]] = [
    {
        "uri": "library://books/list",
        "name": "Book Catalog",
        "description": "Browse the catalog with each book's availability and current borrower.",
        "mime_type": "application/json",
        "handler": list_books_handler,
    },
    {
        "uri": "library://books/{book_id}",
        "name": "Book Details",
        "description": "A book's catalog entry, its open checkout and how many members are waiting.",
        "mime_type": "application/json",
        "handler": get_book_handler,
    },
    {
        "uri": "library://books/{book_id}/reservations",
        "name": "Book Reservation Queue",
        "description": "Members waiting for a book, in the order they will receive it.",
        "mime_type": "application/json",
        "handler": get_book_reservations_handler,
    },
    {
        "uri": "library://books/{book_id}/history",
        "name": "Book Checkout History",
        "description": "Every loan of a book, newest first, with start and return times.",
        "mime_type": "application/json",
        "handler": get_book_history_handler,
    },
]
