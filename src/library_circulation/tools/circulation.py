"""
Circulation tools for the library circulation service.

1. checkout_book: lend an available book
2. return_book: close the loan and hand the book to the next member in line
3. reserve_book: borrow now if free, otherwise join the FIFO queue
4. cancel_reservation: leave the queue

Each handler validates its arguments with Pydantic, authenticates the member
when required, runs exactly one engine operation and reports the result in
the shared tool response shape.
"""

import logging
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from ..config import get_config
from ..database.circulation_repository import CirculationRepository
from ..database.errors import RepositoryException
from ..database.session import session_scope
from ..models.circulation import ReserveOutcome
from ..observability import trace_tool
from .common import (
    authenticate,
    invalid_input_response,
    repository_error_response,
    text_response,
    unexpected_error_response,
)

logger = logging.getLogger(__name__)


class MemberCredentials(BaseModel):
    member_id: int = Field(..., ge=1, description="Member performing the operation", examples=[7])
    password: str | None = Field(
        default=None,
        description="The member's password (required unless authentication is disabled)",
        repr=False,
    )


class CheckoutBookInput(MemberCredentials):
    """Input schema for the checkout_book tool."""

    book_id: int = Field(..., ge=1, description="Book to check out", examples=[1, 42])


class ReturnBookInput(BaseModel):
    """
    Input schema for the return_book tool.

    With ``member_id`` the return succeeds only if that member holds the
    book. It is required when returns are restricted to the borrower.
    """

    book_id: int = Field(..., ge=1, description="Book being returned", examples=[1])
    member_id: int | None = Field(default=None, ge=1, description="Member returning the book")
    password: str | None = Field(default=None, repr=False)


class ReserveBookInput(MemberCredentials):
    """Input schema for the reserve_book tool."""

    book_id: int = Field(..., ge=1, description="Book to reserve", examples=[1])


class CancelReservationInput(MemberCredentials):
    """Input schema for the cancel_reservation tool."""

    book_id: int = Field(..., ge=1, description="Book whose queue to leave", examples=[1])


@trace_tool("checkout_book")
async def checkout_book_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """Lend an available book to the authenticated member."""
    try:
        params = CheckoutBookInput.model_validate(arguments)
    except ValidationError as e:
        return invalid_input_response("checkout", e)

    try:
        with session_scope() as session:
            authenticate(session, params.member_id, params.password)
            checkout = CirculationRepository(session).checkout_book(params.book_id, params.member_id)
    except RepositoryException as e:
        return repository_error_response("Checkout", e)
    except Exception as e:
        return unexpected_error_response("checkout_book", e)

    return text_response(
        f"Book {checkout.book_id} checked out to member {checkout.member_id}.",
        {"checkout": checkout.model_dump(mode="json")},
    )


@trace_tool("return_book")
async def return_book_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """Return a book; if members are waiting, the first in line receives it."""
    try:
        params = ReturnBookInput.model_validate(arguments)
    except ValidationError as e:
        return invalid_input_response("return", e)

    config = get_config()
    if config.restrict_returns_to_borrower and params.member_id is None:
        return invalid_input_response(
            "return", ValueError("member_id is required when returns are restricted to the borrower")
        )

    try:
        with session_scope() as session:
            if params.member_id is not None:
                authenticate(session, params.member_id, params.password)
            result = CirculationRepository(session).return_book_with_details(
                params.book_id, params.member_id
            )
    except RepositoryException as e:
        return repository_error_response("Return", e)
    except Exception as e:
        return unexpected_error_response("return_book", e)

    if result.assigned_to is None:
        message = f"Book {result.book_id} returned by member {result.returned_by} and is now available."
    else:
        message = (
            f"Book {result.book_id} returned by member {result.returned_by} and checked out "
            f"to member {result.assigned_to}, who was next in the reservation queue."
        )
    return text_response(message, {"return": result.model_dump(mode="json")})


@trace_tool("reserve_book")
async def reserve_book_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """Reserve a book for the authenticated member."""
    try:
        params = ReserveBookInput.model_validate(arguments)
    except ValidationError as e:
        return invalid_input_response("reservation", e)

    try:
        with session_scope() as session:
            authenticate(session, params.member_id, params.password)
            result = CirculationRepository(session).reserve_book(params.book_id, params.member_id)
    except RepositoryException as e:
        return repository_error_response("Reservation", e)
    except Exception as e:
        return unexpected_error_response("reserve_book", e)

    if result.outcome == ReserveOutcome.IMMEDIATE_CHECKOUT:
        message = f"Book {result.book_id} was available and is now checked out to member {result.member_id}."
    else:
        message = (
            f"Book {result.book_id} is checked out. Member {result.member_id} is number "
            f"{result.queue_position} in the reservation queue."
        )
    return text_response(message, {"reservation": result.model_dump(mode="json")})


@trace_tool("cancel_reservation")
async def cancel_reservation_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """Remove the authenticated member from a book's reservation queue."""
    try:
        params = CancelReservationInput.model_validate(arguments)
    except ValidationError as e:
        return invalid_input_response("cancel reservation", e)

    try:
        with session_scope() as session:
            authenticate(session, params.member_id, params.password)
            CirculationRepository(session).cancel_reservation(params.book_id, params.member_id)
    except RepositoryException as e:
        return repository_error_response("Cancel reservation", e)
    except Exception as e:
        return unexpected_error_response("cancel_reservation", e)

    return text_response(
        f"Reservation for book {params.book_id} cancelled for member {params.member_id}.",
        {"book_id": params.book_id, "member_id": params.member_id},
    )


checkout_book = {
    "name": "checkout_book",
    "description": (
        "Check out an available book to a member. Fails if the book is already "
        "checked out; use reserve_book to join the waiting queue instead."
    ),
    "inputSchema": CheckoutBookInput.model_json_schema(),
    "handler": checkout_book_handler,
}

return_book = {
    "name": "return_book",
    "description": (
        "Return a checked-out book. If members have reserved it, the book goes straight "
        "to the member who reserved first; otherwise it becomes available. When member_id "
        "is given, only the member holding the book may return it."
    ),
    "inputSchema": ReturnBookInput.model_json_schema(),
    "handler": return_book_handler,
}

reserve_book = {
    "name": "reserve_book",
    "description": (
        "Reserve a book. An available book is checked out to the member immediately; a "
        "checked-out book puts the member in a first-come, first-served queue and reports "
        "their position."
    ),
    "inputSchema": ReserveBookInput.model_json_schema(),
    "handler": reserve_book_handler,
}

cancel_reservation = {
    "name": "cancel_reservation",
    "description": "Cancel the member's open reservation for a book.",
    "inputSchema": CancelReservationInput.model_json_schema(),
    "handler": cancel_reservation_handler,
}

circulation_tools = [checkout_book, return_book, reserve_book, cancel_reservation]
