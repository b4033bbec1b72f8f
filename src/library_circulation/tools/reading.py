"""
Reading tool.

Members read a book one page at a time. Opening a free book checks it out to
the reader; a book someone else holds cannot be read until it comes back.
"""

import logging
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from ..config import get_config
from ..database.book_repository import BookRepository
from ..database.circulation_repository import CirculationRepository
from ..database.errors import RepositoryException
from ..database.session import session_scope
from ..observability import trace_tool
from .common import (
    authenticate,
    invalid_input_response,
    repository_error_response,
    text_response,
    unexpected_error_response,
)

logger = logging.getLogger(__name__)


class ReadBookInput(BaseModel):
    """Input schema for the read_book tool."""

    book_id: int = Field(..., ge=1)
    member_id: int = Field(..., ge=1)
    password: str | None = Field(default=None, repr=False)
    page: int = Field(default=1, ge=1, description="1-based page number")


@trace_tool("read_book")
async def read_book_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    try:
        params = ReadBookInput.model_validate(arguments)
    except ValidationError as e:
        return invalid_input_response("read", e)

    page_size = get_config().read_page_size
    try:
        with session_scope() as session:
            authenticate(session, params.member_id, params.password)
            # Resolve the page first so a bad page number never checks the book out
            page = BookRepository(session).get_content_page(params.book_id, params.page, page_size)
            access = CirculationRepository(session).read_book(params.book_id, params.member_id)
    except RepositoryException as e:
        return repository_error_response("Read", e)
    except ValueError as e:
        return invalid_input_response("read", e)
    except Exception as e:
        return unexpected_error_response("read_book", e)

    header = f"Book {page.book_id}, page {page.page} of {page.total_pages}"
    if access.auto_checked_out:
        header += " (checked out to you for reading)"
    return text_response(
        f"{header}\n\n{page.text}",
        {
            "page": page.model_dump(mode="json"),
            "has_next": page.has_next,
            "auto_checked_out": access.auto_checked_out,
        },
    )


read_book = {
    "name": "read_book",
    "description": (
        "Read a page of a book. A book nobody holds is checked out to the reader first; "
        "books held by another member cannot be read."
    ),
    "inputSchema": ReadBookInput.model_json_schema(),
    "handler": read_book_handler,
}
