"""
Catalog search tool.

Ranked full-text search over title, author and text when the FTS5 index is
available; a plain substring match on title and author otherwise. Results
never include book text.
"""

import logging
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from ..database.book_repository import BookRepository
from ..database.errors import RepositoryException
from ..database.session import session_scope
from ..observability import trace_tool
from .common import (
    invalid_input_response,
    repository_error_response,
    text_response,
    unexpected_error_response,
)

logger = logging.getLogger(__name__)


class SearchCatalogInput(BaseModel):
    """Input schema for the search_catalog tool."""

    query: str = Field(
        ...,
        description="Words to look for in titles, authors and book text",
        max_length=200,
        examples=["pride prejudice", "Melville"],
    )
    limit: int = Field(default=20, ge=1, le=100, description="Maximum number of results")


@trace_tool("search_catalog")
async def search_catalog_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    try:
        params = SearchCatalogInput.model_validate(arguments)
    except ValidationError as e:
        return invalid_input_response("search", e)

    try:
        with session_scope() as session:
            books = BookRepository(session).search(params.query, limit=params.limit)
    except RepositoryException as e:
        return repository_error_response("Search", e)
    except Exception as e:
        return unexpected_error_response("search_catalog", e)

    logger.debug("Search %r returned %d books", params.query, len(books))

    if not books:
        message = f"No books found matching '{params.query}'."
    else:
        lines = [f"Found {len(books)} book(s) matching '{params.query}':"]
        for book in books:
            status = "available" if book.available else f"checked out (member {book.borrower_id})"
            lines.append(f"- [{book.id}] {book.title} by {book.author} - {status}")
        message = "\n".join(lines)

    return text_response(
        message,
        {
            "query": params.query,
            "total": len(books),
            "books": [book.model_dump(mode="json") for book in books],
        },
    )


search_catalog = {
    "name": "search_catalog",
    "description": (
        "Search the catalog by title, author or words in the text. Results are ranked by "
        "relevance and show whether each book is available."
    ),
    "inputSchema": SearchCatalogInput.model_json_schema(),
    "handler": search_catalog_handler,
}
