"""
Catalog and membership tools.

add_book and update_book_content maintain the catalog; add_member and
reset_password maintain member accounts. None of them touch circulation
state: a book's availability is only ever changed by the circulation tools.
"""

import logging
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator

from ..database.book_repository import BookRepository
from ..database.errors import RepositoryException
from ..database.member_repository import MemberRepository
from ..database.session import session_scope
from ..models.book import BookCreateSchema
from ..models.member import MemberCreateSchema
from ..observability import trace_tool
from .common import (
    invalid_input_response,
    repository_error_response,
    text_response,
    unexpected_error_response,
)

logger = logging.getLogger(__name__)


class AddBookInput(BaseModel):
    """Input schema for the add_book tool."""

    title: str = Field(..., min_length=1, max_length=500, examples=["Moby Dick"])
    author: str = Field(..., min_length=1, max_length=300, examples=["Herman Melville"])
    content: str = Field(default="", description="Full text of the book")


class UpdateBookContentInput(BaseModel):
    """Input schema for the update_book_content tool."""

    book_id: int = Field(..., ge=1)
    content: str = Field(..., description="New full text; replaces the old text")


class AddMemberInput(BaseModel):
    """Input schema for the add_member tool."""

    name: str = Field(..., min_length=1, max_length=200, examples=["Ada Lovelace"])
    password: str = Field(..., min_length=1, repr=False)


class ResetPasswordInput(BaseModel):
    """Input schema for the reset_password tool."""

    member_id: int = Field(..., ge=1)
    new_password: str = Field(..., min_length=1, repr=False)

    @field_validator("new_password")
    @classmethod
    def reject_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Password cannot be empty or whitespace")
        return v


@trace_tool("add_book")
async def add_book_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    try:
        params = AddBookInput.model_validate(arguments)
        book_data = BookCreateSchema(title=params.title, author=params.author, content=params.content)
    except ValidationError as e:
        return invalid_input_response("add book", e)

    try:
        with session_scope() as session:
            book = BookRepository(session).create(book_data)
    except RepositoryException as e:
        return repository_error_response("Add book", e)
    except Exception as e:
        return unexpected_error_response("add_book", e)

    return text_response(
        f"Added book {book.id}: '{book.title}' by {book.author}.",
        {"book": book.model_dump(mode="json", exclude={"content"})},
    )


@trace_tool("update_book_content")
async def update_book_content_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    try:
        params = UpdateBookContentInput.model_validate(arguments)
    except ValidationError as e:
        return invalid_input_response("update content", e)

    try:
        with session_scope() as session:
            book = BookRepository(session).update_content(params.book_id, params.content)
    except RepositoryException as e:
        return repository_error_response("Update content", e)
    except Exception as e:
        return unexpected_error_response("update_book_content", e)

    return text_response(
        f"Updated the text of book {book.id} ({len(book.content)} characters).",
        {"book": book.model_dump(mode="json", exclude={"content"})},
    )


@trace_tool("add_member")
async def add_member_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    try:
        params = AddMemberInput.model_validate(arguments)
        member_data = MemberCreateSchema(name=params.name, password=params.password)
    except ValidationError as e:
        return invalid_input_response("add member", e)

    try:
        with session_scope() as session:
            member = MemberRepository(session).create(member_data)
    except RepositoryException as e:
        return repository_error_response("Add member", e)
    except Exception as e:
        return unexpected_error_response("add_member", e)

    return text_response(
        f"Added member {member.id}: {member.name}.",
        {"member": member.model_dump(mode="json")},
    )


@trace_tool("reset_password")
async def reset_password_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    try:
        params = ResetPasswordInput.model_validate(arguments)
    except ValidationError as e:
        return invalid_input_response("reset password", e)

    try:
        with session_scope() as session:
            member = MemberRepository(session).reset_password(params.member_id, params.new_password)
    except RepositoryException as e:
        return repository_error_response("Reset password", e)
    except Exception as e:
        return unexpected_error_response("reset_password", e)

    return text_response(
        f"Password reset for member {member.id}.",
        {"member": member.model_dump(mode="json")},
    )


add_book = {
    "name": "add_book",
    "description": "Add a book to the catalog, optionally with its full text. New books are available.",
    "inputSchema": AddBookInput.model_json_schema(),
    "handler": add_book_handler,
}

update_book_content = {
    "name": "update_book_content",
    "description": "Replace the full text of a book. Does not affect who holds the book.",
    "inputSchema": UpdateBookContentInput.model_json_schema(),
    "handler": update_book_content_handler,
}

add_member = {
    "name": "add_member",
    "description": "Register a library member with a password. Names need not be unique.",
    "inputSchema": AddMemberInput.model_json_schema(),
    "handler": add_member_handler,
}

reset_password = {
    "name": "reset_password",
    "description": "Set a new password for a member; the old password stops working.",
    "inputSchema": ResetPasswordInput.model_json_schema(),
    "handler": reset_password_handler,
}

catalog_tools = [add_book, update_book_content, add_member, reset_password]
