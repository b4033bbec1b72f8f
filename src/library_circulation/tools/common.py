"""
Shared response and authentication helpers for the MCP tools.

Tool results follow one shape:

- success: ``{"content": [{"type": "text", "text": ...}], "data": {...}}``
- failure: ``{"isError": True, "content": [...], "error": {"kind": ..., "retryable": ...}}``

``error.kind`` is one of ``not_found``, ``conflict``, ``unauthorized``,
``transient``, ``store``, ``invalid_input`` or ``internal`` so a client can
decide whether to retry without parsing the message.
"""

import logging
from typing import Any

from pydantic import ValidationError
from sqlalchemy.orm import Session

from ..config import get_config
from ..database.circulation_repository import CirculationRepository
from ..database.errors import InvalidCredentialError, RepositoryException, TransientError
from ..models.member import Member

logger = logging.getLogger(__name__)


def text_response(message: str, data: dict[str, Any] | None = None) -> dict[str, Any]:
    response: dict[str, Any] = {"content": [{"type": "text", "text": message}]}
    if data is not None:
        response["data"] = data
    return response


def error_response(message: str, kind: str, retryable: bool = False) -> dict[str, Any]:
    return {
        "isError": True,
        "content": [{"type": "text", "text": message}],
        "error": {"kind": kind, "retryable": retryable},
    }


def repository_error_response(operation: str, error: RepositoryException) -> dict[str, Any]:
    """Log a failed operation at the right level and describe it to the client."""
    if isinstance(error, TransientError):
        logger.warning("%s failed - lock timeout: %s", operation, error)
    elif error.kind == "store":
        logger.error("%s failed - store error: %s", operation, error)
    else:
        logger.info("%s failed - %s: %s", operation, error.kind, error)
    return error_response(str(error), error.kind, error.retryable)


def invalid_input_response(operation: str, error: ValidationError | ValueError) -> dict[str, Any]:
    logger.warning("Invalid %s parameters: %s", operation, error)
    return error_response(f"Invalid parameters: {error}", "invalid_input")


def unexpected_error_response(operation: str, error: Exception) -> dict[str, Any]:
    logger.exception("Unexpected error in %s tool", operation)
    return error_response(f"An unexpected error occurred: {error!s}", "internal")


def authenticate(session: Session, member_id: int, password: str | None) -> Member | None:
    """
    Check the member's password when authentication is required.

    Returns:
        The authenticated member, or None when authentication is switched off

    Raises:
        InvalidCredentialError: Missing or wrong password, or unknown member
        NoCredentialSetError: The member has no password yet
    """
    if not get_config().require_authentication:
        return None
    if password is None:
        raise InvalidCredentialError()
    return CirculationRepository(session).authenticate_member(member_id, password)
