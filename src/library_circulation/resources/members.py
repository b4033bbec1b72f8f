"""Member Resources

Resources:
- library://members/list - All members (no credential data)
- library://members/{member_id}/reservations - Books a member is waiting for
- library://members/{member_id}/checkouts - Books a member currently holds
"""

import logging
from typing import Any

from fastmcp.exceptions import ResourceError

from ..database.circulation_repository import CirculationRepository
from ..database.errors import NotFoundError, RepositoryException
from ..database.member_repository import MemberRepository
from ..database.session import session_scope
from ..observability import trace_resource
from .uri_utils import parse_id

logger = logging.getLogger(__name__)


@trace_resource("members.list")
async def list_members_handler() -> dict[str, Any]:
    try:
        with session_scope() as session:
            members = MemberRepository(session).get_all()
    except RepositoryException as e:
        logger.exception("Error in members/list resource")
        raise ResourceError(f"Failed to retrieve members: {e!s}") from e

    return {
        "members": [member.model_dump(mode="json") for member in members],
        "total": len(members),
    }


@trace_resource("members.reservations")
async def get_member_reservations_handler(member_id: str) -> dict[str, Any]:
    """Open reservations of one member with their place in each queue."""
    parsed_id = parse_id(member_id, "member id")
    try:
        with session_scope() as session:
            reservations = MemberRepository(session).get_open_reservations(parsed_id)
            circulation = CirculationRepository(session)
            entries = [
                {
                    **reservation.model_dump(mode="json"),
                    "queue_position": circulation.get_queue_position(
                        reservation.book_id, parsed_id
                    ),
                }
                for reservation in reservations
            ]
    except NotFoundError as e:
        raise ResourceError(str(e)) from e
    except RepositoryException as e:
        logger.exception("Error in members/{member_id}/reservations resource")
        raise ResourceError(f"Failed to retrieve reservations: {e!s}") from e

    return {"member_id": parsed_id, "reservations": entries}


@trace_resource("members.checkouts")
async def get_member_checkouts_handler(member_id: str) -> dict[str, Any]:
    parsed_id = parse_id(member_id, "member id")
    try:
        with session_scope() as session:
            checkouts = MemberRepository(session).get_active_checkouts(parsed_id)
    except NotFoundError as e:
        raise ResourceError(str(e)) from e
    except RepositoryException as e:
        logger.exception("Error in members/{member_id}/checkouts resource")
        raise ResourceError(f"Failed to retrieve checkouts: {e!s}") from e

    return {
        "member_id": parsed_id,
        "checkouts": [checkout.model_dump(mode="json") for checkout in checkouts],
    }


member_resources: list[dict[str, Any]] = [
    {
        "uri": "library://members/list",
        "name": "Members",
        "description": "All library members and whether each has a password set.",
        "mime_type": "application/json",
        "handler": list_members_handler,
    },
    {
        "uri": "library://members/{member_id}/reservations",
        "name": "Member Reservations",
        "description": "Books a member has reserved and their position in each queue.",
        "mime_type": "application/json",
        "handler": get_member_reservations_handler,
    },
    {
        "uri": "library://members/{member_id}/checkouts",
        "name": "Member Checkouts",
        "description": "Books a member currently has checked out, oldest loan first.",
        "mime_type": "application/json",
        "handler": get_member_checkouts_handler,
    },
]
