"""Helpers for resource URI parameters."""

from fastmcp.exceptions import ResourceError


def parse_id(value: str, label: str) -> int:
    """Convert a URI path segment to a positive integer id."""
    try:
        parsed = int(value)
    except (TypeError, ValueError) as e:
        raise ResourceError(f"Invalid {label}: {value}") from e
    if parsed < 1:
        raise ResourceError(f"Invalid {label}: {value}")
    return parsed
