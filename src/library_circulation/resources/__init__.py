"""MCP resources for the library circulation service.

Resources are the read-only side: the catalog with each book's availability,
reservation queues and checkout history, and the members with their loans.
Anything that changes state is a tool.
"""

from .books import book_resources
from .members import member_resources

all_resources = book_resources + member_resources

__all__ = [
    "all_resources",
    "book_resources",
    "member_resources",
]
