"""
Database layer for the library circulation service.

SQLAlchemy schema, session management, the search index, and the
repositories that tools, resources and the CLI go through.
"""

from .book_repository import BookRepository
from .circulation_repository import CirculationRepository
from .errors import (
    ConflictError,
    NotFoundError,
    RepositoryException,
    StoreError,
    TransientError,
    UnauthorizedError,
)
from .member_repository import MemberRepository
from .schema import Base, Book, Checkout, Member, Reservation
from .search_index import SearchIndex
from .session import (
    DatabaseManager,
    get_db_manager,
    reset_db_manager,
    run_atomic,
    session_scope,
)

__all__ = [
    "Base",
    "Book",
    "BookRepository",
    "Checkout",
    "CirculationRepository",
    "ConflictError",
    "DatabaseManager",
    "Member",
    "MemberRepository",
    "NotFoundError",
    "RepositoryException",
    "Reservation",
    "SearchIndex",
    "StoreError",
    "TransientError",
    "UnauthorizedError",
    "get_db_manager",
    "reset_db_manager",
    "run_atomic",
    "session_scope",
]
