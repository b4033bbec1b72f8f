"""
Error taxonomy for the library circulation service.

Every failure the store, the catalog or the circulation engine can report is
a subclass of ``RepositoryException``. The four families map onto how a
caller should react:

1. **NotFound**: the referenced book or member does not exist
2. **Conflict**: the request contradicts the current state of the book
3. **Unauthorized**: the caller may not perform the operation
4. **Transient**: the store could not obtain a lock in time; retry later

Facades (MCP tools, CLI) read ``kind`` and ``retryable`` instead of matching
on message text.
"""


class RepositoryException(Exception):
    """Base exception for repository operations."""

    kind = "store"
    retryable = False


class StoreError(RepositoryException):
    """Raised when the underlying database fails in an unexpected way."""


class TransientError(RepositoryException):
    """Raised when a lock could not be acquired within the configured timeout."""

    kind = "transient"
    retryable = True


# === Not found ===


class NotFoundError(RepositoryException):
    """Raised when an entity is not found."""

    kind = "not_found"


class BookNotFoundError(NotFoundError):
    def __init__(self, book_id: int):
        super().__init__(f"Book {book_id} not found")
        self.book_id = book_id


class MemberNotFoundError(NotFoundError):
    def __init__(self, member_id: int):
        super().__init__(f"Member {member_id} not found")
        self.member_id = member_id


# === Conflicts ===


class ConflictError(RepositoryException):
    """Raised when an operation contradicts the current circulation state."""

    kind = "conflict"


class BookUnavailableError(ConflictError):
    def __init__(self, book_id: int):
        super().__init__(f"Book {book_id} is currently checked out")
        self.book_id = book_id


class AlreadyCheckedOutBySelfError(ConflictError):
    def __init__(self, book_id: int, member_id: int):
        super().__init__(f"Member {member_id} already has book {book_id} checked out")
        self.book_id = book_id
        self.member_id = member_id


class DuplicateError(ConflictError):
    """Raised when attempting to create a duplicate entity."""


class DuplicateReservationError(DuplicateError):
    def __init__(self, book_id: int, member_id: int):
        super().__init__(f"Member {member_id} already has an active reservation for book {book_id}")
        self.book_id = book_id
        self.member_id = member_id


class BookNotCheckedOutError(ConflictError):
    def __init__(self, book_id: int):
        super().__init__(f"Book {book_id} is not checked out")
        self.book_id = book_id


class EmptyContentError(ConflictError):
    def __init__(self, book_id: int):
        super().__init__(f"Book {book_id} has no content to read")
        self.book_id = book_id


class BookInUseError(ConflictError):
    """Raised when deleting a book that is on loan or has a waiting queue."""

    def __init__(self, book_id: int):
        super().__init__(f"Book {book_id} is checked out or has active reservations")
        self.book_id = book_id


# === Authorization ===


class UnauthorizedError(RepositoryException):
    """Raised when the caller is not allowed to perform the operation."""

    kind = "unauthorized"


class InvalidCredentialError(UnauthorizedError):
    """Unknown member and wrong password are reported identically."""

    def __init__(self):
        super().__init__("Invalid member ID or password")


class NoCredentialSetError(UnauthorizedError):
    def __init__(self, member_id: int):
        super().__init__(f"Member {member_id} has no password set; reset it before signing in")
        self.member_id = member_id


class NoActiveReservationError(UnauthorizedError):
    def __init__(self, book_id: int, member_id: int):
        super().__init__(f"No active reservation found for member {member_id} on book {book_id}")
        self.book_id = book_id
        self.member_id = member_id


class NotBorrowerError(UnauthorizedError):
    def __init__(self, book_id: int, member_id: int):
        super().__init__(f"Book {book_id} is not checked out to member {member_id}")
        self.book_id = book_id
        self.member_id = member_id
