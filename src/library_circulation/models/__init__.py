"""
Library circulation models.

Pydantic v2 models for everything the service returns:
- Book / BookSummary / ContentPage: catalog entries and their text
- Member: library members (never exposing credential hashes)
- Circulation: checkouts, reservations and operation outcomes
"""

from .book import Book, BookCreateSchema, BookSummary, ContentPage
from .circulation import (
    CheckoutRecord,
    ReadAccess,
    ReservationRecord,
    ReservationResult,
    ReserveOutcome,
    ReturnResult,
)
from .member import Member, MemberCreateSchema

__all__ = [
    "Book",
    "BookCreateSchema",
    "BookSummary",
    "CheckoutRecord",
    "ContentPage",
    "Member",
    "MemberCreateSchema",
    "ReadAccess",
    "ReservationRecord",
    "ReservationResult",
    "ReserveOutcome",
    "ReturnResult",
]
