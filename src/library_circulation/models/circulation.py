"""
Circulation models for the library circulation service.

These are the results the circulation engine hands back to facades: loan and
reservation records plus the outcome types of reserve, return and read.
Optional references are ``None`` when absent, never a zero id.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ReserveOutcome(str, Enum):
    """What a reserve request resulted in."""

    IMMEDIATE_CHECKOUT = "immediate_checkout"
    QUEUED = "queued"


class CheckoutRecord(BaseModel):
    """One loan. ``end_time`` is None while the loan is open."""

    id: int
    book_id: int
    member_id: int
    start_time: datetime
    end_time: datetime | None = None

    @property
    def is_open(self) -> bool:
        return self.end_time is None

    model_config = ConfigDict(
        from_attributes=True,
        json_schema_extra={
            "example": {
                "id": 12,
                "book_id": 3,
                "member_id": 7,
                "start_time": "2024-03-01T10:30:00",
                "end_time": None,
            }
        },
    )


class ReservationRecord(BaseModel):
    """One place in a book's queue. ``fulfilled_time`` is None while waiting."""

    id: int
    book_id: int
    member_id: int
    created_time: datetime
    fulfilled_time: datetime | None = None

    @property
    def is_open(self) -> bool:
        return self.fulfilled_time is None

    model_config = ConfigDict(from_attributes=True)


class ReservationResult(BaseModel):
    """Result of a reserve request."""

    outcome: ReserveOutcome
    book_id: int
    member_id: int
    queue_position: int | None = Field(
        default=None,
        description="1-based position in the queue when the request was queued",
        ge=1,
    )
    reservation: ReservationRecord | None = None
    checkout: CheckoutRecord | None = None


class ReturnResult(BaseModel):
    """Result of returning a book: who gave it back and who got it next."""

    book_id: int
    returned_by: int
    assigned_to: int | None = Field(
        default=None,
        description="Member the book was handed to from the queue; None if it became available",
    )

    @property
    def handed_off(self) -> bool:
        return self.assigned_to is not None


class ReadAccess(BaseModel):
    """Whether a member may read a book, and what reading would do."""

    book_id: int
    member_id: int
    has_content: bool
    is_borrower: bool
    can_read: bool
    can_auto_checkout: bool
    auto_checked_out: bool = False
