"""
SQLAlchemy database schema for the library circulation service.

Four tables hold the whole circulation state:

- ``books``: catalog entries plus the current availability and borrower
- ``members``: people who may borrow, with an optional credential hash
- ``checkouts``: loan history; a row with ``end_time IS NULL`` is the open loan
- ``reservations``: FIFO queue; a row with ``fulfilled_time IS NULL`` is waiting

The single-open-checkout and single-open-reservation rules are enforced by
partial unique indexes, and a book's availability flag is tied to its
borrower by a CHECK constraint, so the store rejects states the engine must
never produce.
"""

from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import declarative_base, relationship, validates

# Base class for all SQLAlchemy models
Base = declarative_base()


class Book(Base):
    """
    Books table - catalog entry and circulation state.

    ``available`` and ``borrower_id`` are written only by the circulation
    engine; catalog edits never touch them.
    """

    __tablename__ = "books"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(500), nullable=False, index=True)
    author = Column(String(300), nullable=False, index=True)
    content = Column(Text, nullable=False, default="")
    available = Column(Boolean, nullable=False, default=True)
    borrower_id = Column(Integer, ForeignKey("members.id"), nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, nullable=True, default=datetime.now, onupdate=datetime.now)

    borrower = relationship("Member", foreign_keys=[borrower_id])
    checkouts = relationship("Checkout", back_populates="book")
    reservations = relationship("Reservation", back_populates="book")

    __table_args__ = (
        Index("idx_book_borrower", "borrower_id"),
        CheckConstraint(
            "(available AND borrower_id IS NULL) OR (NOT available AND borrower_id IS NOT NULL)",
            name="check_book_availability_matches_borrower",
        ),
    )

    @validates("title", "author")
    def validate_not_blank(self, key, value):
        if value is None or not value.strip():
            raise ValueError(f"Book {key} cannot be empty")
        return value.strip()


class Member(Base):
    """
    Members table - library members.

    ``credential_hash`` is NULL for legacy members created before passwords
    existed; those members cannot authenticate until an operator resets it.
    """

    __tablename__ = "members"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False, index=True)
    credential_hash = Column(String(255), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.now)

    checkouts = relationship("Checkout", back_populates="member")
    reservations = relationship("Reservation", back_populates="member")

    @property
    def has_credential(self) -> bool:
        return bool(self.credential_hash)


class Checkout(Base):
    """
    Checkout records - one row per loan.

    At most one row per book may be open (``end_time IS NULL``).
    """

    __tablename__ = "checkouts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    book_id = Column(Integer, ForeignKey("books.id"), nullable=False)
    member_id = Column(Integer, ForeignKey("members.id"), nullable=False)
    start_time = Column(DateTime, nullable=False, default=datetime.now)
    end_time = Column(DateTime, nullable=True)

    book = relationship("Book", back_populates="checkouts")
    member = relationship("Member", back_populates="checkouts")

    __table_args__ = (
        Index("idx_checkout_member", "member_id"),
        Index(
            "uq_checkout_open_per_book",
            "book_id",
            unique=True,
            sqlite_where=text("end_time IS NULL"),
            postgresql_where=text("end_time IS NULL"),
        ),
        CheckConstraint(
            "end_time IS NULL OR end_time >= start_time", name="check_checkout_end_after_start"
        ),
    )


class Reservation(Base):
    """
    Reservations - the per-book FIFO queue.

    Open reservations (``fulfilled_time IS NULL``) are served oldest first,
    ordered by ``(created_time, id)``. Cancelling deletes the row.
    """

    __tablename__ = "reservations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    book_id = Column(Integer, ForeignKey("books.id"), nullable=False)
    member_id = Column(Integer, ForeignKey("members.id"), nullable=False)
    created_time = Column(DateTime, nullable=False, default=datetime.now)
    fulfilled_time = Column(DateTime, nullable=True)

    book = relationship("Book", back_populates="reservations")
    member = relationship("Member", back_populates="reservations")

    __table_args__ = (
        Index("idx_reservation_queue", "book_id", "created_time", "id"),
        Index("idx_reservation_member", "member_id"),
        Index(
            "uq_reservation_open_per_member",
            "book_id",
            "member_id",
            unique=True,
            sqlite_where=text("fulfilled_time IS NULL"),
            postgresql_where=text("fulfilled_time IS NULL"),
        ),
    )
