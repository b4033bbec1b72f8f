"""
Circulation repository: the checkout, reservation and return state machine.

Each book is either *available* (no borrower) or *checked out* (exactly one
open checkout, whose member is the borrower). While checked out it may gather
a FIFO queue of open reservations. On return, the oldest reservation is
fulfilled and its member becomes the next borrower without the book ever
becoming available in between; with an empty queue the book becomes
available.

Every public operation runs as one transaction via ``run_atomic``: either all
of its writes commit or none do. The book row is locked first (``FOR UPDATE``
where the database supports row locks; on SQLite the transaction already
holds the write lock from ``BEGIN IMMEDIATE``), so two members racing for the
same book are serialized and exactly one wins.
"""

import logging
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..models.circulation import CheckoutRecord as CheckoutModel
from ..models.circulation import (
    ReadAccess,
    ReservationResult,
    ReserveOutcome,
    ReturnResult,
)
from ..models.circulation import ReservationRecord as ReservationModel
from ..models.member import Member as MemberModel
from ..security import CredentialVerifier
from .errors import (
    AlreadyCheckedOutBySelfError,
    BookNotCheckedOutError,
    BookNotFoundError,
    BookUnavailableError,
    DuplicateReservationError,
    EmptyContentError,
    InvalidCredentialError,
    MemberNotFoundError,
    NoActiveReservationError,
    NoCredentialSetError,
    NotBorrowerError,
)
from .schema import Book as BookDB
from .schema import Checkout as CheckoutDB
from .schema import Member as MemberDB
from .schema import Reservation as ReservationDB
from .session import run_atomic, safe_query

logger = logging.getLogger(__name__)


class CirculationRepository:
    """
    The circulation engine.

    It holds no state of its own; the session it is given is the store, and
    the verifier is the only way it touches passwords.
    """

    def __init__(self, session: Session, verifier: CredentialVerifier | None = None):
        self.session = session
        self.verifier = verifier or CredentialVerifier()

    # === Checkout ===

    def checkout_book(self, book_id: int, member_id: int) -> CheckoutModel:
        """
        Lend an available book to a member.

        Raises:
            BookNotFoundError: If the book does not exist
            MemberNotFoundError: If the member does not exist
            BookUnavailableError: If someone already holds the book
        """

        def _checkout(session):
            db_book = self._lock_book(session, book_id)
            self._require_member(session, member_id)
            if not db_book.available:
                raise BookUnavailableError(book_id)
            return self._checkout_to_model(self._lend(session, db_book, member_id))

        checkout = run_atomic(self.session, "checkout book", _checkout)
        logger.info("Book %d checked out to member %d", book_id, member_id)
        return checkout

    # === Reservation ===

    def reserve_book(self, book_id: int, member_id: int) -> ReservationResult:
        """
        Reserve a book: borrow it now if it is free, otherwise join its queue.

        Checks run in this order, and the first failure wins:
        book exists, member exists, member does not already hold the book,
        member is not already queued for it.

        Raises:
            BookNotFoundError: If the book does not exist
            MemberNotFoundError: If the member does not exist
            AlreadyCheckedOutBySelfError: If the member currently holds the book
            DuplicateReservationError: If the member is already in the queue
        """

        def _reserve(session):
            db_book = self._lock_book(session, book_id)
            self._require_member(session, member_id)

            if db_book.borrower_id == member_id:
                raise AlreadyCheckedOutBySelfError(book_id, member_id)
            if self._find_open_reservation(session, book_id, member_id) is not None:
                raise DuplicateReservationError(book_id, member_id)

            if db_book.available:
                checkout = self._lend(session, db_book, member_id)
                return ReservationResult(
                    outcome=ReserveOutcome.IMMEDIATE_CHECKOUT,
                    book_id=book_id,
                    member_id=member_id,
                    checkout=self._checkout_to_model(checkout),
                )

            reservation = ReservationDB(
                book_id=book_id, member_id=member_id, created_time=datetime.now()
            )
            session.add(reservation)
            try:
                session.flush()
            except IntegrityError as e:
                # Another transaction queued the same member first
                raise DuplicateReservationError(book_id, member_id) from e

            return ReservationResult(
                outcome=ReserveOutcome.QUEUED,
                book_id=book_id,
                member_id=member_id,
                queue_position=self._queue_position(session, reservation),
                reservation=self._reservation_to_model(reservation),
            )

        result = run_atomic(self.session, "reserve book", _reserve)
        if result.outcome == ReserveOutcome.QUEUED:
            logger.info(
                "Member %d queued for book %d at position %d",
                member_id,
                book_id,
                result.queue_position,
            )
        else:
            logger.info("Book %d was free; checked out to member %d", book_id, member_id)
        return result

    def cancel_reservation(self, book_id: int, member_id: int) -> None:
        """
        Withdraw the member's place in the book's queue.

        Raises:
            NoActiveReservationError: If the member is not queued for the book
        """

        def _cancel(session):
            self._lock_book(session, book_id)
            reservation = self._find_open_reservation(session, book_id, member_id)
            if reservation is None:
                raise NoActiveReservationError(book_id, member_id)
            session.delete(reservation)

        run_atomic(self.session, "cancel reservation", _cancel)
        logger.info("Member %d cancelled reservation for book %d", member_id, book_id)

    # === Return ===

    def return_book_with_details(self, book_id: int, member_id: int | None = None) -> ReturnResult:
        """
        Close the open checkout and hand the book to the next member in line.

        Args:
            book_id: Book being returned
            member_id: When given, only this member may return the book

        Returns:
            Who returned the book and who (if anyone) received it

        Raises:
            BookNotFoundError: If the book does not exist
            BookNotCheckedOutError: If the book has no open checkout
            NotBorrowerError: If ``member_id`` is given and does not hold the book
        """

        def _return(session):
            db_book = self._lock_book(session, book_id)
            open_checkout = self._find_open_checkout(session, book_id)
            if open_checkout is None:
                raise BookNotCheckedOutError(book_id)
            if member_id is not None and open_checkout.member_id != member_id:
                raise NotBorrowerError(book_id, member_id)

            now = datetime.now()
            returned_by = open_checkout.member_id
            open_checkout.end_time = now
            # The closed loan must reach the database before the next one opens
            session.flush()

            next_in_line = self._first_in_queue(session, book_id)
            if next_in_line is None:
                db_book.available = True
                db_book.borrower_id = None
                session.flush()
                return ReturnResult(book_id=book_id, returned_by=returned_by, assigned_to=None)

            next_in_line.fulfilled_time = now
            db_book.borrower_id = next_in_line.member_id
            session.add(
                CheckoutDB(book_id=book_id, member_id=next_in_line.member_id, start_time=now)
            )
            session.flush()
            return ReturnResult(
                book_id=book_id, returned_by=returned_by, assigned_to=next_in_line.member_id
            )

        result = run_atomic(self.session, "return book", _return)
        if result.assigned_to is None:
            logger.info("Book %d returned by member %d; now available", book_id, result.returned_by)
        else:
            logger.info(
                "Book %d returned by member %d; handed to member %d",
                book_id,
                result.returned_by,
                result.assigned_to,
            )
        return result

    def return_book(self, book_id: int, member_id: int | None = None) -> int:
        """Return a book; the result is the id of the member who returned it."""
        return self.return_book_with_details(book_id, member_id).returned_by

    # === Authentication ===

    def authenticate_member(self, member_id: int, password: str) -> MemberModel:
        """
        Check a member's password.

        An unknown member and a wrong password fail identically.

        Raises:
            InvalidCredentialError: Unknown member or wrong password
            NoCredentialSetError: The member has no password yet
        """

        def _load(session):
            return session.get(MemberDB, member_id)

        db_member = run_atomic(self.session, "authenticate member", _load)

        if db_member is None:
            self.verifier.verify_unknown(password)
            logger.info("Authentication failed for member %d", member_id)
            raise InvalidCredentialError()
        if not db_member.credential_hash:
            raise NoCredentialSetError(member_id)
        if not self.verifier.verify(db_member.credential_hash, password):
            logger.info("Authentication failed for member %d", member_id)
            raise InvalidCredentialError()

        return MemberModel.model_validate(db_member)

    # === Reading ===

    def validate_read_access(self, book_id: int, member_id: int) -> ReadAccess:
        """
        Report whether the member may read the book, without changing anything.

        Raises:
            BookNotFoundError: If the book does not exist
            MemberNotFoundError: If the member does not exist
        """

        def _check(session):
            db_book = self._lock_book(session, book_id)
            self._require_member(session, member_id)
            return self._read_access(session, db_book, member_id)

        return run_atomic(self.session, "check read access", _check)

    def read_book(self, book_id: int, member_id: int) -> ReadAccess:
        """
        Open a book for reading.

        The current borrower may always read. A free book with text is checked
        out to the reader first, in the same transaction.

        Raises:
            BookNotFoundError: If the book does not exist
            MemberNotFoundError: If the member does not exist
            EmptyContentError: If the book has no text (nothing is checked out)
            BookUnavailableError: If another member holds the book
        """

        def _open(session):
            db_book = self._lock_book(session, book_id)
            self._require_member(session, member_id)
            access = self._read_access(session, db_book, member_id)
            if not access.has_content:
                raise EmptyContentError(book_id)
            if access.is_borrower:
                return access
            if not access.can_auto_checkout:
                raise BookUnavailableError(book_id)

            self._lend(session, db_book, member_id)
            return access.model_copy(
                update={"is_borrower": True, "can_auto_checkout": False, "auto_checked_out": True}
            )

        access = run_atomic(self.session, "read book", _open)
        if access.auto_checked_out:
            logger.info("Book %d checked out to member %d for reading", book_id, member_id)
        return access

    # === Queries ===

    def get_open_checkout(self, book_id: int) -> CheckoutModel | None:
        checkout = safe_query(
            self.session,
            lambda s: self._find_open_checkout(s, book_id),
            f"get open checkout for book {book_id}",
        )
        return None if checkout is None else self._checkout_to_model(checkout)

    def get_reservation_queue(self, book_id: int) -> list[ReservationModel]:
        """Open reservations for the book, next in line first."""
        rows = safe_query(
            self.session,
            lambda s: s.execute(self._queue_query(book_id)).scalars().all(),
            f"get reservation queue for book {book_id}",
        )
        return [self._reservation_to_model(r) for r in rows]

    def get_queue_position(self, book_id: int, member_id: int) -> int | None:
        """1-based place of the member in the book's queue, or None if not queued."""

        def _position(session):
            reservation = self._find_open_reservation(session, book_id, member_id)
            return None if reservation is None else self._queue_position(session, reservation)

        return safe_query(self.session, _position, f"get queue position for book {book_id}")

    def get_checkout_history(
        self, book_id: int | None = None, member_id: int | None = None, limit: int = 100
    ) -> list[CheckoutModel]:
        """Loans, newest first, optionally filtered by book and/or member."""
        query = select(CheckoutDB)
        if book_id is not None:
            query = query.where(CheckoutDB.book_id == book_id)
        if member_id is not None:
            query = query.where(CheckoutDB.member_id == member_id)
        query = query.order_by(CheckoutDB.start_time.desc(), CheckoutDB.id.desc()).limit(limit)

        rows = safe_query(
            self.session, lambda s: s.execute(query).scalars().all(), "get checkout history"
        )
        return [self._checkout_to_model(c) for c in rows]

    # === Internal helpers ===

    def _lock_book(self, session: Session, book_id: int) -> BookDB:
        db_book = session.execute(
            select(BookDB)
            .where(BookDB.id == book_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if db_book is None:
            raise BookNotFoundError(book_id)
        return db_book

    def _require_member(self, session: Session, member_id: int) -> MemberDB:
        db_member = session.get(MemberDB, member_id)
        if db_member is None:
            raise MemberNotFoundError(member_id)
        return db_member

    def _lend(self, session: Session, db_book: BookDB, member_id: int) -> CheckoutDB:
        """Move an available book to checked out. Caller has locked the book."""
        db_book.available = False
        db_book.borrower_id = member_id
        checkout = CheckoutDB(book_id=db_book.id, member_id=member_id, start_time=datetime.now())
        session.add(checkout)
        session.flush()
        return checkout

    def _read_access(self, session: Session, db_book: BookDB, member_id: int) -> ReadAccess:
        has_content = bool((db_book.content or "").strip())
        is_borrower = db_book.borrower_id == member_id
        can_auto_checkout = bool(db_book.available) and has_content
        return ReadAccess(
            book_id=db_book.id,
            member_id=member_id,
            has_content=has_content,
            is_borrower=is_borrower,
            can_read=has_content and (is_borrower or bool(db_book.available)),
            can_auto_checkout=can_auto_checkout,
        )

    def _find_open_checkout(self, session: Session, book_id: int) -> CheckoutDB | None:
        return session.execute(
            select(CheckoutDB).where(CheckoutDB.book_id == book_id, CheckoutDB.end_time.is_(None))
        ).scalar_one_or_none()

    def _find_open_reservation(
        self, session: Session, book_id: int, member_id: int
    ) -> ReservationDB | None:
        return session.execute(
            select(ReservationDB).where(
                ReservationDB.book_id == book_id,
                ReservationDB.member_id == member_id,
                ReservationDB.fulfilled_time.is_(None),
            )
        ).scalar_one_or_none()

    def _queue_query(self, book_id: int):
        return (
            select(ReservationDB)
            .where(ReservationDB.book_id == book_id, ReservationDB.fulfilled_time.is_(None))
            .order_by(ReservationDB.created_time, ReservationDB.id)
        )

    def _first_in_queue(self, session: Session, book_id: int) -> ReservationDB | None:
        return session.execute(self._queue_query(book_id).limit(1)).scalar_one_or_none()

    def _queue_position(self, session: Session, reservation: ReservationDB) -> int:
        """Count open reservations ahead of this one, plus one."""
        ahead = session.execute(
            select(func.count())
            .select_from(ReservationDB)
            .where(
                ReservationDB.book_id == reservation.book_id,
                ReservationDB.fulfilled_time.is_(None),
                (ReservationDB.created_time < reservation.created_time)
                | (
                    (ReservationDB.created_time == reservation.created_time)
                    & (ReservationDB.id < reservation.id)
                ),
            )
        ).scalar_one()
        return ahead + 1

    def _checkout_to_model(self, checkout: CheckoutDB) -> CheckoutModel:
        return CheckoutModel.model_validate(checkout)

    def _reservation_to_model(self, reservation: ReservationDB) -> ReservationModel:
        return ReservationModel.model_validate(reservation)
