"""
Book repository for the library circulation service.

The catalog side of books: adding titles, replacing their text, reading the
text in chunks, listing and searching. Circulation state (``available``,
``borrower_id``) is read here but only ever written by the circulation
engine.

Every write also updates the search index in the same transaction, so the
index never lags behind a committed book.
"""

import logging
import math
from collections.abc import Iterator
from pathlib import Path

from sqlalchemy import delete, func, select

from ..config import get_config
from ..models.book import Book as BookModel
from ..models.book import BookCreateSchema, BookSummary, ContentPage
from ..models.circulation import ReservationRecord
from .errors import BookInUseError, BookNotFoundError
from .repository import BaseRepository
from .schema import Book as BookDB
from .schema import Checkout as CheckoutDB
from .schema import Reservation as ReservationDB
from .search_index import SearchIndex
from .session import run_atomic, safe_query

logger = logging.getLogger(__name__)

_SUMMARY_COLUMNS = (
    BookDB.id,
    BookDB.title,
    BookDB.author,
    BookDB.available,
    BookDB.borrower_id,
    BookDB.created_at,
)


def read_text_file(path: str | Path) -> str:
    """Load a book's text, tolerating stray bytes that are not valid UTF-8."""
    return Path(path).read_text(encoding="utf-8", errors="replace")


class BookRepository(BaseRepository[BookDB, BookModel]):
    """Repository for catalog access to books."""

    def __init__(self, session, search_index: SearchIndex | None = None):
        super().__init__(session)
        self.search_index = search_index or SearchIndex(enabled=get_config().search_index_enabled)

    @property
    def model_class(self):
        return BookDB

    @property
    def response_schema(self):
        return BookModel

    def _list_query(self):
        # Listings never load full text
        return select(*_SUMMARY_COLUMNS)

    def _row_to_response(self, row) -> BookSummary:
        return BookSummary.model_validate(row, from_attributes=True)

    def _require_book(self, session, book_id: int, lock: bool = False) -> BookDB:
        query = select(BookDB).where(BookDB.id == book_id)
        if lock:
            query = query.with_for_update()
        db_book = session.execute(query).scalar_one_or_none()
        if db_book is None:
            raise BookNotFoundError(book_id)
        return db_book

    # === Writes ===

    def create(self, book_data: BookCreateSchema) -> BookModel:
        """
        Add a book to the catalog. New books are always available.

        Args:
            book_data: Title, author and optional text

        Returns:
            The stored book
        """

        def _create(session):
            db_book = BookDB(
                title=book_data.title,
                author=book_data.author,
                content=book_data.content,
                available=True,
                borrower_id=None,
            )
            session.add(db_book)
            session.flush()
            self.search_index.upsert(
                session, db_book.id, db_book.title, db_book.author, db_book.content
            )
            return self._to_response_model(db_book)

        book = run_atomic(self.session, "add book", _create)
        logger.info("Added book %d: %r by %s", book.id, book.title, book.author)
        return book

    def create_from_file(self, title: str, author: str, path: str | Path) -> BookModel:
        """Add a book whose text is read from a UTF-8 file."""
        content = read_text_file(path)
        return self.create(BookCreateSchema(title=title, author=author, content=content))

    def update_content(self, book_id: int, content: str) -> BookModel:
        """
        Replace a book's text. Availability and borrower are left untouched.

        Raises:
            BookNotFoundError: If the book does not exist
        """

        def _update(session):
            db_book = self._require_book(session, book_id, lock=True)
            db_book.content = content
            session.flush()
            self.search_index.upsert(
                session, db_book.id, db_book.title, db_book.author, db_book.content
            )
            return self._to_response_model(db_book)

        book = run_atomic(self.session, "update book content", _update)
        logger.info("Updated content of book %d (%d characters)", book_id, len(content))
        return book

    def update_content_from_file(self, book_id: int, path: str | Path) -> BookModel:
        return self.update_content(book_id, read_text_file(path))

    def delete(self, book_id: int) -> None:
        """
        Remove a book and its loan history from the catalog.

        Raises:
            BookNotFoundError: If the book does not exist
            BookInUseError: If the book is on loan or members are waiting for it
        """

        def _delete(session):
            db_book = self._require_book(session, book_id, lock=True)
            waiting = session.execute(
                select(func.count())
                .select_from(ReservationDB)
                .where(ReservationDB.book_id == book_id, ReservationDB.fulfilled_time.is_(None))
            ).scalar_one()
            if not db_book.available or waiting:
                raise BookInUseError(book_id)

            session.execute(delete(ReservationDB).where(ReservationDB.book_id == book_id))
            session.execute(delete(CheckoutDB).where(CheckoutDB.book_id == book_id))
            self.search_index.delete(session, book_id)
            session.delete(db_book)

        run_atomic(self.session, "delete book", _delete)
        logger.info("Deleted book %d", book_id)

    def rebuild_search_index(self) -> int:
        return run_atomic(self.session, "rebuild search index", self.search_index.rebuild)

    # === Reads ===

    def get_summary(self, book_id: int) -> BookSummary | None:
        query = select(*_SUMMARY_COLUMNS).where(BookDB.id == book_id)
        row = safe_query(
            self.session, lambda s: s.execute(query).first(), f"get book {book_id}"
        )
        return None if row is None else self._row_to_response(row)

    def get_content_length(self, book_id: int) -> int:
        query = select(func.length(BookDB.content)).where(BookDB.id == book_id)
        row = safe_query(
            self.session, lambda s: s.execute(query).first(), f"get content length {book_id}"
        )
        if row is None:
            raise BookNotFoundError(book_id)
        return row[0] or 0

    def get_content_chunk(self, book_id: int, offset: int, length: int) -> str:
        """
        Return ``length`` characters of text starting at ``offset``.

        A chunk starting past the end of the text is the empty string.

        Raises:
            ValueError: If offset or length is negative
            BookNotFoundError: If the book does not exist
        """
        if offset < 0 or length < 0:
            raise ValueError("offset and length must be non-negative")
        query = select(func.substr(BookDB.content, offset + 1, length)).where(
            BookDB.id == book_id
        )
        row = safe_query(
            self.session, lambda s: s.execute(query).first(), f"read content of book {book_id}"
        )
        if row is None:
            raise BookNotFoundError(book_id)
        return row[0] or ""

    def iter_content(self, book_id: int, chunk_size: int = 64 * 1024) -> Iterator[str]:
        """Yield a book's text chunk by chunk without loading it whole."""
        if chunk_size < 1:
            raise ValueError("chunk_size must be positive")
        total = self.get_content_length(book_id)
        for offset in range(0, total, chunk_size):
            yield self.get_content_chunk(book_id, offset, chunk_size)

    def get_content_page(self, book_id: int, page: int = 1, page_size: int | None = None) -> ContentPage:
        """
        Return one page of a book's text.

        Raises:
            ValueError: If the page is out of range
            BookNotFoundError: If the book does not exist
        """
        page_size = page_size or get_config().read_page_size
        total_chars = self.get_content_length(book_id)
        total_pages = max(1, math.ceil(total_chars / page_size))
        if page < 1 or page > total_pages:
            raise ValueError(f"Page {page} is out of range (1-{total_pages})")

        offset = (page - 1) * page_size
        return ContentPage(
            book_id=book_id,
            page=page,
            total_pages=total_pages,
            offset=offset,
            text=self.get_content_chunk(book_id, offset, page_size),
        )

    def get_open_reservations(self, book_id: int) -> list[ReservationRecord]:
        """
        The book's waiting queue, first in line first.

        Raises:
            BookNotFoundError: If the book does not exist
        """
        if not self.exists(book_id):
            raise BookNotFoundError(book_id)
        query = (
            select(ReservationDB)
            .where(ReservationDB.book_id == book_id, ReservationDB.fulfilled_time.is_(None))
            .order_by(ReservationDB.created_time, ReservationDB.id)
        )
        rows = safe_query(
            self.session,
            lambda s: s.execute(query).scalars().all(),
            f"list reservations for book {book_id}",
        )
        return [ReservationRecord.model_validate(r) for r in rows]

    def search(self, query: str, limit: int = 50) -> list[BookSummary]:
        """
        Find books by title, author or text, best match first.

        Falls back to substring matching on title and author when full-text
        search is unavailable.
        """
        ids = safe_query(
            self.session,
            lambda s: self.search_index.query(s, query, limit=limit),
            "search catalog",
        )
        if not ids:
            return []

        stmt = select(*_SUMMARY_COLUMNS).where(BookDB.id.in_(ids))
        rows = safe_query(self.session, lambda s: s.execute(stmt).all(), "load search results")
        by_id = {row.id: self._row_to_response(row) for row in rows}
        # Keep the index's ranking
        return [by_id[book_id] for book_id in ids if book_id in by_id]
