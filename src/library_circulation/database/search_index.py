"""
Full-text search over the catalog.

On SQLite the index is an FTS5 virtual table ``books_fts`` whose rowid is the
book id. The catalog keeps it in step with ``books`` inside the same
transaction as every catalog write, so a committed book is always findable.

When FTS5 is not usable (another database, an SQLite build without the
module, or the index switched off in configuration) the index runs in
degraded mode: writes are no-ops and queries fall back to a case-insensitive
substring match on title and author.
"""

import logging
import re

from sqlalchemy import or_, select, text
from sqlalchemy.engine import Connection
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from .schema import Book

logger = logging.getLogger(__name__)

FTS_TABLE = "books_fts"

_TOKEN_PATTERN = re.compile(r"\w+", re.UNICODE)


def build_match_expression(query: str) -> str:
    """
    Turn free text into a safe FTS5 MATCH expression.

    Each word becomes a quoted string, so operators and punctuation typed by
    a user are treated as literal text. Terms are implicitly ANDed.
    """
    tokens = _TOKEN_PATTERN.findall(query)
    return " ".join(f'"{token}"' for token in tokens)


class SearchIndex:
    """Keeps ``books_fts`` in step with the catalog and answers ranked queries."""

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self._available: bool | None = None

    def create(self, connection: Connection) -> bool:
        """
        Create the FTS5 table if the database supports it.

        Returns:
            True if the full-text index is usable, False if degraded
        """
        if not self.enabled:
            logger.info("Full-text search disabled; using substring search")
            self._available = False
            return False

        if connection.dialect.name != "sqlite":
            logger.info("Full-text index requires SQLite; using substring search")
            self._available = False
            return False

        try:
            connection.execute(
                text(
                    f"CREATE VIRTUAL TABLE IF NOT EXISTS {FTS_TABLE} "
                    "USING fts5(title, author, content)"
                )
            )
        except OperationalError as e:
            logger.warning("FTS5 unavailable, falling back to substring search: %s", e)
            self._available = False
            return False

        self._available = True
        return True

    def drop(self, connection: Connection) -> None:
        if connection.dialect.name == "sqlite":
            connection.execute(text(f"DROP TABLE IF EXISTS {FTS_TABLE}"))
        self._available = None

    def is_available(self, session: Session) -> bool:
        """Whether the FTS table exists; detected once per index instance."""
        if not self.enabled:
            return False
        if self._available is None:
            bind = session.get_bind()
            if bind.dialect.name != "sqlite":
                self._available = False
            else:
                found = session.execute(
                    text("SELECT name FROM sqlite_master WHERE type = 'table' AND name = :name"),
                    {"name": FTS_TABLE},
                ).first()
                self._available = found is not None
        return self._available

    def upsert(self, session: Session, book_id: int, title: str, author: str, content: str) -> None:
        if not self.is_available(session):
            return
        session.execute(text(f"DELETE FROM {FTS_TABLE} WHERE rowid = :id"), {"id": book_id})
        session.execute(
            text(
                f"INSERT INTO {FTS_TABLE}(rowid, title, author, content) "
                "VALUES (:id, :title, :author, :content)"
            ),
            {"id": book_id, "title": title, "author": author, "content": content or ""},
        )

    def delete(self, session: Session, book_id: int) -> None:
        if not self.is_available(session):
            return
        session.execute(text(f"DELETE FROM {FTS_TABLE} WHERE rowid = :id"), {"id": book_id})

    def rebuild(self, session: Session) -> int:
        """Re-index every book. Returns the number of books indexed."""
        if not self.is_available(session):
            return 0
        session.execute(text(f"DELETE FROM {FTS_TABLE}"))
        session.execute(
            text(
                f"INSERT INTO {FTS_TABLE}(rowid, title, author, content) "
                "SELECT id, title, author, content FROM books"
            )
        )
        count = session.execute(text(f"SELECT count(*) FROM {FTS_TABLE}")).scalar_one()
        logger.info("Rebuilt search index with %d books", count)
        return count

    def query(self, session: Session, query: str, limit: int = 50) -> list[int]:
        """
        Return ids of matching books, best match first.

        An empty or punctuation-only query matches nothing.
        """
        if not query or not query.strip():
            return []

        if self.is_available(session):
            expression = build_match_expression(query)
            if not expression:
                return []
            try:
                rows = session.execute(
                    text(
                        f"SELECT rowid FROM {FTS_TABLE} WHERE {FTS_TABLE} MATCH :q "
                        "ORDER BY rank LIMIT :limit"
                    ),
                    {"q": expression, "limit": limit},
                ).all()
                return [row[0] for row in rows]
            except OperationalError as e:
                logger.warning("Full-text query failed for %r, using substring search: %s", query, e)

        return self._substring_query(session, query.strip(), limit)

    def _substring_query(self, session: Session, query: str, limit: int) -> list[int]:
        stmt = (
            select(Book.id)
            .where(
                or_(
                    Book.title.icontains(query, autoescape=True),
                    Book.author.icontains(query, autoescape=True),
                )
            )
            .order_by(Book.id)
            .limit(limit)
        )
        return list(session.execute(stmt).scalars().all())
