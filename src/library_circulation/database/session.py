"""
Database session management for the library circulation service.

Every public circulation operation runs inside one short transaction that
either commits completely or leaves no trace. This module owns the pieces
that make that true:

1. Engine setup: SQLite in WAL mode, with each transaction opened by
   ``BEGIN IMMEDIATE`` so writers queue on the database lock instead of
   discovering conflicts at commit time. Other databases use row locks
   (``SELECT ... FOR UPDATE``) and a server-side ``lock_timeout``.
2. Lock waits are bounded by ``lock_timeout_seconds``; running out of time
   surfaces as ``TransientError`` so callers can retry.
3. ``run_atomic`` commits on success and rolls back on any failure, turning
   driver errors into the service's error taxonomy.
"""

import logging
from collections.abc import Callable, Generator
from contextlib import contextmanager
from pathlib import Path
from typing import TypeVar

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import DBAPIError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..config import ServerConfig, get_config
from .errors import RepositoryException, StoreError, TransientError
from .schema import Base
from .search_index import SearchIndex

T = TypeVar("T")

logger = logging.getLogger(__name__)

# Lock-wait failures reported by SQLite (message) and PostgreSQL (SQLSTATE)
_SQLITE_LOCK_MESSAGES = ("database is locked", "database table is locked", "database is busy")
_TRANSIENT_SQLSTATES = {"55P03", "40001", "40P01"}


class DatabaseManager:
    """
    Manages database connections and sessions.

    Sessions are cheap and short-lived: create one per request, run one
    operation, close it. The manager itself holds no circulation state.
    """

    def __init__(self, database_url: str | None = None, config: ServerConfig | None = None):
        """
        Initialize the database manager.

        Args:
            database_url: SQLAlchemy database URL. If None, uses the configured store.
            config: Settings to use instead of the global configuration.
        """
        self.config = config or get_config()

        if database_url is None:
            database_url = self.config.get_database_url()

        url = make_url(database_url)
        if url.get_backend_name() == "sqlite" and url.database not in (None, "", ":memory:"):
            # Ensure parent directory exists
            db_path = Path(url.database)
            db_path.absolute().parent.mkdir(exist_ok=True, parents=True)
            logger.info("Using SQLite database at: %s", db_path)

        self.database_url = database_url
        self.lock_timeout = self.config.lock_timeout_seconds
        self.search_index = SearchIndex(enabled=self.config.search_index_enabled)
        self._engine: Engine | None = None
        self._session_factory: sessionmaker | None = None

    @property
    def is_sqlite(self) -> bool:
        return make_url(self.database_url).get_backend_name() == "sqlite"

    @property
    def engine(self) -> Engine:
        """
        Get or create the database engine.

        SQLite connections get foreign keys, WAL journaling, a busy timeout
        equal to the lock timeout, and ``BEGIN IMMEDIATE`` transactions.
        """
        if self._engine is None:
            if self.is_sqlite:
                self._engine = self._create_sqlite_engine()
            else:
                lock_ms = int(self.lock_timeout * 1000)
                connect_args = {}
                if make_url(self.database_url).get_backend_name() == "postgresql":
                    connect_args["options"] = f"-c lock_timeout={lock_ms}"
                self._engine = create_engine(
                    self.database_url,
                    pool_size=10,
                    max_overflow=20,
                    pool_pre_ping=True,
                    connect_args=connect_args,
                    echo=False,
                )

            logger.info("Database engine created: %s", self._engine.url)

        return self._engine

    def _create_sqlite_engine(self) -> Engine:
        database = make_url(self.database_url).database
        in_memory = database in (None, "", ":memory:")

        engine_kwargs = {}
        if in_memory:
            # One shared connection, otherwise every session sees an empty database
            engine_kwargs["poolclass"] = StaticPool

        engine = create_engine(
            self.database_url,
            connect_args={"check_same_thread": False, "timeout": self.lock_timeout},
            echo=False,
            **engine_kwargs,
        )
        busy_ms = int(self.lock_timeout * 1000)

        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):  # noqa: ARG001
            # Let SQLAlchemy, not the driver, decide when transactions begin
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.execute(f"PRAGMA busy_timeout={busy_ms}")
            if not in_memory:
                cursor.execute("PRAGMA journal_mode=WAL")
            cursor.close()

        @event.listens_for(engine, "begin")
        def begin_immediate(conn):
            # Take the write lock up front so conflicting transactions serialize
            conn.exec_driver_sql("BEGIN IMMEDIATE")

        return engine

    @property
    def session_factory(self) -> sessionmaker:
        """Get or create the session factory."""
        if self._session_factory is None:
            self._session_factory = sessionmaker(
                bind=self.engine,
                autocommit=False,
                autoflush=False,
                expire_on_commit=False,
            )
        return self._session_factory

    def create_session(self) -> Session:
        """
        Create a new database session.

        Note:
            Sessions should be used with context managers or properly closed.
        """
        return self.session_factory()

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """
        Provide a transactional scope for database operations.

        ```python
        with db_manager.session_scope() as session:
            book = BookRepository(session).get_by_id(book_id)
        ```
        """
        session = self.create_session()
        try:
            yield session
            session.commit()
            logger.debug("Database transaction committed successfully")
        except SQLAlchemyError:
            logger.exception("Database error, rolling back")
            session.rollback()
            raise
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def init_database(self, drop_existing: bool = False) -> bool:
        """
        Initialize the database schema and the search index.

        Args:
            drop_existing: If True, drop all tables before creating

        Returns:
            True if full-text search is available, False if degraded
        """
        with self.engine.begin() as conn:
            if drop_existing:
                logger.warning("Dropping all existing tables...")
                self.search_index.drop(conn)
                Base.metadata.drop_all(bind=conn)

            logger.info("Creating database tables...")
            Base.metadata.create_all(bind=conn)
            fts_available = self.search_index.create(conn)

        logger.info("Database initialization complete (full-text search: %s)", fts_available)
        return fts_available

    def rebuild_search_index(self) -> int:
        with self.session_scope() as session:
            return run_atomic(session, "rebuild search index", self.search_index.rebuild)

    def verify_connection(self) -> bool:
        """
        Verify the database connection is working.

        Returns:
            True if connection is successful, False otherwise
        """
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            logger.info("Database connection verified")
            return True
        except DBAPIError:
            logger.exception("Database connection failed")
            return False

    def close(self) -> None:
        """Close the database connection and cleanup resources."""
        if self._engine:
            self._engine.dispose()
            logger.info("Database engine disposed")
        self._engine = None
        self._session_factory = None


_db_manager: DatabaseManager | None = None


def get_db_manager(database_url: str | None = None) -> DatabaseManager:
    """
    Get the global database manager instance.

    Args:
        database_url: Database URL (only used on first call)
    """
    global _db_manager  # noqa: PLW0603 - Singleton pattern for database manager

    if _db_manager is None:
        _db_manager = DatabaseManager(database_url)

    return _db_manager


def reset_db_manager() -> None:
    """Dispose of the global manager (tests, CLI re-configuration)."""
    global _db_manager  # noqa: PLW0603

    if _db_manager is not None:
        _db_manager.close()
    _db_manager = None


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """Convenience context manager for database sessions."""
    with get_db_manager().session_scope() as session:
        yield session


# Error translation and transaction helpers


def is_lock_timeout(error: DBAPIError) -> bool:
    """Whether a driver error means a lock could not be acquired in time."""
    orig = error.orig
    sqlstate = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if sqlstate in _TRANSIENT_SQLSTATES:
        return True
    if isinstance(error, OperationalError):
        message = str(orig).lower()
        return any(fragment in message for fragment in _SQLITE_LOCK_MESSAGES)
    return False


def translate_db_error(error: DBAPIError, operation: str) -> RepositoryException:
    """Map a driver error to ``TransientError`` or ``StoreError``."""
    if is_lock_timeout(error):
        return TransientError(f"'{operation}' timed out waiting for a lock; please retry")
    return StoreError(f"Database operation '{operation}' failed")


def safe_query(session: Session, query_func: Callable[[Session], T], operation: str) -> T:
    """
    Execute a read, translating driver errors.

    Domain errors raised by ``query_func`` pass through untouched.
    """
    try:
        return query_func(session)
    except DBAPIError as e:
        error = translate_db_error(e, operation)
        if isinstance(error, StoreError):
            logger.exception("Query failed: %s", operation)
        raise error from e


def run_atomic(session: Session, operation: str, work: Callable[[Session], T]) -> T:
    """
    Run ``work`` as one transaction: commit on success, roll back on failure.

    Args:
        session: Session to run in
        operation: Name used in log lines and error messages
        work: Callable performing every read and write of the operation

    Raises:
        RepositoryException: Domain errors from ``work``, or translated
            driver errors (``TransientError`` for lock timeouts)
    """
    try:
        result = work(session)
        session.commit()
    except RepositoryException:
        session.rollback()
        raise
    except DBAPIError as e:
        session.rollback()
        error = translate_db_error(e, operation)
        if isinstance(error, TransientError):
            logger.warning("Lock timeout during %s", operation)
        else:
            logger.exception("Database error during %s", operation)
        raise error from e
    except Exception:
        session.rollback()
        raise
    return result
