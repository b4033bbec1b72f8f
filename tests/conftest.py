"""Test configuration and fixtures for the library circulation service.

1. Isolated databases - each test gets its own SQLite file under tmp_path
2. Configuration overrides - fast password hashing and short lock timeouts
3. The module-level session helpers used by tools and resources are pointed
   at the test database, so handlers run exactly as they do in the server
4. Sample members and books are created through the repositories
"""

from collections.abc import Generator
from pathlib import Path

import logfire
import pytest
from sqlalchemy.orm import Session

from library_circulation.config import ServerConfig, reset_config, set_config
from library_circulation.database.book_repository import BookRepository
from library_circulation.database.member_repository import MemberRepository
from library_circulation.database.schema import Book as BookDB
from library_circulation.database.session import DatabaseManager
from library_circulation.models.book import BookCreateSchema
from library_circulation.models.member import MemberCreateSchema

TEST_PASSWORD = "correct horse battery staple"


@pytest.fixture(scope="session", autouse=True)
def quiet_logfire():
    """Spans are recorded locally only."""
    logfire.configure(send_to_logfire=False, console=False)


# === Configuration Fixtures ===


@pytest.fixture
def test_db_path(tmp_path: Path) -> Path:
    return tmp_path / "test_library.db"


@pytest.fixture
def config_overrides() -> dict:
    """Override in a test module to change settings for every fixture below."""
    return {}


@pytest.fixture
def test_config(test_db_path: Path, config_overrides: dict) -> Generator[ServerConfig, None, None]:
    """Install a test configuration as the global configuration."""
    reset_config()

    settings = {
        "server_name": "test-library-circulation",
        "server_version": "0.0.1-test",
        "database_path": test_db_path,
        # Cheap hashing keeps the suite fast
        "password_hash_method": "pbkdf2:sha256:1000",
        "lock_timeout_seconds": 2.0,
        "log_level": "DEBUG",
    }
    settings.update(config_overrides)
    config = ServerConfig(_env_file=None, **settings)
    set_config(config)

    yield config

    reset_config()


# === Database Fixtures ===


@pytest.fixture
def db_manager(test_config: ServerConfig, monkeypatch) -> Generator[DatabaseManager, None, None]:
    """A migrated test database, also served by the global session helpers."""
    manager = DatabaseManager(config=test_config)
    manager.init_database()
    monkeypatch.setattr("library_circulation.database.session._db_manager", manager)

    yield manager

    manager.close()


@pytest.fixture
def session(db_manager: DatabaseManager) -> Generator[Session, None, None]:
    """A session for repository tests.

    Do not hold it inside an open transaction while a tool handler runs:
    SQLite transactions take the write lock when they begin.
    """
    session = db_manager.create_session()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def fetch_book(db_manager: DatabaseManager):
    """Read a book's stored state in a fresh, short transaction."""

    def _fetch(book_id: int) -> BookDB | None:
        with db_manager.session_scope() as s:
            return s.get(BookDB, book_id)

    return _fetch


# === Sample Data Fixtures ===


@pytest.fixture
def member_factory(db_manager: DatabaseManager):
    def _create(name: str = "Test Member", password: str = TEST_PASSWORD):
        with db_manager.session_scope() as s:
            return MemberRepository(s).create(MemberCreateSchema(name=name, password=password))

    return _create


@pytest.fixture
def book_factory(db_manager: DatabaseManager):
    def _create(
        title: str = "Test Book",
        author: str = "Test Author",
        content: str = "It was a bright cold day in April.",
    ):
        with db_manager.session_scope() as s:
            return BookRepository(s, db_manager.search_index).create(
                BookCreateSchema(title=title, author=author, content=content)
            )

    return _create


@pytest.fixture
def alice(member_factory):
    return member_factory("Alice")


@pytest.fixture
def bob(member_factory):
    return member_factory("Bob")


@pytest.fixture
def carol(member_factory):
    return member_factory("Carol")


@pytest.fixture
def book(book_factory):
    return book_factory()


@pytest.fixture
def empty_book(book_factory):
    return book_factory(title="Blank Pages", author="Nobody", content="")


@pytest.fixture
def password() -> str:
    """The password every sample member is created with."""
    return TEST_PASSWORD
