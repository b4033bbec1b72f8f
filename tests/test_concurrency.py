"""
Concurrency tests for the circulation engine.

Each worker thread uses its own session, as separate requests do in the
server. On SQLite every transaction takes the write lock up front, so racing
operations on one book are serialized and exactly one of them wins.
"""

from concurrent.futures import ThreadPoolExecutor
from threading import Barrier

import pytest
from sqlalchemy import text

from library_circulation.database.circulation_repository import CirculationRepository
from library_circulation.database.errors import (
    BookUnavailableError,
    RepositoryException,
    TransientError,
)

WORKERS = 8


def run_concurrently(db_manager, operation, member_ids):
    """Run ``operation(engine, member_id)`` for every member at the same moment."""
    barrier = Barrier(len(member_ids))

    def _worker(member_id):
        session = db_manager.create_session()
        try:
            barrier.wait()
            return operation(CirculationRepository(session), member_id)
        except RepositoryException as e:
            return e
        finally:
            session.close()

    with ThreadPoolExecutor(max_workers=len(member_ids)) as pool:
        return list(pool.map(_worker, member_ids))


@pytest.fixture
def members(member_factory):
    return [member_factory(f"Reader {i}") for i in range(WORKERS)]


def test_racing_checkouts_have_one_winner(db_manager, fetch_book, book, members):
    results = run_concurrently(
        db_manager,
        lambda engine, member_id: engine.checkout_book(book.id, member_id),
        [m.id for m in members],
    )

    winners = [r for r in results if not isinstance(r, Exception)]
    losers = [r for r in results if isinstance(r, Exception)]
    assert len(winners) == 1
    assert all(isinstance(e, BookUnavailableError) for e in losers)
    assert fetch_book(book.id).borrower_id == winners[0].member_id


def test_racing_reservations_get_distinct_positions(db_manager, book, alice, members):
    with db_manager.session_scope() as session:
        CirculationRepository(session).checkout_book(book.id, alice.id)

    results = run_concurrently(
        db_manager,
        lambda engine, member_id: engine.reserve_book(book.id, member_id),
        [m.id for m in members],
    )

    assert not [r for r in results if isinstance(r, Exception)]
    assert sorted(r.queue_position for r in results) == list(range(1, WORKERS + 1))


def test_racing_reserves_on_free_book(db_manager, fetch_book, book, members):
    results = run_concurrently(
        db_manager,
        lambda engine, member_id: engine.reserve_book(book.id, member_id),
        [m.id for m in members],
    )

    outcomes = sorted(r.outcome.value for r in results)
    assert outcomes.count("immediate_checkout") == 1
    assert outcomes.count("queued") == WORKERS - 1

    holder = fetch_book(book.id).borrower_id
    with db_manager.session_scope() as session:
        queue = CirculationRepository(session).get_reservation_queue(book.id)
    assert holder not in {r.member_id for r in queue}


class TestLockTimeout:
    @pytest.fixture
    def config_overrides(self):
        return {"lock_timeout_seconds": 0.2}

    def test_blocked_operation_fails_as_transient(self, db_manager, fetch_book, book, alice):
        blocker = db_manager.create_session()
        try:
            # Opening a transaction takes the database write lock
            blocker.execute(text("SELECT 1"))

            with db_manager.session_scope() as session:
                with pytest.raises(TransientError) as excinfo:
                    CirculationRepository(session).checkout_book(book.id, alice.id)

            assert excinfo.value.retryable is True
        finally:
            blocker.rollback()
            blocker.close()

        assert fetch_book(book.id).available is True

        with db_manager.session_scope() as session:
            CirculationRepository(session).checkout_book(book.id, alice.id)
        assert fetch_book(book.id).borrower_id == alice.id
