"""
Tests for the catalog side: the book and member repositories.

Catalog writes never change who holds a book; reading text goes through
chunks and pages so a long book is never loaded whole.
"""

import pytest

from library_circulation.database.book_repository import BookRepository
from library_circulation.database.circulation_repository import CirculationRepository
from library_circulation.database.errors import (
    BookInUseError,
    BookNotFoundError,
    InvalidCredentialError,
    MemberNotFoundError,
)
from library_circulation.database.member_repository import MemberRepository
from library_circulation.database.repository import PaginationParams
from library_circulation.database.schema import Member as MemberDB
from library_circulation.models.book import BookCreateSchema
from library_circulation.models.member import MemberCreateSchema


@pytest.fixture
def books(session, db_manager):
    return BookRepository(session, db_manager.search_index)


@pytest.fixture
def members(session):
    return MemberRepository(session)


class TestBookRepository:
    def test_create_book_is_available(self, books):
        book = books.create(BookCreateSchema(title="Emma", author="Jane Austen", content="Emma Woodhouse"))

        assert book.id >= 1
        assert book.available is True
        assert book.borrower_id is None
        assert book.content == "Emma Woodhouse"
        assert book.created_at is not None

    def test_create_from_file(self, books, tmp_path):
        text_file = tmp_path / "persuasion.txt"
        text_file.write_text("Sir Walter Elliot, of Kellynch Hall", encoding="utf-8")

        book = books.create_from_file("Persuasion", "Jane Austen", text_file)

        assert book.content == "Sir Walter Elliot, of Kellynch Hall"

    def test_create_from_file_tolerates_invalid_utf8(self, books, tmp_path):
        text_file = tmp_path / "broken.txt"
        text_file.write_bytes(b"caf\xe9 au lait")

        book = books.create_from_file("Broken", "Anon", text_file)

        assert book.content.startswith("caf")
        assert "\ufffd" in book.content

    def test_create_from_missing_file(self, books, tmp_path):
        with pytest.raises(FileNotFoundError):
            books.create_from_file("Missing", "Anon", tmp_path / "nope.txt")

    def test_update_content_keeps_circulation_state(self, books, session, book, alice):
        CirculationRepository(session).checkout_book(book.id, alice.id)

        updated = books.update_content(book.id, "A new edition")

        assert updated.content == "A new edition"
        assert updated.available is False
        assert updated.borrower_id == alice.id

    def test_update_content_unknown_book(self, books):
        with pytest.raises(BookNotFoundError, match="Book 999 not found"):
            books.update_content(999, "text")

    def test_update_content_from_file(self, books, book, tmp_path):
        text_file = tmp_path / "v2.txt"
        text_file.write_text("Second edition", encoding="utf-8")

        assert books.update_content_from_file(book.id, text_file).content == "Second edition"

    def test_listing_excludes_content(self, books, book_factory):
        book_factory(title="One")
        book_factory(title="Two")

        listed = books.get_all()

        assert [b.title for b in listed] == ["One", "Two"]
        assert all(not hasattr(b, "content") for b in listed)

    def test_paginated_listing(self, books, book_factory):
        for i in range(5):
            book_factory(title=f"Volume {i}")

        page = books.get_all(pagination=PaginationParams(page=2, page_size=2))

        assert page.total == 5
        assert page.total_pages == 3
        assert [b.title for b in page.items] == ["Volume 2", "Volume 3"]
        assert page.has_next and page.has_previous

    def test_get_by_id_includes_content(self, books, book):
        assert books.get_by_id(book.id).content == "It was a bright cold day in April."
        assert books.get_by_id(999) is None

    def test_get_summary(self, books, book):
        summary = books.get_summary(book.id)
        assert summary.title == book.title
        assert books.get_summary(999) is None

    def test_exists_and_count(self, books, book):
        assert books.exists(book.id)
        assert not books.exists(999)
        assert books.count() == 1


class TestContentAccess:
    @pytest.fixture
    def long_book(self, book_factory):
        return book_factory(title="Alphabet", content="abcdefghijklmnopqrstuvwxyz")

    def test_content_length(self, books, long_book):
        assert books.get_content_length(long_book.id) == 26

    def test_chunk(self, books, long_book):
        assert books.get_content_chunk(long_book.id, 0, 5) == "abcde"
        assert books.get_content_chunk(long_book.id, 23, 10) == "xyz"

    def test_chunk_past_end_is_empty(self, books, long_book):
        assert books.get_content_chunk(long_book.id, 100, 5) == ""

    def test_negative_chunk_arguments(self, books, long_book):
        with pytest.raises(ValueError):
            books.get_content_chunk(long_book.id, -1, 5)
        with pytest.raises(ValueError):
            books.get_content_chunk(long_book.id, 0, -5)

    def test_chunk_of_unknown_book(self, books):
        with pytest.raises(BookNotFoundError):
            books.get_content_chunk(999, 0, 5)

    def test_chunk_counts_characters_not_bytes(self, books, book_factory):
        book = book_factory(content="naïve café")
        assert books.get_content_chunk(book.id, 6, 4) == "café"

    def test_iter_content_reassembles_text(self, books, long_book):
        chunks = list(books.iter_content(long_book.id, chunk_size=10))
        assert chunks == ["abcdefghij", "klmnopqrst", "uvwxyz"]

    def test_pages(self, books, long_book):
        page = books.get_content_page(long_book.id, page=2, page_size=10)

        assert page.text == "klmnopqrst"
        assert page.offset == 10
        assert page.total_pages == 3
        assert page.has_next and page.has_previous

    @pytest.mark.parametrize("page", [0, 4])
    def test_page_out_of_range(self, books, long_book, page):
        with pytest.raises(ValueError, match="out of range"):
            books.get_content_page(long_book.id, page=page, page_size=10)

    def test_empty_book_has_one_empty_page(self, books, empty_book):
        page = books.get_content_page(empty_book.id)
        assert page.total_pages == 1
        assert page.text == ""


class TestDeleteBook:
    def test_delete_available_book(self, books, session, book, alice):
        circulation = CirculationRepository(session)
        circulation.checkout_book(book.id, alice.id)
        circulation.return_book(book.id)

        books.delete(book.id)

        assert books.get_summary(book.id) is None
        assert books.search("bright") == []

    def test_cannot_delete_checked_out_book(self, books, session, book, alice):
        CirculationRepository(session).checkout_book(book.id, alice.id)

        with pytest.raises(BookInUseError):
            books.delete(book.id)

        assert books.get_summary(book.id) is not None

    def test_delete_unknown_book(self, books):
        with pytest.raises(BookNotFoundError):
            books.delete(999)


class TestMemberRepository:
    def test_create_member_hashes_password(self, members, session):
        member = members.create(MemberCreateSchema(name="Ada", password="secret"))

        assert member.has_credential is True
        stored = session.get(MemberDB, member.id)
        assert stored.credential_hash != "secret"
        assert stored.credential_hash.startswith("pbkdf2:")

    def test_names_need_not_be_unique(self, members):
        first = members.create(MemberCreateSchema(name="Sam", password="one"))
        second = members.create(MemberCreateSchema(name="Sam", password="two"))
        assert first.id != second.id

    def test_reset_password(self, members, session, alice, password):
        members.reset_password(alice.id, "new secret")

        circulation = CirculationRepository(session)
        assert circulation.authenticate_member(alice.id, "new secret").id == alice.id
        with pytest.raises(InvalidCredentialError):
            circulation.authenticate_member(alice.id, password)

    def test_reset_password_gives_legacy_member_a_credential(self, members, session):
        legacy = MemberDB(name="Legacy")
        session.add(legacy)
        session.commit()

        member = members.reset_password(legacy.id, "finally")

        assert member.has_credential is True

    @pytest.mark.parametrize("blank", ["", "   "])
    def test_reset_to_blank_password(self, members, alice, blank):
        with pytest.raises(ValueError):
            members.reset_password(alice.id, blank)

    def test_reset_password_unknown_member(self, members):
        with pytest.raises(MemberNotFoundError, match="Member 999 not found"):
            members.reset_password(999, "secret")

    def test_open_reservations(self, members, session, book_factory, alice, bob):
        first = book_factory(title="First")
        second = book_factory(title="Second")
        circulation = CirculationRepository(session)
        circulation.checkout_book(first.id, alice.id)
        circulation.checkout_book(second.id, alice.id)
        circulation.reserve_book(second.id, bob.id)
        circulation.reserve_book(first.id, bob.id)

        reservations = members.get_open_reservations(bob.id)

        assert [r.book_id for r in reservations] == [second.id, first.id]
        assert [c.book_id for c in members.get_active_checkouts(alice.id)] == [first.id, second.id]

    def test_open_reservations_unknown_member(self, members):
        with pytest.raises(MemberNotFoundError):
            members.get_open_reservations(999)


class TestBookReservationQueue:
    def test_queue_in_arrival_order(self, books, session, book, alice, bob, carol):
        circulation = CirculationRepository(session)
        circulation.checkout_book(book.id, alice.id)
        circulation.reserve_book(book.id, carol.id)
        circulation.reserve_book(book.id, bob.id)

        queue = books.get_open_reservations(book.id)

        assert [r.member_id for r in queue] == [carol.id, bob.id]

    def test_queue_of_unknown_book(self, books):
        with pytest.raises(BookNotFoundError):
            books.get_open_reservations(999)

