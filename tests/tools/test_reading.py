"""Tests for the read_book tool."""

import pytest

from library_circulation.tools.reading import read_book_handler


@pytest.fixture
def config_overrides():
    return {"read_page_size": 100}


@pytest.fixture
def long_book(book_factory):
    return book_factory(title="Long", content="a" * 100 + "b" * 100 + "c" * 50)


async def test_first_read_checks_book_out(long_book, alice, password, fetch_book):
    result = await read_book_handler(
        {"book_id": long_book.id, "member_id": alice.id, "password": password}
    )

    assert not result.get("isError")
    assert result["data"]["auto_checked_out"] is True
    assert result["data"]["has_next"] is True
    assert result["data"]["page"]["total_pages"] == 3
    assert "checked out to you for reading" in result["content"][0]["text"]
    assert fetch_book(long_book.id).borrower_id == alice.id


async def test_borrower_pages_through(long_book, alice, password):
    await read_book_handler({"book_id": long_book.id, "member_id": alice.id, "password": password})

    result = await read_book_handler(
        {"book_id": long_book.id, "member_id": alice.id, "password": password, "page": 3}
    )

    assert result["data"]["auto_checked_out"] is False
    assert result["data"]["page"]["text"] == "c" * 50
    assert result["data"]["has_next"] is False


async def test_other_member_cannot_read(long_book, alice, bob, password):
    await read_book_handler({"book_id": long_book.id, "member_id": alice.id, "password": password})

    result = await read_book_handler(
        {"book_id": long_book.id, "member_id": bob.id, "password": password}
    )

    assert result["error"] == {"kind": "conflict", "retryable": False}


async def test_page_out_of_range_does_not_check_out(long_book, alice, password, fetch_book):
    result = await read_book_handler(
        {"book_id": long_book.id, "member_id": alice.id, "password": password, "page": 9}
    )

    assert result["error"]["kind"] == "invalid_input"
    assert fetch_book(long_book.id).available is True


async def test_empty_book(empty_book, alice, password, fetch_book):
    result = await read_book_handler(
        {"book_id": empty_book.id, "member_id": alice.id, "password": password}
    )

    assert result["error"]["kind"] == "conflict"
    assert "has no content to read" in result["content"][0]["text"]
    assert fetch_book(empty_book.id).available is True


async def test_unknown_book(alice, password):
    result = await read_book_handler({"book_id": 999, "member_id": alice.id, "password": password})
    assert result["error"]["kind"] == "not_found"
