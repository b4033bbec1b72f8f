"""
Tests for circulation tools (checkout, return, reserve, cancel).

These tests cover:
1. Input validation
2. Success scenarios and the structured data returned
3. Error responses with kind and retryable flags
4. Authentication and the return policy switch
"""

import pytest

from library_circulation.tools.circulation import (
    cancel_reservation_handler,
    checkout_book_handler,
    reserve_book_handler,
    return_book_handler,
)


class TestCheckoutBookTool:
    async def test_checkout_success(self, book, alice, password, fetch_book):
        result = await checkout_book_handler(
            {"book_id": book.id, "member_id": alice.id, "password": password}
        )

        assert not result.get("isError")
        assert result["content"][0]["type"] == "text"
        assert f"Book {book.id} checked out to member {alice.id}" in result["content"][0]["text"]
        assert result["data"]["checkout"]["member_id"] == alice.id
        assert result["data"]["checkout"]["end_time"] is None

        stored = fetch_book(book.id)
        assert stored.available is False
        assert stored.borrower_id == alice.id

    async def test_checkout_unavailable(self, book, alice, bob, password):
        await checkout_book_handler({"book_id": book.id, "member_id": alice.id, "password": password})

        result = await checkout_book_handler(
            {"book_id": book.id, "member_id": bob.id, "password": password}
        )

        assert result["isError"] is True
        assert result["error"] == {"kind": "conflict", "retryable": False}
        assert "currently checked out" in result["content"][0]["text"]

    async def test_checkout_wrong_password(self, book, alice, fetch_book):
        result = await checkout_book_handler(
            {"book_id": book.id, "member_id": alice.id, "password": "wrong"}
        )

        assert result["isError"] is True
        assert result["error"]["kind"] == "unauthorized"
        assert fetch_book(book.id).available is True

    async def test_checkout_missing_password(self, book, alice):
        result = await checkout_book_handler({"book_id": book.id, "member_id": alice.id})

        assert result["error"]["kind"] == "unauthorized"
        assert "Invalid member ID or password" in result["content"][0]["text"]

    async def test_checkout_unknown_book(self, alice, password):
        result = await checkout_book_handler(
            {"book_id": 999, "member_id": alice.id, "password": password}
        )

        assert result["error"]["kind"] == "not_found"
        assert "Book 999 not found" in result["content"][0]["text"]

    @pytest.mark.parametrize(
        "arguments",
        [
            {"member_id": 1, "password": "x"},
            {"book_id": 0, "member_id": 1, "password": "x"},
            {"book_id": "abc", "member_id": 1, "password": "x"},
        ],
    )
    async def test_checkout_invalid_input(self, db_manager, arguments):
        result = await checkout_book_handler(arguments)

        assert result["isError"] is True
        assert result["error"]["kind"] == "invalid_input"
        assert "Invalid parameters" in result["content"][0]["text"]


class TestReserveBookTool:
    async def test_reserve_free_book_checks_out(self, book, alice, password):
        result = await reserve_book_handler(
            {"book_id": book.id, "member_id": alice.id, "password": password}
        )

        assert result["data"]["reservation"]["outcome"] == "immediate_checkout"
        assert "is now checked out to member" in result["content"][0]["text"]

    async def test_reserve_held_book_queues(self, book, alice, bob, carol, password):
        await checkout_book_handler({"book_id": book.id, "member_id": alice.id, "password": password})
        await reserve_book_handler({"book_id": book.id, "member_id": bob.id, "password": password})

        result = await reserve_book_handler(
            {"book_id": book.id, "member_id": carol.id, "password": password}
        )

        assert result["data"]["reservation"]["outcome"] == "queued"
        assert result["data"]["reservation"]["queue_position"] == 2
        assert "number 2 in the reservation queue" in result["content"][0]["text"]

    async def test_duplicate_reservation(self, book, alice, bob, password):
        await checkout_book_handler({"book_id": book.id, "member_id": alice.id, "password": password})
        await reserve_book_handler({"book_id": book.id, "member_id": bob.id, "password": password})

        result = await reserve_book_handler(
            {"book_id": book.id, "member_id": bob.id, "password": password}
        )

        assert result["error"]["kind"] == "conflict"
        assert "already has an active reservation" in result["content"][0]["text"]


class TestReturnBookTool:
    async def test_return_makes_book_available(self, book, alice, password, fetch_book):
        await checkout_book_handler({"book_id": book.id, "member_id": alice.id, "password": password})

        result = await return_book_handler({"book_id": book.id})

        assert not result.get("isError")
        assert result["data"]["return"] == {
            "book_id": book.id,
            "returned_by": alice.id,
            "assigned_to": None,
        }
        assert "is now available" in result["content"][0]["text"]
        assert fetch_book(book.id).available is True

    async def test_return_hands_off_to_queue(self, book, alice, bob, password, fetch_book):
        await checkout_book_handler({"book_id": book.id, "member_id": alice.id, "password": password})
        await reserve_book_handler({"book_id": book.id, "member_id": bob.id, "password": password})

        result = await return_book_handler({"book_id": book.id})

        assert result["data"]["return"]["assigned_to"] == bob.id
        assert "next in the reservation queue" in result["content"][0]["text"]
        assert fetch_book(book.id).borrower_id == bob.id

    async def test_return_not_checked_out(self, book):
        result = await return_book_handler({"book_id": book.id})

        assert result["error"]["kind"] == "conflict"
        assert "is not checked out" in result["content"][0]["text"]

    async def test_return_with_member_checks_password(self, book, alice, password):
        await checkout_book_handler({"book_id": book.id, "member_id": alice.id, "password": password})

        result = await return_book_handler(
            {"book_id": book.id, "member_id": alice.id, "password": "wrong"}
        )

        assert result["error"]["kind"] == "unauthorized"

    async def test_return_by_other_member_is_refused(self, book, alice, bob, password, fetch_book):
        await checkout_book_handler({"book_id": book.id, "member_id": alice.id, "password": password})

        result = await return_book_handler(
            {"book_id": book.id, "member_id": bob.id, "password": password}
        )

        assert result["isError"] is True
        assert result["error"] == {"kind": "unauthorized", "retryable": False}
        assert f"not checked out to member {bob.id}" in result["content"][0]["text"]
        stored = fetch_book(book.id)
        assert stored.available is False
        assert stored.borrower_id == alice.id

    async def test_return_by_holder_with_member_id(self, book, alice, password, fetch_book):
        await checkout_book_handler({"book_id": book.id, "member_id": alice.id, "password": password})

        result = await return_book_handler(
            {"book_id": book.id, "member_id": alice.id, "password": password}
        )

        assert result["data"]["return"]["returned_by"] == alice.id
        assert fetch_book(book.id).available is True


class TestRestrictedReturns:
    @pytest.fixture
    def config_overrides(self):
        return {"restrict_returns_to_borrower": True}

    async def test_member_id_required(self, book):
        result = await return_book_handler({"book_id": book.id})

        assert result["error"]["kind"] == "invalid_input"
        assert "member_id is required" in result["content"][0]["text"]

    async def test_only_borrower_may_return(self, book, alice, bob, password, fetch_book):
        await checkout_book_handler({"book_id": book.id, "member_id": alice.id, "password": password})

        result = await return_book_handler(
            {"book_id": book.id, "member_id": bob.id, "password": password}
        )

        assert result["error"]["kind"] == "unauthorized"
        assert fetch_book(book.id).borrower_id == alice.id

    async def test_borrower_returns(self, book, alice, password):
        await checkout_book_handler({"book_id": book.id, "member_id": alice.id, "password": password})

        result = await return_book_handler(
            {"book_id": book.id, "member_id": alice.id, "password": password}
        )

        assert result["data"]["return"]["returned_by"] == alice.id


class TestCancelReservationTool:
    async def test_cancel(self, book, alice, bob, password):
        await checkout_book_handler({"book_id": book.id, "member_id": alice.id, "password": password})
        await reserve_book_handler({"book_id": book.id, "member_id": bob.id, "password": password})

        result = await cancel_reservation_handler(
            {"book_id": book.id, "member_id": bob.id, "password": password}
        )

        assert not result.get("isError")
        assert result["data"] == {"book_id": book.id, "member_id": bob.id}

    async def test_cancel_without_reservation(self, book, bob, password):
        result = await cancel_reservation_handler(
            {"book_id": book.id, "member_id": bob.id, "password": password}
        )

        assert result["error"]["kind"] == "unauthorized"
        assert "No active reservation found" in result["content"][0]["text"]


class TestAuthenticationDisabled:
    @pytest.fixture
    def config_overrides(self):
        return {"require_authentication": False}

    async def test_checkout_without_password(self, book, alice):
        result = await checkout_book_handler({"book_id": book.id, "member_id": alice.id})

        assert not result.get("isError")
        assert result["data"]["checkout"]["member_id"] == alice.id
