"""
Command-line interface for the library circulation service.

Usage:
    library-circulation [--database-url URL] <command> [options]

Commands cover the catalog (add-book, list-books, search, update-content,
import), members (add-member, list-members, reset-password) and circulation
(checkout, return, reserve, reservations, cancel, history, read). Passwords are
prompted for unless given with --password.

Exit codes: 0 success, 1 the command failed, 2 bad usage, 3 the database
could not be reached.
"""

import argparse
import getpass
import logging
import sys
from collections.abc import Sequence

from pydantic import ValidationError

from .config import get_config
from .database.book_repository import BookRepository
from .database.circulation_repository import CirculationRepository
from .database.errors import BookNotFoundError, MemberNotFoundError, RepositoryException
from .database.member_repository import MemberRepository
from .database.session import DatabaseManager, get_db_manager
from .models.book import BookCreateSchema
from .models.circulation import ReserveOutcome
from .models.member import MemberCreateSchema
from .tools.bulk_import import import_books

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_STORE_UNAVAILABLE = 3


def _password(args: argparse.Namespace, prompt: str = "Password: ") -> str:
    if getattr(args, "password", None) is not None:
        return args.password
    return getpass.getpass(prompt)


def _authenticate(session, args: argparse.Namespace) -> None:
    if get_config().require_authentication:
        CirculationRepository(session).authenticate_member(args.member_id, _password(args))


# === Catalog commands ===


def cmd_init_db(db: DatabaseManager, args: argparse.Namespace) -> int:
    fts_available = db.init_database(drop_existing=args.drop_existing)
    if args.drop_existing:
        print("Database recreated.")
    else:
        print("Database initialized.")
    if not fts_available:
        print("Full-text search is unavailable; search will match titles and authors only.")
    return EXIT_OK


def cmd_add_book(db: DatabaseManager, args: argparse.Namespace) -> int:
    with db.session_scope() as session:
        repo = BookRepository(session, db.search_index)
        if args.file:
            book = repo.create_from_file(args.title, args.author, args.file)
        else:
            book = repo.create(BookCreateSchema(title=args.title, author=args.author))
    print(f"Added book {book.id}: {book.title} by {book.author}")
    return EXIT_OK


def cmd_list_books(db: DatabaseManager, args: argparse.Namespace) -> int:  # noqa: ARG001
    with db.session_scope() as session:
        books = BookRepository(session, db.search_index).get_all()
    if not books:
        print("No books in the catalog.")
        return EXIT_OK
    print(f"{'ID':>4}  {'Title':<40} {'Author':<25} Status")
    for book in books:
        status = "available" if book.available else f"checked out by {book.borrower_id}"
        print(f"{book.id:>4}  {book.title[:40]:<40} {book.author[:25]:<25} {status}")
    return EXIT_OK


def cmd_search(db: DatabaseManager, args: argparse.Namespace) -> int:
    with db.session_scope() as session:
        books = BookRepository(session, db.search_index).search(args.query, limit=args.limit)
    if not books:
        print(f"No books match '{args.query}'.")
        return EXIT_OK
    for book in books:
        status = "available" if book.available else "checked out"
        print(f"{book.id:>4}  {book.title} by {book.author} ({status})")
    return EXIT_OK


def cmd_update_content(db: DatabaseManager, args: argparse.Namespace) -> int:
    with db.session_scope() as session:
        book = BookRepository(session, db.search_index).update_content_from_file(
            args.book_id, args.file
        )
    print(f"Updated content of book {book.id} ({len(book.content)} characters)")
    return EXIT_OK


def cmd_import(db: DatabaseManager, args: argparse.Namespace) -> int:
    with db.session_scope() as session:
        summary = import_books(session, args.source)
    print(
        f"Imported {summary.successful_imports} of {summary.total_books} books "
        f"({summary.success_rate})"
    )
    for error in summary.errors:
        print(f"  {error}")
    return EXIT_OK if summary.failed_imports == 0 else EXIT_FAILED


def cmd_reindex(db: DatabaseManager, args: argparse.Namespace) -> int:  # noqa: ARG001
    count = db.rebuild_search_index()
    print(f"Search index rebuilt for {count} books")
    return EXIT_OK


# === Member commands ===


def cmd_add_member(db: DatabaseManager, args: argparse.Namespace) -> int:
    password = _password(args, "New member password: ")
    member_data = MemberCreateSchema(name=args.name, password=password)
    with db.session_scope() as session:
        member = MemberRepository(session).create(member_data)
    print(f"Added member {member.id}: {member.name}")
    return EXIT_OK


def cmd_list_members(db: DatabaseManager, args: argparse.Namespace) -> int:  # noqa: ARG001
    with db.session_scope() as session:
        members = MemberRepository(session).get_all()
    if not members:
        print("No members registered.")
        return EXIT_OK
    print(f"{'ID':>4}  {'Name':<30} Password set")
    for member in members:
        print(f"{member.id:>4}  {member.name[:30]:<30} {'yes' if member.has_credential else 'no'}")
    return EXIT_OK


def cmd_reset_password(db: DatabaseManager, args: argparse.Namespace) -> int:
    password = _password(args, "New password: ")
    with db.session_scope() as session:
        MemberRepository(session).reset_password(args.member_id, password)
    print(f"Password reset for member {args.member_id}")
    return EXIT_OK


# === Circulation commands ===


def cmd_checkout(db: DatabaseManager, args: argparse.Namespace) -> int:
    with db.session_scope() as session:
        _authenticate(session, args)
        CirculationRepository(session).checkout_book(args.book_id, args.member_id)
    print(f"Book {args.book_id} checked out to member {args.member_id}")
    return EXIT_OK


def cmd_return(db: DatabaseManager, args: argparse.Namespace) -> int:
    if args.member_id is None and get_config().restrict_returns_to_borrower:
        raise ValueError("--member-id is required when returns are restricted to the borrower")

    with db.session_scope() as session:
        if args.member_id is not None:
            _authenticate(session, args)
        result = CirculationRepository(session).return_book_with_details(
            args.book_id, args.member_id
        )

    print(f"Book {result.book_id} returned by member {result.returned_by}")
    if result.assigned_to is not None:
        print(f"Book {result.book_id} is now checked out to member {result.assigned_to} (next in queue)")
    return EXIT_OK


def cmd_reserve(db: DatabaseManager, args: argparse.Namespace) -> int:
    with db.session_scope() as session:
        _authenticate(session, args)
        result = CirculationRepository(session).reserve_book(args.book_id, args.member_id)
    if result.outcome == ReserveOutcome.IMMEDIATE_CHECKOUT:
        print(f"Book {args.book_id} was available and is now checked out to member {args.member_id}")
    else:
        print(f"Book {args.book_id} reserved; queue position {result.queue_position}")
    return EXIT_OK


def cmd_reservations(db: DatabaseManager, args: argparse.Namespace) -> int:
    with db.session_scope() as session:
        if args.book_id is not None:
            queue = BookRepository(session, db.search_index).get_open_reservations(args.book_id)
            if not queue:
                print(f"No reservations for book {args.book_id}")
            for position, reservation in enumerate(queue, start=1):
                print(f"{position:>3}. member {reservation.member_id} since {reservation.created_time:%Y-%m-%d %H:%M}")
        else:
            reservations = MemberRepository(session).get_open_reservations(args.member_id)
            if not reservations:
                print(f"Member {args.member_id} has no reservations")
            circulation = CirculationRepository(session)
            for reservation in reservations:
                position = circulation.get_queue_position(reservation.book_id, args.member_id)
                print(f"book {reservation.book_id}: position {position}")
    return EXIT_OK


def cmd_history(db: DatabaseManager, args: argparse.Namespace) -> int:
    with db.session_scope() as session:
        if args.book_id is not None and not BookRepository(session).exists(args.book_id):
            raise BookNotFoundError(args.book_id)
        if args.member_id is not None and not MemberRepository(session).exists(args.member_id):
            raise MemberNotFoundError(args.member_id)
        history = CirculationRepository(session).get_checkout_history(
            book_id=args.book_id, member_id=args.member_id, limit=args.limit
        )
    if not history:
        print("No checkouts recorded")
    for checkout in history:
        returned = "on loan" if checkout.is_open else f"returned {checkout.end_time:%Y-%m-%d %H:%M}"
        print(
            f"book {checkout.book_id}  member {checkout.member_id}  "
            f"out {checkout.start_time:%Y-%m-%d %H:%M}  {returned}"
        )
    return EXIT_OK


def cmd_cancel(db: DatabaseManager, args: argparse.Namespace) -> int:
    with db.session_scope() as session:
        _authenticate(session, args)
        CirculationRepository(session).cancel_reservation(args.book_id, args.member_id)
    print(f"Reservation for book {args.book_id} cancelled")
    return EXIT_OK


def cmd_read(db: DatabaseManager, args: argparse.Namespace) -> int:
    if args.check:
        with db.session_scope() as session:
            _authenticate(session, args)
            access = CirculationRepository(session).validate_read_access(args.book_id, args.member_id)
        if not access.has_content:
            print(f"Book {args.book_id} has no text to read")
        elif access.is_borrower:
            print(f"Member {args.member_id} holds book {args.book_id} and may read it")
        elif access.can_auto_checkout:
            print(f"Book {args.book_id} is available; reading it will check it out")
        else:
            print(f"Book {args.book_id} is checked out to another member")
        return EXIT_OK if access.can_read else EXIT_FAILED

    page_size = get_config().read_page_size
    with db.session_scope() as session:
        _authenticate(session, args)
        page = BookRepository(session, db.search_index).get_content_page(
            args.book_id, args.page, page_size
        )
        access = CirculationRepository(session).read_book(args.book_id, args.member_id)
    if access.auto_checked_out:
        print(f"Book {args.book_id} checked out to member {args.member_id} for reading")
    print(f"--- Page {page.page} of {page.total_pages} ---")
    print(page.text)
    return EXIT_OK


def _add_member_auth(parser: argparse.ArgumentParser, required: bool = True) -> None:
    parser.add_argument("--member-id", type=int, required=required, help="Member ID")
    parser.add_argument("--password", help="Member password (prompted for if omitted)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="library-circulation",
        description="Manage books, members, checkouts and reservations",
    )
    parser.add_argument("--database-url", help="Override the configured database URL")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True, metavar="command")

    p = sub.add_parser("init-db", help="Create tables and the search index")
    p.add_argument("--drop-existing", action="store_true", help="Drop existing tables first")
    p.set_defaults(handler=cmd_init_db)

    p = sub.add_parser("add-book", help="Add a book to the catalog")
    p.add_argument("--title", required=True)
    p.add_argument("--author", required=True)
    p.add_argument("--file", help="UTF-8 text file with the book's content")
    p.set_defaults(handler=cmd_add_book)

    p = sub.add_parser("list-books", help="List all books")
    p.set_defaults(handler=cmd_list_books)

    p = sub.add_parser("search", help="Search the catalog")
    p.add_argument("query")
    p.add_argument("--limit", type=int, default=20)
    p.set_defaults(handler=cmd_search)

    p = sub.add_parser("update-content", help="Replace a book's text from a file")
    p.add_argument("--book-id", type=int, required=True)
    p.add_argument("--file", required=True)
    p.set_defaults(handler=cmd_update_content)

    p = sub.add_parser("import", help="Import books from a CSV/JSON manifest or a directory")
    p.add_argument("source")
    p.set_defaults(handler=cmd_import)

    p = sub.add_parser("reindex", help="Rebuild the full-text search index")
    p.set_defaults(handler=cmd_reindex)

    p = sub.add_parser("add-member", help="Register a member")
    p.add_argument("--name", required=True)
    p.add_argument("--password", help="Password (prompted for if omitted)")
    p.set_defaults(handler=cmd_add_member)

    p = sub.add_parser("list-members", help="List all members")
    p.set_defaults(handler=cmd_list_members)

    p = sub.add_parser("reset-password", help="Set a new password for a member")
    p.add_argument("--member-id", type=int, required=True)
    p.add_argument("--password", help="New password (prompted for if omitted)")
    p.set_defaults(handler=cmd_reset_password)

    for name, handler, help_text in (
        ("checkout", cmd_checkout, "Check out an available book"),
        ("reserve", cmd_reserve, "Reserve a book (checks it out if available)"),
        ("cancel", cmd_cancel, "Cancel a reservation"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("--book-id", type=int, required=True)
        _add_member_auth(p)
        p.set_defaults(handler=handler)

    p = sub.add_parser("return", help="Return a book")
    p.add_argument("--book-id", type=int, required=True)
    _add_member_auth(p, required=False)
    p.set_defaults(handler=cmd_return)

    p = sub.add_parser("reservations", help="Show a book's queue or a member's reservations")
    target = p.add_mutually_exclusive_group(required=True)
    target.add_argument("--book-id", type=int)
    target.add_argument("--member-id", type=int)
    p.set_defaults(handler=cmd_reservations)

    p = sub.add_parser("history", help="Show checkouts, newest first")
    p.add_argument("--book-id", type=int)
    p.add_argument("--member-id", type=int)
    p.add_argument("--limit", type=int, default=20)
    p.set_defaults(handler=cmd_history)

    p = sub.add_parser("read", help="Read a page of a book")
    p.add_argument("--book-id", type=int, required=True)
    p.add_argument("--page", type=int, default=1)
    p.add_argument(
        "--check", action="store_true", help="Only report whether the member may read the book"
    )
    _add_member_auth(p)
    p.set_defaults(handler=cmd_read)

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    db = DatabaseManager(args.database_url) if args.database_url else get_db_manager()
    try:
        if not db.verify_connection():
            print(f"Error: cannot connect to database at {db.database_url}", file=sys.stderr)
            return EXIT_STORE_UNAVAILABLE
        if args.command != "init-db":
            db.init_database()
        return args.handler(db, args)
    except RepositoryException as e:
        print(f"Error: {e}", file=sys.stderr)
        if e.retryable:
            print("The library is busy; please try again.", file=sys.stderr)
        return EXIT_FAILED
    except (ValidationError, ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILED
    finally:
        db.close()


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
