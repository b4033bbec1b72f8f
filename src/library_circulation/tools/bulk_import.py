"""Bulk import of books and their text.

A manifest lists the books to add:

- CSV with a header row ``title,author,file``
- JSON: an array of ``{"title": ..., "author": ..., "file": ...}`` objects
- a directory: every ``*.txt`` file becomes a book titled after its file
  name, by "Unknown"

``file`` paths are relative to the manifest. Each book is added in its own
transaction, so one bad row does not undo the rest; failures are collected
in the summary.
"""

import csv
import json
import logging
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

from fastmcp import Context
from pydantic import BaseModel, Field, ValidationError, field_validator
from sqlalchemy.orm import Session

from ..database.book_repository import BookRepository
from ..database.errors import RepositoryException
from ..database.session import session_scope
from ..models.book import BookCreateSchema
from ..observability import trace_tool
from .common import error_response, text_response, unexpected_error_response

logger = logging.getLogger(__name__)

UNKNOWN_AUTHOR = "Unknown"
MAX_REPORTED_ERRORS = 10


class ImportEntry(BaseModel):
    """One book in a manifest."""

    title: str = Field(..., min_length=1)
    author: str = Field(default=UNKNOWN_AUTHOR, min_length=1)
    file: str | None = None

    @field_validator("title", "author", mode="before")
    @classmethod
    def strip_text(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v

    @field_validator("author", mode="before")
    @classmethod
    def default_blank_author(cls, v: Any) -> Any:
        if v is None or (isinstance(v, str) and not v.strip()):
            return UNKNOWN_AUTHOR
        return v


class ImportSummary(BaseModel):
    total_books: int = 0
    successful_imports: int = 0
    failed_imports: int = 0
    book_ids: list[int] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)

    @property
    def success_rate(self) -> str:
        if self.total_books == 0:
            return "0%"
        return f"{(self.successful_imports / self.total_books) * 100:.1f}%"


class BulkImportInput(BaseModel):
    """Input schema for the bulk_import_books tool."""

    file_path: str = Field(
        description="Path to a CSV or JSON manifest, or a directory of .txt files",
        min_length=1,
        examples=["/data/import/books.csv", "/data/import/texts"],
    )


def _format_eta(seconds: float) -> str:
    if seconds < 60:
        return f"{int(seconds)}s"
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes}m {secs}s"


def title_from_filename(path: Path) -> str:
    return path.stem.replace("_", " ").replace("-", " ").strip().title()


def load_manifest(path: str | Path) -> tuple[list[dict[str, Any]], Path]:
    """
    Read raw manifest rows.

    Returns:
        The rows and the directory that ``file`` entries are relative to

    Raises:
        FileNotFoundError: If the manifest does not exist
        ValueError: If the file type is not supported
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Import source not found: {path}")

    if path.is_dir():
        rows = [
            {"title": title_from_filename(text_file), "author": UNKNOWN_AUTHOR, "file": text_file.name}
            for text_file in sorted(path.glob("*.txt"))
        ]
        return rows, path

    suffix = path.suffix.lower()
    if suffix == ".csv":
        with path.open(newline="", encoding="utf-8") as f:
            rows = list(csv.DictReader(f))
    elif suffix == ".json":
        with path.open(encoding="utf-8") as f:
            rows = json.load(f)
        if not isinstance(rows, list):
            raise ValueError("JSON manifest must contain an array of book objects")
    else:
        raise ValueError(f"Unsupported manifest type: {suffix}. Use .csv, .json or a directory")

    return rows, path.parent


def import_entry(repo: BookRepository, row: dict[str, Any], base_dir: Path) -> int:
    """Add one manifest row to the catalog and return the new book id."""
    entry = ImportEntry.model_validate(row)
    if entry.file:
        text_path = Path(entry.file)
        if not text_path.is_absolute():
            text_path = base_dir / text_path
        book = repo.create_from_file(entry.title, entry.author, text_path)
    else:
        book = repo.create(BookCreateSchema(title=entry.title, author=entry.author))
    return book.id


def _describe_failure(number: int, error: Exception) -> str:
    if isinstance(error, ValidationError):
        return f"Book {number}: invalid entry - {error.errors()[0]['msg']}"
    if isinstance(error, OSError):
        return f"Book {number}: cannot read text file - {error}"
    return f"Book {number}: {error}"


def import_books(
    session: Session,
    source: str | Path,
    on_progress: Callable[[int, int, ImportSummary], None] | None = None,
) -> ImportSummary:
    """Import every book listed in ``source``; used by the CLI."""
    rows, base_dir = load_manifest(source)
    repo = BookRepository(session)
    summary = ImportSummary(total_books=len(rows))

    for number, row in enumerate(rows, start=1):
        try:
            summary.book_ids.append(import_entry(repo, row, base_dir))
            summary.successful_imports += 1
        except (ValidationError, OSError, RepositoryException) as e:
            summary.failed_imports += 1
            summary.errors.append(_describe_failure(number, e))
            logger.warning("Import of row %d failed: %s", number, e)
        if on_progress is not None:
            on_progress(number, len(rows), summary)

    logger.info(
        "Imported %d of %d books from %s",
        summary.successful_imports,
        summary.total_books,
        source,
    )
    return summary


async def import_books_with_progress(source: str, ctx: Context) -> ImportSummary:
    """Import books, reporting progress to the MCP client as each one lands."""
    rows, base_dir = load_manifest(source)
    total = len(rows)
    summary = ImportSummary(total_books=total)
    await ctx.info(f"Found {total} books to import")
    start_time = time.time()

    with session_scope() as session:
        repo = BookRepository(session)
        for number, row in enumerate(rows, start=1):
            elapsed = time.time() - start_time
            eta = ""
            if number > 1 and elapsed > 0:
                eta = f" - ETA: {_format_eta(elapsed / (number - 1) * (total - number + 1))}"
            await ctx.report_progress(
                progress=number, total=total, message=f"Importing book {number}/{total}{eta}"
            )

            try:
                summary.book_ids.append(import_entry(repo, row, base_dir))
                summary.successful_imports += 1
            except (ValidationError, OSError, RepositoryException) as e:
                summary.failed_imports += 1
                message = _describe_failure(number, e)
                summary.errors.append(message)
                await ctx.warning(message)

    await ctx.report_progress(progress=total, total=total, message="Import completed")
    return summary


@trace_tool("bulk_import_books")
async def bulk_import_books_handler(arguments: dict[str, Any], ctx: Context) -> dict[str, Any]:
    """Handler for the bulk_import_books tool."""
    try:
        params = BulkImportInput.model_validate(arguments)
    except ValidationError as e:
        logger.warning("Invalid import parameters: %s", e)
        return error_response(f"Invalid import parameters: {e}", "invalid_input")

    try:
        summary = await import_books_with_progress(params.file_path, ctx)
    except FileNotFoundError as e:
        return error_response(str(e), "not_found")
    except ValueError as e:
        return error_response(str(e), "invalid_input")
    except Exception as e:
        return unexpected_error_response("bulk_import_books", e)

    text = (
        f"Import completed: {summary.successful_imports}/{summary.total_books} "
        f"books imported successfully ({summary.success_rate})"
    )
    if summary.failed_imports:
        text += f"\n{summary.failed_imports} imports failed.\nFirst few errors:\n"
        text += "\n".join(summary.errors[:5])

    data = summary.model_dump()
    data["errors"] = summary.errors[:MAX_REPORTED_ERRORS]
    data["errors_truncated"] = len(summary.errors) > MAX_REPORTED_ERRORS
    data["success_rate"] = summary.success_rate
    return text_response(text, data)


bulk_import_books = {
    "name": "bulk_import_books",
    "description": (
        "Add many books at once from a CSV or JSON manifest (title, author, file) or a "
        "directory of .txt files. Reports progress; rows that fail are listed, the rest "
        "are still imported."
    ),
    "inputSchema": BulkImportInput.model_json_schema(),
    "handler": bulk_import_books_handler,
}
