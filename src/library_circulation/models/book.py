"""
Book models for the library circulation service.

Catalog listings use ``BookSummary`` so that full text never travels with a
list of books; ``Book`` adds the content for single-book reads, and
``ContentPage`` carries one page of it for readers.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class BookSummary(BaseModel):
    """A catalog entry without its text."""

    id: int = Field(..., description="Unique book identifier", ge=1, examples=[1, 42])

    title: str = Field(
        ...,
        description="The title of the book",
        min_length=1,
        max_length=500,
        examples=["Pride and Prejudice", "Moby Dick"],
    )

    author: str = Field(
        ...,
        description="The book's author",
        min_length=1,
        max_length=300,
        examples=["Jane Austen", "Herman Melville"],
    )

    available: bool = Field(
        default=True,
        description="True when nobody holds the book",
    )

    borrower_id: int | None = Field(
        default=None,
        description="Member currently holding the book, if any",
    )

    created_at: datetime | None = Field(
        default=None,
        description="Timestamp when the book was added to the catalog",
    )

    @model_validator(mode="after")
    def validate_borrower_matches_availability(self) -> "BookSummary":
        """A book is available exactly when it has no borrower."""
        if self.available != (self.borrower_id is None):
            raise ValueError("available must be true exactly when borrower_id is null")
        return self

    @property
    def is_available(self) -> bool:
        return self.available

    model_config = ConfigDict(
        from_attributes=True,
        json_schema_extra={
            "example": {
                "id": 1,
                "title": "Pride and Prejudice",
                "author": "Jane Austen",
                "available": False,
                "borrower_id": 7,
            }
        },
    )


class Book(BookSummary):
    """A catalog entry including its full text."""

    content: str = Field(default="", description="Full text of the book; may be empty")

    @property
    def has_content(self) -> bool:
        return bool(self.content.strip())


class BookCreateSchema(BaseModel):
    """Schema for adding a book to the catalog."""

    title: str = Field(..., min_length=1, max_length=500)
    author: str = Field(..., min_length=1, max_length=300)
    content: str = ""

    @field_validator("title", "author")
    @classmethod
    def strip_and_require(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


class ContentPage(BaseModel):
    """One page of a book's text."""

    book_id: int
    page: int = Field(..., ge=1, description="1-based page number")
    total_pages: int = Field(..., ge=1)
    offset: int = Field(..., ge=0, description="Character offset of the page start")
    text: str

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_previous(self) -> bool:
        return self.page > 1
