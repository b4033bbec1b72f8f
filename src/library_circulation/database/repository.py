"""
Repository base for the library circulation service.

Repositories wrap a single SQLAlchemy session and return Pydantic models,
so tools, resources and the CLI never handle ORM objects directly. Reads go
through ``safe_query`` and writes through ``run_atomic``, which keeps error
translation in one place.
"""

from abc import ABC, abstractmethod
from typing import Generic, TypeVar

from pydantic import BaseModel
from sqlalchemy import asc, desc, func, select
from sqlalchemy.orm import Session

from .errors import DuplicateError, NotFoundError, RepositoryException
from .schema import Base
from .session import safe_query

ModelType = TypeVar("ModelType", bound=Base)
ResponseSchemaType = TypeVar("ResponseSchemaType", bound=BaseModel)

__all__ = [
    "BaseRepository",
    "DuplicateError",
    "NotFoundError",
    "PaginatedResponse",
    "PaginationParams",
    "RepositoryException",
]


class PaginationParams(BaseModel):
    """Standard pagination parameters for list operations."""

    page: int = 1
    page_size: int = 20

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size

    def validate_params(self) -> None:
        if self.page < 1:
            raise ValueError("Page must be >= 1")
        if self.page_size < 1 or self.page_size > 100:
            raise ValueError("Page size must be between 1 and 100")


class PaginatedResponse(BaseModel, Generic[ResponseSchemaType]):
    """Standard paginated response for list resources."""

    items: list[ResponseSchemaType]
    total: int
    page: int
    page_size: int
    total_pages: int
    has_next: bool
    has_previous: bool


class BaseRepository(ABC, Generic[ModelType, ResponseSchemaType]):
    """
    Abstract base repository providing common read operations.

    Subclasses name their table and response model; everything else here is
    shared.
    """

    def __init__(self, session: Session):
        """Initialize repository with database session."""
        self.session = session

    @property
    @abstractmethod
    def model_class(self) -> type[ModelType]:
        """Return the SQLAlchemy model class."""

    @property
    @abstractmethod
    def response_schema(self) -> type[ResponseSchemaType]:
        """Return the Pydantic response schema."""

    def _to_response_model(self, db_obj: ModelType) -> ResponseSchemaType:
        """Convert database model to Pydantic response model."""
        return self.response_schema.model_validate(db_obj, from_attributes=True)

    def _get_db_obj(self, id: int) -> ModelType | None:
        return safe_query(
            self.session,
            lambda s: s.get(self.model_class, id),
            f"get {self.model_class.__name__} {id}",
        )

    def get_by_id(self, id: int) -> ResponseSchemaType | None:
        """
        Get entity by ID.

        Returns:
            Pydantic model or None if not found
        """
        db_obj = self._get_db_obj(id)
        if db_obj is None:
            return None
        return self._to_response_model(db_obj)

    def exists(self, id: int) -> bool:
        query = select(func.count()).select_from(self.model_class).where(self.model_class.id == id)
        count = safe_query(
            self.session,
            lambda s: s.execute(query).scalar_one(),
            f"check {self.model_class.__name__} {id}",
        )
        return count > 0

    def count(self) -> int:
        query = select(func.count()).select_from(self.model_class)
        return safe_query(
            self.session,
            lambda s: s.execute(query).scalar_one(),
            f"count {self.model_class.__name__}",
        )

    def get_all(
        self,
        pagination: PaginationParams | None = None,
        order_by: str | None = "id",
        order_desc: bool = False,
    ) -> list[ResponseSchemaType] | PaginatedResponse[ResponseSchemaType]:
        """
        Get all entities with optional pagination and sorting.

        Returns:
            List of entities, or a paginated response when ``pagination`` is given
        """
        query = self._list_query()

        if order_by and hasattr(self.model_class, order_by):
            order_field = getattr(self.model_class, order_by)
            query = query.order_by(desc(order_field) if order_desc else asc(order_field))

        if pagination is None:
            rows = safe_query(
                self.session,
                lambda s: s.execute(query).all(),
                f"list {self.model_class.__name__}",
            )
            return [self._row_to_response(row) for row in rows]

        pagination.validate_params()
        total = self.count()
        paged = query.offset(pagination.offset).limit(pagination.page_size)
        rows = safe_query(
            self.session,
            lambda s: s.execute(paged).all(),
            f"list {self.model_class.__name__}",
        )
        total_pages = (total + pagination.page_size - 1) // pagination.page_size

        return PaginatedResponse(
            items=[self._row_to_response(row) for row in rows],
            total=total,
            page=pagination.page,
            page_size=pagination.page_size,
            total_pages=total_pages,
            has_next=pagination.page < total_pages,
            has_previous=pagination.page > 1,
        )

    def _list_query(self):
        """Select statement used by ``get_all``; override to limit columns."""
        return select(self.model_class)

    def _row_to_response(self, row) -> ResponseSchemaType:
        return self._to_response_model(row[0])
