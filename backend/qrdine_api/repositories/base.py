"""
Base Repository implementation.

BaseRepository gives every repository the session and the write helpers;
FilteredRepository adds restaurant-scoped paging for entities that staff
list (orders).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TypeVar, Generic, Sequence
from sqlalchemy.orm import Session
from sqlalchemy import Select, select, func

from shared.config.constants import Limits


ModelT = TypeVar("ModelT")


@dataclass
class RepositoryFilters:
    """Base filters for repository queries."""

    limit: int = Limits.DEFAULT_PAGE_SIZE
    offset: int = 0

    def __post_init__(self):
        """Clamp pagination values."""
        self.limit = min(max(1, self.limit), Limits.MAX_PAGE_SIZE)
        self.offset = max(0, self.offset)


class BaseRepository(ABC, Generic[ModelT]):
    """Session holder with add/flush and delete helpers."""

    def __init__(self, db: Session):
        self._db = db

    @property
    @abstractmethod
    def model(self) -> type[ModelT]:
        """Return the SQLAlchemy model class."""
        ...

    def save(self, entity: ModelT) -> ModelT:
        """Add and flush so database defaults and IDs are populated."""
        self._db.add(entity)
        self._db.flush()
        return entity

    def delete(self, entity: ModelT) -> None:
        """Hard delete entity."""
        self._db.delete(entity)
        self._db.flush()


class FilteredRepository(BaseRepository[ModelT]):
    """
    Repository with restaurant-scoped, filtered paging.

    Subclasses must implement:
    - _base_query(): base query with eager loading
    - _apply_filters(): entity-specific filters
    """

    @abstractmethod
    def _base_query(self, restaurant_id: int) -> Select:
        """Return the restaurant-scoped query with eager loading."""
        ...

    @abstractmethod
    def _apply_filters(self, query: Select, filters: RepositoryFilters) -> Select:
        """Apply entity-specific filters to query."""
        ...

    def find_all(
        self,
        restaurant_id: int,
        filters: RepositoryFilters | None = None,
    ) -> Sequence[ModelT]:
        """Find a page of entities matching filters."""
        filters = filters or RepositoryFilters()
        query = self._apply_filters(self._base_query(restaurant_id), filters)
        query = query.offset(filters.offset).limit(filters.limit)
        return self._db.execute(query).scalars().unique().all()

    def count(
        self,
        restaurant_id: int,
        filters: RepositoryFilters | None = None,
    ) -> int:
        """Count entities matching filters (pagination ignored)."""
        filters = filters or RepositoryFilters()
        query = (
            select(func.count())
            .select_from(self.model)
            .where(self.model.restaurant_id == restaurant_id)
        )
        query = self._apply_filters(query, filters)
        return self._db.scalar(query) or 0
