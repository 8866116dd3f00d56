"""
Repository pattern implementation for data access.
"""

from typing import Any, Dict, Generic, List, Optional, Type, TypeVar

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .base import Base

T = TypeVar('T', bound=Base)


class BaseRepository(Generic[T]):
    """
    Base repository class for CRUD operations.
    """

    def __init__(self, model_class: Type[T], session: Session):
        """
        Initialize repository.

        Args:
            model_class: SQLAlchemy model class
            session: Database session
        """
        self.model_class = model_class
        self.session = session

    def _filtered(self, query, filters: Dict[str, Any]):
        for key, value in filters.items():
            if value is None or not hasattr(self.model_class, key):
                continue
            column = getattr(self.model_class, key)
            if isinstance(value, (list, tuple, set)):
                query = query.where(column.in_(list(value)))
            else:
                query = query.where(column == value)
        return query

    def get_by(self, **kwargs) -> Optional[T]:
        """
        Get a record by multiple criteria.

        Args:
            **kwargs: Filter criteria

        Returns:
            Model instance or None
        """
        query = self._filtered(select(self.model_class), kwargs)
        return self.session.execute(query).scalar_one_or_none()

    def get_all(
        self,
        skip: int = 0,
        limit: Optional[int] = None,
        order_by: Optional[List[str]] = None,
        **filters
    ) -> List[T]:
        """
        Get all records with optional filtering and pagination.

        Args:
            skip: Number of records to skip
            limit: Maximum number of records to return
            order_by: Column names to order by, '-' prefix for descending
            **filters: Filter criteria

        Returns:
            List of model instances
        """
        query = self._filtered(select(self.model_class), filters)

        if order_by:
            order_clauses = []
            for order in order_by:
                if order.startswith('-'):
                    order_clauses.append(getattr(self.model_class, order[1:]).desc())
                else:
                    order_clauses.append(getattr(self.model_class, order).asc())
            query = query.order_by(*order_clauses)

        if skip:
            query = query.offset(skip)
        if limit is not None:
            query = query.limit(limit)

        return list(self.session.execute(query).scalars().all())

    def add(self, instance: T) -> T:
        self.session.add(instance)
        self.session.flush()
        return instance

    def add_all(self, instances: List[T]) -> List[T]:
        self.session.add_all(instances)
        self.session.flush()
        return instances

    def count(self, **filters) -> int:
        """
        Count records matching criteria.

        Args:
            **filters: Filter criteria

        Returns:
            Number of matching records
        """
        query = self._filtered(select(func.count()).select_from(self.model_class), filters)
        return self.session.execute(query).scalar_one()
