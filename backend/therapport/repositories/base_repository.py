# backend/therapport/repositories/base_repository.py
"""
Base Repository Pattern for the Therapport platform.

Repositories own data access only. They add and flush but never commit:
transaction boundaries belong to the service layer, which lets a ledger
mutation and a booking write share one unit of work.
"""

from abc import ABC, abstractmethod
import logging
from typing import Any, Generic, List, Optional, Type, TypeVar

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Query, Session

from ..core.exceptions import RepositoryException
from ..database.session_utils import supports_row_locks

T = TypeVar("T")

logger = logging.getLogger(__name__)


class IRepository(ABC, Generic[T]):
    """Core data access contract shared by every repository."""

    @abstractmethod
    def get_by_id(self, id: str, for_update: bool = False) -> Optional[T]:
        """Retrieve an entity by primary key, optionally locking the row."""

    @abstractmethod
    def create(self, **kwargs: Any) -> T:
        """Create and flush a new entity."""

    @abstractmethod
    def update(self, id: str, **kwargs: Any) -> Optional[T]:
        """Update attributes on an existing entity."""

    @abstractmethod
    def exists(self, **kwargs: Any) -> bool:
        """Check if an entity exists with the given column values."""

    @abstractmethod
    def count(self, **kwargs: Any) -> int:
        """Count entities matching the given column values."""


class BaseRepository(IRepository[T]):
    """
    Concrete base repository with common data access patterns.

    Attributes:
        db: SQLAlchemy session (managed by the service layer)
        model: SQLAlchemy model class
    """

    def __init__(self, db: Session, model: Type[T]):
        self.db = db
        self.model = model
        self.logger = logging.getLogger(f"{__name__}.{model.__name__}")

    def _for_update(self, query: Query) -> Query:
        """
        Apply SELECT ... FOR UPDATE where the dialect supports row locks.

        ``populate_existing`` refreshes rows already in the identity map with
        the values read under the lock.
        """
        if supports_row_locks(self.db):
            return query.with_for_update().populate_existing()
        return query

    def get_by_id(self, id: str, for_update: bool = False) -> Optional[T]:
        try:
            query = self.db.query(self.model).filter(self.model.id == id)
            if for_update:
                query = self._for_update(query)
            return query.first()
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting {self.model.__name__} by id {id}: {str(e)}")
            raise RepositoryException(f"Failed to retrieve {self.model.__name__}: {str(e)}")

    def create(self, **kwargs: Any) -> T:
        try:
            entity = self.model(**kwargs)
            self.db.add(entity)
            self.db.flush()
            return entity
        except IntegrityError as e:
            self.logger.error(f"Integrity error creating {self.model.__name__}: {str(e)}")
            raise RepositoryException(f"Integrity constraint violated: {str(e)}") from e
        except SQLAlchemyError as e:
            self.logger.error(f"Error creating {self.model.__name__}: {str(e)}")
            raise RepositoryException(f"Failed to create {self.model.__name__}: {str(e)}") from e

    def update(self, id: str, **kwargs: Any) -> Optional[T]:
        entity = self.get_by_id(id)
        if entity is None:
            return None
        try:
            for key, value in kwargs.items():
                if hasattr(entity, key):
                    setattr(entity, key, value)
            self.db.flush()
            return entity
        except SQLAlchemyError as e:
            self.logger.error(f"Error updating {self.model.__name__} {id}: {str(e)}")
            raise RepositoryException(f"Failed to update {self.model.__name__}: {str(e)}") from e

    def exists(self, **kwargs: Any) -> bool:
        try:
            return self.db.query(self._build_filtered(**kwargs).exists()).scalar() or False
        except SQLAlchemyError as e:
            self.logger.error(f"Error checking {self.model.__name__} existence: {str(e)}")
            raise RepositoryException(f"Failed to check existence: {str(e)}") from e

    def count(self, **kwargs: Any) -> int:
        try:
            return self._build_filtered(**kwargs).count()
        except SQLAlchemyError as e:
            self.logger.error(f"Error counting {self.model.__name__}: {str(e)}")
            raise RepositoryException(f"Failed to count: {str(e)}") from e

    def find_one_by(self, **kwargs: Any) -> Optional[T]:
        try:
            return self._build_filtered(**kwargs).first()
        except SQLAlchemyError as e:
            self.logger.error(f"Error finding {self.model.__name__}: {str(e)}")
            raise RepositoryException(f"Failed to find {self.model.__name__}: {str(e)}") from e

    def flush(self) -> None:
        try:
            self.db.flush()
        except SQLAlchemyError as e:
            self.logger.error(f"Error flushing {self.model.__name__} changes: {str(e)}")
            raise RepositoryException(f"Failed to flush changes: {str(e)}") from e

    def _build_filtered(self, **kwargs: Any) -> Query:
        query = self.db.query(self.model)
        for key, value in kwargs.items():
            query = query.filter(getattr(self.model, key) == value)
        return query

    def _execute_query(self, query: Query) -> List[T]:
        try:
            return list(query.all())
        except SQLAlchemyError as e:
            self.logger.error(f"Error executing {self.model.__name__} query: {str(e)}")
            raise RepositoryException(f"Query failed: {str(e)}") from e

    def _execute_scalar(self, query: Query) -> Any:
        try:
            return query.scalar()
        except SQLAlchemyError as e:
            self.logger.error(f"Error executing {self.model.__name__} scalar query: {str(e)}")
            raise RepositoryException(f"Query failed: {str(e)}") from e
