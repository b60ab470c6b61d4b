# backend/mentorlink/repositories/base_repository.py
"""
Base repository for MentorLink models.

Repositories flush but never commit; the service layer owns transaction
boundaries. Driver errors are logged here and re-raised as
RepositoryException so services never handle SQLAlchemy types.
"""

import logging
from typing import Generic, Type, TypeVar

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Query, Session

from ..core.exceptions import RepositoryException

T = TypeVar("T")

logger = logging.getLogger(__name__)


class BaseRepository(Generic[T]):
    """
    Data access for a single model.

    Attributes:
        db: SQLAlchemy session shared with the owning service
        model: SQLAlchemy model class
    """

    def __init__(self, db: Session, model: Type[T]):
        self.db = db
        self.model = model
        self.logger = logging.getLogger(f"{__name__}.{model.__name__}")

    def create(self, **kwargs) -> T:
        """Add a row and flush so generated ids and defaults are populated."""
        try:
            entity = self.model(**kwargs)
            self.db.add(entity)
            self.db.flush()
            return entity
        except IntegrityError as exc:
            self.logger.error("Integrity error creating %s: %s", self.model.__name__, exc)
            self.db.rollback()
            raise RepositoryException(
                f"Integrity constraint violated for {self.model.__name__}"
            ) from exc
        except SQLAlchemyError as exc:
            self.logger.error("Error creating %s: %s", self.model.__name__, exc)
            self.db.rollback()
            raise RepositoryException(f"Failed to create {self.model.__name__}") from exc

    def _apply_eager_loading(self, query: Query) -> Query:
        """Hook for subclasses that return rows with relationships populated."""
        return query
