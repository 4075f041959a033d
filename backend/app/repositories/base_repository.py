# backend/app/repositories/base_repository.py
"""
Base Repository Pattern for the Lumexa booking core.

Repositories own data access only:
- Common CRUD operations, typed per model
- No commits (transactions are managed by services)
- Conditional UPDATE helpers for state that must change atomically

Every SQLAlchemy failure is logged and re-raised as RepositoryException so
services never depend on driver-specific error types.
"""

from contextlib import contextmanager
import logging
from typing import Any, Dict, Generic, Iterator, List, Optional, Type, TypeVar

from sqlalchemy import update as sa_update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Query, Session

from app.database.session_utils import get_dialect_name, supports_row_locks

from ..core.exceptions import RepositoryException

# Type variable for generic model support
T = TypeVar("T")

logger = logging.getLogger(__name__)


class BaseRepository(Generic[T]):
    """
    Concrete base repository with common data access patterns.

    Attributes:
        db: SQLAlchemy session
        model: SQLAlchemy model class
    """

    def __init__(self, db: Session, model: Type[T]):
        self.db = db
        self.model = model
        self.logger = logging.getLogger(f"{__name__}.{model.__name__}")

    @property
    def dialect_name(self) -> str:
        return get_dialect_name(self.db)

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """Context manager that commits/rolls back the underlying session."""
        try:
            yield self.db
            self.db.commit()
        except SQLAlchemyError as exc:
            self.logger.error("Repository transaction failed: %s", exc)
            self.db.rollback()
            raise
        except Exception:
            self.db.rollback()
            raise

    def get_by_id(self, id: str, *, for_update: bool = False) -> Optional[T]:
        """
        Retrieve an entity by its primary key.

        ``for_update`` takes a row lock on PostgreSQL; SQLite already
        serializes writers so the clause is skipped there.
        """
        try:
            query = self.db.query(self.model).filter(self.model.id == id)
            if for_update and supports_row_locks(self.db):
                query = query.with_for_update()
            return query.first()
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting {self.model.__name__} by id {id}: {str(e)}")
            raise RepositoryException(f"Failed to retrieve {self.model.__name__}: {str(e)}")

    def create(self, **kwargs) -> T:
        """
        Create a new entity.

        Note: Does NOT commit - transaction management is handled by service layer.
        """
        try:
            entity = self.model(**kwargs)
            self.db.add(entity)
            self.db.flush()  # Get ID without committing
            return entity
        except IntegrityError as exc:
            self.logger.error("Integrity error creating %s: %s", self.model.__name__, exc)
            self.db.rollback()
            raise RepositoryException(f"Integrity constraint violated: {exc}") from exc
        except SQLAlchemyError as e:
            self.logger.error(f"Error creating {self.model.__name__}: {str(e)}")
            self.db.rollback()
            raise RepositoryException(f"Failed to create {self.model.__name__}: {str(e)}") from e

    def flush(self) -> None:
        """Flush pending ORM changes."""
        self.db.flush()

    # Protected helper methods for use by subclasses

    def _conditional_update(self, where: List[Any], values: Dict[str, Any]) -> int:
        """
        Run ``UPDATE <table> SET values WHERE where`` and return affected rows.

        This is the only way state guarded by a precondition (reservation
        flag, payment status, recording ref) is written. Zero affected rows
        means another writer got there first.
        Loaded instances of the model have the written attributes expired.
        """
        try:
            stmt = (
                sa_update(self.model)
                .where(*where)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            result = self.db.execute(stmt)
            affected = int(result.rowcount or 0)
        except SQLAlchemyError as e:
            self.logger.error(f"Conditional update on {self.model.__name__} failed: {str(e)}")
            raise RepositoryException(
                f"Failed to update {self.model.__name__}: {str(e)}"
            ) from e
        if affected:
            self._expire_loaded(list(values))
        return affected

    def _expire_loaded(self, attribute_names: List[str]) -> None:
        """Expire written attributes on loaded instances so the next read hits the row."""
        for instance in list(self.db.identity_map.values()):
            if isinstance(instance, self.model):
                self.db.expire(instance, attribute_names)

    def _build_query(self) -> Query:
        """Get base query for the model."""
        return self.db.query(self.model)

    def _execute_query(self, query: Query) -> List[T]:
        """Execute query with error handling."""
        try:
            return query.all()
        except SQLAlchemyError as e:
            self.logger.error(f"Query execution error: {str(e)}")
            raise RepositoryException(f"Query failed: {str(e)}")

    def _execute_scalar(self, query: Query) -> Any:
        """Execute scalar query with error handling."""
        try:
            return query.scalar()
        except SQLAlchemyError as e:
            self.logger.error(f"Scalar query error: {str(e)}")
            raise RepositoryException(f"Scalar query failed: {str(e)}")
