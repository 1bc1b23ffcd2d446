"""
Base repository class for data access layer.

The repository pattern keeps query logic out of the scrape services and
lets tests run the services against an in-memory database.

Repositories never commit on their own; the caller owns the transaction
(one per reconciled entity, one per counter update, one per market import).

Example:
    class CrewRepository(BaseRepository[Crew]):
        def find_by_game_id(self, ocean: str, game_crew_id: int) -> Optional[Crew]:
            return self.where_first(
                Crew.ocean == ocean, Crew.game_crew_id == game_crew_id
            )
"""
from abc import ABC
from typing import TypeVar, Generic, Type, Optional, List, Any, Dict, Tuple
from sqlalchemy import func
from sqlalchemy.orm import Query, Session

T = TypeVar("T")


class BaseRepository(Generic[T], ABC):
    """
    Base repository class providing common data access methods.

    Attributes:
        model_type: The SQLAlchemy model class this repository manages
        db: The database session
    """

    def __init__(self, model_type: Type[T], db: Session):
        self.model_type = model_type
        self.db = db

    # ========================================================================
    # CRUD Operations
    # ========================================================================

    def find_by_id(self, id: str) -> Optional[T]:
        """Find a single record by ID."""
        return self.db.query(self.model_type).filter(self.model_type.id == id).first()

    def create(self, **kwargs) -> T:
        """
        Create a new record.

        Returns:
            The created record (flushed, not committed)
        """
        instance = self.model_type(**kwargs)
        self.db.add(instance)
        self.db.flush()
        return instance

    def find_or_create(self, defaults: Optional[Dict[str, Any]] = None, **keys) -> Tuple[T, bool]:
        """
        Find a record by its natural key, creating it when absent.

        Args:
            defaults: Extra column values used only on creation
            keys: Natural-key column values

        Returns:
            (record, created)
        """
        instance = self.filter_by_first(**keys)
        if instance is not None:
            return instance, False
        return self.create(**keys, **(defaults or {})), True

    # ========================================================================
    # Query Builders
    # ========================================================================

    def query(self) -> Query:
        """Get a new query object for this model."""
        return self.db.query(self.model_type)

    def filter_by(self, **kwargs) -> List[T]:
        """Filter records by keyword arguments."""
        return self.db.query(self.model_type).filter_by(**kwargs).all()

    def filter_by_first(self, **kwargs) -> Optional[T]:
        """Filter records by keyword arguments and return first match."""
        return self.db.query(self.model_type).filter_by(**kwargs).first()

    def where(self, *criterion) -> List[T]:
        """Filter records using SQLAlchemy expressions."""
        return self.db.query(self.model_type).filter(*criterion).all()

    def where_first(self, *criterion) -> Optional[T]:
        """Filter records using SQLAlchemy expressions and return first match."""
        return self.db.query(self.model_type).filter(*criterion).first()

    def count(self, *criterion) -> int:
        """Count records matching optional criterion."""
        query = self.db.query(func.count(self.model_type.id))
        if criterion:
            query = query.filter(*criterion)
        return query.scalar() or 0

    # ========================================================================
    # Save Operations
    # ========================================================================

    def save(self) -> None:
        """Commit pending changes to the database."""
        self.db.commit()

    def flush(self) -> None:
        """Flush pending changes without committing."""
        self.db.flush()

    def refresh(self, instance: T) -> T:
        """Refresh an instance from the database."""
        self.db.refresh(instance)
        return instance

    def rollback(self) -> None:
        """Rollback pending changes."""
        self.db.rollback()
