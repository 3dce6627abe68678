"""
Base repository class for data access layer.

Every entity in the pipeline is written through `upsert`: the row is looked
up by its unique key and patched in place, or inserted when absent. Applying
the same key twice therefore always yields one row holding the latest values.

Example:
    class TeamRepository(BaseRepository[Team]):
        def find_by_external_id(self, league, external_id, season):
            return self.filter_by_first(
                league=league, external_id=external_id, season=season
            )
"""
from abc import ABC
from typing import TypeVar, Generic, Type, Optional, List, Any, Dict

from sqlalchemy.orm import Query, Session

from courtside.utils.timezone import utc_now

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
    # Reads
    # ========================================================================

    def find_by_id(self, id: str) -> Optional[T]:
        """Find a single record by ID."""
        return self.db.get(self.model_type, id)

    def query(self) -> Query:
        """Get a new query object for this model."""
        return self.db.query(self.model_type)

    def filter_by(self, **kwargs) -> List[T]:
        """Filter records by keyword arguments."""
        return self.db.query(self.model_type).filter_by(**kwargs).all()

    def filter_by_first(self, **kwargs) -> Optional[T]:
        """Filter records by keyword arguments and return first match."""
        return self.db.query(self.model_type).filter_by(**kwargs).first()

    # ========================================================================
    # Writes
    # ========================================================================

    def upsert(self, unique_key: Dict[str, Any], fields: Dict[str, Any]) -> T:
        """
        Patch the row matching unique_key with fields, or insert it.

        Args:
            unique_key: Column values that identify the row
            fields: Column values to write

        Returns:
            The created or updated record (flushed, not committed)
        """
        instance = self.filter_by_first(**unique_key)
        if instance is None:
            instance = self.model_type(**{**fields, **unique_key})
            self.db.add(instance)
        else:
            self.patch(instance, fields)
        self.db.flush()
        return instance

    def patch(self, instance: T, fields: Dict[str, Any]) -> T:
        """Overwrite the given columns on an existing record."""
        for key, value in fields.items():
            setattr(instance, key, value)
        instance.updated_at = utc_now()
        return instance

