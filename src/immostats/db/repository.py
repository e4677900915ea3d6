"""
Repository Pattern for Data Access

Provides CRUD operations and domain-specific queries for all models.
"""
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Dict, Any, Type, TypeVar

from sqlalchemy import select, delete, func, desc, or_
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from src.immostats.db.models import Property, IngestionRun
from src.immostats.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar('T')

# Columns never overwritten by an upsert
_IMMUTABLE_COLUMNS = {"id", "external_id", "created_at"}


def _dialect_insert(session: Session):
    """Pick the dialect-specific INSERT construct supporting ON CONFLICT."""
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert
    if dialect == "sqlite":
        return sqlite.insert
    raise NotImplementedError(f"Upsert is not supported for dialect '{dialect}'")


class BaseRepository:
    """
    Base repository with common CRUD operations.

    Generic repository that can be extended for specific models.
    """

    def __init__(self, model: Type[T]):
        """
        Initialize repository with model class.

        Args:
            model: SQLAlchemy model class
        """
        self.model = model
        logger.debug("repository_initialized", model=model.__name__)

    def get_by_id(self, session: Session, id_value: Any) -> Optional[T]:
        """
        Get single record by primary key.

        Args:
            session: Database session
            id_value: Primary key value

        Returns:
            Model instance or None
        """
        result = session.get(self.model, id_value)
        logger.debug(
            "repository_get_by_id",
            model=self.model.__name__,
            id=id_value,
            found=result is not None
        )
        return result

    def count(self, session: Session) -> int:
        """
        Count total records.

        Args:
            session: Database session

        Returns:
            Total count
        """
        count = session.scalar(select(func.count()).select_from(self.model))
        logger.debug("repository_count", model=self.model.__name__, count=count)
        return count


class PropertyRepository(BaseRepository):
    """Repository for Property model with upsert and retention queries."""

    def __init__(self):
        super().__init__(Property)

    def get_by_external_id(self, session: Session, external_id: str) -> Optional[Property]:
        """
        Get property by its source-scoped external identifier.

        Args:
            session: Database session
            external_id: External identifier

        Returns:
            Property instance or None
        """
        query = (
            select(Property)
            .where(Property.external_id == external_id)
            .execution_options(populate_existing=True)
        )
        return session.execute(query).scalar_one_or_none()

    def get_by_id_or_external_id(self, session: Session, identifier: str) -> Optional[Property]:
        """
        Get property by internal id, falling back to external id.

        Args:
            session: Database session
            identifier: Internal id or external id

        Returns:
            Property instance or None
        """
        query = select(Property).where(
            or_(Property.id == identifier, Property.external_id == identifier)
        )
        return session.execute(query).scalars().first()

    def upsert(
        self,
        session: Session,
        property_data: Dict[str, Any],
        updated_at: Optional[datetime] = None
    ) -> Property:
        """
        Insert or update property by external ID.

        Every mutable column is overwritten (last write wins) and
        updated_at is refreshed.

        Args:
            session: Database session
            property_data: Property column values (must include external_id)
            updated_at: Timestamp to stamp on the row (defaults to now)

        Returns:
            Property instance
        """
        external_id = property_data.get('external_id')
        if not external_id:
            raise ValueError("external_id is required for upsert")

        stamp = updated_at or datetime.now(timezone.utc)
        values = {k: v for k, v in property_data.items() if k not in ('id', 'created_at')}
        values['updated_at'] = stamp

        insert = _dialect_insert(session)
        stmt = insert(Property).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=['external_id'],
            set_={k: v for k, v in values.items() if k not in _IMMUTABLE_COLUMNS}
        )

        session.execute(stmt)
        session.flush()

        logger.debug("property_upserted", external_id=external_id)
        return self.get_by_external_id(session, external_id)

    def count_by_source(self, session: Session) -> Dict[str, int]:
        """
        Count properties per source feed.

        Args:
            session: Database session

        Returns:
            Mapping of source -> row count
        """
        rows = session.execute(
            select(Property.source, func.count(Property.id)).group_by(Property.source)
        ).all()
        return {source: count for source, count in rows}

    def delete_older_than(self, session: Session, days: int, now: Optional[datetime] = None) -> int:
        """
        Delete properties scraped more than `days` days ago.

        Args:
            session: Database session
            days: Retention window in days
            now: Reference time (defaults to current UTC time)

        Returns:
            Number of rows deleted
        """
        if days < 0:
            raise ValueError("days must be non-negative")

        cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=days)
        result = session.execute(
            delete(Property)
            .where(Property.scraped_at < cutoff)
            .execution_options(synchronize_session=False)
        )
        session.flush()

        deleted = result.rowcount or 0
        logger.info("properties_retention_cleanup", days=days, cutoff=cutoff.isoformat(), deleted=deleted)
        return deleted


class IngestionRunRepository(BaseRepository):
    """Repository for IngestionRun model (ETL tracking)."""

    def __init__(self):
        super().__init__(IngestionRun)

    def create_run(
        self,
        session: Session,
        source: str,
        started_at: Optional[datetime] = None
    ) -> IngestionRun:
        """
        Create new ingestion run.

        Args:
            session: Database session
            source: Source feed name
            started_at: Start timestamp (defaults to now)

        Returns:
            IngestionRun instance
        """
        if started_at is None:
            started_at = datetime.now(timezone.utc)

        run = IngestionRun(
            source=source,
            status='running',
            started_at=started_at
        )

        session.add(run)
        session.flush()

        logger.info("ingestion_run_created", run_id=run.id, source=source)
        return run

    def complete_run(
        self,
        session: Session,
        run_id: int,
        status: str,
        records_fetched: int = 0,
        records_saved: int = 0,
        records_failed: int = 0,
        partitions_failed: int = 0,
        error_message: Optional[str] = None,
        completed_at: Optional[datetime] = None
    ) -> IngestionRun:
        """
        Mark ingestion run as complete.

        Args:
            session: Database session
            run_id: Run ID
            status: Final status (success, partial, failure)
            records_fetched: Entities produced by normalization
            records_saved: Entities upserted
            records_failed: Entities whose upsert failed
            partitions_failed: Failed partition fetches
            error_message: Error message if failed
            completed_at: Completion timestamp (defaults to now)

        Returns:
            Updated IngestionRun instance
        """
        run = self.get_by_id(session, run_id)
        if not run:
            raise ValueError(f"IngestionRun {run_id} not found")

        run.status = status
        run.records_fetched = records_fetched
        run.records_saved = records_saved
        run.records_failed = records_failed
        run.partitions_failed = partitions_failed
        run.error_message = error_message
        run.completed_at = completed_at or datetime.now(timezone.utc)

        session.flush()

        logger.info(
            "ingestion_run_completed",
            run_id=run_id,
            status=status,
            fetched=records_fetched,
            saved=records_saved,
            failed=records_failed,
            partitions_failed=partitions_failed
        )

        return run

    def get_recent_runs(self, session: Session, limit: int = 10) -> List[IngestionRun]:
        """
        Get recent ingestion runs.

        Args:
            session: Database session
            limit: Maximum number of runs

        Returns:
            List of ingestion runs, newest first
        """
        query = select(IngestionRun).order_by(desc(IngestionRun.started_at)).limit(limit)
        return session.execute(query).scalars().all()
