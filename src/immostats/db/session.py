"""
Database Session Management

Provides database connection pooling and session management.
"""
import time
from contextlib import contextmanager
from functools import wraps
from typing import Generator

from sqlalchemy import create_engine, event, exc, pool, text
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.engine import Engine

from config.settings import settings
from src.immostats.utils.logger import get_logger

logger = get_logger(__name__)


def build_engine(database_url: str) -> Engine:
    """
    Create a database engine for the given URL.

    Pool sizing only applies to server databases; SQLite gets a single
    shared connection so in-memory databases survive across threads.

    Args:
        database_url: SQLAlchemy database URL

    Returns:
        Configured engine
    """
    if database_url.startswith("sqlite"):
        sqlite_engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=pool.StaticPool,
            echo=settings.database_echo,
        )

        # pysqlite defers BEGIN on its own; take over so SAVEPOINTs nest correctly
        @event.listens_for(sqlite_engine, "connect")
        def _disable_driver_transactions(dbapi_conn, connection_record):
            dbapi_conn.isolation_level = None

        @event.listens_for(sqlite_engine, "begin")
        def _emit_begin(conn):
            conn.exec_driver_sql("BEGIN")

        return sqlite_engine

    return create_engine(
        database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        pool_timeout=settings.database_pool_timeout,
        pool_recycle=settings.database_pool_recycle,
        pool_pre_ping=True,  # Verify connections before using
        echo=settings.database_echo,  # Log SQL queries if enabled
    )


# Create database engine with connection pooling
engine = build_engine(settings.database_url)


@event.listens_for(engine, "connect")
def receive_connect(dbapi_conn, connection_record):
    """Log connection establishment."""
    logger.debug("database_connection_established")


@event.listens_for(pool.Pool, "invalidate")
def receive_invalidate(dbapi_conn, connection_record, exception):
    """
    Event listener for connection invalidation.

    Logs when a connection is marked as invalid and removed from pool.
    """
    logger.warning(
        "database_connection_invalidated",
        exception=str(exception) if exception else None
    )


# Create session factory
SessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
    expire_on_commit=False
)


def make_session_scope(session_factory: sessionmaker):
    """
    Build a transactional scope bound to a specific session factory.

    Args:
        session_factory: sessionmaker to draw sessions from

    Returns:
        Context manager factory yielding a session that commits on success
        and rolls back on error
    """
    @contextmanager
    def session_scope() -> Generator[Session, None, None]:
        session = session_factory()
        try:
            logger.debug("database_session_created")
            yield session
            session.commit()
            logger.debug("database_session_committed")
        except exc.SQLAlchemyError as e:
            session.rollback()
            logger.error(
                "database_session_rollback",
                error=str(e),
                error_type=type(e).__name__
            )
            raise
        except Exception as e:
            session.rollback()
            logger.error(
                "database_session_error",
                error=str(e),
                error_type=type(e).__name__
            )
            raise
        finally:
            session.close()
            logger.debug("database_session_closed")

    return session_scope


# Usage:
#     with get_db_session() as session:
#         result = session.query(Model).all()
get_db_session = make_session_scope(SessionLocal)


def health_check() -> bool:
    """
    Check database connection health.

    Returns:
        True if database is accessible, False otherwise
    """
    try:
        with get_db_session() as session:
            session.execute(text("SELECT 1"))
            logger.info("database_health_check_success")
            return True
    except exc.SQLAlchemyError as e:
        logger.error(
            "database_health_check_failed",
            error=str(e),
            error_type=type(e).__name__
        )
        return False


def close_connections():
    """
    Close all database connections and dispose of the engine.

    Should be called on application shutdown.
    """
    logger.info("closing_database_connections")
    engine.dispose()
    logger.info("database_connections_closed")


def create_all_tables(bind: Engine = None):
    """
    Create all database tables defined in models.

    WARNING: Use Alembic migrations instead in production.
    This is only for testing and initial setup.
    """
    from src.immostats.db.base import Base, import_all_models

    logger.info("creating_database_tables")
    import_all_models()
    Base.metadata.create_all(bind=bind or engine)
    logger.info("database_tables_created")


def drop_all_tables(bind: Engine = None):
    """
    Drop all database tables.

    WARNING: This will delete all data! Only use in development/testing.
    """
    from src.immostats.db.base import Base, import_all_models

    logger.warning("dropping_all_database_tables")
    import_all_models()
    Base.metadata.drop_all(bind=bind or engine)
    logger.warning("all_database_tables_dropped")


# Retry decorator for transient database errors
def with_retry(max_retries: int = 3, retry_delay: int = 1):
    """
    Decorator to retry database operations on transient failures.

    Args:
        max_retries: Maximum number of retry attempts
        retry_delay: Delay between retries in seconds

    Usage:
        @with_retry(max_retries=3)
        def my_database_operation(session):
            pass
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            last_exception = None

            for attempt in range(max_retries):
                try:
                    return func(*args, **kwargs)
                except (exc.OperationalError, exc.DisconnectionError) as e:
                    last_exception = e
                    if attempt < max_retries - 1:
                        logger.warning(
                            "database_operation_retry",
                            attempt=attempt + 1,
                            max_retries=max_retries,
                            error=str(e)
                        )
                        time.sleep(retry_delay * (attempt + 1))
                    else:
                        logger.error(
                            "database_operation_failed_after_retries",
                            max_retries=max_retries,
                            error=str(e)
                        )

            raise last_exception

        return wrapper
    return decorator
