"""
Database Package

Database models, connection management, and data persistence layer.
"""
from src.immostats.db.base import Base
from src.immostats.db.session import (
    engine,
    SessionLocal,
    build_engine,
    make_session_scope,
    get_db_session,
    health_check,
    close_connections,
    create_all_tables,
    drop_all_tables,
    with_retry,
)
from src.immostats.db.models import Property, IngestionRun
from src.immostats.db.repository import (
    BaseRepository,
    PropertyRepository,
    IngestionRunRepository,
)

__all__ = [
    # Base
    "Base",
    # Session management
    "engine",
    "SessionLocal",
    "build_engine",
    "make_session_scope",
    "get_db_session",
    "health_check",
    "close_connections",
    "create_all_tables",
    "drop_all_tables",
    "with_retry",
    # Models
    "Property",
    "IngestionRun",
    # Repositories
    "BaseRepository",
    "PropertyRepository",
    "IngestionRunRepository",
]
