"""
FastAPI Dependencies

Provides dependency injection for database sessions, the scheduler, the
statistics service and API key authorization.
"""
from typing import Generator, List, Optional

from fastapi import Depends, Header, Query, Request
from sqlalchemy.orm import Session

from config.settings import settings
from src.immostats.db.session import SessionLocal
from src.immostats.exceptions import AuthError
from src.immostats.ingestion.scheduler import Scheduler
from src.immostats.models.property import PropertyType, TransactionType
from src.immostats.services.market_stats import MarketStatsService, PropertyFilters


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.

    Yields:
        SQLAlchemy database session
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_api_keys() -> List[str]:
    """Configured API keys."""
    return settings.api_keys


def authorize(
    x_api_key: Optional[str] = Header(None, alias="X-API-Key"),
    api_keys: List[str] = Depends(get_api_keys),
) -> str:
    """
    Check the X-API-Key header against the configured keys.

    Returns:
        The accepted key, used as principal

    Raises:
        AuthError: If the header is missing or unknown
    """
    if not x_api_key:
        raise AuthError("Missing API key")
    if x_api_key not in api_keys:
        raise AuthError("Invalid API key")
    return x_api_key


def get_scheduler(request: Request) -> Scheduler:
    return request.app.state.scheduler


def get_stats_service(db: Session = Depends(get_db)) -> MarketStatsService:
    return MarketStatsService(db)


def stats_filters(
    city: Optional[str] = Query(None, description="City name"),
    postal_code: Optional[str] = Query(None, description="Postal code"),
    department: Optional[str] = Query(None, description="Department code"),
    property_type: Optional[PropertyType] = Query(None, description="Property type"),
    transaction_type: TransactionType = Query(TransactionType.SALE, description="Transaction type"),
) -> PropertyFilters:
    """Filters for statistics endpoints (sales by default)."""
    return PropertyFilters(
        city=city,
        postal_code=postal_code,
        department=department,
        property_type=property_type.value if property_type else None,
        transaction_type=transaction_type.value,
    )


def listing_filters(
    city: Optional[str] = Query(None, description="City name (partial match)"),
    postal_code: Optional[str] = Query(None, description="Postal code"),
    department: Optional[str] = Query(None, description="Department code"),
    property_type: Optional[PropertyType] = Query(None, description="Property type"),
    transaction_type: Optional[TransactionType] = Query(None, description="Transaction type"),
) -> PropertyFilters:
    """Filters for property listings (no default transaction type)."""
    return PropertyFilters(
        city=city,
        postal_code=postal_code,
        department=department,
        property_type=property_type.value if property_type else None,
        transaction_type=transaction_type.value if transaction_type else None,
    )
