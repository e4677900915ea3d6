"""
Pydantic Schemas for API Request/Response Models

These schemas define the JSON structure for API endpoints. Aggregation
results are served as returned by the statistics service.
"""
from typing import Any, Dict, Optional
from datetime import datetime
from pydantic import BaseModel, Field, model_validator

from src.immostats.models.property import PropertyType, TransactionType


class GeoSearchRequest(BaseModel):
    """Radius search around a WGS84 point."""
    latitude: float = Field(..., ge=-90, le=90, description="Latitude of the search center")
    longitude: float = Field(..., ge=-180, le=180, description="Longitude of the search center")
    radius_km: float = Field(5, ge=1, le=50, description="Search radius in km")
    property_type: Optional[PropertyType] = None
    transaction_type: Optional[TransactionType] = TransactionType.SALE
    min_price: Optional[float] = Field(None, ge=0)
    max_price: Optional[float] = Field(None, ge=0)
    limit: int = Field(20, ge=1, le=50)

    @model_validator(mode="after")
    def check_price_range(self) -> "GeoSearchRequest":
        if self.min_price is not None and self.max_price is not None and self.min_price > self.max_price:
            raise ValueError("min_price must not exceed max_price")
        return self


class TriggerAccepted(BaseModel):
    """Acknowledgment of a manually triggered ingestion run."""
    accepted: bool
    started_at: datetime


class SchedulerStatus(BaseModel):
    phase: str
    last_run: Optional[datetime] = None
    last_result: Optional[Dict[str, Any]] = None
    last_error: Optional[str] = None
    next_scheduled_run: datetime


class DatabaseStatus(BaseModel):
    total_properties: int
    by_source: Dict[str, int]


class AdminStatus(BaseModel):
    """Scheduler state plus stored record counts."""
    scheduler: SchedulerStatus
    database: DatabaseStatus


class CleanupResult(BaseModel):
    days: int
    deleted: int


class ErrorResponse(BaseModel):
    detail: str


class HealthCheck(BaseModel):
    """Health check response."""
    status: str
    version: str
    database: str
    scheduler: Optional[str] = None
    timestamp: datetime
