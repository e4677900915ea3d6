"""
Market Statistics Models

Typed results returned by the aggregation engine.
"""
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class NumericSummary(BaseModel):
    """min / max / mean / median of one numeric column."""
    min: float
    max: float
    avg: float
    median: float


class MarketStats(BaseModel):
    """Aggregate market statistics over a filtered set of properties."""
    count: int = Field(..., ge=1)
    price: Optional[NumericSummary] = None
    price_per_sqm: Optional[NumericSummary] = None
    surface: Optional[NumericSummary] = None
    by_property_type: Dict[str, int] = Field(default_factory=dict)
    by_transaction_type: Dict[str, int] = Field(default_factory=dict)


class NoDataAvailable(BaseModel):
    """Empty result: no stored property matches the filters."""
    count: int = 0
    message: str = "No data available for these criteria"


class CityPrice(BaseModel):
    """Average prices for one city."""
    city: str
    avg_price: int
    avg_price_per_sqm: int
    avg_surface: int
    listings_count: int


class PriceBucket(BaseModel):
    """One histogram interval: [min, max), the last one closed on max."""
    min: float
    max: float
    count: int
    percentage: float


class PriceDistribution(BaseModel):
    total: int = 0
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    buckets: List[PriceBucket] = Field(default_factory=list)


class TrendPoint(BaseModel):
    """Average prices for one time bucket."""
    period: str
    avg_price: int
    avg_price_per_sqm: int
    listings_count: int


class PropertyRecord(BaseModel):
    """Read model of a stored property."""
    id: str
    external_id: str
    source: str
    title: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = None
    price_per_sqm: Optional[int] = None
    surface: Optional[float] = None
    rooms: Optional[int] = None
    bedrooms: Optional[int] = None
    property_type: str
    transaction_type: str
    city: Optional[str] = None
    postal_code: Optional[str] = None
    department: Optional[str] = None
    region: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    url: Optional[str] = None
    image_urls: List[str] = Field(default_factory=list)
    published_at: Optional[datetime] = None
    scraped_at: datetime


class GeoResult(PropertyRecord):
    """Property found by a radius search, with its distance to the center."""
    distance_km: float


class PropertyPage(BaseModel):
    items: List[PropertyRecord]
    page: int
    limit: int
    total: int
    total_pages: int


class CitySuggestion(BaseModel):
    city: str
    postal_code: Optional[str] = None
    department: Optional[str] = None


class TypeOverview(BaseModel):
    property_type: str
    count: int
    avg_price: int
    avg_price_per_sqm: int


class GroupOverview(BaseModel):
    key: Optional[str]
    count: int
    avg_price_per_sqm: int


class DataOverview(BaseModel):
    """Counts and averages over the whole store."""
    total: int
    by_source: Dict[str, int]
    by_type: List[TypeOverview]
    top_cities: List[GroupOverview]
    by_department: List[GroupOverview]
    recently_scraped: List[PropertyRecord]
