"""
Property Data Models

Pydantic model for the canonical property entity produced by normalization.
"""
import json
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from src.immostats.utils.numbers import round_half_up


class PropertyType(str, Enum):
    """Canonical property classification."""
    APARTMENT = "apartment"
    HOUSE = "house"
    STUDIO = "studio"
    LOFT = "loft"
    LAND = "land"
    OTHER = "other"


class TransactionType(str, Enum):
    """Canonical transaction classification."""
    SALE = "sale"
    RENTAL = "rental"


class Property(BaseModel):
    """
    Canonical property entity.

    One instance per external record. external_id is the deduplication key
    used by the repository upsert; price_per_sqm is always derived from
    price and surface, never supplied by a source.

    Attributes:
        external_id: Source-scoped stable identifier
        source: Feed that produced the record ("dvf", "demo")
        scraped_at: Ingestion timestamp
        published_at: Source-reported transaction/listing date
        price: Transaction price
        price_per_sqm: round(price / surface)
        surface: Living surface in m²
        rooms: Number of main rooms
        bedrooms: Number of bedrooms
        property_type: Canonical property type
        transaction_type: Sale or rental
        city: Commune name
        postal_code: Five-digit postal code
        department: Department code
        region: Administrative region name
        latitude: WGS84 latitude
        longitude: WGS84 longitude
        title: Display title
        description: Display description
        url: Link to the source
        image_urls: Ordered image URLs
    """

    model_config = ConfigDict(
        str_strip_whitespace=True,
        use_enum_values=True,
    )

    external_id: str = Field(..., min_length=1, max_length=100, description="External identifier")
    source: str = Field(..., description="Data source")
    scraped_at: datetime = Field(..., description="Ingestion timestamp")
    published_at: Optional[datetime] = Field(None, description="Transaction date")

    price: Optional[float] = Field(None, description="Price", gt=0)
    price_per_sqm: Optional[int] = Field(None, description="Price per m²", gt=0)
    surface: Optional[float] = Field(None, description="Surface in m²", gt=0)
    rooms: Optional[int] = Field(None, description="Number of rooms", ge=0)
    bedrooms: Optional[int] = Field(None, description="Number of bedrooms", ge=0)

    property_type: PropertyType = Field(PropertyType.OTHER, description="Property type")
    transaction_type: TransactionType = Field(TransactionType.SALE, description="Transaction type")

    city: Optional[str] = Field(None, description="City")
    postal_code: Optional[str] = Field(None, description="Postal code")
    department: Optional[str] = Field(None, description="Department code")
    region: str = Field("unknown", description="Region")
    latitude: Optional[float] = Field(None, description="Latitude", ge=-90, le=90)
    longitude: Optional[float] = Field(None, description="Longitude", ge=-180, le=180)

    title: Optional[str] = Field(None, description="Title")
    description: Optional[str] = Field(None, description="Description")
    url: Optional[str] = Field(None, description="Source URL")
    image_urls: List[str] = Field(default_factory=list, description="Image URLs")

    @field_validator("city")
    @classmethod
    def normalize_city(cls, v: Optional[str]) -> Optional[str]:
        """Collapse repeated whitespace in city names."""
        if v:
            return " ".join(v.split())
        return v or None

    @model_validator(mode="after")
    def derive_price_per_sqm(self) -> "Property":
        """Recompute price_per_sqm from price and surface."""
        if self.price is not None and self.surface is not None:
            self.price_per_sqm = round_half_up(self.price / self.surface)
        else:
            self.price_per_sqm = None
        return self

    def has_coordinates(self) -> bool:
        """Check if property has valid coordinates."""
        return self.latitude is not None and self.longitude is not None

    def to_db_dict(self) -> dict:
        """Convert to column values for the properties table."""
        data = self.model_dump()
        data["image_urls"] = json.dumps(self.image_urls)
        return data
