"""
SQLAlchemy ORM Models

Persisted form of the canonical property entity plus ingestion run tracking.
Properties are keyed by an opaque UUID; external_id is the unique
deduplication key used by upserts.
"""
import json
import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    String, Integer, Float, DateTime, Text, CheckConstraint, Index
)
from sqlalchemy.orm import Mapped, mapped_column

from src.immostats.db.base import Base, TimestampMixin


def generate_uuid() -> str:
    return str(uuid.uuid4())


class Property(Base, TimestampMixin):
    """
    Property transactions table.

    One record per unique external_id. Rows are only written by the
    ingestion upsert and removed by the retention cleanup.
    """
    __tablename__ = "properties"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=generate_uuid,
        comment="Internal opaque identifier"
    )
    external_id: Mapped[str] = mapped_column(
        String(100),
        unique=True,
        nullable=False,
        comment="Source-scoped stable identifier (deduplication key)"
    )

    # Provenance
    source: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        comment="Feed that produced this record"
    )
    scraped_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        comment="Ingestion timestamp"
    )
    published_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Source-reported transaction date"
    )

    # Commercial attributes
    price: Mapped[Optional[float]] = mapped_column(Float, nullable=True, comment="Price")
    price_per_sqm: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        comment="round(price / surface), stored for query performance"
    )
    surface: Mapped[Optional[float]] = mapped_column(Float, nullable=True, comment="Surface in m²")
    rooms: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    bedrooms: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Classification
    property_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="other",
        comment="apartment, house, studio, loft, land, other"
    )
    transaction_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="sale",
        comment="sale, rental"
    )

    # Location
    city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    postal_code: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    department: Mapped[Optional[str]] = mapped_column(String(3), nullable=True)
    region: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    # Presentation
    title: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    image_urls: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        default="[]",
        comment="JSON-serialized list of image URLs"
    )

    __table_args__ = (
        CheckConstraint("price IS NULL OR price > 0", name="check_price_positive"),
        CheckConstraint("surface IS NULL OR surface > 0", name="check_surface_positive"),
        CheckConstraint(
            "property_type IN ('apartment', 'house', 'studio', 'loft', 'land', 'other')",
            name="check_property_type_valid"
        ),
        CheckConstraint(
            "transaction_type IN ('sale', 'rental')",
            name="check_transaction_type_valid"
        ),
        CheckConstraint(
            "latitude IS NULL OR (latitude >= -90 AND latitude <= 90)",
            name="check_latitude_range"
        ),
        CheckConstraint(
            "longitude IS NULL OR (longitude >= -180 AND longitude <= 180)",
            name="check_longitude_range"
        ),
        Index("idx_properties_city", "city"),
        Index("idx_properties_postal_code", "postal_code"),
        Index("idx_properties_department", "department"),
        Index("idx_properties_property_type", "property_type"),
        Index("idx_properties_transaction_type", "transaction_type"),
        Index("idx_properties_scraped_at", "scraped_at"),
        Index("idx_properties_lat_lon", "latitude", "longitude"),
    )

    @property
    def image_url_list(self) -> List[str]:
        """Decoded image_urls column."""
        if not self.image_urls:
            return []
        try:
            return json.loads(self.image_urls)
        except (TypeError, ValueError):
            return []

    def __repr__(self) -> str:
        return f"<Property(external_id={self.external_id}, city={self.city}, price={self.price})>"


class IngestionRun(Base, TimestampMixin):
    """Ingestion run execution metadata and tracking."""
    __tablename__ = "ingestion_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    source: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        comment="Source feed: dvf, demo"
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="Run status: running, success, partial, failure"
    )

    # Record counts
    records_fetched: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
        comment="Entities produced by normalization"
    )
    records_saved: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
        comment="Entities upserted"
    )
    records_failed: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
        comment="Entities whose upsert failed"
    )
    partitions_failed: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
        comment="Partition/period fetches that failed"
    )

    error_message: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Error details if failed"
    )

    # Timing
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        comment="Run start time"
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Run completion time"
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('running', 'success', 'partial', 'failure')",
            name="check_run_status_valid"
        ),
        Index("idx_ingestion_runs_status", "status"),
        Index("idx_ingestion_runs_started_at", "started_at"),
    )

    def __repr__(self) -> str:
        return f"<IngestionRun(source={self.source}, status={self.status}, saved={self.records_saved})>"
