"""
SQLAlchemy Base and Mixins

Declarative base shared by the properties and ingestion_runs tables.
"""
from datetime import datetime

from sqlalchemy import DateTime, MetaData
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func

# Unnamed unique and primary key constraints get stable names so that
# migrations generated against PostgreSQL and SQLite agree
NAMING_CONVENTION = {
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    """Base class for immostats models."""

    metadata = MetaData(naming_convention=NAMING_CONVENTION)


class TimestampMixin:
    """
    created_at / updated_at columns.

    updated_at falls back to the database clock; the ingestion upsert
    overrides it with the run's own timestamp so every row touched by one
    run carries the same value.
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        comment="Row insertion time"
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
        comment="Last ingestion run that wrote the row"
    )


def import_all_models():
    """Register the immostats tables on Base.metadata (used by Alembic and create_all)."""
    from src.immostats.db import models  # noqa: F401
