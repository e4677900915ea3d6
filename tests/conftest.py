"""
Shared fixtures: in-memory SQLite database and property row factory.
"""
import os

# Configure settings before any application module is imported
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("API_KEYS", '["test-key"]')
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("INGESTION_INTER_CALL_DELAY", "0")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from datetime import datetime, timezone

import pytest
from sqlalchemy.orm import sessionmaker

from src.immostats.db.base import Base, import_all_models
from src.immostats.db.models import Property
from src.immostats.db.session import build_engine, make_session_scope
from src.immostats.utils.numbers import round_half_up


@pytest.fixture(scope="function")
def engine():
    """Create an in-memory SQLite database for testing."""
    engine = build_engine("sqlite://")
    import_all_models()
    Base.metadata.create_all(engine)

    yield engine

    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def test_db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def session_scope(session_factory):
    return make_session_scope(session_factory)


@pytest.fixture
def add_property(test_db):
    """Insert a stored property with sensible defaults; keyword arguments override columns."""
    counter = {"n": 0}

    def _add(**overrides):
        counter["n"] += 1
        values = {
            "external_id": f"dvf_test_{counter['n']}",
            "source": "dvf",
            "scraped_at": datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc),
            "price": 300000.0,
            "surface": 60.0,
            "rooms": 3,
            "property_type": "apartment",
            "transaction_type": "sale",
            "city": "Paris",
            "postal_code": "75011",
            "department": "75",
            "region": "Île-de-France",
            "latitude": None,
            "longitude": None,
            "title": "Appartement 3 pièces - Paris",
            "image_urls": "[]",
        }
        values.update(overrides)
        if values.get("price") and values.get("surface") and "price_per_sqm" not in overrides:
            values["price_per_sqm"] = round_half_up(values["price"] / values["surface"])

        row = Property(**values)
        test_db.add(row)
        test_db.commit()
        return row

    return _add
