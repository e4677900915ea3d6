"""
Create Database Tables Using SQLAlchemy

This script creates all database tables directly using SQLAlchemy's create_all()
method. This bypasses Alembic migrations and is useful for local SQLite
databases and quick demos.
"""
import argparse
import sys
from pathlib import Path

# Add parent directory to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.immostats.db.session import create_all_tables, drop_all_tables, health_check
from src.immostats.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)


def main():
    """Create all database tables."""
    parser = argparse.ArgumentParser(description="Create immostats database tables")
    parser.add_argument("--drop", action="store_true", help="Drop existing tables first")
    args = parser.parse_args()

    setup_logging()

    if not health_check():
        logger.error("database_unreachable")
        sys.exit(1)

    if args.drop:
        drop_all_tables()

    create_all_tables()
    logger.info("database_setup_complete")


if __name__ == "__main__":
    main()
