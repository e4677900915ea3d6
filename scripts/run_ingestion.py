"""
Run one ingestion cycle from the command line and print its summary.

Usage:
    python scripts/run_ingestion.py --source demo --years 2023 --departments 75 69
    python scripts/run_ingestion.py --source dvf --cleanup-days 90
"""
import argparse
import json
import sys
from pathlib import Path

# Add parent directory to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.immostats.db.repository import PropertyRepository
from src.immostats.db.session import get_db_session
from src.immostats.ingestion.pipeline import SOURCES, build_pipeline
from src.immostats.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run a DVF ingestion cycle")
    parser.add_argument("--source", choices=list(SOURCES), default=None, help="Source feed")
    parser.add_argument("--years", nargs="+", type=int, default=None, help="Mutation years")
    parser.add_argument("--departments", nargs="+", default=None, help="Department codes")
    parser.add_argument(
        "--cleanup-days",
        type=int,
        default=None,
        help="Delete properties scraped more than N days ago after ingesting",
    )
    return parser.parse_args()


def main():
    setup_logging()
    args = parse_args()

    pipeline = build_pipeline(source=args.source, years=args.years, departments=args.departments)
    summary = pipeline.run()

    if args.cleanup_days is not None:
        with get_db_session() as session:
            deleted = PropertyRepository().delete_older_than(session, args.cleanup_days)
        logger.info("cleanup_after_ingestion", days=args.cleanup_days, deleted=deleted)

    print(json.dumps(summary.to_dict(), indent=2))
    total = len(pipeline.periods) * len(pipeline.partitions)
    return 1 if summary.status(total) == "failure" else 0


if __name__ == "__main__":
    sys.exit(main())
