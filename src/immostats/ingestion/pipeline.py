"""
Ingestion pipeline pulling transaction records from a source feed into the
properties table.
"""
from __future__ import annotations

import argparse
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence

from sqlalchemy.exc import SQLAlchemyError

from config.settings import settings
from src.immostats.db.repository import IngestionRunRepository, PropertyRepository
from src.immostats.db.session import get_db_session, with_retry
from src.immostats.exceptions import FetchError, PersistenceConflict
from src.immostats.models.property import Property
from src.immostats.scrapers.demo_source import DemoSource
from src.immostats.scrapers.dvf_client import DVFClient
from src.immostats.transformers.dvf_normalizer import DVFNormalizer
from src.immostats.utils.logger import bind_run_context, clear_run_context, get_logger, setup_logging

logger = get_logger(__name__)

SOURCES = ("dvf", "demo")


class SourceClient(Protocol):
    def fetch_partition(self, partition_key: str, period: int) -> List[Dict[str, Any]]:
        ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class IngestionSummary:
    """Outcome of one ingestion run."""

    fetched: int = 0
    saved: int = 0
    failed: int = 0
    partitions_failed: int = 0
    rejected: Dict[str, int] = field(default_factory=dict)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def status(self, partitions_total: int) -> str:
        if partitions_total and self.partitions_failed == partitions_total:
            return "failure"
        if self.fetched and self.saved == 0:
            return "failure"
        if self.partitions_failed or self.failed:
            return "partial"
        return "success"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fetched": self.fetched,
            "saved": self.saved,
            "failed": self.failed,
            "partitions_failed": self.partitions_failed,
            "rejected": dict(self.rejected),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


class IngestionPipeline:
    """
    Fetches every period x partition pair, normalizes the raw records and
    upserts the resulting entities.

    Partition failures are isolated: a FetchError skips that pair and the
    loop moves on. Each entity is upserted inside its own savepoint so one
    bad row never rolls back the rest of the batch.
    """

    def __init__(
        self,
        source_client: SourceClient | None = None,
        normalizer: DVFNormalizer | None = None,
        repository: PropertyRepository | None = None,
        session_scope: Callable | None = None,
        periods: Sequence[int] | None = None,
        partitions: Sequence[str] | None = None,
        inter_call_delay: float | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = _utcnow,
        run_repository: IngestionRunRepository | None = None,
        source_name: str = "dvf",
        batch_size: int | None = None,
    ):
        self.source_name = source_name
        self.source_client = source_client or DVFClient()
        self.normalizer = normalizer or DVFNormalizer(source=source_name)
        self.repository = repository or PropertyRepository()
        self.session_scope = session_scope or get_db_session
        self.periods = list(periods if periods is not None else settings.dvf_years)
        self.partitions = list(partitions if partitions is not None else settings.dvf_departments)
        self.inter_call_delay = (
            inter_call_delay if inter_call_delay is not None else settings.ingestion_inter_call_delay
        )
        self.sleep = sleep
        self.clock = clock
        self.run_repository = run_repository if run_repository is not None else IngestionRunRepository()
        self.batch_size = batch_size or settings.etl_batch_size

    def run(self) -> IngestionSummary:
        """
        Execute one full ingestion cycle.

        Returns:
            IngestionSummary with fetched (normalized entities), saved and failed counts
        """
        summary = IngestionSummary(started_at=self.clock())
        self.normalizer.reset_counters()
        pairs = [(period, partition) for period in self.periods for partition in self.partitions]

        logger.info(
            "ingestion_run_started",
            source=self.source_name,
            periods=self.periods,
            partitions=self.partitions
        )
        run_id = self._record_start(summary.started_at)
        bind_run_context(self.source_name, run_id)

        try:
            entities = self._collect(pairs, summary)
            summary.fetched = len(entities)
            summary.rejected = dict(self.normalizer.rejected)
            summary.saved, summary.failed = self._persist(entities)
        except Exception as e:
            summary.completed_at = self.clock()
            logger.error("ingestion_run_failed", error=str(e), error_type=type(e).__name__)
            self._record_completion(run_id, summary, "failure", error_message=str(e))
            raise
        else:
            summary.completed_at = self.clock()
            status = summary.status(len(pairs))
            self._record_completion(run_id, summary, status)
            logger.info("ingestion_run_completed", status=status, **summary.to_dict())
        finally:
            clear_run_context()

        return summary

    def _collect(self, pairs: List[tuple], summary: IngestionSummary) -> List[Property]:
        entities: List[Property] = []

        for index, (period, partition) in enumerate(pairs):
            if index > 0 and self.inter_call_delay > 0:
                self.sleep(self.inter_call_delay)

            try:
                raw_records = self.source_client.fetch_partition(partition, period)
            except FetchError as e:
                summary.partitions_failed += 1
                logger.error(
                    "partition_skipped",
                    partition=e.partition_key,
                    period=e.period,
                    error=str(e.cause or e)
                )
                continue

            before = len(entities)
            for raw in raw_records:
                entity = self.normalizer.normalize(raw, scraped_at=summary.started_at)
                if entity is not None:
                    entities.append(entity)

            logger.info(
                "partition_normalized",
                partition=partition,
                period=period,
                raw=len(raw_records),
                valid=len(entities) - before
            )

        return entities

    def _persist(self, entities: List[Property]) -> tuple[int, int]:
        saved = 0
        failed = 0
        if not entities:
            return saved, failed

        stamp = self.clock()
        # One commit per chunk; one savepoint per entity
        for start in range(0, len(entities), self.batch_size):
            with self.session_scope() as session:
                for entity in entities[start:start + self.batch_size]:
                    try:
                        with session.begin_nested():
                            self.repository.upsert(session, entity.to_db_dict(), updated_at=stamp)
                        saved += 1
                    except SQLAlchemyError as e:
                        failed += 1
                        conflict = PersistenceConflict(entity.external_id, e)
                        logger.warning(
                            "property_upsert_failed",
                            external_id=entity.external_id,
                            error=str(conflict)
                        )

        logger.info("properties_persisted", saved=saved, failed=failed)
        return saved, failed

    def _record_start(self, started_at: datetime) -> Optional[int]:
        try:
            return self._create_run(started_at)
        except SQLAlchemyError as e:
            logger.warning("ingestion_run_record_failed", stage="start", error=str(e))
            return None

    def _record_completion(
        self,
        run_id: Optional[int],
        summary: IngestionSummary,
        status: str,
        error_message: Optional[str] = None
    ) -> None:
        if run_id is None:
            return
        try:
            self._complete_run(run_id, summary, status, error_message)
        except SQLAlchemyError as e:
            logger.warning("ingestion_run_record_failed", stage="complete", run_id=run_id, error=str(e))

    @with_retry(max_retries=settings.etl_max_retries, retry_delay=settings.etl_retry_delay_seconds)
    def _create_run(self, started_at: datetime) -> int:
        with self.session_scope() as session:
            run = self.run_repository.create_run(session, source=self.source_name, started_at=started_at)
            return run.id

    @with_retry(max_retries=settings.etl_max_retries, retry_delay=settings.etl_retry_delay_seconds)
    def _complete_run(
        self,
        run_id: int,
        summary: IngestionSummary,
        status: str,
        error_message: Optional[str]
    ) -> None:
        with self.session_scope() as session:
            self.run_repository.complete_run(
                session,
                run_id,
                status=status,
                records_fetched=summary.fetched,
                records_saved=summary.saved,
                records_failed=summary.failed,
                partitions_failed=summary.partitions_failed,
                error_message=error_message,
                completed_at=summary.completed_at,
            )


def build_pipeline(
    source: str | None = None,
    years: Sequence[int] | None = None,
    departments: Sequence[str] | None = None,
    **kwargs: Any,
) -> IngestionPipeline:
    """
    Build a pipeline wired to the requested source feed.

    Args:
        source: "dvf" for the live API, "demo" for generated records
        years: Periods to fetch (defaults to settings)
        departments: Partitions to fetch (defaults to settings)
        **kwargs: Extra IngestionPipeline arguments

    Returns:
        Configured IngestionPipeline
    """
    source = source or settings.ingestion_source
    if source not in SOURCES:
        raise ValueError(f"Unknown source '{source}'. Valid options: {', '.join(SOURCES)}")

    client = DemoSource() if source == "demo" else DVFClient()
    if source == "demo":
        kwargs.setdefault("inter_call_delay", 0)

    return IngestionPipeline(
        source_client=client,
        normalizer=DVFNormalizer(source=source),
        periods=years,
        partitions=departments,
        source_name=source,
        **kwargs,
    )


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="DVF property transaction ingestion")
    parser.add_argument(
        "--source",
        choices=list(SOURCES),
        default=settings.ingestion_source,
        help="Source feed to ingest",
    )
    parser.add_argument(
        "--years",
        nargs="+",
        type=int,
        default=None,
        help="Mutation years to fetch (default from settings)",
    )
    parser.add_argument(
        "--departments",
        nargs="+",
        default=None,
        help="Department codes to fetch (default from settings)",
    )
    return parser.parse_args(argv)


if __name__ == "__main__":
    setup_logging()
    args = parse_args()
    pipeline = build_pipeline(source=args.source, years=args.years, departments=args.departments)
    pipeline.run()
