"""
Ingestion Package

Provides the ingestion pipeline and the scheduler that triggers it.
"""

from src.immostats.ingestion.pipeline import IngestionPipeline, IngestionSummary, build_pipeline
from src.immostats.ingestion.scheduler import Scheduler

__all__ = ["IngestionPipeline", "IngestionSummary", "build_pipeline", "Scheduler"]
