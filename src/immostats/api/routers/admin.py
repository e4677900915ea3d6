"""
Admin Router

Endpoints for ingestion control and data maintenance.
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from config.settings import settings
from src.immostats.api.dependencies import authorize, get_db, get_scheduler, get_stats_service
from src.immostats.api.schemas import AdminStatus, CleanupResult, ErrorResponse, TriggerAccepted
from src.immostats.db.repository import PropertyRepository
from src.immostats.ingestion.scheduler import Scheduler
from src.immostats.models.stats import DataOverview
from src.immostats.services.market_stats import MarketStatsService
from src.immostats.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api/v1/admin", tags=["admin"], dependencies=[Depends(authorize)])

property_repository = PropertyRepository()


@router.get("/status", response_model=AdminStatus)
def get_status(
    scheduler: Scheduler = Depends(get_scheduler),
    db: Session = Depends(get_db),
):
    """
    Scheduler state and stored record counts.
    """
    return AdminStatus(
        scheduler=scheduler.get_status(),
        database={
            "total_properties": property_repository.count(db),
            "by_source": property_repository.count_by_source(db),
        },
    )


@router.post(
    "/scrape",
    response_model=TriggerAccepted,
    status_code=202,
    responses={409: {"model": ErrorResponse, "description": "An ingestion run is already in progress"}},
)
async def trigger_scrape(scheduler: Scheduler = Depends(get_scheduler)):
    """
    Start an ingestion run in the background.

    Returns immediately; follow progress on /api/v1/admin/status.
    """
    return scheduler.trigger_run()


@router.get("/stats", response_model=DataOverview)
def get_data_overview(service: MarketStatsService = Depends(get_stats_service)):
    """
    Counts by source, type, city and department, plus the latest records.
    """
    return service.data_overview()


@router.delete("/cleanup", response_model=CleanupResult)
def cleanup(
    days: int = Query(settings.etl_retention_days, ge=0, description="Delete records scraped more than N days ago"),
    db: Session = Depends(get_db),
):
    """
    Delete properties older than the retention window.
    """
    deleted = property_repository.delete_older_than(db, days)
    db.commit()
    logger.info("admin_cleanup_completed", days=days, deleted=deleted)
    return CleanupResult(days=days, deleted=deleted)
