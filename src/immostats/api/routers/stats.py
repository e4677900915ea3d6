"""
Statistics Router

Endpoints for market aggregations over stored transactions.
"""
from typing import List, Union

from fastapi import APIRouter, Depends, Query

from src.immostats.api.dependencies import authorize, get_stats_service, stats_filters
from src.immostats.models.stats import (
    CityPrice,
    MarketStats,
    NoDataAvailable,
    PriceDistribution,
    TrendPoint,
)
from src.immostats.services.market_stats import MarketStatsService, PropertyFilters

router = APIRouter(prefix="/api/v1/stats", tags=["statistics"], dependencies=[Depends(authorize)])


@router.get("/market", response_model=Union[MarketStats, NoDataAvailable])
def get_market_stats(
    filters: PropertyFilters = Depends(stats_filters),
    service: MarketStatsService = Depends(get_stats_service),
):
    """
    Get min / max / average / median of price, price per m² and surface.

    Returns:
        Market statistics, or a NoDataAvailable body (count 0) when nothing matches
    """
    return service.market_stats(filters)


@router.get("/prices-by-city", response_model=List[CityPrice])
def get_prices_by_city(
    order: str = Query("desc", pattern="^(asc|desc)$", description="Sort order on price per m²"),
    limit: int = Query(20, ge=1, le=100, description="Number of cities to return"),
    filters: PropertyFilters = Depends(stats_filters),
    service: MarketStatsService = Depends(get_stats_service),
):
    """
    Rank cities by average price per m².
    """
    return service.prices_by_city(filters, order=order, limit=limit)


@router.get("/price-distribution", response_model=PriceDistribution)
def get_price_distribution(
    buckets: int = Query(10, ge=5, le=20, description="Number of histogram buckets"),
    filters: PropertyFilters = Depends(stats_filters),
    service: MarketStatsService = Depends(get_stats_service),
):
    """
    Histogram of prices with equal-width buckets.
    """
    return service.price_distribution(filters, buckets=buckets)


@router.get("/trends", response_model=List[TrendPoint])
def get_trends(
    period: str = Query("month", pattern="^(week|month|quarter)$", description="Time bucket size"),
    filters: PropertyFilters = Depends(stats_filters),
    service: MarketStatsService = Depends(get_stats_service),
):
    """
    Average prices per week, month or quarter of ingestion, oldest first.
    """
    return service.trends(filters, period=period)
