"""
Search Router

Endpoints for geographic radius search and city autocomplete.
"""
from typing import List

from fastapi import APIRouter, Depends, Query

from src.immostats.api.dependencies import authorize, get_stats_service
from src.immostats.api.schemas import GeoSearchRequest
from src.immostats.models.stats import CitySuggestion, GeoResult
from src.immostats.services.market_stats import MarketStatsService, PropertyFilters

router = APIRouter(prefix="/api/v1/search", tags=["search"], dependencies=[Depends(authorize)])


@router.post("/geo", response_model=List[GeoResult])
def geo_search(
    request: GeoSearchRequest,
    service: MarketStatsService = Depends(get_stats_service),
):
    """
    Find properties within a radius of a GPS point, nearest first.

    Args:
        request: Search center, radius and optional filters
        service: Statistics service

    Returns:
        Matching properties with distance_km
    """
    filters = PropertyFilters(
        property_type=request.property_type.value if request.property_type else None,
        transaction_type=request.transaction_type.value if request.transaction_type else None,
    )
    return service.geo_search(
        latitude=request.latitude,
        longitude=request.longitude,
        radius_km=request.radius_km,
        filters=filters,
        limit=request.limit,
        min_price=request.min_price,
        max_price=request.max_price,
    )


@router.get("/autocomplete/cities", response_model=List[CitySuggestion])
def autocomplete_cities(
    q: str = Query(..., min_length=2, description="Search term"),
    limit: int = Query(10, ge=1, le=20),
    service: MarketStatsService = Depends(get_stats_service),
):
    return service.autocomplete_cities(q, limit=limit)
