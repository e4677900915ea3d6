"""
Properties Router

Endpoints for stored property queries.
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from src.immostats.api.dependencies import authorize, get_stats_service, listing_filters
from src.immostats.models.stats import PropertyPage, PropertyRecord
from src.immostats.services.market_stats import MarketStatsService, PropertyFilters

router = APIRouter(prefix="/api/v1/properties", tags=["properties"], dependencies=[Depends(authorize)])


@router.get("", response_model=PropertyPage)
def list_properties(
    min_price: Optional[float] = Query(None, ge=0, description="Minimum price"),
    max_price: Optional[float] = Query(None, ge=0, description="Maximum price"),
    min_surface: Optional[float] = Query(None, ge=0, description="Minimum surface in m²"),
    max_surface: Optional[float] = Query(None, ge=0, description="Maximum surface in m²"),
    rooms: Optional[int] = Query(None, ge=0, description="Number of rooms"),
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(20, ge=1, le=100, description="Results per page"),
    sort_by: str = Query("scraped_at", pattern="^(scraped_at|published_at|price|price_per_sqm|surface|rooms)$"),
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    filters: PropertyFilters = Depends(listing_filters),
    service: MarketStatsService = Depends(get_stats_service),
):
    """
    List stored properties with optional filtering and pagination.

    Returns:
        One page of properties with pagination metadata
    """
    return service.list_properties(
        filters,
        min_price=min_price,
        max_price=max_price,
        min_surface=min_surface,
        max_surface=max_surface,
        rooms=rooms,
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
    )


@router.get("/{property_id}", response_model=PropertyRecord)
def get_property_detail(
    property_id: str,
    service: MarketStatsService = Depends(get_stats_service),
):
    """
    Get a property by internal id or external id.

    Raises:
        HTTPException: 404 if property not found
    """
    record = service.get_property(property_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"Property not found: {property_id}")
    return record
