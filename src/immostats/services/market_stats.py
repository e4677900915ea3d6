"""
Market statistics computed on demand over the properties table.
"""
from __future__ import annotations

import math
from bisect import bisect_right
from collections import Counter
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Union

from pydantic import BaseModel
from sqlalchemy import Select, asc, desc, func, select
from sqlalchemy.orm import Session

from src.immostats.db.models import Property
from src.immostats.db.repository import PropertyRepository
from src.immostats.models.stats import (
    CityPrice,
    CitySuggestion,
    DataOverview,
    GeoResult,
    GroupOverview,
    MarketStats,
    NoDataAvailable,
    NumericSummary,
    PriceBucket,
    PriceDistribution,
    PropertyPage,
    PropertyRecord,
    TrendPoint,
    TypeOverview,
)
from src.immostats.utils.geo_utils import bounding_box, haversine_distance
from src.immostats.utils.logger import get_logger
from src.immostats.utils.numbers import round_half_up

logger = get_logger(__name__)

TREND_PERIODS = ("week", "month", "quarter")
SORTABLE_COLUMNS = {
    "scraped_at": Property.scraped_at,
    "published_at": Property.published_at,
    "price": Property.price,
    "price_per_sqm": Property.price_per_sqm,
    "surface": Property.surface,
    "rooms": Property.rooms,
}

DEFAULT_CITY_SUGGESTIONS = [
    CitySuggestion(city="Paris", postal_code="75000", department="75"),
    CitySuggestion(city="Lyon", postal_code="69000", department="69"),
    CitySuggestion(city="Marseille", postal_code="13000", department="13"),
    CitySuggestion(city="Bordeaux", postal_code="33000", department="33"),
    CitySuggestion(city="Toulouse", postal_code="31000", department="31"),
]


class PropertyFilters(BaseModel):
    """Equality filters shared by every aggregation."""
    city: Optional[str] = None
    postal_code: Optional[str] = None
    department: Optional[str] = None
    property_type: Optional[str] = None
    transaction_type: Optional[str] = None

    def apply(self, query: Select, city_contains: bool = False) -> Select:
        if self.city:
            if city_contains:
                query = query.where(Property.city.ilike(f"%{self.city}%"))
            else:
                query = query.where(Property.city == self.city)
        if self.postal_code:
            query = query.where(Property.postal_code == self.postal_code)
        if self.department:
            query = query.where(Property.department == self.department)
        if self.property_type:
            query = query.where(Property.property_type == self.property_type)
        if self.transaction_type:
            query = query.where(Property.transaction_type == self.transaction_type)
        return query


def median(values: Sequence[float]) -> float:
    """
    Median of a non-empty sequence.

    Even-length input yields the mean of the two central values.
    """
    if not values:
        raise ValueError("median of empty sequence")
    ordered = sorted(values)
    mid = len(ordered) // 2
    if len(ordered) % 2:
        return ordered[mid]
    return (ordered[mid - 1] + ordered[mid]) / 2


def summarize(values: Iterable[Optional[float]]) -> Optional[NumericSummary]:
    present = [v for v in values if v is not None]
    if not present:
        return None
    return NumericSummary(
        min=min(present),
        max=max(present),
        avg=round(sum(present) / len(present), 2),
        median=round(median(present), 2),
    )


def build_histogram(values: Sequence[float], buckets: int) -> List[PriceBucket]:
    """
    Equal-width histogram between min and max.

    Intervals are [lo, hi) except the last one, which also holds max. When
    all values are equal every value lands in the last bucket.
    """
    if buckets < 1:
        raise ValueError("buckets must be positive")
    if not values:
        return []

    lo, hi = min(values), max(values)
    width = (hi - lo) / buckets
    edges = [lo + i * width for i in range(buckets)]

    counts = [0] * buckets
    for value in values:
        index = min(bisect_right(edges, value) - 1, buckets - 1)
        counts[index] += 1

    total = len(values)
    return [
        PriceBucket(
            min=round(edges[i], 2),
            max=round(edges[i + 1], 2) if i < buckets - 1 else hi,
            count=counts[i],
            percentage=round(counts[i] / total * 100, 1),
        )
        for i in range(buckets)
    ]


def period_key(moment: datetime, period: str) -> str:
    """
    Time bucket label for a timestamp.

    week -> ISO week start (Monday) as YYYY-MM-DD, month -> YYYY-MM,
    quarter -> YYYY-Q{n}.
    """
    if period == "week":
        week_start = moment.date() - timedelta(days=moment.weekday())
        return week_start.isoformat()
    if period == "month":
        return f"{moment.year:04d}-{moment.month:02d}"
    if period == "quarter":
        return f"{moment.year:04d}-Q{(moment.month - 1) // 3 + 1}"
    raise ValueError(f"Unknown period '{period}'. Valid options: {', '.join(TREND_PERIODS)}")


def _round(value: Optional[float]) -> int:
    return round_half_up(value) if value is not None else 0


def to_record(row: Property) -> PropertyRecord:
    return PropertyRecord(
        id=row.id,
        external_id=row.external_id,
        source=row.source,
        title=row.title,
        description=row.description,
        price=row.price,
        price_per_sqm=row.price_per_sqm,
        surface=row.surface,
        rooms=row.rooms,
        bedrooms=row.bedrooms,
        property_type=row.property_type,
        transaction_type=row.transaction_type,
        city=row.city,
        postal_code=row.postal_code,
        department=row.department,
        region=row.region,
        latitude=row.latitude,
        longitude=row.longitude,
        url=row.url,
        image_urls=row.image_url_list,
        published_at=row.published_at,
        scraped_at=row.scraped_at,
    )


class MarketStatsService:
    """
    Read-only aggregations over stored properties.

    Every operation takes a PropertyFilters and reads the store only; no
    state is shared with the ingestion side.
    """

    def __init__(self, session: Session):
        self.session = session
        self.repository = PropertyRepository()

    def market_stats(self, filters: PropertyFilters) -> Union[MarketStats, NoDataAvailable]:
        query = filters.apply(
            select(
                Property.price,
                Property.price_per_sqm,
                Property.surface,
                Property.property_type,
                Property.transaction_type,
            )
        )
        rows = self.session.execute(query).all()

        if not rows:
            logger.info("market_stats_no_data", **filters.model_dump(exclude_none=True))
            return NoDataAvailable()

        return MarketStats(
            count=len(rows),
            price=summarize(row.price for row in rows),
            price_per_sqm=summarize(row.price_per_sqm for row in rows),
            surface=summarize(row.surface for row in rows),
            by_property_type=dict(Counter(row.property_type for row in rows)),
            by_transaction_type=dict(Counter(row.transaction_type for row in rows)),
        )

    def prices_by_city(
        self,
        filters: PropertyFilters,
        order: str = "desc",
        limit: int = 20
    ) -> List[CityPrice]:
        """
        Rank cities by mean price per m².

        Args:
            filters: Property filters
            order: "asc" or "desc"
            limit: Number of cities to return (1-100)

        Returns:
            List of CityPrice
        """
        if order not in ("asc", "desc"):
            raise ValueError("order must be 'asc' or 'desc'")
        if not 1 <= limit <= 100:
            raise ValueError("limit must be between 1 and 100")

        avg_ppsqm = func.avg(Property.price_per_sqm)
        query = filters.apply(
            select(
                Property.city,
                func.avg(Property.price).label("avg_price"),
                avg_ppsqm.label("avg_price_per_sqm"),
                func.avg(Property.surface).label("avg_surface"),
                func.count(Property.id).label("listings_count"),
            ).where(Property.city.isnot(None))
        )
        query = (
            query.group_by(Property.city)
            .order_by(asc(avg_ppsqm) if order == "asc" else desc(avg_ppsqm), Property.city)
            .limit(limit)
        )

        return [
            CityPrice(
                city=row.city,
                avg_price=_round(row.avg_price),
                avg_price_per_sqm=_round(row.avg_price_per_sqm),
                avg_surface=_round(row.avg_surface),
                listings_count=row.listings_count,
            )
            for row in self.session.execute(query).all()
        ]

    def price_distribution(self, filters: PropertyFilters, buckets: int = 10) -> PriceDistribution:
        if not 5 <= buckets <= 20:
            raise ValueError("buckets must be between 5 and 20")

        query = filters.apply(select(Property.price).where(Property.price.isnot(None)))
        prices = list(self.session.execute(query).scalars().all())

        if not prices:
            return PriceDistribution()

        return PriceDistribution(
            total=len(prices),
            min_price=min(prices),
            max_price=max(prices),
            buckets=build_histogram(prices, buckets),
        )

    def trends(self, filters: PropertyFilters, period: str = "month") -> List[TrendPoint]:
        """
        Mean prices per time bucket of scraped_at, oldest first.

        Args:
            filters: Property filters
            period: "week", "month" or "quarter"

        Returns:
            List of TrendPoint
        """
        if period not in TREND_PERIODS:
            raise ValueError(f"Unknown period '{period}'. Valid options: {', '.join(TREND_PERIODS)}")

        query = filters.apply(
            select(Property.price, Property.price_per_sqm, Property.scraped_at)
        ).order_by(Property.scraped_at)

        grouped: Dict[str, Dict[str, list]] = {}
        for row in self.session.execute(query).all():
            bucket = grouped.setdefault(period_key(row.scraped_at, period), {"prices": [], "ppsqm": []})
            if row.price is not None:
                bucket["prices"].append(row.price)
            if row.price_per_sqm is not None:
                bucket["ppsqm"].append(row.price_per_sqm)

        return [
            TrendPoint(
                period=key,
                avg_price=_round(sum(data["prices"]) / len(data["prices"])) if data["prices"] else 0,
                avg_price_per_sqm=_round(sum(data["ppsqm"]) / len(data["ppsqm"])) if data["ppsqm"] else 0,
                listings_count=len(data["prices"]),
            )
            for key, data in sorted(grouped.items())
        ]

    def geo_search(
        self,
        latitude: float,
        longitude: float,
        radius_km: float,
        filters: Optional[PropertyFilters] = None,
        limit: int = 20,
        min_price: Optional[float] = None,
        max_price: Optional[float] = None,
    ) -> List[GeoResult]:
        """
        Properties within radius_km of a point, nearest first.

        A bounding box narrows candidates in SQL; the exact haversine
        distance then decides membership.
        """
        if radius_km <= 0:
            raise ValueError("radius_km must be positive")

        box = bounding_box(latitude, longitude, radius_km)
        query = select(Property).where(
            Property.latitude.isnot(None),
            Property.longitude.isnot(None),
            Property.latitude.between(box.min_lat, box.max_lat),
            Property.longitude.between(box.min_lon, box.max_lon),
        )
        if filters is not None:
            query = filters.apply(query)
        if min_price is not None:
            query = query.where(Property.price >= min_price)
        if max_price is not None:
            query = query.where(Property.price <= max_price)

        candidates = self.session.execute(query).scalars().all()

        matches = []
        for row in candidates:
            distance = haversine_distance(latitude, longitude, row.latitude, row.longitude)
            if distance <= radius_km:
                matches.append((distance, row))
        matches.sort(key=lambda item: item[0])

        logger.debug("geo_search", candidates=len(candidates), matches=len(matches), radius_km=radius_km)

        return [
            GeoResult(**to_record(row).model_dump(), distance_km=round(distance, 2))
            for distance, row in matches[:limit]
        ]

    def list_properties(
        self,
        filters: PropertyFilters,
        min_price: Optional[float] = None,
        max_price: Optional[float] = None,
        min_surface: Optional[float] = None,
        max_surface: Optional[float] = None,
        rooms: Optional[int] = None,
        page: int = 1,
        limit: int = 20,
        sort_by: str = "scraped_at",
        sort_order: str = "desc",
    ) -> PropertyPage:
        if sort_by not in SORTABLE_COLUMNS:
            raise ValueError(f"Cannot sort by '{sort_by}'")
        if page < 1 or limit < 1:
            raise ValueError("page and limit must be positive")

        query = filters.apply(select(Property), city_contains=True)
        if min_price is not None:
            query = query.where(Property.price >= min_price)
        if max_price is not None:
            query = query.where(Property.price <= max_price)
        if min_surface is not None:
            query = query.where(Property.surface >= min_surface)
        if max_surface is not None:
            query = query.where(Property.surface <= max_surface)
        if rooms is not None:
            query = query.where(Property.rooms == rooms)

        total = self.session.scalar(select(func.count()).select_from(query.subquery())) or 0

        column = SORTABLE_COLUMNS[sort_by]
        query = (
            query.order_by(asc(column) if sort_order == "asc" else desc(column), Property.id)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        rows = self.session.execute(query).scalars().all()

        return PropertyPage(
            items=[to_record(row) for row in rows],
            page=page,
            limit=limit,
            total=total,
            total_pages=math.ceil(total / limit),
        )

    def get_property(self, identifier: str) -> Optional[PropertyRecord]:
        row = self.repository.get_by_id_or_external_id(self.session, identifier)
        return to_record(row) if row is not None else None

    def autocomplete_cities(self, q: str, limit: int = 10) -> List[CitySuggestion]:
        """Distinct cities whose name contains q, case-insensitively."""
        query = (
            select(
                Property.city,
                func.min(Property.postal_code).label("postal_code"),
                func.min(Property.department).label("department"),
            )
            .where(Property.city.ilike(f"%{q}%"))
            .group_by(Property.city)
            .order_by(Property.city)
            .limit(limit)
        )
        rows = self.session.execute(query).all()

        if not rows:
            needle = q.lower()
            return [s for s in DEFAULT_CITY_SUGGESTIONS if needle in s.city.lower()][:limit]

        return [
            CitySuggestion(city=row.city, postal_code=row.postal_code, department=row.department)
            for row in rows
        ]

    def data_overview(self) -> DataOverview:
        total = self.session.scalar(select(func.count(Property.id))) or 0

        by_source = {
            source: count
            for source, count in self.session.execute(
                select(Property.source, func.count(Property.id)).group_by(Property.source)
            ).all()
        }

        by_type = [
            TypeOverview(
                property_type=row.property_type,
                count=row.count,
                avg_price=_round(row.avg_price),
                avg_price_per_sqm=_round(row.avg_ppsqm),
            )
            for row in self.session.execute(
                select(
                    Property.property_type,
                    func.count(Property.id).label("count"),
                    func.avg(Property.price).label("avg_price"),
                    func.avg(Property.price_per_sqm).label("avg_ppsqm"),
                ).group_by(Property.property_type).order_by(Property.property_type)
            ).all()
        ]

        top_cities = self._group_overview(Property.city, limit=20)
        by_department = self._group_overview(Property.department)

        recent = self.session.execute(
            select(Property).order_by(desc(Property.scraped_at)).limit(10)
        ).scalars().all()

        return DataOverview(
            total=total,
            by_source=by_source,
            by_type=by_type,
            top_cities=top_cities,
            by_department=by_department,
            recently_scraped=[to_record(row) for row in recent],
        )

    def _group_overview(self, column, limit: Optional[int] = None) -> List[GroupOverview]:
        count = func.count(Property.id)
        query = (
            select(column.label("key"), count.label("count"), func.avg(Property.price_per_sqm).label("avg_ppsqm"))
            .group_by(column)
            .order_by(desc(count), column)
        )
        if limit is not None:
            query = query.limit(limit)

        return [
            GroupOverview(key=row.key, count=row.count, avg_price_per_sqm=_round(row.avg_ppsqm))
            for row in self.session.execute(query).all()
        ]
