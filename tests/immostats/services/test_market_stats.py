"""
Tests for the market statistics service.
"""
from datetime import datetime

import pytest

from src.immostats.models.stats import MarketStats, NoDataAvailable
from src.immostats.services.market_stats import (
    DEFAULT_CITY_SUGGESTIONS,
    MarketStatsService,
    PropertyFilters,
    build_histogram,
    median,
    period_key,
    summarize,
)

PARIS_CENTER = (48.8566, 2.3522)


@pytest.fixture
def service(test_db):
    return MarketStatsService(test_db)


class TestHelpers:
    """Tests for pure aggregation helpers"""

    def test_median_odd(self):
        assert median([600000, 500000, 520000]) == 520000

    def test_median_even(self):
        assert median([1, 2, 3, 4]) == 2.5

    def test_median_empty(self):
        with pytest.raises(ValueError):
            median([])

    def test_summarize_ignores_missing(self):
        summary = summarize([10.0, None, 20.0])
        assert summary.min == 10.0
        assert summary.max == 20.0
        assert summary.avg == 15.0

    def test_summarize_all_missing(self):
        assert summarize([None, None]) is None

    def test_histogram_even_spread(self):
        values = [float(v) for v in range(100, 1001, 100)]

        buckets = build_histogram(values, 5)

        assert [b.count for b in buckets] == [2, 2, 2, 2, 2]
        assert buckets[0].min == 100
        assert buckets[-1].max == 1000
        assert sum(b.percentage for b in buckets) == pytest.approx(100.0)

    def test_histogram_max_lands_in_last_bucket(self):
        buckets = build_histogram([0.0, 50.0, 100.0], 5)
        assert buckets[-1].count == 1
        assert sum(b.count for b in buckets) == 3

    def test_histogram_all_equal_values(self):
        buckets = build_histogram([250000.0] * 4, 5)
        assert [b.count for b in buckets] == [0, 0, 0, 0, 4]

    @pytest.mark.parametrize("moment, period, expected", [
        (datetime(2024, 1, 10), "week", "2024-01-08"),
        (datetime(2024, 1, 8), "week", "2024-01-08"),
        (datetime(2024, 1, 1), "week", "2024-01-01"),
        (datetime(2024, 2, 29), "month", "2024-02"),
        (datetime(2024, 3, 31), "quarter", "2024-Q1"),
        (datetime(2024, 10, 1), "quarter", "2024-Q4"),
    ])
    def test_period_key(self, moment, period, expected):
        assert period_key(moment, period) == expected

    def test_period_key_unknown(self):
        with pytest.raises(ValueError):
            period_key(datetime(2024, 1, 1), "year")


class TestMarketStats:
    """Tests for MarketStatsService.market_stats"""

    def test_paris_sales(self, service, add_property):
        add_property(price=500000.0, surface=50.0)
        add_property(price=520000.0, surface=52.0)
        add_property(price=600000.0, surface=60.0)
        add_property(city="Lyon", postal_code="69001", department="69", price=200000.0)

        result = service.market_stats(PropertyFilters(city="Paris", transaction_type="sale"))

        assert isinstance(result, MarketStats)
        assert result.count == 3
        assert result.price.min == 500000
        assert result.price.max == 600000
        assert result.price.avg == 540000
        assert result.price.median == 520000
        assert result.price_per_sqm.avg == 10000
        assert result.by_property_type == {"apartment": 3}

    def test_no_data(self, service, add_property):
        add_property()

        result = service.market_stats(PropertyFilters(city="Brest"))

        assert isinstance(result, NoDataAvailable)
        assert result.count == 0

    def test_filters_by_property_type(self, service, add_property):
        add_property(property_type="house", price=400000.0)
        add_property()

        result = service.market_stats(PropertyFilters(property_type="house"))

        assert result.count == 1
        assert result.price.avg == 400000


class TestPricesByCity:
    """Tests for MarketStatsService.prices_by_city"""

    def test_ranked_by_price_per_sqm(self, service, add_property):
        add_property(city="Paris", price=600000.0, surface=60.0)
        add_property(city="Lyon", price=250000.0, surface=50.0)
        add_property(city="Lyon", price=350000.0, surface=50.0)
        add_property(city=None, price=900000.0, surface=30.0)

        desc_result = service.prices_by_city(PropertyFilters(), order="desc")
        asc_result = service.prices_by_city(PropertyFilters(), order="asc")

        assert [c.city for c in desc_result] == ["Paris", "Lyon"]
        assert [c.city for c in asc_result] == ["Lyon", "Paris"]
        lyon = asc_result[0]
        assert lyon.avg_price == 300000
        assert lyon.avg_price_per_sqm == 6000
        assert lyon.listings_count == 2

    def test_average_ties_round_up(self, service, add_property):
        add_property(city="Nantes", price=200000.0, surface=50.0, price_per_sqm=1000)
        add_property(city="Nantes", price=200001.0, surface=50.0, price_per_sqm=1001)

        nantes = service.prices_by_city(PropertyFilters())[0]

        assert nantes.avg_price_per_sqm == 1001
        assert nantes.avg_price == 200001

    def test_limit(self, service, add_property):
        for city in ("Paris", "Lyon", "Nantes"):
            add_property(city=city)
        assert len(service.prices_by_city(PropertyFilters(), limit=2)) == 2

    @pytest.mark.parametrize("kwargs", [{"order": "up"}, {"limit": 0}, {"limit": 101}])
    def test_invalid_arguments(self, service, kwargs):
        with pytest.raises(ValueError):
            service.prices_by_city(PropertyFilters(), **kwargs)


class TestPriceDistribution:
    """Tests for MarketStatsService.price_distribution"""

    def test_distribution(self, service, add_property):
        for price in range(100000, 1000001, 100000):
            add_property(price=float(price))

        result = service.price_distribution(PropertyFilters(), buckets=5)

        assert result.total == 10
        assert result.min_price == 100000
        assert result.max_price == 1000000
        assert [b.count for b in result.buckets] == [2, 2, 2, 2, 2]

    def test_empty(self, service):
        result = service.price_distribution(PropertyFilters(), buckets=5)
        assert result.total == 0
        assert result.buckets == []

    @pytest.mark.parametrize("buckets", [4, 21])
    def test_bucket_bounds(self, service, buckets):
        with pytest.raises(ValueError):
            service.price_distribution(PropertyFilters(), buckets=buckets)


class TestTrends:
    """Tests for MarketStatsService.trends"""

    def test_monthly(self, service, add_property):
        add_property(price=300000.0, surface=60.0, scraped_at=datetime(2024, 2, 3))
        add_property(price=200000.0, surface=50.0, scraped_at=datetime(2024, 1, 10))
        add_property(price=400000.0, surface=50.0, scraped_at=datetime(2024, 1, 20))

        points = service.trends(PropertyFilters(), period="month")

        assert [p.period for p in points] == ["2024-01", "2024-02"]
        assert points[0].avg_price == 300000
        assert points[0].avg_price_per_sqm == 6000
        assert points[0].listings_count == 2
        assert points[1].listings_count == 1

    def test_weekly(self, service, add_property):
        add_property(scraped_at=datetime(2024, 1, 10))
        add_property(scraped_at=datetime(2024, 1, 14))

        points = service.trends(PropertyFilters(), period="week")

        assert [p.period for p in points] == ["2024-01-08"]
        assert points[0].listings_count == 2

    def test_invalid_period(self, service):
        with pytest.raises(ValueError):
            service.trends(PropertyFilters(), period="day")


class TestGeoSearch:
    """Tests for MarketStatsService.geo_search"""

    def test_radius_membership_and_order(self, service, add_property):
        lat, lon = PARIS_CENTER
        add_property(external_id="near", latitude=lat + 0.009, longitude=lon)
        add_property(external_id="center", latitude=lat, longitude=lon)
        add_property(external_id="lyon", latitude=45.764, longitude=4.8357)
        add_property(external_id="no_coords")

        results = service.geo_search(lat, lon, radius_km=5)

        assert [r.external_id for r in results] == ["center", "near"]
        assert results[0].distance_km == 0
        assert results[1].distance_km == pytest.approx(1.0, abs=0.05)

    def test_box_corner_outside_circle_excluded(self, service, add_property):
        lat, lon = PARIS_CENTER
        # ~0.9 km north and ~0.9 km east: inside the 1 km box, outside the circle
        add_property(external_id="corner", latitude=lat + 0.0081, longitude=lon + 0.0123)

        assert service.geo_search(lat, lon, radius_km=1) == []

    def test_price_bounds_and_limit(self, service, add_property):
        lat, lon = PARIS_CENTER
        for index, price in enumerate([100000.0, 200000.0, 300000.0, 400000.0]):
            add_property(latitude=lat + index * 0.001, longitude=lon, price=price)

        results = service.geo_search(lat, lon, radius_km=2, min_price=150000, max_price=400000, limit=2)

        assert [r.price for r in results] == [200000.0, 300000.0]

    def test_invalid_radius(self, service):
        with pytest.raises(ValueError):
            service.geo_search(0, 0, radius_km=0)


class TestListAndGet:
    """Tests for listing and single-property lookup"""

    def test_pagination(self, service, add_property):
        for day in range(1, 6):
            add_property(scraped_at=datetime(2024, 1, day))

        page = service.list_properties(PropertyFilters(), page=2, limit=2)

        assert page.total == 5
        assert page.total_pages == 3
        assert len(page.items) == 2
        assert page.items[0].scraped_at.day == 3

    def test_city_partial_match_and_ranges(self, service, add_property):
        add_property(city="Boulogne-Billancourt", price=500000.0, surface=80.0, rooms=4)
        add_property(city="Boulogne-sur-Mer", price=150000.0, surface=40.0, rooms=2)
        add_property(city="Paris")

        page = service.list_properties(
            PropertyFilters(city="boulogne"), min_price=200000, min_surface=50, rooms=4
        )

        assert [item.city for item in page.items] == ["Boulogne-Billancourt"]

    def test_sort_by_price(self, service, add_property):
        for price in (300000.0, 100000.0, 200000.0):
            add_property(price=price)

        page = service.list_properties(PropertyFilters(), sort_by="price", sort_order="asc")

        assert [item.price for item in page.items] == [100000.0, 200000.0, 300000.0]

    def test_invalid_sort(self, service):
        with pytest.raises(ValueError):
            service.list_properties(PropertyFilters(), sort_by="title")

    def test_get_by_id_or_external_id(self, service, add_property):
        row = add_property(external_id="dvf_2023-1")

        assert service.get_property(row.id).external_id == "dvf_2023-1"
        assert service.get_property("dvf_2023-1").id == row.id
        assert service.get_property("missing") is None


class TestAutocompleteAndOverview:
    """Tests for city suggestions and the data overview"""

    def test_autocomplete_distinct_cities(self, service, add_property):
        add_property(city="Paris")
        add_property(city="Paris")
        add_property(city="Pau", postal_code="64000", department="64")

        suggestions = service.autocomplete_cities("pa")

        assert [s.city for s in suggestions] == ["Paris", "Pau"]

    def test_autocomplete_falls_back_to_defaults(self, service):
        suggestions = service.autocomplete_cities("lyo")
        assert [s.city for s in suggestions] == ["Lyon"]
        assert suggestions[0] in DEFAULT_CITY_SUGGESTIONS

    def test_data_overview(self, service, add_property):
        add_property(source="dvf", property_type="apartment")
        add_property(source="dvf", property_type="house", city="Lyon", department="69")
        add_property(source="demo", property_type="apartment")

        overview = service.data_overview()

        assert overview.total == 3
        assert overview.by_source == {"dvf": 2, "demo": 1}
        assert {t.property_type for t in overview.by_type} == {"apartment", "house"}
        assert overview.top_cities[0].key == "Paris"
        assert overview.top_cities[0].count == 2
        assert len(overview.recently_scraped) == 3
