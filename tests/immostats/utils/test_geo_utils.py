"""
Tests for geographic helpers.
"""
import pytest

from src.immostats.utils.geo_utils import bounding_box, haversine_distance


class TestHaversineDistance:
    """Tests for haversine_distance."""

    def test_same_point_is_zero(self):
        assert haversine_distance(48.8566, 2.3522, 48.8566, 2.3522) == 0

    def test_paris_to_lyon(self):
        """Paris -> Lyon is roughly 392 km as the crow flies."""
        distance = haversine_distance(48.8566, 2.3522, 45.7640, 4.8357)
        assert distance == pytest.approx(392, abs=3)

    def test_symmetric(self):
        a = haversine_distance(43.2965, 5.3698, 44.8378, -0.5792)
        b = haversine_distance(44.8378, -0.5792, 43.2965, 5.3698)
        assert a == pytest.approx(b)

    def test_antipodal_points(self):
        """Half the Earth's circumference, without a math domain error."""
        distance = haversine_distance(0, 0, 0, 180)
        assert distance == pytest.approx(20015, abs=5)


class TestBoundingBox:
    """Tests for bounding_box."""

    def test_latitude_delta(self):
        box = bounding_box(48.0, 2.0, 111.0)
        assert box.min_lat == pytest.approx(47.0)
        assert box.max_lat == pytest.approx(49.0)

    def test_longitude_delta_widens_with_latitude(self):
        equator = bounding_box(0.0, 0.0, 10)
        north = bounding_box(60.0, 0.0, 10)
        assert (north.max_lon - north.min_lon) > (equator.max_lon - equator.min_lon)

    def test_contains_points_on_the_circle(self):
        """Every point at exactly radius_km north/east must fall inside the box."""
        box = bounding_box(48.8566, 2.3522, 5)
        # ~5 km north
        north_lat = 48.8566 + 5 / 111.195
        assert box.min_lat <= north_lat <= box.max_lat

    def test_pole_covers_all_longitudes(self):
        box = bounding_box(90.0, 0.0, 10)
        assert box.min_lon <= -180 + 1e-6
        assert box.max_lon >= 180 - 1e-6
