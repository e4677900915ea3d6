"""
Tests for French administrative lookups.
"""
import pytest

from src.immostats.utils.regions import (
    UNKNOWN_REGION,
    department_from_postal_code,
    is_valid_postal_code,
    normalize_department,
    region_for_department,
)


class TestNormalizeDepartment:
    """Tests for normalize_department."""

    @pytest.mark.parametrize("raw, expected", [
        ("75", "75"),
        ("6", "06"),
        (" 2a ", "2A"),
        ("974", "974"),
        ("", None),
        (None, None),
    ])
    def test_normalize(self, raw, expected):
        assert normalize_department(raw) == expected


class TestRegionForDepartment:
    """Tests for region_for_department."""

    def test_paris(self):
        assert region_for_department("75") == "Île-de-France"

    def test_corsica(self):
        assert region_for_department("2B") == "Corse"

    def test_overseas(self):
        assert region_for_department("974") == "La Réunion"

    def test_single_digit_code(self):
        assert region_for_department("6") == "Provence-Alpes-Côte d'Azur"

    def test_unknown_department(self):
        assert region_for_department("99") == UNKNOWN_REGION

    def test_missing_department(self):
        assert region_for_department(None) == UNKNOWN_REGION


class TestPostalCodes:
    """Tests for postal code helpers."""

    def test_valid_postal_code(self):
        assert is_valid_postal_code("75011")

    @pytest.mark.parametrize("postal_code", ["7501", "750111", "ABCDE", "", None])
    def test_invalid_postal_code(self, postal_code):
        assert not is_valid_postal_code(postal_code)

    @pytest.mark.parametrize("postal_code, expected", [
        ("75011", "75"),
        ("06000", "06"),
        ("20000", "2A"),
        ("20200", "2B"),
        ("97400", "974"),
        ("98000", "980"),
        ("bad", None),
    ])
    def test_department_from_postal_code(self, postal_code, expected):
        assert department_from_postal_code(postal_code) == expected
