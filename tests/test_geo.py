"""
Tests for geographic helpers.
"""
import pytest

from order_assistant.geo import calculate_distance, is_within_delivery_radius, validate_coordinates


class TestValidateCoordinates:
    @pytest.mark.parametrize("lat,lon", [(0, 0), (90, 180), (-90, -180), (40.7128, -74.006)])
    def test_valid(self, lat, lon):
        assert validate_coordinates(lat, lon) is True

    @pytest.mark.parametrize("lat,lon", [
        (91, 0),
        (0, -181),
        ("40.7", "-74.0"),
        (None, 0),
        (True, 0),
        (float("nan"), 0),
    ])
    def test_invalid(self, lat, lon):
        assert validate_coordinates(lat, lon) is False


def test_distance_london_paris():
    distance = calculate_distance(51.5074, -0.1278, 48.8566, 2.3522)

    assert 340 < distance < 346


def test_same_point():
    assert calculate_distance(40.0, -74.0, 40.0, -74.0) == 0.0


class TestDeliveryRadius:
    def test_inside(self):
        check = is_within_delivery_radius(40.7200, -74.0000, 40.7128, -74.0060, 5)

        assert check.within_radius is True
        assert check.max_km == 5

    def test_outside(self):
        check = is_within_delivery_radius(40.9000, -74.0060, 40.7128, -74.0060, 5)

        assert check.within_radius is False
        assert check.distance_km == 20.8

    def test_default_radius(self, monkeypatch):
        import order_assistant.geo as geo

        monkeypatch.setattr(geo, "DEFAULT_DELIVERY_RADIUS_KM", 25.0)

        check = is_within_delivery_radius(40.9000, -74.0060, 40.7128, -74.0060)

        assert check.within_radius is True
        assert check.max_km == 25.0
