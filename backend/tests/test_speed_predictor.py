"""Tests for the speed prediction cascade."""

import pytest

from vehicle_predictor.config import Settings
from vehicle_predictor.core.speed_predictor import (
    SpeedPrediction,
    apply_station_override,
    predict_vehicle_speed,
    validate_speed,
)
from vehicle_predictor.schemas.geo import Coordinate, Stop
from vehicle_predictor.schemas.vehicle import VehicleFix

SETTINGS = Settings()
CENTER = Coordinate(latitude=46.7700, longitude=23.6000)

# 0.001 deg of latitude ≈ 111m
LAT_M = 111_195.0


def make_vehicle(vid: str, lat: float = 46.7700, lon: float = 23.6000, speed: float | None = None) -> VehicleFix:
    return VehicleFix(
        id=vid, route_id="35", trip_id="35_0", label=vid,
        position=Coordinate(latitude=lat, longitude=lon),
        timestamp="2026-10-19T08:00:00Z", speed=speed,
    )


def test_api_speed_wins():
    """A positive reported speed is used as-is with high confidence."""
    vehicle = make_vehicle("v1", speed=32.0)
    nearby = [make_vehicle(f"n{i}", speed=10.0) for i in range(6)]
    result = predict_vehicle_speed(vehicle, nearby, CENTER, SETTINGS)
    assert result.method == "api_speed"
    assert result.confidence == "high"
    assert result.speed == 32.0


def test_api_speed_wins_without_center_or_nearby():
    result = predict_vehicle_speed(make_vehicle("v1", speed=12.5), [], None, SETTINGS)
    assert result.method == "api_speed"
    assert result.speed == 12.5


@pytest.mark.parametrize("count,confidence", [(1, "low"), (2, "medium"), (4, "medium"), (5, "high")])
def test_nearby_average_confidence_by_sample_size(count, confidence):
    vehicle = make_vehicle("v1", speed=0)
    nearby = [make_vehicle(f"n{i}", lat=46.7700 + 0.001 * (i % 3), speed=20.0 + i) for i in range(count)]
    result = predict_vehicle_speed(vehicle, nearby, CENTER, SETTINGS)
    assert result.method == "nearby_average"
    assert result.confidence == confidence
    assert result.speed == pytest.approx(sum(20.0 + i for i in range(count)) / count)
    assert result.metadata["nearby_vehicle_count"] == count


def test_nearby_average_ignores_self_far_and_stopped():
    vehicle = make_vehicle("v1", speed=None)
    nearby = [
        vehicle,
        make_vehicle("far", lat=46.7700 + 5000 / LAT_M, speed=50.0),
        make_vehicle("stopped", speed=0.0),
        make_vehicle("nan", speed=float("nan")),
        make_vehicle("bad-coords", lat=float("nan"), speed=40.0),
        make_vehicle("near", lat=46.7705, speed=24.0),
    ]
    result = predict_vehicle_speed(vehicle, nearby, CENTER, SETTINGS)
    assert result.method == "nearby_average"
    assert result.speed == 24.0
    assert result.confidence == "low"


def test_nearby_average_respects_radius_setting():
    settings = Settings(nearby_vehicle_radius_m=100)
    vehicle = make_vehicle("v1")
    nearby = [make_vehicle("n1", lat=46.7700 + 300 / LAT_M, speed=30.0)]
    result = predict_vehicle_speed(vehicle, nearby, CENTER, settings)
    assert result.method == "location_based"


def test_location_based_at_center_is_max_speed():
    result = predict_vehicle_speed(make_vehicle("v1"), [], CENTER, SETTINGS)
    assert result.method == "location_based"
    assert result.speed == pytest.approx(SETTINGS.max_location_speed_kmh)
    assert result.confidence == "high"


def test_location_based_halfway_interpolates():
    vehicle = make_vehicle("v1", lat=46.7700 + 10_000 / LAT_M)
    result = predict_vehicle_speed(vehicle, [], CENTER, SETTINGS)
    assert result.method == "location_based"
    assert result.speed == pytest.approx(30.0, abs=0.2)
    assert result.confidence == "medium"


def test_location_based_beyond_max_distance_is_min_speed():
    vehicle = make_vehicle("v1", lat=46.7700 + 25_000 / LAT_M)
    result = predict_vehicle_speed(vehicle, [], CENTER, SETTINGS)
    assert result.method == "location_based"
    assert result.speed == SETTINGS.min_location_speed_kmh
    assert result.confidence == "low"


def test_static_fallback_without_center():
    result = predict_vehicle_speed(make_vehicle("v1"), [], None, SETTINGS)
    assert result.method == "static_fallback"
    assert result.confidence == "very_low"
    assert result.speed == SETTINGS.fallback_speed_kmh


def test_invalid_vehicle_coordinates_fall_through_to_static():
    """Invalid coordinates never leak NaN into the result."""
    vehicle = make_vehicle("v1", lat=123.0)
    nearby = [make_vehicle("n1", speed=30.0)]
    result = predict_vehicle_speed(vehicle, nearby, CENTER, SETTINGS)
    assert result.method == "static_fallback"
    assert result.speed == SETTINGS.fallback_speed_kmh


def test_invalid_center_falls_through_to_static():
    center = Coordinate(latitude=float("nan"), longitude=23.6)
    result = predict_vehicle_speed(make_vehicle("v1"), [], center, SETTINGS)
    assert result.method == "static_fallback"


def test_station_override_forces_zero_speed():
    stops = [
        Stop(id="s-far", name="Far", coordinates=Coordinate(latitude=46.7800, longitude=23.6000)),
        Stop(id="s1", name="Piata Unirii", coordinates=Coordinate(latitude=46.7702, longitude=23.6000)),
    ]
    prediction = SpeedPrediction(speed=32.0, method="api_speed", confidence="high")
    result, station_id = apply_station_override(prediction, CENTER, stops, SETTINGS)
    assert result.speed == 0
    assert result.method == "stopped_at_station"
    assert station_id == "s1"
    # Original prediction is untouched
    assert prediction.speed == 32.0


def test_station_override_not_applied_when_far():
    stops = [Stop(id="s1", name="Far", coordinates=Coordinate(latitude=46.7710, longitude=23.6000))]
    prediction = SpeedPrediction(speed=32.0, method="api_speed", confidence="high")
    result, station_id = apply_station_override(prediction, CENTER, stops, SETTINGS)
    assert result is prediction
    assert station_id is None


@pytest.mark.parametrize("speed,valid", [(0, False), (0.5, False), (1, True), (60, True), (121, False)])
def test_validate_speed(speed, valid):
    assert validate_speed(speed, SETTINGS) is valid
