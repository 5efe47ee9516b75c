"""Estimate a vehicle's current speed through a cascade of strategies.

Order: reported API speed -> nearby-vehicle average -> distance from the
stop-network center -> static fallback. The first strategy that produces a
value wins.
"""

import logging
import math
from dataclasses import dataclass, field, replace
from typing import Callable

from vehicle_predictor.config import Settings
from vehicle_predictor.core.geometry import distance, is_valid_coordinate
from vehicle_predictor.schemas.geo import Coordinate, Stop
from vehicle_predictor.schemas.vehicle import VehicleFix

logger = logging.getLogger(__name__)


@dataclass
class SpeedPrediction:
    speed: float  # km/h
    method: str  # api_speed | nearby_average | location_based | stopped_at_station | static_fallback
    confidence: str  # high | medium | low | very_low
    metadata: dict[str, float] = field(default_factory=dict)


def _positive(speed: float | None) -> bool:
    return speed is not None and math.isfinite(speed) and speed > 0


def _api_speed(
    vehicle: VehicleFix, nearby: list[VehicleFix], center: Coordinate | None, settings: Settings,
) -> SpeedPrediction | None:
    if _positive(vehicle.speed):
        return SpeedPrediction(
            speed=vehicle.speed, method="api_speed", confidence="high",
            metadata={"api_speed": vehicle.speed},
        )
    return None


def _nearby_average(
    vehicle: VehicleFix, nearby: list[VehicleFix], center: Coordinate | None, settings: Settings,
) -> SpeedPrediction | None:
    if not is_valid_coordinate(vehicle.position):
        return None

    speeds: list[float] = []
    for other in nearby:
        if other.id == vehicle.id or not _positive(other.speed):
            continue
        if not is_valid_coordinate(other.position):
            continue
        if distance(vehicle.position, other.position) <= settings.nearby_vehicle_radius_m:
            speeds.append(other.speed)
            if len(speeds) >= settings.max_nearby_vehicles:
                break

    if not speeds:
        return None

    avg = sum(speeds) / len(speeds)
    if len(speeds) >= 5:
        confidence = "high"
    elif len(speeds) >= 2:
        confidence = "medium"
    else:
        confidence = "low"
    return SpeedPrediction(
        speed=avg, method="nearby_average", confidence=confidence,
        metadata={"nearby_vehicle_count": len(speeds), "nearby_average_speed": avg},
    )


def _location_based(
    vehicle: VehicleFix, nearby: list[VehicleFix], center: Coordinate | None, settings: Settings,
) -> SpeedPrediction | None:
    if center is None or not is_valid_coordinate(vehicle.position) or not is_valid_coordinate(center):
        return None

    dist = distance(vehicle.position, center)
    max_dist = settings.max_distance_from_center_m
    min_speed = settings.min_location_speed_kmh
    max_speed = settings.max_location_speed_kmh

    if dist >= max_dist:
        speed, confidence = min_speed, "low"
    else:
        ratio = 1.0 - dist / max_dist
        speed = min_speed + (max_speed - min_speed) * ratio
        if dist < max_dist * 0.3:
            confidence = "high"
        elif dist < max_dist * 0.7:
            confidence = "medium"
        else:
            confidence = "low"

    if speed <= 0:
        return None
    return SpeedPrediction(
        speed=speed, method="location_based", confidence=confidence,
        metadata={"distance_to_center_m": dist, "location_based_speed": speed},
    )


def _static_fallback(
    vehicle: VehicleFix, nearby: list[VehicleFix], center: Coordinate | None, settings: Settings,
) -> SpeedPrediction | None:
    return SpeedPrediction(
        speed=settings.fallback_speed_kmh, method="static_fallback", confidence="very_low",
    )


SpeedStrategy = Callable[
    [VehicleFix, list[VehicleFix], Coordinate | None, Settings], SpeedPrediction | None
]

STRATEGIES: tuple[SpeedStrategy, ...] = (
    _api_speed,
    _nearby_average,
    _location_based,
    _static_fallback,
)


def predict_vehicle_speed(
    vehicle: VehicleFix,
    nearby_vehicles: list[VehicleFix],
    density_center: Coordinate | None,
    settings: Settings,
) -> SpeedPrediction:
    """Run the strategy cascade; the first non-empty result wins."""
    for strategy in STRATEGIES:
        try:
            result = strategy(vehicle, nearby_vehicles, density_center, settings)
        except Exception:
            logger.exception("Speed strategy %s failed for vehicle %s", strategy.__name__, vehicle.id)
            continue
        if result is not None:
            logger.debug(
                "Vehicle %s: speed %.1f km/h via %s (%s)",
                vehicle.id, result.speed, result.method, result.confidence,
            )
            return result
    # _static_fallback never returns None
    return _static_fallback(vehicle, nearby_vehicles, density_center, settings)


def find_station_at(position: Coordinate, stops: list[Stop], threshold_m: float) -> Stop | None:
    """Nearest stop within threshold_m of position, if any."""
    if not is_valid_coordinate(position):
        return None
    best: Stop | None = None
    best_dist = float("inf")
    for stop in stops:
        if not is_valid_coordinate(stop.coordinates):
            continue
        d = distance(position, stop.coordinates)
        if d <= threshold_m and d < best_dist:
            best, best_dist = stop, d
    return best


def apply_station_override(
    prediction: SpeedPrediction,
    position: Coordinate,
    stops: list[Stop],
    settings: Settings,
) -> tuple[SpeedPrediction, str | None]:
    """Force speed to 0 when the vehicle sits at a stop.

    Returns the (possibly replaced) prediction and the id of the stop the
    vehicle is at, or None.
    """
    station = find_station_at(position, stops, settings.proximity_threshold_m)
    if station is None:
        return prediction, None
    overridden = replace(
        prediction,
        speed=0.0,
        method="stopped_at_station",
        confidence="high",
        metadata={**prediction.metadata, "cascade_speed": prediction.speed},
    )
    return overridden, station.id


def validate_speed(speed: float, settings: Settings) -> bool:
    """True if speed lies within the configured plausible range."""
    return (
        speed > 0
        and settings.min_reasonable_speed_kmh <= speed <= settings.max_reasonable_speed_kmh
    )
