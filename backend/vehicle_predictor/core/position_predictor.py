"""Predict where a vehicle is now from its last fix and the route shape.

The vehicle is snapped to its trip's shape, elapsed time since the fix is
turned into a travel distance, and that distance is walked forward through
the upcoming stops, paying a dwell time at each stop reached.
"""

import datetime
import logging
import math
from dataclasses import dataclass, field

from vehicle_predictor.config import Settings
from vehicle_predictor.core.geometry import (
    ProjectionResult,
    distance_between_projections,
    is_valid_coordinate,
    is_projection_ahead,
    move_along_shape,
    project_point_to_shape,
    route_position,
)
from vehicle_predictor.schemas.geo import Coordinate, RouteShape, Stop, StopTime
from vehicle_predictor.schemas.vehicle import VehicleFix

logger = logging.getLogger(__name__)


@dataclass
class StationAhead:
    stop_time: StopTime
    stop: Stop
    projection: ProjectionResult


@dataclass
class MovementSimulation:
    start_position: Coordinate
    end_position: Coordinate
    distance_traveled_m: float
    stations_encountered: list[StopTime] = field(default_factory=list)
    total_dwell_time_s: float = 0.0


@dataclass
class PositionPrediction:
    predicted_position: Coordinate
    predicted_distance_m: float = 0.0
    stations_encountered: int = 0
    total_dwell_time_s: float = 0.0
    method: str = "fallback"  # route_shape | fallback
    success: bool = False
    timestamp_age_s: float = 0.0


def _as_utc(ts: datetime.datetime) -> datetime.datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=datetime.timezone.utc)
    return ts


def parse_timestamp(raw: datetime.datetime | str | None) -> datetime.datetime | None:
    """Parse an ISO-8601 fix timestamp; naive values are taken as UTC."""
    if raw is None:
        return None
    if isinstance(raw, datetime.datetime):
        return _as_utc(raw)
    try:
        text = str(raw).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        return _as_utc(datetime.datetime.fromisoformat(text))
    except (ValueError, TypeError):
        return None


def timestamp_age_s(
    timestamp: datetime.datetime | str | None, now: datetime.datetime | None = None,
) -> float:
    """Seconds between the fix and now, never negative; 0 when unparseable."""
    ts = parse_timestamp(timestamp)
    if ts is None:
        return 0.0
    now = _as_utc(now) if now is not None else datetime.datetime.now(datetime.timezone.utc)
    return max(0.0, (now - ts).total_seconds())


def trip_stop_sequence(trip_id: str | None, stop_times: list[StopTime]) -> list[StopTime]:
    """Stop-times of one trip with a usable sequence, ordered by sequence."""
    trip = [
        st for st in stop_times
        if st.trip_id == trip_id and st.stop_id and math.isfinite(st.sequence)
    ]
    trip.sort(key=lambda st: st.sequence)
    return trip


def find_stations_ahead(
    vehicle_projection: ProjectionResult,
    trip_stop_times: list[StopTime],
    stops: list[Stop],
    shape: RouteShape,
) -> list[StationAhead]:
    """Stops of the trip lying further along the shape than the vehicle.

    A stop visited more than once by a loop trip projects to the same place
    every time; only its first visit is kept, so it is dwelt at once.
    """
    by_id = {s.id: s for s in stops}
    ahead = []
    seen = set()
    for st in trip_stop_times:
        stop = by_id.get(st.stop_id)
        if stop is None or not is_valid_coordinate(stop.coordinates):
            continue
        proj = project_point_to_shape(stop.coordinates, shape)
        key = (stop.id, proj.segment_index, proj.position_along_segment)
        if key in seen:
            continue
        seen.add(key)
        if is_projection_ahead(vehicle_projection, proj):
            ahead.append(StationAhead(stop_time=st, stop=stop, projection=proj))
    ahead.sort(key=lambda s: route_position(s.projection, shape))
    return ahead


def simulate_movement(
    elapsed_s: float,
    speed_kmh: float,
    vehicle_projection: ProjectionResult,
    stations_ahead: list[StationAhead],
    shape: RouteShape,
    dwell_time_s: float,
) -> MovementSimulation:
    """Advance along the shape for elapsed_s seconds at speed_kmh."""
    speed_ms = speed_kmh / 3.6
    sim = MovementSimulation(
        start_position=vehicle_projection.closest_point,
        end_position=vehicle_projection.closest_point,
        distance_traveled_m=0.0,
    )
    if speed_ms <= 0 or elapsed_s <= 0:
        return sim

    remaining = elapsed_s * speed_ms
    current = vehicle_projection

    for station in stations_ahead:
        to_station = distance_between_projections(current, station.projection, shape)
        if remaining < to_station:
            sim.end_position, moved = move_along_shape(current, remaining, shape)
            sim.distance_traveled_m += moved
            remaining = 0.0
            break

        sim.distance_traveled_m += to_station
        current = station.projection
        sim.end_position = station.projection.closest_point
        sim.stations_encountered.append(station.stop_time)
        sim.total_dwell_time_s += dwell_time_s

        time_left = elapsed_s - sim.distance_traveled_m / speed_ms - sim.total_dwell_time_s
        if time_left <= 0:
            # still dwelling at this stop
            remaining = 0.0
            break
        remaining = time_left * speed_ms

    if remaining > 0:
        sim.end_position, moved = move_along_shape(current, remaining, shape)
        sim.distance_traveled_m += moved

    return sim


def predict_vehicle_position(
    vehicle: VehicleFix,
    route_shape: RouteShape | None = None,
    stop_times: list[StopTime] | None = None,
    stops: list[Stop] | None = None,
    *,
    predicted_speed: float | None = None,
    now: datetime.datetime | None = None,
    settings: Settings,
) -> PositionPrediction:
    """Predict the current position of a vehicle.

    Falls back to the reported coordinates when the fix is fresh, when the
    route context is incomplete, when the vehicle is off-route, or when the
    computation fails. `success` tells a fresh fix (True) apart from missing
    context or errors (False).
    """
    raw = vehicle.position
    age = timestamp_age_s(vehicle.timestamp, now)

    if age <= 0:
        return PositionPrediction(predicted_position=raw, success=True, timestamp_age_s=age)

    if (not route_shape or not route_shape.segments or not stop_times or not stops
            or not vehicle.trip_id or not is_valid_coordinate(raw)):
        logger.debug("Vehicle %s: incomplete route context, using reported position", vehicle.id)
        return PositionPrediction(predicted_position=raw, success=False, timestamp_age_s=age)

    try:
        projection = project_point_to_shape(raw, route_shape)
        if not math.isfinite(projection.distance_to_shape_m) or \
                projection.distance_to_shape_m > settings.off_route_threshold_m:
            logger.debug(
                "Vehicle %s: %.0fm from shape, treating as off-route",
                vehicle.id, projection.distance_to_shape_m,
            )
            return PositionPrediction(predicted_position=raw, success=False, timestamp_age_s=age)

        speed = settings.average_speed_kmh
        if predicted_speed is not None and math.isfinite(predicted_speed) and predicted_speed > 0:
            speed = predicted_speed
        trip = trip_stop_sequence(vehicle.trip_id, stop_times)
        ahead = find_stations_ahead(projection, trip, stops, route_shape)
        sim = simulate_movement(age, speed, projection, ahead, route_shape, settings.dwell_time_s)
    except Exception:
        logger.exception("Position prediction failed for vehicle %s", vehicle.id)
        return PositionPrediction(predicted_position=raw, success=False, timestamp_age_s=age)

    return PositionPrediction(
        predicted_position=sim.end_position,
        predicted_distance_m=sim.distance_traveled_m,
        stations_encountered=len(sim.stations_encountered),
        total_dwell_time_s=sim.total_dwell_time_s,
        method="route_shape",
        success=True,
        timestamp_age_s=age,
    )
