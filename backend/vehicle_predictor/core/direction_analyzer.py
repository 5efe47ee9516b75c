"""Classify a vehicle as arriving at or departing from a station.

The vehicle's place in the trip's stop sequence is estimated from the
target stop's scheduled arrival; comparing it with the target's sequence
number gives the direction and a rough minute estimate.
"""

import datetime
import logging
import math
from collections.abc import Sequence

from vehicle_predictor.config import Settings
from vehicle_predictor.core.geometry import is_valid_coordinate
from vehicle_predictor.core.position_predictor import timestamp_age_s, trip_stop_sequence
from vehicle_predictor.schemas.direction import DirectionResult, StopSequenceEntry
from vehicle_predictor.schemas.geo import Stop, StopTime
from vehicle_predictor.schemas.vehicle import VehicleFix

logger = logging.getLogger(__name__)


def parse_time_of_day(raw: str | None, now: datetime.datetime) -> datetime.datetime | None:
    """Turn a GTFS "HH:MM:SS" into a datetime on now's service day.

    Hours past 23 roll over into the next day, as GTFS allows.
    """
    if not raw or not isinstance(raw, str):
        return None
    try:
        parts = [int(p) for p in raw.strip().split(":")]
    except ValueError:
        return None
    if len(parts) not in (2, 3) or any(p < 0 for p in parts):
        return None
    hours, minutes = parts[0], parts[1]
    seconds = parts[2] if len(parts) == 3 else 0
    if minutes > 59 or seconds > 59:
        return None
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return midnight + datetime.timedelta(hours=hours, minutes=minutes, seconds=seconds)


def _estimate_current_sequence(
    target: StopTime,
    trip: list[StopTime],
    now: datetime.datetime,
    settings: Settings,
) -> tuple[float, str]:
    """Return (estimated sequence, confidence)."""
    scheduled = parse_time_of_day(target.arrival_time, now)
    if scheduled is None:
        if target.arrival_time:
            logger.debug("Unparseable arrival time %r for stop %s", target.arrival_time, target.stop_id)
        return trip[len(trip) // 2].sequence, "low"

    diff_min = (scheduled - now).total_seconds() / 60
    per_stop = settings.minutes_per_stop
    if diff_min > 0:
        return max(0, target.sequence - math.ceil(diff_min / per_stop)), "medium"
    if diff_min > -settings.recent_arrival_window_minutes:
        return target.sequence, "medium"
    return target.sequence + math.ceil(abs(diff_min) / per_stop), "low"


def _build_stop_sequence(
    trip: list[StopTime],
    current_sequence: float,
    stops: list[Stop] | None,
    now: datetime.datetime,
) -> list[StopSequenceEntry]:
    names = {s.id: s.name for s in stops or []}
    last = len(trip) - 1
    return [
        StopSequenceEntry(
            stop_id=st.stop_id,
            stop_name=names.get(st.stop_id, f"Stop {st.stop_id}"),
            sequence=st.sequence,
            is_current=st.sequence == current_sequence,
            is_destination=i == last,
            estimated_arrival=parse_time_of_day(st.arrival_time, now),
        )
        for i, st in enumerate(trip)
    ]


def _is_valid_vehicle(vehicle) -> bool:
    return (
        isinstance(vehicle, VehicleFix)
        and bool(vehicle.id)
        and bool(vehicle.trip_id)
        and vehicle.position is not None
        and not math.isnan(vehicle.position.latitude)
        and not math.isnan(vehicle.position.longitude)
    )


def _is_valid_station(station) -> bool:
    return isinstance(station, Stop) and bool(station.id) and is_valid_coordinate(station.coordinates)


def analyze_direction(
    vehicle: VehicleFix | None,
    target_station: Stop | None,
    stop_times: Sequence[StopTime] | None,
    *,
    stops: list[Stop] | None = None,
    now: datetime.datetime | None = None,
    settings: Settings,
) -> DirectionResult:
    """Decide whether a vehicle is arriving at or departing from a station.

    Never raises: any invalid input yields an ``unknown``/``low`` result.
    `now` should be in the agency's local time zone, since scheduled times
    are local times of day.
    """
    if not _is_valid_vehicle(vehicle):
        logger.debug("Direction analysis: invalid vehicle")
        return DirectionResult()
    if not _is_valid_station(target_station):
        logger.debug("Direction analysis: invalid target station")
        return DirectionResult()
    if not isinstance(stop_times, (list, tuple)):
        logger.debug("Direction analysis: stop times is %s, not a list", type(stop_times).__name__)
        return DirectionResult()

    try:
        return _analyze(vehicle, target_station, list(stop_times), stops, now, settings)
    except Exception:
        logger.exception("Direction analysis failed for vehicle %s", vehicle.id)
        return DirectionResult()


def _analyze(
    vehicle: VehicleFix,
    station: Stop,
    stop_times: list[StopTime],
    stops: list[Stop] | None,
    now: datetime.datetime | None,
    settings: Settings,
) -> DirectionResult:
    if now is None:
        now = datetime.datetime.now().astimezone()

    trip = trip_stop_sequence(vehicle.trip_id, [st for st in stop_times if isinstance(st, StopTime)])
    if not trip:
        logger.debug("Vehicle %s: no stop times for trip %s", vehicle.id, vehicle.trip_id)
        return DirectionResult()

    target = next((st for st in trip if st.stop_id == station.id), None)
    if target is None:
        logger.debug("Vehicle %s: station %s not on trip %s", vehicle.id, station.id, vehicle.trip_id)
        return DirectionResult()

    current, confidence = _estimate_current_sequence(target, trip, now, settings)
    minutes_since_update = timestamp_age_s(vehicle.timestamp, now) / 60
    per_stop = settings.minutes_per_stop

    if current < target.sequence:
        direction = "arriving"
        remaining_stops = target.sequence - current
        minutes = max(1.0, remaining_stops * per_stop)
        minutes = max(1.0, minutes - minutes_since_update)
        if confidence == "medium" and remaining_stops <= settings.high_confidence_stop_window:
            confidence = "high"
    elif current > target.sequence:
        direction = "departing"
        stops_since = current - target.sequence
        minutes = stops_since * per_stop
        if not (stops_since <= 2 and confidence == "medium"):
            confidence = "low"
    else:
        direction = "arriving"
        minutes = 0.0
        if confidence == "medium":
            confidence = "high"

    stop_sequence = _build_stop_sequence(trip, current, stops, now) if len(trip) > 1 else None

    logger.debug(
        "Vehicle %s -> station %s: %s in %.1f min (%s), estimated seq %s of target %s",
        vehicle.id, station.id, direction, minutes, confidence, current, target.sequence,
    )
    return DirectionResult(
        direction=direction,
        estimated_minutes=round(minutes),
        confidence=confidence,
        stop_sequence=stop_sequence,
    )
