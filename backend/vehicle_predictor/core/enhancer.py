"""Main orchestrator: turns a batch of raw fixes into enhanced vehicle records."""

import datetime
import logging

import orjson

from vehicle_predictor.config import Settings
from vehicle_predictor.core.direction_analyzer import analyze_direction
from vehicle_predictor.core.position_predictor import predict_vehicle_position
from vehicle_predictor.core.speed_predictor import apply_station_override, predict_vehicle_speed
from vehicle_predictor.core.station_density import EmptyStopsError, density_center
from vehicle_predictor.schemas.direction import DirectionResult
from vehicle_predictor.schemas.geo import Coordinate, RouteShape, Stop, StopTime
from vehicle_predictor.schemas.vehicle import (
    EnhancedVehicle,
    PredictionMetadata,
    PredictionSummary,
    VehicleFix,
    VehicleUpdate,
)

logger = logging.getLogger(__name__)


class PredictionEngine:
    """Stateless prediction pipeline bound to one immutable Settings object.

    Per vehicle, a single refinement pass runs:

    1. speed cascade on the raw fix and the raw batch,
    2. position prediction using that speed,
    3. at-station override on the predicted position.

    No step is repeated, so the result never depends on iteration order or
    on another vehicle's predicted output.
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    def enhance_vehicle(
        self,
        vehicle: VehicleFix,
        *,
        route_shape: RouteShape | None = None,
        stop_times: list[StopTime] | None = None,
        stops: list[Stop] | None = None,
        nearby_vehicles: list[VehicleFix] | None = None,
        density_center: Coordinate | None = None,
        include_speed: bool = True,
        now: datetime.datetime | None = None,
    ) -> EnhancedVehicle:
        if now is None:
            now = datetime.datetime.now(datetime.timezone.utc)

        speed_result = None
        if include_speed:
            speed_result = predict_vehicle_speed(
                vehicle, nearby_vehicles or [], density_center, self.settings,
            )

        position = predict_vehicle_position(
            vehicle, route_shape, stop_times, stops,
            predicted_speed=speed_result.speed if speed_result else None,
            now=now,
            settings=self.settings,
        )

        meta = PredictionMetadata(
            predicted_distance_m=position.predicted_distance_m,
            stations_encountered=position.stations_encountered,
            total_dwell_time_s=position.total_dwell_time_s,
            position_method=position.method,
            position_applied=position.success,
            timestamp_age_s=position.timestamp_age_s,
        )
        speed = vehicle.speed

        if speed_result is not None:
            speed_result, station_id = apply_station_override(
                speed_result, position.predicted_position, stops or [], self.settings,
            )
            speed = speed_result.speed
            meta.predicted_speed = speed_result.speed
            meta.speed_method = speed_result.method
            meta.speed_confidence = speed_result.confidence
            meta.speed_applied = True
            meta.at_station = station_id is not None
            meta.station_id = station_id

        fields = dict(vehicle)
        fields.update(
            position=position.predicted_position,
            speed=speed,
            api_latitude=vehicle.position.latitude,
            api_longitude=vehicle.position.longitude,
            api_speed=vehicle.speed,
            prediction=meta,
        )
        return EnhancedVehicle(**fields)

    def enhance_vehicles(
        self,
        vehicles: list[VehicleFix],
        *,
        route_shapes: dict[str, RouteShape] | None = None,
        stop_times_by_trip: dict[str, list[StopTime]] | None = None,
        stops: list[Stop] | None = None,
        include_speed: bool = True,
        now: datetime.datetime | None = None,
    ) -> list[EnhancedVehicle]:
        """Enhance a batch; every vehicle reads only raw batch data."""
        if now is None:
            now = datetime.datetime.now(datetime.timezone.utc)
        route_shapes = route_shapes or {}
        stop_times_by_trip = stop_times_by_trip or {}
        stops = stops or []

        center = None
        if include_speed:
            try:
                center = density_center(stops)
            except EmptyStopsError:
                logger.debug("No usable stops: location-based speed disabled for this batch")

        results = [
            self.enhance_vehicle(
                v,
                route_shape=self._resolve_shape(v, route_shapes),
                stop_times=stop_times_by_trip.get(v.trip_id) if v.trip_id else None,
                stops=stops,
                nearby_vehicles=vehicles,
                density_center=center,
                include_speed=include_speed,
                now=now,
            )
            for v in vehicles
        ]

        summary = prediction_summary(results)
        logger.info(
            "Enhanced %d vehicles: %d positions predicted, %d speeds",
            summary.total_vehicles, summary.position_predictions_applied,
            summary.speed_predictions_applied,
        )
        return results

    def analyze_direction(
        self,
        vehicle: VehicleFix | None,
        target_station: Stop | None,
        stop_times: list[StopTime] | None,
        *,
        stops: list[Stop] | None = None,
        now: datetime.datetime | None = None,
    ) -> DirectionResult:
        return analyze_direction(
            vehicle, target_station, stop_times, stops=stops, now=now, settings=self.settings,
        )

    @staticmethod
    def _resolve_shape(vehicle: VehicleFix, route_shapes: dict[str, RouteShape]) -> RouteShape | None:
        if not vehicle.trip_id:
            return None
        shape = route_shapes.get(vehicle.trip_id)
        if shape is None and vehicle.route_id:
            shape = route_shapes.get(str(vehicle.route_id))
        return shape


def has_prediction_applied(vehicle: EnhancedVehicle) -> bool:
    return vehicle.prediction.position_applied


def original_coordinates(vehicle: EnhancedVehicle) -> Coordinate:
    """The position reported by the feed, before prediction."""
    return Coordinate(latitude=vehicle.api_latitude, longitude=vehicle.api_longitude)


def prediction_summary(vehicles: list[EnhancedVehicle]) -> PredictionSummary:
    """Batch totals for debugging dashboards."""
    total = len(vehicles)
    applied = [v for v in vehicles if v.prediction.position_applied]
    speeds = sum(1 for v in vehicles if v.prediction.speed_applied)
    total_age = sum(v.prediction.timestamp_age_s for v in vehicles)
    total_dist = sum(v.prediction.predicted_distance_m for v in applied)
    return PredictionSummary(
        total_vehicles=total,
        position_predictions_applied=len(applied),
        speed_predictions_applied=speeds,
        average_timestamp_age_s=total_age / total if total else 0.0,
        average_predicted_distance_m=total_dist / len(applied) if applied else 0.0,
    )


def serialize_update(vehicles: list[EnhancedVehicle]) -> bytes:
    """Encode a batch as the JSON update envelope sent to clients."""
    return orjson.dumps(VehicleUpdate(vehicles=vehicles).model_dump(mode="json"))
