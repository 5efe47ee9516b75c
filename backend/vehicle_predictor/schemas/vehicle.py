import datetime

from pydantic import BaseModel

from vehicle_predictor.schemas.geo import Coordinate, RouteShape, Stop, StopTime


class VehicleFix(BaseModel):
    id: str
    route_id: str | None = None
    trip_id: str | None = None
    label: str = ""
    position: Coordinate
    timestamp: datetime.datetime | str
    speed: float | None = None  # km/h
    bearing: float | None = None
    is_wheelchair_accessible: bool = False
    is_bike_accessible: bool = False


class PredictionMetadata(BaseModel):
    # Position prediction
    predicted_distance_m: float = 0.0
    stations_encountered: int = 0
    total_dwell_time_s: float = 0.0
    position_method: str = "fallback"
    position_applied: bool = False
    timestamp_age_s: float = 0.0

    # Speed prediction
    predicted_speed: float | None = None
    speed_method: str | None = None
    speed_confidence: str | None = None
    speed_applied: bool = False

    at_station: bool = False
    station_id: str | None = None


class EnhancedVehicle(VehicleFix):
    api_latitude: float
    api_longitude: float
    api_speed: float | None = None
    prediction: PredictionMetadata


class VehicleUpdate(BaseModel):
    type: str = "update"
    vehicles: list[EnhancedVehicle]


class PredictionSummary(BaseModel):
    total_vehicles: int
    position_predictions_applied: int
    speed_predictions_applied: int
    average_timestamp_age_s: float
    average_predicted_distance_m: float


class EnhanceRequest(BaseModel):
    vehicles: list[VehicleFix]
    route_shapes: dict[str, RouteShape] = {}  # keyed by trip id or route id
    stop_times_by_trip: dict[str, list[StopTime]] = {}
    stops: list[Stop] = []
    now: datetime.datetime | None = None
