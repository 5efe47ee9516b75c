import datetime
from typing import Literal

from pydantic import BaseModel

from vehicle_predictor.schemas.geo import Stop, StopTime
from vehicle_predictor.schemas.vehicle import VehicleFix

DirectionStatus = Literal["arriving", "departing", "unknown"]
ConfidenceLevel = Literal["high", "medium", "low"]


class StopSequenceEntry(BaseModel):
    stop_id: str
    stop_name: str
    sequence: float
    is_current: bool
    is_destination: bool
    estimated_arrival: datetime.datetime | None = None


class DirectionResult(BaseModel):
    direction: DirectionStatus = "unknown"
    estimated_minutes: int = 0
    confidence: ConfidenceLevel = "low"
    stop_sequence: list[StopSequenceEntry] | None = None


class DirectionRequest(BaseModel):
    vehicle: VehicleFix
    station: Stop
    stop_times: list[StopTime]
    stops: list[Stop] | None = None
    now: datetime.datetime | None = None
