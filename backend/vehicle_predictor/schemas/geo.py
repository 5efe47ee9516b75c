from pydantic import BaseModel


class Coordinate(BaseModel):
    # Unconstrained on purpose: range checks live in core.geometry.is_valid_coordinate
    latitude: float
    longitude: float


class RouteSegment(BaseModel):
    start: Coordinate
    end: Coordinate
    distance_m: float


class RouteShape(BaseModel):
    shape_id: str | None = None
    points: list[Coordinate] = []
    segments: list[RouteSegment] = []  # ordered origin -> terminus, contiguous


class Stop(BaseModel):
    id: str
    name: str
    coordinates: Coordinate
    route_ids: list[str] = []


class StopTime(BaseModel):
    trip_id: str
    stop_id: str
    sequence: float
    arrival_time: str | None = None  # "HH:MM:SS", hours may exceed 23
    departure_time: str | None = None
