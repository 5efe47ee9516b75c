"""Great-circle distance and route-shape linear referencing.

Projections are computed in the planar (lon, lat) frame with Shapely, the
same way GTFS shapes are stored; distances are then measured with haversine.
"""

import logging
import math
from dataclasses import dataclass

from shapely.geometry import LineString, Point

from vehicle_predictor.schemas.geo import Coordinate, RouteSegment, RouteShape

logger = logging.getLogger(__name__)

EARTH_RADIUS_M = 6_371_000.0


@dataclass
class SegmentProjection:
    closest_point: Coordinate
    fraction: float  # 0.0–1.0 along the segment
    distance_m: float


@dataclass
class ProjectionResult:
    closest_point: Coordinate
    segment_index: int
    position_along_segment: float  # 0.0–1.0
    distance_to_shape_m: float


def is_valid_coordinate(coord: Coordinate | None) -> bool:
    """True when both components are finite and inside WGS84 ranges."""
    if coord is None:
        return False
    lat, lon = coord.latitude, coord.longitude
    if not (isinstance(lat, (int, float)) and isinstance(lon, (int, float))):
        return False
    if not (math.isfinite(lat) and math.isfinite(lon)):
        return False
    return -90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0


def distance(a: Coordinate, b: Coordinate) -> float:
    """Distance in meters between two coordinates (haversine).

    NaN when any component is not finite.
    """
    if not all(math.isfinite(v) for v in (a.latitude, a.longitude, b.latitude, b.longitude)):
        return math.nan
    lat1 = math.radians(a.latitude)
    lat2 = math.radians(b.latitude)
    dlat = lat2 - lat1
    dlon = math.radians(b.longitude - a.longitude)
    h = (math.sin(dlat / 2) ** 2 +
         math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2)
    # Rounding can push h just outside [0, 1] for antipodal points
    h = min(1.0, max(0.0, h))
    return EARTH_RADIUS_M * 2 * math.asin(math.sqrt(h))


def calculate_bearing(start: Coordinate, end: Coordinate) -> float:
    """Initial bearing in degrees (0–360) from start to end; NaN for non-finite input."""
    if not all(math.isfinite(v) for v in (start.latitude, start.longitude, end.latitude, end.longitude)):
        return math.nan
    lat1 = math.radians(start.latitude)
    lat2 = math.radians(end.latitude)
    dlon = math.radians(end.longitude - start.longitude)
    y = math.sin(dlon) * math.cos(lat2)
    x = math.cos(lat1) * math.sin(lat2) - math.sin(lat1) * math.cos(lat2) * math.cos(dlon)
    return math.degrees(math.atan2(y, x)) % 360


def _segment_line(start: Coordinate, end: Coordinate) -> LineString:
    # Shapely uses (x, y) = (lon, lat)
    return LineString([(start.longitude, start.latitude), (end.longitude, end.latitude)])


def interpolate_segment(start: Coordinate, end: Coordinate, fraction: float) -> Coordinate:
    """Coordinate at the given fraction (clamped to 0–1) of a segment."""
    if fraction <= 0.0 or start == end:
        return start
    if fraction >= 1.0:
        return end
    pt = _segment_line(start, end).interpolate(fraction, normalized=True)
    return Coordinate(latitude=pt.y, longitude=pt.x)


def project_point_to_segment(
    point: Coordinate, seg_start: Coordinate, seg_end: Coordinate,
) -> SegmentProjection:
    """Project a point onto a segment; the closest point never leaves the segment."""
    if seg_start.latitude == seg_end.latitude and seg_start.longitude == seg_end.longitude:
        return SegmentProjection(
            closest_point=seg_start, fraction=0.0, distance_m=distance(point, seg_start),
        )

    line = _segment_line(seg_start, seg_end)
    fraction = line.project(Point(point.longitude, point.latitude), normalized=True)
    fraction = max(0.0, min(1.0, fraction))
    closest = interpolate_segment(seg_start, seg_end, fraction)
    return SegmentProjection(
        closest_point=closest, fraction=fraction, distance_m=distance(point, closest),
    )


def project_point_to_shape(point: Coordinate, shape: RouteShape) -> ProjectionResult:
    """Snap a point to the nearest segment of a route shape.

    Ties are broken by the earliest segment index so the result is
    deterministic. Raises ValueError for a shape without segments.
    """
    if not shape.segments:
        raise ValueError("route shape has no segments")

    best: ProjectionResult | None = None
    for i, seg in enumerate(shape.segments):
        proj = project_point_to_segment(point, seg.start, seg.end)
        if best is None or proj.distance_m < best.distance_to_shape_m:
            best = ProjectionResult(
                closest_point=proj.closest_point,
                segment_index=i,
                position_along_segment=proj.fraction,
                distance_to_shape_m=proj.distance_m,
            )
    return best


def build_route_shape(points: list[Coordinate], shape_id: str | None = None) -> RouteShape:
    """Build a contiguous segment list with haversine lengths from a polyline."""
    segments = [
        RouteSegment(start=a, end=b, distance_m=distance(a, b))
        for a, b in zip(points, points[1:])
    ]
    return RouteShape(shape_id=shape_id, points=list(points), segments=segments)


def route_position(projection: ProjectionResult, shape: RouteShape) -> float:
    """Meters from the shape origin to a projection."""
    total = sum(seg.distance_m for seg in shape.segments[:projection.segment_index])
    if projection.segment_index < len(shape.segments):
        total += shape.segments[projection.segment_index].distance_m * projection.position_along_segment
    return total


def distance_between_projections(
    a: ProjectionResult, b: ProjectionResult, shape: RouteShape,
) -> float:
    """Distance in meters along the shape between two projections."""
    return abs(route_position(b, shape) - route_position(a, shape))


def is_projection_ahead(origin: ProjectionResult, other: ProjectionResult) -> bool:
    """True if `other` lies strictly further along the shape than `origin`."""
    if origin.segment_index != other.segment_index:
        return other.segment_index > origin.segment_index
    return other.position_along_segment > origin.position_along_segment


def move_along_shape(
    start: ProjectionResult, meters: float, shape: RouteShape,
) -> tuple[Coordinate, float]:
    """Walk `meters` forward from a projection.

    Returns (coordinate, meters actually moved). Stops at the terminal point
    of the shape instead of extrapolating past it.
    """
    remaining = max(0.0, meters)
    moved = 0.0
    idx = start.segment_index
    position = start.position_along_segment

    while idx < len(shape.segments):
        seg = shape.segments[idx]
        left_on_segment = (1.0 - position) * seg.distance_m
        if remaining <= left_on_segment and seg.distance_m > 0:
            final = position + remaining / seg.distance_m
            return interpolate_segment(seg.start, seg.end, final), moved + remaining
        remaining -= left_on_segment
        moved += left_on_segment
        idx += 1
        position = 0.0

    return shape.segments[-1].end, moved
