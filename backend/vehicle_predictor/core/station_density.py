"""Centroid of the stop network, used as a proxy for the urban core."""

import logging

from vehicle_predictor.core.geometry import distance, is_valid_coordinate
from vehicle_predictor.schemas.geo import Coordinate, Stop

logger = logging.getLogger(__name__)


class EmptyStopsError(ValueError):
    """Raised when a density center is requested without any usable stop."""


def density_center(stops: list[Stop]) -> Coordinate:
    """Arithmetic mean of stop latitudes and longitudes.

    Stops with invalid coordinates are ignored. Raises EmptyStopsError when
    nothing is left; (0, 0) is a real place and must never stand in for
    "no data".
    """
    valid = [s.coordinates for s in stops if is_valid_coordinate(s.coordinates)]
    if not valid:
        raise EmptyStopsError("cannot compute a density center without stops")

    skipped = len(stops) - len(valid)
    if skipped:
        logger.debug("Density center: skipped %d stops with invalid coordinates", skipped)

    lat = sum(c.latitude for c in valid) / len(valid)
    lon = sum(c.longitude for c in valid) / len(valid)
    return Coordinate(latitude=lat, longitude=lon)


def within_radius(stops: list[Stop], center: Coordinate, radius_m: float) -> list[Stop]:
    """Stops no further than radius_m from center, in input order."""
    if not is_valid_coordinate(center):
        return []
    return [
        s for s in stops
        if is_valid_coordinate(s.coordinates) and distance(center, s.coordinates) <= radius_m
    ]
