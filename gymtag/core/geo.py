"""Great-circle distance and nearest-location lookup."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable, Mapping, Optional

from gymtag.core.constants import EARTH_RADIUS_METERS, MAX_DISTANCE_METERS
from gymtag.core.models import Coordinate

DistanceFn = Callable[[Coordinate, Coordinate], float]


def haversine_meters(origin: Coordinate, target: Coordinate) -> float:
    """Great-circle distance in meters on a spherical Earth."""
    lat1 = math.radians(origin.latitude)
    lat2 = math.radians(target.latitude)
    d_lat = lat2 - lat1
    d_lon = math.radians(target.longitude - origin.longitude)

    a = math.sin(d_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(d_lon / 2) ** 2
    return 2 * EARTH_RADIUS_METERS * math.asin(min(1.0, math.sqrt(a)))


@dataclass(frozen=True)
class NearestLocation:
    location_id: str
    distance_meters: float


def nearest_location(
    coordinate: Coordinate,
    profile_coordinates: Mapping[str, Coordinate],
    max_distance_meters: float = MAX_DISTANCE_METERS,
    distance_fn: DistanceFn = haversine_meters,
) -> Optional[NearestLocation]:
    """Closest profile within ``max_distance_meters`` (inclusive), else None.

    Profiles are visited in mapping order and equal distances keep the first.
    """
    best: Optional[NearestLocation] = None
    for location_id, location_coordinate in profile_coordinates.items():
        distance = distance_fn(coordinate, location_coordinate)
        if best is None or distance < best.distance_meters:
            best = NearestLocation(location_id=location_id, distance_meters=distance)

    if best is None or best.distance_meters > max_distance_meters:
        return None
    return best
