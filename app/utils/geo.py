from __future__ import annotations

import math
from numbers import Real
from typing import Any, Mapping, Optional

EARTH_RADIUS_KM = 6371.0


def _coord(value: Any) -> Optional[float]:
    # bool is a Real subclass; a True latitude is not a coordinate
    if isinstance(value, bool) or not isinstance(value, Real):
        return None
    value = float(value)
    if math.isnan(value):
        return None
    return value


def has_coordinates(point: Optional[Mapping[str, Any]]) -> bool:
    if not isinstance(point, Mapping):
        return False
    return _coord(point.get("lat")) is not None and _coord(point.get("lng")) is not None


def distance_km(start: Optional[Mapping[str, Any]], end: Optional[Mapping[str, Any]]) -> float:
    """
    Great-circle (haversine) distance between two {lat, lng} points in km.

    Returns math.inf when either side is missing a coordinate, so stops
    without a location sort behind every located stop.
    """
    if not has_coordinates(start) or not has_coordinates(end):
        return math.inf

    lat1, lng1 = _coord(start["lat"]), _coord(start["lng"])
    lat2, lng2 = _coord(end["lat"]), _coord(end["lng"])

    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)

    h = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    return 2 * EARTH_RADIUS_KM * math.atan2(math.sqrt(h), math.sqrt(1 - h))
