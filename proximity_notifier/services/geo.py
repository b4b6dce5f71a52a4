"""Great-circle distance helpers."""

import math
from dataclasses import dataclass
from typing import Optional

EARTH_RADIUS_KM = 6371.0
# Length of one degree of latitude on the Haversine sphere.
KM_PER_DEGREE = EARTH_RADIUS_KM * math.pi / 180.0


def distance_km(
    lat1: Optional[float],
    lon1: Optional[float],
    lat2: Optional[float],
    lon2: Optional[float],
) -> Optional[float]:
    """Haversine distance in kilometres, or None when any coordinate is missing."""
    if lat1 is None or lon1 is None or lat2 is None or lon2 is None:
        return None

    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlam = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlam / 2) ** 2
    # Rounding can push a fractionally past 1 for antipodal points.
    a = min(1.0, max(0.0, a))
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


@dataclass(frozen=True)
class BoundingBox:
    min_lat: float
    max_lat: float
    min_lon: float
    max_lon: float
    # True when the box crosses the antimeridian; min_lon > max_lon then.
    wraps_longitude: bool = False


def bounding_box(lat: float, lon: float, radius_km: float) -> BoundingBox:
    """Lat/lon envelope containing every point within ``radius_km`` of (lat, lon).

    The box is a superset of the circle, so callers must still apply
    :func:`distance_km` to the rows it returns.
    """
    dlat = radius_km / KM_PER_DEGREE
    min_lat = max(-90.0, lat - dlat)
    max_lat = min(90.0, lat + dlat)

    # Near the poles every longitude is within reach.
    if min_lat <= -90.0 or max_lat >= 90.0:
        return BoundingBox(min_lat, max_lat, -180.0, 180.0)

    # Widest longitude span occurs at the box edge nearest a pole.
    widest_lat = max(abs(min_lat), abs(max_lat))
    cos_lat = math.cos(math.radians(widest_lat))
    dlon = radius_km / (KM_PER_DEGREE * cos_lat) if cos_lat > 1e-12 else 180.0
    if dlon >= 180.0:
        return BoundingBox(min_lat, max_lat, -180.0, 180.0)

    min_lon = lon - dlon
    max_lon = lon + dlon
    if min_lon < -180.0:
        return BoundingBox(min_lat, max_lat, min_lon + 360.0, max_lon, wraps_longitude=True)
    if max_lon > 180.0:
        return BoundingBox(min_lat, max_lat, min_lon, max_lon - 360.0, wraps_longitude=True)
    return BoundingBox(min_lat, max_lat, min_lon, max_lon)
