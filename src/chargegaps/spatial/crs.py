"""
Degree-space helpers for radius searches on a rectangular index.

The charger index only answers axis-aligned rectangle queries in lat/lon
degrees, while reachability is a great-circle radius. We therefore build a
rectangle that is guaranteed to *contain* the circle:

- latitude offset: (radius + padding) / R, converted to degrees;
- longitude offset: the same angle divided by cos(latitude), because a degree
  of longitude shrinks toward the poles;
- padding absorbs the difference between this flat approximation and the true
  spherical cap (25 km is plenty away from the poles).

Exact distances are computed afterwards; the rectangle is only a superset filter.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from chargegaps.spatial.geodesic import EARTH_RADIUS_M

# Below this cos(latitude) the cap touches a pole and every longitude qualifies.
_MIN_COS_LAT = 1e-9


@dataclass(frozen=True)
class DegreeRect:
    lat_min: float
    lat_max: float
    lon_min: float
    lon_max: float


def meters_to_degree_offsets(lat_deg: float, distance_m: float) -> tuple[float, float]:
    """Return (lat_offset_deg, lon_offset_deg) covering `distance_m` around `lat_deg`."""
    angle_deg = math.degrees(float(distance_m) / EARTH_RADIUS_M)
    cos_lat = math.cos(math.radians(lat_deg))
    if cos_lat <= _MIN_COS_LAT:
        return angle_deg, 360.0
    return angle_deg, angle_deg / cos_lat


def search_rectangle(lat_deg: float, lon_deg: float, radius_m: float, padding_m: float) -> DegreeRect:
    d_lat, d_lon = meters_to_degree_offsets(lat_deg, float(radius_m) + float(padding_m))
    lat_min = lat_deg - d_lat
    lat_max = lat_deg + d_lat
    # If the padded cap reaches a pole, the circle can wrap over it: take all longitudes.
    if lat_min <= -90.0 or lat_max >= 90.0 or d_lon >= 180.0:
        return DegreeRect(max(lat_min, -90.0), min(lat_max, 90.0), -180.0, 180.0)
    # The cap-edge latitude is where longitude degrees are shortest; widen for it.
    edge_lat = max(abs(lat_min), abs(lat_max))
    _, d_lon_edge = meters_to_degree_offsets(edge_lat, float(radius_m) + float(padding_m))
    d_lon = max(d_lon, min(d_lon_edge, 180.0))
    return DegreeRect(lat_min, lat_max, lon_deg - d_lon, lon_deg + d_lon)


def split_antimeridian(rect: DegreeRect) -> list[DegreeRect]:
    """Split a rectangle whose longitude span leaves [-180, 180] into in-range parts."""
    if rect.lon_min >= -180.0 and rect.lon_max <= 180.0:
        return [rect]
    if rect.lon_max - rect.lon_min >= 360.0:
        return [DegreeRect(rect.lat_min, rect.lat_max, -180.0, 180.0)]
    parts: list[DegreeRect] = []
    if rect.lon_min < -180.0:
        parts.append(DegreeRect(rect.lat_min, rect.lat_max, rect.lon_min + 360.0, 180.0))
        parts.append(DegreeRect(rect.lat_min, rect.lat_max, -180.0, rect.lon_max))
    else:
        parts.append(DegreeRect(rect.lat_min, rect.lat_max, rect.lon_min, 180.0))
        parts.append(DegreeRect(rect.lat_min, rect.lat_max, -180.0, rect.lon_max - 360.0))
    return parts
