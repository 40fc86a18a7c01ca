"""
Great-circle distances on a spherical Earth (haversine).

`haversine_m` handles one pair; `haversine_m_array` measures from one point to
many chargers at once for the spatial index. Both use the same formula.
"""

from __future__ import annotations

import math

import numpy as np

EARTH_RADIUS_M = 6_371_000.0


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat1 - lat2)
    d_lambda = math.radians(lon1 - lon2)
    a = math.sin(d_phi / 2.0) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2.0) ** 2
    # Rounding can push `a` a hair past 1.0 for antipodal inputs.
    a = min(1.0, max(0.0, a))
    c = 2.0 * math.atan2(math.sqrt(a), math.sqrt(1.0 - a))
    return EARTH_RADIUS_M * c


def haversine_m_array(lat: float, lon: float, lats: np.ndarray, lons: np.ndarray) -> np.ndarray:
    """Distances in meters from one point to many; same formula and clamp as `haversine_m`."""
    lats = np.asarray(lats, dtype=float)
    lons = np.asarray(lons, dtype=float)
    phi1 = math.radians(lat)
    phi2 = np.radians(lats)
    d_phi = np.radians(lat - lats)
    d_lambda = np.radians(lon - lons)
    a = np.sin(d_phi / 2.0) ** 2 + math.cos(phi1) * np.cos(phi2) * np.sin(d_lambda / 2.0) ** 2
    a = np.clip(a, 0.0, 1.0)
    c = 2.0 * np.arctan2(np.sqrt(a), np.sqrt(1.0 - a))
    return EARTH_RADIUS_M * c
