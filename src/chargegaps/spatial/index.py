"""
Read-only spatial index over charger locations.

Chargers are stored in a KD-tree over raw (lat, lon) degrees. A rectangle
query becomes a Chebyshev (L-infinity) ball query around the rectangle's
center with the larger half-extent as radius, followed by an exact,
boundary-inclusive bounds check. Built once per run and shared by all workers.
"""

from __future__ import annotations

from typing import Iterable

import numpy as np
import pandas as pd
from scipy.spatial import cKDTree

from chargegaps.model import ChargerLocation, TrialPoint
from chargegaps.spatial.crs import search_rectangle, split_antimeridian
from chargegaps.spatial.geodesic import haversine_m_array


class ChargerIndex:
    def __init__(self, chargers: Iterable[ChargerLocation]) -> None:
        by_id: dict[int, ChargerLocation] = {}
        for charger in chargers:
            by_id[int(charger.id)] = charger
        self._by_id = by_id
        self._ids = np.array(list(by_id.keys()), dtype=np.int64)
        self._lat = np.array([c.latitude for c in by_id.values()], dtype=float)
        self._lon = np.array([c.longitude for c in by_id.values()], dtype=float)
        # cKDTree cannot be built over zero points; an empty index answers every query with [].
        self._tree = cKDTree(np.column_stack([self._lat, self._lon])) if len(by_id) else None

    @classmethod
    def build(cls, chargers: Iterable[ChargerLocation]) -> "ChargerIndex":
        return cls(chargers)

    @classmethod
    def from_frame(cls, chargers: pd.DataFrame) -> "ChargerIndex":
        required = {"id", "lat", "lon"}
        missing = required - set(chargers.columns)
        if missing:
            raise ValueError(f"Missing charger columns: {sorted(missing)}")
        return cls(
            ChargerLocation(id=int(row.id), latitude=float(row.lat), longitude=float(row.lon))
            for row in chargers[["id", "lat", "lon"]].itertuples(index=False)
        )

    def __len__(self) -> int:
        return len(self._by_id)

    def get(self, charger_id: int) -> ChargerLocation:
        return self._by_id[int(charger_id)]

    def chargers(self) -> list[ChargerLocation]:
        return list(self._by_id.values())

    def _rectangle_positions(self, lat_min: float, lat_max: float, lon_min: float, lon_max: float) -> np.ndarray:
        if self._tree is None or lat_min > lat_max or lon_min > lon_max:
            return np.empty(0, dtype=int)
        center = [(lat_min + lat_max) / 2.0, (lon_min + lon_max) / 2.0]
        # Slightly inflated so points exactly on the boundary survive center rounding.
        radius = max(lat_max - lat_min, lon_max - lon_min) / 2.0 * (1.0 + 1e-9) + 1e-12
        idxs = np.asarray(self._tree.query_ball_point(center, radius, p=np.inf), dtype=int)
        if idxs.size == 0:
            return idxs
        lat = self._lat[idxs]
        lon = self._lon[idxs]
        inside = (lat >= lat_min) & (lat <= lat_max) & (lon >= lon_min) & (lon <= lon_max)
        return idxs[inside]

    def query_rectangle(self, lat_min: float, lat_max: float, lon_min: float, lon_max: float) -> list[int]:
        """Ids of chargers with lat_min <= lat <= lat_max and lon_min <= lon <= lon_max."""
        return [int(i) for i in self._ids[self._rectangle_positions(lat_min, lat_max, lon_min, lon_max)]]

    def nearest_chargers(
        self,
        point: TrialPoint,
        *,
        max_range_m: float,
        padding_m: float,
    ) -> list[tuple[ChargerLocation, float]]:
        """
        Chargers strictly closer than `max_range_m` (great-circle), nearest first.
        Equal distances are ordered by id so repeated calls return identical lists.
        """
        rect = search_rectangle(point.latitude, point.longitude, max_range_m, padding_m)
        parts = [
            self._rectangle_positions(p.lat_min, p.lat_max, p.lon_min, p.lon_max) for p in split_antimeridian(rect)
        ]
        # A charger on the antimeridian can match both halves.
        pos = np.unique(np.concatenate(parts)) if parts else np.empty(0, dtype=int)
        if pos.size == 0:
            return []

        dist = haversine_m_array(point.latitude, point.longitude, self._lat[pos], self._lon[pos])
        keep = dist < max_range_m
        pos = pos[keep]
        dist = dist[keep]
        ids = self._ids[pos]
        order = np.lexsort((ids, dist))
        return [(self._by_id[int(ids[k])], float(dist[k])) for k in order]
