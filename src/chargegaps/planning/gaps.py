from __future__ import annotations

from typing import Any, Iterable

import pandas as pd
import shapely
from shapely.geometry import LineString, MultiPoint, Polygon, mapping
from shapely.geometry.base import BaseGeometry

from chargegaps.model import TrialPoint

# Shape-tightness knob; larger values give smoother, more convex outlines.
DEFAULT_CONCAVITY = 2.0


def concavity_to_ratio(concavity: float) -> float:
    """
    Map an unbounded concavity knob onto shapely's `ratio` in [0, 1]
    (0 = tightest, 1 = convex hull): ratio = concavity / (1 + concavity).
    """
    c = float(concavity)
    if c < 0:
        raise ValueError("concavity must be >= 0")
    return c / (1.0 + c)


class GapAggregator:
    """
    Collects unreachable points and reduces them to one boundary shape.

    Chunk workers fill their own aggregators; after the join the orchestrator
    merges them into one and hulls once over the combined point set.
    """

    def __init__(self, concavity: float = DEFAULT_CONCAVITY) -> None:
        self.concavity = float(concavity)
        self._points: list[TrialPoint] = []

    def __len__(self) -> int:
        return len(self._points)

    @property
    def points(self) -> list[TrialPoint]:
        return list(self._points)

    def add(self, point: TrialPoint) -> None:
        self._points.append(point)

    def extend(self, points: Iterable[TrialPoint]) -> None:
        self._points.extend(points)

    def merge(self, other: "GapAggregator") -> None:
        self._points.extend(other._points)

    def hull(self) -> BaseGeometry:
        """
        Concave hull in (lon, lat) axis order.

        Fewer than three points cannot bound an area: zero or one point yields an
        empty Polygon, two points a LineString the caller may drop.
        """
        coords = [(p.longitude, p.latitude) for p in self._points]
        if len(coords) <= 1:
            return Polygon()
        if len(coords) == 2:
            return LineString(coords)
        return shapely.concave_hull(MultiPoint(coords), ratio=concavity_to_ratio(self.concavity))

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            {
                "lat": [p.latitude for p in self._points],
                "lon": [p.longitude for p in self._points],
                "has_charger": [False] * len(self._points),
            }
        )


def gap_polygon_geojson(hull: BaseGeometry) -> dict[str, Any]:
    features: list[dict[str, Any]] = []
    if not hull.is_empty:
        features.append(
            {
                "type": "Feature",
                "geometry": mapping(hull),
                "properties": {"has_charger": False},
            }
        )
    return {"type": "FeatureCollection", "features": features}


def gap_points_geojson(points: Iterable[TrialPoint]) -> dict[str, Any]:
    return {
        "type": "FeatureCollection",
        "features": [
            {
                "type": "Feature",
                "geometry": {"type": "Point", "coordinates": [float(p.longitude), float(p.latitude)]},
                "properties": {"has_charger": False},
            }
            for p in points
        ],
    }
