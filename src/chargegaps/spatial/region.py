"""
Bounding regions, sample grids and chunking for parallel evaluation.

Axis naming follows the charger-gap convention used across the package:
`width` is the latitude extent (chunks are latitude bands) and `height` is the
longitude extent.

Chunking policy: `chunkify(region, n)` returns `n` bands of width
`region.width() / (n / 2)` spanning the full longitude range, first band
starting at `lat_min`, last band ending at `lat_max`. Those `n` bands are
twice as wide in total as the region, so consecutive bands overlap; each band
therefore also *owns* a disjoint `width / n` slice (`owned_band`) and only
evaluates grid rows inside that slice (`chunk_grid`).
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any

import numpy as np

from chargegaps.model import TrialPoint


@dataclass(frozen=True)
class BoundingRegion:
    lat_min: float
    lat_max: float
    lon_min: float
    lon_max: float

    def __post_init__(self) -> None:
        if self.lat_min > self.lat_max:
            raise ValueError(f"lat_min {self.lat_min} > lat_max {self.lat_max}")
        if self.lon_min > self.lon_max:
            raise ValueError(f"lon_min {self.lon_min} > lon_max {self.lon_max}")

    @classmethod
    def from_corners(cls, lat_a: float, lon_a: float, lat_b: float, lon_b: float) -> "BoundingRegion":
        """
        Normalize two opposite corners given in any order or hemisphere
        (e.g. a north-west start and south-east end) into min/max bounds.
        """
        return cls(
            lat_min=min(float(lat_a), float(lat_b)),
            lat_max=max(float(lat_a), float(lat_b)),
            lon_min=min(float(lon_a), float(lon_b)),
            lon_max=max(float(lon_a), float(lon_b)),
        )

    def width(self) -> float:
        return self.lat_max - self.lat_min

    def height(self) -> float:
        return self.lon_max - self.lon_min

    def contains(self, point: TrialPoint) -> bool:
        return (
            self.lat_min <= point.latitude <= self.lat_max
            and self.lon_min <= point.longitude <= self.lon_max
        )


def region_from_settings(settings: dict[str, Any]) -> BoundingRegion:
    r = settings["region"]
    return BoundingRegion.from_corners(
        float(r["lat_min"]),
        float(r["lon_min"]),
        float(r["lat_max"]),
        float(r["lon_max"]),
    )


def _axis_count(extent: float, resolution: float) -> int:
    return int(math.floor(extent / resolution))


def _lattice_axes(region: BoundingRegion, resolution: float) -> tuple[np.ndarray, np.ndarray]:
    if resolution <= 0:
        raise ValueError("resolution must be > 0")
    n_lat = _axis_count(region.width(), resolution)
    n_lon = _axis_count(region.height(), resolution)
    # Multiply indices instead of accumulating steps so rounding error does not drift.
    lats = region.lat_min + np.arange(n_lat, dtype=float) * resolution
    lons = region.lon_min + np.arange(n_lon, dtype=float) * resolution
    return lats, lons


def _points(lats: np.ndarray, lons: np.ndarray) -> list[TrialPoint]:
    return [TrialPoint(latitude=float(lat), longitude=float(lon)) for lat in lats for lon in lons]


def generate_grid(region: BoundingRegion, resolution: float) -> list[TrialPoint]:
    """
    One point per lattice cell from the (lat_min, lon_min) corner, stepping by
    `resolution` degrees: floor(width/res) rows x floor(height/res) columns,
    latitude outer and longitude inner.
    """
    return _points(*_lattice_axes(region, resolution))


def chunkify(region: BoundingRegion, n: int) -> list[BoundingRegion]:
    """
    Split `region` into `n` latitude bands of width `width / (n / 2)`.

    Division is exact (not truncated), so odd `n` gets bands of `2 * width / n`.
    `n == 1` returns the region itself.
    """
    n = int(n)
    if n < 1:
        raise ValueError("chunk count must be >= 1")
    if n == 1:
        return [region]

    total = region.width()
    band = total / (n / 2)
    stride = (total - band) / (n - 1)
    chunks: list[BoundingRegion] = []
    for i in range(n):
        start = region.lat_min + i * stride
        end = start + band
        if i == n - 1:
            # Pin the last edge so float drift never leaves a sliver uncovered.
            start = region.lat_max - band
            end = region.lat_max
        chunks.append(
            BoundingRegion(
                lat_min=region.lat_min if i == 0 else start,
                lat_max=end,
                lon_min=region.lon_min,
                lon_max=region.lon_max,
            )
        )
    return chunks


def owned_band(region: BoundingRegion, index: int, n: int) -> tuple[float, float]:
    """Disjoint latitude slice [lo, hi) assigned to chunk `index` of `n`."""
    if not 0 <= index < n:
        raise ValueError(f"chunk index {index} out of range for {n} chunks")
    slice_w = region.width() / n
    lo = region.lat_min + index * slice_w
    hi = region.lat_max if index == n - 1 else region.lat_min + (index + 1) * slice_w
    return lo, hi


def chunk_grid(
    region: BoundingRegion,
    chunks: list[BoundingRegion],
    index: int,
    resolution: float,
) -> list[TrialPoint]:
    """
    Rows of the region's lattice that fall inside the slice owned by
    `chunks[index]`. Every chunk samples the same lattice, so the union over
    all chunks equals `generate_grid(region, resolution)` with no repeats.

    Raises ValueError when the owned slice is not covered by `chunks[index]`,
    i.e. the chunk list does not come from `chunkify(region, len(chunks))`.
    """
    n = len(chunks)
    lo, hi = owned_band(region, index, n)
    chunk = chunks[index]
    tol = 1e-9 * max(1.0, region.width())
    if lo < chunk.lat_min - tol or hi > chunk.lat_max + tol:
        raise ValueError(
            f"chunk {index} [{chunk.lat_min}, {chunk.lat_max}] does not cover its owned slice [{lo}, {hi}]"
        )
    lats, lons = _lattice_axes(region, resolution)
    upper = lats <= hi if index == n - 1 else lats < hi
    rows = lats[(lats >= lo) & upper]
    cols = lons[(lons >= chunk.lon_min) & (lons <= chunk.lon_max)]
    return _points(rows, cols)
