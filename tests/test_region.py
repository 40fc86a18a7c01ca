import pytest

from chargegaps.model import TrialPoint
from chargegaps.spatial.region import (
    BoundingRegion,
    chunk_grid,
    chunkify,
    generate_grid,
    owned_band,
    region_from_settings,
)

REGION = BoundingRegion(lat_min=24.0, lat_max=48.0, lon_min=-124.0, lon_max=-67.0)


@pytest.mark.parametrize("n", [4, 6, 8, 10, 12])
def test_chunkify_band_geometry(n: int) -> None:
    chunks = chunkify(REGION, n)

    assert len(chunks) == n
    for c in chunks:
        assert c.width() == pytest.approx(REGION.width() / (n / 2))
        assert c.height() == pytest.approx(REGION.height())
        assert c.lon_min == REGION.lon_min
        assert c.lon_max == REGION.lon_max
    assert chunks[0].lat_min == REGION.lat_min
    assert chunks[-1].lat_max == REGION.lat_max


def test_chunkify_odd_count_uses_exact_division() -> None:
    chunks = chunkify(REGION, 3)
    assert [c.width() for c in chunks] == pytest.approx([16.0, 16.0, 16.0])
    assert chunks[0].lat_min == 24.0
    assert chunks[-1].lat_min == pytest.approx(32.0)


def test_chunkify_single_and_invalid() -> None:
    assert chunkify(REGION, 1) == [REGION]
    with pytest.raises(ValueError):
        chunkify(REGION, 0)


def test_generate_grid_counts_and_order() -> None:
    region = BoundingRegion(lat_min=0.0, lat_max=1.0, lon_min=0.0, lon_max=2.0)
    grid = generate_grid(region, 0.5)

    assert len(grid) == 2 * 4
    assert grid[0] == TrialPoint(0.0, 0.0)
    assert grid[1] == TrialPoint(0.0, 0.5)
    assert grid[4] == TrialPoint(0.5, 0.0)
    assert all(region.contains(p) for p in grid)


def test_generate_grid_rejects_bad_resolution() -> None:
    with pytest.raises(ValueError):
        generate_grid(REGION, 0.0)


@pytest.mark.parametrize("n", [1, 2, 3, 4, 5, 7])
def test_chunk_grids_partition_the_region_grid(n: int) -> None:
    region = BoundingRegion(lat_min=0.0, lat_max=10.0, lon_min=0.0, lon_max=1.0)
    chunks = chunkify(region, n)

    combined = [p for i in range(n) for p in chunk_grid(region, chunks, i, 0.5)]
    assert combined == generate_grid(region, 0.5)


def test_owned_band_lies_inside_its_chunk() -> None:
    chunks = chunkify(REGION, 6)
    for i, chunk in enumerate(chunks):
        lo, hi = owned_band(REGION, i, 6)
        assert chunk.lat_min <= lo + 1e-9
        assert hi <= chunk.lat_max + 1e-9
    with pytest.raises(ValueError):
        owned_band(REGION, 6, 6)


def test_from_corners_normalizes_any_corner_order() -> None:
    r = BoundingRegion.from_corners(49.0, -66.0, 24.0, -124.0)
    assert (r.lat_min, r.lat_max, r.lon_min, r.lon_max) == (24.0, 49.0, -124.0, -66.0)

    with pytest.raises(ValueError):
        BoundingRegion(lat_min=5.0, lat_max=1.0, lon_min=0.0, lon_max=1.0)


def test_region_from_settings() -> None:
    settings = {"region": {"lat_min": 24.5, "lat_max": 49.2, "lon_min": -124.8, "lon_max": -66.9}}
    assert region_from_settings(settings) == BoundingRegion(24.5, 49.2, -124.8, -66.9)


def test_chunk_grid_rejects_chunks_from_another_region() -> None:
    region = BoundingRegion(lat_min=0.0, lat_max=10.0, lon_min=0.0, lon_max=1.0)
    foreign = chunkify(BoundingRegion(lat_min=20.0, lat_max=30.0, lon_min=0.0, lon_max=1.0), 4)

    with pytest.raises(ValueError):
        chunk_grid(region, foreign, 1, 0.5)
