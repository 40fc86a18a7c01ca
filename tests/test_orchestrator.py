from __future__ import annotations

import logging
import threading

import pytest

from chargegaps.model import ChargerLocation
from chargegaps.planning.orchestrator import ProgressTracker, evaluate_region
from chargegaps.reachability.classifier import ReachabilityConfig
from chargegaps.routing.osrm_client import OracleUnavailableError
from chargegaps.spatial.geodesic import haversine_m
from chargegaps.spatial.index import ChargerIndex
from chargegaps.spatial.region import BoundingRegion

REGION = BoundingRegion(lat_min=30.0, lat_max=34.0, lon_min=-100.0, lon_max=-96.0)
CONFIG = ReachabilityConfig()


class _DetourOracle:
    # Driving distance = great-circle distance * factor; safe to share across threads.
    def __init__(self, factor: float = 1.3) -> None:
        self.factor = factor
        self._lock = threading.Lock()
        self.calls = 0

    def driving_distance_m(self, origin_lat, origin_lon, dest_lat, dest_lon):
        with self._lock:
            self.calls += 1
        return haversine_m(origin_lat, origin_lon, dest_lat, dest_lon) * self.factor


class _DownOracle:
    def driving_distance_m(self, origin_lat, origin_lon, dest_lat, dest_lon):
        raise OracleUnavailableError("router down")


def _index() -> ChargerIndex:
    return ChargerIndex.build(
        [
            ChargerLocation(id=1, latitude=30.1, longitude=-99.9),
            ChargerLocation(id=2, latitude=36.5, longitude=-93.0),
        ]
    )


def _sorted_points(points):
    return sorted((p.latitude, p.longitude) for p in points)


def test_chunked_run_matches_sequential_run() -> None:
    index = _index()
    seq = evaluate_region(REGION, index, _DetourOracle(), CONFIG, resolution=0.25, chunks=1)
    par = evaluate_region(REGION, index, _DetourOracle(), CONFIG, resolution=0.25, chunks=4, workers=4)

    assert seq.counts.total == 16 * 16
    assert par.counts.total == seq.counts.total
    assert par.counts.reachable == seq.counts.reachable
    assert par.counts.unreachable == seq.counts.unreachable
    assert par.counts.maybe == seq.counts.maybe
    assert par.counts.oracle_calls == seq.counts.oracle_calls
    assert _sorted_points(par.gaps.points) == _sorted_points(seq.gaps.points)
    assert par.chunks == 4
    assert par.hull.equals(seq.hull)


def test_no_chargers_means_everything_is_a_gap_without_oracle_calls() -> None:
    oracle = _DetourOracle()
    result = evaluate_region(REGION, ChargerIndex.build([]), oracle, CONFIG, resolution=0.5, chunks=2)

    assert result.counts.unreachable == result.counts.total == 8 * 8
    assert result.counts.maybe == 0
    assert oracle.calls == 0
    assert result.hull.geom_type == "Polygon"
    assert result.hull.area > 0


def test_router_outage_marks_maybe_points_unreachable() -> None:
    result = evaluate_region(REGION, _index(), _DownOracle(), CONFIG, resolution=0.5)

    assert result.counts.maybe > 0
    assert result.counts.oracle_failures == result.counts.oracle_calls
    assert result.counts.reachable + result.counts.unreachable == result.counts.total


def test_progress_tracker_reports_every_n(caplog: pytest.LogCaptureFixture) -> None:
    logger = logging.getLogger("chargegaps_test.progress")
    caplog.set_level(logging.INFO, logger="chargegaps_test.progress")
    tracker = ProgressTracker(5, report_every=2, logger=logger)

    for i in range(5):
        tracker.record(reachable=i % 2 == 0, maybe=i == 1, oracle_calls=1 if i == 1 else 0)

    assert tracker.processed == 5
    assert tracker.reachable == 3
    assert tracker.unreachable == 2
    assert tracker.maybe == 1
    assert tracker.oracle_calls == 1
    assert len([r for r in caplog.records if r.message.startswith("progress")]) == 2


def test_unreachable_points_are_held_once_after_the_merge() -> None:
    result = evaluate_region(REGION, _index(), _DetourOracle(), CONFIG, resolution=0.5, chunks=3)

    assert result.counts.unreachable > 0
    assert result.counts.unreachable_points == []
    assert len(result.gaps) == result.counts.unreachable
    assert len(set(_sorted_points(result.gaps.points))) == len(result.gaps)
