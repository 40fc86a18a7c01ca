"""
Offline tests for the crow-flies classifier and the oracle fallback.

The routing service is replaced by small fakes that return fixed driving
distances per destination, so no network is involved.
"""

from __future__ import annotations

import pytest

from chargegaps.model import ChargerLocation, TrialPoint
from chargegaps.reachability.classifier import ReachabilityConfig, classify, reachability_config_from_settings
from chargegaps.reachability.oracle import resolve_candidates
from chargegaps.routing.osrm_client import OracleUnavailableError
from chargegaps.spatial.index import ChargerIndex

ORIGIN = TrialPoint(latitude=40.0, longitude=-100.0)
CONFIG = ReachabilityConfig()


class _TableOracle:
    # Driving distance per destination (lat, lon); values may be None or an exception.
    def __init__(self, table: dict[tuple[float, float], object]) -> None:
        self.table = table
        self.calls: list[tuple[float, float]] = []

    def driving_distance_m(self, origin_lat, origin_lon, dest_lat, dest_lon):
        self.calls.append((dest_lat, dest_lon))
        value = self.table.get((dest_lat, dest_lon))
        if isinstance(value, Exception):
            raise value
        return value


def test_close_charger_is_yes() -> None:
    # ~5 km north of the origin.
    index = ChargerIndex.build([ChargerLocation(id=1, latitude=40.045, longitude=-100.0)])
    verdict = classify(ORIGIN, index, CONFIG)
    assert verdict.kind == "yes"
    assert verdict.candidates == ()


def test_no_charger_in_range_is_no() -> None:
    # ~1100 km away.
    index = ChargerIndex.build([ChargerLocation(id=1, latitude=50.0, longitude=-100.0)])
    assert classify(ORIGIN, index, CONFIG).kind == "no"
    assert classify(ORIGIN, ChargerIndex.build([]), CONFIG).kind == "no"


def test_mid_distance_charger_is_maybe_with_candidates() -> None:
    # ~45 km: beyond the crow-flies threshold (40 km) but within range.
    index = ChargerIndex.build(
        [
            ChargerLocation(id=2, latitude=41.0, longitude=-100.0),
            ChargerLocation(id=1, latitude=40.405, longitude=-100.0),
        ]
    )
    verdict = classify(ORIGIN, index, CONFIG)

    assert verdict.kind == "maybe"
    assert [c.id for c, _ in verdict.candidates] == [1, 2]
    assert verdict.candidates[0][1] == pytest.approx(45_000, abs=500)
    # Classification is a pure function of the point and the index.
    assert classify(ORIGIN, index, CONFIG) == verdict


def test_config_from_settings_overrides_defaults() -> None:
    cfg = reachability_config_from_settings({"reachability": {"max_range_m": 300_000, "crow_flies_ratio": 0.2}})
    assert cfg.crow_flies_threshold_m == pytest.approx(60_000)
    assert cfg.max_oracle_candidates == 50
    assert reachability_config_from_settings({}) == ReachabilityConfig()


def test_maybe_point_with_long_drive_is_unreachable() -> None:
    charger = ChargerLocation(id=1, latitude=40.405, longitude=-100.0)
    oracle = _TableOracle({(40.405, -100.0): 500_000.0})

    res = resolve_candidates(ORIGIN, [(charger, 45_000.0)], oracle, CONFIG)

    assert res.outcome == "unreachable"
    assert res.calls == 1
    assert res.failures == 0


def test_first_candidate_within_range_stops_the_search() -> None:
    a = ChargerLocation(id=1, latitude=40.5, longitude=-100.0)
    b = ChargerLocation(id=2, latitude=40.6, longitude=-100.0)
    c = ChargerLocation(id=3, latitude=40.7, longitude=-100.0)
    oracle = _TableOracle({(40.5, -100.0): 450_000.0, (40.6, -100.0): 400_000.0, (40.7, -100.0): 10.0})

    res = resolve_candidates(ORIGIN, [(a, 55_000.0), (b, 66_000.0), (c, 77_000.0)], oracle, CONFIG)

    # Exactly max range still counts as reachable.
    assert res.outcome == "reachable"
    assert res.charger_id == 2
    assert res.driving_distance_m == 400_000.0
    assert oracle.calls == [(40.5, -100.0), (40.6, -100.0)]


def test_candidate_lookups_are_capped() -> None:
    candidates = [
        (ChargerLocation(id=i, latitude=40.5 + i * 0.001, longitude=-100.0), 50_000.0 + i) for i in range(60)
    ]
    oracle = _TableOracle({})

    res = resolve_candidates(ORIGIN, candidates, oracle, CONFIG)

    assert res.outcome == "unreachable"
    assert res.calls == 50
    assert len(oracle.calls) == 50


def test_unavailable_oracle_skips_only_that_candidate() -> None:
    a = ChargerLocation(id=1, latitude=40.5, longitude=-100.0)
    b = ChargerLocation(id=2, latitude=40.6, longitude=-100.0)
    oracle = _TableOracle({(40.5, -100.0): OracleUnavailableError("down"), (40.6, -100.0): 100_000.0})

    res = resolve_candidates(ORIGIN, [(a, 55_000.0), (b, 66_000.0)], oracle, CONFIG)

    assert res.outcome == "reachable"
    assert res.charger_id == 2
    assert res.calls == 2
    assert res.failures == 1
