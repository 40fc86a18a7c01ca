from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal, Protocol, Sequence

from chargegaps.log import LOGGER_NAME
from chargegaps.model import ChargerLocation, TrialPoint
from chargegaps.reachability.classifier import ReachabilityConfig
from chargegaps.routing.osrm_client import OracleUnavailableError

PointOutcome = Literal["reachable", "unreachable"]


class DistanceOracle(Protocol):
    def driving_distance_m(
        self,
        origin_lat: float,
        origin_lon: float,
        dest_lat: float,
        dest_lon: float,
    ) -> float | None: ...


@dataclass(frozen=True)
class OracleResolution:
    outcome: PointOutcome
    calls: int
    failures: int
    # Charger that made the point reachable, if any.
    charger_id: int | None = None
    driving_distance_m: float | None = None


def resolve_candidates(
    point: TrialPoint,
    candidates: Sequence[tuple[ChargerLocation, float]],
    oracle: DistanceOracle,
    config: ReachabilityConfig,
) -> OracleResolution:
    """
    Ask the router about candidates nearest-first and stop at the first one
    within driving range. A candidate without a route, or whose lookups kept
    failing, is skipped. At most `config.max_oracle_candidates` are tried.
    """
    logger = logging.getLogger(LOGGER_NAME)
    calls = 0
    failures = 0
    for charger, _ in list(candidates)[: max(0, int(config.max_oracle_candidates))]:
        calls += 1
        try:
            distance = oracle.driving_distance_m(
                point.latitude,
                point.longitude,
                charger.latitude,
                charger.longitude,
            )
        except OracleUnavailableError as e:
            failures += 1
            logger.warning("Skipping charger %s for (%.4f, %.4f): %s", charger.id, point.latitude, point.longitude, e)
            continue
        if distance is None:
            continue
        if distance <= config.max_range_m:
            return OracleResolution(
                outcome="reachable",
                calls=calls,
                failures=failures,
                charger_id=charger.id,
                driving_distance_m=float(distance),
            )
    return OracleResolution(outcome="unreachable", calls=calls, failures=failures)
