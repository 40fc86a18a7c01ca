from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

from chargegaps.model import ChargerLocation, TrialPoint
from chargegaps.spatial.index import ChargerIndex

# Assumed EV range.
MAX_RANGE_METERS = 400_000
# Straight-line distance below MAX_RANGE * ratio is trusted as drivable without asking the router.
CROW_FLIES_RATIO = 0.1
# Covers the error of the flat lat/lon rectangle used to pre-filter chargers.
SEARCH_PADDING_METERS = 25_000
# Upper bound on router calls per point in dense charger areas.
MAX_ORACLE_CANDIDATES = 50

VerdictKind = Literal["yes", "no", "maybe"]


@dataclass(frozen=True)
class ReachabilityConfig:
    max_range_m: float = MAX_RANGE_METERS
    crow_flies_ratio: float = CROW_FLIES_RATIO
    search_padding_m: float = SEARCH_PADDING_METERS
    max_oracle_candidates: int = MAX_ORACLE_CANDIDATES

    @property
    def crow_flies_threshold_m(self) -> float:
        return float(self.max_range_m) * float(self.crow_flies_ratio)


def reachability_config_from_settings(settings: dict[str, Any]) -> ReachabilityConfig:
    cfg = settings.get("reachability", {}) or {}
    return ReachabilityConfig(
        max_range_m=float(cfg.get("max_range_m", MAX_RANGE_METERS)),
        crow_flies_ratio=float(cfg.get("crow_flies_ratio", CROW_FLIES_RATIO)),
        search_padding_m=float(cfg.get("search_padding_m", SEARCH_PADDING_METERS)),
        max_oracle_candidates=int(cfg.get("max_oracle_candidates", MAX_ORACLE_CANDIDATES)),
    )


@dataclass(frozen=True)
class ReachabilityVerdict:
    kind: VerdictKind
    # (charger, great-circle meters), nearest first; only populated for "maybe".
    candidates: tuple[tuple[ChargerLocation, float], ...] = field(default=())

    @classmethod
    def yes(cls) -> "ReachabilityVerdict":
        return cls("yes")

    @classmethod
    def no(cls) -> "ReachabilityVerdict":
        return cls("no")

    @classmethod
    def maybe(cls, candidates: list[tuple[ChargerLocation, float]]) -> "ReachabilityVerdict":
        return cls("maybe", tuple(candidates))


def classify(point: TrialPoint, index: ChargerIndex, config: ReachabilityConfig) -> ReachabilityVerdict:
    """
    Cheap geometric decision for one point.

    - no charger within range as the crow flies: driving is never shorter, so "no";
    - nearest charger closer than the crow-flies threshold: "yes";
    - otherwise "maybe", deferring to the routing service with the in-range
      chargers as candidates.
    """
    candidates = index.nearest_chargers(
        point,
        max_range_m=config.max_range_m,
        padding_m=config.search_padding_m,
    )
    if not candidates:
        return ReachabilityVerdict.no()

    _, nearest_m = candidates[0]
    if nearest_m < config.crow_flies_threshold_m:
        return ReachabilityVerdict.yes()
    return ReachabilityVerdict.maybe(candidates)
