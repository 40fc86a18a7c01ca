"""
Drives grid points through classify -> route lookup -> gap aggregation.

Parallelism is per region chunk: each worker thread walks its chunk's points
strictly in order, sharing only the read-only charger index and the routing
client. Each worker owns its `ChunkResult`; results are merged after every
future has completed, and the merged point set is hulled once.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Iterable

from shapely.geometry.base import BaseGeometry

from chargegaps.log import LOGGER_NAME
from chargegaps.model import TrialPoint
from chargegaps.planning.gaps import DEFAULT_CONCAVITY, GapAggregator
from chargegaps.reachability.classifier import ReachabilityConfig, classify
from chargegaps.reachability.oracle import DistanceOracle, resolve_candidates
from chargegaps.spatial.index import ChargerIndex
from chargegaps.spatial.region import BoundingRegion, chunk_grid, chunkify, generate_grid


@dataclass
class ChunkResult:
    reachable: int = 0
    unreachable: int = 0
    # Points the crow-flies filter could not decide.
    maybe: int = 0
    oracle_calls: int = 0
    oracle_failures: int = 0
    unreachable_points: list[TrialPoint] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.reachable + self.unreachable

    def merge(self, other: "ChunkResult") -> None:
        # Counters only; unreachable points are handed to the GapAggregator.
        self.reachable += other.reachable
        self.unreachable += other.unreachable
        self.maybe += other.maybe
        self.oracle_calls += other.oracle_calls
        self.oracle_failures += other.oracle_failures


class ProgressTracker:
    """Thread-safe run counters; logs a summary every `report_every` points."""

    def __init__(self, total: int, *, report_every: int = 1000, logger: logging.Logger | None = None) -> None:
        self.total = int(total)
        self.report_every = max(1, int(report_every))
        self._logger = logger or logging.getLogger(LOGGER_NAME)
        self._lock = threading.Lock()
        self._started = time.monotonic()
        self.processed = 0
        self.reachable = 0
        self.unreachable = 0
        self.maybe = 0
        self.oracle_calls = 0

    def record(self, *, reachable: bool, maybe: bool, oracle_calls: int) -> None:
        with self._lock:
            self.processed += 1
            if reachable:
                self.reachable += 1
            else:
                self.unreachable += 1
            if maybe:
                self.maybe += 1
            self.oracle_calls += oracle_calls
            if self.processed % self.report_every != 0:
                return
            snapshot = (
                self.processed,
                self.total,
                time.monotonic() - self._started,
                self.reachable,
                self.unreachable,
                self.maybe,
                self.oracle_calls,
            )
        # Emit outside the lock.
        self._logger.info(
            "progress %s/%s (%.0fs): reachable=%s unreachable=%s maybe=%s oracle_calls=%s",
            *snapshot,
        )


def evaluate_points(
    points: Iterable[TrialPoint],
    index: ChargerIndex,
    oracle: DistanceOracle,
    config: ReachabilityConfig,
    *,
    progress: ProgressTracker | None = None,
) -> ChunkResult:
    result = ChunkResult()
    for point in points:
        verdict = classify(point, index, config)
        calls = 0
        if verdict.kind == "yes":
            reachable = True
        elif verdict.kind == "no":
            reachable = False
        else:
            result.maybe += 1
            resolution = resolve_candidates(point, verdict.candidates, oracle, config)
            calls = resolution.calls
            result.oracle_calls += resolution.calls
            result.oracle_failures += resolution.failures
            reachable = resolution.outcome == "reachable"

        if reachable:
            result.reachable += 1
        else:
            result.unreachable += 1
            result.unreachable_points.append(point)
        if progress is not None:
            progress.record(reachable=reachable, maybe=verdict.kind == "maybe", oracle_calls=calls)
    return result


@dataclass
class GapRunResult:
    counts: ChunkResult
    gaps: GapAggregator
    hull: BaseGeometry
    chunks: int
    elapsed_s: float


def evaluate_region(
    region: BoundingRegion,
    index: ChargerIndex,
    oracle: DistanceOracle,
    config: ReachabilityConfig,
    *,
    resolution: float,
    chunks: int = 1,
    workers: int | None = None,
    concavity: float = DEFAULT_CONCAVITY,
    report_every: int = 1000,
) -> GapRunResult:
    """
    Evaluate every grid point of `region` and hull the unreachable ones.

    `chunks <= 1` runs one sequential pass over `generate_grid(region)`.
    Otherwise the region is chunked and each chunk's owned rows run on a
    thread pool of `workers` threads (default: one per chunk).
    """
    logger = logging.getLogger(LOGGER_NAME)
    started = time.monotonic()

    if chunks <= 1:
        point_sets = [generate_grid(region, resolution)]
    else:
        parts = chunkify(region, chunks)
        point_sets = [chunk_grid(region, parts, i, resolution) for i in range(len(parts))]

    total = sum(len(ps) for ps in point_sets)
    logger.info("Evaluating %s grid points in %s chunk(s) at %.4f deg", total, len(point_sets), resolution)
    progress = ProgressTracker(total, report_every=report_every, logger=logger)

    if len(point_sets) == 1:
        results = [evaluate_points(point_sets[0], index, oracle, config, progress=progress)]
    else:
        max_workers = int(workers) if workers else len(point_sets)
        with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="chunk") as executor:
            futures = [
                executor.submit(evaluate_points, ps, index, oracle, config, progress=progress)
                for ps in point_sets
            ]
            # Join point: worker exceptions surface here.
            results = [f.result() for f in futures]

    counts = ChunkResult()
    gaps = GapAggregator(concavity=concavity)
    for r in results:
        counts.merge(r)
        gaps.extend(r.unreachable_points)
        r.unreachable_points.clear()

    hull = gaps.hull()
    elapsed = time.monotonic() - started
    logger.info(
        "Done in %.1fs: total=%s reachable=%s unreachable=%s maybe=%s oracle_calls=%s oracle_failures=%s",
        elapsed,
        counts.total,
        counts.reachable,
        counts.unreachable,
        counts.maybe,
        counts.oracle_calls,
        counts.oracle_failures,
    )
    return GapRunResult(counts=counts, gaps=gaps, hull=hull, chunks=len(point_sets), elapsed_s=elapsed)
