from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pandas as pd

from chargegaps.ingestion.chargers import chargers_from_frame, load_chargers
from chargegaps.log import get_logger
from chargegaps.planning.gaps import DEFAULT_CONCAVITY, gap_points_geojson, gap_polygon_geojson
from chargegaps.planning.orchestrator import GapRunResult, evaluate_region
from chargegaps.reachability.classifier import ReachabilityConfig, reachability_config_from_settings
from chargegaps.reachability.oracle import DistanceOracle
from chargegaps.routing.osrm_client import OSRMClient
from chargegaps.run_meta import build_run_meta, file_meta, new_run_id, utc_now_iso, write_json
from chargegaps.settings import resolve_worker_count
from chargegaps.spatial.index import ChargerIndex
from chargegaps.spatial.region import BoundingRegion, region_from_settings


@dataclass(frozen=True)
class GapOutputs:
    chargers: pd.DataFrame
    region: BoundingRegion
    config: ReachabilityConfig
    resolution: float
    run: GapRunResult


def _run_shape(settings: dict[str, Any]) -> tuple[int, int]:
    run_cfg = settings.get("run", {}) or {}
    workers = resolve_worker_count(run_cfg.get("workers", "auto"))
    chunks = run_cfg.get("chunks")
    return workers, int(chunks) if chunks is not None else workers


def compute_gaps(
    settings: dict[str, Any],
    *,
    chargers_path: Path | None = None,
    oracle: DistanceOracle | None = None,
) -> GapOutputs:
    chargers = load_chargers(settings, path=chargers_path)
    index = ChargerIndex.build(chargers_from_frame(chargers))

    region = region_from_settings(settings)
    config = reachability_config_from_settings(settings)
    resolution = float((settings.get("grid", {}) or {}).get("resolution_deg", 0.01))
    concavity = float((settings.get("gaps", {}) or {}).get("concavity", DEFAULT_CONCAVITY))
    workers, chunks = _run_shape(settings)

    client = OSRMClient.from_settings(settings) if oracle is None else None
    try:
        run = evaluate_region(
            region,
            index,
            oracle if oracle is not None else client,
            config,
            resolution=resolution,
            chunks=chunks,
            workers=workers,
            concavity=concavity,
            report_every=int((settings.get("run", {}) or {}).get("progress_every", 1000)),
        )
    finally:
        if client is not None:
            client.close()
    return GapOutputs(chargers=chargers, region=region, config=config, resolution=resolution, run=run)


def run_gaps(
    settings: dict[str, Any],
    *,
    chargers_path: Path | None = None,
    oracle: DistanceOracle | None = None,
) -> Path:
    """Compute the gap polygon and write GeoJSON/CSV outputs plus run metadata; returns the polygon path."""
    logger = get_logger()
    processed_dir = Path(settings["paths"]["processed_dir"])
    processed_dir.mkdir(parents=True, exist_ok=True)

    run_id = new_run_id()
    generated_at = utc_now_iso()
    outputs = compute_gaps(settings, chargers_path=chargers_path, oracle=oracle)
    run = outputs.run

    polygon_path = processed_dir / "gap_polygon.geojson"
    points_geojson_path = processed_dir / "gap_points.geojson"
    points_csv_path = processed_dir / "gap_points.csv"

    if run.hull.geom_type == "LineString":
        # Two unreachable points bound no area; the point outputs still carry them.
        logger.warning("Only two unreachable points; writing an empty gap polygon")
        polygon = {"type": "FeatureCollection", "features": []}
    else:
        polygon = gap_polygon_geojson(run.hull)
    polygon_path.write_text(json.dumps(polygon), encoding="utf-8")
    points_geojson_path.write_text(json.dumps(gap_points_geojson(run.gaps.points)), encoding="utf-8")
    run.gaps.to_frame().to_csv(points_csv_path, index=False)

    counts = {
        "total": run.counts.total,
        "reachable": run.counts.reachable,
        "unreachable": run.counts.unreachable,
        "maybe": run.counts.maybe,
        "oracle_calls": run.counts.oracle_calls,
        "oracle_failures": run.counts.oracle_failures,
        "chargers": int(len(outputs.chargers)),
        "chunks": run.chunks,
        "resolution_deg": outputs.resolution,
        "elapsed_s": round(run.elapsed_s, 3),
    }
    meta = settings.get("_meta", {}) or {}
    inputs = [file_meta(Path(str(meta["config_path"])))] if meta.get("config_path") else []
    if chargers_path is not None:
        inputs.append(file_meta(Path(chargers_path)))
    write_json(
        processed_dir / "run_meta.json",
        build_run_meta(
            run_id=run_id,
            generated_at=generated_at,
            settings=settings,
            counts=counts,
            inputs=inputs,
            outputs=[file_meta(polygon_path), file_meta(points_geojson_path), file_meta(points_csv_path)],
        ),
    )
    logger.info("Wrote gap polygon to %s", polygon_path)
    return polygon_path
