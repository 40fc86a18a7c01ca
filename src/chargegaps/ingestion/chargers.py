"""
Charger ingestion: a delimited export (or the NREL bulk endpoint) in, a clean
`id, lat, lon, network` table and `ChargerLocation` records out.

Steps:
1) read the CSV with pandas and canonicalize column names
   (`ID`/`Latitude`/`Longitude`/`EV Network` from NREL exports, or lower-case);
2) drop stations whose network contains the excluded marker (case-sensitive
   substring, e.g. a vendor whose chargers are closed to other vehicles);
3) validate; any error raises `ChargerIngestionError` and aborts the run.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import pandas as pd
import requests

from chargegaps.ingestion.http_download import download_with_cache_headers
from chargegaps.ingestion.sources_index import SourceRecord, sha256_file, upsert_source_record
from chargegaps.ingestion.validators import validate_chargers
from chargegaps.log import LOGGER_NAME
from chargegaps.model import ChargerLocation

DEFAULT_SOURCE_URL = "https://developer.nrel.gov/api/alt-fuel-stations/v1.csv"
NREL_API_KEY_ENV = "NREL_API_KEY"
SOURCE_ID = "nrel_alt_fuel_stations"

_COLUMN_ALIASES = {
    "ID": "id",
    "Id": "id",
    "Latitude": "lat",
    "latitude": "lat",
    "Longitude": "lon",
    "longitude": "lon",
    "lng": "lon",
    "EV Network": "network",
    "ev_network": "network",
    "network_name": "network",
}


class ChargerIngestionError(RuntimeError):
    pass


def _log() -> logging.Logger:
    return logging.getLogger(LOGGER_NAME)


def _canonicalize_columns(df: pd.DataFrame) -> pd.DataFrame:
    rename = {src: dst for src, dst in _COLUMN_ALIASES.items() if src in df.columns and dst not in df.columns}
    return df.rename(columns=rename) if rename else df


def filter_excluded_network(df: pd.DataFrame, marker: str | None) -> pd.DataFrame:
    if not marker or "network" not in df.columns:
        return df
    excluded = df["network"].astype("string").str.contains(marker, regex=False, na=False)
    return df[~excluded].reset_index(drop=True)


def prepare_chargers(raw: pd.DataFrame, *, excluded_network_marker: str | None = None) -> pd.DataFrame:
    df = _canonicalize_columns(raw.copy())
    if "network" not in df.columns:
        df["network"] = pd.Series([pd.NA] * len(df), dtype="string")

    before = len(df)
    df = filter_excluded_network(df, excluded_network_marker)
    if before != len(df):
        _log().info("Excluded %s chargers matching network marker %r", before - len(df), excluded_network_marker)

    result = validate_chargers(df)
    for w in result.warnings:
        _log().warning("Charger data: %s", w)
    if not result.ok:
        raise ChargerIngestionError("Invalid charger data: " + "; ".join(result.errors))

    out = pd.DataFrame(
        {
            "id": pd.to_numeric(df["id"]).astype("int64"),
            "lat": pd.to_numeric(df["lat"]).astype(float),
            "lon": pd.to_numeric(df["lon"]).astype(float),
            "network": df["network"].astype("string"),
        }
    )
    return out.sort_values("id", kind="mergesort").reset_index(drop=True)


def load_chargers_csv(path: Path, *, excluded_network_marker: str | None = None) -> pd.DataFrame:
    p = Path(path)
    if not p.exists():
        raise ChargerIngestionError(f"Charger file not found: {p}")
    try:
        raw = pd.read_csv(p, low_memory=False)
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
        raise ChargerIngestionError(f"Could not parse charger file {p}: {e}") from e
    df = prepare_chargers(raw, excluded_network_marker=excluded_network_marker)
    _log().info("Loaded %s chargers from %s", len(df), p)
    return df


def chargers_from_frame(df: pd.DataFrame) -> list[ChargerLocation]:
    return [
        ChargerLocation(id=int(row.id), latitude=float(row.lat), longitude=float(row.lon))
        for row in df[["id", "lat", "lon"]].itertuples(index=False)
    ]


def _count_data_rows(path: Path) -> int:
    with Path(path).open("rb") as f:
        lines = sum(1 for _ in f)
    # Header line.
    return max(0, lines - 1)


def _download_paths(settings: dict[str, Any]) -> tuple[Path, Path]:
    out_dir = Path(settings["paths"]["raw_dir"]) / "nrel"
    return out_dir / "alt_fuel_stations.csv", out_dir / "alt_fuel_stations.meta.json"


def download_chargers(settings: dict[str, Any], *, session: requests.Session | None = None) -> Path:
    """Fetch the NREL bulk charger export into `raw_dir/nrel/` and record it in the sources index."""
    api_key = os.getenv(NREL_API_KEY_ENV)
    if not api_key:
        raise ChargerIngestionError(
            f"No charger file configured and {NREL_API_KEY_ENV} is not set; cannot download charger data."
        )
    cfg = settings.get("chargers", {}) or {}
    url = str(cfg.get("source_url") or DEFAULT_SOURCE_URL)
    params: dict[str, Any] = {str(k): v for k, v in (cfg.get("source_params", {}) or {}).items()}
    params["api_key"] = api_key

    output_path, meta_path = _download_paths(settings)
    _log().info("Downloading charger data from %s", url)
    try:
        result = download_with_cache_headers(
            url=url,
            output_path=output_path,
            meta_path=meta_path,
            params=params,
            session=session,
        )
    except requests.RequestException as e:
        raise ChargerIngestionError(f"Charger download failed: {e}") from e
    _log().info("Charger data %s: %s", result.status, result.output_path)

    upsert_source_record(
        settings,
        SourceRecord(
            source_id=SOURCE_ID,
            fetched_at=result.fetched_at,
            output_path=str(result.output_path),
            checksum_sha256=sha256_file(result.output_path),
            status=result.status,
            rows=_count_data_rows(result.output_path),
            details={"url": url, "etag": result.etag, "last_modified": result.last_modified},
        ),
    )
    return result.output_path


def load_chargers(settings: dict[str, Any], *, path: Path | None = None) -> pd.DataFrame:
    """Charger table from an explicit path, `chargers.path`, or a fresh download."""
    cfg = settings.get("chargers", {}) or {}
    marker = cfg.get("excluded_network_marker")
    source = path
    if source is None and cfg.get("path"):
        source = Path(str(cfg["path"]))
        if not source.is_absolute():
            source = Path((settings.get("paths", {}) or {}).get("root", ".")) / source
    if source is None:
        source = download_chargers(settings)
    return load_chargers_csv(Path(source), excluded_network_marker=str(marker) if marker else None)
