"""
Validation rules for the charger table.

Any error aborts the run; there is no partial-charger-set mode. Results come
back as a structured object so the caller can log every problem before raising.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import pandas as pd


@dataclass(frozen=True)
class ChargerValidationResult:
    errors: list[str]
    warnings: list[str]
    stats: dict[str, Any]

    @property
    def ok(self) -> bool:
        return len(self.errors) == 0


REQUIRED_COLUMNS = ("id", "lat", "lon")


def validate_chargers(df: pd.DataFrame) -> ChargerValidationResult:
    errors: list[str] = []
    warnings: list[str] = []

    missing_cols = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing_cols:
        errors.extend(f"Missing required column: {c}" for c in missing_cols)
        return ChargerValidationResult(errors=errors, warnings=warnings, stats={"rows": int(len(df))})

    if df.empty:
        errors.append("Charger table is empty")
        return ChargerValidationResult(errors=errors, warnings=warnings, stats={"rows": 0})

    # Coercion turns junk into NaN so it can be counted instead of crashing.
    ids = pd.to_numeric(df["id"], errors="coerce")
    lat = pd.to_numeric(df["lat"], errors="coerce")
    lon = pd.to_numeric(df["lon"], errors="coerce")

    bad_ids = int(ids.isna().sum())
    if bad_ids:
        errors.append(f"{bad_ids} rows have a missing or non-numeric id")
    non_integer = int(((ids.dropna() % 1) != 0).sum())
    if non_integer:
        errors.append(f"{non_integer} rows have a non-integer id")

    dup = ids.dropna()[ids.dropna().duplicated()]
    if not dup.empty:
        sample = ", ".join(str(int(v)) for v in dup.head(5))
        errors.append(f"{int(dup.size)} duplicate ids (e.g. {sample})")

    bad_coords = int(lat.isna().sum() + lon.isna().sum())
    if bad_coords:
        errors.append(f"{bad_coords} missing or non-numeric coordinate values")
    out_of_range = int(((lat < -90) | (lat > 90) | (lon < -180) | (lon > 180)).sum())
    if out_of_range:
        errors.append(f"{out_of_range} rows have coordinates outside valid lat/lon ranges")

    zero_zero = int(((lat == 0) & (lon == 0)).sum())
    if zero_zero:
        # (0, 0) is usually a geocoding placeholder, not a real station.
        warnings.append(f"{zero_zero} rows located at (0, 0)")

    stats: dict[str, Any] = {"rows": int(len(df))}
    if "network" in df.columns:
        stats["networks"] = df["network"].astype("string").fillna("<none>").value_counts().head(20).to_dict()
    return ChargerValidationResult(errors=errors, warnings=warnings, stats=stats)
