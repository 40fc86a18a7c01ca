from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ChargerLocation:
    id: int
    latitude: float
    longitude: float


@dataclass(frozen=True)
class TrialPoint:
    latitude: float
    longitude: float
