"""
Settings bootstrap for chargegaps.

Every CLI command and pipeline run reads configuration through `load_settings()`
first. Settings stay a plain dict (YAML-shaped) and the typed policy objects
used by the engine (`ReachabilityConfig`, `RetryPolicy`, `BoundingRegion`) are
built from it by small `*_from_settings` helpers next to each component.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

# PyYAML parses the human-editable config files.
import yaml

from chargegaps.log import configure_logging


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    # Copy so the caller's mapping is never mutated.
    merged: dict[str, Any] = dict(base)
    for key, value in override.items():
        # Nested mappings merge recursively so a scenario can override one key of a section.
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _load_yaml(path: Path) -> dict[str, Any]:
    # A missing scenario file means "no overrides".
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"YAML must be a mapping: {path}")
    return data


def _load_dotenv_if_present(dotenv_path: Path) -> None:
    # `.env` typically holds NREL_API_KEY; it is optional.
    if not dotenv_path.exists():
        return
    for raw_line in dotenv_path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        # Variables already exported in the shell win over the file.
        os.environ.setdefault(key, value)


def _resolve_project_root(config_path: Path) -> Path:
    config_dir = config_path.resolve().parent
    # config/default.yaml -> the repo root is the parent of `config/`.
    if config_dir.name == "config":
        return config_dir.parent
    return config_dir


def _ensure_dirs(paths: dict[str, Path]) -> None:
    for p in paths.values():
        p.mkdir(parents=True, exist_ok=True)


def resolve_worker_count(value: Any) -> int:
    """
    `run.workers` accepts an integer or "auto" (twice the available CPUs; the
    workers spend most of their time blocked on the routing service).
    """
    if value is None or (isinstance(value, str) and value.strip().lower() == "auto"):
        return max(1, 2 * (os.cpu_count() or 1))
    workers = int(value)
    if workers < 1:
        raise ValueError(f"run.workers must be >= 1, got {workers}")
    return workers


def load_settings(config_path: Path, scenario: str | None = None) -> dict[str, Any]:
    """
    Load the base config and merge a scenario override file if present.
    Also creates runtime directories and configures logging.
    """
    config_path = config_path.resolve()
    root = _resolve_project_root(config_path)

    # Load `.env` before anything reads credentials from the environment.
    _load_dotenv_if_present(root / ".env")

    base = _load_yaml(config_path)
    scenario_path = root / "config" / "scenarios" / f"{scenario}.yaml" if scenario else None
    override = _load_yaml(scenario_path) if scenario_path else {}
    settings = _deep_merge(base, override)

    project = settings.setdefault("project", {})
    paths = {
        "root": root,
        # Downloaded charger exports and the sources index.
        "raw_dir": root / project.get("raw_dir", "data/raw"),
        # Gap polygons, point sets and run metadata; safe to regenerate.
        "processed_dir": root / project.get("processed_dir", "data/processed"),
        "logs_dir": root / project.get("logs_dir", "logs"),
    }
    _ensure_dirs(paths)

    logger = configure_logging(paths["logs_dir"], level=str(project.get("log_level", "INFO")))

    settings["_meta"] = {
        "config_path": str(config_path),
        "scenario": scenario,
        "scenario_path": str(scenario_path) if scenario_path else None,
    }
    settings["paths"] = {k: str(v) for k, v in paths.items()}
    logger.info("Loaded settings: config=%s scenario=%s", config_path, scenario)
    return settings
