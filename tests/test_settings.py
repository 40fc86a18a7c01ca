from __future__ import annotations

import os
from pathlib import Path

import pytest

from chargegaps.settings import load_settings, resolve_worker_count


def _write_config(root: Path) -> Path:
    config_dir = root / "config"
    (config_dir / "scenarios").mkdir(parents=True)
    (config_dir / "default.yaml").write_text(
        "project:\n"
        "  raw_dir: data/raw\n"
        "  processed_dir: data/processed\n"
        "  logs_dir: logs\n"
        "region: {lat_min: 24.5, lat_max: 49.2, lon_min: -124.8, lon_max: -66.9}\n"
        "grid:\n"
        "  resolution_deg: 0.01\n"
        "osrm:\n"
        "  base_url: https://router.project-osrm.org\n"
        "  retry: {max_attempts: 20, backoff_cap_s: 60}\n",
        encoding="utf-8",
    )
    (config_dir / "scenarios" / "coarse.yaml").write_text(
        "grid:\n  resolution_deg: 0.1\nosrm:\n  retry: {max_attempts: 5}\n",
        encoding="utf-8",
    )
    return config_dir / "default.yaml"


def test_scenario_overrides_merge_into_base(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path)

    settings = load_settings(config_path, scenario="coarse")

    assert settings["grid"]["resolution_deg"] == 0.1
    assert settings["osrm"]["retry"] == {"max_attempts": 5, "backoff_cap_s": 60}
    assert settings["osrm"]["base_url"] == "https://router.project-osrm.org"
    assert settings["region"]["lat_min"] == 24.5
    assert settings["_meta"]["scenario"] == "coarse"
    assert settings["paths"]["root"] == str(tmp_path.resolve())
    assert Path(settings["paths"]["processed_dir"]).is_dir()
    assert Path(settings["paths"]["logs_dir"]).is_dir()


def test_missing_scenario_file_means_no_overrides(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path)
    settings = load_settings(config_path, scenario="does-not-exist")
    assert settings["grid"]["resolution_deg"] == 0.01


def test_dotenv_does_not_override_shell(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_path = _write_config(tmp_path)
    (tmp_path / ".env").write_text(
        "# local secrets\nCHARGEGAPS_SHELL_VAR=from-file\nCHARGEGAPS_FILE_VAR='from-file'\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("CHARGEGAPS_SHELL_VAR", "from-shell")
    # Registers the variable with monkeypatch so it is removed again after the test.
    monkeypatch.setenv("CHARGEGAPS_FILE_VAR", "placeholder")
    monkeypatch.delenv("CHARGEGAPS_FILE_VAR")

    load_settings(config_path)

    assert os.environ["CHARGEGAPS_SHELL_VAR"] == "from-shell"
    assert os.environ["CHARGEGAPS_FILE_VAR"] == "from-file"


def test_resolve_worker_count() -> None:
    assert resolve_worker_count("auto") == 2 * (os.cpu_count() or 1)
    assert resolve_worker_count(None) == resolve_worker_count("auto")
    assert resolve_worker_count(3) == 3
    with pytest.raises(ValueError):
        resolve_worker_count(0)
